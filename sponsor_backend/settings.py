from pathlib import Path
import os
from urllib.parse import urlparse, parse_qs, unquote
from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

# Load environment variables from this project reliably (do not depend on CWD).
load_dotenv(dotenv_path=BASE_DIR / '.env', override=False)

_TRUTHY = ('1', 'true', 'yes', 'y', 'on')


def _env_bool(name: str, default: str = 'False') -> bool:
    return (os.getenv(name, default) or '').strip().lower() in _TRUTHY


SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-dev-key-12345')

DEBUG = _env_bool('DEBUG')

# When enabled, refuse to run in production with placeholder secrets.
SECURITY_STRICT = _env_bool('SECURITY_STRICT')

if DEBUG:
    ALLOWED_HOSTS = ['*']
else:
    _hosts = os.getenv('ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').strip()
    ALLOWED_HOSTS = [h.strip() for h in _hosts.split(',') if h.strip()]

if SECURITY_STRICT and (not DEBUG) and SECRET_KEY == 'django-insecure-dev-key-12345':
    raise RuntimeError('DJANGO_SECRET_KEY must be set when SECURITY_STRICT is enabled')

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'rest_framework',
    'drf_spectacular',
    'sponsors',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'sponsor_backend.middleware.RequestIdMiddleware',
    'sponsor_backend.middleware.MetricsMiddleware',
    'sponsor_backend.middleware.AuditLoggingMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'sponsor_backend.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'sponsor_backend.wsgi.application'

# Database: DATABASE_URL (postgresql://) when set, local SQLite otherwise.
DATABASE_URL = os.getenv('DATABASE_URL', '').strip()


def _parse_database_url(database_url: str) -> dict:
    """Parse a Postgres DATABASE_URL into Django DATABASES['default'] keys."""
    parsed = urlparse(database_url)
    scheme = (parsed.scheme or '').lower()
    if scheme not in ('postgres', 'postgresql'):
        raise ValueError('DATABASE_URL must start with postgresql://')

    name = (parsed.path or '').lstrip('/') or 'postgres'
    qs = parse_qs(parsed.query or '')
    sslmode = (qs.get('sslmode', [None])[0] or os.getenv('DB_SSLMODE', 'prefer'))

    return {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': name,
        'USER': unquote(parsed.username or ''),
        'PASSWORD': unquote(parsed.password or ''),
        'HOST': parsed.hostname or '',
        'PORT': str(parsed.port or 5432),
        'CONN_MAX_AGE': int(os.getenv('DB_CONN_MAX_AGE', '60')),
        'CONN_HEALTH_CHECKS': True,
        'OPTIONS': {
            'sslmode': sslmode,
            'connect_timeout': int(os.getenv('DB_CONNECT_TIMEOUT', '20')),
        },
    }


if DATABASE_URL:
    DATABASES = {'default': _parse_database_url(DATABASE_URL)}
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.getenv('SQLITE_PATH', str(BASE_DIR / 'db.sqlite3')),
        }
    }

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('TIME_ZONE', 'Europe/Oslo')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [
        'rest_framework.authentication.SessionAuthentication',
        'rest_framework.authentication.BasicAuthentication',
    ],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.IsAuthenticated',
    ],
    'DEFAULT_SCHEMA_CLASS': 'drf_spectacular.openapi.AutoSchema',
    'EXCEPTION_HANDLER': 'sponsors.exceptions.sponsor_exception_handler',
    'DEFAULT_PAGINATION_CLASS': 'rest_framework.pagination.PageNumberPagination',
    'PAGE_SIZE': 50,
}

# OpenAPI / Swagger (drf-spectacular)
SPECTACULAR_SETTINGS = {
    'TITLE': os.getenv('OPENAPI_TITLE', 'Sponsor Backend API'),
    'DESCRIPTION': os.getenv(
        'OPENAPI_DESCRIPTION',
        'Sponsor pipeline, contract generation and signature workflow (Django REST Framework).'
    ),
    'VERSION': os.getenv('OPENAPI_VERSION', '1.0.0'),
    'COMPONENT_SPLIT_REQUEST': True,
    'SERVE_INCLUDE_SCHEMA': False,
    'SWAGGER_UI_SETTINGS': {
        'persistAuthorization': True,
    },
}

# ---------------------------------------------------------------------------
# Contract signing (read by sponsors.signing_service.load_signing_config)
# ---------------------------------------------------------------------------

# 'self-hosted' | 'adobe-sign'
CONTRACT_SIGNING_PROVIDER = (os.getenv('CONTRACT_SIGNING_PROVIDER') or 'self-hosted').strip().lower()
ADOBE_SIGN_BASE_URL = (os.getenv('ADOBE_SIGN_BASE_URL') or 'https://api.eu2.adobesign.com').strip().rstrip('/')
ADOBE_SIGN_IMS_URL = (os.getenv('ADOBE_SIGN_IMS_URL') or 'https://ims-na1.adobelogin.com/ims/token/v3').strip()
ADOBE_SIGN_APPLICATION_ID = (os.getenv('ADOBE_SIGN_APPLICATION_ID') or '').strip()
ADOBE_SIGN_APPLICATION_SECRET = (os.getenv('ADOBE_SIGN_APPLICATION_SECRET') or '').strip()
ADOBE_SIGN_CLIENT_ID = (os.getenv('ADOBE_SIGN_CLIENT_ID') or '').strip()
ADOBE_SIGN_TIMEOUT_SECONDS = int(os.getenv('ADOBE_SIGN_TIMEOUT_SECONDS') or '30')
ADOBE_SIGN_MOCK = _env_bool('ADOBE_SIGN_MOCK')

# ---------------------------------------------------------------------------
# Contract document storage
# ---------------------------------------------------------------------------

# 'database' keeps PDF bytes in ContractAsset rows; 'r2' pushes them to Cloudflare R2.
CONTRACT_ASSET_STORAGE = (os.getenv('CONTRACT_ASSET_STORAGE') or 'database').strip().lower()

R2_ACCOUNT_ID = os.getenv('R2_ACCOUNT_ID', '')
R2_ACCESS_KEY_ID = os.getenv('R2_ACCESS_KEY_ID', '')
R2_SECRET_ACCESS_KEY = os.getenv('R2_SECRET_ACCESS_KEY', '')
R2_BUCKET_NAME = os.getenv('R2_BUCKET_NAME', '')
R2_ENDPOINT_URL = os.getenv('R2_ENDPOINT_URL', '')
R2_CONNECT_TIMEOUT = int(os.getenv('R2_CONNECT_TIMEOUT', '5'))
R2_READ_TIMEOUT = int(os.getenv('R2_READ_TIMEOUT', '30'))

if not R2_ENDPOINT_URL and R2_ACCOUNT_ID:
    R2_ENDPOINT_URL = f"https://{R2_ACCOUNT_ID}.r2.cloudflarestorage.com"

if SECURITY_STRICT and (not DEBUG) and CONTRACT_SIGNING_PROVIDER == 'adobe-sign':
    if not (ADOBE_SIGN_APPLICATION_ID and ADOBE_SIGN_APPLICATION_SECRET):
        raise RuntimeError('Adobe Sign credentials must be set when SECURITY_STRICT is enabled')

SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')
SECURE_SSL_REDIRECT = _env_bool('SECURE_SSL_REDIRECT')
SESSION_COOKIE_SECURE = _env_bool('SESSION_COOKIE_SECURE')
CSRF_COOKIE_SECURE = _env_bool('CSRF_COOKIE_SECURE')
SECURE_CONTENT_TYPE_NOSNIFF = True

_csrf_trusted = os.getenv('CSRF_TRUSTED_ORIGINS', '').strip()
if _csrf_trusted:
    CSRF_TRUSTED_ORIGINS = [o.strip() for o in _csrf_trusted.split(',') if o.strip()]

# Optional shared secret for the /metrics scrape endpoint.
METRICS_TOKEN = os.getenv('METRICS_TOKEN', '').strip()

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'sponsor-backend',
    }
}

# Contract reminders go out through Django's mail API.
EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.smtp.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'smtp.gmail.com')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', '587'))
EMAIL_USE_TLS = _env_bool('EMAIL_USE_TLS', 'True')
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD', '')
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', EMAIL_HOST_USER or 'noreply@localhost')

LOG_LEVEL = (os.getenv('LOG_LEVEL') or 'INFO').strip().upper()

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'simple': {
            'format': '%(asctime)s %(levelname)s %(name)s %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'audit': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'django.db.backends': {
            'level': 'WARNING',
        },
    },
}
