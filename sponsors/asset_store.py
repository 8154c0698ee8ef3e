"""
Contract document storage.

`get_asset_store()` returns the backend selected by CONTRACT_ASSET_STORAGE:
'database' keeps bytes on the ContractAsset row, 'r2' writes them to
Cloudflare R2 and keeps only the key.
"""
import hashlib
import logging
import unicodedata
import uuid
from typing import Any, Dict, Optional
from urllib.parse import quote

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings

from .exceptions import PersistenceFailure
from .models import ContractAsset

logger = logging.getLogger(__name__)


class ContractAssetStore:
    backend = ''

    def save(self, data: bytes, filename: str, content_type: str = 'application/pdf') -> ContractAsset:
        raise NotImplementedError

    def read(self, asset: ContractAsset) -> bytes:
        raise NotImplementedError

    def delete(self, asset: ContractAsset) -> None:
        asset.delete()

    @staticmethod
    def _digest(data: bytes) -> str:
        return hashlib.sha256(data).hexdigest()


class DatabaseAssetStore(ContractAssetStore):
    backend = 'database'

    def save(self, data: bytes, filename: str, content_type: str = 'application/pdf') -> ContractAsset:
        return ContractAsset.objects.create(
            filename=filename,
            content_type=content_type,
            size=len(data),
            sha256=self._digest(data),
            storage_backend=self.backend,
            data=data,
        )

    def read(self, asset: ContractAsset) -> bytes:
        return bytes(asset.data or b'')


class R2AssetStore(ContractAssetStore):
    """Stores contract PDFs in Cloudflare R2 under contracts/<uuid>--<filename>."""

    backend = 'r2'

    def __init__(self, client=None, bucket_name: Optional[str] = None):
        if client is None:
            required = {
                'R2_ENDPOINT_URL': getattr(settings, 'R2_ENDPOINT_URL', ''),
                'R2_ACCESS_KEY_ID': getattr(settings, 'R2_ACCESS_KEY_ID', ''),
                'R2_SECRET_ACCESS_KEY': getattr(settings, 'R2_SECRET_ACCESS_KEY', ''),
                'R2_BUCKET_NAME': getattr(settings, 'R2_BUCKET_NAME', ''),
            }
            missing = [k for k, v in required.items() if not str(v or '').strip()]
            if missing:
                raise PersistenceFailure('Cloudflare R2 is not configured. Missing: ' + ', '.join(missing))

            client = boto3.client(
                's3',
                endpoint_url=settings.R2_ENDPOINT_URL,
                aws_access_key_id=settings.R2_ACCESS_KEY_ID,
                aws_secret_access_key=settings.R2_SECRET_ACCESS_KEY,
                config=Config(
                    signature_version='s3v4',
                    connect_timeout=int(getattr(settings, 'R2_CONNECT_TIMEOUT', 5) or 5),
                    read_timeout=int(getattr(settings, 'R2_READ_TIMEOUT', 30) or 30),
                    retries={'max_attempts': 3, 'mode': 'standard'},
                ),
                region_name='auto',
            )
        self.client = client
        self.bucket_name = bucket_name or settings.R2_BUCKET_NAME

    @staticmethod
    def _metadata_value(value: Any, max_len: int = 1024) -> str:
        """R2/S3 metadata must be ASCII; percent-encode the rest."""
        raw = unicodedata.normalize('NFKC', str(value))
        encoded = quote(raw, safe=' ._()-')
        return encoded[:max_len]

    def save(self, data: bytes, filename: str, content_type: str = 'application/pdf') -> ContractAsset:
        key = f"contracts/{uuid.uuid4()}--{filename}"
        metadata: Dict[str, str] = {'original_filename': self._metadata_value(filename)}
        try:
            self.client.put_object(
                Bucket=self.bucket_name,
                Key=key,
                Body=data,
                ContentType=content_type,
                Metadata=metadata,
            )
        except (ClientError, BotoCoreError) as e:
            raise PersistenceFailure(f'Failed to upload contract document to R2: {e}') from e

        return ContractAsset.objects.create(
            filename=filename,
            content_type=content_type,
            size=len(data),
            sha256=self._digest(data),
            storage_backend=self.backend,
            storage_key=key,
        )

    def read(self, asset: ContractAsset) -> bytes:
        try:
            obj = self.client.get_object(Bucket=self.bucket_name, Key=asset.storage_key)
            return obj['Body'].read()
        except (ClientError, BotoCoreError) as e:
            raise PersistenceFailure(f'Failed to read contract document {asset.id} from R2: {e}') from e

    def delete(self, asset: ContractAsset) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket_name, Key=asset.storage_key)
        except (ClientError, BotoCoreError) as e:
            logger.warning(f"Failed to delete R2 object {asset.storage_key}: {e}")
        asset.delete()


_BACKENDS = {
    DatabaseAssetStore.backend: DatabaseAssetStore,
    R2AssetStore.backend: R2AssetStore,
}


def get_asset_store(backend: Optional[str] = None) -> ContractAssetStore:
    name = (backend or getattr(settings, 'CONTRACT_ASSET_STORAGE', 'database') or 'database').lower()
    if name not in _BACKENDS:
        raise PersistenceFailure(f"Unknown contract asset storage backend '{name}'")
    return _BACKENDS[name]()


def read_asset(asset: ContractAsset) -> bytes:
    """Read an asset with the backend it was written by."""
    return get_asset_store(asset.storage_backend).read(asset)
