"""
Sponsorship agreement PDF renderer.

Rendering runs in two steps:

1. `layout_rich_text` walks a RichText tree and produces LaidOutBlock
   values (kind, list prefix, styled runs). This is pure and holds the
   list numbering rules.
2. `render_contract_pdf` assembles page 1 (header, title, party table,
   event details, package, sections, signature area), the optional terms
   appendix, and builds the PDF with reportlab platypus.
"""
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple
from xml.sax.saxutils import escape

from reportlab.lib import colors
from reportlab.lib.enums import TA_CENTER, TA_LEFT
from reportlab.lib.pagesizes import A4
from reportlab.lib.styles import ParagraphStyle
from reportlab.pdfbase.pdfmetrics import stringWidth
from reportlab.platypus import (
    Flowable, PageBreak, Paragraph, SimpleDocTemplate, Spacer, Table, TableStyle,
)
from reportlab.platypus.flowables import HRFlowable

from .exceptions import RenderFailure
from .rich_text import Heading, ListItem, Paragraph as RichParagraph, RichText, parse_blocks
from .variables import substitute, substitute_rich_text

logger = logging.getLogger(__name__)

# Adobe Sign text tags. The provider turns these into a signature and a date
# field for the first (and only) recipient.
SPONSOR_SIGNATURE_MARKER = '{{Sig_es_:signer1:signature}}'
SPONSOR_DATE_MARKER = '{{Dte_es_:signer1:date}}'

BULLET_PREFIX = '•  '
APPENDIX_TITLE = 'Appendix 1: General Terms & Conditions'

BRAND_BLUE = colors.HexColor('#1D4ED8')
BRAND_BLUE_LIGHT = colors.HexColor('#EFF6FF')
TEXT_PRIMARY = colors.HexColor('#1E293B')
TEXT_SECONDARY = colors.HexColor('#475569')
TEXT_MUTED = colors.HexColor('#94A3B8')
BORDER_COLOR = colors.HexColor('#E2E8F0')

PAGE_MARGIN_X = 50
PAGE_MARGIN_TOP = 70
PAGE_MARGIN_BOTTOM = 60


@dataclass(frozen=True)
class TextRun:
    text: str
    bold: bool = False
    italic: bool = False


@dataclass(frozen=True)
class LaidOutBlock:
    kind: str  # 'heading' | 'paragraph' | 'list'
    runs: Tuple[TextRun, ...]
    prefix: str = ''
    level: int = 0

    @property
    def text(self) -> str:
        return ''.join(r.text for r in self.runs)


def _runs(spans) -> Tuple[TextRun, ...]:
    return tuple(TextRun(s.text, bold=s.bold, italic=s.italic) for s in spans)


def layout_rich_text(rich: RichText) -> List[LaidOutBlock]:
    """
    Headings reset numbering and leave list context. Bullets render a
    bullet prefix; numbered items count up from 1 within an uninterrupted
    run of list items. Any other paragraph leaves list context.
    """
    out: List[LaidOutBlock] = []
    in_list = False
    counter = 0

    for block in rich.blocks:
        if isinstance(block, Heading):
            in_list = False
            counter = 0
            out.append(LaidOutBlock('heading', _runs(block.spans), level=block.level))
        elif isinstance(block, ListItem):
            if not in_list:
                counter = 0
            in_list = True
            if block.kind == 'number':
                counter += 1
                prefix = f'{counter}.  '
            elif block.kind == 'bullet':
                prefix = BULLET_PREFIX
            else:
                raise RenderFailure(f"Unsupported list kind '{block.kind}'")
            out.append(LaidOutBlock('list', _runs(block.spans), prefix=prefix, level=block.level))
        elif isinstance(block, RichParagraph):
            in_list = False
            counter = 0
            out.append(LaidOutBlock('paragraph', _runs(block.spans)))
        else:
            raise RenderFailure(f'Unknown rich text node: {type(block).__name__}')

    return out


def _build_styles() -> Dict[str, ParagraphStyle]:
    base = dict(fontName='Helvetica', textColor=TEXT_PRIMARY, alignment=TA_LEFT)
    return {
        'title': ParagraphStyle(
            'title', fontName='Helvetica-Bold', fontSize=20, leading=24,
            alignment=TA_CENTER, textColor=TEXT_PRIMARY, spaceAfter=6,
        ),
        'section_heading': ParagraphStyle(
            'section_heading', fontName='Helvetica-Bold', fontSize=12, leading=15,
            textColor=TEXT_PRIMARY, spaceBefore=16, spaceAfter=8,
        ),
        'terms_heading': ParagraphStyle(
            'terms_heading', fontName='Helvetica-Bold', fontSize=11, leading=14,
            textColor=TEXT_PRIMARY, spaceBefore=14, spaceAfter=6,
        ),
        'paragraph': ParagraphStyle('paragraph', fontSize=10, leading=15, spaceAfter=8, **base),
        'list_item': ParagraphStyle(
            'list_item', fontSize=10, leading=15, spaceAfter=4,
            leftIndent=36, bulletIndent=16, **base,
        ),
        'info_header': ParagraphStyle(
            'info_header', fontName='Helvetica-Bold', fontSize=8, leading=10,
            textColor=BRAND_BLUE, spaceAfter=8,
        ),
        'info_row': ParagraphStyle('info_row', fontSize=9, leading=12, spaceAfter=4, **base),
        'details_heading': ParagraphStyle(
            'details_heading', fontName='Helvetica-Bold', fontSize=11, leading=14,
            textColor=TEXT_PRIMARY, spaceAfter=8,
        ),
        'detail_label': ParagraphStyle('detail_label', fontName='Helvetica', fontSize=9, leading=12,
                                       textColor=TEXT_SECONDARY),
        'detail_value': ParagraphStyle('detail_value', fontName='Helvetica-Bold', fontSize=9, leading=12,
                                       textColor=TEXT_PRIMARY),
        'signature_label': ParagraphStyle('signature_label', fontName='Helvetica', fontSize=9, leading=12,
                                          textColor=TEXT_SECONDARY),
        'appendix_title': ParagraphStyle(
            'appendix_title', fontName='Helvetica-Bold', fontSize=16, leading=20,
            alignment=TA_CENTER, textColor=TEXT_PRIMARY, spaceAfter=20,
        ),
    }


def _markup(text: str) -> str:
    return escape(text or '').replace('\n', '<br/>')


def _runs_markup(runs: Sequence[TextRun]) -> str:
    parts = []
    for run in runs:
        chunk = _markup(run.text)
        if not chunk:
            continue
        if run.italic:
            chunk = f'<i>{chunk}</i>'
        if run.bold:
            chunk = f'<b>{chunk}</b>'
        parts.append(chunk)
    return ''.join(parts)


class InvisibleText(Flowable):
    """Zero-opacity text with a fixed footprint, for provider text tags."""

    def __init__(self, text: str, font_size: float = 1):
        super().__init__()
        self.text = text
        self.font_size = font_size
        self.width = stringWidth(text, 'Helvetica', font_size)
        self.height = font_size + 1

    def wrap(self, availWidth, availHeight):
        return self.width, self.height

    def draw(self):
        canv = self.canv
        canv.saveState()
        canv.setFillAlpha(0)
        canv.setFont('Helvetica', self.font_size)
        canv.drawString(0, 0, self.text)
        canv.restoreState()


def blocks_to_flowables(blocks: Sequence[LaidOutBlock], styles: Dict[str, ParagraphStyle],
                        heading_style: str = 'section_heading') -> List[Flowable]:
    flowables: List[Flowable] = []
    for block in blocks:
        markup = _runs_markup(block.runs)
        if block.kind == 'heading':
            flowables.append(Paragraph(markup, styles[heading_style]))
        elif block.kind == 'list':
            flowables.append(Paragraph(markup, styles['list_item'], bulletText=block.prefix.strip()))
        else:
            flowables.append(Paragraph(markup, styles['paragraph']))
    return flowables


def _info_column(title: str, rows: List[Tuple[str, Optional[str]]], styles) -> List[Flowable]:
    cell: List[Flowable] = [Paragraph(title.upper(), styles['info_header'])]
    for label, value in rows:
        if not value:
            continue
        cell.append(Paragraph(
            f"<font size='8' color='#94A3B8'>{_markup(label)}</font>&nbsp;&nbsp;{_markup(value)}",
            styles['info_row'],
        ))
    return cell


def _info_table(variables: Dict[str, str], width: float, styles) -> Table:
    organizer = _info_column('Organizer', [
        ('Name', variables.get('ORG_NAME')),
        ('Org. No.', variables.get('ORG_ORG_NUMBER')),
        ('Address', variables.get('ORG_ADDRESS')),
        ('Email', variables.get('ORG_EMAIL')),
    ], styles)
    partner = _info_column('Partner', [
        ('Name', variables.get('SPONSOR_NAME')),
        ('Org. No.', variables.get('SPONSOR_ORG_NUMBER')),
        ('Address', variables.get('SPONSOR_ADDRESS')),
        ('Liaison', variables.get('CONTACT_NAME')),
        ('Email', variables.get('CONTACT_EMAIL')),
    ], styles)
    table = Table([[organizer, partner]], colWidths=[width / 2, width / 2])
    table.setStyle(TableStyle([
        ('BOX', (0, 0), (-1, -1), 1, BORDER_COLOR),
        ('LINEAFTER', (0, 0), (0, 0), 1, BORDER_COLOR),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 12),
        ('RIGHTPADDING', (0, 0), (-1, -1), 12),
        ('TOPPADDING', (0, 0), (-1, -1), 12),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 12),
    ]))
    return table


def _details_block(heading: str, rows: List[Tuple[str, Optional[str]]], width: float, styles) -> Optional[Table]:
    rows = [(label, value) for label, value in rows if value]
    if not rows:
        return None
    data = [[Paragraph(_markup(heading), styles['details_heading']), '']]
    for label, value in rows:
        data.append([
            Paragraph(_markup(label), styles['detail_label']),
            Paragraph(_markup(value), styles['detail_value']),
        ])
    table = Table(data, colWidths=[140, width - 140])
    table.setStyle(TableStyle([
        ('SPAN', (0, 0), (-1, 0)),
        ('BACKGROUND', (0, 0), (-1, -1), BRAND_BLUE_LIGHT),
        ('LINEBEFORE', (0, 0), (0, -1), 3, BRAND_BLUE),
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 12),
        ('TOPPADDING', (0, 0), (-1, -1), 3),
        ('BOTTOMPADDING', (0, 0), (-1, -1), 3),
    ]))
    return table


def _event_details(variables: Dict[str, str], width: float, styles) -> Optional[Table]:
    venue = ', '.join(v for v in (
        variables.get('VENUE_NAME'), variables.get('VENUE_ADDRESS'), variables.get('CONFERENCE_CITY'),
    ) if v)
    return _details_block('Event Details', [
        ('Event', variables.get('CONFERENCE_TITLE')),
        ('Date(s)', variables.get('CONFERENCE_DATES') or variables.get('CONFERENCE_DATE')),
        ('Venue', venue),
    ], width, styles)


def _package_details(variables: Dict[str, str], width: float, styles) -> Optional[Table]:
    return _details_block('Selected Sponsorship Package', [
        ('Partnership Level', variables.get('TIER_NAME')),
        ('Total Fee', variables.get('CONTRACT_VALUE')),
        ('Add-ons', variables.get('ADDONS_LIST')),
    ], width, styles)


def _signature_block(label: str, styles, markers: Sequence[str] = ()) -> List[Flowable]:
    cell: List[Flowable] = [
        Paragraph(_markup(label), styles['signature_label']),
        Spacer(1, 36),
        HRFlowable(width='100%', thickness=1, color=colors.HexColor('#333333'), spaceAfter=4),
        Paragraph('Date / Signature', styles['signature_label']),
    ]
    cell.extend(InvisibleText(marker) for marker in markers)
    return cell


def _signature_area(variables: Dict[str, str], width: float, styles, embed_markers: bool) -> Table:
    organizer = _signature_block(variables.get('ORG_NAME') or 'Organizer', styles)
    sponsor = _signature_block(
        variables.get('SPONSOR_NAME') or 'Sponsor', styles,
        markers=(SPONSOR_SIGNATURE_MARKER, SPONSOR_DATE_MARKER) if embed_markers else (),
    )
    table = Table([[organizer, '', sponsor]], colWidths=[width * 0.45, width * 0.10, width * 0.45])
    table.setStyle(TableStyle([
        ('VALIGN', (0, 0), (-1, -1), 'TOP'),
        ('LEFTPADDING', (0, 0), (-1, -1), 0),
        ('RIGHTPADDING', (0, 0), (-1, -1), 0),
    ]))
    return table


def _page_decorator(header_text: str, footer_text: str):
    def _draw(canv, doc):
        width, height = A4
        canv.saveState()
        canv.setFillColor(BRAND_BLUE)
        canv.rect(0, height - 4, width, 4, stroke=0, fill=1)
        if header_text:
            canv.setFillColor(TEXT_MUTED)
            canv.setFont('Helvetica', 9)
            canv.drawString(PAGE_MARGIN_X, height - 40, header_text)
        if footer_text:
            canv.setFillColor(TEXT_MUTED)
            canv.setFont('Helvetica', 7)
            canv.drawCentredString(width / 2, 30, footer_text)
        canv.restoreState()
    return _draw


def build_contract_story(template, variables: Dict[str, str], *, embed_signature_markers: bool,
                         width: float) -> List[Flowable]:
    """Flowables for the whole agreement, in page order."""
    styles = _build_styles()
    story: List[Flowable] = []

    story.append(Paragraph(_markup(substitute(template.title, variables)), styles['title']))
    story.append(HRFlowable(width=60, thickness=2, color=BRAND_BLUE, hAlign='CENTER', spaceAfter=24))
    story.append(_info_table(variables, width, styles))
    story.append(Spacer(1, 20))

    for block in (_event_details(variables, width, styles), _package_details(variables, width, styles)):
        if block is not None:
            story.append(block)
            story.append(Spacer(1, 16))

    for index, section in enumerate(template.sections or []):
        if not isinstance(section, dict):
            raise RenderFailure(f'sections[{index}] must be an object')
        heading = substitute(section.get('heading') or '', variables)
        story.append(Paragraph(_markup(heading), styles['section_heading']))
        body = substitute_rich_text(parse_blocks(section.get('body')), variables)
        story.extend(blocks_to_flowables(layout_rich_text(body), styles))

    story.append(Spacer(1, 40))
    story.append(_signature_area(variables, width, styles, embed_signature_markers))

    terms = parse_blocks(template.terms) if template.terms else RichText()
    if len(terms):
        story.append(PageBreak())
        story.append(Paragraph(_markup(APPENDIX_TITLE), styles['appendix_title']))
        resolved = substitute_rich_text(terms, variables)
        story.extend(blocks_to_flowables(layout_rich_text(resolved), styles, heading_style='terms_heading'))

    return story


def render_contract_pdf(template, variables: Dict[str, str], *, embed_signature_markers: bool = False) -> bytes:
    """
    Render a sponsorship agreement.

    Args:
        template: ContractTemplate (or any object with title, sections,
            terms, header_text, footer_text)
        variables: output of build_contract_variables
        embed_signature_markers: add invisible provider text tags under
            the sponsor signature block

    Returns:
        bytes: the PDF document

    Raises:
        RenderFailure: malformed template content or a layout error
    """
    buffer = io.BytesIO()
    title = substitute(template.title or '', variables)
    header_text = substitute(template.header_text or '', variables)
    footer_text = substitute(template.footer_text or '', variables)

    doc = SimpleDocTemplate(
        buffer,
        pagesize=A4,
        leftMargin=PAGE_MARGIN_X,
        rightMargin=PAGE_MARGIN_X,
        topMargin=PAGE_MARGIN_TOP,
        bottomMargin=PAGE_MARGIN_BOTTOM,
        title=title,
        author=header_text or variables.get('ORG_NAME', ''),
    )

    try:
        story = build_contract_story(
            template, variables, embed_signature_markers=embed_signature_markers, width=doc.width,
        )
        decorate = _page_decorator(header_text, footer_text)
        doc.build(story, onFirstPage=decorate, onLaterPages=decorate)
    except RenderFailure:
        raise
    except Exception as e:
        logger.error(f"Contract PDF build failed for template '{template.title}': {e}", exc_info=True)
        raise RenderFailure(f'Failed to generate contract PDF: {e}') from e

    pdf_bytes = buffer.getvalue()
    if not pdf_bytes:
        raise RenderFailure('Contract PDF generation produced an empty document')
    return pdf_bytes
