"""
Rich text model for contract templates.

Templates store prose as a list of block dicts (Portable Text shape):

    {"_type": "block", "style": "normal" | "h2" | "h3" | "h4",
     "listItem": "bullet" | "number",            # optional
     "children": [{"_type": "span", "text": "...", "marks": ["strong", "em"]}]}

`parse_blocks` turns that into a closed set of node types (Heading,
Paragraph, ListItem) so the renderer can dispatch on the node class instead
of on string tags. Anything outside that shape raises RenderFailure.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Iterable, List, Optional, Tuple, Union

from .exceptions import RenderFailure

HEADING_STYLES = ('h2', 'h3', 'h4')
LIST_KINDS = ('bullet', 'number')

MARK_BOLD = 'strong'
MARK_ITALIC = 'em'


@dataclass(frozen=True)
class Span:
    text: str
    marks: Tuple[str, ...] = ()
    key: Optional[str] = None

    @property
    def bold(self) -> bool:
        return MARK_BOLD in self.marks

    @property
    def italic(self) -> bool:
        return MARK_ITALIC in self.marks


@dataclass(frozen=True)
class Heading:
    level: int
    spans: Tuple[Span, ...] = ()
    key: Optional[str] = None


@dataclass(frozen=True)
class Paragraph:
    spans: Tuple[Span, ...] = ()
    style: str = 'normal'
    key: Optional[str] = None


@dataclass(frozen=True)
class ListItem:
    kind: str
    spans: Tuple[Span, ...] = ()
    level: int = 1
    key: Optional[str] = None


Block = Union[Heading, Paragraph, ListItem]


@dataclass
class RichText:
    blocks: List[Block] = field(default_factory=list)

    def __iter__(self):
        return iter(self.blocks)

    def __len__(self):
        return len(self.blocks)

    def plain_text(self) -> str:
        return '\n'.join(block_text(b) for b in self.blocks)


def _parse_span(raw: Any, where: str) -> Span:
    if not isinstance(raw, dict):
        raise RenderFailure(f'{where}: span must be an object, got {type(raw).__name__}')
    if raw.get('_type', 'span') != 'span':
        raise RenderFailure(f"{where}: unsupported inline node '{raw.get('_type')}'")
    text = raw.get('text', '')
    if not isinstance(text, str):
        raise RenderFailure(f'{where}: span text must be a string')
    marks = raw.get('marks') or []
    if not isinstance(marks, (list, tuple)) or not all(isinstance(m, str) for m in marks):
        raise RenderFailure(f'{where}: span marks must be a list of strings')
    return Span(text=text, marks=tuple(marks), key=raw.get('_key'))


def _parse_block(raw: Any, index: int) -> Block:
    where = f'block[{index}]'
    if not isinstance(raw, dict):
        raise RenderFailure(f'{where}: block must be an object, got {type(raw).__name__}')
    if raw.get('_type', 'block') != 'block':
        raise RenderFailure(f"{where}: unsupported block type '{raw.get('_type')}'")

    children = raw.get('children') or []
    if not isinstance(children, list):
        raise RenderFailure(f'{where}: children must be a list')
    spans = tuple(_parse_span(c, f'{where}.children[{i}]') for i, c in enumerate(children))

    key = raw.get('_key')
    style = raw.get('style') or 'normal'
    list_kind = raw.get('listItem')

    if list_kind:
        if list_kind not in LIST_KINDS:
            raise RenderFailure(f"{where}: unsupported listItem '{list_kind}'")
        return ListItem(kind=list_kind, spans=spans, level=int(raw.get('level') or 1), key=key)
    if style in HEADING_STYLES:
        return Heading(level=int(style[1]), spans=spans, key=key)
    return Paragraph(spans=spans, style=style, key=key)


def parse_blocks(raw: Optional[Iterable[Any]]) -> RichText:
    """Parse stored block dicts into a RichText tree. None yields an empty tree."""
    if raw is None:
        return RichText()
    if isinstance(raw, RichText):
        return raw
    if not isinstance(raw, list):
        raise RenderFailure(f'Rich text must be a list of blocks, got {type(raw).__name__}')
    return RichText([_parse_block(b, i) for i, b in enumerate(raw)])


def _dump_span(span: Span) -> dict:
    out = {'_type': 'span', 'text': span.text, 'marks': list(span.marks)}
    if span.key:
        out['_key'] = span.key
    return out


def dump_blocks(rich: RichText) -> List[dict]:
    """Inverse of parse_blocks, used when persisting a modified tree."""
    out = []
    for block in rich.blocks:
        raw: dict = {'_type': 'block', 'children': [_dump_span(s) for s in block.spans]}
        if isinstance(block, Heading):
            raw['style'] = f'h{block.level}'
        elif isinstance(block, ListItem):
            raw['style'] = 'normal'
            raw['listItem'] = block.kind
            raw['level'] = block.level
        elif isinstance(block, Paragraph):
            raw['style'] = block.style
        else:
            raise RenderFailure(f'Unknown rich text node: {type(block).__name__}')
        if block.key:
            raw['_key'] = block.key
        out.append(raw)
    return out


def block_text(block: Block) -> str:
    return ''.join(s.text for s in block.spans)


def map_spans(rich: RichText, fn: Callable[[str], str]) -> RichText:
    """Return a new tree with `fn` applied to every span's text.

    Node count, order, kinds and marks are unchanged.
    """
    blocks = []
    for block in rich.blocks:
        spans = tuple(replace(s, text=fn(s.text)) for s in block.spans)
        blocks.append(replace(block, spans=spans))
    return RichText(blocks)


def validate_blocks(raw: Any) -> List[dict]:
    """Parse-then-dump, normalising stored rich text. Raises RenderFailure."""
    return dump_blocks(parse_blocks(raw))
