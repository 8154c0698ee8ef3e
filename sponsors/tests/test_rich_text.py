from django.test import SimpleTestCase

from sponsors.contract_pdf import BULLET_PREFIX, layout_rich_text
from sponsors.exceptions import RenderFailure
from sponsors.rich_text import (
    Heading, ListItem, Paragraph, dump_blocks, map_spans, parse_blocks, validate_blocks,
)
from sponsors.tests.factories import block, span


class ParseBlocksTests(SimpleTestCase):
    def test_block_kinds(self):
        rich = parse_blocks([
            block('Title', style='h2'),
            block('Body'),
            block('Item', list_item='bullet'),
            block('Step', list_item='number'),
        ])
        kinds = [type(b) for b in rich]
        self.assertEqual(kinds, [Heading, Paragraph, ListItem, ListItem])
        self.assertEqual(rich.blocks[0].level, 2)
        self.assertEqual(rich.blocks[2].kind, 'bullet')
        self.assertEqual(rich.blocks[3].kind, 'number')

    def test_none_is_empty(self):
        self.assertEqual(len(parse_blocks(None)), 0)

    def test_marks_are_kept_per_span(self):
        rich = parse_blocks([block(span('plain '), span('bold', 'strong'), span('both', 'strong', 'em'))])
        spans = rich.blocks[0].spans
        self.assertFalse(spans[0].bold)
        self.assertTrue(spans[1].bold)
        self.assertFalse(spans[1].italic)
        self.assertTrue(spans[2].bold and spans[2].italic)

    def test_plain_text_joins_blocks(self):
        rich = parse_blocks([block('Title', style='h2'), block(span('a '), span('b', 'strong'))])
        self.assertEqual(rich.plain_text(), 'Title\na b')

    def test_malformed_input_raises(self):
        with self.assertRaises(RenderFailure):
            parse_blocks('not a list')
        with self.assertRaises(RenderFailure):
            parse_blocks([{'_type': 'image'}])
        with self.assertRaises(RenderFailure):
            parse_blocks([block('x', list_item='checkbox')])
        with self.assertRaises(RenderFailure):
            parse_blocks([{'_type': 'block', 'children': [{'_type': 'span', 'text': 5}]}])

    def test_validate_blocks_normalises(self):
        raw = [block(span('Hello', 'em'), style='h3'), block('One', list_item='number')]
        cleaned = validate_blocks(raw)
        self.assertEqual(cleaned[0]['style'], 'h3')
        self.assertEqual(cleaned[0]['children'][0]['marks'], ['em'])
        self.assertEqual(cleaned[1]['listItem'], 'number')
        self.assertEqual(dump_blocks(parse_blocks(cleaned)), cleaned)

    def test_map_spans_keeps_structure(self):
        rich = parse_blocks([
            block(span('a', 'strong'), span('b', 'em')),
            block('c', list_item='bullet'),
        ])
        mapped = map_spans(rich, str.upper)
        self.assertEqual(len(mapped), len(rich))
        self.assertEqual([s.text for s in mapped.blocks[0].spans], ['A', 'B'])
        self.assertEqual([s.marks for s in mapped.blocks[0].spans], [('strong',), ('em',)])
        self.assertIsInstance(mapped.blocks[1], ListItem)


class LayoutRichTextTests(SimpleTestCase):
    def test_numbering_resets_after_paragraph(self):
        laid_out = layout_rich_text(parse_blocks([
            block('one', list_item='number'),
            block('two', list_item='number'),
            block('interruption'),
            block('again', list_item='number'),
        ]))
        self.assertEqual([b.prefix for b in laid_out], ['1.  ', '2.  ', '', '1.  '])

    def test_heading_resets_counter(self):
        laid_out = layout_rich_text(parse_blocks([
            block('one', list_item='number'),
            block('Next', style='h4'),
            block('first', list_item='number'),
        ]))
        self.assertEqual(laid_out[1].kind, 'heading')
        self.assertEqual(laid_out[2].prefix, '1.  ')

    def test_bullets_keep_list_context(self):
        laid_out = layout_rich_text(parse_blocks([
            block('one', list_item='number'),
            block('dot', list_item='bullet'),
            block('two', list_item='number'),
        ]))
        self.assertEqual([b.prefix for b in laid_out], ['1.  ', BULLET_PREFIX, '2.  '])

    def test_preserves_block_count_and_span_order(self):
        raw = [
            block(span('a'), span('b', 'strong'), span('c', 'em')),
            block('h', style='h2'),
            block('x', list_item='bullet'),
        ]
        laid_out = layout_rich_text(parse_blocks(raw))
        self.assertEqual(len(laid_out), 3)
        runs = laid_out[0].runs
        self.assertEqual([r.text for r in runs], ['a', 'b', 'c'])
        self.assertEqual([(r.bold, r.italic) for r in runs], [(False, False), (True, False), (False, True)])
