"""Tests for the markdown chunker."""

import pytest

from pkb.chunkers import (
    MarkdownChunker,
    Span,
    UnitKind,
    chunk_markdown,
    lex_paragraph_into_units,
    slice_text,
    split_by_characters,
    split_code_block_by_lines,
    split_into_paragraphs,
)
from pkb.models import Position

LONG_DOCUMENT = """# Project notes

Some introduction that explains what this document is about. It has a few
sentences! Does it wrap? It does.

## Setup

Install the tool with `pip install thing` and then read [the docs](https://example.com/docs).
Configuration lives in a file next to the notes.

```python
def main():

    print("hello")
```

## Usage

""" + " ".join(f"Sentence number {i} talks about usage." for i in range(40)) + """

### Edge cases

A line with a [broken link( and an unmatched ` backtick.
"""


class TestChunkMarkdown:
    """Test suite for chunk_markdown."""

    def test_headings_split_blocks(self):
        """Test the two-section example from the docs."""
        chunks = chunk_markdown("# A\n\nfoo.\n\n## B\n\nbar.")

        assert [(c.heading_context, c.text) for c in chunks] == [
            ("# A", "foo."),
            ("# A > ## B", "bar."),
        ]

    def test_positions_are_one_based_and_inclusive(self):
        """Test start/end positions of a chunk."""
        chunks = chunk_markdown("# A\n\nfoo.\n\n## B\n\nbar.")

        assert chunks[0].start == Position(3, 1)
        assert chunks[0].end == Position(3, 4)
        assert chunks[1].start == Position(7, 1)
        assert chunks[1].end == Position(7, 4)

    @pytest.mark.parametrize("text", ["", "   ", "\n\n  \n"])
    def test_empty_input(self, text: str):
        """Test that blank documents produce no chunks."""
        assert chunk_markdown(text) == []

    def test_heading_only_blocks_are_dropped(self):
        """Test that a heading with no body yields no chunk."""
        chunks = chunk_markdown("# A\n## B\n### C\ntext\n## D\nmore")

        assert [(c.heading_context, c.text) for c in chunks] == [
            ("# A > ## B > ### C", "text"),
            ("# A > ## D", "more"),
        ]

    def test_skipped_heading_levels(self):
        """Test that missing levels are left out of the heading context."""
        chunks = chunk_markdown("# A\n### C\nbody")

        assert chunks[0].heading_context == "# A > ### C"

    def test_text_before_first_heading_has_no_context(self):
        """Test the preamble chunk."""
        chunks = chunk_markdown("preamble\n\n# A\nbody")

        assert chunks[0].text == "preamble"
        assert chunks[0].heading_context is None
        assert chunks[1].heading_context == "# A"

    def test_not_a_heading_without_space(self):
        """Test that '#tag' and seven hashes are body text."""
        chunks = chunk_markdown("#tag line\n####### seven")

        assert len(chunks) == 1
        assert chunks[0].heading_context is None

    def test_no_heading_detection_inside_code_fence(self):
        """Test that '#' lines inside fenced code do not split blocks."""
        text = "# Real\n\n```bash\n# just a comment\necho hi\n```\n\nafter"
        chunks = chunk_markdown(text)

        assert len(chunks) == 1
        assert chunks[0].heading_context == "# Real"
        assert "# just a comment" in chunks[0].text

    def test_round_trip(self):
        """Test that slicing by (start, end) reproduces every chunk."""
        for size in (2000, 120, 40, 7):
            for chunk in chunk_markdown(LONG_DOCUMENT, max_chunk_size=size):
                assert slice_text(LONG_DOCUMENT, chunk.start, chunk.end) == chunk.text

    def test_positions_non_decreasing(self):
        """Test that chunk starts never move backwards."""
        chunks = chunk_markdown(LONG_DOCUMENT, max_chunk_size=60)

        starts = [c.start for c in chunks]
        assert starts == sorted(starts)

    def test_size_bound(self):
        """Test that chunks respect the budget unless a single atom exceeds it."""
        size = 50
        for chunk in chunk_markdown(LONG_DOCUMENT, max_chunk_size=size):
            if len(chunk.text) > size:
                units = lex_paragraph_into_units(chunk.text)
                assert len(units) == 1 and units[0].atomic

    def test_small_block_is_one_chunk(self):
        """Test that a block within budget is not soft split."""
        text = "para one.\n\npara two."
        chunks = chunk_markdown(text, max_chunk_size=100)

        assert [c.text for c in chunks] == ["para one.\n\npara two."]

    def test_paragraphs_packed_greedily(self):
        """Test paragraph packing under a small budget."""
        text = "aaaa.\n\nbbbb.\n\ncccc."
        chunks = chunk_markdown(text, max_chunk_size=12)

        assert [c.text for c in chunks] == ["aaaa.\n\nbbbb.", "cccc."]

    def test_oversized_inline_code_kept_whole(self):
        """Test that a long code span becomes its own oversized chunk."""
        code = "`" + "x" * 40 + "`"
        text = f"Intro text here.\n\nSee {code} and more."
        chunks = chunk_markdown(text, max_chunk_size=20)

        assert [c.text for c in chunks] == ["Intro text here.", "See", code, "and more."]

    def test_oversized_text_uses_character_windows(self):
        """Test the character fallback with overlap."""
        text = "x" * 25
        chunks = chunk_markdown(text, max_chunk_size=10, overlap=3)

        assert [len(c.text) for c in chunks] == [10, 10, 10, 4]
        assert chunks[1].start == Position(1, 8)

    def test_tiny_budget_terminates(self):
        """Test that a one-character budget still makes progress."""
        chunks = chunk_markdown("abcdefghij", max_chunk_size=1)

        assert [c.text for c in chunks] == list("abcdefghij")

    def test_invalid_budget(self):
        with pytest.raises(ValueError):
            chunk_markdown("text", max_chunk_size=0)

    def test_oversized_code_block_split_by_lines(self):
        """Test that a long fenced block is split on line boundaries."""
        text = "```\nline one\nline two\nline three\n```"
        chunks = chunk_markdown(text, max_chunk_size=20)

        assert [c.text for c in chunks] == ["```\nline one", "line two\nline three", "```"]

    @pytest.mark.parametrize("separator", ["\n", "\n\n"])
    def test_fence_after_prose_line_split_by_lines(self, separator: str):
        """Test that a long fence directly under a prose line still respects the budget."""
        code = separator.join(f"print('line {i}')" for i in range(30))
        text = f"Run this:\n```python\n{code}\n```"
        chunks = chunk_markdown(text, max_chunk_size=100)

        assert all(len(c.text) <= 100 for c in chunks)
        assert chunks[0].text == "Run this:"
        assert chunks[1].text.startswith("```python\nprint('line 0')")
        assert chunks[-1].text.endswith("```")
        for chunk in chunks:
            assert slice_text(text, chunk.start, chunk.end) == chunk.text

    def test_chunker_class(self):
        """Test the ChunkingStrategy wrapper."""
        chunker = MarkdownChunker(max_chunk_size=12)

        assert chunker.chunk("aaaa.\n\nbbbb.\n\ncccc.") == chunk_markdown(
            "aaaa.\n\nbbbb.\n\ncccc.", max_chunk_size=12
        )


class TestLexer:
    """Test suite for the paragraph lexer."""

    def test_sentences_are_units(self):
        units = lex_paragraph_into_units("One. Two! Three?")

        assert [u.text for u in units] == ["One.", "Two!", "Three?"]
        assert all(u.kind is UnitKind.TEXT for u in units)

    def test_link_is_atomic(self):
        units = lex_paragraph_into_units("See [docs](http://x.io) now.")

        assert [(u.kind, u.text) for u in units] == [
            (UnitKind.TEXT, "See"),
            (UnitKind.LINK, "[docs](http://x.io)"),
            (UnitKind.TEXT, "now."),
        ]

    def test_inline_code_is_atomic(self):
        units = lex_paragraph_into_units("Run `a. b. c` first")

        assert [(u.kind, u.text) for u in units] == [
            (UnitKind.TEXT, "Run"),
            (UnitKind.INLINE_CODE, "`a. b. c`"),
            (UnitKind.TEXT, "first"),
        ]

    def test_double_backtick_code(self):
        units = lex_paragraph_into_units("x ``a ` b`` y")

        assert units[1].kind is UnitKind.INLINE_CODE
        assert units[1].text == "``a ` b``"

    def test_code_span_closes_on_equal_run_only(self):
        """Test that a longer backtick run inside a code span does not close it."""
        units = lex_paragraph_into_units("x `a``b` y")

        assert [(u.kind, u.text) for u in units] == [
            (UnitKind.TEXT, "x"),
            (UnitKind.INLINE_CODE, "`a``b`"),
            (UnitKind.TEXT, "y"),
        ]

    def test_longer_run_does_not_terminate_code_span(self):
        units = lex_paragraph_into_units("a `b`` c")

        assert [(u.kind, u.text) for u in units] == [(UnitKind.TEXT, "a `b`` c")]

    def test_unterminated_markup_is_text(self):
        """Test that an unclosed link or backtick stays plain text."""
        assert [u.text for u in lex_paragraph_into_units("[not a link")] == ["[not a link"]
        units = lex_paragraph_into_units("a ` b")
        assert [(u.kind, u.text) for u in units] == [(UnitKind.TEXT, "a ` b")]

    def test_newlines_end_text_runs(self):
        units = lex_paragraph_into_units("first line\nsecond line")

        assert [u.text for u in units] == ["first line", "second line"]

    def test_units_slice_back(self):
        text = "Intro. Then [a](b) and `c` end"
        for unit in lex_paragraph_into_units(text):
            assert text[unit.start : unit.end] == unit.text

    def test_span_offsets(self):
        """Test lexing a sub-range of a larger text."""
        text = "skip me\nSee [docs](u)."
        units = lex_paragraph_into_units(text, Span(8, len(text)))

        assert units[0].start == 8
        assert units[1].text == "[docs](u)"


class TestSplitters:
    """Test suite for the lower-level split helpers."""

    def test_split_by_characters(self):
        windows = split_by_characters("a" * 25, Span(0, 25), 10, 3)

        assert windows == [Span(0, 10), Span(7, 17), Span(14, 24), Span(21, 25)]

    def test_split_by_characters_rejects_bad_overlap(self):
        with pytest.raises(ValueError):
            split_by_characters("abc", Span(0, 3), 5, 5)

    def test_split_code_block_by_lines(self):
        text = "```\nline one\nline two\nline three\n```"
        spans = split_code_block_by_lines(text, Span(0, len(text)), 20)

        assert spans == [Span(0, 12), Span(13, 32), Span(33, 36)]

    def test_split_code_block_long_line(self):
        """Test that a single over-long line falls back to windows."""
        text = "```\n" + "y" * 30 + "\n```"
        spans = split_code_block_by_lines(text, Span(0, len(text)), 10, overlap=0)

        assert all(s.size <= 10 for s in spans)
        assert "".join(text[s.start : s.end] for s in spans[1:-1]) == "y" * 30

    def test_split_into_paragraphs_keeps_fences_together(self):
        text = "para\n\n```\ncode\n\nmore code\n```\n\nlast"
        spans = split_into_paragraphs(text)

        assert [text[s.start : s.end] for s in spans] == [
            "para",
            "```\ncode\n\nmore code\n```",
            "last",
        ]

    def test_split_into_paragraphs_separates_fence_from_prose(self):
        """Test that a fence touching prose lines is still its own paragraph."""
        text = "intro\n```\ncode\n```\nafter"
        spans = split_into_paragraphs(text)

        assert [text[s.start : s.end] for s in spans] == ["intro", "```\ncode\n```", "after"]
