"""Markdown-aware chunking strategy.

Chunking runs in two phases:

- Hard blocks: every heading starts a new block tagged with the enclosing
  heading hierarchy (``"# A > ## B"``). Lines inside fenced code are never
  checked for headings.
- Soft split: a block over the size budget is packed greedily from its
  paragraphs; an oversized paragraph is lexed into units (text runs,
  inline code, links) and packed again; an oversized text unit is cut into
  overlapping character windows.

Every split is tracked as a character range into the original text, so a
chunk's ``start``/``end`` positions always slice back to exactly its text.
"""

import re
from bisect import bisect_right
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterator, Optional, Sequence

from pkb.models import ChunkInfo, Position

# ~500 tokens ≈ 2000 chars
TARGET_CHUNK_SIZE = 2000
CHARACTER_SPLIT_OVERLAP = 200

_HEADING_RE = re.compile(r"^(#{1,6}) (.*)$")
_CODE_FENCE = "```"
_SENTENCE_END = ".!?"


@dataclass(frozen=True)
class Span:
    """Half-open character range ``[start, end)`` into the source text."""

    start: int
    end: int

    @property
    def size(self) -> int:
        return self.end - self.start


class LineIndex:
    """Converts between character offsets and 1-based positions."""

    def __init__(self, text: str):
        self._line_starts = [0]
        self._line_starts.extend(m.end() for m in re.finditer("\n", text))

    def position(self, offset: int) -> Position:
        line = bisect_right(self._line_starts, offset)
        return Position(line=line, col=offset - self._line_starts[line - 1] + 1)

    def offset(self, position: Position) -> int:
        return self._line_starts[position.line - 1] + position.col - 1


def slice_text(text: str, start: Position, end: Position) -> str:
    """Return the part of `text` between two positions (`end` inclusive)."""
    index = LineIndex(text)
    return text[index.offset(start) : index.offset(end) + 1]


def _iter_lines(text: str, start: int, end: int) -> Iterator[Span]:
    """Yield one span per line in ``[start, end)``, newline excluded."""
    pos = start
    while pos < end:
        newline = text.find("\n", pos, end)
        if newline == -1:
            yield Span(pos, end)
            return
        yield Span(pos, newline)
        pos = newline + 1


# ---------------------------------------------------------------------------
# Phase 1: hard blocks
# ---------------------------------------------------------------------------


class FenceState(Enum):
    PROSE = "prose"
    FENCED = "fenced"


def _next_fence_state(state: FenceState, line: str) -> FenceState:
    if not line.startswith(_CODE_FENCE):
        return state
    if state is FenceState.PROSE:
        return FenceState.FENCED
    return FenceState.PROSE


def parse_heading(line: str) -> Optional[tuple[int, str]]:
    """Return ``(depth, title)`` if `line` is an ATX heading."""
    match = _HEADING_RE.match(line)
    if match is None:
        return None
    return len(match.group(1)), match.group(2).strip()


class HeadingHierarchy:
    """Active heading title per depth (1-6)."""

    def __init__(self):
        self._titles: dict[int, str] = {}

    def enter(self, depth: int, title: str) -> None:
        self._titles[depth] = title
        for deeper in range(depth + 1, 7):
            self._titles.pop(deeper, None)

    def context(self) -> Optional[str]:
        parts = [
            f"{'#' * depth} {self._titles[depth]}"
            for depth in range(1, 7)
            if depth in self._titles
        ]
        return " > ".join(parts) or None


@dataclass(frozen=True)
class HardBlock:
    """Body of a heading section; the heading line itself is excluded."""

    span: Span
    heading_context: Optional[str] = None


def split_into_hard_blocks(text: str) -> list[HardBlock]:
    """Split `text` at heading lines outside fenced code."""
    blocks: list[HardBlock] = []
    hierarchy = HeadingHierarchy()
    state = FenceState.PROSE
    block_start = 0
    context: Optional[str] = None

    for line in _iter_lines(text, 0, len(text)):
        content = text[line.start : line.end]
        if state is FenceState.PROSE and not content.startswith(_CODE_FENCE):
            heading = parse_heading(content)
            if heading is not None:
                blocks.append(HardBlock(Span(block_start, line.start), context))
                hierarchy.enter(*heading)
                context = hierarchy.context()
                block_start = min(line.end + 1, len(text))
                continue
        state = _next_fence_state(state, content)

    blocks.append(HardBlock(Span(block_start, len(text)), context))
    return blocks


def _trim_block(text: str, span: Span) -> Optional[Span]:
    """Drop leading blank lines and trailing whitespace; None if nothing is left."""
    for line in _iter_lines(text, span.start, span.end):
        if text[line.start : line.end].strip():
            start = line.start
            break
    else:
        return None
    end = span.end
    while end > start and text[end - 1].isspace():
        end -= 1
    return Span(start, end)


# ---------------------------------------------------------------------------
# Phase 2: soft split
# ---------------------------------------------------------------------------


def split_into_paragraphs(text: str, span: Optional[Span] = None) -> list[Span]:
    """Split into blank-line-delimited paragraphs.

    A fenced block is always a paragraph of its own: it starts at the
    opening fence line and ends at the closing one, and blank lines inside
    it do not end it.
    """
    span = span or Span(0, len(text))
    paragraphs: list[Span] = []
    state = FenceState.PROSE
    para_start: Optional[int] = None
    para_end = span.start

    for line in _iter_lines(text, span.start, span.end):
        content = text[line.start : line.end]
        if state is FenceState.PROSE and not content.strip():
            if para_start is not None:
                paragraphs.append(Span(para_start, para_end))
                para_start = None
            continue
        next_state = _next_fence_state(state, content)
        opens_fence = state is FenceState.PROSE and next_state is FenceState.FENCED
        if opens_fence and para_start is not None:
            paragraphs.append(Span(para_start, para_end))
            para_start = None
        if para_start is None:
            para_start = line.start
        para_end = line.end
        if state is FenceState.FENCED and next_state is FenceState.PROSE:
            paragraphs.append(Span(para_start, para_end))
            para_start = None
        state = next_state

    if para_start is not None:
        paragraphs.append(Span(para_start, para_end))
    return paragraphs


class UnitKind(Enum):
    TEXT = "text"
    INLINE_CODE = "inline-code"
    LINK = "link"


@dataclass(frozen=True)
class Unit:
    """A lexical unit of a paragraph. Code spans and links are atomic."""

    kind: UnitKind
    start: int
    end: int
    text: str

    @property
    def size(self) -> int:
        return self.end - self.start

    @property
    def atomic(self) -> bool:
        return self.kind is not UnitKind.TEXT


class LexMode(Enum):
    TEXT = "text"
    LINK_TEXT = "link-text"
    LINK_URL = "link-url"


def _backtick_run(text: str, pos: int, end: int) -> int:
    run = pos
    while run < end and text[run] == "`":
        run += 1
    return run - pos


def _closing_backticks(text: str, run: int, pos: int, end: int) -> int:
    """Offset of the next backtick run of exactly `run` ticks, or -1."""
    while True:
        pos = text.find("`", pos, end)
        if pos == -1:
            return -1
        length = _backtick_run(text, pos, end)
        if length == run:
            return pos
        pos += length


def lex_paragraph_into_units(text: str, span: Optional[Span] = None) -> list[Unit]:
    """Lex a paragraph into text runs, inline-code spans and links.

    Text runs also end at newlines and at sentence ends (``.``, ``!`` or
    ``?`` followed by whitespace). Unterminated markup is plain text.
    """
    span = span or Span(0, len(text))
    end = span.end
    units: list[Unit] = []
    mode = LexMode.TEXT
    run_start: Optional[int] = None  # pending plain-text run
    atom_start = span.start  # pending code span or link

    def flush_run(upto: int) -> None:
        nonlocal run_start
        if run_start is None:
            return
        stop = upto
        while stop > run_start and text[stop - 1].isspace():
            stop -= 1
        if stop > run_start:
            units.append(
                Unit(UnitKind.TEXT, run_start, stop, text[run_start:stop])
            )
        run_start = None

    def emit_atom(kind: UnitKind, stop: int) -> None:
        flush_run(atom_start)
        units.append(Unit(kind, atom_start, stop, text[atom_start:stop]))

    def abandon_atom() -> None:
        nonlocal run_start
        if run_start is None:
            run_start = atom_start

    i = span.start
    while i < end:
        char = text[i]

        if mode is LexMode.TEXT:
            if char == "`":
                run = _backtick_run(text, i, end)
                close = _closing_backticks(text, run, i + run, end)
                if close != -1:
                    atom_start = i
                    i = close + run
                    emit_atom(UnitKind.INLINE_CODE, i)
                    continue
                if run_start is None:
                    run_start = i
                i += run
            elif char == "[":
                atom_start = i
                mode = LexMode.LINK_TEXT
                i += 1
            elif char == "\n":
                flush_run(i)
                i += 1
            elif char in _SENTENCE_END and i + 1 < end and text[i + 1].isspace():
                if run_start is None:
                    run_start = i
                flush_run(i + 1)
                i += 1
            else:
                if run_start is None and not char.isspace():
                    run_start = i
                i += 1

        elif mode is LexMode.LINK_TEXT:
            if char == "]" and i + 1 < end and text[i + 1] == "(":
                mode = LexMode.LINK_URL
                i += 2
            elif char in "\n[]":
                # not a link after all; re-read this char as text
                abandon_atom()
                mode = LexMode.TEXT
            else:
                i += 1

        elif mode is LexMode.LINK_URL:
            if char == ")":
                i += 1
                emit_atom(UnitKind.LINK, i)
                mode = LexMode.TEXT
            elif char == "\n":
                abandon_atom()
                mode = LexMode.TEXT
            else:
                i += 1

    if mode in (LexMode.LINK_TEXT, LexMode.LINK_URL):
        abandon_atom()
    flush_run(end)
    return units


def split_by_characters(
    text: str,
    span: Span,
    max_chunk_size: int,
    overlap: int = 0,
) -> list[Span]:
    """Cut `span` into fixed-size windows, consecutive windows sharing `overlap` chars."""
    if max_chunk_size < 1:
        raise ValueError("max_chunk_size must be positive")
    step = max_chunk_size - overlap
    if step <= 0:
        raise ValueError("overlap must be less than max_chunk_size")

    windows: list[Span] = []
    start = span.start
    while start < span.end:
        stop = min(start + max_chunk_size, span.end)
        windows.append(Span(start, stop))
        if stop == span.end:
            break
        start += step
    return windows


def _pack(
    items: Sequence,
    max_chunk_size: int,
    split_oversized: Callable[..., list[Span]],
) -> list[Span]:
    """Greedily merge consecutive items into spans of at most `max_chunk_size`.

    Items only need ``start``/``end``; the size of a group is measured from
    the start of its first item to the end of its last, gaps included.
    """
    chunks: list[Span] = []
    group: Optional[Span] = None

    for item in items:
        if group is not None and item.end - group.start > max_chunk_size:
            chunks.append(group)
            group = None
        if item.end - item.start <= max_chunk_size:
            group = Span(item.start if group is None else group.start, item.end)
        else:
            if group is not None:
                chunks.append(group)
                group = None
            chunks.extend(split_oversized(item))

    if group is not None:
        chunks.append(group)
    return chunks


def split_code_block_by_lines(
    text: str,
    span: Span,
    max_chunk_size: int,
    overlap: int = CHARACTER_SPLIT_OVERLAP,
) -> list[Span]:
    """Pack a fenced code block line by line, cutting only over-long lines."""
    lines = [
        line
        for line in _iter_lines(text, span.start, span.end)
        if text[line.start : line.end].strip()
    ]
    return _pack(
        lines,
        max_chunk_size,
        lambda line: split_by_characters(text, line, max_chunk_size, overlap),
    )


def _split_paragraph(
    text: str, paragraph: Span, max_chunk_size: int, overlap: int
) -> list[Span]:
    if text.startswith(_CODE_FENCE, paragraph.start):
        return split_code_block_by_lines(text, paragraph, max_chunk_size, overlap)

    def split_unit(unit: Unit) -> list[Span]:
        if unit.atomic:
            return [Span(unit.start, unit.end)]
        return split_by_characters(text, Span(unit.start, unit.end), max_chunk_size, overlap)

    units = lex_paragraph_into_units(text, paragraph)
    return _pack(units, max_chunk_size, split_unit)


def _soft_split(text: str, block: Span, max_chunk_size: int, overlap: int) -> list[Span]:
    if block.size <= max_chunk_size:
        return [block]
    return _pack(
        split_into_paragraphs(text, block),
        max_chunk_size,
        lambda para: _split_paragraph(text, para, max_chunk_size, overlap),
    )


def chunk_markdown(
    text: str,
    max_chunk_size: int = TARGET_CHUNK_SIZE,
    overlap: int = CHARACTER_SPLIT_OVERLAP,
) -> list[ChunkInfo]:
    """Split a markdown document into position-addressed chunks."""
    if max_chunk_size < 1:
        raise ValueError("max_chunk_size must be positive")
    if not text or not text.strip():
        return []

    # keep the character fallback moving forward for tiny budgets
    overlap = max(0, min(overlap, max_chunk_size // 2))
    index = LineIndex(text)
    chunks: list[ChunkInfo] = []

    for block in split_into_hard_blocks(text):
        body = _trim_block(text, block.span)
        if body is None:
            continue
        for span in _soft_split(text, body, max_chunk_size, overlap):
            chunks.append(
                ChunkInfo(
                    text=text[span.start : span.end],
                    start=index.position(span.start),
                    end=index.position(span.end - 1),
                    heading_context=block.heading_context,
                )
            )

    return chunks


class MarkdownChunker:
    """Chunking strategy for markdown documents.

    Respects heading structure, keeps fenced code, inline code and links
    intact where possible, and tracks exact source positions.
    """

    def __init__(
        self,
        max_chunk_size: int = TARGET_CHUNK_SIZE,
        overlap: int = CHARACTER_SPLIT_OVERLAP,
    ):
        self.max_chunk_size = max_chunk_size
        self.overlap = overlap

    def chunk(self, text: str) -> list[ChunkInfo]:
        return chunk_markdown(text, self.max_chunk_size, self.overlap)
