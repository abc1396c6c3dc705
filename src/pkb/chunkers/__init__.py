"""Chunking strategies for splitting documents."""

from pkb.chunkers.markdown_chunker import (
    CHARACTER_SPLIT_OVERLAP,
    TARGET_CHUNK_SIZE,
    MarkdownChunker,
    Span,
    Unit,
    UnitKind,
    chunk_markdown,
    lex_paragraph_into_units,
    slice_text,
    split_by_characters,
    split_code_block_by_lines,
    split_into_hard_blocks,
    split_into_paragraphs,
)

__all__ = [
    "CHARACTER_SPLIT_OVERLAP",
    "TARGET_CHUNK_SIZE",
    "MarkdownChunker",
    "Span",
    "Unit",
    "UnitKind",
    "chunk_markdown",
    "lex_paragraph_into_units",
    "slice_text",
    "split_by_characters",
    "split_code_block_by_lines",
    "split_into_hard_blocks",
    "split_into_paragraphs",
]
