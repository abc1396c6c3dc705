"""CLI entry point for PKB."""

import argparse
import logging
import os
import sys
from typing import Literal, Optional, cast

from pkb.config import DEFAULT_PKB_PATH, PKBConfig
from pkb.errors import PKBError
from pkb.index import PKB, ProcessStatus
from pkb.manager import PKBManager

logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
)
logger = logging.getLogger(__name__)


def build_pkb(args: argparse.Namespace) -> PKB:
    """Assemble a PKB index from command line options."""
    from pkb.embedders import SentenceTransformerEmbedder

    config = PKBConfig.from_path(
        args.path,
        max_chunk_size=args.max_chunk_size,
        chunk_overlap=args.chunk_overlap,
        reuse_unchanged_chunks=not args.full_reembed,
    )

    context_generator = None
    if args.context:
        from pkb.enrichers import AnthropicContextGenerator

        if not os.environ.get("ANTHROPIC_API_KEY"):
            logger.error("--context needs ANTHROPIC_API_KEY to be set")
            sys.exit(1)
        context_generator = AnthropicContextGenerator(model=args.context_model)

    logger.info("Loading embedding model...")
    embedder = SentenceTransformerEmbedder(args.model)
    return PKB(config, embedder, context_generator=context_generator)


def sync(pkb: PKB) -> None:
    """Bring the index up to date with the directory, then exit."""
    result = pkb.reindex()
    failed = [r for r in result.processed if r.status is ProcessStatus.FAILED]
    indexed = [r for r in result.processed if r.status is ProcessStatus.INDEXED]
    deleted = [r for r in result.processed if r.status is ProcessStatus.DELETED]

    logger.info("")
    logger.info(
        f"Synced {pkb.root}: {len(indexed)} indexed, {len(deleted)} deleted, "
        f"{len(result.scan.skipped)} unchanged"
    )
    if failed:
        for r in failed:
            logger.error(f"  failed: {r.filename}: {r.error}")
        sys.exit(1)


def reindex(pkb: PKB, filename: str) -> None:
    """Force a full re-embed of one file.

    Args:
        pkb: Index to update
        filename: Name of the file inside the PKB directory
    """
    removed = pkb.cleanup_orphan_vectors()
    if removed:
        logger.info(f"Removed {removed} orphaned vectors")
    chunk_count = pkb.reindex_file(filename)
    logger.info(f"Reindexed {filename}: {chunk_count} chunks")


def search(pkb: PKB, query: str, top_k: int = 10) -> None:
    """Print the best matches for a query."""
    results = pkb.search(query, top_k=top_k)
    if not results:
        print(f"No results found for: {query}")
        return

    for i, r in enumerate(results, 1):
        print(f"{i}. [{r.score:.3f}] {r.file}:{r.start.line}:{r.start.col}")
        if r.heading_context:
            print(f"   {r.heading_context}")
        text = r.text[:200].replace("\n", " ")
        if len(r.text) > 200:
            text += "..."
        print(f"   {text}")
        print(f"")


def stats(pkb: PKB) -> None:
    """Show the size of the index."""
    s = pkb.get_stats()
    print(f"PKB: {pkb.root}")
    print(f"  Database: {pkb.config.db_path}")
    print(f"  Model: {pkb.space.model_name} ({pkb.space.dimension}D, v{pkb.space.embedding_version})")
    print(f"")
    print(f"Contents:")
    print(f"  Files: {s.total_files}")
    print(f"  Chunks: {s.total_chunks}")


def serve(pkb: PKB, transport: str = "stdio") -> None:
    """Keep the index in sync and serve it over MCP.

    Args:
        pkb: Index to serve
        transport: Transport protocol (stdio or sse)
    """
    # Import here to avoid loading MCP unless needed
    from pkb.server import create_mcp_server

    manager = PKBManager(pkb)
    manager.start()
    logger.info(f"Serving {pkb.root} via {transport}")
    mcp = create_mcp_server(manager)
    try:
        mcp.run(transport=cast(Literal["stdio", "sse", "streamable-http"], transport))
    finally:
        manager.stop()


def monitor(pkb: PKB) -> None:
    """Launch the monitor TUI."""
    from pkb.monitor import run_monitor

    run_monitor(PKBManager(pkb))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pkb",
        description="PKB - semantic search over your markdown notes",
    )
    parser.add_argument(
        "-p",
        "--path",
        default=os.environ.get("PKB_PATH", str(DEFAULT_PKB_PATH)),
        help="Notes directory (default: $PKB_PATH or ~/pkb)",
    )
    parser.add_argument(
        "-m",
        "--model",
        default=None,
        help="sentence-transformers model (default: all-MiniLM-L6-v2)",
    )
    parser.add_argument(
        "--context",
        action="store_true",
        help="Situate each chunk with an LLM-generated context before embedding",
    )
    parser.add_argument(
        "--context-model",
        default=None,
        help="Model used for --context (default: claude-haiku-4-5)",
    )
    parser.add_argument("--max-chunk-size", type=int, default=2000)
    parser.add_argument("--chunk-overlap", type=int, default=200)
    parser.add_argument(
        "--full-reembed",
        action="store_true",
        help="Re-embed every chunk of a changed file, not just the changed ones",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("sync", help="Index new and changed files, drop deleted ones")

    reindex_parser = subparsers.add_parser("reindex", help="Force a re-embed of one file")
    reindex_parser.add_argument("filename", help="File name inside the notes directory")

    search_parser = subparsers.add_parser("search", help="Semantic search")
    search_parser.add_argument("query", help="What you're looking for")
    search_parser.add_argument(
        "-k",
        "--top-k",
        type=int,
        default=10,
        help="Number of results (default: 10)",
    )

    subparsers.add_parser("stats", help="Show index statistics")

    serve_parser = subparsers.add_parser("serve", help="Start MCP server")
    serve_parser.add_argument(
        "--transport",
        choices=["stdio", "sse"],
        default="stdio",
        help="Transport protocol (default: stdio)",
    )

    subparsers.add_parser("monitor", help="Watch the index in a TUI")
    return parser


def main(argv: Optional[list[str]] = None) -> None:
    """Main CLI entry point."""
    args = build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        pkb = build_pkb(args)
        if args.command == "sync":
            sync(pkb)
        elif args.command == "reindex":
            reindex(pkb, args.filename)
        elif args.command == "search":
            search(pkb, args.query, args.top_k)
        elif args.command == "stats":
            stats(pkb)
        elif args.command == "serve":
            serve(pkb, args.transport)
        elif args.command == "monitor":
            monitor(pkb)
    except PKBError as e:
        logger.error(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
