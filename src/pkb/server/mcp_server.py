"""FastMCP server implementation for PKB."""

import logging

from mcp.server.fastmcp import FastMCP

from pkb.errors import PKBError
from pkb.manager import PKBManager

logger = logging.getLogger(__name__)

SNIPPET_LENGTH = 300


def create_mcp_server(manager: PKBManager) -> FastMCP:
    """Create an MCP server for one PKB directory.

    The manager keeps the index in sync while the server runs; call
    `manager.start()` before `mcp.run()`.

    Args:
        manager: Manager wrapping the PKB index to serve

    Returns:
        Configured FastMCP server instance
    """
    mcp = FastMCP(
        name="pkb",
    )
    pkb = manager.pkb

    @mcp.tool()
    def search_pkb(query: str, top_k: int = 10) -> str:
        """Semantic search across your personal knowledge base.

        Finds notes by meaning, not just keyword. Each hit shows the file,
        the line it starts on and the headings it sits under.

        Args:
            query: Natural language description of what you're looking for
            top_k: Maximum number of results to return (default: 10)

        Returns:
            Ranked list of matching chunks with similarity scores
        """
        try:
            results = pkb.search(query, top_k=top_k)
        except PKBError as e:
            logger.error(f"search_pkb failed: {e}")
            return f"Error: {e}"

        if not results:
            return f"No results found for: {query}"

        lines = []
        for i, r in enumerate(results, 1):
            lines.append(f"{i}. [{r.score:.3f}] {r.file}:{r.start.line}-{r.end.line}")
            if r.heading_context:
                lines.append(f"   {r.heading_context}")
            text = r.text[:SNIPPET_LENGTH]
            if len(r.text) > SNIPPET_LENGTH:
                text += "..."
            lines.append(f"   {text}")
            lines.append("")

        return "\n".join(lines)

    @mcp.tool()
    def pkb_stats() -> str:
        """Show how many files and chunks are indexed and what is pending.

        Returns:
            Index size, queue depth and recent indexing activity
        """
        try:
            stats = pkb.get_stats()
        except PKBError as e:
            return f"Error: {e}"

        lines = [
            f"PKB: {pkb.root}",
            f"  Files: {stats.total_files}",
            f"  Chunks: {stats.total_chunks}",
            f"  Queued: {stats.queue_depth}",
        ]
        if stats.recent_activity:
            lines.append("")
            lines.append("Recent activity:")
            for entry in reversed(stats.recent_activity):
                lines.append(
                    f"  {entry.timestamp:%H:%M:%S}  {entry.file} ({entry.chunk_count} chunks)"
                )
        return "\n".join(lines)

    return mcp
