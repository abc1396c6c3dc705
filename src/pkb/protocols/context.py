"""Protocol for chunk context generators."""

from typing import Protocol, runtime_checkable


@runtime_checkable
class ContextGenerator(Protocol):
    """Produces a short string that situates a chunk within its document.

    The string is prepended to the chunk before embedding, so that e.g.
    acronyms or implicit subjects in the chunk become searchable.
    """

    def generate_context(self, document: str, chunk: str) -> str:
        ...
