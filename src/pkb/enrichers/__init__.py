"""Context generators that situate chunks within their document."""

from pkb.enrichers.anthropic_context import AnthropicContextGenerator

__all__ = ["AnthropicContextGenerator"]
