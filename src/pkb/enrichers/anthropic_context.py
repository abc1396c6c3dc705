"""Chunk context generation via the Anthropic Messages API."""

import logging
import os

import requests

logger = logging.getLogger(__name__)

# Sent as the system prompt; identical for every chunk of a document.
DOCUMENT_PROMPT = """<document>
{document}
</document>

Use the document to provide context to improve search retrieval of chunks from this document.

<example>
Chunk:
# AWS S3 Configuration Guide
Set the ACL to private to restrict access. It prevents unauthorized users from reading or writing objects.

output: This chunk describes AWS S3 bucket access control configuration. ACL refers to Access Control List.
</example>

<example>
Chunk:
# Survey results
The customer mentioned that the SPA was a bit slow to load.

output: The customer here is "Company A". SPA stands for "Single page app". The survey is the 2025 user engagement survey.
</example>

<example>
Chunk:
# Troubleshooting
Check the logs using kubectl logs. If OOMKilled, increase the memory limit in the resource spec.

output: Troubleshooting steps for Kubernetes pods in CrashLoopBackOff state. OOMKilled stands for "out of memory killed" and refers to the pod being terminated due to exceeding its memory limit. The resource spec refers to the pod's resource requests and limits configuration in the deployment manifest.
</example>"""

CHUNK_PROMPT = """Here is the chunk we want to situate within the whole document.
<chunk>
{chunk}
</chunk>
Answer only with the output and nothing else."""


class AnthropicContextGenerator:
    """Context generator backed by a small Claude model.

    Errors from the API propagate as `requests` exceptions; the indexer
    turns them into EnrichmentError.
    """

    ANTHROPIC_VERSION = "2023-06-01"
    DEFAULT_MODEL = "claude-haiku-4-5"
    DEFAULT_BASE_URL = "https://api.anthropic.com/v1"

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        max_tokens: int = 300,
        timeout: float = 60.0,
    ):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY", "")
        self.model = model or self.DEFAULT_MODEL
        self.base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self.max_tokens = max_tokens
        self.timeout = timeout
        self._session = requests.Session()

    def _headers(self) -> dict:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.api_key,
            "anthropic-version": self.ANTHROPIC_VERSION,
        }

    def generate_context(self, document: str, chunk: str) -> str:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": DOCUMENT_PROMPT.format(document=document),
            "messages": [
                {"role": "user", "content": CHUNK_PROMPT.format(chunk=chunk)},
            ],
        }
        response = self._session.post(
            f"{self.base_url}/messages",
            headers=self._headers(),
            json=payload,
            timeout=self.timeout,
        )
        response.raise_for_status()
        data = response.json()

        usage = data.get("usage", {})
        logger.debug(
            f"Context usage: input={usage.get('input_tokens')} output={usage.get('output_tokens')}"
        )
        return "".join(
            block.get("text", "")
            for block in data.get("content", [])
            if block.get("type") == "text"
        ).strip()
