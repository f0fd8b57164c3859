"""
brandforge/features/generation/client.py

HTTP client for the generative image model (Gemini generateContent REST API).

The client only transports: it builds the request body from ordered content
blocks and returns status plus parsed body. Classification of the outcome is
the invoker's job.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
import logging

import httpx

from brandforge.core.config import settings
from brandforge.models.generation import ContentBlock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProviderResponse:
    status_code: int
    body: Optional[Any]
    text: str


def build_payload(blocks: Sequence[ContentBlock]) -> Dict[str, Any]:
    """Map content blocks to generateContent parts, preserving order."""
    parts: List[Dict[str, Any]] = []
    for block in blocks:
        if block.kind == "image":
            parts.append({"inlineData": {"mimeType": block.mime_type, "data": block.data}})
        else:
            parts.append({"text": block.text})
    return {
        "contents": [{"role": "user", "parts": parts}],
        "generationConfig": {"responseModalities": ["IMAGE", "TEXT"]},
    }


class ImageModelClient:
    """Async client for `{base}/models/{model}:generateContent`."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.base_url = (base_url or settings.GEMINI_API_BASE).rstrip("/")
        self.model = model or settings.GEMINI_IMAGE_MODEL
        self.timeout = timeout if timeout is not None else settings.PROVIDER_TIMEOUT_SECONDS
        self.transport = transport

    @property
    def endpoint(self) -> str:
        return f"{self.base_url}/models/{self.model}:generateContent"

    async def generate(self, blocks: Sequence[ContentBlock]) -> ProviderResponse:
        """
        Send one generateContent request.

        Raises:
            httpx.TransportError: Connection failures and timeouts
        """
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-goog-api-key"] = self.api_key

        async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
            response = await client.post(self.endpoint, json=build_payload(blocks), headers=headers)

        try:
            body = response.json()
        except ValueError:
            body = None
        return ProviderResponse(status_code=response.status_code, body=body, text=response.text)


def _is_image_mime(inline: Dict[str, Any]) -> bool:
    mime = inline.get("mimeType") or inline.get("mime_type") or ""
    return isinstance(mime, str) and mime.startswith("image/")


def extract_image(body: Any) -> Optional[Dict[str, Optional[str]]]:
    """
    Pull the first inline image (and any text) out of a generateContent body.

    Returns:
        {"mime_type", "data", "text"} or None when no image is present
    """
    if not isinstance(body, dict):
        return None
    candidates = body.get("candidates") or []
    if not candidates or not isinstance(candidates[0], dict):
        return None
    parts = (candidates[0].get("content") or {}).get("parts") or []

    image = None
    texts: List[str] = []
    for part in parts:
        if not isinstance(part, dict):
            continue
        inline = part.get("inlineData") or part.get("inline_data")
        if image is None and isinstance(inline, dict) and inline.get("data") and _is_image_mime(inline):
            image = inline
        elif isinstance(part.get("text"), str):
            texts.append(part["text"])

    if image is None:
        return None
    return {
        "mime_type": image.get("mimeType") or image.get("mime_type"),
        "data": image["data"],
        "text": " ".join(t.strip() for t in texts if t.strip()) or None,
    }
