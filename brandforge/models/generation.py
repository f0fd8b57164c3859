"""
brandforge/models/generation.py

Models exchanged with the generative-model boundary.
"""

from datetime import datetime
from enum import Enum
from typing import List, Optional, Tuple
from pydantic import BaseModel, ConfigDict


class AttemptOutcome(str, Enum):
    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    TERMINAL_FAILURE = "terminal_failure"


class GenerationAttempt(BaseModel):
    """
    One call to the provider.

    Created by the invoker per try and kept only until the request resolves
    (attached to the result or to the raised error).
    """
    model_config = ConfigDict(frozen=True)

    attempt_number: int
    started_at: datetime
    outcome: AttemptOutcome
    reason: Optional[str] = None
    status_code: Optional[int] = None


class AssetRef(BaseModel):
    """Reference to a generated image. Inline images are carried as data URLs."""
    model_config = ConfigDict(frozen=True)

    url: str
    mime_type: str = "image/png"


class ContentBlock(BaseModel):
    """One item of the ordered message sent to the provider: an image or the instruction text."""
    model_config = ConfigDict(frozen=True)

    kind: str  # "image" | "text"
    text: Optional[str] = None
    mime_type: Optional[str] = None
    data: Optional[str] = None  # base64 payload without data-URL prefix

    @classmethod
    def image(cls, mime_type: str, data: str) -> "ContentBlock":
        return cls(kind="image", mime_type=mime_type, data=data)

    @classmethod
    def instruction(cls, text: str) -> "ContentBlock":
        return cls(kind="text", text=text)


class AdmittedAsset(BaseModel):
    model_config = ConfigDict(frozen=True)

    mime_type: str
    data: str
    source: str


class AdmittedAssets(BaseModel):
    """Output of asset admission: ordered brand-first, capped."""
    model_config = ConfigDict(frozen=True)

    assets: Tuple[AdmittedAsset, ...] = ()
    brand_count: int = 0
    user_count: int = 0
    dropped: int = 0  # failed the encoding check
    truncated: int = 0  # valid but beyond the cap


class GenerationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    asset: AssetRef
    attempts: List[GenerationAttempt]
    description: Optional[str] = None

    @property
    def attempts_used(self) -> int:
        return len(self.attempts)
