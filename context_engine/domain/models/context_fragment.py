from typing import Any, Dict, FrozenSet, Tuple
from datetime import datetime, timezone
from uuid import uuid4
import hashlib
import re

from pydantic import BaseModel, ConfigDict, Field, computed_field

from .context_request import FragmentType

CHARS_PER_TOKEN = 4

_WHITESPACE = re.compile(r"\s+")


def estimate_tokens(text: str) -> int:
    """Rough token estimate, about four characters per token"""
    return (len(text) + CHARS_PER_TOKEN - 1) // CHARS_PER_TOKEN


def normalize_content(text: str) -> str:
    """Collapse whitespace so formatting differences do not defeat deduplication"""
    return _WHITESPACE.sub(" ", text).strip()


class ContextFragment(BaseModel):
    """One retrieved or synthesized unit of context"""
    model_config = ConfigDict(frozen=True)

    fragment_id: str = Field(default_factory=lambda: uuid4().hex)
    source: str = Field(description="Name of the collector that produced the fragment")
    fragment_type: FragmentType
    content: str
    aspects: FrozenSet[str] = Field(default_factory=frozenset, description="Aspect tags covered by the content")
    relevance_score: float = Field(ge=0.0, le=1.0)
    metadata: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @computed_field
    @property
    def estimated_tokens(self) -> int:
        return estimate_tokens(self.content)

    @property
    def dedup_key(self) -> Tuple[FragmentType, str]:
        """Identity used for deduplication: type plus normalized content hash"""

        digest = hashlib.sha256(normalize_content(self.content).encode("utf-8")).hexdigest()
        return (self.fragment_type, digest)

    def truncated(self, max_tokens: int) -> "ContextFragment":
        """Copy of this fragment cut down to at most max_tokens"""

        if self.estimated_tokens <= max_tokens:
            return self

        content = self.content[:max(max_tokens, 0) * CHARS_PER_TOKEN]
        metadata = dict(self.metadata)
        metadata["truncated"] = True
        metadata["original_tokens"] = self.estimated_tokens
        return self.model_copy(update={"content": content, "metadata": metadata})
