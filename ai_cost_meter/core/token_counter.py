"""
Token counting and usage tracking.

Manages token usage reported by AI model responses.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

from .errors import ValidationFailure


def _check_count(value: Any, path: str) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationFailure(path, "must be a number")
    if not math.isfinite(value) or value < 0:
        raise ValidationFailure(path, "must be >= 0")


@dataclass(frozen=True)
class TokenUsage:
    """Token usage data for an AI model request.

    Contains exact token counts as reported by the provider. When the
    provider does not report a total, it is derived from prompt and
    completion tokens.
    """
    prompt_tokens: int
    completion_tokens: int
    total_tokens: Optional[int] = None
    reasoning_tokens: Optional[int] = None
    cached_input_tokens: Optional[int] = None

    def __post_init__(self):
        """Validate counts and derive the total when it is missing."""
        _check_count(self.prompt_tokens, "usage.promptTokens")
        _check_count(self.completion_tokens, "usage.completionTokens")
        for name, value in (
            ("totalTokens", self.total_tokens),
            ("reasoningTokens", self.reasoning_tokens),
            ("cachedInputTokens", self.cached_input_tokens),
        ):
            if value is not None:
                _check_count(value, f"usage.{name}")
        if self.total_tokens is None:
            object.__setattr__(
                self, "total_tokens", self.prompt_tokens + self.completion_tokens
            )

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TokenUsage":
        """Build token usage from a camelCase payload.

        Raises:
            ValidationFailure: If required counts are missing or keys are unknown
        """
        allowed = {
            "promptTokens", "completionTokens", "totalTokens",
            "reasoningTokens", "cachedInputTokens",
        }
        unknown = set(data) - allowed
        if unknown:
            raise ValidationFailure("usage", f"unknown keys {sorted(unknown)}")
        for required in ("promptTokens", "completionTokens"):
            if required not in data:
                raise ValidationFailure(f"usage.{required}", "is required")
        return cls(
            prompt_tokens=data["promptTokens"],
            completion_tokens=data["completionTokens"],
            total_tokens=data.get("totalTokens"),
            reasoning_tokens=data.get("reasoningTokens"),
            cached_input_tokens=data.get("cachedInputTokens"),
        )

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {
            "promptTokens": self.prompt_tokens,
            "completionTokens": self.completion_tokens,
            "totalTokens": self.total_tokens,
        }
        if self.reasoning_tokens is not None:
            result["reasoningTokens"] = self.reasoning_tokens
        if self.cached_input_tokens is not None:
            result["cachedInputTokens"] = self.cached_input_tokens
        return result
