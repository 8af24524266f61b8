"""
Metered OpenAI client wrapper.

Records the cost of each chat completion without modifying behavior.
"""

from typing import Any, Dict, List, Optional

from openai import OpenAI

from ..core.token_counter import TokenUsage
from ..core.tracker import CostTracker


def _detail_count(details: Any, name: str) -> Optional[int]:
    if details is None:
        return None
    value = getattr(details, name, None)
    return value if isinstance(value, int) else None


class MeteredOpenAI:
    """OpenAI client wrapper that records AI costs per completion.

    All failures are loud to ensure no silent data loss.
    """

    def __init__(
        self,
        model: str,
        thread_id: str,
        tracker: CostTracker,
        provider_id: str = "openai",
        user_id: Optional[str] = None,
    ):
        """Initialize metered OpenAI client.

        Args:
            model: OpenAI model name, as listed in the pricing catalog (required)
            thread_id: Conversation thread the costs belong to (required)
            tracker: Cost tracker used to price and record usage
            provider_id: Catalog provider of the model
            user_id: Optional user the costs are attributed to

        Raises:
            ValueError: If model or thread_id is missing/empty
        """
        if not model or not model.strip():
            raise ValueError("model is required and cannot be empty")
        if not thread_id or not thread_id.strip():
            raise ValueError("thread_id is required and cannot be empty")

        self.model = model
        self.thread_id = thread_id
        self.tracker = tracker
        self.provider_id = provider_id
        self.user_id = user_id
        self.client = OpenAI()

    def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        markup_multiplier: Optional[float] = None,
        **kwargs: Any
    ) -> Any:
        """Create chat completion and record its cost.

        Args:
            messages: List of message dictionaries (required)
            temperature: Sampling temperature (optional)
            max_tokens: Maximum tokens to generate (optional)
            markup_multiplier: Explicit markup for this call (optional)
            **kwargs: Additional OpenAI parameters

        Returns:
            OpenAI chat completion response, unchanged

        Raises:
            ValueError: If messages is empty or the response has no usage
            PricingNotFound: If the model is missing from the pricing catalog
            OpenAI API errors: Propagated without modification
        """
        if not messages:
            raise ValueError("messages is required and cannot be empty")

        response = self.client.chat.completions.create(
            model=self.model,
            messages=messages,
            temperature=temperature,
            max_tokens=max_tokens,
            **kwargs
        )

        usage = response.usage
        if not usage:
            raise ValueError("OpenAI response missing usage information")

        token_usage = TokenUsage(
            prompt_tokens=usage.prompt_tokens,
            completion_tokens=usage.completion_tokens,
            total_tokens=usage.total_tokens,
            reasoning_tokens=_detail_count(
                getattr(usage, "completion_tokens_details", None), "reasoning_tokens"
            ),
            cached_input_tokens=_detail_count(
                getattr(usage, "prompt_tokens_details", None), "cached_tokens"
            ),
        )

        self.tracker.add_ai_cost(
            message_id=response.id,
            thread_id=self.thread_id,
            provider_id=self.provider_id,
            model_id=self.model,
            usage=token_usage,
            user_id=self.user_id,
            markup_multiplier=markup_multiplier,
        )

        return response
