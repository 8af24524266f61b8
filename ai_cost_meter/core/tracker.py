"""
Cost tracking orchestration.

Prices a usage event, applies markup and records the result.

Tracking Order:
1. Look up pricing - missing pricing raises before anything is written
2. Calculate raw cost
3. Resolve markup and calculate the user-facing cost
4. Append the record to the cost ledger
"""

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Union

from .calculator import CalculatedToolCost, ToolCost, ToolCostForUser, compute
from .errors import PricingNotFound
from .markup import MarkupResolver
from .pricing import AICost, Number, calculate_costs, calculate_user_costs
from .schema import Usage, parse_usage
from .token_counter import TokenUsage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AddAICostResult:
    costs: AICost
    user_costs: AICost
    record_id: int


@dataclass(frozen=True)
class AddToolCostResult:
    cost: ToolCost
    cost_for_user: ToolCostForUser
    record_id: int


class CostTracker:
    """Prices and records AI model and tool usage.

    Recording is at most once per call; callers must not replay an event
    they have already tracked.
    """

    def __init__(self, pricing_repository, cost_repository, resolver: Optional[MarkupResolver] = None):
        """Initialize the tracker.

        Args:
            pricing_repository: Source of model and tool pricing
            cost_repository: Ledger the costs are appended to
            resolver: Markup resolver; without one every multiplier is 0
        """
        self.pricing_repository = pricing_repository
        self.cost_repository = cost_repository
        self.resolver = resolver or MarkupResolver()

    def add_ai_cost(
        self,
        message_id: str,
        thread_id: str,
        provider_id: str,
        model_id: str,
        usage: Union[TokenUsage, Mapping[str, Any]],
        user_id: Optional[str] = None,
        markup_multiplier: Optional[Number] = None,
    ) -> AddAICostResult:
        """Price and record the token usage of one model request.

        Args:
            message_id: Message the request belongs to
            thread_id: Conversation thread identifier
            provider_id: Provider of the model
            model_id: Model identifier in the pricing catalog
            usage: Token usage, as TokenUsage or its dictionary form
            user_id: Optional user the cost is attributed to
            markup_multiplier: Explicit multiplier overriding markup rules

        Returns:
            AddAICostResult with raw costs, user costs and the record id

        Raises:
            PricingNotFound: If the catalog has no entry for the model
        """
        if not isinstance(usage, TokenUsage):
            usage = TokenUsage.from_dict(usage)

        entry = self.pricing_repository.get_pricing(provider_id, model_id)
        if entry is None:
            logger.warning("No catalog pricing for %s/%s", provider_id, model_id)
            raise PricingNotFound(provider_id, model_id)

        costs = calculate_costs(usage, entry.pricing)
        multiplier = self.resolver.resolve(provider_id, model_id=model_id, override=markup_multiplier)
        if multiplier == 0:
            user_costs = AICost.zero()
        else:
            user_costs = calculate_user_costs(costs, multiplier)

        record_id = self.cost_repository.insert_ai_cost(
            message_id=message_id,
            thread_id=thread_id,
            provider_id=provider_id,
            model_id=model_id,
            usage=usage,
            cost=costs,
            cost_for_user=user_costs,
            user_id=user_id,
        )
        logger.debug(
            "Recorded AI cost %s for %s/%s (user cost %s)",
            costs.total_cost, provider_id, model_id, user_costs.total_cost,
        )
        return AddAICostResult(costs=costs, user_costs=user_costs, record_id=record_id)

    def add_tool_cost(
        self,
        message_id: str,
        thread_id: str,
        provider_id: str,
        tool_id: str,
        usage: Union[Usage, Mapping[str, Any]],
        user_id: Optional[str] = None,
        markup_multiplier: Optional[Number] = None,
    ) -> AddToolCostResult:
        """Price and record one tool usage.

        Raises:
            PricingNotFound: If no tool, provider default or model pricing applies
            KindMismatch: If the usage kind differs from the pricing kind
        """
        if isinstance(usage, Mapping):
            usage = parse_usage(usage)

        entry = self.pricing_repository.get_tool_pricing(provider_id, tool_id)
        if entry is None:
            logger.warning("No tool pricing for %s/%s", provider_id, tool_id)
            raise PricingNotFound(provider_id, tool_id)

        multiplier = self.resolver.resolve(provider_id, tool_id=tool_id, override=markup_multiplier)
        result: CalculatedToolCost = compute(usage, entry.pricing, multiplier)

        record_id = self.cost_repository.insert_tool_cost(
            message_id=message_id,
            thread_id=thread_id,
            provider_id=provider_id,
            tool_id=tool_id,
            usage=usage.to_dict(),
            cost=result.cost.to_dict(),
            cost_for_user=result.cost_for_user.to_dict(),
            user_id=user_id,
        )
        logger.debug(
            "Recorded tool cost %s %s for %s/%s",
            result.cost.amount, result.cost.currency, provider_id, tool_id,
        )
        return AddToolCostResult(
            cost=result.cost,
            cost_for_user=result.cost_for_user,
            record_id=record_id,
        )
