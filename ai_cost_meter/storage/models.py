"""
Data models for storage layer.

Defines persisted cost records and aggregate results.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from ai_cost_meter.core.pricing import AICost
from ai_cost_meter.core.token_counter import TokenUsage


@dataclass(frozen=True)
class AICostRecord:
    """Persisted cost of one AI model request.

    Records are written once per usage event and never modified.
    """
    id: int
    message_id: str
    thread_id: str
    provider_id: str
    model_id: str
    usage: TokenUsage
    cost: AICost
    cost_for_user: AICost
    created_at: datetime
    user_id: Optional[str] = None


@dataclass(frozen=True)
class ToolCostRecord:
    """Persisted cost of one tool usage.

    Usage and costs are kept in their external (camelCase) form.
    """
    id: int
    message_id: str
    thread_id: str
    provider_id: str
    tool_id: str
    usage: Dict[str, Any]
    cost: Dict[str, Any]
    cost_for_user: Dict[str, Any]
    created_at: datetime
    user_id: Optional[str] = None

    @property
    def amount(self) -> float:
        return self.cost["amount"]

    @property
    def user_amount(self) -> float:
        return self.cost_for_user["amount"]


@dataclass(frozen=True)
class CostTotals:
    """Aggregated raw and user-facing cost over a set of records."""
    count: int
    total_amount: float
    total_user_amount: float
