"""
Pricing catalog synchronization.

Reconciles the local pricing catalog with a remote price feed so that,
after a successful run, the catalog holds exactly the feed's entries.

Sync Order:
1. Fetch and parse the feed - any failure aborts before writing
2. Plan inserts, updates and deletes against the current catalog
3. Apply the whole plan at once through the catalog store
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

import httpx

from .errors import FeedFetchFailure, ValidationFailure
from .pricing import ModelLimits, ModelPricing, PricingCatalogEntry

logger = logging.getLogger(__name__)

MODELS_DEV_API_URL = "https://models.dev/api.json"

CatalogKey = Tuple[str, str]


@dataclass
class ReconciliationPlan:
    """Writes needed to make the catalog match a feed."""
    inserts: List[PricingCatalogEntry] = field(default_factory=list)
    updates: List[PricingCatalogEntry] = field(default_factory=list)
    deletes: List[CatalogKey] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.inserts or self.updates or self.deletes)


@dataclass(frozen=True)
class SyncResult:
    """Counts of catalog writes made by a sync run."""
    insert_count: int
    update_count: int
    delete_count: int


@dataclass(frozen=True)
class PricingUpdateResult:
    """Outcome of fetching the feed and reconciling the catalog."""
    updated_models: int
    insert_count: int
    update_count: int
    delete_count: int


class CatalogStore(ABC):
    """Persistent catalog of model pricing keyed by (provider_id, model_id)."""

    @abstractmethod
    def list_entries(self) -> List[PricingCatalogEntry]:
        ...

    @abstractmethod
    def apply(self, plan: ReconciliationPlan) -> None:
        """Apply every write in the plan, or none of them."""


def _number(value: Any, default: Optional[float] = 0) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return default
    return value


def _name(value: Any, fallback: str) -> str:
    if isinstance(value, str) and value:
        return value
    return fallback


def parse_model_pricing(
    provider_id: str,
    provider_name: str,
    model_id: str,
    model: Mapping[str, Any],
    fetched_at: Optional[datetime] = None,
) -> PricingCatalogEntry:
    """Parse a single model of the feed into a catalog entry.

    Missing input/output rates and limits become 0; missing optional
    rates stay None; a missing or non-string name falls back to the model id.
    """
    cost = model.get("cost")
    if not isinstance(cost, Mapping):
        cost = {}
    limit = model.get("limit")
    if not isinstance(limit, Mapping):
        limit = {}

    return PricingCatalogEntry(
        provider_id=provider_id,
        provider_name=provider_name,
        model_id=model_id,
        model_name=_name(model.get("name"), model_id),
        pricing=ModelPricing(
            input=_number(cost.get("input")),
            output=_number(cost.get("output")),
            reasoning=_number(cost.get("reasoning"), default=None),
            cache_read=_number(cost.get("cache_read"), default=None),
            cache_write=_number(cost.get("cache_write"), default=None),
        ),
        limits=ModelLimits(
            context=_number(limit.get("context")),
            output=_number(limit.get("output")),
        ),
        last_updated=fetched_at or datetime.now(),
    )


def parse_feed(data: Any, fetched_at: Optional[datetime] = None) -> List[PricingCatalogEntry]:
    """Parse a models.dev style feed into catalog entries.

    Providers or models that are not mappings are skipped.

    Args:
        data: Feed mapping of provider id to {name, models}
        fetched_at: Timestamp stamped on every entry (defaults to now)

    Returns:
        Catalog entries in feed order

    Raises:
        FeedFetchFailure: If the feed is not a mapping
    """
    if not isinstance(data, Mapping):
        raise FeedFetchFailure("Pricing feed must be a JSON object keyed by provider")

    fetched_at = fetched_at or datetime.now()
    entries = []
    for provider_id, provider in data.items():
        if not isinstance(provider, Mapping) or not isinstance(provider.get("models"), Mapping):
            continue
        provider_name = _name(provider.get("name"), provider_id)
        for model_id, model in provider["models"].items():
            if not isinstance(model, Mapping):
                continue
            try:
                entries.append(parse_model_pricing(
                    provider_id, provider_name, model_id, model, fetched_at
                ))
            except ValidationFailure as e:
                raise FeedFetchFailure(
                    f"Invalid pricing for {provider_id}/{model_id} in feed: {e}"
                ) from e
    return entries


def has_pricing_changed(existing: PricingCatalogEntry, new: PricingCatalogEntry) -> bool:
    """Check whether any tracked field differs between two entries.

    Rates, limits and display names are tracked; last_updated is not.
    """
    return (
        existing.pricing != new.pricing
        or existing.limits != new.limits
        or existing.model_name != new.model_name
        or existing.provider_name != new.provider_name
    )


class PricingSynchronizer:
    """Full reconciliation of a catalog store against feed entries."""

    def __init__(self, store: CatalogStore):
        self.store = store

    def plan(self, entries: List[PricingCatalogEntry]) -> ReconciliationPlan:
        """Compute the writes that make the catalog equal the feed.

        When the feed repeats a key, the last occurrence wins.
        """
        existing: Dict[CatalogKey, PricingCatalogEntry] = {
            entry.key: entry for entry in self.store.list_entries()
        }
        latest: Dict[CatalogKey, PricingCatalogEntry] = {}
        for entry in entries:
            latest[entry.key] = entry

        plan = ReconciliationPlan()
        for key, entry in latest.items():
            current = existing.get(key)
            if current is None:
                plan.inserts.append(entry)
            elif has_pricing_changed(current, entry):
                plan.updates.append(entry)

        plan.deletes = [key for key in existing if key not in latest]
        return plan

    def sync(self, entries: List[PricingCatalogEntry]) -> SyncResult:
        """Reconcile the catalog with the given feed entries.

        Returns:
            SyncResult with insert, update and delete counts
        """
        plan = self.plan(entries)
        if not plan.is_empty:
            self.store.apply(plan)

        result = SyncResult(
            insert_count=len(plan.inserts),
            update_count=len(plan.updates),
            delete_count=len(plan.deletes),
        )
        logger.info(
            "Pricing sync finished: %d inserted, %d updated, %d deleted",
            result.insert_count, result.update_count, result.delete_count,
        )
        return result


def fetch_feed(
    url: str = MODELS_DEV_API_URL,
    api_key: Optional[str] = None,
    timeout: float = 20.0,
    client: Optional[httpx.Client] = None,
) -> Any:
    """Download the raw pricing feed.

    Args:
        url: Feed URL
        api_key: Optional bearer token for authenticated access
        timeout: Request timeout in seconds
        client: Optional preconfigured httpx client

    Returns:
        Decoded JSON payload

    Raises:
        FeedFetchFailure: On transport errors, non-2xx status or invalid JSON
    """
    headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
    try:
        if client is not None:
            response = client.get(url, headers=headers, timeout=timeout)
        else:
            with httpx.Client(timeout=timeout, follow_redirects=True) as owned_client:
                response = owned_client.get(url, headers=headers)
        response.raise_for_status()
        return response.json()
    except httpx.HTTPError as e:
        logger.warning("Pricing feed fetch failed for %s: %s", url, e)
        raise FeedFetchFailure(f"Failed to fetch pricing feed: {e}") from e
    except ValueError as e:
        logger.warning("Pricing feed at %s is not valid JSON: %s", url, e)
        raise FeedFetchFailure(f"Pricing feed is not valid JSON: {e}") from e


def update_pricing_data(
    store: CatalogStore,
    url: str = MODELS_DEV_API_URL,
    api_key: Optional[str] = None,
    timeout: float = 20.0,
    client: Optional[httpx.Client] = None,
) -> PricingUpdateResult:
    """Fetch the remote feed and reconcile the catalog with it.

    Raises:
        FeedFetchFailure: If the feed cannot be fetched or parsed; nothing is written
    """
    entries = parse_feed(fetch_feed(url, api_key=api_key, timeout=timeout, client=client))
    result = PricingSynchronizer(store).sync(entries)
    return PricingUpdateResult(
        updated_models=len(entries),
        insert_count=result.insert_count,
        update_count=result.update_count,
        delete_count=result.delete_count,
    )
