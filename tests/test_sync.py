"""
Unit tests for pricing catalog synchronization.

Tests feed parsing, reconciliation counts, idempotence, and fetch failures.
"""

import os
import tempfile
from datetime import datetime
from typing import List

import httpx
import pytest

from ai_cost_meter.core.errors import FeedFetchFailure
from ai_cost_meter.core.pricing import ModelLimits, ModelPricing, PricingCatalogEntry
from ai_cost_meter.core.sync import (
    CatalogStore,
    PricingSynchronizer,
    ReconciliationPlan,
    fetch_feed,
    has_pricing_changed,
    parse_feed,
    update_pricing_data,
)
from ai_cost_meter.storage.db import initialize_schema
from ai_cost_meter.storage.repository import PricingRepository

FEED = {
    "openai": {
        "name": "OpenAI",
        "models": {
            "gpt-4o": {
                "name": "GPT-4o",
                "cost": {"input": 2.5, "output": 10, "cache_read": 1.25},
                "limit": {"context": 128000, "output": 16384},
            },
            "o3": {
                "name": "o3",
                "cost": {"input": 2, "output": 8, "reasoning": 8},
                "limit": {"context": 200000, "output": 100000},
            },
        },
    },
    "anthropic": {
        "name": "Anthropic",
        "models": {
            "claude-sonnet-4": {
                "cost": {"input": 3, "output": 15, "cache_read": 0.3, "cache_write": 3.75},
                "limit": {"context": 200000, "output": 64000},
            },
        },
    },
}


def _entry(provider_id: str, model_id: str, input_cost: float = 1.0) -> PricingCatalogEntry:
    return PricingCatalogEntry(
        provider_id=provider_id,
        provider_name=provider_id.title(),
        model_id=model_id,
        model_name=model_id,
        pricing=ModelPricing(input=input_cost, output=2.0),
        limits=ModelLimits(context=1000, output=100),
        last_updated=datetime(2025, 1, 1),
    )


class InMemoryCatalog(CatalogStore):
    """Catalog store backed by a dict, recording applied plans."""

    def __init__(self, entries: List[PricingCatalogEntry] = ()):
        self.entries = {entry.key: entry for entry in entries}
        self.applied: List[ReconciliationPlan] = []

    def list_entries(self) -> List[PricingCatalogEntry]:
        return list(self.entries.values())

    def apply(self, plan: ReconciliationPlan) -> None:
        self.applied.append(plan)
        for entry in plan.inserts + plan.updates:
            self.entries[entry.key] = entry
        for key in plan.deletes:
            del self.entries[key]


class FailingCatalog(InMemoryCatalog):
    """Catalog store whose writes always fail."""

    def apply(self, plan: ReconciliationPlan) -> None:
        raise RuntimeError("disk full")


def _mock_client(handler) -> httpx.Client:
    return httpx.Client(transport=httpx.MockTransport(handler))


class TestParseFeed:
    """Test parsing the remote feed into catalog entries."""

    def test_parse_entries(self):
        """Verify every model becomes one entry with its rates and limits."""
        entries = parse_feed(FEED)
        assert [e.key for e in entries] == [
            ("openai", "gpt-4o"),
            ("openai", "o3"),
            ("anthropic", "claude-sonnet-4"),
        ]
        gpt = entries[0]
        assert gpt.provider_name == "OpenAI"
        assert gpt.model_name == "GPT-4o"
        assert gpt.pricing == ModelPricing(input=2.5, output=10, cache_read=1.25)
        assert gpt.limits == ModelLimits(context=128000, output=16384)

    def test_missing_fields_default(self):
        """Verify missing names, costs and limits get defaults."""
        entries = parse_feed({"acme": {"models": {"m1": {}}}})
        assert entries[0].provider_name == "acme"
        assert entries[0].model_name == "m1"
        assert entries[0].pricing == ModelPricing(input=0, output=0)
        assert entries[0].limits == ModelLimits(context=0, output=0)

    def test_malformed_providers_skipped(self):
        """Verify providers without a models mapping are skipped."""
        entries = parse_feed({"broken": "nope", "empty": {"name": "Empty"}, **FEED})
        assert len(entries) == 3

    def test_shared_timestamp(self):
        """Verify every entry carries the fetch timestamp."""
        fetched_at = datetime(2025, 6, 1, 12, 0)
        assert {e.last_updated for e in parse_feed(FEED, fetched_at)} == {fetched_at}

    def test_not_a_mapping(self):
        """Verify a non-object feed is a fetch failure."""
        with pytest.raises(FeedFetchFailure):
            parse_feed(["openai"])

    def test_negative_rate_is_feed_failure(self):
        """Verify invalid rates abort the whole feed."""
        feed = {"acme": {"models": {"m1": {"cost": {"input": -1, "output": 1}}}}}
        with pytest.raises(FeedFetchFailure, match="acme/m1"):
            parse_feed(feed)


class TestHasPricingChanged:
    """Test change detection between catalog entries."""

    def test_same_values(self):
        """Verify identical values are unchanged regardless of timestamp."""
        old = _entry("openai", "gpt-4o")
        new = PricingCatalogEntry(**{**old.__dict__, "last_updated": datetime(2026, 1, 1)})
        assert not has_pricing_changed(old, new)

    def test_rate_change(self):
        """Verify a rate change is detected."""
        assert has_pricing_changed(_entry("openai", "gpt-4o"), _entry("openai", "gpt-4o", 1.5))

    def test_optional_rate_added(self):
        """Verify adding an optional rate is a change."""
        old = _entry("openai", "gpt-4o")
        new = PricingCatalogEntry(**{
            **old.__dict__, "pricing": ModelPricing(input=1.0, output=2.0, cache_read=0.5)
        })
        assert has_pricing_changed(old, new)

    def test_name_change(self):
        """Verify a display name change is detected."""
        old = _entry("openai", "gpt-4o")
        new = PricingCatalogEntry(**{**old.__dict__, "model_name": "GPT-4o"})
        assert has_pricing_changed(old, new)


class TestReconciliation:
    """Test full catalog reconciliation."""

    def test_counts(self):
        """Verify inserts N-K, updates C, deletes M-K."""
        # Catalog has M=4 keys, feed has N=3, K=2 shared, C=1 of them changed
        store = InMemoryCatalog([
            _entry("openai", "gpt-4o"),
            _entry("openai", "o3", 2.0),
            _entry("openai", "gpt-3.5"),
            _entry("cohere", "command"),
        ])
        feed = [
            _entry("openai", "gpt-4o"),
            _entry("openai", "o3", 2.5),
            _entry("anthropic", "claude-sonnet-4"),
        ]
        result = PricingSynchronizer(store).sync(feed)
        assert result.insert_count == 1
        assert result.update_count == 1
        assert result.delete_count == 2
        assert set(store.entries) == {e.key for e in feed}
        assert store.entries[("openai", "o3")].pricing.input == 2.5

    def test_rerun_is_idempotent(self):
        """Verify a second run with the same feed writes nothing."""
        store = InMemoryCatalog()
        synchronizer = PricingSynchronizer(store)
        entries = parse_feed(FEED)
        first = synchronizer.sync(entries)
        second = synchronizer.sync(entries)
        assert (first.insert_count, first.update_count, first.delete_count) == (3, 0, 0)
        assert (second.insert_count, second.update_count, second.delete_count) == (0, 0, 0)
        assert len(store.applied) == 1

    def test_empty_feed_clears_catalog(self):
        """Verify an empty feed deletes every entry."""
        store = InMemoryCatalog([_entry("openai", "gpt-4o"), _entry("openai", "o3")])
        result = PricingSynchronizer(store).sync([])
        assert result.delete_count == 2
        assert store.entries == {}

    def test_duplicate_feed_keys_last_wins(self):
        """Verify a repeated key counts once with its last values."""
        store = InMemoryCatalog()
        result = PricingSynchronizer(store).sync([
            _entry("openai", "gpt-4o", 1.0),
            _entry("openai", "gpt-4o", 3.0),
        ])
        assert result.insert_count == 1
        assert store.entries[("openai", "gpt-4o")].pricing.input == 3.0

    def test_failed_apply_propagates(self):
        """Verify a store failure is raised, not swallowed."""
        store = FailingCatalog([_entry("openai", "gpt-4o")])
        with pytest.raises(RuntimeError, match="disk full"):
            PricingSynchronizer(store).sync([])


class TestSqliteReconciliation:
    """Test reconciliation against the SQLite catalog."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)
        self.repository = PricingRepository(self.db_path)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_sync_then_resync(self):
        """Verify the catalog equals the feed and a rerun changes nothing."""
        synchronizer = PricingSynchronizer(self.repository)
        synchronizer.sync(parse_feed(FEED))
        assert {e.key for e in self.repository.list_entries()} == {
            ("openai", "gpt-4o"), ("openai", "o3"), ("anthropic", "claude-sonnet-4"),
        }

        result = synchronizer.sync(parse_feed(FEED))
        assert (result.insert_count, result.update_count, result.delete_count) == (0, 0, 0)

    def test_non_string_names_resync_unchanged(self):
        """Verify non-string names fall back to ids and a rerun changes nothing."""
        feed = {"p": {"name": 7, "models": {"m": {"name": 5, "cost": {"input": 1, "output": 2}}}}}
        synchronizer = PricingSynchronizer(self.repository)

        first = synchronizer.sync(parse_feed(feed))
        assert first.insert_count == 1
        entry = self.repository.get_pricing("p", "m")
        assert entry.model_name == "m"
        assert entry.provider_name == "p"

        second = synchronizer.sync(parse_feed(feed))
        assert (second.insert_count, second.update_count, second.delete_count) == (0, 0, 0)

    def test_changed_feed(self):
        """Verify updates and deletes reach the database."""
        synchronizer = PricingSynchronizer(self.repository)
        synchronizer.sync(parse_feed(FEED))

        changed = {
            "openai": {
                "name": "OpenAI",
                "models": {
                    "gpt-4o": {
                        "name": "GPT-4o",
                        "cost": {"input": 2.0, "output": 8},
                        "limit": {"context": 128000, "output": 16384},
                    },
                },
            },
        }
        result = synchronizer.sync(parse_feed(changed))
        assert (result.insert_count, result.update_count, result.delete_count) == (0, 1, 2)
        entry = self.repository.get_pricing("openai", "gpt-4o")
        assert entry.pricing == ModelPricing(input=2.0, output=8)


class TestFetchFeed:
    """Test fetching the feed over HTTP."""

    def setup_method(self):
        """Set up test environment."""
        self.temp_dir = tempfile.mkdtemp()
        self.db_path = os.path.join(self.temp_dir, "test.db")
        initialize_schema(self.db_path)

    def teardown_method(self):
        """Clean up test environment."""
        import shutil
        shutil.rmtree(self.temp_dir, ignore_errors=True)

    def test_fetch_success_with_api_key(self):
        """Verify the bearer token is sent and JSON decoded."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=FEED)

        data = fetch_feed("https://feed.test/api.json", api_key="secret", client=_mock_client(handler))
        assert data == FEED
        assert seen["auth"] == "Bearer secret"

    def test_http_error_status(self):
        """Verify non-2xx responses are fetch failures."""
        client = _mock_client(lambda request: httpx.Response(503))
        with pytest.raises(FeedFetchFailure, match="Failed to fetch"):
            fetch_feed("https://feed.test/api.json", client=client)

    def test_transport_error(self):
        """Verify connection errors are fetch failures."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(FeedFetchFailure):
            fetch_feed("https://feed.test/api.json", client=_mock_client(handler))

    def test_invalid_json(self):
        """Verify a non-JSON body is a fetch failure."""
        client = _mock_client(lambda request: httpx.Response(200, text="<html>"))
        with pytest.raises(FeedFetchFailure, match="not valid JSON"):
            fetch_feed("https://feed.test/api.json", client=client)

    def test_update_pricing_data(self):
        """Verify fetch and reconcile report the model count."""
        repository = PricingRepository(self.db_path)
        client = _mock_client(lambda request: httpx.Response(200, json=FEED))
        result = update_pricing_data(repository, "https://feed.test/api.json", client=client)
        assert result.updated_models == 3
        assert result.insert_count == 3
        assert len(repository.list_entries()) == 3

    def test_failed_fetch_leaves_catalog(self):
        """Verify a failed fetch writes nothing."""
        repository = PricingRepository(self.db_path)
        ok = _mock_client(lambda request: httpx.Response(200, json=FEED))
        update_pricing_data(repository, "https://feed.test/api.json", client=ok)

        failing = _mock_client(lambda request: httpx.Response(500))
        with pytest.raises(FeedFetchFailure):
            update_pricing_data(repository, "https://feed.test/api.json", client=failing)
        assert len(repository.list_entries()) == 3
