"""
Repository pattern for data access.

Handles persistence of the pricing catalog, tool pricing, markup rules
and recorded costs.
"""

import json
import sqlite3
from datetime import datetime
from typing import Any, Dict, List, Optional

from ai_cost_meter.core.markup import MarkupRule, MarkupScope, RuleSource
from ai_cost_meter.core.pricing import (
    AICost,
    ModelLimits,
    ModelPricing,
    PricingCatalogEntry,
    total,
)
from ai_cost_meter.core.schema import (
    ToolLimits,
    ToolPricingEntry,
    TokensPricing,
    parse_pricing,
)
from ai_cost_meter.core.sync import CatalogStore, ReconciliationPlan
from ai_cost_meter.core.token_counter import TokenUsage

from .db import DEFAULT_DB_PATH, get_connection, initialize_schema
from .models import AICostRecord, CostTotals, ToolCostRecord

__all__ = [
    "CostRepository",
    "MarkupRepository",
    "PricingRepository",
    "initialize_schema",
]

_AI_PRICING_COLUMNS = """
    provider_id, provider_name, model_id, model_name, input_cost, output_cost,
    reasoning_cost, cache_read_cost, cache_write_cost, context_limit,
    output_limit, last_updated
"""

_TOOL_PRICING_COLUMNS = """
    provider_id, provider_name, tool_id, tool_name, pricing, limits, last_updated
"""


def _now() -> str:
    return datetime.now().isoformat()


def _row_to_catalog_entry(row: sqlite3.Row) -> PricingCatalogEntry:
    return PricingCatalogEntry(
        provider_id=row[0],
        provider_name=row[1],
        model_id=row[2],
        model_name=row[3],
        pricing=ModelPricing(
            input=row[4],
            output=row[5],
            reasoning=row[6],
            cache_read=row[7],
            cache_write=row[8],
        ),
        limits=ModelLimits(context=row[9], output=row[10]),
        last_updated=datetime.fromisoformat(row[11]),
    )


def _catalog_values(entry: PricingCatalogEntry) -> tuple:
    pricing = entry.pricing
    return (
        entry.provider_name,
        entry.model_name,
        pricing.input,
        pricing.output,
        pricing.reasoning,
        pricing.cache_read,
        pricing.cache_write,
        entry.limits.context,
        entry.limits.output,
        entry.last_updated.isoformat(),
    )


def _row_to_tool_entry(row: sqlite3.Row) -> ToolPricingEntry:
    return ToolPricingEntry(
        provider_id=row[0],
        provider_name=row[1],
        tool_id=row[2],
        tool_name=row[3],
        pricing=parse_pricing(json.loads(row[4])),
        limits=ToolLimits.from_dict(json.loads(row[5])) if row[5] else None,
        last_updated=datetime.fromisoformat(row[6]),
    )


class PricingRepository(CatalogStore):
    """SQLite-backed model pricing catalog and tool pricing table."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        """Initialize the repository with a database path.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

    # -- model pricing catalog ---------------------------------------------

    def list_entries(self) -> List[PricingCatalogEntry]:
        """Return every catalog entry ordered by provider then model."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT {_AI_PRICING_COLUMNS} FROM ai_pricing ORDER BY provider_id, model_id"
            )
            return [_row_to_catalog_entry(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_pricing(self, provider_id: str, model_id: str) -> Optional[PricingCatalogEntry]:
        """Get catalog pricing for one model, or None if it is not listed."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT {_AI_PRICING_COLUMNS} FROM ai_pricing WHERE provider_id = ? AND model_id = ?",
                (provider_id, model_id),
            )
            row = cursor.fetchone()
            return _row_to_catalog_entry(row) if row else None
        finally:
            conn.close()

    def get_pricing_by_provider(self, provider_id: str) -> List[PricingCatalogEntry]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT {_AI_PRICING_COLUMNS} FROM ai_pricing WHERE provider_id = ? ORDER BY model_id",
                (provider_id,),
            )
            return [_row_to_catalog_entry(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def search_pricing_by_model_name(self, search: str) -> List[PricingCatalogEntry]:
        """Case-insensitive substring search over model names.

        Args:
            search: Text to look for in the model name

        Returns:
            Matching entries ordered by provider then model
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"""
                SELECT {_AI_PRICING_COLUMNS} FROM ai_pricing
                WHERE lower(model_name) LIKE ?
                ORDER BY provider_id, model_id
                """,
                (f"%{search.lower()}%",),
            )
            return [_row_to_catalog_entry(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def apply(self, plan: ReconciliationPlan) -> None:
        """Apply all inserts, updates and deletes of a plan in one transaction.

        On any failure the transaction is rolled back and the catalog is
        left exactly as it was.

        Args:
            plan: Writes computed by the synchronizer
        """
        if plan.is_empty:
            return

        now = _now()
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN TRANSACTION")
            for entry in plan.inserts:
                conn.execute(f"""
                    INSERT INTO ai_pricing ({_AI_PRICING_COLUMNS}, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    entry.provider_id,
                    entry.provider_name,
                    entry.model_id,
                    entry.model_name,
                    *_catalog_values(entry)[2:],
                    now,
                    now,
                ))
            for entry in plan.updates:
                conn.execute("""
                    UPDATE ai_pricing
                    SET provider_name = ?, model_name = ?, input_cost = ?, output_cost = ?,
                        reasoning_cost = ?, cache_read_cost = ?, cache_write_cost = ?,
                        context_limit = ?, output_limit = ?, last_updated = ?, updated_at = ?
                    WHERE provider_id = ? AND model_id = ?
                """, (*_catalog_values(entry), now, entry.provider_id, entry.model_id))
            for provider_id, model_id in plan.deletes:
                conn.execute(
                    "DELETE FROM ai_pricing WHERE provider_id = ? AND model_id = ?",
                    (provider_id, model_id),
                )
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    # -- tool pricing ------------------------------------------------------

    def upsert_tool_pricing(self, entry: ToolPricingEntry) -> None:
        """Insert or replace pricing for a (provider, tool) pair.

        An entry without tool_id sets the provider's default tool pricing.
        """
        now = _now()
        values = (
            entry.provider_name,
            entry.tool_name,
            json.dumps(entry.pricing.to_dict()),
            json.dumps(entry.limits.to_dict()) if entry.limits else None,
            entry.last_updated.isoformat(),
        )
        conn = get_connection(self.db_path)
        try:
            conn.execute("BEGIN IMMEDIATE")
            cursor = conn.execute(
                "SELECT id FROM tool_pricing WHERE provider_id = ? AND tool_id IS ?",
                (entry.provider_id, entry.tool_id),
            )
            row = cursor.fetchone()
            if row:
                conn.execute("""
                    UPDATE tool_pricing
                    SET provider_name = ?, tool_name = ?, pricing = ?, limits = ?,
                        last_updated = ?, updated_at = ?
                    WHERE id = ?
                """, (*values, now, row[0]))
            else:
                conn.execute(f"""
                    INSERT INTO tool_pricing ({_TOOL_PRICING_COLUMNS}, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (
                    entry.provider_id,
                    entry.provider_name,
                    entry.tool_id,
                    entry.tool_name,
                    *values[2:],
                    now,
                    now,
                ))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def delete_tool_pricing(self, provider_id: str, tool_id: Optional[str] = None) -> bool:
        """Delete tool pricing. Returns True if a row was removed."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                "DELETE FROM tool_pricing WHERE provider_id = ? AND tool_id IS ?",
                (provider_id, tool_id),
            )
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def get_tool_pricing(
        self, provider_id: str, tool_id: Optional[str] = None
    ) -> Optional[ToolPricingEntry]:
        """Find pricing for a tool.

        Lookup Order:
        1. Exact (provider_id, tool_id) match
        2. The provider's default tool pricing (no tool_id)
        3. Catalog model pricing with model_id == tool_id, as tokens pricing

        Step 3 is keyed on the tool id under the same provider, so an
        LLM-backed tool named after a catalog model is priced as that model.
        A catalog model whose id equals the provider id is not consulted.

        Args:
            provider_id: Provider identifier
            tool_id: Optional tool identifier

        Returns:
            The matching entry, or None when nothing applies
        """
        conn = get_connection(self.db_path)
        try:
            query = f"SELECT {_TOOL_PRICING_COLUMNS} FROM tool_pricing WHERE provider_id = ? AND tool_id IS ?"
            if tool_id:
                row = conn.execute(query, (provider_id, tool_id)).fetchone()
                if row:
                    return _row_to_tool_entry(row)

            row = conn.execute(query, (provider_id, None)).fetchone()
            if row:
                return _row_to_tool_entry(row)
        finally:
            conn.close()

        if tool_id:
            catalog_entry = self.get_pricing(provider_id, tool_id)
            if catalog_entry is not None:
                pricing = catalog_entry.pricing
                return ToolPricingEntry(
                    provider_id=provider_id,
                    provider_name=catalog_entry.provider_name,
                    tool_id=tool_id,
                    tool_name=catalog_entry.model_name,
                    pricing=TokensPricing(
                        input=pricing.input,
                        output=pricing.output,
                        currency="USD",
                        reasoning=pricing.reasoning,
                        cache_read=pricing.cache_read,
                        cache_write=pricing.cache_write,
                    ),
                    last_updated=catalog_entry.last_updated,
                )
        return None

    def get_all_tool_pricing(self) -> List[ToolPricingEntry]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT {_TOOL_PRICING_COLUMNS} FROM tool_pricing ORDER BY provider_id, tool_id"
            )
            return [_row_to_tool_entry(row) for row in cursor.fetchall()]
        finally:
            conn.close()

    def get_tool_pricing_by_provider(self, provider_id: str) -> List[ToolPricingEntry]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(
                f"SELECT {_TOOL_PRICING_COLUMNS} FROM tool_pricing WHERE provider_id = ? ORDER BY tool_id",
                (provider_id,),
            )
            return [_row_to_tool_entry(row) for row in cursor.fetchall()]
        finally:
            conn.close()


class MarkupRepository(RuleSource):
    """SQLite-backed markup rules, usable as a markup rule source."""

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def _find(self, scope: MarkupScope, provider_id: str,
              model_id: Optional[str] = None, tool_id: Optional[str] = None) -> Optional[MarkupRule]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT scope, provider_id, multiplier, model_id, tool_id
                FROM markup_multiplier
                WHERE scope = ? AND provider_id = ? AND model_id IS ? AND tool_id IS ?
                ORDER BY id LIMIT 1
            """, (scope.value, provider_id, model_id, tool_id))
            row = cursor.fetchone()
            return self._row_to_rule(row) if row else None
        finally:
            conn.close()

    @staticmethod
    def _row_to_rule(row: sqlite3.Row) -> MarkupRule:
        return MarkupRule(
            scope=MarkupScope(row[0]),
            provider_id=row[1],
            multiplier=row[2],
            model_id=row[3],
            tool_id=row[4],
        )

    def find_model_rule(self, provider_id: str, model_id: str) -> Optional[MarkupRule]:
        return self._find(MarkupScope.MODEL, provider_id, model_id=model_id)

    def find_tool_rule(self, provider_id: str, tool_id: str) -> Optional[MarkupRule]:
        return self._find(MarkupScope.TOOL, provider_id, tool_id=tool_id)

    def find_provider_rule(self, provider_id: str) -> Optional[MarkupRule]:
        return self._find(MarkupScope.PROVIDER, provider_id)

    def upsert_rule(self, rule: MarkupRule) -> None:
        """Create a rule or replace the multiplier of the rule with the same key."""
        now = _now()
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                SELECT id FROM markup_multiplier
                WHERE scope = ? AND provider_id = ? AND model_id IS ? AND tool_id IS ?
            """, (rule.scope.value, rule.provider_id, rule.model_id, rule.tool_id))
            row = cursor.fetchone()
            if row:
                conn.execute(
                    "UPDATE markup_multiplier SET multiplier = ?, updated_at = ? WHERE id = ?",
                    (rule.multiplier, now, row[0]),
                )
            else:
                conn.execute("""
                    INSERT INTO markup_multiplier
                    (scope, provider_id, model_id, tool_id, multiplier, created_at, updated_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                """, (
                    rule.scope.value,
                    rule.provider_id,
                    rule.model_id,
                    rule.tool_id,
                    rule.multiplier,
                    now,
                    now,
                ))
            conn.commit()
        finally:
            conn.close()

    def delete_rule(
        self,
        scope: MarkupScope,
        provider_id: str,
        model_id: Optional[str] = None,
        tool_id: Optional[str] = None,
    ) -> bool:
        """Delete the rule with the given key. Returns True if one was removed."""
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                DELETE FROM markup_multiplier
                WHERE scope = ? AND provider_id = ? AND model_id IS ? AND tool_id IS ?
            """, (scope.value, provider_id, model_id, tool_id))
            conn.commit()
            return cursor.rowcount > 0
        finally:
            conn.close()

    def list_rules(self, provider_id: Optional[str] = None) -> List[MarkupRule]:
        conn = get_connection(self.db_path)
        try:
            query = "SELECT scope, provider_id, multiplier, model_id, tool_id FROM markup_multiplier"
            params: List[Any] = []
            if provider_id:
                query += " WHERE provider_id = ?"
                params.append(provider_id)
            query += " ORDER BY provider_id, scope, model_id, tool_id"
            return [self._row_to_rule(row) for row in conn.execute(query, params).fetchall()]
        finally:
            conn.close()


class CostRepository:
    """Append-only ledger of AI and tool costs.

    Records are inserted once and never updated or deleted.
    """

    def __init__(self, db_path: str = DEFAULT_DB_PATH):
        self.db_path = db_path

    def insert_ai_cost(
        self,
        message_id: str,
        thread_id: str,
        provider_id: str,
        model_id: str,
        usage: TokenUsage,
        cost: AICost,
        cost_for_user: AICost,
        user_id: Optional[str] = None,
    ) -> int:
        """Record the cost of one AI model request.

        Returns:
            Row id of the new record
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                INSERT INTO ai_cost
                (message_id, user_id, thread_id, provider_id, model_id,
                 usage, cost, cost_for_user, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                message_id,
                user_id,
                thread_id,
                provider_id,
                model_id,
                json.dumps(usage.to_dict()),
                json.dumps(cost.to_dict()),
                json.dumps(cost_for_user.to_dict()),
                _now(),
            ))
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def insert_tool_cost(
        self,
        message_id: str,
        thread_id: str,
        provider_id: str,
        tool_id: str,
        usage: Dict[str, Any],
        cost: Dict[str, Any],
        cost_for_user: Dict[str, Any],
        user_id: Optional[str] = None,
    ) -> int:
        """Record the cost of one tool usage.

        Usage and costs are stored in their external dictionary form.

        Returns:
            Row id of the new record
        """
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute("""
                INSERT INTO tool_cost
                (message_id, user_id, thread_id, provider_id, tool_id,
                 usage, cost, cost_for_user, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                message_id,
                user_id,
                thread_id,
                provider_id,
                tool_id,
                json.dumps(usage),
                json.dumps(cost),
                json.dumps(cost_for_user),
                _now(),
            ))
            conn.commit()
            return cursor.lastrowid
        finally:
            conn.close()

    def _fetch_ai_costs(self, column: str, value: str) -> List[AICostRecord]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(f"""
                SELECT id, message_id, user_id, thread_id, provider_id, model_id,
                       usage, cost, cost_for_user, created_at
                FROM ai_cost WHERE {column} = ? ORDER BY id
            """, (value,))
            return [
                AICostRecord(
                    id=row[0],
                    message_id=row[1],
                    user_id=row[2],
                    thread_id=row[3],
                    provider_id=row[4],
                    model_id=row[5],
                    usage=TokenUsage.from_dict(json.loads(row[6])),
                    cost=AICost.from_dict(json.loads(row[7])),
                    cost_for_user=AICost.from_dict(json.loads(row[8])),
                    created_at=datetime.fromisoformat(row[9]),
                )
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()

    def _fetch_tool_costs(self, where: str, params: tuple) -> List[ToolCostRecord]:
        conn = get_connection(self.db_path)
        try:
            cursor = conn.execute(f"""
                SELECT id, message_id, user_id, thread_id, provider_id, tool_id,
                       usage, cost, cost_for_user, created_at
                FROM tool_cost WHERE {where} ORDER BY id
            """, params)
            return [
                ToolCostRecord(
                    id=row[0],
                    message_id=row[1],
                    user_id=row[2],
                    thread_id=row[3],
                    provider_id=row[4],
                    tool_id=row[5],
                    usage=json.loads(row[6]),
                    cost=json.loads(row[7]),
                    cost_for_user=json.loads(row[8]),
                    created_at=datetime.fromisoformat(row[9]),
                )
                for row in cursor.fetchall()
            ]
        finally:
            conn.close()

    def get_ai_costs_by_user(self, user_id: str) -> List[AICostRecord]:
        return self._fetch_ai_costs("user_id", user_id)

    def get_ai_costs_by_thread(self, thread_id: str) -> List[AICostRecord]:
        return self._fetch_ai_costs("thread_id", thread_id)

    def get_ai_costs_by_message_id(self, message_id: str) -> List[AICostRecord]:
        return self._fetch_ai_costs("message_id", message_id)

    def get_tool_costs_by_user(self, user_id: str) -> List[ToolCostRecord]:
        return self._fetch_tool_costs("user_id = ?", (user_id,))

    def get_tool_costs_by_thread(self, thread_id: str) -> List[ToolCostRecord]:
        return self._fetch_tool_costs("thread_id = ?", (thread_id,))

    def get_tool_costs_by_message_id(self, message_id: str) -> List[ToolCostRecord]:
        return self._fetch_tool_costs("message_id = ?", (message_id,))

    def get_tool_costs_by_provider_and_tool(self, provider_id: str, tool_id: str) -> List[ToolCostRecord]:
        return self._fetch_tool_costs("provider_id = ? AND tool_id = ?", (provider_id, tool_id))

    @staticmethod
    def _ai_totals(records: List[AICostRecord]) -> CostTotals:
        return CostTotals(
            count=len(records),
            total_amount=total(r.cost.total_cost for r in records),
            total_user_amount=total(r.cost_for_user.total_cost for r in records),
        )

    @staticmethod
    def _tool_totals(records: List[ToolCostRecord]) -> CostTotals:
        return CostTotals(
            count=len(records),
            total_amount=total(r.amount for r in records),
            total_user_amount=total(r.user_amount for r in records),
        )

    def get_total_ai_costs_by_user(self, user_id: str) -> CostTotals:
        """Sum AI costs recorded for a user, rounded to 8 decimal places."""
        return self._ai_totals(self.get_ai_costs_by_user(user_id))

    def get_total_ai_costs_by_thread(self, thread_id: str) -> CostTotals:
        return self._ai_totals(self.get_ai_costs_by_thread(thread_id))

    def get_total_tool_costs_by_user(self, user_id: str) -> CostTotals:
        """Sum tool costs recorded for a user, rounded to 8 decimal places."""
        return self._tool_totals(self.get_tool_costs_by_user(user_id))

    def get_total_tool_costs_by_thread(self, thread_id: str) -> CostTotals:
        return self._tool_totals(self.get_tool_costs_by_thread(thread_id))
