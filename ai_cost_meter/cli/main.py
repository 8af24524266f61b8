"""
CLI interface for AI Cost Meter.

Provides command-line access to pricing sync, markup rules and cost totals.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from ai_cost_meter.config.loader import MeterConfig, load_meter_config
from ai_cost_meter.core.errors import CostMeterError
from ai_cost_meter.core.markup import MarkupResolver, MarkupRule, MarkupScope, StaticRuleSource
from ai_cost_meter.core.schema import ToolPricingEntry, parse_pricing
from ai_cost_meter.core.sync import PricingSynchronizer, fetch_feed, parse_feed
from ai_cost_meter.storage.db import DEFAULT_DB_PATH, initialize_schema
from ai_cost_meter.storage.repository import CostRepository, MarkupRepository, PricingRepository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1


def _load_config(config_path: Optional[str]) -> MeterConfig:
    if config_path is None:
        return MeterConfig()
    return load_meter_config(config_path)


def _resolve_db(db: Optional[str], config: MeterConfig) -> str:
    return db or config.database or DEFAULT_DB_PATH


def _scope_for(model: Optional[str], tool: Optional[str]) -> MarkupScope:
    if model and tool:
        raise typer.BadParameter("use either --model or --tool, not both")
    if model:
        return MarkupScope.MODEL
    if tool:
        return MarkupScope.TOOL
    return MarkupScope.PROVIDER


def _format_rate(value: Optional[float]) -> str:
    return "-" if value is None else f"${value:,.4f}"


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
):
    """AI Cost Meter CLI."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        console.print("AI Cost Meter - Use --help to see available commands")


@app.command()
def init(db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to SQLite database")):
    """Initialize the AI Cost Meter database."""
    try:
        initialize_schema(db)
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("sync-pricing")
def sync_pricing(
    db: Optional[str] = typer.Option(None, "--db", help="Path to SQLite database"),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="Pricing feed URL"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show planned changes without writing"),
):
    """
    Reconcile the model pricing catalog with the remote pricing feed.

    After a successful run the catalog holds exactly the feed's models.
    A failed fetch leaves the catalog untouched.
    """
    try:
        config = _load_config(config_path)
        db_path = _resolve_db(db, config)
        initialize_schema(db_path)
        feed = config.pricing_feed

        entries = parse_feed(fetch_feed(url or feed.url, api_key=feed.api_key, timeout=feed.timeout))
        synchronizer = PricingSynchronizer(PricingRepository(db_path))

        if dry_run:
            plan = synchronizer.plan(entries)
            console.print("\n[bold]Planned pricing changes[/bold] (dry run)")
            console.print(f"Models in feed: {len(entries)}")
            console.print(f"Inserts: {len(plan.inserts)}")
            console.print(f"Updates: {len(plan.updates)}")
            console.print(f"Deletes: {len(plan.deletes)}")
            sys.exit(EXIT_CODE_PASS)

        result = synchronizer.sync(entries)
        console.print(f"[green]✓[/] Synced {len(entries)} models")
        console.print(f"Inserted: {result.insert_count}")
        console.print(f"Updated: {result.update_count}")
        console.print(f"Deleted: {result.delete_count}")
        sys.exit(EXIT_CODE_PASS)
    except (CostMeterError, ValueError, FileNotFoundError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command("show-pricing")
def show_pricing(
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to SQLite database"),
    provider: Optional[str] = typer.Option(None, "--provider", "-p", help="Only show one provider"),
    search: Optional[str] = typer.Option(None, "--search", "-s", help="Search model names"),
):
    """Show model pricing from the catalog, per million tokens."""
    initialize_schema(db)
    repository = PricingRepository(db)
    if search:
        entries = repository.search_pricing_by_model_name(search)
        if provider:
            entries = [e for e in entries if e.provider_id == provider]
    elif provider:
        entries = repository.get_pricing_by_provider(provider)
    else:
        entries = repository.list_entries()

    if not entries:
        console.print("\n[bold yellow]No pricing found[/]")
        console.print("Run `ai-cost-meter sync-pricing` to load the catalog\n")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Model Pricing (USD per 1M tokens)")
    table.add_column("Provider")
    table.add_column("Model")
    table.add_column("Input", justify="right")
    table.add_column("Output", justify="right")
    table.add_column("Reasoning", justify="right")
    table.add_column("Cache read", justify="right")
    table.add_column("Cache write", justify="right")
    for entry in entries:
        pricing = entry.pricing
        table.add_row(
            entry.provider_id,
            entry.model_id,
            _format_rate(pricing.input),
            _format_rate(pricing.output),
            _format_rate(pricing.reasoning),
            _format_rate(pricing.cache_read),
            _format_rate(pricing.cache_write),
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command("set-markup")
def set_markup(
    provider: str = typer.Argument(..., help="Provider identifier"),
    multiplier: float = typer.Argument(..., help="Markup multiplier, e.g. 1.5"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Apply to one model"),
    tool: Optional[str] = typer.Option(None, "--tool", "-t", help="Apply to one tool"),
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to SQLite database"),
):
    """Create or replace a markup rule."""
    try:
        rule = MarkupRule(
            scope=_scope_for(model, tool),
            provider_id=provider,
            multiplier=multiplier,
            model_id=model,
            tool_id=tool,
        )
    except ValueError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    initialize_schema(db)
    MarkupRepository(db).upsert_rule(rule)
    console.print(f"[green]✓[/] Markup for {_describe(provider, model, tool)} set to {multiplier}")
    sys.exit(EXIT_CODE_PASS)


@app.command("get-markup")
def get_markup(
    provider: str = typer.Argument(..., help="Provider identifier"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model identifier"),
    tool: Optional[str] = typer.Option(None, "--tool", "-t", help="Tool identifier"),
    config_path: Optional[str] = typer.Option(None, "--config", "-c", help="Path to YAML config"),
    db: Optional[str] = typer.Option(None, "--db", help="Path to SQLite database"),
):
    """
    Show the markup multiplier that applies to a provider, model or tool.

    Stored rules take priority over rules from the config file.
    """
    try:
        config = _load_config(config_path)
    except (ValueError, FileNotFoundError, yaml.YAMLError) as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    db_path = _resolve_db(db, config)
    initialize_schema(db_path)
    resolver = MarkupResolver(
        [MarkupRepository(db_path), StaticRuleSource(config.markup.rules())],
        default=config.markup.default,
    )
    rule = resolver.find(provider, model_id=model, tool_id=tool)
    multiplier = resolver.resolve(provider, model_id=model, tool_id=tool)
    source = f"{rule.scope.value} rule" if rule else "default"
    console.print(f"Markup for {_describe(provider, model, tool)}: {multiplier} ({source})")
    sys.exit(EXIT_CODE_PASS)


@app.command("delete-markup")
def delete_markup(
    provider: str = typer.Argument(..., help="Provider identifier"),
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model identifier"),
    tool: Optional[str] = typer.Option(None, "--tool", "-t", help="Tool identifier"),
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to SQLite database"),
):
    """Delete a stored markup rule."""
    initialize_schema(db)
    deleted = MarkupRepository(db).delete_rule(
        _scope_for(model, tool), provider, model_id=model, tool_id=tool
    )
    if not deleted:
        console.print(f"[yellow]No markup rule for {_describe(provider, model, tool)}[/]")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Markup for {_describe(provider, model, tool)} deleted")
    sys.exit(EXIT_CODE_PASS)


@app.command("set-tool-pricing")
def set_tool_pricing(
    provider: str = typer.Argument(..., help="Provider identifier"),
    tool: Optional[str] = typer.Argument(None, help="Tool identifier; omit for the provider default"),
    file: Path = typer.Option(..., "--file", "-f", help="JSON file with the pricing policy"),
    provider_name: Optional[str] = typer.Option(None, "--provider-name", help="Display name of the provider"),
    tool_name: Optional[str] = typer.Option(None, "--tool-name", help="Display name of the tool"),
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to SQLite database"),
):
    """Create or replace pricing for a tool from a JSON pricing policy."""
    try:
        with open(file, 'r', encoding='utf-8') as f:
            pricing = parse_pricing(json.load(f))
    except (OSError, ValueError) as e:
        console.print(f"[red]Error reading pricing:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    initialize_schema(db)
    PricingRepository(db).upsert_tool_pricing(ToolPricingEntry(
        provider_id=provider,
        provider_name=provider_name or provider,
        pricing=pricing,
        tool_id=tool,
        tool_name=tool_name,
    ))
    console.print(
        f"[green]✓[/] {pricing.kind.value} pricing set for {_describe(provider, None, tool)}"
    )
    sys.exit(EXIT_CODE_PASS)


@app.command("cost-totals")
def cost_totals(
    user: Optional[str] = typer.Option(None, "--user", help="Total costs for a user"),
    thread: Optional[str] = typer.Option(None, "--thread", help="Total costs for a thread"),
    db: str = typer.Option(DEFAULT_DB_PATH, "--db", help="Path to SQLite database"),
):
    """Show recorded AI and tool cost totals for a user or a thread."""
    if bool(user) == bool(thread):
        console.print("[red]Error:[/] pass exactly one of --user or --thread")
        sys.exit(EXIT_CODE_FAIL)

    initialize_schema(db)
    repository = CostRepository(db)
    if user:
        label = f"user {user}"
        ai_totals = repository.get_total_ai_costs_by_user(user)
        tool_totals = repository.get_total_tool_costs_by_user(user)
    else:
        label = f"thread {thread}"
        ai_totals = repository.get_total_ai_costs_by_thread(thread)
        tool_totals = repository.get_total_tool_costs_by_thread(thread)

    table = Table(title=f"Cost totals for {label}")
    table.add_column("Kind")
    table.add_column("Records", justify="right")
    table.add_column("Cost", justify="right")
    table.add_column("Cost for user", justify="right")
    for kind, totals in (("AI", ai_totals), ("Tools", tool_totals)):
        table.add_row(
            kind,
            str(totals.count),
            f"{totals.total_amount:.8f}",
            f"{totals.total_user_amount:.8f}",
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


def _describe(provider: str, model: Optional[str], tool: Optional[str]) -> str:
    if model:
        return f"{provider}/{model}"
    if tool:
        return f"{provider} tool {tool}"
    return provider


if __name__ == "__main__":
    app()
