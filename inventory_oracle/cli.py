"""
Inventory Oracle: CLI entry point.

All commands follow this pattern:
  1. Load ``AppConfig`` via ``load_config()``.
  2. Configure logging.
  3. Load the inventory JSON file (components + usage metrics).
  4. Build the services and run one analytical operation.
  5. Report the result to stdout.

Install and run::

    pip install -e .
    inventory-oracle --help
    inventory-oracle init-db
    inventory-oracle validate-config
    inventory-oracle alternatives esp32-01 --inventory data/inventory.json
    inventory-oracle predict esp32-01 --inventory data/inventory.json
    inventory-oracle stock-alerts --inventory data/inventory.json
    inventory-oracle compare-prices esp32-01 --currency EUR --inventory data/inventory.json
    inventory-oracle convert 25 USD EUR
    inventory-oracle start-scheduler --inventory data/inventory.json
"""

from __future__ import annotations

import asyncio
import json
from datetime import timedelta
from pathlib import Path
from typing import Optional

import typer

app = typer.Typer(
    name="inventory-oracle",
    help="Inventory Oracle: component substitutes, stock forecasts and market prices.",
    add_completion=False,
)

_INVENTORY_HELP = "Path to inventory JSON (components + usage_metrics)."


# ── Helpers ───────────────────────────────────────────────────────────────────

def _load_config_or_exit(config_path: Optional[str] = None):
    """Load AppConfig, printing a friendly error and exiting on failure."""
    from inventory_oracle.config import load_config

    try:
        cfg_path = Path(config_path) if config_path else None
        return load_config(cfg_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Config validation failed: {exc}", err=True)
        raise typer.Exit(code=1)


def _configure_logging(config):
    """Set up logging from config."""
    from inventory_oracle.utils.logging import configure_logging
    configure_logging(config.logging)


def _load_inventory_or_exit(inventory_path: Optional[str]):
    """Load the inventory file, exiting with code 1 if missing or malformed."""
    from inventory_oracle.stores import InMemoryInventoryStore, InMemoryUsageMetricsStore
    from inventory_oracle.stores import load_inventory_file

    if not inventory_path:
        return InMemoryInventoryStore(), InMemoryUsageMetricsStore()
    try:
        return load_inventory_file(inventory_path)
    except FileNotFoundError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)
    except Exception as exc:
        typer.echo(f"[ERROR] Could not read inventory file: {exc}", err=True)
        raise typer.Exit(code=1)


def _build_or_exit(config_path: Optional[str], inventory_path: Optional[str]):
    """Config + logging + inventory + services in one step."""
    from inventory_oracle.errors.handler import ConfigurationError
    from inventory_oracle.services import build_services

    config = _load_config_or_exit(config_path)
    _configure_logging(config)
    inventory, metrics = _load_inventory_or_exit(inventory_path)
    try:
        return build_services(config, inventory, metrics)
    except ConfigurationError as exc:
        typer.echo(f"[ERROR] {exc}", err=True)
        raise typer.Exit(code=1)


def _echo_json(payload) -> None:
    typer.echo(json.dumps(payload, indent=2, default=str))


# ── Commands ──────────────────────────────────────────────────────────────────

@app.command("init-db")
def init_db(
    db_path: Optional[str] = typer.Option(
        None,
        "--db-path",
        help="Override DB path from config (e.g. data/db/test.db).",
    ),
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file.",
    ),
) -> None:
    """Initialize the SQLite cache database.

    Safe to run multiple times; all DDL uses IF NOT EXISTS.
    """
    from inventory_oracle.db.connection import get_connection
    from inventory_oracle.db.schema import ALL_TABLE_NAMES, apply_schema

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    target_path = db_path or config.database.db_path
    typer.echo(f"Initializing database at: {target_path}")

    with get_connection(
        target_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    ) as conn:
        apply_schema(conn)

    typer.echo(f"  Tables: {len(ALL_TABLE_NAMES)} created/verified.")
    typer.echo("[OK] Database ready.")


@app.command("validate-config")
def validate_config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        help="Path to TOML config file (default: config/default.toml).",
    ),
    show_full: bool = typer.Option(
        False,
        "--full",
        help="Print full config including all fields.",
    ),
) -> None:
    """Validate the configuration file and print parsed values.

    Exits with code 1 if the config fails validation.
    """
    config = _load_config_or_exit(config_path)

    typer.echo("Configuration validated successfully.")
    typer.echo("")
    typer.echo(f"  Database path:    {config.database.db_path}")
    typer.echo(f"  Cache backend:    {config.cache.backend}")
    typer.echo(f"  Base currency:    {config.currency.base_currency}")
    typer.echo(f"  Suppliers:        {len(config.market.suppliers)}")
    typer.echo(f"  Min compat score: {config.alternatives.min_compatibility_score}")
    typer.echo(f"  Safety stock:     x{config.prediction.safety_stock_multiplier}")
    typer.echo(f"  Daily rate time:  {config.scheduler.daily_rate_time}")
    typer.echo(f"  Log level:        {config.logging.level}")
    typer.echo(f"  Debug mode:       {config.debug}")

    if show_full:
        typer.echo("")
        typer.echo("Full config (JSON):")
        _echo_json(config.model_dump())

    typer.echo("")
    typer.echo("[OK] Config is valid.")


@app.command("alternatives")
def alternatives(
    component_id: str = typer.Argument(..., help="Component to find substitutes for."),
    inventory_path: str = typer.Option(..., "--inventory", help=_INVENTORY_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """List ranked substitute components with scores and explanations."""
    services = _build_or_exit(config_path, inventory_path)

    async def _run():
        component = await services.alternatives.inventory.get_by_id(component_id)
        if component is None:
            return None
        return await services.alternatives.find_alternatives(component)

    results = asyncio.run(_run())
    if results is None:
        typer.echo(f"[ERROR] Component not found: {component_id}", err=True)
        raise typer.Exit(code=1)
    if not results:
        typer.echo(f"No alternatives above score {services.config.alternatives.min_compatibility_score}.")
        return

    typer.echo(f"Alternatives for {component_id}:")
    for rank, alt in enumerate(results, start=1):
        typer.echo(
            f"  {rank}. {alt.name} ({alt.component_id})  "
            f"score={alt.compatibility_score}  impact={alt.usability_impact}"
        )
        typer.echo(f"     {alt.explanation}")
        for mod in alt.required_modifications or []:
            typer.echo(f"     - {mod}")


@app.command("predict")
def predict(
    component_id: str = typer.Argument(..., help="Component to forecast."),
    inventory_path: str = typer.Option(..., "--inventory", help=_INVENTORY_HELP),
    horizon_days: int = typer.Option(90, "--horizon", help="Demand forecast horizon in days."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Predict depletion, reorder quantity and monthly demand for a component."""
    services = _build_or_exit(config_path, inventory_path)

    async def _run():
        prediction = await services.prediction.predict_depletion(component_id)
        demand = await services.prediction.forecast_component_demand(component_id, horizon_days)
        quantities = await services.prediction.suggest_optimal_quantities(component_id)
        return prediction, demand, quantities

    prediction, demand, quantities = asyncio.run(_run())
    typer.echo(f"Stock prediction for {component_id}:")
    typer.echo(f"  Current stock:     {prediction.current_stock}")
    typer.echo(f"  Consumption/day:   {prediction.consumption_rate:.3f}")
    typer.echo(f"  Depletion date:    {prediction.predicted_depletion_date or 'not projected'}")
    typer.echo(f"  Reorder quantity:  {prediction.recommended_reorder_quantity}")
    typer.echo(f"  Confidence:        {prediction.confidence:.0%}")
    for factor in prediction.factors:
        typer.echo(f"  ! {factor}")
    if demand.forecast_periods:
        typer.echo(f"  Demand ({horizon_days}d): {demand.total_demand} total, peak {demand.peak_period}")
    typer.echo(
        f"  Order size: {quantities.recommended_quantity} "
        f"(range {quantities.min_quantity}-{quantities.max_quantity})"
    )


@app.command("stock-alerts")
def stock_alerts(
    inventory_path: str = typer.Option(..., "--inventory", help=_INVENTORY_HELP),
    as_json: bool = typer.Option(False, "--json", help="Print alerts as JSON."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """List reorder alerts for components projected to run out within 90 days."""
    services = _build_or_exit(config_path, inventory_path)
    alerts = asyncio.run(services.prediction.generate_stock_alerts())

    if as_json:
        _echo_json([a.model_dump(mode="json") for a in alerts])
        return
    if not alerts:
        typer.echo("No stock alerts.")
        return
    for alert in alerts:
        typer.echo(
            f"  [{alert.urgency.upper():8}] {alert.component_name}: {alert.recommended_action} "
            f"(order {alert.recommended_quantity})"
        )


@app.command("market-data")
def market_data(
    component_id: str = typer.Argument(..., help="Component to price."),
    inventory_path: str = typer.Option(..., "--inventory", help=_INVENTORY_HELP),
    currency: Optional[str] = typer.Option(None, "--currency", help="Target ISO currency code."),
    refresh: bool = typer.Option(False, "--refresh", help="Ignore cached prices."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Fetch current supplier prices for a component."""
    services = _build_or_exit(config_path, inventory_path)
    items = asyncio.run(
        services.market.fetch_market_data(component_id, force_refresh=refresh, target_currency=currency)
    )
    if not items:
        typer.echo(f"No price data for {component_id}.")
        raise typer.Exit(code=1)
    for item in items:
        original = f"  (was {item.original_price})" if item.original_price != item.price else ""
        typer.echo(f"  {item.supplier:15} {item.price:>12}{original}")


@app.command("compare-prices")
def compare_prices(
    component_id: str = typer.Argument(..., help="Component to compare."),
    inventory_path: str = typer.Option(..., "--inventory", help=_INVENTORY_HELP),
    currency: Optional[str] = typer.Option(None, "--currency", help="Target ISO currency code."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Summarize supplier prices: lowest, average, range and recommended supplier."""
    from inventory_oracle.currency.formatting import format_price

    services = _build_or_exit(config_path, inventory_path)
    comparison = asyncio.run(services.market.get_price_comparison(component_id, currency))
    if comparison is None:
        typer.echo(f"No price data for {component_id}.")
        raise typer.Exit(code=1)

    cur = comparison.lowest_price.currency
    typer.echo(f"Price comparison for {comparison.component_name}:")
    typer.echo(
        f"  Lowest:      {format_price(comparison.lowest_price.price, cur)} "
        f"at {comparison.lowest_price.supplier}"
    )
    typer.echo(f"  Average:     {format_price(comparison.average_price, cur)}")
    typer.echo(
        f"  Range:       {format_price(comparison.price_range.min, cur)} - "
        f"{format_price(comparison.price_range.max, cur)}"
    )
    typer.echo(f"  Recommended: {comparison.recommended_supplier}")


@app.command("market-trends")
def market_trends(
    component_id: str = typer.Argument(..., help="Component to analyze."),
    inventory_path: str = typer.Option(..., "--inventory", help=_INVENTORY_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Price trend, seasonality and projection from recorded price history."""
    services = _build_or_exit(config_path, inventory_path)
    trend = asyncio.run(services.market.analyze_market_trends(component_id))
    if trend is None:
        typer.echo(
            f"Not enough price history for {component_id} "
            f"(need {services.config.market.min_trend_points} points)."
        )
        raise typer.Exit(code=1)
    _echo_json(trend.model_dump(mode="json"))


@app.command("convert")
def convert(
    amount: float = typer.Argument(..., help="Amount to convert."),
    from_currency: str = typer.Argument(..., help="Source ISO code."),
    to_currency: str = typer.Argument(..., help="Target ISO code."),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Convert an amount between currencies using cached or live rates."""
    from inventory_oracle.currency.formatting import format_price

    services = _build_or_exit(config_path, None)
    converted = asyncio.run(services.currency.convert(amount, from_currency, to_currency))
    typer.echo(
        f"{format_price(amount, from_currency.upper())} = "
        f"{format_price(converted, to_currency.upper())}"
    )


@app.command("health")
def health(
    inventory_path: Optional[str] = typer.Option(None, "--inventory", help=_INVENTORY_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Run a diagnostic sweep and report the error-handler health check.

    The sweep predicts depletion for every component and looks up the rate of
    each common currency against the base currency.
    """
    services = _build_or_exit(config_path, inventory_path)

    async def _sweep() -> None:
        for component in await services.prediction.inventory.get_all_items():
            await services.prediction.predict_depletion(component.id)
        base = services.config.currency.base_currency
        for code in services.config.currency.common_currencies:
            await services.currency.get_rate(base, code)

    asyncio.run(_sweep())
    report = services.error_handler.is_system_healthy()
    stats = services.error_handler.get_error_stats()

    typer.echo(f"Healthy:            {report.healthy}")
    typer.echo(f"Errors last hour:   {report.errors_last_hour}")
    typer.echo(f"Critical errors:    {report.critical_errors}")
    typer.echo(f"External API errs:  {report.external_api_errors}")
    for kind, count in sorted(stats.errors_by_kind.items()):
        typer.echo(f"  {kind:22} {count}")
    for issue, advice in zip(report.issues, report.recommendations):
        typer.echo(f"  ! {issue} -> {advice}")
    if not report.healthy:
        raise typer.Exit(code=2)


@app.command("start-scheduler")
def start_scheduler(
    inventory_path: str = typer.Option(..., "--inventory", help=_INVENTORY_HELP),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Run the periodic price refresh and the daily exchange-rate update.

    Blocks until interrupted with Ctrl-C.
    """
    services = _build_or_exit(config_path, inventory_path)
    scheduler = services.scheduler
    for name in scheduler.job_names:
        typer.echo(f"  {name:24} next run {scheduler.next_run(name):%Y-%m-%d %H:%M}")
    typer.echo("Scheduler running. Press Ctrl-C to stop.")
    try:
        asyncio.run(scheduler.run_forever())
    except KeyboardInterrupt:
        typer.echo("")
        typer.echo("[OK] Scheduler stopped.")


@app.command("purge-cache")
def purge_cache(
    older_than_days: int = typer.Option(
        30,
        "--older-than-days",
        help="Delete cache entries written more than this many days ago.",
    ),
    config_path: Optional[str] = typer.Option(None, "--config", help="Path to TOML config file."),
) -> None:
    """Delete old rows from the persistent cache."""
    from inventory_oracle.cache.store import SqliteCacheStore
    from inventory_oracle.utils.time_utils import utcnow

    config = _load_config_or_exit(config_path)
    _configure_logging(config)

    if config.cache.backend != "sqlite":
        typer.echo("Cache backend is not sqlite; nothing to purge.")
        return

    store = SqliteCacheStore(
        config.database.db_path,
        wal_mode=config.database.wal_mode,
        busy_timeout_ms=config.database.busy_timeout_ms,
    )
    deleted = store.purge_older_than(utcnow() - timedelta(days=older_than_days))
    typer.echo(f"[OK] Purged {deleted} cache entries older than {older_than_days} days.")


if __name__ == "__main__":
    app()
