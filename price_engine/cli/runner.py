# price_engine/cli/runner.py

"""Headless CLI commands over the price engine services."""

import json
import logging
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table

from price_engine.config.settings import Settings
from price_engine.errors import PriceEngineError
from price_engine.filters.anomaly_detector import AnomalyDetector
from price_engine.filters.price_validator import PriceValidator
from price_engine.models.alert import PriceAlertCondition
from price_engine.models.offer import BestPlatformCriteria, PriceComparison
from price_engine.models.price_entry import RawQuote
from price_engine.services.alert_evaluator import AlertEvaluator
from price_engine.services.comparison_orchestrator import (
    ComparisonOrchestrator,
)
from price_engine.services.price_service import PriceService
from price_engine.sources.base_source import MarketplaceSource
from price_engine.sources.fixture_source import FixtureQuoteSource
from price_engine.sources.http_source import build_http_sources
from price_engine.storage.cache_store import InMemoryCacheStore
from price_engine.storage.price_cache import PriceCache
from price_engine.storage.price_history_db import PriceHistoryDB

logger = logging.getLogger("price_engine.cli")

# Stderr console for status messages so stdout stays clean for JSON
_err = Console(stderr=True)


@contextmanager
def open_service(db_path: Path | None = None) -> Iterator[PriceService]:
    """Wire a price service over SQLite and a process-local cache."""
    history = PriceHistoryDB(db_path)
    try:
        yield PriceService(
            history,
            PriceCache(InMemoryCacheStore()),
            PriceValidator(),
            AnomalyDetector(),
        )
    finally:
        history.close()


def _load_json(path: Path) -> Any:
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _emit_json(payload: Any) -> None:
    json.dump(payload, sys.stdout, ensure_ascii=False, indent=2, default=str)
    sys.stdout.write("\n")


def resolve_platforms(platform_csv: str | None) -> list[str] | None:
    """Split and check a comma-separated list of platform IDs.

    Returns ``None`` (meaning every platform) when *platform_csv* is
    ``None``.  Raises ``SystemExit`` on unknown IDs.
    """
    if platform_csv is None:
        return None
    available = {p["id"] for p in Settings.AVAILABLE_PLATFORMS}
    requested = list(dict.fromkeys(
        p.strip() for p in platform_csv.split(",") if p.strip()
    ))
    unknown = [r for r in requested if r not in available]
    if unknown:
        _err.print(f"[red]Unknown platform(s): {', '.join(unknown)}[/red]")
        _err.print(f"[dim]Available: {', '.join(sorted(available))}[/dim]")
        raise SystemExit(1)
    return requested


# ── ingest ───────────────────────────────────────────────


async def cli_ingest(
    path: Path, db_path: Path | None = None,
) -> int:
    """Ingest a JSON list of quotes; 1 if nothing could be stored."""
    try:
        quotes = [RawQuote.from_dict(d) for d in _load_json(path)]
    except (OSError, KeyError, TypeError, ValueError) as exc:
        _err.print(f"[red]Cannot read quotes from {path}: {exc}[/red]")
        return 1

    try:
        with open_service(db_path) as service:
            summary = await service.ingest_batch(quotes)
    except PriceEngineError as exc:
        logger.error("Ingest failed: %s", exc, exc_info=True)
        _err.print(f"[red]Ingest failed: {exc}[/red]")
        return 1

    for rejected in summary.rejected:
        _err.print(f"[yellow]Rejected: {rejected}[/yellow]")
    for failure in summary.failed:
        _err.print(f"[red]Failed: {failure}[/red]")
    _err.print(
        f"[green]✓ {len(summary.accepted)} stored[/green]"
        f" [dim]({len(summary.rejected)} rejected,"
        f" {len(summary.failed)} failed,"
        f" {summary.anomalies} anomalies)[/dim]"
    )
    return 0 if summary.accepted or not quotes else 1


# ── stats ────────────────────────────────────────────────


async def cli_stats(
    product_id: str,
    platform: str | None,
    days: int,
    output_format: str,
    db_path: Path | None = None,
) -> int:
    """Print statistics, trend and historical low for a product."""
    try:
        with open_service(db_path) as service:
            stats = await service.get_statistics(product_id, platform, days)
            trend = await service.get_trend(product_id, platform, days)
            low = await service.get_historical_low(product_id, platform)
    except PriceEngineError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1

    if stats is None:
        _err.print(f"[yellow]No price data for {product_id}.[/yellow]")
        return 1

    if output_format == "json":
        _emit_json({
            "statistics": stats.to_dict(),
            "trend": trend.to_dict() if trend else None,
            "historical_low": low.to_dict() if low else None,
        })
        return 0

    table = Table(
        title=f"Price statistics: {product_id} ({stats.platform}, {days}d)",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right", style="green")
    table.add_row("Data points", str(stats.total_data_points))
    table.add_row("Average", f"{stats.average_price:,.2f}")
    table.add_row("Median", f"{stats.median_price:,.2f}")
    table.add_row("Std dev", f"{stats.standard_deviation:,.2f}")
    table.add_row("Min / Max", f"{stats.min_price:,.2f} / {stats.max_price:,.2f}")
    table.add_row("Availability", f"{stats.availability_rate:.0%}")
    if trend is not None:
        table.add_row(
            "Trend",
            f"{trend.trend_direction.value} "
            f"({trend.price_change_percentage:+.1f}%)",
        )
    if low is not None:
        table.add_row(
            "Historical low",
            f"{low.lowest_price:,.2f} ({low.days_since_low}d ago)",
        )
    Console().print(table)
    return 0


# ── drops ────────────────────────────────────────────────


async def cli_drops(
    product_id: str,
    platform: str | None,
    threshold: float,
    output_format: str,
    db_path: Path | None = None,
) -> int:
    """List significant price drops for a product."""
    try:
        with open_service(db_path) as service:
            drops = await service.get_price_drops(
                product_id, platform, threshold,
            )
    except PriceEngineError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1

    if output_format == "json":
        _emit_json([
            {
                "entry": d.entry.to_dict(),
                "drop_percentage": round(d.drop_percentage, 2),
                "previous_price": d.previous_price,
            }
            for d in drops
        ])
        return 0

    if not drops:
        _err.print("[yellow]No drops above threshold.[/yellow]")
        return 0
    table = Table(title=f"Price drops ≥ {threshold:g}%", title_style="bold cyan")
    table.add_column("When", style="dim")
    table.add_column("Platform", style="magenta")
    table.add_column("Price", justify="right", style="green")
    table.add_column("From", justify="right")
    table.add_column("Drop", justify="right", style="red")
    for d in drops:
        table.add_row(
            d.entry.timestamp.strftime("%Y-%m-%d %H:%M"),
            d.entry.platform_id,
            f"{d.entry.price:,.2f}",
            f"{d.previous_price:,.2f}",
            f"{d.drop_percentage:.1f}%",
        )
    Console().print(table)
    return 0


# ── alerts ───────────────────────────────────────────────


async def cli_alerts(
    path: Path, output_format: str, db_path: Path | None = None,
) -> int:
    """Evaluate a JSON list of alert conditions."""
    try:
        conditions = [
            PriceAlertCondition.from_dict(d) for d in _load_json(path)
        ]
    except (OSError, KeyError, TypeError, ValueError) as exc:
        _err.print(f"[red]Cannot read alerts from {path}: {exc}[/red]")
        return 1

    try:
        with open_service(db_path) as service:
            results = await AlertEvaluator(service).check_price_alerts(
                conditions
            )
    except PriceEngineError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1

    if output_format == "json":
        _emit_json([
            {
                "alert_id": r.condition.id,
                "product_id": r.condition.product_id,
                "kind": r.condition.kind.value,
                "triggered": r.triggered,
                "current_price": r.current_price,
                "message": r.message,
            }
            for r in results
        ])
        return 0

    table = Table(title="Price alerts", show_lines=True, title_style="bold cyan")
    table.add_column("Alert", style="bold")
    table.add_column("Product")
    table.add_column("Kind", style="magenta")
    table.add_column("Status", justify="center")
    table.add_column("Message", style="dim")
    for r in results:
        status = "[green]FIRED[/green]" if r.triggered else "[dim]-[/dim]"
        table.add_row(
            r.condition.id,
            r.condition.product_id,
            r.condition.kind.value,
            status,
            r.message,
        )
    Console().print(table)
    return 0


# ── compare ──────────────────────────────────────────────


def _comparison_to_dict(result: PriceComparison) -> dict[str, Any]:
    return {
        "product_id": result.product_id,
        "lowest_price": result.lowest_price,
        "highest_price": result.highest_price,
        "average_price": result.average_price,
        "best_value": result.best_value.to_dict() if result.best_value else None,
        "comparison": [
            {
                "platform": row.platform,
                "price": row.price,
                "total_price": row.total_price,
                "savings": row.savings,
                "ranking": row.ranking,
            }
            for row in result.comparison
        ],
        "partial": result.partial,
        "errors": result.errors,
    }


async def cli_compare(
    product_id: str,
    platform_csv: str | None,
    condition: str,
    include_shipping: bool,
    currency: str,
    output_format: str,
    fixtures: Path | None = None,
    timeout: float | None = None,
    best: str | None = None,
) -> int:
    """Compare a product's offers across platforms."""
    platforms = resolve_platforms(platform_csv)
    sources: list[MarketplaceSource]
    if fixtures is not None:
        sources = list(FixtureQuoteSource.from_file(fixtures))
        _err.print(f"[dim]Fixture mode: {fixtures}[/dim]")
    else:
        sources = list(build_http_sources())
    if not sources:
        _err.print(
            "[red]No quote sources configured "
            "(set PRICE_ENGINE_QUOTE_URL_<PLATFORM> or use --fixtures).[/red]"
        )
        return 1

    orchestrator = ComparisonOrchestrator(
        sources, PriceCache(InMemoryCacheStore()), PriceValidator(),
    )
    result = await orchestrator.compare_prices(
        product_id,
        platforms,
        condition=condition,
        include_shipping=include_shipping,
        currency=currency,
        timeout=timeout,
    )
    winner = None
    if best is not None:
        winner = await orchestrator.get_best_platform(
            product_id, BestPlatformCriteria(best), platforms,
        )

    for error_msg in result.errors:
        _err.print(f"[red]Error: {error_msg}[/red]")
    if result.partial:
        _err.print("[yellow]Partial result: some platforms timed out.[/yellow]")
    if not result.comparison:
        _err.print("[yellow]No comparable offers found.[/yellow]")
        return 1

    if output_format == "json":
        payload = _comparison_to_dict(result)
        if winner is not None:
            payload["best_platform"] = {
                "platform": winner.platform,
                "criteria": best,
                "score": winner.score,
            }
        _emit_json(payload)
        return 0

    table = Table(
        title=f"Price comparison: {product_id}",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("#", style="dim", width=4)
    table.add_column("Platform", style="magenta")
    table.add_column("Price", justify="right", style="green")
    table.add_column("Total", justify="right")
    table.add_column("Savings", justify="right", style="cyan")
    for row in result.comparison:
        table.add_row(
            str(row.ranking),
            row.platform,
            f"{currency} {row.price:,.2f}",
            f"{currency} {row.total_price:,.2f}",
            f"{row.savings:,.2f}",
        )
    Console().print(table)
    if winner is not None:
        _err.print(
            f"[bold]Best by {best}:[/bold] {winner.platform}"
            f" [dim](score {winner.score:.1f})[/dim]"
        )
    return 0
