#!/usr/bin/env python
"""
Run Ingestion - Check tariff sources, report health, classify products.

Runs as a standalone process. Schedule `check` via cron, or keep `serve`
running for the built-in periodic loop.

Usage:
    # One guarded ingestion check
    python scripts/run_ingestion.py check

    # List what would be ingested without downloading into the index
    python scripts/run_ingestion.py check --dry-run

    # Staleness report per document kind
    python scripts/run_ingestion.py health

    # Periodic loop (Ctrl+C to stop)
    python scripts/run_ingestion.py serve --interval-hours 24

    # Classify a product
    python scripts/run_ingestion.py classify "Crew neck tee" \\
        --garment T-Shirt --fabric knit --gender "men's" --material cotton:100

Scheduling:
    # Daily at 02:00 via cron
    0 2 * * * cd /path/to/tariff-rag && python scripts/run_ingestion.py check
"""

import sys
import os
import json
import logging
import signal
import threading
from dataclasses import replace

import click

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tariff_rag.config import get_settings
from tariff_rag.errors import ClassificationError
from tariff_rag.factory import build_components
from tariff_rag.logging_utils import configure_logging
from tariff_rag.rag.query_builder import MaterialShare, ProductDescription

logger = logging.getLogger(__name__)


def parse_material(value: str) -> MaterialShare:
    """'cotton:60' -> MaterialShare('cotton', 60)"""
    name, _, percentage = value.partition(":")
    try:
        return MaterialShare(name.strip(), float(percentage or 100))
    except ValueError:
        raise click.BadParameter(f"Expected NAME:PERCENT, got {value!r}")


@click.group()
@click.option('--log-level', default='INFO',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Logging level')
@click.option('--json-logs', is_flag=True, help='Emit logs as JSON lines')
@click.pass_context
def cli(ctx, log_level: str, json_logs: bool):
    """Tariff document ingestion and HS code classification."""
    configure_logging(log_level, json_output=json_logs)
    ctx.ensure_object(dict)


def _components(ctx):
    if "components" not in ctx.obj:
        ctx.obj["components"] = build_components(get_settings())
    return ctx.obj["components"]


@cli.command()
@click.option('--dry-run', is_flag=True,
              help='Discover new documents but don\'t ingest them')
@click.pass_context
def check(ctx, dry_run: bool):
    """Run one guarded ingestion check over all listing sources."""
    components = _components(ctx)

    logger.info("=" * 60)
    logger.info("TARIFF INGESTION CHECK" + (" (DRY RUN)" if dry_run else ""))
    logger.info("=" * 60)

    report = components.scheduler.run_check(dry_run=dry_run)

    if dry_run:
        for document in report.pending[:10]:
            logger.info(f"  - {document.label}: {document.url}")
        if len(report.pending) > 10:
            logger.info(f"  ... and {len(report.pending) - 10} more")
    else:
        for outcome in report.processed:
            logger.info(f"  + {outcome.label}: {outcome.chunk_count} chunks, {outcome.rate_count} rates")
        for outcome in report.failed:
            logger.info(f"  ! {outcome.label}: {outcome.error_type}: {outcome.error}")

    logger.info("=" * 60)
    logger.info(report.summary())
    logger.info("=" * 60)

    if not report.success and not report.skipped:
        sys.exit(1)


@cli.command()
@click.pass_context
def health(ctx):
    """Print last update and staleness per document kind."""
    status = _components(ctx).scheduler.health_check()
    click.echo(json.dumps(status, indent=2, default=str))
    if not status["healthy"]:
        sys.exit(2)


@cli.command()
@click.option('--interval-hours', type=float, default=None,
              help='Hours between checks (default: TARIFF_RAG_CHECK_INTERVAL_HOURS)')
@click.pass_context
def serve(ctx, interval_hours):
    """Run ingestion checks periodically until interrupted."""
    components = _components(ctx)
    scheduler = components.scheduler
    if interval_hours is not None:
        scheduler.check_interval_hours = interval_hours

    stop_event = threading.Event()

    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)

    scheduler.run_forever(stop_event)


@cli.command()
@click.argument('description')
@click.option('--garment', '-g', default='', help='Garment type, e.g. T-Shirt')
@click.option('--fabric', '-f', default='', type=click.Choice(['', 'knit', 'woven']),
              help='Fabric construction')
@click.option('--gender', default='', help="Gender, e.g. men's")
@click.option('--material', '-m', 'materials', multiple=True,
              help='Material share as NAME:PERCENT (repeatable)')
@click.option('--no-fallback', is_flag=True, help='Fail instead of using rule-based lookup')
@click.pass_context
def classify(ctx, description: str, garment: str, fabric: str, gender: str, materials, no_fallback: bool):
    """Suggest HS codes for a product description."""
    settings = get_settings()
    if no_fallback:
        settings = replace(settings, rule_based_fallback=False)
    ctx.obj["components"] = build_components(settings)

    product = ProductDescription(
        description=description,
        garment_type=garment,
        fabric_type=fabric,
        gender=gender,
        materials=[parse_material(m) for m in materials],
    )
    try:
        result = ctx.obj["components"].classifier.classify(product)
    except ClassificationError as e:
        click.echo(json.dumps({"success": False, "error": str(e), "error_type": type(e).__name__}, indent=2))
        sys.exit(1)

    click.echo(json.dumps(result.as_dict(), indent=2, default=str))


if __name__ == '__main__':
    cli()
