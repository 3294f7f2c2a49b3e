"""Command-line interface for Sticker Scout."""

import json
import sys
from pathlib import Path
from typing import Optional

import click
from loguru import logger

from sticker_scout.config_loader import ensure_directories, get_output_config, load_config
from sticker_scout.exporter import export_hits, hit_to_dict
from sticker_scout.scanner import run_scan


def setup_logging(config: dict):
    """Setup logging configuration."""
    log_config = config.get("logging", {})
    level = log_config.get("level", "INFO")
    log_file = log_config.get("file", "out/logs/scout.log")

    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(
        sys.stderr,
        level=level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan> | {message}",
    )
    logger.add(
        log_file,
        level=level,
        rotation=log_config.get("rotation", "1 week"),
        retention=log_config.get("retention", "1 month"),
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name} | {message}",
    )


def _echo_hit(hit):
    click.echo(json.dumps({"type": "HIT", "data": hit_to_dict(hit)}, ensure_ascii=False))


@click.group()
@click.option("--config", "-c", type=click.Path(exists=True), help="Path to config file")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, config: Optional[str], verbose: bool):
    """Sticker Scout - find underpriced stickered skins on SkinsMonkey."""
    ctx.ensure_object(dict)

    try:
        cfg = load_config(config)
        if verbose:
            cfg.setdefault("logging", {})["level"] = "DEBUG"
        ctx.obj["config"] = cfg
        ctx.obj["config_path"] = config

        ensure_directories(cfg)
        setup_logging(cfg)
        logger.info("Sticker Scout initialized")

    except Exception as e:
        click.echo(f"Error loading configuration: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    "--mode", "-m",
    type=click.Choice(["auto", "api", "dom"], case_sensitive=False),
    default=None,
    help="Acquisition strategy (default from config: scan.mode)",
)
@click.option("--headless/--no-headless", default=None, help="Run browser in headless mode")
@click.option("--connect", "connect_endpoint", default=None, help="CDP endpoint of a running browser to attach to")
@click.option("--dry-run", is_flag=True, help="Build and log page URLs without requesting them")
@click.option(
    "--sort-by",
    type=click.Choice(["roi", "price", "none"], case_sensitive=False),
    default=None,
    help="Result ordering (default from config: output.sort_by)",
)
@click.option("--output-dir", "-o", type=click.Path(), default=None, help="Directory for JSON/CSV exports")
@click.option("--no-stream", is_flag=True, help="Do not print HIT lines while scanning")
@click.pass_context
def scan(
    ctx,
    mode: Optional[str],
    headless: Optional[bool],
    connect_endpoint: Optional[str],
    dry_run: bool,
    sort_by: Optional[str],
    output_dir: Optional[str],
    no_stream: bool,
):
    """Scan the trade inventory and export profitable hits."""
    config = ctx.obj["config"]
    output_cfg = get_output_config(config)
    if no_stream:
        config.setdefault("output", {})["stream_hits"] = False

    logger.info(
        "Starting scan: mode={}, headless={}, connect={}, dry_run={}, sort_by={}",
        mode,
        headless,
        connect_endpoint,
        dry_run,
        sort_by,
    )

    try:
        result = run_scan(
            config=config,
            mode=mode,
            headless=headless,
            connect_endpoint=connect_endpoint,
            dry_run=True if dry_run else None,
            sort_by=sort_by,
            on_hit=_echo_hit,
        )
        paths = export_hits(result.hits, output_cfg, strategy=result.strategy, output_dir=output_dir)

        click.echo(f"\n{'='*60}", err=True)
        click.echo("SCAN RESULTS", err=True)
        click.echo(f"{'='*60}", err=True)
        click.echo(f"Status: {result.status}", err=True)
        click.echo(f"Strategy: {result.strategy or 'N/A'}", err=True)
        click.echo(f"Stop reason: {result.stop_reason or 'N/A'}", err=True)
        click.echo(f"Hits: {len(result.hits)}", err=True)
        stats = result.stats.as_dict()
        click.echo("Stats: " + ", ".join(f"{k}={v}" for k, v in stats.items()), err=True)
        for key, path in paths.items():
            click.echo(f"Saved {key}: {path}", err=True)
        if result.error:
            click.echo(f"\nError: {result.error}", err=True)
        click.echo(f"{'='*60}", err=True)

        if result.failed:
            sys.exit(1)

    except Exception as e:
        logger.exception("Scan failed")
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    cli()
