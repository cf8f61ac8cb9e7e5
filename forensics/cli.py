#!/usr/bin/env python3
"""CLI interface for the contract forensics engine."""

import logging
import sys
from typing import Optional
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import click

from .analyzer import ForensicsAnalyzer
from .addresses import require_valid_address
from .checkpoint import JsonCheckpointSink
from .config import Settings, load_settings
from .errors import ForensicsError
from .explorer import APIRateLimiter, ExplorerClient
from .formatters import format_summary, write_reports
from .history import ImplementationHistorySampler
from .rpc import LedgerClient
from .state import StateInspector
from .trace_providers import get_trace_provider

SECRET_QUERY_PARAMS = {"api-key", "apikey", "api_key", "key", "token"}


def setup_logging(verbose: bool = False, log_file: Optional[str] = None):
    for handler in logging.root.handlers[:]:
        logging.root.removeHandler(handler)
        handler.close()
    handlers = [logging.StreamHandler(sys.stdout)]
    if log_file:
        handlers.append(logging.FileHandler(log_file))
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=handlers,
    )


def mask_api_key(url: str) -> str:
    """
    Mask API keys in an RPC URL for display.

    Providers put the key either in a query parameter (`?api-key=...`) or as
    the last path segment (`/v2/<key>`, `/v3/<key>`).
    """
    parts = urlsplit(url)
    query = [
        (name, "***" if name.lower() in SECRET_QUERY_PARAMS else value)
        for name, value in parse_qsl(parts.query, keep_blank_values=True)
    ]
    path = parts.path
    segments = path.split("/")
    if len(segments) > 2 and segments[-1]:
        path = "/".join(segments[:-1] + ["***"])
    return urlunsplit((parts.scheme, parts.netloc, path, urlencode(query, safe="*"), parts.fragment))


def build_ledger(settings: Settings) -> LedgerClient:
    return LedgerClient(
        settings.rpc_urls,
        retries_per_endpoint=settings.retries_per_endpoint,
        timeout=settings.rpc_timeout,
    )


def build_explorer(settings: Settings) -> ExplorerClient:
    return ExplorerClient(
        settings.explorer_api_key,
        base_url=settings.explorer_url,
        limiter=APIRateLimiter(settings.min_request_delay),
        timeout=settings.request_timeout,
    )


def _address(ctx, param, value):
    if value is None:
        return None
    try:
        return require_valid_address(value)
    except ForensicsError as e:
        raise click.BadParameter(str(e))


@click.group()
@click.version_option(version="1.0.0")
@click.option("-c", "--config", "config_path", type=click.Path(), help="YAML config file")
@click.option("-r", "--rpc", multiple=True, help="RPC endpoint URL (repeat for failover order)")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.option("--log-file", type=click.Path(), help="Also write logs to this file")
@click.pass_context
def cli(ctx, config_path, rpc, verbose, log_file):
    """Reconstruct proxy-upgrade incidents on EVM chains."""
    setup_logging(verbose, log_file)
    try:
        settings = load_settings(config_path)
    except ForensicsError as e:
        raise click.ClickException(str(e))
    if rpc:
        settings.rpc_urls = list(rpc)
    ctx.obj = settings


@cli.command()
@click.argument("hack_tx")
@click.argument("victim", callback=_address)
@click.argument("suspect", callback=_address)
@click.option("-k", "--known-implementation", callback=_address, help="Expected implementation address")
@click.option("-o", "--output-dir", type=click.Path(), help="Where to write the reports")
@click.option("--checkpoint-dir", type=click.Path(), help="Where to write phase checkpoints")
@click.option("--stride", type=click.IntRange(min=1), help="Block stride for implementation history")
@click.option("--resume", is_flag=True, help="Continue from the last completed phase checkpoint")
@click.pass_obj
def analyze(settings: Settings, hack_tx, victim, suspect, known_implementation, output_dir,
            checkpoint_dir, stride, resume):
    """Analyze HACK_TX against the VICTIM proxy and crawl from SUSPECT."""
    if not settings.explorer_api_key:
        raise click.UsageError("Explorer API key missing: set POLYGONSCAN_API_KEY or explorer_api_key")

    click.echo(f"Using RPC: {', '.join(mask_api_key(u) for u in settings.rpc_urls)}", err=True)

    ledger = build_ledger(settings)
    explorer = build_explorer(settings)
    analyzer = ForensicsAnalyzer(
        ledger,
        explorer,
        get_trace_provider(settings.trace_provider, explorer=explorer, ledger=ledger),
        JsonCheckpointSink(checkpoint_dir or settings.checkpoint_dir),
        history_stride=stride or settings.history_stride,
    )

    try:
        report = analyzer.run(hack_tx, victim, suspect, resume=resume)
    except ForensicsError as e:
        raise click.ClickException(f"Analysis failed: {e}")
    finally:
        explorer.close()

    click.echo(format_summary(report))
    json_path, text_path = write_reports(report, output_dir or settings.output_dir, known_implementation)
    click.echo("")
    click.echo("✅ Reports generated:")
    click.echo(f"- {json_path}")
    click.echo(f"- {text_path}")


@cli.command()
@click.argument("address", callback=_address)
@click.argument("block", type=int)
@click.pass_obj
def state(settings: Settings, address, block):
    """Show the proxy implementation and admin of ADDRESS at BLOCK."""
    inspector = StateInspector(build_ledger(settings))
    try:
        snapshot = inspector.state_at(address, block)
    except ForensicsError as e:
        raise click.ClickException(str(e))
    click.echo(f"Block {block}")
    click.echo(f"  Implementation: {snapshot.implementation}")
    click.echo(f"  Admin:          {snapshot.admin}")


@cli.command()
@click.argument("address", callback=_address)
@click.option("--stride", type=click.IntRange(min=1), help="Block stride")
@click.pass_obj
def history(settings: Settings, address, stride):
    """Sample the implementation history of ADDRESS."""
    ledger = build_ledger(settings)
    sampler = ImplementationHistorySampler(ledger, StateInspector(ledger), stride=stride or settings.history_stride)
    try:
        sightings = sampler.sample(address)
    except ForensicsError as e:
        raise click.ClickException(str(e))
    if not sightings:
        click.echo("No implementation history available")
    for sighting in sightings:
        click.echo(f"Block {sighting.block_number}: {sighting.implementation}")


if __name__ == "__main__":
    cli()
