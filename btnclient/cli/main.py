"""Command line interface for the BTN client."""

from __future__ import annotations

import asyncio
import contextlib
import logging

import click
from rich.console import Console
from rich.table import Table

from btnclient.btn.manager import BtnManager
from btnclient.config.config import ConfigManager, init_config
from btnclient.models import LogLevel
from btnclient.utils.exceptions import ConfigurationError
from btnclient.utils.logging_config import setup_logging

logger = logging.getLogger(__name__)

console = Console()


def _get_config_from_context(ctx: click.Context) -> ConfigManager:
    """Return the config manager created by the group callback."""
    cfg_mgr = ctx.obj.get("config_manager")
    if cfg_mgr is None:
        msg = "Configuration not loaded"
        raise click.ClickException(msg)
    return cfg_mgr


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path",
)
@click.option("--verbose", "-v", count=True, help="Increase verbosity (-v: debug)")
@click.pass_context
def cli(ctx, config, verbose):
    """BTN client - Ban Threat Network rule sync and peer reporting."""
    ctx.ensure_object(dict)
    try:
        cfg_mgr = init_config(config)
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e
    if verbose:
        cfg_mgr.config.observability.log_level = LogLevel.DEBUG
        setup_logging(cfg_mgr.config.observability)
    ctx.obj["config_manager"] = cfg_mgr


@cli.command("show-config")
@click.option("--show-secret", is_flag=True, help="Do not mask the app secret")
@click.pass_context
def show_config(ctx, show_secret):
    """Print the effective configuration."""
    cfg_mgr = _get_config_from_context(ctx)
    source = str(cfg_mgr.config_file) if cfg_mgr.config_file else "defaults/environment"
    console.print(f"# source: {source}", markup=False)
    console.print(cfg_mgr.export(mask_secrets=not show_secret), markup=False)


async def _fetch_rule(manager: BtnManager) -> bool:
    try:
        await manager.client.start()
        await manager.rule_fetcher.load_cache()
        if not await manager.refresh_config():
            return False
        await manager.update_rule_now()
        return True
    finally:
        await manager.stop()


@cli.command("fetch-rule")
@click.pass_context
def fetch_rule(ctx):
    """Fetch the server configuration and rules once."""
    settings = _get_config_from_context(ctx).config.btn
    if not settings.config_url:
        msg = "btn.config_url is not configured"
        raise click.ClickException(msg)

    manager = BtnManager(settings)
    if not asyncio.run(_fetch_rule(manager)):
        msg = "Could not load the BTN configuration, see log for details"
        raise click.ClickException(msg)

    table = Table(title="BTN")
    table.add_column("Item", style="cyan")
    table.add_column("Value")
    config = manager.btn_config
    table.add_row("Abilities", ", ".join(sorted(config.ability)) if config else "-")
    rule = manager.rule
    table.add_row("Rule version", rule.version if rule and rule.version else "-")
    table.add_row("Cache file", str(manager.cache_file))
    console.print(table)


async def _run(manager: BtnManager) -> None:
    await manager.start()
    try:
        await asyncio.Event().wait()
    finally:
        await manager.stop()


@cli.command()
@click.pass_context
def run(ctx):
    """Run the rule and submission timers until interrupted."""
    settings = _get_config_from_context(ctx).config.btn
    if not settings.enabled:
        msg = "BTN is disabled, set btn.enabled = true"
        raise click.ClickException(msg)

    manager = BtnManager(settings)
    console.print("BTN client running, press Ctrl-C to stop")
    with contextlib.suppress(KeyboardInterrupt):
        asyncio.run(_run(manager))
    console.print("BTN client stopped")


def main() -> None:
    """Console script entry point."""
    cli(obj={})
