"""
CLI interface for ForexRadar.

Provides command-line access to chart analysis, usage and plan data.
"""

import base64
import logging
import mimetypes
import sys
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markdown import Markdown
from rich.table import Table

from forex_radar.config.loader import AppConfig, create_client, default_app_config, load_app_config
from forex_radar.core.analysis import AnalysisContentError, ChartAnalyzer, ChartInput, ChartValidationError
from forex_radar.core.plans import ModeNotAvailable, SubscriptionTier
from forex_radar.core.server_time import compute_server_time, format_countdown
from forex_radar.core.trading_pairs import CURRENCY_PAIRS, TIMEFRAMES, TRADING_TECHNIQUES
from forex_radar.core.usage import UsageLimitExceeded
from forex_radar.sdk.deepseek_client import AnalysisAPIError
from forex_radar.services.webhook import WebhookService
from forex_radar.storage.repository import UsageRepository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1
EXIT_CODE_LIMIT = 2  # Usage limit or plan restriction


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _get_config(ctx: typer.Context) -> AppConfig:
    return ctx.obj or default_app_config()


def _get_repository(config: AppConfig) -> UsageRepository:
    repository = UsageRepository(config.database_path, config.plans)
    repository.initialize()
    return repository


def _image_to_data_uri(path: Path) -> str:
    """Encode an image file as a base64 data URI."""
    mime_type = mimetypes.guess_type(path.name)[0] or "image/png"
    encoded = base64.b64encode(path.read_bytes()).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to YAML configuration file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
):
    """ForexRadar CLI."""
    _configure_logging(verbose)
    if config_path is not None:
        try:
            ctx.obj = load_app_config(str(config_path))
        except (FileNotFoundError, ValueError) as e:
            console.print(f"[red]Error loading config:[/] {e}")
            sys.exit(EXIT_CODE_FAIL)
    if ctx.invoked_subcommand is None:
        console.print("ForexRadar - Use --help to see available commands")


@app.command()
def init(ctx: typer.Context):
    """Initialize the ForexRadar database."""
    try:
        _get_repository(_get_config(ctx))
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def analyze(
    ctx: typer.Context,
    images: List[Path] = typer.Argument(..., exists=True, dir_okay=False, help="Chart screenshot(s)"),
    pair: str = typer.Option("", "--pair", "-p", help="Trading pair; omit to auto-detect"),
    timeframes: Optional[List[str]] = typer.Option(
        None,
        "--timeframe",
        "-t",
        help="Timeframe per image; omit to auto-detect"
    ),
    technique: str = typer.Option("general", "--technique", help="Technique focus for multi-timeframe analysis"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="Meter the analysis against this user"),
):
    """
    Analyze chart screenshots.

    One image runs a single-chart analysis; two or three images run a
    multi-timeframe analysis (Starter and Pro plans).
    """
    config = _get_config(ctx)
    timeframes = timeframes or []
    try:
        repository = _get_repository(config)
        analyzer = ChartAnalyzer(
            client=create_client(config.provider),
            model=config.provider.model,
            repository=repository,
        )

        if len(images) == 1:
            with console.status("Analyzing chart..."):
                result = analyzer.analyze_chart(
                    _image_to_data_uri(images[0]),
                    pair_name=pair,
                    timeframe=timeframes[0] if timeframes else "",
                    user_id=user,
                )
        else:
            charts = [
                ChartInput(
                    base64_image=_image_to_data_uri(image),
                    timeframe=timeframes[index] if index < len(timeframes) else "",
                    pair_name=pair,
                )
                for index, image in enumerate(images)
            ]
            with console.status(f"Analyzing {len(charts)} charts..."):
                result = analyzer.analyze_multi_timeframe(charts, technique=technique, user_id=user)
    except (UsageLimitExceeded, ModeNotAvailable) as e:
        console.print(f"[yellow]{e}[/]")
        sys.exit(EXIT_CODE_LIMIT)
    except (ChartValidationError, AnalysisContentError, AnalysisAPIError, ValueError) as e:
        console.print(f"[red]Analysis failed:[/] {e}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]{result.pair_name}[/bold] · {result.timeframe} · {result.overall_sentiment}")
    console.print("-" * 40)
    console.print(Markdown(result.market_analysis))

    if result.entry_level or result.stop_loss or result.take_profits:
        levels = Table(title="Trade Levels")
        levels.add_column("Level")
        levels.add_column("Price", justify="right")
        if result.entry_level:
            levels.add_row("Entry", result.entry_level)
        if result.stop_loss:
            levels.add_row("Stop Loss", result.stop_loss)
        for index, target in enumerate(result.take_profits, start=1):
            levels.add_row(f"Take Profit {index}", target)
        console.print(levels)


@app.command()
def usage(ctx: typer.Context, user: str = typer.Argument(..., help="User id")):
    """Show a user's analysis usage against plan limits."""
    repository = _get_repository(_get_config(ctx))
    record = repository.check_usage_limits(user)
    clock = compute_server_time()

    table = Table(title=f"Usage for {user} ({record.subscription_tier})")
    table.add_column("Period")
    table.add_column("Used", justify="right")
    table.add_column("Limit", justify="right")
    table.add_column("Remaining", justify="right")
    table.add_row("Today", str(record.daily_count), str(record.daily_limit), str(record.daily_remaining))
    table.add_row("This month", str(record.monthly_count), str(record.monthly_limit), str(record.monthly_remaining))
    console.print(table)

    status = "[green]can analyze[/]" if record.can_analyze else "[red]limit reached[/]"
    console.print(f"Status: {status}")
    console.print(f"Daily reset in {format_countdown(clock['time_until_reset_ms'])}")


@app.command()
def subscribe(
    ctx: typer.Context,
    user: str = typer.Argument(..., help="User id"),
    tier: SubscriptionTier = typer.Option(SubscriptionTier.FREE, "--tier", help="Subscription tier"),
    email: str = typer.Option("", "--email", help="User email"),
):
    """Set a user's subscription tier."""
    repository = _get_repository(_get_config(ctx))
    repository.set_subscription(user, tier, email=email)
    console.print(f"[green]✓[/] {user} is on the {tier.value} plan")


@app.command()
def history(
    ctx: typer.Context,
    user: str = typer.Argument(..., help="User id"),
    limit: int = typer.Option(20, "--limit", "-n", help="Number of analyses to show"),
):
    """List a user's recent analyses."""
    repository = _get_repository(_get_config(ctx))
    records = repository.get_history(user, limit=limit)
    if not records:
        console.print(f"[dim]No analyses recorded for {user}.[/]")
        return

    table = Table(title=f"Analysis history for {user}")
    table.add_column("Date (UTC)")
    table.add_column("Pair")
    table.add_column("Timeframe")
    table.add_column("Sentiment")
    for record in records:
        table.add_row(
            record.created_at.strftime("%Y-%m-%d %H:%M"),
            record.pair_name,
            record.timeframe,
            str(record.analysis_data.get("overall_sentiment", "")),
        )
    console.print(table)


@app.command("server-time")
def server_time():
    """Show the current UTC time and the next daily usage reset."""
    data = compute_server_time()
    console.print(f"Current UTC time: {data['current_utc_time']}")
    console.print(f"Next reset: {data['next_reset_utc']}")
    console.print(f"Time until reset: {format_countdown(data['time_until_reset_ms'])}")


@app.command()
def pairs():
    """List supported trading pairs, timeframes and techniques."""
    table = Table(title="Trading Pairs")
    table.add_column("Pair")
    table.add_column("Description")
    for pair in CURRENCY_PAIRS:
        table.add_row(pair["value"], pair["label"])
    console.print(table)
    console.print(f"\n[bold]Timeframes:[/bold] {', '.join(TIMEFRAMES)}")
    console.print(f"[bold]Techniques:[/bold] {', '.join(t['value'] for t in TRADING_TECHNIQUES)}")


@app.command()
def notify(
    ctx: typer.Context,
    pair: str = typer.Argument(..., help="Trading pair"),
    user: Optional[str] = typer.Option(None, "--user", "-u", help="User id"),
    email: Optional[str] = typer.Option(None, "--email", help="User email"),
):
    """Send an analyze-pair request to the configured workflow webhook."""
    config = _get_config(ctx)
    if not config.webhook_url:
        console.print("[red]Error:[/] no webhook url configured")
        sys.exit(EXIT_CODE_FAIL)

    response = WebhookService(config.webhook_url).send_analysis_request(pair, user_id=user, user_email=email)
    if not response.success:
        console.print(f"[red]Webhook request failed:[/] {response.error}")
        sys.exit(EXIT_CODE_FAIL)
    console.print(f"[green]✓[/] Webhook accepted request for {pair}")


if __name__ == "__main__":
    app()
