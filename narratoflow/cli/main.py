"""
CLI interface for NarratoFlow.

Provides command-line access to story generation and usage statistics.
"""

import logging
import sqlite3
import sys
from pathlib import Path
from typing import Optional

import typer
from fpdf.errors import FPDFException
from openai import OpenAIError
from rich.console import Console
from rich.table import Table

from narratoflow.config.loader import AppConfig, load_config
from narratoflow.core.errors import NarratoFlowError, QuotaExceededError, RateLimitedError
from narratoflow.core.governor import DisplaySnapshot, RequestGovernor
from narratoflow.core.pdf_export import PDF_TITLE, write_story_pdf
from narratoflow.core.story import DEFAULT_THEME, THEME_PROMPTS, load_csv
from narratoflow.core.usage_store import UsageStore
from narratoflow.sdk.story_client import StoryGenerator
from narratoflow.storage.models import ErrorCategory
from narratoflow.storage.repository import StateRepository

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

CONFIG_OPTION = typer.Option(None, "--config", "-c", help="Path to YAML configuration file")


def build_governor(config: AppConfig) -> RequestGovernor:
    """Wire the repository, usage store and governor for a config."""
    repository = StateRepository(config.monitoring.storage.db_path)
    usage_store = UsageStore(repository, config.monitoring)
    return RequestGovernor(
        usage_store,
        rate_limit_per_min=config.api.rate_limit_per_min,
        retry_strategy=config.monitoring.retry_strategy,
    )


def _load_config_or_exit(path: Optional[str]) -> AppConfig:
    try:
        return load_config(path)
    except Exception as e:
        console.print(f"[red]Invalid configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    log_level: str = typer.Option("warning", "--log-level", help="debug, info, warning or error"),
):
    """NarratoFlow CLI."""
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.WARNING),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )
    if ctx.invoked_subcommand is None:
        console.print("NarratoFlow - Use --help to see available commands")


@app.command()
def init(config_path: Optional[str] = CONFIG_OPTION):
    """Initialize the usage database."""
    config = _load_config_or_exit(config_path)
    try:
        StateRepository(config.monitoring.storage.db_path).initialize_schema()
        console.print("[green]✓[/] Database initialized successfully")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error initializing database:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


@app.command()
def generate(
    csv_path: str = typer.Argument(..., help="CSV file to narrate"),
    theme: str = typer.Option(
        DEFAULT_THEME,
        "--theme",
        "-t",
        help=f"Story theme: {', '.join(THEME_PROMPTS)}"
    ),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Also write the story to this file (PDF if it ends in .pdf)"
    ),
    config_path: Optional[str] = CONFIG_OPTION,
):
    """
    Generate a narrative from a CSV file.

    A sample of the rows is sent to the model. The request is rate limited,
    retried on transient failures and counted against the monthly quota.
    """
    config = _load_config_or_exit(config_path)

    try:
        sample = load_csv(csv_path)
        generator = StoryGenerator(config, build_governor(config))
        result = generator.generate(sample, theme)
    except RateLimitedError as e:
        console.print(f"[yellow]{e.message}[/]")
        sys.exit(EXIT_CODE_FAIL)
    except QuotaExceededError as e:
        console.print(f"[red]{e.message}[/]")
        sys.exit(EXIT_CODE_FAIL)
    except (NarratoFlowError, OpenAIError, ValueError, FileNotFoundError, sqlite3.Error) as e:
        console.print(f"[red]Failed to generate story:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    console.print(f"\n[bold]{PDF_TITLE}[/bold] ({theme})")
    console.print("-" * 40)
    console.print(result.text)

    if output:
        try:
            if Path(output).suffix.lower() == ".pdf":
                write_story_pdf(output, result.text, theme)
            else:
                Path(output).write_text(result.text, encoding="utf-8")
        except (OSError, ValueError, FPDFException) as e:
            console.print(f"[red]Failed to write story:[/] {str(e)}")
            sys.exit(EXIT_CODE_FAIL)
        console.print(f"\n[green]✓[/] Story written to {output}")

    if result.usage.warning_triggered:
        console.print(
            f"\n[yellow]Warning: API usage is at "
            f"{result.usage.usage_percentage:.1f}% of monthly quota[/]"
        )
    sys.exit(EXIT_CODE_PASS)


@app.command()
def usage(config_path: Optional[str] = CONFIG_OPTION):
    """Show API usage statistics for the current billing period."""
    config = _load_config_or_exit(config_path)
    if not config.monitoring.enabled:
        console.print("[dim]Usage monitoring is disabled.[/]")
        sys.exit(EXIT_CODE_PASS)

    try:
        snapshot = build_governor(config).snapshot_for_display()
    except Exception as e:
        console.print(f"[red]Error reading usage statistics:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_usage(snapshot)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def reset(config_path: Optional[str] = CONFIG_OPTION):
    """Start a new billing period now."""
    config = _load_config_or_exit(config_path)
    try:
        build_governor(config).usage_store.reset()
        console.print("[green]✓[/] Usage statistics reset")
        sys.exit(EXIT_CODE_PASS)
    except Exception as e:
        console.print(f"[red]Error resetting usage statistics:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)


def _format_tokens(count: int) -> str:
    return f"{count:,}"


def _display_usage(snapshot: DisplaySnapshot):
    """Render the usage panel."""
    stats = snapshot.usage
    rate = snapshot.rate_limit

    table = Table(title="API Usage Statistics")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Requests", str(stats.request_count))
    table.add_row("Success Rate", f"{stats.success_rate:.1f}%")
    table.add_row("Token Usage", _format_tokens(stats.token_usage))
    table.add_row("Remaining Quota", _format_tokens(stats.remaining_quota))
    table.add_row("Quota Used", f"{stats.usage_percentage:.1f}%")
    table.add_row("Period Start", stats.last_reset.strftime("%Y-%m-%d"))
    table.add_row("Requests This Minute", f"{rate.current_requests}/{rate.max_requests}")
    console.print(table)

    if rate.is_limited:
        console.print(
            f"[yellow]Rate limited. Resets in {rate.time_to_reset / 1000:.0f}s[/]"
        )

    if stats.failure_count:
        breakdown = Table(title="Errors by Category")
        breakdown.add_column("Category")
        breakdown.add_column("Count", justify="right")
        for category in ErrorCategory:
            breakdown.add_row(category.value, str(stats.error_categories.get(category, 0)))
        console.print(breakdown)

    if stats.recent_errors:
        console.print("\n[bold]Recent Errors[/bold]")
        for entry in stats.recent_errors:
            console.print(f"[dim]{entry.timestamp:%Y-%m-%d %H:%M:%S}[/] {entry.message}")


if __name__ == "__main__":
    app()
