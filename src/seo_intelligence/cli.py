"""
Command-line interface for the SEO intelligence core.

Provides local commands for auditing a saved page and generating
title/description variants.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .audit import AuditOptions
from .document import ParseError
from .models import ValidationError
from .service import create_service
from .variants import VariantOptions

console = Console()

TASK_ALIASES = {
    "title": "title-variants",
    "description": "description-variants",
    "keywords": "keyword-suggestions",
    "text": "free-text",
}

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "info": "dim",
}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


@click.group()
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    default=False,
    help="Enable verbose output.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """
    SEO Intelligence - audit pages and generate meta tag variants.

    Examples:

        seo-intel audit page.html --url https://example.com/page

        seo-intel variants --task title --title "Coffee Brewing" -k "pour over coffee"
    """
    _configure_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose


@main.command()
@click.argument("source", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--url", type=str, help="Source URL of the page.")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the result as JSON.")
@click.option(
    "--suggest",
    is_flag=True,
    default=False,
    help="Generate title/description variants for metadata issues.",
)
@click.option("--keyword", "-k", "keywords", multiple=True, help="Target keyword (repeatable).")
def audit(source: Path, url: Optional[str], as_json: bool, suggest: bool, keywords: tuple[str, ...]) -> None:
    """Audit a saved HTML page or text file."""
    service = create_service()
    options = AuditOptions(url=url, suggest_variants=suggest, keywords=keywords)

    try:
        result = service.run_audit(source.read_bytes(), options)
    except ParseError as e:
        console.print(f"[red]Parse error:[/red] {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    _display_audit(result)


@main.command()
@click.option(
    "--task",
    type=click.Choice(sorted(TASK_ALIASES)),
    default="title",
    show_default=True,
    help="What to generate.",
)
@click.option("--title", type=str, default="", help="Current page title.")
@click.option("--excerpt", type=str, default="", help="Current meta description.")
@click.option(
    "--content-file",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="File with the page content.",
)
@click.option("--text", type=str, default="", help="Instruction for free-text generation.")
@click.option("--brand", type=str, default="", help="Brand name.")
@click.option("--keyword", "-k", "keywords", multiple=True, help="Target keyword (repeatable).")
@click.option("--count", type=int, default=None, help="Number of variants (1-10).")
def variants(
    task: str,
    title: str,
    excerpt: str,
    content_file: Optional[Path],
    text: str,
    brand: str,
    keywords: tuple[str, ...],
    count: Optional[int],
) -> None:
    """Generate ranked title/description variants or keyword suggestions."""
    service = create_service()
    payload = {
        "title": title,
        "excerpt": excerpt,
        "content": content_file.read_text(encoding="utf-8") if content_file else "",
        "text": text,
        "brand": brand,
        "keywords": list(keywords),
    }

    try:
        result = service.generate_variants(
            TASK_ALIASES[task], payload, VariantOptions(count=count)
        )
    except ValidationError as e:
        console.print(f"[red]Invalid request:[/red] {e}")
        sys.exit(1)

    _display_variants(result)

    usage = service.ledger.daily_total()
    console.print(
        f"\n[dim]Today: {usage.total.requests} provider calls, "
        f"{usage.total.total_tokens} tokens, ${usage.total.cost:.4f}[/dim]"
    )


def _display_audit(result) -> None:
    """Display audit scores and recommendations."""
    console.print(Panel.fit(
        f"[bold blue]Overall: {result.overall}/100[/bold blue]  Grade: [bold]{result.grade}[/bold]",
        border_style="blue",
    ))

    score_table = Table(title="Component Scores", show_header=True)
    score_table.add_column("Component", style="cyan")
    score_table.add_column("Score", justify="right")
    score_table.add_column("Issues", justify="right")

    for component, section in result.scores.items():
        score_table.add_row(component.value, str(section.score), str(len(section.issues)))

    console.print(score_table)

    if result.recommendations:
        rec_table = Table(title="Recommendations", show_header=True)
        rec_table.add_column("Severity")
        rec_table.add_column("Component", style="cyan")
        rec_table.add_column("Issue")

        for rec in result.recommendations:
            style = SEVERITY_STYLES.get(rec.severity.value, "")
            rec_table.add_row(
                f"[{style}]{rec.severity.value}[/{style}]",
                rec.component.value,
                rec.message,
            )

        console.print(rec_table)

    for name, suggestion in result.suggestions.items():
        console.print(f"\n[bold]Suggested {name}s[/bold] ({suggestion.provider})")
        for candidate in suggestion.candidates:
            console.print(f"  - {candidate}")


def _display_variants(result) -> None:
    """Display ranked candidates."""
    source = "cache" if result.served_from_cache else result.provider
    console.print(f"[bold]Candidates[/bold] [dim](from {source})[/dim]")

    if not result.variants:
        for candidate in result.candidates:
            console.print(f"  - {candidate}")
        return

    table = Table(show_header=True)
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right")
    table.add_column("Length", justify="right")
    table.add_column("Text")
    table.add_column("Note", style="yellow")

    for index, variant in enumerate(result.variants, 1):
        table.add_row(
            str(index),
            str(variant.score),
            str(variant.length),
            variant.text,
            variant.warning or "",
        )

    console.print(table)


def run_cli() -> None:
    """Entry point for the CLI."""
    main()


if __name__ == "__main__":
    run_cli()
