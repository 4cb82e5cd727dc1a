"""Command-line entry points for the objective news pipeline."""

import asyncio
import json
from pathlib import Path
from typing import Any, List, Optional

import typer
from pydantic import BaseModel
from rich import print as rprint
from rich.markup import escape

from . import NAME
from .config import configure_logging, get_settings
from .errors import OrchestrationFailed
from .models import NewsItem, NewsResponse
from .orchestrator import build_orchestrator, normalize_category

app = typer.Typer(help=f"{NAME}: trending Spanish news, summarized objectively.")


def _to_plain(value: Any) -> Any:
    """Convert pydantic models, Paths, and containers into JSON-serializable primitives."""
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, BaseModel):
        return value.model_dump(by_alias=True)
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_to_plain(item) for item in value]
    return value


def format_markdown(category: str, news_list: List[NewsItem]) -> str:
    """Render a news list as Markdown, one section per story."""
    lines = [f"# Últimas noticias en {category}", ""]
    if not news_list:
        lines.append("No se encontraron noticias hoy.")
        return "\n".join(lines) + "\n"
    for item in news_list:
        lines.extend([f"## {item.title}", "", item.summary, ""])
        if item.sources:
            lines.append("Perspectivas de los medios:")
            lines.extend(f"- **{source.name}:** {source.summary}" for source in item.sources)
            lines.append("")
    return "\n".join(lines)


def _write_output(out_path: Path, markdown: str, json_payload: dict) -> None:
    suffix = out_path.suffix.lower()
    if suffix == ".json":
        out_path.write_text(
            json.dumps(json_payload, ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
    else:
        out_path.write_text(markdown, encoding="utf-8")


def _print_news(category: str, news_list: List[NewsItem]) -> None:
    rprint(f"[bold]Últimas noticias en {escape(category)}[/bold]")
    if not news_list:
        rprint("[yellow]No se encontraron noticias hoy.[/yellow]")
        return
    for idx, item in enumerate(news_list, start=1):
        rprint(f"\n[bold cyan]{idx}. {escape(item.title)}[/bold cyan]")
        rprint(escape(item.summary))
        for source in item.sources:
            rprint(f"  [green]{escape(source.name)}:[/green] {escape(source.summary)}")


@app.command("news")
def news_command(
    category: Optional[str] = typer.Argument(
        None, help="News category (e.g. economía). Defaults to DEFAULT_CATEGORY."
    ),
    out: Optional[Path] = typer.Option(
        None,
        "--out",
        "-o",
        help="Optional path to write output (.md or .json). Defaults to stdout.",
    ),
    log_level: Optional[str] = typer.Option(
        None, "--log-level", help="Override LOG_LEVEL for this run."
    ),
):
    """
    Fetch trending news for a category and cross-reference each story.

    Exits with code 1 when the trending list cannot be fetched, 2 on timeout.
    """
    settings = get_settings()
    configure_logging(log_level or settings.log_level)
    normalized = normalize_category(category, default=settings.default_category)

    try:
        orchestrator = build_orchestrator(settings)
    except RuntimeError as exc:
        raise typer.BadParameter(str(exc)) from exc

    try:
        news_list = asyncio.run(orchestrator.fetch_news(normalized))
    except OrchestrationFailed as exc:
        label = "Timed out" if exc.timed_out else "Failed"
        rprint(f"[red]{label} loading news for {escape(normalized)}: {escape(str(exc))}[/red]")
        raise typer.Exit(code=2 if exc.timed_out else 1) from exc

    if out:
        payload = _to_plain(NewsResponse(category=normalized, news_list=news_list))
        _write_output(out, format_markdown(normalized, news_list), payload)
        rprint(f"[cyan]Wrote {len(news_list)} stories to {out}[/cyan]")
    else:
        _print_news(normalized, news_list)


@app.command("categories")
def categories_command():
    """List the configured categories and outlets."""
    settings = get_settings()
    rprint("[bold]Categories:[/bold] " + ", ".join(settings.categories))
    rprint("[bold]Sources:[/bold] " + ", ".join(settings.sources))


@app.command("serve")
def serve_command(
    host: Optional[str] = typer.Option(None, help="Bind host (default BRIEF_HOST or 0.0.0.0)."),
    port: Optional[int] = typer.Option(None, help="Bind port (default BRIEF_PORT or 8000)."),
    reload: bool = typer.Option(False, "--reload", help="Enable auto-reload."),
):
    """Run the JSON API with uvicorn."""
    from .server import run_server

    run_server(host=host, port=port, reload=reload)


def main():
    app()


if __name__ == "__main__":
    main()
