"""Typer CLI entrypoint for tweet-harvester."""

from __future__ import annotations

import asyncio
import json
import signal
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import structlog
import typer
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from .agent import run_agent
from .config import AgentConfig, ConfigRepository, GlobalConfig, ServerConfig
from .engine import Record, RecordExtractor
from .engine.dedup import IndexStats
from .logging_conf import configure_logging, default_log_dir, tail_log
from .server import IngestionService, TweetPage, run_server

app = typer.Typer(
    help="tweet-harvester command line tool",
    no_args_is_help=True,
    rich_markup_mode=None,
)
config_app = typer.Typer(
    name="config",
    help="Inspect or initialise the configuration file",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Log viewing commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: GlobalConfig
    logger: structlog.BoundLogger


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    logger = configure_logging(verbose=verbose)
    return AppState(
        repository=repository,
        config=repository.load_global_config(),
        logger=logger,
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _agent_config(
    state: AppState,
    endpoint: Optional[str],
    headless: Optional[bool],
) -> AgentConfig:
    config = state.config.agent
    if endpoint:
        config = config.model_copy(
            update={"sender": config.sender.model_copy(update={"endpoint": endpoint})}
        )
    if headless is not None:
        config = config.model_copy(
            update={"browser": config.browser.model_copy(update={"headless": headless})}
        )
    return config


def _server_config(
    state: AppState,
    host: Optional[str] = None,
    port: Optional[int] = None,
    data_dir: Optional[Path] = None,
) -> ServerConfig:
    updates: dict[str, object] = {}
    if host:
        updates["host"] = host
    if port is not None:
        updates["port"] = port
    if data_dir is not None:
        updates["data_dir"] = data_dir
    config = state.config.server
    if not updates:
        return config
    try:
        return ServerConfig.model_validate({**config.model_dump(), **updates})
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc


def _truncate(text: str, width: int = 60) -> str:
    flat = " ".join(text.split())
    return flat if len(flat) <= width else flat[: width - 1] + "…"


def _render_records_table(records: Sequence[Record], source: Path) -> Table:
    table = Table(
        title=f"{source.name} · {len(records)} records",
        box=box.SIMPLE_HEAD,
        show_lines=False,
    )
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Author", style="magenta")
    table.add_column("Created", style="green")
    table.add_column("Likes", justify="right")
    table.add_column("Views", justify="right")
    table.add_column("Text", overflow="fold")
    for record in records:
        table.add_row(
            record.identity,
            record.author_handle,
            record.created_at or "-",
            record.metrics.likes,
            record.metrics.views,
            _truncate(record.body_text),
        )
    return table


def _render_page_table(page: TweetPage) -> Table:
    table = Table(
        title=f"Stored tweets · page {page.page} · {len(page.tweets)}/{page.total}",
        box=box.SIMPLE_HEAD,
    )
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Author", style="magenta")
    table.add_column("Timestamp", style="green")
    table.add_column("Text", overflow="fold")
    for tweet in page.tweets:
        table.add_row(
            str(tweet.get("tweetId")),
            str(tweet.get("username")),
            str(tweet.get("timestamp") or "-"),
            _truncate(str(tweet.get("text", ""))),
        )
    return table


def _render_stats_table(stats: IndexStats) -> Table:
    table = Table(title="Agent summary", box=box.SIMPLE_HEAD)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("processed", str(stats.processed))
    table.add_row("stored", str(stats.stored))
    table.add_row("sent", str(stats.sent))
    table.add_row("pending", str(stats.pending))
    return table


async def _run_until_signalled(config: AgentConfig, url: Optional[str]) -> IndexStats:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # Windows event loops do not support signal handlers
            pass
    return await run_agent(config, stop_event, url=url)


app.add_typer(config_app, name="config", help="Show or create the configuration file")
app.add_typer(log_app, name="log", help="View log files")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)


@app.command("agent", help="Open the timeline in Chromium and harvest until interrupted.")
def agent_command(
    ctx: typer.Context,
    url: Optional[str] = typer.Option(None, "--url", help="Page to open instead of the configured target."),
    endpoint: Optional[str] = typer.Option(None, "--endpoint", help="Ingestion endpoint receiving batches."),
    headless: Optional[bool] = typer.Option(None, "--headless/--no-headless", help="Run Chromium headless."),
) -> None:
    state = _get_state(ctx)
    config = _agent_config(state, endpoint, headless)
    target = url or config.browser.target_url
    console.print(f"Watching {target} → {config.sender.endpoint}", style="cyan")
    try:
        stats = asyncio.run(_run_until_signalled(config, url))
    except KeyboardInterrupt:
        console.print("Interrupted.", style="yellow")
        return
    except Exception as exc:  # noqa: BLE001
        state.logger.error("agent_failed", error=str(exc))
        console.print(f"Agent failed: {exc}", style="red")
        raise typer.Exit(code=1)
    console.print(_render_stats_table(stats))


@app.command("serve", help="Run the ingestion service.")
def serve_command(
    ctx: typer.Context,
    host: Optional[str] = typer.Option(None, "--host", help="Interface to bind."),
    port: Optional[int] = typer.Option(None, "--port", help="Port to listen on."),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Shard directory."),
) -> None:
    state = _get_state(ctx)
    config = _server_config(state, host, port, data_dir)
    base_dir = state.repository.locator.project_root
    console.print(
        f"Serving on http://{config.host}:{config.port} · data {config.resolved_data_dir(base_dir)}",
        style="cyan",
    )
    if not run_server(config, base_dir, logger=state.logger.bind(component="server")):
        console.print("Server stopped after a fatal error.", style="red")
        raise typer.Exit(code=1)


@app.command("extract", help="Run the extractor over a saved timeline page.")
def extract_command(
    ctx: typer.Context,
    html_file: Path = typer.Argument(..., help="Saved HTML page."),
    as_json: bool = typer.Option(False, "--json", help="Print wire records as JSON.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    if not html_file.is_file():
        console.print(f"File not found: {html_file}", style="red")
        raise typer.Exit(code=1)
    extractor = RecordExtractor(state.config.agent.selectors, logger=state.logger)
    records = extractor.extract_page(html_file.read_text(encoding="utf-8"))
    if as_json:
        typer.echo(json.dumps([record.to_wire() for record in records], ensure_ascii=False, indent=2))
        return
    if not records:
        console.print("No records found.", style="dim")
        return
    console.print(_render_records_table(records, html_file))


@app.command("tweets", help="Show one page of stored tweets, newest first.")
def tweets_command(
    ctx: typer.Context,
    page: int = typer.Option(1, "--page", min=1, help="Page number."),
    limit: Optional[int] = typer.Option(None, "--limit", min=1, help="Tweets per page."),
    data_dir: Optional[Path] = typer.Option(None, "--data-dir", help="Shard directory."),
) -> None:
    state = _get_state(ctx)
    config = _server_config(state, data_dir=data_dir)
    service = IngestionService.from_config(
        config, state.repository.locator.project_root, logger=state.logger
    )

    async def _read() -> TweetPage:
        try:
            return await service.read_page(page, limit or config.default_page_limit)
        finally:
            await service.close()

    result = asyncio.run(_read())
    if not result.tweets:
        console.print(f"No stored tweets on page {result.page} (total {result.total}).", style="dim")
        return
    console.print(_render_page_table(result))


@config_app.command("show", help="Print the effective configuration as YAML.")
def config_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    path = state.repository.locator.global_config_path()
    origin = str(path) if path.exists() else "built-in defaults"
    typer.echo(f"# {origin}")
    typer.echo(yaml.safe_dump(state.config.model_dump(mode="json"), allow_unicode=True, sort_keys=False))


@config_app.command("init", help="Write the default configuration file.")
def config_init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    path = state.repository.locator.global_config_path()
    if path.exists() and not force:
        console.print(f"Configuration already exists: {path}", style="yellow")
        raise typer.Exit(code=1)
    written = state.repository.save_global_config(GlobalConfig())
    console.print(f"Configuration written to {written}", style="green")


@log_app.command("show", help="Show the most recent log lines.")
def log_show(
    tail: int = typer.Option(100, "--tail", min=1, help="Number of lines to show."),
    errors: bool = typer.Option(False, "--errors", help="Show error.log instead.", is_flag=True),
) -> None:
    path = default_log_dir() / ("error.log" if errors else "harvester.log")
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
