"""CLI entrypoint — usagelens stats, projects, sessions, search, show, source, serve."""

from __future__ import annotations

import logging

import click

from usagelens.config import DATA_SOURCES, load_config
from usagelens.cost import model_display_name
from usagelens.datasource import active_data_root, active_data_source, set_data_source
from usagelens.models import SessionSummary
from usagelens.reader import make_cache, reader_for_config
from usagelens.snapshot import SnapshotError


def _format_duration(ms: int) -> str:
    minutes, seconds = divmod(ms // 1000, 60)
    hours, minutes = divmod(minutes, 60)
    if hours:
        return f"{hours}h{minutes:02d}m"
    return f"{minutes}m{seconds:02d}s"


def _echo_session(s: SessionSummary) -> None:
    click.echo(
        f"  {s.timestamp[:16].replace('T', ' ')}  {s.id}  {s.project_name}  "
        f"{s.message_count} msgs, {_format_duration(s.duration)}, "
        f"${s.estimated_cost:.2f} ({model_display_name(s.model)})"
    )


def _reader():
    config = load_config()
    return reader_for_config(config, make_cache(config))


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log debug output to stderr.")
def cli(verbose: bool):
    """usagelens — usage and cost analytics for coding-assistant session logs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@cli.command()
def stats():
    """Print reconciled totals to terminal."""
    try:
        dashboard = _reader().get_dashboard_stats()
    except SnapshotError as exc:
        click.echo(str(exc), err=True)
        raise SystemExit(1)

    if dashboard.total_sessions == 0:
        click.echo("No sessions found.")
        return

    click.echo(
        f"{dashboard.total_sessions} sessions, {dashboard.total_messages} messages "
        f"across {dashboard.project_count} projects. "
        f"Total tokens: {dashboard.total_tokens:,}. "
        f"Est. cost: ${dashboard.estimated_cost:.2f}."
    )
    if dashboard.first_session_date:
        click.echo(f"First session: {dashboard.first_session_date}.")

    click.echo("\nBy model:")
    for model, usage in sorted(
        dashboard.model_usage.items(), key=lambda kv: kv[1].estimated_cost, reverse=True,
    ):
        click.echo(f"  {model}: ${usage.estimated_cost:.2f}")

    if dashboard.recent_sessions:
        click.echo("\nRecent sessions:")
        for s in dashboard.recent_sessions:
            _echo_session(s)


@cli.command()
def projects():
    """List projects, most recently active first."""
    found = _reader().get_projects()
    if not found:
        click.echo("No projects found.")
        return
    for p in found:
        click.echo(
            f"  {p.name}: {p.session_count} sessions, {p.total_messages} msgs, "
            f"${p.estimated_cost:.2f}, last active {p.last_active[:10]}"
        )


@cli.command()
@click.option("--limit", default=50, show_default=True, help="Maximum sessions to list.")
@click.option("--offset", default=0, show_default=True, help="Sessions to skip.")
@click.option("--project", default=None, help="Only sessions of this project id.")
def sessions(limit: int, offset: int, project: str | None):
    """List sessions, newest first."""
    reader = _reader()
    if project:
        found = reader.get_project_sessions(project)
    else:
        found = reader.get_sessions(limit=limit, offset=offset)
    if not found:
        click.echo("No sessions found.")
        return
    for s in found:
        _echo_session(s)


@cli.command()
@click.argument("query")
@click.option("--limit", default=50, show_default=True, help="Maximum matches.")
def search(query: str, limit: int):
    """Find sessions whose messages contain QUERY (case-insensitive)."""
    found = _reader().search_sessions(query, limit=limit)
    if not found:
        click.echo(f"No sessions match '{query}'.")
        return
    for s in found:
        _echo_session(s)


@cli.command()
@click.argument("session_id")
def show(session_id: str):
    """Print one session's summary and transcript."""
    detail = _reader().get_session_detail(session_id)
    if detail is None:
        click.echo(f"Session '{session_id}' not found.", err=True)
        raise SystemExit(1)

    s = detail.summary
    click.echo(
        f"{s.id} ({s.project_name}): {s.message_count} messages, "
        f"{s.tool_call_count} tool calls, ${s.estimated_cost:.4f}"
    )
    if s.compaction.full_count or s.compaction.micro_count:
        click.echo(
            f"Compactions: {s.compaction.full_count} full, "
            f"{s.compaction.micro_count} micro ({s.compaction.total_tokens_saved:,} tokens saved)"
        )
    for m in detail.messages:
        click.echo(f"\n[{m.timestamp}] {m.role}:")
        click.echo(m.content)


@cli.command()
@click.argument("source", required=False, type=click.Choice(DATA_SOURCES))
def source(source: str | None):
    """Show or switch the data source (live or imported)."""
    config = load_config()
    if source:
        set_data_source(config, source)
    click.echo(f"Active data source: {active_data_source(config)} ({active_data_root(config)})")


@cli.command()
@click.option("--port", default=None, type=int, help="Port to serve on (default: 8787).")
def serve(port: int | None):
    """Start the stats API server."""
    config = load_config()
    serve_port = port or config.port

    click.echo(f"Serving stats API at http://localhost:{serve_port}/api/stats")
    click.echo("Press Ctrl+C to stop.")

    from usagelens.web.app import create_app

    app = create_app(config)
    app.run(host="localhost", port=serve_port)
