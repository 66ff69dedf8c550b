"""Click CLI for ghdeck."""

import asyncio
from pathlib import Path
from typing import Optional

import click
from trogon import tui

from ghdeck import __version__
from ghdeck.config import DashConfig, ViewType
from ghdeck.data.fetcher import GitHubFetcher
from ghdeck.data.gh import CommandRunner
from ghdeck.data.git import Git
from ghdeck.data.github import GitHubClient, resolve_token
from ghdeck.data.store import StateStore
from ghdeck.engine.host import SectionHost
from ghdeck.engine.loop import UpdateLoop
from ghdeck.engine.mutations import MutationContext
from ghdeck.engine.section import Section, UpdateOutcome
from ghdeck.exceptions import ConfigError
from ghdeck.logging_utils import get_log_path, setup_logging

VIEW_CHOICE = click.Choice([v.value for v in ViewType])


def load_config() -> DashConfig:
    """Load the config file, reporting problems as CLI errors."""
    try:
        return DashConfig.load()
    except ConfigError as e:
        raise click.ClickException(str(e)) from e


def build_host(
    config: DashConfig,
    client: GitHubClient,
    repo_path: Optional[Path] = None,
    store: Optional[StateStore] = None,
) -> SectionHost:
    """Wire the GitHub client, git, and the state store into a section host.

    The caller owns ``client`` and closes it when the command ends.
    """
    git = Git(repo_path)
    in_repo = git.is_repo()
    repo = git.remote_repo() if in_repo else None
    store = store or StateStore()

    context = MutationContext(
        runner=CommandRunner(),
        git_runner=git.runner,
        store=store,
        label_loader=client.get_repo_labels,
        login_loader=client.get_current_login,
    )
    fetcher = GitHubFetcher(client, store, git if in_repo else None)
    return SectionHost(config, fetcher, mutation_context=context, repo=repo)


@tui()
@click.group()
@click.version_option(version=__version__, prog_name="ghdeck")
def cli() -> None:
    """ghdeck - GitHub dashboard for the terminal.

    Sections of pull requests, issues, notifications and local branches,
    each a saved search you can page through and act on.

    Quick start:
        ghdeck dashboard          Launch interactive TUI dashboard
        ghdeck tui                Launch command explorer (Trogon)
        ghdeck sections           List configured sections
        ghdeck fetch "Involved"   Print one section's rows
    """


@cli.command()
@click.option("--view", "-v", type=VIEW_CHOICE, help="View to open (default from config)")
@click.option("--debug", is_flag=True, help="Write debug logging to the log file")
@click.option(
    "--repo",
    "repo_path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Clone used for smart filtering and the repo view (default: cwd)",
)
def dashboard(view: Optional[str], debug: bool, repo_path: Optional[Path]) -> None:
    """Launch the interactive TUI dashboard.

    Keyboard shortcuts:
        j/k - Move down / up
        h/l - Previous / next section
        s - Switch view
        / - Search
        r - Refresh, R - Refresh all
        o - Open in browser
        p - Toggle preview
        x/X - Close / reopen
        m - Merge, W - Ready for review
        c - Comment, a/A - Assign / unassign, L - Labels
        d - Done, u - Read, U - Read all, b - Bookmark
        D - Delete branch, P - Create PR
        e - Dismiss error
        q - Quit
    """
    setup_logging(debug)
    config = load_config()
    if view:
        config.defaults.view = view

    from ghdeck.tui import DashApp

    with GitHubClient(token=resolve_token()) as client:
        app = DashApp(build_host(config, client, repo_path), config)
        app.run()


@cli.command()
@click.option("--view", "-v", type=VIEW_CHOICE, default=ViewType.PRS.value, show_default=True)
def sections(view: str) -> None:
    """List configured sections for a view."""
    config = load_config()
    view_type = ViewType(view)
    click.echo(f"\n📋 {view_type.value} sections:")
    click.echo("=" * 50)
    for index, section in enumerate(config.sections_for(view_type), start=1):
        limit = config.limit_for(view_type, section)
        click.echo(f"  {index}. {section.title}")
        click.echo(f"     filters: {section.filters or '(none)'}  limit: {limit}")


def _find_section_id(config: DashConfig, view: ViewType, title: str) -> int:
    for index, section in enumerate(config.sections_for(view), start=1):
        if section.title.lower() == title.lower():
            return index
    raise click.ClickException(f"No {view.value} section titled '{title}'")


async def fetch_pages(host: SectionHost, view: ViewType, section_id: int, pages: int) -> Section:
    """Load up to ``pages`` pages of one section on the asyncio update loop."""
    loaded = 0

    def on_update(msg, outcome):
        nonlocal loaded
        section = host.get_section(section_id, view)
        if section is None or outcome != UpdateOutcome.APPLIED or msg.task_id != section.last_fetch_task_id:
            return []
        loaded += 1
        if loaded >= pages:
            return []
        return host.start(section.fetch_next_page())

    loop = UpdateLoop(host, on_update=on_update)
    await loop.run_until_idle(host.open_section(view, section_id))
    return host.get_section(section_id, view)


@cli.command()
@click.argument("title")
@click.option("--view", "-v", type=VIEW_CHOICE, default=ViewType.PRS.value, show_default=True)
@click.option("--pages", "-n", default=1, show_default=True, help="Number of pages to load")
@click.option("--limit", "-l", type=int, help="Rows per page (default from config)")
@click.option("--debug", is_flag=True, help="Write debug logging to the log file")
def fetch(title: str, view: str, pages: int, limit: Optional[int], debug: bool) -> None:
    """Print the rows of the section called TITLE."""
    setup_logging(debug)
    config = load_config()
    view_type = ViewType(view)
    section_id = _find_section_id(config, view_type, title)
    if limit:
        config.sections_for(view_type)[section_id - 1].limit = limit

    with GitHubClient(token=resolve_token()) as client:
        host = build_host(config, client)
        section = asyncio.run(fetch_pages(host, view_type, section_id, max(1, pages)))

    error = host.registry.last_error
    if error is not None:
        raise click.ClickException(error.text)

    click.echo(f"\n📋 {section.title} ({len(section.rows)}/{section.total_count or len(section.rows)})")
    click.echo("=" * 50)
    if not section.rows:
        click.echo("No results.")
        return
    for cells in section.display_rows():
        click.echo("  " + "  ".join(cell for cell in cells if cell))


# =============================================================================
# Config Commands
# =============================================================================


@cli.group()
def config() -> None:
    """Inspect and create the config file."""


@config.command("path")
def config_path() -> None:
    """Print the config file location."""
    click.echo(str(DashConfig.get_config_path()))


@config.command("show")
def config_show() -> None:
    """Print the effective configuration."""
    cfg = load_config()
    click.echo(f"Config: {DashConfig.get_config_path()}")
    click.echo(f"Default view: {cfg.defaults.view}")
    click.echo(f"Theme: {cfg.theme}")
    click.echo(f"Smart filtering at launch: {cfg.smart_filtering_at_launch}")
    click.echo(f"Refetch every {cfg.defaults.refetch_interval_minutes} minutes")
    for view in (ViewType.PRS, ViewType.ISSUES, ViewType.NOTIFICATIONS):
        click.echo(f"\n{view.value}:")
        for section in cfg.sections_for(view):
            click.echo(f"  - {section.title}: {section.filters or '(none)'}")


@config.command("init")
@click.option("--force", "-f", is_flag=True, help="Overwrite an existing file")
def config_init(force: bool) -> None:
    """Write a config file with the default sections."""
    path = DashConfig.get_config_path()
    if path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")
    DashConfig().save(path)
    click.echo(f"✅ Wrote {path}")


# =============================================================================
# State Commands
# =============================================================================


@cli.group()
def state() -> None:
    """Manage locally persisted notification state."""


@state.command("clear")
@click.option("--done", "clear_done", is_flag=True, help="Forget notifications marked done")
@click.option("--bookmarks", "clear_bookmarks", is_flag=True, help="Forget bookmarks")
def state_clear(clear_done: bool, clear_bookmarks: bool) -> None:
    """Reset done markers and/or bookmarks (both when no flag is given)."""
    if not clear_done and not clear_bookmarks:
        clear_done = clear_bookmarks = True
    store = StateStore()
    if clear_done:
        click.echo(f"Cleared {store.clear_done()} done notifications")
    if clear_bookmarks:
        click.echo(f"Cleared {store.clear_bookmarks()} bookmarks")


@cli.command()
def logs() -> None:
    """Print the debug log location."""
    click.echo(str(get_log_path()))


if __name__ == "__main__":
    cli()
