"""Tests for the ghdeck CLI."""

import pytest
from click.testing import CliRunner

from ghdeck import cli as cli_module
from ghdeck.cli import cli
from ghdeck.config import CONFIG_ENV_VAR
from ghdeck.engine.host import SectionHost
from ghdeck.engine.mutations import MutationContext
from ghdeck.exceptions import FetchError

from conftest import FakeClock, FakeFetcher, FakeRunner, make_pr


@pytest.fixture
def runner() -> CliRunner:
    """Create a CLI test runner."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_dirs(tmp_path, monkeypatch):
    """Keep config and state out of the real home directory."""
    monkeypatch.setenv(CONFIG_ENV_VAR, str(tmp_path / "config.yml"))
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "state"))
    yield tmp_path


class RecordingClient:
    """Stands in for GitHubClient and records whether it was closed."""

    instances: list = []

    def __init__(self, token=None):
        self.token = token
        self.closed = False
        RecordingClient.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.closed = True


@pytest.fixture(autouse=True)
def offline_client(monkeypatch):
    """Never reach GitHub or the gh CLI from CLI tests."""
    RecordingClient.instances = []
    monkeypatch.setattr(cli_module, "GitHubClient", RecordingClient)
    monkeypatch.setattr(cli_module, "resolve_token", lambda: "token")
    yield RecordingClient


def fake_host(fetcher):
    def build(config, client, repo_path=None, store=None):
        return SectionHost(config, fetcher, mutation_context=MutationContext(runner=FakeRunner()), clock=FakeClock())

    return build


class TestCLI:
    """Tests for the main CLI."""

    def test_cli_version(self, runner: CliRunner) -> None:
        """Test CLI version option."""
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_cli_help(self, runner: CliRunner) -> None:
        """Test CLI help output."""
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "ghdeck" in result.output
        assert "dashboard" in result.output
        assert "tui" in result.output


class TestSectionsCommand:
    """Tests for listing sections."""

    def test_default_sections(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["sections"])
        assert result.exit_code == 0
        assert "My Pull Requests" in result.output
        assert "is:open review-requested:@me" in result.output

    def test_notification_sections(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["sections", "--view", "notifications"])
        assert result.exit_code == 0
        assert "Review Requested" in result.output

    def test_bad_config_reported(self, runner: CliRunner, isolated_dirs) -> None:
        (isolated_dirs / "config.yml").write_text("pr_sections: [\n")
        result = runner.invoke(cli, ["sections"])
        assert result.exit_code == 1
        assert "failed to parse" in result.output


class TestFetchCommand:
    """Tests for the headless fetch command."""

    def test_fetch_prints_rows(self, runner: CliRunner, monkeypatch) -> None:
        fetcher = FakeFetcher()
        fetcher.queue([make_pr(1, title="Add cache"), make_pr(2, title="Fix loop")], total=2)
        monkeypatch.setattr(cli_module, "build_host", fake_host(fetcher))

        result = runner.invoke(cli, ["fetch", "My Pull Requests"])

        assert result.exit_code == 0, result.output
        assert "#1 Add cache" in result.output
        assert "#2 Fix loop" in result.output
        assert len(fetcher.calls) == 1
        assert fetcher.calls[0][2] == 20

    def test_fetch_closes_client(self, runner: CliRunner, monkeypatch, offline_client) -> None:
        fetcher = FakeFetcher()
        fetcher.queue([make_pr(1)])
        monkeypatch.setattr(cli_module, "build_host", fake_host(fetcher))

        result = runner.invoke(cli, ["fetch", "My Pull Requests"])

        assert result.exit_code == 0, result.output
        (client,) = offline_client.instances
        assert client.token == "token"
        assert client.closed

    def test_fetch_several_pages_with_limit(self, runner: CliRunner, monkeypatch) -> None:
        fetcher = FakeFetcher()
        fetcher.queue([make_pr(1)], has_next=True, cursor="p1")
        fetcher.queue([make_pr(2)], has_next=True, cursor="p2")
        fetcher.queue([make_pr(3)], has_next=True, cursor="p3")
        monkeypatch.setattr(cli_module, "build_host", fake_host(fetcher))

        result = runner.invoke(cli, ["fetch", "involved", "--pages", "2", "--limit", "1"])

        assert result.exit_code == 0, result.output
        assert len(fetcher.calls) == 2
        assert fetcher.calls[0][2] == 1
        assert "#2 PR 2" in result.output
        assert "#3" not in result.output

    def test_fetch_unknown_section(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["fetch", "Nope"])
        assert result.exit_code == 1
        assert "No prs section titled 'Nope'" in result.output

    def test_fetch_error(self, runner: CliRunner, monkeypatch) -> None:
        fetcher = FakeFetcher([FetchError("done notifications cannot be retrieved")])
        monkeypatch.setattr(cli_module, "build_host", fake_host(fetcher))
        result = runner.invoke(cli, ["fetch", "All", "--view", "notifications"])
        assert result.exit_code == 1
        assert "done notifications cannot be retrieved" in result.output


class TestConfigCommands:
    """Tests for the config command group."""

    def test_config_path(self, runner: CliRunner, isolated_dirs) -> None:
        result = runner.invoke(cli, ["config", "path"])
        assert result.exit_code == 0
        assert str(isolated_dirs / "config.yml") in result.output

    def test_config_init(self, runner: CliRunner, isolated_dirs) -> None:
        result = runner.invoke(cli, ["config", "init"])
        assert result.exit_code == 0
        assert (isolated_dirs / "config.yml").exists()

        again = runner.invoke(cli, ["config", "init"])
        assert again.exit_code == 1
        assert "already exists" in again.output

        forced = runner.invoke(cli, ["config", "init", "--force"])
        assert forced.exit_code == 0

    def test_config_show(self, runner: CliRunner) -> None:
        result = runner.invoke(cli, ["config", "show"])
        assert result.exit_code == 0
        assert "Default view: prs" in result.output
        assert "Needs My Review" in result.output


class TestStateCommands:
    """Tests for clearing persisted state."""

    def test_state_clear(self, runner: CliRunner) -> None:
        from ghdeck.data.store import StateStore

        store = StateStore()
        store.mark_done("1")
        store.toggle_bookmark("2")

        result = runner.invoke(cli, ["state", "clear", "--done"])
        assert result.exit_code == 0
        assert "Cleared 1 done notifications" in result.output
        assert store.is_bookmarked("2")

        result = runner.invoke(cli, ["state", "clear"])
        assert "Cleared 1 bookmarks" in result.output
        assert not store.is_bookmarked("2")
