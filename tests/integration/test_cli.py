"""Integration tests for CLI commands."""

from pathlib import Path

import pytest
from typer.testing import CliRunner

from geist import __version__
from geist.cli.main import app
from geist.config.parser import ENV_FIELDS

BASE = "https://storage.googleapis.com/roc-camera-releases"


@pytest.fixture
def runner():
    """Get a CLI test runner."""
    return CliRunner()


@pytest.fixture
def cli_env(monkeypatch: pytest.MonkeyPatch, data_dir: Path) -> Path:
    """Point the CLI at a fresh data directory with the 'app'/'assets' layout."""
    for var in [*ENV_FIELDS, "GEIST_CONFIG", "GITHUB_TOKEN"]:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("GEIST_DATA_DIR", str(data_dir))
    monkeypatch.setenv("GEIST_BINARY_NAME", "app")
    monkeypatch.setenv("GEIST_ASSETS_DIR", "assets")
    return data_dir


@pytest.fixture
def published(fake_urlopen, make_bundle):
    """Serve releases 1.0.0 and 2.0.0 from the default bucket; latest is 2.0.0."""
    for version in ("1.0.0", "2.0.0"):
        bundle = make_bundle(f"{version}.tar.gz", tag=version)
        fake_urlopen.add("HEAD", f"{BASE}/releases/{version}/checksums.txt", 200)
        fake_urlopen.add("GET", f"{BASE}/releases/{version}/release_bundle-{version}.tar.gz", bundle.read_bytes())
    fake_urlopen.add("GET", f"{BASE}/releases/latest", b"2.0.0\n")
    return fake_urlopen


class TestVersionCommand:
    """Tests for 'geist version' command."""

    def test_version_shows_version(self, runner: CliRunner):
        result = runner.invoke(app, ["version"])

        assert result.exit_code == 0
        assert __version__ in result.output


class TestUpdateCommand:
    """Tests for 'geist update' command."""

    def test_update_to_version(self, runner: CliRunner, cli_env: Path, published):
        result = runner.invoke(app, ["update", "2.0.0"])

        assert result.exit_code == 0, result.output
        assert "Installed 2.0.0" in result.output
        assert (cli_env / "2.0.0" / "app").is_file()
        assert (cli_env / "current_version").read_text() == "2.0.0"

    def test_update_defaults_to_latest(self, runner: CliRunner, cli_env: Path, published):
        result = runner.invoke(app, ["update"])

        assert result.exit_code == 0, result.output
        assert (cli_env / "2.0.0").is_dir()

    def test_update_missing_version(self, runner: CliRunner, cli_env: Path, published):
        result = runner.invoke(app, ["update", "9.9.9"])

        assert result.exit_code == 1
        assert "not found" in result.output
        assert not (cli_env / "9.9.9").exists()

    def test_update_registry_down(self, runner: CliRunner, cli_env: Path, fake_urlopen):
        fake_urlopen.add("HEAD", f"{BASE}/releases/2.0.0/checksums.txt", 503)

        result = runner.invoke(app, ["update", "2.0.0"])

        assert result.exit_code == 1
        assert "Error" in result.output

    def test_bad_configuration(self, runner: CliRunner, cli_env: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("GEIST_REGISTRY_BACKEND", "ftp")

        result = runner.invoke(app, ["update", "2.0.0"])

        assert result.exit_code == 1
        assert "Invalid configuration" in result.output

    def test_github_backend_requires_token(self, runner: CliRunner, cli_env: Path, monkeypatch):
        monkeypatch.setenv("GEIST_REGISTRY_BACKEND", "github")

        result = runner.invoke(app, ["update", "2.0.0"])

        assert result.exit_code == 1
        assert "token" in result.output


class TestVerifyCommand:
    """Tests for 'geist verify' command."""

    def test_verify_existing(self, runner: CliRunner, cli_env: Path, published):
        result = runner.invoke(app, ["verify", "v2.0.0"])

        assert result.exit_code == 0, result.output
        assert "v2.0.0 is available" in result.output
        assert not cli_env.exists()

    def test_verify_missing(self, runner: CliRunner, cli_env: Path, published):
        result = runner.invoke(app, ["verify", "9.9.9"])

        assert result.exit_code == 1
        assert "not found" in result.output
        assert not cli_env.exists()


class TestRollbackCommand:
    """Tests for 'geist rollback' command."""

    def test_rollback_to_installed(self, runner: CliRunner, cli_env: Path, published):
        runner.invoke(app, ["update", "1.0.0"])
        runner.invoke(app, ["update", "2.0.0"])

        result = runner.invoke(app, ["rollback", "1.0.0"])

        assert result.exit_code == 0, result.output
        assert "Rolled back to 1.0.0" in result.output
        assert (cli_env / "current_version").read_text() == "1.0.0"
        assert (cli_env / "2.0.0").is_dir()

    def test_rollback_unknown(self, runner: CliRunner, cli_env: Path, published):
        result = runner.invoke(app, ["rollback", "9.9.9"])

        assert result.exit_code == 1
        assert "Cannot roll back" in result.output


class TestStatusAndListCommands:
    """Tests for 'geist status', 'geist list' and 'geist prune'."""

    def test_status_nothing_installed(self, runner: CliRunner, cli_env: Path):
        result = runner.invoke(app, ["status"])

        assert result.exit_code == 1
        assert "default" in result.output
        assert "not installed" in result.output

    def test_status_after_update(self, runner: CliRunner, cli_env: Path, published):
        runner.invoke(app, ["update", "2.0.0"])

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0, result.output
        assert "2.0.0" in result.output
        assert "pointer" in result.output
        assert "roc_camera" in result.output

    def test_status_with_override(self, runner: CliRunner, cli_env: Path, published, monkeypatch):
        runner.invoke(app, ["update", "1.0.0"])
        runner.invoke(app, ["update", "2.0.0"])
        monkeypatch.setenv("GEIST_CURRENT_VERSION", "1.0.0")

        result = runner.invoke(app, ["status"])

        assert result.exit_code == 0, result.output
        assert "override" in result.output

    def test_list_empty(self, runner: CliRunner, cli_env: Path):
        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert "No versions installed" in result.output

    def test_list_installed(self, runner: CliRunner, cli_env: Path, published):
        runner.invoke(app, ["update", "1.0.0"])
        runner.invoke(app, ["update", "2.0.0"])

        result = runner.invoke(app, ["list"])

        assert result.exit_code == 0
        assert result.output.index("1.0.0") < result.output.index("2.0.0")

    def test_prune(self, runner: CliRunner, cli_env: Path, published):
        runner.invoke(app, ["update", "1.0.0"])
        runner.invoke(app, ["update", "2.0.0"])

        result = runner.invoke(app, ["prune", "1.0.0"])

        assert result.exit_code == 0, result.output
        assert not (cli_env / "1.0.0").exists()

    def test_prune_current_refused(self, runner: CliRunner, cli_env: Path, published):
        runner.invoke(app, ["update", "2.0.0"])

        result = runner.invoke(app, ["prune", "2.0.0"])

        assert result.exit_code == 1
        assert (cli_env / "2.0.0").is_dir()
