"""CLI tests: exit codes, config commands and token masking."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import httpx
import pytest
from keyring.errors import PasswordSetError
from typer.testing import CliRunner

from dmlib.api.client import DatamodelsClient
from dmlib.cli import EXIT_FAILED, EXIT_TIMED_OUT, app
from dmlib.config import BASE_URL_ENV_VAR, KEY_NAME, SERVICE_NAME, TOKEN_ENV_VAR
from dmlib.upload.uploader import UPLOAD_PATH, VALIDATE_PATH

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path: Path):
    """No config file, no keyring backend, no inherited env."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv(BASE_URL_ENV_VAR, raising=False)
    monkeypatch.delenv(TOKEN_ENV_VAR, raising=False)
    with patch("dmlib.config.keyring.get_password", return_value=None):
        yield


@pytest.fixture
def cli_server(fake_server, monkeypatch):
    """Route every client the CLI creates to the fake server."""
    monkeypatch.setenv(BASE_URL_ENV_VAR, "https://bi.example.test")
    monkeypatch.setenv(TOKEN_ENV_VAR, "abc123")

    def _client(config):
        return DatamodelsClient(config, transport=httpx.MockTransport(fake_server.handler))

    monkeypatch.setattr("dmlib.api.client.DatamodelsClient", _client)
    return fake_server


# ======================================================================
# Config commands
# ======================================================================


class TestConfigCommands:
    """Tests for the config sub-commands."""

    def test_set_token(self):
        """set-token stores the stripped token in the keyring."""
        with patch("dmlib.cli.keyring.set_password") as mock_set:
            result = runner.invoke(app, ["config", "set-token", "  Bearer abc  "])

        assert result.exit_code == 0
        mock_set.assert_called_once_with(SERVICE_NAME, KEY_NAME, "Bearer abc")

    def test_set_token_rejects_blank(self):
        """A blank token is refused without touching the keyring."""
        with patch("dmlib.cli.keyring.set_password") as mock_set:
            result = runner.invoke(app, ["config", "set-token", "   "])

        assert result.exit_code == EXIT_FAILED
        mock_set.assert_not_called()

    def test_set_token_keyring_failure(self):
        """A keyring error exits with code 1."""
        with patch("dmlib.cli.keyring.set_password", side_effect=PasswordSetError("locked")):
            result = runner.invoke(app, ["config", "set-token", "abc"])

        assert result.exit_code == EXIT_FAILED
        assert "Failed to store token" in result.output

    def test_show_token_masked(self):
        """show-token reveals only the first 8 characters."""
        with patch("dmlib.cli.keyring.get_password", return_value="abcdefghijkl"):
            result = runner.invoke(app, ["config", "show-token"])

        assert result.exit_code == 0
        assert "abcdefgh****" in result.output
        assert "ijkl" not in result.output

    def test_show_token_missing(self):
        """show-token exits 1 when no token is stored."""
        result = runner.invoke(app, ["config", "show-token"])
        assert result.exit_code == EXIT_FAILED

    def test_remove_token_missing_is_noop(self):
        """remove-token without a stored token does nothing."""
        with patch("dmlib.cli.keyring.delete_password") as mock_delete:
            result = runner.invoke(app, ["config", "remove-token"])

        assert result.exit_code == 0
        mock_delete.assert_not_called()


# ======================================================================
# Core commands
# ======================================================================


class TestWaitCommand:
    """Tests for the wait command's exit codes."""

    def test_done_exits_zero(self, cli_server):
        """A done build exits 0."""
        cli_server.route("GET", "/api/v2/builds/b-1", {"status": "done"})

        result = runner.invoke(app, ["wait", "b-1"])

        assert result.exit_code == 0
        assert "done" in result.output

    def test_failed_exits_one(self, cli_server):
        """A failed build exits 1."""
        cli_server.route("GET", "/api/v2/builds/b-1", {"status": "failed"})

        result = runner.invoke(app, ["wait", "b-1"])

        assert result.exit_code == EXIT_FAILED

    def test_timeout_exits_two(self, cli_server):
        """A build that never finishes exits 2 after the query budget."""
        cli_server.route("GET", "/api/v2/builds/b-1", {"status": "building"})

        result = runner.invoke(app, ["wait", "b-1", "--interval", "0.01", "--timeout", "0.02"])

        assert result.exit_code == EXIT_TIMED_OUT
        assert len(cli_server.calls("GET", "/api/v2/builds/b-1")) == 2

    def test_status_query_failure_exits_one(self, cli_server):
        """A failing status query exits 1."""
        cli_server.route("GET", "/api/v2/builds/b-1", httpx.Response(500, text="boom"))

        result = runner.invoke(app, ["wait", "b-1"])

        assert result.exit_code == EXIT_FAILED

    def test_invalid_interval(self, cli_server):
        """A negative interval is reported without polling."""
        result = runner.invoke(app, ["wait", "b-1", "--interval", "-1"])

        assert result.exit_code == EXIT_FAILED
        assert cli_server.requests == []

    @pytest.mark.parametrize(
        "options", [["--interval", "0"], ["--timeout", "0"], ["--interval", "0", "--timeout", "0"]]
    )
    def test_zero_is_rejected_not_defaulted(self, cli_server, options):
        """An explicit zero interval or timeout is rejected, not replaced by defaults."""
        result = runner.invoke(app, ["wait", "b-1", *options])

        assert result.exit_code == EXIT_FAILED
        assert "must be positive" in result.output
        assert cli_server.requests == []

    def test_connection_error_exits_one(self, cli_server):
        """An unreachable server during polling exits 1."""
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        cli_server.route("GET", "/api/v2/builds/b-1", _refuse)

        result = runner.invoke(app, ["wait", "b-1"])

        assert result.exit_code == EXIT_FAILED


class TestUploadCommand:
    """Tests for the upload command."""

    def test_prints_storage_path(self, cli_server, demo_csv: Path):
        """A successful upload prints the storage path."""
        cli_server.route("POST", VALIDATE_PATH, {"token": "tok-1"})
        cli_server.route(
            "POST", UPLOAD_PATH, cli_server.upload_response("/opt/storage/x/demo.csv")
        )

        result = runner.invoke(app, ["upload", str(demo_csv)])

        assert result.exit_code == 0
        assert "/opt/storage/x/demo.csv" in result.output

    def test_rejection_exits_one(self, cli_server, demo_csv: Path):
        """A rejected validation exits 1 without uploading."""
        cli_server.route("POST", VALIDATE_PATH, httpx.Response(413, text="too large"))

        result = runner.invoke(app, ["upload", str(demo_csv)])

        assert result.exit_code == EXIT_FAILED
        assert cli_server.calls("POST", UPLOAD_PATH) == []

    def test_unreachable_host_exits_one(self, cli_server, demo_csv: Path):
        """A connection error exits 1 with a message instead of a traceback."""
        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        cli_server.route("POST", VALIDATE_PATH, _refuse)

        result = runner.invoke(app, ["upload", str(demo_csv)])

        assert result.exit_code == EXIT_FAILED
        assert not isinstance(result.exception, httpx.HTTPError)
        assert "Connection error" in result.output

    def test_missing_server_address(self, demo_csv: Path):
        """No configured server address exits 1 with instructions."""
        result = runner.invoke(app, ["upload", str(demo_csv)])

        assert result.exit_code == EXIT_FAILED
        assert "Server address not configured" in result.output


class TestExportCommand:
    """Tests for the export command."""

    def test_writes_files(self, cli_server, tmp_path: Path):
        """export writes .smodel files into the target folder."""
        cli_server.route("GET", "/api/v2/datamodels/schema", [{"oid": "dm-1", "title": "sales"}])
        cli_server.route("GET", "/api/v2/datamodel-exports/schema", {"oid": "dm-1"})
        target = tmp_path / "out"

        result = runner.invoke(app, ["export", "--target", str(target)])

        assert result.exit_code == 0
        assert (target / "sales.smodel").exists()
