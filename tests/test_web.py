"""Tests for the browser-based web host.

The web host drives a dispatcher over HTTP.  Tests use
``pytest.importorskip`` so they are skipped gracefully when Flask is
not installed.
"""

from __future__ import annotations

import threading
from typing import Any

import pytest

flask = pytest.importorskip("flask")

from py_shell.dispatcher import Dispatcher  # noqa: E402
from py_shell.terminal import TerminalConsole  # noqa: E402
from py_shell.web.app import create_app  # noqa: E402

HTTP_OK = 200
HTTP_BAD_REQUEST = 400


def _create_client() -> Any:
    """Create a test client from a fresh app."""
    app = create_app()
    app.config["TESTING"] = True
    return app.test_client()


def _enqueue(client: Any, command: str) -> Any:
    """POST a command and return the JSON body."""
    response = client.post("/api/enqueue", json={"command": command})
    assert response.status_code == HTTP_OK
    return response.get_json()


# -- Cycle 1: App creation and index page -----------------------------------


class TestAppCreation:
    """Verify app factory and landing page."""

    def test_create_app_returns_flask(self) -> None:
        """create_app should return a Flask application."""
        assert isinstance(create_app(), flask.Flask)

    def test_index_returns_html(self) -> None:
        """GET / should return HTML containing the shell's name."""
        client = _create_client()
        response = client.get("/")
        assert response.status_code == HTTP_OK
        assert b"PyShell" in response.data
        assert "text/html" in response.content_type

    def test_existing_dispatcher_needs_buffer_console(self) -> None:
        """A dispatcher on a real terminal cannot be served."""
        console = TerminalConsole.__new__(TerminalConsole)
        with pytest.raises(TypeError, match="BufferConsole"):
            create_app(Dispatcher(console=console))


# -- Cycle 2: Enqueue endpoint ----------------------------------------------


class TestEnqueueEndpoint:
    """Verify the /api/enqueue POST endpoint."""

    def test_version_output(self) -> None:
        """VER returns the version line."""
        data = _enqueue(_create_client(), "VER")
        assert data["output"] == "PyShell v0.1.0\n"
        assert data["errorlevel"] == ""
        assert data["halted"] is False

    def test_unknown_command_sets_errorlevel(self) -> None:
        """Unresolved commands report an error level of 1."""
        data = _enqueue(_create_client(), "ZZZZZ")
        assert "not a recognized command" in data["output"]
        assert data["errorlevel"] == "1"

    def test_missing_command(self) -> None:
        """A body without a command is a bad request."""
        client = _create_client()
        response = client.post("/api/enqueue", json={})
        assert response.status_code == HTTP_BAD_REQUEST
        assert "error" in response.get_json()

    def test_non_json_body(self) -> None:
        """A non-JSON body is a bad request."""
        client = _create_client()
        response = client.post("/api/enqueue", data="VER")
        assert response.status_code == HTTP_BAD_REQUEST

    def test_exit_halts(self) -> None:
        """XIT halts the shell and later commands are refused."""
        client = _create_client()
        assert _enqueue(client, "XIT")["halted"] is True
        data = _enqueue(client, "VER")
        assert data["halted"] is True
        assert data["output"] == "Shell has exited."

    def test_state_persists_between_requests(self) -> None:
        """Variables set in one request are visible in the next."""
        client = _create_client()
        _enqueue(client, "SET COLOR=blue")
        assert _enqueue(client, "EKO %COLOR%")["output"] == "blue\n"

    def test_concurrent_requests_get_their_own_output(self) -> None:
        """Parallel requests never see each other's console output."""
        app = create_app()
        app.config["TESTING"] = True
        mismatches: list[tuple[str, str]] = []

        def worker(tag: str) -> None:
            client = app.test_client()
            for n in range(25):
                expected = f"{tag}-{n}"
                output = _enqueue(client, f"EKO {expected}")["output"]
                if output != f"{expected}\n":
                    mismatches.append((expected, output))

        threads = [threading.Thread(target=worker, args=(f"t{i}",)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=30)
        assert mismatches == []


# -- Cycle 3: Read-only endpoints -------------------------------------------


class TestStatusEndpoints:
    """Verify status, history and command listing."""

    def test_status(self) -> None:
        """Status reports the loop state and prompt."""
        client = _create_client()
        data = client.get("/api/status").get_json()
        assert data["running"] is True
        assert data["prompt"] == "PyShell anonymous> "
        assert data["rank"] == "Unverified"

    def test_history(self) -> None:
        """History lists processed commands."""
        client = _create_client()
        _enqueue(client, "VER")
        _enqueue(client, "EKO hi")
        assert client.get("/api/history").get_json()["history"] == ["VER", "EKO hi"]

    def test_commands_default_rank(self) -> None:
        """Without a rank, the session actor's commands are listed."""
        client = _create_client()
        names = [c["name"] for c in client.get("/api/commands").get_json()["commands"]]
        assert names == ["HELP", "HIST"]

    def test_commands_for_rank(self) -> None:
        """A rank parameter widens or narrows the listing."""
        client = _create_client()
        data = client.get("/api/commands?rank=system admin").get_json()
        assert [c["name"] for c in data["commands"]] == ["HELP", "HIST", "LOGS", "POOL"]

    def test_commands_bad_rank(self) -> None:
        """An unknown rank is a bad request."""
        client = _create_client()
        response = client.get("/api/commands?rank=overlord")
        assert response.status_code == HTTP_BAD_REQUEST
