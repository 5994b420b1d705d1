"""Flask application factory for the PyShell web host.

The ``create_app`` function builds a dispatcher on a ``BufferConsole``
and returns a Flask app.  There is no background dispatch thread: each
``POST /api/enqueue`` queues the command and calls
``process_pending()`` on the request thread, then returns whatever the
console collected.  Requests are serialized by a lock in the app, so
commands run one at a time, in order, and no reply picks up another
request's output.

- ``GET /`` — render the terminal HTML page with the banner.
- ``POST /api/enqueue`` — dispatch a command and return JSON.
- ``GET /api/status`` — loop state, queue depth, error level, prompt.
- ``GET /api/history`` — command history, oldest first.
- ``GET /api/commands?rank=`` — plugin commands visible at a rank.
"""

from __future__ import annotations

import threading

from flask import Flask, Response, jsonify, render_template, request

from py_shell.console import BufferConsole
from py_shell.dispatcher import Dispatcher
from py_shell.env import SYSTEM_OWNER
from py_shell.ranks import RankLevel
from py_shell.repl import build_prompt, format_banner

_HTTP_BAD_REQUEST = 400


def create_app(dispatcher: Dispatcher | None = None) -> Flask:
    """Create and configure the Flask application.

    Args:
        dispatcher: An existing dispatcher to serve.  It must use a
            ``BufferConsole``.  When omitted, a fresh, activated
            dispatcher is built.

    Returns:
        A configured Flask application ready to serve.

    """
    console = BufferConsole()
    if dispatcher is None:
        dispatcher = Dispatcher(console=console)
        dispatcher.activate()
        # The page echoes each command itself.
        dispatcher.environment.set("ECHO", "off", owner=SYSTEM_OWNER)
    elif isinstance(dispatcher.console, BufferConsole):
        console = dispatcher.console
    else:
        msg = "The web host needs a dispatcher with a BufferConsole"
        raise TypeError(msg)
    shell = dispatcher
    # Held from enqueue until the output is taken.
    request_lock = threading.Lock()

    banner = format_banner(shell.settings)
    app = Flask(__name__)

    @app.route("/")
    def index() -> str:  # pyright: ignore[reportUnusedFunction]
        """Render the terminal HTML page."""
        return render_template("index.html", banner=banner, app_name=shell.settings.app_name)

    @app.route("/api/enqueue", methods=["POST"])
    def enqueue() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Queue and dispatch a command.

        Expects JSON body: ``{"command": "..."}``

        Returns:
            JSON with ``output``, ``errorlevel`` and ``halted`` fields.

        """
        data = request.get_json(silent=True)
        if data is None or not str(data.get("command", "")).strip():
            return jsonify({"error": "Missing 'command' field"}), _HTTP_BAD_REQUEST

        with request_lock:
            if not shell.keep_alive:
                return jsonify({"output": "Shell has exited.", "errorlevel": "", "halted": True})

            shell.enqueue(str(data["command"]))
            shell.process_pending()
            reply = {
                "output": console.take_output(),
                "errorlevel": shell.error_level,
                "halted": not shell.keep_alive,
            }
        return jsonify(reply)

    @app.route("/api/status")
    def status() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return the loop state for status polling."""
        return jsonify(
            {
                "running": shell.keep_alive,
                "waiting": shell.queue.active,
                "history": shell.queue.count,
                "errorlevel": shell.error_level,
                "prompt": build_prompt(shell),
                "actor": shell.actor.name,
                "rank": shell.actor.rank.label,
            }
        )

    @app.route("/api/history")
    def history() -> Response:  # pyright: ignore[reportUnusedFunction]
        """Return the command history."""
        return jsonify({"history": shell.queue.history()})

    @app.route("/api/commands")
    def commands() -> tuple[Response, int] | Response:  # pyright: ignore[reportUnusedFunction]
        """Return plugin commands visible at ``?rank=`` (default: the session rank)."""
        raw = request.args.get("rank")
        try:
            rank = shell.actor.rank if raw is None else RankLevel.parse(raw)
        except ValueError as e:
            return jsonify({"error": str(e)}), _HTTP_BAD_REQUEST
        visible = shell.registry.visible_to(rank)
        return jsonify(
            {
                "rank": rank.label,
                "commands": [
                    {"name": d.name, "description": d.description, "rank": d.required_rank.label}
                    for d in visible
                ],
            }
        )

    return app


def main() -> None:
    """Run the web host development server.

    This is the ``py-shell-web`` console entry point.
    """
    app = create_app()
    app.run(debug=True, port=8080)
