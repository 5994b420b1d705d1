"""Browser-based host for PyShell.

This package provides a Flask application that drives a dispatcher
over HTTP.  It is an **optional** extra — install with::

    pip install py-shell[web]

The ``create_app`` factory in ``app.py`` builds (or is given) a
dispatcher backed by an in-memory console and serves:

- ``GET /`` — HTML terminal page.
- ``POST /api/enqueue`` — queue a command, dispatch it, return JSON.
- ``GET /api/status`` — loop state, error level and prompt.
- ``GET /api/history`` — command history.
- ``GET /api/commands`` — plugin commands visible at a rank.
"""
