"""
PM Copilot HTTP API Server.

Usage:
    # Start server
    uvicorn pmcopilot.server:app --reload

    # Or programmatically
    from pmcopilot.server import create_app

    app = create_app()
"""

from pmcopilot.server.app import create_app


def __getattr__(name: str):
    # Built lazily so importing the package does not read the environment.
    if name == "app":
        global app
        app = create_app()
        return app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


__all__ = ["app", "create_app"]
