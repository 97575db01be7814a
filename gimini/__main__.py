"""Entry point for running the headless gimini host as a module."""

from __future__ import annotations

from .app import create_app
from .config import SETTINGS


def main() -> None:
    """Run the Flask development server."""
    app = create_app()
    app.run(host=SETTINGS.host, port=SETTINGS.port, debug=False)


if __name__ == "__main__":
    main()
