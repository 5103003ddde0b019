"""CLI entry point.

Allows running the CLI as a module: python -m harborsync.cli
"""

from harborsync.cli import app

if __name__ == "__main__":
    app()
