"""Entry point for ``python -m workstudio``."""

from workstudio.cli.commands import app

if __name__ == "__main__":
    app()
