"""Entry point for ``python -m autofinish``."""

from autofinish.cli import cli

if __name__ == "__main__":
    cli()
