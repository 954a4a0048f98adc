"""Entry point for ``python -m weather_chat``."""

from .cli import cli

if __name__ == "__main__":
    cli()
