"""Entry point for python -m bequalize."""

from bequalize.cli import cli

if __name__ == "__main__":
    cli(prog_name="bequalize")
