"""Allow ``python -m trade_spine``."""

from trade_spine.cli import cli

if __name__ == "__main__":
    cli()
