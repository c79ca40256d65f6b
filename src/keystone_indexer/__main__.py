"""Allow ``python -m keystone_indexer``."""

from .cli import app

if __name__ == "__main__":
    app()
