"""cmapi-cli entry point.

Supports: python -m cmapi_cli
"""

from .app import cli

if __name__ == "__main__":
    cli()
