# File: dbreverse/__main__.py
"""
dbreverse — Module entry point.

Allows running the generator directly via::

    python -m dbreverse generate --config dbreverse.yaml

This module simply delegates to the CLI entry point defined in ``dbreverse.cli``.
"""

from __future__ import annotations


def main() -> None:
    """Delegate to the CLI main function."""
    from dbreverse.cli import cli_main
    cli_main()


if __name__ == "__main__":
    main()
