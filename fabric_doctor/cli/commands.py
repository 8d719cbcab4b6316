#!/usr/bin/env python3
"""
Entry point for the fabric-doctor command line.

Importing the command modules registers their subcommands on the shared
``cli`` group.
"""

from fabric_doctor.cli import inspect_cmd, migrate_cmd  # noqa: F401
from fabric_doctor.cli.common import cli


def main() -> None:
    """Run the CLI."""
    cli()


if __name__ == "__main__":
    main()
