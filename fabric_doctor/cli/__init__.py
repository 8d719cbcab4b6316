"""Command line interface: inspection commands, migration and reporting."""

__all__ = [
    "commands",
    "common",
    "inspect_cmd",
    "migrate_cmd",
    "report",
]
