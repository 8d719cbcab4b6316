"""CLI command handlers for read-only inspection of a database."""

from __future__ import annotations

import datetime
import json
import logging
import sys
from pathlib import Path

import click

from fabric_doctor.chain.metadata import verify_entry_hash
from fabric_doctor.chain.walker import read_chain_tips
from fabric_doctor.cli.common import (
    cli,
    common_options,
    handle_exception,
    load_settings,
    open_source,
    resolve_store,
    store_option,
)
from fabric_doctor.utils.formatting import decode_store_key, format_value
from fabric_doctor.utils.logging import log_with_context, setup_logger

DEFAULT_HASH_TEST_LIMIT = 5


def _now() -> str:
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


def _write_json(output: Path, payload: dict) -> None:
    with open(output, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, ensure_ascii=False)


# ---------------------------------------------------------------------------
# list-keys
# ---------------------------------------------------------------------------


@cli.command("list-keys")
@common_options
@store_option
@click.option("--limit", default=100, show_default=True, help="Maximum keys to list")
def list_keys(db_path: Path, config: Path, verbose: bool, store: str, limit: int) -> None:
    """List keys of a column family, decoded and in hex."""
    setup_logger(verbose)
    settings = load_settings(config)
    name = resolve_store(settings, store)

    try:
        with open_source(db_path, settings) as db:
            shown = 0
            for key, value in db.column_family(name).iterate():
                if shown >= limit:
                    break
                click.echo(f"{decode_store_key(key)}")
                click.echo(f"    hex: {key.hex()}  value: {len(value)} bytes")
                shown += 1
            click.echo(f"\n{shown} keys shown from {name}")
    except Exception as e:
        handle_exception(e)
        sys.exit(1)


# ---------------------------------------------------------------------------
# get
# ---------------------------------------------------------------------------


@cli.command()
@common_options
@store_option
@click.argument("key_hex")
@click.option("--raw", is_flag=True, default=False, help="Print the value as hex")
def get(
    db_path: Path, config: Path, verbose: bool, store: str, key_hex: str, raw: bool
) -> None:
    """Print the value stored under KEY_HEX."""
    setup_logger(verbose)
    try:
        key = bytes.fromhex(key_hex)
    except ValueError as e:
        raise click.BadParameter(f"not a hex string: {e}", param_hint="KEY_HEX") from e

    settings = load_settings(config)
    name = resolve_store(settings, store)

    try:
        with open_source(db_path, settings) as db:
            value = db.column_family(name).get(key)
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    if value is None:
        log_with_context(logging.ERROR, f"Key {key_hex} not found", store=name)
        sys.exit(1)

    if raw:
        click.echo(value.hex())
    else:
        click.echo(json.dumps(format_value(value), indent=2, ensure_ascii=False))


# ---------------------------------------------------------------------------
# export
# ---------------------------------------------------------------------------


@cli.command()
@common_options
@store_option
@click.argument("output", type=click.Path(path_type=Path))
@click.option("--raw", is_flag=True, default=False, help="Export values as hex")
def export(
    db_path: Path, config: Path, verbose: bool, store: str, output: Path, raw: bool
) -> None:
    """Export a column family to a JSON file."""
    setup_logger(verbose)
    settings = load_settings(config)
    name = resolve_store(settings, store)

    data: dict = {}
    failed = 0
    try:
        with open_source(db_path, settings) as db:
            for count, (key, value) in enumerate(db.column_family(name).iterate(), 1):
                if raw:
                    data[decode_store_key(key)] = value.hex()
                else:
                    rendered = format_value(value)
                    if isinstance(rendered, dict) and rendered.get("decodable") is False:
                        failed += 1
                    data[decode_store_key(key)] = rendered
                if count % 1000 == 0:
                    log_with_context(logging.INFO, f"Processed {count} records...", store=name)

        _write_json(
            output,
            {
                "metadata": {
                    "store": name,
                    "total_entries": len(data),
                    "failed_parses": failed,
                    "export_time": _now(),
                    "raw_mode": raw,
                    "key_decoding": "enabled",
                },
                "data": data,
            },
        )
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    log_with_context(
        logging.INFO,
        f"Export complete: {len(data)} entries, {failed} failed parses -> {output}",
    )


# ---------------------------------------------------------------------------
# test-hashes
# ---------------------------------------------------------------------------


@cli.command("test-hashes")
@common_options
@click.argument("output", type=click.Path(path_type=Path))
@click.option(
    "--limit",
    default=DEFAULT_HASH_TEST_LIMIT,
    show_default=True,
    help="Number of entries to check",
)
def test_hashes(db_path: Path, config: Path, verbose: bool, output: Path, limit: int) -> None:
    """Recompute the content hash of the first entries and compare it with the stored one."""
    setup_logger(verbose)
    settings = load_settings(config)
    name = settings.layout.entry

    results = []
    matches = 0
    try:
        with open_source(db_path, settings) as db:
            for number, (key, value) in enumerate(db.column_family(name).iterate(), 1):
                if number > limit:
                    break
                check = verify_entry_hash(key, value)
                result = {
                    "entry_number": number,
                    "entry_key": key.hex(),
                    "entry_size_bytes": len(value),
                }
                if check.error:
                    result["error"] = check.error
                    log_with_context(
                        logging.WARNING, f"Entry {number}: could not verify hash - {check.error}"
                    )
                if check.computed_hash is not None:
                    result["computed_hash"] = check.computed_hash.hex()
                if check.stored_hash is not None:
                    result["stored_hash"] = check.stored_hash.hex()
                result["hash_matches"] = check.matches
                if check.matches:
                    matches += 1
                    log_with_context(logging.INFO, f"Entry {number}: hash verification passed")
                elif not check.error:
                    log_with_context(logging.WARNING, f"Entry {number}: hash verification FAILED")
                results.append(result)

        tested = len(results)
        success_rate = (matches / tested) * 100.0 if tested else 0.0
        _write_json(
            output,
            {
                "metadata": {
                    "test_time": _now(),
                    "entries_tested": tested,
                    "hash_matches": matches,
                    "success_rate_percent": success_rate,
                    "max_entries_tested": limit,
                },
                "test_results": results,
            },
        )
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    click.echo(f"Entries tested: {tested}")
    click.echo(f"Hash matches: {matches}")
    click.echo(f"Success rate: {success_rate:.1f}%")
    click.echo(f"Results saved to: {output}")


# ---------------------------------------------------------------------------
# tips
# ---------------------------------------------------------------------------


def _show(value) -> str:
    if value is None:
        return "(missing)"
    if isinstance(value, bytes):
        return value.hex()
    return str(value)


@cli.command()
@common_options
def tips(db_path: Path, config: Path, verbose: bool) -> None:
    """Show the temporal and rooted chain tips."""
    setup_logger(verbose)
    settings = load_settings(config)

    try:
        with open_source(db_path, settings) as db:
            chain_tips = read_chain_tips(db, settings.layout)
    except Exception as e:
        handle_exception(e)
        sys.exit(1)

    click.echo(f"temporal_height: {_show(chain_tips.temporal_height)}")
    click.echo(f"temporal_tip:    {_show(chain_tips.temporal_tip)}")
    click.echo(f"rooted_tip:      {_show(chain_tips.rooted_tip)}")
    click.echo(f"rooted_height:   {_show(chain_tips.rooted_height)}")
