"""
Report generation for fabric migrations
"""

import datetime
import os

import yaml

from fabric_doctor.utils.logging import logger


def print_migration_summary(migrator, report_file=None):
    """Print a summary of the migration to the console."""
    state = migrator.state
    title = "DRY RUN SUMMARY" if migrator.dry_run else "MIGRATION SUMMARY"

    print("\n" + "=" * 80)
    print(title)
    print("=" * 80)
    print(f"Mode: {migrator.mode.value}")
    if state.window is not None:
        print(
            f"Window: heights {state.window.rooted_height}"
            f"..{state.window.temporal_height}"
        )
        print(f"Entries selected: {state.entries_selected}")
    for name, store in state.stores.items():
        verified = "" if store.verified is None else (
            " (verified)" if store.verified else " (NOT verified)"
        )
        print(
            f"  {name}: {store.result.copied} copied, {store.result.skipped} skipped, "
            f"{store.result.not_found} not found{verified}"
        )

    incomplete = [r for r in state.phase_reports if not r.complete]
    if incomplete:
        print("\nWalk phases that ended early:")
        for report in incomplete:
            print(f"  {report.phase}: {report.stop_reason}")

    if report_file:
        print(f"\nDetailed report saved to {report_file}")
    print("=" * 80)
    if migrator.dry_run:
        print("\nTo perform the actual migration, run again without --dry_run")
        print("=" * 80)


def create_output_directory(base_dir: str = "migration_logs") -> str:
    """Create a timestamped output directory for this run."""
    timestamp = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
    run_output_dir = os.path.join(base_dir, f"run_{timestamp}")
    os.makedirs(run_output_dir, exist_ok=True)
    return run_output_dir


def _recommendations(state) -> list:
    recommendations = []
    for report in state.phase_reports:
        if not report.complete:
            recommendations.append(
                {
                    "type": "walk_incomplete",
                    "message": f"The {report.phase} phase stopped early: "
                    f"{report.stop_reason}. The target holds the entries found "
                    "before the gap.",
                    "severity": "warning",
                }
            )
    skipped = state.total_skipped
    if skipped:
        recommendations.append(
            {
                "type": "records_skipped",
                "message": f"{skipped} records exceeded the key or value size "
                "limits and were not copied.",
                "severity": "warning",
            }
        )
    return recommendations


def generate_report(
    migrator, output_dir: str, output_file: str = "migration_report.yaml"
) -> str:
    """Write a YAML report of a migration run and return its path."""
    os.makedirs(output_dir, exist_ok=True)
    report_path = os.path.join(output_dir, output_file)
    state = migrator.state

    report = {
        "migration_summary": {
            "timestamp": datetime.datetime.now().isoformat(),
            "mode": migrator.mode.value,
            "dry_run": migrator.dry_run,
            "source_path": str(migrator.source_path),
            "target_path": str(migrator.target_path) if migrator.target_path else None,
            "output_path": str(output_dir),
            "records_copied": state.total_copied,
            "records_skipped": state.total_skipped,
            "succeeded": not state.has_errors,
        },
        **state.to_dict(),
        "recommendations": _recommendations(state),
    }

    with open(report_path, "w") as f:
        yaml.safe_dump(report, f, default_flow_style=False, sort_keys=False)

    logger.info(f"Migration report generated: {report_path}")
    return report_path
