"""Tests for fabric_doctor.cli.report module."""

from __future__ import annotations

import os
from pathlib import Path
from unittest.mock import MagicMock

import yaml

from fabric_doctor.chain.walker import MigrationWindow, PhaseReport
from fabric_doctor.cli.report import (
    create_output_directory,
    generate_report,
    print_migration_summary,
)
from fabric_doctor.core.migrator import MigrationMode
from fabric_doctor.core.state import CopyResult, MigrationState
from fabric_doctor.exceptions import WalkTerminated


def _make_migrator(dry_run=False, **state_overrides):
    """Build a MagicMock that behaves like FabricMigrator for report tests."""
    state = MigrationState(started_at=0.0, finished_at=5.0, **state_overrides)
    state.window = MigrationWindow(100, 90, b"\x01" * 32)
    state.entries_selected = 31
    state.record_copy("contractstate", CopyResult(copied=10, created=10))
    state.store("contractstate").verified = True

    m = MagicMock()
    m.state = state
    m.dry_run = dry_run
    m.mode = MigrationMode.FULL
    m.source_path = Path("/data/src")
    m.target_path = None if dry_run else Path("/data/dst")
    return m


def _incomplete_report():
    report = PhaseReport("genesis")
    report.record(50)
    report.terminated = WalkTerminated("Entry ab not found", 50)
    report.stop_reason = str(report.terminated)
    return report


class TestGenerateReport:
    """Tests for generate_report()."""

    def test_writes_yaml_report(self, tmp_path):
        path = generate_report(_make_migrator(), str(tmp_path))

        assert path == os.path.join(str(tmp_path), "migration_report.yaml")
        with open(path) as f:
            report = yaml.safe_load(f)

        summary = report["migration_summary"]
        assert summary["mode"] == "full"
        assert summary["target_path"] == "/data/dst"
        assert summary["records_copied"] == 10
        assert summary["succeeded"] is True
        assert report["window"]["rooted_height"] == 90
        assert report["stores"]["contractstate"]["verified"] is True
        assert report["recommendations"] == []

    def test_dry_run_has_no_target(self, tmp_path):
        path = generate_report(_make_migrator(dry_run=True), str(tmp_path))
        with open(path) as f:
            report = yaml.safe_load(f)
        assert report["migration_summary"]["dry_run"] is True
        assert report["migration_summary"]["target_path"] is None

    def test_recommendations(self, tmp_path):
        migrator = _make_migrator(phase_reports=[_incomplete_report()])
        migrator.state.record_copy("muts", CopyResult(skipped=2))
        migrator.state.errors.append("boom")

        with open(generate_report(migrator, str(tmp_path))) as f:
            report = yaml.safe_load(f)

        types = [r["type"] for r in report["recommendations"]]
        assert types == ["walk_incomplete", "records_skipped"]
        assert report["migration_summary"]["succeeded"] is False
        assert report["errors"] == ["boom"]

    def test_creates_output_dir(self, tmp_path):
        out = tmp_path / "nested" / "run"
        generate_report(_make_migrator(), str(out))
        assert (out / "migration_report.yaml").exists()


class TestPrintMigrationSummary:
    def test_summary(self, capsys):
        print_migration_summary(_make_migrator(), "report.yaml")
        out = capsys.readouterr().out

        assert "MIGRATION SUMMARY" in out
        assert "Window: heights 90..100" in out
        assert "contractstate: 10 copied, 0 skipped, 0 not found (verified)" in out
        assert "Detailed report saved to report.yaml" in out

    def test_dry_run_summary(self, capsys):
        print_migration_summary(_make_migrator(dry_run=True))
        out = capsys.readouterr().out

        assert "DRY RUN SUMMARY" in out
        assert "without --dry_run" in out

    def test_lists_incomplete_phases(self, capsys):
        print_migration_summary(_make_migrator(phase_reports=[_incomplete_report()]))
        out = capsys.readouterr().out
        assert "genesis: Entry ab not found (height 50)" in out


class TestCreateOutputDirectory:
    def test_creates_timestamped_dir(self, tmp_path):
        path = create_output_directory(str(tmp_path))
        assert os.path.isdir(path)
        assert os.path.basename(path).startswith("run_")
