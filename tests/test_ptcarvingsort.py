"""
End-to-end tests for the sorting tool (ptcarvingsort/ptcarvingsort.py).

Tests cover:
- Row count and gapless serial numbers when some entries are missing
- Recorded hash equals the hash of the file at its final location
- Completed runs with skipped entries, including an all-skipped manifest
- Aborted runs: missing, corrupt or unreadable manifest, move collision,
  unexpected errors
- An earlier report.xml in the base directory is kept, not overwritten
- Dry-run leaving the tree untouched
- CLI exit codes
"""
from __future__ import annotations

import json
import sys
from pathlib import Path

import pytest
from openpyxl import load_workbook

from ptcarvingsort import ptcarvingsort as tool_module
from ptcarvingsort.errors import ManifestNotFound, ManifestParseError, ProcessingFailure
from ptcarvingsort.processor import compute_hash
from ptcarvingsort.ptcarvingsort import (
    STATE_ABORTED,
    STATE_COMPLETED,
    PtCarvingSort,
)


@pytest.fixture
def run_tool(make_args):
    tools = []

    def _run(**overrides) -> PtCarvingSort:
        tool = PtCarvingSort(make_args(**overrides))
        tools.append(tool)
        return tool

    yield _run
    for tool in tools:
        tool.close()


def sheet_rows(path: Path):
    return list(load_workbook(path).active.iter_rows(min_row=2, values_only=True))


def test_rows_match_located_entries(base_dir, write_manifest, carve, run_tool):
    carve("recup_dir.1/f0000001.jpg", b"jpeg one")
    carve("recup_dir.1/f0000005_1.png", b"png renamed")
    carve("recup_dir.2/f0000009.jpg", b"jpeg two")
    write_manifest([
        ("/out/recup_dir.1/f0000001.jpg", 8, [(0, 4096, 8)]),
        ("/out/recup_dir.1/f0000003.jpg", 99, [(0, 8192, 99)]),
        ("/out/recup_dir.1/f0000005.png", 11, [(0, 100, 50), (50, 150, 25)]),
        ("/out/recup_dir.2/f0000009.jpg", 8, []),
    ])

    tool = run_tool()
    tool.run()

    assert tool.state == STATE_COMPLETED
    assert [r.serial for r in tool.records] == [1, 2, 3]
    assert tool.skipped == ["/out/recup_dir.1/f0000003.jpg"]

    rows = sheet_rows(base_dir / "carving_report.xlsx")
    assert [row[:4] for row in rows] == [
        (1, "f0000001.jpg", "f0000001.jpg", "jpg"),
        (2, "f0000005_1.png", "f0000005.png", "png"),
        (3, "f0000009.jpg", "f0000009.jpg", "jpg"),
    ]
    assert rows[1][6] == "offset='0' img_offset='100' len='50'\noffset='50' img_offset='150' len='25'"

    assert (base_dir / "JPG" / "f0000001.jpg").exists()
    assert (base_dir / "JPG" / "f0000009.jpg").exists()
    assert (base_dir / "PNG" / "f0000005_1.png").exists()
    assert not (base_dir / "recup_dir.1" / "f0000001.jpg").exists()


def test_recorded_hash_matches_final_location(write_manifest, carve, run_tool):
    carve("recup_dir.1/f0000001.bmp", b"BM" + b"\x00" * 5000)
    write_manifest([("recup_dir.1/f0000001.bmp", 5002, [])])

    tool = run_tool(hash="sha256")
    tool.run()

    rec = tool.records[0]
    assert rec.content_hash == compute_hash(rec.destination, "sha256")


def test_manifest_is_moved_to_base_dir(base_dir, write_manifest, carve, run_tool):
    carve("recup_dir.1/f1.jpg")
    write_manifest([("recup_dir.1/f1.jpg", 11, [])])

    run_tool().run()

    assert (base_dir / "report.xml").exists()
    assert not (base_dir / "recup_dir.1" / "report.xml").exists()


def test_single_missing_entry_completes_with_empty_report(base_dir, write_manifest, run_tool):
    write_manifest([("recup_dir.1/f0000404.jpg", 10, [(0, 0, 10)])])

    tool = run_tool()
    tool.run()
    tool.close()

    assert tool.state == STATE_COMPLETED
    assert tool.records == []
    assert sheet_rows(base_dir / "carving_report.xlsx") == []
    log = (base_dir / "ptcarvingsort.log").read_text(encoding="utf-8")
    assert "Not found: recup_dir.1/f0000404.jpg" in log
    assert "skipped=1" in log


def test_missing_manifest_aborts_without_side_effects(base_dir, carve, run_tool):
    carved = carve("recup_dir.1/f1.jpg")

    tool = run_tool()
    with pytest.raises(ManifestNotFound):
        tool.run()

    assert tool.state == STATE_ABORTED
    assert carved.exists()
    assert not (base_dir / "carving_report.xlsx").exists()
    assert not (base_dir / "JPG").exists()


def test_corrupt_manifest_aborts(base_dir, carve, run_tool):
    (base_dir / "recup_dir.1" / "report.xml").write_text("<dfxml><fileobject>")
    carved = carve("recup_dir.1/f1.jpg")

    tool = run_tool()
    with pytest.raises(ManifestParseError):
        tool.run()

    assert tool.state == STATE_ABORTED
    assert carved.exists()


def test_move_collision_aborts_and_keeps_processed_rows(base_dir, write_manifest, carve, run_tool):
    carve("recup_dir.1/f1.jpg", b"first")
    carve("recup_dir.1/f2.jpg", b"second")
    carve("JPG/f2.jpg", b"already sorted")
    manifest = write_manifest([
        ("recup_dir.1/f1.jpg", 5, []),
        ("recup_dir.1/f2.jpg", 6, []),
    ])

    tool = run_tool()
    with pytest.raises(ProcessingFailure):
        tool.run()

    assert tool.state == STATE_ABORTED
    assert [row[1] for row in sheet_rows(base_dir / "carving_report.xlsx")] == ["f1.jpg"]
    assert manifest.exists()
    assert (base_dir / "recup_dir.1" / "f2.jpg").exists()


def test_dry_run_touches_nothing(base_dir, write_manifest, carve, run_tool):
    carved = carve("recup_dir.1/f1.jpg")
    manifest = write_manifest([("recup_dir.1/f1.jpg", 11, [])])

    tool = run_tool(dry_run=True)
    tool.run()

    assert tool.state == STATE_COMPLETED
    assert len(tool.records) == 1
    assert carved.exists()
    assert manifest.exists()
    assert not (base_dir / "JPG").exists()
    assert not (base_dir / "carving_report.xlsx").exists()
    assert not (base_dir / "ptcarvingsort.log").exists()
    assert tool.save_report() is None


def test_json_report_written(base_dir, write_manifest, carve, run_tool):
    carve("recup_dir.1/f1.jpg")
    write_manifest([("recup_dir.1/f1.jpg", 11, [])])

    tool = run_tool(json=False, quiet=False)
    tool.run()
    saved = tool.save_report()

    assert saved == str(base_dir / "carving_sort_report.json")
    assert "f1.jpg" in Path(saved).read_text(encoding="utf-8")


def test_unreadable_manifest_aborts(base_dir, write_manifest, run_tool, monkeypatch):
    write_manifest([("recup_dir.1/f1.jpg", 11, [])])

    def denied(*_args, **_kwargs):
        raise PermissionError("Permission denied")

    monkeypatch.setattr("ptcarvingsort.manifest.ET.parse", denied)

    tool = run_tool()
    with pytest.raises(ManifestParseError):
        tool.run()

    assert tool.state == STATE_ABORTED


def test_unexpected_error_aborts(base_dir, write_manifest, carve, run_tool, monkeypatch):
    carve("recup_dir.1/f1.jpg")
    write_manifest([("recup_dir.1/f1.jpg", 11, [])])

    tool = run_tool()

    def broken(*_args, **_kwargs):
        raise RuntimeError("disk vanished")

    monkeypatch.setattr(tool.processor, "process", broken)

    with pytest.raises(RuntimeError):
        tool.run()
    tool.close()

    assert tool.state == STATE_ABORTED
    log = (base_dir / "ptcarvingsort.log").read_text(encoding="utf-8")
    assert "disk vanished" in log
    assert "state=Aborted" in log


def test_aborted_run_json_records_state_and_error(base_dir, run_tool):
    tool = run_tool(json=False, quiet=False)
    with pytest.raises(ManifestNotFound):
        tool.run()
    saved = tool.save_report()

    result = json.loads(Path(saved).read_text(encoding="utf-8"))["result"]
    assert result["status"] == "finished"
    assert result["results"]["properties"]["runState"] == STATE_ABORTED
    assert "report.xml" in result["results"]["properties"]["error"]


def test_earlier_manifest_in_base_dir_is_kept(base_dir, write_manifest, carve, run_tool):
    (base_dir / "report.xml").write_text("<dfxml/>", encoding="utf-8")
    carve("recup_dir.1/f1.jpg")
    write_manifest([("recup_dir.1/f1.jpg", 11, [])])

    run_tool().run()

    kept = list(base_dir.glob("report_*.xml"))
    assert len(kept) == 1
    assert kept[0].read_text(encoding="utf-8") == "<dfxml/>"
    assert "f1.jpg" in (base_dir / "report.xml").read_text(encoding="utf-8")


class TestMain:
    def test_missing_manifest_exit_code(self, base_dir, monkeypatch):
        monkeypatch.setattr(sys, "argv", ["ptcarvingsort", "-b", str(base_dir), "-j"])
        assert tool_module.main() == 99

    def test_success_exit_code_with_skipped_entries(self, base_dir, write_manifest, carve, monkeypatch):
        carve("recup_dir.1/f1.jpg")
        write_manifest([
            ("recup_dir.1/f1.jpg", 11, []),
            ("recup_dir.1/f2.jpg", 11, []),
        ])
        monkeypatch.setattr(sys, "argv", ["ptcarvingsort", "-b", str(base_dir), "-j"])

        assert tool_module.main() == 0
        assert (base_dir / "JPG" / "f1.jpg").exists()
