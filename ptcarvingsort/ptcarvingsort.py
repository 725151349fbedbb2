#!/usr/bin/env python3
"""
    Copyright (c) 2025 Bc. Dominik Sabota, VUT FIT Brno

    ptcarvingsort - PhotoRec carving output sorter and reporter

    ptcarvingsort is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License, or
    (at your option) any later version.

    ptcarvingsort is distributed in the hope that it will be useful,
    but WITHOUT ANY WARRANTY; without even the implied warranty of
    MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
    GNU General Public License for more details.

    You should have received a copy of the GNU General Public License
    along with ptcarvingsort.  If not, see <https://www.gnu.org/licenses/>.
"""

# ============================================================================
# IMPORTS
# ============================================================================

import argparse
import hashlib
import json
import logging
import shutil
import sys
from pathlib import Path
from datetime import datetime, timezone
from typing import Dict, List, Optional, Any

# Skript je vždy spúšťaný ako nainštalovaný balíček cez Penterep platformu,
# relatívny import _version.py je preto vždy validný.
from ._version import __version__

from ptlibs import ptjsonlib, ptprinthelper
from ptlibs.ptprinthelper import ptprint

from .errors import CarvingSortError, ProcessingFailure
from .locator import DEFAULT_MARKER, FileLocator
from .manifest import load_manifest
from .models import ManifestEntry, ProcessedRecord
from .processor import DEFAULT_HASH, FileProcessor
from .report import ReportWriter


# ============================================================================
# CONSTANTS
# ============================================================================

SCRIPTNAME          = "ptcarvingsort"
MANIFEST_NAME       = "report.xml"
DEFAULT_REPORT_NAME = "carving_report.xlsx"
DEFAULT_LOG_NAME    = "ptcarvingsort.log"
JSON_REPORT_NAME    = "carving_sort_report.json"
PROGRESS_EVERY      = 50

STATE_RUNNING   = "Running"
STATE_COMPLETED = "Completed"
STATE_ABORTED   = "Aborted"

HASH_CHOICES = sorted(a for a in hashlib.algorithms_guaranteed if not a.startswith("shake_"))


# ============================================================================
# MAIN CLASS
# ============================================================================

class PtCarvingSort:
    """
    Sort PhotoRec output into per-extension folders and report it – ptlibs compliant.

    Four-phase process, one manifest entry at a time:
    1. Load report.xml written by PhotoRec
    2. Locate each declared file (exact path, then <stem>_*.<ext> fallback)
    3. Hash the file and move it into <base>/<EXT>/
    4. Save the spreadsheet, the run log summary and the JSON report

    Entries whose file cannot be found are skipped and logged. Any hash or
    move failure aborts the run; rows processed up to that point are still
    saved so the spreadsheet matches what was moved on disk.
    """

    def __init__(self, args: argparse.Namespace) -> None:
        self.ptjsonlib = ptjsonlib.PtJsonLib()
        self.args      = args
        self.dry_run   = args.dry_run

        self.base_dir      = Path(args.base_dir)
        marker             = args.marker or DEFAULT_MARKER
        self.manifest_path = (Path(args.manifest) if args.manifest
                              else self.base_dir / f"{marker}.1" / MANIFEST_NAME)
        self.output_path   = Path(args.output) if args.output else self.base_dir / DEFAULT_REPORT_NAME
        self.log_path      = Path(args.log_file) if args.log_file else self.base_dir / DEFAULT_LOG_NAME

        self.locator   = FileLocator(self.base_dir, marker)
        self.processor = FileProcessor(self.base_dir, args.hash, dry_run=self.dry_run)
        self.logger    = self._setup_logger()

        self.state = STATE_RUNNING
        self._total_entries = 0
        self._records: List[ProcessedRecord] = []
        self._skipped: List[str] = []
        self._by_ext: Dict[str, int] = {}
        self._report_saved: Optional[Path] = None

        self.ptjsonlib.add_properties({
            "baseDirectory":  str(self.base_dir),
            "manifestPath":   str(self.manifest_path),
            "reportPath":     str(self.output_path),
            "logPath":        str(self.log_path),
            "timestamp":      datetime.now(timezone.utc).isoformat(),
            "scriptVersion":  __version__,
            "hashAlgorithm":  self.processor.algorithm,
            "totalEntries":   0,
            "processedFiles": 0,
            "skippedEntries": 0,
            "byExtension":    {},
            "runState":       self.state,
            "dryRun":         self.dry_run,
        })

        ptprint(f"Initialized: base={self.base_dir}", "INFO", condition=not self.args.json)

    # -------------------------------------------------------------------------
    # SETUP
    # -------------------------------------------------------------------------

    def _setup_logger(self) -> logging.Logger:
        # Unique name per instance, handlers never leak between tool instances.
        logger = logging.getLogger(f"carving_sort.{id(self)}")
        logger.setLevel(logging.DEBUG)
        logger.propagate = False
        if not self.dry_run:
            fh = logging.FileHandler(self.log_path, encoding="utf-8", delay=True)
            fh.setFormatter(logging.Formatter("%(asctime)s - %(levelname)s - %(message)s"))
            logger.addHandler(fh)
        if self.args.verbose and not self.args.json:
            logger.addHandler(logging.StreamHandler())
        return logger

    def close(self) -> None:
        """Release the log file handle."""
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

    def _add_node(self, node_type: str, **properties) -> None:
        self.ptjsonlib.add_node(self.ptjsonlib.create_node_object(
            node_type, properties=properties,
        ))

    # -------------------------------------------------------------------------
    # PHASE 1 – LOAD MANIFEST
    # -------------------------------------------------------------------------

    def load(self) -> List[ManifestEntry]:
        """Load and parse report.xml. ManifestNotFound / ManifestParseError propagate."""
        ptprint("\n[STEP 1/4] Loading PhotoRec Manifest", "TITLE", condition=not self.args.json)

        entries = load_manifest(self.manifest_path)
        self._total_entries = len(entries)

        ptprint(f"✓ Manifest loaded: {self.manifest_path.name} ({len(entries)} entries)",
                "OK", condition=not self.args.json)
        self.logger.info(f"Manifest {self.manifest_path}: {len(entries)} entries")
        self._add_node("manifestLoad", success=True,
                       sourceFile=str(self.manifest_path), totalEntries=len(entries))
        return entries

    # -------------------------------------------------------------------------
    # PHASE 2+3 – LOCATE, HASH, MOVE
    # -------------------------------------------------------------------------

    def _check_size(self, record: ProcessedRecord, actual: Optional[int]) -> None:
        if actual is not None and actual != record.declared_size:
            ptprint(f"  ⚠ {record.filename}: {actual} bytes on disk, {record.declared_size} declared",
                    "WARNING", condition=not self.args.json)
            self.logger.warning(f"Size mismatch {record.filename}: "
                                f"actual={actual} declared={record.declared_size}")

    def process_entry(self, entry: ManifestEntry, writer: ReportWriter) -> Optional[ProcessedRecord]:
        """Locate, hash and move one entry. Returns None when the entry is skipped."""
        resolved = self.locator.locate(entry)
        if resolved is None:
            expected = self.locator.normalize(entry.declared_path) if entry.declared_path.strip() else None
            ptprint(f"  ✗ Not found: {entry.declared_path}", "WARNING", condition=not self.args.json)
            self.logger.warning(f"Not found: {entry.declared_path} (expected {expected})")
            self._skipped.append(entry.declared_path)
            self._add_node("notFound", declaredPath=entry.declared_path,
                           expectedPath=str(expected) if expected else None)
            return None

        if resolved.exact:
            self.logger.info(f"Located: {entry.declared_path} -> {resolved.path}")
        else:
            ptprint(f"  ⚠ Fallback match: {entry.declared_path} -> {resolved.path.name}",
                    "WARNING", condition=not self.args.json)
            self.logger.warning(f"Located by fallback (best effort): "
                                f"{entry.declared_path} -> {resolved.path}")

        try:
            actual = resolved.path.stat().st_size
        except OSError:
            actual = None

        record = self.processor.process(resolved, serial=len(self._records) + 1)
        self.logger.info(f"Hashed: {resolved.path.name} {self.processor.algorithm}={record.content_hash}")
        if self.dry_run:
            self.logger.info(f"[DRY-RUN] Would move: {resolved.path} -> {record.destination}")
        else:
            self.logger.info(f"Moved: {resolved.path} -> {record.destination}")
        self._check_size(record, actual)

        writer.append(record)
        self._records.append(record)
        ext = record.extension or "(none)"
        self._by_ext[ext] = self._by_ext.get(ext, 0) + 1

        self._add_node("carvedFile", exactMatch=resolved.exact,
                       actualSize=actual, **record.to_dict())
        return record

    def process_all(self, entries: List[ManifestEntry], writer: ReportWriter) -> None:
        ptprint("\n[STEP 2/4] Locating, Hashing and Sorting Files", "TITLE", condition=not self.args.json)

        total = len(entries)
        for idx, entry in enumerate(entries, 1):
            self.process_entry(entry, writer)
            if idx % PROGRESS_EVERY == 0 or idx == total:
                ptprint(f"  Progress: {idx}/{total} ({idx * 100 // total}%)",
                        "INFO", condition=not self.args.json)

        ptprint(f"✓ {len(self._records)} files sorted, {len(self._skipped)} skipped",
                "OK", condition=not self.args.json)

    # -------------------------------------------------------------------------
    # PHASE 4 – PERSIST
    # -------------------------------------------------------------------------

    def save_table(self, writer: ReportWriter) -> Optional[Path]:
        if self.dry_run:
            ptprint(f"[DRY-RUN] Would save spreadsheet: {self.output_path}",
                    "INFO", condition=not self.args.json)
            return None
        try:
            self._report_saved = writer.save()
        except OSError as exc:
            raise ProcessingFailure(f"Cannot save spreadsheet {self.output_path}: {exc}") from exc
        ptprint(f"✓ Spreadsheet saved: {self._report_saved} ({len(writer)} rows)",
                "OK", condition=not self.args.json)
        self.logger.info(f"Spreadsheet saved: {self._report_saved} ({len(writer)} rows)")
        return self._report_saved

    def relocate_manifest(self) -> None:
        """Move report.xml into the base directory to mark it as consumed."""
        target = self.base_dir / self.manifest_path.name
        if self.dry_run:
            self.logger.info(f"[DRY-RUN] Would move manifest to {target}")
            return
        if target.resolve() == self.manifest_path.resolve():
            return
        try:
            if target.exists():
                kept = target.with_name(
                    f"{target.stem}_{datetime.now().strftime('%Y%m%d_%H%M%S')}{target.suffix}")
                shutil.move(str(target), str(kept))
                self.logger.warning(f"Earlier manifest kept as {kept}")
            shutil.move(str(self.manifest_path), str(target))
        except OSError as exc:
            raise ProcessingFailure(f"Cannot move manifest to {target}: {exc}") from exc
        self.logger.info(f"Manifest moved: {self.manifest_path} -> {target}")
        self.ptjsonlib.add_properties({"manifestPath": str(target)})

    # -------------------------------------------------------------------------
    # MAIN ENTRY
    # -------------------------------------------------------------------------

    def _update_properties(self) -> None:
        self.ptjsonlib.add_properties({
            "totalEntries":   self._total_entries,
            "processedFiles": len(self._records),
            "skippedEntries": len(self._skipped),
            "byExtension":    self._by_ext,
            "runState":       self.state,
        })

    def _summary(self) -> None:
        self.logger.info(f"Summary: state={self.state} entries={self._total_entries} "
                         f"sorted={len(self._records)} skipped={len(self._skipped)}")
        for ext, cnt in sorted(self._by_ext.items()):
            self.logger.info(f"  {ext.upper():8s}: {cnt}")
        if self._report_saved:
            self.logger.info(f"  Spreadsheet: {self._report_saved}")
        if self._skipped:
            self.logger.info(f"  Skipped entries: {len(self._skipped)}")

    def _abort(self, exc: Exception) -> None:
        self.state = STATE_ABORTED
        ptprint(f"✗ {exc}", "ERROR", condition=not self.args.json)
        if isinstance(exc, CarvingSortError):
            self.logger.error(f"Aborted: {exc}")
        else:
            self.logger.exception(f"Aborted by unexpected error: {exc}")
        self._update_properties()
        self._summary()
        self.ptjsonlib.add_properties({"error": str(exc)})
        self.ptjsonlib.set_status("finished")

    def run(self) -> None:
        """Run the whole pipeline. Any failure is recorded as Aborted, then propagates."""
        ptprint("\n" + "=" * 70, "TITLE", condition=not self.args.json)
        ptprint("PHOTOREC OUTPUT SORTING", "TITLE", condition=not self.args.json)
        ptprint("=" * 70, "TITLE", condition=not self.args.json)
        self.logger.info(f"{SCRIPTNAME} {__version__} started, base={self.base_dir}")

        try:
            entries = self.load()
            with ReportWriter(self.output_path) as writer:
                try:
                    self.process_all(entries, writer)
                finally:
                    ptprint("\n[STEP 3/4] Saving Spreadsheet", "TITLE", condition=not self.args.json)
                    self.save_table(writer)
            ptprint("\n[STEP 4/4] Finalizing", "TITLE", condition=not self.args.json)
            self.relocate_manifest()
        except Exception as exc:
            self._abort(exc)
            raise

        self.state = STATE_COMPLETED
        self._update_properties()
        self._summary()
        self._add_node("sortSummary", processedFiles=len(self._records),
                       skippedEntries=len(self._skipped), byExtension=self._by_ext,
                       skipped=self._skipped)

        ptprint("\n" + "=" * 70, "TITLE", condition=not self.args.json)
        ptprint("SORTING COMPLETED", "OK", condition=not self.args.json)
        ptprint("=" * 70, "TITLE", condition=not self.args.json)
        ptprint(f"Manifest entries:  {self._total_entries}", "INFO", condition=not self.args.json)
        ptprint(f"Files sorted:      {len(self._records)}", "OK", condition=not self.args.json)
        ptprint(f"Skipped:           {len(self._skipped)}", "INFO", condition=not self.args.json)
        for ext, cnt in sorted(self._by_ext.items()):
            ptprint(f"  {ext.upper():8s}: {cnt}", "INFO", condition=not self.args.json)
        ptprint("=" * 70, "TITLE", condition=not self.args.json)

        self.ptjsonlib.set_status("finished")

    # -------------------------------------------------------------------------
    # REPORTING
    # -------------------------------------------------------------------------

    @property
    def records(self) -> List[ProcessedRecord]:
        return list(self._records)

    @property
    def skipped(self) -> List[str]:
        return list(self._skipped)

    def save_report(self) -> Optional[str]:
        """
        Persist the JSON report.

        In --json mode: prints JSON to stdout only.
        Otherwise writes {base}/carving_sort_report.json, except in dry-run.

        Returns:
            Path to JSON file, or None when nothing was written
        """
        if self.args.json:
            ptprint(self.ptjsonlib.get_result_json(), "", self.args.json)
            return None
        if self.dry_run:
            return None

        json_file = self.base_dir / JSON_REPORT_NAME
        report = {
            "result":         json.loads(self.ptjsonlib.get_result_json()),
            "recoveredFiles": [r.to_dict() for r in self._records],
            "skippedEntries": self._skipped,
        }
        with open(json_file, "w", encoding="utf-8") as fh:
            json.dump(report, fh, indent=2, ensure_ascii=False, default=str)

        ptprint(f"✓ JSON report saved: {json_file}", "OK", condition=not self.args.json)
        return str(json_file)


# ============================================================================
# CLI HELPERS
# ============================================================================

def get_help() -> List[Dict[str, Any]]:
    """Return help structure for ptprinthelper.help_print."""
    return [
        {"description": [
            "PhotoRec output sorter – ptlibs compliant",
            "Reads report.xml, hashes every carved file and moves it into <base>/<EXT>/",
            "Writes an XLSX report (one row per file), a run log and a JSON summary",
        ]},
        {"usage": ["ptcarvingsort [options]"]},
        {"usage_example": [
            "ptcarvingsort",
            "ptcarvingsort -b /cases/042/photorec --hash sha256",
            "ptcarvingsort -m /cases/042/report.xml --json",
            "ptcarvingsort --dry-run -v",
        ]},
        {"options": [
            ["-b",  "--base-dir",  "<dir>",  "Parent of the recup_dir.N folders (default: .)"],
            ["-m",  "--manifest",  "<file>", "Manifest (default: <base>/recup_dir.1/report.xml)"],
            ["-o",  "--output",    "<file>", f"Spreadsheet (default: <base>/{DEFAULT_REPORT_NAME})"],
            ["",    "--log-file",  "<file>", f"Run log (default: <base>/{DEFAULT_LOG_NAME})"],
            ["",    "--hash",      "<alg>",  f"Hash algorithm (default: {DEFAULT_HASH})"],
            ["",    "--marker",    "<name>", f"Output folder prefix (default: {DEFAULT_MARKER})"],
            ["--dry-run", "",      "",       "Locate and hash only, move and save nothing"],
            ["-v",  "--verbose",   "",       "Verbose logging"],
            ["-j",  "--json",      "",       "JSON output for platform integration"],
            ["-q",  "--quiet",     "",       "Suppress progress output"],
            ["-h",  "--help",      "",       "Show this help message and exit"],
            ["--version", "",      "",       "Show version and exit"],
        ]},
        {"matching": [
            "Exact declared path first",
            "Otherwise <stem>_*.<ext> in the same folder, lexicographically first wins",
            "Fallback matches are a heuristic and are logged as warnings",
            "Entries without any match are skipped and logged",
        ]},
        {"forensic_notes": [
            f"Default hash {DEFAULT_HASH} is a fingerprint only – use --hash sha256 for integrity",
            "report.xml is moved into the base directory after a completed run",
        ]},
    ]


def parse_args() -> argparse.Namespace:
    """Parse and validate command-line arguments."""
    parser = argparse.ArgumentParser(
        add_help=False,
        description=f"{SCRIPTNAME} – PhotoRec output sorter"
    )

    parser.add_argument("-b", "--base-dir", type=str, default=".")
    parser.add_argument("-m", "--manifest", type=str, default=None)
    parser.add_argument("-o", "--output",   type=str, default=None)
    parser.add_argument("--log-file",       type=str, default=None)
    parser.add_argument("--hash",           type=str.lower, default=DEFAULT_HASH, choices=HASH_CHOICES)
    parser.add_argument("--marker",         type=str, default=DEFAULT_MARKER)
    parser.add_argument("--dry-run",        action="store_true")
    parser.add_argument("-v", "--verbose",  action="store_true")
    parser.add_argument("-j", "--json",     action="store_true")
    parser.add_argument("-q", "--quiet",    action="store_true")
    parser.add_argument("--version",        action="version",
                        version=f"{SCRIPTNAME} {__version__}")

    # Platform integration
    parser.add_argument("--socket-address", type=str, default=None)
    parser.add_argument("--socket-port",    type=str, default=None)
    parser.add_argument("--process-ident",  type=str, default=None)

    if {"-h", "--help"} & set(sys.argv):
        ptprinthelper.help_print(get_help(), SCRIPTNAME, __version__)
        sys.exit(0)

    args = parser.parse_args()

    if args.json:
        args.quiet = True

    ptprinthelper.print_banner(SCRIPTNAME, __version__, args.json)
    return args


def main() -> int:
    """Entry point."""
    tool = None
    try:
        args = parse_args()
        tool = PtCarvingSort(args)
        tool.run()
        tool.save_report()
        return 0

    except CarvingSortError:
        if tool.args.json:
            tool.save_report()
        return 99
    except KeyboardInterrupt:
        ptprint("\n✗ Interrupted by user", "WARNING", condition=True)
        return 130
    except Exception as exc:
        ptprint(f"ERROR: {exc}", "ERROR", condition=True)
        return 99
    finally:
        if tool is not None:
            tool.close()


# ============================================================================
# ENTRY POINT
# ============================================================================

if __name__ == "__main__":
    sys.exit(main())
