"""
    Copyright (c) 2025 Bc. Dominik Sabota, VUT FIT Brno

    ptcarvingsort - PhotoRec carving output sorter and reporter

    This program is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License.
    See <https://www.gnu.org/licenses/> for details.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Any, Tuple


@dataclass(frozen=True)
class ByteRun:
    """One contiguous extent of the source image used to rebuild a file."""

    offset: int
    img_offset: int
    length: int


@dataclass(frozen=True)
class ManifestEntry:
    """One <fileobject> of the PhotoRec report, exactly as declared."""

    declared_path: str
    declared_size: int
    byte_runs: Tuple[ByteRun, ...] = ()

    @property
    def declared_name(self) -> str:
        return self.declared_path.replace("\\", "/").rstrip("/").rsplit("/", 1)[-1]


@dataclass(frozen=True)
class ResolvedFile:
    path: Path
    extension: str
    original_name: str
    exact: bool
    entry: ManifestEntry = field(repr=False)


@dataclass(frozen=True)
class ProcessedRecord:
    serial: int
    filename: str
    declared_name: str
    extension: str
    declared_size: int
    content_hash: str
    byte_run_summary: str
    destination: Path

    def as_row(self) -> Tuple[Any, ...]:
        return (self.serial, self.filename, self.declared_name, self.extension,
                self.declared_size, self.content_hash, self.byte_run_summary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "serialNumber":     self.serial,
            "filename":         self.filename,
            "declaredFilename": self.declared_name,
            "extension":        self.extension,
            "declaredSize":     self.declared_size,
            "contentHash":      self.content_hash,
            "byteRuns":         self.byte_run_summary,
            "destination":      str(self.destination),
        }
