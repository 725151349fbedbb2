"""
    Copyright (c) 2025 Bc. Dominik Sabota, VUT FIT Brno

    ptcarvingsort - PhotoRec carving output sorter and reporter

    This program is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License.
    See <https://www.gnu.org/licenses/> for details.
"""

import hashlib
import shutil
from pathlib import Path
from typing import Union

from .errors import ProcessingFailure
from .models import ProcessedRecord, ResolvedFile
from .report import byte_run_summary

DEFAULT_HASH = "md5"        # content fingerprint only, use sha256 for tamper evidence
HASH_CHUNK   = 65536        # 64 KB read chunks
NO_EXT_DIR   = "NO_EXT"


def check_algorithm(name: str) -> str:
    """Return the normalised algorithm name, ValueError if hashlib lacks it."""
    name = name.lower()
    h = hashlib.new(name)
    if h.digest_size == 0:
        raise ValueError(f"Variable length digest not supported: {name}")
    return name


def compute_hash(filepath: Union[str, Path], algorithm: str = DEFAULT_HASH) -> str:
    """Return the lower-case hex digest of a file."""
    h = hashlib.new(algorithm)
    with open(filepath, "rb") as fh:
        for chunk in iter(lambda: fh.read(HASH_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


class FileProcessor:
    """Hash a located file and move it into <base>/<EXT>/."""

    def __init__(self, base_dir: Union[str, Path], algorithm: str = DEFAULT_HASH,
                 dry_run: bool = False) -> None:
        self.base_dir  = Path(base_dir)
        self.algorithm = check_algorithm(algorithm)
        self.dry_run   = dry_run

    def destination_dir(self, extension: str) -> Path:
        return self.base_dir / (extension.upper() if extension else NO_EXT_DIR)

    def process(self, resolved: ResolvedFile, serial: int) -> ProcessedRecord:
        """
        Hash, then relocate one file.

        Raises:
            ProcessingFailure: the file cannot be read, the destination is
                               taken, or the move itself fails
        """
        try:
            digest = compute_hash(resolved.path, self.algorithm)
        except OSError as exc:
            raise ProcessingFailure(f"Cannot hash {resolved.path}: {exc}") from exc

        target_dir = self.destination_dir(resolved.extension)
        target     = target_dir / resolved.path.name

        if not self.dry_run:
            if target.exists():
                raise ProcessingFailure(f"Destination already exists: {target}")
            try:
                target_dir.mkdir(parents=True, exist_ok=True)
                shutil.move(str(resolved.path), str(target))
            except OSError as exc:
                raise ProcessingFailure(f"Cannot move {resolved.path} to {target_dir}: {exc}") from exc

        return ProcessedRecord(
            serial=serial,
            filename=target.name,
            declared_name=resolved.original_name,
            extension=resolved.extension,
            declared_size=resolved.entry.declared_size,
            content_hash=digest,
            byte_run_summary=byte_run_summary(resolved.entry.byte_runs),
            destination=target,
        )
