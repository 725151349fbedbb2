"""
    Copyright (c) 2025 Bc. Dominik Sabota, VUT FIT Brno

    ptcarvingsort - PhotoRec carving output sorter and reporter

    This program is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License.
    See <https://www.gnu.org/licenses/> for details.
"""

import glob
import re
from pathlib import Path
from typing import List, Optional, Tuple, Union

from .errors import EntryNotFound
from .models import ManifestEntry, ResolvedFile

DEFAULT_MARKER = "recup_dir"


class FileLocator:
    """
    Map manifest-declared paths onto the PhotoRec output tree.

    PhotoRec records the path it wrote each file to, usually with the
    absolute output prefix it was started with (/d option). Only the
    part from the recup_dir.N folder onward is meaningful here; it is
    resolved against base_dir, the parent of the recup_dir.N folders.

    When the exact file is gone, PhotoRec has most likely renamed it on a
    name collision to <stem>_<n>.<ext>. The fallback picks the
    lexicographically first such candidate. This is a best-effort
    heuristic, not a guarantee that the right file was picked.
    """

    def __init__(self, base_dir: Union[str, Path], marker: str = DEFAULT_MARKER) -> None:
        self.base_dir = Path(base_dir)
        self.marker   = marker
        self._output_dir_re = re.compile(rf"{re.escape(marker)}\.\d+")

    @property
    def first_output_dir(self) -> Path:
        return self.base_dir / f"{self.marker}.1"

    def normalize(self, declared_path: str) -> Path:
        """Turn a declared path into a path under base_dir."""
        segments = [s for s in declared_path.replace("\\", "/").split("/") if s not in ("", ".")]
        for idx, segment in enumerate(segments):
            if self._output_dir_re.fullmatch(segment):
                return self.base_dir.joinpath(*segments[idx:])
        return self.first_output_dir.joinpath(*segments)

    @staticmethod
    def _split_name(name: str) -> Optional[Tuple[str, str]]:
        stem, dot, ext = name.rpartition(".")
        if not dot or not stem or not ext:
            return None
        return stem, ext

    def fallback_candidates(self, path: Path) -> List[Path]:
        """Sorted <stem>_*.<ext> siblings of path; empty when path has no extension."""
        parts = self._split_name(path.name)
        if parts is None or not path.parent.is_dir():
            return []
        stem, ext = parts
        pattern = f"{glob.escape(stem)}_*.{glob.escape(ext)}"
        return sorted(p for p in path.parent.glob(pattern) if p.is_file())

    def locate(self, entry: ManifestEntry) -> Optional[ResolvedFile]:
        """Resolve entry to a file on disk, or None when nothing matches."""
        if not entry.declared_path.strip():
            return None

        target = self.normalize(entry.declared_path)
        if target.is_file():
            return self._resolved(target, entry, exact=True)

        candidates = self.fallback_candidates(target)
        if candidates:
            return self._resolved(candidates[0], entry, exact=False)
        return None

    def require(self, entry: ManifestEntry) -> ResolvedFile:
        """Like locate(), but raises EntryNotFound instead of returning None."""
        resolved = self.locate(entry)
        if resolved is None:
            raise EntryNotFound(f"No file found for {entry.declared_path}")
        return resolved

    @staticmethod
    def _resolved(path: Path, entry: ManifestEntry, exact: bool) -> ResolvedFile:
        return ResolvedFile(
            path=path,
            extension=path.suffix.lstrip(".").lower(),
            original_name=entry.declared_name,
            exact=exact,
            entry=entry,
        )
