"""
    Copyright (c) 2025 Bc. Dominik Sabota, VUT FIT Brno

    ptcarvingsort - PhotoRec carving output sorter and reporter

    This program is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License.
    See <https://www.gnu.org/licenses/> for details.
"""

import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional, Union

from .errors import ManifestNotFound, ManifestParseError
from .models import ByteRun, ManifestEntry


def _local(tag: str) -> str:
    """Strip the '{namespace}' prefix PhotoRec puts on every DFXML tag."""
    return tag.rsplit("}", 1)[-1]


def _child(elem: ET.Element, name: str) -> Optional[ET.Element]:
    for child in elem:
        if _local(child.tag) == name:
            return child
    return None


def _to_int(value: Optional[str], what: str, index: int) -> int:
    if value is None or not value.strip():
        raise ManifestParseError(f"fileobject #{index}: missing {what}")
    try:
        return int(value.strip())
    except ValueError:
        raise ManifestParseError(f"fileobject #{index}: invalid {what} {value!r}") from None


def _parse_fileobject(elem: ET.Element, index: int) -> ManifestEntry:
    name_elem = _child(elem, "filename")
    if name_elem is None or not (name_elem.text or "").strip():
        raise ManifestParseError(f"fileobject #{index}: missing filename")

    size_elem = _child(elem, "filesize")
    size = _to_int(size_elem.text if size_elem is not None else None, "filesize", index)

    runs: List[ByteRun] = []
    runs_elem = _child(elem, "byte_runs")
    if runs_elem is not None:
        for run in runs_elem:
            if _local(run.tag) != "byte_run":
                continue
            runs.append(ByteRun(
                offset=_to_int(run.get("offset"), "byte_run offset", index),
                img_offset=_to_int(run.get("img_offset"), "byte_run img_offset", index),
                length=_to_int(run.get("len"), "byte_run len", index),
            ))

    return ManifestEntry(
        declared_path=name_elem.text.strip(),
        declared_size=size,
        byte_runs=tuple(runs),
    )


def load_manifest(path: Union[str, Path]) -> List[ManifestEntry]:
    """
    Parse a PhotoRec report.xml into manifest entries, in document order.

    Raises:
        ManifestNotFound:   the manifest file does not exist
        ManifestParseError: unreadable file, malformed XML or an incompatible <fileobject>
    """
    path = Path(path)
    if not path.is_file():
        raise ManifestNotFound(f"Manifest not found: {path}")

    try:
        root = ET.parse(path).getroot()
    except ET.ParseError as exc:
        raise ManifestParseError(f"Cannot parse manifest {path.name}: {exc}") from exc
    except OSError as exc:
        raise ManifestParseError(f"Cannot read manifest {path.name}: {exc}") from exc

    entries: List[ManifestEntry] = []
    for elem in root.iter():
        if _local(elem.tag) == "fileobject":
            entries.append(_parse_fileobject(elem, len(entries) + 1))
    return entries
