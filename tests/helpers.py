"""Shared builders for PhotoRec output fixtures."""
from typing import Iterable, Optional, Sequence, Tuple

DFXML_NS = "http://www.forensicswiki.org/wiki/Category:Digital_Forensics_XML"

FileSpec = Tuple[str, int, Sequence[Tuple[int, int, int]]]


def render_manifest(files: Iterable[FileSpec], namespace: Optional[str] = DFXML_NS) -> str:
    """Build a PhotoRec style report.xml from (filename, size, byte_runs) tuples."""
    ns = f" xmlns='{namespace}'" if namespace else ""
    parts = [f"<?xml version='1.0' encoding='UTF-8'?>\n<dfxml{ns} version='1.0'>",
             "  <creator><program>PhotoRec</program></creator>"]
    for name, size, runs in files:
        parts.append("  <fileobject>")
        parts.append(f"    <filename>{name}</filename>")
        parts.append(f"    <filesize>{size}</filesize>")
        parts.append("    <byte_runs>")
        for offset, img_offset, length in runs:
            parts.append(f"      <byte_run offset='{offset}' img_offset='{img_offset}' len='{length}'/>")
        parts.append("    </byte_runs>")
        parts.append("  </fileobject>")
    parts.append("</dfxml>")
    return "\n".join(parts) + "\n"

