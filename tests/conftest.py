import argparse
from pathlib import Path
from typing import Iterable, Optional

import pytest

from tests.helpers import FileSpec, render_manifest


@pytest.fixture
def base_dir(tmp_path: Path) -> Path:
    """Parent of the recup_dir.N folders, as PhotoRec leaves it."""
    base = tmp_path / "photorec"
    (base / "recup_dir.1").mkdir(parents=True)
    return base


@pytest.fixture
def write_manifest(base_dir: Path):
    def _write(files: Iterable[FileSpec], path: Optional[Path] = None) -> Path:
        path = path or base_dir / "recup_dir.1" / "report.xml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(render_manifest(files), encoding="utf-8")
        return path
    return _write


@pytest.fixture
def carve(base_dir: Path):
    """Create a carved file relative to base_dir."""
    def _carve(relpath: str, data: bytes = b"carved data") -> Path:
        path = base_dir / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        return path
    return _carve


@pytest.fixture
def make_args(base_dir: Path):
    def _make(**overrides) -> argparse.Namespace:
        values = dict(
            base_dir=str(base_dir), manifest=None, output=None, log_file=None,
            hash="md5", marker="recup_dir", dry_run=False,
            verbose=False, json=True, quiet=True,
        )
        values.update(overrides)
        return argparse.Namespace(**values)
    return _make
