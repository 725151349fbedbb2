"""
    Copyright (c) 2025 Bc. Dominik Sabota, VUT FIT Brno

    ptcarvingsort - PhotoRec carving output sorter and reporter

    This program is free software: you can redistribute it and/or modify
    it under the terms of the GNU General Public License as published by
    the Free Software Foundation, either version 3 of the License.
    See <https://www.gnu.org/licenses/> for details.
"""


class CarvingSortError(Exception):
    """Base class for every failure that aborts a sorting run."""


class ManifestNotFound(CarvingSortError):
    pass


class ManifestParseError(CarvingSortError):
    pass


class EntryNotFound(CarvingSortError):
    """A manifest entry has no matching file on disk. Never fatal."""


class ProcessingFailure(CarvingSortError):
    """Hashing or moving a located file failed; disk and report would desync."""
