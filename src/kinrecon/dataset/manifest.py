from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List

from ..sources.errors import ManifestUnreadable


@dataclass
class DepthManifestEntry:
    ts: float
    path: str


def read_depth_manifest(manifest_path: str) -> List[DepthManifestEntry]:
    """
    Parse a TUM-style depth.txt listing.

    Each non-blank, non-comment line is ``<timestamp> <relative path>``.
    Paths are resolved against the manifest's directory; the timestamp is
    kept for reference only.
    """
    entries: List[DepthManifestEntry] = []
    base = os.path.dirname(manifest_path)

    try:
        f = open(manifest_path, "r", encoding="utf-8")
    except OSError as ex:
        raise ManifestUnreadable(f"Failed to read depth list: {manifest_path}") from ex

    with f:
        for lineno, line in enumerate(f, start=1):
            line = line.strip()
            if (not line) or line.startswith("#"):
                continue
            parts = line.split()
            if len(parts) < 2:
                continue
            try:
                ts = float(parts[0])
            except ValueError as ex:
                raise ManifestUnreadable(f"{manifest_path}:{lineno}: bad timestamp {parts[0]!r}") from ex
            entries.append(DepthManifestEntry(ts=ts, path=os.path.join(base, parts[1])))
    return entries
