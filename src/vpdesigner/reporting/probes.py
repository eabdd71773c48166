# ================================================================================
# Probe order file (Agilent SureDesign format)
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import datetime
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd
from loguru import logger

if TYPE_CHECKING:
    from vpdesigner.designer.bait import Bait
    from vpdesigner.designer.viewpoint import ViewPoint

AGILENT_COLUMNS = ["TargetID", "ProbeID", "Sequence", "Replication", "Strand", "Coordinates"]


def unique_baits(viewpoints: list[ViewPoint]) -> list[Bait]:
    """Baits of all active segments, one per start position, sorted by chromosome and start."""
    baits: dict[tuple[str, int], Bait] = {}
    for vp in viewpoints:
        for segment in vp.get_active_segments():
            for bait in segment.baits:
                baits.setdefault((bait.ref, bait.start), bait)
    return [baits[key] for key in sorted(baits)]


def probe_id(bait: Bait, genome_build: str, date: datetime.date) -> str:
    """``probe_<ddmmyy>_<build>_<chrom>_<start0>``"""
    return f"probe_{date:%d%m%y}_{genome_build}_{bait.ref}_{bait.start - 1}"


def build_probe_table(
    viewpoints: list[ViewPoint],
    genome_build: str,
    date: datetime.date | None = None,
) -> pd.DataFrame:
    date = date or datetime.date.today()
    rows = [
        {
            "TargetID": bait.ref,
            "ProbeID": probe_id(bait, genome_build, date),
            "Sequence": bait.sequence.upper(),
            "Replication": 1,
            "Strand": "+",
            "Coordinates": f"{bait.ref}:{bait.start}-{bait.end}",
        }
        for bait in unique_baits(viewpoints)
    ]
    return pd.DataFrame(rows, columns=AGILENT_COLUMNS)


def write_agilent_probe_file(
    viewpoints: list[ViewPoint],
    path: str | Path,
    genome_build: str,
    date: datetime.date | None = None,
) -> Path:
    path = Path(path)
    table = build_probe_table(viewpoints, genome_build, date)
    table.to_csv(path, sep="\t", index=False)
    logger.info(f"Wrote {len(table)} probes to {path.name}")
    return path
