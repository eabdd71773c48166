# ================================================================================
# Bait (capture probe) placed inside a segment margin
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from vpdesigner.genome.alignability import NO_ALIGNABILITY_SCORE
from vpdesigner.utils.utils import base_composition

if TYPE_CHECKING:
    from vpdesigner.genome.alignability import AlignabilityTrack


@dataclass(frozen=True)
class Bait:
    """
    A single probe of fixed length.

    Args:
        ref: Chromosome name
        start: 1-based start position (inclusive)
        end: 1-based end position (inclusive)
        sequence: Probe sequence with repeat masking preserved
        gc_content: Fraction of G/C
        repeat_content: Fraction of lowercase (repeat-masked) bases
        alignability: Mean number of genomic hits of the k-mers inside the probe
    """

    ref: str
    start: int
    end: int
    sequence: str = field(repr=False)
    gc_content: float
    repeat_content: float
    alignability: float

    @classmethod
    def from_sequence(
        cls,
        ref: str,
        start: int,
        sequence: str,
        alignability_track: AlignabilityTrack,
    ) -> Bait:
        """Compute the probe metrics for ``sequence`` placed at ``ref:start``."""
        end = start + len(sequence) - 1
        composition = base_composition(sequence)
        return cls(
            ref=ref,
            start=start,
            end=end,
            sequence=sequence,
            gc_content=composition.gc_fraction,
            repeat_content=composition.repeat_fraction,
            alignability=alignability_track.mean_kmer_alignability(ref, start, end),
        )

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    @property
    def contig_start_key(self) -> str:
        return f"{self.ref}:{self.start}"

    @property
    def has_alignability(self) -> bool:
        return not math.isnan(self.alignability) and self.alignability != NO_ALIGNABILITY_SCORE

    def is_usable(self, min_gc: float, max_gc: float, max_alignability: float) -> bool:
        """
        A bait is usable if its GC fraction lies in ``[min_gc, max_gc]`` and its
        k-mers map to at most ``max_alignability`` genomic locations on average.

        Baits without alignability data are never usable.
        """
        if not self.has_alignability:
            return False
        return (
            min_gc <= self.gc_content <= max_gc
            and self.alignability <= max_alignability
        )

    def label(self, upstream: bool) -> str:
        """Track label, e.g. ``up|GC:0.45|Ali:1.00|Rep:0.00``."""
        direction = "up" if upstream else "down"
        return (
            f"{direction}|GC:{self.gc_content:.2f}"
            f"|Ali:{self.alignability:.2f}|Rep:{self.repeat_content:.2f}"
        )

    @property
    def bed_score(self) -> int:
        """UCSC display score, 1000 for a unique probe."""
        if not self.has_alignability or self.alignability == 0:
            return 0
        return int(math.floor(1000 / self.alignability + 0.5))
