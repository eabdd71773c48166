# ================================================================================
# Restriction segments around a genomic anchor position
#
# The search window reaches MAXIMUM_ZOOM_FACTOR times further than requested
# so the displayed extent can later be widened without rebuilding segments.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

from bisect import bisect_right
from dataclasses import dataclass, field

from loguru import logger

from vpdesigner.designer.enzyme import RestrictionEnzyme, find_cut_sites
from vpdesigner.designer.segment import Segment
from vpdesigner.exceptions import InvalidLocusError
from vpdesigner.genome.sequence import SequenceProvider

MAXIMUM_ZOOM_FACTOR = 3


@dataclass
class CutWindow:
    """
    Cut sites found in ``ref:start-end`` around ``genomic_pos``.

    ``clipped_up``/``clipped_down`` record whether the window was cut short
    by the start or end of the chromosome.
    """

    ref: str
    genomic_pos: int
    start: int
    end: int
    cuts: list[int] = field(default_factory=list)
    clipped_up: bool = False
    clipped_down: bool = False

    def count_cuts_upstream(self, pos: int) -> int:
        """Number of cuts at or before ``pos``."""
        return bisect_right(self.cuts, pos)

    def count_cuts_downstream(self, pos: int) -> int:
        """Number of cuts after ``pos``."""
        return len(self.cuts) - bisect_right(self.cuts, pos)

    @property
    def has_cuts(self) -> bool:
        return bool(self.cuts)


class SegmentFactory:
    """
    Finds cut sites around an anchor and partitions the window into segments.

    Adjacent segments share no base and leave no gap; the outermost segments
    extend to the window boundaries.
    """

    def __init__(
        self,
        sequence_provider: SequenceProvider,
        enzymes: list[RestrictionEnzyme],
        margin_size: int,
    ):
        if not enzymes:
            raise ValueError("At least one restriction enzyme is required")
        self.sequence_provider = sequence_provider
        self.enzymes = enzymes
        self.margin_size = margin_size

    def find_cuts(
        self,
        ref: str,
        genomic_pos: int,
        max_dist_up: int,
        max_dist_down: int,
        sequence_length: int | None = None,
    ) -> CutWindow:
        """
        Scan the window ``[genomic_pos - 3*max_dist_up, genomic_pos + 3*max_dist_down]``
        clipped to the chromosome.

        Raises
        ------
        InvalidLocusError
            If the chromosome has no length or ``genomic_pos`` lies outside it.
        """
        if sequence_length is None:
            sequence_length = self.sequence_provider.get_length(ref)
        if sequence_length <= 0 or not 1 <= genomic_pos <= sequence_length:
            raise InvalidLocusError(ref, genomic_pos, sequence_length)

        up = max_dist_up * MAXIMUM_ZOOM_FACTOR
        down = max_dist_down * MAXIMUM_ZOOM_FACTOR
        clipped_up = genomic_pos - up < 1
        clipped_down = genomic_pos + down > sequence_length
        if clipped_up:
            logger.trace(f"{ref}:{genomic_pos} upstream window clipped at chromosome start")
            up = genomic_pos - 1
        if clipped_down:
            logger.trace(f"{ref}:{genomic_pos} downstream window clipped at chromosome end")
            down = sequence_length - genomic_pos

        start = genomic_pos - up
        end = genomic_pos + down
        window = self.sequence_provider.get_subsequence(ref, start, end)
        cuts = find_cut_sites(window, self.enzymes, window_offset=start)
        # A cut at the first window base does not split anything inside the window
        cuts = [c for c in cuts if start < c <= end]

        return CutWindow(
            ref=ref,
            genomic_pos=genomic_pos,
            start=start,
            end=end,
            cuts=cuts,
            clipped_up=clipped_up,
            clipped_down=clipped_down,
        )

    def segments_from_window(self, window: CutWindow) -> list[Segment]:
        """Partition a cut window into consecutive segments."""
        boundaries = [window.start, *window.cuts, window.end + 1]
        return [
            Segment(
                window.ref,
                seg_start,
                next_start - 1,
                self.margin_size,
                self.sequence_provider,
            )
            for seg_start, next_start in zip(boundaries[:-1], boundaries[1:])
        ]

    def build(
        self,
        ref: str,
        genomic_pos: int,
        max_dist_up: int,
        max_dist_down: int,
        sequence_length: int | None = None,
    ) -> list[Segment]:
        """
        Ordered segments covering the search window around ``genomic_pos``.

        A window without any cut site yields a single segment spanning it.
        """
        window = self.find_cuts(
            ref, genomic_pos, max_dist_up, max_dist_down, sequence_length
        )
        return self.segments_from_window(window)
