# ================================================================================
# Restriction segment (digest) of a viewpoint
#
# A segment is the interval between two adjacent cut sites. Coordinates are
# 1-based and inclusive. Probes are placed into the two margins at the ends
# of the segment; short segments have a single margin spanning the whole
# segment.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import math
from enum import Enum
from functools import cached_property
from typing import TYPE_CHECKING

from loguru import logger

from vpdesigner.designer.bait import Bait
from vpdesigner.exceptions import InsufficientBaitsError
from vpdesigner.utils.utils import BaseComposition, base_composition, format_thousands

if TYPE_CHECKING:
    from vpdesigner.config import BaitParameters
    from vpdesigner.genome.alignability import AlignabilityTrack
    from vpdesigner.genome.sequence import SequenceProvider


class BaitBalance(str, Enum):
    """Outcome of placing baits into the two margins of a segment."""

    BALANCED = "balanced"
    UNBALANCED = "unbalanced"
    UNSELECTABLE = "unselectable"


class Segment:
    """
    A restriction fragment ``ref:start-end``.

    Sequence-derived metrics are computed on first access from the sequence
    provider and cached. Equality and hashing only consider the coordinates,
    so the same fragment reached from two viewpoints compares equal.
    """

    def __init__(
        self,
        ref: str,
        start: int,
        end: int,
        margin_size: int,
        sequence_provider: SequenceProvider,
    ):
        if start > end:
            raise ValueError(f"Segment start ({start}) must be <= end ({end})")
        self.ref = ref
        self.start = start
        self.end = end
        self.margin_size = margin_size
        self.sequence_provider = sequence_provider

        self.selected = False
        self.originally_selected = False
        self.overlaps_tss = False
        self.bait_balance: BaitBalance | None = None
        self.baits_upstream: list[Bait] = []
        self.baits_downstream: list[Bait] = []

    # ----------------------------------------------------------------------------
    # Coordinates
    # ----------------------------------------------------------------------------

    def __len__(self) -> int:
        return self.length

    @property
    def length(self) -> int:
        return self.end - self.start + 1

    def get_segment_margins(self) -> list[tuple[int, int]]:
        """
        Margin intervals of the segment.

        Two margins of ``margin_size`` at either end if the segment is longer
        than twice the margin size, otherwise a single margin equal to the
        whole segment.
        """
        if 2 * self.margin_size < self.length:
            return [
                (self.start, self.start + self.margin_size - 1),
                (self.end - self.margin_size + 1, self.end),
            ]
        return [(self.start, self.end)]

    @property
    def has_single_margin(self) -> bool:
        return 2 * self.margin_size >= self.length

    @property
    def margin_up(self) -> tuple[int, int]:
        return self.get_segment_margins()[0]

    @property
    def margin_down(self) -> tuple[int, int]:
        return self.get_segment_margins()[-1]

    def get_margin_size(self) -> int:
        """Total number of margin nucleotides."""
        return min(2 * self.margin_size, self.length)

    def pos_to_distance(self, tss: int) -> tuple[int, int]:
        """Start and end of the segment relative to ``tss``."""
        return self.start - tss, self.end - tss

    def overlaps_range(self, from_pos: int, to_pos: int) -> bool:
        return self.start <= to_pos and from_pos <= self.end

    def contains(self, pos: int) -> bool:
        return self.start <= pos <= self.end

    # ----------------------------------------------------------------------------
    # Sequence content
    # ----------------------------------------------------------------------------

    @cached_property
    def sequence(self) -> str:
        return self.sequence_provider.get_subsequence(self.ref, self.start, self.end)

    def _subsequence(self, start: int, end: int) -> str:
        return self.sequence[start - self.start : end - self.start + 1]

    @cached_property
    def _composition(self) -> BaseComposition:
        return base_composition(self.sequence)

    @cached_property
    def _margin_compositions(self) -> list[BaseComposition]:
        return [
            base_composition(self._subsequence(start, end))
            for start, end in self.get_segment_margins()
        ]

    @property
    def repeat_content(self) -> float:
        """Fraction of repeat-masked (lowercase) bases."""
        return self._composition.repeat_fraction

    @property
    def gc_content(self) -> float:
        return self._composition.gc_fraction

    @staticmethod
    def _margin_gc(composition: BaseComposition) -> float:
        denominator = composition.lower + composition.at + composition.gc
        return composition.gc / denominator if denominator else 0.0

    @property
    def repeat_content_margin_up(self) -> float:
        if self.has_single_margin:
            return self.repeat_content
        return self._margin_compositions[0].repeat_fraction

    @property
    def repeat_content_margin_down(self) -> float:
        if self.has_single_margin:
            return self.repeat_content
        return self._margin_compositions[1].repeat_fraction

    @property
    def gc_content_margin_up(self) -> float:
        if self.has_single_margin:
            return self.gc_content
        return self._margin_gc(self._margin_compositions[0])

    @property
    def gc_content_margin_down(self) -> float:
        if self.has_single_margin:
            return self.gc_content
        return self._margin_gc(self._margin_compositions[1])

    @property
    def mean_margin_repeat_content(self) -> float:
        return 0.5 * (self.repeat_content_margin_up + self.repeat_content_margin_down)

    def get_repeat_content_as_percent(self) -> str:
        return f"{100 * self.repeat_content:.2f}%"

    def get_repeat_content_margin_up_as_percent(self) -> str:
        return f"{100 * self.repeat_content_margin_up:.2f}%"

    def get_repeat_content_margin_down_as_percent(self) -> str:
        return f"{100 * self.repeat_content_margin_down:.2f}%"

    def get_gc_content_as_percent(self) -> str:
        return f"{100 * self.gc_content:.2f}%"

    def get_gc_content_up_as_percent(self) -> str:
        return f"{100 * self.gc_content_margin_up:.2f}%"

    def get_gc_content_down_as_percent(self) -> str:
        return f"{100 * self.gc_content_margin_down:.2f}%"

    # ----------------------------------------------------------------------------
    # Bait placement
    # ----------------------------------------------------------------------------

    def _make_bait(self, pos: int, probe_length: int, track: AlignabilityTrack) -> Bait:
        return Bait.from_sequence(
            self.ref, pos, self._subsequence(pos, pos + probe_length - 1), track
        )

    def set_usable_baits_upstream(
        self,
        bmax: int,
        probe_length: int,
        track: AlignabilityTrack,
        min_gc: float,
        max_gc: float,
        max_alignability: float,
        bmin: int | None = None,
    ) -> list[Bait]:
        """
        Tile the upstream margin from left to right.

        Stops after ``bmax`` usable baits or when a bait reaches the segment
        end. Raises InsufficientBaitsError (carrying the baits found) if
        ``bmin`` is given and fewer usable baits were found.
        """
        baits = []
        last_start = self.start + self.margin_size - probe_length
        for pos in range(self.start, last_start + 1):
            if pos + probe_length - 1 > self.end:
                break
            bait = self._make_bait(pos, probe_length, track)
            if bait.is_usable(min_gc, max_gc, max_alignability):
                baits.append(bait)
            if len(baits) == bmax or pos + probe_length - 1 == self.end:
                break
        self.baits_upstream = baits
        if bmin is not None and len(baits) < bmin:
            raise InsufficientBaitsError(f"upstream margin of {self}", baits, bmin)
        return baits

    def set_usable_baits_downstream(
        self,
        bmax: int,
        probe_length: int,
        track: AlignabilityTrack,
        min_gc: float,
        max_gc: float,
        max_alignability: float,
        bmin: int | None = None,
    ) -> list[Bait]:
        """
        Tile the downstream margin from right to left.

        Stops after ``bmax`` usable baits or when a bait reaches the segment
        start. Raises InsufficientBaitsError as the upstream variant does.
        """
        baits = []
        margin_start = max(self.end - self.margin_size + 1, self.start)
        for pos in range(self.end - probe_length + 1, margin_start - 1, -1):
            bait = self._make_bait(pos, probe_length, track)
            if bait.is_usable(min_gc, max_gc, max_alignability):
                baits.append(bait)
            if len(baits) == bmax or pos == self.start:
                break
        self.baits_downstream = baits
        if bmin is not None and len(baits) < bmin:
            raise InsufficientBaitsError(f"downstream margin of {self}", baits, bmin)
        return baits

    def remove_redundant_baits(self) -> int:
        """
        Drop downstream baits that start where an upstream bait starts.

        Only happens when the two margins overlap, i.e. for short segments.
        Returns the number of baits removed.
        """
        upstream_keys = {b.contig_start_key for b in self.baits_upstream}
        kept = [b for b in self.baits_downstream if b.contig_start_key not in upstream_keys]
        removed = len(self.baits_downstream) - len(kept)
        self.baits_downstream = kept
        return removed

    def set_usable_baits(
        self,
        bait_params: BaitParameters,
        track: AlignabilityTrack,
        max_alignability: float | None = None,
    ) -> BaitBalance:
        """
        Place baits into both margins and classify the segment.

        BALANCED: both margins hold at least ``min_bait_count`` baits.
        UNBALANCED: one margin is short, but re-tiling the other margin
        brings the total to ``2 * min_bait_count``.
        UNSELECTABLE: otherwise, or if the segment is shorter than a probe.
        """
        bmin = bait_params.min_bait_count
        bmax = bait_params.max_bait_count
        probe_length = bait_params.probe_length
        max_ali = (
            bait_params.max_mean_kmer_alignability
            if max_alignability is None
            else max_alignability
        )
        filters = (probe_length, track, bait_params.min_gc, bait_params.max_gc, max_ali)

        self.baits_upstream, self.baits_downstream = [], []
        if self.length < probe_length:
            self.bait_balance = BaitBalance.UNSELECTABLE
            return self.bait_balance

        short_up = short_down = False
        try:
            self.set_usable_baits_upstream(bmax, *filters, bmin=bmin)
        except InsufficientBaitsError:
            short_up = True
        try:
            self.set_usable_baits_downstream(bmax, *filters, bmin=bmin)
        except InsufficientBaitsError:
            short_down = True
        self.remove_redundant_baits()
        # Redundant baits removed from the downstream side can leave it short
        short_down = short_down or len(self.baits_downstream) < bmin

        if not short_up and not short_down:
            self.bait_balance = BaitBalance.BALANCED
        elif short_up and short_down:
            self.bait_balance = BaitBalance.UNSELECTABLE
        else:
            if short_up:
                missing = 2 * bmin - len(self.baits_upstream)
                self.set_usable_baits_downstream(missing, *filters)
            else:
                missing = 2 * bmin - len(self.baits_downstream)
                self.set_usable_baits_upstream(missing, *filters)
            self.remove_redundant_baits()
            if self.bait_number_total == 2 * bmin:
                self.bait_balance = BaitBalance.UNBALANCED
            else:
                self.bait_balance = BaitBalance.UNSELECTABLE

        logger.trace(
            f"{self}: {len(self.baits_upstream)}/{len(self.baits_downstream)} baits, {self.bait_balance.value}"
        )
        return self.bait_balance

    def mark_unselectable(self) -> None:
        """Exclude the segment from selection, e.g. because it is too short."""
        self.bait_balance = BaitBalance.UNSELECTABLE

    @property
    def is_balanced(self) -> bool:
        return self.bait_balance is BaitBalance.BALANCED

    @property
    def is_unbalanced(self) -> bool:
        return self.bait_balance is BaitBalance.UNBALANCED

    @property
    def is_selectable(self) -> bool:
        return self.bait_balance is not BaitBalance.UNSELECTABLE

    @property
    def baits(self) -> list[Bait]:
        return self.baits_upstream + self.baits_downstream

    @property
    def bait_number_up(self) -> int:
        return len(self.baits_upstream)

    @property
    def bait_number_down(self) -> int:
        return len(self.baits_downstream)

    @property
    def bait_number_total(self) -> int:
        return len(self.baits_upstream) + len(self.baits_downstream)

    def get_bait_numbers_as_string(self) -> str:
        return f"{self.bait_number_up}/{self.bait_number_down}"

    def _mean_over_baits(self, attribute: str) -> float:
        baits = self.baits
        if not baits:
            return math.nan
        return sum(getattr(b, attribute) for b in baits) / len(baits)

    @property
    def mean_gc_content_of_baits(self) -> float:
        return self._mean_over_baits("gc_content")

    @property
    def mean_alignability_of_baits(self) -> float:
        """Mean bait alignability, NaN when no bait could be placed."""
        return self._mean_over_baits("alignability")

    @property
    def mean_repeat_content_of_baits(self) -> float:
        return self._mean_over_baits("repeat_content")

    def get_mean_alignability_of_baits_as_string(self) -> str:
        value = self.mean_alignability_of_baits
        return "n/a" if math.isnan(value) else f"{value:.2f}"

    def get_mean_gc_content_of_baits_as_string(self) -> str:
        value = self.mean_gc_content_of_baits
        return "n/a" if math.isnan(value) else f"{100 * value:.2f}%"

    # ----------------------------------------------------------------------------
    # Selection
    # ----------------------------------------------------------------------------

    def set_selected(self, selected: bool, update_original: bool = False) -> None:
        """
        Change the selection state. ``update_original`` records the state as
        the one chosen when the viewpoint was created.
        """
        self.selected = selected
        if update_original:
            self.originally_selected = selected

    @property
    def was_modified(self) -> bool:
        return self.selected != self.originally_selected

    # ----------------------------------------------------------------------------
    # Reporting
    # ----------------------------------------------------------------------------

    def get_chromosomal_position_string(self) -> str:
        """Location such as ``chr3:425,930-736,434``, suffixed with `` (*)`` for the TSS segment."""
        location = f"{self.ref}:{format_thousands(self.start)}-{format_thousands(self.end)}"
        return f"{location} (*)" if self.overlaps_tss else location

    def detailed_report(self) -> str:
        return (
            f"{self.ref}:{self.start}-{self.end} [len: {self.length}] "
            f"repeat-up:{self.repeat_content_margin_up:.1f}, down:{self.repeat_content_margin_down:.1f}  "
            f"GC-up:{self.gc_content_margin_up:.1f}, down:{self.gc_content_margin_down:.1f} "
            f"overlaps TSS: {str(self.overlaps_tss).lower()}"
        )

    def key(self) -> tuple[str, int, int]:
        return self.ref, self.start, self.end

    def __eq__(self, other) -> bool:
        if not isinstance(other, Segment):
            return NotImplemented
        return self.key() == other.key()

    def __hash__(self) -> int:
        return hash(self.key())

    def __lt__(self, other: Segment) -> bool:
        return (self.ref, self.start) < (other.ref, other.start)

    def __repr__(self) -> str:
        state = "selected" if self.selected else "not selected"
        return f"Segment({self.ref}:{self.start}-{self.end} {state})"

    def __str__(self) -> str:
        return f"{self.ref}:{self.start}-{self.end}"
