# ================================================================================
# Viewpoints: the selected restriction segments around a transcription start site
#
# Two selection strategies exist:
#   SIMPLE    the segment containing the TSS, optionally widened by adjacent
#             segments (walking and patching), scored by the probability mass
#             of N(0, mean fragment length / 6) covered by the viewpoint.
#   EXTENDED  every qualifying segment within [TSS - size_up, TSS + size_down],
#             scored by the summed probability mass under one normal
#             distribution per side.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, ClassVar

from loguru import logger
from scipy.stats import norm

from vpdesigner.config import Approach
from vpdesigner.designer.segment_factory import MAXIMUM_ZOOM_FACTOR, SegmentFactory
from vpdesigner.exceptions import NoCutSiteFoundError
from vpdesigner.utils.utils import format_thousands

if TYPE_CHECKING:
    from vpdesigner.config import BaitParameters, PanelConfig
    from vpdesigner.designer.segment import Segment
    from vpdesigner.genome.alignability import AlignabilityTrack

SIMPLE_INITIAL_INCREMENT = 1000


class ViewPointState(str, Enum):
    UNINITIALIZED = "uninitialized"
    SEGMENTS_BUILT = "segments_built"
    SELECTION_APPLIED = "selection_applied"
    USER_REVISED = "user_revised"


def _cdf(value: float, sd: float) -> float:
    """CDF of N(0, sd); a degenerate distribution puts all mass at 0."""
    if sd <= 0:
        return 1.0 if value >= 0 else 0.0
    return float(norm.cdf(value, loc=0.0, scale=sd))


def segment_probability_upstream(from_pos: int, to_pos: int, sd: float) -> float:
    """Probability mass of the part of ``[from_pos, to_pos]`` (TSS-relative) below 0."""
    if from_pos >= to_pos:
        return 0.0
    return _cdf(min(to_pos, 0), sd) - _cdf(min(from_pos, 0), sd)


def segment_probability_downstream(from_pos: int, to_pos: int, sd: float) -> float:
    """Probability mass of the part of ``[from_pos, to_pos]`` (TSS-relative) above 0."""
    if from_pos >= to_pos:
        return 0.0
    return _cdf(max(to_pos, 0), sd) - _cdf(max(from_pos, 0), sd)


# ================================================================================
# Selection strategies
# ================================================================================


@dataclass(frozen=True)
class SimpleStrategy:
    """
    Centre segment plus optional neighbours.

    Args:
        est_avg_frag_len: Mean restriction fragment length of the digest
        min_frag_size: Minimum length of a selectable segment
        max_repeat_content: Maximum mean margin repeat content
        allow_unbalanced_margins: Accept segments with baits in one margin only
        allow_patching: Add a neighbour when the centre segment scores low
        patching_score_threshold: Score below which patching is attempted
        frag_num_up: Further segments to add upstream of the centre segment
        frag_num_down: Further segments to add downstream of the centre segment
    """

    approach: ClassVar[Approach] = Approach.SIMPLE

    est_avg_frag_len: float
    min_frag_size: int = 120
    max_repeat_content: float = 1.0
    allow_unbalanced_margins: bool = True
    allow_patching: bool = False
    patching_score_threshold: float = 0.6
    frag_num_up: int = 0
    frag_num_down: int = 0

    @property
    def sd(self) -> float:
        return self.est_avg_frag_len / 6

    def is_segment_valid(self, segment: Segment) -> bool:
        if segment.length < self.min_frag_size:
            return False
        if segment.mean_margin_repeat_content > self.max_repeat_content:
            return False
        if segment.is_balanced:
            return True
        return self.allow_unbalanced_margins and segment.is_unbalanced

    def score_extent(self, start: int, end: int, genomic_pos: int) -> float:
        return _cdf(end - genomic_pos, self.sd) - _cdf(start - genomic_pos, self.sd)

    def score(self, vp: ViewPoint) -> float:
        active = vp.get_active_segments()
        if not active:
            return 0.0
        return self.score_extent(
            min(s.start for s in active), max(s.end for s in active), vp.genomic_pos
        )

    def init_segments(
        self, vp: ViewPoint, factory: SegmentFactory, chromosome_length: int
    ) -> list[Segment]:
        """
        Grow the window until enough cuts flank the TSS on both sides or the
        chromosome ends.
        """
        g = vp.genomic_pos
        vp.upstream_length = vp.downstream_length = max(int(self.est_avg_frag_len), 1)
        cuts_up = 2 + self.frag_num_up
        cuts_down = 2 + self.frag_num_down
        increment = SIMPLE_INITIAL_INCREMENT
        iteration = 0
        while True:
            window = factory.find_cuts(
                vp.ref, g, vp.upstream_length, vp.downstream_length, chromosome_length
            )
            iteration += 1
            changed = False
            if window.count_cuts_upstream(g) < cuts_up and g - vp.upstream_length > 0:
                vp.upstream_length += increment
                changed = True
            if (
                window.count_cuts_downstream(g) < cuts_down
                and g + vp.downstream_length < chromosome_length
            ):
                vp.downstream_length += increment
                changed = True
            increment *= 2
            enough = (
                window.count_cuts_upstream(g) >= cuts_up
                and window.count_cuts_downstream(g) >= cuts_down
            )
            if not changed or enough or window.clipped_up or window.clipped_down:
                break
        logger.trace(f"{vp.target_name}: segment window settled after {iteration} iteration(s)")
        vp.cut_window = window
        return factory.segments_from_window(window)

    def apply(self, vp: ViewPoint) -> None:
        centre = vp.find_centre_segment()
        if centre is None:
            logger.error(
                f"{vp.target_name}: no segment contains {vp.ref}:{vp.genomic_pos}"
            )
            return

        segments = vp.segments
        idx = segments.index(centre)
        first = last = idx

        if self.is_segment_valid(centre):
            centre.set_selected(True, update_original=True)

            # Walk outward; stop at the first segment that cannot be used
            for i in range(1, self.frag_num_up + 1):
                if idx - i < 0 or not self.is_segment_valid(segments[idx - i]):
                    break
                segments[idx - i].set_selected(True, update_original=True)
                first = idx - i
            for i in range(1, self.frag_num_down + 1):
                if idx + i >= len(segments) or not self.is_segment_valid(segments[idx + i]):
                    break
                segments[idx + i].set_selected(True, update_original=True)
                last = idx + i

            score = self.score_extent(segments[first].start, segments[last].end, vp.genomic_pos)
            if self.allow_patching and score < self.patching_score_threshold:
                g = vp.genomic_pos
                # Patch on the side where the TSS lies closer to the fragment boundary
                if centre.end - g < g - centre.start and last + 1 < len(segments):
                    neighbour = segments[last + 1]
                    if self.is_segment_valid(neighbour):
                        neighbour.set_selected(True, update_original=True)
                        last += 1
                        logger.debug(f"{vp.target_name}: patched downstream with {neighbour}")
                elif first > 0:
                    neighbour = segments[first - 1]
                    if self.is_segment_valid(neighbour):
                        neighbour.set_selected(True, update_original=True)
                        first -= 1
                        logger.debug(f"{vp.target_name}: patched upstream with {neighbour}")

        # Keep the chosen segments and one neighbour on each side for manual revision
        vp.segments = segments[max(first - 1, 0) : last + 2]


@dataclass(frozen=True)
class ExtendedStrategy:
    """
    All qualifying segments within a fixed range around the TSS.

    Args:
        size_up: Extent upstream of the TSS (transcript orientation)
        size_down: Extent downstream of the TSS (transcript orientation)
        est_avg_frag_len: Mean restriction fragment length, sets the window growth step
        min_frag_size: Minimum length of a selectable segment
        max_repeat_content: Maximum mean margin repeat content
        allow_unbalanced_margins: Accept segments with baits in one margin only
    """

    approach: ClassVar[Approach] = Approach.EXTENDED

    size_up: int
    size_down: int
    est_avg_frag_len: float
    min_frag_size: int = 120
    max_repeat_content: float = 1.0
    allow_unbalanced_margins: bool = True

    def is_segment_valid(self, segment: Segment, lower: int, upper: int) -> bool:
        if segment.length < self.min_frag_size:
            return False
        if not segment.overlaps_range(lower, upper):
            return False
        if not segment.is_selectable:
            return False
        if segment.mean_margin_repeat_content > self.max_repeat_content:
            return False
        return self.allow_unbalanced_margins or not segment.is_unbalanced

    def segment_weight(self, vp: ViewPoint, segment: Segment) -> float:
        """Probability mass of ``segment`` under the up- and downstream distributions."""
        from_pos, to_pos = segment.pos_to_distance(vp.genomic_pos)
        return segment_probability_upstream(
            from_pos, to_pos, vp.upstream_length / 6
        ) + segment_probability_downstream(from_pos, to_pos, vp.downstream_length / 6)

    def score(self, vp: ViewPoint) -> float:
        return min(
            sum(self.segment_weight(vp, s) for s in vp.get_active_segments()), 1.0
        )

    def init_segments(
        self, vp: ViewPoint, factory: SegmentFactory, chromosome_length: int
    ) -> list[Segment]:
        """
        Grow the window by twice the mean fragment length until two cuts lie
        beyond each end of the requested range or the chromosome ends.
        """
        g = vp.genomic_pos
        lower = g - vp.upstream_length
        upper = g + vp.downstream_length
        up_len, down_len = vp.upstream_length, vp.downstream_length
        increment = max(int(2 * self.est_avg_frag_len), 1)
        while True:
            window = factory.find_cuts(vp.ref, g, up_len, down_len, chromosome_length)
            changed = False
            if window.count_cuts_upstream(lower) < 2 and g - up_len >= 0:
                up_len += increment
                changed = True
            if window.count_cuts_downstream(upper) < 2 and g + down_len <= chromosome_length:
                down_len += increment
                changed = True
            enough = (
                window.count_cuts_upstream(lower) >= 2
                and window.count_cuts_downstream(upper) >= 2
            )
            if not changed or enough or g - up_len < 0 or g + down_len > chromosome_length:
                break
        vp.cut_window = window
        return factory.segments_from_window(window)

    def apply(self, vp: ViewPoint) -> None:
        centre = vp.find_centre_segment()
        if centre is None:
            logger.error(
                f"{vp.target_name}: no segment contains {vp.ref}:{vp.genomic_pos}"
            )
        lower = vp.genomic_pos - vp.upstream_length
        upper = vp.genomic_pos + vp.downstream_length

        chosen = {s for s in vp.segments if self.is_segment_valid(s, lower, upper)}
        for segment in vp.segments:
            segment.set_selected(segment in chosen, update_original=True)


Strategy = SimpleStrategy | ExtendedStrategy


def make_strategy(config: PanelConfig, est_avg_frag_len: float) -> Strategy:
    """Build the selection strategy configured in ``config``."""
    vp_params = config.viewpoint_parameters
    if config.approach is Approach.SIMPLE:
        return SimpleStrategy(
            est_avg_frag_len=est_avg_frag_len,
            min_frag_size=vp_params.min_frag_size,
            max_repeat_content=vp_params.max_repeat_content,
            allow_unbalanced_margins=vp_params.allow_unbalanced_margins,
            allow_patching=vp_params.allow_patching,
            patching_score_threshold=vp_params.patching_score_threshold,
            frag_num_up=vp_params.frag_num_up,
            frag_num_down=vp_params.frag_num_down,
        )
    return ExtendedStrategy(
        size_up=vp_params.size_up,
        size_down=vp_params.size_down,
        est_avg_frag_len=est_avg_frag_len,
        min_frag_size=vp_params.min_frag_size,
        max_repeat_content=vp_params.max_repeat_content,
        allow_unbalanced_margins=vp_params.allow_unbalanced_margins,
    )


# ================================================================================
# ViewPoint
# ================================================================================


class ViewPoint:
    """
    Restriction segments around one TSS and the subset selected for capture.

    ``upstream_length``/``downstream_length`` are genomic (left/right)
    distances; for minus-strand genes the configured sizes are swapped.
    """

    def __init__(
        self,
        ref: str,
        genomic_pos: int,
        strand: str,
        target_name: str,
        accession: str | None,
        strategy: Strategy,
        promoter_number: int = 1,
        total_promoters: int = 1,
    ):
        if strand not in ("+", "-"):
            raise ValueError(f"Strand must be '+' or '-', got '{strand}'")
        self.ref = ref
        self.genomic_pos = genomic_pos
        self.strand = strand
        self.target_name = target_name
        self.accession = accession
        self.strategy = strategy
        self.promoter_number = promoter_number
        self.total_promoters = total_promoters

        if isinstance(strategy, ExtendedStrategy):
            up, down = strategy.size_up, strategy.size_down
        else:
            up = down = max(int(strategy.est_avg_frag_len), 1)
        if not self.is_positive_strand:
            up, down = down, up
        self.upstream_length = up
        self.downstream_length = down

        self.segments: list[Segment] = []
        self.cut_window = None
        self.score = 0.0
        self.zoom_factor = 1.0
        self.state = ViewPointState.UNINITIALIZED
        self.start = 0
        self.end = 0
        self.set_start_pos(genomic_pos - up)
        self.set_end_pos(genomic_pos + down)

    @property
    def approach(self) -> Approach:
        return self.strategy.approach

    @property
    def is_positive_strand(self) -> bool:
        return self.strand == "+"

    def set_start_pos(self, pos: int) -> None:
        self.start = max(pos, 0)

    def set_end_pos(self, pos: int) -> None:
        self.end = pos

    # ----------------------------------------------------------------------------
    # Construction
    # ----------------------------------------------------------------------------

    def init_segments(
        self,
        factory: SegmentFactory,
        alignability: AlignabilityTrack,
        bait_params: BaitParameters,
        chromosome_length: int,
    ) -> None:
        """Build the candidate segments, place baits and trim distant segments."""
        segments = self.strategy.init_segments(self, factory, chromosome_length)

        if not self.cut_window.has_cuts:
            only = segments[0]
            if only.length < self.strategy.min_frag_size:
                raise NoCutSiteFoundError(
                    f"No cut site near {self.ref}:{self.genomic_pos} and the "
                    f"spanning segment ({only.length} bp) is shorter than "
                    f"{self.strategy.min_frag_size} bp"
                )
            logger.debug(f"{self.target_name}: no cut site in window, using one segment")

        lower = self.genomic_pos - self.upstream_length
        upper = self.genomic_pos + self.downstream_length
        overlapping = [i for i, s in enumerate(segments) if s.overlaps_range(lower, upper)]
        if overlapping:
            segments = segments[max(overlapping[0] - 1, 0) : overlapping[-1] + 2]

        for segment in segments:
            segment.set_usable_baits(
                bait_params, alignability, bait_params.max_mean_kmer_alignability
            )
            if (
                segment.length < self.strategy.min_frag_size
                or segment.mean_margin_repeat_content > self.strategy.max_repeat_content
            ):
                segment.mark_unselectable()
        self.segments = segments
        self.state = ViewPointState.SEGMENTS_BUILT

    def apply_selection(self) -> None:
        """Run the selection strategy, then fix the extent and score."""
        self.strategy.apply(self)
        self.refresh_start_and_end_pos()
        self.score = self.strategy.score(self)
        self.state = ViewPointState.SELECTION_APPLIED
        logger.debug(
            f"{self}: {self.get_number_of_selected_segments()} selected segment(s), score {self.get_score_as_percent_string()}"
        )

    def find_centre_segment(self) -> Segment | None:
        """Return the segment containing the TSS and flag it."""
        for segment in self.segments:
            if segment.contains(self.genomic_pos):
                segment.overlaps_tss = True
                return segment
        return None

    def refresh_start_and_end_pos(self) -> None:
        """Extent of the active segments, or of all segments if none is active."""
        reference = self.get_active_segments() or self.segments
        if not reference:
            return
        self.set_start_pos(min(s.start for s in reference))
        self.set_end_pos(max(s.end for s in reference))

    # ----------------------------------------------------------------------------
    # User revision
    # ----------------------------------------------------------------------------

    def set_segment_selected(self, segment: Segment, selected: bool) -> None:
        """Manually (de)select a segment and recompute the score."""
        if segment not in self.segments:
            raise ValueError(f"{segment} is not part of {self}")
        segment.set_selected(selected)
        self.refresh_start_and_end_pos()
        self.score = self.strategy.score(self)
        self.state = (
            ViewPointState.USER_REVISED
            if self.was_modified()
            else ViewPointState.SELECTION_APPLIED
        )

    def toggle_segment(self, segment: Segment) -> None:
        self.set_segment_selected(segment, not segment.selected)

    def was_modified(self) -> bool:
        return any(s.was_modified for s in self.segments)

    def reset_segments_to_original_state(self) -> None:
        for segment in self.segments:
            segment.set_selected(segment.originally_selected)
        self.refresh_start_and_end_pos()
        self.score = self.strategy.score(self)
        if self.state is ViewPointState.USER_REVISED:
            self.state = ViewPointState.SELECTION_APPLIED

    def get_manually_revised(self) -> str:
        return "✔" if self.was_modified() else ""

    def zoom(self, factor: float) -> None:
        """Scale the displayed extent; segments and selection are unchanged."""
        if factor <= 0:
            raise ValueError(f"Zoom factor must be positive, got {factor}")
        self.zoom_factor = min(self.zoom_factor * factor, MAXIMUM_ZOOM_FACTOR)

    # ----------------------------------------------------------------------------
    # Queries
    # ----------------------------------------------------------------------------

    def get_active_segments(self) -> list[Segment]:
        return [s for s in self.segments if s.selected]

    def has_no_active_segment(self) -> bool:
        return not self.get_active_segments()

    def has_valid_digest(self) -> bool:
        return not self.has_no_active_segment()

    def get_number_of_selected_segments(self) -> int:
        return len(self.get_active_segments())

    def is_tss_fragment_chosen(self) -> bool:
        return any(s.overlaps_tss and s.selected for s in self.segments)

    def get_score(self) -> float:
        return 0.0 if self.has_no_active_segment() else self.score

    def get_score_as_percent_string(self) -> str:
        return f"{100 * self.get_score():.1f}%"

    def get_genomic_location_string(self) -> str:
        return f"{self.ref}:{format_thousands(self.genomic_pos)}"

    def get_strand_as_string(self) -> str:
        return self.strand

    def get_total_length_of_viewpoint(self) -> int:
        active = self.get_active_segments()
        if not active:
            return 0
        return max(s.end for s in active) - min(s.start for s in active) + 1

    def get_total_length_of_active_segments(self) -> int:
        return sum(s.length for s in self.get_active_segments())

    def get_total_and_active_length_as_string(self) -> str:
        return (
            f"{self.get_total_length_of_viewpoint() / 1000:.2f} kb "
            f"(all selected fragments: {self.get_total_length_of_active_segments() / 1000:.2f} kb)"
        )

    def get_total_margin_size(self) -> int:
        return sum(s.get_margin_size() for s in self.get_active_segments())

    def _minimum_selected_position(self) -> int:
        active = self.get_active_segments()
        if not active:
            return self.genomic_pos - self.upstream_length
        return min(s.start for s in active)

    def _maximum_selected_position(self) -> int:
        active = self.get_active_segments()
        if not active:
            return self.genomic_pos + self.downstream_length
        return max(s.end for s in active)

    def get_minimum_display_position(self) -> int:
        reach = int(self.upstream_length * self.zoom_factor)
        return max(min(self._minimum_selected_position(), self.genomic_pos - reach), 1)

    def get_maximum_display_position(self) -> int:
        reach = int(self.downstream_length * self.zoom_factor)
        return max(self._maximum_selected_position(), self.genomic_pos + reach)

    def get_upstream_span(self) -> int:
        """Distance from the TSS to the 5' end of the selection, in transcript orientation."""
        if self.has_no_active_segment():
            return 0
        if self.is_positive_strand:
            return self.genomic_pos - self._minimum_selected_position()
        return self._maximum_selected_position() - self.genomic_pos

    def get_downstream_span(self) -> int:
        if self.has_no_active_segment():
            return 0
        if self.is_positive_strand:
            return self._maximum_selected_position() - self.genomic_pos
        return self.genomic_pos - self._minimum_selected_position()

    def get_number_of_baits_up_down(self) -> tuple[int, int]:
        active = self.get_active_segments()
        return (
            sum(s.bait_number_up for s in active),
            sum(s.bait_number_down for s in active),
        )

    def get_number_of_baits_up_down_as_string(self) -> str:
        up, down = self.get_number_of_baits_up_down()
        return f"{up}/{down}"

    def __eq__(self, other) -> bool:
        if not isinstance(other, ViewPoint):
            return NotImplemented
        return (self.target_name, self.ref, self.genomic_pos) == (
            other.target_name,
            other.ref,
            other.genomic_pos,
        )

    def __hash__(self) -> int:
        return hash((self.target_name, self.ref, self.genomic_pos))

    def __str__(self) -> str:
        return f"{self.target_name}  [{self.ref}:{self.start}-{self.end}]"

    def __repr__(self) -> str:
        return (
            f"ViewPoint({self.target_name}, {self.get_genomic_location_string()}, "
            f"{self.strand}, {self.approach.value}, {self.state.value})"
        )


def build_viewpoint(
    ref: str,
    genomic_pos: int,
    strand: str,
    target_name: str,
    accession: str | None,
    strategy: Strategy,
    factory: SegmentFactory,
    alignability: AlignabilityTrack,
    bait_params: BaitParameters,
    chromosome_length: int | None = None,
    promoter_number: int = 1,
    total_promoters: int = 1,
) -> ViewPoint:
    """
    Build the segments around ``ref:genomic_pos`` and select the viewpoint.

    Raises
    ------
    InvalidLocusError
        If the position lies outside the chromosome.
    NoCutSiteFoundError
        If no enzyme cuts near the position and the spanning segment is too short.
    """
    if chromosome_length is None:
        chromosome_length = factory.sequence_provider.get_length(ref)
    vp = ViewPoint(
        ref,
        genomic_pos,
        strand,
        target_name,
        accession,
        strategy,
        promoter_number=promoter_number,
        total_promoters=total_promoters,
    )
    vp.init_segments(factory, alignability, bait_params, chromosome_length)
    vp.apply_selection()
    return vp
