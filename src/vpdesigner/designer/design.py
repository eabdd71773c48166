# ================================================================================
# Panel-wide design statistics
#
# A read-only pass over a list of viewpoints. Restriction fragments and
# margins shared by overlapping viewpoints are counted once.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

from loguru import logger

from vpdesigner.config import Approach, PanelConfig
from vpdesigner.designer.enzyme import RestrictionEnzyme, get_enzymes

if TYPE_CHECKING:
    from vpdesigner.designer.segment import Segment
    from vpdesigner.designer.viewpoint import ViewPoint


def unique_margins(viewpoints: list[ViewPoint]) -> list[tuple[str, int, int, list[str]]]:
    """
    Unique margins of all active segments with the targets sharing them.

    Returns ``(ref, start, end, target_names)`` tuples sorted by position.
    """
    margins: dict[tuple[str, int, int], list[str]] = {}
    for vp in viewpoints:
        for segment in vp.get_active_segments():
            for start, end in segment.get_segment_margins():
                targets = margins.setdefault((segment.ref, start, end), [])
                if vp.target_name not in targets:
                    targets.append(vp.target_name)
    return [(*key, targets) for key, targets in sorted(margins.items())]


@dataclass(frozen=True)
class BaitedFragmentEvaluation:
    """
    Placement quality of the baits of one restriction fragment.

    A fragment is bilateral if both margins hold baits. A bilateral fragment
    is shifted unless each margin holds at least one bait flush with the
    fragment end (upstream baits starting at the fragment start, downstream
    baits ending at the fragment end).
    """

    n_baits: int
    n_baits_upstream: int
    n_baits_downstream: int
    n_upstream_shifted: int
    n_downstream_shifted: int

    @classmethod
    def from_segment(cls, segment: Segment) -> BaitedFragmentEvaluation:
        return cls(
            n_baits=segment.bait_number_total,
            n_baits_upstream=segment.bait_number_up,
            n_baits_downstream=segment.bait_number_down,
            n_upstream_shifted=sum(
                1 for b in segment.baits_upstream if b.start != segment.start
            ),
            n_downstream_shifted=sum(
                1 for b in segment.baits_downstream if b.end != segment.end
            ),
        )

    @property
    def is_bilateral(self) -> bool:
        return self.n_baits_upstream > 0 and self.n_baits_downstream > 0

    @property
    def is_unilateral(self) -> bool:
        return not self.is_bilateral

    @property
    def is_shifted(self) -> bool:
        unshifted_up = self.n_upstream_shifted < self.n_baits_upstream
        unshifted_down = self.n_downstream_shifted < self.n_baits_downstream
        return self.is_bilateral and not (unshifted_up and unshifted_down)

    @property
    def is_well_placed(self) -> bool:
        return self.is_bilateral and not self.is_shifted

    @property
    def has_zero_baits(self) -> bool:
        return self.n_baits == 0


class Design:
    """
    Statistics of a probe design across all viewpoints.

    Call calculate_design_parameters() (or get_design_statistics(), which
    calls it) after the viewpoint list or its selections change.
    """

    def __init__(
        self,
        viewpoints: list[ViewPoint],
        config: PanelConfig,
        enzymes: list[RestrictionEnzyme] | None = None,
    ):
        self.viewpoints = viewpoints
        self.config = config
        if enzymes is None:
            digest = config.digest_parameters
            enzymes = get_enzymes(digest.enzymes, digest.enzyme_file)
        self.enzymes = enzymes
        self._reset()

    def _reset(self) -> None:
        self.n_viewpoints = 0
        self.n_genes = 0
        self.n_resolved_viewpoints = 0
        self.n_resolved_genes = 0
        self.n_unique_fragments = 0
        self.n_patched_viewpoints = 0
        self.avg_fragments_per_vp = 0.0
        self.avg_vp_size = 0.0
        self.avg_vp_score = 0.0
        self.total_margin_nucleotides = 0
        self.n_nucleotides_in_unique_fragment_margins = 0
        self.n_estimated_probes = 0
        self.evaluations: list[BaitedFragmentEvaluation] = []

    @property
    def probe_length(self) -> int:
        return self.config.bait_parameters.probe_length

    def unique_active_segments(self) -> list[Segment]:
        """Active segments of all viewpoints, deduplicated, in first-seen order."""
        seen = {}
        for vp in self.viewpoints:
            for segment in vp.get_active_segments():
                seen.setdefault(segment.key(), segment)
        return list(seen.values())

    def calculate_design_parameters(self) -> None:
        self._reset()
        unique_segments = self.unique_active_segments()

        genes = set()
        resolved_genes = set()
        total_score = 0.0
        total_size = 0
        for vp in self.viewpoints:
            genes.add(vp.target_name)
            total_score += vp.get_score()
            total_size += vp.get_total_length_of_viewpoint()
            if vp.has_valid_digest():
                self.n_resolved_viewpoints += 1
                resolved_genes.add(vp.target_name)
            if vp.approach is Approach.SIMPLE and len(vp.get_active_segments()) > 1:
                self.n_patched_viewpoints += 1

        self.n_viewpoints = len(self.viewpoints)
        self.n_genes = len(genes)
        self.n_resolved_genes = len(resolved_genes)
        self.n_unique_fragments = len(unique_segments)
        self.total_margin_nucleotides = sum(
            min(2 * self.probe_length, s.length) for s in unique_segments
        )
        if self.n_viewpoints > 0:
            self.avg_fragments_per_vp = self.n_unique_fragments / self.n_viewpoints
            self.avg_vp_size = total_size / self.n_viewpoints
            self.avg_vp_score = total_score / self.n_viewpoints

        self.evaluations = [BaitedFragmentEvaluation.from_segment(s) for s in unique_segments]
        self._calculate_estimated_probe_number()
        logger.debug(
            f"Design: {self.n_viewpoints} viewpoints, {self.n_unique_fragments} unique fragments, "
            f"~{self.n_estimated_probes} probes"
        )

    def _calculate_estimated_probe_number(self) -> None:
        """
        Estimate the probe count from the unique margins, discounted by their
        mean repeat content.
        """
        seen_margins = set()
        repeat_sum = 0.0
        for vp in self.viewpoints:
            for segment in vp.get_active_segments():
                for start, end in segment.get_segment_margins():
                    key = (segment.ref, start, end)
                    if key in seen_margins:
                        continue
                    seen_margins.add(key)
                    repeat_sum += segment.mean_margin_repeat_content
                    self.n_nucleotides_in_unique_fragment_margins += end - start + 1

        if not seen_margins:
            return
        mean_repeat = repeat_sum / len(seen_margins)
        self.n_estimated_probes = (
            int(self.n_nucleotides_in_unique_fragment_margins * (1 - mean_repeat))
            // self.probe_length
        )

    def unique_margins(self) -> list[tuple[str, int, int, list[str]]]:
        return unique_margins(self.viewpoints)

    def get_total_num_of_unique_baits(self) -> int:
        return sum(s.bait_number_total for s in self.unique_active_segments())

    def get_capture_size(self) -> int:
        """Number of positions covered by at least one bait, per unique fragment."""
        size = 0
        for segment in self.unique_active_segments():
            covered = set()
            for bait in segment.baits:
                covered.update(range(bait.start, bait.end + 1))
            size += len(covered)
        return size

    def get_total_num_balanced_digests(self) -> int:
        return sum(1 for s in self.unique_active_segments() if s.is_balanced)

    def get_total_num_unbalanced_digests(self) -> int:
        return sum(1 for s in self.unique_active_segments() if s.is_unbalanced)

    @property
    def n_baited_fragments(self) -> int:
        return len(self.evaluations)

    @property
    def n_unilateral_fragments(self) -> int:
        return sum(1 for e in self.evaluations if e.is_unilateral)

    @property
    def n_shifted_fragments(self) -> int:
        return sum(1 for e in self.evaluations if e.is_shifted)

    @property
    def n_well_placed_fragments(self) -> int:
        return sum(1 for e in self.evaluations if e.is_well_placed)

    @property
    def n_zero_bait_fragments(self) -> int:
        return sum(1 for e in self.evaluations if e.has_zero_baits)

    def get_design_statistics(self) -> dict[str, str]:
        """Ordered label -> value mapping shown in reports."""
        self.calculate_design_parameters()
        stats: dict[str, str] = {}
        stats["assembly"] = self.config.genome_build
        stats["Genes:"] = str(self.n_genes)
        stats["Genes with ≥ 1 viewpoint with ≥ 1 selected digest:"] = str(
            self.n_resolved_genes
        )
        stats["Viewpoints:"] = str(self.n_viewpoints)
        stats["Viewpoints with ≥ 1 selected digest:"] = str(self.n_resolved_viewpoints)

        vp_summary = (
            f"n={self.n_viewpoints} of which {self.n_resolved_viewpoints} have ≥ 1 selected digest"
        )
        if self.config.approach is Approach.SIMPLE:
            vp_summary = f"{vp_summary} {self.n_patched_viewpoints} viewpoints were patched"

        stats["Restriction enzyme(s)"] = ";".join(e.name for e in self.enzymes)
        stats["Recognition site(s)"] = ";".join(e.site for e in self.enzymes)
        stats["Viewpoints"] = vp_summary
        stats["Average viewpoint size"] = f"{self.avg_vp_size:.2f}"
        stats["Average viewpoint score"] = f"{100 * self.avg_vp_score:.2f}"
        stats["number of unique digests"] = str(self.n_unique_fragments)
        stats["mean number of digests per viewpoint"] = f"{self.avg_fragments_per_vp:.2f}"
        stats["Probes"] = str(self.get_total_num_of_unique_baits())
        stats["Capture size"] = f"{self.get_capture_size() / 1_000_000:.3f} Mbp"
        stats["Total baited fragments"] = str(self.n_baited_fragments)
        stats["Total unilaterally baited fragments"] = str(self.n_unilateral_fragments)
        stats["Total shifted fragments"] = str(self.n_shifted_fragments)
        stats["Total bilateral unshifted fragments"] = str(self.n_well_placed_fragments)
        stats["Total fragments with zero baits"] = str(self.n_zero_bait_fragments)
        return stats

    def summary_dict(self) -> dict:
        """Numeric statistics for JSON export."""
        self.calculate_design_parameters()
        return {
            "genome_build": self.config.genome_build,
            "approach": self.config.approach.value,
            "enzymes": [e.name for e in self.enzymes],
            "n_genes": self.n_genes,
            "n_resolved_genes": self.n_resolved_genes,
            "n_viewpoints": self.n_viewpoints,
            "n_resolved_viewpoints": self.n_resolved_viewpoints,
            "n_patched_viewpoints": self.n_patched_viewpoints,
            "n_unique_fragments": self.n_unique_fragments,
            "avg_fragments_per_viewpoint": self.avg_fragments_per_vp,
            "avg_viewpoint_size": self.avg_vp_size,
            "avg_viewpoint_score": self.avg_vp_score,
            "total_margin_nucleotides": self.total_margin_nucleotides,
            "unique_margin_nucleotides": self.n_nucleotides_in_unique_fragment_margins,
            "estimated_probes": self.n_estimated_probes,
            "unique_baits": self.get_total_num_of_unique_baits(),
            "capture_size_bp": self.get_capture_size(),
            "balanced_fragments": self.get_total_num_balanced_digests(),
            "unbalanced_fragments": self.get_total_num_unbalanced_digests(),
            "baited_fragments": self.n_baited_fragments,
            "unilateral_fragments": self.n_unilateral_fragments,
            "shifted_fragments": self.n_shifted_fragments,
            "well_placed_fragments": self.n_well_placed_fragments,
            "zero_bait_fragments": self.n_zero_bait_fragments,
        }
