# ================================================================================
# Design summary JSON and per-viewpoint table
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import pandas as pd

if TYPE_CHECKING:
    from vpdesigner.designer.design import Design
    from vpdesigner.designer.panel import FailedTarget
    from vpdesigner.designer.viewpoint import ViewPoint


def build_viewpoint_table(viewpoints: list[ViewPoint]) -> pd.DataFrame:
    """One row per viewpoint, including those without selected segments."""
    rows = []
    for vp in viewpoints:
        n_up, n_down = vp.get_number_of_baits_up_down()
        rows.append(
            {
                "Gene": vp.target_name,
                "Accession": vp.accession,
                "Chrom": vp.ref,
                "TSS": vp.genomic_pos,
                "Strand": vp.strand,
                "Promoter": f"{vp.promoter_number}/{vp.total_promoters}",
                "Approach": vp.approach.value,
                "Start": vp.start,
                "End": vp.end,
                "Score": round(vp.get_score(), 4),
                "Segments": len(vp.segments),
                "SelectedSegments": vp.get_number_of_selected_segments(),
                "ViewpointLength": vp.get_total_length_of_viewpoint(),
                "ActiveSegmentLength": vp.get_total_length_of_active_segments(),
                "MarginSize": vp.get_total_margin_size(),
                "BaitsUp": n_up,
                "BaitsDown": n_down,
                "TSSFragmentSelected": vp.is_tss_fragment_chosen(),
                "State": vp.state.value,
            }
        )
    return pd.DataFrame(rows)


def write_viewpoint_table(viewpoints: list[ViewPoint], path: str | Path) -> Path:
    path = Path(path)
    build_viewpoint_table(viewpoints).to_csv(path, index=False)
    return path


def generate_design_summary(
    design: Design,
    failures: list[FailedTarget] | None = None,
    provenance: dict | None = None,
) -> dict:
    """JSON-serializable design summary: numeric statistics, report labels and failures."""
    summary = {
        "statistics": design.summary_dict(),
        "report": design.get_design_statistics(),
        "failed_targets": [
            {"gene": f.gene, "chrom": f.chrom, "pos": f.pos, "reason": f.reason}
            for f in failures or []
        ],
        "config": design.config.to_dict(),
    }
    if provenance is not None:
        summary["provenance"] = provenance
    return summary


def write_design_summary(
    design: Design,
    path: str | Path,
    failures: list[FailedTarget] | None = None,
    provenance: dict | None = None,
) -> Path:
    path = Path(path)
    with path.open("w") as f:
        json.dump(generate_design_summary(design, failures, provenance), f, indent=2, default=str)
    return path
