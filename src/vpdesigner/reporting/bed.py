# ================================================================================
# BED and TSV exports for the UCSC genome browser
#
# Positions in the data model are 1-based and inclusive. BED starts are
# converted to 0-based here and nowhere else.
#
# Author: Stefan Filges (stefan.filges@pm.me)
# Copyright (c) 2026 Stefan Filges
# ================================================================================

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from loguru import logger

from vpdesigner.designer.design import unique_margins

if TYPE_CHECKING:
    from vpdesigner.designer.viewpoint import ViewPoint

UCSC_URL = (
    "http://genome.ucsc.edu/cgi-bin/hgTracks?db={db}&position={chrom}%3A{start}-{end}"
    "&hgFind.matches={gene}&pix=1800"
)
UCSC_DISPLAY_OFFSET = 500

VIEWPOINT_TSV_HEADER = [
    "Gene",
    "GENOMIC_POS",
    "URL",
    "NO_SELECTED_FRAGMENTS",
    "SCORE",
    "VP_LENGTH",
    "ACT_SEG_LENGTH",
    "TSS_FRAGMENT_SELECTED",
]


def _track_line(name: str, description: str, color: str, use_score: bool = False, visibility: int = 2) -> str:
    line = f"track name='{name}' description='{description}' color={color}"
    if use_score:
        line += " useScore=1"
    return f"{line} visibility={visibility}"


def _bed_line(chrom: str, start: int, end: int, *fields) -> str:
    """Tab-separated BED line from a 1-based inclusive interval."""
    return "\t".join([chrom, str(start - 1), str(end), *(str(f) for f in fields)])


def exported_viewpoints(viewpoints: list[ViewPoint]) -> list[ViewPoint]:
    """Viewpoints with at least one selected segment; the others are not exported."""
    return [vp for vp in viewpoints if vp.has_valid_digest()]


def ucsc_url(vp: ViewPoint, genome_build: str, offset: int = UCSC_DISPLAY_OFFSET) -> str:
    chrom = vp.ref if vp.ref.startswith("chr") else f"chr{vp.ref}"
    return UCSC_URL.format(
        db=genome_build,
        chrom=chrom,
        start=max(1, vp.start - offset),
        end=vp.end + offset,
        gene=vp.target_name,
    )


def target_region_lines(viewpoints: list[ViewPoint]) -> list[str]:
    """
    One BED line per unique margin, named ``target_N:GENE1,GENE2`` after
    all genes whose viewpoints share it.
    """
    return [
        _bed_line(ref, start, end, f"target_{i}:{','.join(targets)}")
        for i, (ref, start, end, targets) in enumerate(unique_margins(viewpoints))
    ]


def unique_fragment_lines(viewpoints: list[ViewPoint]) -> list[str]:
    """One BED line per unique active segment, named after the genes sharing it."""
    fragments: dict[tuple[str, int, int], list[str]] = {}
    for vp in exported_viewpoints(viewpoints):
        for segment in vp.get_active_segments():
            genes = fragments.setdefault(segment.key(), [])
            if vp.target_name not in genes:
                genes.append(vp.target_name)
    return [
        _bed_line(ref, start, end, ",".join(genes))
        for (ref, start, end), genes in sorted(fragments.items())
    ]


def probe_lines(viewpoints: list[ViewPoint]) -> list[str]:
    """Unique baits of all active segments with their label and display score."""
    probes: dict[tuple[str, int, int, str], int] = {}
    for vp in exported_viewpoints(viewpoints):
        for segment in vp.get_active_segments():
            for upstream, baits in ((True, segment.baits_upstream), (False, segment.baits_downstream)):
                for bait in baits:
                    probes[(bait.ref, bait.start, bait.end, bait.label(upstream))] = bait.bed_score
    return [
        _bed_line(ref, start, end, label, score)
        for (ref, start, end, label), score in sorted(probes.items())
    ]


def write_all_tracks_bed(viewpoints: list[ViewPoint], path: str | Path, prefix: str) -> Path:
    """
    Write the combined UCSC track file: genomic positions, viewpoints,
    restriction fragments, target regions and probes.
    """
    path = Path(path)
    vps = exported_viewpoints(viewpoints)
    lines = [_track_line(f"{prefix}_genomicPositions", "Genomic positions", "0,0,0")]
    lines += [
        _bed_line(vp.ref, vp.genomic_pos, vp.genomic_pos, f"{vp.target_name}_{vp.promoter_number}")
        for vp in vps
    ]

    lines.append(_track_line(f"{prefix}_viewpoints", "Viewpoints", "0,0,0", use_score=True))
    lines += [
        _bed_line(vp.ref, vp.start, vp.end, vp.target_name, int(round(vp.get_score() * 1000)))
        for vp in vps
    ]

    lines.append(_track_line(f"{prefix}_fragments", "Restriction fragments", "0,0,128"))
    lines += [
        _bed_line(s.ref, s.start, s.end, vp.target_name)
        for vp in vps
        for s in vp.get_active_segments()
    ]

    lines.append(_track_line(f"{prefix}_targetRegions", "Target regions", "0,64,128"))
    lines += target_region_lines(vps)

    lines.append(_track_line(f"{prefix}_probes", "Probes", "0,0,0", use_score=True, visibility=3))
    lines += probe_lines(vps)

    path.write_text("\n".join(lines) + "\n")
    return path


def write_target_regions(viewpoints: list[ViewPoint], path: str | Path) -> Path:
    path = Path(path)
    name = path.name
    lines = [f"track name='{name}' description='{name}'", *target_region_lines(viewpoints)]
    path.write_text("\n".join(lines) + "\n")
    return path


def write_unique_fragments_bed(viewpoints: list[ViewPoint], path: str | Path) -> Path:
    path = Path(path)
    lines = unique_fragment_lines(viewpoints)
    path.write_text("".join(f"{line}\n" for line in lines))
    return path


def write_viewpoint_tsv(viewpoints: list[ViewPoint], path: str | Path, genome_build: str) -> Path:
    """Per-viewpoint summary with a UCSC browser link."""
    path = Path(path)
    lines = ["\t".join(VIEWPOINT_TSV_HEADER)]
    for vp in exported_viewpoints(viewpoints):
        row = [
            vp.target_name,
            vp.get_genomic_location_string(),
            ucsc_url(vp, genome_build),
            vp.get_number_of_selected_segments(),
            f"{vp.get_score():.2f}",
            vp.get_total_length_of_viewpoint(),
            vp.get_total_length_of_active_segments(),
            str(vp.is_tss_fragment_chosen()).lower(),
        ]
        lines.append("\t".join(str(v) for v in row))
    path.write_text("\n".join(lines) + "\n")
    return path


def export_bed_files(
    viewpoints: list[ViewPoint],
    output_dir: str | Path,
    prefix: str,
    genome_build: str,
) -> dict[str, Path]:
    """
    Write all browser files for a design.

    Returns
    -------
    dict[str, Path]
        Output paths keyed by file kind.
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    n_skipped = len(viewpoints) - len(exported_viewpoints(viewpoints))
    if n_skipped:
        logger.info(f"{n_skipped} viewpoint(s) without selected segments are not exported")

    files = {
        "all_tracks": write_all_tracks_bed(
            viewpoints, output_dir / f"{prefix}_allTracks.bed", prefix
        ),
        "target_regions": write_target_regions(
            viewpoints, output_dir / f"{prefix}_uniqueTargetDigestMargins.txt"
        ),
        "viewpoints": write_viewpoint_tsv(
            viewpoints, output_dir / f"{prefix}_viewPoints.tsv", genome_build
        ),
        "unique_fragments": write_unique_fragments_bed(
            viewpoints, output_dir / f"{prefix}_uniqueTargetDigests.bed"
        ),
    }
    for path in files.values():
        logger.debug(f"Wrote {path}")
    return files
