# ================================================================================
# Tests for BED, probe and summary exports
# ================================================================================

import datetime
import json
from types import SimpleNamespace

import pandas as pd
import pytest

from vpdesigner.designer.design import Design
from vpdesigner.designer.panel import FailedTarget
from vpdesigner.designer.viewpoint import ExtendedStrategy, build_viewpoint
from vpdesigner.reporting.bed import (
    VIEWPOINT_TSV_HEADER,
    export_bed_files,
    exported_viewpoints,
    probe_lines,
    target_region_lines,
    ucsc_url,
    unique_fragment_lines,
    write_all_tracks_bed,
)
from vpdesigner.reporting.probes import (
    AGILENT_COLUMNS,
    build_probe_table,
    probe_id,
    unique_baits,
    write_agilent_probe_file,
)
from vpdesigner.reporting.summary import (
    build_viewpoint_table,
    generate_design_summary,
    write_design_summary,
)

DATE = datetime.date(2026, 10, 19)


@pytest.fixture
def viewpoints(factory, track, bait_params):
    """GENE1 with four selected fragments, GENE9 without any selected fragment."""

    def _build(name, pos, min_frag_size):
        strategy = ExtendedStrategy(
            size_up=1000, size_down=400, est_avg_frag_len=500, min_frag_size=min_frag_size
        )
        return build_viewpoint("chr1", pos, "+", name, "NM_1", strategy, factory, track, bait_params)

    return [_build("GENE1", 10_250, 60), _build("GENE9", 15_250, 501)]


def data_lines(lines):
    return [line for line in lines if not line.startswith("track")]


class TestBedLines:
    """Tests for the BED line builders."""

    def test_unresolved_viewpoints_not_exported(self, viewpoints):
        assert [vp.target_name for vp in exported_viewpoints(viewpoints)] == ["GENE1"]

    def test_target_regions_are_zero_based(self, viewpoints):
        lines = target_region_lines(viewpoints)
        assert len(lines) == 8
        assert lines[0] == "chr1\t9000\t9100\ttarget_0:GENE1"
        assert lines[1] == "chr1\t9400\t9500\ttarget_1:GENE1"

    def test_unique_fragments(self, viewpoints):
        lines = unique_fragment_lines(viewpoints)
        assert lines == [
            "chr1\t9000\t9500\tGENE1",
            "chr1\t9500\t10000\tGENE1",
            "chr1\t10000\t10500\tGENE1",
            "chr1\t10500\t11000\tGENE1",
        ]

    def test_shared_fragment_lists_all_genes(self, viewpoints, factory, track, bait_params):
        other = build_viewpoint(
            "chr1",
            10_300,
            "+",
            "GENE2",
            None,
            viewpoints[0].strategy,
            factory,
            track,
            bait_params,
        )
        lines = unique_fragment_lines([viewpoints[0], other])
        assert lines[0] == "chr1\t9000\t9500\tGENE1,GENE2"

    def test_probes(self, viewpoints):
        lines = probe_lines(viewpoints)
        assert len(lines) == 24
        assert lines[0] == "chr1\t9000\t9040\tup|GC:0.50|Ali:1.00|Rep:0.00\t1000"
        assert lines[-1] == "chr1\t10960\t11000\tdown|GC:0.50|Ali:1.00|Rep:0.00\t1000"

    def test_ucsc_url(self, viewpoints):
        url = ucsc_url(viewpoints[0], "hg38")
        assert url == (
            "http://genome.ucsc.edu/cgi-bin/hgTracks?db=hg38&position=chr1%3A8501-11500"
            "&hgFind.matches=GENE1&pix=1800"
        )

    def test_ucsc_url_adds_chr_prefix(self):
        vp = SimpleNamespace(ref="7", start=1000, end=2000, target_name="SHH")
        assert "position=chr7%3A500-2500" in ucsc_url(vp, "mm10")

    def test_ucsc_url_clamped_at_chromosome_start(self):
        vp = SimpleNamespace(ref="chr1", start=120, end=900, target_name="GENE1")
        assert "position=chr1%3A1-1400" in ucsc_url(vp, "hg38")


class TestBedFiles:
    """Tests for the written browser files."""

    def test_all_tracks(self, viewpoints, tmp_path):
        path = write_all_tracks_bed(viewpoints, tmp_path / "t_allTracks.bed", "t")
        lines = path.read_text().splitlines()
        assert lines[0] == (
            "track name='t_genomicPositions' description='Genomic positions' "
            "color=0,0,0 visibility=2"
        )
        assert lines[1] == "chr1\t10249\t10250\tGENE1_1"
        assert lines[2] == (
            "track name='t_viewpoints' description='Viewpoints' color=0,0,0 "
            "useScore=1 visibility=2"
        )
        assert lines[3] == "chr1\t9000\t11000\tGENE1\t1000"
        tracks = [line for line in lines if line.startswith("track")]
        assert len(tracks) == 5
        assert tracks[-1].endswith("useScore=1 visibility=3")
        # 1 position, 1 viewpoint, 4 fragments, 8 margins, 24 probes
        assert len(data_lines(lines)) == 38

    def test_export_bed_files(self, viewpoints, tmp_path):
        files = export_bed_files(viewpoints, tmp_path / "out", "panel", "hg38")
        assert set(files) == {"all_tracks", "target_regions", "viewpoints", "unique_fragments"}
        assert files["all_tracks"].name == "panel_allTracks.bed"
        assert all(p.exists() for p in files.values())

        margins = files["target_regions"].read_text().splitlines()
        assert margins[0] == (
            "track name='panel_uniqueTargetDigestMargins.txt' "
            "description='panel_uniqueTargetDigestMargins.txt'"
        )
        assert len(margins) == 9

        tsv = files["viewpoints"].read_text().splitlines()
        assert tsv[0].split("\t") == VIEWPOINT_TSV_HEADER
        assert len(tsv) == 2
        row = tsv[1].split("\t")
        assert row[0] == "GENE1"
        assert row[1] == "chr1:10,250"
        assert row[3:] == ["4", "1.00", "2000", "2000", "true"]

        fragments = files["unique_fragments"].read_text().splitlines()
        assert len(fragments) == 4


class TestProbeFile:
    """Tests for the Agilent probe file."""

    def test_probe_id(self):
        bait = SimpleNamespace(ref="chr1", start=9001)
        assert probe_id(bait, "hg38", DATE) == "probe_191026_hg38_chr1_9000"

    def test_unique_baits_deduplicated(self, viewpoints):
        assert len(unique_baits(viewpoints + viewpoints)) == 24

    def test_probe_table(self, viewpoints):
        table = build_probe_table(viewpoints, "hg38", DATE)
        assert list(table.columns) == AGILENT_COLUMNS
        assert len(table) == 24
        first = table.iloc[0]
        assert first["TargetID"] == "chr1"
        assert first["ProbeID"] == "probe_191026_hg38_chr1_9000"
        assert first["Coordinates"] == "chr1:9001-9040"
        assert first["Sequence"].startswith("GATC")
        assert len(first["Sequence"]) == 40
        assert set(table["Strand"]) == {"+"}

    def test_write(self, viewpoints, tmp_path):
        path = write_agilent_probe_file(viewpoints, tmp_path / "probes.bed", "hg38", DATE)
        df = pd.read_csv(path, sep="\t")
        assert list(df.columns) == AGILENT_COLUMNS
        assert len(df) == 24
        assert (df["Replication"] == 1).all()


class TestSummary:
    """Tests for the viewpoint table and design summary."""

    def test_viewpoint_table_includes_unresolved(self, viewpoints):
        table = build_viewpoint_table(viewpoints)
        assert list(table["Gene"]) == ["GENE1", "GENE9"]
        gene1 = table.iloc[0]
        assert gene1["SelectedSegments"] == 4
        assert gene1["BaitsUp"] == 12
        assert gene1["Promoter"] == "1/1"
        assert gene1["Approach"] == "EXTENDED"
        assert bool(gene1["TSSFragmentSelected"])
        assert table.iloc[1]["Score"] == 0.0

    def test_generate_summary(self, viewpoints, panel_config, dpnii):
        design = Design(viewpoints, panel_config, [dpnii])
        failures = [FailedTarget("GENE4", "chr2", 100, "no alignability data for chromosome")]
        summary = generate_design_summary(design, failures, provenance={"status": "started"})
        assert summary["statistics"]["n_viewpoints"] == 2
        assert summary["statistics"]["n_resolved_viewpoints"] == 1
        assert summary["report"]["Viewpoints:"] == "2"
        assert summary["failed_targets"] == [
            {"gene": "GENE4", "chrom": "chr2", "pos": 100, "reason": "no alignability data for chromosome"}
        ]
        assert summary["config"]["genome_build"] == "hg38"
        assert summary["provenance"] == {"status": "started"}

    def test_write_summary(self, viewpoints, panel_config, dpnii, tmp_path):
        design = Design(viewpoints, panel_config, [dpnii])
        path = write_design_summary(design, tmp_path / "summary.json")
        with open(path) as f:
            data = json.load(f)
        assert data["statistics"]["unique_baits"] == 24
        assert "provenance" not in data
