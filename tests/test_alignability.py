# ================================================================================
# Tests for the k-mer alignability track
# ================================================================================

import gzip
import math

import numpy as np
import pandas as pd
import pytest

from vpdesigner.genome.alignability import (
    NO_ALIGNABILITY_SCORE,
    AlignabilityTrack,
    _hits_from_mappability,
    build_alignability_map,
    read_chrom_info,
)


def intervals(rows):
    return pd.DataFrame(rows, columns=["chrom", "start", "end", "value"])


@pytest.fixture
def amap():
    """chrT: 1 hit on 1-10, 2 hits on 11-20, gap 21-30, 4 hits on 31-40, uncovered to 50."""
    return build_alignability_map(
        "chrT",
        intervals(
            [
                ("chrT", 0, 10, 1.0),
                ("chrT", 10, 20, 0.5),
                ("chrT", 30, 40, 0.25),
            ]
        ),
        chrom_length=50,
        kmer_size=5,
    )


class TestHitsFromMappability:
    def test_hits(self):
        hits = _hits_from_mappability(np.array([1.0, 0.5, 0.3, 0.0, -0.5]))
        assert hits.tolist() == [1, 2, 3, -1, -1]


class TestAlignabilityMap:
    """Tests for build_alignability_map() and AlignabilityMap."""

    def test_step_function(self, amap):
        assert amap.coords.tolist() == [1, 11, 21, 31, 41]
        assert amap.scores.tolist() == [1, 2, -1, 4, -1]

    def test_leading_gap(self):
        amap = build_alignability_map(
            "chrT", intervals([("chrT", 5, 10, 1.0)]), chrom_length=20
        )
        assert amap.coords.tolist() == [1, 6, 11]
        assert amap.scores.tolist() == [-1, 1, -1]

    def test_scores_from_to(self, amap):
        assert amap.get_score_from_to(9, 12).tolist() == [1, 1, 2, 2]
        assert amap.get_score_from_to(40, 41).tolist() == [4, -1]

    def test_empty_range(self, amap):
        assert len(amap.get_score_from_to(5, 4)) == 0


class TestAlignabilityTrack:
    """Tests for AlignabilityTrack lookups."""

    def test_mean_kmer_alignability(self, amap):
        track = AlignabilityTrack({"chrT": amap}, kmer_size=5)
        # k-mers starting at 1..11
        assert track.mean_kmer_alignability("chrT", 1, 15) == pytest.approx(12 / 11)

    def test_kmer_in_gap(self, amap):
        track = AlignabilityTrack({"chrT": amap}, kmer_size=5)
        assert track.mean_kmer_alignability("chrT", 15, 30) == NO_ALIGNABILITY_SCORE

    def test_interval_shorter_than_kmer(self, amap):
        track = AlignabilityTrack({"chrT": amap}, kmer_size=5)
        assert math.isnan(track.mean_kmer_alignability("chrT", 1, 3))

    def test_unknown_chromosome(self, amap):
        track = AlignabilityTrack({"chrT": amap}, kmer_size=5)
        assert track.get_scores("chrU", 1, 3).tolist() == [-1, -1, -1]
        assert track.mean_kmer_alignability("chrU", 1, 10) == NO_ALIGNABILITY_SCORE
        assert not track.has_chromosome("chrU")
        assert track.get_map("chrU") is None


class TestReadFiles:
    """Tests for reading bedGraph and chromInfo files."""

    def test_read_chrom_info(self, genome_files):
        assert read_chrom_info(genome_files["chrom_info"]) == {"chr1": 20_000, "chr2": 1000}

    def test_from_bedgraph(self, genome_files):
        track = AlignabilityTrack.from_bedgraph(
            genome_files["alignability"], genome_files["chrom_info"], kmer_size=20
        )
        assert track.chromosomes == ["chr1"]
        assert track.chrom_sizes["chr2"] == 1000
        assert track.get_map("chr1").coords.tolist() == [1, 12_001]
        assert track.mean_kmer_alignability("chr1", 11_990, 12_029) == pytest.approx(1.0)

    def test_chromosome_filter(self, tmp_path, genome_files):
        path = tmp_path / "two.bedgraph.gz"
        with gzip.open(path, "wt") as f:
            f.write("chr1\t0\t100\t1\nchr2\t0\t100\t0.5\n")
        track = AlignabilityTrack.from_bedgraph(
            path, genome_files["chrom_info"], kmer_size=20, chromosomes={"chr2"}
        )
        assert track.chromosomes == ["chr2"]
        assert track.get_scores("chr2", 100, 101).tolist() == [2, -1]

    def test_missing_bedgraph(self, tmp_path, genome_files):
        with pytest.raises(FileNotFoundError, match="bedGraph"):
            AlignabilityTrack.from_bedgraph(tmp_path / "missing.gz", genome_files["chrom_info"])

    def test_missing_chrom_info(self, tmp_path):
        with pytest.raises(FileNotFoundError, match="chromInfo"):
            read_chrom_info(tmp_path / "missing.txt.gz")
