"""Unit tests for vpdesigner.designer.bait module."""

import math

import pytest

from vpdesigner.designer.bait import Bait


def make_bait(gc=0.5, repeat=0.0, alignability=1.0, start=101):
    return Bait(
        ref="chr1",
        start=start,
        end=start + 39,
        sequence="ACGT" * 10,
        gc_content=gc,
        repeat_content=repeat,
        alignability=alignability,
    )


class TestBaitFromSequence:
    def test_metrics(self, track):
        bait = Bait.from_sequence("chr1", 1, "ACGT" * 10, track)
        assert bait.end == 40
        assert bait.length == 40
        assert bait.gc_content == pytest.approx(0.5)
        assert bait.repeat_content == 0.0
        assert bait.alignability == pytest.approx(1.0)

    def test_repeat_masked_sequence(self, track):
        bait = Bait.from_sequence("chr1", 1, "acgt" * 5 + "ACGT" * 5, track)
        assert bait.repeat_content == pytest.approx(0.5)
        assert bait.gc_content == pytest.approx(0.5)

    def test_unknown_chromosome_has_no_alignability(self, track):
        bait = Bait.from_sequence("chrUn", 1, "ACGT" * 10, track)
        assert not bait.has_alignability


class TestBaitUsability:
    def test_usable(self):
        assert make_bait().is_usable(0.35, 0.65, 10)

    @pytest.mark.parametrize("gc", [0.3, 0.7])
    def test_gc_out_of_range(self, gc):
        assert not make_bait(gc=gc).is_usable(0.35, 0.65, 10)

    def test_gc_bounds_inclusive(self):
        assert make_bait(gc=0.35).is_usable(0.35, 0.65, 10)
        assert make_bait(gc=0.65).is_usable(0.35, 0.65, 10)

    def test_too_many_hits(self):
        assert not make_bait(alignability=11).is_usable(0.35, 0.65, 10)

    @pytest.mark.parametrize("alignability", [-1.0, math.nan])
    def test_missing_alignability(self, alignability):
        assert not make_bait(alignability=alignability).is_usable(0.0, 1.0, 1000)


class TestBaitReporting:
    def test_label(self):
        assert make_bait().label(upstream=True) == "up|GC:0.50|Ali:1.00|Rep:0.00"
        assert make_bait(repeat=0.25).label(upstream=False) == "down|GC:0.50|Ali:1.00|Rep:0.25"

    @pytest.mark.parametrize(
        "alignability,score",
        [(1.0, 1000), (3.0, 333), (1.5, 667), (-1.0, 0), (math.nan, 0)],
    )
    def test_bed_score(self, alignability, score):
        assert make_bait(alignability=alignability).bed_score == score

    def test_contig_start_key(self):
        assert make_bait(start=101).contig_start_key == "chr1:101"
