# ================================================================================
# Tests for cut windows and segment construction
# ================================================================================

import pytest

from vpdesigner.designer.segment_factory import CutWindow, SegmentFactory
from vpdesigner.exceptions import InvalidLocusError
from vpdesigner.genome.sequence import InMemorySequenceProvider

# Cuts at 21, 45, 69 and 93
SHORT_CHROM = "A" * 20 + ("GATC" + "A" * 20) * 4


@pytest.fixture
def short_factory(dpnii):
    provider = InMemorySequenceProvider({"chrS": SHORT_CHROM})
    return SegmentFactory(provider, [dpnii], margin_size=5)


class TestCutWindow:
    """Tests for CutWindow cut counting."""

    def test_counts_around_a_cut(self):
        window = CutWindow("chrS", 50, 1, 116, cuts=[21, 45, 69, 93])
        # A cut at the position itself counts as upstream
        assert window.count_cuts_upstream(45) == 2
        assert window.count_cuts_downstream(45) == 2

    def test_counts_beyond_all_cuts(self):
        window = CutWindow("chrS", 50, 1, 116, cuts=[21, 45])
        assert window.count_cuts_upstream(10) == 0
        assert window.count_cuts_downstream(100) == 0
        assert window.has_cuts

    def test_empty(self):
        assert not CutWindow("chrS", 50, 40, 60).has_cuts


class TestFindCuts:
    """Tests for SegmentFactory.find_cuts()."""

    def test_window_is_three_times_the_requested_distance(self, short_factory):
        window = short_factory.find_cuts("chrS", 50, 5, 5)
        assert (window.start, window.end) == (35, 65)
        assert window.cuts == [45]
        assert not window.clipped_up
        assert not window.clipped_down

    def test_window_clipped_at_chromosome_ends(self, short_factory):
        window = short_factory.find_cuts("chrS", 50, 100, 100)
        assert (window.start, window.end) == (1, 116)
        assert window.cuts == [21, 45, 69, 93]
        assert window.clipped_up
        assert window.clipped_down

    def test_cut_at_window_start_is_dropped(self, short_factory):
        window = short_factory.find_cuts("chrS", 48, 1, 1)
        assert (window.start, window.end) == (45, 51)
        assert window.cuts == []

    def test_explicit_sequence_length(self, short_factory):
        window = short_factory.find_cuts("chrS", 50, 100, 100, sequence_length=60)
        assert window.end == 60
        assert window.cuts == [21, 45]

    @pytest.mark.parametrize("pos", [0, 117])
    def test_position_outside_chromosome(self, short_factory, pos):
        with pytest.raises(InvalidLocusError, match=r"\[1, 116\]"):
            short_factory.find_cuts("chrS", pos, 10, 10)

    def test_unknown_chromosome(self, short_factory):
        with pytest.raises(InvalidLocusError) as exc_info:
            short_factory.find_cuts("chrUn", 10, 10, 10)
        assert exc_info.value.length == 0


class TestBuildSegments:
    """Tests for SegmentFactory.build()."""

    def test_segments_tile_the_window(self, short_factory):
        segments = short_factory.build("chrS", 50, 100, 100)
        assert [(s.start, s.end) for s in segments] == [
            (1, 20),
            (21, 44),
            (45, 68),
            (69, 92),
            (93, 116),
        ]
        for left, right in zip(segments, segments[1:]):
            assert right.start == left.end + 1

    def test_segments_carry_margin_size(self, short_factory):
        segments = short_factory.build("chrS", 50, 100, 100)
        assert all(s.margin_size == 5 for s in segments)
        assert segments[1].sequence == "GATC" + "A" * 20

    def test_no_cut_gives_single_segment(self, short_factory):
        segments = short_factory.build("chrS", 48, 1, 1)
        assert [(s.start, s.end) for s in segments] == [(45, 51)]

    def test_digest_genome(self, factory):
        segments = factory.build("chr1", 10_250, 500, 500)
        assert segments[0].start == 8750
        assert segments[-1].end == 11_750
        assert [(s.start, s.end) for s in segments[1:-1]] == [
            (9001, 9500),
            (9501, 10_000),
            (10_001, 10_500),
            (10_501, 11_000),
            (11_001, 11_500),
        ]

    def test_requires_an_enzyme(self, provider):
        with pytest.raises(ValueError, match="At least one restriction enzyme"):
            SegmentFactory(provider, [], margin_size=100)
