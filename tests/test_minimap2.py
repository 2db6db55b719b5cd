"""
Tests for minimap2 SAM parsing and CIGAR to seed conversion.
"""

import sys
from pathlib import Path

import pytest

# Add scripts directory to path for imports
scripts_dir = Path(__file__).parent.parent / "scripts"
sys.path.insert(0, str(scripts_dir))

from seedpipe.errors import FormatError
from seedpipe.minimap2 import (
    cigar_to_seed,
    iter_sam_alignments,
    parse_cigar,
    sam_record,
    seeds_from_minimap2_sam,
)
from seedpipe.seed import SeedOptions

SAM_HEADER = [
    "@HD\tVN:1.6\tSO:unsorted\tGO:query",
    "@SQ\tSN:modelA\tLN:1000",
    "@PG\tID:minimap2\tPN:minimap2\tVN:2.26-r1175\tCL:minimap2 -a",
]


def write_sam(path, *records, header=SAM_HEADER):
    """Write a SAM file from header lines and tab-joined record fields."""
    lines = list(header) + ["\t".join(str(f) for f in rec) for rec in records]
    path.write_text("\n".join(lines) + "\n")
    return path


def read_one(path):
    return next(iter_sam_alignments(path))


# ============================================================================
# Tests: SAM Records
# ============================================================================

class TestSamRecord:
    """Tests for sam_record."""

    def test_primary(self, temp_dir):
        """A primary alignment keeps its 1-based model position."""
        path = write_sam(temp_dir / "a.sam",
                         ("seq1", 0, "modelA", 12, 60, "100M", "*", 0, 0, "*", "*"))
        rec = sam_record(read_one(path))
        assert rec.query_name == "seq1"
        assert rec.target_pos == 12
        assert rec.cigar == "100M"
        assert rec.is_primary

    def test_supplementary(self, temp_dir):
        """FLAG 2048 is accepted but not primary."""
        path = write_sam(temp_dir / "a.sam",
                         ("seq1", 2048, "modelA", 12, 60, "100M", "*", 0, 0, "*", "*"))
        assert not sam_record(read_one(path)).is_primary

    @pytest.mark.parametrize("flag", [16, 256])
    def test_other_flags(self, temp_dir, flag):
        """Other flags are rejected."""
        path = write_sam(temp_dir / "a.sam",
                         ("seq1", flag, "modelA", 12, 60, "100M", "*", 0, 0, "*", "*"))
        with pytest.raises(FormatError):
            sam_record(read_one(path))

    def test_rnext(self, temp_dir):
        """RNEXT must be '*'."""
        path = write_sam(temp_dir / "a.sam",
                         ("seq1", 0, "modelA", 12, 60, "100M", "=", 30, 0, "*", "*"))
        with pytest.raises(FormatError):
            sam_record(read_one(path))

    def test_tlen(self, temp_dir):
        """TLEN must be 0."""
        path = write_sam(temp_dir / "a.sam",
                         ("seq1", 0, "modelA", 12, 60, "100M", "*", 0, 150, "*", "*"))
        with pytest.raises(FormatError):
            sam_record(read_one(path))

    def test_missing_header_line(self, temp_dir):
        """All of @HD, @SQ and @PG are required."""
        path = write_sam(temp_dir / "a.sam",
                         ("seq1", 0, "modelA", 12, 60, "100M", "*", 0, 0, "*", "*"),
                         header=SAM_HEADER[:2])
        with pytest.raises(FormatError):
            read_one(path)


# ============================================================================
# Tests: CIGAR
# ============================================================================

class TestCigar:
    """Tests for CIGAR parsing and conversion."""

    def test_parse(self):
        """CIGAR strings split into (length, op) pairs."""
        assert parse_cigar("94M7I26M116S") == [(94, "M"), (7, "I"), (26, "M"), (116, "S")]

    @pytest.mark.parametrize("cigar", ["", "M10", "10M5", "10Q"])
    def test_parse_malformed(self, cigar):
        """Unparseable CIGAR strings are rejected."""
        with pytest.raises(FormatError):
            parse_cigar(cigar)

    def test_to_seed(self):
        """Clips shift sequence positions; I and D split blocks."""
        seed = cigar_to_seed("5S10M2I10M3D10M", 20)
        assert str(seed.seq_coords) == "6..15:+,18..27:+,28..37:+"
        assert str(seed.mdl_coords) == "20..29:+,30..39:+,43..52:+"

    def test_hard_clip(self):
        """H clips behave like S clips at the ends."""
        seed = cigar_to_seed("3H10M4H", 1)
        assert str(seed.seq_coords) == "4..13:+"

    def test_clip_in_middle(self):
        """S or H between aligned operations is rejected."""
        with pytest.raises(FormatError):
            cigar_to_seed("10M5S10M", 1)

    def test_unsupported_op(self):
        """N, P, = and X are not expected from the mapper."""
        with pytest.raises(FormatError):
            cigar_to_seed("10M2N10M", 1)

    def test_no_match(self):
        """A CIGAR without M has no blocks."""
        with pytest.raises(FormatError):
            cigar_to_seed("10S", 1)


# ============================================================================
# Tests: SAM Files
# ============================================================================

class TestSeedsFromSam:
    """Tests for seeds_from_minimap2_sam."""

    def test_seeds(self, sample_sam_file, seq_lengths):
        """One seed per primary alignment."""
        seeds = seeds_from_minimap2_sam(sample_sam_file, seq_lengths, "modelA", 1000).seeds
        assert str(seeds["seq1"].seq_coords) == "1..500:+,501..699:+,701..1000:+"
        assert str(seeds["seq1"].mdl_coords) == "1..500:+,502..700:+,701..1000:+"
        assert str(seeds["seq2"].seq_coords) == "51..450:+"
        assert str(seeds["seq2"].mdl_coords) == "301..700:+"

    def test_ungapped_only(self, sample_sam_file, seq_lengths):
        """ungapped_only keeps the longest block."""
        seeds = seeds_from_minimap2_sam(sample_sam_file, seq_lengths, "modelA", 1000,
                                        SeedOptions(ungapped_only=True)).seeds
        assert str(seeds["seq1"].seq_coords) == "1..500:+"

    def test_bad_header(self, temp_dir, sample_sam_text, seq_lengths):
        """The three header lines are required."""
        path = temp_dir / "bad.sam"
        path.write_text("\n".join(sample_sam_text.splitlines()[1:]) + "\n")
        with pytest.raises(FormatError):
            seeds_from_minimap2_sam(path, seq_lengths, "modelA", 1000)

    def test_wrong_model(self, sample_sam_file, seq_lengths):
        """Alignments to another model are an error."""
        with pytest.raises(FormatError):
            seeds_from_minimap2_sam(sample_sam_file, seq_lengths, "modelB", 1000)

    def test_missing_sequence(self, temp_dir, sample_sam_text):
        """A sequence without a primary alignment gets no seed."""
        lines = [l for l in sample_sam_text.splitlines() if not l.startswith("seq2")]
        path = temp_dir / "part.sam"
        path.write_text("\n".join(lines) + "\n")
        seeds = seeds_from_minimap2_sam(path, {"seq1": 1000, "seq2": 500}, "modelA", 1000).seeds
        assert set(seeds) == {"seq1"}

    def test_bad_record_fails_only_its_sequence(self, temp_dir):
        """A malformed alignment costs its own sequence; others keep their seeds."""
        path = write_sam(
            temp_dir / "mixed.sam",
            ("seq1", 0, "modelA", 1, 60, "1000M", "*", 0, 0, "*", "*"),
            ("seq2", 0, "modelA", 301, 60, "50S400M50S", "*", 0, 150, "*", "*"),
        )
        result = seeds_from_minimap2_sam(path, {"seq1": 1000, "seq2": 500}, "modelA", 1000)
        assert set(result.seeds) == {"seq1"}
        assert "TLEN" in result.errors["seq2"]
