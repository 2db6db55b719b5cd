"""
Tests for insert (ifile) records and Stockholm reading/writing.
"""

import sys
from pathlib import Path

import pytest

# Add scripts directory to path for imports
scripts_dir = Path(__file__).parent.parent / "scripts"
sys.path.insert(0, str(scripts_dir))

from seedpipe.errors import FormatError
from seedpipe.inserts import (
    InsertRecord,
    InsertToken,
    format_ifile_line,
    parse_ifile_line,
    parse_insert_string,
    read_ifile,
    write_ifile,
)
from seedpipe.stockholm import (
    format_single_seq_stockholm,
    parse_stockholm,
    read_stockholm,
    write_single_seq_stockholm,
)


# ============================================================================
# Tests: Insert Records
# ============================================================================

class TestInsertTokens:
    """Tests for insert tokens and strings."""

    def test_token_string(self):
        """Tokens render as mdl:ua:len;."""
        assert str(InsertToken(40, 41, 4)) == "40:41:4;"

    def test_record_string(self):
        """Records join their tokens."""
        record = InsertRecord(1, 96, (InsertToken(40, 41, 4), InsertToken(90, 99, 1)))
        assert record.insert_string == "40:41:4;90:99:1;"

    def test_parse_string(self):
        """Insert strings parse back into tokens."""
        assert parse_insert_string("40:41:4;96:101:2;") == (
            InsertToken(40, 41, 4), InsertToken(96, 101, 2),
        )

    def test_parse_string_bad(self):
        """Tokens need three integer fields."""
        with pytest.raises(FormatError):
            parse_insert_string("40:41;")
        with pytest.raises(FormatError):
            parse_insert_string("40:x:4;")

    def test_shifted(self):
        """Shifting moves only the unaligned position."""
        assert InsertToken(110, 31, 2).shifted(80) == InsertToken(110, 111, 2)


class TestIfile:
    """Tests for ifile reading and writing."""

    def test_parse_line(self):
        """Per-sequence lines hold length, span and token triples."""
        name, seq_len, record = parse_ifile_line("seq2/351-500 150 281 400 300 21 2 350 73 1")
        assert name == "seq2/351-500"
        assert seq_len == 150
        assert record.spos == 281
        assert record.epos == 400
        assert record.tokens == (InsertToken(300, 21, 2), InsertToken(350, 73, 1))

    def test_parse_line_bad_count(self):
        """Token triples must be complete."""
        with pytest.raises(FormatError):
            parse_ifile_line("seq 150 1 100 20 30")

    def test_read(self, temp_dir, sample_ifile_text):
        """The model line and sequence lines are read."""
        path = temp_dir / "x.ifile"
        path.write_text(sample_ifile_text)
        ifile = read_ifile(path)
        assert ifile.model_name == "modelA"
        assert ifile.model_length == 1000
        assert ifile.records["seq1/1-150"] == InsertRecord(1, 120)
        assert ifile.seq_lengths["seq2/351-500"] == 150

    def test_write_skips_missing(self, temp_dir):
        """Sequences without a record are left out, order is kept."""
        path = temp_dir / "out.ifile"
        records = {
            "b": InsertRecord(1, 96, (InsertToken(40, 41, 4),)),
            "a": InsertRecord(5, 100),
        }
        write_ifile(path, "modelA", 100, ["b", "c", "a"], {"a": 96, "b": 100, "c": 50}, records)
        lines = [l for l in path.read_text().splitlines() if not l.startswith("#")]
        assert lines == ["modelA 100", "b 100 1 96 40 41 4", "a 96 5 100"]

    def test_write_then_read(self, temp_dir):
        """A written ifile reads back to the same records."""
        path = temp_dir / "rt.ifile"
        records = {"s": InsertRecord(3, 90, (InsertToken(10, 12, 3),))}
        write_ifile(path, "m", 90, ["s"], {"s": 95}, records)
        assert read_ifile(path).records == records

    def test_format_line(self):
        """Lines are space separated."""
        assert format_ifile_line("s", 10, InsertRecord(1, 10)) == "s 10 1 10"


# ============================================================================
# Tests: Stockholm
# ============================================================================

class TestStockholm:
    """Tests for Stockholm parsing and writing."""

    def test_parse_interleaved(self, sample_stockholm_text):
        """Blocks are concatenated per sequence."""
        aln = parse_stockholm(sample_stockholm_text.splitlines())
        assert list(aln.sequences) == ["s1/1-8", "s2/3-10"]
        assert aln.sequences["s1/1-8"] == "ACGT..ACGT"
        assert aln.sequences["s2/3-10"] == "AC-T..GGTT"
        assert aln.posteriors["s2/3-10"] == "99.8..7777"
        assert aln.rf == "xxxx..xxxx"

    def test_missing_header(self):
        """The STOCKHOLM header is required."""
        with pytest.raises(FormatError):
            parse_stockholm(["s1 ACGT", "//"])

    def test_pp_length_mismatch(self):
        """PP lines must match their sequence length."""
        with pytest.raises(FormatError):
            parse_stockholm(["# STOCKHOLM 1.0", "s1 ACGT", "#=GR s1 PP 99", "//"])

    def test_no_pp(self):
        """Alignments without PP have empty posteriors."""
        aln = parse_stockholm(["# STOCKHOLM 1.0", "s1 ACGT", "#=GC RF xxxx", "//"])
        assert aln.posteriors == {}

    def test_format_single(self):
        """Single-sequence records list sequence, PP, RF."""
        text = format_single_seq_stockholm("s1", "AC-T", "xxxx", "99.9")
        assert text.splitlines() == [
            "# STOCKHOLM 1.0",
            "s1 AC-T",
            "#=GR s1 PP 99.9",
            "#=GC RF xxxx",
            "//",
        ]

    def test_format_single_without_pp(self):
        """The PP line is optional."""
        text = format_single_seq_stockholm("s1", "AC-T", "xxxx")
        assert "#=GR" not in text

    def test_write_then_read(self, temp_dir):
        """Written records read back."""
        path = temp_dir / "s1.stk"
        write_single_seq_stockholm(path, "s1", "AC-T", "xxxx", "99.9")
        aln = read_stockholm(path)
        assert aln.sequences == {"s1": "AC-T"}
        assert aln.posteriors == {"s1": "99.9"}
        assert aln.rf == "xxxx"
