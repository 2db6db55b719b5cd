"""
Tests for flank subsequence planning and naming.
"""

import sys
from pathlib import Path

import pytest

# Add scripts directory to path for imports
scripts_dir = Path(__file__).parent.parent / "scripts"
sys.path.insert(0, str(scripts_dir))

from seedpipe.errors import FormatError
from seedpipe.seed import Seed
from seedpipe.subseq import SubseqRequest, parse_subseq_name, plan_subseqs, subseq_name


class TestSubseqNames:
    """Tests for subsequence naming."""

    def test_name(self):
        """Names are seq/start-stop."""
        assert subseq_name("AB541310.1", 7100, 7509) == "AB541310.1/7100-7509"

    def test_parse(self):
        """Parsing splits at the last slash."""
        assert parse_subseq_name("gi|123|x/1-400") == ("gi|123|x", 1, 400)

    def test_parse_keeps_inner_slash(self):
        """Sequence names may contain slashes themselves."""
        assert parse_subseq_name("a/b/3-9") == ("a/b", 3, 9)

    @pytest.mark.parametrize("name", ["seq1", "seq1/1", "seq1/a-5", "/1-5"])
    def test_parse_malformed(self, name):
        """Names without a /start-stop suffix are rejected."""
        with pytest.raises(FormatError):
            parse_subseq_name(name)

    def test_request_length(self):
        """Request lengths are inclusive."""
        req = SubseqRequest("s", 601, 1000)
        assert req.length == 400
        assert req.name == "s/601-1000"


class TestPlanSubseqs:
    """Tests for plan_subseqs."""

    def test_full_coverage(self):
        """A seed spanning the whole sequence needs no flanks."""
        seed = Seed.parse("1..1000:+", "1..1000:+")
        assert plan_subseqs("s", 1000, 1000, seed, 100) == []

    def test_both_flanks(self):
        """Each flank overlaps the seed by the overhang."""
        seed = Seed.parse("301..700:+", "301..700:+")
        reqs = plan_subseqs("s", 1000, 1000, seed, 100)
        assert reqs == [SubseqRequest("s", 1, 400), SubseqRequest("s", 601, 1000)]

    def test_five_prime_only(self):
        """A seed reaching the 3' end needs only a 5' flank."""
        seed = Seed.parse("51..450:+", "301..700:+")
        reqs = plan_subseqs("s", 450, 1000, seed, 100)
        assert reqs == [SubseqRequest("s", 1, 150)]

    def test_three_prime_only(self):
        """A seed starting at position 1 needs only a 3' flank."""
        seed = Seed.parse("1..400:+", "1..400:+")
        reqs = plan_subseqs("s", 1000, 1000, seed, 100)
        assert reqs == [SubseqRequest("s", 301, 1000)]

    def test_widened_overhangs(self):
        """Seeds at model termini widen the overhang by twice the unaligned length."""
        seed = Seed.parse("11..990:+", "1..980:+")
        reqs = plan_subseqs("s", 1000, 980, seed, 100)
        assert reqs == [SubseqRequest("s", 1, 130), SubseqRequest("s", 871, 1000)]

    def test_overlapping_flanks(self):
        """Overlapping flanks become one full-length request."""
        seed = Seed.parse("101..200:+", "101..200:+")
        reqs = plan_subseqs("s", 300, 300, seed, 100)
        assert reqs == [SubseqRequest("s", 1, 300)]
