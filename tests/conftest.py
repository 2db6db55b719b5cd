"""
Pytest configuration and fixtures for Seed Pipeline tests.
"""

import pytest
import tempfile
from pathlib import Path


# ============================================================================
# Path Fixtures
# ============================================================================

@pytest.fixture
def project_root():
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def scripts_dir(project_root):
    """Return the scripts directory."""
    return project_root / "scripts"


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


# ============================================================================
# Sequence Fixtures
# ============================================================================

@pytest.fixture
def seq_lengths():
    """Lengths of the sequences used in the blastn and minimap2 fixtures."""
    return {"seq1": 1000, "seq2": 500}


def _summary(*pairs):
    lines = []
    for pair in pairs:
        lines.append(pair if isinstance(pair, str) else "\t".join(pair))
    return "\n".join(lines) + "\n"


@pytest.fixture
def sample_summary_text():
    """
    blastn summary with three HSPs for seq1/modelA (1500.5 and 250.0 on +,
    50.0 on -), one for seq1/modelB and one for seq2/modelA.
    """
    return _summary(
        ("QACC", "seq1"),
        ("QDEF", "seq1 test sequence"),
        ("QLEN", "1000"),
        ("MATCH", "1"),
        ("HACC", "modelA"),
        ("HDEF", "modelA reference"),
        ("SLEN", "1000"),
        ("HSP", "1"),
        ("BITSCORE", "1500.5"),
        ("RAWSCORE", "810"),
        ("EVALUE", "0.0"),
        ("HLEN", "1001"),
        ("IDENT", "998"),
        ("GAPS", "2"),
        ("QSTRAND", "+"),
        ("SSTRAND", "+"),
        ("DEL", "Q500:S500-1;"),
        ("MAXDE", "1"),
        ("INS", "Q699:S700+1;"),
        ("MAXIN", "1"),
        ("SRANGE", "1..1000"),
        ("QRANGE", "1..1000"),
        ("HSP", "2"),
        ("BITSCORE", "250.0"),
        ("EVALUE", "1e-60"),
        ("HLEN", "60"),
        ("QSTRAND", "+"),
        ("SSTRAND", "+"),
        ("SRANGE", "241..300"),
        ("QRANGE", "101..160"),
        ("HSP", "3"),
        ("BITSCORE", "50.0"),
        ("EVALUE", "1e-5"),
        ("HLEN", "60"),
        ("QSTRAND", "+"),
        ("SSTRAND", "-"),
        ("SRANGE", "300..241"),
        ("QRANGE", "101..160"),
        "END_MATCH",
        ("MATCH", "2"),
        ("HACC", "modelB"),
        ("SLEN", "900"),
        ("HSP", "1"),
        ("BITSCORE", "300.0"),
        ("EVALUE", "1e-80"),
        ("HLEN", "400"),
        ("QSTRAND", "+"),
        ("SSTRAND", "+"),
        ("SRANGE", "1..400"),
        ("QRANGE", "1..400"),
        "END_MATCH",
        ("QACC", "seq2"),
        ("QLEN", "500"),
        ("MATCH", "1"),
        ("HACC", "modelA"),
        ("SLEN", "1000"),
        ("HSP", "1"),
        ("BITSCORE", "700.0"),
        ("EVALUE", "0.0"),
        ("HLEN", "400"),
        ("QSTRAND", "+"),
        ("SSTRAND", "+"),
        ("SRANGE", "301..700"),
        ("QRANGE", "51..450"),
        "END_MATCH",
    )


@pytest.fixture
def sample_summary_file(temp_dir, sample_summary_text):
    """Write the sample summary to a file."""
    path = temp_dir / "chunk1.summary"
    path.write_text(sample_summary_text)
    return path


# ============================================================================
# Indel / SAM Fixtures
# ============================================================================

@pytest.fixture
def sample_indel_text():
    """Indel file for modelA: seq1 twice (first line wins), seq2 once."""
    return "\n".join([
        "modelA  seq1  1..1000:+  1000  1..1000:+  1000  Q699:S700+1;  Q500:S500-1;",
        "modelA  seq1  241..300:+  1000  101..160:+  1000  BLASTNULL  BLASTNULL",
        "modelA  seq2  301..700:+  1000  51..450:+  500  BLASTNULL  BLASTNULL",
    ]) + "\n"


@pytest.fixture
def sample_indel_file(temp_dir, sample_indel_text):
    path = temp_dir / "chunk1.modelA.indel"
    path.write_text(sample_indel_text)
    return path


@pytest.fixture
def sample_sam_text():
    """minimap2 SAM for modelA: seq1 primary + supplementary, seq2 clipped."""
    rows = [
        ["@HD", "VN:1.6", "SO:unsorted", "GO:query"],
        ["@SQ", "SN:modelA", "LN:1000"],
        ["@PG", "ID:minimap2", "PN:minimap2", "VN:2.26-r1175", "CL:minimap2 -a"],
        ["seq1", "0", "modelA", "1", "60", "500M1D199M1I300M", "*", "0", "0", "*", "*"],
        ["seq1", "2048", "modelA", "10", "60", "20M980S", "*", "0", "0", "*", "*"],
        ["seq2", "0", "modelA", "301", "60", "50S400M50S", "*", "0", "0", "*", "*"],
    ]
    return "\n".join("\t".join(r) for r in rows) + "\n"


@pytest.fixture
def sample_sam_file(temp_dir, sample_sam_text):
    path = temp_dir / "modelA.sam"
    path.write_text(sample_sam_text)
    return path


# ============================================================================
# Realignment Fixtures
# ============================================================================

@pytest.fixture
def sample_ifile_text():
    """ifile with one sequence without inserts and one with two."""
    return """\
# Insert information file
# <seqname> <seqlen> <spos> <epos> [<mdlpos> <uapos> <inslen>]*
modelA 1000
seq1/1-150 150 1 120
seq2/351-500 150 281 400 300 21 2 350 73 1
"""


@pytest.fixture
def sample_stockholm_text():
    """Interleaved two-sequence Stockholm alignment with PP and RF."""
    return """\
# STOCKHOLM 1.0

s1/1-8    ACGT..
#=GR s1/1-8 PP  9988..
s2/3-10   AC-T..
#=GR s2/3-10 PP  99.8..
#=GC RF   xxxx..

s1/1-8    ACGT
#=GR s1/1-8 PP  8888
s2/3-10   GGTT
#=GR s2/3-10 PP  7777
#=GC RF   xxxx
//
"""


# ============================================================================
# Configuration Fixtures
# ============================================================================

@pytest.fixture
def sample_config():
    """Provide a sample configuration dictionary."""
    return {
        "paths": {
            "work_dir": "/tmp/test_project",
            "results_dir": "/tmp/test_results",
        },
        "seed": {
            "overhang": 50,
            "min_segment_length": 12,
            "all_segments": False,
            "ungapped_only": True,
            "skip_start_stop_check": False,
        },
        "blastn": {
            "min_bitscore": 150.0,
        },
        "resources": {
            "threads": 4,
        },
    }
