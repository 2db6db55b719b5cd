"""
minimap2 SAM output to seeds.

minimap2 is run with ``-a --for-only --sam-hit-only --secondary=no`` so
its output is a SAM file with three header lines (@HD, @SQ, @PG) followed
by one line per alignment:

    seq1  0  NC_063383  12  *  94M7I264M72D13M116S  *  0  0  ACGT...

The file is read with pysam. Fields used from each AlignedSegment:
    flag                  0 (primary) or 2048 (supplementary, skipped)
    reference_name        model name
    reference_start + 1   first model position aligned
    cigarstring
    next_reference_name, next_reference_start, template_length
                          always unset ("*", 0, 0)

CIGAR operations allowed:
    M   consumes sequence and model (one block)
    I   consumes sequence only
    D   consumes model only
    S/H clipped sequence, only as first or last operation
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Tuple, Union

import pysam

from .coords import Coords, Segment, Strand
from .errors import FormatError, SeedError
from .seed import Seed, SeedOptions, SeedSet, finalize_minimap2_seed

logger = logging.getLogger(__name__)

CIGAR_RE = re.compile(r"(\d+)([MIDNSHP=X])")
SEED_CIGAR_OPS = "MIDSH"
SAM_HEADER_TAGS = ("HD", "SQ", "PG")

FLAG_PRIMARY = 0
FLAG_SUPPLEMENTARY = 2048


@dataclass
class SamRecord:
    """The SAM fields needed to build a seed."""
    query_name: str
    flag: int
    target_pos: int  # 1-based
    cigar: str

    @property
    def is_primary(self) -> bool:
        return self.flag == FLAG_PRIMARY


def sam_record(read: pysam.AlignedSegment) -> SamRecord:
    """
    Sanity check one alignment and keep the fields a seed needs.

    Raises:
        FormatError: for a FLAG other than 0 or 2048, a set RNEXT/PNEXT/TLEN,
            or a missing position or CIGAR
    """
    line = read.to_string()
    if read.flag not in (FLAG_PRIMARY, FLAG_SUPPLEMENTARY):
        raise FormatError('FLAG value not "0" or "2048"', line)
    if read.next_reference_name is not None:
        raise FormatError('RNEXT value not equal to "*"', line)
    if read.next_reference_start >= 0:
        raise FormatError('PNEXT value not equal to "0"', line)
    if read.template_length != 0:
        raise FormatError('TLEN value not equal to "0"', line)
    if read.reference_name is None or read.reference_start < 0:
        raise FormatError("alignment has no model position", line)
    if not read.cigarstring:
        raise FormatError("alignment has no CIGAR string", line)

    return SamRecord(read.query_name, read.flag, read.reference_start + 1, read.cigarstring)


def parse_cigar(cigar: str) -> List[Tuple[int, str]]:
    """
    Split a CIGAR string into (length, op) pairs.

    Examples:
        >>> parse_cigar("94M7I26M116S")
        [(94, 'M'), (7, 'I'), (26, 'M'), (116, 'S')]
    """
    ops = [(int(n), op) for n, op in CIGAR_RE.findall(cigar)]
    if "".join(f"{n}{op}" for n, op in ops) != cigar or not ops:
        raise FormatError("unable to parse cigar string", cigar)
    return ops


def cigar_to_seed(cigar: str, target_pos: int) -> Seed:
    """
    Convert a CIGAR string into seed blocks.

    Sequence positions start at 1 and model positions at ``target_pos``.

    Args:
        cigar: CIGAR string with M/I/D/S/H operations only
        target_pos: 1-based model position of the first aligned residue

    Raises:
        FormatError: for other operations, S/H in the middle of the CIGAR,
            or a CIGAR without any M operation

    Examples:
        >>> seed = cigar_to_seed("5S10M2I10M3D10M", 20)
        >>> str(seed.seq_coords)
        '6..15:+,18..27:+,28..37:+'
        >>> str(seed.mdl_coords)
        '20..29:+,30..39:+,43..52:+'
    """
    ops = parse_cigar(cigar)
    seq_sgms: List[Segment] = []
    mdl_sgms: List[Segment] = []
    cur_seq = 1
    cur_mdl = target_pos
    last = len(ops) - 1

    for idx, (length, op) in enumerate(ops):
        if op not in SEED_CIGAR_OPS:
            raise FormatError(f"unexpected CIGAR operation {op!r}", cigar)
        if op in "SH" and 0 < idx < last:
            raise FormatError("S or H operation not at beginning or end of cigar", cigar)
        if op == "M":
            seq_sgms.append(Segment(cur_seq, cur_seq + length - 1, Strand.PLUS))
            mdl_sgms.append(Segment(cur_mdl, cur_mdl + length - 1, Strand.PLUS))
            cur_seq += length
            cur_mdl += length
        elif op == "D":
            cur_mdl += length
        else:
            cur_seq += length

    if not seq_sgms:
        raise FormatError("cigar string has no aligned (M) operations", cigar)
    return Seed(Coords(tuple(seq_sgms)), Coords(tuple(mdl_sgms)))


def iter_sam_alignments(path: Union[str, Path]) -> Iterator[pysam.AlignedSegment]:
    """
    Check the @HD/@SQ/@PG header, then yield every alignment.

    Raises:
        FormatError: if the file cannot be read as SAM or a header line is missing
    """
    try:
        samfile = pysam.AlignmentFile(str(path), "r")
    except (ValueError, OSError) as e:
        raise FormatError(f"unable to open {path} as SAM: {e}") from None

    with samfile:
        header = samfile.header.to_dict()
        for tag in SAM_HEADER_TAGS:
            if tag not in header:
                raise FormatError(f"{path}: no @{tag} header line")
        try:
            for read in samfile:
                yield read
        except (ValueError, OSError) as e:
            raise FormatError(f"unable to read alignments from {path}: {e}") from None


def seeds_from_minimap2_sam(path: Union[str, Path], seq_lengths: Dict[str, int],
                            mdl_name: str, mdl_len: int,
                            options: SeedOptions = SeedOptions()) -> SeedSet:
    """
    Build one terminally pruned seed per primary minimap2 alignment.

    Sequences without a primary alignment get no seed. Supplementary lines
    are skipped. A bad alignment record is recorded in ``errors`` for its
    sequence and does not affect the other sequences.

    Raises:
        FormatError: if the file is unreadable, or names an unknown
            sequence or another model
    """
    result = SeedSet()
    n_supplementary = 0
    for read in iter_sam_alignments(path):
        name = read.query_name
        if name not in seq_lengths:
            raise FormatError(f"unrecognized sequence {name}", read.to_string())
        if read.reference_name != mdl_name:
            raise FormatError(
                f"unexpected model {read.reference_name} (expected {mdl_name})",
                read.to_string(),
            )
        if name in result.errors:
            continue
        try:
            rec = sam_record(read)
            if not rec.is_primary:
                n_supplementary += 1
                continue
            raw_seed = cigar_to_seed(rec.cigar, rec.target_pos)
            result.seeds[name] = finalize_minimap2_seed(
                raw_seed, seq_lengths[name], mdl_len, options,
            )
        except SeedError as e:
            logger.warning(f"{path}: no minimap2 seed for {name}: {e}")
            result.seeds.pop(name, None)
            result.errors[name] = str(e)

    if n_supplementary:
        logger.debug(f"{path}: skipped {n_supplementary} supplementary alignment(s)")
    return result
