"""
Joining seed alignments with realigned flanks.

For each sequence the seed (see seedpipe.seed) covers sequence positions
s..e aligned to model positions a..b. Flanks not covered by the seed were
realigned on their own (see seedpipe.subseq), overlapping the seed by an
overhang. Joining keeps the flank columns up to the flank's last aligned
residue and continues with the seed right after it (and symmetrically on
the 3' end).

A join is only accepted when the flank's boundary residue lands exactly
where the seed predicts. With the seed offset ``d5 = a - s`` a 5' flank
ending at sequence position p aligned to model position q is joinable iff

    p == q - d5

and a 3' flank starting at p aligned to q is joinable iff ``p == q - d3``
with ``d3 = b - e``. Otherwise the sequence is Unjoinable, which is an
ordinary result, not an exception.

Per sequence there are three cases:

1. one realignment of the full sequence: used as is
2. 5' and/or 3' flank realignments: joined with the seed
3. no realignment: the seed alone, padded with gaps to the model ends
"""

import logging
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .coords import Segment
from .errors import InvariantError
from .inserts import InsertRecord, InsertToken
from .seed import Seed, SeedAlignment, reconstruct_alignment
from .subseq import SubseqRequest

logger = logging.getLogger(__name__)

TRAILING_GAPS_RE = re.compile(r"[.\-~]*$")
LEADING_GAPS_RE = re.compile(r"^[.\-~]*")


class Boundary(str, Enum):
    FIVE_PRIME = "5'"
    THREE_PRIME = "3'"


class JoinCase(int, Enum):
    FULL_REALIGNMENT = 1
    FLANKS = 2
    SEED_ONLY = 3


# ============================================================================
# Result types
# ============================================================================

@dataclass(frozen=True)
class JoinedAlignment:
    """Full-length alignment of one sequence to model positions 1..M."""
    aligned_seq: str
    aligned_mdl: str
    aligned_pp: Optional[str]
    inserts: InsertRecord

    def __post_init__(self):
        if len(self.aligned_seq) != len(self.aligned_mdl):
            raise InvariantError(
                f"joined sequence and model rows differ in length: "
                f"{len(self.aligned_seq)} != {len(self.aligned_mdl)}"
            )
        if self.aligned_pp is not None and len(self.aligned_pp) != len(self.aligned_seq):
            raise InvariantError(
                f"joined PP row length {len(self.aligned_pp)} differs from "
                f"sequence row length {len(self.aligned_seq)}"
            )


@dataclass(frozen=True)
class Unjoinable:
    """A flank whose boundary does not line up with the seed."""
    boundaries: Tuple[Boundary, ...]
    detail: str

    @property
    def boundary(self) -> Boundary:
        return self.boundaries[0]


JoinOutcome = Union[JoinedAlignment, Unjoinable]


# ============================================================================
# Flanks
# ============================================================================

@dataclass(frozen=True)
class RealignedSubseq:
    """Realigner output for one requested subsequence."""
    request: SubseqRequest
    aligned_seq: str
    rf: str
    pp: Optional[str]
    inserts: InsertRecord


@dataclass(frozen=True)
class FlankAlignment:
    """
    A realigned 5' or 3' flank, trimmed to its aligned region.

    ``mdl_start``/``mdl_stop`` are 1..epos for a 5' flank and spos..M for a
    3' flank. ``record`` keeps the realigner's own insert record, whose
    unaligned positions are relative to the subsequence.
    """
    boundary: Boundary
    seq_start: int
    seq_stop: int
    mdl_start: int
    mdl_stop: int
    aligned_seq: str
    aligned_mdl: str
    aligned_pp: Optional[str]
    record: InsertRecord

    @property
    def seq_coords(self) -> str:
        return str(Segment(self.seq_start, self.seq_stop))

    @property
    def mdl_coords(self) -> str:
        return str(Segment(self.mdl_start, self.mdl_stop))


def five_prime_flank(sub: RealignedSubseq, mdl_len: int) -> FlankAlignment:
    """
    Trim a realigned 5' subsequence to the columns up to its last aligned residue.

    The final ``M - epos`` columns are removed, then any trailing gaps.
    """
    record = sub.inserts
    aligned = sub.aligned_seq
    ncut = mdl_len - record.epos
    if ncut > 0:
        aligned = aligned[:-ncut]
    aligned = TRAILING_GAPS_RE.sub("", aligned)
    keep = len(aligned)
    return FlankAlignment(
        boundary=Boundary.FIVE_PRIME,
        seq_start=sub.request.start,
        seq_stop=sub.request.stop,
        mdl_start=1,
        mdl_stop=record.epos,
        aligned_seq=aligned,
        aligned_mdl=sub.rf[:keep],
        aligned_pp=sub.pp[:keep] if sub.pp is not None else None,
        record=record,
    )


def three_prime_flank(sub: RealignedSubseq, mdl_len: int) -> FlankAlignment:
    """
    Trim a realigned 3' subsequence to the columns from its first aligned residue.

    The first ``spos - 1`` columns are removed, then any leading gaps.
    """
    record = sub.inserts
    aligned = sub.aligned_seq[record.spos - 1:]
    aligned = LEADING_GAPS_RE.sub("", aligned)
    offset = len(sub.aligned_seq) - len(aligned)
    return FlankAlignment(
        boundary=Boundary.THREE_PRIME,
        seq_start=sub.request.start,
        seq_stop=sub.request.stop,
        mdl_start=record.spos,
        mdl_stop=mdl_len,
        aligned_seq=aligned,
        aligned_mdl=sub.rf[offset:],
        aligned_pp=sub.pp[offset:] if sub.pp is not None else None,
        record=record,
    )


# ============================================================================
# Joining
# ============================================================================

def _check_flanks(seed: SeedAlignment, seq_len: int, mdl_len: int,
                  flank_5p: Optional[FlankAlignment],
                  flank_3p: Optional[FlankAlignment], with_pp: bool) -> None:
    if flank_5p is not None and seed.seq_start == 1:
        raise InvariantError("seed includes the first sequence position but a 5' flank was given")
    if flank_5p is None and seed.seq_start != 1:
        raise InvariantError("seed does not include the first sequence position and no 5' flank was given")
    if flank_3p is not None and seed.seq_stop == seq_len:
        raise InvariantError("seed includes the final sequence position but a 3' flank was given")
    if flank_3p is None and seed.seq_stop != seq_len:
        raise InvariantError("seed does not include the final sequence position and no 3' flank was given")

    for flank in (flank_5p, flank_3p):
        if flank is not None and with_pp and flank.aligned_pp is None:
            raise InvariantError(f"{flank.boundary.value} flank has no PP annotation")

    if flank_5p is not None:
        if flank_5p.mdl_start != 1:
            raise InvariantError(f"5' model start is not 1 but {flank_5p.mdl_start}")
        if flank_5p.seq_stop < seed.seq_start - 1:
            raise InvariantError(
                f"gap between seed region ({seed.seq_start}..{seed.seq_stop}) "
                f"and 5' region ({flank_5p.seq_start}..{flank_5p.seq_stop})"
            )
    if flank_3p is not None:
        if flank_3p.mdl_stop != mdl_len:
            raise InvariantError(f"3' model stop is not {mdl_len} but {flank_3p.mdl_stop}")
        if flank_3p.seq_start > seed.seq_stop + 1:
            raise InvariantError(
                f"gap between seed region ({seed.seq_start}..{seed.seq_stop}) "
                f"and 3' region ({flank_3p.seq_start}..{flank_3p.seq_stop})"
            )


def _unjoinable_message(flank: FlankAlignment, seed: SeedAlignment) -> str:
    return (
        f"{flank.boundary.value} aligned region (mdl:{flank.mdl_coords}, seq:{flank.seq_coords}) "
        f"unjoinable with seed (mdl:{seed.mdl_start}..{seed.mdl_stop}, "
        f"seq:{seed.seq_start}..{seed.seq_stop})"
    )


def join_alignments(seed: SeedAlignment, consensus: str, seq_len: int, mdl_len: int,
                    flank_5p: Optional[FlankAlignment] = None,
                    flank_3p: Optional[FlankAlignment] = None,
                    with_pp: bool = True) -> Union[Tuple[str, str, Optional[str]], Unjoinable]:
    """
    Splice a seed alignment with up to two flank alignments.

    Args:
        seed: Reconstructed seed alignment
        consensus: Model consensus, used to fill model columns with no flank
        seq_len: Sequence length L
        mdl_len: Model length M
        flank_5p: 5' flank, required iff the seed does not start at position 1
        flank_3p: 3' flank, required iff the seed does not stop at position L
        with_pp: Build a PP row (``*`` for seed columns, ``.`` for padding)

    Returns:
        (aligned sequence, aligned model, aligned PP or None), or
        Unjoinable naming every boundary that failed

    Raises:
        InvariantError: if flanks are missing, unexpected or leave a gap before or after
            the seed
    """
    _check_flanks(seed, seq_len, mdl_len, flank_5p, flank_3p, with_pp)

    diff_5p = seed.mdl_start - seed.seq_start
    diff_3p = seed.mdl_stop - seed.seq_stop
    seed_aln_len = len(seed.aligned_seq)

    failed: List[Boundary] = []
    messages: List[str] = []

    fetch_start = 1
    if flank_5p is not None:
        if flank_5p.seq_stop == flank_5p.mdl_stop - diff_5p:
            fetch_start = (flank_5p.seq_stop - seed.seq_start + 1) + 1
        else:
            failed.append(Boundary.FIVE_PRIME)
            messages.append(_unjoinable_message(flank_5p, seed))

    fetch_stop = seed_aln_len
    if flank_3p is not None:
        if flank_3p.seq_start == flank_3p.mdl_start - diff_3p:
            fetch_stop = seed_aln_len - (seed.seq_stop - flank_3p.seq_start + 1)
        else:
            failed.append(Boundary.THREE_PRIME)
            messages.append(_unjoinable_message(flank_3p, seed))

    if failed:
        return Unjoinable(tuple(failed), "".join(messages))

    seq_parts: List[str] = []
    mdl_parts: List[str] = []
    pp_parts: List[str] = []

    if flank_5p is not None:
        seq_parts.append(flank_5p.aligned_seq)
        mdl_parts.append(flank_5p.aligned_mdl)
        if with_pp:
            pp_parts.append(flank_5p.aligned_pp)
    elif seed.mdl_start != 1:
        npad = seed.mdl_start - 1
        seq_parts.append("-" * npad)
        mdl_parts.append(consensus[:npad])
        pp_parts.append("." * npad)

    nfetch = fetch_stop - fetch_start + 1
    seq_parts.append(seed.aligned_seq[fetch_start - 1:fetch_start - 1 + nfetch])
    mdl_parts.append(seed.aligned_mdl[fetch_start - 1:fetch_start - 1 + nfetch])
    pp_parts.append("*" * max(nfetch, 0))

    if flank_3p is not None:
        seq_parts.append(flank_3p.aligned_seq)
        mdl_parts.append(flank_3p.aligned_mdl)
        if with_pp:
            pp_parts.append(flank_3p.aligned_pp)
    elif seed.mdl_stop != mdl_len:
        npad = mdl_len - seed.mdl_stop
        seq_parts.append("-" * npad)
        mdl_parts.append(consensus[seed.mdl_stop:])
        pp_parts.append("." * npad)

    return "".join(seq_parts), "".join(mdl_parts), "".join(pp_parts) if with_pp else None


def joined_inserts(seed: SeedAlignment, flank_5p: Optional[FlankAlignment],
                   flank_3p: Optional[FlankAlignment]) -> InsertRecord:
    """
    Insert record of a joined alignment.

    Tokens are the 5' flank's, then the seed's, then the 3' flank's with
    their unaligned positions moved from subsequence to sequence numbering.
    """
    tokens: List[InsertToken] = []
    if flank_5p is not None:
        spos = flank_5p.record.spos
        tokens.extend(flank_5p.record.tokens)
    else:
        spos = seed.mdl_start
    tokens.extend(seed.inserts)
    if flank_3p is not None:
        epos = flank_3p.record.epos
        tokens.extend(tok.shifted(flank_3p.seq_start - 1) for tok in flank_3p.record.tokens)
    else:
        epos = seed.mdl_stop
    return InsertRecord(spos, epos, tuple(tokens))


# ============================================================================
# Per-sequence driver
# ============================================================================

@dataclass(frozen=True)
class SeedReport:
    """Per-sequence coordinates for the seed report table."""
    seq_name: str
    sda_seq: Optional[str] = None
    sda_mdl: Optional[str] = None
    seq_5p: Optional[str] = None
    mdl_5p: Optional[str] = None
    seq_3p: Optional[str] = None
    mdl_3p: Optional[str] = None
    ovw_sda_seq: Optional[str] = None

    def as_row(self) -> Dict[str, Optional[str]]:
        return {
            "seq_name": self.seq_name,
            "sda_seq": self.sda_seq,
            "sda_mdl": self.sda_mdl,
            "5p_seq": self.seq_5p,
            "5p_mdl": self.mdl_5p,
            "3p_seq": self.seq_3p,
            "3p_mdl": self.mdl_3p,
            "ovw_sda_seq": self.ovw_sda_seq,
        }


@dataclass(frozen=True)
class SequenceJoin:
    seq_name: str
    case: JoinCase
    outcome: JoinOutcome
    report: SeedReport

    @property
    def joined(self) -> bool:
        return isinstance(self.outcome, JoinedAlignment)


def _record_coords(record: InsertRecord) -> str:
    return str(Segment(record.spos, record.epos))


def join_sequence(seq_name: str, sequence: str, consensus: str, seed: Seed,
                  realigned: Sequence[RealignedSubseq] = (),
                  overwritten: Optional[Seed] = None,
                  with_pp: bool = True) -> SequenceJoin:
    """
    Produce the final alignment of one sequence, or an Unjoinable result.

    Args:
        seq_name: Sequence name
        sequence: Full unaligned sequence
        consensus: Model consensus sequence (its length is the model length)
        seed: Pruned, selected seed
        realigned: Realigner output for every subsequence requested by
            seedpipe.subseq.plan_subseqs for this sequence
        overwritten: Seed discarded during selection, reported only
        with_pp: Whether the realigner produced PP annotation

    Raises:
        InvariantError: if the realigned pieces do not fit any case
    """
    seq_len = len(sequence)
    mdl_len = len(consensus)
    seed_aln = reconstruct_alignment(seed, sequence, consensus)

    full: Optional[RealignedSubseq] = None
    sub_5p: Optional[RealignedSubseq] = None
    sub_3p: Optional[RealignedSubseq] = None
    for sub in realigned:
        req = sub.request
        if req.seq_name != seq_name:
            raise InvariantError(f"subsequence {req.name} does not belong to {seq_name}")
        if req.start == 1 and req.stop == seq_len:
            if len(realigned) != 1:
                raise InvariantError(
                    f"subsequence {req.name} covers all of {seq_name} but "
                    f"{len(realigned)} subsequences were given"
                )
            full = sub
        elif req.start == 1:
            if sub_5p is not None:
                raise InvariantError(f"two aligned subsequences for the 5' end of {seq_name}")
            sub_5p = sub
        elif req.stop == seq_len:
            if sub_3p is not None:
                raise InvariantError(f"two aligned subsequences for the 3' end of {seq_name}")
            sub_3p = sub
        else:
            raise InvariantError(
                f"subsequence {req.name} is none of full sequence, 5' end or 3' end"
            )

    report = SeedReport(
        seq_name=seq_name,
        sda_seq=str(seed.seq_coords),
        sda_mdl=str(seed.mdl_coords),
        ovw_sda_seq=str(overwritten.seq_coords) if overwritten is not None else None,
    )

    if full is not None:
        outcome = JoinedAlignment(full.aligned_seq, full.rf,
                                  full.pp if with_pp else None, full.inserts)
        return SequenceJoin(seq_name, JoinCase.FULL_REALIGNMENT, outcome, report)

    flank_5p = five_prime_flank(sub_5p, mdl_len) if sub_5p is not None else None
    flank_3p = three_prime_flank(sub_3p, mdl_len) if sub_3p is not None else None
    case = JoinCase.SEED_ONLY if flank_5p is None and flank_3p is None else JoinCase.FLANKS

    report = SeedReport(
        seq_name=report.seq_name,
        sda_seq=report.sda_seq,
        sda_mdl=report.sda_mdl,
        seq_5p=flank_5p.seq_coords if flank_5p else None,
        mdl_5p=_record_coords(flank_5p.record) if flank_5p else None,
        seq_3p=flank_3p.seq_coords if flank_3p else None,
        mdl_3p=_record_coords(flank_3p.record) if flank_3p else None,
        ovw_sda_seq=report.ovw_sda_seq,
    )

    joined = join_alignments(seed_aln, consensus, seq_len, mdl_len,
                             flank_5p, flank_3p, with_pp)
    if isinstance(joined, Unjoinable):
        logger.info(f"{seq_name}: unjoinable ({joined.detail})")
        return SequenceJoin(seq_name, case, joined, report)

    aligned_seq, aligned_mdl, aligned_pp = joined
    outcome = JoinedAlignment(aligned_seq, aligned_mdl, aligned_pp,
                              joined_inserts(seed_aln, flank_5p, flank_3p))
    return SequenceJoin(seq_name, case, outcome, report)


def seed_report_table(reports: Sequence[SeedReport]) -> pd.DataFrame:
    columns = list(SeedReport(seq_name="").as_row())
    return pd.DataFrame([r.as_row() for r in reports], columns=columns)


def write_seed_report(reports: Sequence[SeedReport], path: Union[str, Path]) -> None:
    """Write the seed report as TSV, with ``-`` for fields that do not apply."""
    seed_report_table(reports).to_csv(path, sep="\t", index=False, na_rep="-")
