"""
blastn summary parsing and conversion to tabular hit files.

Input is the key/value summary written by parse_blast.pl, one
``KEY<TAB>VALUE`` pair per line, grouped by query (QACC), subject (HACC)
and HSP:

    QACC    AB541310.1
    QLEN    7509
    HACC    NC_039477
    SLEN    7535
    HSP     1
    BITSCORE    13231.5
    EVALUE  0.0
    HLEN    7510
    QSTRAND +
    SSTRAND +
    DEL     Q37:S41-1;Q113:S116-1;
    INS     Q41:S46+1;Q107:S111+1;
    SRANGE  5..7513
    QRANGE  1..7509
    END_MATCH

Each QRANGE line completes one HSP. Parsing is a pure function
``step(state, line) -> (state, hit)`` over an immutable SummaryState.

Two outputs are derived from the hits:

- classification mode: a cmsearch-style tblout with scores summed per
  (model, sequence, strand), see ``write_classification_tblouts``
- coverage mode: per-model tblout and indel files for sequences already
  assigned to a model, see ``write_coverage_files``
"""

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

import pandas as pd

from .coords import Segment, Strand
from .errors import FormatError

logger = logging.getLogger(__name__)

# Scores at or above (floor - SMALL_VALUE) pass the bitscore floor
SMALL_VALUE: float = 0.000001
NULL_VALUE: str = "BLASTNULL"
NO_HIT_RANGE: str = ".."

IGNORED_KEYS = frozenset({
    "QDEF", "MATCH", "HDEF", "RAWSCORE", "IDENT", "GAPS", "FRAME",
    "QSTOP", "HSTOP", "STOP", "MAXDE", "MAXIN", "MAXINS",
})


@dataclass(frozen=True)
class BlastnHit:
    """One HSP of one query against one subject (model)."""
    seq_name: str
    seq_len: int
    mdl_name: str
    mdl_len: Optional[int]
    bitscore: float
    evalue: str
    seq_start: int
    seq_stop: int
    strand: Strand
    mdl_start: int
    mdl_stop: int
    ins: Optional[str] = None
    dels: Optional[str] = None

    @property
    def bounds(self) -> str:
        """``[`` / ``]`` when the hit reaches the first / last sequence position."""
        return "    {}{}".format(
            "[" if self.seq_start == 1 else ".",
            "]" if self.seq_stop == self.seq_len else ".",
        )

    @property
    def seq_segment(self) -> Segment:
        return Segment(self.seq_start, self.seq_stop, self.strand)

    @property
    def mdl_segment(self) -> Segment:
        return Segment(self.mdl_start, self.mdl_stop, Strand.PLUS)


@dataclass(frozen=True)
class SummaryState:
    """Fields seen so far for the current query/subject/HSP."""
    qacc: Optional[str] = None
    hacc: Optional[str] = None
    slen: Optional[int] = None
    hsp: Optional[int] = None
    bitscore: Optional[float] = None
    evalue: Optional[str] = None
    qstrand: Optional[str] = None
    sstrand: Optional[str] = None
    ins: Optional[str] = None
    dels: Optional[str] = None
    srange: Optional[Tuple[int, int]] = None

    def next_hsp(self) -> "SummaryState":
        return SummaryState(qacc=self.qacc, hacc=self.hacc, slen=self.slen)

    def next_subject(self) -> "SummaryState":
        return SummaryState(qacc=self.qacc)


def _parse_int(value: str, what: str, line: str, line_number: Optional[int]) -> int:
    if not value.isdigit():
        raise FormatError(f"unable to parse {what}", line, line_number)
    return int(value)


def _parse_range(value: str, line: str, line_number: Optional[int]) -> Tuple[int, int]:
    start, sep, stop = value.partition("..")
    if sep != ".." or not start.isdigit() or not stop.isdigit():
        raise FormatError("unable to parse range", line, line_number)
    return int(start), int(stop)


def _require(state: SummaryState, names: Sequence[str], key: str,
             line: str, line_number: Optional[int]) -> None:
    missing = [n for n in names if getattr(state, n) is None]
    if missing:
        raise FormatError(
            f"read {key} line before {', '.join(m.upper() for m in missing)}",
            line, line_number,
        )


def step(state: SummaryState, line: str, seq_lengths: Dict[str, int],
         min_bitscore: float = 0.0,
         line_number: Optional[int] = None) -> Tuple[SummaryState, Optional[BlastnHit]]:
    """
    Advance the parser by one line.

    Args:
        state: Current state
        line: Summary line without trailing newline
        seq_lengths: Known query lengths by name
        min_bitscore: Hits scoring below this are not reported
        line_number: Used in error messages only

    Returns:
        (new_state, hit) where hit is set only on a QRANGE line that
        completes an HSP scoring at least ``min_bitscore``

    Raises:
        FormatError: for malformed, out-of-order or inconsistent lines
    """
    if line == "END_MATCH":
        return state.next_subject(), None

    fields = line.split("\t")
    if len(fields) != 2:
        raise FormatError("did not read exactly 2 tab-delimited tokens", line, line_number)
    key, value = fields

    if key == "QACC":
        if value not in seq_lengths:
            raise FormatError(f"unexpected sequence name {value}", line, line_number)
        return replace(state, qacc=value), None

    if key == "QLEN":
        _require(state, ["qacc"], key, line, line_number)
        qlen = _parse_int(value, "query length", line, line_number)
        if qlen != seq_lengths[state.qacc]:
            raise FormatError(
                f"query length {qlen} for {state.qacc} differs from expected "
                f"{seq_lengths[state.qacc]}", line, line_number,
            )
        return state, None

    if key == "HACC":
        _require(state, ["qacc"], key, line, line_number)
        return replace(state, hacc=value), None

    if key == "SLEN":
        _require(state, ["qacc", "hacc"], key, line, line_number)
        return replace(state, slen=_parse_int(value, "subject length", line, line_number)), None

    if key == "HSP":
        _require(state, ["qacc", "hacc"], key, line, line_number)
        return replace(state, hsp=_parse_int(value, "HSP index", line, line_number)), None

    if key == "BITSCORE":
        _require(state, ["qacc", "hacc", "hsp"], key, line, line_number)
        try:
            bitscore = float(value)
        except ValueError:
            raise FormatError("unable to parse bit score", line, line_number) from None
        return replace(state, bitscore=bitscore), None

    if key == "EVALUE":
        _require(state, ["qacc", "hacc", "hsp", "bitscore"], key, line, line_number)
        return replace(state, evalue=value), None

    if key == "HLEN":
        _require(state, ["qacc", "hacc"], key, line, line_number)
        _parse_int(value, "alignment length", line, line_number)
        return state, None

    if key in ("QSTRAND", "SSTRAND"):
        _require(state, ["qacc", "hacc", "hsp", "bitscore"], key, line, line_number)
        if value not in ("+", "-"):
            raise FormatError(f"unable to parse {key}", line, line_number)
        if key == "QSTRAND":
            if value != "+":
                raise FormatError("query strand is not +", line, line_number)
            return replace(state, qstrand=value), None
        return replace(state, sstrand=value), None

    if key in ("INS", "DEL"):
        _require(state, ["qacc", "hacc", "hsp", "bitscore", "qstrand", "sstrand"],
                 key, line, line_number)
        if value in ("", NULL_VALUE):
            return state, None
        if key == "INS":
            return replace(state, ins=value), None
        return replace(state, dels=value), None

    if key == "SRANGE":
        _require(state, ["qacc"], key, line, line_number)
        if value == NO_HIT_RANGE or state.bitscore is None:
            return state, None
        return replace(state, srange=_parse_range(value, line, line_number)), None

    if key == "QRANGE":
        _require(state, ["qacc"], key, line, line_number)
        hit = None
        if value != NO_HIT_RANGE and state.bitscore is not None:
            qrange = _parse_range(value, line, line_number)
            if state.bitscore >= min_bitscore - SMALL_VALUE:
                hit = _complete_hit(state, qrange, seq_lengths, line, line_number)
        return state.next_hsp(), hit

    if key in IGNORED_KEYS:
        return state, None

    raise FormatError(f"unrecognized key {key}", line, line_number)


def _complete_hit(state: SummaryState, qrange: Tuple[int, int],
                  seq_lengths: Dict[str, int], line: str,
                  line_number: Optional[int]) -> BlastnHit:
    if state.srange is None:
        raise FormatError("read QRANGE line before SRANGE line", line, line_number)
    _require(state, ["hacc", "sstrand"], "QRANGE", line, line_number)

    if state.sstrand == "+":
        seq_start, seq_stop = qrange
        mdl_start, mdl_stop = state.srange
        strand = Strand.PLUS
    else:
        seq_stop, seq_start = qrange
        mdl_stop, mdl_start = state.srange
        strand = Strand.MINUS

    return BlastnHit(
        seq_name=state.qacc,
        seq_len=seq_lengths[state.qacc],
        mdl_name=state.hacc,
        mdl_len=state.slen,
        bitscore=state.bitscore,
        evalue=state.evalue if state.evalue is not None else "-",
        seq_start=seq_start,
        seq_stop=seq_stop,
        strand=strand,
        mdl_start=mdl_start,
        mdl_stop=mdl_stop,
        ins=state.ins,
        dels=state.dels,
    )


def iter_blastn_hits(lines: Iterable[str], seq_lengths: Dict[str, int],
                     min_bitscore: float = 0.0) -> Iterator[BlastnHit]:
    """Yield hits from summary lines, threading the parser state."""
    state = SummaryState()
    for line_number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        state, hit = step(state, line, seq_lengths, min_bitscore, line_number)
        if hit is not None:
            yield hit


def read_blastn_summary(path: Union[str, Path], seq_lengths: Dict[str, int],
                        min_bitscore: float = 0.0) -> List[BlastnHit]:
    """Parse a whole summary file."""
    with open(path, "r") as f:
        hits = list(iter_blastn_hits(f, seq_lengths, min_bitscore))
    logger.info(f"Read {len(hits)} blastn HSPs from {path}")
    return hits


# ============================================================================
# Classification mode
# ============================================================================

TBLOUT_ROW_FORMAT = "%-30s  %-30s  %8.1f  %9d  %9d  %6s  %6s  %3s  %11s"
TBLOUT_HEADER = "%-30s  %-30s  %8s  %9s  %9s  %6s  %6s  %3s  %11s" % (
    "#modelname/subject", "sequence/query", "bitscore", "start", "end",
    "strand", "bounds", "ovp", "seqlen",
)
SCORE_TABLE_COLUMNS = [
    "model", "seq", "bitscore", "start", "end", "strand", "bounds", "ovp", "seqlen",
]
TRIO = ["model", "seq", "strand"]


def build_score_table(hits: Sequence[BlastnHit]) -> pd.DataFrame:
    """
    One row per hit with the summed score of its (model, seq, strand) trio.

    ``scsum`` holds the trio total on the trio's first row and 0.0 on every
    later row, so a top-hit pass over the table counts each trio once.
    """
    df = pd.DataFrame(
        [
            (h.mdl_name, h.seq_name, h.bitscore, h.seq_start, h.seq_stop,
             h.strand.value, h.bounds, "?", h.seq_len)
            for h in hits
        ],
        columns=SCORE_TABLE_COLUMNS,
    )
    if df.empty:
        df["scsum"] = pd.Series(dtype=float)
        return df
    df["scsum"] = df.groupby(TRIO, sort=False)["bitscore"].transform("sum")
    df.loc[df.duplicated(TRIO, keep="first"), "scsum"] = 0.0
    return df


def format_pretblout_row(hit: BlastnHit) -> str:
    return TBLOUT_ROW_FORMAT % (
        hit.mdl_name, hit.seq_name, hit.bitscore, hit.seq_start, hit.seq_stop,
        hit.strand.value, hit.bounds, "?", hit.seq_len,
    )


def write_classification_tblouts(hits: Sequence[BlastnHit],
                                 pretblout_path: Union[str, Path],
                                 tblout_path: Union[str, Path]) -> pd.DataFrame:
    """
    Write the per-HSP pretblout and the summed-score tblout.

    The pretblout lists model then sequence with each HSP's own score. The
    tblout lists sequence then model with the trio sums from
    ``build_score_table``.

    Returns:
        The score table used for both files
    """
    table = build_score_table(hits)

    pre_lines = [TBLOUT_HEADER] + [format_pretblout_row(h) for h in hits]
    Path(pretblout_path).write_text("\n".join(pre_lines) + "\n")

    out_lines = [TBLOUT_HEADER]
    for row in table.itertuples(index=False):
        out_lines.append(TBLOUT_ROW_FORMAT % (
            row.seq, row.model, row.scsum, row.start, row.end,
            row.strand, row.bounds, row.ovp, row.seqlen,
        ))
    Path(tblout_path).write_text("\n".join(out_lines) + "\n")

    logger.info(f"Wrote {len(table)} rows to {tblout_path}")
    return table


# ============================================================================
# Coverage mode
# ============================================================================

def format_coverage_tblout_row(hit: BlastnHit) -> str:
    return "%-s  -  %-s  -  blastn  %d  %d  %d  %d  %s  -  -  -  0.0  %8.1f  %s  ?  -" % (
        hit.seq_name, hit.mdl_name, hit.mdl_start, hit.mdl_stop,
        hit.seq_start, hit.seq_stop, hit.strand.value, hit.bitscore, hit.evalue,
    )


def format_indel_line(hit: BlastnHit) -> str:
    """
    Indel line for one hit.

    Examples:
        model  seq  mdl_coords  mdl_len  seq_coords  seq_len  ins  del
        NC_039477  AB541310.1  5..7513:+  7535  1..7509:+  7509  Q41:S46+1;  Q37:S41-1;
    """
    if hit.mdl_len is None:
        raise FormatError(f"no SLEN read for model {hit.mdl_name}, query {hit.seq_name}")
    return "  ".join([
        hit.mdl_name,
        hit.seq_name,
        str(hit.mdl_segment),
        str(hit.mdl_len),
        str(hit.seq_segment),
        str(hit.seq_len),
        hit.ins if hit.ins is not None else NULL_VALUE,
        hit.dels if hit.dels is not None else NULL_VALUE,
    ])


def write_coverage_files(hits: Iterable[BlastnHit], seq2mdl: Dict[str, str],
                         model_names: Sequence[str],
                         out_root: Union[str, Path]) -> Dict[str, Tuple[Path, Path]]:
    """
    Write ``<out_root>.<model>.tblout`` and ``<out_root>.<model>.indel``.

    Only hits of a sequence against the model it is assigned to in
    ``seq2mdl`` are written. Every model in ``model_names`` gets a pair of
    files, possibly empty.

    Returns:
        model name -> (tblout path, indel path)
    """
    tblout_lines: Dict[str, List[str]] = {m: [] for m in model_names}
    indel_lines: Dict[str, List[str]] = {m: [] for m in model_names}

    for hit in hits:
        if seq2mdl.get(hit.seq_name) != hit.mdl_name:
            continue
        if hit.mdl_name not in tblout_lines:
            raise FormatError(f"read unexpected model name {hit.mdl_name}")
        tblout_lines[hit.mdl_name].append(format_coverage_tblout_row(hit))
        indel_lines[hit.mdl_name].append(format_indel_line(hit))

    paths = {}
    for model in model_names:
        tblout_path = Path(f"{out_root}.{model}.tblout")
        indel_path = Path(f"{out_root}.{model}.indel")
        tblout_path.write_text("".join(l + "\n" for l in tblout_lines[model]))
        indel_path.write_text("".join(l + "\n" for l in indel_lines[model]))
        paths[model] = (tblout_path, indel_path)
        logger.debug(f"{model}: {len(indel_lines[model])} indel lines")
    return paths
