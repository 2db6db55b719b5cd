"""
blastn indel strings and indel files.

Insertions and deletions of a blastn HSP are encoded as semicolon
separated tokens anchored in both coordinate spaces:

    Q<seqpos>:S<mdlpos>+<len>    insertion of <len> sequence residues
    Q<seqpos>:S<mdlpos>-<len>    deletion of <len> model positions

Together with the HSP's sequence and model spans the tokens give the
ungapped blocks of the alignment (``indel_strings_to_seed``). Indel files
hold one such HSP per line (see ``format_indel_line`` in blastn_summary).
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

from .coords import Coords, Segment, Strand
from .errors import FormatError, InvariantError, SeedError, SegmentLengthMismatch
from .seed import Seed, SeedOptions, SeedSet, finalize_blastn_seed

logger = logging.getLogger(__name__)

INDEL_TOKEN_RE = re.compile(r"^Q(\d+):S(\d+)([+-])(\d+)$")
NULL_VALUE = "BLASTNULL"


@dataclass(frozen=True)
class IndelToken:
    mdl_pos: int
    seq_pos: int
    length: int


def parse_indel_token(token: str, insert: bool) -> IndelToken:
    """
    Parse one indel token.

    Args:
        token: e.g. ``Q41:S46+1``
        insert: True for insertion tokens (``+``), False for deletions (``-``)

    Examples:
        >>> parse_indel_token("Q41:S46+1", insert=True)
        IndelToken(mdl_pos=46, seq_pos=41, length=1)
    """
    match = INDEL_TOKEN_RE.match(token)
    if match is None:
        raise FormatError("unable to parse indel token", token)
    seq_pos, mdl_pos, sign, length = match.groups()
    expected = "+" if insert else "-"
    if sign != expected:
        kind = "insert" if insert else "delete"
        raise FormatError(f"{kind} token should use {expected!r}", token)
    return IndelToken(int(mdl_pos), int(seq_pos), int(length))


def split_indel_string(text: Optional[str], insert: bool) -> List[IndelToken]:
    if text is None or text in ("", NULL_VALUE):
        return []
    return [parse_indel_token(tok, insert) for tok in text.split(";") if tok]


def _block(mdl_start: int, mdl_stop: int, seq_start: int, seq_stop: int,
           context: str) -> Tuple[Segment, Segment]:
    if mdl_stop - mdl_start != seq_stop - seq_start:
        raise SegmentLengthMismatch(
            f"{seq_start}..{seq_stop}", f"{mdl_start}..{mdl_stop}", context,
        )
    return (Segment(seq_start, seq_stop, Strand.PLUS),
            Segment(mdl_start, mdl_stop, Strand.PLUS))


def indel_strings_to_seed(mdl_span: Segment, seq_span: Segment,
                          ins_str: Optional[str], del_str: Optional[str]) -> Seed:
    """
    Split an HSP into ungapped blocks using its insert/delete tokens.

    Args:
        mdl_span: Model span of the HSP, must be + strand
        seq_span: Sequence span of the HSP, must be + strand
        ins_str: Insert tokens, or None/"BLASTNULL"
        del_str: Delete tokens, or None/"BLASTNULL"

    Returns:
        Seed with one block per ungapped run

    Raises:
        FormatError: if tokens are malformed or out of order
        SegmentLengthMismatch: if a block's spans differ in length
        InvariantError: if the tokens run past the end of the HSP

    Examples:
        >>> seed = indel_strings_to_seed(Segment.parse("1..96:+"), Segment.parse("1..100:+"),
        ...                              "Q40:S40+4;", None)
        >>> str(seed.seq_coords), str(seed.mdl_coords)
        ('1..40:+,45..100:+', '1..40:+,41..96:+')
    """
    if mdl_span.strand is not Strand.PLUS:
        raise InvariantError(f"model (subject) strand in {mdl_span} is not +")
    if seq_span.strand is not Strand.PLUS:
        raise InvariantError(f"sequence (query) strand in {seq_span} is not +")

    inserts = split_indel_string(ins_str, insert=True)
    deletes = split_indel_string(del_str, insert=False)

    seq_sgms: List[Segment] = []
    mdl_sgms: List[Segment] = []
    cur_mdl = mdl_span.start
    cur_seq = seq_span.start
    ii = di = 0

    while ii < len(inserts) or di < len(deletes):
        ins = inserts[ii] if ii < len(inserts) else None
        dele = deletes[di] if di < len(deletes) else None

        if ins is not None and dele is not None:
            if ins.seq_pos < dele.seq_pos and ins.mdl_pos <= dele.mdl_pos:
                dele = None
            elif dele.seq_pos < ins.seq_pos and dele.mdl_pos <= ins.mdl_pos:
                ins = None
            elif ins.seq_pos == dele.seq_pos and ins.mdl_pos == dele.mdl_pos:
                raise FormatError(
                    f"insert and delete tokens have identical query and subject "
                    f"positions: {ins_str} / {del_str}"
                )
            else:
                raise FormatError(
                    f"insert and delete tokens imply query and subject coordinates "
                    f"out of order: {ins_str} / {del_str}"
                )

        if ins is not None:
            seq_sgm, mdl_sgm = _block(cur_mdl, ins.mdl_pos, cur_seq, ins.seq_pos,
                                      "ungapped segment before insert")
            cur_mdl = ins.mdl_pos + 1
            cur_seq = ins.seq_pos + ins.length + 1
            ii += 1
        else:
            seq_sgm, mdl_sgm = _block(cur_mdl, dele.mdl_pos, cur_seq, dele.seq_pos,
                                      "ungapped segment before delete")
            cur_mdl = dele.mdl_pos + dele.length + 1
            cur_seq = dele.seq_pos + 1
            di += 1
        seq_sgms.append(seq_sgm)
        mdl_sgms.append(mdl_sgm)

    if cur_mdl > mdl_span.stop:
        raise InvariantError(
            f"out of model positions appending final segment {cur_mdl}..{mdl_span.stop}"
        )
    if cur_seq > seq_span.stop:
        raise InvariantError(
            f"out of sequence positions appending final segment {cur_seq}..{seq_span.stop}"
        )
    seq_sgm, mdl_sgm = _block(cur_mdl, mdl_span.stop, cur_seq, seq_span.stop,
                              "final ungapped segment")
    seq_sgms.append(seq_sgm)
    mdl_sgms.append(mdl_sgm)

    return Seed(Coords(tuple(seq_sgms)), Coords(tuple(mdl_sgms)))


# ============================================================================
# Indel files
# ============================================================================

@dataclass(frozen=True)
class IndelLine:
    """One line of an indel file."""
    mdl_name: str
    seq_name: str
    mdl_coords: Segment
    mdl_len: int
    seq_coords: Segment
    seq_len: int
    ins_str: Optional[str]
    del_str: Optional[str]

    @property
    def is_forward(self) -> bool:
        return self.mdl_coords.strand is Strand.PLUS and self.seq_coords.strand is Strand.PLUS

    def to_seed(self) -> Seed:
        return indel_strings_to_seed(self.mdl_coords, self.seq_coords, self.ins_str, self.del_str)


def parse_indel_line(line: str, line_number: Optional[int] = None) -> IndelLine:
    fields = line.split()
    if len(fields) != 8:
        raise FormatError("unexpected number of tokens in indel line", line, line_number)
    mdl_name, seq_name, mdl_coords, mdl_len, seq_coords, seq_len, ins_str, del_str = fields
    try:
        return IndelLine(
            mdl_name=mdl_name,
            seq_name=seq_name,
            mdl_coords=Segment.parse(mdl_coords),
            mdl_len=int(mdl_len),
            seq_coords=Segment.parse(seq_coords),
            seq_len=int(seq_len),
            ins_str=None if ins_str == NULL_VALUE else ins_str,
            del_str=None if del_str == NULL_VALUE else del_str,
        )
    except ValueError as e:
        raise FormatError(f"unable to parse indel line ({e})", line, line_number) from None


def seeds_from_indel_file(path: Union[str, Path], seq_lengths: Dict[str, int],
                          mdl_name: str, mdl_len: int,
                          codons: Sequence[Segment] = (),
                          options: SeedOptions = SeedOptions(),
                          require_all: bool = True) -> SeedSet:
    """
    Build one pruned seed per sequence from an indel file.

    The first line with + strand in both coordinate spaces is used for each
    sequence; later lines for the same sequence are ignored. A line that
    cannot be parsed or turned into a seed fails only its own sequence: the
    error goes to ``errors`` and later lines for that sequence are skipped.

    Args:
        path: Indel file
        seq_lengths: Lengths of the sequences assigned to ``mdl_name``
        mdl_name: Expected model name on every line
        mdl_len: Model length
        codons: Start/stop codon segments of the model
        options: Pruning parameters
        require_all: Raise if a sequence in ``seq_lengths`` got neither a
            seed nor an error

    Returns:
        SeedSet of seeds and per-sequence errors

    Raises:
        FormatError: for lines naming unknown sequences or another model,
            or lines too short to name a sequence
    """
    result = SeedSet()
    with open(path, "r") as f:
        for line_number, raw in enumerate(f, start=1):
            line = raw.rstrip("\r\n")
            if line.startswith("#") or not line.strip():
                continue
            fields = line.split()
            if len(fields) < 2:
                raise FormatError("indel line does not name a sequence", line, line_number)
            line_mdl, seq_name = fields[0], fields[1]
            if seq_name not in seq_lengths:
                raise FormatError(f"unrecognized sequence {seq_name}", line, line_number)
            if line_mdl != mdl_name:
                raise FormatError(
                    f"unexpected model {line_mdl} (expected {mdl_name})", line, line_number,
                )
            if seq_name in result.seeds or seq_name in result.errors:
                continue
            try:
                rec = parse_indel_line(line, line_number)
                if not rec.is_forward:
                    continue
                raw_seed = rec.to_seed()
                seed = finalize_blastn_seed(raw_seed, seq_lengths[seq_name], mdl_len,
                                            codons, options)
            except SeedError as e:
                logger.warning(f"{path}: no blastn seed for {seq_name}: {e}")
                result.errors[seq_name] = str(e)
                continue
            if seed != raw_seed:
                logger.debug(f"{seq_name}: seed rewritten from {raw_seed} to {seed}")
            result.seeds[seq_name] = seed

    missing = [name for name in seq_lengths
               if name not in result.seeds and name not in result.errors]
    if missing and require_all:
        raise FormatError(
            f"did not read indel strings for {len(missing)} sequence(s): {', '.join(missing)}"
        )
    return result
