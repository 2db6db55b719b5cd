"""
Insert records and cmalign-style insert ("ifile") files.

An insert token says that ``length`` sequence residues, starting at
unaligned sequence position ``ua_pos``, are inserted after model position
``mdl_pos`` (0 means before the first model position). A sequence's insert
record is its list of tokens plus the first and last model positions of its
alignment (``spos``/``epos``).

ifile layout (whitespace separated):

    # comment lines
    <model_name> <model_length>
    <seq_name> <seq_len> <spos> <epos> [<mdl_pos> <ua_pos> <length>]*
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

from .errors import FormatError


class InsertToken(NamedTuple):
    mdl_pos: int
    ua_pos: int
    length: int

    def shifted(self, offset: int) -> "InsertToken":
        """Same insert with the unaligned position moved by ``offset``."""
        return InsertToken(self.mdl_pos, self.ua_pos + offset, self.length)

    def __str__(self) -> str:
        return f"{self.mdl_pos}:{self.ua_pos}:{self.length};"


@dataclass(frozen=True)
class InsertRecord:
    """Model span of one aligned sequence and its inserts."""
    spos: int
    epos: int
    tokens: Tuple[InsertToken, ...] = field(default_factory=tuple)

    @property
    def insert_string(self) -> str:
        """Tokens as ``mdl:ua:len;`` joined together."""
        return "".join(str(tok) for tok in self.tokens)


def parse_insert_string(text: str) -> Tuple[InsertToken, ...]:
    """
    Parse a ``mdl:ua:len;`` insert string.

    Examples:
        >>> parse_insert_string("40:41:4;96:101:2;")
        (InsertToken(mdl_pos=40, ua_pos=41, length=4), InsertToken(mdl_pos=96, ua_pos=101, length=2))
    """
    tokens = []
    for tok in text.split(";"):
        if not tok:
            continue
        parts = tok.split(":")
        if len(parts) != 3:
            raise FormatError("unable to parse insert token", tok)
        try:
            tokens.append(InsertToken(*(int(p) for p in parts)))
        except ValueError:
            raise FormatError("non-integer field in insert token", tok) from None
    return tuple(tokens)


@dataclass
class InsertFile:
    """Parsed ifile contents."""
    model_name: Optional[str] = None
    model_length: Optional[int] = None
    records: Dict[str, InsertRecord] = field(default_factory=dict)
    seq_lengths: Dict[str, int] = field(default_factory=dict)


def parse_ifile_line(line: str, line_number: Optional[int] = None) -> Tuple[str, int, InsertRecord]:
    """Parse one per-sequence ifile line into (name, length, record)."""
    fields = line.split()
    if len(fields) < 4 or (len(fields) - 4) % 3 != 0:
        raise FormatError(
            f"unexpected number of elements ({len(fields)}) in ifile line",
            line, line_number,
        )
    try:
        numbers = [int(x) for x in fields[1:]]
    except ValueError:
        raise FormatError("non-integer field in ifile line", line, line_number) from None

    seq_len, spos, epos = numbers[0], numbers[1], numbers[2]
    tokens = tuple(
        InsertToken(numbers[i], numbers[i + 1], numbers[i + 2])
        for i in range(3, len(numbers), 3)
    )
    return fields[0], seq_len, InsertRecord(spos, epos, tokens)


def read_ifile(path: Union[str, Path]) -> InsertFile:
    """
    Read an ifile.

    Raises:
        FormatError: if a non-comment line has the wrong number of fields
    """
    result = InsertFile()
    with open(path, "r") as f:
        for line_number, raw in enumerate(f, start=1):
            line = raw.rstrip("\r\n")
            if line.startswith("#") or not line.strip():
                continue
            fields = line.split()
            if len(fields) == 2:
                result.model_name = fields[0]
                try:
                    result.model_length = int(fields[1])
                except ValueError:
                    raise FormatError("non-integer model length", line, line_number) from None
                continue
            name, seq_len, record = parse_ifile_line(line, line_number)
            result.records[name] = record
            result.seq_lengths[name] = seq_len
    return result


def format_ifile_line(seq_name: str, seq_len: int, record: InsertRecord) -> str:
    parts = [seq_name, str(seq_len), str(record.spos), str(record.epos)]
    for tok in record.tokens:
        parts.extend([str(tok.mdl_pos), str(tok.ua_pos), str(tok.length)])
    return " ".join(parts)


def write_ifile(path: Union[str, Path], model_name: str, model_length: int,
                seq_names: Iterable[str], seq_lengths: Dict[str, int],
                records: Dict[str, InsertRecord]) -> None:
    """Write records for ``seq_names`` in order, skipping names without a record."""
    lines: List[str] = [
        "# Insert information file",
        "# <seqname> <seqlen> <spos> <epos> [<mdlpos> <uapos> <inslen>]*",
        f"{model_name} {model_length}",
    ]
    for name in seq_names:
        if name in records:
            lines.append(format_ifile_line(name, seq_lengths[name], records[name]))
    Path(path).write_text("\n".join(lines) + "\n")
