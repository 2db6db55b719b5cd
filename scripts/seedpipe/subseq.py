"""
Subsequence planning for flank realignment.

Parts of a sequence not covered by its seed are realigned with a slower,
more accurate aligner. Each realigned piece overlaps the seed by an
overhang so the two alignments can be joined (see seedpipe.join). When the
seed starts at model position 1, the unaligned 5' residues can only be
inserts before the model, so the 5' overhang grows by twice their number;
the 3' end is treated the same way against the model length.

Subsequences are named ``<seq_name>/<start>-<stop>``.
"""

import re
from dataclasses import dataclass
from typing import List, Tuple

from .errors import FormatError
from .seed import Seed

SUBSEQ_NAME_RE = re.compile(r"^(\S+)/(\d+)-(\d+)$")


@dataclass(frozen=True)
class SubseqRequest:
    """A region of a sequence to realign."""
    seq_name: str
    start: int
    stop: int

    @property
    def name(self) -> str:
        return subseq_name(self.seq_name, self.start, self.stop)

    @property
    def length(self) -> int:
        return self.stop - self.start + 1


def subseq_name(seq_name: str, start: int, stop: int) -> str:
    return f"{seq_name}/{start}-{stop}"


def parse_subseq_name(name: str) -> Tuple[str, int, int]:
    """
    Split ``<seq_name>/<start>-<stop>``.

    Examples:
        >>> parse_subseq_name("AB541310.1/7100-7509")
        ('AB541310.1', 7100, 7509)
    """
    match = SUBSEQ_NAME_RE.match(name)
    if match is None:
        raise FormatError("unable to parse subsequence name", name)
    return match.group(1), int(match.group(2)), int(match.group(3))


def plan_subseqs(seq_name: str, seq_len: int, mdl_len: int, seed: Seed,
                 overhang: int) -> List[SubseqRequest]:
    """
    Decide which flanks of a sequence need realignment.

    Args:
        seq_name: Sequence name
        seq_len: Sequence length L
        mdl_len: Model length M
        seed: Pruned seed for the sequence
        overhang: Overhang O in nucleotides

    Returns:
        [] if the seed covers 1..L; a single full-length request if the
        5' and 3' flanks would overlap; otherwise one request per end the
        seed does not reach, 5' first

    Examples:
        >>> seed = Seed.parse("301..700:+", "301..700:+")
        >>> [r.name for r in plan_subseqs("s1", 1000, 1000, seed, 100)]
        ['s1/1-400', 's1/601-1000']
    """
    seq_start, seq_stop = seed.seq_start, seed.seq_stop
    if seq_start == 1 and seq_stop == seq_len:
        return []

    overhang_5p = overhang
    overhang_3p = overhang
    if seed.mdl_start == 1:
        overhang_5p += 2 * (seq_start - 1)
    if seed.mdl_stop == mdl_len:
        overhang_3p += 2 * (seq_len - seq_stop)

    stop_5p = seq_start + overhang_5p - 1
    start_3p = seq_stop - overhang_3p + 1

    if stop_5p >= start_3p:
        return [SubseqRequest(seq_name, 1, seq_len)]

    requests = []
    if seq_start != 1:
        requests.append(SubseqRequest(seq_name, 1, stop_5p))
    if seq_stop != seq_len:
        requests.append(SubseqRequest(seq_name, start_3p, seq_len))
    return requests
