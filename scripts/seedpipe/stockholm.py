"""
Minimal Stockholm reading and writing.

Only what the joiner needs is kept: aligned sequences, per-sequence
posterior probability annotation (``#=GR <name> PP``) and the reference
annotation (``#=GC RF``). Interleaved blocks are concatenated.
"""

from collections import defaultdict
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from .errors import FormatError

STOCKHOLM_HEADER = "# STOCKHOLM 1.0"


@dataclass
class StockholmAlignment:
    sequences: Dict[str, str] = field(default_factory=dict)
    posteriors: Dict[str, str] = field(default_factory=dict)
    rf: Optional[str] = None


def parse_stockholm(lines: Iterable[str]) -> StockholmAlignment:
    """
    Parse one Stockholm alignment.

    Raises:
        FormatError: if the header is missing or a sequence's PP line
            length differs from its aligned sequence
    """
    sequences: Dict[str, str] = defaultdict(str)
    posteriors: Dict[str, str] = defaultdict(str)
    rf_parts: List[str] = []
    seen_header = False

    for line_number, raw in enumerate(lines, start=1):
        line = raw.rstrip("\r\n")
        if not line.strip():
            continue
        if line.startswith("# STOCKHOLM"):
            seen_header = True
            continue
        if line.startswith("//"):
            break
        parts = line.split()
        if line.startswith("#=GC"):
            if len(parts) == 3 and parts[1] == "RF":
                rf_parts.append(parts[2])
            continue
        if line.startswith("#=GR"):
            if len(parts) == 4 and parts[2] == "PP":
                posteriors[parts[1]] += parts[3]
            continue
        if line.startswith("#"):
            continue
        if len(parts) != 2:
            raise FormatError("expected '<name> <aligned sequence>'", line, line_number)
        sequences[parts[0]] += parts[1]

    if not seen_header:
        raise FormatError(f"missing {STOCKHOLM_HEADER!r} header")
    for name, pp in posteriors.items():
        if len(pp) != len(sequences.get(name, "")):
            raise FormatError(f"PP annotation length differs from aligned sequence for {name}")

    return StockholmAlignment(
        sequences=dict(sequences),
        posteriors=dict(posteriors),
        rf="".join(rf_parts) if rf_parts else None,
    )


def read_stockholm(path: Union[str, Path]) -> StockholmAlignment:
    with open(path, "r") as f:
        return parse_stockholm(f)


def format_single_seq_stockholm(name: str, aligned_seq: str, rf: str,
                                pp: Optional[str] = None) -> str:
    lines = [STOCKHOLM_HEADER, f"{name} {aligned_seq}"]
    if pp is not None:
        lines.append(f"#=GR {name} PP {pp}")
    lines.append(f"#=GC RF {rf}")
    lines.append("//")
    return "\n".join(lines) + "\n"


def write_single_seq_stockholm(path: Union[str, Path], name: str, aligned_seq: str,
                               rf: str, pp: Optional[str] = None) -> None:
    Path(path).write_text(format_single_seq_stockholm(name, aligned_seq, rf, pp))
