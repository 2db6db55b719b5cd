"""
Coordinate Segment Algebra

Alignments are described by ordered lists of 1-based, inclusive intervals
("segments"), serialized as

    start..stop:strand[,start..stop:strand]*

e.g. ``1..40:+,45..100:+``. A segment on the ``+`` strand has start <= stop,
a segment on the ``-`` strand has start >= stop. The length of a segment is
``|stop - start| + 1`` regardless of strand.

A Coords value is an ordered, non-empty tuple of segments sharing one strand.
Segments are listed in traversal order and are never merged: callers decide
whether two segments are adjacent.
"""

import re
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, List, Sequence, Tuple, Union

from .errors import MalformedCoords


SEGMENT_RE = re.compile(r"^(\d+)\.\.(\d+):([+-])$")


class Strand(str, Enum):
    PLUS = "+"
    MINUS = "-"

    def __str__(self) -> str:
        return self.value


def to_strand(value: Union[str, Strand]) -> Strand:
    """Convert a ``+``/``-`` symbol to a Strand, raising MalformedCoords otherwise."""
    try:
        return Strand(value)
    except ValueError:
        raise MalformedCoords(f"invalid strand symbol: {value!r}") from None


@dataclass(frozen=True)
class Segment:
    """One ungapped interval on one strand."""
    start: int
    stop: int
    strand: Strand = Strand.PLUS

    def __post_init__(self):
        object.__setattr__(self, "strand", to_strand(self.strand))
        if self.start < 1 or self.stop < 1:
            raise MalformedCoords(
                f"segment positions must be >= 1: {self.start}..{self.stop}"
            )
        if self.strand is Strand.PLUS and self.start > self.stop:
            raise MalformedCoords(
                f"+ strand segment has start > stop: {self.start}..{self.stop}"
            )
        if self.strand is Strand.MINUS and self.start < self.stop:
            raise MalformedCoords(
                f"- strand segment has start < stop: {self.start}..{self.stop}"
            )

    @property
    def length(self) -> int:
        return abs(self.stop - self.start) + 1

    @classmethod
    def parse(cls, text: str) -> "Segment":
        """
        Parse a single ``start..stop:strand`` segment.

        Examples:
            >>> Segment.parse("5..7513:+")
            Segment(start=5, stop=7513, strand=<Strand.PLUS: '+'>)
        """
        match = SEGMENT_RE.match(text.strip())
        if match is None:
            raise MalformedCoords(f"unable to parse coords segment: {text!r}")
        return cls(int(match.group(1)), int(match.group(2)), Strand(match.group(3)))

    def __str__(self) -> str:
        return f"{self.start}..{self.stop}:{self.strand.value}"


@dataclass(frozen=True)
class Coords:
    """Ordered, non-empty list of same-strand segments."""
    segments: Tuple[Segment, ...]

    def __post_init__(self):
        segments = tuple(self.segments)
        object.__setattr__(self, "segments", segments)
        if not segments:
            raise MalformedCoords("coords must contain at least one segment")
        strands = {sgm.strand for sgm in segments}
        if len(strands) != 1:
            raise MalformedCoords(f"coords mix strands: {self._render(segments)}")

    @staticmethod
    def _render(segments: Sequence[Segment]) -> str:
        return ",".join(str(sgm) for sgm in segments)

    # ------------------------------------------------------------------
    # construction
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, text: str) -> "Coords":
        """
        Parse a comma-separated coords string.

        Examples:
            >>> str(Coords.parse("1..40:+,45..100:+"))
            '1..40:+,45..100:+'
        """
        if text is None or text.strip() == "":
            raise MalformedCoords("empty coords string")
        return cls(tuple(Segment.parse(tok) for tok in text.strip().split(",")))

    @classmethod
    def single(cls, start: int, stop: int,
               strand: Union[str, Strand] = Strand.PLUS) -> "Coords":
        return cls((Segment(start, stop, strand),))

    @classmethod
    def from_arrays(cls, starts: Sequence[int], stops: Sequence[int],
                    strands: Sequence[Union[str, Strand]]) -> "Coords":
        """
        Build coords from three parallel arrays of starts, stops and strands.

        Raises:
            MalformedCoords: if the arrays differ in length or any segment is invalid
        """
        if not (len(starts) == len(stops) == len(strands)):
            raise MalformedCoords(
                f"start/stop/strand arrays differ in length: "
                f"{len(starts)}, {len(stops)}, {len(strands)}"
            )
        return cls(tuple(
            Segment(start, stop, strand)
            for start, stop, strand in zip(starts, stops, strands)
        ))

    def append(self, segment: Segment) -> "Coords":
        """Return new coords with ``segment`` added at the end (no merging)."""
        return Coords(self.segments + (segment,))

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------

    @property
    def strand(self) -> Strand:
        return self.segments[0].strand

    @property
    def length(self) -> int:
        """Sum of segment lengths."""
        return sum(sgm.length for sgm in self.segments)

    @property
    def five_prime_most(self) -> int:
        """Start of the first segment."""
        return self.segments[0].start

    @property
    def three_prime_most(self) -> int:
        """Stop of the last segment."""
        return self.segments[-1].stop

    def max_length_segment(self) -> Tuple[Segment, int]:
        """
        Return the longest segment and its length. Ties go to the first one.

        Examples:
            >>> Coords.parse("1..10:+,20..29:+,40..42:+").max_length_segment()
            (Segment(start=1, stop=10, strand=<Strand.PLUS: '+'>), 10)
        """
        best = self.segments[0]
        for sgm in self.segments[1:]:
            if sgm.length > best.length:
                best = sgm
        return best, best.length

    def to_arrays(self) -> Tuple[List[int], List[int], List[Strand]]:
        """Inverse of from_arrays."""
        return (
            [sgm.start for sgm in self.segments],
            [sgm.stop for sgm in self.segments],
            [sgm.strand for sgm in self.segments],
        )

    def __len__(self) -> int:
        return len(self.segments)

    def __iter__(self) -> Iterator[Segment]:
        return iter(self.segments)

    def __getitem__(self, idx):
        return self.segments[idx]

    def __str__(self) -> str:
        return self._render(self.segments)


def coords_length(text: str) -> int:
    """Total length of a coords string."""
    return Coords.parse(text).length
