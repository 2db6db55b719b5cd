"""
Exception types for seed parsing and reconciliation.

Three kinds of problems are distinguished:

- FormatError: malformed input (summary lines, CIGAR strings, indel tokens,
  insert files, subsequence names). Always carries the offending raw line
  when there is one.
- InvariantError: input that parses but contradicts itself, e.g. blocks whose
  sequence and model lengths differ. These point at a bug upstream and must
  not be swallowed.
- MalformedCoords: a coordinate string or segment that cannot exist.

All of them derive from ValueError. An unjoinable alignment is not an error;
see seedpipe.join.Unjoinable.
"""

from typing import Optional


class SeedError(ValueError):
    """Base class for every error raised by seedpipe."""


class FormatError(SeedError):
    """Raised when an input record cannot be parsed."""

    def __init__(self, message: str, line: Optional[str] = None,
                 line_number: Optional[int] = None):
        self.line = line
        self.line_number = line_number
        if line_number is not None:
            message = f"{message} (line {line_number})"
        if line is not None:
            message = f"{message}:\n{line}"
        super().__init__(message)


class MalformedCoords(SeedError):
    """Raised for an invalid coordinate string or segment."""


class InvariantError(SeedError):
    """Raised when parsed alignment data is internally inconsistent."""


class SegmentLengthMismatch(InvariantError):
    """Raised when a block's sequence and model spans differ in length."""

    def __init__(self, seq_span: str, mdl_span: str, context: str = ""):
        self.seq_span = seq_span
        self.mdl_span = mdl_span
        message = f"segment lengths differ: seq {seq_span}, mdl {mdl_span}"
        if context:
            message = f"{context}: {message}"
        super().__init__(message)
