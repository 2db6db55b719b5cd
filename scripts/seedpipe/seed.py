"""
Seed alignments: reconstruction, pruning and selection.

A seed is the alignment of one sequence to one model reported by a fast
aligner (blastn or minimap2), reduced to its ungapped blocks:

    seq_coords  1..40:+,45..100:+
    mdl_coords  1..40:+,41..96:+

Block i covers seq_coords[i] and mdl_coords[i], which always have the same
length. Gaps between blocks are insertions (sequence gap) and deletions
(model gap).

Pruning removes blocks the fast aligner tends to get wrong:

1. short internal blocks (``prune_short_blocks``)
2. short terminal blocks that do not reach the sequence ends
   (``prune_terminal_blocks``)
3. any seed whose model gaps fall inside a start or stop codon is collapsed
   to its single longest block (``gaps_overlap_codons``)

A seed never ends up with zero blocks: if pruning removes everything the
longest block of the unpruned seed is used.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .coords import Coords, Segment, Strand
from .errors import InvariantError, SegmentLengthMismatch
from .inserts import InsertToken

logger = logging.getLogger(__name__)

# Default seed parameters
DEFAULT_OVERHANG: int = 100
DEFAULT_MIN_SEGMENT_LENGTH: int = 10
TERMINAL_FLOOR_FACTOR: float = 1.2


@dataclass(frozen=True)
class SeedOptions:
    """Tunable seed pruning parameters."""
    overhang: int = DEFAULT_OVERHANG
    min_segment_length: int = DEFAULT_MIN_SEGMENT_LENGTH
    all_segments: bool = False          # keep all blocks, skip codon check
    ungapped_only: bool = False         # always keep only the longest block
    skip_start_stop_check: bool = False

    @property
    def terminal_floor(self) -> float:
        return TERMINAL_FLOOR_FACTOR * self.overhang

    @property
    def check_codons(self) -> bool:
        return not (self.all_segments or self.skip_start_stop_check)


@dataclass(frozen=True)
class Block:
    """One ungapped aligned run."""
    seq: Segment
    mdl: Segment

    @property
    def length(self) -> int:
        return self.seq.length


@dataclass(frozen=True)
class Seed:
    """
    Ungapped blocks of a seed alignment.

    Raises:
        SegmentLengthMismatch: if a block's sequence and model spans differ
        InvariantError: if block counts differ, strands are not ``+``, or
            blocks overlap or run backwards in either coordinate space
    """
    seq_coords: Coords
    mdl_coords: Coords

    def __post_init__(self):
        if len(self.seq_coords) != len(self.mdl_coords):
            raise InvariantError(
                f"seed has {len(self.seq_coords)} sequence segments but "
                f"{len(self.mdl_coords)} model segments: "
                f"seq {self.seq_coords}, mdl {self.mdl_coords}"
            )
        if self.seq_coords.strand is not Strand.PLUS or self.mdl_coords.strand is not Strand.PLUS:
            raise InvariantError(
                f"seed strands must be +: seq {self.seq_coords}, mdl {self.mdl_coords}"
            )
        prev = None
        for seq_sgm, mdl_sgm in zip(self.seq_coords, self.mdl_coords):
            if seq_sgm.length != mdl_sgm.length:
                raise SegmentLengthMismatch(str(seq_sgm), str(mdl_sgm), "seed block")
            if prev is not None and (seq_sgm.start <= prev[0].stop or mdl_sgm.start <= prev[1].stop):
                raise InvariantError(
                    f"seed segments out of order or overlapping: "
                    f"seq {self.seq_coords}, mdl {self.mdl_coords}"
                )
            prev = (seq_sgm, mdl_sgm)

    @classmethod
    def from_blocks(cls, blocks: Sequence[Block]) -> "Seed":
        return cls(
            Coords(tuple(b.seq for b in blocks)),
            Coords(tuple(b.mdl for b in blocks)),
        )

    @classmethod
    def parse(cls, seq_coords: str, mdl_coords: str) -> "Seed":
        return cls(Coords.parse(seq_coords), Coords.parse(mdl_coords))

    @property
    def blocks(self) -> List[Block]:
        return [Block(s, m) for s, m in zip(self.seq_coords, self.mdl_coords)]

    @property
    def seq_start(self) -> int:
        return self.seq_coords.five_prime_most

    @property
    def seq_stop(self) -> int:
        return self.seq_coords.three_prime_most

    @property
    def mdl_start(self) -> int:
        return self.mdl_coords.five_prime_most

    @property
    def mdl_stop(self) -> int:
        return self.mdl_coords.three_prime_most

    @property
    def mdl_length(self) -> int:
        """Number of model positions covered by blocks."""
        return self.mdl_coords.length

    def longest_block_seed(self) -> "Seed":
        """Seed made of this seed's longest block only (ties go to the first)."""
        return Seed.from_blocks([longest_block(self.blocks)])

    def __str__(self) -> str:
        return f"seq:{self.seq_coords} mdl:{self.mdl_coords}"


# ============================================================================
# Reconstruction
# ============================================================================

@dataclass(frozen=True)
class SeedAlignment:
    """Gapped alignment strings materialized from a seed."""
    seq_start: int
    seq_stop: int
    mdl_start: int
    mdl_stop: int
    aligned_seq: str
    aligned_mdl: str
    inserts: Tuple[InsertToken, ...] = field(default_factory=tuple)


def reconstruct_alignment(seed: Seed, sequence: str, consensus: str) -> SeedAlignment:
    """
    Build aligned sequence and model strings for the region a seed covers.

    Inserted residues are copied into the sequence row with ``.`` in the
    model row; deleted model positions get ``-`` in the sequence row and the
    consensus residue in the model row.

    Args:
        seed: Seed to materialize
        sequence: Full unaligned sequence
        consensus: Full model consensus sequence

    Returns:
        SeedAlignment with one InsertToken per insertion

    Examples:
        >>> seed = Seed.parse("1..4:+,7..8:+", "1..4:+,5..6:+")
        >>> aln = reconstruct_alignment(seed, "ACGTTTGG", "ACGTGG")
        >>> aln.aligned_seq, aln.aligned_mdl
        ('ACGTTTGG', 'ACGT..GG')
        >>> aln.inserts
        (InsertToken(mdl_pos=4, ua_pos=5, length=2),)
    """
    if seed.seq_stop > len(sequence):
        raise InvariantError(
            f"seed sequence coords {seed.seq_coords} exceed sequence length {len(sequence)}"
        )
    if seed.mdl_stop > len(consensus):
        raise InvariantError(
            f"seed model coords {seed.mdl_coords} exceed model length {len(consensus)}"
        )

    seq_parts: List[str] = []
    mdl_parts: List[str] = []
    inserts: List[InsertToken] = []
    prev: Optional[Block] = None

    for block in seed.blocks:
        if prev is not None:
            ins_len = block.seq.start - prev.seq.stop - 1
            del_len = block.mdl.start - prev.mdl.stop - 1
            if ins_len < 0 or del_len < 0:
                raise InvariantError(
                    f"sequence segments out of order or overlap in {seed}"
                )
            if ins_len > 0:
                seq_parts.append(sequence[prev.seq.stop:prev.seq.stop + ins_len])
                mdl_parts.append("." * ins_len)
                inserts.append(InsertToken(prev.mdl.stop, prev.seq.stop + 1, ins_len))
            if del_len > 0:
                seq_parts.append("-" * del_len)
                mdl_parts.append(consensus[prev.mdl.stop:prev.mdl.stop + del_len])
        seq_parts.append(sequence[block.seq.start - 1:block.seq.stop])
        mdl_parts.append(consensus[block.mdl.start - 1:block.mdl.stop])
        prev = block

    return SeedAlignment(
        seq_start=seed.seq_start,
        seq_stop=seed.seq_stop,
        mdl_start=seed.mdl_start,
        mdl_stop=seed.mdl_stop,
        aligned_seq="".join(seq_parts),
        aligned_mdl="".join(mdl_parts),
        inserts=tuple(inserts),
    )


# ============================================================================
# Pruning
# ============================================================================

def longest_block(blocks: Sequence[Block]) -> Block:
    """Longest block, first one on ties."""
    if not blocks:
        raise InvariantError("no blocks to choose from")
    best = blocks[0]
    for block in blocks[1:]:
        if block.length > best.length:
            best = block
    return best


def prune_short_blocks(blocks: Sequence[Block], min_length: int) -> List[Block]:
    """
    Keep the run of adjacent blocks around the longest block.

    If no block is shorter than ``min_length`` all blocks are kept. Otherwise
    the result is the longest block extended in each direction by neighbours
    of at least ``min_length``, stopping at the first shorter one.
    """
    blocks = list(blocks)
    if not blocks:
        return blocks
    too_short = [b.length < min_length for b in blocks]
    if not any(too_short):
        return blocks

    argmax = blocks.index(longest_block(blocks))
    first = argmax
    while first - 1 >= 0 and not too_short[first - 1]:
        first -= 1
    final = argmax
    while final + 1 < len(blocks) and not too_short[final + 1]:
        final += 1
    return blocks[first:final + 1]


def prune_terminal_blocks(blocks: Sequence[Block], min_length: float,
                          seq_len: int, mdl_len: int) -> List[Block]:
    """
    Drop short blocks at ends that do not reach the sequence termini.

    On the 5' end (only if the first block starts after sequence position 1)
    blocks shorter than ``min_length`` are removed until a long enough one is
    found. When the seed starts at model position 1 the floor for the first
    block is raised by twice the number of unaligned 5' residues, since those
    residues can only be inserts before the model. The 3' end is handled the
    same way against ``seq_len`` and ``mdl_len``. The result may be empty.
    """
    blocks = list(blocks)
    if not blocks:
        return blocks

    seq_start = blocks[0].seq.start
    seq_stop = blocks[-1].seq.stop
    mdl_start = blocks[0].mdl.start
    mdl_stop = blocks[-1].mdl.stop

    if seq_start > 1:
        nremove = 0
        for idx, block in enumerate(blocks):
            floor = min_length
            if idx == 0 and mdl_start == 1:
                floor += 2 * (seq_start - 1)
            if block.length < floor:
                nremove += 1
            else:
                break
        blocks = blocks[nremove:]

    if seq_stop < seq_len:
        nremove = 0
        last = len(blocks) - 1
        for idx in range(last, -1, -1):
            floor = min_length
            if idx == last and mdl_stop == mdl_len:
                floor += 2 * (seq_len - seq_stop)
            if blocks[idx].length < floor:
                nremove += 1
            else:
                break
        blocks = blocks[:len(blocks) - nremove]

    return blocks


def codon_segments(*coords_strings: str) -> List[Segment]:
    """
    Parse start/stop codon coords strings into one list of segments.

    Empty strings are skipped, so a model without stop codons can pass "".
    """
    segments: List[Segment] = []
    for text in coords_strings:
        if text and text.strip():
            segments.extend(Coords.parse(text.strip().rstrip(",")).segments)
    return segments


def gaps_overlap_codons(blocks: Sequence[Block], codons: Iterable[Segment]) -> bool:
    """True if any model gap between consecutive blocks overlaps a codon."""
    codon_spans = [(min(c.start, c.stop), max(c.start, c.stop)) for c in codons]
    for prev, block in zip(blocks, blocks[1:]):
        gap_start = prev.mdl.stop + 1
        gap_stop = block.mdl.start - 1
        if gap_stop < gap_start:
            continue
        for codon_start, codon_stop in codon_spans:
            if gap_start <= codon_stop and codon_start <= gap_stop:
                return True
    return False


def finalize_blastn_seed(seed: Seed, seq_len: int, mdl_len: int,
                         codons: Sequence[Segment] = (),
                         options: SeedOptions = SeedOptions()) -> Seed:
    """
    Apply codon-safety, minimum-length and terminal pruning to a blastn seed.

    Args:
        seed: Seed parsed from the indel line
        seq_len: Sequence length
        mdl_len: Model length
        codons: Start and stop codon segments of the model
        options: Pruning parameters

    Returns:
        Pruned seed, never empty
    """
    collapse = options.ungapped_only
    if not collapse and options.check_codons:
        collapse = gaps_overlap_codons(seed.blocks, codons)
        if collapse:
            logger.debug(f"seed {seed} has a model gap in a start/stop codon")

    if collapse:
        return seed.longest_block_seed()

    blocks = seed.blocks
    if not options.all_segments:
        blocks = prune_short_blocks(blocks, options.min_segment_length)
    blocks = prune_terminal_blocks(blocks, options.terminal_floor, seq_len, mdl_len)

    if not blocks:
        return seed.longest_block_seed()
    if len(blocks) != len(seed.seq_coords):
        logger.debug(f"pruned seed {seed} to {len(blocks)} block(s)")
    return Seed.from_blocks(blocks)


def finalize_minimap2_seed(seed: Seed, seq_len: int, mdl_len: int,
                           options: SeedOptions = SeedOptions()) -> Seed:
    """Terminal pruning only; minimap2 seeds are not checked against codons."""
    if options.ungapped_only:
        return seed.longest_block_seed()
    blocks = prune_terminal_blocks(seed.blocks, options.terminal_floor, seq_len, mdl_len)
    if not blocks:
        return seed.longest_block_seed()
    return Seed.from_blocks(blocks)


@dataclass
class SeedSet:
    """
    Seeds read from one aligner output, plus the sequences that failed.

    A malformed record or inconsistent alignment only costs its own
    sequence: the error message is kept in ``errors`` and the other
    sequences keep their seeds.
    """
    seeds: Dict[str, Seed] = field(default_factory=dict)
    errors: Dict[str, str] = field(default_factory=dict)

    def merge(self, other: "SeedSet") -> None:
        """Add seeds and errors from ``other``; ones already present are kept."""
        for name, seed in other.seeds.items():
            self.seeds.setdefault(name, seed)
        for name, error in other.errors.items():
            self.errors.setdefault(name, error)


# ============================================================================
# Selection
# ============================================================================

class SeedSource(str, Enum):
    BLASTN = "blastn"
    MINIMAP2 = "minimap2"


@dataclass(frozen=True)
class SeedChoice:
    """Chosen seed plus the one it replaced (kept for reporting only)."""
    seed: Seed
    source: SeedSource
    overwritten: Optional[Seed] = None


def pick_best_seed(blastn_seed: Optional[Seed],
                   minimap2_seed: Optional[Seed]) -> Optional[SeedChoice]:
    """
    Keep the seed covering more model positions; ties go to minimap2.

    Examples:
        >>> a = Seed.parse("1..850:+", "1..850:+")
        >>> b = Seed.parse("2..851:+", "1..850:+")
        >>> pick_best_seed(a, b).source.value
        'minimap2'
    """
    if minimap2_seed is not None and (
        blastn_seed is None or minimap2_seed.mdl_length >= blastn_seed.mdl_length
    ):
        return SeedChoice(minimap2_seed, SeedSource.MINIMAP2, overwritten=blastn_seed)
    if blastn_seed is not None:
        return SeedChoice(blastn_seed, SeedSource.BLASTN)
    return None


def choose_seeds(seq_names: Iterable[str], blastn: SeedSet,
                 minimap2: SeedSet) -> Tuple[Dict[str, SeedChoice], Dict[str, str]]:
    """
    Pick a seed for every sequence in ``seq_names``.

    Returns:
        (choices, failures): the chosen seed per sequence, and for each
        sequence left without one the reason, built from the aligners'
        recorded errors or ``"no seed"`` when neither produced anything
    """
    choices: Dict[str, SeedChoice] = {}
    failures: Dict[str, str] = {}
    for name in seq_names:
        choice = pick_best_seed(blastn.seeds.get(name), minimap2.seeds.get(name))
        if choice is not None:
            choices[name] = choice
            continue
        reasons = [
            f"{source.value}: {errors[name]}"
            for source, errors in ((SeedSource.BLASTN, blastn.errors),
                                   (SeedSource.MINIMAP2, minimap2.errors))
            if name in errors
        ]
        failures[name] = "; ".join(reasons) if reasons else "no seed"
    return choices, failures
