"""
Seed Pipeline - Core Library

Seed-and-extend alignment of viral sequences to reference models:
- Coordinate strings and ungapped seed blocks
- blastn summary and minimap2 SAM parsing into seeds
- Seed pruning, selection and flank subsequence planning
- Joining realigned flanks with the seed alignment
"""

from .errors import (
    SeedError,
    FormatError,
    MalformedCoords,
    InvariantError,
    SegmentLengthMismatch,
)

from .coords import (
    Strand,
    Segment,
    Coords,
    coords_length,
)

from .seed import (
    Seed,
    SeedOptions,
    SeedAlignment,
    SeedChoice,
    SeedSet,
    SeedSource,
    reconstruct_alignment,
    prune_short_blocks,
    prune_terminal_blocks,
    codon_segments,
    finalize_blastn_seed,
    finalize_minimap2_seed,
    pick_best_seed,
    choose_seeds,
)

from .inserts import (
    InsertToken,
    InsertRecord,
    read_ifile,
    write_ifile,
)

from .blastn_summary import (
    BlastnHit,
    read_blastn_summary,
    write_classification_tblouts,
    write_coverage_files,
)

from .indels import (
    indel_strings_to_seed,
    seeds_from_indel_file,
)

from .minimap2 import (
    cigar_to_seed,
    seeds_from_minimap2_sam,
)

from .seed_table import (
    read_seed_table,
    write_seed_table,
)

from .subseq import (
    SubseqRequest,
    plan_subseqs,
    parse_subseq_name,
)

from .stockholm import (
    read_stockholm,
    write_single_seq_stockholm,
)

from .join import (
    RealignedSubseq,
    JoinedAlignment,
    Unjoinable,
    join_alignments,
    join_sequence,
    write_seed_report,
)

__version__ = "1.0.0"

__all__ = [
    # Errors
    "SeedError",
    "FormatError",
    "MalformedCoords",
    "InvariantError",
    "SegmentLengthMismatch",
    # Coordinates
    "Strand",
    "Segment",
    "Coords",
    "coords_length",
    # Seeds
    "Seed",
    "SeedOptions",
    "SeedAlignment",
    "SeedChoice",
    "SeedSet",
    "SeedSource",
    "reconstruct_alignment",
    "prune_short_blocks",
    "prune_terminal_blocks",
    "codon_segments",
    "finalize_blastn_seed",
    "finalize_minimap2_seed",
    "pick_best_seed",
    "choose_seeds",
    # Inserts
    "InsertToken",
    "InsertRecord",
    "read_ifile",
    "write_ifile",
    # blastn
    "BlastnHit",
    "read_blastn_summary",
    "write_classification_tblouts",
    "write_coverage_files",
    "indel_strings_to_seed",
    "seeds_from_indel_file",
    # minimap2
    "cigar_to_seed",
    "seeds_from_minimap2_sam",
    # Seed tables
    "read_seed_table",
    "write_seed_table",
    # Subsequences
    "SubseqRequest",
    "plan_subseqs",
    "parse_subseq_name",
    # Stockholm
    "read_stockholm",
    "write_single_seq_stockholm",
    # Joining
    "RealignedSubseq",
    "JoinedAlignment",
    "Unjoinable",
    "join_alignments",
    "join_sequence",
    "write_seed_report",
]
