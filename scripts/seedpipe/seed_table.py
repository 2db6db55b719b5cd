"""
Seed table: the chosen seed of every sequence of one model, as TSV.

Written by the seed stage and read back by the join stage:

    seq_name  seq_len  source    seq_coords          mdl_coords          ovw_seq_coords  ovw_mdl_coords
    seq1      1000     minimap2  301..700:+          301..700:+          301..690:+      301..690:+
    seq2      1000     blastn    1..40:+,45..100:+   1..40:+,41..96:+    -               -
"""

from pathlib import Path
from typing import Dict, Mapping, Tuple, Union

import pandas as pd

from .errors import FormatError
from .seed import Seed, SeedChoice, SeedSource

SEED_TABLE_COLUMNS = [
    "seq_name", "seq_len", "source", "seq_coords", "mdl_coords",
    "ovw_seq_coords", "ovw_mdl_coords",
]
MISSING = "-"


def seed_table(choices: Mapping[str, SeedChoice], seq_lengths: Mapping[str, int]) -> pd.DataFrame:
    rows = []
    for name, choice in choices.items():
        ovw = choice.overwritten
        rows.append({
            "seq_name": name,
            "seq_len": seq_lengths[name],
            "source": choice.source.value,
            "seq_coords": str(choice.seed.seq_coords),
            "mdl_coords": str(choice.seed.mdl_coords),
            "ovw_seq_coords": str(ovw.seq_coords) if ovw is not None else MISSING,
            "ovw_mdl_coords": str(ovw.mdl_coords) if ovw is not None else MISSING,
        })
    return pd.DataFrame(rows, columns=SEED_TABLE_COLUMNS)


def write_seed_table(choices: Mapping[str, SeedChoice], seq_lengths: Mapping[str, int],
                     path: Union[str, Path]) -> None:
    seed_table(choices, seq_lengths).to_csv(path, sep="\t", index=False)


def read_seed_table(path: Union[str, Path]) -> Dict[str, Tuple[SeedChoice, int]]:
    """
    Read a seed table.

    Returns:
        sequence name -> (seed choice, sequence length)

    Raises:
        FormatError: if a column is missing or a source is unknown
    """
    df = pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False)
    missing = [c for c in SEED_TABLE_COLUMNS if c not in df.columns]
    if missing:
        raise FormatError(f"seed table {path} lacks column(s): {', '.join(missing)}")

    result: Dict[str, Tuple[SeedChoice, int]] = {}
    for row in df.itertuples(index=False):
        try:
            source = SeedSource(row.source)
        except ValueError:
            raise FormatError(f"unknown seed source {row.source!r} for {row.seq_name}") from None
        overwritten = None
        if row.ovw_seq_coords != MISSING:
            overwritten = Seed.parse(row.ovw_seq_coords, row.ovw_mdl_coords)
        choice = SeedChoice(Seed.parse(row.seq_coords, row.mdl_coords), source, overwritten)
        result[row.seq_name] = (choice, int(row.seq_len))
    return result
