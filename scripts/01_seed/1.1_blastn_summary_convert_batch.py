#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Batch blastn Summary Conversion Script
======================================

Purpose:
    Convert blastn summary files (parse_blast.pl key/value format) into the
    tabular hit files used downstream:

    - classify: sequence classification input, one cmsearch-style tblout
      with bit scores summed per (model, sequence, strand), plus the
      per-HSP pretblout it was built from
    - coverage: for sequences already assigned to a model, one tblout and
      one indel file per model; the indel files seed the alignment stage

Required Environment:
    - pandas (score summation, sequence-to-model table)
    - pysam (sequence lengths from the indexed FASTA)

Input:
    - blastn summary files: {WORK_DIR}/blastn/{chunk}.summary
    - Sequences: FASTA indexed with samtools faidx (.fai created if absent)
    - coverage mode only: TSV with columns seq_name, model

Output:
    - classify: {OUT_DIR}/{chunk}.blastn.pretblout, {OUT_DIR}/{chunk}.blastn.tblout
    - coverage: {OUT_DIR}/{chunk}.{model}.tblout, {OUT_DIR}/{chunk}.{model}.indel
    - {OUT_DIR}/blastn_convert.log

Adjustable Parameters:
    --mode: classify or coverage (default: classify)
    --min-bitscore: HSPs scoring below this are dropped (default: config or 200.0)
    -p, --processes: Summary files converted in parallel (default: resources.threads)

Usage:
    python 1.1_blastn_summary_convert_batch.py --seqs seqs.fa --summary blastn/*.summary
    python 1.1_blastn_summary_convert_batch.py --mode coverage --seq2mdl seq2mdl.tsv \\
        --seqs seqs.fa --summary blastn/*.summary --config config.yaml

Version: 1.0
"""

import os
import sys
import argparse
import logging
import multiprocessing as mp
from concurrent.futures import ProcessPoolExecutor
from pathlib import Path

import pandas as pd
import pysam

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.dirname(_SCRIPT_DIR))

from seedpipe.blastn_summary import (
    read_blastn_summary,
    write_classification_tblouts,
    write_coverage_files,
)
from seedpipe.errors import SeedError
from utils.config_parser import (
    DEFAULT_MIN_BITSCORE,
    get_nested,
    load_config,
    work_dir_from_config,
)

logger = logging.getLogger(__name__)


def read_seq_lengths(fasta_path):
    """Sequence name -> length from the FASTA index."""
    with pysam.FastaFile(fasta_path) as fa:
        return dict(zip(fa.references, fa.lengths))


def read_seq2mdl(path):
    """Two-column TSV (seq_name, model) -> dict."""
    df = pd.read_csv(path, sep="\t", dtype=str)
    if not {"seq_name", "model"}.issubset(df.columns):
        raise SeedError(f"{path} must have columns seq_name and model")
    return dict(zip(df["seq_name"], df["model"]))


def convert_single_summary(task):
    """
    Convert one summary file. Runs in a worker process.

    Returns:
        Dictionary with processing result
    """
    summary_path, seq_lengths, out_dir, mode, min_bitscore, seq2mdl = task
    chunk = Path(summary_path).stem
    try:
        hits = read_blastn_summary(summary_path, seq_lengths, min_bitscore)
        if mode == "classify":
            pre = os.path.join(out_dir, f"{chunk}.blastn.pretblout")
            tbl = os.path.join(out_dir, f"{chunk}.blastn.tblout")
            table = write_classification_tblouts(hits, pre, tbl)
            outputs = [tbl]
            n_rows = len(table)
        else:
            models = sorted(set(seq2mdl.values()))
            paths = write_coverage_files(hits, seq2mdl, models, os.path.join(out_dir, chunk))
            outputs = [str(p) for pair in paths.values() for p in pair]
            n_rows = len(hits)
        return {"summary": summary_path, "status": "success", "hits": n_rows, "outputs": outputs}
    except (SeedError, OSError) as e:
        return {"summary": summary_path, "status": "error", "error": str(e)}


def main():
    parser = argparse.ArgumentParser(
        description="Convert blastn summary files into tblout and indel files"
    )
    parser.add_argument("--summary", nargs="+", required=True,
                        help="blastn summary file(s)")
    parser.add_argument("--seqs", required=True,
                        help="FASTA of the query sequences")
    parser.add_argument("--mode", choices=["classify", "coverage"], default="classify",
                        help="Output mode (default: classify)")
    parser.add_argument("--seq2mdl",
                        help="TSV of seq_name/model assignments (coverage mode)")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--out-dir", help="Output directory (default: {WORK_DIR}/blastn)")
    parser.add_argument("--min-bitscore", type=float, default=None,
                        help=f"Minimum HSP bit score (default: {DEFAULT_MIN_BITSCORE})")
    parser.add_argument("-p", "--processes", type=int, default=None,
                        help="Number of summary files to convert in parallel")
    args = parser.parse_args()

    config = load_config(args.config) if args.config else {}
    if args.mode == "coverage" and not args.seq2mdl:
        parser.error("--seq2mdl is required in coverage mode")

    out_dir = args.out_dir
    if out_dir is None:
        work_dir = work_dir_from_config(config)
        if work_dir is None:
            parser.error("--out-dir or paths.work_dir / $SEED_WORK_DIR is required")
        out_dir = str(work_dir / "blastn")
    os.makedirs(out_dir, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(os.path.join(out_dir, "blastn_convert.log")),
        ],
    )

    min_bitscore = args.min_bitscore
    if min_bitscore is None:
        min_bitscore = float(get_nested(config, "blastn.min_bitscore", DEFAULT_MIN_BITSCORE))
    processes = args.processes or int(get_nested(config, "resources.threads", 1))

    logger.info("=" * 60)
    logger.info(f"blastn summary conversion ({args.mode} mode)")
    logger.info(f"Summary files: {len(args.summary)}")
    logger.info(f"Output directory: {out_dir}")
    logger.info(f"Minimum bit score: {min_bitscore}")
    logger.info("=" * 60)

    seq_lengths = read_seq_lengths(args.seqs)
    seq2mdl = read_seq2mdl(args.seq2mdl) if args.seq2mdl else {}

    tasks = [
        (path, seq_lengths, out_dir, args.mode, min_bitscore, seq2mdl)
        for path in args.summary
    ]

    successful = 0
    failed = 0
    with ProcessPoolExecutor(max_workers=processes) as executor:
        for result in executor.map(convert_single_summary, tasks):
            if result["status"] == "success":
                successful += 1
                logger.info(f"[OK] {result['summary']}: {result['hits']} rows")
            else:
                failed += 1
                logger.error(f"[FAIL] {result['summary']}: {result['error']}")

    logger.info(f"Converted: {successful}, failed: {failed}")
    if failed:
        sys.exit(1)


if __name__ == "__main__":
    mp.set_start_method('spawn', force=True)
    main()
