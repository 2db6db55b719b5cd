#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Batch Seed Selection and Subsequence Planning Script
====================================================

Purpose:
    For every model, turn the fast aligner output of its assigned sequences
    into one trusted seed per sequence and write the flanks that still need
    accurate realignment:

    1. blastn seeds from the coverage-mode indel files (pruned, codon-checked)
    2. minimap2 seeds from the model's SAM file, if present (terminally pruned)
    3. the seed covering more model positions wins (minimap2 on ties)
    4. 5'/3' flank subsequences, overlapping the seed by the overhang

Required Environment:
    - pandas (seed and failure tables)
    - pysam (indexed FASTA access for sequences and subsequence fetches)
    - biopython (model consensus reading, subsequence FASTA writing)

Input:
    - Model consensus sequences: FASTA, one record per model
    - Sequences: FASTA indexed with samtools faidx
    - Assignments: TSV with columns seq_name, model
    - Indel files: {INDEL_DIR}/*.{model}.indel (from 1.1 coverage mode)
    - minimap2 SAM (optional): {SAM_DIR}/{model}.sam
    - Codons (optional): TSV with columns model, start_codons, stop_codons

Output:
    - {OUT_DIR}/{model}/seeds.tsv - chosen seed per sequence
    - {OUT_DIR}/{model}/subseqs.fa - flank subsequences named seq/start-stop
    - {OUT_DIR}/seed_failures.tsv - sequences or models without a seed
    - {OUT_DIR}/seed_subseq.log

Adjustable Parameters:
    --overhang, --min-segment-length, --all-segments, --ungapped-only,
    --skip-start-stop-check: override the seed section of the config
    -p, --processes: Models processed in parallel (default: resources.threads)

Usage:
    python 1.2_seed_subseq_batch.py --models models.fa --seqs seqs.fa \\
        --seq2mdl seq2mdl.tsv --indel-dir blastn --sam-dir minimap2 --config config.yaml

Version: 1.0
"""

import os
import sys
import glob
import argparse
import logging
import multiprocessing as mp
from concurrent.futures import ProcessPoolExecutor
from dataclasses import replace

import pandas as pd
import pysam
from Bio import SeqIO
from Bio.Seq import Seq
from Bio.SeqRecord import SeqRecord

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.dirname(_SCRIPT_DIR))

from seedpipe.errors import SeedError
from seedpipe.indels import seeds_from_indel_file
from seedpipe.minimap2 import seeds_from_minimap2_sam
from seedpipe.seed import SeedSet, choose_seeds, codon_segments
from seedpipe.seed_table import write_seed_table
from seedpipe.subseq import plan_subseqs
from utils.config_parser import (
    get_nested,
    load_config,
    seed_options_from_config,
    work_dir_from_config,
)

logger = logging.getLogger(__name__)


def read_model_consensus(models_fasta):
    """Model name -> consensus sequence."""
    return {rec.id: str(rec.seq) for rec in SeqIO.parse(models_fasta, "fasta")}


def read_codons(path):
    """Model name -> list of start/stop codon segments."""
    if path is None:
        return {}
    df = pd.read_csv(path, sep="\t", dtype=str, keep_default_na=False)
    return {
        row.model: codon_segments(row.start_codons, row.stop_codons)
        for row in df.itertuples(index=False)
    }


def process_single_model(task):
    """
    Build seeds and flank subsequences for one model. Runs in a worker process.

    Returns:
        Dictionary with processing result
    """
    model, mdl_len, seq_names, seqs_fasta, indel_paths, sam_path, codons, options, out_dir = task
    model_dir = os.path.join(out_dir, model)
    os.makedirs(model_dir, exist_ok=True)

    try:
        with pysam.FastaFile(seqs_fasta) as fa:
            seq_lengths = {name: fa.get_reference_length(name) for name in seq_names}

            # first file with a usable line for a sequence wins
            blastn = SeedSet()
            for path in indel_paths:
                blastn.merge(seeds_from_indel_file(
                    path, seq_lengths, model, mdl_len, codons, options, require_all=False,
                ))
            minimap2 = SeedSet()
            if sam_path is not None:
                minimap2 = seeds_from_minimap2_sam(sam_path, seq_lengths, model,
                                                   mdl_len, options)

            choices, missing = choose_seeds(seq_names, blastn, minimap2)

            records = []
            for name, choice in choices.items():
                for req in plan_subseqs(name, seq_lengths[name], mdl_len, choice.seed,
                                        options.overhang):
                    subseq = fa.fetch(name, req.start - 1, req.stop)
                    records.append(SeqRecord(Seq(subseq), id=req.name, description=""))

        write_seed_table(choices, seq_lengths, os.path.join(model_dir, "seeds.tsv"))
        SeqIO.write(records, os.path.join(model_dir, "subseqs.fa"), "fasta")

        n_minimap2 = sum(1 for c in choices.values() if c.source.value == "minimap2")
        return {
            "model": model, "status": "success", "seeds": len(choices),
            "minimap2": n_minimap2, "subseqs": len(records), "missing": missing,
        }
    except (SeedError, OSError, KeyError) as e:
        return {"model": model, "status": "error", "error": str(e)}


def main():
    parser = argparse.ArgumentParser(
        description="Choose seeds and write flank subsequences for realignment"
    )
    parser.add_argument("--models", required=True, help="FASTA of model consensus sequences")
    parser.add_argument("--seqs", required=True, help="FASTA of sequences (faidx indexed)")
    parser.add_argument("--seq2mdl", required=True, help="TSV of seq_name/model assignments")
    parser.add_argument("--indel-dir", required=True, help="Directory of *.{model}.indel files")
    parser.add_argument("--sam-dir", help="Directory of {model}.sam minimap2 files")
    parser.add_argument("--codons", help="TSV of model/start_codons/stop_codons coords")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--out-dir", help="Output directory (default: {WORK_DIR}/seed)")
    parser.add_argument("--overhang", type=int, help="Flank overhang in nt")
    parser.add_argument("--min-segment-length", type=int, help="Minimum internal block length")
    parser.add_argument("--all-segments", action="store_true", help="Keep all seed blocks")
    parser.add_argument("--ungapped-only", action="store_true",
                        help="Use only the longest seed block")
    parser.add_argument("--skip-start-stop-check", action="store_true",
                        help="Do not collapse seeds with gaps in start/stop codons")
    parser.add_argument("-p", "--processes", type=int, default=None,
                        help="Number of models to process in parallel")
    args = parser.parse_args()

    config = load_config(args.config) if args.config else {}
    options = seed_options_from_config(config)
    if args.overhang is not None:
        options = replace(options, overhang=args.overhang)
    if args.min_segment_length is not None:
        options = replace(options, min_segment_length=args.min_segment_length)
    if args.all_segments:
        options = replace(options, all_segments=True)
    if args.ungapped_only:
        options = replace(options, ungapped_only=True)
    if args.skip_start_stop_check:
        options = replace(options, skip_start_stop_check=True)

    out_dir = args.out_dir
    if out_dir is None:
        work_dir = work_dir_from_config(config)
        if work_dir is None:
            parser.error("--out-dir or paths.work_dir / $SEED_WORK_DIR is required")
        out_dir = str(work_dir / "seed")
    os.makedirs(out_dir, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(os.path.join(out_dir, "seed_subseq.log")),
        ],
    )
    processes = args.processes or int(get_nested(config, "resources.threads", 1))

    logger.info("=" * 60)
    logger.info("Seed selection and subsequence planning")
    logger.info(f"Output directory: {out_dir}")
    logger.info(f"Seed options: {options}")
    logger.info("=" * 60)

    consensus = read_model_consensus(args.models)
    codons = read_codons(args.codons)
    assignments = pd.read_csv(args.seq2mdl, sep="\t", dtype=str)

    tasks = []
    failures = []
    for model, group in assignments.groupby("model", sort=True):
        if model not in consensus:
            logger.error(f"Model {model} not found in {args.models}")
            failures.extend({"model": model, "seq_name": name, "error": "unknown model"}
                            for name in group["seq_name"])
            continue
        indel_paths = sorted(glob.glob(os.path.join(args.indel_dir, f"*.{model}.indel")))
        sam_path = None
        if args.sam_dir:
            candidate = os.path.join(args.sam_dir, f"{model}.sam")
            if os.path.exists(candidate):
                sam_path = candidate
        tasks.append((
            model, len(consensus[model]), list(group["seq_name"]), args.seqs,
            indel_paths, sam_path, codons.get(model, []), options, out_dir,
        ))

    logger.info(f"Found {len(tasks)} models to process.")

    with ProcessPoolExecutor(max_workers=processes) as executor:
        for result in executor.map(process_single_model, tasks):
            model = result["model"]
            if result["status"] == "success":
                logger.info(
                    f"[OK] {model}: {result['seeds']} seeds "
                    f"({result['minimap2']} from minimap2), {result['subseqs']} subsequences"
                )
                for name, reason in result["missing"].items():
                    logger.warning(f"{model}: no seed for {name} ({reason})")
                    failures.append({"model": model, "seq_name": name, "error": reason})
            else:
                logger.error(f"[FAIL] {model}: {result['error']}")
                failures.append({"model": model, "seq_name": "-", "error": result["error"]})

    pd.DataFrame(failures, columns=["model", "seq_name", "error"]).to_csv(
        os.path.join(out_dir, "seed_failures.tsv"), sep="\t", index=False
    )
    logger.info(f"Failures: {len(failures)}")


if __name__ == "__main__":
    mp.set_start_method('spawn', force=True)
    main()
