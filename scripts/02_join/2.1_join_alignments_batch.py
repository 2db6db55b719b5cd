#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
Batch Alignment Joining Script
==============================

Purpose:
    Combine each sequence's seed alignment with the accurate realignments of
    its flanks into one full-length alignment to its model. A flank whose
    boundary residue does not land where the seed predicts makes the
    sequence unjoinable; such sequences are listed and left out of the
    joined insert file.

Required Environment:
    - pandas (seed table, seed report and unjoinable tables)
    - pysam (indexed FASTA access for full sequences)
    - biopython (model consensus reading)

Input:
    - Model consensus sequences: FASTA, one record per model
    - Sequences: FASTA indexed with samtools faidx
    - Seeds: {SEED_DIR}/{model}/seeds.tsv (from 1.2)
    - Flank realignments: {REALIGN_DIR}/{model}.stk and {REALIGN_DIR}/{model}.ifile,
      the aligner output for {SEED_DIR}/{model}/subseqs.fa (absent if no flanks)

Output:
    - {OUT_DIR}/{model}/aligned/{seq}.stk - one-sequence Stockholm per joined sequence
    - {OUT_DIR}/{model}/joined.ifile - insert records of joined sequences
    - {OUT_DIR}/{model}/seed_report.tsv - seed and flank coordinates per sequence
    - {OUT_DIR}/{model}/unjoinable.tsv - unjoinable sequences and the reason
    - {OUT_DIR}/join_failures.tsv, {OUT_DIR}/join_alignments.log

Adjustable Parameters:
    --no-pp: realignments carry no PP annotation
    -p, --processes: Models processed in parallel (default: resources.threads)

Usage:
    python 2.1_join_alignments_batch.py --models models.fa --seqs seqs.fa \\
        --seed-dir seed --realign-dir realign --config config.yaml

Version: 1.0
"""

import os
import re
import sys
import argparse
import logging
import multiprocessing as mp
from collections import defaultdict
from concurrent.futures import ProcessPoolExecutor

import pandas as pd
import pysam
from Bio import SeqIO

_SCRIPT_DIR = os.path.dirname(os.path.abspath(__file__))
sys.path.insert(0, os.path.dirname(_SCRIPT_DIR))

from seedpipe.errors import InvariantError, SeedError
from seedpipe.inserts import read_ifile, write_ifile
from seedpipe.join import RealignedSubseq, join_sequence, write_seed_report
from seedpipe.seed_table import read_seed_table
from seedpipe.stockholm import read_stockholm, write_single_seq_stockholm
from seedpipe.subseq import SubseqRequest, parse_subseq_name
from utils.config_parser import get_nested, load_config, work_dir_from_config

logger = logging.getLogger(__name__)

UNSAFE_FILENAME_RE = re.compile(r"[^\w.\-]")


def read_realigned(stk_path, ifile_path, with_pp):
    """Sequence name -> realigned subsequences, from one Stockholm file and its ifile."""
    by_seq = defaultdict(list)
    if not os.path.exists(stk_path):
        return by_seq

    aln = read_stockholm(stk_path)
    ifile = read_ifile(ifile_path)
    if aln.rf is None:
        raise InvariantError(f"{stk_path} has no #=GC RF annotation")

    for name, aligned in aln.sequences.items():
        seq_name, start, stop = parse_subseq_name(name)
        if name not in ifile.records:
            raise InvariantError(f"{name} is in {stk_path} but not in {ifile_path}")
        pp = aln.posteriors.get(name)
        if with_pp and pp is None:
            raise InvariantError(f"{name} has no PP annotation in {stk_path}")
        by_seq[seq_name].append(RealignedSubseq(
            request=SubseqRequest(seq_name, start, stop),
            aligned_seq=aligned,
            rf=aln.rf,
            pp=pp if with_pp else None,
            inserts=ifile.records[name],
        ))
    return by_seq


def process_single_model(task):
    """
    Join all sequences of one model. Runs in a worker process.

    Returns:
        Dictionary with processing result
    """
    model, consensus, seqs_fasta, seed_dir, realign_dir, out_dir, with_pp = task
    model_dir = os.path.join(out_dir, model)
    aligned_dir = os.path.join(model_dir, "aligned")
    os.makedirs(aligned_dir, exist_ok=True)

    try:
        seeds = read_seed_table(os.path.join(seed_dir, model, "seeds.tsv"))
        realigned = read_realigned(
            os.path.join(realign_dir, f"{model}.stk"),
            os.path.join(realign_dir, f"{model}.ifile"),
            with_pp,
        )
    except (SeedError, OSError) as e:
        return {"model": model, "status": "error", "error": str(e)}

    records = {}
    seq_lengths = {}
    reports = []
    unjoinable = []
    failures = []

    with pysam.FastaFile(seqs_fasta) as fa:
        for seq_name, (choice, seq_len) in seeds.items():
            try:
                sequence = fa.fetch(seq_name)
                if len(sequence) != seq_len:
                    raise InvariantError(
                        f"length of {seq_name} is {len(sequence)}, seed table says {seq_len}"
                    )
                result = join_sequence(
                    seq_name, sequence, consensus, choice.seed,
                    realigned.get(seq_name, []), choice.overwritten, with_pp,
                )
            except (SeedError, KeyError) as e:
                failures.append({"model": model, "seq_name": seq_name, "error": str(e)})
                continue

            reports.append(result.report)
            seq_lengths[seq_name] = seq_len
            if not result.joined:
                unjoinable.append({"seq_name": seq_name, "detail": result.outcome.detail})
                continue

            joined = result.outcome
            records[seq_name] = joined.inserts
            filename = UNSAFE_FILENAME_RE.sub("_", seq_name) + ".stk"
            write_single_seq_stockholm(
                os.path.join(aligned_dir, filename), seq_name,
                joined.aligned_seq, joined.aligned_mdl, joined.aligned_pp,
            )

    write_ifile(os.path.join(model_dir, "joined.ifile"), model, len(consensus),
                [name for name in seeds if name in seq_lengths], seq_lengths, records)
    write_seed_report(reports, os.path.join(model_dir, "seed_report.tsv"))
    pd.DataFrame(unjoinable, columns=["seq_name", "detail"]).to_csv(
        os.path.join(model_dir, "unjoinable.tsv"), sep="\t", index=False
    )

    return {
        "model": model, "status": "success", "joined": len(records),
        "unjoinable": len(unjoinable), "failures": failures,
    }


def main():
    parser = argparse.ArgumentParser(
        description="Join seed alignments with realigned flanks"
    )
    parser.add_argument("--models", required=True, help="FASTA of model consensus sequences")
    parser.add_argument("--seqs", required=True, help="FASTA of sequences (faidx indexed)")
    parser.add_argument("--seed-dir", required=True, help="Output directory of 1.2")
    parser.add_argument("--realign-dir", required=True,
                        help="Directory of {model}.stk / {model}.ifile flank realignments")
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--out-dir", help="Output directory (default: {WORK_DIR}/join)")
    parser.add_argument("--no-pp", action="store_true",
                        help="Realignments have no PP annotation")
    parser.add_argument("-p", "--processes", type=int, default=None,
                        help="Number of models to process in parallel")
    args = parser.parse_args()

    config = load_config(args.config) if args.config else {}
    out_dir = args.out_dir
    if out_dir is None:
        work_dir = work_dir_from_config(config)
        if work_dir is None:
            parser.error("--out-dir or paths.work_dir / $SEED_WORK_DIR is required")
        out_dir = str(work_dir / "join")
    os.makedirs(out_dir, exist_ok=True)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[
            logging.StreamHandler(),
            logging.FileHandler(os.path.join(out_dir, "join_alignments.log")),
        ],
    )
    processes = args.processes or int(get_nested(config, "resources.threads", 1))

    consensus = {rec.id: str(rec.seq) for rec in SeqIO.parse(args.models, "fasta")}
    models = sorted(
        m for m in consensus
        if os.path.exists(os.path.join(args.seed_dir, m, "seeds.tsv"))
    )

    logger.info("=" * 60)
    logger.info("Alignment joining")
    logger.info(f"Seed directory: {args.seed_dir}")
    logger.info(f"Realignment directory: {args.realign_dir}")
    logger.info(f"Output directory: {out_dir}")
    logger.info(f"Models with seeds: {len(models)}")
    logger.info("=" * 60)

    tasks = [
        (m, consensus[m], args.seqs, args.seed_dir, args.realign_dir, out_dir, not args.no_pp)
        for m in models
    ]

    failures = []
    total_joined = 0
    total_unjoinable = 0
    with ProcessPoolExecutor(max_workers=processes) as executor:
        for result in executor.map(process_single_model, tasks):
            model = result["model"]
            if result["status"] == "success":
                total_joined += result["joined"]
                total_unjoinable += result["unjoinable"]
                logger.info(
                    f"[OK] {model}: {result['joined']} joined, "
                    f"{result['unjoinable']} unjoinable"
                )
                for failure in result["failures"]:
                    logger.error(f"{model}: {failure['seq_name']}: {failure['error']}")
                failures.extend(result["failures"])
            else:
                logger.error(f"[FAIL] {model}: {result['error']}")
                failures.append({"model": model, "seq_name": "-", "error": result["error"]})

    pd.DataFrame(failures, columns=["model", "seq_name", "error"]).to_csv(
        os.path.join(out_dir, "join_failures.tsv"), sep="\t", index=False
    )
    logger.info(f"Joined: {total_joined}, unjoinable: {total_unjoinable}, failures: {len(failures)}")


if __name__ == "__main__":
    mp.set_start_method('spawn', force=True)
    main()
