"""
Batch evaluation of the propagation solver over a Sudoku dataset.

The dataset uses the JSON layout of the puzzle generator:

    {"size": 9, "puzzles": [{"puzzle": [[...], ...], "solution": [[...], ...]}, ...]}

Each puzzle is solved with naked-single propagation only and classified as
``solved``, ``mismatch`` (complete but different from the reference
solution), ``stalled`` or ``conflict``. A summary and per-puzzle results are
written to a timestamped run directory.

Usage:

    python propagation_benchmark.py --dataset datasets/sudoku_9x9.json --limit 100
"""

from __future__ import annotations

import argparse
import json
import os
import random
import statistics
import sys
import time
from collections import Counter
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from loguru import logger

from propagation_solver import (
    Board,
    ConflictError,
    PEERS_ENV,
    PuzzleFormatError,
    StalledError,
)
from sudoku_peers import PeerTable, PeerTableError, default_peer_table

OUTCOMES = ("solved", "mismatch", "stalled", "conflict")


@dataclass
class PuzzleResult:
    index: int
    puzzle: str
    outcome: str
    output: str
    passes: int
    eliminations: int
    entropy: int
    elapsed: float
    error: Optional[str] = None


def load_dataset(path: str) -> List[Dict[str, List[List[int]]]]:
    with open(path, "r", encoding="utf-8") as fh:
        payload = json.load(fh)

    size = payload.get("size", 9)
    if size != 9:
        raise ValueError(f"Only 9x9 datasets are supported, received size {size}.")

    puzzles = payload.get("puzzles")
    if not isinstance(puzzles, list):
        raise ValueError("Invalid dataset: missing 'puzzles' list.")

    return puzzles


def grid_to_text(grid: Sequence[Sequence[int]]) -> str:
    return "".join(str(value) for row in grid for value in row)


def evaluate_puzzle(
    index: int,
    puzzle: Sequence[Sequence[int]],
    solution: Optional[Sequence[Sequence[int]]],
    peers: PeerTable,
) -> PuzzleResult:
    board = Board.from_grid(puzzle, peers)
    start = time.perf_counter()
    passes = eliminations = 0
    error: Optional[str] = None

    try:
        stats = board.solve()
    except ConflictError as exc:
        outcome = "conflict"
        error = str(exc)
    except StalledError as exc:
        outcome = "stalled"
        error = str(exc)
    else:
        passes, eliminations = stats.passes, stats.eliminations
        if solution is not None and board.to_grid() != [list(row) for row in solution]:
            outcome = "mismatch"
        else:
            outcome = "solved"

    return PuzzleResult(
        index=index,
        puzzle=grid_to_text(puzzle),
        outcome=outcome,
        output=board.to_string(),
        passes=passes,
        eliminations=eliminations,
        entropy=board.total_entropy(),
        elapsed=time.perf_counter() - start,
        error=error,
    )


def summarize(results: Sequence[PuzzleResult]) -> Dict[str, object]:
    counts = Counter(result.outcome for result in results)
    total = len(results)
    elapsed = [result.elapsed for result in results]
    return {
        "puzzle_count": total,
        "outcomes": {outcome: counts.get(outcome, 0) for outcome in OUTCOMES},
        "solve_rate": counts.get("solved", 0) / total if total else 0.0,
        "average_elapsed": statistics.mean(elapsed) if elapsed else None,
        "median_elapsed": statistics.median(elapsed) if elapsed else None,
    }


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the propagation solver over a Sudoku dataset."
    )
    parser.add_argument(
        "--dataset",
        type=str,
        required=True,
        help="Path to the Sudoku dataset JSON file.",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=None,
        help="Limit the number of puzzles evaluated.",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed used with --shuffle.",
    )
    parser.add_argument(
        "--shuffle",
        action="store_true",
        help="Shuffle dataset before evaluation.",
    )
    parser.add_argument(
        "--output-dir",
        type=str,
        default=str(Path(__file__).resolve().parent / "eval_results"),
        help="Directory to write evaluation summaries and logs.",
    )
    parser.add_argument(
        "--peers",
        type=str,
        default=None,
        help=f"CSV peer table to use instead of grid geometry (env: {PEERS_ENV}).",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level for console output (default: INFO).",
    )
    return parser.parse_args(argv)


def run_benchmark(
    dataset: Sequence[Dict[str, List[List[int]]]],
    peers: PeerTable,
) -> List[PuzzleResult]:
    results: List[PuzzleResult] = []
    for index, entry in enumerate(dataset):
        try:
            result = evaluate_puzzle(index, entry["puzzle"], entry.get("solution"), peers)
        except (KeyError, PuzzleFormatError) as exc:
            raise ValueError(f"Dataset entry {index} is malformed: {exc}") from exc
        results.append(result)
        logger.debug(
            "[{}/{}] {} passes={} eliminations={} entropy={}",
            index + 1,
            len(dataset),
            result.outcome,
            result.passes,
            result.eliminations,
            result.entropy,
        )
    return results


def write_results(run_dir: Path, dataset_path: str, results: Sequence[PuzzleResult]) -> Path:
    summary_payload = summarize(results)
    summary_payload.update(
        {
            "dataset": dataset_path,
            "created_at": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
        }
    )

    with (run_dir / "summary.json").open("w", encoding="utf-8") as fh:
        json.dump(summary_payload, fh, ensure_ascii=False, indent=2)

    with (run_dir / "results.jsonl").open("w", encoding="utf-8") as fh:
        for result in results:
            fh.write(json.dumps(asdict(result), ensure_ascii=False))
            fh.write("\n")

    return run_dir


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    dataset = list(load_dataset(args.dataset))
    if args.shuffle:
        random.Random(args.seed).shuffle(dataset)
    if args.limit is not None:
        dataset = dataset[: args.limit]

    peers_path = args.peers or os.getenv(PEERS_ENV)
    try:
        peers = PeerTable.from_csv(peers_path) if peers_path else default_peer_table()
    except PeerTableError as exc:
        print(f"invalid peer table: {exc}", file=sys.stderr)
        return 2

    output_dir = Path(args.output_dir).resolve()
    run_dir = output_dir / time.strftime("run_%Y%m%d_%H%M%S")
    run_dir.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(sys.stdout, level=args.log_level)
    logger.add(run_dir / "run.log", level="DEBUG", encoding="utf-8")
    logger.info(
        "Evaluating {} puzzle(s) from {} with peer table {}",
        len(dataset),
        args.dataset,
        peers.source,
    )

    results = run_benchmark(dataset, peers)
    summary = summarize(results)

    logger.info("=== Propagation Summary ===")
    for outcome in OUTCOMES:
        logger.info("{}: {}", outcome, summary["outcomes"][outcome])
    logger.info("solve rate: {:.3%}", summary["solve_rate"])

    write_results(run_dir, args.dataset, results)
    logger.info("Detailed results written to {}", run_dir)
    return 0


__all__ = [
    "PuzzleResult",
    "evaluate_puzzle",
    "load_dataset",
    "run_benchmark",
    "summarize",
    "write_results",
]


if __name__ == "__main__":
    sys.exit(main())
