import json
import random

import pytest

from propagation_benchmark import evaluate_puzzle, load_dataset, main, run_benchmark, summarize
from sudoku_peers import default_peer_table

EASY_PUZZLE = "301086504046521070500000001400800002080347900009050038004090200008734090007208103"
EASY_SOLUTION = "371986524846521379592473861463819752285347916719652438634195287128734695957268143"
CONFLICTING_PUZZLE = "000040007480960501063570820009610203350097006000005094000000005804706910001040070"


def to_grid(text):
    return [[int(ch) for ch in text[r * 9:(r + 1) * 9]] for r in range(9)]


@pytest.fixture
def dataset_path(tmp_path):
    payload = {
        "size": 9,
        "count": 3,
        "puzzles": [
            {"puzzle": to_grid(EASY_PUZZLE), "solution": to_grid(EASY_SOLUTION)},
            {"puzzle": to_grid("0" * 81), "solution": to_grid(EASY_SOLUTION)},
            {"puzzle": to_grid(CONFLICTING_PUZZLE)},
        ],
    }
    path = tmp_path / "sudoku_9x9.json"
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def test_outcomes_are_classified(dataset_path):
    results = run_benchmark(load_dataset(str(dataset_path)), default_peer_table())

    assert [result.outcome for result in results] == ["solved", "stalled", "conflict"]
    assert results[0].output == EASY_SOLUTION
    assert results[0].entropy == 81
    assert results[1].entropy == 729
    assert results[2].error == "cell at index 76 is already fully constrained as 4"

    summary = summarize(results)
    assert summary["puzzle_count"] == 3
    assert summary["outcomes"] == {"solved": 1, "mismatch": 0, "stalled": 1, "conflict": 1}


def test_wrong_reference_solution_is_a_mismatch():
    wrong = EASY_SOLUTION[::-1]
    result = evaluate_puzzle(0, to_grid(EASY_PUZZLE), to_grid(wrong), default_peer_table())
    assert result.outcome == "mismatch"


def test_non_9x9_dataset_is_rejected(tmp_path):
    path = tmp_path / "sudoku_16x16.json"
    path.write_text(json.dumps({"size": 16, "puzzles": []}), encoding="utf-8")
    with pytest.raises(ValueError, match="9x9"):
        load_dataset(str(path))


def test_malformed_entry_is_rejected(tmp_path):
    with pytest.raises(ValueError, match="entry 0"):
        run_benchmark([{"solution": to_grid(EASY_SOLUTION)}], default_peer_table())


def test_main_writes_summary(dataset_path, tmp_path):
    output_dir = tmp_path / "out"
    assert main(["--dataset", str(dataset_path), "--output-dir", str(output_dir), "--limit", "2"]) == 0

    run_dirs = list(output_dir.glob("run_*"))
    assert len(run_dirs) == 1
    summary = json.loads((run_dirs[0] / "summary.json").read_text(encoding="utf-8"))
    assert summary["puzzle_count"] == 2
    assert summary["outcomes"]["solved"] == 1
    assert summary["outcomes"]["stalled"] == 1

    lines = (run_dirs[0] / "results.jsonl").read_text(encoding="utf-8").splitlines()
    assert len(lines) == 2
    assert json.loads(lines[0])["output"] == EASY_SOLUTION


def read_results(output_dir):
    run_dirs = list(output_dir.glob("run_*"))
    assert len(run_dirs) == 1
    lines = (run_dirs[0] / "results.jsonl").read_text(encoding="utf-8").splitlines()
    return run_dirs[0], [json.loads(line) for line in lines]


def test_shuffle_is_reproducible_with_seed(dataset_path, tmp_path):
    output_dir = tmp_path / "out"
    argv = ["--dataset", str(dataset_path), "--output-dir", str(output_dir), "--shuffle", "--seed", "7"]
    assert main(argv) == 0

    expected = [EASY_PUZZLE, "0" * 81, CONFLICTING_PUZZLE]
    random.Random(7).shuffle(expected)
    _, results = read_results(output_dir)
    assert [result["puzzle"] for result in results] == expected


def test_peers_option_and_run_log(dataset_path, tmp_path):
    peers_path = default_peer_table().write_csv(tmp_path / "peers.csv")
    output_dir = tmp_path / "out"
    argv = ["--dataset", str(dataset_path), "--output-dir", str(output_dir), "--peers", str(peers_path)]
    assert main(argv) == 0

    run_dir, results = read_results(output_dir)
    assert results[0]["output"] == EASY_SOLUTION
    log_text = (run_dir / "run.log").read_text(encoding="utf-8")
    assert f"with peer table {peers_path}" in log_text
    assert "[1/3] solved" in log_text


def test_bad_peer_table_creates_no_run_directory(dataset_path, tmp_path, capsys):
    output_dir = tmp_path / "out"
    argv = ["--dataset", str(dataset_path), "--output-dir", str(output_dir), "--peers", str(tmp_path / "missing.csv")]
    assert main(argv) == 2
    assert "invalid peer table" in capsys.readouterr().err
    assert not output_dir.exists()
