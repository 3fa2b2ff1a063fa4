"""
Sudoku solver based on naked-single constraint propagation.

Every cell keeps the set of digits it may still take. A cell with a single
candidate removes its digit from all of its peers, which in turn may become
single-candidate cells. The process repeats until all 81 cells are fixed, a
peer contradicts an elimination (conflict) or a pass finds nothing new to
propagate (stall). There is no guessing and no backtracking.

Usage:

    python propagation_solver.py --puzzle 301086504046521070500000001400800002...
"""

from __future__ import annotations

import argparse
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Sequence, Set, Tuple

from loguru import logger

from sudoku_peers import CELL_COUNT, PeerTable, PeerTableError, default_peer_table

SIZE = 9
DIGITS: Tuple[int, ...] = tuple(range(1, SIZE + 1))
FULL_MASK = (1 << SIZE) - 1
ABSENT_GLYPH = "·"
PEERS_ENV = "SUDOKU_PEERS_CSV"


class PuzzleFormatError(ValueError):
    """The puzzle text or grid cannot be decoded into 81 cells."""


class CellConflict(Exception):
    """An elimination hit the only candidate left in a cell."""

    def __init__(self, value: int) -> None:
        super().__init__(f"cell is already fully constrained as {value}")
        self.value = value


class SolveError(RuntimeError):
    """Base class for failures raised by :meth:`Board.solve`."""


class ConflictError(SolveError):
    def __init__(self, index: int, value: int) -> None:
        super().__init__(f"cell at index {index} is already fully constrained as {value}")
        self.index = index
        self.value = value


class StalledError(SolveError):
    """No new single-candidate cell appeared before the board was complete."""

    def __init__(self, applied: int, entropy: int) -> None:
        super().__init__(
            f"propagation stalled with {applied} of {CELL_COUNT} cells applied "
            f"(entropy {entropy})"
        )
        self.applied = applied
        self.entropy = entropy


class SolveCancelled(SolveError):
    def __init__(self, passes: int) -> None:
        super().__init__(f"propagation cancelled after {passes} pass(es)")
        self.passes = passes


def _bit(value: int) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value not in DIGITS:
        raise ValueError(f"cell values must be digits 1-9, received {value!r}")
    return 1 << (value - 1)


@dataclass
class Cell:
    """Candidate digits of one grid position, stored as a 9-bit mask."""

    _mask: int = FULL_MASK

    def __post_init__(self) -> None:
        if not 0 < self._mask <= FULL_MASK:
            raise ValueError(f"candidate mask must be a non-empty 9-bit set, received {self._mask}")

    @property
    def mask(self) -> int:
        return self._mask

    @classmethod
    def full(cls) -> "Cell":
        return cls(FULL_MASK)

    @classmethod
    def fixed(cls, value: int) -> "Cell":
        return cls(_bit(value))

    @classmethod
    def from_candidates(cls, values: Iterable[int]) -> "Cell":
        mask = 0
        for value in values:
            mask |= _bit(value)
        if not mask:
            raise ValueError("a cell needs at least one candidate")
        return cls(mask)

    def eliminate(self, value: int) -> bool:
        """
        Remove ``value`` from the candidates.

        Returns:
            bool: True if the candidate set changed.

        Raises:
            CellConflict: ``value`` is the only candidate left. The cell is
                left untouched.
        """
        bit = _bit(value)
        if self._mask == bit:
            raise CellConflict(value)
        if self.is_determined() or not self._mask & bit:
            return False
        self._mask &= ~bit
        return True

    def allow(self, value: int) -> bool:
        bit = _bit(value)
        if self._mask & bit:
            return False
        self._mask |= bit
        return True

    def entropy(self) -> int:
        return bin(self._mask).count("1")

    def is_determined(self) -> bool:
        return self._mask & (self._mask - 1) == 0

    def determined_value(self) -> Optional[int]:
        if self.is_determined():
            return self._mask.bit_length()
        return None

    def candidates(self) -> Tuple[int, ...]:
        return tuple(d for d in DIGITS if self._mask & (1 << (d - 1)))

    def render_lines(self) -> List[str]:
        glyphs = [str(d) if self._mask & (1 << (d - 1)) else ABSENT_GLYPH for d in DIGITS]
        return [" ".join(glyphs[i:i + 3]) for i in range(0, SIZE, 3)]

    def render(self) -> str:
        """3x3 block of the candidates; missing digits are drawn as a dot."""
        return "\n".join(self.render_lines())


@dataclass(frozen=True)
class SolveStats:
    passes: int
    eliminations: int


class Board:
    """81 cells in row-major order plus the shared peer table."""

    def __init__(self, cells: Sequence[Cell], peers: Optional[PeerTable] = None) -> None:
        if len(cells) != CELL_COUNT:
            raise PuzzleFormatError(
                f"a board needs {CELL_COUNT} cells, received {len(cells)}"
            )
        self._cells: List[Cell] = list(cells)
        self.peers = peers if peers is not None else default_peer_table()

    @classmethod
    def from_string(cls, text: str, peers: Optional[PeerTable] = None) -> "Board":
        """
        Decode an 81-character puzzle string.

        Args:
            text: digits in row-major order, ``0`` marks an unknown cell.
            peers: peer table to use; defaults to the shared geometry table.

        Raises:
            PuzzleFormatError: wrong length or a non-digit character.
        """
        text = text.strip()
        if len(text) != CELL_COUNT:
            raise PuzzleFormatError(
                f"puzzle must be {CELL_COUNT} characters long, received {len(text)}"
            )

        cells: List[Cell] = []
        for position, char in enumerate(text):
            if char not in "0123456789":
                raise PuzzleFormatError(
                    f"invalid character {char!r} at position {position}; expected 0-9"
                )
            digit = int(char)
            cells.append(Cell.fixed(digit) if digit else Cell.full())
        return cls(cells, peers)

    @classmethod
    def from_grid(cls, grid: Sequence[Sequence[int]], peers: Optional[PeerTable] = None) -> "Board":
        """Build a board from 9 rows of 9 ints (0 = unknown)."""
        if len(grid) != SIZE:
            raise PuzzleFormatError(f"expected {SIZE} rows, received {len(grid)}")
        chars: List[str] = []
        for row_index, row in enumerate(grid):
            if len(row) != SIZE:
                raise PuzzleFormatError(
                    f"row {row_index} has length {len(row)} instead of {SIZE}"
                )
            for col_index, value in enumerate(row):
                if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= SIZE:
                    raise PuzzleFormatError(
                        f"grid[{row_index}][{col_index}] must be an int between 0 and 9, "
                        f"received {value!r}"
                    )
                chars.append(str(value))
        return cls.from_string("".join(chars), peers)

    # Accessors ------------------------------------------------------------

    def __len__(self) -> int:
        return len(self._cells)

    def __getitem__(self, index: int) -> Cell:
        if isinstance(index, bool) or not isinstance(index, int) or not 0 <= index < CELL_COUNT:
            raise IndexError(f"cell index {index!r} is out of range 0..{CELL_COUNT - 1}")
        return self._cells[index]

    def __iter__(self):
        return iter(self._cells)

    def __str__(self) -> str:
        return self.to_string()

    def __repr__(self) -> str:
        return f"Board({self.to_string()!r})"

    def to_string(self) -> str:
        return "".join(str(cell.determined_value() or 0) for cell in self._cells)

    def to_grid(self) -> List[List[int]]:
        values = [cell.determined_value() or 0 for cell in self._cells]
        return [values[r * SIZE:(r + 1) * SIZE] for r in range(SIZE)]

    def total_entropy(self) -> int:
        return sum(cell.entropy() for cell in self._cells)

    def determined_indices(self) -> List[int]:
        return [i for i, cell in enumerate(self._cells) if cell.is_determined()]

    def is_solved(self) -> bool:
        return all(cell.is_determined() for cell in self._cells)

    # Propagation ----------------------------------------------------------

    def solve(self, should_stop: Optional[Callable[[], bool]] = None) -> SolveStats:
        """
        Propagate single-candidate cells to their peers until the board is
        complete.

        Pending cells are handled in ascending index order and their peers
        in peer-table order, so the reported conflict is deterministic.
        Cells are not restored when an error is raised.

        Args:
            should_stop: optional callable polled before every pass; a true
                result aborts with :class:`SolveCancelled`.

        Raises:
            ConflictError: an elimination hit a peer already fixed to it.
            StalledError: a pass found no new single-candidate cell.
            SolveCancelled: ``should_stop`` asked to abort.
        """
        applied: Set[int] = set()
        passes = 0
        eliminations = 0

        while len(applied) < CELL_COUNT:
            if should_stop is not None and should_stop():
                logger.warning("Propagation cancelled after {} pass(es)", passes)
                raise SolveCancelled(passes)

            pending = [i for i in self.determined_indices() if i not in applied]
            logger.info(
                "beginning pass {}, entropy: {}, applied: {}",
                passes,
                self.total_entropy(),
                len(applied),
            )

            if not pending:
                error = StalledError(len(applied), self.total_entropy())
                logger.warning("{}", error)
                raise error

            for index in pending:
                value = self._cells[index].determined_value()
                eliminations += self._apply_constraints(index, value)
                applied.add(index)
            passes += 1

        logger.info("solved in {} pass(es) with {} elimination(s)", passes, eliminations)
        return SolveStats(passes=passes, eliminations=eliminations)

    def _apply_constraints(self, index: int, value: int) -> int:
        changed = 0
        for peer in self.peers.peers_of(index):
            try:
                if self._cells[peer].eliminate(value):
                    changed += 1
            except CellConflict as exc:
                error = ConflictError(peer, exc.value)
                logger.warning("{} (propagating {} from index {})", error, value, index)
                raise error from exc
        return changed

    # Display --------------------------------------------------------------

    def render(self, candidates: bool = False) -> str:
        """Human-readable grid; with ``candidates`` every cell shows its 3x3 block."""
        if candidates:
            return self._render_candidates()

        lines = ["=" * 23]
        for r in range(SIZE):
            if r % 3 == 0 and r != 0:
                lines.append("-" * 23)
            tokens: List[str] = []
            for c in range(SIZE):
                if c % 3 == 0 and c != 0:
                    tokens.append("|")
                value = self._cells[r * SIZE + c].determined_value()
                tokens.append(str(value) if value else ".")
            lines.append(" ".join(tokens))
        lines.append("=" * 23)
        return "\n".join(lines)

    def _render_candidates(self) -> str:
        lines: List[str] = []
        for r in range(SIZE):
            if r % 3 == 0 and r != 0:
                lines.append("=" * 53)
            elif r != 0:
                lines.append("-" * 53)
            blocks = [self._cells[r * SIZE + c].render_lines() for c in range(SIZE)]
            for sub in range(3):
                parts = []
                for c in range(SIZE):
                    sep = " || " if c % 3 == 0 and c != 0 else (" | " if c != 0 else "")
                    parts.append(sep + blocks[c][sub])
                lines.append("".join(parts))
        return "\n".join(lines)


# ----------------------------------------------------------------------
# Command line
# ----------------------------------------------------------------------
@dataclass(frozen=True)
class RunConfig:
    puzzle: Optional[str]
    log_level: str = "WARNING"
    peers_path: Optional[Path] = None
    show_grid: bool = False
    show_candidates: bool = False
    export_peers: Optional[Path] = None

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "RunConfig":
        peers_path = args.peers or os.getenv(PEERS_ENV) or None
        return cls(
            puzzle=args.puzzle,
            log_level=args.log_level,
            peers_path=Path(peers_path) if peers_path else None,
            show_grid=args.show_grid,
            show_candidates=args.show_candidates,
            export_peers=args.export_peers,
        )

    def load_peers(self) -> PeerTable:
        if self.peers_path is None:
            return default_peer_table()
        return PeerTable.from_csv(self.peers_path)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Solve a 9x9 Sudoku by naked-single constraint propagation."
    )
    parser.add_argument(
        "-p",
        "--puzzle",
        type=str,
        default=None,
        help="81-character puzzle in row-major order, 0 for unknown cells.",
    )
    parser.add_argument(
        "-l",
        "--log-level",
        type=str.upper,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: WARNING).",
    )
    parser.add_argument(
        "--peers",
        type=str,
        default=None,
        help=f"CSV peer table to use instead of grid geometry (env: {PEERS_ENV}).",
    )
    parser.add_argument(
        "--show-grid",
        action="store_true",
        help="Print the final grid after solving.",
    )
    parser.add_argument(
        "--show-candidates",
        action="store_true",
        help="Print the remaining candidates of every cell after solving.",
    )
    parser.add_argument(
        "--export-peers",
        type=Path,
        default=None,
        help="Write the active peer table to this CSV file and exit.",
    )
    args = parser.parse_args(argv)
    if args.puzzle is None and args.export_peers is None:
        parser.error("--puzzle is required unless --export-peers is given")
    return args


def run(config: RunConfig) -> int:
    try:
        peers = config.load_peers()
    except PeerTableError as exc:
        print(f"invalid peer table: {exc}", file=sys.stderr)
        return 2

    if config.export_peers is not None:
        try:
            path = peers.write_csv(config.export_peers)
        except OSError as exc:
            print(f"cannot write peer table: {exc}", file=sys.stderr)
            return 2
        print(f"peer table written to {path}")
        return 0

    try:
        board = Board.from_string(config.puzzle, peers)
    except PuzzleFormatError as exc:
        print(f"invalid puzzle: {exc}", file=sys.stderr)
        return 2

    status = 0
    try:
        board.solve()
    except SolveError as exc:
        print(exc)
        status = 1
    else:
        print(f"solution: {board}")

    if config.show_grid:
        print(board.render())
    if config.show_candidates:
        print(board.render(candidates=True))
    return status


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    logger.remove()
    logger.add(sys.stderr, level=args.log_level)
    return run(RunConfig.from_args(args))


__all__ = [
    "Board",
    "Cell",
    "CellConflict",
    "ConflictError",
    "PuzzleFormatError",
    "RunConfig",
    "SolveCancelled",
    "SolveError",
    "SolveStats",
    "StalledError",
    "main",
    "run",
]


if __name__ == "__main__":
    sys.exit(main())
