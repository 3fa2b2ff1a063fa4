"""
Peer relation for the 9x9 Sudoku grid.

Every cell index (0..80, row-major) has exactly 20 peers: the other cells of
its row, its column and its 3x3 block. The table can be derived from grid
geometry or loaded from a versioned CSV file; either way it is validated
once, before first use, and is read-only afterwards.
"""

from __future__ import annotations

import csv
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Iterable, List, Sequence, Tuple, Union

from loguru import logger

BASE = 3
SIZE = BASE * BASE
CELL_COUNT = SIZE * SIZE
PEER_COUNT = 20
CSV_VERSION_LINE = "# sudoku-peers v1"

PathLike = Union[str, Path]


class PeerTableError(ValueError):
    """The peer data is missing, malformed or violates the peer invariants."""


def validate_peer_rows(rows: Sequence[Sequence[int]]) -> None:
    """Check the 81-rows, 20-peers, no-self, symmetric invariants."""

    if len(rows) != CELL_COUNT:
        raise PeerTableError(f"expected {CELL_COUNT} peer rows, found {len(rows)}")

    for index, row in enumerate(rows):
        if len(row) != PEER_COUNT:
            raise PeerTableError(
                f"index {index} has {len(row)} peers instead of {PEER_COUNT}"
            )
        for peer in row:
            if isinstance(peer, bool) or not isinstance(peer, int):
                raise PeerTableError(f"index {index} lists non-integer peer {peer!r}")
            if not 0 <= peer < CELL_COUNT:
                raise PeerTableError(f"index {index} lists out-of-range peer {peer}")
        if len(set(row)) != PEER_COUNT:
            raise PeerTableError(f"index {index} lists duplicate peers")
        if index in row:
            raise PeerTableError(f"index {index} lists itself as a peer")

    for index, row in enumerate(rows):
        for peer in row:
            if index not in rows[peer]:
                raise PeerTableError(
                    f"peer relation is not symmetric: {peer} is a peer of {index} "
                    f"but not the other way round"
                )


def _geometry_peers(index: int) -> Tuple[int, ...]:
    row, col = divmod(index, SIZE)
    block_row = (row // BASE) * BASE
    block_col = (col // BASE) * BASE

    peers = {row * SIZE + c for c in range(SIZE)}
    peers.update(r * SIZE + col for r in range(SIZE))
    peers.update(
        r * SIZE + c
        for r in range(block_row, block_row + BASE)
        for c in range(block_col, block_col + BASE)
    )
    peers.discard(index)
    return tuple(sorted(peers))


@dataclass(frozen=True)
class PeerTable:
    """Read-only lookup from a cell index to the indices it constrains."""

    rows: Tuple[Tuple[int, ...], ...]
    source: str = "geometry"

    def __post_init__(self) -> None:
        validate_peer_rows(self.rows)

    @classmethod
    def from_rows(cls, rows: Iterable[Iterable[int]], source: str = "rows") -> "PeerTable":
        try:
            frozen = tuple(tuple(row) for row in rows)
        except TypeError as exc:
            raise PeerTableError(f"peer rows must be sequences of indices: {exc}") from exc
        return cls(frozen, source=source)

    @classmethod
    def from_geometry(cls) -> "PeerTable":
        """Derive the table from row, column and block arithmetic."""
        return cls(tuple(_geometry_peers(i) for i in range(CELL_COUNT)))

    @classmethod
    def from_csv(cls, path: PathLike) -> "PeerTable":
        """
        Load a table written by :meth:`write_csv`.

        One line per cell index, 20 comma-separated integers per line, no
        header. Lines starting with ``#`` are ignored.

        Raises:
            PeerTableError: the file cannot be read or its content is invalid.
        """
        path = Path(path)
        rows: List[Tuple[int, ...]] = []
        try:
            with path.open("r", encoding="utf-8", newline="") as fh:
                for line_no, record in enumerate(csv.reader(fh), start=1):
                    if not record or record[0].lstrip().startswith("#"):
                        continue
                    try:
                        rows.append(tuple(int(field) for field in record))
                    except ValueError as exc:
                        raise PeerTableError(
                            f"{path}:{line_no}: peer indices must be integers"
                        ) from exc
        except (OSError, UnicodeDecodeError, csv.Error) as exc:
            raise PeerTableError(f"cannot read peer table {path}: {exc}") from exc

        table = cls(tuple(rows), source=str(path))
        logger.debug("Loaded peer table from {}", path)
        return table

    def write_csv(self, path: PathLike) -> Path:
        path = Path(path)
        with path.open("w", encoding="utf-8", newline="") as fh:
            fh.write(CSV_VERSION_LINE + "\n")
            writer = csv.writer(fh, lineterminator="\n")
            writer.writerows(self.rows)
        return path

    def peers_of(self, index: int) -> Tuple[int, ...]:
        """Return the 20 peers of ``index`` in ascending order."""
        if not 0 <= index < CELL_COUNT:
            raise IndexError(f"cell index {index} is out of range 0..{CELL_COUNT - 1}")
        return self.rows[index]

    def __len__(self) -> int:
        return len(self.rows)


@lru_cache(maxsize=None)
def default_peer_table() -> PeerTable:
    """Process-wide geometry table, built on first use and shared by reference."""
    table = PeerTable.from_geometry()
    logger.debug("Built default peer table from grid geometry")
    return table


__all__ = [
    "CELL_COUNT",
    "PEER_COUNT",
    "PeerTable",
    "PeerTableError",
    "default_peer_table",
    "validate_peer_rows",
]
