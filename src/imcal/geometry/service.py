from __future__ import annotations
from typing import Dict, Mapping, Optional, Protocol, Sequence
import numpy as np

from imcal.geometry.cellid import CellIDDecoder

class GeometryService(Protocol):
    """Read-only, deterministic cell id -> geometry lookup."""

    def position(self, cell_id: int) -> np.ndarray:
        """Global (x, y, z)."""

    def local_position(self, cell_id: int) -> np.ndarray:
        """(x, y, z) in the local frame of the sensor layer."""

    def layer_of(self, cell_id: int) -> int: ...

    def sector_of(self, cell_id: int) -> int: ...

class TableGeometry:
    """
    Geometry backed by a per-cell lookup table.

    Layer and sector are decoded from the cell id when a decoder is
    given, otherwise read from the table columns.
    """

    def __init__(
        self,
        cell_ids: Sequence[int],
        positions: np.ndarray,
        locals_: np.ndarray,
        layers: Optional[Sequence[int]] = None,
        sectors: Optional[Sequence[int]] = None,
        decoder: Optional[CellIDDecoder] = None,
        layer_field: str = "layer",
        sector_field: str = "sector",
    ):
        positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
        locals_ = np.asarray(locals_, dtype=np.float64).reshape(-1, 3)
        n = len(cell_ids)
        if positions.shape[0] != n or locals_.shape[0] != n:
            raise ValueError(
                f"Geometry table size mismatch: {n} ids, "
                f"{positions.shape[0]} positions, {locals_.shape[0]} local positions"
            )
        if decoder is None and (layers is None or sectors is None):
            raise ValueError("TableGeometry needs layer/sector columns or a cell id decoder")
        if decoder is not None:
            # fails fast on a readout without the configured fields
            try:
                decoder.field(layer_field)
                decoder.field(sector_field)
            except KeyError as exc:
                raise ValueError(exc.args[0]) from exc

        self._row: Dict[int, int] = {int(c): i for i, c in enumerate(cell_ids)}
        self._pos = positions
        self._local = locals_
        self._layers = None if layers is None else np.asarray(layers, dtype=np.int64)
        self._sectors = None if sectors is None else np.asarray(sectors, dtype=np.int64)
        self.decoder = decoder
        self.layer_field = layer_field
        self.sector_field = sector_field

    @classmethod
    def from_columns(cls, cols: Mapping[str, np.ndarray], decoder: Optional[CellIDDecoder] = None,
                     layer_field: str = "layer", sector_field: str = "sector") -> "TableGeometry":
        pos = np.stack([cols["x"], cols["y"], cols["z"]], axis=1)
        loc = np.stack([cols["lx"], cols["ly"], cols["lz"]], axis=1)
        return cls(
            cols["cell_id"], pos, loc,
            layers=cols.get("layer"), sectors=cols.get("sector"),
            decoder=decoder, layer_field=layer_field, sector_field=sector_field,
        )

    def __len__(self) -> int:
        return len(self._row)

    def _index(self, cell_id: int) -> int:
        try:
            return self._row[int(cell_id)]
        except KeyError:
            raise KeyError(f"Unknown cell id {cell_id}") from None

    def position(self, cell_id: int) -> np.ndarray:
        return self._pos[self._index(cell_id)].copy()

    def local_position(self, cell_id: int) -> np.ndarray:
        return self._local[self._index(cell_id)].copy()

    def layer_of(self, cell_id: int) -> int:
        if self.decoder is not None:
            return self.decoder.get(cell_id, self.layer_field)
        return int(self._layers[self._index(cell_id)])

    def sector_of(self, cell_id: int) -> int:
        if self.decoder is not None:
            return self.decoder.get(cell_id, self.sector_field)
        return int(self._sectors[self._index(cell_id)])

    def columns(self) -> Dict[str, np.ndarray]:
        """Table columns in the /geometry layout used by imcal.io.store."""
        # uint64: a signed top field sets bit 63
        ids = np.fromiter(self._row.keys(), dtype=np.uint64, count=len(self._row))
        rows = np.fromiter(self._row.values(), dtype=np.int64, count=len(self._row))
        return {
            "cell_id": ids,
            "x": self._pos[rows, 0], "y": self._pos[rows, 1], "z": self._pos[rows, 2],
            "lx": self._local[rows, 0], "ly": self._local[rows, 1], "lz": self._local[rows, 2],
            "layer": np.array([self.layer_of(c) for c in ids], dtype=np.int32),
            "sector": np.array([self.sector_of(c) for c in ids], dtype=np.int32),
        }
