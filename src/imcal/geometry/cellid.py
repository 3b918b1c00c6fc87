from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, List

@dataclass(frozen=True)
class BitField:
    name: str
    offset: int
    width: int
    signed: bool

    @property
    def mask(self) -> int:
        return ((1 << self.width) - 1) << self.offset

    @property
    def min_value(self) -> int:
        return -(1 << (self.width - 1)) if self.signed else 0

    @property
    def max_value(self) -> int:
        return (1 << (self.width - 1)) - 1 if self.signed else (1 << self.width) - 1

class CellIDDecoder:
    """
    Decode named bit fields packed into an opaque 64-bit cell id.

    Descriptor syntax (comma separated):
      name:width          field placed right after the previous one
      name:offset:width   field at an explicit bit offset
    A negative width marks a signed (two's complement) field, e.g.
    "system:8,sector:4,layer:8,x:32:-16,y:-16".
    """

    def __init__(self, descriptor: str):
        self.descriptor = descriptor
        self.fields: List[BitField] = []
        self._by_name: Dict[str, BitField] = {}
        offset = 0
        for token in descriptor.split(","):
            token = token.strip()
            if not token:
                continue
            parts = token.split(":")
            if len(parts) == 2:
                name, w = parts[0], int(parts[1])
            elif len(parts) == 3:
                name, offset, w = parts[0], int(parts[1]), int(parts[2])
            else:
                raise ValueError(f"Malformed bit field {token!r} in readout {descriptor!r}")
            if w == 0:
                raise ValueError(f"Bit field {name!r} has zero width")
            if name in self._by_name:
                raise ValueError(f"Duplicate bit field {name!r} in readout {descriptor!r}")
            bf = BitField(name=name, offset=offset, width=abs(w), signed=w < 0)
            if bf.offset + bf.width > 64:
                raise ValueError(f"Bit field {name!r} exceeds 64 bits")
            self.fields.append(bf)
            self._by_name[name] = bf
            offset = bf.offset + bf.width
        if not self.fields:
            raise ValueError("Empty readout descriptor")

    def index(self, name: str) -> int:
        for i, bf in enumerate(self.fields):
            if bf.name == name:
                return i
        raise KeyError(f"No field {name!r} in readout {self.descriptor!r}")

    def field(self, name: str) -> BitField:
        try:
            return self._by_name[name]
        except KeyError:
            raise KeyError(f"No field {name!r} in readout {self.descriptor!r}") from None

    def get(self, cell_id: int, name: str) -> int:
        bf = self.field(name)
        v = (int(cell_id) & bf.mask) >> bf.offset
        if bf.signed and v & (1 << (bf.width - 1)):
            v -= 1 << bf.width
        return v

    def decode(self, cell_id: int) -> Dict[str, int]:
        return {bf.name: self.get(cell_id, bf.name) for bf in self.fields}

    def encode(self, **values: int) -> int:
        cid = 0
        for name, v in values.items():
            bf = self.field(name)
            v = int(v)
            if not bf.min_value <= v <= bf.max_value:
                raise ValueError(
                    f"Value {v} out of range [{bf.min_value}, {bf.max_value}] for field {name!r}"
                )
            cid |= (v & ((1 << bf.width) - 1)) << bf.offset
        return cid
