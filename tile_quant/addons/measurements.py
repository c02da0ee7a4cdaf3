"""
Measurement containers and detected objects.

MeasurementList is an insertion-ordered name -> float mapping that the
owner closes once every component has written to it.
"""

from __future__ import annotations
import threading
from dataclasses import dataclass, field
from typing import Dict, Iterator, Optional, Tuple

from .geometry import PolygonROI


class MeasurementList:
    """Insertion-ordered measurements; writing after close() raises RuntimeError."""

    def __init__(self) -> None:
        self._values: Dict[str, float] = {}
        self._closed = False
        self._lock = threading.Lock()

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("Measurement list is closed")

    def put(self, name: str, value: float) -> None:
        """Set a measurement, keeping its original position if it exists."""
        with self._lock:
            self._check_open()
            self._values[name] = float(value)

    def update(self, other: "MeasurementList") -> None:
        """Copy every measurement of `other` in order."""
        with self._lock:
            self._check_open()
            self._values.update(other._values)

    def close(self) -> None:
        self._closed = True

    @property
    def closed(self) -> bool:
        return self._closed

    def get(self, name: str, default: float = float("nan")) -> float:
        return self._values.get(name, default)

    def names(self) -> Tuple[str, ...]:
        return tuple(self._values)

    def items(self):
        return self._values.items()

    def as_dict(self) -> Dict[str, float]:
        return dict(self._values)

    def __getitem__(self, name: str) -> float:
        return self._values[name]

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"MeasurementList({len(self)} values, {state})"


@dataclass
class PathObject:
    """
    An object on the image: a parent annotation, a tile or a detection.

    `kind` is one of "annotation", "detection" or "tile".
    """
    roi: Optional[PolygonROI]
    kind: str = "detection"
    measurements: MeasurementList = field(default_factory=MeasurementList)
    name: Optional[str] = None
