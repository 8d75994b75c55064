"""Metric value types carried inside an EventMetrics snapshot.

Float        - scalar sample (value semantics decided by the snapshot kind)
Distribution - histogram over fixed upper bounds with an implicit overflow bucket

Bucket assignment: a sample lands in the first bucket whose upper bound is
>= sample, so with bounds (1, 10, 100) the buckets are
    (-inf, 1]  (1, 10]  (10, 100]  (100, +inf)
and counts always has len(bounds) + 1 entries.
"""
from __future__ import annotations
import math
from bisect import bisect_left
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Sequence, Tuple, Union

from ..errors import InternalError


class MetricKind(str, Enum):
    CUMULATIVE = "CUMULATIVE"
    GAUGE = "GAUGE"


def format_float(v: float) -> str:
    """Shortest stable rendering: 18.0 -> '18', 3.1 -> '3.1'."""
    if math.isfinite(v) and v.is_integer() and abs(v) < 1e15:
        return str(int(v))
    return repr(v)


@dataclass
class Float:
    value: float

    def add(self, other: "Float") -> "Float":
        if not isinstance(other, Float):
            raise TypeError(f"cannot add {type(other).__name__} to Float")
        self.value += other.value
        return self

    def clone(self) -> "Float":
        return Float(self.value)

    def __str__(self) -> str:
        return format_float(self.value)


def validate_bounds(bounds: Sequence[float]) -> Tuple[float, ...]:
    out = tuple(float(b) for b in bounds)
    if not out:
        raise ValueError("distribution needs at least one bucket bound")
    for i, b in enumerate(out):
        if not math.isfinite(b):
            raise ValueError(f"bucket bound {b!r} is not finite")
        if i and b <= out[i - 1]:
            raise ValueError(f"bucket bounds not strictly increasing at {format_float(out[i - 1])},{format_float(b)}")
    return out


@dataclass
class Distribution:
    bounds: Tuple[float, ...]
    counts: List[int] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0

    def __post_init__(self):
        self.bounds = validate_bounds(self.bounds)
        if not self.counts:
            self.counts = [0] * (len(self.bounds) + 1)
        elif len(self.counts) != len(self.bounds) + 1:
            raise ValueError(f"expected {len(self.bounds) + 1} bucket counts, got {len(self.counts)}")

    def bucket_index(self, sample: float) -> int:
        return bisect_left(self.bounds, sample)

    def add_sample(self, sample: float) -> "Distribution":
        self.counts[self.bucket_index(sample)] += 1
        self.sum += sample
        self.count += 1
        return self

    def add(self, other: "Distribution") -> "Distribution":
        if not isinstance(other, Distribution):
            raise TypeError(f"cannot add {type(other).__name__} to Distribution")
        if other.bounds != self.bounds:
            raise InternalError(
                f"distribution bounds mismatch: {list(self.bounds)} vs {list(other.bounds)}"
            )
        for i, c in enumerate(other.counts):
            self.counts[i] += c
        self.sum += other.sum
        self.count += other.count
        return self

    def clone(self) -> "Distribution":
        return Distribution(self.bounds, list(self.counts), self.sum, self.count)

    def __str__(self) -> str:
        ub = ','.join(format_float(b) for b in self.bounds) + ',+Inf'
        bc = ','.join(str(c) for c in self.counts)
        return f"dist:sum:{format_float(self.sum)}|count:{self.count}|ub:{ub}|bc:{bc}"


MetricValue = Union[Float, Distribution]

__all__ = ["MetricKind", "Float", "Distribution", "MetricValue", "format_float", "validate_bounds"]
