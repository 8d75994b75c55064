"""Resolve distribution-metric declarations into ready-to-use bucket bounds."""
from __future__ import annotations
import math, re
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping, Tuple

from .options import DistMetric, ExponentialBuckets
from ..errors import ConfigError
from ..debug_util import dbg

# Plain decimal / scientific literal; inf and nan are deliberately not accepted.
FLOAT_RE = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$", re.ASCII)


def parse_explicit_buckets(name: str, text: str) -> Tuple[float, ...]:
    bounds: List[float] = []
    for raw in text.split(','):
        tok = raw.strip()
        if not FLOAT_RE.match(tok):
            raise ConfigError(f"dist metric {name}: invalid bucket bound {tok!r} in {text!r}", metric=name)
        val = float(tok)
        if not math.isfinite(val):
            raise ConfigError(f"dist metric {name}: bucket bound {tok!r} is not finite", metric=name)
        if bounds and val <= bounds[-1]:
            raise ConfigError(f"dist metric {name}: bucket bounds must be strictly increasing, got {tok!r} after {bounds[-1]!r}", metric=name)
        bounds.append(val)
    return tuple(bounds)


def exponential_bounds(name: str, exp: ExponentialBuckets) -> Tuple[float, ...]:
    if exp.num_buckets <= 0:
        raise ConfigError(f"dist metric {name}: num_buckets must be > 0, got {exp.num_buckets}", metric=name)
    if not (exp.scale_factor > 0 and math.isfinite(exp.scale_factor)):
        raise ConfigError(f"dist metric {name}: scale_factor must be a positive number, got {exp.scale_factor}", metric=name)
    if not (exp.base > 1 and math.isfinite(exp.base)):
        raise ConfigError(f"dist metric {name}: base must be > 1, got {exp.base}", metric=name)
    bounds: List[float] = []
    for i in range(exp.num_buckets):
        try:
            b = exp.scale_factor * exp.base ** i
        except OverflowError:
            b = math.inf
        if not math.isfinite(b):
            raise ConfigError(f"dist metric {name}: exponential bucket {i} overflows", metric=name)
        # tiny scale factors can round neighbouring bounds to the same value
        if bounds and b <= bounds[-1]:
            raise ConfigError(f"dist metric {name}: exponential bounds not strictly increasing at bucket {i} ({b!r})", metric=name)
        bounds.append(b)
    return tuple(bounds)


def resolve_dist_metrics(decls: Iterable[DistMetric]) -> Mapping[str, Tuple[float, ...]]:
    """Validate declarations and map metric name -> strictly increasing bounds.

    The returned mapping is read-only; bounds are tuples. Raises ConfigError on
    the first invalid declaration.
    """
    resolved: Dict[str, Tuple[float, ...]] = {}
    for d in decls:
        name = (d.name or '').strip()
        if not name:
            raise ConfigError("dist metric with empty name")
        if name in resolved:
            raise ConfigError(f"duplicate dist metric {name}", metric=name)
        if (d.explicit_buckets is None) == (d.exponential_buckets is None):
            raise ConfigError(f"dist metric {name}: exactly one of explicit_buckets or exponential_buckets is required", metric=name)
        if d.explicit_buckets is not None:
            resolved[name] = parse_explicit_buckets(name, d.explicit_buckets)
        else:
            resolved[name] = exponential_bounds(name, d.exponential_buckets)
        dbg(f'resolve_dist_metrics name={name} bounds={list(resolved[name])}')
    return MappingProxyType(resolved)


__all__ = ["FLOAT_RE", "parse_explicit_buckets", "exponential_bounds", "resolve_dist_metrics"]
