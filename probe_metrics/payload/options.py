"""Declarative output-metrics options for external probe payloads.

Shape only; semantic checks (bucket ordering, duplicate names, ...) live in
buckets.resolve_dist_metrics so they surface as ConfigError with the metric
name attached. Example (JSON):

    {
      "aggregate_in_core": true,
      "dist_metrics": [
        {"name": "op_latency", "explicit_buckets": "1,10,100"},
        {"name": "rtt_ms", "exponential_buckets": {"num_buckets": 8, "scale_factor": 0.5}}
      ]
    }
"""
from __future__ import annotations
from typing import Any, List, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..errors import ConfigError


class ExponentialBuckets(BaseModel):
    model_config = ConfigDict(extra="forbid")

    num_buckets: int
    scale_factor: float = 1.0
    base: float = 2.0  # bound[i] = scale_factor * base**i


class DistMetric(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    explicit_buckets: Optional[str] = None  # "b1,b2,...,bn", ascending
    exponential_buckets: Optional[ExponentialBuckets] = None


class OutputMetricsOptions(BaseModel):
    model_config = ConfigDict(extra="forbid")

    aggregate_in_core: bool = False
    dist_metrics: List[DistMetric] = Field(default_factory=list)


def coerce_options(options: Union[OutputMetricsOptions, Mapping[str, Any], None]) -> OutputMetricsOptions:
    if options is None:
        return OutputMetricsOptions()
    if isinstance(options, OutputMetricsOptions):
        return options
    if not isinstance(options, Mapping):
        raise ConfigError(f"output metrics options must be a mapping, got {type(options).__name__}")
    try:
        return OutputMetricsOptions.model_validate(dict(options))
    except ValidationError as e:
        raise ConfigError(f"invalid output metrics options: {e}") from e


__all__ = ["ExponentialBuckets", "DistMetric", "OutputMetricsOptions", "coerce_options"]
