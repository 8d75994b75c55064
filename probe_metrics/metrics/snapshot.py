from __future__ import annotations
import time
from typing import Dict, List, Optional

from .values import MetricKind, MetricValue


class EventMetrics:
    """Timestamped, labeled bundle of named metric values.

    Labels and metrics keep insertion order; adding an existing name replaces
    the value in place (position is kept). Builders are chainable:

        EventMetrics(ts_ms).add_metric('rtt', Float(1.5)).add_label('dst', 'h1')
    """

    def __init__(self, ts_ms: Optional[int] = None, kind: MetricKind = MetricKind.CUMULATIVE):
        self.ts_ms = int(time.time() * 1000) if ts_ms is None else ts_ms
        self.kind = kind
        self._labels: Dict[str, str] = {}
        self._metrics: Dict[str, MetricValue] = {}

    def add_metric(self, name: str, value: MetricValue) -> "EventMetrics":
        self._metrics[name] = value
        return self

    def add_label(self, name: str, value: str) -> "EventMetrics":
        self._labels[name] = value
        return self

    def metric(self, name: str) -> Optional[MetricValue]:
        return self._metrics.get(name)

    def label(self, name: str) -> Optional[str]:
        return self._labels.get(name)

    def metrics_keys(self) -> List[str]:
        return list(self._metrics)

    def labels_keys(self) -> List[str]:
        return list(self._labels)

    @property
    def labels(self) -> Dict[str, str]:
        return dict(self._labels)

    def clone(self) -> "EventMetrics":
        em = EventMetrics(self.ts_ms, self.kind)
        em._labels = dict(self._labels)
        em._metrics = {k: v.clone() for k, v in self._metrics.items()}
        return em

    def __str__(self) -> str:
        labels = ','.join(f'{k}={v}' for k, v in self._labels.items())
        parts = [str(self.ts_ms), labels]
        parts.extend(f'{k}={v}' for k, v in self._metrics.items())
        return ' '.join(parts)

    def __repr__(self) -> str:
        return f'EventMetrics({self})'


__all__ = ["EventMetrics"]
