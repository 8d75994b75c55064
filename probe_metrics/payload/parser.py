from __future__ import annotations
import math, re
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from .buckets import FLOAT_RE, resolve_dist_metrics
from .options import OutputMetricsOptions, coerce_options
from ..metrics.snapshot import EventMetrics
from ..metrics.values import Distribution, Float, MetricKind
from ..errors import ConfigError, PayloadParseError
from ..debug_util import dbg, parser_trace_enabled

"""External probe payload parser

Payload grammar
---------------
One record per line, blank lines ignored:

    <name> <value>

<value> is either one float literal or a comma-separated list of them. Spaces
around the value and around commas do not matter. A name declared under
dist_metrics collects every listed literal as a sample of that distribution;
any other name is a scalar and must carry exactly one value. A repeated scalar
line overrides the earlier one; repeated distribution lines keep adding
samples to the same distribution.

Example (op_latency declared with explicit_buckets "1,10,100"):

    time_to_running 10.000000
    time_to_ssh 30.000000
    op_latency 3.1,4.0,13

Aggregation
-----------
With aggregate_in_core the freshly parsed values are merged into a copy of the
caller's previous snapshot for the same target: scalars add, distributions sum
bucket counts. Metrics only present in the previous snapshot are carried over.
The parser keeps no per-target state; the caller stores whatever is returned.
"""

LINE_RE = re.compile(r"^(\S+)\s+(.+)$")

RESERVED_LABELS = ('ptype', 'probe', 'dst')

LabelPairs = Union[Mapping[str, str], Sequence[Tuple[str, str]], None]


def _check_total(name: str, val: Union[Float, Distribution], rec: "PayloadRecord") -> None:
    total = val.value if isinstance(val, Float) else val.sum
    if not math.isfinite(total):
        raise PayloadParseError(f"metric {name}: accumulated value overflows", rec.line_no, rec.raw, metric=name)


@dataclass(frozen=True)
class PayloadRecord:
    line_no: int
    raw: str
    name: str
    values: Tuple[float, ...]


class PayloadParser:
    def __init__(self, options: Union[OutputMetricsOptions, Mapping[str, Any], None], ptype: str, probe_name: str,
                 default_kind: MetricKind = MetricKind.CUMULATIVE, extra_labels: LabelPairs = None):
        """PayloadParser bound to one probe.

        Raises ConfigError when options or bucket declarations are invalid.
        In-core aggregation always adds payload values, so it is only allowed
        for CUMULATIVE metrics.
        """
        opts = coerce_options(options)
        self.ptype = ptype
        self.probe_name = probe_name
        self.default_kind = MetricKind(default_kind)
        self.aggregate = opts.aggregate_in_core
        if self.aggregate and self.default_kind != MetricKind.CUMULATIVE:
            raise ConfigError(f"probe {probe_name}: aggregate_in_core only applies to CUMULATIVE metrics, got {self.default_kind.value}")
        self._dist_bounds = resolve_dist_metrics(opts.dist_metrics)
        self._extra_labels = self._normalize_labels(probe_name, extra_labels)
        dbg(f'payload_parser_init ptype={ptype} probe={probe_name} aggregate={self.aggregate} '
            f'dist_metrics={sorted(self._dist_bounds)} extra_labels={self._extra_labels}')

    @staticmethod
    def _normalize_labels(probe_name: str, extra_labels: LabelPairs) -> Tuple[Tuple[str, str], ...]:
        if not extra_labels:
            return ()
        pairs = extra_labels.items() if isinstance(extra_labels, Mapping) else extra_labels
        out: List[Tuple[str, str]] = []
        for k, v in pairs:
            if k in RESERVED_LABELS:
                raise ConfigError(f"probe {probe_name}: extra label {k!r} collides with a built-in label")
            out.append((str(k), str(v)))
        return tuple(out)

    def dist_bounds(self, name: str) -> Optional[Tuple[float, ...]]:
        return self._dist_bounds.get(name)

    def iter_records(self, payload: str) -> Iterator[PayloadRecord]:
        """Scan payload text line by line; raise PayloadParseError on the first bad line."""
        trace = parser_trace_enabled()
        for line_no, raw in enumerate(payload.split('\n'), start=1):
            line = raw.strip()  # also drops the '\r' of CRLF payloads
            if not line:
                continue
            if trace:
                dbg(f'[parser] line={line[:120]}')
            m = LINE_RE.match(line)
            if not m:
                raise PayloadParseError("expected '<name> <value>'", line_no, raw, metric=line.split()[0])
            name, value_text = m.group(1), m.group(2)
            tokens = [t.strip() for t in value_text.split(',')]
            if len(tokens) > 1 and name not in self._dist_bounds:
                raise PayloadParseError(f"scalar metric {name} has {len(tokens)} values", line_no, raw, metric=name)
            values: List[float] = []
            for tok in tokens:
                if not FLOAT_RE.match(tok):
                    raise PayloadParseError(f"metric {name}: invalid numeric value {tok!r}", line_no, raw, metric=name)
                val = float(tok)
                if not math.isfinite(val):
                    raise PayloadParseError(f"metric {name}: value {tok!r} out of range", line_no, raw, metric=name)
                values.append(val)
            yield PayloadRecord(line_no, raw, name, tuple(values))

    def _new_em(self, target: str) -> EventMetrics:
        em = EventMetrics(kind=self.default_kind) \
            .add_label('ptype', self.ptype) \
            .add_label('probe', self.probe_name) \
            .add_label('dst', target)
        for k, v in self._extra_labels:
            em.add_label(k, v)
        return em

    def parse(self, payload: str, target: str) -> Tuple[EventMetrics, Dict[str, PayloadRecord]]:
        """Fresh snapshot for one payload plus the first record seen for each metric."""
        em = self._new_em(target)
        first_seen: Dict[str, PayloadRecord] = {}
        for rec in self.iter_records(payload):
            first_seen.setdefault(rec.name, rec)
            bounds = self._dist_bounds.get(rec.name)
            if bounds is None:
                em.add_metric(rec.name, Float(rec.values[0]))
                continue
            d = em.metric(rec.name)
            if d is None:
                d = Distribution(bounds)
                em.add_metric(rec.name, d)
            for sample in rec.values:
                d.add_sample(sample)
            _check_total(rec.name, d, rec)
        return em, first_seen

    def _aggregate(self, previous: EventMetrics, fresh: EventMetrics, first_seen: Dict[str, PayloadRecord]) -> EventMetrics:
        # timestamp, kind and labels come from the fresh snapshot
        merged = EventMetrics(fresh.ts_ms, fresh.kind)
        for k in fresh.labels_keys():
            merged.add_label(k, fresh.label(k))
        for name in previous.metrics_keys():
            merged.add_metric(name, previous.metric(name).clone())
        for name in fresh.metrics_keys():
            val = fresh.metric(name)
            prev_val = merged.metric(name)
            if prev_val is None:
                merged.add_metric(name, val)
                continue
            if type(prev_val) is not type(val):
                rec = first_seen[name]
                raise PayloadParseError(
                    f"metric {name} is a {type(val).__name__} in this payload but a {type(prev_val).__name__} in the previous snapshot",
                    rec.line_no, rec.raw, metric=name)
            prev_val.add(val)  # Distribution.add raises InternalError on bounds mismatch
            _check_total(name, prev_val, first_seen[name])
        return merged

    def payload_metrics(self, previous: Optional[EventMetrics], payload: str, target: str) -> EventMetrics:
        """Parse payload for target and apply the aggregation policy.

        previous is never modified; on error nothing is returned, so the
        caller's stored snapshot stays as it was.
        """
        fresh, first_seen = self.parse(payload, target)
        if not self.aggregate or previous is None:
            dbg(f'payload_metrics target={target} metrics={len(fresh.metrics_keys())} aggregated=False')
            return fresh
        merged = self._aggregate(previous, fresh, first_seen)
        dbg(f'payload_metrics target={target} metrics={len(merged.metrics_keys())} aggregated=True')
        return merged


__all__ = ["PayloadParser", "PayloadRecord", "RESERVED_LABELS"]
