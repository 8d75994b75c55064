"""Caller-side aggregation state and a payload ingestion driver.

PayloadParser is stateless; whoever runs the probe owns the latest snapshot per
target. SnapshotStore is that owner: it serializes read-modify-write per target
and only replaces a target's snapshot when a payload parses cleanly.

ingest_payloads feeds (target, payload) pairs through a parser. Payloads for
one target always run on the same worker in input order, so aggregation is
deterministic even with max_workers > 1.
"""
from __future__ import annotations
import os
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from ..payload.parser import PayloadParser
from ..metrics.snapshot import EventMetrics
from ..errors import PayloadParseError
from ..debug_util import dbg


class SnapshotStore:
    def __init__(self):
        self._snapshots: Dict[str, EventMetrics] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _target_lock(self, target: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(target)
            if lock is None:
                lock = self._locks[target] = threading.Lock()
            return lock

    def get(self, target: str) -> Optional[EventMetrics]:
        with self._guard:
            return self._snapshots.get(target)

    def targets(self) -> List[str]:
        with self._guard:
            return sorted(self._snapshots)

    def drop(self, target: str) -> None:
        with self._target_lock(target):
            with self._guard:
                self._snapshots.pop(target, None)
                self._locks.pop(target, None)

    def apply(self, parser: PayloadParser, target: str, payload: str) -> EventMetrics:
        """Parse payload against the stored snapshot and store the result.

        PayloadParseError propagates and leaves the stored snapshot untouched.
        """
        with self._target_lock(target):
            previous = self.get(target)
            em = parser.payload_metrics(previous, payload, target)
            with self._guard:
                self._snapshots[target] = em
            return em


@dataclass
class IngestResult:
    store: SnapshotStore
    accepted: int = 0
    rejected: int = 0
    warnings: List[str] = field(default_factory=list)


def _group_by_target(payloads: Iterable[Tuple[str, str]]) -> Dict[str, List[str]]:
    grouped: Dict[str, List[str]] = {}
    for target, payload in payloads:
        grouped.setdefault(target, []).append(payload)
    return grouped


def ingest_payloads(parser: PayloadParser, payloads: Iterable[Tuple[str, str]], store: Optional[SnapshotStore] = None,
                    max_workers: Optional[int] = None) -> IngestResult:
    """Run every (target, payload) pair through parser into store.

    Args:
        parser: PayloadParser for the probe that produced the payloads
        payloads: iterable of (target, payload_text), in arrival order
        store: snapshot owner to update (a new one is created if omitted)
        max_workers: parallel workers across targets (default: min(4, targets, cpus));
            1 processes everything on the calling thread

    Returns:
        IngestResult with the store and accepted/rejected counts. Each rejected
        payload adds a 'rejected:<target>:<error>' warning.
    """
    store = store if store is not None else SnapshotStore()
    grouped = _group_by_target(payloads)
    result = IngestResult(store=store)
    if not grouped:
        return result
    if max_workers is None:
        max_workers = min(4, len(grouped), os.cpu_count() or 1)
    max_workers = max(1, max_workers)

    dbg(f'ingest_payloads start probe={parser.probe_name} targets={len(grouped)} workers={max_workers}')

    def process_target(target: str, items: List[str]) -> Tuple[int, int, List[str]]:
        accepted = 0
        rejected = 0
        warnings: List[str] = []
        for payload in items:
            try:
                store.apply(parser, target, payload)
                accepted += 1
            except PayloadParseError as e:
                rejected += 1
                warnings.append(f'rejected:{target}:{e}')
                dbg(f'ingest_payloads rejected target={target} err={e}')
        return accepted, rejected, warnings

    if max_workers == 1:
        outcomes = [process_target(t, items) for t, items in grouped.items()]
    else:
        outcomes = []
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = {executor.submit(process_target, t, items): t for t, items in grouped.items()}
            for fut in as_completed(futures):
                outcomes.append(fut.result())

    for accepted, rejected, warnings in outcomes:
        result.accepted += accepted
        result.rejected += rejected
        result.warnings.extend(warnings)
    result.warnings.sort()

    dbg(f'ingest_payloads done probe={parser.probe_name} accepted={result.accepted} rejected={result.rejected}')
    return result


__all__ = ["SnapshotStore", "IngestResult", "ingest_payloads"]
