import threading

import pytest

from probe_metrics.ingestion.payload_ingest import SnapshotStore, ingest_payloads
from probe_metrics.errors import PayloadParseError


def test_store_per_target_isolation(make_parser):
    p = make_parser(True)
    store = SnapshotStore()
    store.apply(p, 'B', 'x 100\nop_latency 50')
    b_before = str(store.get('B'))
    for v in (1, 2, 3):
        store.apply(p, 'A', f'x {v}\nop_latency 5')
    assert store.get('A').metric('x').value == 6
    assert store.get('A').metric('op_latency').counts == [0, 3, 0, 0]
    assert str(store.get('B')) == b_before
    assert store.targets() == ['A', 'B']


def test_store_rejection_keeps_last_good_snapshot(make_parser):
    p = make_parser(True)
    store = SnapshotStore()
    good = store.apply(p, 'A', 'x 1')
    with pytest.raises(PayloadParseError):
        store.apply(p, 'A', 'x 2\ny not-a-number')
    assert store.get('A') is good
    # the next well-formed payload aggregates against the last good one
    assert store.apply(p, 'A', 'x 5').metric('x').value == 6


def test_store_rejection_on_first_payload_leaves_target_absent(make_parser):
    store = SnapshotStore()
    with pytest.raises(PayloadParseError):
        store.apply(make_parser(True), 'A', 'x')
    assert store.get('A') is None
    assert store.targets() == []


def test_store_drop(make_parser):
    p = make_parser(True)
    store = SnapshotStore()
    store.apply(p, 'A', 'x 1')
    store.drop('A')
    assert store.get('A') is None
    assert 'A' not in store._locks
    assert store.apply(p, 'A', 'x 2').metric('x').value == 2


def test_store_drop_releases_locks_for_departed_targets(make_parser):
    p = make_parser(True)
    store = SnapshotStore()
    for i in range(20):
        target = f'host-{i}'
        store.apply(p, target, 'x 1')
        store.drop(target)
    assert store._locks == {}
    assert store.targets() == []


def test_concurrent_apply_same_target_is_serialized(make_parser):
    p = make_parser(True)
    store = SnapshotStore()

    def worker():
        for _ in range(50):
            store.apply(p, 'A', 'x 1\nop_latency 2')

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    em = store.get('A')
    assert em.metric('x').value == 400
    assert em.metric('op_latency').count == 400


@pytest.mark.parametrize('workers', [1, 4])
def test_ingest_payloads_counts_and_warnings(make_parser, workers):
    p = make_parser(True)
    payloads = [
        ('A', 'x 1'),
        ('B', 'x 10'),
        ('A', 'x oops'),
        ('A', 'x 2\nop_latency 3,30'),
        ('C', 'op_latency 1,2'),
        ('B', 'x 20'),
    ]
    res = ingest_payloads(p, payloads, max_workers=workers)
    assert res.accepted == 5
    assert res.rejected == 1
    assert len(res.warnings) == 1 and res.warnings[0].startswith('rejected:A:')
    store = res.store
    assert store.targets() == ['A', 'B', 'C']
    assert store.get('A').metric('x').value == 3
    assert store.get('A').metric('op_latency').counts == [0, 1, 1, 0]
    assert store.get('B').metric('x').value == 30
    assert store.get('C').metric('op_latency').counts == [1, 1, 0, 0]


def test_ingest_payloads_without_aggregation_keeps_latest(make_parser):
    p = make_parser(False)
    res = ingest_payloads(p, [('A', 'x 1'), ('A', 'x 2'), ('A', 'bad')], max_workers=1)
    assert res.store.get('A').metric('x').value == 2
    assert (res.accepted, res.rejected) == (2, 1)


def test_ingest_payloads_reuses_given_store(make_parser):
    p = make_parser(True)
    store = SnapshotStore()
    store.apply(p, 'A', 'x 1')
    res = ingest_payloads(p, [('A', 'x 1')], store=store)
    assert res.store is store
    assert store.get('A').metric('x').value == 2


def test_ingest_payloads_empty(make_parser):
    res = ingest_payloads(make_parser(True), [])
    assert (res.accepted, res.rejected, res.warnings) == (0, 0, [])
    assert res.store.targets() == []
