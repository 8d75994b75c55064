#!/usr/bin/env python3
"""
Parse external probe payload files and print the resulting snapshots.

Payload files are applied in order to a single target, so with aggregation on
the last printed snapshot is the running total:

    scripts/parse_payload.py --options opts.json --target host1 run1.txt run2.txt
    echo "rtt 12.5" | scripts/parse_payload.py --target host1 -
"""
from __future__ import annotations
import os, sys, argparse
from typing import List, Optional

BASE_DIR = os.path.dirname(os.path.abspath(__file__))
REPO_ROOT = os.path.dirname(BASE_DIR)
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from pydantic import ValidationError

from probe_metrics.payload.options import OutputMetricsOptions
from probe_metrics.payload.parser import PayloadParser
from probe_metrics.ingestion.payload_ingest import SnapshotStore
from probe_metrics.metrics.values import MetricKind
from probe_metrics.errors import ConfigError, PayloadParseError


def load_options(path: Optional[str]) -> OutputMetricsOptions:
    if not path:
        return OutputMetricsOptions()
    with open(path, 'r', encoding='utf-8') as f:
        raw = f.read()
    try:
        return OutputMetricsOptions.model_validate_json(raw)
    except ValidationError as e:
        raise ConfigError(f"{path}: {e}") from e


def _read_payload(path: str) -> str:
    if path == '-':
        return sys.stdin.read()
    with open(path, 'r', encoding='utf-8') as f:
        return f.read()


def main(argv: List[str]) -> int:
    ap = argparse.ArgumentParser(description="Parse external probe payloads into metric snapshots")
    ap.add_argument('payloads', nargs='+', help="payload files, '-' for stdin")
    ap.add_argument('--options', help="JSON file with output metrics options")
    ap.add_argument('--ptype', default='external')
    ap.add_argument('--probe', default='probe')
    ap.add_argument('--target', default='localhost')
    ap.add_argument('--kind', choices=[k.value for k in MetricKind], default=MetricKind.CUMULATIVE.value)
    ap.add_argument('--label', action='append', default=[], metavar='KEY=VALUE', help="extra label (repeatable)")
    agg = ap.add_mutually_exclusive_group()
    agg.add_argument('--aggregate', dest='aggregate', action='store_true', default=None, help="force aggregate_in_core on")
    agg.add_argument('--no-aggregate', dest='aggregate', action='store_false', help="force aggregate_in_core off")
    args = ap.parse_args(argv)

    try:
        opts = load_options(args.options)
        if args.aggregate is not None:
            opts = opts.model_copy(update={'aggregate_in_core': args.aggregate})
        labels = []
        for item in args.label:
            if '=' not in item:
                raise ConfigError(f"bad --label {item!r}, expected KEY=VALUE")
            k, v = item.split('=', 1)
            labels.append((k, v))
        parser = PayloadParser(opts, args.ptype, args.probe, MetricKind(args.kind), labels)
    except (ConfigError, OSError) as e:
        print(f"config error: {e}", file=sys.stderr)
        return 1

    store = SnapshotStore()
    for path in args.payloads:
        try:
            em = store.apply(parser, args.target, _read_payload(path))
        except PayloadParseError as e:
            print(f"{path}: payload rejected: {e}", file=sys.stderr)
            return 1
        except OSError as e:
            print(f"{path}: {e}", file=sys.stderr)
            return 1
        print(em)
    return 0

if __name__ == '__main__':  # pragma: no cover
    raise SystemExit(main(sys.argv[1:]))
