"""Pytest bootstrap ensuring the in-repo probe_metrics package is imported.

Without this an older installed copy of probe_metrics in site-packages could be
resolved first when running a single test file directly.
"""

import os, sys

import pytest

REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if REPO_ROOT not in sys.path:
    # Prepend so it wins over any site-packages installation
    sys.path.insert(0, REPO_ROOT)

from probe_metrics.payload.parser import PayloadParser  # noqa: E402

TEST_PTYPE = 'external'
TEST_PROBE = 'testprobe'


@pytest.fixture
def make_parser():
    """Factory: parser with op_latency declared as a distribution over 1,10,100."""
    def _make(aggregate: bool, **kwargs) -> PayloadParser:
        opts = {
            'aggregate_in_core': aggregate,
            'dist_metrics': [{'name': 'op_latency', 'explicit_buckets': '1,10,100'}],
        }
        return PayloadParser(opts, TEST_PTYPE, TEST_PROBE, **kwargs)
    return _make
