# SPDX-License-Identifier: GPL-2.0-or-later
from prometheus_client import start_http_server, Counter, Gauge, Summary

matchnode_build_summary = Summary(
    'matchnode_build_summary',
    'Summary of program builds',
)

matchnode_run_match_summary = Summary(
    'matchnode_run_match_summary',
    'Summary of match runs',
)

matchnode_running_matches = Gauge(
    'matchnode_running_matches',
    'Number of matches not yet terminal',
)

matchnode_match_outcome = Counter(
    'matchnode_match_outcome',
    'Number of finished matches',
    ['status'],
)

matchnode_turn_failure = Counter(
    'matchnode_turn_failure',
    'Number of plies lost because of a failure',
    ['error'],
)

matchnode_swept_records = Counter(
    'matchnode_swept_records',
    'Number of terminal match records deleted by the janitor',
)


def monitoring_start(port=9030):
    start_http_server(port)
