# SPDX-License-Identifier: GPL-2.0-or-later
from prometheus_client import Counter, Summary

arbiter_request_summary = Summary(
    'arbiter_request_summary',
    'Summary of the arbiter requests',
    ['backend'],
)

arbiter_attempt_failure = Counter(
    'arbiter_attempt_failure',
    'Number of failed arbiter attempts',
    ['endpoint'],
)

arbiter_local_fallback = Counter(
    'arbiter_local_fallback',
    'Number of requests answered by the local engine',
)

arbiter_keepalive_failure = Counter(
    'arbiter_keepalive_failure',
    'Number of failed keep-alive pings',
)

# Monitoring is started by the application using the arbiter client
