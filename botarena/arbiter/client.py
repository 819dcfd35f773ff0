# SPDX-License-Identifier: GPL-2.0-or-later
"""Client of the arbiter service.

The arbiter adjudicates moves: given the move history of a match it returns
its own best move (``"none"`` when the side to move has no legal move) and
the new position. Several backends can answer, tried in a fixed order:

1. the primary HTTP endpoint;
2. the secondary HTTP endpoint;
3. a local engine binary, started for each request.

Each HTTP endpoint is retried with an exponential backoff before moving on to
the next one. Once an endpoint has been found healthy, a keep-alive task pings
the primary endpoint periodically so that a cold-starting service stays warm.
"""

import asyncio
import contextlib
import dataclasses
import logging
import time
from typing import Any, Dict, List, Optional

import aiohttp
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from botarena.errors import (
    ArbiterTransientError,
    ArbiterUnavailable,
    InvalidResponse,
    LocalEngineError,
)

from . import local
from .monitoring import (
    arbiter_attempt_failure,
    arbiter_keepalive_failure,
    arbiter_local_fallback,
    arbiter_request_summary,
)

HEALTH_PATH = '/'
BESTMOVE_PATH = '/api/bestmove'
EVALUATE_PATH = '/evaluate'

NO_MOVE = 'none'


def is_healthy(data):
    return data.get('status') == 'ok'


def has_move_data(data):
    return any(data.get(key) for key in ('bestMove', 'moves', 'fen', 'newFen'))


def has_evaluation(data):
    return 'isGameOver' in data or bool(data.get('bestMove'))


@dataclasses.dataclass
class Adjudication:
    """Arbiter answer to a move history.

    The answer carries no result of its own: when `no_legal_move` is set,
    the winner and the reason are decided by :meth:`Match.play
    <botarena.matchnode.match.Match.play>`.
    """

    best_move: Optional[str]
    new_position: Optional[str]
    data: Dict[str, Any]

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> 'Adjudication':
        return cls(
            best_move=data.get('bestMove'),
            new_position=data.get('newFen'),
            data=data,
        )

    @property
    def no_legal_move(self) -> bool:
        return not self.best_move or self.best_move == NO_MOVE


@dataclasses.dataclass
class Evaluation:
    is_game_over: bool
    winner: Any
    reason: Optional[str]
    best_move: Optional[str]

    @classmethod
    def from_response(cls, data: Dict[str, Any]) -> 'Evaluation':
        return cls(
            is_game_over=bool(data.get('isGameOver')),
            winner=data.get('winner'),
            reason=data.get('reason'),
            best_move=data.get('bestMove'),
        )


class Client:
    """Arbiter client: HTTP endpoints with retries, local engine fallback."""

    def __init__(
        self,
        primary_url,
        secondary_url=None,
        local_engine=None,
        *,
        request_timeout=30,
        keepalive_timeout=5,
        keepalive_interval=300,
        max_retries=3,
        retry_delay=2,
        local_timeout=10,
        local_movetime=1000,
        http_client=None,
    ):
        self.primary_url = primary_url
        self.secondary_url = secondary_url
        self.local_engine = local.discover(local_engine)
        self.request_timeout = request_timeout
        self.keepalive_timeout = keepalive_timeout
        self.keepalive_interval = keepalive_interval
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.local_timeout = local_timeout
        self.local_movetime = local_movetime
        # None until the first health check. False means that no endpoint
        # was healthy and requests go straight to the local engine.
        self.network_available: Optional[bool] = None
        self.last_request_time: Optional[float] = None
        self.version: Optional[str] = None
        # For testing, we have to use an existing client.
        self._http_client = http_client
        self._sleep = asyncio.sleep
        self._init_lock = None
        self._keepalive = None

    @classmethod
    def from_config(cls, config, **kwargs):
        arbiter = config['arbiter']
        return cls(
            arbiter['primary_url'],
            arbiter.get('secondary_url'),
            arbiter.get('local_engine'),
            request_timeout=arbiter.get('request_timeout_secs', 30),
            keepalive_timeout=arbiter.get('keepalive_timeout_secs', 5),
            keepalive_interval=arbiter.get('keepalive_interval_secs', 300),
            max_retries=arbiter.get('max_retries', 3),
            retry_delay=arbiter.get('retry_delay_secs', 2),
            local_timeout=arbiter.get('local_timeout_secs', 10),
            local_movetime=arbiter.get('local_movetime_ms', 1000),
            **kwargs,
        )

    def __repr__(self):
        return f"<ArbiterClient: {', '.join(self.endpoints)}>"

    @property
    def endpoints(self) -> List[str]:
        return [url for url in (self.primary_url, self.secondary_url) if url]

    @contextlib.asynccontextmanager
    async def _client(self):
        if self._http_client is not None:
            # The lifecycle of existing clients are handled externally. It's
            # important not to close (__aexit__) them ourselves.
            yield self._http_client
            return

        async with aiohttp.ClientSession() as client:
            yield client

    async def _call(self, url, path, payload, predicate, timeout):
        """Perform a single HTTP request and check its answer."""
        method = 'GET' if payload is None else 'POST'
        full_url = url.rstrip('/') + path
        try:
            async with self._client() as client:
                async with client.request(
                    method,
                    full_url,
                    json=payload,
                    headers={'Accept': 'application/json'},
                    timeout=aiohttp.ClientTimeout(total=timeout),
                ) as resp:
                    if resp.status >= 400:
                        raise InvalidResponse(
                            f"<{full_url}> answered HTTP {resp.status}")
                    data = await resp.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError,
                ValueError) as e:
            raise ArbiterTransientError(
                f"<{full_url}> {type(e).__name__}: {e}") from e

        if not isinstance(data, dict) or not predicate(data):
            raise InvalidResponse(f"<{full_url}> invalid answer: {data!r}")
        self.last_request_time = time.time()
        return data

    async def _attempt(self, url, path, payload, predicate, timeout):
        try:
            return await self._call(url, path, payload, predicate, timeout)
        except ArbiterTransientError as e:
            arbiter_attempt_failure.labels(endpoint=url).inc()
            logging.warning('arbiter attempt failed: %s', e)
            raise

    async def _request_endpoint(self, url, path, payload, predicate,
                                attempts, timeout):
        """Call one endpoint, retrying up to `attempts` times."""
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(attempts),
            wait=wait_exponential(multiplier=self.retry_delay, exp_base=2),
            retry=retry_if_exception_type(ArbiterTransientError),
            sleep=self._sleep,
        )
        return await retrying(
            self._attempt, url, path, payload, predicate, timeout)

    async def _request(self, path, payload, predicate, local_call=None):
        """Call every backend in order until one of them answers."""
        if self.network_available is not False:
            for url in self.endpoints:
                try:
                    with arbiter_request_summary.labels(backend=url).time():
                        return await self._request_endpoint(
                            url, path, payload, predicate,
                            self.max_retries, self.request_timeout)
                except ArbiterTransientError as e:
                    logging.warning('arbiter <%s> unavailable for %s: %s',
                                    url, path, e)

        if self.local_engine is None or local_call is None:
            raise ArbiterUnavailable(
                f"all arbiter endpoints are unavailable for {path} "
                "and there is no local fallback")

        logging.info('falling back to the local engine for %s', path)
        arbiter_local_fallback.inc()
        try:
            with arbiter_request_summary.labels(backend='local').time():
                data = await local_call()
        except LocalEngineError as e:
            raise ArbiterUnavailable(f"local engine failed: {e}") from e
        if not predicate(data):
            raise ArbiterUnavailable(
                f"local engine gave an invalid answer: {data!r}")
        return data

    async def health_check(self, update_hint=True) -> bool:
        """Check the HTTP endpoints in order. Never raises.

        With `update_hint` unset, `network_available` is left untouched and
        the check only reports.
        """
        for url in self.endpoints:
            try:
                data = await self._request_endpoint(
                    url, HEALTH_PATH, None, is_healthy,
                    self.max_retries, self.request_timeout)
            except ArbiterTransientError as e:
                logging.warning('arbiter <%s> is not healthy: %s', url, e)
                continue
            self.version = data.get('version', self.version)
            logging.info('arbiter <%s> is healthy', url)
            if update_hint:
                self.network_available = True
            return True
        if update_hint and self.local_engine is not None:
            self.network_available = False
        return False

    async def initialize(self):
        """Find a healthy backend and start the keep-alive timer.

        Raises ArbiterUnavailable if no endpoint is healthy and there is no
        local engine to fall back to.
        """
        if await self.health_check():
            self.start_keepalive()
            return
        if self.local_engine is None:
            raise ArbiterUnavailable(
                "no arbiter endpoint is healthy and there is no local engine")
        logging.warning('no arbiter endpoint is healthy, using the local '
                        'engine %s', self.local_engine)

    async def ensure_initialized(self):
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()
        async with self._init_lock:
            if self.network_available is None:
                await self.initialize()

    async def ping(self):
        """Single health request to the primary endpoint, no retry."""
        await self._request_endpoint(
            self.primary_url, HEALTH_PATH, None, is_healthy,
            1, self.keepalive_timeout)
        if self.network_available is not True:
            logging.info('arbiter <%s> is back', self.primary_url)
        self.network_available = True

    def start_keepalive(self):
        if self._keepalive is not None:
            self._keepalive.cancel()
        self._keepalive = asyncio.create_task(self.keepalive_task())

    async def keepalive_task(self):
        while True:
            await asyncio.sleep(self.keepalive_interval)
            try:
                await self.ping()
            except ArbiterTransientError as e:
                arbiter_keepalive_failure.inc()
                logging.warning('keep-alive ping failed: %s', e)
            except asyncio.CancelledError:
                raise
            except Exception:
                arbiter_keepalive_failure.inc()
                logging.exception('keep-alive ping triggered an exception')
            else:
                logging.debug('keep-alive ping successful')

    async def close(self):
        if self._keepalive is None:
            return
        self._keepalive.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._keepalive
        self._keepalive = None

    async def adjudicate(self, moves) -> Adjudication:
        """Ask the arbiter to play after `moves`."""
        moves = list(moves)

        def local_call():
            return local.adjudicate(self.local_engine, moves,
                                    self.local_movetime, self.local_timeout)

        data = await self._request(
            BESTMOVE_PATH, {'moves': moves}, has_move_data, local_call)
        return Adjudication.from_response(data)

    async def evaluate(self, fen, time_limit=1000) -> Evaluation:
        """Static evaluation of a position."""

        def local_call():
            return local.evaluate(self.local_engine, fen, time_limit,
                                  self.local_timeout)

        data = await self._request(
            EVALUATE_PATH, {'fen': fen, 'timeLimit': time_limit},
            has_evaluation, local_call)
        return Evaluation.from_response(data)

    async def engine_info(self):
        healthy = await self.health_check(update_hint=False)
        if healthy:
            backend = 'network'
        elif self.local_engine is not None:
            backend = 'local'
        else:
            backend = None
        return {
            'version': self.version or 'unknown',
            'ready': backend is not None,
            'backend': backend,
            'endpoints': self.endpoints,
            'local_engine': self.local_engine,
            'last_request_time': self.last_request_time,
        }
