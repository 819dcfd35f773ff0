# SPDX-License-Identifier: GPL-2.0-or-later
"""Match coordinator.

A match goes through the following states::

    initializing --> running --> completed
         |
         +--> error

Everything that can go wrong before the first ply (missing program, build
failure, unavailable arbiter, program not getting ready) ends the match in
the ``error`` state without a winner. Once running, any failure during a ply
is scored as a loss for the side to move.
"""

import asyncio
import contextlib
import dataclasses
import errno
import inspect
import logging
import os.path
from typing import Dict, List, Optional

from botarena.config import START_POSITION
from botarena.errors import MissingPosition

from . import builder
from . import store as match_store
from .monitoring import (
    matchnode_match_outcome,
    matchnode_run_match_summary,
    matchnode_running_matches,
    matchnode_turn_failure,
)
from .process import ProcessHandle
from .store import DRAW, SIDE_A, SIDE_B, opponent

RESULT_MESSAGES = {
    SIDE_A: 'Match completed. Side A won.',
    SIDE_B: 'Match completed. Side B won.',
    DRAW: 'Match completed. The game ended in a draw.',
}


class History:
    """Moves played so far and the position they lead to."""

    def __init__(self, position=START_POSITION):
        self.moves: List[str] = []
        self.position = position
        self.frozen = False

    def __len__(self):
        return len(self.moves)

    def append(self, move):
        if self.frozen:
            raise RuntimeError("cannot play in a finished match")
        self.moves.append(move)

    def freeze(self):
        self.frozen = True


@dataclasses.dataclass
class MatchResult:
    winner: str
    reason: str
    moves: List[str]


class Match:
    """One match between two programs.

    The coordinator owns the process handles and the sandboxes of both
    sides; they are released on every exit path of :meth:`run`.
    """

    def __init__(self, config, match_id, side_a, side_b, *, arbiter, store,
                 result_consumer=None, sandbox_factory=None):
        self.config = config
        self.match_id = match_id
        self.programs = {SIDE_A: side_a, SIDE_B: side_b}
        self.arbiter = arbiter
        self.store = store
        self.result_consumer = result_consumer
        self.sandbox_factory = sandbox_factory
        self.history = History(config['match'].get('start_position',
                                                   START_POSITION))
        self.handles: Dict[str, ProcessHandle] = {}
        self.result: Optional[MatchResult] = None

    def __repr__(self):
        return f"<Match: {self.match_id}>"

    def _update(self, **fields):
        return self.store.update(self.match_id, **fields)

    async def run(self):
        """Play the match to a terminal state and return its record."""
        logging.info('match %s: %s vs %s', self.match_id,
                     self.programs[SIDE_A], self.programs[SIDE_B])
        matchnode_running_matches.inc()
        error = None
        try:
            with matchnode_run_match_summary.time():
                async with contextlib.AsyncExitStack() as stack:
                    try:
                        await self.setup(stack)
                    except asyncio.CancelledError:
                        raise
                    except Exception as e:
                        error = e
                    else:
                        self.result = await self.play()
            # The record only becomes terminal once every program is gone.
            if error is not None:
                self.setup_failed(error)
            else:
                self.complete(self.result)
        finally:
            matchnode_running_matches.dec()

        record = self.store.get(self.match_id)
        matchnode_match_outcome.labels(status=record.status).inc()
        if self.result is not None:
            await self.report(self.result)
        return record

    async def setup(self, stack):
        """Build, start and handshake both programs.

        The sandboxes are entered on `stack` before any program starts, and
        :meth:`teardown` is registered after them, so that the programs are
        stopped before their sandboxes are released.
        """
        for path in self.programs.values():
            if not os.path.isfile(path):
                raise FileNotFoundError(
                    errno.ENOENT, 'program not found', path)

        await self.arbiter.ensure_initialized()

        executables = {}
        for side, path in self.programs.items():
            executables[side] = await builder.build(self.config, path)

        sandboxes = {}
        if self.sandbox_factory is not None:
            for side in executables:
                sandboxes[side] = await stack.enter_async_context(
                    self.sandbox_factory())
        stack.push_async_callback(self.teardown)
        for side, executable in executables.items():
            self.handles[side] = await ProcessHandle.spawn(
                executable, side, sandboxes.get(side))

        handshake_timeout = self.config['timeout'].get('handshake', 5)
        for handle in self.handles.values():
            await handle.handshake(handshake_timeout)

        self._update(status=match_store.RUNNING,
                     message='Match in progress...')
        logging.info('match %s: both programs are ready', self.match_id)

    async def teardown(self):
        """Ask every program to quit, then kill them all."""
        timeout = self.config['timeout'].get('teardown', 2)
        handles = list(self.handles.values())
        for handle in handles:
            await handle.quit(timeout)
        await asyncio.gather(
            *[handle.terminate(timeout) for handle in handles])

    def setup_failed(self, error):
        detail = str(error) or type(error).__name__
        logging.error('match %s: setup failed: %s', self.match_id, detail)
        self.history.freeze()
        self._update(status=match_store.ERROR, message=detail,
                     error_detail=detail)

    async def play(self):
        max_plies = self.config['match'].get('max_plies', 50)
        side = SIDE_A
        while len(self.history) < max_plies:
            try:
                adjudication = await self.play_turn(side)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                matchnode_turn_failure.labels(error=type(e).__name__).inc()
                message = str(e) or type(e).__name__
                logging.warning('match %s: %s lost on error: %s',
                                self.match_id, side, message)
                return self.finish(opponent(side), f'Bot error: {message}')
            if adjudication.no_legal_move:
                return self.finish(opponent(side), 'No legal moves available')
            side = opponent(side)
        return self.finish(DRAW, 'Draw by move limit')

    async def play_turn(self, side):
        """Play one ply for `side` and return the arbiter adjudication."""
        handle = self.handles[side]
        move = await handle.request_move(
            self.history.position,
            movetime=self.config['match'].get('movetime_ms', 1000),
            timeout=self.config['timeout'].get('move', 5),
        )
        logging.debug('match %s: %s plays %s', self.match_id, side, move)
        self.history.append(move)

        adjudication = await self.arbiter.adjudicate(self.history.moves)
        self._update(moves=list(self.history.moves),
                     engine_output=adjudication.data)
        if adjudication.no_legal_move:
            return adjudication

        if adjudication.new_position:
            self.history.position = adjudication.new_position
        elif self.config['arbiter'].get('missing_position') == 'error':
            raise MissingPosition(
                f"the arbiter did not return the position after {move}")
        else:
            logging.warning('match %s: no position after %s, keeping the '
                            'previous one', self.match_id, move)
        return adjudication

    def finish(self, winner, reason):
        self.history.freeze()
        return MatchResult(winner=winner, reason=reason,
                           moves=list(self.history.moves))

    def complete(self, result):
        winner = result.winner
        self._update(
            status=match_store.COMPLETED,
            winner=winner,
            reason=result.reason,
            moves=list(result.moves),
            message=RESULT_MESSAGES[winner],
        )
        logging.info('match %s: %s (%s, %s plies)', self.match_id,
                     RESULT_MESSAGES[winner], result.reason,
                     len(result.moves))

    async def report(self, result):
        """Hand the result to the result consumer, if any."""
        if self.result_consumer is None:
            return
        try:
            ret = self.result_consumer(
                result.winner, list(result.moves), result.reason)
            if inspect.isawaitable(ret):
                await ret
        except asyncio.CancelledError:
            raise
        except Exception:
            logging.exception('match %s: result consumer failed',
                              self.match_id)
