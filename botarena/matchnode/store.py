# SPDX-License-Identifier: GPL-2.0-or-later
"""In-memory records of the matches, polled by the outside world."""

import asyncio
import dataclasses
import logging
import time
from typing import Any, Callable, Dict, List, Optional

from botarena.errors import InvalidTransition

from .monitoring import matchnode_swept_records

INITIALIZING = 'initializing'
RUNNING = 'running'
COMPLETED = 'completed'
ERROR = 'error'

TERMINAL_STATUSES = {COMPLETED, ERROR}
TRANSITIONS = {
    INITIALIZING: {INITIALIZING, RUNNING, ERROR},
    RUNNING: {RUNNING, COMPLETED},
    COMPLETED: set(),
    ERROR: set(),
}

SIDE_A = 'side-a'
SIDE_B = 'side-b'
DRAW = 'draw'


def opponent(side):
    return SIDE_B if side == SIDE_A else SIDE_A


@dataclasses.dataclass
class MatchRecord:
    match_id: str
    created_at: float
    last_updated: float
    status: str = INITIALIZING
    moves: List[str] = dataclasses.field(default_factory=list)
    winner: Optional[str] = None
    reason: Optional[str] = None
    message: str = 'Match initialization started'
    error_detail: Optional[str] = None
    engine_output: Optional[Dict[str, Any]] = None

    @property
    def terminal(self):
        return self.status in TERMINAL_STATUSES

    def as_dict(self):
        d = {
            'match_id': self.match_id,
            'status': self.status,
            'message': self.message,
            'moves': list(self.moves),
            'winner': self.winner,
            'created_at': self.created_at,
            'last_updated': self.last_updated,
        }
        if self.error_detail is not None:
            d['error_detail'] = self.error_detail
        if self.engine_output is not None:
            d['engine_output'] = self.engine_output
        if self.status == COMPLETED:
            d['result'] = {
                'winner': self.winner,
                'reason': self.reason,
                'moves': list(self.moves),
            }
        return d


class MatchStore:
    """Match records indexed by id.

    Records are only mutated through :meth:`update`, which enforces the
    allowed status transitions and stamps `last_updated`. Terminal records
    older than `retention` seconds are removed by :meth:`sweep`.
    """

    def __init__(self, retention=7200,
                 clock: Callable[[], float] = time.time):
        self.retention = retention
        self.clock = clock
        self.records: Dict[str, MatchRecord] = {}

    def __len__(self):
        return len(self.records)

    def __contains__(self, match_id):
        return match_id in self.records

    def create(self, match_id) -> MatchRecord:
        if match_id in self.records:
            raise KeyError(f"match {match_id} already exists")
        now = self.clock()
        record = MatchRecord(match_id=match_id, created_at=now,
                             last_updated=now)
        self.records[match_id] = record
        return record

    def get(self, match_id) -> Optional[MatchRecord]:
        return self.records.get(match_id)

    def update(self, match_id, mutator=None, **fields) -> MatchRecord:
        """Update the record of `match_id`.

        Args:
            match_id: id of an existing record
            mutator: optional callable receiving a copy of the record, applied
                before `fields`
            fields: record attributes to set

        Returns:
            the updated record.

        Raises:
            KeyError: no such record.
            InvalidTransition: the record is terminal, or the new status
                cannot be reached from the current one.
        """
        record = self.records[match_id]
        if record.terminal:
            raise InvalidTransition(
                f"match {match_id} is {record.status} and cannot change")
        updated = dataclasses.replace(record, moves=list(record.moves))
        if mutator is not None:
            mutator(updated)
        for name, value in fields.items():
            if not hasattr(updated, name):
                raise AttributeError(f"MatchRecord has no field {name!r}")
            setattr(updated, name, value)
        if updated.status not in TRANSITIONS[record.status]:
            raise InvalidTransition(
                f"match {match_id}: {record.status} -> {updated.status}")
        updated.match_id = match_id
        updated.last_updated = self.clock()
        self.records[match_id] = updated
        return updated

    def delete(self, match_id):
        return self.records.pop(match_id, None)

    def list_all(self) -> List[MatchRecord]:
        return list(self.records.values())

    def sweep(self):
        """Drop terminal records not updated for `retention` seconds."""
        deadline = self.clock() - self.retention
        expired = [match_id for match_id, record in self.records.items()
                   if record.terminal and record.last_updated < deadline]
        for match_id in expired:
            del self.records[match_id]
            logging.debug('swept record of match %s', match_id)
        if expired:
            matchnode_swept_records.inc(len(expired))
            logging.info('swept %s expired match records', len(expired))
        return expired

    async def janitor_task(self, interval=300):
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except asyncio.CancelledError:
                raise
            except Exception:
                logging.exception('Janitor task triggered an exception')
