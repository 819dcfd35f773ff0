# SPDX-License-Identifier: GPL-2.0-or-later

import asyncio
import logging
import uuid

from botarena.arbiter.client import Client as ArbiterClient
from botarena.errors import ArbiterUnavailable

from . import isolate
from .match import Match
from .store import MatchStore


class MatchNode:
    """Runs matches in the background and keeps their records.

    Each match is an asyncio task; its record can be polled with
    :meth:`match_status` while it runs and for ``store.retention_secs``
    seconds after it ended.
    """

    def __init__(self, config, arbiter=None, store=None, result_consumer=None,
                 sandbox_factory=None):
        self.config = config
        self.arbiter = arbiter or ArbiterClient.from_config(config)
        self.store = store or MatchStore(
            retention=config['store'].get('retention_secs', 7200))
        self.result_consumer = result_consumer
        if sandbox_factory is None:
            sandbox_factory = isolate.from_config(config)
        self.sandbox_factory = sandbox_factory
        self.tasks = {}
        self.janitor = None

    async def start(self):
        """Start the janitor and initialize the arbiter.

        An unavailable arbiter is not fatal here: each match retries the
        initialization and fails on its own.
        """
        if self.janitor is None:
            self.janitor = asyncio.create_task(self.store.janitor_task(
                self.config['store'].get('sweep_interval_secs', 300)))
        try:
            await self.arbiter.ensure_initialized()
        except ArbiterUnavailable as e:
            logging.warning('arbiter not available yet: %s', e)

    def start_match(self, side_a, side_b, match_id=None):
        """Create the record of a new match and start playing it.

        Returns the id of the match.
        """
        if match_id is None:
            match_id = str(uuid.uuid4())
        self.store.create(match_id)
        match = Match(self.config, match_id, side_a, side_b,
                      arbiter=self.arbiter, store=self.store,
                      result_consumer=self.result_consumer,
                      sandbox_factory=self.sandbox_factory)
        task = asyncio.create_task(match.run())
        self.tasks[match_id] = task
        task.add_done_callback(
            lambda t, match_id=match_id: self._match_done(match_id, t))
        logging.info('scheduled match %s', match_id)
        return match_id

    def _match_done(self, match_id, task):
        self.tasks.pop(match_id, None)
        if task.cancelled():
            logging.warning('match %s was cancelled', match_id)
        elif task.exception() is not None:
            logging.error('match %s crashed: %r', match_id, task.exception())

    async def wait(self, match_id):
        """Wait for a scheduled match to end and return its status."""
        task = self.tasks.get(match_id)
        if task is not None:
            await asyncio.wait([task])
        return self.match_status(match_id)

    def match_status(self, match_id):
        record = self.store.get(match_id)
        if record is None:
            return None
        return record.as_dict()

    def list_matches(self):
        return [record.as_dict() for record in self.store.list_all()]

    async def stop(self):
        tasks = list(self.tasks.values())
        if self.janitor is not None:
            tasks.append(self.janitor)
            self.janitor = None
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        await self.arbiter.close()
