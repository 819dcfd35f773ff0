# SPDX-License-Identifier: GPL-2.0-or-later
"""Isolation boundary around the programs of a match.

The match code only knows about the :class:`Sandbox` interface: an async
context manager owning the isolation resources, and a `command()` method
rewriting the command line that starts a program. The actual mechanism is
picked from the ``sandbox`` configuration section.
"""

import itertools
import logging
import os.path

from . import tools

MAX_BOX_ID = 100


class Sandbox:
    """No isolation at all: programs run as the current user."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        pass

    def command(self, cmdline):
        return list(cmdline)


class IsolateSandbox(Sandbox):
    """Runs programs inside an `isolate` box."""

    last_box_id = 0

    def __init__(self, allowed_dirs=None, mem_limit=None, time_limit=None,
                 processes=1):
        self.allowed_dirs = list(allowed_dirs or [])
        self.mem_limit = mem_limit
        self.time_limit = time_limit
        self.processes = processes
        IsolateSandbox.last_box_id = (
            IsolateSandbox.last_box_id + 1) % MAX_BOX_ID
        self.box_id = IsolateSandbox.last_box_id

    @property
    def isolate_base(self):
        return ['isolate', '--box-id', str(self.box_id), '--cg']

    async def __aenter__(self):
        exitcode, output = await tools.communicate(
            self.isolate_base + ['--init'])
        if exitcode != 0:
            raise RuntimeError(
                f"isolate: cannot create box {self.box_id}:\n{output}")
        return self

    async def __aexit__(self, exc_type, exc, tb):
        exitcode, output = await tools.communicate(
            self.isolate_base + ['--cleanup'])
        if exitcode != 0:
            logging.warning('isolate: cannot clean box %s up: %s',
                            self.box_id, output)

    def command(self, cmdline):
        allowed_dirs = self.allowed_dirs + [
            os.path.dirname(os.path.abspath(cmdline[0]))]
        isolate_run = self.isolate_base
        isolate_run += list(
            itertools.chain(*[('-d', d) for d in allowed_dirs]))
        if self.mem_limit is not None:
            isolate_run += ['--mem', str(self.mem_limit)]
        if self.time_limit is not None:
            isolate_run += ['--wall-time', str(self.time_limit)]
        isolate_run += [
            '--full-env',
            '--processes={}'.format(self.processes),
            '--run', '--',
        ]
        return isolate_run + list(cmdline)


def from_config(config):
    """Return a callable creating a new sandbox for each program."""
    sandbox = config['sandbox']
    kind = sandbox.get('kind', 'none')
    if kind == 'none':
        return Sandbox
    if kind == 'isolate':
        def factory():
            return IsolateSandbox(
                allowed_dirs=sandbox.get('allowed_dirs'),
                mem_limit=sandbox.get('mem_limit_MiB', 500) * 1000,
                time_limit=sandbox.get('time_limit_secs'),
                processes=sandbox.get('processes', 1),
            )
        return factory
    raise ValueError(f"unknown sandbox kind: {kind}")
