# SPDX-License-Identifier: GPL-2.0-or-later

import asyncio
import logging

from botarena.errors import (
    HandshakeError,
    HandshakeTimeout,
    InvalidMove,
    MoveTimeout,
    ProcessExited,
    RequestInFlight,
    SpawnError,
)

from . import protocol
from . import tools

READ_CHUNK = 4096
# Only the end of the output of a request is kept and scanned for markers.
OUTPUT_TAIL = 4 * READ_CHUNK


class ProcessHandle:
    """One running program of a match.

    The handle owns the input and output pipes of the process. Output is
    consumed by at most one request at a time: a request started while
    another one is waiting for its answer fails with RequestInFlight.
    """

    def __init__(self, proc, side, name=None):
        self.proc = proc
        self.side = side
        self.name = name or str(side)
        self._busy = False
        self._terminated = False
        self._quit_sent = False

    def __repr__(self):
        return f"<ProcessHandle: {self.name} pid={self.proc.pid}>"

    @classmethod
    async def spawn(cls, executable, side, sandbox=None):
        cmdline = [executable]
        if sandbox is not None:
            cmdline = sandbox.command(cmdline)
        try:
            proc = await tools.create_process(cmdline)
        except OSError as e:
            raise SpawnError(f"cannot start {executable}: {e}") from e
        if proc.stdin is None or proc.stdout is None:
            tools.kill(proc)
            raise SpawnError(f"no standard streams for {executable}")
        logging.debug('spawned %s for %s (pid %s)', executable, side,
                      proc.pid)
        return cls(proc, side, name=f'{side} ({executable})')

    @property
    def alive(self):
        return self.proc.returncode is None

    @property
    def terminated(self):
        return self._terminated

    async def send(self, *commands):
        data = b''.join(protocol.encode(command) for command in commands)
        try:
            self.proc.stdin.write(data)
            await self.proc.stdin.drain()
        except (OSError, RuntimeError) as e:
            raise ProcessExited(f"{self.name}: cannot write: {e}") from e

    async def _read_until(self, parse):
        """Read output until `parse(output, eof)` returns something.

        Only the last OUTPUT_TAIL characters are kept: everything before
        them has already been scanned. Raises ProcessExited if the output is
        closed before that.
        """
        output = ''
        while True:
            chunk = await self.proc.stdout.read(READ_CHUNK)
            eof = not chunk
            output = (output + chunk.decode(errors='replace'))[-OUTPUT_TAIL:]
            result = parse(output, eof)
            if result is not None:
                return result
            if eof:
                raise ProcessExited(f"{self.name}: output closed")

    async def _request(self, commands, parse, timeout):
        if self._busy:
            raise RequestInFlight(f"{self.name}: a request is already "
                                  "waiting for an answer")
        self._busy = True
        try:
            await self.send(*commands)
            return await asyncio.wait_for(self._read_until(parse), timeout)
        except asyncio.TimeoutError:
            logging.warning('%s: no answer after %ss, killing it',
                            self.name, timeout)
            tools.kill(self.proc)
            raise
        finally:
            self._busy = False

    async def handshake(self, timeout=5):
        def ready(output, eof):
            return True if protocol.is_ready(output) else None

        try:
            await self._request(protocol.handshake_commands(), ready, timeout)
        except asyncio.TimeoutError:
            raise HandshakeTimeout(
                f"{self.name}: not ready after {timeout}s") from None
        except ProcessExited as e:
            tools.kill(self.proc)
            raise HandshakeError(str(e)) from e
        logging.debug('%s: ready', self.name)

    async def request_move(self, fen, movetime=1000, timeout=5):
        commands = [protocol.position_fen(fen), protocol.go_movetime(movetime)]
        try:
            move = await self._request(
                commands, protocol.parse_bestmove, timeout)
        except asyncio.TimeoutError:
            raise MoveTimeout(
                f"{self.name}: no move after {timeout}s") from None
        if protocol.is_no_move(move):
            raise InvalidMove(f"{self.name}: returned invalid move {move!r}")
        return move

    async def quit(self, timeout=2):
        """Ask the program to quit. Best effort, never raises."""
        if self._quit_sent or not self.alive:
            return
        self._quit_sent = True
        try:
            self.proc.stdin.write(protocol.encode(protocol.QUIT))
            await asyncio.wait_for(self.proc.stdin.drain(), timeout)
        except (OSError, RuntimeError, asyncio.TimeoutError):
            logging.debug('%s: cannot send quit', self.name)

    async def terminate(self, timeout=2):
        """Ask the program to quit, then kill it. Safe to call many times."""
        if self._terminated:
            return
        self._terminated = True
        await self.quit(timeout)
        tools.kill(self.proc)
        try:
            await asyncio.wait_for(self.proc.wait(), timeout)
        except asyncio.TimeoutError:
            logging.warning('%s: still running after kill', self.name)
        logging.debug('%s: terminated with %s', self.name,
                      self.proc.returncode)
