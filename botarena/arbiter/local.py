# SPDX-License-Identifier: GPL-2.0-or-later
"""Last-resort arbiter: a local engine binary started for each request."""

import asyncio
import logging
import os

from botarena.errors import LocalEngineError
from botarena.matchnode import protocol
from botarena.matchnode import tools


def discover(path):
    """Return `path` if it is an executable file, None otherwise."""
    if path and os.path.isfile(path) and os.access(path, os.X_OK):
        logging.info('local engine found at %s', path)
        return path
    if path:
        logging.warning('local engine not found at %s', path)
    return None


async def request(engine_path, position_command, movetime, timeout):
    """Run the local engine on one position and return its JSON answer."""
    commands = [position_command, protocol.go_movetime(movetime),
                protocol.QUIT]
    data = ''.join(command + '\n' for command in commands)
    try:
        exitcode, output = await tools.communicate(
            [engine_path], data=data, timeout=timeout)
    except asyncio.TimeoutError:
        raise LocalEngineError(
            f"local engine did not answer in {timeout}s") from None
    except OSError as e:
        raise LocalEngineError(f"cannot start local engine: {e}") from e

    if exitcode != 0:
        raise LocalEngineError(
            f"local engine exited with code {exitcode}:\n{output}")
    try:
        return protocol.parse_json_response(output)
    except ValueError as e:
        raise LocalEngineError(
            f"cannot parse local engine answer: {e}") from e


async def adjudicate(engine_path, moves, movetime, timeout):
    return await request(
        engine_path, protocol.position_moves(moves), movetime, timeout)


async def evaluate(engine_path, fen, movetime, timeout):
    return await request(
        engine_path, protocol.position_fen(fen), movetime, timeout)
