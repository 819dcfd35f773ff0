# SPDX-License-Identifier: GPL-2.0-or-later
"""Line protocol spoken with the programs.

Commands are newline-terminated ASCII lines. Answers are not parsed line by
line: the accumulated output is scanned for a few marker tokens and
everything else is ignored.

A session looks like::

    > uci
    > isready
    < readyok
    > position fen rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1
    > go movetime 1000
    < info depth 1 ...
    < bestmove e2e4
    > quit
"""

import json
import re

UCI = 'uci'
ISREADY = 'isready'
QUIT = 'quit'

READY_TOKEN = 'readyok'
NO_MOVE = '(none)'

# A move is complete once followed by whitespace. A marker directly followed
# by a line break announces no move.
BESTMOVE_RE = re.compile(r'bestmove[ \t]*(?:(\S+)\s|\r?\n)')
BESTMOVE_EOF_RE = re.compile(r'bestmove[ \t]*(\S*)')


def encode(command):
    """Encode `command` as a protocol line."""
    if '\n' in command or '\r' in command:
        raise ValueError(f"command contains a line break: {command!r}")
    return command.encode('ascii') + b'\n'


def handshake_commands():
    return [UCI, ISREADY]


def position_fen(fen):
    return f'position fen {fen}'


def position_moves(moves):
    if not moves:
        return 'position startpos'
    return 'position startpos moves ' + ' '.join(moves)


def go_movetime(movetime):
    return f'go movetime {int(movetime)}'


def is_ready(output):
    return READY_TOKEN in output


def parse_bestmove(output, eof=False):
    """Return the move announced in `output`.

    Returns None while the announced move may still be incomplete, that is
    until it is followed by whitespace. Once `eof` is set, whatever follows
    the marker is taken. The empty string means that the program announced
    nothing.
    """
    match = BESTMOVE_RE.search(output)
    if match is None and eof:
        match = BESTMOVE_EOF_RE.search(output)
    if match is None:
        return None
    return match.group(1) or ''


def is_no_move(move):
    return not move or move == NO_MOVE


def parse_json_response(output):
    """Return the JSON object printed in `output`.

    The whole output is tried first, then each line from the last one, so
    both a pretty-printed answer and an answer following log lines work.
    """
    try:
        data = json.loads(output)
    except ValueError:
        pass
    else:
        if isinstance(data, dict):
            return data
    for line in reversed(output.splitlines()):
        line = line.strip()
        if not line.startswith('{'):
            continue
        try:
            data = json.loads(line)
        except ValueError:
            continue
        if isinstance(data, dict):
            return data
    raise ValueError("no JSON object found in the engine output")
