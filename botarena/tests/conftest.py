import os
import sys
import textwrap
from unittest.mock import AsyncMock

import pytest
from aiohttp import web

import botarena.config
from botarena.arbiter.client import Client

ENGINE_TEMPLATE = '''\
#!{python}
import sys
import time

MOVES = {moves!r}
READY = {ready!r}
HANG_AT = {hang_at!r}
EXIT_AT = {exit_at!r}

turn = 0
while True:
    line = sys.stdin.readline()
    if not line:
        break
    cmd = line.split()
    if not cmd:
        continue
    if cmd[0] == 'uci':
        print('id name fake engine', flush=True)
    elif cmd[0] == 'isready' and READY:
        print('readyok', flush=True)
    elif cmd[0] == 'go':
        if turn == HANG_AT:
            time.sleep(60)
        if turn == EXIT_AT:
            sys.exit(3)
        print('info depth 1 score cp 13', flush=True)
        print('bestmove ' + MOVES[turn % len(MOVES)], flush=True)
        turn += 1
    elif cmd[0] == 'quit':
        break
'''

LOCAL_ARBITER_TEMPLATE = '''\
#!{python}
import json
import sys

for line in sys.stdin:
    if line.startswith('go'):
        print('info depth 12', flush=True)
        print(json.dumps({answer!r}), flush=True)
sys.exit({exit_code!r})
'''


def write_script(path, content):
    path.write_text(textwrap.dedent(content))
    os.chmod(path, 0o755)
    return str(path)


@pytest.fixture
def make_engine(tmp_path):
    """Writes a fake program speaking the engine protocol.

    Usage::

        def test_something(make_engine):
            path = make_engine('a', moves=['e2e4'], hang_at=2)

    The program answers ``bestmove`` with `moves` in a loop. It never says
    ``readyok`` when `ready` is false, sleeps forever on the `hang_at`-th move
    request and exits with code 3 on the `exit_at`-th one.
    """

    def make(name, moves=('e2e4',), ready=True, hang_at=None, exit_at=None):
        return write_script(tmp_path / name, ENGINE_TEMPLATE.format(
            python=sys.executable, moves=list(moves), ready=ready,
            hang_at=hang_at, exit_at=exit_at))

    return make


@pytest.fixture
def make_local_arbiter(tmp_path):
    def make(answer=None, exit_code=0, name='local-arbiter'):
        if answer is None:
            answer = {'bestMove': 'e7e5', 'newFen': 'local-position'}
        return write_script(tmp_path / name, LOCAL_ARBITER_TEMPLATE.format(
            python=sys.executable, answer=answer, exit_code=exit_code))

    return make


@pytest.fixture
def config():
    """Match node configuration with short timeouts."""
    return botarena.config.merge({
        'arbiter': {
            'request_timeout_secs': 2,
            'keepalive_timeout_secs': 1,
            'local_timeout_secs': 5,
            'local_movetime_ms': 10,
        },
        'match': {'movetime_ms': 10},
        'timeout': {
            'compile': 10,
            'handshake': 2,
            'move': 2,
            'teardown': 1,
        },
    })


def respond(answer):
    if isinstance(answer, int):
        return web.Response(status=answer, text='arbiter failure')
    if isinstance(answer, str):
        return web.Response(text=answer, content_type='text/plain')
    return web.json_response(answer)


class ArbiterStub:
    """Scriptable arbiter service.

    Each endpoint answers with what its callable returns: a JSON value, a
    string (sent as plain text) or an integer (sent as an HTTP error).
    """

    def __init__(self):
        self.health = lambda: {'status': 'ok', 'version': 'stub 1.0'}
        self.bestmove = lambda moves: {
            'bestMove': 'e7e5',
            'newFen': f'position-after-{len(moves)}',
        }
        self.evaluate = lambda fen, time_limit: {
            'isGameOver': False,
            'winner': None,
            'reason': None,
            'bestMove': 'e2e4',
        }
        self.calls = {'health': 0, 'bestmove': 0, 'evaluate': 0}
        self.received = []
        self.url = None

    def app(self):
        app = web.Application()
        app.router.add_get('/', self.handle_health)
        app.router.add_post('/api/bestmove', self.handle_bestmove)
        app.router.add_post('/evaluate', self.handle_evaluate)
        return app

    async def handle_health(self, request):
        self.calls['health'] += 1
        return respond(self.health())

    async def handle_bestmove(self, request):
        self.calls['bestmove'] += 1
        payload = await request.json()
        self.received.append(payload)
        return respond(self.bestmove(payload['moves']))

    async def handle_evaluate(self, request):
        self.calls['evaluate'] += 1
        payload = await request.json()
        self.received.append(payload)
        return respond(self.evaluate(payload['fen'], payload['timeLimit']))


@pytest.fixture
async def arbiter_stub(aiohttp_server):
    stub = ArbiterStub()
    server = await aiohttp_server(stub.app())
    stub.url = str(server.make_url('/'))
    return stub


# Nothing listens there: connections are refused right away.
UNREACHABLE_URL = 'http://127.0.0.1:9/'


@pytest.fixture
def unreachable_url():
    return UNREACHABLE_URL


@pytest.fixture
async def arbiter(arbiter_stub):
    """Arbiter client talking to the stub, without retry delays."""
    client = Client(arbiter_stub.url, request_timeout=2)
    client._sleep = AsyncMock()
    yield client
    await client.close()
