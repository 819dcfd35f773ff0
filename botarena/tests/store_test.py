import asyncio

import pytest

from botarena.errors import InvalidTransition
from botarena.matchnode import store as match_store
from botarena.matchnode.store import MatchStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return MatchStore(retention=7200, clock=clock)


def test_create(store):
    record = store.create('m1')
    assert record.status == match_store.INITIALIZING
    assert record.created_at == record.last_updated == 1000.0
    assert store.get('m1') is record
    assert 'm1' in store
    with pytest.raises(KeyError):
        store.create('m1')


def test_update(store, clock):
    store.create('m1')
    clock.now += 5
    record = store.update('m1', status=match_store.RUNNING)
    assert record.status == match_store.RUNNING
    assert record.last_updated == 1005.0

    record = store.update('m1', lambda r: r.moves.append('e2e4'))
    assert record.moves == ['e2e4']


@pytest.mark.parametrize('path', [
    [match_store.RUNNING, match_store.COMPLETED],
    [match_store.ERROR],
])
def test_valid_transitions(store, path):
    store.create('m1')
    for status in path:
        store.update('m1', status=status)
    assert store.get('m1').terminal


@pytest.mark.parametrize('path', [
    [match_store.COMPLETED],
    [match_store.RUNNING, match_store.ERROR],
    [match_store.RUNNING, match_store.INITIALIZING],
])
def test_invalid_transitions(store, path):
    store.create('m1')
    with pytest.raises(InvalidTransition):
        for status in path:
            store.update('m1', status=status)


def test_terminal_records_are_immutable(store):
    store.create('m1')
    store.update('m1', status=match_store.ERROR, error_detail='boom')
    with pytest.raises(InvalidTransition):
        store.update('m1', message='still there?')
    assert store.get('m1').message != 'still there?'


def test_unknown_field(store):
    store.create('m1')
    with pytest.raises(AttributeError):
        store.update('m1', colour='white')


def test_as_dict(store):
    store.create('m1')
    store.update('m1', status=match_store.RUNNING, moves=['e2e4'])
    assert 'result' not in store.get('m1').as_dict()
    store.update('m1', status=match_store.COMPLETED,
                 winner=match_store.SIDE_A, reason='No legal moves available')
    d = store.get('m1').as_dict()
    assert d['status'] == 'completed'
    assert d['result'] == {
        'winner': 'side-a',
        'reason': 'No legal moves available',
        'moves': ['e2e4'],
    }


def test_delete_and_list(store):
    store.create('m1')
    store.create('m2')
    assert {r.match_id for r in store.list_all()} == {'m1', 'm2'}
    assert store.delete('m1').match_id == 'm1'
    assert store.delete('m1') is None
    assert len(store) == 1


def test_sweep(store, clock):
    store.create('done')
    store.update('done', status=match_store.ERROR)
    store.create('running')
    store.update('running', status=match_store.RUNNING)

    clock.now += 7200
    assert store.sweep() == []

    clock.now += 1
    assert store.sweep() == ['done']
    assert store.get('done') is None
    # Records still running are never swept.
    assert store.get('running') is not None


async def test_janitor_task(store, clock):
    store.create('done')
    store.update('done', status=match_store.ERROR)
    clock.now += 10000
    janitor = asyncio.create_task(store.janitor_task(interval=0.01))
    await asyncio.sleep(0.1)
    janitor.cancel()
    with pytest.raises(asyncio.CancelledError):
        await janitor
    assert len(store) == 0
