import pytest

from botarena.matchnode import protocol


def test_encode():
    assert protocol.encode('isready') == b'isready\n'


@pytest.mark.parametrize('command', ['go\nquit', 'go\r'])
def test_encode_rejects_line_breaks(command):
    with pytest.raises(ValueError):
        protocol.encode(command)


def test_commands():
    assert protocol.handshake_commands() == ['uci', 'isready']
    assert protocol.position_fen('8/8/8/8/8/8/8/8 w - - 0 1') == (
        'position fen 8/8/8/8/8/8/8/8 w - - 0 1')
    assert protocol.go_movetime(1000) == 'go movetime 1000'
    assert protocol.position_moves([]) == 'position startpos'
    assert protocol.position_moves(['e2e4', 'e7e5']) == (
        'position startpos moves e2e4 e7e5')


def test_is_ready():
    assert not protocol.is_ready('id name foo\n')
    assert protocol.is_ready('id name foo\nreadyok\n')


def test_parse_bestmove_waits_for_complete_move():
    assert protocol.parse_bestmove('info depth 3\n') is None
    assert protocol.parse_bestmove('info depth 3\nbestmove e2') is None
    assert protocol.parse_bestmove('info depth 3\nbestmove e2e4\n') == 'e2e4'


def test_parse_bestmove_without_line_break():
    assert protocol.parse_bestmove('bestmove e2e4 ') == 'e2e4'
    assert protocol.parse_bestmove('bestmove e2e4\tponder') == 'e2e4'
    assert protocol.parse_bestmove('bestmove e2e4') is None
    assert protocol.parse_bestmove('bestmove ') is None


def test_parse_bestmove_crlf():
    assert protocol.parse_bestmove('bestmove e7e5\r\n') == 'e7e5'
    assert protocol.parse_bestmove('bestmove\r\n') == ''


def test_parse_bestmove_ponder():
    output = 'bestmove g1f3 ponder d7d5\n'
    assert protocol.parse_bestmove(output) == 'g1f3'


def test_parse_bestmove_eof():
    assert protocol.parse_bestmove('bestmove e2e4', eof=True) == 'e2e4'
    assert protocol.parse_bestmove('bestmove\n') == ''


@pytest.mark.parametrize('move, expected', [
    ('', True),
    ('(none)', True),
    ('e2e4', False),
])
def test_is_no_move(move, expected):
    assert protocol.is_no_move(move) is expected


def test_parse_json_response():
    output = 'info depth 1\n{"bestMove": "e7e5"}\n'
    assert protocol.parse_json_response(output) == {'bestMove': 'e7e5'}
    output = '{\n  "bestMove": "e7e5"\n}\n'
    assert protocol.parse_json_response(output) == {'bestMove': 'e7e5'}


def test_parse_json_response_garbage():
    with pytest.raises(ValueError):
        protocol.parse_json_response('bestmove e2e4\n[1, 2]\n{broken\n')
