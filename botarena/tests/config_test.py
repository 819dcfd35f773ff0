import pytest

import botarena.config


@pytest.fixture(autouse=True)
def clear_cache(monkeypatch):
    monkeypatch.setattr(botarena.config, 'LOADED_CONFIGS', {})


def test_merge_defaults():
    config = botarena.config.merge({'match': {'max_plies': 10}})
    assert config['match']['max_plies'] == 10
    assert config['match']['movetime_ms'] == 1000
    assert config['arbiter']['max_retries'] == 3
    assert config['store']['retention_secs'] == 7200


def test_merge_does_not_alias_defaults():
    config = botarena.config.merge({})
    config['build']['compilers']['.rs'] = ['rustc', '{source}']
    assert '.rs' not in botarena.config.DEFAULTS['build']['compilers']


def test_merge_replaces_lists():
    config = botarena.config.merge(
        {'sandbox': {'allowed_dirs': ['/var/lib/engines']}})
    assert config['sandbox']['allowed_dirs'] == ['/var/lib/engines']


def test_load(tmp_path, monkeypatch):
    (tmp_path / 'matchnode.yml').write_text(
        'arbiter:\n'
        '  primary_url: http://arbiter.local/\n'
        'timeout:\n'
        '  move: 10\n')
    monkeypatch.setenv('CFG_DIR', str(tmp_path))
    config = botarena.config.load('matchnode')
    assert config['arbiter']['primary_url'] == 'http://arbiter.local/'
    assert config['timeout']['move'] == 10
    assert config['timeout']['handshake'] == 5
    assert botarena.config.load('matchnode') is config


def test_load_empty_file(tmp_path, monkeypatch):
    (tmp_path / 'matchnode.yml').write_text('')
    monkeypatch.setenv('CFG_DIR', str(tmp_path))
    assert botarena.config.load('matchnode') == botarena.config.DEFAULTS


def test_load_missing(tmp_path, monkeypatch):
    monkeypatch.setenv('CFG_DIR', str(tmp_path))
    with pytest.raises(botarena.config.ConfigReadError):
        botarena.config.load('matchnode')
