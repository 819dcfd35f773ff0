# SPDX-License-Identifier: GPL-2.0-or-later
"""Common configuration loading logic for botarena services."""

import copy
import os
import os.path
import yaml

DEFAULT_CFG_DIR = '/etc/botarena'
LOADED_CONFIGS = {}

START_POSITION = 'rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1'

DEFAULTS = {
    'arbiter': {
        'primary_url': 'http://localhost:8080',
        'secondary_url': None,
        'local_engine': None,
        'request_timeout_secs': 30,
        'keepalive_timeout_secs': 5,
        'keepalive_interval_secs': 300,
        'max_retries': 3,
        'retry_delay_secs': 2,
        'local_timeout_secs': 10,
        'local_movetime_ms': 1000,
        'missing_position': 'keep',
    },
    'match': {
        'max_plies': 50,
        'start_position': START_POSITION,
        'movetime_ms': 1000,
    },
    'timeout': {
        'compile': 30,
        'handshake': 5,
        'move': 5,
        'teardown': 2,
    },
    'build': {
        'compilers': {
            '.cpp': ['g++', '{source}', '-o', '{output}', '-std=c++11',
                     '-Wall', '-Wextra', '-O2'],
            '.c': ['gcc', '{source}', '-o', '{output}', '-O2'],
        },
    },
    'store': {
        'retention_secs': 7200,
        'sweep_interval_secs': 300,
    },
    'sandbox': {
        'kind': 'none',
        'allowed_dirs': [],
        'mem_limit_MiB': 500,
        'time_limit_secs': 600,
        'processes': 1,
    },
    'monitoring': {
        'port': 9030,
    },
}


class ConfigReadError(Exception):
    pass


def merge(cfg, defaults=DEFAULTS):
    """Return a copy of `defaults` recursively updated with `cfg`.

    Only dictionaries are merged; any other value in `cfg` (lists included)
    replaces the default one.
    """
    result = copy.deepcopy(defaults)
    for key, value in (cfg or {}).items():
        if isinstance(value, dict) and isinstance(result.get(key), dict):
            result[key] = merge(value, result[key])
        else:
            result[key] = copy.deepcopy(value)
    return result


def load(profile):
    """Load (if needed) and return the configuration file for `profile`.

    Profile configurations are cached. Look for configuration profiles in the
    "CFG_DIR" environment variable if it is set, or in the DEFAULT_CFG_DIR
    otherwise. Raise a ConfigReadError if no such file exist.

    The returned configuration always contains every key of DEFAULTS.
    """

    try:
        return LOADED_CONFIGS[profile]
    except KeyError:
        pass

    cfg_filename = '{}.yml'.format(profile)
    cfg_directory = os.environ.get('CFG_DIR', DEFAULT_CFG_DIR)
    cfg_path = os.path.join(cfg_directory, cfg_filename)

    try:
        with open(cfg_path, 'r') as cfg_fp:
            cfg = yaml.safe_load(cfg_fp)
    except IOError:
        raise ConfigReadError("%s does not exist (specify CFG_DIR?)"
                              % cfg_path)

    cfg = merge(cfg)
    LOADED_CONFIGS[profile] = cfg

    return cfg
