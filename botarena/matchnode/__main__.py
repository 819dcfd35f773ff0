# SPDX-License-Identifier: GPL-2.0-or-later

import asyncio
import logging
import optparse
import sys

import yaml

import botarena.config
import botarena.log

from .monitoring import monitoring_start
from .node import MatchNode
from .store import COMPLETED


async def run_match(config, side_a, side_b):
    node = MatchNode(config)
    await node.start()
    try:
        match_id = node.start_match(side_a, side_b)
        return await node.wait(match_id)
    finally:
        await node.stop()


if __name__ == '__main__':
    parser = optparse.OptionParser(usage='%prog [options] SIDE_A SIDE_B')
    parser.add_option('-l', '--local-logging', action='store_true',
                      dest='local_logging', default=False,
                      help='Activate logging to stdout.')
    parser.add_option('-v', '--verbose', action='store_true',
                      dest='verbose', default=False,
                      help='Verbose mode.')
    parser.add_option('-m', '--monitoring', action='store_true',
                      dest='monitoring', default=False,
                      help='Expose prometheus metrics.')
    options, args = parser.parse_args()
    if len(args) != 2:
        parser.error('expected the paths of the two programs')

    botarena.log.setup_logging('matchnode', verbose=options.verbose,
                               local=options.local_logging)
    logging.getLogger('asyncio').setLevel(logging.WARNING)
    logging.getLogger('aiohttp').setLevel(logging.WARNING)

    config = botarena.config.load('matchnode')

    if options.monitoring:
        monitoring_start(config['monitoring']['port'])

    try:
        status = asyncio.run(run_match(config, *args))
    except KeyboardInterrupt:
        sys.exit(130)

    yaml.safe_dump(status, sys.stdout, default_flow_style=False)
    sys.exit(0 if status['status'] == COMPLETED else 1)
