# SPDX-License-Identifier: GPL-2.0-or-later
"""botarena runs matches between two game-playing programs.

The package is split in two services:

* :mod:`botarena.matchnode` builds and spawns the programs, talks to them
  and drives each match to a terminal state;
* :mod:`botarena.arbiter` is the client of the adjudication service that
  advances positions and decides when a side has no legal move left.
"""
