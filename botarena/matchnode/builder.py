# SPDX-License-Identifier: GPL-2.0-or-later

import asyncio
import logging
import os
import os.path
from typing import List

from botarena.errors import CompileError, CompileTimeout

from . import tools
from .monitoring import matchnode_build_summary


def compiler_command(config, source_path: str):
    """Return ``(cmdline, output_path)`` to build `source_path`.

    Returns ``(None, source_path)`` when no compiler is configured for the
    file extension, which means the file is used as is.
    """
    base, ext = os.path.splitext(source_path)
    template: List[str] = config['build']['compilers'].get(ext)
    if template is None:
        return None, source_path
    cmd = [arg.format(source=source_path, output=base) for arg in template]
    return cmd, base


async def build(config, source_path: str) -> str:
    """
    Turn a program source into an executable.

    Args:
        config: the matchnode configuration
        source_path: path of the program, source or already executable

    Returns:
        the path of the executable. Sources with an unknown extension are
        returned unchanged.

    Raises:
        CompileError: the compiler failed or did not create the executable.
        CompileTimeout: the compiler ran for more than
            ``config['timeout']['compile']`` seconds.
    """
    cmd, output_path = compiler_command(config, source_path)
    if cmd is None:
        logging.debug('%s needs no build', source_path)
        return source_path

    timeout = config['timeout'].get('compile', 30)
    logging.info('building %s', source_path)
    with matchnode_build_summary.time():
        try:
            exitcode, log = await tools.communicate(cmd, timeout=timeout)
        except asyncio.TimeoutError:
            raise CompileTimeout(source_path, timeout) from None
        except OSError as e:
            raise CompileError(source_path, None, str(e)) from e

    if exitcode != 0:
        raise CompileError(source_path, exitcode, log)
    if not os.path.exists(output_path):
        raise CompileError(
            source_path, exitcode,
            f"compilation succeeded but {output_path} was not created\n{log}")

    os.chmod(output_path, 0o755)
    logging.info('built %s', output_path)
    return output_path
