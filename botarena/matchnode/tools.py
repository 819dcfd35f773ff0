# SPDX-License-Identifier: GPL-2.0-or-later

import asyncio
import logging
import subprocess


def kill(proc):
    """Kill `proc` if it is still running. Never raises."""
    if proc.returncode is not None:
        return
    try:
        proc.kill()
    except ProcessLookupError:
        pass


async def create_process(cmdline, *, stderr=subprocess.STDOUT, **kwargs):
    return await asyncio.create_subprocess_exec(
        *cmdline,
        stdin=subprocess.PIPE,
        stdout=subprocess.PIPE,
        stderr=stderr,
        **kwargs,
    )


async def communicate_process(proc, *, data=None, max_len=None,
                              truncate_message=''):
    # Send stdin
    if data:
        proc.stdin.write(data.encode())
        await proc.stdin.drain()
    proc.stdin.close()

    # Receive stdout
    stdout = bytearray()
    while True:
        to_read = 4096
        if max_len is not None:
            to_read = min(to_read, max_len - len(stdout))
            if not to_read:
                break
        chunk = await proc.stdout.read(to_read)
        if not chunk:
            break
        stdout.extend(chunk)

    if not to_read:
        stdout += truncate_message.encode()

    exitcode = await proc.wait()
    return exitcode, stdout.decode(errors='replace')


async def communicate(cmdline, *, data=None, max_len=None,
                      truncate_message='', timeout=None, **kwargs):
    """Run `cmdline` to completion and return ``(exitcode, output)``.

    stdout and stderr are merged. When `timeout` seconds elapse the process
    is killed and :class:`asyncio.TimeoutError` is raised.
    """
    proc = await create_process(cmdline, **kwargs)
    try:
        return await asyncio.wait_for(
            communicate_process(proc, data=data, max_len=max_len,
                                truncate_message=truncate_message),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        logging.debug('killing %s after %ss', cmdline[0], timeout)
        kill(proc)
        await proc.wait()
        raise
