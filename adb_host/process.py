# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Run external programs, such as ``adb`` itself, and collect their output.

* :class:`ProcessResult`
* :func:`check_result`
* :func:`run`
* :func:`stream_lines`

"""


import asyncio
from collections import namedtuple
import logging

from . import exceptions


_LOGGER = logging.getLogger(__name__)


ProcessResult = namedtuple('ProcessResult', ['code', 'stdout', 'stderr'])


def _command_line(executable, args):
    return ' '.join([executable] + list(args))


def _decode_line(line):
    return line.decode('utf-8', 'replace').rstrip('\r\n')


async def run(executable, args, timeout_s=None):
    """Run a program and wait for it to exit.

    Parameters
    ----------
    executable : str
        The path to the program
    args : list[str]
        The command line arguments
    timeout_s : float, None
        The total time in seconds to wait for the program to exit, or ``None`` to wait forever

    Returns
    -------
    ProcessResult
        The exit code and the decoded stdout and stderr

    Raises
    ------
    adb_host.exceptions.AdbTimeoutError
        The program did not exit within ``timeout_s`` seconds; it has been killed

    """
    _LOGGER.debug("Running `%s`", _command_line(executable, args))
    proc = await asyncio.create_subprocess_exec(executable, *args, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE)

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout_s)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        raise exceptions.AdbTimeoutError("`{}` did not complete within {} seconds".format(_command_line(executable, args), timeout_s))

    result = ProcessResult(proc.returncode, stdout.decode('utf-8', 'replace'), stderr.decode('utf-8', 'replace'))
    _LOGGER.debug("`%s` exited with code %d", _command_line(executable, args), result.code)
    return result


def check_result(result, executable, args):
    """Raise an exception if a program exited with a non-zero code.

    Parameters
    ----------
    result : ProcessResult
        The result of :func:`run`
    executable : str
        The path to the program
    args : list[str]
        The command line arguments

    Returns
    -------
    ProcessResult
        ``result``

    Raises
    ------
    adb_host.exceptions.AdbProcessError
        ``result.code`` is not zero

    """
    if result.code:
        raise exceptions.AdbProcessError("`{}` failed".format(_command_line(executable, args)), result.code, result.stdout, result.stderr)

    return result


async def _drain(stream, executable):
    lines = []
    async for line in stream:
        text = _decode_line(line)
        _LOGGER.debug("%s stderr: %s", executable, text)
        lines.append(text)

    return '\n'.join(lines)


async def stream_lines(executable, args):
    """Run a program, yielding each line that it writes to stdout.

    Whatever the program writes to stderr is logged.  If the generator is closed before the program
    exits, the program is killed.

    Parameters
    ----------
    executable : str
        The path to the program
    args : list[str]
        The command line arguments

    Yields
    ------
    str
        A line of output, without the line ending

    Raises
    ------
    adb_host.exceptions.AdbProcessError
        The program exited with a non-zero code

    """
    _LOGGER.debug("Streaming `%s`", _command_line(executable, args))
    proc = await asyncio.create_subprocess_exec(executable, *args, stdout=asyncio.subprocess.PIPE, stderr=asyncio.subprocess.PIPE)
    stderr_task = asyncio.ensure_future(_drain(proc.stderr, executable))

    try:
        async for line in proc.stdout:
            yield _decode_line(line)

        code = await proc.wait()
        stderr = await stderr_task

    finally:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()

        if not stderr_task.done():
            stderr_task.cancel()
            try:
                await stderr_task
            except asyncio.CancelledError:
                pass

    check_result(ProcessResult(code, '', stderr), executable, args)
