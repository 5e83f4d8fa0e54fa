#!/usr/bin/env python3
"""
Script interpreters.

The registry maps interpreter names from shebang lines (``sh``,
``/bin/sh``, ``scheme``...) to handlers of the form::

    async def handler(script_path, args, context, io, fs) -> int

Two handlers are built in: a line-oriented shell dialect that re-enters the
owning Shell for every statement, and the embedded Scheme dialect.
"""

import logging
import re
from typing import Awaitable, Callable, Dict, Iterable, List, Optional

from .command_parser import expand_positional, expand_word, split_statements
from .errors import ExitCode, FileSystemError
from .filesystem import FileSystem
from .scheme_interpreter import ScriptCapabilities, run_program
from .streams import IOStreams, OutputStream, StreamBuffer
from . import paths

logger = logging.getLogger(__name__)

InterpreterHandler = Callable[..., Awaitable[int]]

SHELL_NAMES = ('sh', 'bash', 'zsh')
SCHEME_NAMES = ('scheme',)

_ASSIGNMENT = re.compile(r'^([A-Za-z_][A-Za-z0-9_]*)=(.*)$')
_SUBSTITUTION = re.compile(r'^\$\((.*)\)$', re.S)


def _strip_quotes(value: str) -> str:
    """Remove one layer of quotes wrapping the whole value."""
    if len(value) >= 2 and value[0] == value[-1] and value[0] in '"\'':
        return value[1:-1]
    return value


def _aliases(names: Iterable[str], directories: Iterable[str]) -> List[str]:
    return [f'{d}/{n}' for n in names for d in directories]


def read_script(script_path: str, context, io: IOStreams, fs: FileSystem,
                prog: str) -> Optional[str]:
    """Read a script body without its shebang line; None if unreadable."""
    try:
        content = fs.read_file(script_path, context.user, context.group)
    except FileSystemError as e:
        io.stderr.write(f"{prog}: {script_path}: {e.reason}\n")
        return None
    if content.startswith('#!'):
        newline = content.find('\n')
        content = '' if newline == -1 else content[newline + 1:]
    return content


async def _substitute(command: str, context, io: IOStreams) -> str:
    """Run a command headless and return its output minus trailing newlines."""
    capture = StreamBuffer()
    sub_io = IOStreams(stdout=capture.stream, stderr=OutputStream(),
                       signal=io.signal)
    await context.shell.execute_headless(command, sub_io)
    return capture.getvalue().rstrip('\n')


async def shell_script_interpreter(script_path: str, args: List[str], context,
                                   io: IOStreams, fs: FileSystem) -> int:
    """
    Run a shell dialect script.

    Each line is split on unquoted ';'. Statements starting with '#' are
    comments. NAME=VALUE stores into the environment, with a whole-value
    $(...) (quoted or not) run through the shell; everything else gets
    positional parameters expanded and is executed as a command line,
    sharing the caller's streams.
    """
    body = read_script(script_path, context, io, fs, 'sh')
    if body is None:
        return ExitCode.GENERAL_ERROR

    shell = context.shell
    if shell is None:
        io.stderr.write("sh: internal shell not available\n")
        return ExitCode.GENERAL_ERROR

    for raw_line in body.split('\n'):
        for statement in split_statements(raw_line):
            if statement.startswith('#'):
                continue
            if io.cancelled():
                return ExitCode.INTERRUPTED

            assignment = _ASSIGNMENT.match(statement)
            if assignment:
                name, value = assignment.groups()
                value = expand_positional(value, args, script_path)
                substitution = _SUBSTITUTION.match(_strip_quotes(value))
                if substitution:
                    context.env[name] = await _substitute(
                        substitution.group(1).strip(), context, io)
                else:
                    context.env[name] = expand_word(value, context.env)
                continue

            line = expand_positional(statement, args, script_path)
            await shell.execute_headless(line, io)

    return ExitCode.SUCCESS


async def scheme_script_interpreter(script_path: str, args: List[str], context,
                                    io: IOStreams, fs: FileSystem) -> int:
    """Run an embedded Scheme script with the session's capabilities."""
    source = read_script(script_path, context, io, fs, 'scheme')
    if source is None:
        return ExitCode.GENERAL_ERROR

    user, group = context.user, context.group
    capabilities = ScriptCapabilities(
        write_stdout=io.stdout.write,
        write_stderr=io.stderr.write,
        argv=[script_path] + list(args),
        environ=dict(context.env),
        read_file=lambda path: fs.read_file(context.resolve(path), user, group),
        file_exists=lambda path: fs.exists(context.resolve(path), user, group),
    )
    try:
        return run_program(source, capabilities)
    except RecursionError:
        io.stderr.write("scheme: RecursionError: maximum recursion depth exceeded\n")
    except Exception as e:
        io.stderr.write(f"scheme: {type(e).__name__}: {e}\n")
    return ExitCode.GENERAL_ERROR


class InterpreterRegistry:
    """Maps interpreter names to script handlers."""

    def __init__(self, register_defaults: bool = True):
        self.interpreters: Dict[str, InterpreterHandler] = {}
        if register_defaults:
            self._register_defaults()

    def _register_defaults(self):
        self.register('sh', shell_script_interpreter,
                      aliases=['bash', 'zsh'] + _aliases(SHELL_NAMES, ('/bin', '/usr/bin')))
        self.register('scheme', scheme_script_interpreter,
                      aliases=_aliases(SCHEME_NAMES, ('/bin', '/usr/bin', '/usr/local/bin')))

    def register(self, name: str, handler: InterpreterHandler,
                 aliases: Iterable[str] = ()):
        self.interpreters[name] = handler
        for alias in aliases:
            self.interpreters[alias] = handler

    def get(self, name: str) -> Optional[InterpreterHandler]:
        """Find a handler by exact name, then by the basename of a path."""
        handler = self.interpreters.get(name)
        if handler is None and '/' in name:
            handler = self.interpreters.get(paths.basename(name))
        return handler

    def names(self) -> List[str]:
        return sorted(self.interpreters)

    async def execute(self, interpreter: str, script_path: str, args: List[str],
                      context, io: IOStreams, fs: FileSystem) -> int:
        handler = self.get(interpreter)
        if handler is None:
            io.stderr.write(f"{interpreter}: Interpreter not found\n")
            return ExitCode.NOT_FOUND

        logger.debug("running %s with %s", script_path, interpreter)
        try:
            return int(await handler(script_path, args, context, io, fs))
        except Exception as e:
            logger.debug("interpreter %s failed", interpreter, exc_info=True)
            io.stderr.write(f"{interpreter}: script execution failed: {e}\n")
            return ExitCode.GENERAL_ERROR
