#!/usr/bin/env python3
"""
Shell execution engine.

The Shell owns the command registry and the live CommandContext, and runs
input lines end to end:

1. parse the line into pipeline stages (quotes, here-strings, redirection)
2. expand variables and globs per stage
3. resolve each command (builtin, registered executable, script, PATH)
4. run stages left to right; a stage's output is materialized and handed
   to the next stage as stdin
5. stop at the first failing stage
6. write the final output to the redirection target, if any

Scripts re-enter the engine through :meth:`Shell.execute_headless`, which
is bounded by ``ShellConfig.max_depth``.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional

from .command_parser import (
    ParsedLine, Redirect, RedirectType, ShellSyntaxError, Stage,
    expand_word, expand_words, match_glob, parse_line,
)
from .base_filesystem import executable_stub
from .config import ShellConfig
from .context import CommandContext
from .errors import CommandError, ExitCode, FileSystemError, IsADirectory, write_error
from .filesystem import EXEC_DEFAULT, DirNode
from .interpreters import InterpreterRegistry
from .resolver import CommandHandler, CommandResolver, ResolvedType
from .streams import (
    CancellationToken, InputStream, IOStreams, OutputStream, StreamBuffer,
)
from . import paths

logger = logging.getLogger(__name__)

NULL_DEVICE = '/dev/null'


@dataclass
class CommandEntry:
    """A registered builtin command."""
    name: str
    execute: CommandHandler
    description: str = ''
    usage: str = ''


def extract_docstring_sections(docstring: Optional[str]) -> dict:
    """Extract description, usage, options and examples from a docstring."""
    sections = {
        'description': '',
        'usage': '',
        'options': [],
        'examples': [],
    }
    if not docstring:
        return sections

    lines = docstring.strip().split('\n')
    sections['description'] = lines[0].strip()

    current_section = None
    for line in lines[1:]:
        line = line.strip()
        if line.startswith('Usage:'):
            current_section = 'usage'
            inline = line[len('Usage:'):].strip()
            if inline:
                sections['usage'] = inline
        elif line.startswith('Options:'):
            current_section = 'options'
        elif line.startswith('Examples:'):
            current_section = 'examples'
        elif line.startswith('Returns:'):
            current_section = 'returns'
        elif line and current_section == 'usage':
            if not sections['usage']:
                sections['usage'] = line
        elif line and current_section in ('options', 'examples'):
            sections[current_section].append(line)

    return sections


class Shell:
    """Runs command lines against a CommandContext."""

    def __init__(self, context: CommandContext,
                 config: Optional[ShellConfig] = None,
                 interpreters: Optional[InterpreterRegistry] = None):
        self.context = context
        self.context.shell = self
        self.config = config or ShellConfig()
        self.fs = context.fs

        self.commands: Dict[str, CommandEntry] = {}
        self.builtins: Dict[str, CommandHandler] = {}
        self.resolver = CommandResolver(self.builtins, self.fs)
        self.interpreters = interpreters or InterpreterRegistry()

        # Interactive surface; the terminal subscribes to these
        self.stdout = OutputStream()
        self.stderr = OutputStream()

        self.history_index = len(self.context.history)
        self.executing = False
        self._current_token: Optional[CancellationToken] = None
        self._depth = 0

    # Registration

    def register_command(self, name: str, execute: CommandHandler,
                         description: Optional[str] = None,
                         usage: Optional[str] = None,
                         expose: bool = True):
        """
        Register a builtin command.

        Description and usage default to the handler's docstring. When
        expose is set the command also becomes /bin/NAME and /usr/bin/NAME.
        """
        sections = extract_docstring_sections(getattr(execute, '__doc__', None))
        entry = CommandEntry(name=name, execute=execute,
                             description=description or sections['description'],
                             usage=usage or sections['usage'] or name)
        self.commands[name] = entry
        self.builtins[name] = execute

        if expose:
            for directory in ('/bin', '/usr/bin'):
                self._expose_executable(directory, name, execute)

    def _expose_executable(self, directory: str, name: str, execute: CommandHandler):
        target = paths.join_path(directory, name)
        self.resolver.register_executable(target, execute)
        parent = self.fs.get_node(directory, 'root', 'root')
        if isinstance(parent, DirNode) and name not in parent.children:
            self.fs.add_file(directory, name, 'root', 'root', 'root', 'root',
                             content=executable_stub(name),
                             permissions=EXEC_DEFAULT, bypass_permissions=True)

    def get_commands(self) -> List[CommandEntry]:
        return [self.commands[name] for name in sorted(self.commands)]

    def get_command(self, name: str) -> Optional[CommandEntry]:
        return self.commands.get(name)

    # Entry points

    async def execute_command(self, line: str) -> int:
        """
        Execute a line typed at the prompt.

        Output goes to the shell's own stdout/stderr streams. The line is
        recorded in history and the exit status is stored in $?.
        """
        if not line.strip():
            return ExitCode.SUCCESS

        self.context.history.append(line)
        self.history_index = len(self.context.history)

        token = CancellationToken()
        self._current_token = token
        self.executing = True
        io = IOStreams(stdin=InputStream(), stdout=self.stdout,
                       stderr=self.stderr, signal=token)
        try:
            code = await self._run_line(line, io)
        finally:
            self.executing = False
            self._current_token = None

        if token.is_cancelled():
            code = ExitCode.INTERRUPTED
        self._set_status(code)
        return int(code)

    async def execute_headless(self, line: str, io: IOStreams) -> int:
        """Execute a line writing to the caller's streams, without history."""
        if self._depth >= self.config.max_depth:
            io.stderr.write(
                f"shell: maximum nesting depth ({self.config.max_depth}) exceeded\n")
            return ExitCode.GENERAL_ERROR

        self._depth += 1
        try:
            code = await self._run_line(line, io)
        finally:
            self._depth -= 1
        self._set_status(code)
        return int(code)

    async def run_argv(self, argv: List[str], io: IOStreams) -> int:
        """Resolve and run an already expanded command."""
        name, args = argv[0], list(argv[1:])
        resolved = self.resolver.resolve(name, self.context)
        logger.debug("%s resolved to %s (%s)", name, resolved.type.value, resolved.path)

        if resolved.type is ResolvedType.NOT_FOUND:
            io.stderr.write(
                f"Command '{name}' not found. Type 'help' for available commands.\n")
            return ExitCode.NOT_FOUND

        if resolved.type is ResolvedType.NOT_EXECUTABLE:
            io.stderr.write(f"{name}: Permission denied\n")
            return ExitCode.CANNOT_EXECUTE

        if resolved.type is ResolvedType.SCRIPT:
            return await self.interpreters.execute(
                resolved.interpreter, resolved.path, args,
                self.context, io, self.fs)

        if resolved.command is None:
            io.stderr.write(f"{name}: cannot execute: no handler for {resolved.path}\n")
            return ExitCode.CANNOT_EXECUTE

        return await self._invoke(name, resolved.command, args, io)

    async def _invoke(self, name: str, command: CommandHandler,
                      args: List[str], io: IOStreams) -> int:
        try:
            code = await command(args, self.context, io)
        except CommandError as e:
            return write_error(io.stderr, e)
        except Exception as e:
            logger.error("command %s failed", name, exc_info=True)
            io.stderr.write(f"{name}: {e}\n")
            return ExitCode.GENERAL_ERROR
        return ExitCode.SUCCESS if code is None else int(code)

    # Pipeline

    async def _run_line(self, line: str, io: IOStreams) -> int:
        try:
            parsed = parse_line(line)
        except ShellSyntaxError as e:
            io.stderr.write(f"shell: {e}\n")
            return ExitCode.MISUSE
        if not parsed.stages:
            return ExitCode.SUCCESS
        return await self._run_pipeline(parsed, io)

    async def _run_pipeline(self, parsed: ParsedLine, io: IOStreams) -> int:
        previous_output: Optional[str] = None
        final_capture: Optional[StreamBuffer] = None
        code = ExitCode.SUCCESS
        last_index = len(parsed.stages) - 1

        for index, stage in enumerate(parsed.stages):
            if io.cancelled():
                return ExitCode.INTERRUPTED

            capture = None
            if index < last_index or parsed.redirect is not None:
                capture = StreamBuffer()
                stdout = capture.stream
            else:
                stdout = io.stdout

            if stage.here_string is not None:
                stdin = InputStream(expand_word(stage.here_string, self.context.env) + '\n')
            elif previous_output is not None:
                stdin = InputStream(previous_output)
            else:
                stdin = io.stdin

            stage_io = IOStreams(stdin=stdin, stdout=stdout, stderr=io.stderr,
                                 signal=io.signal)
            code = await self._run_stage(stage, stage_io)

            if capture is not None:
                capture.close()
                if index < last_index:
                    previous_output = capture.getvalue()
                else:
                    final_capture = capture

            if io.cancelled():
                return ExitCode.INTERRUPTED
            if code != ExitCode.SUCCESS:
                return code

        if parsed.redirect is not None and final_capture is not None:
            return self._write_redirect(parsed.redirect, final_capture.getvalue(), io)
        return code

    async def _run_stage(self, stage: Stage, io: IOStreams) -> int:
        argv = expand_words(stage.words, self.context.env, glob=self._expand_glob)
        if not argv:
            return ExitCode.SUCCESS
        return await self.run_argv(argv, io)

    def _write_redirect(self, redirect: Redirect, content: str, io: IOStreams) -> int:
        target = expand_word(redirect.target, self.context.env)
        path = self.context.resolve(target)
        if path == NULL_DEVICE:
            return ExitCode.SUCCESS

        parent, name = paths.split_path(path)
        user, group = self.context.user, self.context.group
        try:
            if path == "/":
                raise IsADirectory(path)
            self.fs.add_file(parent, name, user, group, user, group,
                             content=content,
                             append=redirect.type is RedirectType.APPEND)
        except FileSystemError as e:
            io.stderr.write(f"shell: {target}: {e.reason}\n")
            return ExitCode.GENERAL_ERROR
        return ExitCode.SUCCESS

    def _expand_glob(self, pattern: str) -> List[str]:
        """Expand a glob in the last path segment; unmatched patterns stay literal."""
        dir_part, sep, name_pattern = pattern.rpartition('/')
        if any(c in dir_part for c in '*?['):
            return [pattern]
        if sep:
            prefix = dir_part + '/'
            base = self.context.resolve(dir_part or '/')
        else:
            prefix = ''
            base = self.context.cwd

        try:
            entries = self.fs.list_directory(base, self.context.user,
                                             self.context.group, show_hidden=True)
        except FileSystemError:
            return [pattern]

        matches = sorted(prefix + entry.name for entry in entries
                         if match_glob(name_pattern, entry.name))
        return matches or [pattern]

    # Environment and session state

    @contextmanager
    def scoped_environment(self, env: Dict[str, str]) -> Iterator[Dict[str, str]]:
        """Temporarily replace the context environment."""
        saved = self.context.env
        self.context.env = env
        try:
            yield env
        finally:
            self.context.env = saved

    def _set_status(self, code: int):
        self.context.env['?'] = str(int(code))
        self.context.env['LAST_EXIT_CODE'] = str(int(code))

    def cancel_current_execution(self) -> bool:
        """Cancel the running top-level line; False if nothing is running."""
        token = self._current_token
        if token is None or token.is_cancelled():
            return False
        token.cancel()
        self._set_status(ExitCode.INTERRUPTED)
        return True

    def navigate_history(self, direction: str) -> str:
        """Move through history ('up' or 'down') and return the entry."""
        history = self.context.history
        if direction == 'up' and self.history_index > 0:
            self.history_index -= 1
        elif direction == 'down' and self.history_index < len(history):
            self.history_index += 1

        if self.history_index < len(history):
            return history[self.history_index]
        return ''

    def complete(self, text: str) -> List[str]:
        """Completion candidates: command names, or paths once a word has a '/'."""
        if '/' not in text:
            return [name for name in sorted(self.commands) if name.startswith(text)]

        dir_part, _, prefix = text.rpartition('/')
        base = self.context.resolve(dir_part or '/')
        try:
            entries = self.fs.list_directory(base, self.context.user,
                                             self.context.group,
                                             show_hidden=prefix.startswith('.'))
        except FileSystemError:
            return []
        return [f"{dir_part}/{entry.name}" + ('/' if isinstance(entry, DirNode) else '')
                for entry in entries if entry.name.startswith(prefix)]
