#!/usr/bin/env python3
"""
Terminal front end for shellbox.

Provides a REPL session on top of :class:`~shellbox.shell.Shell` and the
``shellbox`` command line entry point.
"""

import argparse
import asyncio
import logging
import signal
import sys
from datetime import datetime
from typing import List, Optional

from .base_filesystem import add_base_filesystem
from .builtins import register_all_commands
from .config import ShellConfig
from .context import create_context
from .errors import ExitCode
from .filesystem import ROOT_USER, DirNode, FileSystem
from .paths import collapse_home
from .shell import Shell

logger = logging.getLogger(__name__)

EXIT_COMMANDS = ('exit', 'quit')


def create_shell(config: Optional[ShellConfig] = None,
                 fs: Optional[FileSystem] = None) -> Shell:
    """
    Build a ready-to-use shell: seeded filesystem, context and command set.

    Args:
        config: Session settings (defaults to ShellConfig())
        fs: Filesystem to seed (defaults to a fresh one)
    """
    config = config or ShellConfig()
    fs = fs or FileSystem()
    user = config.user
    group = ROOT_USER if user == ROOT_USER else user

    home = add_base_filesystem(fs, user, group, config.home_dir)
    if config.hostname:
        fs.add_file('/etc', 'hostname', ROOT_USER, ROOT_USER, ROOT_USER, ROOT_USER,
                    content=config.hostname + '\n', bypass_permissions=True)

    cwd = home
    if config.initial_dir:
        candidate = fs.resolve_relative_path(config.initial_dir, home)
        if isinstance(fs.get_node(candidate, ROOT_USER, ROOT_USER), DirNode):
            cwd = candidate
        else:
            logger.warning("initial directory %s does not exist, using %s",
                           config.initial_dir, home)

    context = create_context(fs, user, home, cwd=cwd, path=config.path)
    context.env['HOSTNAME'] = config.hostname
    shell = Shell(context, config)
    register_all_commands(shell)
    return shell


class TerminalSession:
    """
    Main terminal session manager.

    Owns the REPL loop: prompt display, exit handling, history trimming and
    Ctrl+C delivery to the running command.
    """

    def __init__(self, config: Optional[ShellConfig] = None,
                 shell: Optional[Shell] = None):
        self.config = config or ShellConfig()
        self.shell = shell or create_shell(self.config)
        self.running = False
        self.exit_code = ExitCode.SUCCESS

    def get_prompt(self) -> str:
        """Generate the command prompt."""
        context = self.shell.context
        display_cwd = collapse_home(context.cwd, context.home)

        if self.config.enable_colors:
            # Green for user@host, blue for path
            return (f'\033[32m{context.user}@{self.config.hostname}\033[0m:'
                    f'\033[34m{display_cwd}\033[0m$ ')

        return self.config.prompt_format.format(
            user=context.user,
            hostname=self.config.hostname,
            cwd=display_cwd,
            time=datetime.now().strftime('%H:%M:%S'),
        )

    def attach(self, stdout=None, stderr=None):
        """Forward shell output to file-like objects (default: sys streams)."""
        out = stdout or sys.stdout
        err = stderr or sys.stderr
        self.shell.stdout.subscribe(out.write)
        self.shell.stderr.subscribe(err.write)

    async def execute(self, command_line: str) -> Optional[int]:
        """
        Execute one line. Returns None when the line asks to leave the session.
        """
        words = command_line.split()
        if words and words[0] in EXIT_COMMANDS:
            if len(words) > 1 and words[1].lstrip('-').isdigit():
                self.exit_code = int(words[1]) & 0xFF
            return None

        code = await self.shell.execute_command(command_line)
        history = self.shell.context.history
        if len(history) > self.config.history_size:
            del history[:len(history) - self.config.history_size]
            self.shell.history_index = len(history)
        self.exit_code = code
        return code

    async def _execute_interruptible(self, command_line: str) -> Optional[int]:
        loop = asyncio.get_running_loop()
        try:
            loop.add_signal_handler(signal.SIGINT, self.shell.cancel_current_execution)
            installed = True
        except (NotImplementedError, RuntimeError, ValueError):
            logger.debug("SIGINT handler unavailable; Ctrl+C interrupts the loop")
            installed = False
        try:
            return await self.execute(command_line)
        finally:
            if installed:
                loop.remove_signal_handler(signal.SIGINT)

    def run_command(self, command_line: str) -> str:
        """
        Run a single command and return its combined output.

        This method is useful for non-interactive use.
        """
        chunks: List[str] = []
        detach_out = self.shell.stdout.subscribe(chunks.append)
        detach_err = self.shell.stderr.subscribe(chunks.append)
        try:
            asyncio.run(self.execute(command_line))
        finally:
            detach_out()
            detach_err()
        return "".join(chunks)

    def run_script(self, script_lines: List[str]) -> List[str]:
        """Run command lines in order and return each line's output."""
        outputs = []
        for line in script_lines:
            line = line.strip()
            if not line or line.startswith('#'):
                continue
            if line.split()[0] in EXIT_COMMANDS:
                break
            outputs.append(self.run_command(line))
        return outputs

    def _setup_completion(self):
        try:
            import readline
        except ImportError:
            return

        def complete(text: str, state: int) -> Optional[str]:
            matches = self.shell.complete(text)
            return matches[state] if state < len(matches) else None

        readline.set_completer(complete)
        readline.set_completer_delims(' \t\n;|<>')
        readline.parse_and_bind('tab: complete')

    def run_interactive(self):
        """Run the interactive REPL loop."""
        self.running = True
        self.attach()
        self._setup_completion()

        print("Welcome to shellbox")
        print("Type 'help' for help, 'exit' to quit")
        print()

        while self.running:
            try:
                command_line = input(self.get_prompt())
                if asyncio.run(self._execute_interruptible(command_line)) is None:
                    break
            except KeyboardInterrupt:
                print("^C")
                self.shell.cancel_current_execution()
                continue
            except EOFError:
                print()
                break

        self.running = False
        print("Goodbye!")


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the shellbox terminal."""
    parser = argparse.ArgumentParser(prog='shellbox',
                                     description='shellbox sandboxed shell')
    parser.add_argument('-c', '--command', help='Execute command and exit')
    parser.add_argument('-u', '--user', help='Set username')
    parser.add_argument('-d', '--directory', help='Set initial directory')
    parser.add_argument('--log-level', help='Logging level (DEBUG, INFO, WARNING, ERROR)')
    parser.add_argument('--no-color', action='store_true', help='Plain prompt')
    args = parser.parse_args(argv)

    config = ShellConfig.from_env(user=args.user, initial_dir=args.directory,
                                  log_level=args.log_level)
    if args.no_color:
        config.enable_colors = False

    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.WARNING),
        format='%(levelname)s %(name)s: %(message)s',
    )

    session = TerminalSession(config=config)
    if args.command is not None:
        session.attach()
        asyncio.run(session.execute(args.command))
        return int(session.exit_code)

    session.run_interactive()
    return int(session.exit_code)


if __name__ == '__main__':
    sys.exit(main())
