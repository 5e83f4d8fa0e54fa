#!/usr/bin/env python3
"""
Reference command set.

Every command has the signature ``async def cmd(args, context, io) -> int``.
Output goes to ``io.stdout``, diagnostics to ``io.stderr``; expected
failures become an exit status, never an exception. The docstring of each
command doubles as its ``--help`` text and its entry in ``help``.
"""

import asyncio
import functools
import logging
import re
import time
from typing import Dict, List, Optional, Tuple

from .errors import (
    CommandError, ExitCode, FileSystemError, IsADirectory, NotADirectory, NotFound,
    PermissionDenied, AlreadyExists, extra_operand, file_error,
    file_not_found, fs_error, invalid_option, missing_operand,
    not_directory, permission_denied, usage_hint,
)
from .filesystem import (
    DirNode, apply_symbolic_mode, format_permissions, parse_permissions,
)
from .resolver import CommandHandler
from .shell import extract_docstring_sections
from . import paths

logger = logging.getLogger(__name__)

COMMANDS: Dict[str, CommandHandler] = {}

HISTORY_FILE = '~/.shellbox_history'

_IDENTIFIER = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')
_ASSIGNMENT = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*=')
_OCTAL_MODE = re.compile(r'^[0-7]{1,4}$')


class OptionError(Exception):
    """Bad command line; the message is a complete diagnostic line."""


class Options(dict):
    """Parsed options. Flags map to True, valued options to a list of values."""

    def value(self, option: str, default: Optional[str] = None) -> Optional[str]:
        values = self.get(option)
        return values[-1] if values else default

    def values(self, option: str) -> List[str]:
        return list(self.get(option) or [])


def parse_options(command: str, args: List[str], flags: str = '',
                  valued: str = '',
                  stop_at_operand: bool = False) -> Tuple[Options, List[str]]:
    """
    Split short options from operands.

    Flags may be bundled (``-la``). Valued options take the rest of the
    word or the next word (``-n5``, ``-n 5``). ``--`` ends option parsing,
    and so does the first operand when stop_at_operand is set.

    Raises:
        OptionError: unknown option or missing option argument
    """
    options = Options()
    operands: List[str] = []
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == '--':
            operands.extend(args[i + 1:])
            break
        if len(arg) < 2 or not arg.startswith('-'):
            if stop_at_operand:
                operands.extend(args[i:])
                break
            operands.append(arg)
            i += 1
            continue

        for j, ch in enumerate(arg[1:], start=1):
            if ch in valued:
                value = arg[j + 1:]
                if not value:
                    i += 1
                    if i >= len(args):
                        raise OptionError(
                            f"{command}: option requires an argument -- '{ch}'")
                    value = args[i]
                options.setdefault(ch, []).append(value)
                break
            if ch not in flags:
                raise OptionError(invalid_option(command, ch))
            options[ch] = True
        i += 1
    return options, operands


def format_help(name: str, docstring: Optional[str],
                description: Optional[str] = None,
                usage: Optional[str] = None) -> str:
    """Render help text from a command docstring."""
    sections = extract_docstring_sections(docstring)
    lines = [f"{name} - {description or sections['description'] or 'No documentation available'}",
             '',
             'Usage:',
             f"    {usage or sections['usage'] or name}"]
    if sections['options']:
        lines += ['', 'Options:'] + [f"    {opt}" for opt in sections['options']]
    if sections['examples']:
        lines += ['', 'Examples:'] + [f"    {ex}" for ex in sections['examples']]
    return '\n'.join(lines) + '\n'


def command(name: str, help_flag: bool = True):
    """
    Register a builtin under name.

    The wrapper answers ``NAME --help`` from the docstring and turns an
    OptionError into a usage message with exit status 2.
    """
    def decorator(func):
        @functools.wraps(func)
        async def wrapper(args, context, io):
            if help_flag and args[:1] == ['--help']:
                io.stdout.write(format_help(name, func.__doc__))
                return ExitCode.SUCCESS
            try:
                return await func(args, context, io)
            except OptionError as e:
                io.stderr.write(f"{e}\n{usage_hint(name)}\n")
                return ExitCode.MISUSE

        COMMANDS[name] = wrapper
        return wrapper

    return decorator


def register_all_commands(shell):
    """Register every command in this module with a Shell."""
    for name, handler in COMMANDS.items():
        shell.register_command(name, handler)


# Text output

_ECHO_FLAGS = re.compile(r'^-[neE]+$')
_ECHO_ESCAPES = {
    'n': '\n', 't': '\t', '\\': '\\', 'a': '\a', 'b': '\b',
    'r': '\r', 'v': '\v', 'f': '\f', 'e': '\x1b', '0': '\0',
}


def _interpret_escapes(text: str) -> Tuple[str, bool]:
    """Expand backslash escapes; the flag is True when \\c cut the output."""
    out = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch == '\\' and i + 1 < len(text):
            nxt = text[i + 1]
            if nxt == 'c':
                return ''.join(out), True
            if nxt in _ECHO_ESCAPES:
                out.append(_ECHO_ESCAPES[nxt])
                i += 2
                continue
        out.append(ch)
        i += 1
    return ''.join(out), False


@command('echo', help_flag=False)
async def echo(args, context, io):
    """Display a line of text.

    Usage:
        echo [-neE] [STRING...]

    Options:
        -n                     Do not print the trailing newline
        -e                     Interpret backslash escapes
        -E                     Do not interpret backslash escapes (default)

    Examples:
        echo Hello World       # Print text
        echo -n "no newline"   # Suppress the newline
        echo -e "a\\tb"         # Print a tab between a and b
        echo hello | echo world
                               # Piped text comes first: "hello world"
    """
    newline = True
    escapes = False
    words = list(args)
    while words and _ECHO_FLAGS.match(words[0]):
        for flag in words.pop(0)[1:]:
            if flag == 'n':
                newline = False
            else:
                escapes = flag == 'e'

    piped = io.stdin.read().strip()
    if piped:
        words.insert(0, piped)

    text = ' '.join(words)
    if escapes:
        text, cut = _interpret_escapes(text)
        if cut:
            newline = False
    io.stdout.write(text + ('\n' if newline else ''))
    return ExitCode.SUCCESS


def _number_lines(text: str) -> str:
    return ''.join(f"{n:6d}\t{line}"
                   for n, line in enumerate(text.splitlines(keepends=True), 1))


@command('cat')
async def cat(args, context, io):
    """Concatenate and display files.

    Usage:
        cat [-n] [FILE...]

    Options:
        -n                     Number all output lines
        FILE                   File(s) to display; '-' or none reads stdin

    Examples:
        cat file.txt           # Display contents of file.txt
        cat f1.txt f2.txt      # Concatenate multiple files
        echo "text" | cat      # Display piped input
    """
    options, files = parse_options('cat', args, flags='n')
    chunks = []
    status = ExitCode.SUCCESS
    for name in files or ['-']:
        if name == '-':
            chunks.append(io.stdin.read())
            continue
        try:
            chunks.append(context.fs.read_file(context.resolve(name),
                                               context.user, context.group))
        except FileSystemError as e:
            io.stderr.write(fs_error('cat', e, name) + '\n')
            status = ExitCode.GENERAL_ERROR

    output = ''.join(chunks)
    if options.get('n'):
        output = _number_lines(output)
    io.stdout.write(output)
    return status


def _last_lines(text: str, count: int) -> str:
    if count <= 0:
        return ''
    return ''.join(text.splitlines(keepends=True)[-count:])


@command('tail')
async def tail(args, context, io):
    """Output the last part of files.

    Usage:
        tail [-fqv] [-n LINES] [-s SECONDS] [FILE...]

    Options:
        -n LINES               Print the last LINES lines (default 10)
        -f                     Keep printing data appended to the files
        -s SECONDS             Poll interval for -f (default 1.0)
        -q                     Never print file name headers
        -v                     Always print file name headers

    Examples:
        tail -n 5 log.txt      # Last five lines
        tail -f /var/log/app   # Follow a growing file until interrupted
    """
    options, files = parse_options('tail', args, flags='fqv', valued='ns')
    raw_count = options.value('n', '10')
    try:
        count = abs(int(raw_count))
    except ValueError:
        io.stderr.write(f"tail: invalid number of lines: '{raw_count}'\n")
        return ExitCode.GENERAL_ERROR
    raw_interval = options.value('s', '1.0')
    try:
        interval = float(raw_interval)
    except ValueError:
        io.stderr.write(f"tail: invalid number of seconds: '{raw_interval}'\n")
        return ExitCode.GENERAL_ERROR

    if options.get('f') and io.signal is None:
        # Following only ends on cancellation
        io.stderr.write("tail: -f needs a cancellable session\n")
        return ExitCode.GENERAL_ERROR

    if not files:
        io.stdout.write(_last_lines(io.stdin.read(), count))
        return ExitCode.SUCCESS

    show_headers = (len(files) > 1 and not options.get('q')) or bool(options.get('v'))
    followed: Dict[str, str] = {}
    status = ExitCode.SUCCESS
    for index, name in enumerate(files):
        try:
            content = context.fs.read_file(context.resolve(name),
                                           context.user, context.group)
        except FileSystemError as e:
            io.stderr.write(file_error('tail', name, e.reason, action='cannot open') + '\n')
            status = ExitCode.GENERAL_ERROR
            continue
        if show_headers:
            io.stdout.write(('\n' if index else '') + f"==> {name} <==\n")
        io.stdout.write(_last_lines(content, count))
        followed[name] = content

    if options.get('f') and followed:
        return await _follow(followed, interval, show_headers, context, io)
    return status


async def _follow(followed: Dict[str, str], interval: float,
                  show_headers: bool, context, io) -> int:
    """Poll files for appended data until the token is cancelled."""
    token = io.signal
    current = list(followed)[-1]
    while not token.is_cancelled():
        if not await token.sleep(interval):
            break
        for name, previous in followed.items():
            try:
                content = context.fs.read_file(context.resolve(name),
                                               context.user, context.group)
            except FileSystemError:
                logger.debug("tail: %s unreadable, still polling", name)
                continue
            if content == previous:
                continue
            if content.startswith(previous):
                new = content[len(previous):]
            else:
                io.stderr.write(f"tail: {name}: file truncated\n")
                new = content
            if show_headers and name != current:
                io.stdout.write(f"\n==> {name} <==\n")
                current = name
            io.stdout.write(new)
            followed[name] = content
    return ExitCode.INTERRUPTED


# Navigation

@command('cd')
async def cd(args, context, io):
    """Change the current directory.

    Usage:
        cd [DIR]

    Options:
        DIR                    Target directory (default $HOME)
        -                      Previous directory ($OLDPWD), printed

    Examples:
        cd /tmp                # Absolute path
        cd ..                  # Parent directory
        cd ~/projects          # Relative to home
        cd -                   # Back to the previous directory
    """
    if len(args) > 1:
        raise CommandError('cd', 'too many arguments')

    target = args[0] if args else context.home
    announce = target == '-'
    if announce:
        target = context.env.get('OLDPWD', context.cwd)

    path = context.resolve(target)
    user, group = context.user, context.group
    try:
        node = context.fs.get_node(path, user, group)
    except PermissionDenied:
        io.stderr.write(permission_denied('cd', target) + '\n')
        return ExitCode.GENERAL_ERROR

    if node is None:
        io.stderr.write(file_error('cd', target, NotFound.reason) + '\n')
        return ExitCode.GENERAL_ERROR
    if not isinstance(node, DirNode):
        io.stderr.write(not_directory('cd', target) + '\n')
        return ExitCode.GENERAL_ERROR
    if not context.fs.check_permission(node, 'execute', user, group):
        io.stderr.write(permission_denied('cd', target) + '\n')
        return ExitCode.GENERAL_ERROR

    context.env['OLDPWD'] = context.cwd
    context.env['PWD'] = path
    if announce:
        io.stdout.write(path + '\n')
    return ExitCode.SUCCESS


@command('pwd')
async def pwd(args, context, io):
    """Print the current working directory.

    Usage:
        pwd
    """
    parse_options('pwd', args, flags='LP')
    io.stdout.write(context.cwd + '\n')
    return ExitCode.SUCCESS


def _long_entry(name: str, node) -> str:
    kind = 'd' if isinstance(node, DirNode) else '-'
    stamp = time.strftime('%b %d %H:%M', time.localtime(node.modified))
    return (f"{kind}{node.permissions} {node.owner:<8} {node.group:<8} "
            f"{node.size:>6} {stamp} {name}")


def _format_entries(entries, long: bool, one_per_line: bool) -> str:
    if not entries:
        return ''
    if long:
        return ''.join(_long_entry(name, node) + '\n' for name, node in entries)
    separator = '\n' if one_per_line else '  '
    return separator.join(name for name, _node in entries) + '\n'


@command('ls')
async def ls(args, context, io):
    """List directory contents.

    Usage:
        ls [-al1] [PATH...]

    Options:
        -a                     Include entries starting with '.'
        -l                     Long format: type, permissions, owner, group, size, time
        -1                     One entry per line

    Examples:
        ls                     # Current directory
        ls -la /etc            # Everything in /etc, long format
    """
    options, targets = parse_options('ls', args, flags='al1')
    targets = targets or ['.']
    long = bool(options.get('l'))
    one_per_line = bool(options.get('1'))
    fs, user, group = context.fs, context.user, context.group

    files = []
    listings = []
    status = ExitCode.SUCCESS
    for target in targets:
        path = context.resolve(target)
        try:
            node = fs.get_node(path, user, group)
            if node is None:
                raise NotFound(path)
            if isinstance(node, DirNode):
                entries = fs.list_directory(path, user, group,
                                            show_hidden=bool(options.get('a')))
                listings.append((target, [(e.name, e) for e in entries]))
            else:
                files.append((target, node))
        except FileSystemError as e:
            io.stderr.write(fs_error('ls', e, target) + '\n')
            status = ExitCode.GENERAL_ERROR

    blocks = []
    if files:
        blocks.append(_format_entries(files, long, one_per_line))
    for target, entries in listings:
        body = _format_entries(entries, long, one_per_line)
        if len(targets) > 1:
            body = f"{target}:\n{body}"
        blocks.append(body)
    io.stdout.write('\n'.join(blocks))
    return status


# File operations

@command('mkdir')
async def mkdir(args, context, io):
    """Create directories.

    Usage:
        mkdir [-pv] DIR...

    Options:
        -p                     Create parents as needed; existing directories are fine
        -v                     Print a line for each created directory

    Examples:
        mkdir docs
        mkdir -p a/b/c
    """
    options, operands = parse_options('mkdir', args, flags='pv')
    if not operands:
        raise OptionError(missing_operand('mkdir'))

    fs, user, group = context.fs, context.user, context.group
    status = ExitCode.SUCCESS
    for operand in operands:
        path = context.resolve(operand)
        try:
            if options.get('p'):
                fs.make_dirs(path, user, group)
            else:
                if path == '/':
                    raise AlreadyExists(path)
                parent, name = paths.split_path(path)
                fs.add_directory(parent, name, user, group, user, group)
        except FileSystemError as e:
            io.stderr.write(file_error('mkdir', operand, e.reason,
                                       action='cannot create directory') + '\n')
            status = ExitCode.GENERAL_ERROR
            continue
        if options.get('v'):
            io.stdout.write(f"mkdir: created directory '{operand}'\n")
    return status


def _remove_tree(fs, path: str, node, user: str, group: str):
    if isinstance(node, DirNode):
        for child in fs.list_directory(path, user, group, show_hidden=True):
            _remove_tree(fs, paths.join_path(path, child.name), child, user, group)
    fs.remove_node(path, user, group)


@command('rm')
async def rm(args, context, io):
    """Remove files or directories.

    Usage:
        rm [-rfv] FILE...

    Options:
        -r, -R                 Remove directories and their contents
        -f                     Ignore missing files, never complain about operands
        -v                     Print each removed operand

    Examples:
        rm notes.txt
        rm -rf build
    """
    options, operands = parse_options('rm', args, flags='rRfv')
    recursive = bool(options.get('r') or options.get('R'))
    force = bool(options.get('f'))
    if not operands:
        if force:
            return ExitCode.SUCCESS
        raise OptionError(missing_operand('rm'))

    fs, user, group = context.fs, context.user, context.group
    status = ExitCode.SUCCESS
    for operand in operands:
        path = context.resolve(operand)
        if path == '/':
            io.stderr.write("rm: it is dangerous to operate recursively on '/'\n")
            status = ExitCode.GENERAL_ERROR
            continue
        try:
            node = fs.get_node(path, user, group)
            if node is None:
                raise NotFound(path)
            if isinstance(node, DirNode) and not recursive:
                raise IsADirectory(path)
            _remove_tree(fs, path, node, user, group)
        except NotFound:
            if not force:
                io.stderr.write(file_error('rm', operand, NotFound.reason,
                                           action='cannot remove') + '\n')
                status = ExitCode.GENERAL_ERROR
            continue
        except FileSystemError as e:
            io.stderr.write(file_error('rm', operand, e.reason,
                                       action='cannot remove') + '\n')
            status = ExitCode.GENERAL_ERROR
            continue
        if options.get('v'):
            io.stdout.write(f"removed '{operand}'\n")
    return status


@command('touch')
async def touch(args, context, io):
    """Create empty files or update their modification time.

    Usage:
        touch [-c] FILE...

    Options:
        -c                     Do not create missing files

    Examples:
        touch notes.txt
    """
    options, operands = parse_options('touch', args, flags='c')
    if not operands:
        raise OptionError(missing_operand('touch'))

    fs, user, group = context.fs, context.user, context.group
    status = ExitCode.SUCCESS
    for operand in operands:
        path = context.resolve(operand)
        try:
            node = fs.get_node(path, user, group)
            if isinstance(node, DirNode):
                if not fs.check_permission(node, 'write', user, group):
                    raise PermissionDenied(path)
                node.modified = time.time()
                continue
            if node is None and options.get('c'):
                continue
            parent, name = paths.split_path(path)
            fs.add_file(parent, name, user, group, user, group, append=True)
        except FileSystemError as e:
            io.stderr.write(file_error('touch', operand, e.reason,
                                       action='cannot touch') + '\n')
            status = ExitCode.GENERAL_ERROR
    return status


# Permissions and ownership

def _split_mode_args(command_name: str, args: List[str], flags: str) -> Tuple[set, List[str]]:
    """Separate flags from operands without mistaking '-x' style modes for flags."""
    seen = set()
    operands = []
    for arg in args:
        if len(arg) > 1 and arg.startswith('-') and set(arg[1:]) <= set(flags):
            seen.update(arg[1:])
        else:
            operands.append(arg)
    if len(operands) < 2:
        if not operands:
            raise OptionError(missing_operand(command_name))
        raise OptionError(f"{command_name}: missing operand after '{operands[0]}'")
    return seen, operands


def _chmod_one(display: str, path: str, mode: str, flags: set, context, io) -> int:
    fs, user, group = context.fs, context.user, context.group
    try:
        node = fs.get_node(path, user, group)
        if node is None:
            raise NotFound(path)
        old = parse_permissions(node.permissions)
        if _OCTAL_MODE.match(mode):
            new = int(mode, 8) & 0o777
        else:
            new = apply_symbolic_mode(mode, old)
        fs.chmod(path, format_permissions(new), user, group)
    except FileSystemError as e:
        if 'f' not in flags:
            if isinstance(e, NotFound):
                message = file_not_found('chmod', display)
            else:
                reason = 'Operation not permitted' if isinstance(e, PermissionDenied) else e.reason
                message = file_error('chmod', display, reason, action='changing permissions of')
            io.stderr.write(message + '\n')
        return ExitCode.GENERAL_ERROR

    if 'v' in flags or ('c' in flags and old != new):
        if old != new:
            io.stdout.write(f"mode of '{display}' changed from {old:04o} "
                            f"({format_permissions(old)}) to {new:04o} "
                            f"({format_permissions(new)})\n")
        else:
            io.stdout.write(f"mode of '{display}' retained as {old:04o} "
                            f"({format_permissions(old)})\n")

    status = ExitCode.SUCCESS
    if 'R' in flags and isinstance(node, DirNode):
        for name in sorted(node.children):
            code = _chmod_one(paths.join_path(display, name), paths.join_path(path, name),
                              mode, flags, context, io)
            status = status or code
    return status


@command('chmod')
async def chmod(args, context, io):
    """Change file mode bits.

    Usage:
        chmod [-Rfvc] MODE FILE...

    Options:
        MODE                   Octal (755) or symbolic (u+x, go-w, a=r, +x)
        -R                     Change directories and their contents recursively
        -f                     Suppress most error messages
        -v                     Report every file processed
        -c                     Report only files whose mode changed

    Examples:
        chmod 755 script.sh    # rwxr-xr-x
        chmod u+x script.sh    # Add execute for the owner
        chmod -R go-w dir      # Recursively drop group/other write
    """
    flags, operands = _split_mode_args('chmod', args, 'Rfvc')
    mode, targets = operands[0], operands[1:]
    if not _OCTAL_MODE.match(mode):
        try:
            apply_symbolic_mode(mode, 0)
        except ValueError:
            raise OptionError(f"chmod: invalid mode: '{mode}'")

    status = ExitCode.SUCCESS
    for target in targets:
        code = _chmod_one(target, context.resolve(target), mode, flags, context, io)
        status = status or code
    return status


def _chown_one(display: str, path: str, owner: Optional[str],
               owner_group: Optional[str], flags: set, context, io) -> int:
    fs, user, group = context.fs, context.user, context.group
    try:
        node = fs.get_node(path, user, group)
        if node is None:
            raise NotFound(path)
        before = f"{node.owner}:{node.group}"
        fs.chown(path, user, group, owner=owner, owner_group=owner_group)
    except FileSystemError as e:
        if 'f' not in flags:
            if isinstance(e, NotFound):
                message = file_not_found('chown', display)
            else:
                reason = 'Operation not permitted' if isinstance(e, PermissionDenied) else e.reason
                message = file_error('chown', display, reason, action='changing ownership of')
            io.stderr.write(message + '\n')
        return ExitCode.GENERAL_ERROR

    after = f"{node.owner}:{node.group}"
    if 'v' in flags or ('c' in flags and before != after):
        if before != after:
            io.stdout.write(f"changed ownership of '{display}' from {before} to {after}\n")
        else:
            io.stdout.write(f"ownership of '{display}' retained as {after}\n")

    status = ExitCode.SUCCESS
    if 'R' in flags and isinstance(node, DirNode):
        for name in sorted(node.children):
            code = _chown_one(paths.join_path(display, name), paths.join_path(path, name),
                              owner, owner_group, flags, context, io)
            status = status or code
    return status


@command('chown')
async def chown(args, context, io):
    """Change file owner and group.

    Usage:
        chown [-Rfvc] [OWNER][:[GROUP]] FILE...

    Options:
        OWNER                  New owner (root only)
        :GROUP                 New group; owners may pick one of their own groups
        OWNER:                 New owner and that user's login group
        -R                     Operate on directories recursively
        -f                     Suppress most error messages
        -v                     Report every file processed
        -c                     Report only files whose ownership changed

    Examples:
        chown alice file.txt
        chown alice:staff file.txt
        chown :users shared/
    """
    flags, operands = _split_mode_args('chown', args, 'Rfvc')
    spec, targets = operands[0], operands[1:]
    fs = context.fs

    owner, sep, owner_group = spec.partition(':')
    owner = owner or None
    owner_group = owner_group or None
    if owner is not None and fs.lookup_user(owner) is None:
        io.stderr.write(f"chown: invalid user: '{spec}'\n")
        return ExitCode.GENERAL_ERROR
    if sep and owner is not None and owner_group is None:
        owner_group = fs.primary_group(owner)
    if owner_group is not None and not fs.group_exists(owner_group):
        io.stderr.write(f"chown: invalid group: '{spec}'\n")
        return ExitCode.GENERAL_ERROR

    status = ExitCode.SUCCESS
    for target in targets:
        code = _chown_one(target, context.resolve(target), owner, owner_group,
                          flags, context, io)
        status = status or code
    return status


# Environment

def _declare_line(name: str, value: str) -> str:
    escaped = value.replace('\\', '\\\\').replace('"', '\\"')
    return f'declare -x {name}="{escaped}"\n'


@command('export')
async def export(args, context, io):
    """Set environment variables.

    Usage:
        export [-pn] [NAME[=VALUE]...]

    Options:
        -p                     List all variables as 'declare -x' lines
        -n                     Remove NAME from the environment

    Examples:
        export EDITOR=vi
        export -p
    """
    options, operands = parse_options('export', args, flags='pn')
    if not operands:
        for name in sorted(context.env):
            if name != '?':
                io.stdout.write(_declare_line(name, context.env[name]))
        return ExitCode.SUCCESS

    status = ExitCode.SUCCESS
    for operand in operands:
        name, sep, value = operand.partition('=')
        if not _IDENTIFIER.match(name):
            io.stderr.write(f"export: '{operand}': not a valid identifier\n")
            status = ExitCode.GENERAL_ERROR
            continue
        if options.get('n'):
            context.env.pop(name, None)
        elif sep:
            context.env[name] = value
        else:
            context.env.setdefault(name, '')
    return status


@command('unset')
async def unset(args, context, io):
    """Remove environment variables.

    Usage:
        unset [-v] NAME...
    """
    _options, names = parse_options('unset', args, flags='vf')
    status = ExitCode.SUCCESS
    for name in names:
        if not _IDENTIFIER.match(name):
            io.stderr.write(f"unset: '{name}': not a valid identifier\n")
            status = ExitCode.GENERAL_ERROR
            continue
        context.env.pop(name, None)
    return status


@command('env')
async def env(args, context, io):
    """Print the environment or run a command in a modified one.

    Usage:
        env [-i0] [-u NAME] [-C DIR] [-] [NAME=VALUE]... [COMMAND [ARG]...]

    Options:
        -i, -                  Start from an empty environment
        -u NAME                Remove NAME from the environment
        -C DIR                 Run COMMAND with DIR as working directory
        -0                     End each printed line with NUL instead of newline

    Examples:
        env                    # Print all variables
        env GREETING=hi ./hello.sh
        env -i PATH=/bin ls
    """
    options, rest = parse_options('env', args, flags='i0', valued='uC',
                                  stop_at_operand=True)
    ignore = bool(options.get('i'))
    if rest and rest[0] == '-':
        ignore = True
        rest = rest[1:]

    new_env = {} if ignore else dict(context.env)
    for name in options.values('u'):
        new_env.pop(name, None)
    while rest and _ASSIGNMENT.match(rest[0]):
        name, value = rest.pop(0).split('=', 1)
        new_env[name] = value

    directory = options.value('C')
    if directory is not None:
        path = context.resolve(directory)
        try:
            node = context.fs.get_node(path, context.user, context.group)
            if node is None:
                raise NotFound(path)
            if not isinstance(node, DirNode):
                raise NotADirectory(path)
        except FileSystemError as e:
            io.stderr.write(f"env: cannot change directory to '{directory}': {e.reason}\n")
            return ExitCode.GENERAL_ERROR
        new_env['PWD'] = path

    if not rest:
        terminator = '\0' if options.get('0') else '\n'
        io.stdout.write(''.join(f"{name}={value}{terminator}"
                                for name, value in new_env.items() if name != '?'))
        return ExitCode.SUCCESS

    if options.get('0'):
        raise OptionError("env: cannot specify --null (-0) with command")

    shell = context.shell
    if shell is None:
        io.stderr.write("env: no shell to run commands\n")
        return ExitCode.GENERAL_ERROR
    with shell.scoped_environment(new_env):
        return await shell.run_argv(rest, io)


# Session

def _counter(context, name: str) -> int:
    try:
        return max(int(context.env.get(name, '0')), 0)
    except ValueError:
        return 0


def _history_file(operation: str, operands: List[str], context, io) -> int:
    """Write (-w), append (-a), read (-r) or read new lines (-n) of a history file."""
    target = operands[0] if operands else context.env.get('HISTFILE', HISTORY_FILE)
    path = context.resolve(target)
    fs, user, group = context.fs, context.user, context.group
    entries = context.history
    parent, name = paths.split_path(path)
    try:
        if operation == 'w':
            fs.add_file(parent, name, user, group, user, group,
                        content=''.join(line + '\n' for line in entries))
            context.env['HISTORY_APPENDED'] = str(len(entries))
        elif operation == 'a':
            start = min(_counter(context, 'HISTORY_APPENDED'), len(entries))
            fs.add_file(parent, name, user, group, user, group,
                        content=''.join(line + '\n' for line in entries[start:]),
                        append=True)
            context.env['HISTORY_APPENDED'] = str(len(entries))
        else:
            lines = [line for line in fs.read_file(path, user, group).split('\n') if line]
            start = 0 if operation == 'r' else _counter(context, 'HISTORY_READ')
            entries.extend(lines[start:])
            context.env['HISTORY_READ'] = str(len(lines))
    except FileSystemError as e:
        io.stderr.write(f"history: {target}: {e.reason}\n")
        return ExitCode.GENERAL_ERROR
    return ExitCode.SUCCESS


@command('history')
async def history(args, context, io):
    """Display or manipulate the command history.

    Usage:
        history [N] | history -c | history -d OFFSET | history -p ARG... | history -w|-a|-r|-n [FILE]

    Options:
        N                      Show only the last N entries
        -c                     Clear the history
        -d OFFSET              Delete entry OFFSET (negative counts from the end)
        -p ARG...              Print ARGs without touching the history
        -w [FILE]              Write the history to FILE (default ~/.shellbox_history)
        -a [FILE]              Append entries not yet appended
        -r [FILE]              Read FILE and append its lines to the history
        -n [FILE]              Read only lines not yet read from FILE

    Examples:
        history 5
        history -d 3
        history -w
    """
    options, operands = parse_options('history', args, flags='cpwarn', valued='d')
    entries = context.history

    if options.get('c'):
        entries.clear()
        context.env['HISTORY_APPENDED'] = '0'
        return ExitCode.SUCCESS

    if 'd' in options:
        raw = options.value('d')
        try:
            position = int(raw)
        except ValueError:
            position = 0
        index = position - 1 if position > 0 else len(entries) + position
        if position == 0 or not 0 <= index < len(entries):
            io.stderr.write(f"history: {raw}: history position out of range\n")
            return ExitCode.GENERAL_ERROR
        del entries[index]
        return ExitCode.SUCCESS

    if options.get('p'):
        io.stdout.write(''.join(arg + '\n' for arg in operands))
        return ExitCode.SUCCESS

    for operation in 'wanr':
        if options.get(operation):
            return _history_file(operation, operands, context, io)

    numbered = list(enumerate(entries, 1))
    if operands:
        try:
            limit = int(operands[0])
        except ValueError:
            io.stderr.write(f"history: {operands[0]}: numeric argument required\n")
            return ExitCode.GENERAL_ERROR
        numbered = numbered[-limit:] if limit > 0 else []
    io.stdout.write(''.join(f"{n:5d}  {line}\n" for n, line in numbered))
    return ExitCode.SUCCESS


@command('help')
async def help_command(args, context, io):
    """Show available commands or help for one command.

    Usage:
        help [COMMAND]

    Examples:
        help                   # List all commands
        help ls                # Detailed help for ls
    """
    shell = context.shell
    if shell is None:
        io.stderr.write("help: no shell available\n")
        return ExitCode.GENERAL_ERROR

    if args:
        entry = shell.get_command(args[0])
        if entry is None:
            io.stderr.write(f"help: no help topics match '{args[0]}'\n")
            return ExitCode.GENERAL_ERROR
        io.stdout.write(format_help(entry.name, entry.execute.__doc__,
                                    entry.description, entry.usage))
        return ExitCode.SUCCESS

    entries = shell.get_commands()
    width = max((len(entry.name) for entry in entries), default=0)
    lines = ['Available commands:', '']
    lines += [f"  {entry.name:<{width}}  {entry.description}" for entry in entries]
    lines += [
        '',
        "Type 'help COMMAND' for detailed help on a specific command.",
        '',
        'Pipes and redirection:',
        '  cmd1 | cmd2        Feed the output of cmd1 to cmd2',
        '  cmd > file         Write output to file',
        '  cmd >> file        Append output to file',
        '  cmd <<< text       Use text as standard input',
    ]
    io.stdout.write('\n'.join(lines) + '\n')
    return ExitCode.SUCCESS


_SLEEP_UNITS = {'s': 1, 'm': 60, 'h': 3600, 'd': 86400}


@command('sleep')
async def sleep(args, context, io):
    """Pause for a number of seconds.

    Usage:
        sleep NUMBER[SUFFIX]...

    Options:
        SUFFIX                 s (seconds, default), m (minutes), h (hours), d (days)

    Examples:
        sleep 0.5
        sleep 1m 30s           # Arguments add up
    """
    if not args:
        raise OptionError(missing_operand('sleep'))

    total = 0.0
    for arg in args:
        number, unit = arg, 1
        if arg and arg[-1] in _SLEEP_UNITS:
            number, unit = arg[:-1], _SLEEP_UNITS[arg[-1]]
        try:
            value = float(number)
        except ValueError:
            value = -1.0
        if value < 0:
            raise CommandError('sleep', f"invalid time interval '{arg}'")
        total += value * unit

    if io.signal is None:
        await asyncio.sleep(total)
        return ExitCode.SUCCESS
    if await io.signal.sleep(total):
        return ExitCode.SUCCESS
    return ExitCode.INTERRUPTED


@command('whoami')
async def whoami(args, context, io):
    """Print the current user name."""
    if args:
        raise OptionError(extra_operand('whoami', args[0]))
    io.stdout.write(context.user + '\n')
    return ExitCode.SUCCESS


@command('true')
async def true(args, context, io):
    """Do nothing, successfully."""
    return ExitCode.SUCCESS


@command('false')
async def false(args, context, io):
    """Do nothing, unsuccessfully."""
    return ExitCode.GENERAL_ERROR
