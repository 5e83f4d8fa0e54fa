#!/usr/bin/env python3
"""
Command resolution.

Decides what a typed command name refers to. First match wins:

1. a builtin registered under that exact name
2. a path-like name (contains '/' or starts with '.'), resolved against PWD
3. the first PATH directory holding a file of that name
4. not found
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Dict, List, Mapping, Optional

from .errors import PermissionDenied
from .filesystem import FileNode, FileSystem

logger = logging.getLogger(__name__)

CommandHandler = Callable[..., Awaitable[int]]


class ResolvedType(Enum):
    BUILTIN = 'builtin'
    EXECUTABLE = 'executable'
    SCRIPT = 'script'
    NOT_FOUND = 'not_found'
    NOT_EXECUTABLE = 'not_executable'


@dataclass
class ResolvedCommand:
    """Outcome of resolving a command name."""
    type: ResolvedType
    command: Optional[CommandHandler] = None
    path: Optional[str] = None
    interpreter: Optional[str] = None


def parse_shebang(content: str) -> Optional[List[str]]:
    """
    Parse '#!interpreter [args]' from the first line of content.

    '/usr/bin/env NAME' is unwrapped to NAME. Returns [interpreter, *args]
    or None when there is no shebang.
    """
    if not content.startswith('#!'):
        return None
    parts = content.split('\n', 1)[0][2:].split()
    if parts and parts[0] == '/usr/bin/env':
        parts = parts[1:]
    return parts or None


class CommandResolver:
    """Resolves names against builtins, registered executables and PATH."""

    def __init__(self, builtins: Mapping[str, CommandHandler], fs: FileSystem):
        # Live view of the engine's builtin table
        self.builtins = builtins
        self.fs = fs
        self.executables: Dict[str, CommandHandler] = {}

    def register_executable(self, path: str, command: CommandHandler):
        self.executables[self.fs.normalize_path(path)] = command

    def resolve(self, name: str, context) -> ResolvedCommand:
        if name in self.builtins:
            return ResolvedCommand(ResolvedType.BUILTIN, command=self.builtins[name])

        if '/' in name or name.startswith('.'):
            full_path = context.resolve(name)
            return self._probe(full_path, context) or ResolvedCommand(
                ResolvedType.NOT_FOUND, path=full_path)

        search_path = context.env.get('PATH', '')
        for directory in [d for d in search_path.split(':') if d]:
            candidate = self.fs.resolve_relative_path(name, directory)
            result = self._probe(candidate, context, skip_denied=True)
            if result is not None:
                return result

        return ResolvedCommand(ResolvedType.NOT_FOUND)

    def _probe(self, path: str, context,
               skip_denied: bool = False) -> Optional[ResolvedCommand]:
        """Inspect one candidate file; None means nothing runnable is there."""
        user, group = context.user, context.group
        try:
            node = self.fs.get_node(path, user, group)
        except PermissionDenied:
            logger.debug("cannot traverse to %s as %s", path, user)
            if skip_denied:
                return None
            return ResolvedCommand(ResolvedType.NOT_EXECUTABLE, path=path)

        if not isinstance(node, FileNode):
            return None

        if not self.fs.check_permission(node, 'execute', user, group):
            return ResolvedCommand(ResolvedType.NOT_EXECUTABLE, path=path)

        handler = self.executables.get(path)
        if handler is not None:
            return ResolvedCommand(ResolvedType.EXECUTABLE, command=handler, path=path)

        shebang = parse_shebang(node.content)
        if shebang:
            return ResolvedCommand(ResolvedType.SCRIPT, path=path,
                                   interpreter=shebang[0])

        return ResolvedCommand(ResolvedType.EXECUTABLE, path=path)
