#!/usr/bin/env python3
"""
Per-session command context.

The context is passed by reference to every command. Commands may mutate
``env`` (cd, export, unset); those changes are visible to later pipeline
stages and later lines.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .filesystem import FileSystem

VERSION = '1.0.0'

DEFAULT_PATH = '/bin:/usr/bin:/usr/local/bin'


@dataclass
class CommandContext:
    """Environment, history and shared filesystem of a shell session."""
    env: Dict[str, str]
    fs: FileSystem
    history: List[str] = field(default_factory=list)
    shell: Optional[Any] = None
    version: str = VERSION

    @property
    def user(self) -> str:
        return self.env.get('USER', 'user')

    @property
    def group(self) -> str:
        return self.fs.primary_group(self.user)

    @property
    def cwd(self) -> str:
        return self.env.get('PWD', '/')

    @property
    def home(self) -> str:
        return self.env.get('HOME', '/')

    def resolve(self, path: str) -> str:
        """Resolve a user-supplied path against PWD."""
        if path == '~' or path.startswith('~/'):
            path = self.home + path[1:]
        return self.fs.resolve_relative_path(path, self.cwd)


def default_env(user: str, home: str, cwd: Optional[str] = None,
                path: str = DEFAULT_PATH) -> Dict[str, str]:
    return {
        'PWD': cwd or home,
        'HOME': home,
        'USER': user,
        'LOGNAME': user,
        'SHELL': '/bin/sh',
        'PATH': path,
        'OLDPWD': cwd or home,
        '?': '0',
        'LAST_EXIT_CODE': '0',
    }


def create_context(fs: FileSystem, user: str, home: str,
                   cwd: Optional[str] = None,
                   path: str = DEFAULT_PATH,
                   shell: Optional[Any] = None) -> CommandContext:
    return CommandContext(env=default_env(user, home, cwd, path), fs=fs,
                          shell=shell)
