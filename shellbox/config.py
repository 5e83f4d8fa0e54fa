#!/usr/bin/env python3
"""Configuration for shellbox sessions."""

import os
from dataclasses import dataclass, fields
from typing import Mapping, Optional

from .context import DEFAULT_PATH

ENV_PREFIX = 'SHELLBOX_'


@dataclass
class ShellConfig:
    """Settings for a shell session.

    Every field can be overridden from the environment as
    SHELLBOX_<FIELD NAME IN UPPER CASE>, e.g. SHELLBOX_MAX_DEPTH=16.
    """
    user: str = 'user'
    home: Optional[str] = None
    initial_dir: Optional[str] = None
    path: str = DEFAULT_PATH
    hostname: str = 'shellbox'
    max_depth: int = 32
    history_size: int = 1000
    prompt_format: str = '{user}@{hostname}:{cwd}$ '
    enable_colors: bool = True
    log_level: str = 'WARNING'

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> 'ShellConfig':
        """Create configuration from environment variables.

        Keyword overrides that are not None win over the environment.
        """
        environ = os.environ if environ is None else environ
        values = {}
        for f in fields(cls):
            raw = environ.get(ENV_PREFIX + f.name.upper())
            if raw is None:
                continue
            if f.type in (int, 'int'):
                values[f.name] = int(raw)
            elif f.type in (bool, 'bool'):
                values[f.name] = raw.strip().lower() in ('1', 'true', 'yes', 'on')
            else:
                values[f.name] = raw
        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)

    @property
    def home_dir(self) -> str:
        if self.home:
            return self.home
        return '/root' if self.user == 'root' else f'/home/{self.user}'
