"""
shellbox - A sandboxed POSIX-like shell over a virtual filesystem

This package provides an in-memory filesystem with owner/group/rwx
permissions, a command resolver, a script interpreter registry (shell and
Scheme dialects), an async shell execution engine with pipes, redirection
and cooperative cancellation, and a reference command set.
"""

__version__ = "1.0.0"

from .filesystem import (
    FileSystem,
    FileNode,
    DirNode,
    Node,
)

from .errors import (
    ExitCode,
    FileSystemError,
    NotFound,
    PermissionDenied,
    NotADirectory,
    IsADirectory,
    AlreadyExists,
    CommandError,
)

from .streams import (
    OutputStream,
    InputStream,
    CancellationToken,
    IOStreams,
    create_io,
)

from .context import (
    CommandContext,
    create_context,
)

from .resolver import (
    CommandResolver,
    ResolvedCommand,
    ResolvedType,
)

from .interpreters import InterpreterRegistry

from .shell import Shell

from .config import ShellConfig

from .terminal import (
    TerminalSession,
    create_shell,
)

__all__ = [
    # Filesystem
    "FileSystem",
    "FileNode",
    "DirNode",
    "Node",

    # Errors
    "ExitCode",
    "FileSystemError",
    "NotFound",
    "PermissionDenied",
    "NotADirectory",
    "IsADirectory",
    "AlreadyExists",
    "CommandError",

    # Streams
    "OutputStream",
    "InputStream",
    "CancellationToken",
    "IOStreams",
    "create_io",

    # Execution
    "CommandContext",
    "create_context",
    "CommandResolver",
    "ResolvedCommand",
    "ResolvedType",
    "InterpreterRegistry",
    "Shell",

    # Session
    "ShellConfig",
    "TerminalSession",
    "create_shell",

    # Version info
    "__version__",
]
