#!/usr/bin/env python3
"""
Error types and standardized error messages for shellbox.

Filesystem operations raise typed exceptions carrying the offending path.
Commands convert them into the familiar ``cmd: 'path': reason`` lines and
return an exit code instead of letting them escape.
"""

from enum import IntEnum
from typing import Optional


class ExitCode(IntEnum):
    """Exit codes shared by the engine and the command set."""
    SUCCESS = 0
    GENERAL_ERROR = 1
    MISUSE = 2
    CANNOT_EXECUTE = 126
    NOT_FOUND = 127
    INTERRUPTED = 130


class FileSystemError(Exception):
    """Base class for virtual filesystem failures."""

    reason = 'Filesystem error'

    def __init__(self, path: str, message: Optional[str] = None):
        self.path = path
        super().__init__(message or f"{self.reason}: {path}")


class NotFound(FileSystemError, FileNotFoundError):
    reason = 'No such file or directory'


class PermissionDenied(FileSystemError, PermissionError):
    reason = 'Permission denied'


class NotADirectory(FileSystemError, NotADirectoryError):
    reason = 'Not a directory'


class IsADirectory(FileSystemError, IsADirectoryError):
    reason = 'Is a directory'


class AlreadyExists(FileSystemError, FileExistsError):
    reason = 'File exists'


class CommandError(Exception):
    """An error raised inside a command with a ready-made message."""

    def __init__(self, command: str, message: str,
                 exit_code: int = ExitCode.GENERAL_ERROR):
        self.command = command
        self.message = message
        self.exit_code = int(exit_code)
        super().__init__(f"{command}: {message}")


# Message builders

def command_error(command: str, message: str) -> str:
    return f"{command}: {message}"


def file_error(command: str, path: str, message: str,
               action: Optional[str] = None) -> str:
    """Format an error about a path, e.g. ``cp: cannot access 'a': nope``."""
    if action:
        return f"{command}: {action} '{path}': {message}"
    return f"{command}: '{path}': {message}"


def permission_denied(command: str, path: str) -> str:
    return file_error(command, path, PermissionDenied.reason)


def file_not_found(command: str, path: str) -> str:
    return file_error(command, path, NotFound.reason, action='cannot access')


def is_directory(command: str, path: str) -> str:
    return file_error(command, path, IsADirectory.reason)


def not_directory(command: str, path: str) -> str:
    return file_error(command, path, NotADirectory.reason)


def file_exists(command: str, path: str) -> str:
    return file_error(command, path, AlreadyExists.reason, action='cannot create')


def invalid_option(command: str, option: str) -> str:
    option = option.lstrip('-')
    return f"{command}: invalid option -- '{option}'"


def missing_operand(command: str) -> str:
    return f"{command}: missing operand"


def extra_operand(command: str, operand: str) -> str:
    return f"{command}: extra operand '{operand}'"


def usage_hint(command: str) -> str:
    return f"Try '{command} --help' for more information."


def fs_error(command: str, error: FileSystemError,
             path: Optional[str] = None) -> str:
    """Map a typed filesystem exception to the matching message."""
    path = path if path is not None else error.path
    if isinstance(error, NotFound):
        return file_not_found(command, path)
    if isinstance(error, PermissionDenied):
        return permission_denied(command, path)
    if isinstance(error, IsADirectory):
        return is_directory(command, path)
    if isinstance(error, NotADirectory):
        return not_directory(command, path)
    if isinstance(error, AlreadyExists):
        return file_exists(command, path)
    return file_error(command, path, str(error))


def write_error(stderr, error) -> int:
    """Write an error to a stream and return the exit code to use.

    Accepts a ``CommandError`` or a plain message string.
    """
    if isinstance(error, CommandError):
        stderr.write(f"{error.command}: {error.message}\n")
        return error.exit_code
    stderr.write(f"{error}\n")
    return int(ExitCode.GENERAL_ERROR)
