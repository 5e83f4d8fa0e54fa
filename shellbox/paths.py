#!/usr/bin/env python3
"""
Path utilities for the virtual filesystem.

Pure string algorithms over POSIX-style paths. Nothing here touches the
filesystem, so every function is safe to call with arbitrary input.
"""

from typing import List, Tuple


def _collapse(segments: List[str], absolute: bool) -> List[str]:
    """Resolve '.' and '..' segments, keeping leading '..' for relative paths."""
    result: List[str] = []
    for seg in segments:
        if seg in ('', '.'):
            continue
        if seg == '..':
            if result and result[-1] != '..':
                result.pop()
            elif not absolute:
                result.append('..')
        else:
            result.append(seg)
    return result


def normalize_path(path: str) -> str:
    """
    Normalize a path by removing redundant separators and dot segments.

    Absolute paths never climb above '/'. Relative paths keep leading '..'
    and an empty result becomes '.'.

    Examples:
        normalize_path('/a//b/../c/') -> '/a/c'
        normalize_path('a/../..') -> '..'
    """
    if not path:
        return '.'
    absolute = path.startswith('/')
    segments = _collapse(path.split('/'), absolute)
    if absolute:
        return '/' + '/'.join(segments)
    return '/'.join(segments) or '.'


def resolve_path(path: str, base: str = '/') -> str:
    """Resolve a path against a base directory into an absolute path."""
    if not path:
        return normalize_path(base if base.startswith('/') else '/' + base)
    if path.startswith('/'):
        return normalize_path(path)
    if not base.startswith('/'):
        base = '/' + base
    return normalize_path(base.rstrip('/') + '/' + path)


def join_path(*parts: str) -> str:
    """Join path parts with single separators and normalize the result."""
    parts = [p for p in parts if p]
    if not parts:
        return '.'
    absolute = parts[0].startswith('/')
    joined = '/'.join(p.strip('/') for p in parts)
    return normalize_path(('/' if absolute else '') + joined)


def basename(path: str) -> str:
    if path == '/' or (path and path.strip('/') == ''):
        return '/'
    return path.rstrip('/').split('/')[-1]


def dirname(path: str) -> str:
    if not path:
        return '.'
    stripped = path.rstrip('/')
    if not stripped:
        return '/'
    if '/' not in stripped:
        return '.'
    parent = stripped.rsplit('/', 1)[0]
    return parent or '/'


def extname(path: str) -> str:
    """Return the extension including the dot; dotfiles have none."""
    name = basename(path)
    idx = name.rfind('.')
    if idx <= 0:
        return ''
    return name[idx:]


def split_path(path: str) -> Tuple[str, str]:
    """Split a path into (dir, base)."""
    return dirname(path), basename(path)


def is_descendant(child: str, ancestor: str) -> bool:
    """True when child lies strictly below ancestor."""
    child = normalize_path(child)
    ancestor = normalize_path(ancestor)
    if child == ancestor:
        return False
    if ancestor == '/':
        return child.startswith('/')
    return child.startswith(ancestor + '/')


def relative_path(from_path: str, to_path: str) -> str:
    """Compute the relative path leading from one directory to another."""
    src = [s for s in normalize_path(from_path).split('/') if s]
    dst = [s for s in normalize_path(to_path).split('/') if s]
    common = 0
    while common < min(len(src), len(dst)) and src[common] == dst[common]:
        common += 1
    parts = ['..'] * (len(src) - common) + dst[common:]
    return '/'.join(parts) or '.'


def expand_home(path: str, home: str) -> str:
    """Expand a leading '~' to the home directory."""
    if path == '~':
        return home
    if path.startswith('~/'):
        return home.rstrip('/') + path[1:]
    return path


def collapse_home(path: str, home: str) -> str:
    """Replace a leading home directory with '~'."""
    if not home or home == '/':
        return path
    home = home.rstrip('/')
    if path == home:
        return '~'
    if path.startswith(home + '/'):
        return '~' + path[len(home):]
    return path
