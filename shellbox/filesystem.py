#!/usr/bin/env python3
"""
In-memory virtual filesystem for shellbox.

A mutable tree of file and directory nodes with Unix-style ownership and
rwx permission triads. Every operation takes an acting user and group that
is checked against the nodes it touches; operations that create nodes also
take the owner and group stamped onto the result, which may differ from the
actor (privileged copies, seeding).

Failures raise the typed exceptions from :mod:`shellbox.errors`.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

from .errors import (
    AlreadyExists, IsADirectory, NotADirectory, NotFound, PermissionDenied,
)
from . import paths

logger = logging.getLogger(__name__)

ROOT_USER = 'root'

FILE_DEFAULT = 'rw-r--r--'
DIR_DEFAULT = 'rwxr-xr-x'
EXEC_DEFAULT = 'rwxr-xr-x'


_OP_INDEX = {'read': 0, 'write': 1, 'execute': 2}


@dataclass
class FileNode:
    """A regular file holding text content."""
    name: str
    owner: str
    group: str
    permissions: str = FILE_DEFAULT
    content: str = ''
    modified: float = field(default_factory=time.time)
    type: str = field(default='file', init=False)

    @property
    def size(self) -> int:
        return len(self.content)

    def is_file(self) -> bool:
        return True

    def is_dir(self) -> bool:
        return False


@dataclass
class DirNode:
    """A directory mapping child names to nodes."""
    name: str
    owner: str
    group: str
    permissions: str = DIR_DEFAULT
    children: Dict[str, 'Node'] = field(default_factory=dict)
    modified: float = field(default_factory=time.time)
    type: str = field(default='directory', init=False)

    @property
    def size(self) -> int:
        return 0

    def is_file(self) -> bool:
        return False

    def is_dir(self) -> bool:
        return True


Node = Union[FileNode, DirNode]


def format_permissions(mode: int) -> str:
    """Format permission bits as a 9-character rwx string."""
    result = ''
    for shift in (6, 3, 0):
        bits = (mode >> shift) & 0o7
        result += 'r' if bits & 0o4 else '-'
        result += 'w' if bits & 0o2 else '-'
        result += 'x' if bits & 0o1 else '-'
    return result


def parse_permissions(permissions: str) -> int:
    """Convert a 9-character rwx string into permission bits."""
    mode = 0
    for i, char in enumerate(permissions[:9]):
        if char != '-':
            mode |= 1 << (8 - i)
    return mode


def apply_symbolic_mode(mode_str: str, current: int) -> int:
    """Apply a symbolic mode like +x, u+w, go-r or a=rw to permission bits.

    Raises ValueError for malformed clauses.
    """
    result = current

    for part in mode_str.split(','):
        part = part.strip()
        if not part:
            continue

        op_idx = -1
        op = None
        for i, c in enumerate(part):
            if c in '+-=':
                op_idx = i
                op = c
                break

        if op is None:
            raise ValueError(f"invalid mode: '{mode_str}'")

        who = part[:op_idx] or 'a'
        perms = part[op_idx + 1:]
        if any(c not in 'ugoa' for c in who) or any(c not in 'rwx' for c in perms):
            raise ValueError(f"invalid mode: '{mode_str}'")

        mask = 0
        if 'u' in who or 'a' in who:
            mask |= 0o700
        if 'g' in who or 'a' in who:
            mask |= 0o070
        if 'o' in who or 'a' in who:
            mask |= 0o007

        perm_bits = 0
        for p in perms:
            if p == 'r':
                perm_bits |= 0o444
            elif p == 'w':
                perm_bits |= 0o222
            elif p == 'x':
                perm_bits |= 0o111
        perm_bits &= mask

        if op == '+':
            result |= perm_bits
        elif op == '-':
            result &= ~perm_bits
        else:
            result = (result & ~mask) | perm_bits

    return result & 0o777


class FileSystem:
    """
    Permission-checked tree of nodes rooted at '/'.

    The root user bypasses permission checks, mirroring a real kernel;
    :meth:`has_permission` itself is a pure triad evaluation.
    """

    def __init__(self, owner: str = ROOT_USER, group: str = ROOT_USER,
                 permissions: str = DIR_DEFAULT):
        self.root = DirNode(name='/', owner=owner, group=group,
                            permissions=permissions)

    # Pure path helpers

    @staticmethod
    def normalize_path(path: str) -> str:
        """Normalize a path into absolute form."""
        return paths.resolve_path(path or '/', '/')

    @staticmethod
    def resolve_relative_path(path: str, base: str) -> str:
        return paths.resolve_path(path, base)

    # Permissions

    @staticmethod
    def has_permission(node: Node, operation: str, user: str, group: str) -> bool:
        """Evaluate the owner, group or other triad for an operation."""
        if user == node.owner:
            triad = node.permissions[0:3]
        elif group == node.group:
            triad = node.permissions[3:6]
        else:
            triad = node.permissions[6:9]
        return triad[_OP_INDEX[operation]] != '-'

    def check_permission(self, node: Node, operation: str, user: str, group: str) -> bool:
        if user == ROOT_USER:
            if operation == 'execute' and isinstance(node, FileNode):
                return 'x' in node.permissions
            return True
        return self.has_permission(node, operation, user, group)

    # Lookup

    def get_node(self, path: str, user: str, group: str,
                 required_op: Optional[str] = None) -> Optional[Node]:
        """
        Walk the tree from the root and return the node at path.

        Returns None when any segment is missing. Traversing a directory
        requires execute permission on it; when required_op is given it is
        checked against the target node.

        Raises:
            PermissionDenied: traversal or required_op was refused
        """
        normalized = self.normalize_path(path)
        node: Node = self.root
        for segment in [s for s in normalized.split('/') if s]:
            if not isinstance(node, DirNode):
                return None
            if not self.check_permission(node, 'execute', user, group):
                raise PermissionDenied(normalized)
            child = node.children.get(segment)
            if child is None:
                return None
            node = child

        if required_op and not self.check_permission(node, required_op, user, group):
            raise PermissionDenied(normalized)
        return node

    def exists(self, path: str, user: str = ROOT_USER, group: str = ROOT_USER) -> bool:
        try:
            return self.get_node(path, user, group) is not None
        except PermissionDenied:
            return False

    def _parent_dir(self, parent_path: str, user: str, group: str) -> DirNode:
        parent = self.get_node(parent_path, user, group)
        if parent is None:
            raise NotFound(self.normalize_path(parent_path))
        if not isinstance(parent, DirNode):
            raise NotADirectory(self.normalize_path(parent_path))
        return parent

    def _split(self, path: str):
        normalized = self.normalize_path(path)
        if normalized == '/':
            return '/', ''
        parent, name = normalized.rsplit('/', 1)
        return parent or '/', name

    # Creation

    def add_file(self, parent_path: str, name: str, user: str, group: str,
                 owner: str, owner_group: str, content: str = '',
                 permissions: Optional[str] = None, append: bool = False,
                 bypass_permissions: bool = False) -> FileNode:
        """
        Create a file, or overwrite / append to an existing one.

        Requires write permission on the parent directory, and on the file
        itself when it already exists, unless bypass_permissions is set.
        Existing files keep their owner, group and permissions.
        """
        parent = self._parent_dir(parent_path, user, group)
        full_path = paths.join_path(self.normalize_path(parent_path), name)

        existing = parent.children.get(name)
        if isinstance(existing, DirNode):
            raise IsADirectory(full_path)

        if not bypass_permissions and not self.check_permission(parent, 'write', user, group):
            raise PermissionDenied(full_path)

        if existing is not None:
            if not bypass_permissions and not self.check_permission(existing, 'write', user, group):
                raise PermissionDenied(full_path)
            existing.content = existing.content + content if append else content
            existing.modified = time.time()
            return existing

        node = FileNode(name=name, owner=owner, group=owner_group,
                        permissions=permissions or FILE_DEFAULT, content=content)
        parent.children[name] = node
        parent.modified = node.modified
        return node

    def add_directory(self, parent_path: str, name: str, user: str, group: str,
                      owner: str, owner_group: str,
                      permissions: Optional[str] = None,
                      bypass_permissions: bool = False,
                      exist_ok: bool = False) -> DirNode:
        """
        Create a directory under parent_path.

        Raises AlreadyExists when the name is taken, unless exist_ok is set
        and the existing entry is a directory.
        """
        parent = self._parent_dir(parent_path, user, group)
        full_path = paths.join_path(self.normalize_path(parent_path), name)

        existing = parent.children.get(name)
        if existing is not None:
            if exist_ok and isinstance(existing, DirNode):
                return existing
            raise AlreadyExists(full_path)

        if not bypass_permissions and not self.check_permission(parent, 'write', user, group):
            raise PermissionDenied(full_path)

        node = DirNode(name=name, owner=owner, group=owner_group,
                       permissions=permissions or DIR_DEFAULT)
        parent.children[name] = node
        parent.modified = node.modified
        return node

    def make_dirs(self, path: str, user: str, group: str,
                  owner: Optional[str] = None, owner_group: Optional[str] = None,
                  permissions: Optional[str] = None,
                  bypass_permissions: bool = False) -> DirNode:
        """Create a directory and any missing parents (mkdir -p)."""
        normalized = self.normalize_path(path)
        current = '/'
        node: Node = self.root
        for segment in [s for s in normalized.split('/') if s]:
            node = self.add_directory(current, segment, user, group,
                                      owner or user, owner_group or group,
                                      permissions=permissions,
                                      bypass_permissions=bypass_permissions,
                                      exist_ok=True)
            current = paths.join_path(current, segment)
        return node

    # Reading and writing

    def read_file(self, path: str, user: str, group: str) -> str:
        node = self.get_node(path, user, group)
        if node is None:
            raise NotFound(self.normalize_path(path))
        if isinstance(node, DirNode):
            raise IsADirectory(self.normalize_path(path))
        if not self.check_permission(node, 'read', user, group):
            raise PermissionDenied(self.normalize_path(path))
        return node.content

    def write_file(self, path: str, content: str, user: str, group: str,
                   append: bool = False) -> FileNode:
        """Write to a file, creating it owned by the actor if missing."""
        parent_path, name = self._split(path)
        return self.add_file(parent_path, name, user, group, user, group,
                             content=content, append=append)

    def list_directory(self, path: str, user: str, group: str,
                       show_hidden: bool = False) -> List[Node]:
        """List a directory's entries sorted by name.

        Requires read and execute permission on the directory.
        """
        normalized = self.normalize_path(path)
        node = self.get_node(normalized, user, group)
        if node is None:
            raise NotFound(normalized)
        if not isinstance(node, DirNode):
            raise NotADirectory(normalized)
        if not (self.check_permission(node, 'read', user, group)
                and self.check_permission(node, 'execute', user, group)):
            raise PermissionDenied(normalized)
        entries = [child for name, child in sorted(node.children.items())
                   if show_hidden or not name.startswith('.')]
        return entries

    # Removal and mutation

    def remove_node(self, path: str, user: str, group: str) -> None:
        """
        Remove a node. Requires write permission on the parent directory.

        Non-empty directories are removed as well; refusing them is up to
        the caller.
        """
        normalized = self.normalize_path(path)
        if normalized == '/':
            raise PermissionDenied(normalized)
        parent_path, name = self._split(normalized)
        parent = self._parent_dir(parent_path, user, group)
        if name not in parent.children:
            raise NotFound(normalized)
        if not self.check_permission(parent, 'write', user, group):
            raise PermissionDenied(normalized)
        del parent.children[name]
        parent.modified = time.time()
        logger.debug("removed %s", normalized)

    def move_node(self, src: str, dst_parent: str, dst_name: str,
                  user: str, group: str) -> Node:
        """Rename or move a node. Requires write on both parents."""
        src_norm = self.normalize_path(src)
        if src_norm == '/':
            raise PermissionDenied(src_norm)
        dst_parent_norm = self.normalize_path(dst_parent)
        if dst_parent_norm == src_norm or paths.is_descendant(dst_parent_norm, src_norm):
            raise PermissionDenied(dst_parent_norm)

        src_parent_path, src_name = self._split(src_norm)
        src_parent = self._parent_dir(src_parent_path, user, group)
        node = src_parent.children.get(src_name)
        if node is None:
            raise NotFound(src_norm)
        target_parent = self._parent_dir(dst_parent_norm, user, group)

        if not self.check_permission(src_parent, 'write', user, group):
            raise PermissionDenied(src_norm)
        if not self.check_permission(target_parent, 'write', user, group):
            raise PermissionDenied(paths.join_path(dst_parent_norm, dst_name))

        existing = target_parent.children.get(dst_name)
        if isinstance(existing, DirNode):
            raise IsADirectory(paths.join_path(dst_parent_norm, dst_name))

        del src_parent.children[src_name]
        node.name = dst_name
        node.modified = time.time()
        target_parent.children[dst_name] = node
        return node

    def chmod(self, path: str, permissions: str, user: str, group: str) -> Node:
        """Set the permission string. Only the owner or root may do this."""
        normalized = self.normalize_path(path)
        node = self.get_node(normalized, user, group)
        if node is None:
            raise NotFound(normalized)
        if user != ROOT_USER and user != node.owner:
            raise PermissionDenied(normalized)
        node.permissions = permissions
        node.modified = time.time()
        return node

    def chown(self, path: str, user: str, group: str,
              owner: Optional[str] = None,
              owner_group: Optional[str] = None) -> Node:
        """
        Change owner and/or group.

        Root may change both; an owner may only change the group, and only
        to one of their own groups.
        """
        normalized = self.normalize_path(path)
        node = self.get_node(normalized, user, group)
        if node is None:
            raise NotFound(normalized)
        if user != ROOT_USER:
            if owner is not None and owner != node.owner:
                raise PermissionDenied(normalized)
            if user != node.owner:
                raise PermissionDenied(normalized)
            if owner_group is not None and owner_group not in self.user_groups(user):
                raise PermissionDenied(normalized)
        if owner is not None:
            node.owner = owner
        if owner_group is not None:
            node.group = owner_group
        node.modified = time.time()
        return node

    # Users and groups

    def _read_system_file(self, path: str) -> str:
        node = self.get_node(path, ROOT_USER, ROOT_USER)
        if isinstance(node, FileNode):
            return node.content
        return ''

    def lookup_user(self, username: str) -> Optional[Dict[str, str]]:
        """Look up a user's passwd entry from /etc/passwd."""
        for line in self._read_system_file('/etc/passwd').strip().split('\n'):
            parts = line.split(':')
            if len(parts) >= 7 and parts[0] == username:
                return {'name': parts[0], 'uid': parts[2], 'gid': parts[3],
                        'home': parts[5], 'shell': parts[6]}
        return None

    def _group_entries(self):
        for line in self._read_system_file('/etc/group').strip().split('\n'):
            parts = line.split(':')
            if len(parts) >= 3:
                members = parts[3].split(',') if len(parts) >= 4 and parts[3] else []
                yield parts[0], parts[2], members

    def group_exists(self, name: str) -> bool:
        return any(entry[0] == name for entry in self._group_entries())

    def primary_group(self, username: str) -> str:
        """Resolve a user's primary group name; falls back to the user name."""
        entry = self.lookup_user(username)
        if entry:
            for name, gid, _members in self._group_entries():
                if gid == entry['gid']:
                    return name
        return username

    def user_groups(self, username: str) -> List[str]:
        """All groups of a user, primary group first."""
        groups = [self.primary_group(username)]
        for name, _gid, members in self._group_entries():
            if username in members and name not in groups:
                groups.append(name)
        return groups
