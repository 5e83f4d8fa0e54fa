#!/usr/bin/env python3
"""
Tests for the standard directory tree seeded into new sessions.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from shellbox.base_filesystem import (
    EXAMPLE_SCRIPTS, SYSTEM_DIRECTORIES, add_base_filesystem, executable_stub,
)
from shellbox.builtins import COMMANDS
from shellbox.filesystem import DirNode, FileNode, FileSystem
from shellbox.terminal import create_shell


class TestBaseFilesystem:
    """Seeding a fresh filesystem."""

    def setup_method(self):
        self.fs = FileSystem()
        self.home = add_base_filesystem(self.fs, 'user', 'user')

    def test_home_directory(self):
        assert self.home == '/home/user'
        node = self.fs.get_node(self.home, 'user', 'user')
        assert isinstance(node, DirNode)
        assert node.owner == 'user'

    def test_root_home(self):
        fs = FileSystem()
        assert add_base_filesystem(fs, 'root', 'root') == '/root'

    def test_system_directories(self):
        for path in SYSTEM_DIRECTORIES:
            assert isinstance(self.fs.get_node(path, 'root', 'root'), DirNode), path
        assert self.fs.get_node('/tmp', 'root', 'root').permissions == 'rwxrwxrwx'
        assert self.fs.get_node('/root', 'root', 'root').permissions == 'rwx------'

    def test_user_database(self):
        passwd = self.fs.read_file('/etc/passwd', 'user', 'user')
        assert passwd.startswith('root:x:0:0:')
        assert 'user:x:1000:1000:user:/home/user:/bin/sh' in passwd
        assert self.fs.primary_group('user') == 'user'
        assert self.fs.read_file('/etc/hostname', 'user', 'user') == 'shellbox\n'

    def test_devices_and_proc(self):
        null = self.fs.get_node('/dev/null', 'root', 'root')
        assert null.permissions == 'rw-rw-rw-'
        assert 'processor' in self.fs.read_file('/proc/cpuinfo', 'user', 'user')
        assert 'MemTotal' in self.fs.read_file('/proc/meminfo', 'user', 'user')

    def test_bin_starts_empty(self):
        assert self.fs.list_directory('/bin', 'user', 'user') == []
        assert self.fs.list_directory('/usr/bin', 'user', 'user') == []

    def test_example_scripts(self):
        for name in EXAMPLE_SCRIPTS:
            node = self.fs.get_node(f'/home/user/{name}', 'user', 'user')
            assert node.owner == 'user'
            assert node.content.startswith('#!')
            assert 'x' in node.permissions

    def test_registered_commands_become_executables(self):
        fs = create_shell().fs
        for name in COMMANDS:
            for directory in ('/bin', '/usr/bin'):
                node = fs.get_node(f'{directory}/{name}', 'user', 'user')
                assert isinstance(node, FileNode), name
                assert node.content == executable_stub(name)
                assert fs.check_permission(node, 'execute', 'user', 'user')
        names = [node.name for node in fs.list_directory('/bin', 'user', 'user')]
        assert names == sorted(COMMANDS)
