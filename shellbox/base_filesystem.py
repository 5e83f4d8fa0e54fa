#!/usr/bin/env python3
"""
Standard directory tree for a fresh shellbox session.

Seeds system directories, user database files, /dev/null, a few /proc
files and example scripts in the user's home directory. Executables
for builtins are added to /bin and /usr/bin by Shell.register_command.
"""

from typing import Optional

from .filesystem import FileSystem, ROOT_USER
from . import paths

DEFAULT_USER = 'user'
DEFAULT_GROUP = 'user'

SYSTEM_DIRECTORIES = (
    '/bin', '/boot', '/dev', '/etc', '/home', '/lib', '/proc', '/root',
    '/tmp', '/usr', '/usr/bin', '/usr/local', '/usr/local/bin',
    '/var', '/var/log', '/var/tmp',
)

WORLD_WRITABLE = ('/tmp', '/var/tmp')

PROC_FILES = {
    'cpuinfo': (
        "processor\t: 0\n"
        "vendor_id\t: ShellboxVirtual\n"
        "model name\t: Virtual CPU @ 1.00GHz\n"
        "cpu MHz\t\t: 1000.000\n"
        "cache size\t: 512 KB\n"
    ),
    'meminfo': (
        "MemTotal:        2048000 kB\n"
        "MemFree:         1024000 kB\n"
        "MemAvailable:    1536000 kB\n"
        "Buffers:           64000 kB\n"
        "Cached:           256000 kB\n"
    ),
    'uptime': "4242.42 8484.84\n",
    'version': "Linux version 6.0.0-shellbox (shellbox@virtual) #1 SMP\n",
    'loadavg': "0.00 0.01 0.05 1/42 1337\n",
    'stat': "cpu  100 0 50 10000 0 0 0 0 0 0\nprocs_running 1\nprocs_blocked 0\n",
}

EXAMPLE_SCRIPTS = {
    'hello.sh': '#!/bin/sh\n# Prints a greeting\necho "Hello from script"\n',
    'greet.sh': '#!/bin/sh\necho "Hello, $1"\n',
    'count.sh': '#!/bin/sh\necho 1; echo 2\necho 3\n',
    'hello.scm': (
        '#!/usr/bin/env scheme\n'
        '(display "Hello from scheme")\n'
        '(newline)\n'
    ),
}


def executable_stub(name: str) -> str:
    """Placeholder content for a simulated builtin executable."""
    return f'{name}: shellbox builtin\n'


def passwd_content(user: str, group: str, home: str) -> str:
    lines = ['root:x:0:0:root:/root:/bin/sh']
    if user != ROOT_USER:
        lines.append(f'{user}:x:1000:1000:{user}:{home}:/bin/sh')
    return '\n'.join(lines) + '\n'


def group_content(user: str, group: str) -> str:
    lines = ['root:x:0:']
    if group != ROOT_USER:
        lines.append(f'{group}:x:1000:{user}')
    return '\n'.join(lines) + '\n'


def add_base_filesystem(fs: FileSystem, user: str = DEFAULT_USER,
                        group: str = DEFAULT_GROUP,
                        home: Optional[str] = None) -> str:
    """
    Populate fs with the standard tree.

    Args:
        fs: Filesystem to seed
        user: Login user owning the home directory
        group: That user's primary group
        home: Home directory (defaults to /home/USER, or /root for root)

    Returns:
        The home directory path
    """
    if home is None:
        home = '/root' if user == ROOT_USER else f'/home/{user}'

    for path in SYSTEM_DIRECTORIES:
        fs.make_dirs(path, ROOT_USER, ROOT_USER, bypass_permissions=True)
    for path in WORLD_WRITABLE:
        fs.chmod(path, 'rwxrwxrwx', ROOT_USER, ROOT_USER)
    fs.chmod('/root', 'rwx------', ROOT_USER, ROOT_USER)

    fs.make_dirs(home, ROOT_USER, ROOT_USER, bypass_permissions=True)
    fs.chown(home, ROOT_USER, ROOT_USER, owner=user, owner_group=group)

    def seed(directory, name, content, permissions=None, owner=ROOT_USER,
             owner_group=ROOT_USER):
        fs.add_file(directory, name, ROOT_USER, ROOT_USER, owner, owner_group,
                    content=content, permissions=permissions,
                    bypass_permissions=True)

    seed('/etc', 'passwd', passwd_content(user, group, home))
    seed('/etc', 'group', group_content(user, group))
    seed('/etc', 'hostname', 'shellbox\n')
    seed('/etc', 'motd', 'Welcome to shellbox. Type help to list commands.\n')
    seed('/dev', 'null', '', permissions='rw-rw-rw-')

    for name, content in PROC_FILES.items():
        seed('/proc', name, content, permissions='r--r--r--')

    for name, content in EXAMPLE_SCRIPTS.items():
        seed(home, name, content, permissions='rwxr-xr-x',
             owner=user, owner_group=group)
    seed(home, '.profile', 'export PATH=/bin:/usr/bin:/usr/local/bin\n',
         owner=user, owner_group=group)

    return paths.normalize_path(home)
