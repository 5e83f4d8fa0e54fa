#!/usr/bin/env python3
"""
Tests for script interpreters and the interpreter registry.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import asyncio

from shellbox.interpreters import (
    InterpreterRegistry, read_script, scheme_script_interpreter,
    shell_script_interpreter,
)
from shellbox.streams import CancellationToken, InputStream, IOStreams, StreamBuffer
from shellbox.terminal import create_shell


def make_io(stdin=''):
    out, err = StreamBuffer(), StreamBuffer()
    io = IOStreams(stdin=InputStream(stdin), stdout=out.stream,
                   stderr=err.stream, signal=CancellationToken())
    return io, out, err


def run(shell, line):
    io, out, err = make_io()
    code = asyncio.run(shell.execute_headless(line, io))
    return code, out.getvalue(), err.getvalue()


def write_script(shell, name, content, permissions='rwxr-xr-x'):
    fs = shell.fs
    fs.add_file('/home/user', name, 'user', 'user', 'user', 'user',
                content=content, permissions=permissions)
    return f'/home/user/{name}'


class TestRegistry:

    def test_defaults(self):
        registry = InterpreterRegistry()
        assert registry.get('sh') is shell_script_interpreter
        assert registry.get('/bin/bash') is shell_script_interpreter
        assert registry.get('scheme') is scheme_script_interpreter
        assert registry.get('/usr/local/bin/scheme') is scheme_script_interpreter
        assert 'zsh' in registry.names()

    def test_basename_fallback(self):
        registry = InterpreterRegistry()
        assert registry.get('/opt/tools/sh') is shell_script_interpreter
        assert registry.get('python') is None

    def test_empty_registry(self):
        assert InterpreterRegistry(register_defaults=False).names() == []

    def test_custom_interpreter(self):
        shell = create_shell()

        async def upper(script_path, args, context, io, fs):
            body = read_script(script_path, context, io, fs, 'upper')
            io.stdout.write(body.upper())
            return len(args)

        shell.interpreters.register('upper', upper)
        write_script(shell, 'shout', '#!/usr/bin/env upper\nhello\n')
        code, out, _ = run(shell, './shout a b')
        assert out == 'HELLO\n'
        assert code == 2

    def test_unknown_interpreter(self):
        shell = create_shell()
        write_script(shell, 'py', '#!/usr/bin/python3\nprint(1)\n')
        code, _, err = run(shell, './py')
        assert code == 127
        assert err == '/usr/bin/python3: Interpreter not found\n'

    def test_interpreter_crash(self):
        shell = create_shell()

        async def broken(script_path, args, context, io, fs):
            raise RuntimeError('kaput')

        shell.interpreters.register('broken', broken)
        write_script(shell, 'b', '#!/usr/bin/env broken\n')
        code, _, err = run(shell, './b')
        assert code == 1
        assert err == 'broken: script execution failed: kaput\n'


class TestShellScripts:

    def setup_method(self):
        self.shell = create_shell()

    def test_example_scripts(self):
        assert run(self.shell, './hello.sh') == (0, 'Hello from script\n', '')
        assert run(self.shell, './count.sh')[1] == '1\n2\n3\n'

    def test_positional_parameters(self):
        assert run(self.shell, './greet.sh World')[1] == 'Hello, World\n'
        write_script(self.shell, 'args.sh', '#!/bin/sh\necho $# "$@" $0\n')
        assert run(self.shell, './args.sh a b')[1] == '2 a b /home/user/args.sh\n'

    def test_shebang_options_are_not_arguments(self):
        write_script(self.shell, 'opt.sh', '#!/bin/sh -e\necho first=$1\n')
        assert run(self.shell, './opt.sh x')[1] == 'first=x\n'

    def test_comments_and_blank_lines(self):
        write_script(self.shell, 'c.sh', '#!/bin/sh\n\n# comment\necho ok # not a comment\n')
        assert run(self.shell, './c.sh')[1] == 'ok # not a comment\n'

    def test_assignment_and_substitution(self):
        write_script(self.shell, 'v.sh',
                     '#!/bin/sh\nGREETING=hello\nNAME=$(echo hi)\necho $GREETING $NAME\n')
        code, out, _ = run(self.shell, './v.sh')
        assert code == 0
        assert out == 'hello hi\n'
        assert self.shell.context.env['NAME'] == 'hi'

    def test_quoted_substitution(self):
        write_script(self.shell, 'q.sh',
                     '#!/bin/sh\nNAME="$(echo hi)"\nOTHER=\'$(echo there)\'\n')
        assert run(self.shell, './q.sh')[0] == 0
        assert self.shell.context.env['NAME'] == 'hi'
        assert self.shell.context.env['OTHER'] == 'there'

    def test_quoted_literal_value(self):
        write_script(self.shell, 'lit.sh',
                     '#!/bin/sh\nA="two words"\nB=\'$HOME\'\n')
        run(self.shell, './lit.sh')
        assert self.shell.context.env['A'] == 'two words'
        assert self.shell.context.env['B'] == '$HOME'

    def test_assignment_expands_variables(self):
        write_script(self.shell, 'home.sh', '#!/bin/sh\nDIR=$HOME/docs\necho $DIR\n')
        assert run(self.shell, './home.sh')[1] == '/home/user/docs\n'

    def test_failures_do_not_stop_script(self):
        write_script(self.shell, 'f.sh', '#!/bin/sh\nnosuchcmd\necho after\n')
        code, out, err = run(self.shell, './f.sh')
        assert code == 0
        assert out == 'after\n'
        assert "Command 'nosuchcmd' not found" in err

    def test_script_changes_directory(self):
        write_script(self.shell, 'go.sh', '#!/bin/sh\ncd /tmp\n')
        run(self.shell, './go.sh')
        assert self.shell.context.cwd == '/tmp'

    def test_script_redirect(self):
        write_script(self.shell, 'w.sh', '#!/bin/sh\necho saved > out.txt\n')
        run(self.shell, './w.sh')
        assert self.shell.fs.read_file('/home/user/out.txt', 'user', 'user') == 'saved\n'

    def test_unreadable_script(self):
        write_script(self.shell, 'x.sh', '#!/bin/sh\necho hi\n', permissions='--x--x--x')
        code, out, err = run(self.shell, './x.sh')
        assert code == 1
        assert out == ''
        assert err == 'sh: /home/user/x.sh: Permission denied\n'

    def test_cancelled_before_statement(self):
        path = write_script(self.shell, 'c.sh', '#!/bin/sh\necho one\n')
        io, out, _ = make_io()
        io.signal.cancel()
        code = asyncio.run(shell_script_interpreter(
            path, [], self.shell.context, io, self.shell.fs))
        assert code == 130
        assert out.getvalue() == ''

    def test_recursive_script_hits_depth_limit(self):
        self.shell.config.max_depth = 5
        write_script(self.shell, 'loop.sh', '#!/bin/sh\n./loop.sh\n')
        code, _, err = run(self.shell, './loop.sh')
        assert code == 0
        assert err.count('maximum nesting depth (5) exceeded') == 1


class TestSchemeScripts:

    def setup_method(self):
        self.shell = create_shell()

    def test_example(self):
        assert run(self.shell, './hello.scm') == (0, 'Hello from scheme\n', '')

    def test_arguments_and_environment(self):
        write_script(self.shell, 'a.scm',
                     '#!/usr/bin/env scheme\n'
                     '(display (cdr (command-line)))\n'
                     '(display (getenv "USER"))\n')
        assert run(self.shell, './a.scm x y')[1] == '("x" "y")user'

    def test_file_access_is_permission_checked(self):
        write_script(self.shell, 'r.scm',
                     '#!/usr/bin/env scheme\n(display (read-file "/etc/hostname"))\n')
        assert run(self.shell, './r.scm')[1] == 'shellbox\n'
        write_script(self.shell, 's.scm',
                     '#!/usr/bin/env scheme\n(display (file-exists? "/root/.profile"))\n')
        assert run(self.shell, './s.scm')[1] == '#f'

    def test_relative_paths(self):
        write_script(self.shell, 'rel.scm',
                     '#!/usr/bin/env scheme\n(display (file-exists? "hello.sh"))\n')
        assert run(self.shell, './rel.scm')[1] == '#t'

    def test_exit_status(self):
        write_script(self.shell, 'e.scm', '#!/usr/bin/env scheme\n(exit 3)\n')
        assert run(self.shell, './e.scm')[0] == 3
        assert self.shell.context.env['?'] == '3'

    def test_errors_reported(self):
        write_script(self.shell, 'bad.scm', '#!/usr/bin/env scheme\n(error "bad input")\n')
        code, _, err = run(self.shell, './bad.scm')
        assert code == 1
        assert err == 'scheme: SchemeError: bad input\n'

    def test_syntax_error(self):
        write_script(self.shell, 'p.scm', '#!/usr/bin/env scheme\n(display "x"\n')
        code, out, err = run(self.shell, './p.scm')
        assert code == 1
        assert out == ''
        assert err.startswith('scheme: SyntaxError:')

    def test_runaway_recursion(self):
        write_script(self.shell, 'deep.scm',
                     '#!/usr/bin/env scheme\n(define (f n) (f (+ n 1)))\n(f 0)\n')
        code, _, err = run(self.shell, './deep.scm')
        assert code == 1
        assert 'RecursionError' in err
