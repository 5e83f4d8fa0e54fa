#!/usr/bin/env python3
"""
Tests for the embedded Scheme dialect.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from shellbox.scheme_interpreter import (
    SchemeError, ScriptCapabilities, Symbol, create_global_env, evaluate,
    parse, parse_atom, parse_program, run_program, to_display, to_write,
    tokenize,
)


def run(source, capabilities=None):
    """Evaluate every expression and return the last value."""
    env = create_global_env(capabilities)
    result = None
    for expr in parse_program(source):
        result = evaluate(expr, env)
    return result


class TestReader:

    def test_tokenize(self):
        assert tokenize('(+ 1 2)') == ['(', '+', '1', '2', ')']
        assert tokenize('(display "a b")') == ['(', 'display', '"a b"', ')']
        assert tokenize("'x") == ["'", 'x']

    def test_comments_skipped(self):
        assert tokenize('; note\n(f) ; trailing') == ['(', 'f', ')']
        assert tokenize('"a;b"') == ['"a;b"']

    def test_escaped_quote_in_string(self):
        assert tokenize(r'"say \"hi\""') == [r'"say \"hi\""']

    @pytest.mark.parametrize('token, expected', [
        ('42', 42),
        ('-3', -3),
        ('2.5', 2.5),
        ('#t', True),
        ('#f', False),
        ('"a\\nb"', 'a\nb'),
        ('foo', Symbol('foo')),
    ])
    def test_parse_atom(self, token, expected):
        assert parse_atom(token) == expected

    def test_unterminated_string(self):
        with pytest.raises(SyntaxError):
            parse_atom('"abc')

    def test_parse_nested(self):
        assert parse(tokenize('(a (b 1))')) == [Symbol('a'), [Symbol('b'), 1]]

    def test_quote_shorthand(self):
        assert parse(tokenize("'(1 2)")) == [Symbol('quote'), [1, 2]]

    @pytest.mark.parametrize('source', ['(a', ')', '', '(a))'])
    def test_parse_errors(self, source):
        with pytest.raises(SyntaxError):
            parse(tokenize(source))

    def test_parse_program(self):
        assert len(parse_program('(define x 1) (display x) 5')) == 3


class TestEvaluator:

    def test_arithmetic(self):
        assert run('(+ 1 2 3)') == 6
        assert run('(- 10 3 2)') == 5
        assert run('(- 4)') == -4
        assert run('(* 2 3 4)') == 24
        assert run('(/ 9 2)') == 4.5
        assert run('(quotient 9 2)') == 4
        assert run('(modulo 9 4)') == 1

    def test_define_and_call(self):
        assert run('(define (square x) (* x x)) (square 7)') == 49
        assert run('(define add (lambda (a b) (+ a b))) (add 2 3)') == 5

    def test_closures_and_set(self):
        source = '''
        (define (make-counter)
          (let ((n 0))
            (lambda () (set! n (+ n 1)) n)))
        (define c (make-counter))
        (c) (c)
        '''
        assert run(source) == 2

    def test_recursion(self):
        source = '(define (fact n) (if (<= n 1) 1 (* n (fact (- n 1))))) (fact 10)'
        assert run(source) == 3628800

    def test_only_false_is_false(self):
        assert run('(if 0 "yes" "no")') == 'yes'
        assert run("(if '() \"yes\" \"no\")") == 'yes'
        assert run('(if #f "yes" "no")') == 'no'
        assert run('(if #f 1)') is None

    def test_cond_and_or(self):
        assert run('(cond ((= 1 2) "a") ((= 1 1) "b") (else "c"))') == 'b'
        assert run('(cond ((= 1 2) "a") (else "c"))') == 'c'
        assert run('(and 1 2 3)') == 3
        assert run('(and 1 #f 3)') is False
        assert run('(or #f 7)') == 7
        assert run('(or #f #f)') is False

    def test_let_star(self):
        assert run('(let* ((x 2) (y (* x 3))) (+ x y))') == 8

    def test_when_unless(self):
        assert run('(when (> 2 1) 1 2)') == 2
        assert run('(unless (> 2 1) 1)') is None

    def test_lists(self):
        assert run("(car '(1 2 3))") == 1
        assert run("(cdr '(1 2 3))") == [2, 3]
        assert run("(cons 0 '(1))") == [0, 1]
        assert run("(map (lambda (x) (* x x)) '(1 2 3))") == [1, 4, 9]
        assert run("(filter (lambda (x) (> x 1)) '(1 2 3))") == [2, 3]
        assert run("(reduce + '(1 2 3) 0)") == 6
        assert run("(null? '())") is True
        assert run("(length '(a b))") == 2

    def test_strings(self):
        assert run('(string-append "a" "b" "c")') == 'abc'
        assert run('(string-upcase "abc")') == 'ABC'
        assert run('(string-split "a,b" ",")') == ['a', 'b']
        assert run('(string->number "12")') == 12
        assert run('(string->number "x")') is False
        assert run('(number->string 3)') == '3'

    def test_undefined_variable(self):
        with pytest.raises(NameError):
            run('(nope 1)')

    def test_call_non_function(self):
        with pytest.raises(TypeError):
            run('(1 2)')

    def test_arity_error(self):
        with pytest.raises(SchemeError):
            run('(define (f x) x) (f 1 2)')

    def test_error_and_try(self):
        with pytest.raises(SchemeError) as exc:
            run('(error "bad thing:" 42)')
        assert str(exc.value) == 'bad thing: 42'
        assert run('(try (error "boom") (catch error))') == 'boom'
        assert run('(try (car 5))') is False
        assert run('(try (+ 1 2) (catch 0))') == 3


class TestPrinting:

    @pytest.mark.parametrize('value, shown', [
        (True, '#t'),
        (False, '#f'),
        (None, ''),
        ([1, 'a', Symbol('b')], '(1 "a" b)'),
        ('plain', 'plain'),
        (3.5, '3.5'),
    ])
    def test_to_display(self, value, shown):
        assert to_display(value) == shown

    def test_to_write_quotes_strings(self):
        assert to_write('say "hi"') == '"say \\"hi\\""'


class TestCapabilities:

    def setup_method(self):
        self.out = []
        self.err = []
        self.files = {'/data.txt': 'content'}
        self.caps = ScriptCapabilities(
            write_stdout=self.out.append,
            write_stderr=self.err.append,
            argv=['/s.scm', 'one'],
            environ={'USER': 'alice'},
            read_file=lambda path: self.files[path],
            file_exists=lambda path: path in self.files,
        )

    def test_output(self):
        assert run_program('(display "hi") (newline) (write "q")', self.caps) == 0
        assert ''.join(self.out) == 'hi\n"q"'

    def test_stderr_and_write_line(self):
        run_program('(write-line 5) (display-error "oops")', self.caps)
        assert self.out == ['5\n']
        assert self.err == ['oops']

    def test_argv_and_environment(self):
        run_program('(display (car (cdr (command-line)))) (display (getenv "USER"))',
                    self.caps)
        assert ''.join(self.out) == 'onealice'
        assert run('(getenv "MISSING")', self.caps) is False

    def test_files(self):
        run_program('(if (file-exists? "/data.txt") (display (read-file "/data.txt")))',
                    self.caps)
        assert self.out == ['content']

    def test_exit_codes(self):
        assert run_program('(display "a") (exit 3) (display "b")', self.caps) == 3
        assert self.out == ['a']
        assert run_program('(exit)', self.caps) == 0
        assert run_program('(exit #f)', self.caps) == 1

    def test_exit_escapes_try(self):
        assert run_program('(try (exit 4) (catch 0))', self.caps) == 4

    def test_errors_propagate(self):
        with pytest.raises(SchemeError):
            run_program('(error "fail")', self.caps)

    def test_pure_env_has_no_io(self):
        env = create_global_env()
        with pytest.raises(NameError):
            env.get('display')
        with pytest.raises(NameError):
            env.get('read-file')
