#!/usr/bin/env python3
"""
Tests for command line parsing and word expansion.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest
from shellbox.command_parser import (
    RedirectType, ShellSyntaxError, expand_positional, expand_word,
    expand_words, has_glob, match_glob, parse_line, split_pipeline,
    split_statements, split_words,
)

ENV = {'HOME': '/home/user', 'USER': 'user', 'NAME': 'World', '?': '0', 'EMPTY': ''}


class TestSplitting:

    def test_split_pipeline_respects_quotes(self):
        assert split_pipeline('a | "b|c" | d') == ['a', '"b|c"', 'd']
        assert split_pipeline("echo 'x|y'") == ["echo 'x|y'"]

    def test_split_statements(self):
        assert split_statements("echo 1; echo '2;3' ;") == ['echo 1', "echo '2;3'"]
        assert split_statements('   ') == []

    def test_split_words_keeps_quotes(self):
        values = [t.value for t in split_words('echo "a b" \'c d\' e\\ f')]
        assert values == ['echo', '"a b"', "'c d'", 'e\\ f']

    def test_split_words_detaches_operators(self):
        tokens = split_words('echo hi>out.txt')
        assert [(t.value, t.operator) for t in tokens] == [
            ('echo', False), ('hi', False), ('>', True), ('out.txt', False)]

    def test_quoted_operator_is_a_word(self):
        tokens = split_words('echo ">"')
        assert not any(t.operator for t in tokens)


class TestParseLine:

    def test_simple(self):
        parsed = parse_line('echo hello world')
        assert len(parsed.stages) == 1
        assert parsed.stages[0].words == ['echo', 'hello', 'world']
        assert parsed.redirect is None

    def test_pipeline(self):
        parsed = parse_line('cat f | tail -n 1')
        assert [s.words for s in parsed.stages] == [['cat', 'f'], ['tail', '-n', '1']]

    def test_redirects(self):
        parsed = parse_line('echo a > out.txt')
        assert parsed.redirect.type is RedirectType.WRITE
        assert parsed.redirect.target == 'out.txt'
        parsed = parse_line('echo a >> "my log"')
        assert parsed.redirect.type is RedirectType.APPEND
        assert parsed.redirect.target == '"my log"'

    def test_last_redirect_wins(self):
        parsed = parse_line('echo a > x >> y')
        assert parsed.redirect.type is RedirectType.APPEND
        assert parsed.redirect.target == 'y'

    def test_here_string(self):
        parsed = parse_line('cat <<< "hello world" <<< ignored')
        assert parsed.stages[0].words == ['cat']
        assert parsed.stages[0].here_string == '"hello world"'

    def test_redirect_only_on_last_stage(self):
        with pytest.raises(ShellSyntaxError):
            parse_line('echo a > f | cat')

    def test_dangling_operator(self):
        with pytest.raises(ShellSyntaxError) as exc:
            parse_line('echo >')
        assert "`newline'" in str(exc.value)
        with pytest.raises(ShellSyntaxError):
            parse_line('echo > >> f')

    def test_empty_pipe_segment(self):
        with pytest.raises(ShellSyntaxError):
            parse_line('echo a || cat')
        with pytest.raises(ShellSyntaxError):
            parse_line('| cat')

    def test_blank_lines(self):
        assert parse_line('').stages == []
        assert parse_line('   ').stages == []

    def test_bare_redirect_keeps_stage(self):
        parsed = parse_line('> empty.txt')
        assert len(parsed.stages) == 1
        assert parsed.stages[0].words == []
        assert parsed.redirect.target == 'empty.txt'

    def test_str(self):
        assert str(parse_line('a b | c > f')) == 'a b | c > f'


class TestExpandWord:

    @pytest.mark.parametrize('word, expected', [
        ('plain', 'plain'),
        ('"$HOME/x"', '/home/user/x'),
        ("'$HOME'", '$HOME'),
        ('${USER}!', 'user!'),
        ('Hello,$NAME', 'Hello,World'),
        ('$UNSET', ''),
        ('\\$HOME', '$HOME'),
        ('"a\\"b"', 'a"b'),
        ('"keep\\n"', 'keep\\n'),
        ('~', '/home/user'),
        ('~/docs', '/home/user/docs'),
        ('a~', 'a~'),
        ('$?', '0'),
        ('cost: $', 'cost: $'),
        ('"mixed "\'quotes\'', 'mixed quotes'),
    ])
    def test_expand(self, word, expected):
        assert expand_word(word, ENV) == expected

    def test_expand_words_drops_empty_unquoted(self):
        assert expand_words(['echo', '$EMPTY', '""', "''"], ENV) == ['echo', '', '']

    def test_expand_words_glob_callback(self):
        seen = []

        def fake_glob(pattern):
            seen.append(pattern)
            return ['a.txt', 'b.txt']

        words = expand_words(['ls', '*.txt', "'*.txt'", '\\*.txt'], ENV, glob=fake_glob)
        assert words == ['ls', 'a.txt', 'b.txt', '*.txt', '*.txt']
        assert seen == ['*.txt']


class TestGlob:

    def test_has_glob(self):
        assert has_glob('*.txt')
        assert has_glob('file?')
        assert has_glob('[ab]c')
        assert not has_glob('"*.txt"')
        assert not has_glob("'a?'")
        assert not has_glob('\\*')

    def test_match_glob(self):
        assert match_glob('*.txt', 'a.txt')
        assert not match_glob('*.txt', 'a.md')
        assert not match_glob('*', '.hidden')
        assert match_glob('.*', '.hidden')
        assert match_glob('f[0-9]', 'f7')


class TestPositional:

    def test_numbered(self):
        text = expand_positional('echo "$1" \'$1\' $2 $#', ['x'], '/s.sh')
        assert text == 'echo "x" \'$1\'  1'

    def test_script_path_and_all(self):
        assert expand_positional('echo $0 $@', ['a', 'b'], '/s.sh') == 'echo /s.sh a b'

    def test_braced(self):
        args = [str(n) for n in range(1, 12)]
        assert expand_positional('${11}', args) == '11'

    def test_escaped_dollar_untouched(self):
        assert expand_positional('echo \\$1', ['x']) == 'echo \\$1'
