#!/usr/bin/env python3
"""
Command line parsing for shellbox.

Turns a raw input line into pipeline stages made of words, plus an optional
output redirection and here-string. Parsing keeps words in their raw form
(quotes intact) so expansion can honor quoting later, when the environment
is known.

Design Principles:
- Parse, don't execute
- Each step (splitting, tokenizing, expanding) is a pure function
- Quoting rules are applied in exactly one place: expand_word
"""

import fnmatch
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional, Sequence


class ShellSyntaxError(ValueError):
    """Malformed command line."""


class RedirectType(Enum):
    """Types of IO redirection."""
    WRITE = '>'       # Overwrite file
    APPEND = '>>'     # Append to file
    HERE_STR = '<<<'  # Here string


OPERATORS = ('<<<', '>>', '>')


@dataclass
class Token:
    """A raw word or an operator produced by split_words."""
    value: str
    operator: bool = False


@dataclass
class Redirect:
    """Represents an output redirection of the final stage."""
    type: RedirectType
    target: str  # raw, unexpanded


@dataclass
class Stage:
    """One command in a pipeline."""
    words: List[str] = field(default_factory=list)   # raw words
    here_string: Optional[str] = None                 # raw word after <<<

    def __str__(self) -> str:
        return ' '.join(self.words)


@dataclass
class ParsedLine:
    """A full input line: pipeline stages and the final redirection."""
    stages: List[Stage]
    redirect: Optional[Redirect] = None

    def __str__(self) -> str:
        text = ' | '.join(str(stage) for stage in self.stages)
        if self.redirect:
            text += f' {self.redirect.type.value} {self.redirect.target}'
        return text


def _split_unquoted(text: str, separator: str) -> List[str]:
    """Split text on a separator character, respecting quotes and escapes."""
    parts = []
    current = []
    in_single_quote = False
    in_double_quote = False
    escaped = False

    for char in text:
        if escaped:
            current.append(char)
            escaped = False
        elif char == '\\' and not in_single_quote:
            escaped = True
            current.append(char)
        elif char == "'" and not in_double_quote:
            in_single_quote = not in_single_quote
            current.append(char)
        elif char == '"' and not in_single_quote:
            in_double_quote = not in_double_quote
            current.append(char)
        elif char == separator and not in_single_quote and not in_double_quote:
            parts.append(''.join(current))
            current = []
        else:
            current.append(char)

    parts.append(''.join(current))
    return parts


def split_pipeline(line: str) -> List[str]:
    """Split a line into stage texts on unquoted '|'."""
    return [part.strip() for part in _split_unquoted(line, '|')]


def split_statements(text: str) -> List[str]:
    """Split a script line into statements on unquoted ';'."""
    return [part.strip() for part in _split_unquoted(text, ';') if part.strip()]


def split_words(text: str) -> List[Token]:
    """
    Split text into raw words and operators.

    Quotes and backslashes are kept in the word so expand_word can apply
    quoting rules. Operators (>, >>, <<<) are only recognized unquoted and
    also split words they are attached to ("a>b" is three tokens).
    """
    tokens: List[Token] = []
    current: List[str] = []
    in_single = False
    in_double = False
    i = 0

    def push():
        if current:
            tokens.append(Token(''.join(current)))
            current.clear()

    while i < len(text):
        char = text[i]

        if not in_single and not in_double:
            if char.isspace():
                push()
                i += 1
                continue
            op = next((o for o in OPERATORS if text.startswith(o, i)), None)
            if op:
                push()
                tokens.append(Token(op, operator=True))
                i += len(op)
                continue

        if char == '\\' and not in_single:
            current.append(char)
            if i + 1 < len(text):
                current.append(text[i + 1])
            i += 2
            continue
        if char == "'" and not in_double:
            in_single = not in_single
        elif char == '"' and not in_single:
            in_double = not in_double
        current.append(char)
        i += 1

    push()
    return tokens


def parse_line(line: str) -> ParsedLine:
    """
    Parse a command line into stages.

    Only the first here-string of a stage is used. Output redirection is
    accepted on the final stage only; the last one given wins.

    Raises:
        ShellSyntaxError: dangling operator or mid-pipeline redirection
    """
    stage_texts = split_pipeline(line)
    if len(stage_texts) > 1 and any(not text for text in stage_texts):
        raise ShellSyntaxError("syntax error near unexpected token `|'")

    stages: List[Stage] = []
    redirect: Optional[Redirect] = None

    for index, text in enumerate(stage_texts):
        is_last = index == len(stage_texts) - 1
        stage = Stage()
        tokens = split_words(text)
        i = 0
        while i < len(tokens):
            token = tokens[i]
            if not token.operator:
                stage.words.append(token.value)
                i += 1
                continue

            if i + 1 >= len(tokens) or tokens[i + 1].operator:
                following = tokens[i + 1].value if i + 1 < len(tokens) else 'newline'
                raise ShellSyntaxError(
                    f"syntax error near unexpected token `{following}'")
            operand = tokens[i + 1].value

            if token.value == '<<<':
                if stage.here_string is None:
                    stage.here_string = operand
            else:
                if not is_last:
                    raise ShellSyntaxError(
                        "output redirection is only supported on the last command of a pipeline")
                redirect = Redirect(type=RedirectType(token.value), target=operand)
            i += 2

        stages.append(stage)

    if stages and not any(stage.words for stage in stages) and redirect is None:
        return ParsedLine(stages=[], redirect=None)
    return ParsedLine(stages=stages, redirect=redirect)


_NAME_START = re.compile(r'[A-Za-z_]')
_NAME_CHAR = re.compile(r'[A-Za-z0-9_]')


def _read_var_name(s: str, idx: int):
    """Read a variable reference after '$'; returns (name, next_index) or None."""
    if idx >= len(s):
        return None
    if s[idx] == '{':
        end = s.find('}', idx + 1)
        if end == -1:
            return None
        return s[idx + 1:end], end + 1
    if s[idx] in '?#@$' or s[idx].isdigit():
        return s[idx], idx + 1
    if _NAME_START.match(s[idx]):
        j = idx + 1
        while j < len(s) and _NAME_CHAR.match(s[j]):
            j += 1
        return s[idx:j], j
    return None


def expand_word(word: str, env: Dict[str, str]) -> str:
    """
    Expand one raw word: remove quotes, resolve escapes and variables.

    Single quotes are literal. Inside double quotes only \\$, \\" and \\\\
    are escapes. Unset variables expand to the empty string. A leading
    unquoted '~' expands to HOME.
    """
    if word == '~' or word.startswith('~/'):
        word = env.get('HOME', '~') + word[1:]

    out = []
    in_single = False
    in_double = False
    i = 0
    while i < len(word):
        char = word[i]

        if char == "'" and not in_double:
            in_single = not in_single
            i += 1
            continue
        if char == '"' and not in_single:
            in_double = not in_double
            i += 1
            continue

        if char == '\\' and not in_single:
            nxt = word[i + 1] if i + 1 < len(word) else ''
            if in_double:
                if nxt in ('"', '\\', '$'):
                    out.append(nxt)
                    i += 2
                else:
                    out.append(char)
                    i += 1
            else:
                out.append(nxt)
                i += 2
            continue

        if char == '$' and not in_single:
            ref = _read_var_name(word, i + 1)
            if ref:
                name, i = ref
                out.append(str(env.get(name, '')))
                continue

        out.append(char)
        i += 1

    return ''.join(out)


def is_quoted(word: str) -> bool:
    return "'" in word or '"' in word


def expand_words(words: Sequence[str], env: Dict[str, str],
                 glob: Optional[Callable[[str], List[str]]] = None) -> List[str]:
    """
    Expand raw words into arguments.

    Unquoted words that expand to nothing are dropped. Words with unquoted
    glob characters are passed through glob when given.
    """
    result: List[str] = []
    for word in words:
        expanded = expand_word(word, env)
        if expanded == '' and not is_quoted(word):
            continue
        if glob is not None and has_glob(word):
            result.extend(glob(expanded))
        else:
            result.append(expanded)
    return result


def has_glob(word: str) -> bool:
    """True if the raw word contains unquoted, unescaped *, ? or [."""
    in_single = False
    in_double = False
    escaped = False
    for char in word:
        if escaped:
            escaped = False
            continue
        if char == '\\' and not in_single:
            escaped = True
        elif char == "'" and not in_double:
            in_single = not in_single
        elif char == '"' and not in_single:
            in_double = not in_double
        elif char in '*?[' and not in_single and not in_double:
            return True
    return False


def match_glob(pattern: str, name: str) -> bool:
    """Shell-style match; leading dots must be matched explicitly."""
    if name.startswith('.') and not pattern.startswith('.'):
        return False
    return fnmatch.fnmatchcase(name, pattern)


_POSITIONAL = re.compile(r'\$\{(\d+)\}|\$(\d)|\$#|\$@')


def expand_positional(text: str, args: Sequence[str], script_path: str = '') -> str:
    """
    Substitute $0..$9, ${N}, $# and $@ outside single quotes.

    Escaped dollars are left alone.
    """
    def replace(match):
        token = match.group(0)
        if token == '$#':
            return str(len(args))
        if token == '$@':
            return ' '.join(args)
        index = int(match.group(1) or match.group(2))
        if index == 0:
            return script_path
        return args[index - 1] if index <= len(args) else ''

    out = []
    segment = []
    in_single = False
    in_double = False
    i = 0

    def flush():
        if segment:
            out.append(_POSITIONAL.sub(replace, ''.join(segment)))
            segment.clear()

    while i < len(text):
        char = text[i]
        if char == '\\' and not in_single and i + 1 < len(text):
            flush()
            out.append(text[i:i + 2])
            i += 2
            continue
        if char == "'" and not in_double:
            flush()
            in_single = not in_single
            out.append(char)
        elif in_single:
            out.append(char)
        else:
            if char == '"':
                in_double = not in_double
            segment.append(char)
        i += 1
    flush()
    return ''.join(out)
