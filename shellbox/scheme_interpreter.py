#!/usr/bin/env python3
"""
Embedded Scheme dialect for shellbox scripts.

A small Scheme interpreter used by scripts whose shebang names ``scheme``.
Scripts cannot reach the host: the only effects available are the ones
listed in :class:`ScriptCapabilities`, which the caller builds from the
shell session (output streams, argv, an environment snapshot and
permission-checked file reads).
"""

import operator
from dataclasses import dataclass, field
from functools import reduce
from typing import Any, Callable, Dict, List, Optional, Tuple


class SchemeError(Exception):
    """Raised by (error ...) and by evaluation faults."""


class ScriptExit(Exception):
    """Control-flow signal raised by (exit [code])."""

    def __init__(self, code: int = 0):
        self.code = code
        super().__init__(f"exit {code}")


@dataclass
class ScriptCapabilities:
    """The complete set of effects a script may perform."""
    write_stdout: Callable[[str], None]
    write_stderr: Callable[[str], None]
    argv: List[str] = field(default_factory=list)
    environ: Dict[str, str] = field(default_factory=dict)
    read_file: Optional[Callable[[str], str]] = None
    file_exists: Optional[Callable[[str], bool]] = None


@dataclass
class Symbol:
    """Represents a Scheme symbol."""
    name: str

    def __repr__(self):
        return self.name


@dataclass
class Procedure:
    """Represents a user-defined procedure."""
    params: List[Symbol]
    body: Any
    env: 'Environment'

    def __call__(self, *args):
        if len(args) != len(self.params):
            raise SchemeError(
                f"procedure expects {len(self.params)} arguments, got {len(args)}")
        local_env = Environment(parent=self.env)
        for param, arg in zip(self.params, args):
            local_env.define(param.name, arg)
        return evaluate(self.body, local_env)


class Environment:
    """Lexical environment for variable bindings."""

    def __init__(self, parent: Optional['Environment'] = None):
        self.bindings: Dict[str, Any] = {}
        self.parent = parent

    def define(self, name: str, value: Any):
        self.bindings[name] = value

    def set(self, name: str, value: Any):
        env = self._find(name)
        env.bindings[name] = value

    def get(self, name: str) -> Any:
        return self._find(name).bindings[name]

    def _find(self, name: str) -> 'Environment':
        env = self
        while env is not None:
            if name in env.bindings:
                return env
            env = env.parent
        raise NameError(f"Undefined variable: {name}")


# Reader

_ESCAPES = {'n': '\n', 't': '\t', '\\': '\\', '"': '"'}


def tokenize(text: str) -> List[str]:
    """Convert Scheme source into tokens.

    String literals stay single tokens, quotes included. ';' starts a
    comment outside strings.
    """
    tokens = []
    current = []
    i = 0

    def push():
        if current:
            tokens.append(''.join(current))
            current.clear()

    while i < len(text):
        char = text[i]
        if char == '"':
            push()
            j = i + 1
            while j < len(text) and text[j] != '"':
                j += 2 if text[j] == '\\' else 1
            tokens.append(text[i:j + 1])
            i = j + 1
        elif char == ';':
            push()
            while i < len(text) and text[i] != '\n':
                i += 1
        elif char in "()'":
            push()
            tokens.append(char)
            i += 1
        elif char.isspace():
            push()
            i += 1
        else:
            current.append(char)
            i += 1
    push()
    return tokens


def _parse_expr(tokens: List[str], idx: int) -> Tuple[Any, int]:
    """Parse one expression starting at idx; returns it and the next index."""
    if idx >= len(tokens):
        raise SyntaxError("Unexpected EOF")

    token = tokens[idx]
    if token == '(':
        lst = []
        idx += 1
        while idx < len(tokens) and tokens[idx] != ')':
            expr, idx = _parse_expr(tokens, idx)
            lst.append(expr)
        if idx >= len(tokens):
            raise SyntaxError("Missing closing parenthesis")
        return lst, idx + 1
    if token == ')':
        raise SyntaxError("Unexpected closing parenthesis")
    if token == "'":
        quoted, idx = _parse_expr(tokens, idx + 1)
        return [Symbol('quote'), quoted], idx
    return parse_atom(token), idx + 1


def parse(tokens: List[str]) -> Any:
    """Parse a single expression."""
    if not tokens:
        raise SyntaxError("Unexpected EOF")
    expr, next_idx = _parse_expr(tokens, 0)
    if next_idx < len(tokens) and tokens[next_idx] == ')':
        raise SyntaxError("Unexpected closing parenthesis")
    return expr


def parse_program(text: str) -> List[Any]:
    """Parse every top-level expression of a program."""
    tokens = tokenize(text)
    program = []
    idx = 0
    while idx < len(tokens):
        expr, idx = _parse_expr(tokens, idx)
        program.append(expr)
    return program


def _unescape(body: str) -> str:
    out = []
    i = 0
    while i < len(body):
        if body[i] == '\\' and i + 1 < len(body):
            out.append(_ESCAPES.get(body[i + 1], body[i + 1]))
            i += 2
        else:
            out.append(body[i])
            i += 1
    return ''.join(out)


def parse_atom(token: str) -> Any:
    """Parse an atomic token."""
    if token.startswith('"'):
        if len(token) < 2 or not token.endswith('"'):
            raise SyntaxError("Unterminated string literal")
        return _unescape(token[1:-1])

    try:
        if '.' in token:
            return float(token)
        return int(token)
    except ValueError:
        pass

    if token == '#t':
        return True
    if token == '#f':
        return False

    return Symbol(token)


# Evaluator

def _body(exprs: List[Any], env: Environment) -> Any:
    result = None
    for expr in exprs:
        result = evaluate(expr, env)
    return result


def _is_true(value: Any) -> bool:
    # Only #f is false in Scheme
    return value is not False


def _form_quote(expr, env):
    return expr[1] if len(expr) > 1 else None


def _form_define(expr, env):
    if len(expr) < 3:
        raise SyntaxError("define requires a name and a value")
    target = expr[1]
    if isinstance(target, list):
        # (define (name params...) body...)
        if not target or not isinstance(target[0], Symbol):
            raise SyntaxError("First argument to define must be a symbol")
        value = _make_lambda(target[1:], expr[2:], env)
        env.define(target[0].name, value)
        return value
    if not isinstance(target, Symbol) or len(expr) != 3:
        raise SyntaxError("First argument to define must be a symbol")
    value = evaluate(expr[2], env)
    env.define(target.name, value)
    return value


def _form_set(expr, env):
    if len(expr) != 3 or not isinstance(expr[1], Symbol):
        raise SyntaxError("set! requires a symbol and a value")
    value = evaluate(expr[2], env)
    env.set(expr[1].name, value)
    return value


def _make_lambda(params, body, env):
    if not isinstance(params, list) or not all(isinstance(p, Symbol) for p in params):
        raise SyntaxError("Lambda parameters must be a list of symbols")
    if not body:
        raise SyntaxError("lambda requires a body")
    return Procedure(params, body[0] if len(body) == 1 else [Symbol('begin')] + body, env)


def _form_lambda(expr, env):
    if len(expr) < 3:
        raise SyntaxError("lambda requires parameters and body")
    return _make_lambda(expr[1], expr[2:], env)


def _form_if(expr, env):
    if len(expr) not in (3, 4):
        raise SyntaxError("if requires 2 or 3 arguments")
    if _is_true(evaluate(expr[1], env)):
        return evaluate(expr[2], env)
    return evaluate(expr[3], env) if len(expr) == 4 else None


def _form_when(expr, env):
    if _is_true(evaluate(expr[1], env)):
        return _body(expr[2:], env)
    return None


def _form_unless(expr, env):
    if not _is_true(evaluate(expr[1], env)):
        return _body(expr[2:], env)
    return None


def _form_begin(expr, env):
    return _body(expr[1:], env)


def _bindings(expr, name):
    if len(expr) < 3 or not isinstance(expr[1], list):
        raise SyntaxError(f"{name} requires bindings and body")
    for binding in expr[1]:
        if (not isinstance(binding, list) or len(binding) != 2
                or not isinstance(binding[0], Symbol)):
            raise SyntaxError(f"Each {name} binding must be a (symbol value) pair")
    return expr[1]


def _form_let(expr, env):
    local_env = Environment(parent=env)
    for name, value in _bindings(expr, 'let'):
        local_env.define(name.name, evaluate(value, env))
    return _body(expr[2:], local_env)


def _form_let_star(expr, env):
    local_env = Environment(parent=env)
    for name, value in _bindings(expr, 'let*'):
        local_env.define(name.name, evaluate(value, local_env))
    return _body(expr[2:], local_env)


def _form_cond(expr, env):
    for clause in expr[1:]:
        if not isinstance(clause, list) or len(clause) < 2:
            raise SyntaxError("Each cond clause must be a list of at least 2 elements")
        test = clause[0]
        if isinstance(test, Symbol) and test.name == 'else':
            return _body(clause[1:], env)
        if _is_true(evaluate(test, env)):
            return _body(clause[1:], env)
    return None


def _form_and(expr, env):
    result = True
    for arg in expr[1:]:
        result = evaluate(arg, env)
        if result is False:
            return False
    return result


def _form_or(expr, env):
    for arg in expr[1:]:
        result = evaluate(arg, env)
        if result is not False:
            return result
    return False


def _form_try(expr, env):
    """(try expr (catch handler...)) binds the message to `error` in the handler."""
    if len(expr) < 2:
        raise SyntaxError("try requires an expression")
    try:
        return evaluate(expr[1], env)
    except ScriptExit:
        raise
    except Exception as e:
        clause = expr[2] if len(expr) >= 3 else None
        if (isinstance(clause, list) and clause and isinstance(clause[0], Symbol)
                and clause[0].name == 'catch'):
            catch_env = Environment(parent=env)
            catch_env.define('error', str(e))
            return _body(clause[1:], catch_env)
        return False


SPECIAL_FORMS = {
    'quote': _form_quote,
    'define': _form_define,
    'set!': _form_set,
    'lambda': _form_lambda,
    'if': _form_if,
    'when': _form_when,
    'unless': _form_unless,
    'begin': _form_begin,
    'let': _form_let,
    'let*': _form_let_star,
    'cond': _form_cond,
    'and': _form_and,
    'or': _form_or,
    'try': _form_try,
}


def evaluate(expr: Any, env: Environment) -> Any:
    """Evaluate an expression in an environment."""
    if isinstance(expr, (int, float, str, bool, type(None))):
        return expr

    if isinstance(expr, Symbol):
        return env.get(expr.name)

    if isinstance(expr, list):
        if not expr:
            return []
        op = expr[0]
        if isinstance(op, Symbol) and op.name in SPECIAL_FORMS:
            return SPECIAL_FORMS[op.name](expr, env)

        func = evaluate(op, env)
        args = [evaluate(arg, env) for arg in expr[1:]]
        if callable(func):
            return func(*args)
        raise TypeError(f"Cannot call non-function: {to_display(func)}")

    raise ValueError(f"Cannot evaluate: {expr}")


# Printing

def to_write(value: Any) -> str:
    """External representation, strings quoted."""
    if isinstance(value, str):
        return '"' + value.replace('\\', '\\\\').replace('"', '\\"') + '"'
    return to_display(value)


def to_display(value: Any) -> str:
    """Human representation, as printed by display."""
    if isinstance(value, bool):
        return '#t' if value else '#f'
    if value is None:
        return ''
    if isinstance(value, list):
        return '(' + ' '.join(to_write(item) for item in value) + ')'
    if isinstance(value, Symbol):
        return value.name
    if isinstance(value, Procedure):
        return '#<procedure>'
    if callable(value):
        return '#<built-in>'
    return str(value)


# Global environment

def _exit(code: Any = 0):
    if code is True:
        code = 0
    elif code is False:
        code = 1
    if not isinstance(code, (int, float)):
        raise SchemeError(f"exit: invalid status: {to_display(code)}")
    raise ScriptExit(int(code))


def _for_each(func, lst):
    for item in lst:
        func(item)


def _error(message: Any, *irritants):
    parts = [to_display(message)] + [to_write(i) for i in irritants]
    raise SchemeError(' '.join(parts))


def _string_to_number(s: str):
    try:
        return int(s)
    except ValueError:
        pass
    try:
        return float(s)
    except ValueError:
        return False


def create_global_env(capabilities: Optional[ScriptCapabilities] = None) -> Environment:
    """Create the global environment.

    Pure builtins are always available; I/O and process builtins only
    exist when capabilities are supplied.
    """
    env = Environment()

    # Arithmetic
    env.define('+', lambda *args: sum(args))
    env.define('-', lambda x, *rest: -x if not rest else reduce(operator.sub, rest, x))
    env.define('*', lambda *args: reduce(operator.mul, args, 1))
    env.define('/', lambda x, *rest: reduce(operator.truediv, rest, x) if rest else 1 / x)
    env.define('quotient', lambda x, y: int(x / y))
    env.define('mod', lambda x, y: x % y)
    env.define('modulo', lambda x, y: x % y)
    env.define('abs', abs)
    env.define('min', min)
    env.define('max', max)

    # Comparison
    env.define('=', lambda x, y: x == y)
    env.define('<', lambda x, y: x < y)
    env.define('>', lambda x, y: x > y)
    env.define('<=', lambda x, y: x <= y)
    env.define('>=', lambda x, y: x >= y)
    env.define('equal?', lambda x, y: x == y)
    env.define('not', lambda x: x is False)

    # Lists
    env.define('list', lambda *args: list(args))
    env.define('car', lambda lst: lst[0] if lst else None)
    env.define('cdr', lambda lst: lst[1:] if lst else [])
    env.define('cons', lambda x, lst: [x] + (lst if isinstance(lst, list) else [lst]))
    env.define('null?', lambda lst: lst == [] or lst is None)
    env.define('length', lambda lst: len(lst) if isinstance(lst, list) else 0)
    env.define('append', lambda *lists: sum(lists, []))
    env.define('reverse', lambda lst: list(reversed(lst)))
    env.define('map', lambda f, lst: [f(x) for x in lst])
    env.define('filter', lambda f, lst: [x for x in lst if _is_true(f(x))])
    env.define('reduce', lambda f, lst, init=0: reduce(f, lst, init))
    env.define('for-each', _for_each)
    env.define('apply', lambda f, lst: f(*lst))

    # Type predicates
    env.define('number?', lambda x: isinstance(x, (int, float)) and not isinstance(x, bool))
    env.define('string?', lambda x: isinstance(x, str))
    env.define('list?', lambda x: isinstance(x, list))
    env.define('symbol?', lambda x: isinstance(x, Symbol))
    env.define('procedure?', lambda x: callable(x))

    # Strings
    env.define('string-append', lambda *args: ''.join(str(a) for a in args))
    env.define('string-length', lambda s: len(s))
    env.define('substring', lambda s, start, end=None: s[start:end])
    env.define('string-split', lambda s, sep=' ': s.split(sep))
    env.define('string-join', lambda lst, sep=' ': sep.join(str(x) for x in lst))
    env.define('string-contains?', lambda s, sub: sub in s)
    env.define('string-replace', lambda s, old, new: s.replace(old, new))
    env.define('string-upcase', lambda s: s.upper())
    env.define('string-downcase', lambda s: s.lower())
    env.define('number->string', lambda n: to_display(n))
    env.define('string->number', _string_to_number)

    env.define('error', _error)

    if capabilities is None:
        return env

    out, err = capabilities.write_stdout, capabilities.write_stderr

    # Output
    env.define('display', lambda x: out(to_display(x)))
    env.define('write', lambda x: out(to_write(x)))
    env.define('newline', lambda: out('\n'))
    env.define('write-line', lambda x: out(to_display(x) + '\n'))
    env.define('display-error', lambda x: err(to_display(x)))

    # Process
    env.define('command-line', lambda: list(capabilities.argv))
    env.define('get-environment-variable',
               lambda name: capabilities.environ.get(name, False))
    env.define('getenv', lambda name: capabilities.environ.get(name, False))
    env.define('exit', _exit)

    # Files
    if capabilities.read_file is not None:
        env.define('read-file', capabilities.read_file)
    if capabilities.file_exists is not None:
        env.define('file-exists?', capabilities.file_exists)

    return env


def run_program(source: str, capabilities: ScriptCapabilities) -> int:
    """
    Evaluate a whole program and return its exit status.

    (exit) ends the program early; other errors propagate to the caller.
    """
    env = create_global_env(capabilities)
    try:
        for expr in parse_program(source):
            evaluate(expr, env)
    except ScriptExit as e:
        return e.code
    return 0
