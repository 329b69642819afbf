"""
Small JavaScript interpreter used to run player-script snippets.

Handles the subset of JavaScript that signature transforms and the
n-parameter (throttling) function are written in:
- var/let/const declarations, function declarations and expressions
- Array operations (push, pop, shift, unshift, splice, reverse, slice, indexOf, join, ...)
- String operations (split, charAt, charCodeAt, indexOf, slice, substring, replace, ...)
- Object literals, property access and method calls
- Arithmetic, bitwise, comparison, logical and ternary operators
- if/else, for, while, do/while, switch, break/continue
- try/catch/finally and throw
- Regular expression literals (basic)
- parseInt, String.fromCharCode, Math.* functions

Code runs against a fixed set of builtins and nothing else. Each call is
bounded by a step budget and can be aborted from another thread through
``abort_event``.
"""

import json
import logging
import math
import re
import threading
import time
from typing import Any

logger = logging.getLogger(__name__)

_NAME_RE = r"[a-zA-Z_$][\w$]*"

# How often (in evaluation steps) the abort event and deadline are checked
_ABORT_CHECK_INTERVAL = 512

# Nested JS calls allowed before a run is aborted; keeps well under Python's recursion limit
_MAX_CALL_DEPTH = 40


class JSUndefined:
    """Represents JavaScript's undefined value."""

    def __repr__(self):
        return "undefined"

    def __bool__(self):
        return False


JS_UNDEFINED = JSUndefined()


class JSInterpreterError(Exception):
    pass


class JSSyntaxError(JSInterpreterError):
    pass


class JSRuntimeError(JSInterpreterError):
    """ReferenceError/TypeError raised while running code. Catchable from JS."""


class JSAbort(JSInterpreterError):
    """Execution was cancelled, timed out or exceeded its step budget."""


class JSThrow(JSInterpreterError):
    """A value thrown by the interpreted code."""

    def __init__(self, value: Any):
        super().__init__(f"Uncaught {_to_string(value)}")
        self.value = value


class JSBreak(Exception):
    pass


class JSContinue(Exception):
    pass


class _JSReturn(Exception):
    def __init__(self, value: Any):
        self.value = value


class JSRegExp:
    def __init__(self, pattern: str, flags: str = ""):
        self.source = pattern
        self.flags = flags
        re_flags = 0
        if "i" in flags:
            re_flags |= re.IGNORECASE
        if "m" in flags:
            re_flags |= re.MULTILINE
        if "s" in flags:
            re_flags |= re.DOTALL
        try:
            self.regex = re.compile(pattern, re_flags)
        except re.error as e:
            raise JSRuntimeError(f"Invalid regular expression /{pattern}/: {e}") from e

    def __repr__(self):
        return f"/{self.source}/{self.flags}"


class JSFunction:
    """A function defined in interpreted code, bound to its defining scope."""

    def __init__(
        self,
        interpreter: "JSInterpreter",
        name: str | None,
        params: list[str],
        body: list,
        scope: "_Scope",
    ):
        self.interpreter = interpreter
        self.name = name
        self.params = params
        self.body = body
        self.scope = scope

    def __call__(self, *args, this: Any = JS_UNDEFINED):
        return self.interpreter._invoke(self, list(args), this)

    def __repr__(self):
        return f"<JSFunction {self.name or 'anonymous'}({', '.join(self.params)})>"


def _js_ternary(val):
    """Evaluate JS truthiness."""
    if val is None or val is JS_UNDEFINED or val is False or val == "":
        return False
    if isinstance(val, (int, float)) and not isinstance(val, bool):
        if val == 0 or math.isnan(val):
            return False
    return True


def _to_number(val):
    """Convert value to a number like JavaScript would."""
    if val is JS_UNDEFINED:
        return float("nan")
    if val is None:
        return 0
    if isinstance(val, bool):
        return 1 if val else 0
    if isinstance(val, (int, float)):
        return val
    if isinstance(val, str):
        s = val.strip()
        if not s:
            return 0
        try:
            if s.lower().startswith(("0x", "-0x")):
                return _normalize_number(int(s, 16))
            return _normalize_number(int(s))
        except ValueError:
            try:
                return _normalize_number(float(s))
            except ValueError:
                return float("nan")
    if isinstance(val, list):
        if not val:
            return 0
        if len(val) == 1:
            return _to_number(val[0])
    return float("nan")


def _normalize_number(val):
    """Keep integral results as Python ints so they can index lists."""
    if isinstance(val, float) and val.is_integer() and abs(val) < 2**53:
        return int(val)
    if isinstance(val, int) and not isinstance(val, bool) and abs(val) >= 2**53:
        # Beyond the exactly representable range numbers are doubles
        try:
            return float(val)
        except OverflowError:
            return float("inf") if val > 0 else float("-inf")
    return val


def _to_int32(val) -> int:
    num = _to_number(val)
    if isinstance(num, float) and (math.isnan(num) or math.isinf(num)):
        return 0
    num = int(num) & 0xFFFFFFFF
    return num - 0x100000000 if num & 0x80000000 else num


def _to_uint32(val) -> int:
    return _to_int32(val) & 0xFFFFFFFF


def _to_string(val) -> str:
    if isinstance(val, str):
        return val
    if val is JS_UNDEFINED:
        return "undefined"
    if val is None:
        return "null"
    if isinstance(val, bool):
        return "true" if val else "false"
    if isinstance(val, int):
        return str(val)
    if isinstance(val, float):
        if math.isnan(val):
            return "NaN"
        if math.isinf(val):
            return "Infinity" if val > 0 else "-Infinity"
        if val.is_integer():
            return str(int(val))
        return repr(val)
    if isinstance(val, list):
        return ",".join("" if x is None or x is JS_UNDEFINED else _to_string(x) for x in val)
    if isinstance(val, JSRegExp):
        return repr(val)
    if isinstance(val, JSFunction) or callable(val):
        return "function () { [native code] }"
    return "[object Object]"


def _is_number(val) -> bool:
    return isinstance(val, (int, float)) and not isinstance(val, bool)


def _strict_equals(a, b) -> bool:
    if _is_number(a) and _is_number(b):
        return a == b
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if isinstance(a, bool) and isinstance(b, bool):
        return a == b
    if a is None or b is None or a is JS_UNDEFINED or b is JS_UNDEFINED:
        return a is b
    return a is b


def _loose_equals(a, b) -> bool:
    if (a is None or a is JS_UNDEFINED) and (b is None or b is JS_UNDEFINED):
        return True
    if a is None or a is JS_UNDEFINED or b is None or b is JS_UNDEFINED:
        return False
    if type(a) is type(b) or (_is_number(a) and _is_number(b)):
        return _strict_equals(a, b)
    if isinstance(a, (list, dict)) or isinstance(b, (list, dict)):
        if isinstance(a, (list, dict)) and isinstance(b, (list, dict)):
            return a is b
        return _to_string(a) == _to_string(b) if isinstance(a, str) or isinstance(b, str) else False
    return _to_number(a) == _to_number(b)


def _js_mod(a, b):
    x, y = _to_number(a), _to_number(b)
    if y == 0 or (isinstance(x, float) and (math.isnan(x) or math.isinf(x))):
        return float("nan")
    if isinstance(x, int) and isinstance(y, int):
        return int(math.fmod(x, y))
    return _normalize_number(math.fmod(x, y))


def _js_div(a, b):
    x, y = _to_number(a), _to_number(b)
    if y == 0:
        if x == 0 or (isinstance(x, float) and math.isnan(x)):
            return float("nan")
        return float("inf") if (x > 0) == (math.copysign(1, y) > 0) else float("-inf")
    return _normalize_number(x / y)


def _js_pow(a, b):
    try:
        result = float(_to_number(a)) ** _to_number(b)
    except (OverflowError, ZeroDivisionError):
        return float("inf")
    # Negative base with a fractional exponent
    if isinstance(result, complex):
        return float("nan")
    return _normalize_number(result)


def _js_add(a, b):
    if isinstance(a, (list, dict, JSRegExp)) or isinstance(b, (list, dict, JSRegExp)):
        return _to_string(a) + _to_string(b)
    if isinstance(a, str) or isinstance(b, str):
        return _to_string(a) + _to_string(b)
    return _normalize_number(_to_number(a) + _to_number(b))


def _compare(op: str, a, b):
    if isinstance(a, str) and isinstance(b, str):
        x, y = a, b
    else:
        x, y = _to_number(a), _to_number(b)
        if (isinstance(x, float) and math.isnan(x)) or (isinstance(y, float) and math.isnan(y)):
            return False
    if op == "<":
        return x < y
    if op == ">":
        return x > y
    if op == "<=":
        return x <= y
    return x >= y


_BINARY_OPS = {
    "+": _js_add,
    "-": lambda x, y: _normalize_number(_to_number(x) - _to_number(y)),
    "*": lambda x, y: _normalize_number(_to_number(x) * _to_number(y)),
    "/": _js_div,
    "%": _js_mod,
    "**": _js_pow,
    "|": lambda x, y: _to_int32(_to_int32(x) | _to_int32(y)),
    "^": lambda x, y: _to_int32(_to_int32(x) ^ _to_int32(y)),
    "&": lambda x, y: _to_int32(_to_int32(x) & _to_int32(y)),
    "<<": lambda x, y: _to_int32(_to_int32(x) << (_to_uint32(y) & 31)),
    ">>": lambda x, y: _to_int32(x) >> (_to_uint32(y) & 31),
    ">>>": lambda x, y: _to_uint32(x) >> (_to_uint32(y) & 31),
    "===": _strict_equals,
    "!==": lambda x, y: not _strict_equals(x, y),
    "==": _loose_equals,
    "!=": lambda x, y: not _loose_equals(x, y),
    "<": lambda x, y: _compare("<", x, y),
    ">": lambda x, y: _compare(">", x, y),
    "<=": lambda x, y: _compare("<=", x, y),
    ">=": lambda x, y: _compare(">=", x, y),
}

# Binary operator precedence (higher binds tighter)
_PRECEDENCE = {
    "??": 1,
    "||": 1,
    "&&": 2,
    "|": 3,
    "^": 4,
    "&": 5,
    "==": 6,
    "!=": 6,
    "===": 6,
    "!==": 6,
    "<": 7,
    ">": 7,
    "<=": 7,
    ">=": 7,
    "in": 7,
    "instanceof": 7,
    "<<": 8,
    ">>": 8,
    ">>>": 8,
    "+": 9,
    "-": 9,
    "*": 10,
    "/": 10,
    "%": 10,
    "**": 11,
}

_ASSIGN_OPS = {
    "=", "+=", "-=", "*=", "/=", "%=", "**=", "<<=", ">>=", ">>>=", "&=", "|=", "^=",
}

_PUNCTUATORS = sorted(
    [
        ">>>=", "===", "!==", ">>>", "<<=", ">>=", "**=", "...",
        "==", "!=", "<=", ">=", "&&", "||", "??", "++", "--", "+=", "-=", "*=", "/=",
        "%=", "&=", "|=", "^=", "=>", "<<", ">>", "**", "?.",
        "{", "}", "(", ")", "[", "]", ";", ",", ".", "?", ":", "+", "-", "*", "/",
        "%", "&", "|", "^", "!", "~", "<", ">", "=",
    ],
    key=len,
    reverse=True,
)

_KEYWORDS = {
    "var", "let", "const", "function", "return", "if", "else", "for", "while", "do",
    "break", "continue", "throw", "try", "catch", "finally", "switch", "case", "default",
    "new", "typeof", "void", "delete", "in", "instanceof", "this", "true", "false", "null",
}

# After these tokens a "/" starts a regex literal rather than a division
_REGEX_PRECEDERS = {
    "(", ",", "=", ":", "[", "!", "&", "|", "?", "{", "}", ";", "+", "-", "*", "%",
    "<", ">", "~", "^", "&&", "||", "??", "==", "!=", "===", "!==", "<=", ">=",
    "+=", "-=", "*=", "/=", "%=", "return", "typeof", "case", "do", "else", "throw",
    "in", "void", "delete", "new",
}


class _Token:
    __slots__ = ("kind", "value", "start", "end")

    def __init__(self, kind: str, value: Any, start: int, end: int):
        self.kind = kind  # num, str, name, punct, regex, eof
        self.value = value
        self.start = start
        self.end = end

    def __repr__(self):
        return f"<{self.kind} {self.value!r}>"


class _Tokenizer:
    """Lazy tokenizer: only scans as far as the parser asks."""

    _NUM_RE = re.compile(r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
    _NAME_RE = re.compile(_NAME_RE)
    _SPACE_RE = re.compile(r"(?:\s+|//[^\n]*|/\*.*?\*/)+", re.DOTALL)

    def __init__(self, code: str, pos: int = 0):
        self.code = code
        self.pos = pos
        self._buffer: list[_Token] = []
        self._last: _Token | None = None

    def peek(self, offset: int = 0) -> _Token:
        while len(self._buffer) <= offset:
            self._buffer.append(self._scan())
        return self._buffer[offset]

    def next(self) -> _Token:
        tok = self.peek()
        self._buffer.pop(0)
        return tok

    def _regex_allowed(self) -> bool:
        last = self._last
        if last is None:
            return True
        if last.kind == "punct" or (last.kind == "name" and last.value in _KEYWORDS):
            return last.value in _REGEX_PRECEDERS
        return False

    def _scan(self) -> _Token:
        code = self.code
        m = self._SPACE_RE.match(code, self.pos)
        if m:
            self.pos = m.end()
        start = self.pos
        if start >= len(code):
            tok = _Token("eof", None, start, start)
            self._last = tok
            return tok

        c = code[start]
        if c in "\"'`":
            value, end = self._scan_string(start)
            tok = _Token("str", value, start, end)
        elif c.isdigit() or (c == "." and start + 1 < len(code) and code[start + 1].isdigit()):
            m = self._NUM_RE.match(code, start)
            text = m.group(0)
            if text[:2].lower() == "0x":
                value: Any = _normalize_number(int(text, 16))
            elif any(ch in text for ch in ".eE"):
                value = _normalize_number(float(text))
            else:
                value = _normalize_number(int(text))
            tok = _Token("num", value, start, m.end())
        elif c == "/" and self._regex_allowed():
            tok = self._scan_regex(start)
        else:
            m = self._NAME_RE.match(code, start)
            if m:
                tok = _Token("name", m.group(0), start, m.end())
            else:
                for p in _PUNCTUATORS:
                    if code.startswith(p, start):
                        tok = _Token("punct", p, start, start + len(p))
                        break
                else:
                    raise JSSyntaxError(f"Unexpected character {c!r} at {start}")

        self.pos = tok.end
        self._last = tok
        return tok

    def _scan_string(self, start: int) -> tuple[str, int]:
        code = self.code
        quote = code[start]
        i = start + 1
        chars = []
        while i < len(code):
            c = code[i]
            if c == "\\":
                i += 1
                if i >= len(code):
                    break
                esc = code[i]
                if esc == "u" and code[i + 1 : i + 2] == "{":
                    close = code.index("}", i)
                    chars.append(chr(int(code[i + 2 : close], 16)))
                    i = close + 1
                    continue
                if esc == "u":
                    chars.append(chr(int(code[i + 1 : i + 5], 16)))
                    i += 5
                    continue
                if esc == "x":
                    chars.append(chr(int(code[i + 1 : i + 3], 16)))
                    i += 3
                    continue
                chars.append(
                    {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}.get(
                        esc, esc
                    )
                )
                i += 1
                continue
            if c == quote:
                return "".join(chars), i + 1
            chars.append(c)
            i += 1
        raise JSSyntaxError(f"Unterminated string starting at {start}")

    def _scan_regex(self, start: int) -> _Token:
        code = self.code
        i = start + 1
        in_class = False
        while i < len(code):
            c = code[i]
            if c == "\\":
                i += 2
                continue
            if c == "\n":
                break
            if c == "[":
                in_class = True
            elif c == "]":
                in_class = False
            elif c == "/" and not in_class:
                pattern = code[start + 1 : i]
                j = i + 1
                while j < len(code) and code[j].isalpha():
                    j += 1
                return _Token("regex", (pattern, code[i + 1 : j]), start, j)
            i += 1
        raise JSSyntaxError(f"Unterminated regular expression at {start}")


class _Parser:
    """Recursive-descent parser producing tuple-based AST nodes."""

    def __init__(self, tokens: _Tokenizer):
        self.tokens = tokens

    # === helpers ===

    def _peek(self, offset: int = 0) -> _Token:
        return self.tokens.peek(offset)

    def _next(self) -> _Token:
        return self.tokens.next()

    def _is(self, value: str, offset: int = 0) -> bool:
        tok = self._peek(offset)
        return tok.kind in ("punct", "name") and tok.value == value

    def _accept(self, value: str) -> bool:
        if self._is(value):
            self._next()
            return True
        return False

    def _expect(self, value: str) -> _Token:
        tok = self._next()
        if tok.kind not in ("punct", "name") or tok.value != value:
            raise JSSyntaxError(f"Expected {value!r} but found {tok.value!r} at {tok.start}")
        return tok

    def _expect_name(self) -> str:
        tok = self._next()
        if tok.kind != "name":
            raise JSSyntaxError(f"Expected identifier but found {tok.value!r} at {tok.start}")
        return tok.value

    def _semicolon(self):
        self._accept(";")

    # === statements ===

    def parse_program(self) -> list:
        body = []
        while self._peek().kind != "eof":
            body.append(self.parse_statement())
        return body

    def parse_block(self) -> list:
        self._expect("{")
        body = []
        while not self._is("}"):
            if self._peek().kind == "eof":
                raise JSSyntaxError("Unexpected end of input inside block")
            body.append(self.parse_statement())
        self._expect("}")
        return body

    def parse_statement(self):
        tok = self._peek()
        if tok.kind == "punct":
            if tok.value == "{":
                return ("block", self.parse_block())
            if tok.value == ";":
                self._next()
                return ("empty",)
        if tok.kind == "name":
            kw = tok.value
            if kw in ("var", "let", "const"):
                self._next()
                decl = self._parse_var_list()
                self._semicolon()
                return decl
            if kw == "function" and self._peek(1).kind == "name":
                self._next()
                name = self._expect_name()
                params, body = self._parse_function_rest()
                return ("funcdecl", name, params, body)
            if kw == "return":
                self._next()
                if self._is(";") or self._is("}") or self._peek().kind == "eof":
                    self._semicolon()
                    return ("return", None)
                expr = self.parse_expression()
                self._semicolon()
                return ("return", expr)
            if kw == "if":
                self._next()
                self._expect("(")
                cond = self.parse_expression()
                self._expect(")")
                then = self.parse_statement()
                other = None
                if self._accept("else"):
                    other = self.parse_statement()
                return ("if", cond, then, other)
            if kw == "for":
                return self._parse_for()
            if kw == "while":
                self._next()
                self._expect("(")
                cond = self.parse_expression()
                self._expect(")")
                return ("while", cond, self.parse_statement())
            if kw == "do":
                self._next()
                body = self.parse_statement()
                self._expect("while")
                self._expect("(")
                cond = self.parse_expression()
                self._expect(")")
                self._semicolon()
                return ("dowhile", body, cond)
            if kw in ("break", "continue"):
                self._next()
                self._semicolon()
                return (kw,)
            if kw == "throw":
                self._next()
                expr = self.parse_expression()
                self._semicolon()
                return ("throw", expr)
            if kw == "try":
                return self._parse_try()
            if kw == "switch":
                return self._parse_switch()

        expr = self.parse_expression()
        self._semicolon()
        return ("expr", expr)

    def _parse_var_list(self):
        decls = []
        while True:
            name = self._expect_name()
            init = None
            if self._accept("="):
                init = self.parse_assignment()
            decls.append((name, init))
            if not self._accept(","):
                break
        return ("var", decls)

    def _parse_for(self):
        self._expect("for")
        self._expect("(")
        init = None
        if self._is("var") or self._is("let") or self._is("const"):
            self._next()
            init = self._parse_var_list()
        elif not self._is(";"):
            init = ("expr", self.parse_expression())
        if self._is("in") or self._is("of"):
            raise JSSyntaxError("for-in/for-of loops are not supported")
        self._expect(";")
        test = None if self._is(";") else self.parse_expression()
        self._expect(";")
        update = None if self._is(")") else self.parse_expression()
        self._expect(")")
        return ("for", init, test, update, self.parse_statement())

    def _parse_try(self):
        self._expect("try")
        block = self.parse_block()
        catch_name = None
        catch_block = None
        finally_block = None
        if self._accept("catch"):
            if self._accept("("):
                catch_name = self._expect_name()
                self._expect(")")
            catch_block = self.parse_block()
        if self._accept("finally"):
            finally_block = self.parse_block()
        return ("try", block, catch_name, catch_block, finally_block)

    def _parse_switch(self):
        self._expect("switch")
        self._expect("(")
        disc = self.parse_expression()
        self._expect(")")
        self._expect("{")
        cases = []
        while not self._accept("}"):
            if self._accept("default"):
                test = None
            else:
                self._expect("case")
                test = self.parse_expression()
            self._expect(":")
            body = []
            while not (self._is("case") or self._is("default") or self._is("}")):
                body.append(self.parse_statement())
            cases.append((test, body))
        return ("switch", disc, cases)

    def _parse_function_rest(self) -> tuple[list[str], list]:
        self._expect("(")
        params = []
        while not self._accept(")"):
            params.append(self._expect_name())
            if not self._is(")"):
                self._expect(",")
        return params, self.parse_block()

    # === expressions ===

    def parse_expression(self):
        expr = self.parse_assignment()
        if self._is(","):
            exprs = [expr]
            while self._accept(","):
                exprs.append(self.parse_assignment())
            return ("seq", exprs)
        return expr

    def parse_assignment(self):
        left = self.parse_conditional()
        tok = self._peek()
        if tok.kind == "punct" and tok.value in _ASSIGN_OPS:
            if left[0] not in ("name", "member"):
                raise JSSyntaxError(f"Invalid assignment target at {tok.start}")
            self._next()
            return ("assign", tok.value, left, self.parse_assignment())
        return left

    def parse_conditional(self):
        cond = self.parse_binary(1)
        if self._accept("?"):
            if_true = self.parse_assignment()
            self._expect(":")
            if_false = self.parse_assignment()
            return ("cond", cond, if_true, if_false)
        return cond

    def parse_binary(self, min_prec: int):
        left = self.parse_unary()
        while True:
            tok = self._peek()
            if tok.kind not in ("punct", "name"):
                break
            prec = _PRECEDENCE.get(tok.value)
            if prec is None or prec < min_prec:
                break
            if tok.kind == "name" and tok.value not in ("in", "instanceof"):
                break
            op = tok.value
            self._next()
            # ** is right associative, the rest are left associative
            right = self.parse_binary(prec if op == "**" else prec + 1)
            kind = "logical" if op in ("&&", "||", "??") else "binary"
            left = (kind, op, left, right)
        return left

    def parse_unary(self):
        tok = self._peek()
        if tok.kind == "punct" and tok.value in ("!", "-", "+", "~"):
            self._next()
            return ("unary", tok.value, self.parse_unary())
        if tok.kind == "punct" and tok.value in ("++", "--"):
            self._next()
            return ("update", tok.value, True, self.parse_unary())
        if tok.kind == "name" and tok.value in ("typeof", "void", "delete"):
            self._next()
            return ("unary", tok.value, self.parse_unary())
        return self.parse_postfix()

    def parse_postfix(self):
        expr = self.parse_call()
        tok = self._peek()
        if tok.kind == "punct" and tok.value in ("++", "--"):
            self._next()
            return ("update", tok.value, False, expr)
        return expr

    def parse_call(self):
        if self._is("new"):
            self._next()
            callee = self.parse_member_only()
            args = self._parse_arguments() if self._is("(") else []
            expr = ("new", callee, args)
        else:
            expr = self.parse_primary()
        while True:
            if self._accept("."):
                expr = ("member", expr, ("str", self._expect_name()))
            elif self._accept("["):
                prop = self.parse_expression()
                self._expect("]")
                expr = ("member", expr, prop)
            elif self._is("("):
                expr = ("call", expr, self._parse_arguments())
            else:
                return expr

    def parse_member_only(self):
        expr = self.parse_primary()
        while True:
            if self._accept("."):
                expr = ("member", expr, ("str", self._expect_name()))
            elif self._accept("["):
                prop = self.parse_expression()
                self._expect("]")
                expr = ("member", expr, prop)
            else:
                return expr

    def _parse_arguments(self) -> list:
        self._expect("(")
        args = []
        while not self._accept(")"):
            args.append(self.parse_assignment())
            if not self._is(")"):
                self._expect(",")
        return args

    def parse_primary(self):
        tok = self._next()
        if tok.kind == "num":
            return ("num", tok.value)
        if tok.kind == "str":
            return ("str", tok.value)
        if tok.kind == "regex":
            return ("regex", tok.value[0], tok.value[1])
        if tok.kind == "name":
            if tok.value == "true":
                return ("const", True)
            if tok.value == "false":
                return ("const", False)
            if tok.value == "null":
                return ("const", None)
            if tok.value == "this":
                return ("this",)
            if tok.value == "function":
                name = self._expect_name() if self._peek().kind == "name" else None
                params, body = self._parse_function_rest()
                return ("func", name, params, body)
            return ("name", tok.value)
        if tok.kind == "punct":
            if tok.value == "(":
                expr = self.parse_expression()
                self._expect(")")
                return expr
            if tok.value == "[":
                items = []
                while not self._accept("]"):
                    if self._is(","):
                        self._next()
                        items.append(("const", JS_UNDEFINED))
                        continue
                    items.append(self.parse_assignment())
                    if not self._is("]"):
                        self._expect(",")
                return ("array", items)
            if tok.value == "{":
                props = []
                while not self._accept("}"):
                    key_tok = self._next()
                    if key_tok.kind not in ("name", "str", "num"):
                        raise JSSyntaxError(f"Invalid object key {key_tok.value!r}")
                    key = _to_string(key_tok.value)
                    if key_tok.kind == "name" and self._is("("):
                        # Method shorthand: key(args) { body }
                        params, body = self._parse_function_rest()
                        props.append((key, ("func", key, params, body)))
                    else:
                        self._expect(":")
                        props.append((key, self.parse_assignment()))
                    if not self._is("}"):
                        self._expect(",")
                return ("object", props)
        raise JSSyntaxError(f"Unexpected token {tok.value!r} at {tok.start}")


class _Scope:
    def __init__(self, parent: "_Scope | None" = None):
        self.vars: dict[str, Any] = {}
        self.parent = parent

    def find(self, name: str) -> "_Scope | None":
        scope: _Scope | None = self
        while scope is not None:
            if name in scope.vars:
                return scope
            scope = scope.parent
        return None


def _make_builtins() -> dict[str, Any]:
    def parse_int(val=JS_UNDEFINED, radix=JS_UNDEFINED):
        s = _to_string(val).strip()
        base = 10 if radix is JS_UNDEFINED else _to_int32(radix) or 10
        if not 2 <= base <= 36:
            return float("nan")
        m = re.match(r"[+-]?(?:0[xX])?[0-9a-zA-Z]+", s)
        if not m:
            return float("nan")
        text = m.group(0)
        digits = ""
        sign = ""
        if text[0] in "+-":
            sign, text = text[0], text[1:]
        if base == 16 and text[:2].lower() == "0x":
            text = text[2:]
        for ch in text:
            try:
                if int(ch, 36) >= base:
                    break
            except ValueError:
                break
            digits += ch
        return int(sign + digits, base) if digits else float("nan")

    def from_char_code(*codes):
        return "".join(chr(_to_uint32(c) & 0xFFFF) for c in codes)

    def integral(fn):
        def wrapper(x):
            num = _to_number(x)
            if isinstance(num, float) and (math.isnan(num) or math.isinf(num)):
                return num
            return _normalize_number(float(fn(num)))

        return wrapper

    js_round = integral(lambda num: math.floor(num + 0.5))

    def js_sqrt(x):
        num = _to_number(x)
        if isinstance(num, float) and math.isnan(num) or num < 0:
            return float("nan")
        return _normalize_number(math.sqrt(num))

    math_obj = {
        "abs": lambda x: abs(_to_number(x)),
        "ceil": integral(math.ceil),
        "floor": integral(math.floor),
        "round": js_round,
        "max": lambda *xs: max((_to_number(x) for x in xs), default=float("-inf")),
        "min": lambda *xs: min((_to_number(x) for x in xs), default=float("inf")),
        "pow": _js_pow,
        "sqrt": js_sqrt,
        "sign": lambda x: (_to_number(x) > 0) - (_to_number(x) < 0),
        "random": lambda: 0.5,  # deterministic
        "PI": math.pi,
        "E": math.e,
    }
    return {
        "undefined": JS_UNDEFINED,
        "NaN": float("nan"),
        "Infinity": float("inf"),
        "parseInt": parse_int,
        "isNaN": lambda x: isinstance(_to_number(x), float) and math.isnan(_to_number(x)),
        "String": {"fromCharCode": from_char_code},
        "Math": math_obj,
        "Array": {"isArray": lambda x: isinstance(x, list)},
    }


class JSInterpreter:
    """
    JavaScript interpreter over a fixed source text.

    Functions and objects are located in ``code`` on demand, parsed and
    evaluated against a global scope that holds only the builtins. Names
    that are not defined locally are looked up the same way, so only the
    parts of the source that are actually reached get parsed.
    """

    def __init__(
        self,
        code: str,
        objects: dict | None = None,
        *,
        max_steps: int = 2_000_000,
        abort_event: threading.Event | None = None,
        deadline: float | None = None,
    ):
        self.code = code
        self.max_steps = max_steps
        self.abort_event = abort_event
        self.deadline = deadline
        self._steps = 0
        self._depth = 0
        self._globals = _Scope()
        self._globals.vars.update(_make_builtins())
        if objects:
            self._globals.vars.update(objects)
        self._functions: dict[str, JSFunction] = {}
        self._objects: dict[str, dict] = {}

    # === source lookup ===

    def _find_function_start(self, func_name: str) -> int:
        """Return the offset of the ``function`` keyword defining func_name."""
        func_name_re = re.escape(func_name)
        m = re.search(
            rf"""(?x)
            (?:^|[^\w$.])function\s+{func_name_re}\s*\(
            |(?:^|[^\w$.])(?:(?:var|let|const)\s+)?{func_name_re}\s*=\s*function\s*\(
            """,
            self.code,
        )
        if not m:
            raise JSInterpreterError(f"Could not find function {func_name!r}")
        return self.code.index("function", m.start())

    def function_span(self, func_name: str) -> tuple[int, int]:
        """Return (start, end) offsets of the function's source text."""
        start = self._find_function_start(func_name)
        tokens = _Tokenizer(self.code, start)
        parser = _Parser(tokens)
        tokens.next()  # "function"
        if tokens.peek().kind == "name":
            tokens.next()
        parser._parse_function_rest()
        return start, tokens.pos if not tokens._buffer else tokens._buffer[0].start

    def extract_function_code(self, func_name: str) -> str:
        """Return the source text of a named function as an anonymous function."""
        start, end = self.function_span(func_name)
        text = self.code[start:end]
        return re.sub(rf"^function\s+{re.escape(func_name)}\s*\(", "function(", text)

    def extract_function(self, func_name: str) -> JSFunction:
        """Extract a named function from the code and return a callable."""
        if func_name in self._functions:
            return self._functions[func_name]

        start = self._find_function_start(func_name)
        tokens = _Tokenizer(self.code, start)
        parser = _Parser(tokens)
        tokens.next()  # "function"
        if tokens.peek().kind == "name":
            tokens.next()
        params, body = parser._parse_function_rest()
        func = JSFunction(self, func_name, params, body, self._globals)
        self._functions[func_name] = func
        return func

    def object_span(self, obj_name: str) -> tuple[int, int]:
        obj_name_re = re.escape(obj_name)
        m = re.search(
            rf"(?:^|[^\w$.])(?:(?:var|let|const)\s+)?{obj_name_re}\s*=\s*\{{",
            self.code,
        )
        if not m:
            raise JSInterpreterError(f"Could not find object {obj_name!r}")
        start = m.end() - 1
        tokens = _Tokenizer(self.code, start)
        _Parser(tokens).parse_primary()
        return start, tokens.pos if not tokens._buffer else tokens._buffer[0].start

    def value_span(self, name: str) -> tuple[int, int]:
        """Return (start, end) offsets of the initializer in ``var name = ...``."""
        m = re.search(
            rf"(?:^|[^\w$.])(?:var|let|const)\s+{re.escape(name)}\s*=(?!=)",
            self.code,
        )
        if not m:
            raise JSInterpreterError(f"Could not find declaration of {name!r}")
        tokens = _Tokenizer(self.code, m.end())
        _Parser(tokens).parse_assignment()
        end = tokens.pos if not tokens._buffer else tokens._buffer[0].start
        return m.end(), end

    def extract_object(self, obj_name: str) -> dict:
        """Extract an object literal assigned to obj_name and evaluate it."""
        if obj_name in self._objects:
            return self._objects[obj_name]

        start, _ = self.object_span(obj_name)
        tokens = _Tokenizer(self.code, start)
        node = _Parser(tokens).parse_primary()
        obj = self._eval(node, self._globals)
        self._objects[obj_name] = obj
        return obj

    def build_function(self, source: str) -> JSFunction:
        """Compile an anonymous ``function(args){...}`` source string."""
        tokens = _Tokenizer(source)
        node = _Parser(tokens).parse_primary()
        if node[0] != "func":
            raise JSSyntaxError("Source is not a function expression")
        return self._eval(node, self._globals)

    def call_function(self, func_name: str, *args) -> Any:
        return self.extract_function(func_name)(*args)

    def run(self, source: str) -> Any:
        """Execute a program snippet and return the value of its last statement."""
        body = _Parser(_Tokenizer(source)).parse_program()
        self._hoist(body, self._globals)
        result = JS_UNDEFINED
        for stmt in body:
            result = self._exec(stmt, self._globals)
        return result

    def _resolve_global(self, name: str) -> Any:
        """Look up a free name in the source: function first, then object literal."""
        try:
            return self.extract_function(name)
        except JSInterpreterError:
            pass
        try:
            return self.extract_object(name)
        except JSInterpreterError:
            pass
        raise JSRuntimeError(f"ReferenceError: {name} is not defined")

    # === execution ===

    def _tick(self):
        self._steps += 1
        if self._steps > self.max_steps:
            raise JSAbort(f"Step budget of {self.max_steps} exceeded")
        if self._steps % _ABORT_CHECK_INTERVAL == 0:
            if self.abort_event is not None and self.abort_event.is_set():
                raise JSAbort("Execution aborted")
            if self.deadline is not None and time.monotonic() > self.deadline:
                raise JSAbort("Execution timed out")

    def _charge(self, count: int):
        """Count an allocation of ``count`` elements against the step budget."""
        if count <= 0:
            return
        self._steps += count
        if self._steps > self.max_steps:
            raise JSAbort(f"Step budget of {self.max_steps} exceeded by an allocation of {count}")

    @staticmethod
    def _array_length(value: Any) -> int:
        num = _to_number(value)
        if isinstance(num, float) and not num.is_integer() or num < 0:
            raise JSRuntimeError(f"RangeError: Invalid array length {_to_string(value)}")
        return int(num)

    def _invoke(self, func: JSFunction, args: list, this: Any) -> Any:
        if self._depth >= _MAX_CALL_DEPTH:
            raise JSAbort(f"Maximum call depth of {_MAX_CALL_DEPTH} exceeded")
        scope = _Scope(func.scope)
        for i, name in enumerate(func.params):
            scope.vars[name] = args[i] if i < len(args) else JS_UNDEFINED
        scope.vars["arguments"] = list(args)
        scope.vars["this"] = this
        self._hoist(func.body, scope)
        self._depth += 1
        try:
            for stmt in func.body:
                self._exec(stmt, scope)
        except _JSReturn as ret:
            return ret.value
        finally:
            self._depth -= 1
        return JS_UNDEFINED

    def _hoist(self, body: list, scope: _Scope):
        """Declare var names and function declarations before the body runs."""
        for stmt in body:
            kind = stmt[0]
            if kind == "funcdecl":
                scope.vars[stmt[1]] = JSFunction(self, stmt[1], stmt[2], stmt[3], scope)
            elif kind == "var":
                for name, _ in stmt[1]:
                    scope.vars.setdefault(name, JS_UNDEFINED)
            elif kind == "block":
                self._hoist(stmt[1], scope)
            elif kind == "if":
                self._hoist([stmt[2]], scope)
                if stmt[3] is not None:
                    self._hoist([stmt[3]], scope)
            elif kind in ("for",):
                if stmt[1] is not None:
                    self._hoist([stmt[1]], scope)
                self._hoist([stmt[4]], scope)
            elif kind in ("while",):
                self._hoist([stmt[2]], scope)
            elif kind == "dowhile":
                self._hoist([stmt[1]], scope)
            elif kind == "try":
                for block in (stmt[1], stmt[3], stmt[4]):
                    if block:
                        self._hoist(block, scope)
            elif kind == "switch":
                for _, case_body in stmt[2]:
                    self._hoist(case_body, scope)

    def _exec_block(self, body: list, scope: _Scope) -> Any:
        result = JS_UNDEFINED
        for stmt in body:
            result = self._exec(stmt, scope)
        return result

    def _exec(self, stmt, scope: _Scope) -> Any:
        self._tick()
        kind = stmt[0]

        if kind == "expr":
            return self._eval(stmt[1], scope)
        if kind == "var":
            for name, init in stmt[1]:
                if init is not None:
                    scope.vars[name] = self._eval(init, scope)
                else:
                    scope.vars.setdefault(name, JS_UNDEFINED)
            return JS_UNDEFINED
        if kind == "return":
            raise _JSReturn(JS_UNDEFINED if stmt[1] is None else self._eval(stmt[1], scope))
        if kind == "block":
            return self._exec_block(stmt[1], scope)
        if kind == "if":
            if _js_ternary(self._eval(stmt[1], scope)):
                return self._exec(stmt[2], scope)
            if stmt[3] is not None:
                return self._exec(stmt[3], scope)
            return JS_UNDEFINED
        if kind == "for":
            _, init, test, update, body = stmt
            if init is not None:
                self._exec(init, scope)
            while test is None or _js_ternary(self._eval(test, scope)):
                try:
                    self._exec(body, scope)
                except JSBreak:
                    break
                except JSContinue:
                    pass
                if update is not None:
                    self._eval(update, scope)
            return JS_UNDEFINED
        if kind == "while":
            while _js_ternary(self._eval(stmt[1], scope)):
                try:
                    self._exec(stmt[2], scope)
                except JSBreak:
                    break
                except JSContinue:
                    continue
            return JS_UNDEFINED
        if kind == "dowhile":
            while True:
                try:
                    self._exec(stmt[1], scope)
                except JSBreak:
                    break
                except JSContinue:
                    pass
                if not _js_ternary(self._eval(stmt[2], scope)):
                    break
            return JS_UNDEFINED
        if kind == "break":
            raise JSBreak()
        if kind == "continue":
            raise JSContinue()
        if kind == "throw":
            raise JSThrow(self._eval(stmt[1], scope))
        if kind == "try":
            return self._exec_try(stmt, scope)
        if kind == "switch":
            return self._exec_switch(stmt, scope)
        if kind == "funcdecl":
            scope.vars[stmt[1]] = JSFunction(self, stmt[1], stmt[2], stmt[3], scope)
            return JS_UNDEFINED
        if kind == "empty":
            return JS_UNDEFINED
        raise JSInterpreterError(f"Unknown statement {kind!r}")

    def _exec_try(self, stmt, scope: _Scope) -> Any:
        _, block, catch_name, catch_block, finally_block = stmt
        try:
            return self._exec_block(block, scope)
        except (JSThrow, JSRuntimeError) as e:
            if catch_block is None:
                raise
            if catch_name:
                scope.vars[catch_name] = e.value if isinstance(e, JSThrow) else str(e)
            return self._exec_block(catch_block, scope)
        finally:
            if finally_block is not None:
                self._exec_block(finally_block, scope)

    def _exec_switch(self, stmt, scope: _Scope) -> Any:
        _, disc, cases = stmt
        value = self._eval(disc, scope)
        matched = False
        try:
            for test, body in cases:
                if not matched and test is not None:
                    matched = _strict_equals(value, self._eval(test, scope))
                if matched:
                    self._exec_block(body, scope)
            if not matched:
                for test, body in cases:
                    if test is None:
                        matched = True
                    if matched:
                        self._exec_block(body, scope)
        except JSBreak:
            pass
        return JS_UNDEFINED

    # === expressions ===

    def _eval(self, node, scope: _Scope) -> Any:
        self._tick()
        kind = node[0]

        if kind in ("num", "str", "const"):
            return node[1]
        if kind == "name":
            return self._lookup(node[1], scope)
        if kind == "this":
            owner = scope.find("this")
            return owner.vars["this"] if owner else JS_UNDEFINED
        if kind == "regex":
            return JSRegExp(node[1], node[2])
        if kind == "array":
            return [self._eval(item, scope) for item in node[1]]
        if kind == "object":
            return {key: self._eval(value, scope) for key, value in node[1]}
        if kind == "func":
            return JSFunction(self, node[1], node[2], node[3], scope)
        if kind == "member":
            obj = self._eval(node[1], scope)
            return self._get_property(obj, self._eval(node[2], scope))
        if kind == "call":
            return self._eval_call(node, scope)
        if kind == "new":
            return self._eval_new(node, scope)
        if kind == "assign":
            return self._eval_assign(node, scope)
        if kind == "update":
            return self._eval_update(node, scope)
        if kind == "unary":
            return self._eval_unary(node, scope)
        if kind == "binary":
            op = node[1]
            left = self._eval(node[2], scope)
            right = self._eval(node[3], scope)
            return self._apply_op(op, left, right)
        if kind == "logical":
            op = node[1]
            left = self._eval(node[2], scope)
            if op == "&&":
                return self._eval(node[3], scope) if _js_ternary(left) else left
            if op == "||":
                return left if _js_ternary(left) else self._eval(node[3], scope)
            return self._eval(node[3], scope) if left is None or left is JS_UNDEFINED else left
        if kind == "cond":
            if _js_ternary(self._eval(node[1], scope)):
                return self._eval(node[2], scope)
            return self._eval(node[3], scope)
        if kind == "seq":
            result = JS_UNDEFINED
            for expr in node[1]:
                result = self._eval(expr, scope)
            return result
        raise JSInterpreterError(f"Unknown expression {kind!r}")

    def _lookup(self, name: str, scope: _Scope) -> Any:
        owner = scope.find(name)
        if owner is not None:
            return owner.vars[name]
        value = self._resolve_global(name)
        self._globals.vars[name] = value
        return value

    def _assign_name(self, name: str, value: Any, scope: _Scope):
        owner = scope.find(name)
        if owner is None:
            # Undeclared assignment lands in the innermost function scope
            owner = scope
        owner.vars[name] = value

    def _apply_op(self, op: str, a: Any, b: Any) -> Any:
        """Apply a binary operator."""
        if op == "in":
            if isinstance(b, dict):
                return _to_string(a) in b
            if isinstance(b, list):
                idx = _to_number(a)
                return isinstance(idx, int) and 0 <= idx < len(b)
            raise JSRuntimeError("TypeError: 'in' on non-object")
        if op == "instanceof":
            return False
        func = _BINARY_OPS.get(op)
        if func is None:
            raise JSInterpreterError(f"Unsupported operator {op!r}")
        return func(a, b)

    def _eval_unary(self, node, scope: _Scope) -> Any:
        op = node[1]
        if op == "typeof":
            operand = node[2]
            if operand[0] == "name" and scope.find(operand[1]) is None:
                try:
                    val = self._lookup(operand[1], scope)
                except JSRuntimeError:
                    return "undefined"
            else:
                val = self._eval(operand, scope)
            if val is JS_UNDEFINED:
                return "undefined"
            if val is None or isinstance(val, (list, dict, JSRegExp)):
                return "object"
            if isinstance(val, bool):
                return "boolean"
            if _is_number(val):
                return "number"
            if isinstance(val, str):
                return "string"
            return "function"
        if op == "delete":
            target = node[2]
            if target[0] == "member":
                obj = self._eval(target[1], scope)
                key = self._eval(target[2], scope)
                if isinstance(obj, dict):
                    obj.pop(_to_string(key), None)
                elif isinstance(obj, list):
                    idx = _to_number(key)
                    if isinstance(idx, int) and 0 <= idx < len(obj):
                        obj[idx] = JS_UNDEFINED
            return True
        val = self._eval(node[2], scope)
        if op == "!":
            return not _js_ternary(val)
        if op == "-":
            return _normalize_number(-_to_number(val))
        if op == "+":
            return _to_number(val)
        if op == "~":
            return _to_int32(~_to_int32(val))
        if op == "void":
            return JS_UNDEFINED
        raise JSInterpreterError(f"Unsupported unary operator {op!r}")

    def _eval_assign(self, node, scope: _Scope) -> Any:
        _, op, target, value_node = node
        if target[0] == "name":
            name = target[1]
            if op == "=":
                value = self._eval(value_node, scope)
            else:
                current = self._lookup(name, scope)
                value = self._apply_op(op[:-1], current, self._eval(value_node, scope))
            self._assign_name(name, value, scope)
            return value

        obj = self._eval(target[1], scope)
        key = self._eval(target[2], scope)
        if op == "=":
            value = self._eval(value_node, scope)
        else:
            current = self._get_property(obj, key)
            value = self._apply_op(op[:-1], current, self._eval(value_node, scope))
        self._set_property(obj, key, value)
        return value

    def _eval_update(self, node, scope: _Scope) -> Any:
        _, op, prefix, target = node
        delta = 1 if op == "++" else -1
        if target[0] == "name":
            old = _to_number(self._lookup(target[1], scope))
            new = _normalize_number(old + delta)
            self._assign_name(target[1], new, scope)
        elif target[0] == "member":
            obj = self._eval(target[1], scope)
            key = self._eval(target[2], scope)
            old = _to_number(self._get_property(obj, key))
            new = _normalize_number(old + delta)
            self._set_property(obj, key, new)
        else:
            raise JSRuntimeError("ReferenceError: Invalid update target")
        return new if prefix else old

    def _eval_call(self, node, scope: _Scope) -> Any:
        _, callee, arg_nodes = node
        if callee[0] == "member":
            obj = self._eval(callee[1], scope)
            key = _to_string(self._eval(callee[2], scope))
            args = [self._eval(a, scope) for a in arg_nodes]
            return self._call_method(obj, key, args)

        func = self._eval(callee, scope)
        args = [self._eval(a, scope) for a in arg_nodes]
        return self._call_value(func, args, JS_UNDEFINED)

    def _eval_new(self, node, scope: _Scope) -> Any:
        _, callee, arg_nodes = node
        if callee[0] == "name" and callee[1] == "Array":
            args = [self._eval(a, scope) for a in arg_nodes]
            if len(args) == 1 and _is_number(args[0]):
                length = self._array_length(args[0])
                self._charge(length)
                return [JS_UNDEFINED] * length
            return args
        raise JSRuntimeError("TypeError: constructors are not supported")

    def _call_value(self, func: Any, args: list, this: Any) -> Any:
        if isinstance(func, JSFunction):
            return func(*args, this=this)
        if callable(func):
            return func(*args)
        raise JSRuntimeError(f"TypeError: {_to_string(func)} is not a function")

    # === property access ===

    def _get_property(self, obj: Any, key: Any) -> Any:
        """Get a property from an object."""
        if obj is None or obj is JS_UNDEFINED:
            raise JSRuntimeError(f"TypeError: Cannot read properties of {_to_string(obj)}")

        if isinstance(obj, (list, str)):
            if _is_number(key):
                idx = key
            else:
                prop = _to_string(key)
                if prop == "length":
                    return len(obj)
                idx = _to_number(prop) if prop.isdigit() else None
            if isinstance(idx, int) and 0 <= idx < len(obj):
                return obj[idx]
            return JS_UNDEFINED

        if isinstance(obj, dict):
            return obj.get(_to_string(key), JS_UNDEFINED)

        if isinstance(obj, JSFunction) and _to_string(key) == "length":
            return len(obj.params)

        return JS_UNDEFINED

    def _set_property(self, obj: Any, key: Any, value: Any):
        if isinstance(obj, list):
            if not _is_number(key) and _to_string(key) == "length":
                length = self._array_length(value)
                self._charge(length - len(obj))
                del obj[length:]
                obj.extend([JS_UNDEFINED] * (length - len(obj)))
                return
            idx = _to_number(key)
            if not isinstance(idx, int) or idx < 0:
                return
            if idx >= len(obj):
                self._charge(idx + 1 - len(obj))
                obj.extend([JS_UNDEFINED] * (idx + 1 - len(obj)))
            obj[idx] = value
            return
        if isinstance(obj, dict):
            obj[_to_string(key)] = value
            return
        if obj is None or obj is JS_UNDEFINED:
            raise JSRuntimeError(f"TypeError: Cannot set properties of {_to_string(obj)}")
        # Assignments to primitives are silently ignored, as in sloppy-mode JS

    def _call_method(self, obj: Any, method: str, args: list) -> Any:
        """Call a method on an object."""
        if isinstance(obj, str):
            return self._call_string_method(obj, method, args)
        if isinstance(obj, list):
            return self._call_array_method(obj, method, args)
        if isinstance(obj, JSFunction):
            if method == "call":
                return obj(*args[1:], this=args[0] if args else JS_UNDEFINED)
            if method == "apply":
                call_args = args[1] if len(args) > 1 and isinstance(args[1], list) else []
                return obj(*call_args, this=args[0] if args else JS_UNDEFINED)
        if isinstance(obj, JSRegExp) and method == "test":
            return bool(obj.regex.search(_to_string(args[0]) if args else "undefined"))
        if isinstance(obj, dict):
            return self._call_value(obj.get(method, JS_UNDEFINED), args, obj)
        if _is_number(obj) and method == "toString":
            return _to_string(obj)
        raise JSRuntimeError(f"TypeError: {method} is not a function on {_to_string(obj)}")

    def _call_string_method(self, obj: str, method: str, args: list) -> Any:
        def arg_int(i: int, default: int) -> int:
            if i >= len(args) or args[i] is JS_UNDEFINED:
                return default
            num = _to_number(args[i])
            if isinstance(num, float):
                if math.isnan(num):
                    return 0
                if math.isinf(num):
                    return len(obj) if num > 0 else -len(obj)
            return int(num)

        if method == "split":
            sep = args[0] if args else JS_UNDEFINED
            if sep is JS_UNDEFINED:
                return [obj]
            if isinstance(sep, JSRegExp):
                return sep.regex.split(obj)
            if sep == "":
                return list(obj)
            return obj.split(_to_string(sep))
        if method == "charAt":
            idx = arg_int(0, 0)
            return obj[idx] if 0 <= idx < len(obj) else ""
        if method == "charCodeAt":
            idx = arg_int(0, 0)
            return ord(obj[idx]) if 0 <= idx < len(obj) else float("nan")
        if method == "indexOf":
            return obj.find(_to_string(args[0]) if args else "undefined", max(arg_int(1, 0), 0))
        if method == "lastIndexOf":
            return obj.rfind(_to_string(args[0]) if args else "undefined")
        if method == "slice":
            return obj[arg_int(0, 0) : arg_int(1, len(obj))]
        if method == "substring":
            start = min(max(arg_int(0, 0), 0), len(obj))
            end = min(max(arg_int(1, len(obj)), 0), len(obj))
            return obj[min(start, end) : max(start, end)]
        if method == "substr":
            start = arg_int(0, 0)
            if start < 0:
                start = max(len(obj) + start, 0)
            return obj[start : start + max(arg_int(1, len(obj)), 0)]
        if method == "replace":
            pattern = args[0] if args else JS_UNDEFINED
            repl = _to_string(args[1]) if len(args) > 1 else "undefined"
            if isinstance(pattern, JSRegExp):
                count = 0 if "g" in pattern.flags else 1
                return pattern.regex.sub(lambda _: repl, obj, count=count)
            return obj.replace(_to_string(pattern), repl, 1)
        if method == "concat":
            return obj + "".join(_to_string(a) for a in args)
        if method == "toLowerCase":
            return obj.lower()
        if method == "toUpperCase":
            return obj.upper()
        if method == "trim":
            return obj.strip()
        if method == "startsWith":
            return obj.startswith(_to_string(args[0])) if args else False
        if method == "endsWith":
            return obj.endswith(_to_string(args[0])) if args else False
        if method == "includes":
            return (_to_string(args[0]) in obj) if args else False
        if method == "repeat":
            count = arg_int(0, 0)
            if count < 0:
                raise JSRuntimeError(f"RangeError: Invalid count value: {count}")
            self._charge(len(obj) * count)
            return obj * count
        if method == "padStart":
            pad = _to_string(args[1]) if len(args) > 1 else " "
            width = arg_int(0, 0)
            self._charge(width - len(obj))
            return obj.rjust(width, pad[:1] or " ")
        if method == "toString":
            return obj
        raise JSRuntimeError(f"TypeError: String.prototype.{method} is not supported")

    def _call_array_method(self, obj: list, method: str, args: list) -> Any:
        def arg_int(i: int, default: int) -> int:
            if i >= len(args) or args[i] is JS_UNDEFINED:
                return default
            num = _to_number(args[i])
            if isinstance(num, float) and (math.isnan(num) or math.isinf(num)):
                return 0 if math.isnan(num) else (len(obj) if num > 0 else -len(obj))
            return int(num)

        def callback(i: int = 0) -> Any:
            func = args[i] if i < len(args) else JS_UNDEFINED
            if not isinstance(func, JSFunction) and not callable(func):
                raise JSRuntimeError(f"TypeError: {_to_string(func)} is not a function")
            return func

        if method == "push":
            obj.extend(args)
            return len(obj)
        if method == "pop":
            return obj.pop() if obj else JS_UNDEFINED
        if method == "shift":
            return obj.pop(0) if obj else JS_UNDEFINED
        if method == "unshift":
            obj[0:0] = args
            return len(obj)
        if method == "reverse":
            obj.reverse()
            return obj
        if method == "slice":
            return obj[arg_int(0, 0) : arg_int(1, len(obj))]
        if method == "splice":
            start = arg_int(0, 0)
            if start < 0:
                start = max(len(obj) + start, 0)
            start = min(start, len(obj))
            delete_count = arg_int(1, len(obj) - start) if len(args) > 1 else len(obj) - start
            delete_count = min(max(delete_count, 0), len(obj) - start)
            deleted = obj[start : start + delete_count]
            obj[start : start + delete_count] = args[2:]
            return deleted
        if method == "indexOf":
            target = args[0] if args else JS_UNDEFINED
            for i, item in enumerate(obj):
                if _strict_equals(item, target):
                    return i
            return -1
        if method == "includes":
            target = args[0] if args else JS_UNDEFINED
            return any(_strict_equals(item, target) for item in obj)
        if method == "join":
            sep = _to_string(args[0]) if args and args[0] is not JS_UNDEFINED else ","
            return sep.join(
                "" if x is None or x is JS_UNDEFINED else _to_string(x) for x in obj
            )
        if method == "concat":
            result = list(obj)
            for a in args:
                if isinstance(a, list):
                    result.extend(a)
                else:
                    result.append(a)
            return result
        if method == "forEach":
            func = callback()
            for i, item in enumerate(list(obj)):
                self._call_value(func, [item, i, obj], JS_UNDEFINED)
            return JS_UNDEFINED
        if method == "map":
            func = callback()
            return [self._call_value(func, [item, i, obj], JS_UNDEFINED) for i, item in enumerate(obj)]
        if method == "filter":
            func = callback()
            return [
                item
                for i, item in enumerate(obj)
                if _js_ternary(self._call_value(func, [item, i, obj], JS_UNDEFINED))
            ]
        if method == "toString":
            return _to_string(obj)
        raise JSRuntimeError(f"TypeError: Array.prototype.{method} is not supported")


def js_to_string(value: Any) -> str:
    """Public JS-style stringification, used for results handed back to Python."""
    return _to_string(value)


def dump_js_value(value: Any) -> str:
    """Readable form of an interpreter value for logging."""
    if isinstance(value, str):
        return json.dumps(value)
    return _to_string(value)
