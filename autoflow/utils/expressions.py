"""Restricted expression language for condition, transform and filter nodes.

Expressions use a small JavaScript-flavoured syntax so that existing
workflow definitions keep working::

    input.flag === true
    data.labels.includes("urgent") && data.priority <= 1
    { title: input.title.trim(), count: input.items.length }

Source text is tokenized, parsed by recursive descent into an immutable AST
and evaluated by a tree-walking interpreter against an explicit scope. The
interpreter never touches Python attributes, never imports, and can only
call the whitelisted methods below, so a workflow author cannot reach the
filesystem, the network or the host process.

Supported:
    - Literals: numbers, 'single' / "double" quoted strings, true, false,
      null, undefined, array literals and object literals (with ``...`` spread)
    - Member access: ``a.b``, ``a["b"]``, ``list[0]``, ``.length``
    - Operators: ``! -`` (unary), ``* / %``, ``+ -``, ``< <= > >=``,
      ``=== !== == !=``, ``&&``, ``||``, ``cond ? a : b``
    - Methods: includes, startsWith, endsWith, indexOf, toLowerCase,
      toUpperCase, trim, split, join, slice, keys, toString
"""

import logging
import math
import re
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from autoflow.utils.errors import ExpressionError

logger = logging.getLogger(__name__)


# =============================================================================
# Tokenizer
# =============================================================================

_PUNCTUATORS = (
    "===", "!==", "...", "==", "!=", "<=", ">=", "&&", "||",
    "<", ">", "+", "-", "*", "/", "%", "!", "?", ":", ".", ",",
    "(", ")", "[", "]", "{", "}",
)

_NUMBER = re.compile(r"(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")
_NAME = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_INDEX = re.compile(r"[0-9]{1,18}")
_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v", "0": "\0"}

KEYWORDS = {"true": True, "false": False, "null": None, "undefined": None}


@dataclass(frozen=True)
class Token:
    kind: str  # "num", "str", "name", "op", "eof"
    value: Any
    pos: int


def tokenize(source: str) -> List[Token]:
    """Split an expression into tokens.

    Raises:
        ExpressionError: On an unterminated string or unexpected character
    """
    tokens: List[Token] = []
    i = 0
    length = len(source)

    while i < length:
        ch = source[i]

        if ch.isspace():
            i += 1
            continue

        if ch in "'\"":
            value, i = _read_string(source, i)
            tokens.append(Token("str", value, i))
            continue

        match = _NUMBER.match(source, i)
        if match and (ch.isdigit() or (ch == "." and i + 1 < length and source[i + 1].isdigit())):
            text = match.group(0)
            value = _normalize(float(text))
            tokens.append(Token("num", value, i))
            i = match.end()
            continue

        match = _NAME.match(source, i)
        if match:
            tokens.append(Token("name", match.group(0), i))
            i = match.end()
            continue

        for punct in _PUNCTUATORS:
            if source.startswith(punct, i):
                tokens.append(Token("op", punct, i))
                i += len(punct)
                break
        else:
            raise ExpressionError(source, f"Unexpected character {ch!r} at position {i}")

    tokens.append(Token("eof", None, length))
    return tokens


def _read_string(source: str, start: int) -> Tuple[str, int]:
    quote = source[start]
    chars: List[str] = []
    i = start + 1
    while i < len(source):
        ch = source[i]
        if ch == quote:
            return "".join(chars), i + 1
        if ch == "\\" and i + 1 < len(source):
            nxt = source[i + 1]
            if nxt == "u" and re.fullmatch(r"[0-9a-fA-F]{4}", source[i + 2:i + 6]):
                chars.append(chr(int(source[i + 2:i + 6], 16)))
                i += 6
                continue
            chars.append(_ESCAPES.get(nxt, nxt))
            i += 2
            continue
        chars.append(ch)
        i += 1
    raise ExpressionError(source, f"Unterminated string starting at position {start}")


# =============================================================================
# AST
# =============================================================================


class Expr:
    """Base class for AST nodes."""


@dataclass(frozen=True)
class Literal(Expr):
    value: Any


@dataclass(frozen=True)
class Name(Expr):
    name: str


@dataclass(frozen=True)
class Member(Expr):
    obj: Expr
    prop: Expr


@dataclass(frozen=True)
class MethodCall(Expr):
    obj: Expr
    method: str
    args: Tuple[Expr, ...]


@dataclass(frozen=True)
class Unary(Expr):
    op: str
    operand: Expr


@dataclass(frozen=True)
class Binary(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Logical(Expr):
    op: str
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Conditional(Expr):
    test: Expr
    consequent: Expr
    alternate: Expr


@dataclass(frozen=True)
class Spread(Expr):
    value: Expr


@dataclass(frozen=True)
class ArrayLiteral(Expr):
    items: Tuple[Expr, ...]


@dataclass(frozen=True)
class ObjectLiteral(Expr):
    # Each entry is (key, value) or (None, Spread)
    entries: Tuple[Tuple[Optional[str], Expr], ...]


# =============================================================================
# Parser
# =============================================================================


class Parser:
    """Recursive-descent parser producing an ``Expr`` tree."""

    def __init__(self, source: str):
        self.source = source
        self.tokens = tokenize(source)
        self.index = 0

    def parse(self) -> Expr:
        expr = self.expression()
        token = self.peek()
        if token.kind != "eof":
            self.fail(f"Unexpected token {token.value!r}", token)
        return expr

    # -- helpers --------------------------------------------------------------

    def peek(self) -> Token:
        return self.tokens[self.index]

    def advance(self) -> Token:
        token = self.tokens[self.index]
        if token.kind != "eof":
            self.index += 1
        return token

    def check(self, *ops: str) -> bool:
        token = self.peek()
        return token.kind == "op" and token.value in ops

    def match(self, *ops: str) -> Optional[str]:
        if self.check(*ops):
            return self.advance().value
        return None

    def expect(self, op: str) -> Token:
        if not self.check(op):
            token = self.peek()
            found = "end of expression" if token.kind == "eof" else repr(token.value)
            self.fail(f"Expected {op!r} but found {found}", token)
        return self.advance()

    def fail(self, message: str, token: Token) -> None:
        raise ExpressionError(self.source, f"{message} at position {token.pos}")

    # -- grammar --------------------------------------------------------------

    def expression(self) -> Expr:
        test = self.logical_or()
        if self.match("?"):
            consequent = self.expression()
            self.expect(":")
            alternate = self.expression()
            return Conditional(test, consequent, alternate)
        return test

    def logical_or(self) -> Expr:
        expr = self.logical_and()
        while self.match("||"):
            expr = Logical("||", expr, self.logical_and())
        return expr

    def logical_and(self) -> Expr:
        expr = self.equality()
        while self.match("&&"):
            expr = Logical("&&", expr, self.equality())
        return expr

    def equality(self) -> Expr:
        expr = self.comparison()
        while True:
            op = self.match("===", "!==", "==", "!=")
            if op is None:
                return expr
            expr = Binary(op, expr, self.comparison())

    def comparison(self) -> Expr:
        expr = self.additive()
        while True:
            op = self.match("<", "<=", ">", ">=")
            if op is None:
                return expr
            expr = Binary(op, expr, self.additive())

    def additive(self) -> Expr:
        expr = self.term()
        while True:
            op = self.match("+", "-")
            if op is None:
                return expr
            expr = Binary(op, expr, self.term())

    def term(self) -> Expr:
        expr = self.unary()
        while True:
            op = self.match("*", "/", "%")
            if op is None:
                return expr
            expr = Binary(op, expr, self.unary())

    def unary(self) -> Expr:
        op = self.match("!", "-")
        if op is not None:
            return Unary(op, self.unary())
        return self.postfix()

    def postfix(self) -> Expr:
        expr = self.primary()
        while True:
            if self.match("."):
                token = self.advance()
                if token.kind != "name":
                    self.fail("Expected property name after '.'", token)
                expr = Member(expr, Literal(token.value))
            elif self.match("["):
                prop = self.expression()
                self.expect("]")
                expr = Member(expr, prop)
            elif self.check("("):
                token = self.advance()
                if not isinstance(expr, Member) or not isinstance(expr.prop, Literal):
                    self.fail("Only method calls are allowed", token)
                args = self.arguments()
                expr = MethodCall(expr.obj, str(expr.prop.value), args)
            else:
                return expr

    def arguments(self) -> Tuple[Expr, ...]:
        args: List[Expr] = []
        while not self.check(")"):
            args.append(self.expression())
            if not self.match(","):
                break
        self.expect(")")
        return tuple(args)

    def primary(self) -> Expr:
        token = self.advance()

        if token.kind in ("num", "str"):
            return Literal(token.value)

        if token.kind == "name":
            if token.value in KEYWORDS:
                return Literal(KEYWORDS[token.value])
            return Name(token.value)

        if token.kind == "op":
            if token.value == "(":
                expr = self.expression()
                self.expect(")")
                return expr
            if token.value == "[":
                return self.array_literal()
            if token.value == "{":
                return self.object_literal()

        if token.kind == "eof":
            self.fail("Unexpected end of expression", token)
        self.fail(f"Unexpected token {token.value!r}", token)

    def array_literal(self) -> Expr:
        items: List[Expr] = []
        while not self.check("]"):
            if self.match("..."):
                items.append(Spread(self.expression()))
            else:
                items.append(self.expression())
            if not self.match(","):
                break
        self.expect("]")
        return ArrayLiteral(tuple(items))

    def object_literal(self) -> Expr:
        entries: List[Tuple[Optional[str], Expr]] = []
        while not self.check("}"):
            if self.match("..."):
                entries.append((None, Spread(self.expression())))
            else:
                token = self.advance()
                if token.kind not in ("name", "str", "num"):
                    self.fail("Expected property key", token)
                key = _to_string(token.value) if token.kind == "num" else token.value
                if self.match(":"):
                    entries.append((key, self.expression()))
                elif token.kind == "name":
                    # Shorthand {name}
                    entries.append((key, Name(key)))
                else:
                    self.expect(":")
            if not self.match(","):
                break
        self.expect("}")
        return ObjectLiteral(tuple(entries))


@lru_cache(maxsize=512)
def compile_expression(source: str) -> Expr:
    """Parse an expression into an AST, caching by source text.

    Raises:
        ExpressionError: If the source does not parse
    """
    try:
        return Parser(source).parse()
    except RecursionError:
        raise ExpressionError(source, "Expression is nested too deeply")


# =============================================================================
# Value semantics
# =============================================================================


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _normalize(number: float) -> Any:
    if isinstance(number, float) and math.isfinite(number) and number.is_integer():
        return int(number)
    return number


def is_truthy(value: Any) -> bool:
    """JavaScript truthiness: empty arrays and objects are truthy."""
    if value is None or value is False:
        return False
    if _is_number(value):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value != ""
    return True


def _to_number(value: Any) -> float:
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1 if value else 0
    if _is_number(value):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0
        try:
            return _normalize(float(text))
        except ValueError:
            return math.nan
    return math.nan


def _to_string(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        return str(_normalize(value))
    if isinstance(value, (list, tuple)):
        return ",".join("" if item is None else _to_string(item) for item in value)
    if isinstance(value, dict):
        return "[object Object]"
    return str(value)


def strict_equals(left: Any, right: Any) -> bool:
    """``===``: no coercion, booleans never equal numbers."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    if type(left) is not type(right):
        return False
    return left == right


def loose_equals(left: Any, right: Any) -> bool:
    """``==``: null only equals null, numbers and strings compare numerically."""
    if left is None or right is None:
        return left is None and right is None
    if isinstance(left, bool):
        left = 1 if left else 0
    if isinstance(right, bool):
        right = 1 if right else 0
    if _is_number(left) and isinstance(right, str):
        return left == _to_number(right)
    if isinstance(left, str) and _is_number(right):
        return _to_number(left) == right
    return strict_equals(left, right)


def _compare(op: str, left: Any, right: Any) -> bool:
    if not (isinstance(left, str) and isinstance(right, str)):
        left, right = _to_number(left), _to_number(right)
        if math.isnan(left) or math.isnan(right):
            return False
    if op == "<":
        return left < right
    if op == "<=":
        return left <= right
    if op == ">":
        return left > right
    return left >= right


def _arithmetic(op: str, left: Any, right: Any) -> Any:
    if op == "+" and (
        isinstance(left, (str, list, dict)) or isinstance(right, (str, list, dict))
    ):
        return _to_string(left) + _to_string(right)

    a, b = _to_number(left), _to_number(right)
    if op == "+":
        return _normalize(a + b)
    if op == "-":
        return _normalize(a - b)
    if op == "*":
        return _normalize(a * b)
    if b == 0:
        if op == "%" or a == 0 or math.isnan(a):
            return math.nan
        # Division by zero follows IEEE 754 rather than raising
        return math.inf if (a > 0) == (math.copysign(1, b) > 0) else -math.inf
    if op == "/":
        return _normalize(a / b)
    return _normalize(math.fmod(a, b))


def _get_member(obj: Any, prop: Any, source: str) -> Any:
    if obj is None:
        raise ExpressionError(
            source, f"Cannot read properties of null (reading '{_to_string(prop)}')"
        )
    if isinstance(obj, dict):
        return obj.get(prop if isinstance(prop, str) else _to_string(prop))
    if isinstance(obj, (list, str)):
        if prop == "length":
            return len(obj)
        if _is_number(prop) and float(prop).is_integer() and 0 <= prop < len(obj):
            return obj[int(prop)]
        if isinstance(prop, str) and _INDEX.fullmatch(prop) and int(prop) < len(obj):
            return obj[int(prop)]
    return None


def _slice_index(value: Any, length: int) -> int:
    number = _to_number(value)
    if math.isnan(number):
        return 0
    if math.isinf(number):
        return length if number > 0 else -length
    return int(number)


def _slice(seq: Any, args: List[Any]) -> Any:
    start = _slice_index(args[0], len(seq)) if args and args[0] is not None else None
    end = _slice_index(args[1], len(seq)) if len(args) > 1 and args[1] is not None else None
    return seq[start:end]


def _index_of(seq: Any, args: List[Any]) -> int:
    needle = args[0] if args else None
    if isinstance(seq, str):
        return seq.find(_to_string(needle))
    for index, item in enumerate(seq):
        if strict_equals(item, needle):
            return index
    return -1


def _split(text: str, args: List[Any]) -> List[str]:
    if not args or args[0] is None:
        return [text]
    separator = _to_string(args[0])
    if separator == "":
        return list(text)
    return text.split(separator)


_STRING_METHODS: Dict[str, Callable[[str, List[Any]], Any]] = {
    "includes": lambda s, a: _to_string(a[0] if a else None) in s,
    "startsWith": lambda s, a: s.startswith(_to_string(a[0] if a else None)),
    "endsWith": lambda s, a: s.endswith(_to_string(a[0] if a else None)),
    "indexOf": _index_of,
    "toLowerCase": lambda s, a: s.lower(),
    "toUpperCase": lambda s, a: s.upper(),
    "trim": lambda s, a: s.strip(),
    "split": _split,
    "slice": _slice,
    "toString": lambda s, a: s,
}

_LIST_METHODS: Dict[str, Callable[[list, List[Any]], Any]] = {
    "includes": lambda s, a: _index_of(s, a) != -1,
    "indexOf": _index_of,
    "join": lambda s, a: (
        "," if not a or a[0] is None else _to_string(a[0])
    ).join("" if item is None else _to_string(item) for item in s),
    "slice": _slice,
    "toString": lambda s, a: _to_string(s),
}

_DICT_METHODS: Dict[str, Callable[[dict, List[Any]], Any]] = {
    "keys": lambda d, a: list(d.keys()),
    "toString": lambda d, a: _to_string(d),
}


def _call_method(obj: Any, method: str, args: List[Any], source: str) -> Any:
    if isinstance(obj, str):
        table = _STRING_METHODS
    elif isinstance(obj, list):
        table = _LIST_METHODS
    elif isinstance(obj, dict):
        table = _DICT_METHODS
    elif obj is None:
        raise ExpressionError(
            source, f"Cannot read properties of null (reading '{method}')"
        )
    else:
        table = {"toString": lambda v, a: _to_string(v)}

    func = table.get(method)
    if func is None:
        raise ExpressionError(source, f"{method} is not an allowed method")
    return func(obj, args)


# =============================================================================
# Interpreter
# =============================================================================


class Interpreter:
    """Evaluate an ``Expr`` tree against a scope of named values."""

    def __init__(self, source: str, scope: Mapping[str, Any]):
        self.source = source
        self.scope = scope

    def eval(self, node: Expr) -> Any:
        if isinstance(node, Literal):
            return node.value

        if isinstance(node, Name):
            if node.name not in self.scope:
                raise ExpressionError(self.source, f"{node.name} is not defined")
            return self.scope[node.name]

        if isinstance(node, Member):
            return _get_member(self.eval(node.obj), self.eval(node.prop), self.source)

        if isinstance(node, MethodCall):
            obj = self.eval(node.obj)
            args = [self.eval(arg) for arg in node.args]
            return _call_method(obj, node.method, args, self.source)

        if isinstance(node, Unary):
            value = self.eval(node.operand)
            if node.op == "!":
                return not is_truthy(value)
            return _normalize(-_to_number(value))

        if isinstance(node, Logical):
            left = self.eval(node.left)
            if node.op == "&&":
                return self.eval(node.right) if is_truthy(left) else left
            return left if is_truthy(left) else self.eval(node.right)

        if isinstance(node, Binary):
            return self._binary(node.op, self.eval(node.left), self.eval(node.right))

        if isinstance(node, Conditional):
            if is_truthy(self.eval(node.test)):
                return self.eval(node.consequent)
            return self.eval(node.alternate)

        if isinstance(node, ArrayLiteral):
            items: List[Any] = []
            for item in node.items:
                if isinstance(item, Spread):
                    value = self.eval(item.value)
                    if not isinstance(value, (list, str)):
                        raise ExpressionError(self.source, "Spread value is not iterable")
                    items.extend(value)
                else:
                    items.append(self.eval(item))
            return items

        if isinstance(node, ObjectLiteral):
            result: Dict[str, Any] = {}
            for key, value_node in node.entries:
                if key is None:
                    value = self.eval(value_node.value)
                    if isinstance(value, dict):
                        result.update(value)
                    elif value is not None:
                        raise ExpressionError(self.source, "Spread value is not an object")
                else:
                    result[key] = self.eval(value_node)
            return result

        raise ExpressionError(self.source, f"Unsupported syntax: {type(node).__name__}")

    def _binary(self, op: str, left: Any, right: Any) -> Any:
        if op == "===":
            return strict_equals(left, right)
        if op == "!==":
            return not strict_equals(left, right)
        if op == "==":
            return loose_equals(left, right)
        if op == "!=":
            return not loose_equals(left, right)
        if op in ("<", "<=", ">", ">="):
            return _compare(op, left, right)
        return _arithmetic(op, left, right)


# =============================================================================
# Entry points
# =============================================================================


def evaluate(source: str, scope: Mapping[str, Any]) -> Any:
    """Evaluate an expression against a scope.

    Args:
        source: Expression text
        scope: Names visible to the expression (e.g. ``{"input": ...}``)

    Returns:
        The expression's value

    Raises:
        ExpressionError: On syntax errors, unknown names or disallowed calls
    """
    try:
        tree = compile_expression(source)
        return Interpreter(source, scope).eval(tree)
    except ExpressionError:
        raise
    except RecursionError:
        raise ExpressionError(source, "Expression is nested too deeply")
    except (TypeError, ValueError, IndexError, KeyError, ArithmeticError) as e:
        raise ExpressionError(source, str(e)) from e


def evaluate_condition(expression: str, scope: Mapping[str, Any]) -> bool:
    """Evaluate a boolean expression; any failure counts as False."""
    try:
        return is_truthy(evaluate(expression, scope))
    except ExpressionError as e:
        logger.warning("Condition evaluation failed, treating as false: %s", e)
        return False


_RETURN_PREFIX = re.compile(r"^return(?![A-Za-z0-9_$])\s*")


def strip_function_body(body: str) -> str:
    """Reduce ``return <expr>;`` to ``<expr>``."""
    text = body.strip()
    text = _RETURN_PREFIX.sub("", text, count=1)
    while text.endswith(";"):
        text = text[:-1].rstrip()
    return text


def evaluate_transform(function_body: str, input: Any) -> Any:
    """Evaluate a transform body with ``input`` in scope.

    Raises:
        ExpressionError: If the body does not parse or fails to evaluate
    """
    expression = strip_function_body(function_body)
    if not expression:
        return None
    return evaluate(expression, {"input": input})
