"""
Restricted expression interpreter.

User-written expressions and function bodies are parsed with Python's `ast`
module and walked by a whitelisting interpreter. Nothing is ever passed to
eval/exec: only the node types handled below are accepted, attribute access
never reaches dunder/private names, and every evaluation runs under a step
budget.

Language:
- Python expression syntax, plus the JavaScript operators form authors tend
  to type (`===`, `!==`, `&&`, `||`, `!`, `true`, `false`, `null`,
  `undefined`), which are rewritten before parsing.
- Dict access by attribute: `data.address.city`. A missing key reads as
  None; reading an attribute *of* None is an error.
- `.length` on strings, lists and dicts, and a few JS method aliases
  (`includes`, `indexOf`, `toLowerCase`, `toUpperCase`, `trim`,
  `startsWith`, `endsWith`, `join` on lists).
- Function bodies: assignments, if/elif/else, for/while loops, break,
  continue, return, comprehensions and lambdas.
- Function text: `(data, component) => expr`, `(data) => { body }`,
  `function (data, component) { body }` and `lambda data, component: expr`.
"""

from __future__ import annotations

import ast
import logging
import re
import textwrap
from collections.abc import Callable, Iterable, Mapping
from typing import Any

from formx.config import get_settings
from formx.core.exceptions import (
    EvaluationBudgetExceeded,
    EvaluationError,
    ExpressionSyntaxError,
    UnsupportedExpressionError,
)

logger = logging.getLogger(__name__)

MAX_SEQUENCE_LENGTH = 100_000
MAX_EXPONENT = 1_000
MAX_POWER_BITS = 100_000

_JS_WORDS = {"true": "True", "false": "False", "null": "None", "undefined": "None"}

_ARROW_PATTERN = re.compile(r"^\s*\(?\s*([\w\s,$]*?)\s*\)?\s*=>\s*(.*)$", re.DOTALL)
_FUNCTION_PATTERN = re.compile(r"^\s*function\b\s*[\w$]*\s*\(([^)]*)\)\s*\{(.*)\}\s*$", re.DOTALL)
_LAMBDA_PATTERN = re.compile(r"^\s*lambda\b([^:]*):(.*)$", re.DOTALL)


# =============================================================================
# Source normalisation
# =============================================================================


def normalize_source(source: str) -> str:
    """
    Rewrite JavaScript operators/literals into Python outside string literals.

    "!data.x && data.y === null" -> "not data.x and data.y == None"
    """
    out: list[str] = []
    i = 0
    n = len(source)
    quote: str | None = None

    def prev_char() -> str:
        return out[-1][-1] if out and out[-1] else ""

    while i < n:
        ch = source[i]

        if quote:
            out.append(ch)
            if ch == "\\" and i + 1 < n:
                out.append(source[i + 1])
                i += 2
                continue
            if ch == quote:
                quote = None
            i += 1
            continue

        if ch in ("'", '"'):
            quote = ch
            out.append(ch)
            i += 1
            continue

        if ch == "#":
            end = source.find("\n", i)
            end = n if end == -1 else end
            out.append(source[i:end])
            i = end
            continue

        if source.startswith("===", i) or source.startswith("!==", i):
            out.append("==" if ch == "=" else "!=")
            i += 3
            continue

        if source.startswith("&&", i) or source.startswith("||", i):
            word = "and" if ch == "&" else "or"
            lead = "" if prev_char().isspace() else " "
            trail = "" if source[i + 2:i + 3].isspace() else " "
            out.append(f"{lead}{word}{trail}")
            i += 2
            continue

        if ch == "!" and not source.startswith("!=", i):
            lead = "" if (not prev_char() or prev_char().isspace() or prev_char() in "([{,") else " "
            out.append(f"{lead}not ")
            i += 1
            continue

        if ch.isalpha() or ch in "_$":
            j = i
            while j < n and (source[j].isalnum() or source[j] in "_$"):
                j += 1
            word = source[i:j]
            out.append(_JS_WORDS.get(word, word))
            i = j
            continue

        out.append(ch)
        i += 1

    return "".join(out)


def parse_expression(source: str) -> ast.Expression:
    """Parse a single expression, raising ExpressionSyntaxError on failure."""
    text = normalize_source(source).strip()
    if text.endswith(";"):
        text = text[:-1].rstrip()
    if not text:
        raise ExpressionSyntaxError("Expression is empty")
    try:
        return ast.parse(text, mode="eval")
    except SyntaxError as e:
        raise ExpressionSyntaxError(f"Invalid expression: {e.msg}") from e


def parse_function_body(source: str) -> list[ast.stmt]:
    """Parse a function body (statements with `return`)."""
    body = textwrap.dedent(normalize_source(source)).strip("\n")
    if not body.strip():
        return []
    wrapped = "def __formx_body__():\n" + textwrap.indent(body, "    ")
    try:
        module = ast.parse(wrapped, mode="exec")
    except SyntaxError as e:
        raise ExpressionSyntaxError(f"Invalid function body: {e.msg} (line {max((e.lineno or 1) - 1, 1)})") from e
    func = module.body[0]
    assert isinstance(func, ast.FunctionDef)
    return func.body


def split_function_text(text: str) -> tuple[list[str], str, bool]:
    """
    Split function text into (parameter names, body, body_is_block).

    Raises ExpressionSyntaxError when the text is not a recognised form.
    """
    match = _FUNCTION_PATTERN.match(text)
    if match:
        return _param_names(match.group(1)), match.group(2), True

    match = _LAMBDA_PATTERN.match(text)
    if match:
        return _param_names(match.group(1)), match.group(2), False

    match = _ARROW_PATTERN.match(text)
    if match:
        body = match.group(2).strip()
        if body.startswith("{") and body.endswith("}"):
            return _param_names(match.group(1)), body[1:-1], True
        return _param_names(match.group(1)), body, False

    raise ExpressionSyntaxError("Not a function: expected '(data, component) => ...' or 'function (...) { ... }'")


def _param_names(raw: str) -> list[str]:
    return [p.strip() for p in raw.split(",") if p.strip()]


def looks_like_function_text(value: str) -> bool:
    """Heuristic used by the source classifier: arrow, 'function' or leading '('."""
    return "=>" in value or "function" in value or value.lstrip().startswith("(")


# =============================================================================
# Interpreter
# =============================================================================


class _Return(Exception):
    def __init__(self, value: Any):
        self.value = value


class _Break(Exception):
    pass


class _Continue(Exception):
    pass


class _Lambda:
    """A lambda defined inside an expression; callable by whitelisted builtins."""

    def __init__(self, interpreter: Interpreter, node: ast.Lambda, scope: dict[str, Any]):
        self._interpreter = interpreter
        self._node = node
        self._scope = scope

    def __call__(self, *args: Any) -> Any:
        params = [a.arg for a in self._node.args.args]
        if len(args) > len(params):
            raise EvaluationError(f"lambda takes {len(params)} arguments ({len(args)} given)")
        local = dict(self._scope)
        for name, value in zip(params, args):
            local[name] = value
        for name in params[len(args):]:
            local[name] = None
        return self._interpreter.eval_node(self._node.body, local)


def _capped_range(*args: int) -> list[int]:
    values = range(*args)
    if len(values) > MAX_SEQUENCE_LENGTH:
        raise EvaluationError("range() is too large")
    return list(values)


def _check_length(size: int, what: str) -> None:
    if size > MAX_SEQUENCE_LENGTH:
        raise EvaluationError(f"{what} result is too large")


def _capped_replace(text: str) -> Callable[..., str]:
    def replace(old: str, new: str, count: int = -1) -> str:
        if isinstance(old, str) and isinstance(new, str) and len(new) > len(old):
            hits = text.count(old)
            if count >= 0:
                hits = min(hits, count)
            _check_length(len(text) + hits * (len(new) - len(old)), "replace()")
        return text.replace(old, new, count)

    return replace


def _capped_join(separator: str, parts: Iterable[Any]) -> str:
    items = list(parts)
    total = sum(len(item) for item in items if isinstance(item, str))
    _check_length(total + len(separator) * max(len(items) - 1, 0), "join()")
    return separator.join(items)


def _capped_sum(values: Iterable[Any], start: Any = 0) -> Any:
    items = list(values)
    if isinstance(start, (list, tuple)):
        total = len(start) + sum(len(item) for item in items if isinstance(item, (list, tuple)))
        _check_length(total, "sum()")
    return sum(items, start)


def _check_format_spec(spec: str) -> None:
    for digits in re.findall(r"\d+", spec):
        if len(digits) > 6 or int(digits) > MAX_SEQUENCE_LENGTH:
            raise EvaluationError("Format width/precision is too large")


def _to_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


SAFE_BUILTINS: dict[str, Callable[..., Any]] = {
    "abs": abs,
    "all": all,
    "any": any,
    "bool": bool,
    "dict": dict,
    "enumerate": lambda it, start=0: list(enumerate(it, start)),
    "float": float,
    "int": int,
    "len": len,
    "list": list,
    "max": max,
    "min": min,
    "range": _capped_range,
    "reversed": lambda it: list(reversed(it)),
    "round": round,
    "set": set,
    "sorted": sorted,
    "str": str,
    "sum": _capped_sum,
    "tuple": tuple,
    "zip": lambda *its: list(zip(*its)),
    # JavaScript spellings
    "Boolean": bool,
    "Number": float,
    "String": _to_text,
    "parseInt": lambda v, base=10: int(str(v).strip(), base),
    "parseFloat": lambda v: float(str(v).strip()),
}

_STR_METHODS = {
    "lower", "upper", "strip", "lstrip", "rstrip", "startswith", "endswith",
    "split", "replace", "join", "title", "capitalize", "isdigit", "find", "count",
}
_SEQ_METHODS = {"index", "count"}
_DICT_METHODS = {"get", "keys", "values", "items"}

_JS_STR_ALIASES = {
    "toLowerCase": "lower",
    "toUpperCase": "upper",
    "trim": "strip",
    "startsWith": "startswith",
    "endsWith": "endswith",
}


def _resolve_method(obj: Any, name: str) -> Callable[..., Any]:
    """Return a whitelisted bound method (or JS alias) for obj."""
    if name.startswith("_"):
        raise UnsupportedExpressionError(f"Access to '{name}' is not permitted")

    if isinstance(obj, str):
        if name in _JS_STR_ALIASES:
            return getattr(obj, _JS_STR_ALIASES[name])
        if name == "includes":
            return lambda sub: sub in obj
        if name == "indexOf":
            return obj.find
        if name == "replace":
            return _capped_replace(obj)
        if name == "join":
            return lambda parts: _capped_join(obj, parts)
        if name in _STR_METHODS:
            return getattr(obj, name)

    elif isinstance(obj, (list, tuple)):
        if name == "includes":
            return lambda item: item in obj
        if name == "indexOf":
            return lambda item: obj.index(item) if item in obj else -1
        if name == "join":
            return lambda sep=",": _capped_join(sep, [_to_text(v) for v in obj])
        if name in _SEQ_METHODS:
            return getattr(obj, name)

    elif isinstance(obj, dict):
        if name in _DICT_METHODS:
            method = getattr(obj, name)
            if name == "get":
                return method
            return lambda: list(method())

    if obj is None:
        raise EvaluationError(f"Cannot call '{name}' of None")
    raise UnsupportedExpressionError(f"Method '{name}' is not available on {type(obj).__name__}")


class Interpreter(ast.NodeVisitor):
    """
    Evaluates parsed expression/function nodes against a name scope.

    One interpreter instance carries one step budget; create a fresh one per
    evaluation.
    """

    def __init__(self, max_steps: int | None = None):
        self.max_steps = max_steps if max_steps is not None else get_settings().expression_max_steps
        self.steps = 0
        self._scope: dict[str, Any] = {}

    # -------------------------------------------------------------------------
    # Entry points
    # -------------------------------------------------------------------------

    def eval_node(self, node: ast.AST, scope: dict[str, Any]) -> Any:
        previous = self._scope
        self._scope = scope
        try:
            return self.visit(node)
        finally:
            self._scope = previous

    def run_body(self, body: list[ast.stmt], scope: dict[str, Any]) -> Any:
        """Execute statements; the value of the first `return` wins (None if none)."""
        previous = self._scope
        self._scope = scope
        try:
            self._exec_block(body)
        except _Return as r:
            return r.value
        except (_Break, _Continue):
            raise UnsupportedExpressionError("'break'/'continue' outside loop")
        finally:
            self._scope = previous
        return None

    def visit(self, node: ast.AST) -> Any:
        self.steps += 1
        if self.steps > self.max_steps:
            raise EvaluationBudgetExceeded(f"Evaluation exceeded {self.max_steps} steps")
        return super().visit(node)

    def generic_visit(self, node: ast.AST) -> Any:
        raise UnsupportedExpressionError(f"Unsupported expression element '{type(node).__name__}'")

    # -------------------------------------------------------------------------
    # Statements
    # -------------------------------------------------------------------------

    def _exec_block(self, statements: Iterable[ast.stmt]) -> None:
        for statement in statements:
            self.visit(statement)

    def visit_Expression(self, node: ast.Expression) -> Any:
        return self.visit(node.body)

    def visit_Expr(self, node: ast.Expr) -> None:
        self.visit(node.value)

    def visit_Pass(self, node: ast.Pass) -> None:
        return None

    def visit_Return(self, node: ast.Return) -> None:
        raise _Return(self.visit(node.value) if node.value is not None else None)

    def visit_Break(self, node: ast.Break) -> None:
        raise _Break()

    def visit_Continue(self, node: ast.Continue) -> None:
        raise _Continue()

    def visit_Assign(self, node: ast.Assign) -> None:
        value = self.visit(node.value)
        for target in node.targets:
            self._assign(target, value)

    def visit_AugAssign(self, node: ast.AugAssign) -> None:
        if not isinstance(node.target, ast.Name):
            raise UnsupportedExpressionError("Augmented assignment only supports plain names")
        current = self._lookup(node.target.id)
        self._scope[node.target.id] = self._binary(node.op, current, self.visit(node.value))

    def visit_If(self, node: ast.If) -> None:
        if self.visit(node.test):
            self._exec_block(node.body)
        else:
            self._exec_block(node.orelse)

    def visit_For(self, node: ast.For) -> None:
        iterable = self._iterable(self.visit(node.iter))
        for item in iterable:
            self._assign(node.target, item)
            try:
                self._exec_block(node.body)
            except _Break:
                return
            except _Continue:
                continue
        self._exec_block(node.orelse)

    def visit_While(self, node: ast.While) -> None:
        while self.visit(node.test):
            try:
                self._exec_block(node.body)
            except _Break:
                return
            except _Continue:
                continue
        self._exec_block(node.orelse)

    def _assign(self, target: ast.AST, value: Any) -> None:
        if isinstance(target, ast.Name):
            if target.id in ("data", "component") and target.id in self._scope:
                raise UnsupportedExpressionError(f"Cannot reassign '{target.id}'")
            self._scope[target.id] = value
            return
        if isinstance(target, (ast.Tuple, ast.List)):
            items = list(self._iterable(value))
            if len(items) != len(target.elts):
                raise EvaluationError(f"Cannot unpack {len(items)} values into {len(target.elts)} names")
            for element, item in zip(target.elts, items):
                self._assign(element, item)
            return
        raise UnsupportedExpressionError("Only plain names can be assigned")

    # -------------------------------------------------------------------------
    # Names and literals
    # -------------------------------------------------------------------------

    def visit_Constant(self, node: ast.Constant) -> Any:
        return node.value

    def visit_Name(self, node: ast.Name) -> Any:
        return self._lookup(node.id)

    def _lookup(self, name: str) -> Any:
        if name.startswith("__"):
            raise UnsupportedExpressionError(f"Name '{name}' is not permitted in expressions")
        if name in self._scope:
            return self._scope[name]
        if name in SAFE_BUILTINS:
            return SAFE_BUILTINS[name]
        raise EvaluationError(f"name '{name}' is not defined")

    def visit_List(self, node: ast.List) -> list[Any]:
        return [self.visit(e) for e in node.elts]

    def visit_Tuple(self, node: ast.Tuple) -> tuple[Any, ...]:
        return tuple(self.visit(e) for e in node.elts)

    def visit_Set(self, node: ast.Set) -> set[Any]:
        return self._guard(lambda: {self.visit(e) for e in node.elts})

    def visit_Dict(self, node: ast.Dict) -> dict[Any, Any]:
        result: dict[Any, Any] = {}
        for key, value in zip(node.keys, node.values):
            if key is None:
                spread = self.visit(value)
                if not isinstance(spread, Mapping):
                    raise EvaluationError("Only mappings can be spread with **")
                result.update(spread)
            else:
                self._store(result, self.visit(key), self.visit(value))
        return result

    def visit_JoinedStr(self, node: ast.JoinedStr) -> str:
        parts: list[str] = []
        for value in node.values:
            if isinstance(value, ast.Constant):
                parts.append(str(value.value))
            else:
                parts.append(self.visit(value))
        return "".join(parts)

    def visit_FormattedValue(self, node: ast.FormattedValue) -> str:
        value = self.visit(node.value)
        if node.conversion == ord("r"):
            value = repr(value)
        elif node.conversion in (ord("s"), ord("a")):
            value = str(value)
        spec = self.visit(node.format_spec) if node.format_spec is not None else ""
        _check_format_spec(spec)
        return self._guard(lambda: format(value, spec))

    # -------------------------------------------------------------------------
    # Operators
    # -------------------------------------------------------------------------

    def visit_BoolOp(self, node: ast.BoolOp) -> Any:
        result: Any = None
        for value_node in node.values:
            result = self.visit(value_node)
            if isinstance(node.op, ast.And) and not result:
                return result
            if isinstance(node.op, ast.Or) and result:
                return result
        return result

    def visit_UnaryOp(self, node: ast.UnaryOp) -> Any:
        operand = self.visit(node.operand)
        if isinstance(node.op, ast.Not):
            return not operand
        if isinstance(node.op, ast.USub):
            return self._guard(lambda: -operand)
        if isinstance(node.op, ast.UAdd):
            return self._guard(lambda: +operand)
        raise UnsupportedExpressionError(f"Unsupported unary operator '{type(node.op).__name__}'")

    def visit_BinOp(self, node: ast.BinOp) -> Any:
        return self._binary(node.op, self.visit(node.left), self.visit(node.right))

    def _binary(self, op: ast.operator, left: Any, right: Any) -> Any:
        if isinstance(op, ast.Add):
            if isinstance(left, str) != isinstance(right, str):
                left, right = _to_text(left), _to_text(right)
            if isinstance(left, (str, list, tuple)) and isinstance(right, (str, list, tuple)):
                _check_length(len(left) + len(right), "Concatenation")
            return self._guard(lambda: left + right)
        if isinstance(op, ast.Sub):
            return self._guard(lambda: left - right)
        if isinstance(op, ast.Mult):
            for seq, count in ((left, right), (right, left)):
                if isinstance(seq, (str, list, tuple)) and isinstance(count, int):
                    if len(seq) * count > MAX_SEQUENCE_LENGTH:
                        raise EvaluationError("Sequence repetition is too large")
            return self._guard(lambda: left * right)
        if isinstance(op, ast.Div):
            return self._guard(lambda: left / right)
        if isinstance(op, ast.FloorDiv):
            return self._guard(lambda: left // right)
        if isinstance(op, ast.Mod):
            if isinstance(left, str):
                raise UnsupportedExpressionError("String %-formatting is not supported")
            return self._guard(lambda: left % right)
        if isinstance(op, ast.Pow):
            if isinstance(right, (int, float)) and abs(right) > MAX_EXPONENT:
                raise EvaluationError("Exponent is too large")
            if isinstance(left, int) and isinstance(right, int) and right > 0:
                if abs(left).bit_length() * right > MAX_POWER_BITS:
                    raise EvaluationError("Power result is too large")
            return self._guard(lambda: left ** right)
        raise UnsupportedExpressionError(f"Unsupported binary operator '{type(op).__name__}'")

    def visit_Compare(self, node: ast.Compare) -> bool:
        left = self.visit(node.left)
        for op, comparator in zip(node.ops, node.comparators):
            right = self.visit(comparator)
            if not self._compare(op, left, right):
                return False
            left = right
        return True

    def _compare(self, op: ast.cmpop, left: Any, right: Any) -> bool:
        if isinstance(op, ast.Eq):
            return left == right
        if isinstance(op, ast.NotEq):
            return left != right
        if isinstance(op, ast.Is):
            return left is right
        if isinstance(op, ast.IsNot):
            return left is not right
        if isinstance(op, ast.In):
            return self._guard(lambda: left in right)
        if isinstance(op, ast.NotIn):
            return self._guard(lambda: left not in right)
        if isinstance(op, ast.Lt):
            return self._guard(lambda: left < right)
        if isinstance(op, ast.LtE):
            return self._guard(lambda: left <= right)
        if isinstance(op, ast.Gt):
            return self._guard(lambda: left > right)
        if isinstance(op, ast.GtE):
            return self._guard(lambda: left >= right)
        raise UnsupportedExpressionError(f"Unsupported comparison '{type(op).__name__}'")

    def visit_IfExp(self, node: ast.IfExp) -> Any:
        return self.visit(node.body) if self.visit(node.test) else self.visit(node.orelse)

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def visit_Attribute(self, node: ast.Attribute) -> Any:
        base = self.visit(node.value)
        return self._read_attribute(base, node.attr)

    def _read_attribute(self, base: Any, attr: str) -> Any:
        if attr.startswith("_"):
            raise UnsupportedExpressionError(f"Access to '{attr}' is not permitted")
        if base is None:
            raise EvaluationError(f"Cannot read property '{attr}' of None")
        if isinstance(base, Mapping):
            if attr in base:
                return base[attr]
            if attr == "length":
                return len(base)
            return None
        if attr == "length" and isinstance(base, (str, list, tuple)):
            return len(base)
        raise EvaluationError(f"Cannot read property '{attr}' of {type(base).__name__}")

    def visit_Subscript(self, node: ast.Subscript) -> Any:
        base = self.visit(node.value)
        index = self.visit(node.slice)
        if base is None:
            raise EvaluationError(f"Cannot read index {index!r} of None")
        if isinstance(index, str) and index.startswith("_") and not isinstance(base, Mapping):
            raise UnsupportedExpressionError(f"Access to '{index}' is not permitted")
        if isinstance(base, Mapping):
            return base.get(index) if _hashable(index) else None
        if isinstance(base, (str, list, tuple)):
            try:
                return base[index]
            except IndexError:
                return None
            except (TypeError, ValueError) as e:
                raise EvaluationError(str(e)) from e
        raise EvaluationError(f"{type(base).__name__} is not subscriptable")

    def visit_Slice(self, node: ast.Slice) -> slice:
        lower = self.visit(node.lower) if node.lower is not None else None
        upper = self.visit(node.upper) if node.upper is not None else None
        step = self.visit(node.step) if node.step is not None else None
        return slice(lower, upper, step)

    # -------------------------------------------------------------------------
    # Calls, lambdas, comprehensions
    # -------------------------------------------------------------------------

    def visit_Call(self, node: ast.Call) -> Any:
        if isinstance(node.func, ast.Attribute):
            base = self.visit(node.func.value)
            if isinstance(base, Mapping) and isinstance(base.get(node.func.attr), _Lambda):
                func: Any = base[node.func.attr]
            else:
                func = _resolve_method(base, node.func.attr)
        else:
            func = self.visit(node.func)
            if not (isinstance(func, _Lambda) or func in SAFE_BUILTINS.values()):
                raise UnsupportedExpressionError("Only built-in helpers and lambdas can be called")

        args: list[Any] = []
        for arg in node.args:
            if isinstance(arg, ast.Starred):
                args.extend(self._iterable(self.visit(arg.value)))
            else:
                args.append(self.visit(arg))
        kwargs: dict[str, Any] = {}
        for keyword in node.keywords:
            if keyword.arg is None:
                raise UnsupportedExpressionError("**kwargs are not supported in calls")
            kwargs[keyword.arg] = self.visit(keyword.value)

        return self._guard(lambda: func(*args, **kwargs))

    def visit_Lambda(self, node: ast.Lambda) -> _Lambda:
        if node.args.vararg or node.args.kwarg or node.args.kwonlyargs or node.args.defaults:
            raise UnsupportedExpressionError("Lambdas only support plain positional parameters")
        return _Lambda(self, node, dict(self._scope))

    def visit_ListComp(self, node: ast.ListComp) -> list[Any]:
        return [self.eval_node(node.elt, scope) for scope in self._comprehension(node.generators)]

    def visit_GeneratorExp(self, node: ast.GeneratorExp) -> list[Any]:
        return [self.eval_node(node.elt, scope) for scope in self._comprehension(node.generators)]

    def visit_SetComp(self, node: ast.SetComp) -> set[Any]:
        return self._guard(lambda: {self.eval_node(node.elt, s) for s in self._comprehension(node.generators)})

    def visit_DictComp(self, node: ast.DictComp) -> dict[Any, Any]:
        result: dict[Any, Any] = {}
        for scope in self._comprehension(node.generators):
            self._store(result, self.eval_node(node.key, scope), self.eval_node(node.value, scope))
        return result

    def _comprehension(self, generators: list[ast.comprehension]) -> list[dict[str, Any]]:
        scopes = [dict(self._scope)]
        for generator in generators:
            if generator.is_async:
                raise UnsupportedExpressionError("Async comprehensions are not supported")
            next_scopes: list[dict[str, Any]] = []
            for scope in scopes:
                for item in self._iterable(self.eval_node(generator.iter, scope)):
                    inner = dict(scope)
                    previous = self._scope
                    self._scope = inner
                    try:
                        self._assign(generator.target, item)
                    finally:
                        self._scope = previous
                    if all(self.eval_node(cond, inner) for cond in generator.ifs):
                        next_scopes.append(inner)
                        if len(next_scopes) > MAX_SEQUENCE_LENGTH:
                            raise EvaluationError("Comprehension is too large")
            scopes = next_scopes
        return scopes

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _iterable(self, value: Any) -> Iterable[Any]:
        if value is None:
            raise EvaluationError("Cannot iterate over None")
        if isinstance(value, Mapping):
            return list(value.keys())
        if isinstance(value, (str, list, tuple, set, range)):
            return value
        raise EvaluationError(f"{type(value).__name__} is not iterable")

    @staticmethod
    def _store(target: dict[Any, Any], key: Any, value: Any) -> None:
        if not _hashable(key):
            raise EvaluationError(f"Unhashable dict key of type {type(key).__name__}")
        target[key] = value

    @staticmethod
    def _guard(operation: Callable[[], Any]) -> Any:
        """Run an operation, converting Python runtime errors to EvaluationError."""
        try:
            return operation()
        except (TypeError, ValueError, ZeroDivisionError, OverflowError, IndexError, KeyError, AttributeError) as e:
            raise EvaluationError(f"{type(e).__name__}: {e}") from e


def _hashable(value: Any) -> bool:
    try:
        hash(value)
    except TypeError:
        return False
    return True
