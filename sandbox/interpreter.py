"""
Tree-walking interpreter for parsed sandbox programs.

One Interpreter is created per evaluation and thrown away afterwards, so
nothing a script defines can leak into the next run. Every statement and
call counts against the step budget and checks the wall-clock deadline.
"""
from __future__ import annotations

import math
import time
from dataclasses import dataclass
from datetime import datetime, timedelta, tzinfo
from typing import Any, Callable, Optional

from sandbox import nodes as n
from sandbox.builtins import get_property, make_globals, power, set_property
from sandbox.errors import (
    SandboxError,
    SandboxLimitExceeded,
    SandboxRuntimeError,
    SandboxSyntaxError,
    SandboxTimeout,
    ThrownValue,
)
from sandbox.runtime import (
    UNDEFINED,
    JSFunction,
    NativeFunction,
    _EPOCH,
    is_callable,
    json_stringify,
    loose_equals,
    normalize_number,
    strict_equals,
    to_number,
    to_primitive,
    to_property_key,
    to_string,
    truthy,
    typeof,
)


@dataclass
class Limits:
    timeout_seconds: float = 1.0
    max_steps: int = 100_000
    max_call_depth: int = 200
    max_string_length: int = 1_000_000
    max_array_length: int = 100_000


class Scope:
    __slots__ = ("vars", "consts", "parent", "is_function")

    def __init__(self, parent: Optional["Scope"] = None, is_function: bool = False):
        self.vars: dict[str, Any] = {}
        self.consts: set[str] = set()
        self.parent = parent
        self.is_function = is_function

    def lookup(self, name: str) -> Optional["Scope"]:
        scope = self
        while scope is not None:
            if name in scope.vars:
                return scope
            scope = scope.parent
        return None

    def function_scope(self) -> "Scope":
        scope = self
        while not scope.is_function and scope.parent is not None:
            scope = scope.parent
        return scope


class _ReturnSignal(Exception):
    def __init__(self, value: Any):
        self.value = value


class _BreakSignal(Exception):
    pass


class _ContinueSignal(Exception):
    pass


class _ShortCircuit(Exception):
    """A nullish `?.` link; the enclosing OptionalChain evaluates to undefined."""


_CONTROL_SIGNALS = (_ReturnSignal, _BreakSignal, _ContinueSignal, _ShortCircuit)


class Interpreter:
    def __init__(
        self,
        limits: Limits,
        clock: Callable[[], datetime],
        local_tz: Optional[tzinfo] = None,
        fetcher=None,
    ):
        self.limits = limits
        self.clock = clock
        self.local_tz = local_tz
        self.fetcher = fetcher
        self.deadline = time.monotonic() + limits.timeout_seconds
        self.steps = 0
        self.depth = 0
        self.intrinsics = Scope()
        self.intrinsics.vars.update(make_globals(self))
        self.global_scope = Scope(self.intrinsics, is_function=True)

        self._statements = {
            n.VarDecl: self._exec_var_decl,
            n.FunctionDecl: self._exec_function_decl,
            n.If: self._exec_if,
            n.Return: self._exec_return,
            n.Block: self._exec_block,
            n.ExprStmt: self._exec_expr_stmt,
            n.For: self._exec_for,
            n.ForOf: self._exec_for_of,
            n.While: self._exec_while,
            n.Break: self._exec_break,
            n.Continue: self._exec_continue,
            n.Throw: self._exec_throw,
            n.Empty: lambda node, scope: None,
        }
        self._expressions = {
            n.Literal: lambda node, scope: node.value,
            n.TemplateLiteral: self._eval_template,
            n.Identifier: self._eval_identifier,
            n.ArrayLiteral: self._eval_array,
            n.ObjectLiteral: self._eval_object,
            n.Member: self._eval_member,
            n.OptionalChain: self._eval_optional_chain,
            n.Call: self._eval_call,
            n.New: self._eval_new,
            n.Unary: self._eval_unary,
            n.Update: self._eval_update,
            n.Binary: self._eval_binary,
            n.Logical: self._eval_logical,
            n.Conditional: self._eval_conditional,
            n.Assign: self._eval_assign,
            n.FunctionExpr: lambda node, scope: JSFunction(node, scope),
        }

    # ── Budgets ───────────────────────────────────────────────

    def tick(self):
        self.steps += 1
        if self.steps > self.limits.max_steps:
            raise SandboxTimeout(f"Script exceeded {self.limits.max_steps} steps")
        if time.monotonic() > self.deadline:
            raise SandboxTimeout(f"Script exceeded {self.limits.timeout_seconds}s")

    def check_string(self, text: str) -> str:
        self.check_length(len(text))
        return text

    def check_length(self, length: int):
        if length > self.limits.max_string_length:
            raise SandboxLimitExceeded("Invalid string length")

    def check_array(self, length: int):
        if length > self.limits.max_array_length:
            raise SandboxLimitExceeded("Invalid array length")

    # ── Host services ─────────────────────────────────────────

    def now_ms(self):
        return normalize_number((self.clock() - _EPOCH) // timedelta(milliseconds=1))

    def fetch(self, url: Any, options: Any):
        if self.fetcher is None:
            raise SandboxRuntimeError("TypeError", "fetch is not available")
        budget = self.deadline - time.monotonic()
        if budget <= 0:
            raise SandboxTimeout(f"Script exceeded {self.limits.timeout_seconds}s")
        return self.fetcher.fetch(url, options, budget=budget)

    # ── Entry point ───────────────────────────────────────────

    def run(self, program: n.Program) -> Any:
        """Execute a program; the result is the value of the last top-level expression statement."""
        scope = self.global_scope
        completion = UNDEFINED
        try:
            self._hoist(program.body, scope)
            for statement in program.body:
                if isinstance(statement, n.ExprStmt):
                    self.tick()
                    completion = self.evaluate(statement.expression, scope)
                else:
                    self.execute(statement, scope)
        except _ReturnSignal:
            raise SandboxSyntaxError("Illegal return statement")
        except (_BreakSignal, _ContinueSignal):
            raise SandboxSyntaxError("Illegal break or continue statement")
        return completion

    # ── Statements ────────────────────────────────────────────

    def execute(self, node: n.Node, scope: Scope):
        self.tick()
        self._statements[type(node)](node, scope)

    def _hoist(self, statements: list[n.Node], scope: Scope):
        for statement in statements:
            if isinstance(statement, n.FunctionDecl):
                scope.vars[statement.name] = JSFunction(statement.function, scope, statement.name)

    def _exec_body(self, statements: list[n.Node], scope: Scope):
        self._hoist(statements, scope)
        for statement in statements:
            self.execute(statement, scope)

    def _exec_var_decl(self, node: n.VarDecl, scope: Scope):
        target = scope.function_scope() if node.kind == "var" else scope
        for name, init in node.declarations:
            if node.kind != "var" and name in target.vars:
                raise SandboxSyntaxError(f"Identifier '{name}' has already been declared")
            value = UNDEFINED if init is None else self.evaluate(init, scope)
            if isinstance(value, JSFunction) and not value.name:
                value.name = name
            if node.kind == "var" and init is None and name in target.vars:
                continue
            target.vars[name] = value
            if node.kind == "const":
                target.consts.add(name)

    def _exec_function_decl(self, node: n.FunctionDecl, scope: Scope):
        if node.name not in scope.vars:
            scope.vars[node.name] = JSFunction(node.function, scope, node.name)

    def _exec_if(self, node: n.If, scope: Scope):
        if truthy(self.evaluate(node.test, scope)):
            self.execute(node.consequent, scope)
        elif node.alternate is not None:
            self.execute(node.alternate, scope)

    def _exec_return(self, node: n.Return, scope: Scope):
        value = UNDEFINED if node.argument is None else self.evaluate(node.argument, scope)
        raise _ReturnSignal(value)

    def _exec_block(self, node: n.Block, scope: Scope):
        self._exec_body(node.body, Scope(scope))

    def _exec_expr_stmt(self, node: n.ExprStmt, scope: Scope):
        self.evaluate(node.expression, scope)

    def _run_loop_body(self, body: n.Node, scope: Scope) -> bool:
        """Run one iteration; False means the loop was broken out of."""
        try:
            self.execute(body, scope)
        except _BreakSignal:
            return False
        except _ContinueSignal:
            pass
        return True

    def _exec_for(self, node: n.For, scope: Scope):
        loop_scope = Scope(scope)
        if node.init is not None:
            self.execute(node.init, loop_scope)
        while True:
            self.tick()
            if node.test is not None and not truthy(self.evaluate(node.test, loop_scope)):
                break
            if not self._run_loop_body(node.body, Scope(loop_scope)):
                break
            if node.update is not None:
                self.evaluate(node.update, loop_scope)

    def _exec_for_of(self, node: n.ForOf, scope: Scope):
        iterable = self.evaluate(node.iterable, scope)
        if not isinstance(iterable, (list, str)):
            raise SandboxRuntimeError("TypeError", f"{to_string(iterable)} is not iterable")
        index = 0
        while index < len(iterable):
            self.tick()
            iteration = Scope(scope)
            iteration.vars[node.name] = iterable[index]
            if node.kind == "const":
                iteration.consts.add(node.name)
            if not self._run_loop_body(node.body, iteration):
                break
            index += 1

    def _exec_while(self, node: n.While, scope: Scope):
        while True:
            self.tick()
            if not truthy(self.evaluate(node.test, scope)):
                break
            if not self._run_loop_body(node.body, scope):
                break

    def _exec_break(self, node: n.Break, scope: Scope):
        raise _BreakSignal()

    def _exec_continue(self, node: n.Continue, scope: Scope):
        raise _ContinueSignal()

    def _exec_throw(self, node: n.Throw, scope: Scope):
        value = self.evaluate(node.argument, scope)
        if isinstance(value, dict) and "message" in value:
            text = to_string(value["message"])
        elif isinstance(value, (dict, list)):
            text = json_stringify(value)
        else:
            text = to_string(value)
        raise ThrownValue(value, text)

    # ── Expressions ───────────────────────────────────────────

    def evaluate(self, node: n.Node, scope: Scope) -> Any:
        handler = self._expressions.get(type(node))
        if handler is None:
            raise SandboxSyntaxError(f"Unexpected {type(node).__name__}")
        return handler(node, scope)

    def _eval_template(self, node: n.TemplateLiteral, scope: Scope) -> str:
        pieces = [node.strings[0]]
        for expression, tail in zip(node.expressions, node.strings[1:]):
            pieces.append(to_string(self.evaluate(expression, scope)))
            pieces.append(tail)
        return self.check_string("".join(pieces))

    def _eval_identifier(self, node: n.Identifier, scope: Scope) -> Any:
        owner = scope.lookup(node.name)
        if owner is None:
            raise SandboxRuntimeError("ReferenceError", f"{node.name} is not defined")
        return owner.vars[node.name]

    def _spread_items(self, value: Any) -> list:
        if isinstance(value, (list, str)):
            return list(value)
        raise SandboxRuntimeError("TypeError", f"{to_string(value)} is not iterable")

    def _eval_list(self, elements: list[n.Node], scope: Scope) -> list:
        result = []
        for element in elements:
            if isinstance(element, n.Spread):
                result.extend(self._spread_items(self.evaluate(element.argument, scope)))
            else:
                result.append(self.evaluate(element, scope))
        self.check_array(len(result))
        return result

    def _eval_array(self, node: n.ArrayLiteral, scope: Scope) -> list:
        return self._eval_list(node.elements, scope)

    def _eval_object(self, node: n.ObjectLiteral, scope: Scope) -> dict:
        result: dict[str, Any] = {}
        for prop in node.properties:
            if isinstance(prop, n.Spread):
                source = self.evaluate(prop.argument, scope)
                if isinstance(source, dict):
                    result.update(source)
                elif isinstance(source, (list, str)):
                    result.update({str(i): item for i, item in enumerate(source)})
                continue
            key = to_property_key(self.evaluate(prop.key, scope))
            value = self.evaluate(prop.value, scope)
            if isinstance(value, JSFunction) and not value.name:
                value.name = key
            result[key] = value
        return result

    def _member_key(self, node: n.Member, scope: Scope) -> Any:
        if node.computed:
            return self.evaluate(node.property, scope)
        return node.property.value

    def _eval_member(self, node: n.Member, scope: Scope) -> Any:
        obj = self.evaluate(node.object, scope)
        if node.optional and (obj is None or obj is UNDEFINED):
            raise _ShortCircuit()
        return get_property(self, obj, self._member_key(node, scope))

    def _eval_optional_chain(self, node: n.OptionalChain, scope: Scope) -> Any:
        try:
            return self.evaluate(node.expression, scope)
        except _ShortCircuit:
            return UNDEFINED

    def _describe(self, node: n.Node) -> str:
        if isinstance(node, n.Identifier):
            return node.name
        if isinstance(node, n.Member) and not node.computed:
            return f"{self._describe(node.object)}.{node.property.value}"
        return "expression"

    def _eval_call(self, node: n.Call, scope: Scope) -> Any:
        fn = self.evaluate(node.callee, scope)
        if node.optional and (fn is None or fn is UNDEFINED):
            raise _ShortCircuit()
        args = self._eval_list(node.arguments, scope)
        if not is_callable(fn):
            raise SandboxRuntimeError("TypeError", f"{self._describe(node.callee)} is not a function")
        return self.call(fn, args)

    def _eval_new(self, node: n.New, scope: Scope) -> Any:
        constructor = self.evaluate(node.callee, scope)
        args = self._eval_list(node.arguments, scope)
        if isinstance(constructor, NativeFunction) and constructor.construct is not None:
            self.tick()
            return self._invoke_native(constructor.construct, args)
        raise SandboxRuntimeError("TypeError", f"{self._describe(node.callee)} is not a constructor")

    def _eval_unary(self, node: n.Unary, scope: Scope) -> Any:
        operator = node.operator
        if operator == "typeof":
            if isinstance(node.argument, n.Identifier) and scope.lookup(node.argument.name) is None:
                return "undefined"
            return typeof(self.evaluate(node.argument, scope))
        value = self.evaluate(node.argument, scope)
        if operator == "!":
            return not truthy(value)
        if operator == "-":
            return normalize_number(-to_number(value))
        if operator == "+":
            return to_number(value)
        return UNDEFINED                             # void

    def _reference(self, target: n.Node, scope: Scope):
        """Getter and setter for an assignment target, evaluating its object once."""
        if isinstance(target, n.Identifier):
            return (
                lambda: self._eval_identifier(target, scope),
                lambda value: self._assign_name(target.name, value, scope),
            )
        obj = self.evaluate(target.object, scope)
        key = self._member_key(target, scope)
        return (
            lambda: get_property(self, obj, key),
            lambda value: set_property(self, obj, key, value),
        )

    def _assign_name(self, name: str, value: Any, scope: Scope):
        owner = scope.lookup(name)
        if owner is None:
            self.global_scope.vars[name] = value
        elif name in owner.consts:
            raise SandboxRuntimeError("TypeError", "Assignment to constant variable.")
        else:
            owner.vars[name] = value

    def _eval_update(self, node: n.Update, scope: Scope) -> Any:
        get, put = self._reference(node.target, scope)
        old = to_number(get())
        new = normalize_number(old + 1 if node.operator == "++" else old - 1)
        put(new)
        return new if node.prefix else old

    def _eval_assign(self, node: n.Assign, scope: Scope) -> Any:
        get, put = self._reference(node.target, scope)
        if node.operator == "=":
            value = self.evaluate(node.value, scope)
            if isinstance(value, JSFunction) and not value.name and isinstance(node.target, n.Identifier):
                value.name = node.target.name
        else:
            value = self.binary(node.operator[:-1], get(), self.evaluate(node.value, scope))
        put(value)
        return value

    def _eval_binary(self, node: n.Binary, scope: Scope) -> Any:
        left = self.evaluate(node.left, scope)
        right = self.evaluate(node.right, scope)
        return self.binary(node.operator, left, right)

    def _eval_logical(self, node: n.Logical, scope: Scope) -> Any:
        left = self.evaluate(node.left, scope)
        if node.operator == "&&":
            return self.evaluate(node.right, scope) if truthy(left) else left
        if node.operator == "||":
            return left if truthy(left) else self.evaluate(node.right, scope)
        return self.evaluate(node.right, scope) if left is None or left is UNDEFINED else left

    def _eval_conditional(self, node: n.Conditional, scope: Scope) -> Any:
        if truthy(self.evaluate(node.test, scope)):
            return self.evaluate(node.consequent, scope)
        return self.evaluate(node.alternate, scope)

    # ── Operators ─────────────────────────────────────────────

    def binary(self, operator: str, left: Any, right: Any) -> Any:
        if operator == "+":
            left, right = to_primitive(left), to_primitive(right)
            if isinstance(left, str) or isinstance(right, str):
                return self.check_string(to_string(left) + to_string(right))
            return normalize_number(float(to_number(left)) + float(to_number(right)))
        if operator in ("-", "*", "/", "%", "**"):
            return _arithmetic(operator, to_number(left), to_number(right))
        if operator == "===":
            return strict_equals(left, right)
        if operator == "!==":
            return not strict_equals(left, right)
        if operator == "==":
            return loose_equals(left, right)
        if operator == "!=":
            return not loose_equals(left, right)
        if operator in ("<", ">", "<=", ">="):
            return _compare(operator, left, right)
        if operator == "in":
            return self._has_property(left, right)
        raise SandboxSyntaxError(f"Unsupported operator {operator}")

    def _has_property(self, key: Any, obj: Any) -> bool:
        if isinstance(obj, dict):
            return to_property_key(key) in obj
        if isinstance(obj, list):
            name = to_property_key(key)
            return name == "length" or (name.isdigit() and int(name) < len(obj))
        raise SandboxRuntimeError("TypeError", f"Cannot use 'in' operator to search for '{to_string(key)}'")

    # ── Calls ─────────────────────────────────────────────────

    def call(self, fn: Any, args: list) -> Any:
        self.tick()
        if isinstance(fn, NativeFunction):
            return self._invoke_native(fn.fn, args)
        if not isinstance(fn, JSFunction):
            raise SandboxRuntimeError("TypeError", f"{to_string(fn)} is not a function")

        if self.depth >= self.limits.max_call_depth:
            raise SandboxLimitExceeded("Maximum call stack size exceeded")
        self.depth += 1
        try:
            node: n.FunctionExpr = fn.node
            scope = Scope(fn.closure, is_function=True)
            for index, param in enumerate(node.params):
                value = args[index] if index < len(args) else UNDEFINED
                if value is UNDEFINED and param in node.defaults:
                    value = self.evaluate(node.defaults[param], scope)
                scope.vars[param] = value
            if node.rest is not None:
                scope.vars[node.rest] = list(args[len(node.params):])

            if not isinstance(node.body, n.Block):
                return self.evaluate(node.body, scope)
            try:
                self._exec_body(node.body.body, scope)
            except _ReturnSignal as signal:
                return signal.value
            except (_BreakSignal, _ContinueSignal):
                raise SandboxSyntaxError("Illegal break or continue statement")
            return UNDEFINED
        finally:
            self.depth -= 1

    def _invoke_native(self, fn: Callable[..., Any], args: list) -> Any:
        try:
            return fn(*args)
        except (SandboxError, *_CONTROL_SIGNALS):
            raise
        except (TypeError, ValueError, ArithmeticError, IndexError, KeyError, AttributeError) as e:
            raise SandboxRuntimeError("TypeError", str(e))


# ──────────────────────────────────────────────────────────────
#  Numeric helpers
# ──────────────────────────────────────────────────────────────

def _arithmetic(operator: str, a, b):
    a, b = float(a), float(b)
    if operator == "-":
        return normalize_number(a - b)
    if operator == "*":
        return normalize_number(a * b)
    if operator == "/":
        if b == 0:
            if a == 0 or a != a:
                return math.nan
            return math.copysign(math.inf, a) * math.copysign(1, b)
        return normalize_number(a / b)
    if operator == "%":
        if b == 0 or a != a or b != b or math.isinf(a):
            return math.nan
        if math.isinf(b):
            return normalize_number(a)
        return normalize_number(math.fmod(a, b))
    return power(a, b)


def _compare(operator: str, left: Any, right: Any) -> bool:
    left, right = to_primitive(left), to_primitive(right)
    if not (isinstance(left, str) and isinstance(right, str)):
        left, right = to_number(left), to_number(right)
        if left != left or right != right:
            return False
    if operator == "<":
        return left < right
    if operator == ">":
        return left > right
    if operator == "<=":
        return left <= right
    return left >= right
