"""
Recursive-descent parser for the sandbox language.

The language is the subset of JavaScript that set-variable expressions are
written in: declarations, if/else, loops, return, functions and arrow
functions, and the usual operators. Statements may be separated by
newlines instead of semicolons.
"""
from __future__ import annotations

from typing import Optional

from sandbox import nodes as n
from sandbox.errors import SandboxSyntaxError
from sandbox.tokenizer import Token, tokenize

ASSIGN_OPERATORS = {"=", "+=", "-=", "*=", "/=", "%=", "**="}
LOGICAL_OPERATORS = {"&&", "||", "??"}
BINARY_PRECEDENCE = {
    "??": 1,
    "||": 2,
    "&&": 3,
    "==": 4, "!=": 4, "===": 4, "!==": 4,
    "<": 5, ">": 5, "<=": 5, ">=": 5, "in": 5,
    "+": 6, "-": 6,
    "*": 7, "/": 7, "%": 7,
    "**": 8,
}
DECLARATION_KEYWORDS = {"const", "let", "var"}


class Parser:
    def __init__(self, source: str):
        self.tokens: list[Token] = tokenize(source)
        self.i = 0

    # ── Token helpers ─────────────────────────────────────────

    def peek(self, offset: int = 0) -> Token:
        index = min(self.i + offset, len(self.tokens) - 1)
        return self.tokens[index]

    def advance(self) -> Token:
        token = self.tokens[self.i]
        if token.kind != "eof":
            self.i += 1
        return token

    def at_punct(self, *values: str) -> bool:
        token = self.peek()
        return token.kind == "punct" and token.value in values

    def at_keyword(self, *values: str) -> bool:
        token = self.peek()
        return token.kind == "keyword" and token.value in values

    def at_eof(self) -> bool:
        return self.peek().kind == "eof"

    def expect_punct(self, value: str) -> Token:
        if not self.at_punct(value):
            self._unexpected(f"expected '{value}'")
        return self.advance()

    def expect_name(self) -> str:
        token = self.peek()
        if token.kind != "name":
            self._unexpected("expected identifier")
        return self.advance().value

    def _unexpected(self, detail: str = ""):
        token = self.peek()
        shown = "end of input" if token.kind == "eof" else repr(token.value)
        message = f"Unexpected token {shown}"
        if detail:
            message += f", {detail}"
        raise SandboxSyntaxError(message, token.pos)

    def consume_semicolon(self):
        if self.at_punct(";"):
            self.advance()
            return
        if self.at_punct("}") or self.at_eof() or self.peek().newline_before:
            return
        self._unexpected()

    # ── Entry points ──────────────────────────────────────────

    def parse_program(self) -> n.Program:
        body = []
        while not self.at_eof():
            body.append(self.parse_statement())
        return n.Program(body)

    def parse_standalone_expression(self) -> n.Node:
        expression = self.parse_expression()
        if not self.at_eof():
            self._unexpected()
        return expression

    # ── Statements ────────────────────────────────────────────

    def parse_statement(self) -> n.Node:
        token = self.peek()
        if token.kind == "punct":
            if token.value == "{":
                return self.parse_block()
            if token.value == ";":
                self.advance()
                return n.Empty()
        if token.kind == "keyword":
            if token.value in DECLARATION_KEYWORDS:
                declaration = self.parse_var_decl()
                self.consume_semicolon()
                return declaration
            if token.value == "function":
                self.advance()
                name = self.expect_name()
                return n.FunctionDecl(name, self._parse_function_rest(name))
            if token.value == "if":
                return self.parse_if()
            if token.value == "return":
                self.advance()
                argument = None
                if not (self.at_punct(";", "}") or self.at_eof() or self.peek().newline_before):
                    argument = self.parse_expression()
                self.consume_semicolon()
                return n.Return(argument)
            if token.value == "for":
                return self.parse_for()
            if token.value == "while":
                self.advance()
                self.expect_punct("(")
                test = self.parse_expression()
                self.expect_punct(")")
                return n.While(test, self.parse_statement())
            if token.value in ("break", "continue"):
                self.advance()
                self.consume_semicolon()
                return n.Break() if token.value == "break" else n.Continue()
            if token.value == "throw":
                self.advance()
                argument = self.parse_expression()
                self.consume_semicolon()
                return n.Throw(argument)
        expression = self.parse_expression()
        self.consume_semicolon()
        return n.ExprStmt(expression)

    def parse_block(self) -> n.Block:
        self.expect_punct("{")
        body = []
        while not self.at_punct("}"):
            if self.at_eof():
                self._unexpected("expected '}'")
            body.append(self.parse_statement())
        self.advance()
        return n.Block(body)

    def parse_var_decl(self) -> n.VarDecl:
        kind = self.advance().value
        declarations = []
        while True:
            name = self.expect_name()
            init = None
            if self.at_punct("="):
                self.advance()
                init = self.parse_assignment()
            elif kind == "const":
                self._unexpected("missing initializer in const declaration")
            declarations.append((name, init))
            if not self.at_punct(","):
                break
            self.advance()
        return n.VarDecl(kind, declarations)

    def parse_if(self) -> n.If:
        self.advance()
        self.expect_punct("(")
        test = self.parse_expression()
        self.expect_punct(")")
        consequent = self.parse_statement()
        alternate = None
        if self.at_keyword("else"):
            self.advance()
            alternate = self.parse_statement()
        return n.If(test, consequent, alternate)

    def parse_for(self) -> n.Node:
        self.advance()
        self.expect_punct("(")
        if (self.at_keyword(*DECLARATION_KEYWORDS)
                and self.peek(1).kind == "name"
                and self.peek(2).kind == "name" and self.peek(2).value == "of"):
            kind = self.advance().value
            name = self.advance().value
            self.advance()
            iterable = self.parse_assignment()
            self.expect_punct(")")
            return n.ForOf(kind, name, iterable, self.parse_statement())

        init: Optional[n.Node] = None
        if self.at_keyword(*DECLARATION_KEYWORDS):
            init = self.parse_var_decl()
        elif not self.at_punct(";"):
            init = n.ExprStmt(self.parse_expression())
        self.expect_punct(";")
        test = None if self.at_punct(";") else self.parse_expression()
        self.expect_punct(";")
        update = None if self.at_punct(")") else self.parse_expression()
        self.expect_punct(")")
        return n.For(init, test, update, self.parse_statement())

    # ── Expressions ───────────────────────────────────────────

    def parse_expression(self) -> n.Node:
        return self.parse_assignment()

    def parse_assignment(self) -> n.Node:
        if self._is_arrow_ahead():
            return self.parse_arrow()
        left = self.parse_conditional()
        if self.at_punct(*ASSIGN_OPERATORS):
            if not isinstance(left, (n.Identifier, n.Member)):
                self._unexpected("invalid left-hand side in assignment")
            operator = self.advance().value
            return n.Assign(operator, left, self.parse_assignment())
        return left

    def _is_arrow_ahead(self) -> bool:
        token = self.peek()
        if token.kind == "name":
            following = self.peek(1)
            return following.kind == "punct" and following.value == "=>"
        if token.kind != "punct" or token.value != "(":
            return False
        depth = 0
        offset = 0
        while True:
            current = self.peek(offset)
            if current.kind == "eof":
                return False
            if current.kind == "punct":
                if current.value in ("(", "[", "{"):
                    depth += 1
                elif current.value in (")", "]", "}"):
                    depth -= 1
                    if depth == 0:
                        following = self.peek(offset + 1)
                        return following.kind == "punct" and following.value == "=>"
            offset += 1

    def parse_arrow(self) -> n.FunctionExpr:
        if self.peek().kind == "name":
            params, rest, defaults = [self.advance().value], None, {}
        else:
            params, rest, defaults = self.parse_params()
        self.expect_punct("=>")
        body = self.parse_block() if self.at_punct("{") else self.parse_assignment()
        return n.FunctionExpr(params, body, is_arrow=True, rest=rest, defaults=defaults)

    def parse_params(self):
        self.expect_punct("(")
        params: list[str] = []
        defaults: dict[str, n.Node] = {}
        rest = None
        while not self.at_punct(")"):
            if self.at_punct("..."):
                self.advance()
                rest = self.expect_name()
                break
            name = self.expect_name()
            if self.at_punct("="):
                self.advance()
                defaults[name] = self.parse_assignment()
            params.append(name)
            if not self.at_punct(")"):
                self.expect_punct(",")
        self.expect_punct(")")
        return params, rest, defaults

    def _parse_function_rest(self, name: str = "") -> n.FunctionExpr:
        params, rest, defaults = self.parse_params()
        body = self.parse_block()
        return n.FunctionExpr(params, body, is_arrow=False, name=name, rest=rest, defaults=defaults)

    def parse_conditional(self) -> n.Node:
        test = self.parse_binary(1)
        if not self.at_punct("?"):
            return test
        self.advance()
        consequent = self.parse_assignment()
        self.expect_punct(":")
        alternate = self.parse_assignment()
        return n.Conditional(test, consequent, alternate)

    def _binary_operator(self) -> Optional[str]:
        token = self.peek()
        if token.kind == "punct" and token.value in BINARY_PRECEDENCE:
            return token.value
        if token.kind == "keyword" and token.value == "in":
            return "in"
        return None

    def parse_binary(self, min_precedence: int) -> n.Node:
        left = self.parse_unary()
        while True:
            operator = self._binary_operator()
            if operator is None:
                return left
            precedence = BINARY_PRECEDENCE[operator]
            if precedence < min_precedence:
                return left
            self.advance()
            # ** is right-associative
            next_min = precedence if operator == "**" else precedence + 1
            right = self.parse_binary(next_min)
            if operator in LOGICAL_OPERATORS:
                left = n.Logical(operator, left, right)
            else:
                left = n.Binary(operator, left, right)

    def parse_unary(self) -> n.Node:
        token = self.peek()
        if (token.kind == "punct" and token.value in ("!", "-", "+")) or \
                (token.kind == "keyword" and token.value in ("typeof", "void")):
            self.advance()
            return n.Unary(token.value, self.parse_unary())
        if token.kind == "punct" and token.value in ("++", "--"):
            self.advance()
            target = self.parse_unary()
            self._check_update_target(target)
            return n.Update(token.value, True, target)
        return self.parse_postfix()

    def parse_postfix(self) -> n.Node:
        expression = self.parse_call_member()
        if self.at_punct("++", "--") and not self.peek().newline_before:
            self._check_update_target(expression)
            operator = self.advance().value
            return n.Update(operator, False, expression)
        return expression

    def _check_update_target(self, target: n.Node):
        if not isinstance(target, (n.Identifier, n.Member)):
            self._unexpected("invalid update target")

    def _property_name(self) -> str:
        token = self.peek()
        if token.kind not in ("name", "keyword"):
            self._unexpected("expected property name")
        return self.advance().value

    def parse_call_member(self) -> n.Node:
        expression = self.parse_new() if self.at_keyword("new") else self.parse_primary()
        optional_chain = False
        while True:
            if self.at_punct("."):
                self.advance()
                expression = n.Member(expression, n.Literal(self._property_name()))
            elif self.at_punct("?."):
                self.advance()
                optional_chain = True
                if self.at_punct("("):
                    expression = n.Call(expression, self.parse_arguments(), optional=True)
                elif self.at_punct("["):
                    self.advance()
                    prop = self.parse_expression()
                    self.expect_punct("]")
                    expression = n.Member(expression, prop, computed=True, optional=True)
                else:
                    expression = n.Member(expression, n.Literal(self._property_name()), optional=True)
            elif self.at_punct("["):
                self.advance()
                prop = self.parse_expression()
                self.expect_punct("]")
                expression = n.Member(expression, prop, computed=True)
            elif self.at_punct("("):
                expression = n.Call(expression, self.parse_arguments())
            else:
                break
        return n.OptionalChain(expression) if optional_chain else expression

    def parse_new(self) -> n.New:
        self.advance()
        callee = self.parse_primary()
        while self.at_punct("."):
            self.advance()
            callee = n.Member(callee, n.Literal(self._property_name()))
        arguments = self.parse_arguments() if self.at_punct("(") else []
        return n.New(callee, arguments)

    def parse_arguments(self) -> list[n.Node]:
        self.expect_punct("(")
        arguments = []
        while not self.at_punct(")"):
            if self.at_punct("..."):
                self.advance()
                arguments.append(n.Spread(self.parse_assignment()))
            else:
                arguments.append(self.parse_assignment())
            if not self.at_punct(")"):
                self.expect_punct(",")
        self.advance()
        return arguments

    def parse_primary(self) -> n.Node:
        token = self.peek()
        if token.kind in ("num", "str"):
            self.advance()
            return n.Literal(token.value)
        if token.kind == "template":
            self.advance()
            expressions = [
                Parser(source).parse_standalone_expression()
                for source in token.value.expressions
            ]
            return n.TemplateLiteral(list(token.value.strings), expressions)
        if token.kind == "name":
            self.advance()
            return n.Identifier(token.value)
        if token.kind == "keyword":
            if token.value in ("true", "false"):
                self.advance()
                return n.Literal(token.value == "true")
            if token.value == "null":
                self.advance()
                return n.Literal(None)
            if token.value == "function":
                self.advance()
                name = self.advance().value if self.peek().kind == "name" else ""
                return self._parse_function_rest(name)
        if token.kind == "punct":
            if token.value == "(":
                self.advance()
                expression = self.parse_expression()
                self.expect_punct(")")
                return expression
            if token.value == "[":
                return self.parse_array()
            if token.value == "{":
                return self.parse_object()
        self._unexpected()

    def parse_array(self) -> n.ArrayLiteral:
        self.expect_punct("[")
        elements = []
        while not self.at_punct("]"):
            if self.at_punct("..."):
                self.advance()
                elements.append(n.Spread(self.parse_assignment()))
            else:
                elements.append(self.parse_assignment())
            if not self.at_punct("]"):
                self.expect_punct(",")
        self.advance()
        return n.ArrayLiteral(elements)

    def parse_object(self) -> n.ObjectLiteral:
        self.expect_punct("{")
        properties: list[n.Node] = []
        while not self.at_punct("}"):
            if self.at_punct("..."):
                self.advance()
                properties.append(n.Spread(self.parse_assignment()))
            elif self.at_punct("["):
                self.advance()
                key = self.parse_assignment()
                self.expect_punct("]")
                self.expect_punct(":")
                properties.append(n.Property(key, self.parse_assignment()))
            else:
                token = self.advance()
                if token.kind in ("name", "keyword", "str"):
                    key = token.value
                elif token.kind == "num":
                    key = str(token.value)
                else:
                    self.i -= 1
                    self._unexpected("expected property name")
                if self.at_punct(":"):
                    self.advance()
                    value = self.parse_assignment()
                elif self.at_punct("("):
                    value = self._parse_function_rest(key)
                elif token.kind == "name":
                    value = n.Identifier(key)
                else:
                    self._unexpected()
                properties.append(n.Property(n.Literal(key), value))
            if not self.at_punct("}"):
                self.expect_punct(",")
        self.advance()
        return n.ObjectLiteral(properties)


def parse(source: str) -> n.Program:
    return Parser(source).parse_program()
