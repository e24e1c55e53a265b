"""Tokenization for sandboxed expressions."""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

from sandbox.errors import SandboxSyntaxError
from sandbox.runtime import normalize_number

KEYWORDS = {
    "const", "let", "var", "if", "else", "return", "function", "new",
    "true", "false", "null", "typeof", "for", "in", "while",
    "break", "continue", "throw", "void",
}

# longest first
PUNCTUATORS = [
    "===", "!==", "...", "**=",
    "**", "=>", "==", "!=", "<=", ">=", "&&", "||", "??", "?.",
    "++", "--", "+=", "-=", "*=", "/=", "%=",
    "+", "-", "*", "/", "%", "<", ">", "=", "!", "?", ":", ".", ",", ";",
    "(", ")", "[", "]", "{", "}",
]

_NUMBER = re.compile(
    r"0[xX][0-9a-fA-F]+|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?"
)
_NAME = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_SIMPLE_ESCAPES = {
    "n": "\n", "t": "\t", "r": "\r", "b": "\b", "f": "\f", "v": "\v",
    "0": "\0", "\\": "\\", "'": "'", '"': '"', "`": "`", "$": "$",
}


@dataclass
class Token:
    kind: str                       # num | str | template | name | keyword | punct | eof
    value: Any
    pos: int
    newline_before: bool = False


@dataclass
class TemplateParts:
    """Raw pieces of a template literal: len(strings) == len(expressions) + 1."""
    strings: list[str] = field(default_factory=list)
    expressions: list[str] = field(default_factory=list)


class Tokenizer:
    def __init__(self, source: str):
        self.source = source
        self.pos = 0

    def tokenize(self) -> list[Token]:
        tokens: list[Token] = []
        newline = False
        src = self.source
        while True:
            newline = self._skip_whitespace_and_comments() or newline
            if self.pos >= len(src):
                tokens.append(Token("eof", None, self.pos, newline))
                return tokens
            start = self.pos
            ch = src[start]

            if ch.isdigit() or (ch == "." and start + 1 < len(src) and src[start + 1].isdigit()):
                tokens.append(Token("num", self._read_number(), start, newline))
            elif ch in ("'", '"'):
                tokens.append(Token("str", self._read_string(ch), start, newline))
            elif ch == "`":
                tokens.append(Token("template", self._read_template(), start, newline))
            elif _NAME.match(src, start):
                word = _NAME.match(src, start).group(0)
                self.pos += len(word)
                kind = "keyword" if word in KEYWORDS else "name"
                tokens.append(Token(kind, word, start, newline))
            else:
                tokens.append(Token("punct", self._read_punctuator(), start, newline))
            newline = False

    # ── Scanners ──────────────────────────────────────────────

    def _skip_whitespace_and_comments(self) -> bool:
        src = self.source
        saw_newline = False
        while self.pos < len(src):
            ch = src[self.pos]
            if ch in "\n\r\u2028\u2029":
                saw_newline = True
                self.pos += 1
            elif ch.isspace():
                self.pos += 1
            elif src.startswith("//", self.pos):
                end = src.find("\n", self.pos)
                self.pos = len(src) if end == -1 else end
            elif src.startswith("/*", self.pos):
                end = src.find("*/", self.pos + 2)
                if end == -1:
                    raise SandboxSyntaxError("Unterminated comment", self.pos)
                if "\n" in src[self.pos:end]:
                    saw_newline = True
                self.pos = end + 2
            else:
                break
        return saw_newline

    def _read_number(self):
        match = _NUMBER.match(self.source, self.pos)
        text = match.group(0)
        if len(text) > 1 and text[0] == "0" and text[1].isdigit():
            raise SandboxSyntaxError("Octal literals are not allowed", self.pos)
        self.pos += len(text)
        if self.pos < len(self.source) and _NAME.match(self.source, self.pos):
            raise SandboxSyntaxError("Invalid or unexpected token", self.pos)
        if text[:2] in ("0x", "0X"):
            return normalize_number(int(text, 16))
        return normalize_number(float(text))

    def _read_escape(self) -> str:
        src = self.source
        self.pos += 1                       # backslash
        if self.pos >= len(src):
            raise SandboxSyntaxError("Invalid escape", self.pos)
        ch = src[self.pos]
        if ch == "u":
            if src.startswith("{", self.pos + 1):
                end = src.find("}", self.pos)
                code = src[self.pos + 2:end]
                self.pos = end + 1
            else:
                code = src[self.pos + 1:self.pos + 5]
                self.pos += 5
            try:
                return chr(int(code, 16))
            except ValueError:
                raise SandboxSyntaxError("Invalid Unicode escape sequence", self.pos)
        if ch == "x":
            code = src[self.pos + 1:self.pos + 3]
            self.pos += 3
            try:
                return chr(int(code, 16))
            except ValueError:
                raise SandboxSyntaxError("Invalid hexadecimal escape sequence", self.pos)
        if ch == "\n":                      # line continuation
            self.pos += 1
            return ""
        self.pos += 1
        return _SIMPLE_ESCAPES.get(ch, ch)

    def _read_string(self, quote: str) -> str:
        src = self.source
        start = self.pos
        self.pos += 1
        chars: list[str] = []
        while self.pos < len(src):
            ch = src[self.pos]
            if ch == quote:
                self.pos += 1
                return "".join(chars)
            if ch == "\\":
                chars.append(self._read_escape())
            elif ch == "\n":
                break
            else:
                chars.append(ch)
                self.pos += 1
        raise SandboxSyntaxError("Invalid or unexpected token", start)

    def _read_template(self) -> TemplateParts:
        src = self.source
        start = self.pos
        self.pos += 1
        parts = TemplateParts()
        chars: list[str] = []
        while self.pos < len(src):
            ch = src[self.pos]
            if ch == "`":
                self.pos += 1
                parts.strings.append("".join(chars))
                return parts
            if ch == "\\":
                chars.append(self._read_escape())
            elif src.startswith("${", self.pos):
                parts.strings.append("".join(chars))
                chars = []
                parts.expressions.append(self._read_template_expression())
            else:
                chars.append(ch)
                self.pos += 1
        raise SandboxSyntaxError("Unterminated template literal", start)

    def _read_template_expression(self) -> str:
        src = self.source
        self.pos += 2                       # ${
        begin = self.pos
        depth = 0
        while self.pos < len(src):
            ch = src[self.pos]
            if ch in ("'", '"'):
                self._read_string(ch)
                continue
            if ch == "`":
                self._read_template()
                continue
            if ch == "{":
                depth += 1
            elif ch == "}":
                if depth == 0:
                    expression = src[begin:self.pos]
                    self.pos += 1
                    return expression
                depth -= 1
            self.pos += 1
        raise SandboxSyntaxError("Unterminated template expression", begin)

    def _read_punctuator(self) -> str:
        src = self.source
        for punct in PUNCTUATORS:
            if src.startswith(punct, self.pos):
                # `a?.5:b` is a conditional, not optional chaining
                if punct == "?." and self.pos + 2 < len(src) and src[self.pos + 2].isdigit():
                    continue
                self.pos += len(punct)
                return punct
        raise SandboxSyntaxError(f"Unexpected character {src[self.pos]!r}", self.pos)


def tokenize(source: str) -> list[Token]:
    return Tokenizer(source).tokenize()
