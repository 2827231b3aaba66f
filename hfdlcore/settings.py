"""Reading and writing of structured configuration files in libconfig syntax.

Groups (``{ ... }``) map to ``dict``, lists (``( ... )``) to ``list`` and
arrays (``[ ... ]``, scalars of one type only) to ``tuple``.  Scalars are
``bool``, ``int`` (64-bit), ``float`` and ``str``.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Iterator

_INT32_MIN = -(1 << 31)
_INT32_MAX = (1 << 31) - 1
_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1

_INDENT = "  "

_NAME_RE = re.compile(r"[A-Za-z*][-A-Za-z0-9_*]*")
_ESCAPE_RE = re.compile(r"\\(x[0-9A-Fa-f]{2}|.)", re.DOTALL)
_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "f": "\f", "\\": "\\", '"': '"'}

_TOKEN_RE = re.compile(
    r"""
     (?P<ws>[ \t\r\n\f]+)
    |(?P<comment>\#[^\n]*|//[^\n]*|/\*.*?\*/)
    |(?P<float>[-+]?(?:\d+\.\d*|\.\d+)(?:[eE][-+]?\d+)?|[-+]?\d+[eE][-+]?\d+)
    |(?P<hex>0[xX][0-9A-Fa-f]+(?:LL?)?)
    |(?P<bin>0[bB][01]+(?:LL?)?)
    |(?P<oct>0[oOqQ][0-7]+(?:LL?)?)
    |(?P<int>[-+]?\d+(?:LL?)?)
    |(?P<name>[A-Za-z*][-A-Za-z0-9_*]*)
    |(?P<string>"(?:[^"\\]|\\.)*")
    |(?P<punct>[{}()\[\]=:;,])
    """,
    re.VERBOSE | re.DOTALL,
)


class ConfigError(Exception):
    """A configuration could not be read, parsed or written."""

    def __init__(self, text: str, line: int = 0, file: str | None = None) -> None:
        super().__init__(text)
        self.text = text
        self.line = line
        self.file = file

    def __str__(self) -> str:
        if self.file is not None and self.line:
            return f"{self.file}:{self.line}: {self.text}"
        if self.line:
            return f"line {self.line}: {self.text}"
        if self.file is not None:
            return f"{self.file}: {self.text}"
        return self.text


class ConfigParseError(ConfigError):
    """The configuration text is malformed."""


class ConfigIOError(ConfigError):
    """The configuration file could not be read or written."""


@dataclass(frozen=True)
class _Token:
    kind: str
    value: Any
    line: int


def _to_int(raw: str, kind: str, line: int, file: str | None) -> int:
    body = raw.rstrip("L")
    if kind == "int":
        value = int(body, 10)
        if not _INT64_MIN <= value <= _INT64_MAX:
            raise ConfigParseError("integer value out of range", line, file)
        return value
    base = {"hex": 16, "bin": 2, "oct": 8}[kind]
    value = int(body[2:], base)
    if value >= 1 << 64:
        raise ConfigParseError("integer value out of range", line, file)
    if value > _INT64_MAX:
        value -= 1 << 64
    return value


def _unescape(body: str, line: int, file: str | None) -> str:
    def replace(match: re.Match) -> str:
        seq = match.group(1)
        if len(seq) == 3 and seq[0] == "x":
            return chr(int(seq[1:], 16))
        try:
            return _ESCAPES[seq]
        except KeyError:
            raise ConfigParseError(f"invalid escape sequence \\{seq}", line, file) from None

    return _ESCAPE_RE.sub(replace, body)


def _tokenize(text: str, file: str | None) -> list[_Token]:
    tokens: list[_Token] = []
    pos = 0
    line = 1
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            raise ConfigParseError("syntax error", line, file)
        kind = match.lastgroup
        raw = match.group()
        if kind == "float":
            tokens.append(_Token("float", float(raw), line))
        elif kind in ("hex", "bin", "oct", "int"):
            tokens.append(_Token("int", _to_int(raw, kind, line, file), line))
        elif kind == "name":
            lowered = raw.lower()
            if lowered in ("true", "false"):
                tokens.append(_Token("bool", lowered == "true", line))
            else:
                tokens.append(_Token("name", raw, line))
        elif kind == "string":
            tokens.append(_Token("string", _unescape(raw[1:-1], line, file), line))
        elif kind == "punct":
            tokens.append(_Token(raw, raw, line))
        line += raw.count("\n")
        pos = match.end()
    tokens.append(_Token("eof", None, line))
    return tokens


class _Parser:
    def __init__(self, text: str, file: str | None) -> None:
        self._file = file
        self._tokens = _tokenize(text, file)
        self._pos = 0

    def parse(self) -> dict:
        return self._settings("eof")

    def _peek(self) -> _Token:
        return self._tokens[self._pos]

    def _next(self) -> _Token:
        tok = self._tokens[self._pos]
        if tok.kind != "eof":
            self._pos += 1
        return tok

    def _fail(self, tok: _Token, message: str) -> ConfigParseError:
        return ConfigParseError(message, tok.line, self._file)

    def _settings(self, closing: str) -> dict:
        result: dict[str, Any] = {}
        while True:
            tok = self._next()
            if tok.kind == closing:
                return result
            if tok.kind == "eof":
                raise self._fail(tok, "unexpected end of input")
            if tok.kind != "name":
                raise self._fail(tok, "syntax error")
            sep = self._next()
            if sep.kind not in ("=", ":"):
                raise self._fail(sep, "syntax error")
            value = self._value()
            if self._peek().kind in (";", ","):
                self._next()
            if tok.value in result:
                raise self._fail(tok, f"duplicate setting name: {tok.value}")
            result[tok.value] = value

    def _value(self) -> Any:
        tok = self._next()
        if tok.kind == "string":
            parts = [tok.value]
            while self._peek().kind == "string":
                parts.append(self._next().value)
            return "".join(parts)
        if tok.kind in ("int", "float", "bool"):
            return tok.value
        if tok.kind == "[":
            return self._array(tok)
        if tok.kind == "(":
            return self._elements(")", self._value)
        if tok.kind == "{":
            return self._settings("}")
        raise self._fail(tok, "syntax error")

    def _scalar(self) -> Any:
        tok = self._peek()
        if tok.kind not in ("string", "int", "float", "bool"):
            raise self._fail(tok, "arrays may only hold scalar values")
        return self._value()

    def _array(self, start: _Token) -> tuple:
        items = self._elements("]", self._scalar)
        if len({_scalar_kind(item) for item in items}) > 1:
            raise self._fail(start, "mismatched element type in array")
        return tuple(items)

    def _elements(self, closing: str, item: Callable[[], Any]) -> list:
        items: list[Any] = []
        if self._peek().kind == closing:
            self._next()
            return items
        while True:
            items.append(item())
            tok = self._next()
            if tok.kind == closing:
                return items
            if tok.kind != ",":
                raise self._fail(tok, "syntax error")
            if self._peek().kind == closing:
                self._next()
                return items


def _scalar_kind(value: Any) -> str | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "string"
    return None


def _quote(text: str) -> str:
    out = []
    for ch in text:
        if ch == '"':
            out.append('\\"')
        elif ch == "\\":
            out.append("\\\\")
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        elif ch == "\f":
            out.append("\\f")
        elif ord(ch) < 0x20 or ord(ch) == 0x7F:
            out.append(f"\\x{ord(ch):02x}")
        else:
            out.append(ch)
    return '"' + "".join(out) + '"'


def _format_scalar(value: Any) -> str:
    kind = _scalar_kind(value)
    if kind == "bool":
        return "true" if value else "false"
    if kind == "int":
        if not _INT64_MIN <= value <= _INT64_MAX:
            raise ConfigError(f"integer value out of range: {value}")
        return f"{value}L" if not _INT32_MIN <= value <= _INT32_MAX else str(value)
    if kind == "float":
        if not math.isfinite(value):
            raise ConfigError(f"non-finite float value: {value}")
        return repr(value)
    if kind == "string":
        return _quote(value)
    raise ConfigError(f"unsupported value type: {type(value).__name__}")


def _format_array(values: tuple) -> str:
    if not values:
        return "[ ]"
    kinds = {_scalar_kind(v) for v in values}
    if None in kinds:
        raise ConfigError("arrays may only hold scalar values")
    if len(kinds) > 1:
        raise ConfigError("mismatched element type in array")
    return "[ " + ", ".join(_format_scalar(v) for v in values) + " ]"


def _format_value(value: Any, level: int) -> str:
    if isinstance(value, dict):
        if not value:
            return "{ }"
        return "{\n" + "".join(_format_settings(value, level + 1)) + _INDENT * level + "}"
    if isinstance(value, tuple):
        return _format_array(value)
    if isinstance(value, list):
        if not value:
            return "( )"
        if all(_scalar_kind(v) is not None for v in value):
            return "( " + ", ".join(_format_scalar(v) for v in value) + " )"
        inner = ",\n".join(_INDENT * (level + 1) + _format_value(v, level + 1) for v in value)
        return "(\n" + inner + "\n" + _INDENT * level + ")"
    return _format_scalar(value)


def _check_name(name: Any) -> None:
    if not isinstance(name, str) or not _NAME_RE.fullmatch(name) \
            or name.lower() in ("true", "false"):
        raise ConfigError(f"invalid setting name: {name!r}")


def _format_settings(group: dict, level: int) -> Iterator[str]:
    for name, value in group.items():
        _check_name(name)
        yield f"{_INDENT * level}{name} = {_format_value(value, level)};\n"


def loads(text: str) -> dict:
    """Parse configuration text into a dict of settings."""
    return _Parser(text, None).parse()


def load(path: str | Path) -> dict:
    """Read and parse a configuration file."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise ConfigParseError("file is not valid UTF-8", 0, str(path)) from exc
    except OSError as exc:
        raise ConfigIOError("file I/O error", 0, str(path)) from exc
    return _Parser(text, str(path)).parse()


def dumps(root: dict) -> str:
    """Serialize a dict of settings to configuration text."""
    if not isinstance(root, dict):
        raise ConfigError("root setting must be a group")
    return "".join(_format_settings(root, 0))


def dump(root: dict, path: str | Path) -> None:
    """Serialize a dict of settings and write it to a file."""
    text = dumps(root)
    try:
        Path(path).write_text(text, encoding="utf-8")
    except OSError as exc:
        raise ConfigIOError("file I/O error", 0, str(path)) from exc