"""
Runtime values and coercion rules of the sandbox language.

Values map onto plain Python objects so that results leave the sandbox
without translation layers:

  undefined -> UNDEFINED        null    -> None
  boolean   -> bool             number  -> int | float
  string    -> str              array   -> list
  object    -> dict             Date    -> JSDate
  functions -> JSFunction (script-defined) | NativeFunction (built-in)
"""
from __future__ import annotations

import json
import math
import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Any, Callable, Optional

from sandbox.errors import SandboxRuntimeError
from variables.value_types import to_number as _text_to_number


class _Undefined:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "undefined"

    def __bool__(self):
        return False


UNDEFINED = _Undefined()
MAX_SAFE_INTEGER = 2 ** 53 - 1
_SURROGATE = re.compile("[\ud800-\udfff]")
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


# ──────────────────────────────────────────────────────────────
#  Function values
# ──────────────────────────────────────────────────────────────

class NativeFunction:
    """A built-in function. `construct` is set when it can be used with `new`."""

    def __init__(
        self,
        name: str,
        fn: Callable[..., Any],
        construct: Callable[..., Any] = None,
        properties: dict[str, Any] = None,
    ):
        self.name = name
        self.fn = fn
        self.construct = construct
        self.properties = properties or {}

    def __repr__(self):
        return f"<native {self.name}>"


class JSFunction:
    """A function defined by the script, closed over the scope it was created in."""

    def __init__(self, node, closure, name: str = ""):
        self.node = node
        self.closure = closure
        self.name = name or node.name

    def __repr__(self):
        return f"<function {self.name or 'anonymous'}>"


def is_callable(value: Any) -> bool:
    return isinstance(value, (NativeFunction, JSFunction))


# ──────────────────────────────────────────────────────────────
#  Date
# ──────────────────────────────────────────────────────────────

class JSDate:
    """
    A point in time in epoch milliseconds. `local_tz` is the zone used by
    the local-time getters (getHours, getDate, ...); None means the host zone.
    """

    def __init__(self, epoch_ms: float, local_tz: Optional[tzinfo] = None):
        self.epoch_ms = epoch_ms
        self.local_tz = local_tz

    @property
    def is_valid(self) -> bool:
        return isinstance(self.epoch_ms, (int, float)) and math.isfinite(self.epoch_ms)

    def utc(self) -> datetime:
        try:
            return _EPOCH + timedelta(milliseconds=self.epoch_ms)
        except (OverflowError, OSError, ValueError):
            raise SandboxRuntimeError("RangeError", "Invalid time value")

    def local(self) -> datetime:
        try:
            if self.local_tz is not None:
                return self.utc().astimezone(self.local_tz)
            return self.utc().astimezone()
        except (OverflowError, OSError, ValueError):
            raise SandboxRuntimeError("RangeError", "Invalid time value")

    def to_iso_string(self) -> str:
        if not self.is_valid:
            raise SandboxRuntimeError("RangeError", "Invalid time value")
        dt = self.utc()
        return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"

    def to_display_string(self) -> str:
        if not self.is_valid:
            return "Invalid Date"
        dt = self.local()
        offset = dt.strftime("%z") or "+0000"
        return dt.strftime("%a %b %d %Y %H:%M:%S ") + f"GMT{offset}"

    def __repr__(self):
        return f"<Date {self.to_display_string()}>"


# ──────────────────────────────────────────────────────────────
#  Coercions
# ──────────────────────────────────────────────────────────────

def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def normalize_number(value):
    """
    Numbers are doubles. Integral values in the safe range read back as int
    (so 4 / 2 is 2); anything else is the nearest float, or an infinity.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        if abs(value) <= MAX_SAFE_INTEGER:
            return value
        try:
            return float(value)
        except OverflowError:
            return math.inf if value > 0 else -math.inf
    if isinstance(value, float) and value.is_integer() and abs(value) <= MAX_SAFE_INTEGER:
        return int(value)
    return value


def typeof(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if isinstance(value, bool):
        return "boolean"
    if is_number(value):
        return "number"
    if isinstance(value, str):
        return "string"
    if is_callable(value):
        return "function"
    return "object"


def truthy(value: Any) -> bool:
    if value is UNDEFINED or value is None:
        return False
    if isinstance(value, bool):
        return value
    if is_number(value):
        return not (value == 0 or (isinstance(value, float) and math.isnan(value)))
    if isinstance(value, str):
        return value != ""
    return True


def number_to_string(value) -> str:
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        text = repr(value)
        if "e" in text:
            mantissa, exponent = text.split("e")
            sign = exponent[0] if exponent[0] in "+-" else "+"
            text = f"{mantissa}e{sign}{exponent.lstrip('+-').lstrip('0') or '0'}"
        return text
    return str(value)


def to_string(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if is_number(value):
        return number_to_string(value)
    if isinstance(value, str):
        return value
    if isinstance(value, list):
        return ",".join("" if item is None or item is UNDEFINED else to_string(item) for item in value)
    if isinstance(value, JSDate):
        return value.to_display_string()
    if isinstance(value, JSFunction):
        return f"function {value.name}() {{ [code] }}"
    if isinstance(value, NativeFunction):
        return f"function {value.name}() {{ [native code] }}"
    if hasattr(value, "js_string"):
        return value.js_string()
    return "[object Object]"


def to_number(value: Any):
    if value is UNDEFINED:
        return math.nan
    if value is None:
        return 0
    if isinstance(value, bool):
        return 1 if value else 0
    if is_number(value):
        return value
    if isinstance(value, str):
        return normalize_number(_text_to_number(value))
    if isinstance(value, JSDate):
        return value.epoch_ms
    if isinstance(value, list):
        return to_number(to_string(value))
    return math.nan


def to_integer(value: Any) -> int:
    number = to_number(value)
    if isinstance(number, float):
        if math.isnan(number):
            return 0
        if math.isinf(number):
            return MAX_SAFE_INTEGER if number > 0 else -MAX_SAFE_INTEGER
    return int(number)


def to_primitive(value: Any) -> Any:
    """Objects become strings (Date included, as for the `+` operator)."""
    if isinstance(value, (list, dict, JSDate, JSFunction, NativeFunction)) or hasattr(value, "js_string"):
        return to_string(value)
    return value


def to_property_key(value: Any) -> str:
    return to_string(value)


def _type_tag(value: Any) -> str:
    if value is UNDEFINED:
        return "undefined"
    if value is None:
        return "null"
    return typeof(value)


def strict_equals(left: Any, right: Any) -> bool:
    tag = _type_tag(left)
    if tag != _type_tag(right):
        return False
    if tag in ("undefined", "null"):
        return True
    if tag in ("number", "string", "boolean"):
        return left == right
    return left is right


def same_value_zero(left: Any, right: Any) -> bool:
    """Strict equality, except that NaN equals NaN (Array#includes)."""
    if is_number(left) and is_number(right) and left != left and right != right:
        return True
    return strict_equals(left, right)


def loose_equals(left: Any, right: Any) -> bool:
    left_tag, right_tag = _type_tag(left), _type_tag(right)
    if left_tag == right_tag:
        return strict_equals(left, right)
    nullish = ("undefined", "null")
    if left_tag in nullish and right_tag in nullish:
        return True
    if left_tag in nullish or right_tag in nullish:
        return False
    if left_tag == "boolean":
        return loose_equals(to_number(left), right)
    if right_tag == "boolean":
        return loose_equals(left, to_number(right))
    if left_tag == "number" and right_tag == "string":
        return left == to_number(right)
    if left_tag == "string" and right_tag == "number":
        return to_number(left) == right
    if left_tag == "object" and right_tag != "object":
        return loose_equals(to_primitive(left), right)
    if right_tag == "object" and left_tag != "object":
        return loose_equals(left, to_primitive(right))
    return False


# ──────────────────────────────────────────────────────────────
#  Crossing the sandbox boundary
# ──────────────────────────────────────────────────────────────

def from_python(value: Any) -> Any:
    """Copy a host value into sandbox values. Containers are rebuilt, never shared."""
    if isinstance(value, dict):
        return {str(k): from_python(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [from_python(v) for v in value]
    if isinstance(value, (str, bool)) or value is None:
        return value
    if is_number(value):
        return normalize_number(value)
    if isinstance(value, datetime):
        return JSDate(value.timestamp() * 1000)
    if value is UNDEFINED:
        return UNDEFINED
    return str(value)


def well_formed(text: str) -> str:
    """Pair up surrogate halves and replace lone ones with U+FFFD so the text encodes as UTF-8."""
    if not _SURROGATE.search(text):
        return text
    return text.encode("utf-16", "surrogatepass").decode("utf-16", "replace")


def to_python(value: Any) -> Any:
    """Convert a sandbox value into a JSON-compatible host value."""
    if value is UNDEFINED or value is None:
        return None
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        return well_formed(value)
    if is_number(value):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return normalize_number(value)
    if isinstance(value, list):
        return [to_python(v) for v in value]
    if isinstance(value, dict):
        return {well_formed(k): to_python(v) for k, v in value.items() if v is not UNDEFINED and not is_callable(v)}
    if isinstance(value, JSDate):
        return value.to_iso_string() if value.is_valid else None
    if is_callable(value):
        return None
    if hasattr(value, "to_python"):
        return value.to_python()
    return to_string(value)


def json_stringify(value: Any, indent: Any = UNDEFINED) -> Any:
    if value is UNDEFINED or is_callable(value):
        return UNDEFINED
    spacing = None
    if is_number(indent) and indent > 0:
        spacing = min(int(indent), 10)
    elif isinstance(indent, str) and indent:
        spacing = indent[:10]
    separators = (",", ":") if spacing is None else (",", ": ")
    return json.dumps(to_python(value), ensure_ascii=False, indent=spacing, separators=separators)


def json_parse(text: Any) -> Any:
    try:
        return from_python(json.loads(to_string(text)))
    except (ValueError, TypeError) as e:
        raise SandboxRuntimeError("SyntaxError", f"JSON.parse: {e}")
