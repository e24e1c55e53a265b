"""
Global objects and the property tables of primitive values.

Methods are plain functions taking the interpreter and the receiver first;
`get_property` binds them to the receiver when a script reads them.
"""
from __future__ import annotations

import functools
import math
import random
import re
from datetime import datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, localcontext
from typing import Any
from urllib.parse import quote

from sandbox.errors import SandboxRuntimeError
from sandbox.runtime import (
    MAX_SAFE_INTEGER,
    UNDEFINED,
    JSDate,
    JSFunction,
    NativeFunction,
    _EPOCH,
    is_callable,
    is_number,
    json_parse,
    json_stringify,
    normalize_number,
    same_value_zero,
    strict_equals,
    to_integer,
    to_number,
    to_primitive,
    to_property_key,
    to_string,
    truthy,
)
from utils.timezones import InvalidTimeZone, load_zone


def _type_error(message: str):
    return SandboxRuntimeError("TypeError", message)


def _arg(args: tuple, index: int) -> Any:
    return args[index] if index < len(args) else UNDEFINED


def _require_callable(value: Any, what: str = "callback"):
    if not is_callable(value):
        raise _type_error(f"{to_string(value)} is not a function ({what})")
    return value


def _relative_index(value: Any, length: int, default: int) -> int:
    """Resolve a slice-style index: negative counts from the end, clamped to [0, length]."""
    if value is UNDEFINED:
        return default
    index = to_integer(value)
    if index < 0:
        return max(length + index, 0)
    return min(index, length)


def _array_index(key: Any):
    if is_number(key):
        if key >= 0 and key == int(key):
            return int(key)
        return None
    if isinstance(key, str) and key.isdigit() and (key == "0" or not key.startswith("0")):
        return int(key)
    return None


def _iterate(value: Any) -> list:
    if isinstance(value, list):
        return list(value)
    if isinstance(value, str):
        return list(value)
    raise _type_error(f"{to_string(value)} is not iterable")


# ──────────────────────────────────────────────────────────────
#  Dates
# ──────────────────────────────────────────────────────────────

_ISO_DATE_ONLY = re.compile(r"^[+-]?\d{4,6}(-\d{2}(-\d{2})?)?$")


def parse_date_string(text: str, local_tz=None):
    """Epoch milliseconds for an ISO-8601 string, NaN when it does not parse."""
    text = text.strip()
    if not text:
        return math.nan
    if _ISO_DATE_ONLY.match(text):
        # date-only forms are UTC
        parts = [int(p) for p in text.lstrip("+").split("-") if p]
        while len(parts) < 3:
            parts.append(1)
        try:
            dt = datetime(parts[0], parts[1], parts[2], tzinfo=timezone.utc)
        except ValueError:
            return math.nan
        return _epoch_ms(dt)
    candidate = text.replace(" ", "T", 1)
    if candidate.endswith(("Z", "z")):
        candidate = candidate[:-1] + "+00:00"
    try:
        dt = datetime.fromisoformat(candidate)
    except ValueError:
        return math.nan
    if dt.tzinfo is None:
        if local_tz is not None:
            dt = dt.replace(tzinfo=local_tz)
        else:
            dt = dt.astimezone()
    return _epoch_ms(dt)


def _epoch_ms(dt: datetime):
    return normalize_number((dt - _EPOCH) / timedelta(milliseconds=1))


def _local_fields_to_epoch(fields: list, local_tz, utc: bool = False):
    """Build epoch ms from (year, month0, day, h, m, s, ms) with JS overflow rules."""
    values = [to_number(v) for v in fields]
    if any(isinstance(v, float) and not math.isfinite(v) for v in values):
        return math.nan
    year, month, day, hours, minutes, seconds, millis = (
        values + [0, 1, 0, 0, 0, 0][len(values) - 1:]
    )[:7]
    year, month = int(year), int(month)
    if 0 <= year <= 99:
        year += 1900
    year += month // 12
    month = month % 12
    try:
        base = datetime(year, month + 1, 1)
        naive = base + timedelta(
            days=day - 1, hours=hours, minutes=minutes, seconds=seconds, milliseconds=millis
        )
    except (OverflowError, ValueError):
        return math.nan
    if utc:
        return _epoch_ms(naive.replace(tzinfo=timezone.utc))
    if local_tz is not None:
        return _epoch_ms(naive.replace(tzinfo=local_tz))
    return _epoch_ms(naive.astimezone())


def _make_date_global(interp) -> NativeFunction:
    def construct(*args):
        tz = interp.local_tz
        if not args:
            return JSDate(interp.now_ms(), tz)
        if len(args) == 1:
            value = args[0]
            if isinstance(value, JSDate):
                return JSDate(value.epoch_ms, tz)
            value = to_primitive(value)
            if isinstance(value, str):
                return JSDate(parse_date_string(value, tz), tz)
            return JSDate(_time_clip(to_number(value)), tz)
        return JSDate(_local_fields_to_epoch(list(args), tz), tz)

    return NativeFunction(
        "Date",
        lambda *args: JSDate(interp.now_ms(), interp.local_tz).to_display_string(),
        construct=construct,
        properties={
            "now": NativeFunction("now", lambda *args: interp.now_ms()),
            "parse": NativeFunction(
                "parse", lambda *args: parse_date_string(to_string(_arg(args, 0)), interp.local_tz)
            ),
            "UTC": NativeFunction(
                "UTC", lambda *args: _local_fields_to_epoch(list(args) or [math.nan], None, utc=True)
            ),
        },
    )


def _time_clip(value):
    if isinstance(value, float) and not math.isfinite(value):
        return math.nan
    if abs(value) > 8.64e15:
        return math.nan
    return normalize_number(float(int(value)))


def _date_locale_string(date: JSDate, options: Any, part: str) -> str:
    """en-US style rendering; honours the `timeZone` option."""
    if not date.is_valid:
        return "Invalid Date"
    dt = date.local()
    if isinstance(options, dict) and isinstance(options.get("timeZone"), str):
        try:
            dt = date.utc().astimezone(load_zone(options["timeZone"]))
        except InvalidTimeZone:
            raise SandboxRuntimeError("RangeError", f"Invalid time zone specified: {options['timeZone']}")
    hour = dt.hour % 12 or 12
    time_text = f"{hour}:{dt.minute:02d}:{dt.second:02d} {'AM' if dt.hour < 12 else 'PM'}"
    date_text = f"{dt.month}/{dt.day}/{dt.year}"
    if part == "date":
        return date_text
    if part == "time":
        return time_text
    return f"{date_text}, {time_text}"


def _date_setter(field: str, utc: bool = False):
    order = ["year", "month", "day", "hours", "minutes", "seconds", "millis"]

    def setter(interp, date: JSDate, *args):
        if not date.is_valid:
            return math.nan
        dt = date.utc() if utc else date.local()
        current = {
            "year": dt.year, "month": dt.month - 1, "day": dt.day,
            "hours": dt.hour, "minutes": dt.minute, "seconds": dt.second,
            "millis": dt.microsecond // 1000,
        }
        start = order.index(field)
        for offset, value in enumerate(args[: len(order) - start]):
            current[order[start + offset]] = value
        fields = [current[name] for name in order]
        date.epoch_ms = _local_fields_to_epoch(fields, None if utc else date.local_tz, utc=utc)
        return date.epoch_ms

    return setter


def _date_getter(attribute, utc: bool = False):
    def getter(interp, date: JSDate, *args):
        if not date.is_valid:
            return math.nan
        return attribute(date.utc() if utc else date.local())
    return getter


def _date_set_time(interp, date: JSDate, value=UNDEFINED, *args):
    date.epoch_ms = _time_clip(to_number(value))
    return date.epoch_ms


def _date_timezone_offset(interp, date: JSDate, *args):
    if not date.is_valid:
        return math.nan
    offset = date.local().utcoffset() or timedelta(0)
    return normalize_number(-offset.total_seconds() / 60)


DATE_METHODS = {
    "getTime": lambda interp, d, *a: d.epoch_ms,
    "valueOf": lambda interp, d, *a: d.epoch_ms,
    "toISOString": lambda interp, d, *a: d.to_iso_string(),
    "toJSON": lambda interp, d, *a: d.to_iso_string() if d.is_valid else None,
    "toString": lambda interp, d, *a: d.to_display_string(),
    "toLocaleString": lambda interp, d, *a: _date_locale_string(d, _arg(a, 1), "both"),
    "toLocaleDateString": lambda interp, d, *a: _date_locale_string(d, _arg(a, 1), "date"),
    "toLocaleTimeString": lambda interp, d, *a: _date_locale_string(d, _arg(a, 1), "time"),
    "getFullYear": _date_getter(lambda dt: dt.year),
    "getMonth": _date_getter(lambda dt: dt.month - 1),
    "getDate": _date_getter(lambda dt: dt.day),
    "getDay": _date_getter(lambda dt: (dt.weekday() + 1) % 7),
    "getHours": _date_getter(lambda dt: dt.hour),
    "getMinutes": _date_getter(lambda dt: dt.minute),
    "getSeconds": _date_getter(lambda dt: dt.second),
    "getMilliseconds": _date_getter(lambda dt: dt.microsecond // 1000),
    "getUTCFullYear": _date_getter(lambda dt: dt.year, utc=True),
    "getUTCMonth": _date_getter(lambda dt: dt.month - 1, utc=True),
    "getUTCDate": _date_getter(lambda dt: dt.day, utc=True),
    "getUTCDay": _date_getter(lambda dt: (dt.weekday() + 1) % 7, utc=True),
    "getUTCHours": _date_getter(lambda dt: dt.hour, utc=True),
    "getUTCMinutes": _date_getter(lambda dt: dt.minute, utc=True),
    "getUTCSeconds": _date_getter(lambda dt: dt.second, utc=True),
    "getTimezoneOffset": _date_timezone_offset,
    "setTime": _date_set_time,
    "setFullYear": _date_setter("year"),
    "setMonth": _date_setter("month"),
    "setDate": _date_setter("day"),
    "setHours": _date_setter("hours"),
    "setMinutes": _date_setter("minutes"),
    "setSeconds": _date_setter("seconds"),
    "setMilliseconds": _date_setter("millis"),
    "setUTCDate": _date_setter("day", utc=True),
    "setUTCHours": _date_setter("hours", utc=True),
}


# ──────────────────────────────────────────────────────────────
#  Strings
# ──────────────────────────────────────────────────────────────

def _str_replace(interp, s: str, pattern=UNDEFINED, replacement=UNDEFINED, *, count: int = 1):
    needle = to_string(pattern)
    if count == 1:
        index = s.find(needle)
        positions = [] if index == -1 else [index]
    else:
        positions = []
        index = s.find(needle)
        while index != -1:
            positions.append(index)
            index = s.find(needle, index + max(len(needle), 1))
    if not positions:
        return s
    pieces = []
    last = 0
    for position in positions:
        pieces.append(s[last:position])
        if is_callable(replacement):
            pieces.append(to_string(interp.call(replacement, [needle, position, s])))
        else:
            pieces.append(to_string(replacement).replace("$&", needle))
        last = position + len(needle)
    pieces.append(s[last:])
    return interp.check_string("".join(pieces))


def _str_split(interp, s: str, separator=UNDEFINED, limit=UNDEFINED, *args):
    if separator is UNDEFINED:
        parts = [s]
    else:
        sep = to_string(separator)
        parts = list(s) if sep == "" else s.split(sep)
    if limit is not UNDEFINED:
        parts = parts[: max(to_integer(limit), 0)]
    interp.check_array(len(parts))
    return parts


def _str_pad(interp, s: str, length=UNDEFINED, fill=UNDEFINED, *, at_start: bool):
    target = to_integer(length)
    filler = " " if fill is UNDEFINED else to_string(fill)
    if target <= len(s) or not filler:
        return s
    interp.check_length(target)
    needed = target - len(s)
    padding = (filler * (needed // len(filler) + 1))[:needed]
    return padding + s if at_start else s + padding


def _str_repeat(interp, s: str, count=UNDEFINED, *args):
    times = to_integer(count)
    if times < 0:
        raise SandboxRuntimeError("RangeError", f"Invalid count value: {to_string(count)}")
    interp.check_length(len(s) * times)
    return s * times


def _str_at(interp, s: str, index=UNDEFINED, *args):
    i = to_integer(index)
    if i < 0:
        i += len(s)
    return s[i] if 0 <= i < len(s) else UNDEFINED


def _str_char_at(interp, s: str, index=UNDEFINED, *args):
    i = to_integer(index)
    return s[i] if 0 <= i < len(s) else ""


def _str_char_code_at(interp, s: str, index=UNDEFINED, *args):
    i = to_integer(index)
    return ord(s[i]) if 0 <= i < len(s) else math.nan


def _str_code_point_at(interp, s: str, index=UNDEFINED, *args):
    i = to_integer(index)
    return ord(s[i]) if 0 <= i < len(s) else UNDEFINED


def _str_substring(interp, s: str, start=UNDEFINED, end=UNDEFINED, *args):
    a = min(max(to_integer(start), 0), len(s))
    b = len(s) if end is UNDEFINED else min(max(to_integer(end), 0), len(s))
    return s[min(a, b):max(a, b)]


def _str_substr(interp, s: str, start=UNDEFINED, length=UNDEFINED, *args):
    a = _relative_index(start, len(s), 0)
    size = len(s) - a if length is UNDEFINED else max(to_integer(length), 0)
    return s[a:a + size]


def _str_index_of(interp, s: str, needle=UNDEFINED, start=UNDEFINED, *args):
    return s.find(to_string(needle), min(max(to_integer(start), 0), len(s)))


def _str_last_index_of(interp, s: str, needle=UNDEFINED, *args):
    return s.rfind(to_string(needle))


def _str_locale_compare(interp, s: str, other=UNDEFINED, *args):
    other = to_string(other)
    return (s > other) - (s < other)


STRING_METHODS = {
    "toString": lambda interp, s, *a: s,
    "valueOf": lambda interp, s, *a: s,
    "charAt": _str_char_at,
    "charCodeAt": _str_char_code_at,
    "codePointAt": _str_code_point_at,
    "at": _str_at,
    "indexOf": _str_index_of,
    "lastIndexOf": _str_last_index_of,
    "includes": lambda interp, s, *a: to_string(_arg(a, 0)) in s,
    "startsWith": lambda interp, s, *a: s.startswith(to_string(_arg(a, 0)), _relative_index(_arg(a, 1), len(s), 0)),
    "endsWith": lambda interp, s, *a: s[: _relative_index(_arg(a, 1), len(s), len(s))].endswith(to_string(_arg(a, 0))),
    "slice": lambda interp, s, *a: s[_relative_index(_arg(a, 0), len(s), 0):_relative_index(_arg(a, 1), len(s), len(s))],
    "substring": _str_substring,
    "substr": _str_substr,
    "toUpperCase": lambda interp, s, *a: s.upper(),
    "toLowerCase": lambda interp, s, *a: s.lower(),
    "toLocaleUpperCase": lambda interp, s, *a: s.upper(),
    "toLocaleLowerCase": lambda interp, s, *a: s.lower(),
    "trim": lambda interp, s, *a: s.strip(),
    "trimStart": lambda interp, s, *a: s.lstrip(),
    "trimEnd": lambda interp, s, *a: s.rstrip(),
    "split": _str_split,
    "replace": lambda interp, s, *a: _str_replace(interp, s, *a[:2], count=1),
    "replaceAll": lambda interp, s, *a: _str_replace(interp, s, *a[:2], count=-1),
    "repeat": _str_repeat,
    "padStart": lambda interp, s, *a: _str_pad(interp, s, *a[:2], at_start=True),
    "padEnd": lambda interp, s, *a: _str_pad(interp, s, *a[:2], at_start=False),
    "concat": lambda interp, s, *a: interp.check_string(s + "".join(to_string(x) for x in a)),
    "localeCompare": _str_locale_compare,
}


# ──────────────────────────────────────────────────────────────
#  Arrays
# ──────────────────────────────────────────────────────────────

def _arr_push(interp, arr: list, *items):
    interp.check_array(len(arr) + len(items))
    arr.extend(items)
    return len(arr)


def _arr_unshift(interp, arr: list, *items):
    interp.check_array(len(arr) + len(items))
    arr[0:0] = items
    return len(arr)


def _arr_splice(interp, arr: list, start=UNDEFINED, delete_count=UNDEFINED, *items):
    begin = _relative_index(start, len(arr), 0)
    if delete_count is UNDEFINED:
        count = len(arr) - begin
    else:
        count = min(max(to_integer(delete_count), 0), len(arr) - begin)
    removed = arr[begin:begin + count]
    arr[begin:begin + count] = items
    return removed


def _arr_concat(interp, arr: list, *items):
    result = list(arr)
    for item in items:
        if isinstance(item, list):
            result.extend(item)
        else:
            result.append(item)
    interp.check_array(len(result))
    return result


def _arr_join(interp, arr: list, separator=UNDEFINED, *args):
    sep = "," if separator is UNDEFINED else to_string(separator)
    text = sep.join("" if item is None or item is UNDEFINED else to_string(item) for item in arr)
    return interp.check_string(text)


def _arr_index_of(interp, arr: list, target=UNDEFINED, start=UNDEFINED, *args):
    for index in range(_relative_index(start, len(arr), 0), len(arr)):
        if strict_equals(arr[index], target):
            return index
    return -1


def _arr_last_index_of(interp, arr: list, target=UNDEFINED, *args):
    for index in range(len(arr) - 1, -1, -1):
        if strict_equals(arr[index], target):
            return index
    return -1


def _arr_at(interp, arr: list, index=UNDEFINED, *args):
    i = to_integer(index)
    if i < 0:
        i += len(arr)
    return arr[i] if 0 <= i < len(arr) else UNDEFINED


def _arr_map(interp, arr: list, callback=UNDEFINED, *args):
    _require_callable(callback)
    return [interp.call(callback, [value, index, arr]) for index, value in enumerate(list(arr))]


def _arr_filter(interp, arr: list, callback=UNDEFINED, *args):
    _require_callable(callback)
    return [value for index, value in enumerate(list(arr)) if truthy(interp.call(callback, [value, index, arr]))]


def _arr_find_index(interp, arr: list, callback=UNDEFINED, *args):
    _require_callable(callback)
    for index, value in enumerate(list(arr)):
        if truthy(interp.call(callback, [value, index, arr])):
            return index
    return -1


def _arr_find(interp, arr: list, callback=UNDEFINED, *args):
    index = _arr_find_index(interp, arr, callback)
    return arr[index] if index >= 0 else UNDEFINED


def _arr_some(interp, arr: list, callback=UNDEFINED, *args):
    return _arr_find_index(interp, arr, callback) >= 0


def _arr_every(interp, arr: list, callback=UNDEFINED, *args):
    _require_callable(callback)
    return all(truthy(interp.call(callback, [value, index, arr])) for index, value in enumerate(list(arr)))


def _arr_for_each(interp, arr: list, callback=UNDEFINED, *args):
    _require_callable(callback)
    for index, value in enumerate(list(arr)):
        interp.call(callback, [value, index, arr])
    return UNDEFINED


def _arr_reduce(interp, arr: list, callback=UNDEFINED, *initial):
    _require_callable(callback)
    items = list(arr)
    if initial:
        accumulator, start = initial[0], 0
    elif items:
        accumulator, start = items[0], 1
    else:
        raise _type_error("Reduce of empty array with no initial value")
    for index in range(start, len(items)):
        accumulator = interp.call(callback, [accumulator, items[index], index, arr])
    return accumulator


def _flatten(items: list, depth: int) -> list:
    result = []
    for item in items:
        if isinstance(item, list) and depth > 0:
            result.extend(_flatten(item, depth - 1))
        else:
            result.append(item)
    return result


def _arr_flat(interp, arr: list, depth=UNDEFINED, *args):
    result = _flatten(arr, 1 if depth is UNDEFINED else to_integer(depth))
    interp.check_array(len(result))
    return result


def _arr_flat_map(interp, arr: list, callback=UNDEFINED, *args):
    return _arr_flat(interp, _arr_map(interp, arr, callback), 1)


def _arr_reverse(interp, arr: list, *args):
    arr.reverse()
    return arr


def _default_sort_key(value: Any):
    return (value is UNDEFINED, "" if value is UNDEFINED else to_string(value))


def _arr_sort(interp, arr: list, comparator=UNDEFINED, *args):
    if comparator is UNDEFINED:
        arr.sort(key=_default_sort_key)
        return arr
    _require_callable(comparator, "comparator")

    def compare(left, right):
        if left is UNDEFINED or right is UNDEFINED:
            return (left is UNDEFINED) - (right is UNDEFINED)
        result = to_number(interp.call(comparator, [left, right]))
        if result != result or result == 0:
            return 0
        return 1 if result > 0 else -1

    arr.sort(key=functools.cmp_to_key(compare))
    return arr


def _arr_fill(interp, arr: list, value=UNDEFINED, start=UNDEFINED, end=UNDEFINED, *args):
    for index in range(_relative_index(start, len(arr), 0), _relative_index(end, len(arr), len(arr))):
        arr[index] = value
    return arr


ARRAY_METHODS = {
    "push": _arr_push,
    "pop": lambda interp, arr, *a: arr.pop() if arr else UNDEFINED,
    "shift": lambda interp, arr, *a: arr.pop(0) if arr else UNDEFINED,
    "unshift": _arr_unshift,
    "splice": _arr_splice,
    "slice": lambda interp, arr, *a: arr[_relative_index(_arg(a, 0), len(arr), 0):_relative_index(_arg(a, 1), len(arr), len(arr))],
    "concat": _arr_concat,
    "join": _arr_join,
    "toString": lambda interp, arr, *a: _arr_join(interp, arr),
    "indexOf": _arr_index_of,
    "lastIndexOf": _arr_last_index_of,
    "includes": lambda interp, arr, *a: any(same_value_zero(item, _arg(a, 0)) for item in arr),
    "at": _arr_at,
    "map": _arr_map,
    "filter": _arr_filter,
    "find": _arr_find,
    "findIndex": _arr_find_index,
    "some": _arr_some,
    "every": _arr_every,
    "forEach": _arr_for_each,
    "reduce": _arr_reduce,
    "flat": _arr_flat,
    "flatMap": _arr_flat_map,
    "reverse": _arr_reverse,
    "sort": _arr_sort,
    "fill": _arr_fill,
}


# ──────────────────────────────────────────────────────────────
#  Numbers and objects
# ──────────────────────────────────────────────────────────────

_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def _num_to_fixed(interp, value, digits=UNDEFINED, *args):
    places = to_integer(digits)
    if not 0 <= places <= 100:
        raise SandboxRuntimeError("RangeError", "toFixed() digits argument must be between 0 and 100")
    number = to_number(value)
    if isinstance(number, float) and not math.isfinite(number):
        return to_string(number)
    if abs(number) >= 1e21:
        return to_string(number)
    # half away from zero on the exact binary value
    with localcontext() as context:
        context.prec = 150
        rounded = Decimal(abs(number)).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)
    text = f"{rounded:f}"
    return f"-{text}" if number < 0 and rounded != 0 else text


def _radix_fraction(fraction: float, delta: float, base: int) -> tuple[list[str], int]:
    """
    Shortest digits of `fraction` in `base` that read back as the same double.
    Returns the digits and a carry into the integer part.
    """
    digits = []
    while True:
        fraction *= base
        delta *= base
        digit = int(fraction)
        digits.append(digit)
        fraction -= digit
        if (fraction > 0.5 or (fraction == 0.5 and digit & 1)) and fraction + delta > 1:
            # round up through any trailing digits that overflow
            while digits and digits[-1] + 1 == base:
                digits.pop()
            if not digits:
                return [], 1
            digits[-1] += 1
            break
        if fraction < delta:
            break
    return [_DIGITS[d] for d in digits], 0


def _num_to_string(interp, value, radix=UNDEFINED, *args):
    base = 10 if radix is UNDEFINED else to_integer(radix)
    if not 2 <= base <= 36:
        raise SandboxRuntimeError("RangeError", "toString() radix must be between 2 and 36")
    number = to_number(value)
    if base == 10 or not math.isfinite(number):
        return to_string(number)
    magnitude = abs(number)
    integer = int(magnitude)
    fraction_digits = []
    if magnitude != integer:
        delta = max(0.5 * (math.nextafter(magnitude, math.inf) - magnitude), math.ulp(0.0))
        fraction_digits, carry = _radix_fraction(magnitude - integer, delta, base)
        integer += carry
    digits = []
    while True:
        integer, remainder = divmod(integer, base)
        digits.append(_DIGITS[remainder])
        if not integer:
            break
    text = "".join(reversed(digits))
    if fraction_digits:
        text += "." + "".join(fraction_digits)
    return ("-" if number < 0 else "") + text


_URI_RESERVED = ";/?:@&=+$,#"
_PERCENT_RUN = re.compile(r"(?:%[0-9A-Fa-f]{2})+")
_BARE_PERCENT = re.compile(r"%(?![0-9A-Fa-f]{2})")


def _encode_uri(value, safe: str) -> str:
    try:
        return quote(to_string(value), safe=safe)
    except UnicodeEncodeError:
        raise SandboxRuntimeError("URIError", "URI malformed")


def _utf8(escaped: bytearray) -> str:
    try:
        return escaped.decode("utf-8")
    except UnicodeDecodeError:
        raise SandboxRuntimeError("URIError", "URI malformed")


def _decode_uri(value, reserved: str = "") -> str:
    """Decode %XX runs as UTF-8. Escapes of `reserved` ASCII characters are left as they are."""
    text = to_string(value)
    if _BARE_PERCENT.search(text):
        raise SandboxRuntimeError("URIError", "URI malformed")

    def decode_run(match):
        out, pending = [], bytearray()
        for i in range(0, len(match.group(0)), 3):
            escape = match.group(0)[i:i + 3]
            byte = int(escape[1:], 16)
            if byte < 0x80 and chr(byte) in reserved:
                out.append(_utf8(pending))
                pending.clear()
                out.append(escape)
            else:
                pending.append(byte)
        out.append(_utf8(pending))
        return "".join(out)

    return _PERCENT_RUN.sub(decode_run, text)


def _from_char_code(*codes):
    return "".join(chr(to_integer(code) & 0xFFFF) for code in codes)


def _from_code_point(*codes):
    chars = []
    for code in codes:
        number = to_number(code)
        if not (is_number(number) and math.isfinite(number) and float(number).is_integer() and 0 <= number <= 0x10FFFF):
            raise SandboxRuntimeError("RangeError", f"Invalid code point {to_string(code)}")
        chars.append(chr(int(number)))
    return "".join(chars)


NUMBER_METHODS = {
    "toFixed": _num_to_fixed,
    "toString": _num_to_string,
    "valueOf": lambda interp, value, *a: value,
    "toLocaleString": lambda interp, value, *a: to_string(value),
}

BOOLEAN_METHODS = {
    "toString": lambda interp, value, *a: to_string(value),
    "valueOf": lambda interp, value, *a: value,
}

OBJECT_METHODS = {
    "hasOwnProperty": lambda interp, obj, *a: to_property_key(_arg(a, 0)) in obj,
    "toString": lambda interp, obj, *a: "[object Object]",
}


def _object_keys(value: Any) -> list[str]:
    if isinstance(value, dict):
        return list(value.keys())
    if isinstance(value, (list, str)):
        return [str(index) for index in range(len(value))]
    if value is None or value is UNDEFINED:
        raise _type_error("Cannot convert undefined or null to object")
    return []


def _object_assign(target=UNDEFINED, *sources):
    if not isinstance(target, dict):
        raise _type_error("Object.assign target must be an object")
    for source in sources:
        if isinstance(source, dict):
            target.update(source)
        elif isinstance(source, (list, str)):
            target.update({str(index): item for index, item in enumerate(source)})
    return target


def _object_from_entries(entries=UNDEFINED, *args):
    result = {}
    for entry in _iterate(entries):
        if not isinstance(entry, list):
            raise _type_error("Iterator value is not an entry object")
        result[to_property_key(_arg(tuple(entry), 0))] = _arg(tuple(entry), 1)
    return result


def _make_object_global(interp) -> NativeFunction:
    def entries(value=UNDEFINED, *args):
        keys = _object_keys(value)
        return [[key, get_property(interp, value, key)] for key in keys]

    return NativeFunction(
        "Object",
        lambda value=UNDEFINED, *args: {} if value is None or value is UNDEFINED else value,
        properties={
            "keys": NativeFunction("keys", lambda value=UNDEFINED, *a: _object_keys(value)),
            "values": NativeFunction(
                "values", lambda value=UNDEFINED, *a: [get_property(interp, value, k) for k in _object_keys(value)]
            ),
            "entries": NativeFunction("entries", entries),
            "assign": NativeFunction("assign", _object_assign),
            "fromEntries": NativeFunction("fromEntries", _object_from_entries),
        },
    )


def _make_array_global(interp) -> NativeFunction:
    def construct(*args):
        if len(args) == 1 and is_number(args[0]):
            size = args[0]
            if size < 0 or size != int(size):
                raise SandboxRuntimeError("RangeError", "Invalid array length")
            interp.check_array(int(size))
            return [UNDEFINED] * int(size)
        return list(args)

    def array_from(source=UNDEFINED, mapper=UNDEFINED, *args):
        if isinstance(source, dict) and "length" in source:
            items = [source.get(str(i), UNDEFINED) for i in range(max(to_integer(source["length"]), 0))]
        elif isinstance(source, (list, str)):
            items = list(source)
        else:
            items = []
        interp.check_array(len(items))
        if mapper is not UNDEFINED:
            _require_callable(mapper)
            return [interp.call(mapper, [item, index]) for index, item in enumerate(items)]
        return items

    return NativeFunction(
        "Array",
        construct,
        construct=construct,
        properties={
            "isArray": NativeFunction("isArray", lambda value=UNDEFINED, *a: isinstance(value, list)),
            "from": NativeFunction("from", array_from),
            "of": NativeFunction("of", lambda *items: list(items)),
        },
    )


# ──────────────────────────────────────────────────────────────
#  Free functions
# ──────────────────────────────────────────────────────────────

_FLOAT_PREFIX = re.compile(r"[+-]?(?:Infinity|(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?)")


def parse_float(value=UNDEFINED, *args):
    text = to_string(value).strip()
    match = _FLOAT_PREFIX.match(text)
    if not match:
        return math.nan
    return normalize_number(float(match.group(0).replace("Infinity", "inf")))


def parse_int(value=UNDEFINED, radix=UNDEFINED, *args):
    text = to_string(value).strip()
    sign = 1
    if text and text[0] in "+-":
        sign = -1 if text[0] == "-" else 1
        text = text[1:]
    base = 0 if radix is UNDEFINED else to_integer(radix)
    if base == 0:
        base = 10
        if text[:2].lower() == "0x":
            base, text = 16, text[2:]
    elif base == 16 and text[:2].lower() == "0x":
        text = text[2:]
    if not 2 <= base <= 36:
        return math.nan
    digits = ""
    for ch in text.lower():
        if ch in _DIGITS[:base]:
            digits += ch
        else:
            break
    if not digits:
        return math.nan
    if base == 10:
        magnitude = float(digits)
    elif base & (base - 1) == 0 or len(digits) <= 64:
        magnitude = int(digits, base)
    else:
        # long digit runs are past double precision; fold them as floats
        magnitude = 0.0
        for ch in digits:
            magnitude = magnitude * base + _DIGITS.index(ch)
    return normalize_number(sign * magnitude)


def _math_round(value=UNDEFINED, *args):
    number = to_number(value)
    if isinstance(number, float) and not math.isfinite(number):
        return number
    return normalize_number(math.floor(number + 0.5))


def _math_extreme(pick, empty):
    def extreme(*args):
        numbers = [to_number(arg) for arg in args]
        if not numbers:
            return empty
        if any(isinstance(n, float) and math.isnan(n) for n in numbers):
            return math.nan
        return pick(numbers)
    return extreme


def _math_unary(fn):
    def wrapper(value=UNDEFINED, *args):
        number = to_number(value)
        try:
            return normalize_number(fn(number))
        except (ValueError, OverflowError):
            return math.nan
    return wrapper


def _math_pow(base=UNDEFINED, exponent=UNDEFINED, *args):
    return power(to_number(base), to_number(exponent))


def power(base, exponent):
    if isinstance(exponent, float) and math.isnan(exponent):
        return math.nan
    try:
        result = math.pow(base, exponent)
    except OverflowError:
        return math.inf
    except ValueError:
        return math.nan
    return normalize_number(result)


def _finite(fn):
    def wrapper(value):
        if isinstance(value, float) and not math.isfinite(value):
            return value
        return fn(value)
    return wrapper


def _make_math_global() -> dict:
    functions = {
        "abs": _math_unary(abs),
        "floor": _math_unary(_finite(math.floor)),
        "ceil": _math_unary(_finite(math.ceil)),
        "trunc": _math_unary(_finite(math.trunc)),
        "sign": _math_unary(lambda x: x if x != x else (x > 0) - (x < 0)),
        "sqrt": _math_unary(math.sqrt),
        "log": _math_unary(lambda x: -math.inf if x == 0 else math.log(x)),
        "log10": _math_unary(lambda x: -math.inf if x == 0 else math.log10(x)),
        "log2": _math_unary(lambda x: -math.inf if x == 0 else math.log2(x)),
        "exp": _math_unary(math.exp),
        "sin": _math_unary(math.sin),
        "cos": _math_unary(math.cos),
        "tan": _math_unary(math.tan),
        "round": _math_round,
        "max": _math_extreme(max, -math.inf),
        "min": _math_extreme(min, math.inf),
        "pow": _math_pow,
        "random": lambda *args: random.random(),
    }
    table: dict[str, Any] = {name: NativeFunction(name, fn) for name, fn in functions.items()}
    table.update({"PI": math.pi, "E": math.e, "LN2": math.log(2), "LN10": math.log(10), "SQRT2": math.sqrt(2)})
    return table


def _number_is_integer(value=UNDEFINED, *args):
    return is_number(value) and math.isfinite(value) and float(value).is_integer()


def _make_error(message=UNDEFINED, *args) -> dict:
    return {"name": "Error", "message": "" if message is UNDEFINED else to_string(message)}


def make_globals(interp) -> dict[str, Any]:
    """Fresh global bindings for one evaluation."""
    return {
        "undefined": UNDEFINED,
        "NaN": math.nan,
        "Infinity": math.inf,
        "Date": _make_date_global(interp),
        "Math": _make_math_global(),
        "JSON": {
            "parse": NativeFunction("parse", lambda text=UNDEFINED, *a: json_parse(text)),
            "stringify": NativeFunction(
                "stringify", lambda value=UNDEFINED, replacer=UNDEFINED, indent=UNDEFINED, *a: json_stringify(value, indent)
            ),
        },
        "Array": _make_array_global(interp),
        "Object": _make_object_global(interp),
        "Number": NativeFunction(
            "Number",
            lambda *args: to_number(args[0]) if args else 0,
            properties={
                "isInteger": NativeFunction("isInteger", _number_is_integer),
                "isSafeInteger": NativeFunction(
                    "isSafeInteger", lambda value=UNDEFINED, *a: _number_is_integer(value) and abs(value) <= MAX_SAFE_INTEGER
                ),
                "isFinite": NativeFunction(
                    "isFinite", lambda value=UNDEFINED, *a: is_number(value) and math.isfinite(value)
                ),
                "isNaN": NativeFunction(
                    "isNaN", lambda value=UNDEFINED, *a: isinstance(value, float) and math.isnan(value)
                ),
                "parseFloat": NativeFunction("parseFloat", parse_float),
                "parseInt": NativeFunction("parseInt", parse_int),
                "MAX_SAFE_INTEGER": MAX_SAFE_INTEGER,
                "MIN_SAFE_INTEGER": -MAX_SAFE_INTEGER,
            },
        ),
        "String": NativeFunction(
            "String",
            lambda *args: to_string(args[0]) if args else "",
            properties={
                "fromCharCode": NativeFunction("fromCharCode", _from_char_code),
                "fromCodePoint": NativeFunction("fromCodePoint", _from_code_point),
            },
        ),
        "Boolean": NativeFunction("Boolean", lambda *args: truthy(args[0]) if args else False),
        "Error": NativeFunction("Error", _make_error, construct=_make_error),
        "parseInt": NativeFunction("parseInt", parse_int),
        "parseFloat": NativeFunction("parseFloat", parse_float),
        "isNaN": NativeFunction("isNaN", lambda value=UNDEFINED, *a: math.isnan(float(to_number(value)))),
        "isFinite": NativeFunction("isFinite", lambda value=UNDEFINED, *a: math.isfinite(float(to_number(value)))),
        "encodeURIComponent": NativeFunction(
            "encodeURIComponent", lambda value=UNDEFINED, *a: _encode_uri(value, safe="-_.!~*'()")
        ),
        "decodeURIComponent": NativeFunction(
            "decodeURIComponent", lambda value=UNDEFINED, *a: _decode_uri(value)
        ),
        "encodeURI": NativeFunction(
            "encodeURI", lambda value=UNDEFINED, *a: _encode_uri(value, safe=";,/?:@&=+$-_.!~*'()#")
        ),
        "decodeURI": NativeFunction(
            "decodeURI", lambda value=UNDEFINED, *a: _decode_uri(value, reserved=_URI_RESERVED)
        ),
        "fetch": NativeFunction("fetch", lambda url=UNDEFINED, options=UNDEFINED, *a: interp.fetch(url, options)),
    }


# ──────────────────────────────────────────────────────────────
#  Property access
# ──────────────────────────────────────────────────────────────

def _bind(interp, table: dict, receiver: Any, name: str):
    method = table.get(name)
    if method is None:
        return UNDEFINED
    return NativeFunction(name, functools.partial(method, interp, receiver))


def get_property(interp, obj: Any, key: Any) -> Any:
    if obj is UNDEFINED or obj is None:
        raise _type_error(f"Cannot read properties of {to_string(obj)} (reading '{to_string(key)}')")
    if isinstance(obj, dict):
        name = to_property_key(key)
        if name in obj:
            return obj[name]
        return _bind(interp, OBJECT_METHODS, obj, name)
    if isinstance(obj, (list, str)):
        index = _array_index(key)
        if index is not None:
            return obj[index] if index < len(obj) else UNDEFINED
        name = to_property_key(key)
        if name == "length":
            return len(obj)
        return _bind(interp, ARRAY_METHODS if isinstance(obj, list) else STRING_METHODS, obj, name)
    if isinstance(obj, bool):
        return _bind(interp, BOOLEAN_METHODS, obj, to_property_key(key))
    if is_number(obj):
        return _bind(interp, NUMBER_METHODS, obj, to_property_key(key))
    if isinstance(obj, JSDate):
        return _bind(interp, DATE_METHODS, obj, to_property_key(key))
    if isinstance(obj, NativeFunction):
        name = to_property_key(key)
        if name == "name":
            return obj.name
        return obj.properties.get(name, UNDEFINED)
    if isinstance(obj, JSFunction):
        name = to_property_key(key)
        if name == "name":
            return obj.name
        if name == "length":
            return len(obj.node.params)
        return UNDEFINED
    if hasattr(obj, "js_get"):
        return obj.js_get(interp, to_property_key(key))
    return UNDEFINED


def set_property(interp, obj: Any, key: Any, value: Any) -> None:
    if obj is UNDEFINED or obj is None:
        raise _type_error(f"Cannot set properties of {to_string(obj)} (setting '{to_string(key)}')")
    if isinstance(obj, dict):
        obj[to_property_key(key)] = value
    elif isinstance(obj, list):
        index = _array_index(key)
        if index is not None:
            if index >= len(obj):
                interp.check_array(index + 1)
                obj.extend([UNDEFINED] * (index + 1 - len(obj)))
            obj[index] = value
        elif to_property_key(key) == "length":
            size = to_integer(value)
            if size < 0:
                raise SandboxRuntimeError("RangeError", "Invalid array length")
            interp.check_array(size)
            if size < len(obj):
                del obj[size:]
            else:
                obj.extend([UNDEFINED] * (size - len(obj)))
    # assignments to properties of primitives are ignored
