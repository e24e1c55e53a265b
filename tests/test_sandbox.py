"""Tests for the sandbox interpreter: language, intrinsics, isolation and limits."""
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from sandbox import (
    Sandbox,
    SandboxLimitExceeded,
    SandboxRuntimeError,
    SandboxSyntaxError,
    SandboxTimeout,
    ThrownValue,
)
from set_variable.expressions import MOMENT_OF_THE_DAY_SCRIPT


def iife(body: str) -> str:
    return f"(function() {{{body}}})()"


class TestExpressions:
    def test_arithmetic(self, sandbox):
        assert sandbox.run("1 + 1") == 2
        assert sandbox.run("7 / 2") == 3.5
        assert sandbox.run("4 / 2") == 2
        assert sandbox.run("2 ** 10") == 1024
        assert sandbox.run("7 % 3") == 1
        assert sandbox.run("0.1 + 0.2") == 0.30000000000000004

    def test_integral_results_are_ints(self, sandbox):
        result = sandbox.run("10 / 5")
        assert result == 2 and isinstance(result, int)

    def test_non_finite_numbers_become_none(self, sandbox):
        assert sandbox.run("1 / 0") is None
        assert sandbox.run("Number('abc')") is None

    def test_string_coercion(self, sandbox):
        assert sandbox.run('"a" + 1') == "a1"
        assert sandbox.run('1 + "2"') == "12"
        assert sandbox.run('"3" * "4"') == 12
        assert sandbox.run('[1, 2] + ""') == "1,2"

    def test_equality(self, sandbox):
        assert sandbox.run('1 == "1"') is True
        assert sandbox.run('1 === "1"') is False
        assert sandbox.run("null == undefined") is True
        assert sandbox.run("null === undefined") is False
        assert sandbox.run("NaN === NaN") is False

    def test_logical_operators(self, sandbox):
        assert sandbox.run('null ?? "fallback"') == "fallback"
        assert sandbox.run('0 ?? "fallback"') == 0
        assert sandbox.run('0 || "fallback"') == "fallback"
        assert sandbox.run('"a" && "b"') == "b"
        assert sandbox.run("!''") is True

    def test_ternary_and_typeof(self, sandbox):
        assert sandbox.run('typeof 1 === "number" ? "yes" : "no"') == "yes"
        assert sandbox.run("typeof undeclaredThing") == "undefined"
        assert sandbox.run("typeof [1]") == "object"
        assert sandbox.run("typeof (() => 1)") == "function"

    def test_template_literal(self, sandbox):
        assert sandbox.run("`Hello ${name}, you are ${age + 1}!`", {"name": "Ada", "age": 35}) == "Hello Ada, you are 36!"

    def test_optional_chaining(self, sandbox):
        assert sandbox.run("const o = null; o?.a.b") is None
        assert sandbox.run("const o = {a: {b: 3}}; o?.a.b") == 3
        assert sandbox.run("const f = undefined; f?.()") is None

    def test_in_operator(self, sandbox):
        assert sandbox.run('"a" in {a: 1}') is True
        assert sandbox.run('"b" in {a: 1}') is False

    def test_spread(self, sandbox):
        assert sandbox.run("[...[1, 2], 3]") == [1, 2, 3]
        assert sandbox.run("({...{a: 1}, b: 2})") == {"a": 1, "b": 2}
        assert sandbox.run("Math.max(...[4, 9, 2])") == 9


class TestNumbers:
    def test_precision_stops_at_two_to_the_53(self, sandbox):
        assert sandbox.run("Number.MAX_SAFE_INTEGER + 2") == 9007199254740992
        assert sandbox.run("2 ** 53 + 1 === 2 ** 53") is True
        assert sandbox.run("0x20000000000001 === 2 ** 53") is True

    def test_increment_past_safe_range(self, sandbox):
        assert sandbox.run("let i = Number.MAX_SAFE_INTEGER; i++; i++; i") == 9007199254740992

    def test_huge_products_overflow_to_infinity(self, sandbox):
        assert sandbox.run("x * x", {"x": 10 ** 300}) is None
        assert sandbox.run("x * x === Infinity", {"x": 10 ** 300}) is True

    def test_long_digit_strings(self, sandbox):
        assert sandbox.run("parseInt('9'.repeat(5000)) === Infinity") is True
        assert sandbox.run("Number('1' + '0'.repeat(400))") is None

    def test_safe_integers_stay_ints(self, sandbox):
        result = sandbox.run("Number.MAX_SAFE_INTEGER - 1")
        assert result == 9007199254740990 and isinstance(result, int)


class TestStatements:
    def test_declarations_and_assignment(self, sandbox):
        assert sandbox.run("let a = 1; a += 2; a") == 3

    def test_newlines_separate_statements(self, sandbox):
        assert sandbox.run("let a = 1\nlet b = 2\na + b") == 3

    def test_return_in_function(self, sandbox):
        assert sandbox.run(iife("return 1 + 1")) == 2

    def test_if_else(self, sandbox):
        source = iife("if (x > 10) { return 'big' } else if (x > 5) { return 'medium' } else return 'small'")
        assert sandbox.run(source, {"x": 7}) == "medium"
        assert sandbox.run(source, {"x": 1}) == "small"

    def test_for_loop(self, sandbox):
        assert sandbox.run("let s = 0; for (let i = 0; i < 5; i++) { s += i } s") == 10

    def test_for_of_loop(self, sandbox):
        assert sandbox.run('let out = []; for (const c of "abc") { out.push(c.toUpperCase()) } out.join("")') == "ABC"

    def test_while_break_continue(self, sandbox):
        source = """
        let n = 0
        let odd = 0
        while (true) {
          n++
          if (n > 9) break
          if (n % 2 === 0) continue
          odd++
        }
        odd
        """
        assert sandbox.run(source) == 5

    def test_closures(self, sandbox):
        source = """
        function counter() {
          let c = 0
          return () => ++c
        }
        const next = counter()
        next()
        next()
        """
        assert sandbox.run(source) == 2

    def test_default_and_rest_parameters(self, sandbox):
        assert sandbox.run("((a, b = 2, ...rest) => [a, b, rest])(1)") == [1, 2, []]
        assert sandbox.run("((a, ...rest) => rest.length)(1, 2, 3)") == 2

    def test_object_property_assignment(self, sandbox):
        assert sandbox.run("const o = {a: 1}; o.b = 2; o['c'] = 3; o") == {"a": 1, "b": 2, "c": 3}

    def test_const_cannot_be_reassigned(self, sandbox):
        with pytest.raises(SandboxRuntimeError):
            sandbox.run("const a = 1; a = 2")

    def test_throw(self, sandbox):
        with pytest.raises(ThrownValue) as exc_info:
            sandbox.run('throw new Error("boom")')
        assert "boom" in str(exc_info.value)


class TestIntrinsics:
    def test_string_methods(self, sandbox):
        assert sandbox.run('"  Ada  ".trim().toUpperCase()') == "ADA"
        assert sandbox.run('"a,b,c".split(",")') == ["a", "b", "c"]
        assert sandbox.run('"hello".slice(-3)') == "llo"
        assert sandbox.run('"hello".includes("ell")') is True
        assert sandbox.run('"a-b-c".replaceAll("-", "+")') == "a+b+c"
        assert sandbox.run('"7".padStart(3, "0")') == "007"
        assert sandbox.run('"hello".at(-1)') == "o"
        assert sandbox.run('"hello".length') == 5

    def test_array_methods(self, sandbox):
        assert sandbox.run("[1, 2, 3].map(x => x * 2)") == [2, 4, 6]
        assert sandbox.run("[1, 2, 3, 4].filter(x => x % 2 === 0)") == [2, 4]
        assert sandbox.run("[1, 2, 3].reduce((a, b) => a + b, 0)") == 6
        assert sandbox.run("[1, 2, 3].find(x => x > 1)") == 2
        assert sandbox.run("[3, 1, 2].sort()") == [1, 2, 3]
        assert sandbox.run("[10, 9, 1].sort((a, b) => a - b)") == [1, 9, 10]
        assert sandbox.run("[[1], [2, [3]]].flat()") == [1, 2, [3]]
        assert sandbox.run('["a", "b"].indexOf("b")') == 1
        assert sandbox.run("[1, 2].concat(3, [4])") == [1, 2, 3, 4]
        assert sandbox.run("Array.isArray([])") is True

    def test_at_supports_negative_indexes(self, sandbox):
        assert sandbox.run("[1, 2, 3].at(-1)") == 3
        assert sandbox.run("[1, 2, 3].at(5)") is None

    def test_out_of_range_index_is_undefined(self, sandbox):
        assert sandbox.run("[1][5]") is None

    def test_number_helpers(self, sandbox):
        assert sandbox.run("(0.1).toFixed(2)") == "0.10"
        assert sandbox.run("(2.5).toFixed(0)") == "3"
        assert sandbox.run('parseInt("42px")') == 42
        assert sandbox.run('parseFloat("3.14abc")') == 3.14
        assert sandbox.run('Number("")') == 0
        assert sandbox.run("(255).toString(16)") == "ff"
        assert sandbox.run("Math.round(2.5)") == 3
        assert sandbox.run("Math.floor(-1.5)") == -2

    def test_json(self, sandbox):
        assert sandbox.run('JSON.stringify({a: [1, "x"]})') == '{"a":[1,"x"]}'
        assert sandbox.run("JSON.parse('{\"a\": 1}').a") == 1

    def test_object_helpers(self, sandbox):
        assert sandbox.run("Object.keys({a: 1, b: 2})") == ["a", "b"]
        assert sandbox.run("Object.entries({a: 1})") == [["a", 1]]

    def test_dates_follow_the_clock(self, sandbox):
        assert sandbox.run("new Date().toISOString()") == "2024-03-01T23:15:30.000Z"
        assert sandbox.run("new Date().getHours()") == 23
        assert sandbox.run("Date.now()") == 1709334930000

    def test_date_parsing(self, sandbox):
        assert sandbox.run('new Date("2024-01-15T10:00:00Z").getTime()') == 1705312800000
        assert sandbox.run('new Date("2024-01-15").getDate()') == 15
        assert sandbox.run("new Date(0)") == "1970-01-01T00:00:00.000Z"

    def test_date_locale_string_in_zone(self, sandbox):
        result = sandbox.run('new Date().toLocaleString("en-US", {timeZone: "Asia/Kolkata"})')
        assert result == "3/2/2024, 4:45:30 AM"

    def test_date_local_zone_is_configurable(self, sandbox_config, fixed_clock):
        paris = Sandbox(replace(sandbox_config, local_timezone="Europe/Paris"), clock=fixed_clock)
        assert paris.run("new Date().getHours()") == 0
        assert paris.run("new Date().getDate()") == 2

    def test_radix_strings_keep_fractions(self, sandbox):
        assert sandbox.run("(0.5).toString(2)") == "0.1"
        assert sandbox.run("(255.5).toString(16)") == "ff.8"
        assert sandbox.run("(-2.25).toString(2)") == "-10.01"
        assert sandbox.run("(1 / 3).toString(3)") == "0.1"
        assert sandbox.run("(0.1).toString(2)") == "0.0001" + "1001" * 12 + "101"
        assert sandbox.run("(-255).toString(36)") == "-73"

    def test_code_points(self, sandbox):
        assert sandbox.run('"Ada".codePointAt(0)') == 65
        assert sandbox.run('"Ada".codePointAt(9)') is None
        assert sandbox.run("String.fromCharCode(72, 105)") == "Hi"
        assert sandbox.run("String.fromCodePoint(0x1F600)") == "\U0001F600"
        with pytest.raises(SandboxRuntimeError):
            sandbox.run("String.fromCodePoint(-1)")

    def test_uri_decoding(self, sandbox):
        assert sandbox.run("decodeURIComponent('caf%C3%A9%20%26%20th%C3%A9')") == "café & thé"
        assert sandbox.run("decodeURI('/a%20b%3Fc%26d')") == "/a b%3Fc%26d"
        assert sandbox.run("decodeURIComponent(encodeURIComponent('a+b/ç'))") == "a+b/ç"

    @pytest.mark.parametrize("encoded", ["%", "%zz", "abc%4", "%C3", "%FF"])
    def test_malformed_uri_is_a_uri_error(self, sandbox, encoded):
        with pytest.raises(SandboxRuntimeError) as exc_info:
            sandbox.run(f"decodeURIComponent('{encoded}')")
        assert exc_info.value.kind == "URIError"

    def test_lone_surrogates_leave_as_replacement_char(self, sandbox):
        assert sandbox.run("'\\ud800'") == "\ufffd"
        assert sandbox.run("String.fromCharCode(0xD800)") == "\ufffd"
        assert sandbox.run("({'\\udc00': 'x'})") == {"\ufffd": "x"}
        assert sandbox.run("JSON.stringify(['\\ud800'])") == '["\ufffd"]'

    def test_surrogate_pairs_join(self, sandbox):
        assert sandbox.run("'\\ud83d\\ude00'") == "\U0001F600"

    def test_moment_of_the_day_late_evening(self, sandbox):
        assert sandbox.run(iife(MOMENT_OF_THE_DAY_SCRIPT)) == "evening"

    @pytest.mark.parametrize(
        "hour, moment",
        [
            (0, "morning"),
            (3, "morning"),
            (5, "morning"),
            (11, "morning"),
            (12, "afternoon"),
            (17, "afternoon"),
            (18, "evening"),
            (22, "evening"),
            (23, "evening"),
        ],
    )
    def test_moment_of_the_day_by_hour(self, sandbox_config, hour, moment):
        at_hour = Sandbox(sandbox_config, clock=lambda: datetime(2024, 3, 1, hour, 15, tzinfo=timezone.utc))
        assert at_hour.run(iife(MOMENT_OF_THE_DAY_SCRIPT)) == moment


class TestIsolation:
    def test_no_host_objects(self, sandbox):
        for name in ("process", "require", "globalThis", "window", "__import__", "open", "eval"):
            assert sandbox.run(f"typeof {name}") == "undefined"

    def test_globals_do_not_leak_between_runs(self, sandbox):
        sandbox.run("leaked = 1")
        assert sandbox.run("typeof leaked") == "undefined"

    def test_intrinsics_are_fresh_per_run(self, sandbox):
        sandbox.run("Math.max = () => 0")
        assert sandbox.run("Math.max(1, 2)") == 2

    def test_bindings_are_copied(self, sandbox):
        bindings = {"items": [1, 2], "obj": {"a": 1}}
        assert sandbox.run("items.push(3); obj.b = 2; items", bindings) == [1, 2, 3]
        assert bindings == {"items": [1, 2], "obj": {"a": 1}}

    def test_fetch_can_be_disabled(self, sandbox):
        with pytest.raises(SandboxRuntimeError):
            sandbox.run("fetch('https://example.com')")


class TestErrors:
    def test_syntax_error(self, sandbox):
        with pytest.raises(SandboxSyntaxError):
            sandbox.run("1 +")

    def test_octal_literal_is_rejected(self, sandbox):
        with pytest.raises(SandboxSyntaxError):
            sandbox.run("012")

    def test_reference_error(self, sandbox):
        with pytest.raises(SandboxRuntimeError) as exc_info:
            sandbox.run("missing + 1")
        assert exc_info.value.kind == "ReferenceError"

    def test_reading_property_of_undefined(self, sandbox):
        with pytest.raises(SandboxRuntimeError) as exc_info:
            sandbox.run("undefined.x")
        assert exc_info.value.kind == "TypeError"

    def test_calling_a_non_function(self, sandbox):
        with pytest.raises(SandboxRuntimeError):
            sandbox.run("const a = 1; a()")

    def test_top_level_return_is_rejected(self, sandbox):
        with pytest.raises(SandboxSyntaxError):
            sandbox.run("return 1")


class TestLimits:
    def test_infinite_loop_hits_step_budget(self, sandbox_config, fixed_clock):
        small = Sandbox(replace(sandbox_config, max_steps=1000), clock=fixed_clock)
        with pytest.raises(SandboxTimeout):
            small.run("while (true) {}")

    def test_wall_clock_budget(self, sandbox_config, fixed_clock):
        tiny = Sandbox(replace(sandbox_config, timeout_seconds=0.0, max_steps=10**9), clock=fixed_clock)
        with pytest.raises(SandboxTimeout):
            tiny.run("let i = 0; while (true) { i++ }")

    def test_unbounded_recursion(self, sandbox):
        with pytest.raises(SandboxLimitExceeded):
            sandbox.run("function f(n) { return f(n + 1) } f(0)")

    def test_call_depth_limit(self, sandbox_config, fixed_clock):
        shallow = Sandbox(replace(sandbox_config, max_call_depth=10), clock=fixed_clock)
        assert shallow.run("function f(n) { return n === 0 ? 0 : f(n - 1) } f(5)") == 0
        with pytest.raises(SandboxLimitExceeded):
            shallow.run("function f(n) { return n === 0 ? 0 : f(n - 1) } f(50)")

    def test_string_length_limit(self, sandbox):
        with pytest.raises(SandboxLimitExceeded):
            sandbox.run('"x".repeat(2000000)')

    def test_array_length_limit(self, sandbox_config, fixed_clock):
        small = Sandbox(replace(sandbox_config, max_array_length=10), clock=fixed_clock)
        with pytest.raises(SandboxLimitExceeded):
            small.run("const a = []; for (let i = 0; i < 20; i++) { a.push(i) }")

    def test_limits_are_per_run(self, sandbox_config, fixed_clock):
        small = Sandbox(replace(sandbox_config, max_steps=200), clock=fixed_clock)
        for _ in range(5):
            assert small.run("let s = 0; for (let i = 0; i < 10; i++) { s += i } s") == 45
