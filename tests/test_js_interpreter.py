"""Tests for the sandboxed JavaScript interpreter."""

import math
import threading
import time

import pytest

from yinfo.core.js_interpreter import (
    JS_UNDEFINED,
    JSAbort,
    JSFunction,
    JSInterpreter,
    JSInterpreterError,
    JSRuntimeError,
    JSSyntaxError,
    JSThrow,
    js_to_string,
)


def run(source, **kwargs):
    return JSInterpreter("", **kwargs).run(source)


# ── Expressions ──────────────────────────────────────────────────────
class TestExpressions:
    @pytest.mark.parametrize(
        ("source", "expected"),
        [
            ("1 + 2 * 3", 7),
            ("(1 + 2) * 3", 9),
            ("7 / 2", 3.5),
            ("-7 % 3", -1),
            ("2 ** 10", 1024),
            ("'a' + 1", "a1"),
            ("'5' * '2'", 10),
            ("(5 | 0) ^ 3", 6),
            ("1 < 2 && 'yes'", "yes"),
            ("0 || 'fallback'", "fallback"),
            ("null ?? 'dflt'", "dflt"),
            ("1 == '1'", True),
            ("1 === '1'", False),
            ("true ? 'a' : 'b'", "a"),
            ("typeof 'x'", "string"),
            ("typeof notDefinedAnywhere", "undefined"),
            ("typeof function(){}", "function"),
            ("[1, 2, 3].length", 3),
            ("'abc'[1]", "b"),
        ],
    )
    def test_values(self, source, expected):
        assert run(source) == expected

    def test_undefined(self):
        assert run("void 0") is JS_UNDEFINED

    def test_sequence_returns_last(self):
        assert run("var a = 1, b = 2; a = 5, b = a + 1, b") == 6

    def test_regex_literal_vs_division(self):
        assert run("var half = 10/2; 'a1b2c'.split(/\\d/).join('-') + half") == "a-b-c5"


# ── Statements ───────────────────────────────────────────────────────
class TestStatements:
    def test_for_loop(self):
        assert run("var s = 0; for (var i = 0; i < 5; i++) { s += i } s") == 10

    def test_while_with_break_and_continue(self):
        source = """
        var i = 0, out = [];
        while (true) {
            i++;
            if (i % 2) continue;
            if (i > 8) break;
            out.push(i);
        }
        out.join(",")
        """
        assert run(source) == "2,4,6,8"

    def test_do_while(self):
        assert run("var n = 0; do { n++ } while (n < 3); n") == 3

    def test_switch_fallthrough(self):
        source = """
        var r = "";
        switch (2) {
            case 1: r = "a"; break;
            case 2: r = "b";
            case 3: r = r + "c"; break;
            default: r = "d";
        }
        r
        """
        assert run(source) == "bc"

    def test_switch_default(self):
        assert run("var r; switch (9) { case 1: r = 1; break; default: r = 'd' } r") == "d"

    def test_try_catch_thrown_value(self):
        assert run('try { throw "x" } catch (e) { e + "!" }') == "x!"

    def test_try_catch_runtime_error(self):
        assert run('try { missingName() } catch (e) { "caught" }') == "caught"

    def test_finally_runs(self):
        assert run("var f = 0; try { f = 1 } finally { f = f + 1 } f") == 2

    def test_uncaught_throw(self):
        with pytest.raises(JSThrow) as exc_info:
            run("throw 42")
        assert exc_info.value.value == 42


# ── Functions ────────────────────────────────────────────────────────
class TestFunctions:
    def test_named_function(self):
        interp = JSInterpreter("function f(a){return a*2}")
        assert interp.call_function("f", 21) == 42

    def test_var_function(self):
        interp = JSInterpreter("var g=function(a,b){return a+b};")
        assert interp.call_function("g", 1, 2) == 3

    def test_missing_arguments_are_undefined(self):
        interp = JSInterpreter("function f(a,b){return typeof b}")
        assert interp.call_function("f", 1) == "undefined"

    def test_closure(self):
        source = """
        function mk() { var c = 0; return function() { c++; return c } }
        var f = mk(); f(); f()
        """
        assert run(source) == 2

    def test_hoisting(self):
        assert run("var r = later(); function later() { return 'ok' } r") == "ok"

    def test_free_names_resolved_from_source(self):
        code = "var H={d:function(a){return a+1}};function f(a){return H.d(a)*2}"
        assert JSInterpreter(code).call_function("f", 4) == 10

    def test_call_and_apply(self):
        assert run("function f(x){return this.v + x} f.call({v: 1}, 2)") == 3
        assert run("function f(x){return this.v + x} f.apply({v: 1}, [5])") == 6

    def test_chained_methods(self):
        assert JSInterpreter("function f(a){return a.split('').reverse().join('')}").call_function(
            "f", "abc"
        ) == "cba"

    def test_build_function(self):
        func = JSInterpreter("").build_function("function(a){return a+1}")
        assert isinstance(func, JSFunction)
        assert func(1) == 2

    def test_build_function_rejects_non_function(self):
        with pytest.raises(JSSyntaxError):
            JSInterpreter("").build_function("1 + 1")

    def test_unknown_function(self):
        with pytest.raises(JSInterpreterError):
            JSInterpreter("var x = 1;").extract_function("nope")


# ── Builtins ─────────────────────────────────────────────────────────
class TestBuiltins:
    def test_splice_semantics(self):
        source = "var a=[1,2,3,4,5]; var d=a.splice(1,2); a.join('')+'|'+d.join('')"
        assert run(source) == "145|23"

    def test_splice_negative_start(self):
        assert run("var a=[1,2,3,4]; a.splice(-1, 5); a.join('')") == "123"

    def test_splice_insert(self):
        assert run("var a=[1,4]; a.splice(1, 0, 2, 3); a.join('')") == "1234"

    def test_array_callbacks(self):
        assert run("[1,2,3].map(function(x){return x*2}).filter(function(x){return x>2}).join()") == "4,6"

    def test_string_methods(self):
        assert run("'Hello'.charCodeAt(0)") == 72
        assert run("'abcdef'.slice(-2)") == "ef"
        assert run("'abcdef'.substring(4, 1)") == "bcd"
        assert run("'a-b-c'.replace(/-/g, '+')") == "a+b+c"

    def test_globals(self):
        assert run("String.fromCharCode(72, 105)") == "Hi"
        assert run("parseInt('ff', 16)") == 255
        assert run("Math.floor(7 / 2)") == 3
        assert run("isNaN(parseInt('x'))") is True
        assert run("Array.isArray([])") is True

    def test_new_array(self):
        assert run("new Array(3).length") == 3

    def test_other_constructors_rejected(self):
        with pytest.raises(JSRuntimeError):
            run("new Date()")


# ── Sandboxing ───────────────────────────────────────────────────────
class TestSandbox:
    @pytest.mark.parametrize("name", ["open", "require", "process", "eval", "__import__"])
    def test_no_host_access(self, name):
        with pytest.raises(JSRuntimeError):
            run(f"{name}('x')")

    def test_step_budget(self):
        with pytest.raises(JSAbort):
            run("for (;;) {}", max_steps=1000)

    def test_abort_not_catchable(self):
        with pytest.raises(JSAbort):
            run("try { for (;;) {} } catch (e) {}", max_steps=1000)

    def test_abort_event(self):
        event = threading.Event()
        event.set()
        with pytest.raises(JSAbort):
            run("while (true) {}", abort_event=event)

    def test_deadline(self):
        with pytest.raises(JSAbort):
            run("while (true) {}", deadline=time.monotonic() - 1)

    def test_syntax_error(self):
        with pytest.raises(JSSyntaxError):
            run("var = ;")

    def test_runaway_recursion(self):
        with pytest.raises(JSAbort):
            run("function f(n) { return f(n + 1) } f(0)")

    def test_recursion_within_depth_limit(self):
        assert run("function f(n) { return n ? n + f(n - 1) : 0 } f(20)") == 210

    @pytest.mark.parametrize(
        "source",
        [
            "new Array(1e9)",
            "var a = []; a.length = 1e9",
            "var a = []; a[1e9] = 1",
            "'ab'.repeat(1e9)",
            "'ab'.padStart(1e9)",
        ],
    )
    def test_large_allocation(self, source):
        with pytest.raises(JSAbort):
            run(source, max_steps=10_000)

    @pytest.mark.parametrize("length", ["0/0", "-1", "1.5", "1/0"])
    def test_invalid_array_length_is_catchable(self, length):
        source = f"var r = 'no'; try {{ new Array({length}) }} catch (e) {{ r = 'caught' }} r"
        assert run(source) == "caught"


# ── Number edge cases ────────────────────────────────────────────────
class TestNumberEdgeCases:
    @pytest.mark.parametrize(
        "source",
        [
            "Math.floor(0/0)",
            "Math.round(0/0)",
            "Math.sqrt(-1)",
            "Math.pow(-8, 0.5)",
            "(-8) ** 0.5",
        ],
    )
    def test_nan_results(self, source):
        assert math.isnan(run(source))

    @pytest.mark.parametrize("source", ["Math.ceil(1/0)", "Math.pow(10, 400)", "2 ** 2000"])
    def test_infinite_results(self, source):
        assert run(source) == float("inf")

    def test_parse_int_with_nan_radix(self):
        assert run("parseInt('10', 0/0)") == 10
        assert math.isnan(run("parseInt('10', 99)"))

    def test_large_integers_become_doubles(self):
        assert run("var x = 3; for (var i = 0; i < 20; i++) { x = x * x } x") == float("inf")
        assert run("9007199254740993") == 9007199254740992.0


# ── Source lookup ────────────────────────────────────────────────────
class TestSourceLookup:
    CODE = 'var x=1;function abc(a){return "}"+a}var O={m:function(a){a.reverse()},n(a){return a}};'

    def test_extract_function_code(self):
        assert JSInterpreter(self.CODE).extract_function_code("abc") == 'function(a){return "}"+a}'

    def test_object_span(self):
        interp = JSInterpreter(self.CODE)
        start, end = interp.object_span("O")
        assert self.CODE[start:end] == "{m:function(a){a.reverse()},n(a){return a}}"

    def test_value_span(self):
        code = 'var Tb=["a;b",[1,2]],z=1;let Q=function(a){return a};'
        interp = JSInterpreter(code)
        start, end = interp.value_span("Tb")
        assert code[start:end] == '["a;b",[1,2]]'
        start, end = interp.value_span("Q")
        assert code[start:end] == "function(a){return a}"
        with pytest.raises(JSInterpreterError):
            interp.value_span("missing")

    def test_extract_object(self):
        obj = JSInterpreter(self.CODE).extract_object("O")
        assert set(obj) == {"m", "n"}
        probe = [1, 2, 3]
        obj["m"](probe)
        assert probe == [3, 2, 1]


class TestToString:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (1.5, "1.5"),
            (2.0, "2"),
            (float("nan"), "NaN"),
            ([1, "a", JS_UNDEFINED], "1,a,"),
            (None, "null"),
            (True, "true"),
            ({"a": 1}, "[object Object]"),
        ],
    )
    def test_values(self, value, expected):
        assert js_to_string(value) == expected
