"""
Tests for the minilang interpreter.
"""

import io
import math
import sys

import pytest
from minilang import (
    run, execute, format_value, create_default_environment, Environment,
    ValueKind, UndefinedBindingError, NotCallableError, ValueTypeError,
    LexError, ParseError, CallDepthError,
)
from minilang.runtime import (
    Interpreter, HostFunction, HostClass, Record, Closure, host_val,
)
from minilang.runtime.interpreter import recursion_guard


def run_with_output(source: str):
    out = io.StringIO()
    env = create_default_environment(stream=out)
    value = run(source, env=env)
    return value, out.getvalue()


def value_of(source: str):
    return run(source).data


class TestArithmetic:
    """Test numeric operators and IEEE division."""

    def test_precedence(self):
        """Test precedence."""
        assert value_of("1 + 2 * 3") == 7.0

    def test_parentheses(self):
        """Test parentheses."""
        assert value_of("(1 + 2) * 3") == 9.0

    def test_logical_and_comparison(self):
        """Test logical and comparison."""
        result = run("2 < 3 && 3 < 4")
        assert result.kind == ValueKind.BOOL
        assert result.data is True

    def test_subtraction_and_division(self):
        """Test subtraction and division."""
        assert value_of("10 - 4 / 2") == 8.0

    def test_remainder_sign_follows_dividend(self):
        """Test remainder sign follows dividend."""
        assert value_of("7 % 3") == 1.0
        assert value_of("-7 % 3") == -1.0

    def test_division_by_zero(self):
        """Test division by zero."""
        assert value_of("1 / 0") == math.inf
        assert value_of("-1 / 0") == -math.inf
        assert math.isnan(value_of("0 / 0"))

    def test_remainder_by_zero(self):
        """Test remainder by zero."""
        assert math.isnan(value_of("5 % 0"))

    def test_unary_minus(self):
        """Test unary minus."""
        assert value_of("-(2 + 3)") == -5.0

    def test_unary_minus_on_text(self):
        """Test unary minus on text."""
        with pytest.raises(ValueTypeError):
            run('-"a"')

    def test_arithmetic_on_bool(self):
        """Test arithmetic on bool."""
        with pytest.raises(ValueTypeError) as exc_info:
            run("true * 2")
        assert exc_info.value.diagnostic.code == "E203"


class TestConcatenationAndComparison:
    """Test + on text and arrays, ordering and equality."""

    def test_text_concat(self):
        """Test text concat."""
        assert value_of('"a" + "b"') == "ab"

    def test_text_and_number(self):
        """Test text and number."""
        assert value_of('"n=" + 3') == "n=3"
        assert value_of('1.5 + "x"') == "1.5x"

    def test_array_concat(self):
        """Test array concat."""
        assert format_value(run("[1, 2] + [3]")) == "[1, 2, 3]"

    def test_array_plus_number(self):
        """Test array plus number."""
        with pytest.raises(ValueTypeError):
            run("[1] + 2")

    def test_text_ordering(self):
        """Test text ordering."""
        assert value_of('"apple" < "banana"') is True

    def test_mixed_ordering(self):
        """Test mixed ordering."""
        with pytest.raises(ValueTypeError):
            run('1 < "2"')

    def test_equality(self):
        """Test equality."""
        assert value_of("1 == 1") is True
        assert value_of('"a" != "b"') is True
        assert value_of("[1, [2]] == [1, [2]]") is True

    def test_equality_across_kinds(self):
        """Test equality across kinds."""
        assert value_of('1 == "1"') is False
        assert value_of("0 == false") is False

    def test_isnt(self):
        """Test isnt."""
        assert value_of("1 isnt 2") is True


class TestLogic:
    """Test logical operators and truthiness."""

    def test_short_circuit_and(self):
        """Test short circuit and."""
        _, out = run_with_output('false && print("no")')
        assert out == ""

    def test_short_circuit_or(self):
        """Test short circuit or."""
        _, out = run_with_output('true || print("no")')
        assert out == ""

    def test_logical_results_are_bool(self):
        """Test logical results are bool."""
        result = run('"x" || 0')
        assert result.kind == ValueKind.BOOL
        assert result.data is True

    def test_word_operators(self):
        """Test word operators."""
        assert value_of("true and false") is False
        assert value_of("false or true") is True

    @pytest.mark.parametrize("source", ["false", "0", '""', "[]", "let u; u", "0 / 0"])
    def test_falsy_values(self, source):
        """Test falsy values."""
        assert run(source).is_truthy() is False

    @pytest.mark.parametrize("source", ["true", "1", '"0"', "[0]", "fn() {}", "Math"])
    def test_truthy_values(self, source):
        """Test truthy values."""
        assert run(source).is_truthy() is True

    def test_not(self):
        """Test logical not."""
        assert value_of("!0") is True
        assert value_of('!"text"') is False


class TestBindings:
    """Test let bindings, scoping and assignment."""

    def test_let_value(self):
        """Test let value."""
        assert value_of("let x = 5") == 5.0

    def test_let_without_initializer(self):
        """Test let without initializer."""
        assert run("let x; x").kind == ValueKind.ABSENT

    def test_block_bindings_do_not_leak(self):
        """Test block bindings do not leak."""
        with pytest.raises(UndefinedBindingError):
            run("{ let inner = 1; } inner")

    def test_shadowing_does_not_mutate_outer(self):
        """Test shadowing does not mutate outer."""
        assert value_of("let x = 1; { let x = 2; } x") == 1.0

    def test_assignment_updates_outer(self):
        """Test assignment updates outer."""
        assert value_of("let x = 1; { x = 2; } x") == 2.0

    def test_assignment_to_undeclared_defines_in_current_scope(self):
        """Test assignment to undeclared defines in current scope."""
        assert value_of("y = 4; y") == 4.0
        with pytest.raises(UndefinedBindingError):
            run("{ z = 1; } z")

    def test_assignment_is_expression(self):
        """Test assignment is expression."""
        assert value_of("let a; let b; a = b = 3; a + b") == 6.0

    def test_undefined_variable(self):
        """Test undefined variable."""
        with pytest.raises(UndefinedBindingError) as exc_info:
            run("let a = 1;\nmissing + a")
        diag = exc_info.value.diagnostic
        assert diag.span.start.line == 2
        assert diag.source_line == "missing + a"


class TestControlFlow:
    """Test if, while, break, continue and return."""

    def test_if_value(self):
        """Test if value."""
        assert value_of("if (1 < 2) 10; else 20;") == 10.0
        assert value_of("if (1 > 2) 10; else 20;") == 20.0

    def test_if_without_else_is_absent(self):
        """Test if without else is absent."""
        assert run("if (false) 1;").kind == ValueKind.ABSENT

    def test_while_counter(self):
        """Test while counter."""
        value, out = run_with_output("let i = 0; while (i < 5) { print(i); i = i + 1; }")
        assert out.split() == ["0", "1", "2", "3", "4"]
        assert value.kind == ValueKind.ABSENT

    def test_break(self):
        """Test break leaves the loop."""
        assert value_of("let i = 0; while (true) { i = i + 1; if (i == 3) break; } i") == 3.0

    def test_continue(self):
        """Test continue skips the rest of the body."""
        _, out = run_with_output(
            "let i = 0; while (i < 5) { i = i + 1; if (i % 2 == 0) { continue; } print(i); }")
        assert out.split() == ["1", "3", "5"]

    def test_break_only_leaves_inner_loop(self):
        """Test break only leaves inner loop."""
        source = """
        let total = 0;
        let i = 0;
        while (i < 3) {
            i = i + 1;
            let j = 0;
            while (true) { j = j + 1; if (j > 2) break; total = total + 1; }
        }
        total
        """
        assert value_of(source) == 6.0

    def test_break_from_nested_blocks(self):
        """Test break from nested blocks."""
        source = """
        let i = 0;
        while (true) {
            i = i + 1;
            { { if (i > 2) { { break; } } } }
        }
        i
        """
        assert value_of(source) == 3.0

    def test_continue_from_nested_blocks(self):
        """Test continue from nested blocks."""
        source = """
        let i = 0;
        while (i < 6) {
            i = i + 1;
            { if (i % 3 == 0) { { { continue; } } } }
            print(i);
        }
        """
        _, out = run_with_output(source)
        assert out.split() == ["1", "2", "4", "5"]

    def test_break_from_else_branch_inside_blocks(self):
        """Test break from else branch inside blocks."""
        source = """
        let n = 0;
        while (true) {
            { if (n < 4) { n = n + 1; } else { { break; } } }
        }
        n
        """
        assert value_of(source) == 4.0

    def test_top_level_return_ends_program(self):
        """Test top level return ends program."""
        value, out = run_with_output('print("a"); return 7; print("b");')
        assert value.data == 7.0
        assert out == "a\n"

    def test_program_value_is_last_statement(self):
        """Test program value is last statement."""
        assert value_of("1; 2; 3") == 3.0

    def test_empty_program(self):
        """Test empty program."""
        assert run("").kind == ValueKind.ABSENT


class TestFunctions:
    """Test closures, calls and recursion."""

    def test_recursive_factorial(self):
        """Test recursive factorial."""
        source = """
        fn fact(n) {
            if (n < 2) { return 1; }
            return n * fact(n - 1);
        }
        fact(6)
        """
        assert value_of(source) == 720.0

    def test_declaration_value_is_closure(self):
        """Test declaration value is closure."""
        result = run("fn f() {}")
        assert result.kind == ValueKind.CLOSURE
        assert result.data.name == "f"

    def test_anonymous_function(self):
        """Test anonymous function."""
        assert value_of("let twice = fn(x) { return x * 2; }; twice(21)") == 42.0

    def test_falling_off_end_is_absent(self):
        """Test falling off end is absent."""
        assert run("fn f() { 1 + 1; } f()").kind == ValueKind.ABSENT

    def test_missing_arguments_are_absent(self):
        """Test missing arguments are absent."""
        assert run("fn f(a, b) { return b; } f(1)").kind == ValueKind.ABSENT

    def test_extra_arguments_ignored(self):
        """Test extra arguments ignored."""
        assert value_of("fn f(a) { return a; } f(1, 2, 3)") == 1.0

    def test_closure_sees_later_updates(self):
        """Test closure sees later updates."""
        source = """
        let x = 1;
        fn getx() { return x; }
        x = 2;
        getx()
        """
        assert value_of(source) == 2.0

    def test_counter_closure(self):
        """Test counter closure."""
        source = """
        fn make_counter() {
            let count = 0;
            return fn() { count = count + 1; return count; };
        }
        let c = make_counter();
        c(); c();
        c()
        """
        assert value_of(source) == 3.0

    def test_return_inside_loop_leaves_function(self):
        """Test return inside loop leaves function."""
        source = """
        fn first_over(limit) {
            let i = 0;
            while (true) { i = i + 1; if (i > limit) { return i; } }
        }
        first_over(4)
        """
        assert value_of(source) == 5.0

    def test_parameters_do_not_leak(self):
        """Test parameters do not leak."""
        with pytest.raises(UndefinedBindingError):
            run("fn f(p) { return p; } f(1); p")

    def test_call_undeclared(self):
        """Test call undeclared."""
        with pytest.raises(UndefinedBindingError):
            run("nope(1)")

    def test_call_non_function(self):
        """Test call non function."""
        with pytest.raises(NotCallableError) as exc_info:
            run("let x = 5; x()")
        assert exc_info.value.diagnostic.code == "E202"

    def test_closures_callable_from_python(self):
        """Test closures callable from python."""
        f = run("fn(a, b) { return a + b; }").data
        assert isinstance(f, Closure)
        assert f(2, 3) == 5.0


class TestArraysAndText:
    """Test array and text indexing and methods."""

    def test_index(self):
        """Test index access."""
        assert value_of("let a = [10, 20, 30]; a[1]") == 20.0

    def test_index_out_of_range(self):
        """Test index out of range."""
        with pytest.raises(UndefinedBindingError):
            run("[1][3]")

    def test_fractional_index(self):
        """Test fractional index."""
        with pytest.raises(UndefinedBindingError):
            run("[1, 2][0.5]")

    def test_text_index(self):
        """Test text index."""
        assert value_of('let s = "abc"; s[2]') == "c"

    def test_length(self):
        """Test length property."""
        assert value_of("let a = [1, 2, 3]; a.length") == 3.0
        assert value_of('let s = "hello"; s.length') == 5.0

    def test_push_mutates_shared_array(self):
        """Test push mutates shared array."""
        assert value_of("let a = [1]; let b = a; a.push(2, 3); b.length") == 3.0

    def test_pop(self):
        """Test array pop."""
        assert value_of("let a = [1, 2]; a.pop()") == 2.0
        assert run("let a = []; a.pop()").kind == ValueKind.ABSENT

    def test_join(self):
        """Test array join."""
        assert value_of('let a = [1, "b", true]; a.join("-")') == "1-b-true"
        assert value_of("let a = [1, 2]; a.join()") == "1,2"

    def test_text_methods(self):
        """Test text methods."""
        assert value_of('let s = "MiXed"; s.upper()') == "MIXED"
        assert value_of('let s = "MiXed"; s.lower()') == "mixed"
        assert format_value(run('let s = "a,b,c"; s.split(",")')) == '["a", "b", "c"]'

    def test_unbound_method_reference(self):
        """Test unbound method reference."""
        assert value_of("let a = [5]; let p = a.push; p(6); a.length") == 2.0

    def test_unknown_member(self):
        """Test unknown member."""
        with pytest.raises(UndefinedBindingError):
            run("let a = [1]; a.nothing")

    def test_member_of_undefined(self):
        """Test member of undefined."""
        with pytest.raises(UndefinedBindingError):
            run("let u; u.field")


class TestConstruction:
    """Test new in statement and expression position."""

    def make_env(self, calls):
        env = create_default_environment()

        def factory(*args):
            calls.append(args)
            return Record({"args": list(args)}, type_name="Thing")

        env.define("Thing", host_val(HostClass("Thing", factory)))
        return env

    def test_statement_binds_first_time_only(self):
        """Test statement binds first time only."""
        calls = []
        env = self.make_env(calls)
        source = """
        fn make(i) { new Thing(i); return Thing; }
        let first = make(1);
        let second = make(2);
        """
        run(source, env=env)
        assert len(calls) == 2
        assert isinstance(env.get("first").data, Record)
        assert isinstance(env.get("second").data, HostClass)

    def test_statement_value_is_instance(self):
        """Test statement value is instance."""
        calls = []
        env = self.make_env(calls)
        value = run("new Thing(7);", env=env)
        assert isinstance(value.data, Record)
        assert env.get("Thing") is value

    def test_expression_does_not_bind(self):
        """Test expression does not bind."""
        calls = []
        env = self.make_env(calls)
        value = run("let t = new Thing(1, 2); t.args", env=env)
        assert format_value(value) == "[1, 2]"
        assert isinstance(env.get("Thing").data, HostClass)

    def test_closure_as_factory(self):
        """Test closure as factory."""
        assert value_of("fn Pair(a, b) { return [a, b]; } let p = new Pair(1, 2); p[1]") == 2.0

    def test_construct_non_callable(self):
        """Test construct non callable."""
        with pytest.raises(NotCallableError):
            run("let x = 3; new x()")

    def test_construct_undeclared(self):
        """Test construct undeclared."""
        with pytest.raises(UndefinedBindingError):
            run("new Missing()")


class TestErrorsAndApi:
    """Test error reporting and the run/execute API."""

    def test_unterminated_string(self):
        """Test unterminated string."""
        with pytest.raises(LexError):
            run('"open')

    def test_parse_error(self):
        """Test parse error."""
        with pytest.raises(ParseError):
            run("let = 1")

    def test_execute_success(self):
        """Test execute success."""
        result = execute("6 * 7")
        assert result.success
        assert result.value.data == 42.0
        assert result.to_dict() == {"success": True, "value": "42"}

    def test_execute_failure(self):
        """Test execute failure."""
        result = execute("let a = 1;\nb")
        assert not result.success
        assert result.error_kind == "UndefinedBindingError"
        assert "b" in result.error_message
        assert result.diagnostic.code == "E201"
        assert result.to_dict()["diagnostic"]["range"]["start"]["line"] == 2

    def test_side_effects_survive_errors(self):
        """Test side effects survive errors."""
        env = create_default_environment()
        result = execute("let kept = 1; boom()", env=env)
        assert not result.success
        assert env.get("kept").data == 1.0

    def test_deterministic_on_fresh_environment(self):
        """Test deterministic on fresh environment."""
        source = "let xs = [3, 1, 2]; xs.push(xs.length); xs.join(\"\")"
        assert value_of(source) == value_of(source) == "3123"

    def test_custom_environment_and_host_function(self):
        """Test custom environment and host function."""
        env = Environment()
        env.define("twice", host_val(HostFunction("twice", lambda x: x * 2)))
        assert run("twice(21)", env=env).data == 42.0

    def test_host_function_type_error_reported(self):
        """Test host function type error reported."""
        env = Environment()
        env.define("one", host_val(HostFunction("one", lambda x: x)))
        with pytest.raises(ValueTypeError):
            run("one(1, 2)", env=env)

    def test_interpreter_runs_parsed_program(self):
        """Test interpreter runs parsed program."""
        from minilang import lex, parse_program
        env = create_default_environment()
        program = parse_program(lex("let z = 2; z * z"))
        assert Interpreter(env).run_program(program).data == 4.0
        assert env.get("z").data == 2.0


class TestMemberAssignment:
    """Test assigning fields on records."""

    def test_set_field_on_parsed_object(self):
        """Test set field on parsed object."""
        assert value_of('let cfg = JSON.parse("{}"); cfg.debug = true; cfg.debug') is True

    def test_nested_field(self):
        """Test nested field."""
        source = """let o = JSON.parse('{"a": {}}'); o.a.b = 5; JSON.stringify(o)"""
        assert value_of(source) == '{"a":{"b":5}}'

    def test_replaces_existing_field(self):
        """Test replaces existing field."""
        assert value_of("let d = new Date(0); d.year = 2000; d.year") == 2000.0

    def test_evaluates_to_assigned_value(self):
        """Test evaluates to assigned value."""
        assert value_of('let o = JSON.parse("{}"); (o.x = 3) + 1') == 4.0

    def test_stored_array_keeps_identity(self):
        """Test stored array keeps identity."""
        source = """
        let o = JSON.parse("{}");
        let xs = [1];
        o.items = xs;
        xs.push(2);
        o.items.length
        """
        assert value_of(source) == 2.0

    def test_stored_function_is_callable(self):
        """Test stored function is callable."""
        source = 'let o = JSON.parse("{}"); o.twice = fn(x) { return x * 2; }; o.twice(4)'
        assert value_of(source) == 8.0

    def test_functions_skipped_by_stringify(self):
        """Test functions skipped by stringify."""
        source = 'let o = JSON.parse("{}"); o.f = fn() {}; o.n = 1; JSON.stringify(o)'
        assert value_of(source) == '{"n":1}'

    def test_does_not_bind_dotted_name(self):
        """Test does not bind dotted name."""
        env = create_default_environment()
        run('let cfg = JSON.parse("{}"); cfg.debug = true;', env=env)
        assert not env.has("cfg.debug")
        assert env.get("cfg.debug").data is True

    def test_namespace_is_read_only(self):
        """Test namespace is read only."""
        with pytest.raises(ValueTypeError):
            run("Math.PI = 3")

    def test_non_object_target(self):
        """Test non object target."""
        with pytest.raises(ValueTypeError):
            run("let n = 1; n.x = 2")

    def test_undefined_object(self):
        """Test undefined object."""
        with pytest.raises(UndefinedBindingError):
            run("missing.x = 1")


class TestCallDepth:
    """Test deep recursion and the call depth limit."""

    COUNTDOWN = "fn down(n) { if (n == 0) { return 0; } return down(n - 1); } down(%d)"

    @pytest.mark.parametrize("depth", [140, 300, 600])
    def test_recursion_within_limit(self, depth):
        """Test recursion within limit."""
        result = execute(self.COUNTDOWN % depth)
        assert result.success
        assert result.value.data == 0.0

    def test_recursive_factorial_in_expression(self):
        """Test recursive factorial in expression."""
        source = "fn fact(n) { if (n < 2) { return 1; } return n * fact(n - 1); } fact(400) > 0"
        assert value_of(source) is True

    def test_unbounded_recursion_raises(self):
        """Test unbounded recursion raises."""
        with pytest.raises(CallDepthError) as exc_info:
            run("fn loop(n) { return loop(n + 1); } loop(0)")
        diag = exc_info.value.diagnostic
        assert diag.code == "E204"
        assert diag.span is not None

    def test_execute_reports_depth_error(self):
        """Test execute reports depth error."""
        result = execute(self.COUNTDOWN % 5000)
        assert not result.success
        assert result.error_kind == "CallDepthError"
        assert result.diagnostic.code == "E204"

    def test_custom_limit(self, monkeypatch):
        """Test custom limit."""
        monkeypatch.setattr(Interpreter, "max_call_depth", 50)
        assert value_of(self.COUNTDOWN % 40) == 0.0
        with pytest.raises(CallDepthError):
            run(self.COUNTDOWN % 60)

    def test_depth_resets_after_error(self):
        """Test depth resets after error."""
        from minilang import lex, parse_program
        interpreter = Interpreter(create_default_environment())
        with pytest.raises(CallDepthError):
            interpreter.run_program(parse_program(lex("fn loop() { return loop(); } loop()")))
        value = interpreter.run_program(parse_program(lex(self.COUNTDOWN % 300)))
        assert value.data == 0.0

    def test_recursion_limit_restored(self):
        """Test recursion limit restored."""
        before = sys.getrecursionlimit()
        run(self.COUNTDOWN % 10)
        execute("fn loop() { return loop(); } loop()")
        assert sys.getrecursionlimit() == before

    def test_guard_converts_recursion_error(self):
        """Test guard converts recursion error."""
        with pytest.raises(CallDepthError):
            with recursion_guard(10):
                raise RecursionError("maximum recursion depth exceeded")


class TestFormatValue:
    """Test display formatting of values."""

    @pytest.mark.parametrize("source, expected", [
        ("3", "3"),
        ("2.5", "2.5"),
        ('"text"', "text"),
        ("true", "true"),
        ("let u; u", "undefined"),
        ('[1, "a", [false]]', '[1, "a", [false]]'),
        ("1 / 0", "Infinity"),
        ("0 / 0", "NaN"),
    ])
    def test_display(self, source, expected):
        """Test display of each value kind."""
        assert format_value(run(source)) == expected

    def test_function_display(self):
        """Test function display."""
        assert format_value(run("fn add(a, b) {}")) == "<fn add(a, b)>"

    def test_builtin_display(self):
        """Test builtin display."""
        assert format_value(run("print")) == "<builtin print>"
