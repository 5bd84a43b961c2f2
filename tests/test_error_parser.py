# FILE: tests/test_error_parser.py
"""
Tests for compiler / linter / runtime error parsing and file context.
"""

import pytest


PY_TRACEBACK = """Traceback (most recent call last):
  File "app/main.py", line 10, in <module>
    run()
  File "app/service.py", line 3, in run
    return cfg["key"]
KeyError: 'key'"""

JS_STACK = """TypeError: handler is not a function
    at dispatch (src/routes.js:14:7)
    at next (node_modules/express/lib/router.js:1:2)"""


@pytest.fixture
def parser():
    from codeplanner.analysis.error_parser import ErrorParser
    return ErrorParser()


class TestCompiler:

    def test_typescript_error(self, parser):
        errors = parser.parse_all(
            "src/app.ts(12,5): error TS2339: Property 'name' does not exist on type 'User'."
        )

        assert len(errors) == 1
        err = errors[0]
        assert err.type == "compiler"
        assert err.file_path == "src/app.ts"
        assert err.line_number == 12
        assert err.column_number == 5
        assert err.error_code == "TS2339"
        assert err.severity == "error"
        assert parser.error_context(err).category == "Type Error"

    def test_multiple_typescript_errors(self, parser):
        output = (
            "src/a.ts(1,1): error TS2307: Cannot find module 'lodash'.\n"
            "src/b.ts(2,3): warning TS6133: 'x' is declared but never used.\n"
        )
        errors = parser.parse_all(output)

        assert [e.file_path for e in errors] == ["src/a.ts", "src/b.ts"]
        assert parser.error_context(errors[0]).category == "Import Error"

    def test_generic_compiler_format(self, parser):
        errors = parser.parse_all("src/main.c(3,1): error: expected ';' before '}'", "compiler")

        assert errors[0].line_number == 3
        assert errors[0].error_code is None
        assert parser.error_context(errors[0]).category == "Syntax Error"


class TestLinter:

    def test_eslint_line(self, parser):
        errors = parser.parse_all("src/app.ts:4:10: error Unexpected var, use let or const instead (no-var)")

        assert len(errors) == 1
        err = errors[0]
        assert err.type == "linter"
        assert err.rule == "no-var"
        assert err.location == "src/app.ts:4:10"
        ctx = parser.error_context(err)
        assert ctx.category == "Linting Error"
        assert ctx.severity == "warning"

    def test_forced_linter_on_unparseable_input(self, parser):
        assert parser.parse_error("nothing lint-like here", "linter") is None


class TestRuntime:

    def test_python_traceback_innermost_first(self, parser):
        err = parser.parse_error(PY_TRACEBACK)

        assert err.type == "runtime"
        assert err.message == "KeyError: 'key'"
        assert err.file_path == "app/service.py"
        assert err.line_number == 3
        assert [f.function_name for f in err.stack_trace] == ["run", "<module>"]

    def test_js_stack(self, parser):
        err = parser.parse_error(JS_STACK)

        assert err.message == "TypeError: handler is not a function"
        assert err.file_path == "src/routes.js"
        assert err.line_number == 14
        assert err.column_number == 7
        assert err.stack_trace[0].function_name == "dispatch"
        assert len(err.stack_trace) == 2
        assert parser.error_context(err).category == "Type Error"

    def test_null_access_category(self, parser):
        err = parser.parse_error("TypeError: Cannot read properties of undefined (reading 'id')", "runtime")
        assert parser.error_context(err).category == "Null/Undefined Error"

    def test_runtime_without_frames(self, parser):
        err = parser.parse_error("Segfault somewhere", "runtime")

        assert err.message == "Segfault somewhere"
        assert err.file_path is None
        assert err.location == "Unknown location"


class TestGeneric:

    def test_file_line_message(self, parser):
        err = parser.parse_error("src/app.py:12: something broke")

        assert err.file_path == "src/app.py"
        assert err.line_number == 12
        assert err.message == "something broke"

    def test_message_with_trailing_location(self, parser):
        err = parser.parse_generic_error("Boom happened (lib/x.py:9)")

        assert err.message == "Boom happened"
        assert err.file_path == "lib/x.py"
        assert err.line_number == 9

    def test_plain_message(self, parser):
        err = parser.parse_error("everything is on fire")

        assert err.message == "everything is on fire"
        assert err.file_path is None
        assert err.search_text() == "everything is on fire"

    def test_empty_input(self, parser):
        assert parser.parse_error("") is None
        assert parser.parse_error("   \n ") is None

    def test_group_errors(self, parser):
        errors = parser.parse_all(
            "src/a.ts(1,1): error TS1: one\n"
            "src/a.ts(2,1): error TS2: two\n"
            "src/b.ts(3,1): error TS3: three\n"
        )
        groups = parser.group_errors(errors)

        assert {k: len(v) for k, v in groups.items()} == {"compiler:src/a.ts": 2, "compiler:src/b.ts": 1}


class TestFileContext:

    @pytest.fixture
    def project(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "app.py").write_text("\n".join(f"line{i}" for i in range(1, 41)))
        (tmp_path.parent / "secret.txt").write_text("top secret")
        return tmp_path

    def test_window_and_marker(self, project):
        from codeplanner.analysis.error_parser import read_file_context

        text = read_file_context(str(project), "src/app.py", 20)
        lines = text.splitlines()

        assert lines[0] == "  5: line5"
        assert lines[-1] == "  35: line35"
        assert "→ 20: line20" in lines

    def test_window_clamped_at_file_start(self, project):
        from codeplanner.analysis.error_parser import read_file_context

        lines = read_file_context(str(project), "src/app.py", 2).splitlines()

        assert lines[0] == "  1: line1"
        assert lines[1] == "→ 2: line2"

    def test_missing_file(self, project):
        from codeplanner.analysis.error_parser import read_file_context
        assert read_file_context(str(project), "src/nope.py", 1) is None

    def test_outside_project_not_read(self, project):
        from codeplanner.analysis.error_parser import read_file_context
        assert read_file_context(str(project), "../secret.txt", 1) is None
