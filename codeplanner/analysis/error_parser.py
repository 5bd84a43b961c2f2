# FILE: codeplanner/analysis/error_parser.py
"""
Error Parser — turns pasted compiler, linter and runtime output into
structured ParsedError records for the analyze-error command.

Supported formats:
    compiler  TypeScript     src/app.ts(12,5): error TS2339: Property 'x' does not exist
              generic        src/app.c(3,1): error: expected ';'
    linter    ESLint         src/app.ts:4:10: error Unexpected var (no-var)
    runtime   Python         Traceback (most recent call last): ... File "x.py", line 3
              JavaScript     TypeError: x is not a function\n    at foo (src/a.js:1:2)
    fallback  generic        src/app.py:12: something broke
"""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

FILE_CONTEXT_LINES = 15


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass
class StackFrame:
    file_path: str
    line_number: int
    column_number: Optional[int] = None
    function_name: Optional[str] = None


@dataclass
class ParsedError:
    type: str  # "compiler", "linter", "runtime"
    message: str
    raw_error: str
    file_path: Optional[str] = None
    line_number: Optional[int] = None
    column_number: Optional[int] = None
    error_code: Optional[str] = None
    severity: Optional[str] = None
    rule: Optional[str] = None
    stack_trace: List[StackFrame] = field(default_factory=list)

    @property
    def location(self) -> str:
        if self.file_path and self.line_number:
            loc = f"{self.file_path}:{self.line_number}"
            if self.column_number:
                loc += f":{self.column_number}"
            return loc
        return self.file_path or "Unknown location"

    def search_text(self) -> str:
        """Text embedded to find related code."""
        return f"{self.message} {self.file_path or ''}".strip()


@dataclass
class ErrorContext:
    category: str
    severity: str
    location: str
    suggestion: str


# =============================================================================
# PATTERNS
# =============================================================================

_TS_ERROR_RE = re.compile(r"(.+?)\((\d+),(\d+)\):\s+(error|warning)\s+TS(\d+):\s+(.+)")
_GENERIC_COMPILER_RE = re.compile(r"(.+?)\((\d+),(\d+)\):\s+(error|warning):\s+(.+)")
_ESLINT_RE = re.compile(r"(.+?):(\d+):(\d+):\s+(error|warning|info)\s+(.+?)\s+\((.+?)\)")
_LINTER_HINT_RE = re.compile(r":\d+:\d+:\s+(error|warning|info)")

_JS_FRAME_RES = [
    # at functionName (file:line:col)
    re.compile(r"at\s+(.+?)\s+\((.+?):(\d+):(\d+)\)"),
    # at file:line:col
    re.compile(r"at\s+(.+?):(\d+):(\d+)"),
]
_PY_FRAME_RE = re.compile(r'File "(.+?)", line (\d+)(?:, in (.+))?')
_PY_TRACEBACK_HEADER = "Traceback (most recent call last)"

_GENERIC_RES = [
    # Error in file.py:123: message
    (re.compile(r"Error in (.+?):(\d+):\s*(.+)"), ("file", "line", "message")),
    # file.py:123: message
    (re.compile(r"(\S.*?):(\d+):\s*(.+)"), ("file", "line", "message")),
    # message (file.py:123)
    (re.compile(r"(.+?)\s+\((.+?):(\d+)\)"), ("message", "file", "line")),
]


class ErrorParser:
    """Stateless parser. One instance can be shared across jobs."""

    # =========================================================================
    # COMPILER
    # =========================================================================

    def parse_typescript_errors(self, output: str) -> List[ParsedError]:
        errors = []
        for m in _TS_ERROR_RE.finditer(output):
            file_path, line, col, severity, code, message = m.groups()
            errors.append(ParsedError(
                type="compiler",
                message=message.strip(),
                raw_error=m.group(0),
                file_path=file_path.strip(),
                line_number=int(line),
                column_number=int(col),
                error_code=f"TS{code}",
                severity=severity,
            ))
        if errors:
            return errors

        for m in _GENERIC_COMPILER_RE.finditer(output):
            file_path, line, col, severity, message = m.groups()
            errors.append(ParsedError(
                type="compiler",
                message=message.strip(),
                raw_error=m.group(0),
                file_path=file_path.strip(),
                line_number=int(line),
                column_number=int(col),
                severity=severity,
            ))
        return errors

    # =========================================================================
    # LINTER
    # =========================================================================

    def parse_linter_errors(self, output: str) -> List[ParsedError]:
        errors = []
        for m in _ESLINT_RE.finditer(output):
            file_path, line, col, level, message, rule = m.groups()
            errors.append(ParsedError(
                type="linter",
                message=message.strip(),
                raw_error=m.group(0),
                file_path=file_path.strip(),
                line_number=int(line),
                column_number=int(col),
                severity=level,
                rule=rule,
            ))
        return errors

    # =========================================================================
    # RUNTIME
    # =========================================================================

    def parse_runtime_error(self, trace: str) -> Optional[ParsedError]:
        trace = trace.strip()
        if not trace:
            return None
        if _PY_TRACEBACK_HEADER in trace:
            return self._parse_python_traceback(trace)
        return self._parse_js_stack(trace)

    def _parse_js_stack(self, trace: str) -> ParsedError:
        lines = trace.splitlines()
        frames: List[StackFrame] = []
        for line in lines[1:]:
            line = line.strip()
            if not line:
                continue
            m = _JS_FRAME_RES[0].search(line)
            if m:
                func, path, ln, col = m.groups()
                frames.append(StackFrame(path, int(ln), int(col), func))
                continue
            m = _JS_FRAME_RES[1].search(line)
            if m:
                path, ln, col = m.groups()
                frames.append(StackFrame(path, int(ln), int(col)))

        top = frames[0] if frames else None
        return ParsedError(
            type="runtime",
            message=(lines[0].strip() if lines else "") or "Unknown runtime error",
            raw_error=trace,
            file_path=top.file_path if top else None,
            line_number=top.line_number if top else None,
            column_number=top.column_number if top else None,
            stack_trace=frames,
        )

    def _parse_python_traceback(self, trace: str) -> ParsedError:
        frames: List[StackFrame] = []
        message = ""
        for line in trace.splitlines():
            m = _PY_FRAME_RE.search(line)
            if m:
                path, ln, func = m.groups()
                frames.append(StackFrame(path, int(ln), None, func.strip() if func else None))
                continue
            # Exception line is the last unindented line that is not a header
            if line and not line[0].isspace() and not line.startswith(_PY_TRACEBACK_HEADER):
                if not line.startswith(("During handling", "The above exception")):
                    message = line.strip()

        # Python prints the innermost frame last
        frames.reverse()
        top = frames[0] if frames else None
        return ParsedError(
            type="runtime",
            message=message or "Unknown runtime error",
            raw_error=trace,
            file_path=top.file_path if top else None,
            line_number=top.line_number if top else None,
            stack_trace=frames,
        )

    # =========================================================================
    # GENERIC / DISPATCH
    # =========================================================================

    def parse_generic_error(self, message: str) -> ParsedError:
        message = message.strip()
        first_line = message.splitlines()[0] if message else message
        for pattern, roles in _GENERIC_RES:
            m = pattern.search(first_line)
            if not m:
                continue
            parts = dict(zip(roles, m.groups()))
            return ParsedError(
                type="runtime",
                message=parts["message"].strip(),
                raw_error=message,
                file_path=parts["file"].strip(),
                line_number=int(parts["line"]),
            )
        return ParsedError(type="runtime", message=message, raw_error=message)

    def parse_all(self, error_input: str, error_type: Optional[str] = None) -> List[ParsedError]:
        """
        Parse every error in the input.

        error_type forces a format ("compiler", "linter", "runtime");
        None auto-detects.
        """
        text = (error_input or "").strip()
        if not text:
            return []

        if error_type == "compiler":
            return self.parse_typescript_errors(text)
        if error_type == "linter":
            return self.parse_linter_errors(text)
        if error_type == "runtime":
            parsed = self.parse_runtime_error(text)
            return [parsed] if parsed else []

        if "error TS" in text or "warning TS" in text:
            return self.parse_typescript_errors(text)
        if "eslint" in text.lower() or _LINTER_HINT_RE.search(text):
            linted = self.parse_linter_errors(text)
            if linted:
                return linted
        if _PY_TRACEBACK_HEADER in text or ("at " in text and ":" in text and _JS_FRAME_RES[1].search(text)):
            parsed = self.parse_runtime_error(text)
            return [parsed] if parsed else []
        return [self.parse_generic_error(text)]

    def parse_error(self, error_input: str, error_type: Optional[str] = None) -> Optional[ParsedError]:
        """First parsed error, or None when nothing could be parsed."""
        errors = self.parse_all(error_input, error_type)
        return errors[0] if errors else None

    # =========================================================================
    # CLASSIFICATION
    # =========================================================================

    def error_context(self, error: ParsedError) -> ErrorContext:
        category = "Unknown"
        severity = "error"
        suggestion = "Review the error message and check the code."
        msg = error.message

        if error.type == "compiler":
            category = "Compilation Error"
            if "Property" in msg and "does not exist" in msg:
                category = "Type Error"
                suggestion = "Check if the property exists on the object type or if you need to add it."
            elif "Cannot find module" in msg:
                category = "Import Error"
                suggestion = "Check if the module path is correct and the module is installed."
            elif "Expected" in msg or "expected" in msg:
                category = "Syntax Error"
                suggestion = "Check the syntax around the indicated location."
        elif error.type == "runtime":
            category = "Runtime Error"
            if "Cannot read propert" in msg or "'NoneType' object" in msg:
                category = "Null/Undefined Error"
                suggestion = "Check if the object is null or undefined before accessing its properties."
            elif "is not a function" in msg or "object is not callable" in msg:
                category = "Type Error"
                suggestion = "Check if the variable is actually a function or if there's a typo in the function name."
            elif msg.startswith(("ModuleNotFoundError", "ImportError")):
                category = "Import Error"
                suggestion = "Check if the module path is correct and the module is installed."
        elif error.type == "linter":
            category = "Linting Error"
            severity = "warning"
            suggestion = "Follow the linting rule or configure it if needed."

        return ErrorContext(category=category, severity=severity, location=error.location, suggestion=suggestion)

    def group_errors(self, errors: List[ParsedError]) -> Dict[str, List[ParsedError]]:
        groups: Dict[str, List[ParsedError]] = {}
        for error in errors:
            groups.setdefault(f"{error.type}:{error.file_path or 'unknown'}", []).append(error)
        return groups


# =============================================================================
# FILE CONTEXT
# =============================================================================

def _resolve_in_project(project_path: str, file_path: str) -> Optional[str]:
    root = os.path.realpath(project_path)
    candidate = file_path if os.path.isabs(file_path) else os.path.join(root, file_path)
    candidate = os.path.realpath(candidate)
    if candidate != root and not candidate.startswith(root + os.sep):
        return None
    return candidate if os.path.isfile(candidate) else None


def read_file_context(
    project_path: str,
    file_path: str,
    line_number: int,
    context_lines: int = FILE_CONTEXT_LINES,
) -> Optional[str]:
    """
    Numbered source lines around line_number, error line marked with "→".

    Only files inside project_path are read. Returns None when the file
    cannot be found or read.
    """
    path = _resolve_in_project(project_path, file_path)
    if path is None:
        return None
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            lines = f.read().splitlines()
    except OSError as e:
        logger.warning("[error_parser] Could not read %s: %s", path, e)
        return None

    start = max(0, line_number - context_lines - 1)
    end = min(len(lines), line_number + context_lines)
    out = []
    for idx in range(start, end):
        num = idx + 1
        marker = "→ " if num == line_number else "  "
        out.append(f"{marker}{num}: {lines[idx]}")
    return "\n".join(out)
