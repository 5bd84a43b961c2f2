# FILE: codeplanner/analysis/__init__.py
from codeplanner.analysis.error_parser import (
    ErrorContext,
    ErrorParser,
    ParsedError,
    StackFrame,
    read_file_context,
)

__all__ = ["ErrorContext", "ErrorParser", "ParsedError", "StackFrame", "read_file_context"]
