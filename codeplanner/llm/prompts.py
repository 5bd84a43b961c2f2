# FILE: codeplanner/llm/prompts.py
"""
Prompt builders for plan generation and error analysis.
"""

import os
from typing import List, Optional, Sequence

from codeplanner.analysis.error_parser import ErrorContext, ParsedError
from codeplanner.jobs.schemas import Chunk

_FENCE_LANG = {
    ".py": "python",
    ".ts": "typescript",
    ".tsx": "tsx",
    ".js": "javascript",
    ".jsx": "jsx",
}


def _fence_lang(path: Optional[str]) -> str:
    if not path:
        return ""
    return _FENCE_LANG.get(os.path.splitext(path)[1].lower(), "")


def _relevance(chunk: Chunk) -> Optional[str]:
    similarity = getattr(chunk, "similarity", None)
    if similarity is None:
        return None
    return f"**Relevance:** {similarity * 100:.1f}%"


# =============================================================================
# PLANNING
# =============================================================================

PLAN_SYSTEM_PROMPT = """You are an expert software architect and senior developer.

Your role is to generate detailed, practical implementation plans that developers can follow to build features efficiently and correctly.

Key principles:
- Always consider the existing codebase context
- Provide specific, actionable steps
- Include concrete code examples
- Consider edge cases and error handling
- Suggest testing approaches
- Follow established patterns and conventions

Generate plans that are comprehensive yet practical, with clear steps that can be implemented incrementally."""


def build_context(chunks: Sequence[Chunk]) -> str:
    if not chunks:
        return "No relevant code context found."

    sections = []
    for i, chunk in enumerate(chunks, 1):
        lines = [
            f"## Code Context {i}",
            f"**File:** `{chunk.source_path}`",
            f"**Type:** {chunk.kind.value}",
        ]
        if chunk.name:
            lines.append(f"**Name:** `{chunk.name}`")
        relevance = _relevance(chunk)
        if relevance:
            lines.append(relevance)
        lines.append("")
        lines.append(f"```{_fence_lang(chunk.source_path)}")
        lines.append(chunk.content)
        lines.append("```")
        sections.append("\n".join(lines))
    return "\n\n".join(sections)


def build_plan_prompt(query: str, chunks: Sequence[Chunk]) -> str:
    return f"""# Implementation Planning Request

## User Query
{query}

## Relevant Codebase Context
{build_context(chunks)}

## Task
Generate a comprehensive, step-by-step implementation plan that includes:

1. **High-level Overview**: Brief summary of what needs to be implemented
2. **Architecture Decisions**: Key design choices and rationale
3. **Implementation Steps**: Detailed, actionable steps in logical order
4. **File Changes**: Specific files to create, modify, or delete
5. **Code Examples**: Concrete code snippets where helpful
6. **Testing Strategy**: How to verify the implementation works
7. **Potential Challenges**: Anticipated difficulties and solutions

Use Markdown with headers and code blocks, number all steps and name
specific files and functions. Build upon the existing patterns shown above."""


# =============================================================================
# ERROR ANALYSIS
# =============================================================================

DEBUG_SYSTEM_PROMPT = """You are an expert debugging specialist.

Your role is to analyze errors and provide clear, actionable debugging plans that help developers quickly identify and resolve issues.

Key principles:
- Always identify the root cause, not just symptoms
- Provide specific, implementable solutions
- Include code examples with before/after comparisons
- Consider the broader codebase context
- Suggest prevention strategies"""


def _format_stack(error: ParsedError) -> str:
    frames = [
        f"  at {f.function_name or '<anonymous>'} ({f.file_path}:{f.line_number}"
        + (f":{f.column_number}" if f.column_number else "")
        + ")"
        for f in error.stack_trace
    ]
    return "\n".join(frames)


def build_debug_prompt(
    error: ParsedError,
    context: ErrorContext,
    related: Sequence[Chunk],
    file_context: Optional[str],
) -> str:
    details: List[str] = [
        f"- **Type:** {error.type}",
        f"- **Category:** {context.category}",
        f"- **Message:** {error.message}",
        f"- **Location:** {context.location}",
    ]
    if error.error_code:
        details.append(f"- **Error Code:** {error.error_code}")
    if error.rule:
        details.append(f"- **Rule:** {error.rule}")

    parts = [
        "# Error Analysis and Debugging Request",
        "",
        "## Error Details",
        "\n".join(details),
    ]
    if error.stack_trace:
        parts += ["", "## Stack Trace", _format_stack(error)]

    parts += [
        "",
        "## File Context",
        f"```{_fence_lang(error.file_path)}",
        file_context or "No file context available.",
        "```",
        "",
        "## Related Code",
        build_context(related),
        "",
        "## Task",
        "Analyze this error and provide a debugging plan that includes:",
        "",
        "1. **Root Cause Analysis**: What is causing this error?",
        "2. **Immediate Fix**: Step-by-step instructions to resolve the error",
        "3. **Code Changes**: Specific before/after code examples",
        "4. **Prevention**: How to avoid similar errors in the future",
        "5. **Testing**: How to verify the fix works",
        "",
        f"Hint: {context.suggestion}",
    ]
    return "\n".join(parts)
