"""
Prompt construction and response parsing shared by all providers.

Prompts ask the model for a single JSON object. Models tend to wrap that
object in markdown fences, prepend chatter, or emit a reasoning block
first; :func:`parse_json_response` strips all of that before validating
the payload into one of the models from :mod:`graft.provider.models`.
"""

from __future__ import annotations

import json
import re
from textwrap import dedent
from typing import Any, Callable, List, TypeVar

from graft.diff.models import Commit, FileChange
from graft.provider.base import OrderRequest, ProviderResponseError, ReviewRequest, SummarizeRequest
from graft.provider.models import SchemaError

T = TypeVar("T")

# Larger diffs are truncated before being sent to the model
MAX_DIFF_CHARS = 50000

_THINKING_PATTERNS = [
    r"<think>.*?</think>",
    r"<thinking>.*?</thinking>",
    r"<thought>.*?</thought>",
    r"<reasoning>.*?</reasoning>",
]


def strip_thinking_tags(text: str) -> str:
    """Remove reasoning blocks such as ``<think>...</think>`` from a reply.

    >>> strip_thinking_tags("<think>reasoning...</think>Answer")
    'Answer'
    """
    result = text
    for pattern in _THINKING_PATTERNS:
        result = re.sub(pattern, "", result, flags=re.DOTALL | re.IGNORECASE)
    return result.strip()


def _format_files(files: List[FileChange]) -> str:
    lines = []
    for f in files:
        status = f.status.value
        if f.old_path:
            status = f"{status} from {f.old_path}"
        lines.append(f"- {f.path} ({status}: +{f.additions}/-{f.deletions})")
    return "\n".join(lines)


def _format_commits(commits: List[Commit]) -> str:
    parts = []
    for c in commits:
        block = f"### {c.short_hash} by {c.author}\n{c.subject}"
        if c.body:
            block += f"\n{c.body}"
        parts.append(block)
    return "\n\n".join(parts)


def _truncate_diff(diff: str) -> str:
    if len(diff) > MAX_DIFF_CHARS:
        return diff[:MAX_DIFF_CHARS] + "\n\n... [diff truncated for length] ..."
    return diff


def build_summary_prompt(request: SummarizeRequest) -> str:
    """Construct the prompt asking for a structured change summary."""
    sections = [
        "You are an expert code reviewer analyzing a pull request. Review the following "
        "diff and commit messages to provide a concise, actionable summary."
    ]
    if request.commits:
        sections.append("## Commits\n" + _format_commits(request.commits))
    sections.append("## Changed Files\n" + _format_files(request.files))
    if request.full_diff:
        sections.append("## Diff Content\n```diff\n" + _truncate_diff(request.full_diff) + "\n```")
    if request.options.focus:
        sections.append(f"Focus your analysis on: {request.options.focus}")

    sections.append(
        dedent(
            """
            ---

            Respond with a JSON object in this exact format:
            {
              "overview": "A 1-2 sentence summary of what this change accomplishes",
              "key_changes": ["First key change", "Second key change"],
              "concerns": ["Potential issues, risks, or areas needing careful review"],
              "file_groups": [
                {
                  "name": "Group name (e.g. 'API Layer')",
                  "description": "What this group of changes does",
                  "files": ["path/to/file1", "path/to/file2"]
                }
              ]
            }

            Focus on:
            - The "why" behind the changes, not just the "what"
            - Architectural implications
            - Potential side effects or risks
            - Test coverage considerations

            Return ONLY valid JSON, no additional text.
            """
        ).strip()
    )
    return "\n\n".join(sections)


def build_order_prompt(request: OrderRequest) -> str:
    """Construct the prompt asking for a grouped review order."""
    sections = [
        dedent(
            """
            You are an expert code reviewer determining the optimal order to review files in a pull request.

            Your goals:
            1. Identify related changes that form logical features or units of work
            2. Group files by these features so reviewers understand one feature completely before the next
            3. Order files within each group to maximize understanding (entry points -> business logic -> adapters -> tests)
            """
        ).strip()
    ]
    if request.repo_context:
        sections.append("## Repository Context\n" + request.repo_context.rstrip())
    sections.append("## Changed Files\n" + _format_files(request.files))
    if request.commits:
        sections.append("## Brief Context from Commits\n" + "\n".join(f"- {c.subject}" for c in request.commits))

    sections.append(
        dedent(
            """
            ---

            Respond with a JSON object in this exact format:
            {
              "groups": [
                {"name": "Short feature name (2-4 words)", "description": "What this feature accomplishes", "priority": 1}
              ],
              "files": [
                {
                  "path": "path/to/file",
                  "category": "entry_point|business_logic|adapter|model|config|test|docs|routing|component|other",
                  "priority": 1,
                  "description": "Brief description of what this file does",
                  "group": "Short feature name (must match a group name)"
                }
              ],
              "reasoning": "Brief explanation of the grouping and ordering strategy"
            }

            Grouping:
            - Group files that implement one feature together (handler + service + model + test)
            - Use action-oriented names like "User Authentication", not "auth changes"
            - Put foundational changes first, features that build on them later
            - Collect unrelated small changes into a "Miscellaneous" group

            Ordering within groups:
            - Backend: entry points, routes, business logic, models, adapters, tests
            - Frontend: routing, containers, presentational components, types, services, tests
            - Mixed projects: backend changes before frontend changes
            """
        ).strip()
    )
    if request.tests_first:
        sections.append(
            "IMPORTANT: The user requested tests-first ordering. Within each group, place test "
            "files at the BEGINNING so the reviewer understands intent before implementation."
        )
    sections.append(
        dedent(
            """
            Keep descriptions under 15 words. Group names should be 2-4 words.
            Priority 1 = review first, higher numbers = later.
            Every file MUST have a group assigned.
            Return ONLY valid JSON, no additional text.
            """
        ).strip()
    )
    return "\n\n".join(sections)


def build_review_prompt(request: ReviewRequest) -> str:
    """Construct the prompt asking for a detailed markdown review."""
    sections = [
        "You are a senior engineer performing a thorough code review. Point out bugs, risky "
        "changes, missing tests and unclear code. Be specific and reference file paths."
    ]
    if request.commits:
        sections.append("## Commits\n" + _format_commits(request.commits))
    sections.append("## Changed Files\n" + _format_files(request.files))
    if request.full_diff:
        sections.append("## Diff Content\n```diff\n" + _truncate_diff(request.full_diff) + "\n```")
    sections.append("Respond in markdown. Start with the most important findings.")
    return "\n\n".join(sections)


def extract_json(text: str) -> str:
    """Extract the JSON document from a reply that may contain markdown."""
    start = text.find("```json")
    if start != -1:
        start += len("```json")
        end = text.find("```", start)
        if end != -1:
            return text[start:end].strip()

    start = text.find("```")
    if start != -1:
        start += 3
        newline = text.find("\n", start)
        if newline != -1:
            start = newline + 1
        end = text.find("```", start)
        if end != -1:
            return text[start:end].strip()

    match = re.search(r"[{\[]", text)
    if match:
        return text[match.start():].strip()
    return text.strip()


def parse_json_response(text: str, factory: Callable[[Any], T]) -> T:
    """Parse a provider reply and validate it with ``factory``.

    Raises
    ------
    ProviderResponseError
        If the reply holds no valid JSON or the JSON has the wrong shape.
        The exception keeps the raw reply in ``raw_text``.
    """
    cleaned = strip_thinking_tags(text)
    if not cleaned:
        raise ProviderResponseError("empty response from provider", raw_text=text)
    candidate = extract_json(cleaned)
    try:
        data = json.loads(candidate)
    except json.JSONDecodeError:
        # Trailing chatter after the object; decode only the first document
        try:
            data, _ = json.JSONDecoder().raw_decode(candidate)
        except (json.JSONDecodeError, RecursionError) as exc:
            raise ProviderResponseError(f"invalid JSON in provider response: {exc}", raw_text=text) from exc
    except RecursionError as exc:
        raise ProviderResponseError("provider response is nested too deeply", raw_text=text) from exc
    try:
        return factory(data)
    except SchemaError as exc:
        raise ProviderResponseError(f"unexpected response structure: {exc}", raw_text=text) from exc
