"""Input parser for free-form TODO lists.

Extracts Task objects from raw text using a prioritized catalog of line
patterns. Handles markdown bullets, numbered lists, checkboxes and code
annotations with lenient parsing.
"""

import hashlib
import re
from dataclasses import dataclass

from autofinish.errors import InvalidInput
from autofinish.matchers import KeywordTable, first_matching_key
from autofinish.models import Task


@dataclass(frozen=True)
class LinePattern:
    """A line pattern from the catalog.

    Attributes:
        name: Pattern name recorded on the task
        priority: Lower runs first and sorts first
        regex: Compiled regex with a ``content`` group
        completed: Tasks from this pattern start out completed
    """

    name: str
    priority: int
    regex: re.Pattern[str]
    completed: bool = False


_LIST_PREFIX = r"(?:[-*•+]\s+|\d+[.)]\s+)"
_COMMENT_PREFIX = r"(?:[-*•+]\s+|\d+[.)]\s+|#+\s*|//\s*|/\*+\s*|<!--\s*)"
_CHECKBOX = r"\[[ xX]\]"
_CONTENT = r"(?P<content>.+?)\s*$"
# Annotations start a line (optionally behind a list or comment prefix) or follow a comment marker
_ANNOTATION_PREFIX = rf"(?:^\s*{_COMMENT_PREFIX}?|(?:#+|//|/\*+|<!--)\s*)"

PATTERNS: tuple[LinePattern, ...] = (
    LinePattern(
        "todo",
        1,
        re.compile(
            rf"^\s*{_COMMENT_PREFIX}?(?:(?:TODO|TASK)\b\s*[:\-]?|(?i:todo|task)\s*:)\s*{_CONTENT}"
        ),
    ),
    LinePattern("bullet", 2, re.compile(rf"^\s*[-*•+]\s+(?!{_CHECKBOX}){_CONTENT}")),
    LinePattern("numbered", 3, re.compile(rf"^\s*\d+[.)]\s+(?!{_CHECKBOX}){_CONTENT}")),
    LinePattern("unchecked", 4, re.compile(rf"^\s*{_LIST_PREFIX}?\[ \]\s*{_CONTENT}")),
    LinePattern(
        "checked", 5, re.compile(rf"^\s*{_LIST_PREFIX}?\[[xX]\]\s*{_CONTENT}"), completed=True
    ),
    LinePattern(
        "fixme",
        6,
        re.compile(
            rf"{_ANNOTATION_PREFIX}(?:FIXME\b|(?i:fix[ -]?later)\b)\s*[:\-]?\s*{_CONTENT}"
        ),
    ),
    LinePattern(
        "note",
        7,
        re.compile(rf"{_ANNOTATION_PREFIX}(?:NOTE\b\s*[:\-]?|(?i:note)\s*:)\s*{_CONTENT}"),
    ),
    LinePattern(
        "hack", 8, re.compile(rf"{_ANNOTATION_PREFIX}(?:HACK|XXX)\b\s*[:\-]?\s*{_CONTENT}")
    ),
)

CATEGORY_KEYWORDS: KeywordTable = {
    "ui": (
        "ui",
        "ux",
        "frontend",
        "front-end",
        "interface",
        "button",
        "component",
        "page",
        "form",
        "layout",
        "css",
        "style",
        "modal",
        "screen",
    ),
    "api": ("api", "endpoint", "route", "rest", "graphql", "controller", "webhook"),
    "database": ("database", "db", "schema", "table", "migration", "sql", "query", "index"),
    "test": ("test", "testing", "spec", "e2e", "coverage"),
    "deployment": (
        "deploy",
        "deployment",
        "release",
        "ci",
        "pipeline",
        "docker",
        "kubernetes",
        "production",
    ),
    "security": (
        "security",
        "auth",
        "authentication",
        "authorization",
        "permission",
        "vulnerability",
        "xss",
        "csrf",
        "encrypt",
        "encryption",
    ),
    "performance": (
        "performance",
        "optimize",
        "optimise",
        "optimization",
        "cache",
        "caching",
        "speed",
        "latency",
        "slow",
        "memory",
    ),
    "refactor": ("refactor", "refactoring", "cleanup", "clean up", "restructure", "rename", "simplify"),
}

# Trigger phrases that introduce a dependency hint, keyed by relation
HINT_TRIGGERS: dict[str, str] = {
    "after": r"after",
    "before": r"before",
    "depends_on": r"depends?\s+on",
    "requires": r"requires?",
    "needs": r"needs?",
    "prerequisite": r"prerequisites?\s*:?",
}

_TRIGGER_ALTERNATION = "|".join(f"(?:{p})" for p in HINT_TRIGGERS.values())
_HINT_RE = re.compile(
    rf"\b(?:{_TRIGGER_ALTERNATION})\s+.+?(?=\s+\b(?:{_TRIGGER_ALTERNATION})\s|[.;,()\n]|$)",
    re.IGNORECASE,
)
_LEADING_MARKER_RE = re.compile(
    r"^(?:[-*•+]\s+|\d+[.)]\s+|\[[ xX]\]\s*|#+\s*|//\s*|/\*+\s*|<!--\s*"
    r"|(?:TODO|TASK|FIXME|HACK|XXX|NOTE)\b\s*[:\-]?\s*"
    r"|(?i:todo|task|note|fix[ -]?later)\s*:\s*)"
)
_TRAILING_COMMENT_RE = re.compile(r"\s*(?:\*/|-->)\s*$")
_ARTICLE_RE = re.compile(r"^(?:the|a|an)\s+", re.IGNORECASE)


def parse_input(text: str) -> list[Task]:
    """Parse free-form text and extract tasks.

    Args:
        text: Raw TODO list, markdown, or source code with annotations

    Returns:
        Tasks sorted by (pattern priority, line number). An empty list means
        no tasks were found.

    Raises:
        InvalidInput: If text is not a string or is blank
    """
    if not isinstance(text, str) or not text.strip():
        raise InvalidInput("Invalid TODO input: must be a non-empty string")

    seen: set[tuple[int, str]] = set()
    tasks: list[Task] = []

    for line_number, line in enumerate(text.splitlines(), start=1):
        if not line.strip():
            continue
        for pattern in PATTERNS:
            match = pattern.regex.search(line)
            if not match:
                continue
            content = _clean_content(match.group("content"))
            if not re.search(r"\w", content):
                continue

            key = (line_number, content.lower())
            if key in seen:
                continue
            seen.add(key)

            tasks.append(
                Task(
                    id=_task_id(line_number, content),
                    description=content,
                    pattern=pattern.name,
                    pattern_priority=pattern.priority,
                    line_number=line_number,
                    category=classify_category(content),
                    status="completed" if pattern.completed else "pending",
                    dependency_hints=extract_dependency_hints(content),
                )
            )

    tasks.sort(key=lambda t: (t.pattern_priority, t.line_number))
    return tasks


class InputParser:
    """Object wrapper around parse_input() for dependency injection."""

    def parse(self, text: str) -> list[Task]:
        """Parse text into tasks. See parse_input()."""
        return parse_input(text)


def classify_category(description: str) -> str | None:
    """Classify a task description by the first matching category keyword."""
    return first_matching_key(description, CATEGORY_KEYWORDS)


def extract_dependency_hints(description: str) -> list[str]:
    """Capture dependency hint phrases verbatim.

    Example: "build ui after api" -> ["after api"]
    """
    return [match.group(0).strip() for match in _HINT_RE.finditer(description)]


def split_hint(hint: str) -> tuple[str, str]:
    """Split a hint into (relation, target).

    Example: "depends on database schema" -> ("depends_on", "database schema")
    """
    for relation, trigger in HINT_TRIGGERS.items():
        match = re.match(rf"(?:{trigger})\s+(.+)$", hint.strip(), re.IGNORECASE)
        if match:
            return relation, _ARTICLE_RE.sub("", match.group(1).strip())
    return "depends_on", hint.strip()


def _clean_content(content: str) -> str:
    """Strip leading list/comment/marker tokens so overlapping matches agree."""
    content = _TRAILING_COMMENT_RE.sub("", content).strip()
    previous = None
    while previous != content:
        previous = content
        content = _LEADING_MARKER_RE.sub("", content, count=1).strip()
    return content


def _task_id(line_number: int, content: str) -> str:
    digest = hashlib.sha1(content.encode("utf-8")).hexdigest()[:8]
    return f"task-{line_number}-{digest}"
