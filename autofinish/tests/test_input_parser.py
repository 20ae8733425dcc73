"""Tests for the input parser."""

import pytest

from autofinish.errors import InputError, InvalidInput
from autofinish.input_parser import (
    InputParser,
    classify_category,
    extract_dependency_hints,
    parse_input,
    split_hint,
)


class TestParseInput:
    """Test parse_input() pattern matching."""

    def test_todo_markers(self):
        """Should extract TODO lines."""
        tasks = parse_input("TODO: create database schema\nTODO: build ui")

        assert [t.description for t in tasks] == ["create database schema", "build ui"]
        assert all(t.pattern == "todo" for t in tasks)
        assert [t.line_number for t in tasks] == [1, 2]

    def test_mixed_patterns_sorted_by_priority_then_line(self):
        """Tasks should be sorted by pattern priority, then line number."""
        text = "\n".join(
            [
                "1. Add login button",
                "- [ ] write tests",
                "- refactor helpers",
                "TODO: set up database",
            ]
        )
        tasks = parse_input(text)

        assert [t.pattern for t in tasks] == ["todo", "bullet", "numbered", "unchecked"]
        assert [t.line_number for t in tasks] == [4, 3, 1, 2]

    def test_checked_checkbox_is_completed(self):
        """Checked checkboxes should be pre-marked completed."""
        tasks = parse_input("- [x] setup ci\n- [ ] deploy release")

        by_pattern = {t.pattern: t for t in tasks}
        assert by_pattern["checked"].status == "completed"
        assert by_pattern["unchecked"].status == "pending"

    def test_checkbox_lines_are_not_bullets(self):
        """A checkbox line should produce exactly one task."""
        tasks = parse_input("- [ ] write docs")

        assert len(tasks) == 1
        assert tasks[0].pattern == "unchecked"
        assert tasks[0].description == "write docs"

    def test_overlapping_patterns_deduplicated(self):
        """A bulleted TODO line should be counted once."""
        tasks = parse_input("- TODO: fix api")

        assert len(tasks) == 1
        assert tasks[0].pattern == "todo"
        assert tasks[0].description == "fix api"

    def test_code_annotations(self):
        """Should extract FIXME, NOTE and HACK annotations."""
        text = "\n".join(
            [
                "# FIXME: handle null input",
                "// NOTE: cache results",
                "x = 1  # HACK: remove this",
            ]
        )
        tasks = parse_input(text)

        assert [t.pattern for t in tasks] == ["fixme", "note", "hack"]
        assert tasks[0].description == "handle null input"
        assert tasks[1].category == "performance"

    def test_annotation_words_in_prose_are_ignored(self):
        """Annotation keywords only count at line start or after a comment marker."""
        assert parse_input("Release note: bump version") == []
        assert parse_input("We should fix later whatever breaks") == []

    def test_annotation_inside_task_is_not_a_second_task(self):
        tasks = parse_input("TODO: refactor (HACK) foo")

        assert len(tasks) == 1
        assert tasks[0].pattern == "todo"
        assert tasks[0].description == "refactor (HACK) foo"

    def test_no_tasks_returns_empty_list(self):
        """Text without any pattern should yield no tasks."""
        assert parse_input("just some prose here") == []

    def test_deterministic(self):
        """Parsing the same input twice should give equal results."""
        text = "TODO: build api\n- add form\n[ ] write tests"

        assert parse_input(text) == parse_input(text)

    def test_task_ids_unique(self):
        text = "TODO: build api\nTODO: build api"
        tasks = parse_input(text)

        assert len({t.id for t in tasks}) == 2

    @pytest.mark.parametrize("bad_input", ["", "   \n  ", None, 42])
    def test_invalid_input_raises(self, bad_input):
        """Empty or non-string input should raise InvalidInput."""
        with pytest.raises(InvalidInput):
            parse_input(bad_input)

    def test_invalid_input_is_input_error(self):
        with pytest.raises(InputError):
            InputParser().parse("")


class TestClassifyCategory:
    """Test category classification."""

    @pytest.mark.parametrize(
        "description,category",
        [
            ("create database schema", "database"),
            ("build api depends on database schema", "api"),
            ("build ui after api", "ui"),
            ("write unit tests", "test"),
            ("deploy to production", "deployment"),
            ("add authentication", "security"),
            ("optimize memory usage", "performance"),
            ("refactor the helpers", "refactor"),
            ("buy milk", None),
        ],
    )
    def test_categories(self, description, category):
        assert classify_category(description) == category

    def test_keyword_inside_word_does_not_match(self):
        """'ui' inside 'build' should not classify as ui."""
        assert classify_category("build the thing") is None


class TestDependencyHints:
    """Test dependency hint extraction."""

    def test_after_hint(self):
        assert extract_dependency_hints("build ui after api") == ["after api"]

    def test_depends_on_hint(self):
        hints = extract_dependency_hints("build api depends on database schema")

        assert hints == ["depends on database schema"]

    def test_multiple_hints(self):
        hints = extract_dependency_hints("deploy after tests, requires docker image")

        assert hints == ["after tests", "requires docker image"]

    def test_no_hints(self):
        assert extract_dependency_hints("create database schema") == []

    def test_hints_attached_to_tasks(self):
        tasks = parse_input("TODO: build ui after api")

        assert tasks[0].dependency_hints == ["after api"]

    @pytest.mark.parametrize(
        "hint,expected",
        [
            ("after api", ("after", "api")),
            ("before the deploy", ("before", "deploy")),
            ("depends on database schema", ("depends_on", "database schema")),
            ("requires docker image", ("requires", "docker image")),
            ("needs a login form", ("needs", "login form")),
        ],
    )
    def test_split_hint(self, hint, expected):
        assert split_hint(hint) == expected
