"""
Unit tests for resource parsing.
Tests the effort document parsers, member matching and ResourceParser
from services/resource_parser.py
"""
import asyncio
import pytest
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from import_types import ProjectMember, Task
from run_persistence import InMemoryImportStore
from services.resource_parser import (
    ResourceParser,
    find_matching_member,
    normalize_effort_to_hours,
    parse_resource_list,
    parse_resource_paragraphs,
    parse_resource_table,
    parse_resources,
)

TABLE = """Effort estimate

| Task | Resource | Role | Effort |
|------|----------|------|--------|
| Data Migration | Jane Smith | Engineer | 3 days |
| QA Testing | Bob Lee | Tester | 12 hours |

Notes follow.
"""

MEMBERS = [
    ProjectMember(user_id="u1", username="jane.smith", full_name="Jane Smith"),
    ProjectMember(user_id="u2", username="boblee"),
]


class TestNormalizeEffort:
    """Test normalize_effort_to_hours function."""

    def test_units(self):
        """Test day and hour units."""
        assert normalize_effort_to_hours(2, "days") == 16
        assert normalize_effort_to_hours(1, "d") == 8
        assert normalize_effort_to_hours(5, "hours") == 5
        assert normalize_effort_to_hours(5, None) == 5


class TestParsers:
    """Test the individual effort document parsers."""

    def test_table(self):
        """Test markdown table parsing."""
        resources = parse_resource_table(TABLE)

        assert [(r.name, r.task, r.role, r.effort_hours) for r in resources] == [
            ("Jane Smith", "Data Migration", "Engineer", 24),
            ("Bob Lee", "QA Testing", "Tester", 12),
        ]
        assert resources[0].original_effort == 3
        assert resources[0].original_unit == "days"

    def test_list(self):
        """Test bullet list parsing."""
        resources = parse_resource_list("- Data Migration: Jane Smith (Engineer) - 16 hours\n- not a resource")

        assert len(resources) == 1
        assert resources[0].name == "Jane Smith"
        assert resources[0].task == "Data Migration"
        assert resources[0].effort_hours == 16

    def test_paragraphs(self):
        """Test the two prose patterns."""
        text = (
            "Jane Smith (Engineer) will spend 2 days on Data Migration. "
            "QA Testing will be handled by Bob Lee (Tester) - 6 hours."
        )
        resources = parse_resource_paragraphs(text)

        assert [(r.name, r.task, r.effort_hours) for r in resources] == [
            ("Jane Smith", "Data Migration", 16),
            ("Bob Lee", "QA Testing", 6),
        ]

    def test_parse_resources_deduplicates(self):
        """Test that the same person and task found twice is kept once."""
        text = TABLE + "\n- Data Migration: Jane Smith (Engineer) - 24 hours\n"
        resources = parse_resources(text)

        assert [(r.name, r.task) for r in resources] == [
            ("Jane Smith", "Data Migration"),
            ("Bob Lee", "QA Testing"),
        ]


class TestFindMatchingMember:
    """Test find_matching_member function."""

    def test_exact_username(self):
        """Test full-confidence username match."""
        member, confidence = find_matching_member("boblee", MEMBERS)
        assert member.user_id == "u2"
        assert confidence == 1.0

    def test_first_name_prefix(self):
        """Test first name against the username's first segment."""
        member, confidence = find_matching_member("Jane Smith", MEMBERS)
        assert member.user_id == "u1"
        assert confidence == 0.8

    def test_fuzzy_username(self):
        """Test a near-miss username."""
        member, confidence = find_matching_member("bob lee", MEMBERS)
        assert member.user_id == "u2"
        assert 0.6 <= confidence < 1.0

    def test_no_match(self):
        """Test that unknown people are not matched."""
        assert find_matching_member("Xavier Quinn", MEMBERS) is None


class TestResourceParser:
    """Test ResourceParser.parse_and_assign."""

    def _tasks(self):
        return [
            Task(id="t1", project_id="p1", title="Data Migration"),
            Task(id="t2", project_id="p1", title="QA Testing"),
        ]

    def test_assignments_stored(self):
        """Test that matched resources become stored assignments."""
        store = InMemoryImportStore()
        for member in MEMBERS:
            asyncio.run(store.add_project_member("p1", member))

        result = asyncio.run(ResourceParser().parse_and_assign(TABLE, "p1", self._tasks(), store))

        assert [(a.task_id, a.user_id, a.effort_hours) for a in result.assignments] == [
            ("t1", "u1", 24),
            ("t2", "u2", 12),
        ]
        assert len(store.assignments) == 2
        # Neither name is an exact username
        assert [r.name for r in result.needs_review] == ["Jane Smith", "Bob Lee"]

    def test_no_members(self):
        """Test that an empty member list skips matching."""
        result = asyncio.run(ResourceParser().parse_and_assign(TABLE, "p1", self._tasks(), InMemoryImportStore()))

        assert result.assignments == []
        assert result.warnings == ["No project members found - skipping resource matching"]

    def test_no_resources(self):
        """Test that a document without effort lines warns."""
        result = asyncio.run(ResourceParser().parse_and_assign("Nothing here.", "p1", self._tasks(),
                                                               InMemoryImportStore()))

        assert result.warnings == ["No resources found in effort document"]

    def test_unknown_task(self):
        """Test that a resource for an unknown task is reported."""
        store = InMemoryImportStore()
        asyncio.run(store.add_project_member("p1", MEMBERS[1]))
        text = "- Marketing Launch Zeta: Bob Lee (Tester) - 4 hours"

        result = asyncio.run(ResourceParser().parse_and_assign(text, "p1", self._tasks(), store))

        assert result.assignments == []
        assert result.warnings == ['No task found for resource task "Marketing Launch Zeta"']
