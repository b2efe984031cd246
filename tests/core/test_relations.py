"""Tests for the relationship graph — undirected uniqueness, removal, loading both directions."""

from __future__ import annotations

import sqlite3

import pytest

from kite.core import KiteDB
from kite.errors import ConflictError, ValidationError


def _ids(db: KiteDB) -> dict[str, str]:
    return db._test_ids  # type: ignore[attr-defined,no-any-return]


class TestAddRelatedIssue:
    def test_edge_returned_and_loaded_both_ways(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        a = populated_db.get_issue(ids["a"])
        b = populated_db.get_issue(ids["b"])

        assert [rel.target_id for rel in a.related_from] == [ids["b"]]
        assert a.related_to == []
        assert [rel.source_id for rel in b.related_to] == [ids["a"]]
        assert b.related_from == []

    def test_counterpart_summary_includes_scope(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        a = populated_db.get_issue(ids["a"])
        counterpart = a.related_from[0].issue
        assert counterpart is not None
        assert counterpart.id == ids["b"]
        assert counterpart.title == "Flaky unit tests"
        assert counterpart.scope.resource_name == "build-2"

        b = populated_db.get_issue(ids["b"])
        back = b.related_to[0].issue
        assert back is not None
        assert back.id == ids["a"]
        assert back.scope.resource_name == "build-1"

    def test_new_edge_fields(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        edge = populated_db.add_related_issue(ids["b"], ids["c"])
        assert edge.source_id == ids["b"]
        assert edge.target_id == ids["c"]
        assert edge.id
        assert edge.created_at

    def test_same_direction_twice_conflicts(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        with pytest.raises(ConflictError, match="relationship already exists"):
            populated_db.add_related_issue(ids["a"], ids["b"])

    def test_reverse_direction_conflicts(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        with pytest.raises(ConflictError, match="relationship already exists"):
            populated_db.add_related_issue(ids["b"], ids["a"])
        assert populated_db.count_rows()["related"] == 1

    def test_missing_issue_conflicts(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        with pytest.raises(ConflictError, match="one or both issues not found"):
            populated_db.add_related_issue(ids["a"], "ghost")
        with pytest.raises(ConflictError, match="one or both issues not found"):
            populated_db.add_related_issue("ghost", ids["a"])

    def test_self_edge_rejected(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        with pytest.raises(ValidationError):
            populated_db.add_related_issue(ids["a"], ids["a"])

    def test_schema_enforces_undirected_uniqueness(self, populated_db: KiteDB) -> None:
        """The expression index refuses a reversed row even when the engine check is bypassed."""
        ids = _ids(populated_db)
        with pytest.raises(sqlite3.IntegrityError):
            populated_db.conn.execute(
                "INSERT INTO related_issues (id, source_id, target_id, created_at) VALUES ('x', ?, ?, '')",
                (ids["b"], ids["a"]),
            )

    def test_schema_refuses_self_edge(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        with pytest.raises(sqlite3.IntegrityError):
            populated_db.conn.execute(
                "INSERT INTO related_issues (id, source_id, target_id, created_at) VALUES ('x', ?, ?, '')",
                (ids["a"], ids["a"]),
            )


class TestRemoveRelatedIssue:
    def test_remove_stored_direction(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        populated_db.remove_related_issue(ids["a"], ids["b"])
        assert populated_db.count_rows()["related"] == 0
        assert populated_db.get_issue(ids["a"]).related_from == []

    def test_remove_reverse_direction(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        populated_db.remove_related_issue(ids["b"], ids["a"])
        assert populated_db.count_rows()["related"] == 0

    def test_remove_missing_edge_conflicts(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        with pytest.raises(ConflictError, match="relationship not found"):
            populated_db.remove_related_issue(ids["a"], ids["c"])

    def test_remove_twice_conflicts(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        populated_db.remove_related_issue(ids["a"], ids["b"])
        with pytest.raises(ConflictError):
            populated_db.remove_related_issue(ids["a"], ids["b"])

    def test_relate_again_after_removal(self, populated_db: KiteDB) -> None:
        ids = _ids(populated_db)
        populated_db.remove_related_issue(ids["a"], ids["b"])
        edge = populated_db.add_related_issue(ids["b"], ids["a"])
        assert edge.source_id == ids["b"]
