"""
Tests: entity store access helpers and conditional updates.
"""

import pytest

from ehub.core.exceptions import ConcurrencyError, NotFoundError, ValidationError
from ehub.models import db
from ehub.services import entity_store


class TestLookup:
    def test_get_unknown_id(self):
        with pytest.raises(NotFoundError) as exc_info:
            entity_store.get("project", 12345)
        assert "Project" in str(exc_info.value)

    def test_unknown_kind(self):
        with pytest.raises(ValidationError):
            entity_store.get("invoice", 1)

    def test_list_filters(self, make_user):
        a = make_user("fabricator")
        make_user("supervisor")
        b = make_user("fabricator")
        assert [u.id for u in entity_store.list_("user", role="fabricator")] == [a.id, b.id]


class TestUpdate:
    def test_update_with_matching_version(self, project):
        updated = entity_store.update("project", project.id, {"name": "Renamed"}, expected_version=1)
        db.session.commit()
        assert updated.name == "Renamed"
        assert updated.version == 2

    def test_update_with_stale_version(self, project):
        with pytest.raises(ConcurrencyError):
            entity_store.update("project", project.id, {"name": "Renamed"}, expected_version=7)

    def test_update_ignores_id_and_version(self, project):
        updated = entity_store.update("project", project.id, {"id": 99, "version": 50, "priority": "high"})
        assert updated.id == project.id
        assert updated.priority == "high"


class TestCompareAndSet:
    def test_winner_and_loser(self, project):
        assert entity_store.compare_and_set(
            "project", project.id, expected={"priority": "medium"}, patch={"priority": "urgent"},
        ) is True
        row = entity_store.get("project", project.id)
        assert row.priority == "urgent"
        assert row.version == 2

        assert entity_store.compare_and_set(
            "project", project.id, expected={"priority": "medium"}, patch={"priority": "low"},
        ) is False
        assert entity_store.get("project", project.id).priority == "urgent"

    def test_unknown_row(self):
        with pytest.raises(NotFoundError):
            entity_store.compare_and_set("assignment", 404, expected={"status": "pending"}, patch={})
