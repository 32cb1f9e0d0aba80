"""
Tests: work logs, progress accumulation and materials.
"""

from decimal import Decimal

import pytest

import ehub.services.workflow_orchestrator as wf
from ehub.core.exceptions import AuthorizationError, InvalidTransitionError, ValidationError
from ehub.models import db
from ehub.models.project import STATUS_ASSIGNED_TO_FABRICATOR, Project


def _log(project_id, fabricator_id, hours=4, progress=10, **extra):
    entry = {"hours_worked": hours, "progress_percentage": progress, "description": "Welding", **extra}
    return wf.record_work(project_id, fabricator_id, entry)


class TestRecordWork:
    def test_progress_accumulates(self, project, fabricator):
        _log(project.id, fabricator.id, progress=30)
        result = _log(project.id, fabricator.id, progress=25)
        assert result["project"].progress == 55
        assert result["work_log"].progress_percentage == 25

    def test_progress_is_clamped_at_100(self, project, fabricator):
        _log(project.id, fabricator.id, progress=80)
        result = _log(project.id, fabricator.id, progress=50)
        assert result["project"].progress == 100

    def test_reaching_100_keeps_status(self, project, fabricator):
        result = _log(project.id, fabricator.id, progress=100)
        assert result["project"].status == STATUS_ASSIGNED_TO_FABRICATOR

    def test_materials_and_date_stored(self, project, fabricator):
        result = _log(project.id, fabricator.id, materials=["steel", " bolts "], date="2026-02-03")
        log = result["work_log"]
        assert log.materials == ["steel", "bolts"]
        assert log.date.isoformat() == "2026-02-03"

    @pytest.mark.parametrize("hours,progress,field", [
        (0, 10, "hours_worked"),
        (-1, 10, "hours_worked"),
        ("abc", 10, "hours_worked"),
        (2, 101, "progress_percentage"),
        (2, -5, "progress_percentage"),
        (2, 12.5, "progress_percentage"),
    ])
    def test_invalid_input(self, project, fabricator, hours, progress, field):
        with pytest.raises(ValidationError) as exc_info:
            _log(project.id, fabricator.id, hours=hours, progress=progress)
        assert field in exc_info.value.details
        assert db.session.get(Project, project.id).progress == 0

    def test_sub_cent_hours_kept(self, project, fabricator):
        short = _log(project.id, fabricator.id, hours=0.004, progress=1)["work_log"]
        odd = _log(project.id, fabricator.id, hours="1.005", progress=1)["work_log"]
        assert short.hours_worked == Decimal("0.004")
        assert odd.hours_worked == Decimal("1.005")

    @pytest.mark.parametrize("hours,reason", [
        ("0.00001", "at most 4 decimal places"),
        (100000, "out of range"),
        ("1e30", "out of range"),
    ])
    def test_hours_precision_and_range(self, project, fabricator, hours, reason):
        with pytest.raises(ValidationError) as exc_info:
            _log(project.id, fabricator.id, hours=hours)
        assert exc_info.value.details["hours_worked"] == reason

    def test_description_required(self, project, fabricator):
        with pytest.raises(ValidationError) as exc_info:
            wf.record_work(project.id, fabricator.id, {"hours_worked": 1, "progress_percentage": 5})
        assert "description" in exc_info.value.details

    def test_non_member_rejected(self, project, second_fabricator):
        with pytest.raises(AuthorizationError):
            _log(project.id, second_fabricator.id)

    def test_completed_project_rejects_work(self, project, fabricator, supervisor):
        wf.mark_project_complete(project.id, supervisor.id)
        with pytest.raises(InvalidTransitionError):
            _log(project.id, fabricator.id)


class TestWorkSummary:
    def test_summary_per_fabricator(self, supervisor, fabricator, second_fabricator):
        shared = wf.create_project(supervisor.id, {
            "name": "Bridge Deck", "client_name": "City",
            "fabricator_ids": [fabricator.id, second_fabricator.id],
        })
        _log(shared.id, fabricator.id, hours=3.5, progress=20)
        _log(shared.id, fabricator.id, hours=2, progress=10)
        _log(shared.id, second_fabricator.id, hours=6, progress=15)

        result = wf.list_work_logs(shared.id, supervisor.id)
        summary = result["summary"]
        assert len(result["work_logs"]) == 3
        assert summary["progress"] == 45
        assert summary["total_hours"] == 11.5
        assert summary["log_count"] == 3
        rows = {r["fabricator_id"]: r for r in summary["by_fabricator"]}
        assert rows[fabricator.id]["hours"] == 5.5
        assert rows[fabricator.id]["progress_contributed"] == 30
        assert rows[fabricator.id]["entries"] == 2
        assert rows[second_fabricator.id]["progress_contributed"] == 15

    def test_stranger_cannot_read_logs(self, project, second_fabricator):
        with pytest.raises(AuthorizationError):
            wf.list_work_logs(project.id, second_fabricator.id)


class TestMaterials:
    def test_material_cost_adds_to_spent(self, project, fabricator):
        material = wf.add_material(project.id, fabricator.id, {
            "name": "Steel plate", "quantity": 3, "unit": "sheet", "cost_per_unit": "120.50",
        })
        assert material.total_cost == Decimal("361.50")
        assert db.session.get(Project, project.id).spent == Decimal("361.50")

    def test_manager_adds_material(self, project, supervisor):
        wf.add_material(project.id, supervisor.id, {"name": "Paint", "quantity": 2, "cost_per_unit": 10})
        assert db.session.get(Project, project.id).spent == Decimal("20.00")

    def test_non_member_cannot_add(self, project, second_fabricator):
        with pytest.raises(AuthorizationError):
            wf.add_material(project.id, second_fabricator.id, {"name": "Bolts", "quantity": 1})

    def test_quantity_must_be_positive(self, project, fabricator):
        with pytest.raises(ValidationError):
            wf.add_material(project.id, fabricator.id, {"name": "Bolts", "quantity": 0})

    @pytest.mark.parametrize("field,value", [("quantity", "1e8"), ("cost_per_unit", 1e30)])
    def test_oversized_inputs_rejected(self, project, fabricator, field, value):
        data = {"name": "Bolts", "quantity": 1, field: value}
        with pytest.raises(ValidationError) as exc_info:
            wf.add_material(project.id, fabricator.id, data)
        assert exc_info.value.details == {field: "out of range"}

    def test_spend_ceiling(self, project, fabricator):
        data = {"name": "Girders", "quantity": "99999999", "cost_per_unit": "99999999"}
        with pytest.raises(ValidationError) as exc_info:
            wf.add_material(project.id, fabricator.id, data)
        assert exc_info.value.details == {"cost_per_unit": "out of range"}
        assert db.session.get(Project, project.id).spent == Decimal("0.00")
