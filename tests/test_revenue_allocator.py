"""
Tests: revenue shares, cost budgets and the equal split.
"""

from decimal import Decimal

import pytest

import ehub.services.workflow_orchestrator as wf
from ehub.core.exceptions import AuthorizationError, OverAllocationError, ValidationError
from ehub.models import db
from ehub.models.project import FabricatorBudget, Project
from ehub.services.revenue_allocator import equal_split


def _rows(project_id):
    project = db.session.get(Project, project_id)
    return {row.fabricator_id: row for row in project.fabricator_budgets}


@pytest.fixture()
def crew_project(supervisor, fabricator, second_fabricator, make_user):
    third = make_user("fabricator")
    return wf.create_project(supervisor.id, {
        "name": "Warehouse Racking",
        "client_name": "Depot Ltd",
        "fabricator_ids": [fabricator.id, second_fabricator.id, third.id],
        "revenue": 1000,
        "budget": 300,
    })


class TestEqualSplit:
    @pytest.mark.parametrize("total,count,share", [
        ("1000", 3, "333.33"),
        ("200", 3, "66.66"),
        ("100", 4, "25.00"),
        ("0.05", 2, "0.02"),
    ])
    def test_share_never_over_allocates(self, total, count, share):
        result = equal_split(Decimal(total), count)
        assert result == Decimal(share)
        assert result * count <= Decimal(total)

    def test_no_members(self):
        with pytest.raises(ValidationError):
            equal_split(Decimal("100"), 0)


class TestAllocateRevenue:
    def test_allocation_within_revenue(self, project, supervisor, fabricator):
        wf.allocate_revenue(project.id, {str(fabricator.id): 300000}, supervisor.id)
        assert _rows(project.id)[fabricator.id].allocated_revenue == Decimal("300000.00")

    def test_over_allocation_rejected_whole(self, project, supervisor, fabricator):
        with pytest.raises(OverAllocationError) as exc_info:
            wf.allocate_revenue(project.id, {str(fabricator.id): 600000}, supervisor.id)
        assert exc_info.value.field == "revenue"
        assert exc_info.value.excess == Decimal("100000.00")
        assert _rows(project.id) == {}

    def test_list_form_accepted(self, crew_project, supervisor, fabricator, second_fabricator):
        wf.allocate_revenue(crew_project.id, [
            {"fabricator_id": fabricator.id, "amount": "400.10"},
            {"fabricator_id": second_fabricator.id, "amount": 100},
        ], supervisor.id)
        rows = _rows(crew_project.id)
        assert rows[fabricator.id].allocated_revenue == Decimal("400.10")
        assert rows[second_fabricator.id].allocated_revenue == Decimal("100.00")

    def test_ceiling_counts_untouched_rows(self, crew_project, supervisor, fabricator, second_fabricator):
        wf.allocate_revenue(crew_project.id, {fabricator.id: 700}, supervisor.id)
        with pytest.raises(OverAllocationError) as exc_info:
            wf.allocate_revenue(crew_project.id, {second_fabricator.id: 400}, supervisor.id)
        assert exc_info.value.requested == Decimal("1100.00")
        # replacing an existing share is measured against the new total
        wf.allocate_revenue(crew_project.id, {fabricator.id: 500, second_fabricator.id: 500}, supervisor.id)
        rows = _rows(crew_project.id)
        assert rows[fabricator.id].allocated_revenue == Decimal("500.00")

    def test_non_member_rejected(self, project, supervisor, second_fabricator):
        with pytest.raises(ValidationError) as exc_info:
            wf.allocate_revenue(project.id, {second_fabricator.id: 10}, supervisor.id)
        assert exc_info.value.details["fabricator_ids"] == [second_fabricator.id]

    @pytest.mark.parametrize("allocations", [{}, [], None, {"1": -5}, {"1": "lots"}])
    def test_malformed_batches(self, project, supervisor, fabricator, allocations):
        with pytest.raises(ValidationError):
            wf.allocate_revenue(project.id, allocations, supervisor.id)

    def test_fabricator_cannot_allocate(self, project, fabricator):
        with pytest.raises(AuthorizationError):
            wf.allocate_revenue(project.id, {fabricator.id: 10}, fabricator.id)


class TestSplitAndClear:
    def test_split_equally_leaves_remainder(self, crew_project, supervisor):
        wf.split_revenue_equally(crew_project.id, supervisor.id)
        shares = {row.allocated_revenue for row in _rows(crew_project.id).values()}
        assert shares == {Decimal("333.33")}
        summary = wf.revenue_summary(crew_project.id, supervisor.id)
        assert summary["allocated_revenue"] == 999.99
        assert summary["remaining_revenue"] == pytest.approx(0.01)

    def test_split_with_no_members(self, manual_project, supervisor):
        with pytest.raises(ValidationError):
            wf.split_revenue_equally(manual_project.id, supervisor.id)

    def test_clear_zeroes_revenue_only(self, crew_project, supervisor, fabricator):
        wf.allocate_budget(crew_project.id, {fabricator.id: 120}, supervisor.id)
        wf.split_revenue_equally(crew_project.id, supervisor.id)
        wf.clear_revenue_allocations(crew_project.id, supervisor.id)
        rows = _rows(crew_project.id)
        assert all(row.allocated_revenue == 0 for row in rows.values())
        assert rows[fabricator.id].allocated_amount == Decimal("120.00")


class TestBudgets:
    def test_budget_ceiling(self, crew_project, supervisor, fabricator, second_fabricator):
        wf.allocate_budget(crew_project.id, {fabricator.id: 200}, supervisor.id)
        with pytest.raises(OverAllocationError) as exc_info:
            wf.allocate_budget(crew_project.id, {second_fabricator.id: 150}, supervisor.id)
        assert exc_info.value.field == "budget"
        assert exc_info.value.excess == Decimal("50.00")

    def test_summary_shape(self, crew_project, supervisor, fabricator):
        wf.allocate_budget(crew_project.id, {fabricator.id: 100}, supervisor.id)
        wf.allocate_revenue(crew_project.id, {fabricator.id: 250}, supervisor.id)
        summary = wf.revenue_summary(crew_project.id, supervisor.id)
        assert summary["total_revenue"] == 1000.0
        assert summary["remaining_revenue"] == 750.0
        assert summary["total_budget"] == 300.0
        assert summary["remaining_budget"] == 200.0
        (row,) = summary["allocations"]
        assert row["fabricator_id"] == fabricator.id
        assert row["fabricator_name"] == fabricator.name
        assert row["allocated_revenue"] == 250.0

    def test_only_one_budget_row_per_fabricator(self, crew_project, supervisor, fabricator):
        wf.allocate_budget(crew_project.id, {fabricator.id: 100}, supervisor.id)
        wf.allocate_revenue(crew_project.id, {fabricator.id: 100}, supervisor.id)
        count = FabricatorBudget.query.filter_by(
            project_id=crew_project.id, fabricator_id=fabricator.id,
        ).count()
        assert count == 1
