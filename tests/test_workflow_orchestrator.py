"""
Tests: workflow orchestrator units of work.

Covers:
    1. Starter task seeding on invite / accept
    2. Commit + rollback boundaries and concurrency mapping
    3. Notification failures never undo the committed change
    4. Project visibility and the archived filter
"""

from unittest.mock import patch

import pytest
from sqlalchemy.orm.exc import StaleDataError

import ehub.services.workflow_orchestrator as wf
from ehub.core.exceptions import AuthorizationError, ConcurrencyError, ValidationError
from ehub.models import db
from ehub.models.notification import Notification
from ehub.models.project import STATUS_COMPLETED, STATUS_PLANNING, Project
from ehub.models.task import Task


class TestSeedTasks:
    def test_seeded_on_invite_by_default(self, manual_project, supervisor, fabricator):
        result = wf.assign_fabricator(manual_project.id, fabricator.id, supervisor.id)
        titles = [t.title for t in result["tasks"]]
        assert titles == ["Project Planning Review", "Material Assessment"]
        assert all(t.assigned_to == fabricator.id for t in result["tasks"])
        assert Task.query.filter_by(project_id=manual_project.id).count() == 2

    def test_seeded_on_accept_when_configured(self, app, manual_project, supervisor, fabricator):
        app.config["SEED_TASKS_ON"] = "accept"
        try:
            result = wf.assign_fabricator(manual_project.id, fabricator.id, supervisor.id)
            assert result["tasks"] == []
            assert Task.query.filter_by(project_id=manual_project.id).count() == 0

            wf.accept_assignment(result["assignment"].id, fabricator.id)
            tasks = Task.query.filter_by(project_id=manual_project.id).all()
            assert len(tasks) == 2
            assert {t.created_by for t in tasks} == {supervisor.id}
        finally:
            app.config["SEED_TASKS_ON"] = "invite"

    def test_decline_seeds_nothing(self, app, manual_project, supervisor, fabricator):
        app.config["SEED_TASKS_ON"] = "accept"
        try:
            result = wf.assign_fabricator(manual_project.id, fabricator.id, supervisor.id)
            wf.decline_assignment(result["assignment"].id, fabricator.id)
            assert Task.query.filter_by(project_id=manual_project.id).count() == 0
        finally:
            app.config["SEED_TASKS_ON"] = "invite"


class TestUnitOfWork:
    def test_failed_operation_rolls_back(self, project, supervisor, fabricator):
        with pytest.raises(ValidationError):
            wf.allocate_revenue(project.id, {fabricator.id: "nope"}, supervisor.id)
        assert not db.session.new
        assert not db.session.dirty

    def test_stale_data_maps_to_concurrency_error(self, app):
        with pytest.raises(ConcurrencyError):
            with wf._unit_of_work("test"):
                raise StaleDataError("row changed")

    def test_unknown_actor_rejected(self, project):
        with pytest.raises(AuthorizationError):
            wf.get_project(project.id, 4242)

    def test_inactive_actor_rejected(self, project, make_user):
        retired = make_user("admin", is_active=False)
        with pytest.raises(AuthorizationError):
            wf.get_project(project.id, retired.id)


class TestNotificationIsolation:
    def test_email_failure_keeps_assignment(self, manual_project, supervisor, fabricator):
        with patch(
            "ehub.services.notification_dispatcher.EmailService.send_from_template",
            side_effect=RuntimeError("smtp down"),
        ):
            result = wf.assign_fabricator(manual_project.id, fabricator.id, supervisor.id)

        project = db.session.get(Project, manual_project.id)
        assert [a.id for a in project.assignments] == [result["assignment"].id]
        # the in-app row written in the failed dispatch transaction is rolled back
        assert Notification.query.filter_by(recipient_id=fabricator.id).count() == 0

    def test_notification_failure_keeps_acceptance(self, manual_project, supervisor, fabricator):
        assignment = wf.assign_fabricator(manual_project.id, fabricator.id, supervisor.id)["assignment"]
        with patch(
            "ehub.services.notification_dispatcher.NotificationService.create",
            side_effect=RuntimeError("db hiccup"),
        ):
            project = wf.accept_assignment(assignment.id, fabricator.id)
        assert project.status == STATUS_PLANNING
        assert db.session.get(Project, manual_project.id).fabricator_ids == [fabricator.id]

    def test_successful_dispatch_notifies_fabricator(self, manual_project, supervisor, fabricator):
        wf.assign_fabricator(manual_project.id, fabricator.id, supervisor.id, "Please weld")
        notes = Notification.query.filter_by(recipient_id=fabricator.id).all()
        assert len(notes) == 1
        assert notes[0].category == "assignment"
        assert notes[0].message == "Please weld"


class TestVisibility:
    def test_list_projects_archived_filter(self, project, manual_project, supervisor):
        wf.mark_project_complete(manual_project.id, supervisor.id)
        active = wf.list_projects(supervisor.id)
        archived = wf.list_projects(supervisor.id, archived=True)
        assert [p.id for p in active] == [project.id]
        assert [p.id for p in archived] == [manual_project.id]
        assert archived[0].status == STATUS_COMPLETED

    def test_fabricator_sees_member_and_invited_projects(
        self, project, manual_project, supervisor, fabricator, second_fabricator,
    ):
        wf.assign_fabricator(manual_project.id, second_fabricator.id, supervisor.id)
        assert [p.id for p in wf.list_projects(fabricator.id)] == [project.id]
        assert [p.id for p in wf.list_projects(second_fabricator.id)] == [manual_project.id]

    def test_admin_sees_everything(self, project, manual_project, admin):
        assert {p.id for p in wf.list_projects(admin.id)} == {project.id, manual_project.id}

    def test_client_sees_linked_project_only(self, project, manual_project, make_user):
        linked = make_user("client", client_project_id=project.id)
        assert [p.id for p in wf.list_projects(linked.id)] == [project.id]
        assert wf.get_project(project.id, linked.id).id == project.id
        with pytest.raises(AuthorizationError):
            wf.get_project(manual_project.id, linked.id)

    def test_revenue_summary_hidden_from_fabricators(self, project, fabricator):
        with pytest.raises(AuthorizationError):
            wf.revenue_summary(project.id, fabricator.id)
