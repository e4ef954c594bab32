"""
Defect service tests — create / update / delete / comment semantics,
history bookkeeping and atomic validation.
"""

from datetime import date

import pytest

from defect_tracker.core.exceptions import InvalidTransitionError, NotFoundError, ValidationError
from defect_tracker.models import db
from defect_tracker.models.defect import ChangeHistoryEntry, Comment, Defect
from defect_tracker.services import defect_service, project_service


def _history(defect_id):
    return (
        ChangeHistoryEntry.query.filter_by(defect_id=defect_id)
        .order_by(ChangeHistoryEntry.id)
        .all()
    )


@pytest.fixture()
def defect(project, engineer):
    d = defect_service.create_defect(
        {"project_id": project.id, "title": "Cracked slab edge", "priority": "high"},
        actor_id=engineer.id,
    )
    db.session.commit()
    return d


class TestCreateDefect:
    def test_forces_status_and_reporter(self, project, engineer, manager):
        d = defect_service.create_defect(
            {"project_id": project.id, "title": "Loose handrail",
             "status": "closed", "reporter_id": manager.id},
            actor_id=engineer.id,
        )
        db.session.commit()
        assert d.status == "new"
        assert d.reporter_id == engineer.id
        assert d.priority == "medium"
        assert d.resolved_at is None

    def test_creation_history(self, defect, engineer):
        entries = _history(defect.id)
        assert len(entries) == 1
        assert entries[0].action == "created"
        assert entries[0].new_value == "new"

    def test_resolved_associations(self, project, stage, engineer, other_engineer):
        d = defect_service.create_defect(
            {"project_id": project.id, "stage_id": stage.id, "assignee_id": other_engineer.id,
             "title": "Rebar exposed", "due_date": "2026-07-01"},
            actor_id=engineer.id,
        )
        db.session.commit()
        data = d.to_dict()
        assert data["project"] == {"id": project.id, "name": "Harbour Tower"}
        assert data["stage"] == {"id": stage.id, "name": "Construction"}
        assert data["assignee"] == {"id": other_engineer.id, "username": "emma"}
        assert data["reporter"] == {"id": engineer.id, "username": "erik"}
        assert data["due_date"] == "2026-07-01"
        assert data["allowed_transitions"] == ["cancelled", "in_progress"]

    @pytest.mark.parametrize("payload", [
        {"title": "No project"},
        {"project_id": 1},
        {"project_id": 1, "title": ""},
    ])
    def test_missing_required(self, payload, project, engineer):
        with pytest.raises(ValidationError) as exc:
            defect_service.create_defect(payload, actor_id=engineer.id)
        assert exc.value.required

    @pytest.mark.parametrize("title", ["ab", "x" * 301])
    def test_title_length(self, title, project, engineer):
        with pytest.raises(ValidationError):
            defect_service.create_defect({"project_id": project.id, "title": title},
                                         actor_id=engineer.id)

    def test_bad_priority(self, project, engineer):
        with pytest.raises(ValidationError):
            defect_service.create_defect(
                {"project_id": project.id, "title": "Valid title", "priority": "urgent"},
                actor_id=engineer.id,
            )

    def test_unknown_project(self, engineer):
        with pytest.raises(NotFoundError):
            defect_service.create_defect({"project_id": 999, "title": "Valid title"},
                                         actor_id=engineer.id)

    def test_unknown_assignee(self, project, engineer):
        with pytest.raises(NotFoundError):
            defect_service.create_defect(
                {"project_id": project.id, "title": "Valid title", "assignee_id": 999},
                actor_id=engineer.id,
            )
        assert Defect.query.count() == 0

    def test_stage_from_other_project(self, project, manager, engineer):
        other = project_service.create_project({"name": "Other"}, actor_id=manager.id)
        foreign_stage = project_service.create_stage({"project_id": other.id, "name": "Design"})
        db.session.commit()
        with pytest.raises(NotFoundError):
            defect_service.create_defect(
                {"project_id": project.id, "title": "Valid title", "stage_id": foreign_stage.id},
                actor_id=engineer.id,
            )


class TestUpdateDefect:
    def test_one_entry_per_changed_field(self, defect, engineer, other_engineer):
        defect_service.update_defect(
            defect.id,
            {"title": "Cracked slab edge, grid B4", "priority": "high",
             "assignee_id": other_engineer.id, "due_date": "2026-08-15"},
            actor_id=engineer.id,
        )
        db.session.commit()
        updated = [e for e in _history(defect.id) if e.action == "updated"]
        assert {e.field for e in updated} == {"title", "assignee_id", "due_date"}
        by_field = {e.field: e for e in updated}
        assert by_field["assignee_id"].old_value is None
        assert by_field["assignee_id"].new_value == str(other_engineer.id)
        assert by_field["due_date"].new_value == "2026-08-15"
        assert defect.due_date == date(2026, 8, 15)

    def test_noop_update_writes_nothing(self, defect, engineer):
        defect_service.update_defect(defect.id, {"title": "Cracked slab edge", "status": "new"},
                                     actor_id=engineer.id)
        db.session.commit()
        assert len(_history(defect.id)) == 1

    def test_reporter_is_immutable(self, defect, engineer, manager):
        defect_service.update_defect(defect.id, {"reporter_id": manager.id}, actor_id=manager.id)
        db.session.commit()
        assert defect.reporter_id == engineer.id

    def test_invalid_transition_is_atomic(self, defect, engineer):
        with pytest.raises(InvalidTransitionError):
            defect_service.update_defect(
                defect.id, {"title": "Changed title", "status": "closed"}, actor_id=engineer.id,
            )
        db.session.rollback()
        fresh = db.session.get(Defect, defect.id)
        assert fresh.status == "new"
        assert fresh.title == "Cracked slab edge"
        assert len(_history(defect.id)) == 1

    def test_invalid_assignee_is_atomic(self, defect, engineer):
        with pytest.raises(NotFoundError):
            defect_service.update_defect(
                defect.id, {"priority": "low", "assignee_id": 4242}, actor_id=engineer.id,
            )
        db.session.rollback()
        assert db.session.get(Defect, defect.id).priority == "high"

    def test_walk_to_closed_stamps_resolved_at(self, defect, engineer):
        for status in ("in_progress", "review", "closed"):
            defect_service.update_defect(defect.id, {"status": status}, actor_id=engineer.id)
            db.session.commit()
        assert defect.status == "closed"
        assert defect.resolved_at is not None
        assert defect.resolved_at >= defect.created_at
        statuses = [(e.old_value, e.new_value) for e in _history(defect.id) if e.field == "status"]
        assert statuses == [(None, "new"), ("new", "in_progress"),
                            ("in_progress", "review"), ("review", "closed")]

    def test_closed_cannot_reopen(self, defect, engineer):
        for status in ("in_progress", "review", "closed"):
            defect_service.update_defect(defect.id, {"status": status}, actor_id=engineer.id)
            db.session.commit()
        with pytest.raises(InvalidTransitionError):
            defect_service.update_defect(defect.id, {"status": "in_progress"}, actor_id=engineer.id)
        db.session.rollback()
        assert db.session.get(Defect, defect.id).status == "closed"

    def test_unknown_status(self, defect, engineer):
        with pytest.raises(ValidationError):
            defect_service.update_defect(defect.id, {"status": "done"}, actor_id=engineer.id)

    def test_clear_assignee(self, project, engineer, other_engineer):
        d = defect_service.create_defect(
            {"project_id": project.id, "title": "Assigned one", "assignee_id": other_engineer.id},
            actor_id=engineer.id,
        )
        db.session.commit()
        defect_service.update_defect(d.id, {"assignee_id": None}, actor_id=engineer.id)
        db.session.commit()
        assert d.assignee_id is None
        entry = _history(d.id)[-1]
        assert (entry.field, entry.new_value) == ("assignee_id", None)

    def test_missing_defect(self, engineer):
        with pytest.raises(NotFoundError):
            defect_service.update_defect(999, {"title": "Whatever"}, actor_id=engineer.id)


class TestDeleteAndComments:
    def test_delete_cascades(self, defect, engineer, manager):
        defect_service.add_comment(defect.id, "Photo attached", actor_id=engineer.id)
        db.session.commit()
        defect_service.delete_defect(defect.id, actor_id=manager.id)
        db.session.commit()
        assert db.session.get(Defect, defect.id) is None
        assert Comment.query.filter_by(defect_id=defect.id).count() == 0
        assert ChangeHistoryEntry.query.filter_by(defect_id=defect.id).count() == 0

    def test_comment_trimmed(self, defect, observer):
        c = defect_service.add_comment(defect.id, "  Needs sign-off  ", actor_id=observer.id)
        db.session.commit()
        assert c.content == "Needs sign-off"
        assert c.user_id == observer.id

    @pytest.mark.parametrize("content", ["", "   ", None, "x" * 5001])
    def test_comment_invalid(self, content, defect, observer):
        with pytest.raises(ValidationError):
            defect_service.add_comment(defect.id, content, actor_id=observer.id)

    def test_comment_on_missing_defect(self, observer):
        with pytest.raises(NotFoundError):
            defect_service.add_comment(999, "Hello", actor_id=observer.id)
