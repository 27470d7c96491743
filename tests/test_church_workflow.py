"""
Church workflow service tests.

End-to-end scenarios through the service layer:
    A. parish submits a draft               → SubmittedForReview, 1 notice to the office
    B. office forwards a heritage church    → ForwardedToHeritageReview, 1 notice to reviewers
    C. reviewer validates                   → HeritageValidated, 2 notices
    D. office returns a different church    → RevisionRequested, visible only to that parish

Plus: rejected transitions leave the record unchanged, notification
failures never undo a status change, audit entries, unpublish.
"""

from unittest.mock import patch

import pytest

from visita.core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    TransitionError,
    ValidationError,
)
from visita.models.church import CHURCHES, STATUS_AUDIT, Actor
from visita.models.notification import (
    NOTIFICATIONS,
    ByRole,
    ByRoleAndParish,
    NotificationRecord,
    ViewingUser,
)
from visita.store import EQUALS, Filter


def _notifications(store):
    return [NotificationRecord.from_document(d) for d in store.query(NOTIFICATIONS, [], descending=False)]


def _seed_church(store, church_id, status, classification="non_heritage", diocese="tagbilaran"):
    store.create(CHURCHES, {
        "name": f"{church_id.title()} Church",
        "status": status,
        "diocese": diocese,
        "classification": classification,
    }, doc_id=church_id)


# ═════════════════════════════════════════════════════════════════════════════
# END-TO-END SCENARIOS
# ═════════════════════════════════════════════════════════════════════════════

class TestScenarios:
    def test_a_parish_submits(self, workflow, store, parish_actor):
        church = workflow.create_church("Loboc Church", "tagbilaran", parish_actor, church_id="c1")
        assert church.status == "draft"

        updated = workflow.apply_transition("c1", "pending", parish_actor)
        assert updated.status == "pending"
        assert store.get(CHURCHES, "c1")["status"] == "pending"

        (notice,) = _notifications(store)
        assert notice.type == "church_submitted"
        assert notice.recipients == ByRole(frozenset({"diocesan_office"}), frozenset({"tagbilaran"}))

    def test_b_forward_to_heritage_review(self, workflow, store, chancery_actor):
        _seed_church(store, "c1", "under_review", classification="icp")
        workflow.apply_transition("c1", "heritage_review", chancery_actor)

        (notice,) = _notifications(store)
        assert notice.type == "heritage_review_assigned"
        assert notice.recipients == ByRole(frozenset({"heritage_reviewer"}), frozenset({"tagbilaran"}))

    def test_c_heritage_validated(self, workflow, store, heritage_actor):
        _seed_church(store, "c1", "heritage_review", classification="nct")
        updated = workflow.apply_transition("c1", "approved", heritage_actor)
        assert updated.status == "approved"

        recipients = {n.type: n.recipients for n in _notifications(store)}
        assert recipients == {
            "heritage_validated": ByRole(frozenset({"diocesan_office"}), frozenset({"tagbilaran"})),
            "church_approved": ByRoleAndParish(frozenset({"parish"}), frozenset({"tagbilaran"}), "c1"),
        }

    def test_d_revision_request_is_parish_scoped(self, workflow, store, reader, chancery_actor):
        _seed_church(store, "c2", "under_review")
        workflow.apply_transition("c2", "pending", chancery_actor, note="Please add the founding year")

        (notice,) = _notifications(store)
        assert notice.type == "revision_requested"

        c1_parish = ViewingUser(uid="c1-sec", role="parish", diocese="tagbilaran", parish_id="c1")
        c2_parish = ViewingUser(uid="c2-sec", role="parish", diocese="tagbilaran", parish_id="c2")
        assert reader.resolve_visible(c1_parish) == []
        assert [r.id for r in reader.resolve_visible(c2_parish)] == [notice.id]

    def test_full_heritage_lifecycle(self, workflow, store, parish_actor, chancery_actor, heritage_actor):
        workflow.create_church("Baclayon Church", "tagbilaran", parish_actor,
                               classification="nct", church_id="baclayon")
        workflow.apply_transition("baclayon", "pending", parish_actor)
        workflow.apply_transition("baclayon", "under_review", chancery_actor)
        workflow.apply_transition("baclayon", "heritage_review", chancery_actor)
        final = workflow.apply_transition("baclayon", "approved", heritage_actor)

        assert final.status == "approved"
        assert [n.type for n in _notifications(store)] == [
            "church_submitted",
            "church_submitted",
            "heritage_review_assigned",
            "heritage_validated",
            "church_approved",
        ]


# ═════════════════════════════════════════════════════════════════════════════
# REJECTED TRANSITIONS
# ═════════════════════════════════════════════════════════════════════════════

class TestRejected:
    def test_illegal_move_leaves_record_unchanged(self, workflow, store, parish_actor):
        _seed_church(store, "c1", "draft")
        before = store.get(CHURCHES, "c1")
        with pytest.raises(TransitionError) as exc:
            workflow.apply_transition("c1", "approved", parish_actor)
        assert exc.value.from_status == "draft"
        assert exc.value.to_status == "approved"
        assert store.get(CHURCHES, "c1") == before
        assert _notifications(store) == []

    def test_heritage_church_cannot_be_approved_directly(self, workflow, store, chancery_actor):
        _seed_church(store, "c1", "under_review", classification="icp")
        with pytest.raises(TransitionError):
            workflow.apply_transition("c1", "approved", chancery_actor)
        assert store.get(CHURCHES, "c1")["status"] == "under_review"

    def test_other_diocese_office_rejected(self, workflow, store):
        _seed_church(store, "c1", "pending")
        talibon = Actor(id="chancery-talibon", display_name="Talibon", role="diocesan_office", diocese="talibon")
        with pytest.raises(TransitionError):
            workflow.apply_transition("c1", "under_review", talibon)

    def test_heritage_reviewer_serves_both_dioceses(self, workflow, store, heritage_actor):
        _seed_church(store, "t1", "heritage_review", classification="icp", diocese="talibon")
        updated = workflow.apply_transition("t1", "approved", heritage_actor)
        assert updated.status == "approved"
        assert store.get(CHURCHES, "t1")["status"] == "approved"

    def test_unknown_status(self, workflow, store, parish_actor):
        _seed_church(store, "c1", "draft")
        with pytest.raises(ValidationError):
            workflow.apply_transition("c1", "archived", parish_actor)

    def test_missing_church(self, workflow, parish_actor):
        with pytest.raises(NotFoundError):
            workflow.apply_transition("ghost", "pending", parish_actor)


# ═════════════════════════════════════════════════════════════════════════════
# SIDE EFFECTS
# ═════════════════════════════════════════════════════════════════════════════

class TestSideEffects:
    def test_failed_delivery_does_not_block_transition(self, workflow, store, parish_actor):
        _seed_church(store, "c1", "draft")
        real_create = store.create

        def no_notifications(collection, data, **kw):
            if collection == NOTIFICATIONS:
                raise RuntimeError("notifications offline")
            return real_create(collection, data, **kw)

        with patch.object(store, "create", side_effect=no_notifications):
            updated = workflow.apply_transition("c1", "pending", parish_actor)

        assert updated.status == "pending"
        assert store.get(CHURCHES, "c1")["status"] == "pending"
        assert _notifications(store) == []

    def test_failed_delivery_raises_workflow_error(self, workflow, store, engine, parish_actor):
        _seed_church(store, "c1", "draft")
        real_persist = engine._persist

        def fail_submission(record):
            if record.type == "church_submitted":
                raise RuntimeError("quota")
            return real_persist(record)

        with patch.object(engine, "_persist", side_effect=fail_submission):
            workflow.apply_transition("c1", "pending", parish_actor)

        (flag,) = _notifications(store)
        assert flag.type == "workflow_error"
        assert "church_submitted: quota" in flag.metadata["error"]

    def test_audit_entry_written(self, workflow, store, chancery_actor):
        _seed_church(store, "c1", "pending")
        workflow.apply_transition("c1", "rejected", chancery_actor, note="Duplicate entry")

        (entry,) = store.query(STATUS_AUDIT, [Filter("churchId", EQUALS, "c1")])
        assert entry["fromStatus"] == "pending"
        assert entry["toStatus"] == "rejected"
        assert entry["note"] == "Duplicate entry"
        assert entry["changedBy"]["uid"] == "chancery-tagbilaran"

    def test_audit_failure_is_not_fatal(self, workflow, store, parish_actor):
        _seed_church(store, "c1", "draft")
        real_create = store.create

        def no_audit(collection, data, **kw):
            if collection == STATUS_AUDIT:
                raise RuntimeError("audit store down")
            return real_create(collection, data, **kw)

        with patch.object(store, "create", side_effect=no_audit):
            assert workflow.apply_transition("c1", "pending", parish_actor).status == "pending"
        assert len(_notifications(store)) == 1

    def test_last_status_change_recorded(self, workflow, store, chancery_actor):
        _seed_church(store, "c1", "pending")
        workflow.apply_transition("c1", "under_review", chancery_actor)
        change = store.get(CHURCHES, "c1")["lastStatusChange"]
        assert change["fromStatus"] == "pending"
        assert change["changedBy"]["role"] == "diocesan_office"


# ═════════════════════════════════════════════════════════════════════════════
# CREATE / UNPUBLISH / NEXT ACTIONS
# ═════════════════════════════════════════════════════════════════════════════

class TestCreate:
    def test_only_parish_creates(self, workflow, chancery_actor):
        with pytest.raises(PermissionDeniedError):
            workflow.create_church("X", "tagbilaran", chancery_actor)

    def test_validation(self, workflow, parish_actor):
        with pytest.raises(ValidationError):
            workflow.create_church("  ", "tagbilaran", parish_actor)
        with pytest.raises(ValidationError):
            workflow.create_church("X", "cebu", parish_actor)
        with pytest.raises(ValidationError):
            workflow.create_church("X", "tagbilaran", parish_actor, classification="unesco")

    def test_duplicate_id(self, workflow, parish_actor):
        workflow.create_church("X", "tagbilaran", parish_actor, church_id="x")
        with pytest.raises(ConflictError):
            workflow.create_church("X again", "tagbilaran", parish_actor, church_id="x")

    def test_generated_id(self, workflow, store, parish_actor):
        church = workflow.create_church("Dauis Church", "tagbilaran", parish_actor, classification="icp")
        assert church.id
        assert church.is_heritage
        assert store.get(CHURCHES, church.id)["createdBy"] == "baclayon-parish"

    def test_list_by_status(self, workflow, store):
        _seed_church(store, "a", "pending")
        _seed_church(store, "b", "approved")
        _seed_church(store, "c", "pending", diocese="talibon")
        assert {c.id for c in workflow.list_churches(status="pending")} == {"a", "c"}
        assert [c.id for c in workflow.list_churches(status="pending", diocese="talibon")] == ["c"]


class TestUnpublish:
    def test_unpublish(self, workflow, store, chancery_actor):
        _seed_church(store, "c1", "approved")
        updated = workflow.unpublish_church("c1", chancery_actor, "Under restoration")
        assert updated.status == "draft"

        by_type = {n.type: n for n in _notifications(store)}
        assert set(by_type) == {"church_unpublished", "system_notification"}
        assert by_type["church_unpublished"].recipients.parish_id == "c1"

    def test_requires_reason(self, workflow, store, chancery_actor):
        _seed_church(store, "c1", "approved")
        with pytest.raises(TransitionError):
            workflow.unpublish_church("c1", chancery_actor, "")
        assert store.get(CHURCHES, "c1")["status"] == "approved"

    def test_only_published_churches(self, workflow, store, chancery_actor):
        _seed_church(store, "c1", "pending")
        with pytest.raises(TransitionError):
            workflow.unpublish_church("c1", chancery_actor, "reason")

    def test_transition_to_draft_is_an_unpublish(self, workflow, store, chancery_actor):
        _seed_church(store, "c1", "approved")
        updated = workflow.apply_transition("c1", "draft", chancery_actor, note="Under restoration")
        assert updated.status == "draft"
        assert {n.type for n in _notifications(store)} == {"church_unpublished", "system_notification"}

    def test_transition_to_draft_requires_reason(self, workflow, store, chancery_actor):
        _seed_church(store, "c1", "approved")
        with pytest.raises(TransitionError):
            workflow.apply_transition("c1", "draft", chancery_actor)
        assert store.get(CHURCHES, "c1")["status"] == "approved"
        assert _notifications(store) == []


class TestNextActions:
    def test_for_heritage_church(self, workflow, store):
        _seed_church(store, "c1", "under_review", classification="icp")
        result = workflow.list_next_actions("c1", "diocesan_office")
        assert result["status"] == "under_review"
        actions = {a["action"] for a in result["actions"]}
        assert "heritage_review" in actions and "approved" not in actions
