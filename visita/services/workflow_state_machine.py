"""
Church Workflow State Machine

Two concerns, both pure (no store access, no side effects):

  1. Legality: is ``(from_status, to_status)`` allowed for the actor's role,
     and are the transition's conditions (note present, heritage
     designation) met?
  2. Classification: *why* did the change happen? The same raw
     ``(from, to)`` pair can mean different things depending on who
     performed it: a parish moving ``pending → pending`` is a resubmission,
     a diocesan office doing the same is a revision request.

Usage:
    from visita.services.workflow_state_machine import (
        ChurchWorkflowStateMachine, TransitionContext, classify_transition,
    )

    kind = classify_transition("draft", "pending", "parish")
    check = ChurchWorkflowStateMachine().validate(context)
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from visita.models.church import ChurchStatus, Role

DRAFT = ChurchStatus.DRAFT.value
PENDING = ChurchStatus.PENDING.value
UNDER_REVIEW = ChurchStatus.UNDER_REVIEW.value
HERITAGE_REVIEW = ChurchStatus.HERITAGE_REVIEW.value
APPROVED = ChurchStatus.APPROVED.value
NEEDS_REVISION = ChurchStatus.NEEDS_REVISION.value
REJECTED = ChurchStatus.REJECTED.value

PARISH = Role.PARISH.value
DIOCESAN_OFFICE = Role.DIOCESAN_OFFICE.value
HERITAGE_REVIEWER = Role.HERITAGE_REVIEWER.value


class TransitionKind(str, Enum):
    SUBMITTED_FOR_REVIEW = "SubmittedForReview"
    FORWARDED_TO_HERITAGE_REVIEW = "ForwardedToHeritageReview"
    HERITAGE_VALIDATED = "HeritageValidated"
    APPROVED_DIRECTLY = "ApprovedDirectly"
    REVISION_REQUESTED = "RevisionRequested"
    UNCLASSIFIED = "Unclassified"


def classify_transition(from_status: str, to_status: str, actor_role: str) -> TransitionKind:
    """Classify a status change. First matching rule wins."""
    # A parish landing on pending from anywhere but draft is a resubmission
    if (
        (from_status == PENDING and to_status == UNDER_REVIEW)
        or (from_status == DRAFT and to_status in (PENDING, UNDER_REVIEW))
        or (to_status == UNDER_REVIEW and from_status not in (HERITAGE_REVIEW, APPROVED))
        or (actor_role == PARISH and to_status == PENDING and from_status != DRAFT)
    ):
        return TransitionKind.SUBMITTED_FOR_REVIEW

    if to_status == HERITAGE_REVIEW:
        return TransitionKind.FORWARDED_TO_HERITAGE_REVIEW

    if from_status == HERITAGE_REVIEW and to_status == APPROVED:
        return TransitionKind.HERITAGE_VALIDATED

    if to_status == APPROVED and from_status in (PENDING, UNDER_REVIEW):
        return TransitionKind.APPROVED_DIRECTLY

    if to_status == PENDING and from_status != DRAFT and actor_role != PARISH:
        return TransitionKind.REVISION_REQUESTED

    return TransitionKind.UNCLASSIFIED


# ═════════════════════════════════════════════════════════════════════════════
# Transition table
# ═════════════════════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class TransitionContext:
    """Everything the legality check needs to know about a requested change."""
    current_status: str
    target_status: str
    actor_role: str
    is_heritage: bool = False
    note: str | None = None


@dataclass(frozen=True)
class TransitionCheck:
    valid: bool
    reason: str | None = None

    def to_dict(self) -> dict:
        return {"valid": self.valid, "reason": self.reason}


@dataclass(frozen=True)
class WorkflowTransition:
    from_status: str
    to_status: str
    required_roles: frozenset[str]
    description: str
    label: str
    requires_note: bool = False
    condition: Callable[[TransitionContext], bool] | None = None
    condition_reason: str | None = None


def _is_heritage(ctx: TransitionContext) -> bool:
    return ctx.is_heritage


def _not_heritage(ctx: TransitionContext) -> bool:
    return not ctx.is_heritage


def _t(from_status, to_status, roles, description, label, **kw) -> WorkflowTransition:
    return WorkflowTransition(from_status, to_status, frozenset(roles), description, label, **kw)


_HERITAGE_ONLY = "Only heritage-designated churches (ICP/NCT) go to heritage review"
_NON_HERITAGE_ONLY = "Heritage-designated churches must be validated through heritage review"

WORKFLOW_TRANSITIONS: tuple[WorkflowTransition, ...] = (
    # Parish submissions
    _t(DRAFT, PENDING, [PARISH],
       "Submit church profile for initial review", "Submit for Review"),
    _t(DRAFT, UNDER_REVIEW, [PARISH],
       "Submit church profile directly into review", "Submit for Review"),
    _t(PENDING, PENDING, [PARISH],
       "Resubmit church profile after making changes", "Resubmit"),
    _t(NEEDS_REVISION, PENDING, [PARISH],
       "Resubmit church profile after revisions", "Resubmit"),

    # Diocesan office review
    _t(PENDING, UNDER_REVIEW, [DIOCESAN_OFFICE],
       "Start reviewing the submitted profile", "Start Review"),
    _t(PENDING, APPROVED, [DIOCESAN_OFFICE],
       "Approve church directly (non-heritage churches)", "Approve & Publish",
       condition=_not_heritage, condition_reason=_NON_HERITAGE_ONLY),
    _t(UNDER_REVIEW, APPROVED, [DIOCESAN_OFFICE],
       "Approve church directly (non-heritage churches)", "Approve & Publish",
       condition=_not_heritage, condition_reason=_NON_HERITAGE_ONLY),
    _t(PENDING, HERITAGE_REVIEW, [DIOCESAN_OFFICE],
       "Forward to heritage reviewer for heritage validation", "Send to Heritage Review",
       condition=_is_heritage, condition_reason=_HERITAGE_ONLY),
    _t(UNDER_REVIEW, HERITAGE_REVIEW, [DIOCESAN_OFFICE],
       "Forward to heritage reviewer for heritage validation", "Send to Heritage Review",
       condition=_is_heritage, condition_reason=_HERITAGE_ONLY),
    _t(UNDER_REVIEW, PENDING, [DIOCESAN_OFFICE],
       "Send back to the parish for revision", "Request Revision"),
    _t(PENDING, NEEDS_REVISION, [DIOCESAN_OFFICE],
       "Mark profile as needing revision", "Needs Revision", requires_note=True),
    _t(UNDER_REVIEW, NEEDS_REVISION, [DIOCESAN_OFFICE],
       "Mark profile as needing revision", "Needs Revision", requires_note=True),
    _t(PENDING, REJECTED, [DIOCESAN_OFFICE],
       "Reject the church profile", "Reject", requires_note=True),
    _t(UNDER_REVIEW, REJECTED, [DIOCESAN_OFFICE],
       "Reject the church profile", "Reject", requires_note=True),
    _t(NEEDS_REVISION, REJECTED, [DIOCESAN_OFFICE],
       "Reject the church profile", "Reject", requires_note=True),

    # Heritage review
    _t(HERITAGE_REVIEW, APPROVED, [HERITAGE_REVIEWER],
       "Approve after heritage validation", "Validate & Publish"),
    _t(HERITAGE_REVIEW, PENDING, [HERITAGE_REVIEWER],
       "Send back to the parish for heritage corrections", "Request Revision"),

    # Published churches
    _t(APPROVED, HERITAGE_REVIEW, [DIOCESAN_OFFICE],
       "Send published church for heritage re-evaluation (explanation required)",
       "Re-evaluate Heritage", requires_note=True),
    _t(APPROVED, DRAFT, [DIOCESAN_OFFICE],
       "Unpublish church (reason required)", "Unpublish", requires_note=True),
)

STATUS_INFO = {
    DRAFT: {"label": "Draft", "description": "Profile not yet submitted"},
    PENDING: {"label": "Pending Review", "description": "Awaiting diocesan office review"},
    UNDER_REVIEW: {"label": "Under Review", "description": "Being reviewed by the diocesan office"},
    HERITAGE_REVIEW: {"label": "Heritage Review", "description": "Under review by the heritage reviewer"},
    APPROVED: {"label": "Published", "description": "Church profile is live and public"},
    NEEDS_REVISION: {"label": "Needs Revision", "description": "Returned to the parish for changes"},
    REJECTED: {"label": "Rejected", "description": "Church profile was rejected"},
}


class ChurchWorkflowStateMachine:
    """Role-gated transition table, grouped by starting status."""

    def __init__(self, transitions=WORKFLOW_TRANSITIONS):
        self._by_from: dict[str, list[WorkflowTransition]] = {}
        for transition in transitions:
            self._by_from.setdefault(transition.from_status, []).append(transition)

    def valid_transitions(self, from_status: str, role: str) -> list[WorkflowTransition]:
        """Transitions out of ``from_status`` that ``role`` may perform."""
        return [t for t in self._by_from.get(from_status, []) if role in t.required_roles]

    def find(self, from_status: str, to_status: str, role: str) -> WorkflowTransition | None:
        for t in self.valid_transitions(from_status, role):
            if t.to_status == to_status:
                return t
        return None

    def validate(self, ctx: TransitionContext) -> TransitionCheck:
        """Check role, table membership and conditions for ``ctx``."""
        candidates = [t for t in self._by_from.get(ctx.current_status, [])
                      if t.to_status == ctx.target_status]
        if not candidates:
            return TransitionCheck(
                False,
                f"Transition from '{ctx.current_status}' to '{ctx.target_status}' is not allowed",
            )

        transition = self.find(ctx.current_status, ctx.target_status, ctx.actor_role)
        if transition is None:
            return TransitionCheck(
                False,
                f"Role '{ctx.actor_role}' is not authorized to move a church "
                f"from '{ctx.current_status}' to '{ctx.target_status}'",
            )

        if transition.requires_note and not (ctx.note or "").strip():
            return TransitionCheck(False, "A note explaining this change is required")

        if transition.condition and not transition.condition(ctx):
            return TransitionCheck(False, transition.condition_reason or "Transition conditions not met")

        return TransitionCheck(True)

    def next_actions(self, status: str, role: str, *, is_heritage: bool | None = None) -> list[dict]:
        """Actions offered to ``role`` for a church in ``status``.

        When ``is_heritage`` is given, actions whose heritage condition
        would fail are left out.
        """
        actions = []
        for t in self.valid_transitions(status, role):
            if is_heritage is not None and t.condition is not None:
                candidate = TransitionContext(status, t.to_status, role, is_heritage=is_heritage)
                if not t.condition(candidate):
                    continue
            actions.append({
                "action": t.to_status,
                "label": t.label,
                "description": t.description,
                "requires_note": t.requires_note,
            })
        return actions

    @staticmethod
    def status_info(status: str) -> dict:
        return STATUS_INFO.get(status, {"label": status, "description": "Unknown status"})
