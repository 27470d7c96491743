"""
Notification templates and action URLs.

Static tables only: one template per notification type, one destination
path per type. Interpolation is plain ``{placeholder}`` substitution with
no conditional logic; placeholders without a string value are left as-is.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from visita.models.notification import NotificationPriority, NotificationType

_PLACEHOLDER = re.compile(r"\{(\w+)\}")


@dataclass(frozen=True)
class NotificationTemplate:
    type: str
    title_template: str
    message_template: str
    priority: str

    def render(self, values: dict) -> tuple[str, str]:
        return interpolate(self.title_template, values), interpolate(self.message_template, values)


def interpolate(template: str, values: dict) -> str:
    """Replace ``{key}`` with ``values[key]`` when it is a string."""

    def _sub(match: re.Match) -> str:
        value = values.get(match.group(1))
        return value if isinstance(value, str) else match.group(0)

    return _PLACEHOLDER.sub(_sub, template)


_T = NotificationType
_P = NotificationPriority

DEFAULT_TEMPLATES: dict[str, NotificationTemplate] = {
    t.type: t
    for t in (
        NotificationTemplate(
            _T.CHURCH_SUBMITTED.value,
            "New Church Submission: {churchName}",
            'Parish has submitted "{churchName}" for review. Please review the church '
            "profile and approve or request revisions.",
            _P.HIGH.value,
        ),
        NotificationTemplate(
            _T.HERITAGE_REVIEW_ASSIGNED.value,
            "Heritage Review Required: {churchName}",
            '"{churchName}" has been forwarded for heritage validation. Please verify the '
            "cultural and historical significance before approval.",
            _P.HIGH.value,
        ),
        NotificationTemplate(
            _T.HERITAGE_VALIDATED.value,
            "Heritage Validated: {churchName}",
            'The heritage reviewer has validated "{churchName}" as a heritage site. '
            "The church has been approved and published.",
            _P.MEDIUM.value,
        ),
        NotificationTemplate(
            _T.REVISION_REQUESTED.value,
            "Revision Requested: {churchName}",
            'Your church profile "{churchName}" requires revisions. Please check the '
            "feedback and resubmit for approval.",
            _P.HIGH.value,
        ),
        NotificationTemplate(
            _T.CHURCH_APPROVED.value,
            "Church Published: {churchName}",
            'Congratulations! "{churchName}" has been approved and is now live for public viewing.',
            _P.MEDIUM.value,
        ),
        NotificationTemplate(
            _T.CHURCH_UNPUBLISHED.value,
            "Church Unpublished: {churchName}",
            '"{churchName}" has been unpublished by the diocesan office. Reason: {reason}. '
            "You can republish it later by submitting for review again.",
            _P.HIGH.value,
        ),
        NotificationTemplate(
            _T.WORKFLOW_ERROR.value,
            "Workflow Issue: {churchName}",
            'An issue occurred while processing "{churchName}". Manual intervention may be required.',
            _P.URGENT.value,
        ),
        NotificationTemplate(
            _T.SYSTEM_NOTIFICATION.value,
            "{title}",
            "{message}",
            _P.MEDIUM.value,
        ),
        NotificationTemplate(
            _T.ACCOUNT_PENDING_APPROVAL.value,
            "New Staff Registration: {staffName}",
            '{staffName} ({position}) has registered for "{parishName}" and is awaiting '
            "account approval.",
            _P.HIGH.value,
        ),
        NotificationTemplate(
            _T.ACCOUNT_APPROVED.value,
            "Account Approved",
            "Your account has been approved by {actorName}. You can now sign in.",
            _P.MEDIUM.value,
        ),
        NotificationTemplate(
            _T.FEEDBACK_RECEIVED.value,
            "New Feedback: {churchName}",
            'A visitor left feedback on "{churchName}" ({rating} stars): {comment}',
            _P.LOW.value,
        ),
    )
}

ACTION_URLS: dict[str, str] = {
    _T.CHURCH_SUBMITTED.value: "/diocese",
    _T.HERITAGE_REVIEW_ASSIGNED.value: "/heritage",
    _T.HERITAGE_VALIDATED.value: "/diocese",
    _T.REVISION_REQUESTED.value: "/parish",
    _T.CHURCH_APPROVED.value: "/churches",
    _T.CHURCH_UNPUBLISHED.value: "/parish",
    _T.WORKFLOW_ERROR.value: "/diocese",
    _T.SYSTEM_NOTIFICATION.value: "/",
    _T.ACCOUNT_PENDING_APPROVAL.value: "/staff/pending",
    _T.ACCOUNT_APPROVED.value: "/",
    _T.FEEDBACK_RECEIVED.value: "/parish/feedback",
}


def action_url_for(notification_type: str, church_id: str | None = None,
                   action_urls: dict[str, str] = ACTION_URLS) -> str:
    """Destination path for ``notification_type``, with ``?church=`` when known."""
    base = action_urls.get(notification_type, "/")
    return f"{base}?church={church_id}" if church_id else base
