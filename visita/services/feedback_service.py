"""Visitor feedback on published churches."""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timezone

from visita.core.exceptions import ValidationError
from visita.models.church import FEEDBACK, ChurchStatus
from visita.services.church_workflow_service import ChurchWorkflowService
from visita.services.notification_engine import NotificationEngine

logger = logging.getLogger(__name__)

MAX_COMMENT_LENGTH = 1000


class FeedbackService:
    def __init__(self, store, engine: NotificationEngine, churches: ChurchWorkflowService, *,
                 clock: Callable[[], datetime] | None = None) -> None:
        self.store = store
        self.engine = engine
        self.churches = churches
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def submit_feedback(self, church_id: str, data: dict) -> dict:
        """Store a rating (1-5) with an optional comment and tell the parish.

        Raises:
            NotFoundError: no such church.
            ValidationError: church not published, or bad rating/comment.
        """
        church = self.churches.get_church(church_id)
        if church.status != ChurchStatus.APPROVED.value:
            raise ValidationError("Feedback is only accepted for published churches",
                                  details={"status": church.status})

        rating = data.get("rating")
        if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
            raise ValidationError("rating must be an integer from 1 to 5", details={"rating": rating})
        comment = (data.get("comment") or "").strip()
        if len(comment) > MAX_COMMENT_LENGTH:
            raise ValidationError(f"comment must be at most {MAX_COMMENT_LENGTH} characters")

        now = self.clock()
        feedback = {
            "churchId": church.id,
            "rating": rating,
            "comment": comment,
            "visitorName": data.get("visitor_name") or "Anonymous",
            "createdAt": now.isoformat(),
        }
        feedback["id"] = self.store.create(FEEDBACK, feedback, created_at=now)
        logger.info("Feedback %s (%d stars) on church %s", feedback["id"], rating, church.id,
                    extra={"church_id": church.id})

        result = self.engine.notify_feedback_received(church, feedback)
        if not result.ok:
            logger.warning("Feedback notice for church %s not delivered", church.id,
                           extra={"church_id": church.id})
        return feedback
