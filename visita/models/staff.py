"""
VISITA Church Registry
Staff profiles (the ``users`` collection).

A profile is created ``pending`` at registration and becomes ``active`` once
approved. Only active profiles act as viewers or actors.
"""

from __future__ import annotations

from enum import Enum

from visita.models.church import Actor

USERS = "users"


class StaffStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    INACTIVE = "inactive"


STAFF_STATUSES = {s.value for s in StaffStatus}


def actor_from_profile(profile: dict) -> Actor:
    return Actor(
        id=profile["id"],
        display_name=profile.get("name") or profile.get("email") or profile["id"],
        role=profile.get("role", ""),
        diocese=profile.get("diocese"),
    )
