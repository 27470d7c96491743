"""Notification template and action-URL tables."""

import pytest

from visita.models.notification import NOTIFICATION_PRIORITIES, NOTIFICATION_TYPES
from visita.services.notification_templates import (
    ACTION_URLS,
    DEFAULT_TEMPLATES,
    action_url_for,
    interpolate,
)


class TestInterpolate:
    def test_substitutes_known_placeholders(self):
        assert interpolate("Hello {name}, see {churchName}", {"name": "Ana", "churchName": "Baclayon"}) \
            == "Hello Ana, see Baclayon"

    def test_unknown_placeholder_left_intact(self):
        assert interpolate("Reason: {reason}", {}) == "Reason: {reason}"

    def test_non_string_value_left_intact(self):
        assert interpolate("{rating} stars", {"rating": 5}) == "{rating} stars"

    def test_repeated_placeholder(self):
        assert interpolate("{a}-{a}", {"a": "x"}) == "x-x"


class TestTables:
    def test_every_type_has_a_template(self):
        assert set(DEFAULT_TEMPLATES) == NOTIFICATION_TYPES

    def test_every_type_has_an_action_url(self):
        assert set(ACTION_URLS) == NOTIFICATION_TYPES

    @pytest.mark.parametrize("ntype", sorted(NOTIFICATION_TYPES))
    def test_template_priority_is_known(self, ntype):
        assert DEFAULT_TEMPLATES[ntype].priority in NOTIFICATION_PRIORITIES

    def test_workflow_error_is_urgent(self):
        assert DEFAULT_TEMPLATES["workflow_error"].priority == "urgent"

    def test_render_submission(self):
        title, message = DEFAULT_TEMPLATES["church_submitted"].render({"churchName": "Loboc Church"})
        assert title == "New Church Submission: Loboc Church"
        assert '"Loboc Church"' in message


class TestActionUrl:
    def test_with_church(self):
        assert action_url_for("church_submitted", "loboc") == "/diocese?church=loboc"

    def test_without_church(self):
        assert action_url_for("heritage_review_assigned") == "/heritage"

    def test_unknown_type_falls_back_to_root(self):
        assert action_url_for("nope") == "/"
