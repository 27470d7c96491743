"""
Notification API tests.

Listing is scoped to the caller; an unknown caller gets an empty list.
Read state, bulk operations and direct creation by the diocesan office.
"""

import pytest

from visita.models.notification import by_role, by_user

BASE = "/api/v1/notifications"


@pytest.fixture()
def chancery(seed_staff):
    return seed_staff("chancery-tagbilaran", "diocesan_office", name="Tagbilaran Chancery")


@pytest.fixture()
def loboc(seed_staff):
    return seed_staff("loboc-sec", "parish", parish_id="loboc")


@pytest.fixture()
def baclayon(seed_staff):
    return seed_staff("baclayon-sec", "parish", parish_id="baclayon")


@pytest.fixture()
def notices(engine):
    """Two diocese-wide parish notices and one for the Loboc secretary only."""
    engine.create_notification("system_notification", "Retreat", "", by_role(["parish"], ["tagbilaran"]))
    engine.create_notification("system_notification", "Fiesta", "", by_role(["parish"], ["tagbilaran"]))
    direct = engine.create_notification("account_approved", "Welcome", "", by_user("loboc-sec"))
    return direct.created_ids[0]


class TestListing:
    def test_unknown_caller_gets_empty_list(self, client, notices):
        res = client.get(BASE)
        assert res.status_code == 200
        assert res.get_json() == {"items": [], "total": 0}

    def test_scoped_to_caller(self, client, notices, loboc, baclayon):
        loboc_titles = [i["title"] for i in client.get(BASE, headers=loboc).get_json()["items"]]
        baclayon_titles = [i["title"] for i in client.get(BASE, headers=baclayon).get_json()["items"]]
        assert loboc_titles == ["Welcome", "Fiesta", "Retreat"]
        assert baclayon_titles == ["Fiesta", "Retreat"]

    def test_page_size(self, client, notices, loboc):
        body = client.get(f"{BASE}?page_size=1", headers=loboc).get_json()
        assert body["total"] == 1
        assert body["items"][0]["title"] == "Welcome"

    @pytest.mark.parametrize("raw", ["0", "101", "many"])
    def test_bad_page_size(self, client, loboc, raw):
        res = client.get(f"{BASE}?page_size={raw}", headers=loboc)
        assert res.status_code == 400
        assert res.get_json()["code"] == "ERR_VALIDATION_INVALID"

    def test_unread_count(self, client, notices, loboc):
        assert client.get(f"{BASE}/unread-count", headers=loboc).get_json() == {"unread_count": 3}
        assert client.get(f"{BASE}/unread-count").get_json() == {"unread_count": 0}


class TestReadState:
    def test_mark_read(self, client, notices, loboc):
        res = client.post(f"{BASE}/{notices}/read", headers=loboc)
        assert res.status_code == 200
        assert res.get_json()["is_read"] is True
        again = client.post(f"{BASE}/{notices}/read", headers=loboc)
        assert again.get_json()["readBy"] == ["loboc-sec"]

        unread = client.get(f"{BASE}?unread_only=true", headers=loboc).get_json()["items"]
        assert [i["title"] for i in unread] == ["Fiesta", "Retreat"]

    def test_mark_read_missing(self, client, loboc):
        res = client.post(f"{BASE}/ghost/read", headers=loboc)
        assert res.status_code == 404

    def test_mark_read_requires_identity(self, client, notices):
        assert client.post(f"{BASE}/{notices}/read").status_code == 401

    def test_read_all_is_per_viewer(self, client, notices, loboc, baclayon):
        assert client.post(f"{BASE}/read-all", headers=loboc).get_json() == {"marked": 3}
        assert client.get(f"{BASE}/unread-count", headers=loboc).get_json()["unread_count"] == 0
        assert client.get(f"{BASE}/unread-count", headers=baclayon).get_json()["unread_count"] == 2

    def test_clear_all(self, client, notices, loboc, baclayon):
        assert client.delete(BASE, headers=loboc).get_json() == {"deleted": 3}
        assert client.get(BASE, headers=loboc).get_json()["total"] == 0
        assert client.get(BASE, headers=baclayon).get_json()["total"] == 0

    def test_clear_all_requires_identity(self, client):
        assert client.delete(BASE).status_code == 401


class TestDirectCreate:
    def test_office_broadcasts_to_roles(self, client, chancery, loboc, seed_staff):
        talibon = seed_staff("calape-sec", "parish", diocese="talibon", parish_id="calape")
        res = client.post(BASE, json={"title": "Holy Week schedule", "message": "Submit by Friday",
                                      "roles": ["parish"]}, headers=chancery)
        assert res.status_code == 201
        assert len(res.get_json()["notification_ids"]) == 1

        items = client.get(BASE, headers=loboc).get_json()["items"]
        assert [i["title"] for i in items] == ["Holy Week schedule"]
        assert items[0]["recipients"] == {"roles": ["parish"], "dioceses": ["tagbilaran"]}
        assert client.get(BASE, headers=talibon).get_json()["total"] == 0

    def test_office_addresses_users(self, client, chancery, loboc, baclayon):
        res = client.post(BASE, json={"title": "Hello", "user_ids": ["baclayon-sec"]}, headers=chancery)
        assert res.status_code == 201
        assert client.get(BASE, headers=baclayon).get_json()["total"] == 1
        assert client.get(BASE, headers=loboc).get_json()["total"] == 0

    def test_parish_cannot_create(self, client, loboc):
        res = client.post(BASE, json={"title": "x", "roles": ["parish"]}, headers=loboc)
        assert res.status_code == 403
        assert res.get_json()["code"] == "ERR_FORBIDDEN"

    def test_validation(self, client, chancery):
        assert client.post(BASE, json={"roles": ["parish"]}, headers=chancery).status_code == 400
        assert client.post(BASE, json={"title": "x"}, headers=chancery).status_code == 400
        assert client.post(BASE, json={"title": "x", "roles": ["parish"], "user_ids": ["a"]},
                           headers=chancery).status_code == 400
        assert client.post(BASE, json={"title": "x", "type": "gossip", "roles": ["parish"]},
                           headers=chancery).status_code == 400

    def test_bad_priority_is_422(self, client, chancery):
        res = client.post(BASE, json={"title": "x", "roles": ["parish"], "priority": "meh"},
                          headers=chancery)
        assert res.status_code == 422
