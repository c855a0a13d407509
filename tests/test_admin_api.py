from support_inbox.conversations.models import Role, Status
from support_inbox.triage import DEFAULT_RULES


def test_audit_log_listing(api_client, auth, inbox):
    first = inbox.add_conversation()
    second = inbox.add_conversation()
    inbox.service.change_status(first.id, Status.WORKING, actor_id="agent-a")
    inbox.service.change_status(second.id, Status.CLOSED, actor_id="agent-b")

    everything = api_client.get("/api/audit-logs", headers=auth.header(Role.ADMIN))
    assert everything.status_code == 200
    data = everything.json()
    assert [item["conversation_id"] for item in data["items"]] == [second.id, first.id]
    assert data["limit"] == 100

    by_user = api_client.get(
        "/api/audit-logs", params={"userId": "agent-a"}, headers=auth.header(Role.ADMIN)
    )
    assert [item["user_id"] for item in by_user.json()["items"]] == ["agent-a"]

    by_conversation = api_client.get(
        "/api/audit-logs",
        params={"conversationId": second.id},
        headers=auth.header(Role.ADMIN),
    )
    assert len(by_conversation.json()["items"]) == 1

    paged = api_client.get(
        "/api/audit-logs", params={"limit": 1, "offset": 1}, headers=auth.header(Role.ADMIN)
    )
    assert [item["conversation_id"] for item in paged.json()["items"]] == [first.id]


def test_audit_log_requires_admin(api_client, auth):
    assert api_client.get("/api/audit-logs", headers=auth.header(Role.AGENT)).status_code == 403


def test_triage_rules_endpoint(api_client, auth):
    resp = api_client.get("/api/admin/triage-rules", headers=auth.header(Role.ADMIN))

    assert resp.status_code == 200
    assert resp.json() == DEFAULT_RULES.as_dict()


def test_user_management(api_client, auth):
    created = api_client.post(
        "/api/admin/users",
        json={
            "email": "New.Agent@example.com",
            "name": "New Agent",
            "password": "Password123!",
            "role": "AGENT",
        },
        headers=auth.header(Role.ADMIN),
    )
    assert created.status_code == 201
    user = created.json()
    assert user["email"] == "new.agent@example.com"
    assert user["role"] == "AGENT"
    assert user["is_active"] is True

    duplicate = api_client.post(
        "/api/admin/users",
        json={
            "email": "new.agent@example.com",
            "name": "Again",
            "password": "Password123!",
        },
        headers=auth.header(Role.ADMIN),
    )
    assert duplicate.status_code == 409

    updated = api_client.patch(
        f"/api/admin/users/{user['id']}",
        json={"role": "VIEWER", "is_active": False},
        headers=auth.header(Role.ADMIN),
    )
    assert updated.status_code == 200
    assert updated.json()["role"] == "VIEWER"
    assert updated.json()["is_active"] is False

    listing = api_client.get("/api/admin/users", headers=auth.header(Role.ADMIN))
    assert "new.agent@example.com" in [u["email"] for u in listing.json()]


def test_admin_cannot_demote_self(api_client, auth):
    resp = api_client.patch(
        f"/api/admin/users/{auth.user_id(Role.ADMIN)}",
        json={"role": "AGENT"},
        headers=auth.header(Role.ADMIN),
    )

    assert resp.status_code == 400


def test_user_management_requires_admin(api_client, auth):
    resp = api_client.get("/api/admin/users", headers=auth.header(Role.AGENT))

    assert resp.status_code == 403


def test_tag_catalogue(api_client, auth):
    created = api_client.post(
        "/api/tags", json={"name": "要注意", "color": "#FF0000"}, headers=auth.header(Role.AGENT)
    )
    assert created.status_code == 201
    tag_id = created.json()["id"]

    duplicate = api_client.post(
        "/api/tags", json={"name": "要注意"}, headers=auth.header(Role.AGENT)
    )
    assert duplicate.status_code == 400

    bad_color = api_client.post(
        "/api/tags", json={"name": "x", "color": "red"}, headers=auth.header(Role.AGENT)
    )
    assert bad_color.status_code == 422

    renamed = api_client.patch(
        f"/api/tags/{tag_id}", json={"name": "継続中"}, headers=auth.header(Role.AGENT)
    )
    assert renamed.json()["name"] == "継続中"

    listing = api_client.get("/api/tags", headers=auth.header(Role.VIEWER))
    assert [t["name"] for t in listing.json()] == ["継続中"]

    viewer = api_client.post("/api/tags", json={"name": "x"}, headers=auth.header(Role.VIEWER))
    assert viewer.status_code == 403

    deleted = api_client.delete(f"/api/tags/{tag_id}", headers=auth.header(Role.AGENT))
    assert deleted.status_code == 204
    assert api_client.delete(f"/api/tags/{tag_id}", headers=auth.header(Role.AGENT)).status_code == 404


def test_contact_memo(api_client, auth, inbox):
    convo = inbox.add_conversation()

    resp = api_client.patch(
        f"/api/contacts/{convo.contact_id}/memo",
        json={"memo": "電話対応希望"},
        headers=auth.header(Role.AGENT),
    )

    assert resp.status_code == 200
    assert resp.json()["memo"] == "電話対応希望"
    assert inbox.audit.entries[-1].changes.contact_id == convo.contact_id

    missing = api_client.patch(
        "/api/contacts/missing/memo", json={"memo": "x"}, headers=auth.header(Role.AGENT)
    )
    assert missing.status_code == 404


def test_health_and_version(api_client):
    assert api_client.get("/api/health").json() == {"status": "ok"}
    assert "version" in api_client.get("/api/version").json()
