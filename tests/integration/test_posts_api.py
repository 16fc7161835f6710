from __future__ import annotations

from src.notifications.errors import TokenStoreError


def test_device_registration_endpoints(test_ctx) -> None:
    client = test_ctx["client"]

    created = client.put("/api/devices/u1", json={"token": "t1"})
    assert created.status_code == 200
    assert created.json()["user_id"] == "u1"
    assert created.json()["token"] == "t1"

    updated = client.put("/api/devices/u1", json={"token": "t1-new"})
    assert updated.json()["token"] == "t1-new"

    assert client.put("/api/devices/u1", json={"token": ""}).status_code == 422

    removed = client.delete("/api/devices/u1")
    assert removed.status_code == 200
    assert removed.json() == {"user_id": "u1", "removed": True}
    assert client.delete("/api/devices/u1").json()["removed"] is False


def test_creating_a_post_broadcasts_to_all_devices(test_ctx) -> None:
    client = test_ctx["client"]
    provider = test_ctx["provider"]
    client.put("/api/devices/u1", json={"token": "t1"})
    client.put("/api/devices/u2", json={"token": "t2"})

    response = client.post("/api/posts", json={"petName": "Max"})

    assert response.status_code == 201
    post = response.json()
    assert post["petName"] == "Max"
    assert post["id"]
    assert provider.calls == [["t1", "t2"]]

    fetched = client.get(f"/api/posts/{post['id']}")
    assert fetched.status_code == 200
    assert fetched.json()["petName"] == "Max"
    assert client.get("/api/posts/missing").status_code == 404


def test_post_created_event_prunes_invalid_tokens(test_ctx) -> None:
    client = test_ctx["client"]
    test_ctx["provider"].invalid_tokens.add("t2")
    client.put("/api/devices/u1", json={"token": "t1"})
    client.put("/api/devices/u2", json={"token": "t2"})

    response = client.post("/api/events/post-created", json={"id": "p1", "petName": "Max"})

    assert response.status_code == 200
    summary = response.json()
    assert summary["post_id"] == "p1"
    assert summary["delivered"] == 1
    assert summary["invalid"] == 1
    assert summary["pruned"] == 1
    assert [(r["token"], r["success"], r["error_kind"]) for r in summary["results"]] == [
        ("t1", True, None),
        ("t2", False, "invalid_token"),
    ]
    assert [r.token for r in test_ctx["service"].token_store.list_all()] == ["t1"]


def test_post_created_event_without_id_is_rejected(test_ctx) -> None:
    response = test_ctx["client"].post("/api/events/post-created", json={"petName": "Max"})

    assert response.status_code == 400


def test_token_store_outage_asks_for_redelivery(test_ctx, monkeypatch) -> None:
    def unavailable():
        raise TokenStoreError("list_all", "database unavailable")

    monkeypatch.setattr(test_ctx["service"].token_store, "list_all", unavailable)

    response = test_ctx["client"].post("/api/events/post-created", json={"id": "p1", "petName": "Max"})

    assert response.status_code == 503


def test_overlong_user_id_is_a_client_error(test_ctx) -> None:
    client = test_ctx["client"]
    user_id = "u" * 129

    assert client.put(f"/api/devices/{user_id}", json={"token": "t1"}).status_code == 400
    assert client.delete(f"/api/devices/{user_id}").status_code == 400
    assert client.put(f"/api/devices/{'u' * 128}", json={"token": "t1"}).status_code == 200


def test_overlong_pet_name_event_is_rejected_without_sending(test_ctx) -> None:
    client = test_ctx["client"]
    client.put("/api/devices/u1", json={"token": "t1"})

    response = client.post("/api/events/post-created", json={"id": "p1", "petName": "x" * 500})

    assert response.status_code == 400
    assert test_ctx["provider"].calls == []
    assert [r.token for r in test_ctx["service"].token_store.list_all()] == ["t1"]
