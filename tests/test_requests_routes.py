from conftest import seed_user

REQUESTER = {"requesterId": "r1", "requesterName": "Acme Research", "requesterEmail": "r1@acme.org"}


def draft_body(**overrides):
    body = {
        "requestName": "Energy usage study",
        "requester": REQUESTER,
        "permissions": [{
            "dataset": "http://ex.org/dataset/energy",
            "actionRefinements": [{"name": "action", "value": "read"}],
        }],
        "selectedOntologies": [{"id": "default", "name": "Energy", "downloadURL": "ignored"}],
    }
    body.update(overrides)
    return body


async def create_draft(client, **overrides) -> str:
    response = await client.post("/api/requests", json=draft_body(**overrides))
    assert response.status_code == 201
    return response.json()["id"]


async def test_create_requires_requester(client):
    body = draft_body()
    del body["requester"]

    response = await client.post("/api/requests", json=body)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "requester" in response.json()["error"]


async def test_create_and_get_draft(client):
    request_id = await create_draft(client)

    response = await client.get(f"/api/requests/{request_id}")

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    data = body["data"]
    assert data["id"] == request_id
    assert data["status"] == "draft"
    assert data["lifecycleState"] == "draft"
    assert data["sentAt"] == ""
    assert data["createdAt"]
    assert data["owners"] == []
    assert data["ownersPending"] == []
    assert data["selectedOntologies"] == [{"id": "default", "name": "Energy"}]


async def test_get_unknown_request(client):
    for request_id in ("665f1c2e9b1e8a3d4c2b1a00", "not-an-object-id"):
        response = await client.get(f"/api/requests/{request_id}")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Request not found"}


async def test_update_and_delete(client):
    request_id = await create_draft(client)

    response = await client.put(f"/api/requests/{request_id}", json={"requestName": "Renamed"})
    assert response.status_code == 200
    assert response.json()["message"] == "Request updated successfully"

    data = (await client.get(f"/api/requests/{request_id}")).json()["data"]
    assert data["requestName"] == "Renamed"
    assert data["status"] == "draft"

    response = await client.delete(f"/api/requests/{request_id}")
    assert response.status_code == 200
    assert (await client.get(f"/api/requests/{request_id}")).status_code == 404
    assert (await client.delete(f"/api/requests/{request_id}")).status_code == 404


async def test_update_unknown_request(client):
    response = await client.put("/api/requests/665f1c2e9b1e8a3d4c2b1a00", json={"requestName": "x"})
    assert response.status_code == 404


async def test_list_filters(client, db):
    await seed_user(db, "owner", "o1", "o1@example.org")
    first = await create_draft(client)
    await create_draft(client, requester={**REQUESTER, "requesterId": "r2"})
    await client.post(f"/api/requests/{first}/send", json={"ownerIds": ["o1"]})

    by_requester = (await client.get("/api/requests", params={"uid": "r1", "role": "requester"})).json()
    assert [r["id"] for r in by_requester["requests"]] == [first]

    by_owner = (await client.get("/api/requests", params={"uid": "o1", "role": "owner"})).json()
    assert [r["id"] for r in by_owner["requests"]] == [first]

    drafts = (await client.get("/api/requests", params={"status": "draft"})).json()
    assert len(drafts["requests"]) == 1

    everything = (await client.get("/api/requests")).json()
    assert len(everything["requests"]) == 2


async def test_send_rejects_unknown_owner(client):
    request_id = await create_draft(client)

    response = await client.post(f"/api/requests/{request_id}/send", json={"ownerIds": ["ghost"]})

    assert response.status_code == 400
    assert "ghost" in response.json()["error"]


async def test_send_requires_an_owner(client):
    request_id = await create_draft(client)
    response = await client.post(f"/api/requests/{request_id}/send", json={})
    assert response.status_code == 400


async def test_send_by_email_and_skip_existing_owners(client, db):
    await seed_user(db, "owner", "o1", "o1@example.org")
    await seed_user(db, "owner", "o2", "o2@example.org")
    request_id = await create_draft(client)

    await client.post(f"/api/requests/{request_id}/send", json={"ownerEmails": ["o1@example.org"]})
    response = await client.post(f"/api/requests/{request_id}/send", json={"ownerIds": ["o1", "o2"]})

    data = response.json()["request"]
    assert data["owners"] == ["o1", "o2"]
    assert data["ownersPending"] == ["o1", "o2"]
    assert data["ownerEmails"] == ["o1@example.org", "o2@example.org"]

    again = await client.post(f"/api/requests/{request_id}/send", json={"ownerIds": ["o2"]})
    assert again.status_code == 400


async def test_send_by_email_ignores_case(client, db):
    await seed_user(db, "owner", "o1", "Alice@Example.org")
    await seed_user(db, "owner", "o2", "bob@example.org")
    request_id = await create_draft(client)

    response = await client.post(
        f"/api/requests/{request_id}/send", json={"ownerEmails": ["Alice@Example.org", " BOB@example.org"]}
    )

    assert response.status_code == 200
    data = response.json()["request"]
    assert data["owners"] == ["o1", "o2"]
    assert data["ownerEmails"] == ["Alice@Example.org", "bob@example.org"]


async def test_reject_marks_request_rejected(client, db):
    await seed_user(db, "owner", "o1", "o1@example.org")
    request_id = await create_draft(client)
    await client.post(f"/api/requests/{request_id}/send", json={"ownerIds": ["o1"]})

    response = await client.post(f"/api/requests/{request_id}/reject", json={"ownerId": "o1"})

    data = response.json()["request"]
    assert data["status"] == "rejected"
    assert data["ownersPending"] == []
    assert data["ownersRejected"] == ["o1"]
    assert data["lifecycleState"] == "rejected"

    resend = await client.post(f"/api/requests/{request_id}/send", json={"ownerIds": ["o1"]})
    assert resend.status_code == 400


async def test_owner_can_change_decision(client, db):
    await seed_user(db, "owner", "o1", "o1@example.org")
    request_id = await create_draft(client)
    await client.post(f"/api/requests/{request_id}/send", json={"ownerIds": ["o1"]})

    await client.post(f"/api/requests/{request_id}/accept", json={"ownerId": "o1"})
    response = await client.post(f"/api/requests/{request_id}/reject", json={"ownerId": "o1"})

    data = response.json()["request"]
    assert data["ownersAccepted"] == []
    assert data["ownersRejected"] == ["o1"]


async def test_decision_by_non_recipient_is_forbidden(client, db):
    await seed_user(db, "owner", "o1", "o1@example.org")
    request_id = await create_draft(client)
    await client.post(f"/api/requests/{request_id}/send", json={"ownerIds": ["o1"]})

    response = await client.post(f"/api/requests/{request_id}/accept", json={"ownerId": "o2"})

    assert response.status_code == 403


async def test_permissions_view(client):
    request_id = await create_draft(client)

    response = await client.get(f"/api/requests/{request_id}/permissions")

    [permission] = response.json()["permissions"]
    assert permission["dataset"] == "http://ex.org/dataset/energy"
    assert permission["action"] == "Unknown action"
    assert permission["actionRefinements"] == [{"name": "action", "value": "read"}]
    assert "constraints" not in permission


async def test_request_lifecycle_end_to_end(client, db, negotiation_api):
    await seed_user(db, "requester", "r1", "r1@acme.org", mongoUserId="mongo-r1")
    await seed_user(db, "owner", "o1", "o1@example.org", mongoUserId="mongo-o1")
    negotiation_api.on("POST", "/negotiation/create-with-initial", json={"id": "neg-1", "negotiation_status": "requested"})

    request_id = await create_draft(client)
    data = (await client.get(f"/api/requests/{request_id}")).json()["data"]
    assert data["status"] == "draft"

    sent = (await client.post(f"/api/requests/{request_id}/send", json={"ownerIds": ["o1"]})).json()["request"]
    assert sent["status"] == "sent"
    assert sent["ownersPending"] == ["o1"]
    assert sent["sentAt"]

    accepted = (await client.post(f"/api/requests/{request_id}/accept", json={"ownerId": "o1"})).json()["request"]
    assert accepted["ownersPending"] == []
    assert accepted["ownersAccepted"] == ["o1"]
    assert accepted["status"] == "sent"
    assert accepted["lifecycleState"] == "accepted"

    response = await client.post(
        "/api/external/negotiation/create-accepted",
        json={"requestId": request_id, "consumerId": "r1", "providerId": "o1"},
        headers={"Authorization": "Bearer user-token"},
    )
    assert response.status_code == 200
    assert response.json()["negotiation"]["id"] == "neg-1"

    payload = negotiation_api.last_json("POST", "/negotiation/create-with-initial")
    assert payload["consumer_id"] == "mongo-r1"
    assert payload["provider_id"] == "mongo-o1"
    assert payload["negotiation_status"] == "requested"
    assert payload["initial_request"]["odrl_policy"]["odrl"]["permission"][0]["assignee"] == "r1"

    data = (await client.get(f"/api/requests/{request_id}")).json()["data"]
    assert data["negotiationId"] == "neg-1"
    assert data["negotiationStatus"] == "requested"
    assert data["acceptedNegotiationAt"]
    assert data["lifecycleState"] == "negotiating"
