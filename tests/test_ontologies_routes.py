import os

import pytest

from app.core.errors import PayloadTooLarge
from app.db.client import ONTOLOGIES, REQUESTERS
from app.services.ontologies_service import check_upload_size
from conftest import seed_user

TURTLE = b"@prefix ex: <http://example.org/> .\nex:Meter a ex:Device .\n"


async def upload(client, uid="r1", filename="energy.ttl", content=TURTLE, name="Energy"):
    return await client.post(
        "/api/ontologies",
        data={"requesterUid": uid, "ontologyName": name, "ontologyDescription": "Smart meters"},
        files={"ontologyFile": (filename, content, "text/turtle")},
    )


async def test_upload_stores_file_and_metadata(client, db, settings):
    await seed_user(db, "requester", "r1", "r1@acme.org")

    response = await upload(client)

    assert response.status_code == 201
    ontology = response.json()["ontology"]
    assert ontology["id"].startswith("ontology_r1_")
    assert ontology["name"] == "Energy"
    assert ontology["description"] == "Smart meters"
    assert ontology["filename"] == "energy.ttl"
    assert ontology["size"] == len(TURTLE)
    assert ontology["downloadURL"] == f"/api/ontologies/{ontology['id']}/download"

    path = os.path.join(settings.ontology_storage_dir, ontology["storagePath"])
    with open(path, "rb") as f:
        assert f.read() == TURTLE

    requester = await db[REQUESTERS].find_one({"_id": "r1"})
    assert requester["ontologyIds"] == [ontology["id"]]


async def test_upload_rejects_unknown_extension(client, db):
    await seed_user(db, "requester", "r1", "r1@acme.org")

    response = await upload(client, filename="energy.exe")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid file type. Only ontology files are allowed."
    assert await db[ONTOLOGIES].count_documents({}) == 0


async def test_upload_rejects_large_file(client, db):
    await seed_user(db, "requester", "r1", "r1@acme.org")

    response = await upload(client, content=b"x" * 2048)

    assert response.status_code == 413
    assert response.json()["error"] == "File too large"


async def test_upload_requires_fields(client):
    response = await client.post("/api/ontologies", data={"requesterUid": "r1"})
    assert response.status_code == 400


async def test_list_includes_default_ontology(client, db):
    await seed_user(db, "requester", "r1", "r1@acme.org")
    await db[ONTOLOGIES].insert_one({"_id": "default", "name": "UPCAST", "uploadedBy": "system"})
    await db[ONTOLOGIES].insert_one({"_id": "ontology_r2_1", "name": "Other", "uploadedBy": "r2"})
    own = (await upload(client)).json()["ontology"]

    ontologies = (await client.get("/api/ontologies", params={"requesterUid": "r1"})).json()["ontologies"]

    assert [o["id"] for o in ontologies] == [own["id"], "default"]

    everything = (await client.get("/api/ontologies")).json()["ontologies"]
    assert len(everything) == 3


async def test_count_get_and_download(client, db):
    await seed_user(db, "requester", "r1", "r1@acme.org")
    ontology = (await upload(client)).json()["ontology"]

    count = await client.get("/api/ontologies/user/r1/count")
    assert count.json() == {"success": True, "count": 1}

    fetched = await client.get(f"/api/ontologies/{ontology['id']}")
    assert fetched.json()["ontology"]["name"] == "Energy"

    download = await client.get(ontology["downloadURL"])
    assert download.status_code == 200
    assert download.content == TURTLE
    assert download.headers["content-type"].startswith("text/turtle")
    assert download.headers["content-disposition"] == "attachment; filename=energy.ttl"

    assert (await client.get("/api/ontologies/ontology_missing")).status_code == 404


async def test_only_uploader_can_delete(client, db, settings):
    await seed_user(db, "requester", "r1", "r1@acme.org")
    ontology = (await upload(client)).json()["ontology"]

    denied = await client.delete(f"/api/ontologies/{ontology['id']}", params={"requesterUid": "r2"})
    assert denied.status_code == 403
    assert denied.json()["error"] == "Unauthorized to delete this ontology"

    deleted = await client.request(
        "DELETE", f"/api/ontologies/{ontology['id']}", json={"requesterUid": "r1"}
    )
    assert deleted.json() == {"success": True, "message": "Ontology deleted successfully"}
    assert await db[ONTOLOGIES].find_one({"_id": ontology["id"]}) is None
    assert not os.path.exists(os.path.join(settings.ontology_storage_dir, ontology["storagePath"]))
    requester = await db[REQUESTERS].find_one({"_id": "r1"})
    assert requester["ontologyIds"] == []


async def test_upload_rejects_requester_uid_outside_storage(client, db, settings, tmp_path):
    await seed_user(db, "requester", "../../escaped", "evil@acme.org")

    response = await upload(client, uid="../../escaped")

    assert response.status_code == 400
    assert response.json()["error"] == "Invalid requester UID"
    for directory in (tmp_path, tmp_path.parent):
        assert not [name for name in os.listdir(directory) if name.startswith("escaped")]
    assert await db[ONTOLOGIES].count_documents({}) == 0


async def test_upload_requires_known_requester(client, db, settings):
    response = await upload(client, uid="ghost")

    assert response.status_code == 404
    assert response.json()["error"] == "Requester not found"
    assert not os.path.exists(settings.ontology_storage_dir)


def test_check_upload_size():
    check_upload_size(None, 10)
    check_upload_size(10, 10)
    with pytest.raises(PayloadTooLarge):
        check_upload_size(11, 10)
