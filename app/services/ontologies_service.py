"""
Ontologies service.

Stores uploaded ontology files on local disk under the configured
storage directory and their metadata in the ``ontologies`` collection.
"""

import asyncio
import logging
import os
import time
from datetime import datetime, timezone
from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.errors import NotAuthorized, NotFoundError, PayloadTooLarge, ValidationError
from app.db.client import ONTOLOGIES, REQUESTERS
from app.models.ontology import ALLOWED_EXTENSIONS, DEFAULT_ONTOLOGY_ID, Ontology

logger = logging.getLogger(__name__)


def file_extension(filename: str) -> str:
    _, ext = os.path.splitext(filename or "")
    return ext.lower()


def _is_safe_uid(uid: str) -> bool:
    return "/" not in uid and "\\" not in uid and ".." not in uid


def _storage_path(storage_dir: str, stored_name: str) -> str:
    """
    Resolves a stored file name inside ``storage_dir``.

    Raises:
        ValidationError: If the name resolves outside the directory.
    """

    root = os.path.realpath(storage_dir)
    path = os.path.realpath(os.path.join(root, stored_name))
    if os.path.dirname(path) != root:
        raise ValidationError("Invalid file name")
    return path


def _write_file(storage_dir: str, path: str, content: bytes) -> None:
    os.makedirs(storage_dir, exist_ok=True)
    with open(path, "wb") as f:
        f.write(content)


def _read_file(path: str) -> bytes:
    with open(path, "rb") as f:
        return f.read()


def check_upload_size(size: Optional[int], size_limit: int) -> None:
    """Rejects a file whose known size exceeds ``size_limit``."""
    if size is not None and size > size_limit:
        raise PayloadTooLarge("File too large")


async def upload_ontology(
    db: AsyncIOMotorDatabase,
    storage_dir: str,
    size_limit: int,
    requester_uid: Optional[str],
    name: Optional[str],
    description: Optional[str],
    filename: Optional[str],
    content: Optional[bytes],
    mime_type: Optional[str],
) -> Ontology:
    """
    Saves an ontology file and records its metadata.

    Args:
        db (AsyncIOMotorDatabase): Store handle.
        storage_dir (str): Directory the file is written to.
        size_limit (int): Maximum accepted file size in bytes.
        requester_uid (str): Uploading requester.
        name (str): Display name.
        description (str, optional): Free-text description.
        filename (str): Original file name, used for the extension check.
        content (bytes): File content.
        mime_type (str, optional): Content type reported by the client.

    Returns:
        Ontology: The stored metadata.

    Raises:
        ValidationError: Missing fields, a malformed requester uid, or a
            file type outside the allow-list.
        NotFoundError: The requester does not exist.
        PayloadTooLarge: The file exceeds ``size_limit``.
    """

    if not requester_uid or not name or not filename or content is None:
        raise ValidationError("Requester UID, ontology name, and file are required")
    if not _is_safe_uid(requester_uid):
        raise ValidationError("Invalid requester UID")
    if not await db[REQUESTERS].find_one({"_id": requester_uid}):
        raise NotFoundError("Requester not found")
    if file_extension(filename) not in ALLOWED_EXTENSIONS:
        raise ValidationError("Invalid file type. Only ontology files are allowed.")
    check_upload_size(len(content), size_limit)

    timestamp = int(time.time() * 1000)
    original_name = os.path.basename(filename)
    stored_name = f"{requester_uid}_{timestamp}_{original_name}"
    await asyncio.to_thread(_write_file, storage_dir, _storage_path(storage_dir, stored_name), content)

    ontology_id = f"ontology_{requester_uid}_{timestamp}"
    ontology = Ontology(
        id=ontology_id,
        name=name,
        description=description or "",
        filename=original_name,
        storagePath=stored_name,
        downloadURL=f"/api/ontologies/{ontology_id}/download",
        uploadedBy=requester_uid,
        uploadedAt=datetime.now(timezone.utc).isoformat(),
        size=len(content),
        mimeType=mime_type or "application/octet-stream",
    )
    await db[ONTOLOGIES].insert_one({"_id": ontology_id, **ontology.model_dump()})
    await db[REQUESTERS].update_one({"_id": requester_uid}, {"$addToSet": {"ontologyIds": ontology_id}})
    logger.info("Ontology %s uploaded by %s (%d bytes)", ontology_id, requester_uid, ontology.size)
    return ontology


def _to_ontology(doc: dict) -> dict:
    data = {k: v for k, v in doc.items() if k != "_id"}
    data["id"] = str(doc["_id"])
    return data


async def get_ontology(db: AsyncIOMotorDatabase, ontology_id: str) -> dict:
    doc = await db[ONTOLOGIES].find_one({"_id": ontology_id})
    if not doc:
        raise NotFoundError("Ontology not found")
    return _to_ontology(doc)


async def list_ontologies(db: AsyncIOMotorDatabase, requester_uid: Optional[str] = None) -> List[dict]:
    """
    Lists the ontologies available to a requester: their own uploads plus
    the shared default ontology. Without a requester, lists everything.
    """

    if not requester_uid:
        return [_to_ontology(doc) async for doc in db[ONTOLOGIES].find()]

    ontologies = [
        _to_ontology(doc)
        async for doc in db[ONTOLOGIES].find({"uploadedBy": requester_uid})
        if doc["_id"] != DEFAULT_ONTOLOGY_ID
    ]
    default = await db[ONTOLOGIES].find_one({"_id": DEFAULT_ONTOLOGY_ID})
    if default:
        ontologies.append(_to_ontology(default))
    return ontologies


async def read_ontology_file(db: AsyncIOMotorDatabase, storage_dir: str, ontology_id: str):
    """Returns ``(metadata, content)`` for a stored ontology."""
    ontology = await get_ontology(db, ontology_id)
    if not ontology.get("storagePath"):
        raise NotFoundError("Ontology file not found")
    path = _storage_path(storage_dir, ontology["storagePath"])
    if not os.path.isfile(path):
        raise NotFoundError("Ontology file not found")
    return ontology, await asyncio.to_thread(_read_file, path)


async def delete_ontology(db: AsyncIOMotorDatabase, storage_dir: str, ontology_id: str, requester_uid: Optional[str]) -> None:
    """
    Deletes an ontology file and its metadata.

    Raises:
        NotFoundError: Unknown ontology.
        NotAuthorized: The caller did not upload it.
    """

    ontology = await get_ontology(db, ontology_id)
    if not requester_uid or ontology.get("uploadedBy") != requester_uid:
        raise NotAuthorized("Unauthorized to delete this ontology")

    path = _storage_path(storage_dir, ontology["storagePath"]) if ontology.get("storagePath") else None
    if path and os.path.isfile(path):
        await asyncio.to_thread(os.remove, path)
    else:
        logger.warning("Stored file of ontology %s is missing", ontology_id)

    await db[ONTOLOGIES].delete_one({"_id": ontology_id})
    await db[REQUESTERS].update_one({"_id": requester_uid}, {"$pull": {"ontologyIds": ontology_id}})
    logger.info("Ontology %s deleted by %s", ontology_id, requester_uid)


async def count_ontologies(db: AsyncIOMotorDatabase, uid: str) -> int:
    return await db[ONTOLOGIES].count_documents({"uploadedBy": uid})
