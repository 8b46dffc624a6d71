"""
MongoDB client initialization and access utilities.

This module wraps the asynchronous MongoDB client used across the
UpConsent backend. Instead of a module-level global, the process entry
point constructs a :class:`MongoHandle`, connects it during application
startup and closes it on shutdown. Route handlers receive the database
through the :func:`get_db` dependency, which reads the handle stored on
``app.state``.

Collections:
    - requests:    consent requests (ObjectId primary keys)
    - owners:      data owners, keyed by user uid
    - requesters:  data requesters, keyed by user uid
    - ontologies:  uploaded ontology metadata

Usage example:
    >>> handle = MongoHandle("mongodb://localhost:27017", "upconsent")
    >>> await handle.connect()
    >>> print(await handle.db.list_collection_names())
    >>> handle.close()
"""

import logging
import re
from typing import Optional

from bson import ObjectId
from fastapi import Request
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

logger = logging.getLogger(__name__)

REQUESTS = "requests"
OWNERS = "owners"
REQUESTERS = "requesters"
ONTOLOGIES = "ontologies"


class MongoHandle:
    """
    Owns one Motor client and the database it points to.

    Args:
        uri (str): MongoDB connection string.
        db_name (str): Name of the database holding the collections.
    """

    def __init__(self, uri: str, db_name: str):
        self.uri = uri
        self.db_name = db_name
        self._client: Optional[AsyncIOMotorClient] = None
        self._db: Optional[AsyncIOMotorDatabase] = None

    async def connect(self):
        """
        Creates the client and prepares the indexes used by list filters.

        Raises:
            pymongo.errors.PyMongoError: If the server cannot be reached.
        """

        self._client = AsyncIOMotorClient(self.uri)
        self._db = self._client[self.db_name]
        await self._db[REQUESTS].create_index("requester.requesterId")
        await self._db[REQUESTS].create_index("owners")
        await self._db[OWNERS].create_index("email")
        await self._db[REQUESTERS].create_index("email")
        await self._db[ONTOLOGIES].create_index("uploadedBy")
        logger.info("Connected to MongoDB database '%s'", self.db_name)

    def close(self):
        if self._client is not None:
            self._client.close()
            logger.info("MongoDB connection closed")
        self._client = None
        self._db = None

    @property
    def db(self) -> AsyncIOMotorDatabase:
        """
        The connected database.

        Raises:
            RuntimeError: If :meth:`connect` has not been awaited yet.
        """

        if self._db is None:
            raise RuntimeError("MongoDB was not initialized. Call connect() first.")
        return self._db


def get_db(request: Request) -> AsyncIOMotorDatabase:
    """FastAPI dependency returning the database of the running application."""
    return request.app.state.mongo.db


def id_filter(document_id: str) -> dict:
    """
    Builds a primary-key filter for a document id received over HTTP.

    Request documents use ObjectId keys while user and ontology documents
    use plain strings, so the id is converted only when it is a valid
    ObjectId.
    """

    if ObjectId.is_valid(document_id):
        return {"_id": ObjectId(document_id)}
    return {"_id": document_id}


def serialize_document(doc: dict) -> dict:
    """
    Replaces the Mongo ``_id`` key with a string ``id``.

    Args:
        doc (dict): Raw MongoDB document.

    Returns:
        dict: Copy of the document safe to return as JSON.
    """

    result = {}
    for key, value in doc.items():
        if key == "_id":
            continue
        result[key] = str(value) if isinstance(value, ObjectId) else value
    if "_id" in doc:
        result["id"] = str(doc["_id"])
    return result


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def email_filter(email: Optional[str]) -> dict:
    """
    Case-insensitive exact match on ``email``.

    Accounts created before emails were normalized may still hold mixed
    case, so lookups never rely on the stored casing.
    """

    return {"email": {"$regex": f"^{re.escape(normalize_email(email))}$", "$options": "i"}}
