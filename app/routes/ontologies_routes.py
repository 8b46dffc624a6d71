"""
Ontology routes.

Upload, listing, download and deletion of the ontology files requesters
attach to their consent requests. Mounted under ``/api/ontologies``.
"""

from typing import Optional

from fastapi import APIRouter, Body, Depends, File, Form, Response, UploadFile
from motor.motor_asyncio import AsyncIOMotorDatabase

from app.core.config import Settings
from app.core.deps import get_app_settings
from app.db.client import get_db
from app.services import ontologies_service

router = APIRouter()


@router.post("", status_code=201)
async def upload_ontology_route(
    ontologyFile: Optional[UploadFile] = File(default=None),
    requesterUid: Optional[str] = Form(default=None),
    ontologyName: Optional[str] = Form(default=None),
    ontologyDescription: Optional[str] = Form(default=None),
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """
    Upload an ontology file (multipart form).

    Accepted extensions: ``.ttl .rdf .owl .n3 .jsonld .xml .json``. The
    size limit comes from ``FILE_UPLOAD_LIMIT``.

    Example:
        >>> POST /api/ontologies
        ontologyFile=@energy.ttl requesterUid=r1 ontologyName=Energy
    """

    content = None
    if ontologyFile is not None:
        ontologies_service.check_upload_size(ontologyFile.size, settings.file_upload_limit)
        content = await ontologyFile.read()
    ontology = await ontologies_service.upload_ontology(
        db,
        settings.ontology_storage_dir,
        settings.file_upload_limit,
        requesterUid,
        ontologyName,
        ontologyDescription,
        ontologyFile.filename if ontologyFile is not None else None,
        content,
        ontologyFile.content_type if ontologyFile is not None else None,
    )
    return {"success": True, "ontology": ontology.model_dump(), "message": "Ontology uploaded successfully"}


@router.get("")
async def list_ontologies_route(requesterUid: Optional[str] = None, db: AsyncIOMotorDatabase = Depends(get_db)):
    ontologies = await ontologies_service.list_ontologies(db, requesterUid)
    return {"success": True, "ontologies": ontologies}


@router.get("/user/{uid}/count")
async def count_ontologies_route(uid: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    count = await ontologies_service.count_ontologies(db, uid)
    return {"success": True, "count": count}


@router.get("/{ontology_id}")
async def get_ontology_route(ontology_id: str, db: AsyncIOMotorDatabase = Depends(get_db)):
    ontology = await ontologies_service.get_ontology(db, ontology_id)
    return {"success": True, "ontology": ontology}


@router.get("/{ontology_id}/download")
async def download_ontology_route(
    ontology_id: str,
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    ontology, content = await ontologies_service.read_ontology_file(db, settings.ontology_storage_dir, ontology_id)
    return Response(
        content=content,
        media_type=ontology.get("mimeType") or "application/octet-stream",
        headers={"Content-Disposition": f"attachment; filename={ontology.get('filename')}"},
    )


@router.delete("/{ontology_id}")
async def delete_ontology_route(
    ontology_id: str,
    requesterUid: Optional[str] = None,
    body: Optional[dict] = Body(default=None),
    db: AsyncIOMotorDatabase = Depends(get_db),
    settings: Settings = Depends(get_app_settings),
):
    """
    Delete an ontology. Only the uploader may delete it; ``requesterUid``
    is read from the query string or the JSON body.
    """

    uid = requesterUid or (body or {}).get("requesterUid")
    await ontologies_service.delete_ontology(db, settings.ontology_storage_dir, ontology_id, uid)
    return {"success": True, "message": "Ontology deleted successfully"}
