"""
Ontology model definition.

Ontologies are vocabulary files uploaded by requesters and referenced
from consent requests. The ontology with id ``default`` is available to
every requester.
"""

from pydantic import BaseModel

DEFAULT_ONTOLOGY_ID = "default"

ALLOWED_EXTENSIONS = (".ttl", ".rdf", ".owl", ".n3", ".jsonld", ".xml", ".json")


class Ontology(BaseModel):
    """
    Metadata stored for an uploaded ontology file.

    Example:
        >>> Ontology(
        ...     id="ontology_r1_1700000000000",
        ...     name="Energy",
        ...     description="",
        ...     filename="energy.ttl",
        ...     storagePath="r1_1700000000000_energy.ttl",
        ...     downloadURL="/api/ontologies/ontology_r1_1700000000000/download",
        ...     uploadedBy="r1",
        ...     uploadedAt="2025-01-05T14:03:00+00:00",
        ...     size=1024,
        ...     mimeType="text/turtle"
        ... )
    """

    id: str
    name: str
    description: str = ""
    filename: str
    storagePath: str
    downloadURL: str
    uploadedBy: str
    uploadedAt: str
    size: int
    mimeType: str
