from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import FileResponse

from pep_portal.core.document_storage import DocumentStorage, get_document_storage

router = APIRouter(prefix="/documents", tags=["documents"])


@router.get("/{key:path}")
def get_document(key: str, storage: DocumentStorage = Depends(get_document_storage)):
    # Public, like a storage bucket URL: whoever holds the link can read it
    try:
        path = storage.resolve(key)
    except ValueError:
        raise HTTPException(status_code=404, detail="Document not found")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="Document not found")
    return FileResponse(path, media_type="application/pdf", filename=path.name)
