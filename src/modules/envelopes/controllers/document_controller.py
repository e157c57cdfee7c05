# src/modules/envelopes/controllers/document_controller.py
from fastapi import APIRouter, Depends, File, Response, UploadFile, status

from modules.auth.dependencies import require_api_key
from modules.envelopes.dependencies import get_session_service, read_upload
from modules.envelopes.services.session_service import SessionService

router = APIRouter(
    tags=["documents"],
    dependencies=[Depends(require_api_key)]
)


@router.get("/document/{document_id}/download")
def download_document(document_id: int, service: SessionService = Depends(get_session_service)):
    """
    Descifra y devuelve el documento. Si el contenido cifrado fue alterado
    la verificación del tag GCM falla y no se devuelve nada.
    """
    document, content = service.download_document(document_id)
    return Response(
        content=content,
        media_type=document.content_type,
        headers={"Content-Disposition": f'attachment; filename="{document.filename}"'},
    )


@router.post("/upload", status_code=status.HTTP_201_CREATED)
def upload_file(file: UploadFile = File(...), service: SessionService = Depends(get_session_service)):
    stored = service.upload_standalone(read_upload(file))
    return {"url": stored.url}
