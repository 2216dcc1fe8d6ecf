from fastapi import APIRouter, Depends, HTTPException, Response
from sqlalchemy.orm import Session
from urllib.parse import quote
from uuid import UUID
import logging

from portal.db.session import get_db
from portal.db.models import BidDocument, RFPDocument
from portal.core.deps import get_current_admin, get_current_user, get_lifecycle
from portal.services.document_store import DocumentStore, DocumentStoreError, get_document_store
from portal.services.lifecycle import LifecycleManager
from portal.utils.permissions import can_view_bid, can_view_rfp

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/documents", tags=["documents"])


def content_disposition(name: str) -> str:
    """Attachment header for a stored file name, RFC 5987 encoded when not plain ASCII"""
    quoted = quote(name)
    if quoted != name:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{name}"'


def _download(store: DocumentStore, path: str, name: str, content_type: str) -> Response:
    try:
        content = store.get(path)
    except DocumentStoreError as e:
        logger.error(f"Failed to read document {path}: {e}")
        raise HTTPException(status_code=404, detail="Document file not available")
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": content_disposition(name)},
    )


@router.get("/rfp/{document_id}")
def download_rfp_document(
    document_id: UUID,
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
    current_user=Depends(get_current_user),
):
    document = db.query(RFPDocument).filter(RFPDocument.id == document_id).first()
    if not document or not can_view_rfp(current_user, document.rfp.status):
        raise HTTPException(status_code=404, detail="Document not found")
    return _download(store, document.file_path, document.name, document.file_type)


@router.delete("/rfp/{document_id}")
def delete_rfp_document(
    document_id: UUID,
    lifecycle: LifecycleManager = Depends(get_lifecycle),
    current_user=Depends(get_current_admin),
):
    lifecycle.remove_rfp_document(document_id)
    return {"message": "Document deleted", "document_id": str(document_id)}


@router.get("/bid/{document_id}")
def download_bid_document(
    document_id: UUID,
    db: Session = Depends(get_db),
    store: DocumentStore = Depends(get_document_store),
    current_user=Depends(get_current_user),
):
    """Bid attachments are visible to the submitting vendor and admins"""
    document = db.query(BidDocument).filter(BidDocument.id == document_id).first()
    if not document or not can_view_bid(current_user, document.bid):
        raise HTTPException(status_code=404, detail="Document not found")
    return _download(store, document.file_path, document.name, document.file_type)
