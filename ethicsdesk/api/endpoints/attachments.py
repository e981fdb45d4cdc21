"""
Attachment Endpoints

Upload, list, download and delete files attached to cases. Bytes go
through StorageService; the attachments table holds the metadata and the
tenant ownership.
"""
from fastapi import APIRouter, Depends, File, UploadFile, status
from fastapi.responses import Response
from sqlalchemy.orm import Session
from typing import List

from ethicsdesk.database import get_db
from ethicsdesk.models.attachment import Attachment
from ethicsdesk.models.audit_log import AuditEntityType
from ethicsdesk.models.organization import Organization
from ethicsdesk.models.user import User
from ethicsdesk.schemas.attachment import AttachmentResponse
from ethicsdesk.api.deps import get_current_organization, require_case_manager
from ethicsdesk.core.exceptions import AttachmentNotFoundError
from ethicsdesk.services.activity import ActivityService
from ethicsdesk.services.cases import CaseService
from ethicsdesk.services.storage import FileInput, StorageService, UploadOptions, get_storage_service
from ethicsdesk.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["attachments"])


def _get_attachment_or_404(db: Session, organization: Organization, attachment_id: str) -> Attachment:
    attachment = db.query(Attachment).filter(
        Attachment.id == attachment_id,
        Attachment.organization_id == organization.id
    ).first()
    if not attachment:
        raise AttachmentNotFoundError(attachment_id)
    return attachment


@router.post(
    "/cases/{case_id}/attachments",
    response_model=AttachmentResponse,
    status_code=status.HTTP_201_CREATED
)
async def upload_attachment(
    case_id: str,
    file: UploadFile = File(...),
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    storage: StorageService = Depends(get_storage_service),
    db: Session = Depends(get_db)
):
    case = CaseService(db).get_case(organization.id, case_id)

    content = await file.read()
    result = storage.upload(
        FileInput(
            content=content,
            filename=file.filename or "file",
            mime_type=file.content_type or "application/octet-stream",
        ),
        organization.id,
        UploadOptions(subdirectory="cases"),
    )

    attachment = Attachment(
        organization_id=organization.id,
        case_id=case.id,
        storage_key=result.key,
        filename=result.filename,
        mime_type=result.mime_type,
        size=result.size,
        uploaded_by_id=current_user.id,
    )
    db.add(attachment)
    db.flush()

    ActivityService(db).log(
        entity_type=AuditEntityType.ATTACHMENT,
        entity_id=attachment.id,
        action="created",
        organization_id=organization.id,
        actor_user_id=current_user.id,
        action_description=f"{current_user.full_name} attached {attachment.filename} to {case.reference_number}",
        context={"case_id": case.id, "size": attachment.size},
    )
    db.commit()
    return attachment


@router.get("/cases/{case_id}/attachments", response_model=List[AttachmentResponse])
async def list_attachments(
    case_id: str,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    db: Session = Depends(get_db)
):
    case = CaseService(db).get_case(organization.id, case_id)
    return (
        db.query(Attachment)
        .filter(Attachment.organization_id == organization.id, Attachment.case_id == case.id)
        .order_by(Attachment.created_at)
        .all()
    )


@router.get("/attachments/{attachment_id}/download")
async def download_attachment(
    attachment_id: str,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    storage: StorageService = Depends(get_storage_service),
    db: Session = Depends(get_db)
):
    attachment = _get_attachment_or_404(db, organization, attachment_id)
    result = storage.download(attachment.storage_key)

    ActivityService(db).log(
        entity_type=AuditEntityType.ATTACHMENT,
        entity_id=attachment.id,
        action="viewed",
        organization_id=organization.id,
        actor_user_id=current_user.id,
    )
    db.commit()

    return Response(
        content=result.content,
        media_type=attachment.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{attachment.filename}"'}
    )


@router.delete("/attachments/{attachment_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_attachment(
    attachment_id: str,
    current_user: User = Depends(require_case_manager),
    organization: Organization = Depends(get_current_organization),
    storage: StorageService = Depends(get_storage_service),
    db: Session = Depends(get_db)
):
    attachment = _get_attachment_or_404(db, organization, attachment_id)

    if storage.exists(attachment.storage_key):
        storage.delete(attachment.storage_key)
    else:
        logger.warning(
            f"Attachment {attachment.id} had no stored file",
            extra={"organization_id": organization.id}
        )

    db.delete(attachment)
    db.flush()
    ActivityService(db).log(
        entity_type=AuditEntityType.ATTACHMENT,
        entity_id=attachment_id,
        action="deleted",
        organization_id=organization.id,
        actor_user_id=current_user.id,
        context={"filename": attachment.filename},
    )
    db.commit()
    return None
