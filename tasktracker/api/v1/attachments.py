"""
Attachment routes nested under tasks.
/api/v1/tasks/{task_id}/attachments
Uploads use multipart/form-data with one or more files in the ``attachments`` field.
"""
from __future__ import annotations

import uuid

from fastapi import APIRouter, File, Request, UploadFile, status
from fastapi.responses import FileResponse
from starlette.datastructures import UploadFile as FormFile

from tasktracker.api.v1.tasks import accept_file_part
from tasktracker.core.dependencies import Attachments, CurrentUser, DBSession, OwnedTask
from tasktracker.schemas.attachment import AttachmentRead, AttachmentUploadResponse
from tasktracker.schemas.task import MessageResponse
from tasktracker.services.task_service import task_service

router = APIRouter(tags=["Attachments"])


@router.post(
    "/tasks/{task_id}/attachments",
    response_model=AttachmentUploadResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Upload up to three files to a task (creator, assignee or admin)",
)
async def upload_attachments(
    request: Request,
    task: OwnedTask,
    db: DBSession,
    store: Attachments,
    attachments: list[UploadFile] | None = File(default=None),
) -> AttachmentUploadResponse:
    form = await request.form()
    for key, value in form.multi_items():
        if isinstance(value, FormFile):
            accept_file_part(key, value)
    uploads = [f for f in attachments or [] if f.filename]
    updated = await task_service.upload_attachments(
        db, task=task, uploads=uploads, store=store
    )
    return AttachmentUploadResponse(
        message="Attachments uploaded successfully",
        attachments=[AttachmentRead.model_validate(a) for a in updated.attachments],
    )


@router.get(
    "/tasks/{task_id}/attachments/{attachment_id}",
    response_class=FileResponse,
    summary="Download an attachment",
)
async def download_attachment(
    task_id: uuid.UUID,
    attachment_id: uuid.UUID,
    current_user: CurrentUser,
    db: DBSession,
    store: Attachments,
) -> FileResponse:
    task = await task_service.get_task(db, task_id=task_id)
    attachment, path = store.open(task, attachment_id)
    return FileResponse(
        path,
        media_type=attachment.mime_type,
        filename=attachment.filename,
    )


@router.delete(
    "/tasks/{task_id}/attachments/{attachment_id}",
    response_model=MessageResponse,
    summary="Remove one attachment from a task (creator, assignee or admin)",
)
async def delete_attachment(
    attachment_id: uuid.UUID,
    task: OwnedTask,
    db: DBSession,
    store: Attachments,
) -> MessageResponse:
    await task_service.delete_attachment(
        db, task=task, attachment_id=attachment_id, store=store
    )
    return MessageResponse(message="Attachment deleted successfully")
