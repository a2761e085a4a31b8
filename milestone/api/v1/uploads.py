from fastapi import APIRouter, Depends, File, UploadFile
from fastapi.responses import FileResponse
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from ...config import settings
from ...database import get_db
from ...core.auth import get_current_user
from ...models.user import User
from ...services.file_service import FileService, UploadPayload
from .schemas import FileOut, envelope

router = APIRouter()


def get_file_service(db: AsyncSession = Depends(get_db)) -> FileService:
    return FileService(db)


async def _read_all(files: Optional[List[UploadFile]]) -> List[UploadPayload]:
    payloads = []
    for upload in files or []:
        # One byte past the limit is enough to reject an oversized file
        data = await upload.read(settings.max_file_size + 1)
        payloads.append(UploadPayload(
            original_name=upload.filename or "",
            mimetype=upload.content_type or "application/octet-stream",
            data=data
        ))
        await upload.close()
    return payloads


@router.post("/standup/{standup_id}", status_code=201)
async def upload_standup_files(
    standup_id: int,
    files: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service)
):
    attachments = await service.upload_to_standup(current_user, standup_id, await _read_all(files))
    return envelope(
        {"files": [FileOut.model_validate(a) for a in attachments]},
        f"{len(attachments)} file(s) uploaded successfully"
    )


@router.post("/blocker/{blocker_id}", status_code=201)
async def upload_blocker_files(
    blocker_id: int,
    files: Optional[List[UploadFile]] = File(None),
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service)
):
    attachments = await service.upload_to_blocker(current_user, blocker_id, await _read_all(files))
    return envelope(
        {"files": [FileOut.model_validate(a) for a in attachments]},
        f"{len(attachments)} file(s) uploaded successfully"
    )


@router.get("/{file_id}")
async def download_file(
    file_id: int,
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service)
):
    attachment = await service.get(file_id, current_user)
    return FileResponse(
        attachment.filepath,
        media_type=attachment.mimetype,
        filename=attachment.original_name
    )


@router.delete("/{file_id}")
async def delete_file(
    file_id: int,
    current_user: User = Depends(get_current_user),
    service: FileService = Depends(get_file_service)
):
    await service.delete(file_id, current_user)
    return envelope(message="File deleted successfully")
