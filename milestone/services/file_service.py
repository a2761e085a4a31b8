from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence
import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.orm import selectinload

from ..config import settings
from ..models.blocker import Blocker
from ..models.file import Attachment
from ..models.standup import Standup
from ..models.user import User
from ..models.enums import StandupStatus
from ..core.exceptions import (
    FileRejectedError,
    ForbiddenError,
    NotFoundError,
    StandupLockedError,
)
from ..core.permissions import is_manager
from ..utils.logging import get_logger

logger = get_logger(__name__)

LOCKED_STATES = (StandupStatus.SUBMITTED.value, StandupStatus.APPROVED.value)


@dataclass
class UploadPayload:
    """An uploaded file already read into memory"""
    original_name: str
    mimetype: str
    data: bytes


def extension_of(filename: str) -> str:
    return Path(filename or "").suffix.lower().lstrip(".")


class FileService:
    """Attachments bound to exactly one standup or blocker"""

    def __init__(
        self,
        db: AsyncSession,
        upload_dir: Optional[str] = None,
        max_file_size: Optional[int] = None,
        max_files: Optional[int] = None,
        allowed_types: Optional[Sequence[str]] = None
    ):
        self.db = db
        self.upload_dir = Path(upload_dir or settings.upload_dir)
        self.max_file_size = max_file_size or settings.max_file_size
        self.max_files = max_files or settings.max_files_per_upload
        self.allowed_types = [t.lower() for t in (allowed_types or settings.allowed_file_types)]

    def validate(self, files: Sequence[UploadPayload]) -> None:
        if not files:
            raise FileRejectedError("No files uploaded", code="NO_FILES")
        if len(files) > self.max_files:
            raise FileRejectedError(
                f"Too many files. Maximum is {self.max_files} files per upload.",
                code="TOO_MANY_FILES"
            )
        for upload in files:
            if extension_of(upload.original_name) not in self.allowed_types:
                raise FileRejectedError(
                    f"Invalid file type. Allowed types: {', '.join(self.allowed_types)}",
                    code="INVALID_FILE_TYPE",
                    details=[{"field": "files", "message": upload.original_name}]
                )
            if len(upload.data) > self.max_file_size:
                raise FileRejectedError(
                    f"File too large. Maximum size is {self.max_file_size // (1024 * 1024)}MB",
                    code="FILE_TOO_LARGE",
                    status_code=413
                )

    def _write(self, upload: UploadPayload) -> Path:
        self.upload_dir.mkdir(parents=True, exist_ok=True)
        ext = extension_of(upload.original_name)
        path = self.upload_dir / f"{uuid.uuid4().hex}.{ext}"
        path.write_bytes(upload.data)
        return path

    async def _store(
        self,
        files: Sequence[UploadPayload],
        standup_id: Optional[int] = None,
        blocker_id: Optional[int] = None
    ) -> List[Attachment]:
        self.validate(files)

        written: List[Path] = []
        attachments: List[Attachment] = []
        try:
            for upload in files:
                path = self._write(upload)
                written.append(path)
                attachment = Attachment(
                    filename=path.name,
                    original_name=upload.original_name,
                    filepath=str(path),
                    filesize=len(upload.data),
                    mimetype=upload.mimetype or "application/octet-stream",
                    standup_id=standup_id,
                    blocker_id=blocker_id
                )
                self.db.add(attachment)
                attachments.append(attachment)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            for path in written:
                path.unlink(missing_ok=True)
            raise

        logger.info(f"Stored {len(attachments)} file(s) for standup={standup_id} blocker={blocker_id}")
        return attachments

    async def upload_to_standup(self, user: User, standup_id: int, files: Sequence[UploadPayload]) -> List[Attachment]:
        standup = await self.db.get(Standup, standup_id)
        if standup is None or standup.user_id != user.id:
            raise NotFoundError("Standup not found")
        if standup.status in LOCKED_STATES:
            raise StandupLockedError("Cannot upload files to a submitted standup")
        return await self._store(files, standup_id=standup_id)

    async def upload_to_blocker(self, user: User, blocker_id: int, files: Sequence[UploadPayload]) -> List[Attachment]:
        blocker = await self.db.get(Blocker, blocker_id)
        if blocker is None:
            raise NotFoundError("Blocker not found")
        if blocker.user_id != user.id and not is_manager(user):
            raise ForbiddenError("You can only attach files to your own blockers")
        return await self._store(files, blocker_id=blocker_id)

    async def _load(self, file_id: int) -> Attachment:
        stmt = (
            select(Attachment)
            .options(selectinload(Attachment.standup), selectinload(Attachment.blocker))
            .where(Attachment.id == file_id)
        )
        attachment = (await self.db.execute(stmt)).scalar_one_or_none()
        if attachment is None:
            raise NotFoundError("File not found")
        return attachment

    @staticmethod
    def _owner_id(attachment: Attachment) -> int:
        parent = attachment.standup or attachment.blocker
        return parent.user_id

    async def get(self, file_id: int, viewer: User) -> Attachment:
        attachment = await self._load(file_id)
        if self._owner_id(attachment) != viewer.id and not is_manager(viewer):
            raise ForbiddenError("You do not have access to this file")
        if not Path(attachment.filepath).exists():
            logger.warning(f"File {file_id} is missing on disk at {attachment.filepath}")
            raise NotFoundError("File not found on disk")
        return attachment

    async def delete(self, file_id: int, user: User) -> None:
        attachment = await self._load(file_id)
        if self._owner_id(attachment) != user.id and not is_manager(user):
            raise ForbiddenError("You can only delete your own files")
        if attachment.standup is not None and attachment.standup.status in LOCKED_STATES:
            raise StandupLockedError("Cannot delete files from a submitted standup")

        path = Path(attachment.filepath)
        await self.db.delete(attachment)
        await self.db.commit()
        path.unlink(missing_ok=True)
        logger.info(f"File {file_id} deleted by user {user.id}")
