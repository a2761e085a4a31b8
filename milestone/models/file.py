from sqlalchemy import Column, String, Integer, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from .base import BaseModel


class Attachment(BaseModel):
    """Uploaded file metadata; bytes live under ``settings.upload_dir``."""
    __tablename__ = "files"
    __table_args__ = (
        CheckConstraint(
            "(standup_id IS NULL) <> (blocker_id IS NULL)",
            name="ck_files_single_parent"
        ),
    )

    filename = Column(String, nullable=False)
    original_name = Column(String, nullable=False)
    filepath = Column(String, nullable=False)
    filesize = Column(Integer, nullable=False)
    mimetype = Column(String, nullable=False)

    standup_id = Column(Integer, ForeignKey("standups.id", ondelete="CASCADE"), nullable=True, index=True)
    blocker_id = Column(Integer, ForeignKey("blockers.id", ondelete="CASCADE"), nullable=True, index=True)

    standup = relationship("Standup", back_populates="files")
    blocker = relationship("Blocker", back_populates="files")
