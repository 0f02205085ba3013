"""Generic record written by create_record / update_record actions."""

from sqlalchemy import Column, Integer, String, DateTime, JSON

from hookrelay.db.base import Base
from hookrelay.models.webhook_models import utcnow


class Record(Base):
    __tablename__ = "records"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    record_type = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False, default="draft")
    fields = Column(JSON, nullable=False, default=dict)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Record(id={self.id}, type={self.record_type}, status={self.status})>"
