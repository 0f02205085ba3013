"""SQLAlchemy model for polling consumers."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON

from hookrelay.db.base import Base
from hookrelay.models.webhook_models import utcnow


class Consumer(Base):
    """Remote source polled on a schedule; each response runs through an action chain."""

    __tablename__ = "consumers"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    source_url = Column(String(2048), nullable=False)
    http_method = Column(String(10), nullable=False, default="GET")
    headers = Column(JSON, nullable=False, default=dict)
    schedule = Column(String(20), nullable=False, default="hourly",
                      comment="hourly, twicedaily or daily")
    actions = Column(JSON, nullable=False, default=list,
                     comment="Ordered [{type, config}] list")
    is_active = Column(Boolean, nullable=False, default=True)
    last_run = Column(DateTime, nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Consumer(id={self.id}, name={self.name}, schedule={self.schedule})>"
