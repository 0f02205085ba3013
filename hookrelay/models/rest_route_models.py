"""SQLAlchemy model for inbound REST routes."""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON

from hookrelay.db.base import Base
from hookrelay.models.webhook_models import utcnow


class RestRoute(Base):
    """Inbound route that runs an ordered action chain against each call."""

    __tablename__ = "rest_routes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    route_path = Column(String(255), nullable=False, unique=True, index=True,
                        comment="Stored without leading/trailing slashes")
    methods = Column(JSON, nullable=False, default=lambda: ["POST"])
    actions = Column(JSON, nullable=False, default=list,
                     comment="Ordered [{type, config}] list")
    is_active = Column(Boolean, nullable=False, default=True)
    is_async = Column(Boolean, nullable=False, default=False)
    secret_key = Column(String(255), nullable=True)

    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<RestRoute(id={self.id}, path={self.route_path}, active={self.is_active})>"
