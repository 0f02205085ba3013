"""SQLAlchemy models for outbound webhooks and their delivery log."""

from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Text, JSON, Index

from hookrelay.db.base import Base


def utcnow() -> datetime:
    """Naive UTC timestamp, the form every DateTime column stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Webhook(Base):
    """Outbound webhook definition: a trigger mapped to a templated HTTP delivery."""

    __tablename__ = "webhooks"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)

    # Trigger
    trigger_key = Column(String(100), nullable=False, index=True,
                         comment="e.g., post_published, user_registered")
    trigger_config = Column(JSON, nullable=False, default=dict,
                            comment="Filter parameters interpreted by the trigger")

    # Delivery
    endpoint_url = Column(String(2048), nullable=False)
    http_method = Column(String(10), nullable=False, default="POST")
    custom_headers = Column(JSON, nullable=False, default=dict)
    payload_format = Column(String(10), nullable=False, default="json",
                            comment="json or form")
    payload_template = Column(JSON, nullable=False, default=dict,
                              comment="Merge-tag template, empty for the default payload")
    secret_key = Column(String(255), nullable=True,
                        comment="Enables X-Webhook-Signature when set")

    # Status and retry policy
    is_active = Column(Boolean, nullable=False, default=True)
    retry_count = Column(Integer, nullable=False, default=3)
    retry_delay_seconds = Column(Integer, nullable=False, default=60)

    # Audit
    created_by = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def __repr__(self):
        return f"<Webhook(id={self.id}, name={self.name}, trigger={self.trigger_key})>"


class DeliveryLog(Base):
    """One delivery of one webhook; retries update the same row."""

    __tablename__ = "webhook_delivery_logs"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    # No foreign key: rows may outlive their webhook
    webhook_id = Column(Integer, nullable=False, index=True)
    trigger_key = Column(String(100), nullable=False)
    trigger_event_data = Column(JSON, nullable=True)

    # Request snapshot
    endpoint_url = Column(String(2048), nullable=False)
    request_headers = Column(JSON, nullable=True)
    request_payload = Column(Text, nullable=True)

    # Response snapshot
    response_code = Column(Integer, nullable=True,
                           comment="NULL when no response was obtained")
    response_headers = Column(JSON, nullable=True)
    response_body = Column(Text, nullable=True)
    duration_ms = Column(Integer, nullable=True)

    status = Column(String(20), nullable=False, default="pending",
                    comment="pending, success, failed")
    error_message = Column(Text, nullable=True)
    attempt_number = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime, nullable=False, default=utcnow, index=True)

    __table_args__ = (
        Index("idx_delivery_log_webhook_status", "webhook_id", "status"),
    )

    def __repr__(self):
        return (
            f"<DeliveryLog(id={self.id}, webhook={self.webhook_id}, "
            f"status={self.status}, attempt={self.attempt_number})>"
        )
