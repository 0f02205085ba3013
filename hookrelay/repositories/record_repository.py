"""Record store used by create_record / update_record actions."""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from hookrelay.models import Record

logger = logging.getLogger(__name__)


class RecordRepository:
    """Repository for generic records."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, record_id: int) -> Optional[Record]:
        return self.db.query(Record).filter(Record.id == record_id).first()

    def create(self, record_type: str, fields: Dict[str, Any], status: str = "draft") -> Record:
        """
        Insert a record.

        Args:
            record_type: Record type, e.g. "lead"
            fields: Field values
            status: Initial status

        Returns:
            Created record
        """
        try:
            record = Record(record_type=record_type, status=status, fields=dict(fields))
            self.db.add(record)
            self.db.commit()
            self.db.refresh(record)
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Created {record_type} record {record.id}")
        return record

    def update(
        self,
        record_id: int,
        fields: Dict[str, Any],
        status: Optional[str] = None
    ) -> Optional[Record]:
        """
        Merge field values into an existing record.

        Returns:
            Updated record or None if not found
        """
        record = self.get(record_id)
        if not record:
            return None
        try:
            # Reassign so the JSON column is flagged dirty
            record.fields = {**(record.fields or {}), **fields}
            if status:
                record.status = status
            self.db.commit()
            self.db.refresh(record)
        except Exception:
            self.db.rollback()
            raise
        logger.info(f"Updated record {record_id}")
        return record
