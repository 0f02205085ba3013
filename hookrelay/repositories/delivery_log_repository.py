"""
Delivery log repository.

Append-only audit of every delivery attempt. A retry updates its original
row in place, so one row covers one delivery and all of its attempts.
"""
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Query, Session

from hookrelay.models import DeliveryLog, Webhook, utcnow
from hookrelay.repositories.base_config_repository import as_datetime

logger = logging.getLogger(__name__)


class DeliveryLogRepository:
    """Repository for delivery log operations."""

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def insert(self, row: Dict[str, Any]) -> int:
        """
        Insert a log row.

        Args:
            row: Column values; ``status`` defaults to pending

        Returns:
            ID of the new row
        """
        try:
            log = DeliveryLog(**row)
            self.db.add(log)
            self.db.commit()
            self.db.refresh(log)
        except Exception:
            self.db.rollback()
            raise
        return log.id

    def update_by_id(self, log_id: int, fields: Dict[str, Any]) -> bool:
        """
        Update a log row in place.

        Args:
            log_id: Log row ID
            fields: Column values to overwrite

        Returns:
            True if the row existed
        """
        log = self.get(log_id)
        if not log:
            return False
        try:
            for key, value in fields.items():
                setattr(log, key, value)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return True

    def get(self, log_id: int) -> Optional[DeliveryLog]:
        return self.db.query(DeliveryLog).filter(DeliveryLog.id == log_id).first()

    def query(
        self,
        criteria: Optional[Dict[str, Any]] = None,
        limit: int = 50,
        offset: int = 0
    ) -> List[DeliveryLog]:
        """
        Get log rows with filters, newest first.

        Args:
            criteria: Optional keys ``webhook_id``, ``status``, ``trigger_key``,
                ``date_from``, ``date_to``, ``search``
            limit: Maximum number of records
            offset: Number of records to skip

        Returns:
            List of DeliveryLog records
        """
        query = self._apply_criteria(self.db.query(DeliveryLog), criteria or {})
        return query.order_by(
            DeliveryLog.created_at.desc(), DeliveryLog.id.desc()
        ).offset(offset).limit(limit).all()

    def count(self, criteria: Optional[Dict[str, Any]] = None) -> int:
        return self._apply_criteria(self.db.query(DeliveryLog), criteria or {}).count()

    def recent(self, limit: int = 10) -> List[DeliveryLog]:
        return self.query(limit=limit)

    def delete(self, log_id: int) -> bool:
        deleted = self.db.query(DeliveryLog).filter(DeliveryLog.id == log_id).delete()
        self.db.commit()
        return deleted > 0

    def delete_older_than(self, days: int) -> int:
        """
        Delete rows older than ``days``.

        Returns:
            Number of rows deleted
        """
        cutoff = utcnow() - timedelta(days=days)
        deleted = self.db.query(DeliveryLog).filter(
            DeliveryLog.created_at < cutoff
        ).delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Deleted {deleted} delivery logs older than {days} days")
        return deleted

    def delete_by_webhook_id(self, webhook_id: int) -> int:
        deleted = self.db.query(DeliveryLog).filter(
            DeliveryLog.webhook_id == webhook_id
        ).delete(synchronize_session=False)
        self.db.commit()
        return deleted

    def delete_all(self) -> int:
        deleted = self.db.query(DeliveryLog).delete(synchronize_session=False)
        self.db.commit()
        logger.info(f"Cleared {deleted} delivery logs")
        return deleted

    def enforce_max_entries(self, max_entries: int) -> int:
        """
        Keep only the newest ``max_entries`` rows.

        Returns:
            Number of rows deleted
        """
        if max_entries <= 0:
            return 0

        threshold = self.db.query(DeliveryLog.id).order_by(
            DeliveryLog.id.desc()
        ).offset(max_entries - 1).limit(1).scalar()
        if threshold is None:
            return 0

        deleted = self.db.query(DeliveryLog).filter(
            DeliveryLog.id < threshold
        ).delete(synchronize_session=False)
        self.db.commit()
        if deleted:
            logger.info(f"Deleted {deleted} delivery logs above the {max_entries} entry limit")
        return deleted

    def stats(self) -> Dict[str, Any]:
        """
        Aggregate statistics.

        Returns:
            Dictionary with total, today, success_today, failed_today,
            pending_today and success_rate. The rate is computed over today's
            finished rows and is 100.0 when there are none.
        """
        total = self.db.query(func.count(DeliveryLog.id)).scalar() or 0

        start_of_day = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        by_status = dict(
            self.db.query(DeliveryLog.status, func.count(DeliveryLog.id))
            .filter(DeliveryLog.created_at >= start_of_day)
            .group_by(DeliveryLog.status)
            .all()
        )
        success = by_status.get("success", 0)
        failed = by_status.get("failed", 0)
        pending = by_status.get("pending", 0)

        finished = success + failed
        success_rate = round(success / finished * 100, 1) if finished else 100.0

        return {
            "total": total,
            "today": success + failed + pending,
            "success_today": success,
            "failed_today": failed,
            "pending_today": pending,
            "success_rate": success_rate,
        }

    def stats_by_webhook(self, webhook_id: int) -> Dict[str, Any]:
        """
        Per-webhook statistics.

        Args:
            webhook_id: Webhook ID

        Returns:
            Dictionary with total, success, failed, last_run and avg_duration
        """
        query = self.db.query(DeliveryLog).filter(DeliveryLog.webhook_id == webhook_id)

        total = query.count()
        success = query.filter(DeliveryLog.status == "success").count()
        failed = query.filter(DeliveryLog.status == "failed").count()
        last_run, avg_duration = self.db.query(
            func.max(DeliveryLog.created_at),
            func.avg(DeliveryLog.duration_ms)
        ).filter(DeliveryLog.webhook_id == webhook_id).one()

        return {
            "total": total,
            "success": success,
            "failed": failed,
            "last_run": last_run,
            "avg_duration": round(float(avg_duration), 1) if avg_duration is not None else None,
        }

    def _apply_criteria(self, query: Query, criteria: Dict[str, Any]) -> Query:
        if criteria.get("webhook_id"):
            query = query.filter(DeliveryLog.webhook_id == criteria["webhook_id"])
        if criteria.get("status"):
            query = query.filter(DeliveryLog.status == criteria["status"])
        if criteria.get("trigger_key"):
            query = query.filter(DeliveryLog.trigger_key == criteria["trigger_key"])
        if criteria.get("date_from"):
            query = query.filter(DeliveryLog.created_at >= as_datetime(criteria["date_from"]))
        if criteria.get("date_to"):
            query = query.filter(DeliveryLog.created_at <= as_datetime(criteria["date_to"]))
        if criteria.get("search"):
            pattern = f"%{criteria['search']}%"
            query = query.outerjoin(Webhook, Webhook.id == DeliveryLog.webhook_id).filter(or_(
                DeliveryLog.endpoint_url.ilike(pattern),
                DeliveryLog.error_message.ilike(pattern),
                Webhook.name.ilike(pattern),
            ))
        return query
