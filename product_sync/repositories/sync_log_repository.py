"""
Sync log repository.

Handles the per-attempt sync activity rows.
"""
from typing import List, Dict
from datetime import datetime, timedelta
from sqlalchemy import func
from sqlalchemy.orm import Session

from product_sync.constants.sync import LogStatus
from product_sync.core.clock import utcnow
from product_sync.models.sync_models import SyncLog
from product_sync.schemas.sync_schemas import SyncLogEntry, SyncLogResponse


class SyncLogRepository:
    """Repository for sync activity log operations."""

    def __init__(self, db: Session):
        """
        Initialize repository with database session.

        Args:
            db: SQLAlchemy database session
        """
        self.db = db

    def add(self, entry: SyncLogEntry) -> SyncLog:
        """
        Append one sync attempt.

        Args:
            entry: Sync log entry

        Returns:
            Created SyncLog record
        """
        row = SyncLog(
            product_id=entry.product_id,
            status=entry.status,
            message=entry.message,
            old_price=entry.old_price,
            new_price=entry.new_price,
            old_sale_price=entry.old_sale_price,
            new_sale_price=entry.new_sale_price,
            sync_time=entry.time
        )
        self.db.add(row)
        self.db.commit()
        self.db.refresh(row)
        return row

    def get_recent(self, limit: int = 50) -> List[SyncLog]:
        return self.db.query(SyncLog).order_by(
            SyncLog.sync_time.desc(), SyncLog.id.desc()
        ).limit(limit).all()

    def get_for_product(self, product_id: int, limit: int = 50) -> List[SyncLog]:
        """
        Get the latest attempts for one product.

        Args:
            product_id: Product ID
            limit: Maximum number of rows

        Returns:
            List of SyncLog rows, newest first
        """
        return self.db.query(SyncLog).filter(
            SyncLog.product_id == product_id
        ).order_by(SyncLog.sync_time.desc(), SyncLog.id.desc()).limit(limit).all()

    def get_status_counts(self) -> Dict[str, int]:
        rows = self.db.query(SyncLog.status, func.count(SyncLog.id)).group_by(SyncLog.status).all()
        counts = {LogStatus.SUCCESS: 0, LogStatus.ERROR: 0}
        counts.update({status: count for status, count in rows})
        return counts

    def purge_older_than(self, days: int, now: datetime = None) -> int:
        """
        Delete rows older than the given number of days.

        Returns:
            Number of deleted rows
        """
        cutoff = (now or utcnow()) - timedelta(days=days)
        deleted = self.db.query(SyncLog).filter(SyncLog.sync_time < cutoff).delete()
        self.db.commit()
        return deleted

    @staticmethod
    def to_response(row: SyncLog) -> SyncLogResponse:
        return SyncLogResponse(
            id=row.id,
            product_id=row.product_id,
            time=row.sync_time,
            status=row.status,
            message=row.message or "",
            old_price=row.old_price,
            new_price=row.new_price,
            old_sale_price=row.old_sale_price,
            new_sale_price=row.new_sale_price
        )
