"""Dependencies shared by the API endpoints."""
from fastapi import Depends
from sqlalchemy.orm import Session

from product_sync.db.session import get_db
from product_sync.factories.sync_factory import SyncFactory


def get_sync_factory(db: Session = Depends(get_db)) -> SyncFactory:
    return SyncFactory(db)
