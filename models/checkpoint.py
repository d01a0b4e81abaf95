from sqlalchemy import Column, Integer, String, DateTime, Index, BigInteger
from datetime import datetime
from models.base import Base


class SyncCheckpoint(Base):
    """
    Resumption state per source stream.

    Purpose:
    - Resume a sync from the last persisted page or line
    - Avoid reprocessing already persisted data

    Design:
    - One row per source key (e.g. "cosmos:10000001", "openfoodfacts")
    - position holds the last fully processed page or line number
    - cursor holds the opaque next-page cursor, NULL once the stream is exhausted
    """
    __tablename__ = "sync_checkpoints"

    id = Column(Integer, primary_key=True, autoincrement=True)

    source_key = Column(String(150), nullable=False)

    position = Column(BigInteger().with_variant(Integer, "sqlite"), nullable=False, default=0)
    cursor = Column(String(2048), nullable=True)

    total_saves = Column(Integer, default=0)

    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        Index("idx_checkpoint_source_key", "source_key", unique=True),
    )
