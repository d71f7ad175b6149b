# SQLAlchemy models

from sqlalchemy import Column, BigInteger, Integer, String, DateTime, Index, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()

MESSAGE_SENT = "message_sent"
DIRECT = "DIRECT"


class Event(Base):
    __tablename__ = "chat_events"

    # BigInteger on Postgres, plain INTEGER on SQLite so it stays a rowid alias
    id = Column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    event_type = Column(String(32), nullable=False, default=MESSAGE_SENT)
    partner_code = Column(String(80), nullable=False, default=DIRECT)
    access_type = Column(String(16), nullable=False)
    anonymous_user_id = Column(String(255), nullable=False)
    session_id = Column(String(255), nullable=False)
    # Naive, expressed in the reporting timezone
    timestamp = Column(DateTime(timezone=False), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    __table_args__ = (
        # Composite indexes for the rollup filters
        Index('idx_type_timestamp', 'event_type', 'timestamp'),
        Index('idx_partner_access_timestamp', 'partner_code', 'access_type', 'timestamp'),
        Index('idx_user_timestamp', 'anonymous_user_id', 'timestamp'),
    )

    # Load created_at right after the insert
    __mapper_args__ = {"eager_defaults": True}
