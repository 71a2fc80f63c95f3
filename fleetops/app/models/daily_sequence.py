"""
Daily sequence counter model.

Backs the human-readable identifiers (DEP_###_YYMMDD, MAINT_YYMMDD_###):
one row per (prefix, day), incremented inside the creating transaction.
"""

from sqlalchemy import Column, Integer, String, Date, UniqueConstraint
from fleetops.app.db.session import Base


class DailySequence(Base):
    __tablename__ = "daily_sequences"

    id = Column(Integer, primary_key=True, autoincrement=True)
    prefix = Column(String(20), nullable=False)
    day = Column(Date, nullable=False)
    last_value = Column(Integer, default=0, nullable=False)

    __table_args__ = (
        UniqueConstraint("prefix", "day", name="uq_daily_sequences_prefix_day"),
    )

    def __repr__(self):
        return f"<DailySequence(prefix='{self.prefix}', day={self.day}, last={self.last_value})>"
