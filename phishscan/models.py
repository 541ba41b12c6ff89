from sqlalchemy import Column, Integer, String, DateTime, Text
from datetime import datetime, timezone
from phishscan.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class Feedback(Base):
    """Analyst/user disagreement with a verdict, kept for later tuning."""
    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(2048), index=True, nullable=False)
    verdict = Column(String(50), index=True, nullable=False)
    comment = Column(Text, default="")

    created_at = Column(DateTime, default=_utcnow)
