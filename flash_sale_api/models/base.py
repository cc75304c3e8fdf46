from sqlalchemy import Column, DateTime

from ..utils.time import utcnow


class TimeStampMixin:
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
