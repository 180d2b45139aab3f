from sqlalchemy import Column, Integer, String, DateTime, Text
from datetime import datetime

from ..core.db import Base

class JobNotification(Base):
    __tablename__ = "job_notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    job_id = Column(String(64), index=True, nullable=False)
    operator_id = Column(String(64), index=True, nullable=False)
    type = Column(String(16), nullable=False)    # "started", "progress", "completed", …
    message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
