from sqlalchemy import Column, Integer, String, Text, DateTime, Index, UniqueConstraint
from datetime import datetime

from ..core.db import Base


class ExternalReview(Base):
    __tablename__ = "external_reviews"

    id = Column(Integer, primary_key=True, autoincrement=True)
    # natural key: (operator_id, source, external_id)
    operator_id = Column(String(64), nullable=False)
    source = Column(String(32), nullable=False)      # 'tripadvisor', 'google'
    external_id = Column(String(255), nullable=False)

    job_id = Column(String(64), nullable=True, index=True)  # last job that wrote this row
    author_name = Column(String(255), nullable=False)
    rating = Column(Integer, nullable=False)
    text = Column(Text, nullable=True)
    posted_at = Column(DateTime, nullable=True)
    review_url = Column(Text, nullable=True)
    author_photo_url = Column(Text, nullable=True)
    place_name = Column(String(255), nullable=True)
    helpful_count = Column(Integer, nullable=False, default=0)
    response_text = Column(Text, nullable=True)
    response_date = Column(DateTime, nullable=True)
    imported_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    __table_args__ = (
        UniqueConstraint("operator_id", "source", "external_id", name="uq_external_review_natural_key"),
        Index("ix_external_reviews_operator_source", "operator_id", "source"),
    )
