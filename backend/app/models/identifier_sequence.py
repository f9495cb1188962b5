"""
Persisted counters behind human-readable sale and prescription numbers.
One row per identifier kind; incremented with a single UPDATE so concurrent
transactions serialize on the row instead of on process memory.
"""
from sqlalchemy import Column, Integer, String

from app.db.base import Base


class IdentifierSequence(Base):
    __tablename__ = "identifier_sequences"

    name = Column(String(64), primary_key=True)
    value = Column(Integer, nullable=False, default=0)
