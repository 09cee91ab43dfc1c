"""
Database models for the ID scanner backend
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import declarative_base
from datetime import datetime

Base = declarative_base()


class ScannedRecord(Base):
    """Known ID record, looked up by exact ID number"""
    __tablename__ = "scanned_records"

    id = Column(Integer, primary_key=True, index=True)
    id_type = Column(String(64), nullable=True, index=True)
    id_number = Column(String(64), nullable=True, index=True)
    first_name = Column(String(120))
    last_name = Column(String(120))
    middle_initial = Column(String(8))
    birthday = Column(String(32))
    photo_id = Column(String(255), nullable=True)
    additional_info = Column(Text, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, index=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class UserProfile(Base):
    """Authenticated principal with a free-form metadata bag"""
    __tablename__ = "user_profiles"

    id = Column(String(128), primary_key=True)
    # "metadata" is reserved on declarative classes
    profile_metadata = Column("metadata", JSON, default=dict)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
