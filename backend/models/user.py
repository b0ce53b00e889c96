"""User identity mirrored from the external auth service."""
from datetime import datetime
from uuid import uuid4

from sqlalchemy import Column, String, DateTime, Index

from core.database import Base, GUID


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        Index("ix_users_email", "email", unique=True),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    email = Column(String(255))
    first_name = Column(String(100))
    last_name = Column(String(100))
    profile_image_url = Column(String(500))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    @property
    def display_name(self) -> str:
        full = " ".join(part for part in (self.first_name, self.last_name) if part)
        if full:
            return full
        if self.email:
            return self.email.split("@", 1)[0]
        return "Member"
