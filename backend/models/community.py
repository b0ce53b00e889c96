"""Feed entities. Only creation and likes are handled here, since those earn points."""
from datetime import datetime
from uuid import uuid4
from sqlalchemy import Column, String, DateTime, Text, ForeignKey, Index

from core.database import Base, GUID


class Post(Base):
    __tablename__ = "posts"

    id = Column(GUID, primary_key=True, default=uuid4)
    author_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255))
    content = Column(Text, nullable=False)
    category = Column(String(50), default="general")
    created_at = Column(DateTime, default=datetime.utcnow)


class PostLike(Base):
    __tablename__ = "post_likes"
    __table_args__ = (
        Index("ix_post_likes_post_user", "post_id", "user_id", unique=True),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    post_id = Column(GUID, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)


class Comment(Base):
    __tablename__ = "comments"
    __table_args__ = (
        Index("ix_comments_post_created", "post_id", "created_at"),
    )

    id = Column(GUID, primary_key=True, default=uuid4)
    post_id = Column(GUID, ForeignKey("posts.id", ondelete="CASCADE"), nullable=False)
    author_id = Column(GUID, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    parent_id = Column(GUID, ForeignKey("comments.id", ondelete="CASCADE"))
    content = Column(Text, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)
