import uuid

from sqlalchemy import Column, String, Text, DateTime, JSON
from sqlalchemy.sql import func
from database import Base


class BlogPost(Base):
    """
    Generated article. A row with status 'generating' is a placeholder the
    client creates before the workflow finishes.
    """
    __tablename__ = "blog_posts"

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))

    title = Column(String(500), nullable=False, index=True)
    content = Column(Text)
    excerpt = Column(Text)
    meta_description = Column(String(255))
    meta_title = Column(String(500))
    meta_keywords = Column(Text)
    featured_image = Column(String(1000))
    featured_image_alt = Column(String(500))

    # generating, draft, published
    status = Column(String(50), nullable=False, default="draft", index=True)

    brand_id = Column(String(36), index=True)
    user_id = Column(String(36), index=True)
    campaign_id = Column(String(36))

    keywords = Column(JSON)
    wordpress_settings = Column(JSON)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    def __repr__(self):
        return f"<BlogPost(id={self.id}, title={self.title}, status={self.status})>"
