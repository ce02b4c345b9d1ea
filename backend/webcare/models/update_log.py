from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Text, JSON
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from webcare.db.base_class import Base


class UpdateLog(Base):
    """Audit row for one core/plugin/theme update attempt."""
    __tablename__ = "update_logs"

    id = Column(Integer, primary_key=True, index=True)
    website_id = Column(Integer, ForeignKey("websites.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True)
    update_type = Column(String, nullable=False)  # "wordpress", "plugin", "theme"
    item_name = Column(String, nullable=False)
    item_slug = Column(String, nullable=True)
    from_version = Column(String, nullable=True)
    to_version = Column(String, nullable=True)
    update_status = Column(String, nullable=False)  # "success", "failed", "pending"
    error_message = Column(Text, nullable=True)
    update_data = Column(JSON, nullable=True)
    duration_ms = Column(Integer, nullable=True)
    automated_update = Column(Boolean, default=False)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    website = relationship("Website", back_populates="update_logs")
