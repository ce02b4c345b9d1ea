"""
Website model: one managed WordPress installation.

The stored WP Remote Manager API key is the only credential the dashboard
needs to talk to the site. `connection_status` always reflects the outcome of
the most recent remote call made through the dashboard.
"""
import enum

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from webcare.db.base_class import Base


class ConnectionStatus(str, enum.Enum):
    CONNECTED = "connected"
    ERROR = "error"
    UNKNOWN = "unknown"


class Website(Base):
    __tablename__ = "websites"

    id = Column(Integer, primary_key=True, index=True)
    client_id = Column(Integer, ForeignKey("clients.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    url = Column(String, nullable=False)
    wrm_api_key = Column(String, nullable=True)
    connection_status = Column(String, nullable=False, default=ConnectionStatus.UNKNOWN.value)
    last_checked_at = Column(DateTime, nullable=True)
    wp_version = Column(String, nullable=True)
    wp_data = Column(Text, nullable=True)  # JSON snapshot of the last successful sync
    last_sync = Column(DateTime, nullable=True)
    last_update = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now(), onupdate=func.now())

    client = relationship("Client", back_populates="websites")
    update_logs = relationship("UpdateLog", back_populates="website", cascade="all, delete-orphan")

    @property
    def has_api_key(self) -> bool:
        return bool(self.wrm_api_key and self.wrm_api_key.strip())
