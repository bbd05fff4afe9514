"""
Device model: a browser/OS fingerprint observed for one user.

The identity key is (user_id, device_name, browser, os). The IP address is
mutable metadata refreshed every time the device is seen.
"""

import uuid
from sqlalchemy import Column, String, DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import relationship
from app.core.database import Base

UNKNOWN_DEVICE = "Unknown Device"
UNKNOWN_BROWSER = "Unknown Browser"
UNKNOWN_OS = "Unknown OS"


class Device(Base):
    __tablename__ = "devices"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    user_id = Column(UUID(as_uuid=True), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)

    device_name = Column(String(255), nullable=False, default=UNKNOWN_DEVICE)
    browser = Column(String(255), nullable=False, default=UNKNOWN_BROWSER)
    os = Column(String(255), nullable=False, default=UNKNOWN_OS)
    ip_address = Column(String(64), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="devices")
    sessions = relationship("DeviceSession", back_populates="device")

    __table_args__ = (
        UniqueConstraint("user_id", "device_name", "browser", "os", name="uq_devices_identity"),
    )

    def __repr__(self):
        return f"<Device(id={self.id}, name='{self.device_name}', browser='{self.browser}', os='{self.os}')>"
