"""
CRUD operations for device fingerprints.
"""

from typing import Optional
from uuid import UUID
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.core.trust import DeviceFingerprint
from app.models.device import Device, UNKNOWN_BROWSER, UNKNOWN_DEVICE, UNKNOWN_OS


def _identity_filter(query, user_id: UUID, fingerprint: DeviceFingerprint):
    return query.filter(
        Device.user_id == user_id,
        Device.device_name == (fingerprint.device_name or UNKNOWN_DEVICE),
        Device.browser == (fingerprint.browser or UNKNOWN_BROWSER),
        Device.os == (fingerprint.os or UNKNOWN_OS),
    )


def find_device(db: Session, user_id: UUID, fingerprint: DeviceFingerprint) -> Optional[Device]:
    return _identity_filter(db.query(Device), user_id, fingerprint).first()


def find_or_create_device(db: Session, user_id: UUID, fingerprint: DeviceFingerprint) -> Device:
    """
    Look up the device by its identity tuple, creating it on first sighting.

    The IP address is refreshed on every observation. Two concurrent first
    sightings collide on the unique constraint; the loser re-reads the row.
    """
    device = find_device(db, user_id, fingerprint)

    if device is None:
        device = Device(
            user_id=user_id,
            device_name=fingerprint.device_name or UNKNOWN_DEVICE,
            browser=fingerprint.browser or UNKNOWN_BROWSER,
            os=fingerprint.os or UNKNOWN_OS,
            ip_address=fingerprint.ip_address,
        )
        db.add(device)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            device = find_device(db, user_id, fingerprint)
            if device is None:
                raise
        else:
            db.refresh(device)
            return device

    if fingerprint.ip_address and device.ip_address != fingerprint.ip_address:
        device.ip_address = fingerprint.ip_address
        db.commit()
        db.refresh(device)

    return device
