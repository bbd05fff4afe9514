"""
CRUD operations (Create, Read, Update, Delete) for database models.

This layer provides a clean separation between services and database operations,
following the Repository pattern.
"""

from app.crud import account_event, backup_code, device, device_session, mfa_factor, user, verification_code

__all__ = ["account_event", "backup_code", "device", "device_session", "mfa_factor", "user", "verification_code"]
