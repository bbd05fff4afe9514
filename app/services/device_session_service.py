"""
Device session store: creation policy, lookup, listing and revocation.

Ownership is checked on every path. Lookups of sessions that are expired,
missing or owned by someone else all come back as NotFound, so callers
cannot probe for other users' session ids.
"""

import logging
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from app.core import trust
from app.core.auth_config import AuthConfig
from app.core.errors import NotFound, Unauthorized
from app.core.identity import CurrentUser, IdentityProvider
from app.core.timeutils import as_utc, utcnow
from app.crud import device as crud_device
from app.crud import device_session as crud_session
from app.models.account_event import AccountEventType
from app.models.device import Device
from app.models.device_session import DeviceSession
from app.services.audit_log import AuditLog
from app.services.notifications import NotificationChannel, NotificationTemplate

logger = logging.getLogger(__name__)


@dataclass
class RevokeResult:
    revoked: bool
    # The caller revoked its own current session and has been logged out
    logged_out: bool = False


def device_context(device: Optional[Device]) -> Dict[str, Any]:
    if device is None:
        return {}
    return {
        "device_name": device.device_name,
        "browser": device.browser,
        "os": device.os,
        "ip_address": device.ip_address,
    }


class DeviceSessionService:
    def __init__(
        self,
        db: Session,
        config: AuthConfig,
        identity_provider: IdentityProvider,
        notifier: NotificationChannel,
        audit: Optional[AuditLog] = None,
    ):
        self.db = db
        self.config = config
        self.identity_provider = identity_provider
        self.notifier = notifier
        self.audit = audit or AuditLog(db)

    # -- creation -----------------------------------------------------------

    def assess(self, caller: CurrentUser, fingerprint: trust.DeviceFingerprint) -> trust.TrustDecision:
        """
        Trust decision for a new session on `fingerprint`.

        The device that created the account (first session of a token
        minted at registration) is trusted outright. Everything else is
        scored against devices behind the user's trusted sessions only.
        """
        if caller.is_new_user and not crud_session.has_any_session(self.db, caller.id):
            return trust.new_account_decision()

        trusted = [
            trust.DeviceFingerprint.from_device(device)
            for device in crud_session.list_trusted_devices(self.db, caller.id)
        ]
        value = trust.score(fingerprint, trusted)
        return trust.decide(value, caller.auth_method, self.config.trust)

    def create(
        self,
        caller: CurrentUser,
        user_id: UUID,
        fingerprint: trust.DeviceFingerprint,
        decision: Optional[trust.TrustDecision] = None
    ) -> DeviceSession:
        """
        Find-or-create the device and open a new session on it.

        Raises:
            Unauthorized: `user_id` is not the authenticated caller
        """
        if user_id != caller.id:
            raise Unauthorized("Device sessions can only be created for yourself")

        decision = decision or self.assess(caller, fingerprint)
        device = crud_device.find_or_create_device(self.db, user_id, fingerprint)
        expires_at = utcnow() + timedelta(days=self.config.device_session_max_age_days)
        session = crud_session.create_device_session(self.db, user_id, device.id, decision, expires_at)

        context = device_context(device)
        self.audit.record(
            user_id,
            AccountEventType.NEW_DEVICE_LOGIN,
            device_session_id=session.id,
            metadata={"device": context, "confidence_score": decision.score, "tier": decision.tier.value},
        )
        if session.is_trusted:
            if caller.is_new_user and decision.score == trust.NEW_ACCOUNT_SCORE:
                reason = "new_account"
            elif caller.auth_method == trust.AuthMethod.OAUTH:
                reason = "oauth"
            else:
                reason = "high_confidence"
            self.audit.record(
                user_id,
                AccountEventType.DEVICE_TRUSTED_AUTO,
                device_session_id=session.id,
                metadata={"device": context, "reason": reason},
            )

        if session.needs_verification and self.config.alerts.enabled and self.config.alerts.on_new_device:
            self.notifier.send(user_id, NotificationTemplate.DEVICE_ALERT, {"email": caller.email, "device": context})

        logger.info(
            f"Device session {session.id} created for user {user_id} "
            f"(score={decision.score}, tier={decision.tier.value}, trusted={session.is_trusted})"
        )
        return session

    # -- reads --------------------------------------------------------------

    def get_current(self, session_id: Optional[UUID], caller: CurrentUser) -> DeviceSession:
        """
        Resolve the cookie-bound session.

        One retry on a transient database error; reads are idempotent.

        Raises:
            NotFound: absent, expired or not owned by the caller
        """
        if session_id is None:
            raise NotFound("No active device session")

        try:
            session = crud_session.get_active_session(self.db, session_id, caller.id)
        except OperationalError as e:
            logger.warning(f"Transient error reading device session {session_id}, retrying: {e}")
            self.db.rollback()
            session = crud_session.get_active_session(self.db, session_id, caller.id)

        if session is None:
            raise NotFound("No active device session")
        return session

    def get_owned(self, session_id: UUID, caller: CurrentUser) -> DeviceSession:
        session = crud_session.get_active_session(self.db, session_id, caller.id)
        if session is None:
            raise NotFound("Device session not found")
        return session

    def list(self, user_id: UUID, order_by: str = "created_at") -> List[DeviceSession]:
        return crud_session.list_sessions(self.db, user_id, order_by=order_by)

    def list_trusted(self, user_id: UUID) -> List[DeviceSession]:
        return crud_session.list_trusted_sessions(self.db, user_id)

    # -- updates ------------------------------------------------------------

    def update(self, session_id: UUID, caller: CurrentUser, updates: Dict[str, Any]) -> DeviceSession:
        """
        Apply a client-supplied partial update to one of the caller's sessions.

        Raises:
            NotFound: not the caller's live session
            Unauthorized: the payload touches a server-owned field
        """
        session = self.get_owned(session_id, caller)
        last_active = as_utc(updates.get("last_active"))
        if last_active is not None:
            updates = {**updates, "last_active": min(last_active, utcnow())}
        return crud_session.apply_client_update(self.db, session, updates)

    def mark_verified(self, session: DeviceSession) -> DeviceSession:
        """Device verification succeeded: trust the session and clear the flag."""
        session = crud_session.mark_device_verified(self.db, session)
        self.audit.record(
            session.user_id,
            AccountEventType.DEVICE_VERIFIED,
            device_session_id=session.id,
            metadata={"device": device_context(session.device)},
        )
        return session

    # -- revocation ---------------------------------------------------------

    def revoke(self, session_id: UUID, caller: CurrentUser, current_session_id: Optional[UUID]) -> RevokeResult:
        """
        Revoke one session.

        Already-gone sessions succeed without a second audit event. A
        session id that exists but belongs to someone else is refused.
        Revoking the caller's own current session also invalidates the
        primary credential (the endpoint clears the cookie).

        Raises:
            Unauthorized: the session belongs to another user
        """
        removed = crud_session.delete_session(self.db, session_id, caller.id)

        if not removed:
            if crud_session.session_exists(self.db, session_id):
                logger.warning(f"User {caller.id} attempted to revoke session {session_id} they do not own")
                raise Unauthorized("Not allowed to revoke this session")
            logger.info(f"Device session {session_id} already revoked")
            if session_id == current_session_id:
                self.identity_provider.invalidate_primary_session(caller.token)
                return RevokeResult(revoked=False, logged_out=True)
            return RevokeResult(revoked=False)

        self.audit.record(
            caller.id,
            AccountEventType.DEVICE_REVOKED,
            device_session_id=session_id,
            metadata={"revoked_by_session": str(current_session_id) if current_session_id else None},
        )

        logged_out = session_id == current_session_id
        if logged_out:
            self.identity_provider.invalidate_primary_session(caller.token)
            logger.info(f"User {caller.id} revoked their current session; primary session invalidated")

        return RevokeResult(revoked=True, logged_out=logged_out)

    def revoke_all_except_current(self, caller: CurrentUser, current_session_id: Optional[UUID]) -> int:
        """
        Revoke every other session of the caller.

        One DEVICE_REVOKED event per session actually removed by this call,
        and a single notification for the whole batch.

        Raises:
            NotFound: no current session to keep
        """
        if current_session_id is None:
            raise NotFound("No current device session")

        revoked = 0
        for session_id in crud_session.list_other_session_ids(self.db, caller.id, current_session_id):
            if not crud_session.delete_session(self.db, session_id, caller.id):
                continue
            revoked += 1
            self.audit.record(
                caller.id,
                AccountEventType.DEVICE_REVOKED,
                device_session_id=session_id,
                metadata={"bulk": True, "revoked_by_session": str(current_session_id)},
            )

        if revoked and self.config.alerts.enabled and self.config.alerts.on_revoke:
            self.notifier.send(caller.id, NotificationTemplate.DEVICES_REVOKED, {"email": caller.email, "count": revoked})

        logger.info(f"Revoked {revoked} other device session(s) for user {caller.id}")
        return revoked

    def logout(self, caller: CurrentUser, current_session_id: Optional[UUID]) -> None:
        """Full logout: end the primary session and drop the current device session."""
        if current_session_id is not None:
            self.revoke(current_session_id, caller, current_session_id)
        else:
            self.identity_provider.invalidate_primary_session(caller.token)
