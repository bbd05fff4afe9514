"""
Backup code verification.

Unused codes are scanned oldest first and hash-compared; the first match
is consumed with a conditional update, so the same code presented twice
concurrently succeeds once.
"""

import logging

from app.core.auth_config import VerificationMethod
from app.core.errors import InvalidCode
from app.core.security import verify_code_hash
from app.crud import backup_code as crud_backup
from app.models.account_event import AccountEventType
from app.services.backup_code_generator import has_valid_checksum, normalize
from app.services.verification.base import MethodOutcome, VerificationContext, VerificationStrategy

logger = logging.getLogger(__name__)


class BackupCodeVerification(VerificationStrategy):
    method = VerificationMethod.BACKUP_CODES

    def verify(self, code: str, context: VerificationContext) -> MethodOutcome:
        if not code or not code.strip() or not has_valid_checksum(code):
            raise InvalidCode()

        submitted = normalize(code)
        user_id = context.user.id

        for stored in crud_backup.list_unused(self.db, user_id):
            if not verify_code_hash(submitted, stored.code_hash, stored.salt):
                continue

            if not crud_backup.mark_used(self.db, stored.id):
                # Another request spent this code first
                logger.warning(f"Backup code {stored.id} already consumed by a concurrent request")
                raise InvalidCode()

            remaining = crud_backup.count_unused(self.db, user_id)
            self.audit.record(
                user_id,
                AccountEventType.BACKUP_CODE_USED,
                device_session_id=context.device_session.id,
                metadata={"remaining_codes": remaining},
            )
            return MethodOutcome()

        raise InvalidCode()
