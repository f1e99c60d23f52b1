"""
Account Lock Service - Failed-login lockout with emailed unlock codes

Each user has at most one lock record (table account_lock), created lazily on
the first failed login. After `max_attempts` consecutive failures the account
is locked and a 6-digit unlock code is emailed to the user. The code unlocks
the account once, until it expires or is replaced by a resend.

Lock state errors from the database propagate to the caller. Email failures
while issuing a code are logged and swallowed: the lock stands and the user
can ask for a resend.

Usage:
    service = AccountLockService(db, email_sender, max_attempts=3, code_ttl_minutes=30)
    outcome = service.record_failed_attempt(user_id)
    if outcome["blocked"]:
        ...
"""

import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

NOT_LOCKED = "NOT_LOCKED"
CODE_ALREADY_USED = "CODE_ALREADY_USED"
CODE_EXPIRED = "CODE_EXPIRED"
CODE_MISMATCH = "CODE_MISMATCH"

LOCK_ERROR_MESSAGES = {
    NOT_LOCKED: "La cuenta no está bloqueada",
    CODE_ALREADY_USED: "El código de desbloqueo ya fue utilizado",
    CODE_EXPIRED: "El código de desbloqueo ha expirado. Solicita uno nuevo",
    CODE_MISMATCH: "Código de desbloqueo incorrecto",
}

CODE_LENGTH = 6


def generate_unlock_code() -> str:
    """Random 6-digit numeric code from the OS CSPRNG"""
    return f"{secrets.randbelow(10 ** CODE_LENGTH):0{CODE_LENGTH}d}"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse a timestamptz value returned by PostgREST into an aware datetime"""
    if value is None or isinstance(value, datetime):
        return value
    parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _failure(kind: str) -> Tuple[bool, Dict[str, Any]]:
    return False, {"error": kind, "message": LOCK_ERROR_MESSAGES[kind]}


class AccountLockService:
    """Per-user lockout state machine backed by the account_lock table"""

    def __init__(
        self,
        db,
        email_sender,
        max_attempts: int = 3,
        code_ttl_minutes: int = 30
    ):
        """
        Args:
            db: SupabaseTool (or anything exposing the same lock/user methods)
            email_sender: EmailSender used to deliver unlock codes
            max_attempts: Consecutive failures that lock the account
            code_ttl_minutes: Unlock code lifetime
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.db = db
        self.email_sender = email_sender
        self.max_attempts = max_attempts
        self.code_ttl = timedelta(minutes=code_ttl_minutes)

    @classmethod
    def from_config(cls, config, db, email_sender) -> "AccountLockService":
        return cls(
            db,
            email_sender,
            max_attempts=config.lockout_max_attempts,
            code_ttl_minutes=config.unlock_code_ttl_minutes,
        )

    def _now(self) -> datetime:
        return datetime.now(timezone.utc)

    # ==================== Login flow ====================

    def record_failed_attempt(self, user_id: int) -> Dict[str, Any]:
        """
        Count a failed login and lock the account at the threshold.

        Returns:
            {"blocked": bool, "attempts": int, "remaining": int}
        """
        lock = self.db.get_lock_record(user_id) or self.db.create_lock_record(user_id)
        attempts = (lock.get("intentos_fallidos") or 0) + 1

        if attempts >= self.max_attempts:
            code = generate_unlock_code()
            now = self._now()
            self.db.update_lock_record(user_id, {
                "intentos_fallidos": attempts,
                "bloqueado": True,
                "bloqueado_desde": now.isoformat(),
                "codigo_desbloqueo": code,
                "codigo_expires_at": (now + self.code_ttl).isoformat(),
                "codigo_used": False,
            })
            logger.warning(f"Account {user_id} locked after {attempts} failed login attempts")
            self._dispatch_code(user_id, code)
            return {"blocked": True, "attempts": attempts, "remaining": 0}

        self.db.update_lock_record(user_id, {"intentos_fallidos": attempts})
        return {
            "blocked": False,
            "attempts": attempts,
            "remaining": self.max_attempts - attempts,
        }

    def reset_attempts(self, user_id: int) -> None:
        """Zero the counter and clear the lock. Safe to call when nothing is locked."""
        self.db.update_lock_record(user_id, {
            "intentos_fallidos": 0,
            "bloqueado": False,
            "bloqueado_desde": None,
        })

    def is_locked(self, user_id: int) -> Dict[str, Any]:
        """
        Read the persisted lock state.

        Users without a lock record have never failed a login and are unlocked.
        """
        lock = self.db.get_lock_record(user_id)
        if not lock or not lock.get("bloqueado"):
            return {"locked": False, "locked_since": None}
        return {"locked": True, "locked_since": lock.get("bloqueado_desde")}

    # ==================== Unlock codes ====================

    def verify_unlock_code(self, user_id: int, code: str) -> Tuple[bool, Dict[str, Any]]:
        """
        Unlock the account with the emailed code.

        A used code is reported as CODE_ALREADY_USED even after the account
        has been unlocked by it, so a replayed code gets a precise answer.

        Returns:
            (True, {"message"}) or (False, {"error": kind, "message"})
        """
        lock = self.db.get_lock_record(user_id)
        if not lock:
            return _failure(NOT_LOCKED)

        if lock.get("codigo_used"):
            return _failure(CODE_ALREADY_USED)

        if not lock.get("bloqueado"):
            return _failure(NOT_LOCKED)

        expires_at = parse_timestamp(lock.get("codigo_expires_at"))
        if expires_at is None or self._now() > expires_at:
            return _failure(CODE_EXPIRED)

        stored = lock.get("codigo_desbloqueo") or ""
        if not hmac.compare_digest(stored.encode(), str(code).encode()):
            return _failure(CODE_MISMATCH)

        self.db.update_lock_record(user_id, {
            "intentos_fallidos": 0,
            "bloqueado": False,
            "bloqueado_desde": None,
            "codigo_used": True,
        })
        logger.info(f"Account {user_id} unlocked with unlock code")
        return True, {"message": "Cuenta desbloqueada correctamente"}

    def resend_code(self, user_id: int) -> Tuple[bool, Dict[str, Any]]:
        """
        Issue a fresh code for a locked account and email it.

        The previous code stops working because only the latest one is stored.
        """
        lock = self.db.get_lock_record(user_id)
        if not lock or not lock.get("bloqueado"):
            return _failure(NOT_LOCKED)

        previous = lock.get("codigo_desbloqueo")
        code = generate_unlock_code()
        while code == previous:
            code = generate_unlock_code()

        self.db.update_lock_record(user_id, {
            "codigo_desbloqueo": code,
            "codigo_expires_at": (self._now() + self.code_ttl).isoformat(),
            "codigo_used": False,
        })
        email_sent = self._dispatch_code(user_id, code)
        return True, {
            "message": "Se envió un nuevo código de desbloqueo a tu correo",
            "email_sent": email_sent,
        }

    def admin_unlock(self, user_id: int) -> Dict[str, Any]:
        """
        Clear every lock field. Authorization is the caller's job.

        Returns:
            {"was_locked": bool}
        """
        lock = self.db.get_lock_record(user_id)
        if not lock:
            self.db.create_lock_record(user_id)
            return {"was_locked": False}

        self.db.update_lock_record(user_id, {
            "intentos_fallidos": 0,
            "bloqueado": False,
            "bloqueado_desde": None,
            "codigo_desbloqueo": None,
            "codigo_expires_at": None,
            "codigo_used": False,
        })
        logger.info(f"Account {user_id} unlocked by administrator")
        return {"was_locked": bool(lock.get("bloqueado"))}

    def _dispatch_code(self, user_id: int, code: str) -> bool:
        """Email the unlock code. Never raises."""
        try:
            user = self.db.get_user_by_id(user_id)
            if not user or not user.get("email"):
                logger.warning(f"Account {user_id} locked but no email address to send the code to")
                return False

            sent = self.email_sender.send_unlock_code_email(
                to=user["email"],
                username=user.get("username") or user.get("nombre_completo") or "",
                code=code,
                ttl_minutes=int(self.code_ttl.total_seconds() // 60),
            )
            if not sent:
                logger.error(f"Unlock code email to user {user_id} was not delivered")
            return bool(sent)

        except Exception as e:
            logger.error(f"Failed to send unlock code to user {user_id}: {e}", exc_info=True)
            return False
