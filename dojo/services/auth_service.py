"""
Authentication Service - Local accounts with bcrypt and JWT

Handles login (gated by the account lockout), registration, admin-created
staff accounts, password changes and recovery, and unlock-code self service.
Access tokens are HS256 JWTs signed with the configured secret.

All public coroutines return Tuple[bool, Dict]; on failure the dict carries
"error" (a machine readable kind) and "message" (shown to the user).
"""

import hashlib
import hmac
import logging
import secrets
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional, Tuple

import bcrypt
import jwt

from config.loader import DojoConfig, get_config
from dojo.constants import STAFF_ROLES, Role
from dojo.services import activity_log
from dojo.services.account_lock_service import AccountLockService, parse_timestamp
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.email_sender import EmailSender

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 10
JWT_ALGORITHM = "HS256"

INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
EMAIL_TAKEN = "EMAIL_TAKEN"
USERNAME_TAKEN = "USERNAME_TAKEN"
INVALID_TOKEN = "INVALID_TOKEN"
TOKEN_EXPIRED = "TOKEN_EXPIRED"
USER_NOT_FOUND = "USER_NOT_FOUND"
USER_EXISTS = "USER_EXISTS"
INVALID_ROLE = "INVALID_ROLE"
WRONG_PASSWORD = "WRONG_PASSWORD"

LOCKED_MESSAGE = (
    "Tu cuenta ha sido bloqueada debido a múltiples intentos fallidos. "
    "Se ha enviado un código de desbloqueo a tu correo electrónico."
)
FORGOT_PASSWORD_MESSAGE = "Si el email existe, se le enviará un correo de recuperación"
RESEND_UNLOCK_MESSAGE = "Si el email existe y la cuenta está bloqueada, se reenviará el código"


def hash_password(password: str) -> str:
    """bcrypt hash as a str (bcrypt ignores bytes past 72)"""
    password_bytes = password.encode("utf-8")[:72]
    return bcrypt.hashpw(password_bytes, bcrypt.gensalt(rounds=BCRYPT_ROUNDS)).decode("utf-8")


def check_password(password: str, password_hash: Optional[str]) -> bool:
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8")[:72], password_hash.encode("utf-8"))
    except ValueError as e:
        logger.error(f"Password verification error: {e}")
        return False


def hash_reset_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def public_profile(user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": user["id"],
        "username": user.get("username"),
        "email": user.get("email"),
        "nombre_completo": user.get("nombre_completo"),
        "rol": user.get("rol"),
        "idioma_preferido": user.get("idioma_preferido") or "es",
    }


class AuthService:
    """Login, registration and account recovery"""

    def __init__(
        self,
        config: DojoConfig,
        db: SupabaseTool,
        lock_service: AccountLockService,
        email_sender: EmailSender
    ):
        self.config = config
        self.db = db
        self.lock_service = lock_service
        self.email_sender = email_sender

        self.jwt_secret = config.jwt_secret
        if not self.jwt_secret:
            raise ValueError("JWT_SECRET is not configured")

    # ==================== Tokens ====================

    def create_access_token(self, user: Dict[str, Any]) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user["id"]),
            "rol": user.get("rol"),
            "username": user.get("username"),
            "iat": now,
            "exp": now + timedelta(hours=self.config.jwt_expiry_hours),
        }
        return jwt.encode(payload, self.jwt_secret, algorithm=JWT_ALGORITHM)

    def verify_jwt(self, token: str) -> Tuple[bool, Dict[str, Any]]:
        """
        Verify and decode an access token.

        Returns:
            Tuple of (valid, payload/error)
        """
        try:
            payload = jwt.decode(
                token,
                self.jwt_secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["sub", "exp"]},
            )
            return True, payload

        except jwt.ExpiredSignatureError:
            return False, {"error": "Token expired"}
        except jwt.InvalidSignatureError:
            logger.warning("JWT signature verification failed - possible token tampering")
            return False, {"error": "Invalid token signature"}
        except jwt.InvalidTokenError as e:
            logger.debug(f"Invalid JWT: {e}")
            return False, {"error": "Invalid token"}

    async def get_active_user(self, user_id: int) -> Optional[Dict[str, Any]]:
        user = self.db.get_user_by_id(user_id)
        if not user or not user.get("estado"):
            return None
        return user

    # ==================== Login ====================

    async def login(
        self,
        email: str,
        password: str,
        unlock_code: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Tuple[bool, Dict[str, Any]]:
        """
        Authenticate with email and password.

        A locked account must first be unlocked with `unlock_code`; a valid
        code unlocks it and the password is then checked as usual.

        Returns:
            (True, {"token", "user"}) or (False, {"error", "message", ...})
            where failures may carry "locked", "attempts" and "remaining"
        """
        user = self.db.get_active_user_by_email(email)
        if not user:
            return False, {"error": INVALID_CREDENTIALS, "message": "Credenciales inválidas"}

        user_id = user["id"]

        if self.lock_service.is_locked(user_id)["locked"]:
            if not unlock_code:
                return False, {"error": ACCOUNT_LOCKED, "message": LOCKED_MESSAGE, "locked": True}

            valid, result = self.lock_service.verify_unlock_code(user_id, unlock_code)
            if not valid:
                return False, {**result, "locked": True}
            logger.info(f"Account {user_id} unlocked during login")

        if not check_password(password, user.get("password_hash")):
            outcome = self.lock_service.record_failed_attempt(user_id)
            if outcome["blocked"]:
                return False, {"error": ACCOUNT_LOCKED, "message": LOCKED_MESSAGE, "locked": True}
            return False, {
                "error": INVALID_CREDENTIALS,
                "message": f"Credenciales incorrectas. Te quedan {outcome['remaining']} intento(s).",
                "attempts": outcome["attempts"],
                "remaining": outcome["remaining"],
            }

        self.lock_service.reset_attempts(user_id)

        activity_log.record_activity(
            self.db,
            user_id,
            activity_log.LOGIN,
            "auth",
            f"Login exitoso - Usuario: {user.get('username')} ({user.get('rol')})",
            ip_address,
            user_agent,
        )

        return True, {
            "token": self.create_access_token(user),
            "user": public_profile(user),
        }

    async def register(
        self,
        email: str,
        username: str,
        password: str,
        full_name: str
    ) -> Tuple[bool, Dict[str, Any]]:
        """Create a student-role account and sign it in"""
        if self.db.email_exists(email):
            return False, {"error": EMAIL_TAKEN, "message": "El email ya está registrado"}

        if self.db.username_exists(username):
            return False, {"error": USERNAME_TAKEN, "message": "El nombre de usuario ya existe"}

        user = self.db.create_user({
            "email": email,
            "username": username,
            "password_hash": hash_password(password),
            "nombre_completo": full_name,
            "rol": Role.STUDENT.value,
            "estado": True,
        })
        if not user:
            raise RuntimeError(f"User insert returned no row for {username}")

        activity_log.record_activity(
            self.db, user["id"], activity_log.REGISTER, "auth", f"Registro - Usuario: {username}"
        )

        return True, {
            "token": self.create_access_token(user),
            "user": public_profile(user),
        }

    async def create_staff_user(
        self,
        email: str,
        username: str,
        password: str,
        full_name: str,
        role: str
    ) -> Tuple[bool, Dict[str, Any]]:
        """Admin-created account for a staff role; no token is issued"""
        if role not in {r.value for r in STAFF_ROLES}:
            return False, {"error": INVALID_ROLE, "message": "Rol inválido"}

        if self.db.email_exists(email) or self.db.username_exists(username):
            return False, {"error": USER_EXISTS, "message": "El usuario o email ya existe"}

        user = self.db.create_user({
            "email": email,
            "username": username,
            "password_hash": hash_password(password),
            "nombre_completo": full_name,
            "rol": role,
            "estado": True,
        })
        if not user:
            raise RuntimeError(f"User insert returned no row for {username}")
        return True, public_profile(user)

    async def change_password(
        self,
        user_id: int,
        current_password: str,
        new_password: str
    ) -> Tuple[bool, Dict[str, Any]]:
        """Replace the password after checking the current one"""
        password_hash = self.db.get_password_hash(user_id)
        if password_hash is None:
            return False, {"error": USER_NOT_FOUND, "message": "Usuario no encontrado"}

        if not check_password(current_password, password_hash):
            return False, {"error": WRONG_PASSWORD, "message": "Contraseña actual incorrecta"}

        self.db.update_user(user_id, {"password_hash": hash_password(new_password)})
        logger.info(f"Password changed for user {user_id}")
        return True, {"message": "Contraseña actualizada exitosamente"}

    # ==================== Password recovery ====================

    async def request_password_reset(self, email: str) -> bool:
        """
        Email a reset link if the account exists.

        The caller answers the same way whatever happens here, so the result
        (True when an email went out) is only for logging and tests.
        """
        user = self.db.get_active_user_by_email(email)
        if not user:
            logger.info("Password reset requested for unknown email")
            return False

        token = secrets.token_hex(32)
        ttl = self.config.password_reset_ttl_minutes
        expires_at = datetime.now(timezone.utc) + timedelta(minutes=ttl)

        self.db.delete_unused_reset_tokens(user["id"])
        self.db.create_reset_token(user["id"], hash_reset_token(token), expires_at)

        reset_url = f"{self.config.frontend_url.rstrip('/')}/reset-password?token={token}"
        sent = self.email_sender.send_password_reset_email(user["email"], reset_url, ttl_minutes=ttl)
        if not sent:
            logger.error(f"Password reset email for user {user['id']} was not delivered")
        return sent

    def _find_reset_token(self, token: str) -> Tuple[bool, Dict[str, Any]]:
        token_hash = hash_reset_token(token)
        record = self.db.get_unused_reset_token(token_hash)

        if not record or not hmac.compare_digest(record.get("token_hash") or "", token_hash):
            return False, {"error": INVALID_TOKEN, "message": "Token inválido o no encontrado"}

        expires_at = parse_timestamp(record.get("expires_at"))
        if expires_at is None or expires_at < datetime.now(timezone.utc):
            return False, {"error": TOKEN_EXPIRED, "message": "El token ha expirado. Por favor, solicita uno nuevo."}

        return True, record

    async def validate_reset_token(self, token: str) -> Tuple[bool, Dict[str, Any]]:
        valid, record = self._find_reset_token(token)
        if not valid:
            return False, record

        user = self.db.get_user_by_id(record["usuario_id"])
        if not user:
            return False, {"error": INVALID_TOKEN, "message": "Token inválido o no encontrado"}
        return True, {"valid": True, "email": user.get("email")}

    async def reset_password(
        self,
        token: str,
        new_password: str,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None
    ) -> Tuple[bool, Dict[str, Any]]:
        valid, record = self._find_reset_token(token)
        if not valid:
            return False, record

        user_id = record["usuario_id"]
        self.db.update_user(user_id, {"password_hash": hash_password(new_password)})
        self.db.mark_reset_token_used(record["id"])

        activity_log.record_activity(
            self.db,
            user_id,
            activity_log.PASSWORD_RESET,
            "auth",
            "Contraseña restablecida",
            ip_address,
            user_agent,
        )
        logger.info(f"Password reset completed for user {user_id}")
        return True, {"message": "Contraseña restablecida exitosamente"}

    # ==================== Unlock self service ====================

    async def resend_unlock_code(self, email: str) -> Tuple[bool, Dict[str, Any]]:
        """Resend the unlock code; unknown emails get the generic answer"""
        user = self.db.get_active_user_by_email(email)
        if not user:
            return True, {"message": RESEND_UNLOCK_MESSAGE}

        ok, result = self.lock_service.resend_code(user["id"])
        if not ok:
            return False, result
        return True, {"message": "Código de desbloqueo reenviado exitosamente"}

    async def verify_unlock_code(self, email: str, code: str) -> Tuple[bool, Dict[str, Any]]:
        user = self.db.get_active_user_by_email(email)
        if not user:
            return False, {"error": USER_NOT_FOUND, "message": "Usuario no encontrado"}

        ok, result = self.lock_service.verify_unlock_code(user["id"], code)
        if not ok:
            return False, result

        activity_log.record_activity(
            self.db, user["id"], activity_log.UNLOCK, "auth", "Cuenta desbloqueada con código"
        )
        return True, {"message": "Cuenta desbloqueada exitosamente", "unlocked": True}


def create_auth_service(config: Optional[DojoConfig] = None) -> AuthService:
    """Build an AuthService wired to Supabase and the configured email account"""
    config = config or get_config()
    db = SupabaseTool(config)
    email_sender = EmailSender(config)
    lock_service = AccountLockService.from_config(config, db, email_sender)
    return AuthService(config, db, lock_service, email_sender)
