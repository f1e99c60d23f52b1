"""
Supabase Tool - Dojo data access

Handles operational data in Supabase (PostgreSQL):
- Users and account lock state
- Password reset tokens
- Students, guardians, age categories and belts
- Payments ledger and payment settings
- Class schedules, holidays and belt evaluations
- System settings (key/value) and the activity log

Usage:
    from config.loader import get_config
    from dojo.tools.supabase_tool import SupabaseTool

    db = SupabaseTool(get_config())
    lock = db.get_lock_record(user_id)

Errors raised by the Supabase client propagate to callers; lookups that find
nothing return None or an empty list.
"""

import logging
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone

from supabase import create_client, Client

from config.database import SupabaseTables
from config.loader import DojoConfig

logger = logging.getLogger(__name__)

# ==================== Client Cache ====================
# Cache Supabase clients to avoid reinitializing on every request
_supabase_client_cache: Dict[str, Client] = {}


def get_cached_supabase_client(supabase_url: str, supabase_key: str) -> Client:
    """Get or create a cached Supabase client"""
    key_suffix = supabase_key[-10:] if supabase_key else "nokey"
    cache_key = f"{supabase_url}:{key_suffix}"

    if cache_key not in _supabase_client_cache:
        _supabase_client_cache[cache_key] = create_client(supabase_url, supabase_key)
        logger.info("Supabase client created and cached")

    return _supabase_client_cache[cache_key]


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _first(result) -> Optional[Dict[str, Any]]:
    return result.data[0] if result.data else None


class SupabaseTool:
    """Supabase operations for dojo data"""

    USER_PUBLIC_COLUMNS = (
        "id, username, email, nombre_completo, rol, estado, "
        "email_verificado, idioma_preferido"
    )

    STUDENT_PROFILE_COLUMNS = (
        "*, categoria:id_categoria_edad(nombre), cinta:id_cinta(nombre, color_hex), "
        "sensei:sensei_id(nombre_completo)"
    )

    def __init__(self, config: DojoConfig):
        """
        Initialize Supabase tool with dojo configuration

        Args:
            config: DojoConfig instance
        """
        self.config = config
        self.client = get_cached_supabase_client(
            config.supabase_url,
            config.supabase_service_key
        )

    def ping(self) -> bool:
        """Cheap query used by the readiness check"""
        self.client.table(SupabaseTables.USERS).select("id").limit(1).execute()
        return True

    # ==================== Users ====================

    def get_user_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Get a user by ID (without password hash)"""
        result = self.client.table(SupabaseTables.USERS)\
            .select(self.USER_PUBLIC_COLUMNS)\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        return _first(result)

    def get_active_user_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        """Get an active user by email, including the password hash"""
        result = self.client.table(SupabaseTables.USERS)\
            .select(f"{self.USER_PUBLIC_COLUMNS}, password_hash")\
            .eq("email", email)\
            .eq("estado", True)\
            .limit(1)\
            .execute()
        return _first(result)

    def email_exists(self, email: str) -> bool:
        result = self.client.table(SupabaseTables.USERS)\
            .select("id")\
            .eq("email", email)\
            .limit(1)\
            .execute()
        return bool(result.data)

    def username_exists(self, username: str) -> bool:
        result = self.client.table(SupabaseTables.USERS)\
            .select("id")\
            .eq("username", username)\
            .limit(1)\
            .execute()
        return bool(result.data)

    def create_user(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """
        Insert a user row.

        Args:
            record: Column values (password must already be hashed)

        Returns:
            Created user (public columns) or None
        """
        result = self.client.table(SupabaseTables.USERS).insert(record).execute()
        created = _first(result)
        if created:
            created.pop("password_hash", None)
            logger.info(f"User created: {created.get('username')} ({created.get('rol')})")
        return created

    def update_user(self, user_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Update a user and return the updated row"""
        result = self.client.table(SupabaseTables.USERS)\
            .update(updates)\
            .eq("id", user_id)\
            .execute()
        updated = _first(result)
        if updated:
            updated.pop("password_hash", None)
        return updated

    def list_users(self) -> List[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.USERS)\
            .select(self.USER_PUBLIC_COLUMNS)\
            .order("id")\
            .execute()
        return result.data or []

    def get_password_hash(self, user_id: int) -> Optional[str]:
        result = self.client.table(SupabaseTables.USERS)\
            .select("password_hash")\
            .eq("id", user_id)\
            .limit(1)\
            .execute()
        user = _first(result)
        return user["password_hash"] if user else None

    def delete_user(self, user_id: int) -> None:
        self.client.table(SupabaseTables.USERS).delete().eq("id", user_id).execute()
        logger.info(f"User {user_id} deleted")

    def list_active_instructors(self) -> List[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.USERS)\
            .select("id, username, nombre_completo")\
            .eq("rol", "instructor")\
            .eq("estado", True)\
            .order("nombre_completo")\
            .execute()
        return result.data or []

    def get_active_instructor(self, user_id: int) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.USERS)\
            .select("id, username, nombre_completo")\
            .eq("id", user_id)\
            .eq("rol", "instructor")\
            .eq("estado", True)\
            .limit(1)\
            .execute()
        return _first(result)

    def list_user_languages(self) -> List[Optional[str]]:
        result = self.client.table(SupabaseTables.USERS)\
            .select("idioma_preferido")\
            .execute()
        return [row.get("idioma_preferido") for row in result.data or []]

    def set_language_for_all_users(self, language: str) -> int:
        """Set idioma_preferido on every account. Returns the number of rows updated."""
        # PostgREST refuses an UPDATE without a filter
        result = self.client.table(SupabaseTables.USERS)\
            .update({"idioma_preferido": language})\
            .gt("id", 0)\
            .execute()
        return len(result.data or [])

    # ==================== Account Lock ====================

    def get_lock_record(self, user_id: int) -> Optional[Dict[str, Any]]:
        """Get the lock record for a user, or None if the user never failed a login"""
        result = self.client.table(SupabaseTables.ACCOUNT_LOCKS)\
            .select("*")\
            .eq("usuario_id", user_id)\
            .limit(1)\
            .execute()
        return _first(result)

    def create_lock_record(self, user_id: int) -> Dict[str, Any]:
        """Create a clean (unlocked, zero attempts) lock record"""
        result = self.client.table(SupabaseTables.ACCOUNT_LOCKS).insert({
            "usuario_id": user_id,
            "intentos_fallidos": 0,
            "bloqueado": False,
            "codigo_used": False,
            "updated_at": utc_now_iso(),
        }).execute()
        return _first(result) or {"usuario_id": user_id, "intentos_fallidos": 0, "bloqueado": False}

    def update_lock_record(self, user_id: int, updates: Dict[str, Any]) -> List[Dict[str, Any]]:
        """
        Update a user's lock record.

        Returns:
            The updated rows (empty when the user has no lock record)
        """
        updates = {**updates, "updated_at": utc_now_iso()}
        result = self.client.table(SupabaseTables.ACCOUNT_LOCKS)\
            .update(updates)\
            .eq("usuario_id", user_id)\
            .execute()
        return result.data or []

    # ==================== Password Reset Tokens ====================

    def delete_unused_reset_tokens(self, user_id: int) -> None:
        self.client.table(SupabaseTables.PASSWORD_RESET_TOKENS)\
            .delete()\
            .eq("usuario_id", user_id)\
            .eq("used", False)\
            .execute()

    def create_reset_token(self, user_id: int, token_hash: str, expires_at: datetime) -> None:
        self.client.table(SupabaseTables.PASSWORD_RESET_TOKENS).insert({
            "usuario_id": user_id,
            "token_hash": token_hash,
            "expires_at": expires_at.isoformat(),
            "used": False,
        }).execute()

    def get_unused_reset_token(self, token_hash: str) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.PASSWORD_RESET_TOKENS)\
            .select("id, usuario_id, token_hash, expires_at, used")\
            .eq("token_hash", token_hash)\
            .eq("used", False)\
            .limit(1)\
            .execute()
        return _first(result)

    def mark_reset_token_used(self, token_id: int) -> None:
        self.client.table(SupabaseTables.PASSWORD_RESET_TOKENS)\
            .update({"used": True})\
            .eq("id", token_id)\
            .execute()

    # ==================== Students & Levels ====================

    def get_student(self, student_id: int) -> Optional[Dict[str, Any]]:
        """Get an active student with its age category"""
        result = self.client.table(SupabaseTables.STUDENTS)\
            .select("id, nombre, fecha_nacimiento, usuario_id, id_categoria_edad, id_cinta, "
                    "categoria:id_categoria_edad(nombre, precio_mensualidad)")\
            .eq("id", student_id)\
            .eq("estado", True)\
            .limit(1)\
            .execute()
        return _first(result)

    def get_student_id_for_user(self, user_id: int) -> Optional[int]:
        """Get the student linked to a student-role user account"""
        result = self.client.table(SupabaseTables.STUDENTS)\
            .select("id")\
            .eq("usuario_id", user_id)\
            .limit(1)\
            .execute()
        student = _first(result)
        return student["id"] if student else None

    def get_student_ids_for_user(self, user_id: int) -> List[int]:
        result = self.client.table(SupabaseTables.STUDENTS)\
            .select("id")\
            .eq("usuario_id", user_id)\
            .execute()
        return [row["id"] for row in result.data or []]

    def list_active_students(self) -> List[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.STUDENTS)\
            .select("id, nombre")\
            .eq("estado", True)\
            .order("nombre")\
            .execute()
        return result.data or []

    def list_active_students_with_category(self) -> List[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.STUDENTS)\
            .select("id, nombre, fecha_nacimiento, categoria:id_categoria_edad(nombre, precio_mensualidad)")\
            .eq("estado", True)\
            .execute()
        return result.data or []

    def list_students(
        self,
        user_id: Optional[int] = None,
        active: Optional[bool] = None
    ) -> List[Dict[str, Any]]:
        """
        Students ordered by name, with category, belt and instructor names.

        Args:
            user_id: Only students linked to this account
            active: Only active (True) or soft-deleted (False) students
        """
        query = self.client.table(SupabaseTables.STUDENTS)\
            .select(self.STUDENT_PROFILE_COLUMNS)\
            .order("nombre")

        if user_id is not None:
            query = query.eq("usuario_id", user_id)
        if active is not None:
            query = query.eq("estado", active)

        result = query.execute()
        return result.data or []

    def get_student_profile(self, student_id: int) -> Optional[Dict[str, Any]]:
        """Get a student whatever its estado, with category, belt and instructor names"""
        result = self.client.table(SupabaseTables.STUDENTS)\
            .select(self.STUDENT_PROFILE_COLUMNS)\
            .eq("id", student_id)\
            .limit(1)\
            .execute()
        return _first(result)

    def student_cedula_taken(self, cedula: str, exclude_id: Optional[int] = None) -> bool:
        query = self.client.table(SupabaseTables.STUDENTS)\
            .select("id")\
            .eq("cedula", cedula)
        if exclude_id is not None:
            query = query.neq("id", exclude_id)
        result = query.limit(1).execute()
        return bool(result.data)

    def insert_student(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.STUDENTS).insert(record).execute()
        created = _first(result)
        if created:
            logger.info(f"Student created: {created.get('id')} ({record.get('cedula')})")
        return created

    def update_student(self, student_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.STUDENTS)\
            .update(updates)\
            .eq("id", student_id)\
            .execute()
        return _first(result)

    def delete_student(self, student_id: int) -> None:
        """Remove a student row; payments, results and guardian links cascade"""
        self.client.table(SupabaseTables.STUDENTS).delete().eq("id", student_id).execute()
        logger.info(f"Student {student_id} permanently deleted")

    def _count_students(self, column: str, value: Any) -> int:
        result = self.client.table(SupabaseTables.STUDENTS)\
            .select("id", count="exact")\
            .eq(column, value)\
            .execute()
        if result.count is not None:
            return result.count
        return len(result.data or [])

    def count_students_in_category(self, category_id: int) -> int:
        return self._count_students("id_categoria_edad", category_id)

    def count_students_with_belt(self, belt_id: int) -> int:
        return self._count_students("id_cinta", belt_id)

    # ==================== Age Categories & Belts ====================

    def list_age_categories(self) -> List[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.AGE_CATEGORIES)\
            .select("*")\
            .order("orden")\
            .execute()
        return result.data or []

    def get_age_category(self, category_id: int) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.AGE_CATEGORIES)\
            .select("*")\
            .eq("id", category_id)\
            .limit(1)\
            .execute()
        return _first(result)

    def insert_age_category(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.AGE_CATEGORIES).insert(record).execute()
        return _first(result)

    def update_age_category(self, category_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.AGE_CATEGORIES)\
            .update(updates)\
            .eq("id", category_id)\
            .execute()
        return _first(result)

    def delete_age_category(self, category_id: int) -> None:
        self.client.table(SupabaseTables.AGE_CATEGORIES).delete().eq("id", category_id).execute()

    def list_belts(self) -> List[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.BELTS)\
            .select("*")\
            .order("orden")\
            .execute()
        return result.data or []

    def get_belt(self, belt_id: int) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.BELTS)\
            .select("*")\
            .eq("id", belt_id)\
            .limit(1)\
            .execute()
        return _first(result)

    def insert_belt(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.BELTS).insert(record).execute()
        return _first(result)

    def update_belt(self, belt_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.BELTS)\
            .update(updates)\
            .eq("id", belt_id)\
            .execute()
        return _first(result)

    def delete_belt(self, belt_id: int) -> None:
        self.client.table(SupabaseTables.BELTS).delete().eq("id", belt_id).execute()

    # ==================== Representatives ====================

    def list_representatives(self, ids: Optional[List[int]] = None) -> List[Dict[str, Any]]:
        query = self.client.table(SupabaseTables.REPRESENTATIVES)\
            .select("*")\
            .order("nombre")
        if ids is not None:
            query = query.in_("id", ids)
        result = query.execute()
        return result.data or []

    def get_representative(self, representative_id: int) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.REPRESENTATIVES)\
            .select("*")\
            .eq("id", representative_id)\
            .limit(1)\
            .execute()
        return _first(result)

    def representative_cedula_taken(self, cedula: str, exclude_id: Optional[int] = None) -> bool:
        query = self.client.table(SupabaseTables.REPRESENTATIVES)\
            .select("id")\
            .eq("cedula", cedula)
        if exclude_id is not None:
            query = query.neq("id", exclude_id)
        result = query.limit(1).execute()
        return bool(result.data)

    def insert_representative(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.REPRESENTATIVES).insert(record).execute()
        return _first(result)

    def update_representative(self, representative_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.REPRESENTATIVES)\
            .update(updates)\
            .eq("id", representative_id)\
            .execute()
        return _first(result)

    def delete_representative(self, representative_id: int) -> None:
        self.client.table(SupabaseTables.REPRESENTATIVES).delete().eq("id", representative_id).execute()

    def list_representative_links(
        self,
        student_ids: Optional[List[int]] = None,
        representative_ids: Optional[List[int]] = None
    ) -> List[Dict[str, Any]]:
        """Student/guardian links with both names embedded"""
        query = self.client.table(SupabaseTables.STUDENT_REPRESENTATIVES)\
            .select("id_alumno, id_representante, "
                    "representante:id_representante(id, cedula, nombre, telefono), "
                    "alumno:id_alumno(id, cedula, nombre)")
        if student_ids is not None:
            query = query.in_("id_alumno", student_ids)
        if representative_ids is not None:
            query = query.in_("id_representante", representative_ids)
        result = query.execute()
        return result.data or []

    def link_representatives(self, student_id: int, representative_ids: List[int]) -> None:
        rows = [{"id_alumno": student_id, "id_representante": rep_id} for rep_id in representative_ids]
        if rows:
            self.client.table(SupabaseTables.STUDENT_REPRESENTATIVES).insert(rows).execute()

    def unlink_representatives(self, student_id: int) -> None:
        self.client.table(SupabaseTables.STUDENT_REPRESENTATIVES)\
            .delete()\
            .eq("id_alumno", student_id)\
            .execute()

    def count_representative_links(self, representative_id: int) -> int:
        result = self.client.table(SupabaseTables.STUDENT_REPRESENTATIVES)\
            .select("id_alumno", count="exact")\
            .eq("id_representante", representative_id)\
            .execute()
        if result.count is not None:
            return result.count
        return len(result.data or [])

    # ==================== Payments ====================

    def find_payment(self, student_id: int, month: int, year: int) -> Optional[Dict[str, Any]]:
        """Get the payment booked for a student's billing period, if any"""
        result = self.client.table(SupabaseTables.PAYMENTS)\
            .select("id, estado, es_adelantado, observaciones")\
            .eq("id_alumno", student_id)\
            .eq("mes", month)\
            .eq("anio", year)\
            .limit(1)\
            .execute()
        return _first(result)

    def insert_payment(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Insert a payment row. Unique violations propagate as postgrest APIError."""
        result = self.client.table(SupabaseTables.PAYMENTS).insert(record).execute()
        created = _first(result)
        if created:
            logger.info(
                f"Payment {created.get('id')} recorded for student {record['id_alumno']} "
                f"({record['mes']}/{record['anio']})"
            )
        return created

    def get_payment(self, payment_id: int) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.PAYMENTS)\
            .select("*")\
            .eq("id", payment_id)\
            .limit(1)\
            .execute()
        return _first(result)

    def update_payment_status(self, payment_id: int, status: str) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.PAYMENTS)\
            .update({"estado": status})\
            .eq("id", payment_id)\
            .execute()
        return _first(result)

    def list_student_payments(self, student_id: int) -> List[Dict[str, Any]]:
        """Payment history for a student, newest period first"""
        result = self.client.table(SupabaseTables.PAYMENTS)\
            .select("*, usuario:registrado_por(nombre_completo)")\
            .eq("id_alumno", student_id)\
            .order("anio", desc=True)\
            .order("mes", desc=True)\
            .execute()
        return result.data or []

    def list_student_payments_in_years(
        self,
        student_id: int,
        from_year: int,
        to_year: int
    ) -> List[Dict[str, Any]]:
        """Payments for a student whose billing year is within [from_year, to_year]"""
        result = self.client.table(SupabaseTables.PAYMENTS)\
            .select("*, usuario:registrado_por(nombre_completo)")\
            .eq("id_alumno", student_id)\
            .gte("anio", from_year)\
            .lte("anio", to_year)\
            .order("anio", desc=True)\
            .order("mes", desc=True)\
            .execute()
        return result.data or []

    def count_student_payments(self, student_id: int) -> int:
        result = self.client.table(SupabaseTables.PAYMENTS)\
            .select("id", count="exact")\
            .eq("id_alumno", student_id)\
            .execute()
        if result.count is not None:
            return result.count
        return len(result.data or [])

    def list_payments(
        self,
        month: Optional[int] = None,
        year: Optional[int] = None,
        limit: int = 100
    ) -> List[Dict[str, Any]]:
        """List payments with student and recorder names, most recent payment date first"""
        query = self.client.table(SupabaseTables.PAYMENTS)\
            .select("*, alumno:id_alumno(nombre, usuario_id), usuario:registrado_por(nombre_completo)")\
            .order("fecha_pago", desc=True)\
            .limit(limit)

        if month:
            query = query.eq("mes", month)
        if year:
            query = query.eq("anio", year)

        result = query.execute()
        return result.data or []

    def list_student_ids_paid_for(self, month: int, year: int) -> List[int]:
        result = self.client.table(SupabaseTables.PAYMENTS)\
            .select("id_alumno")\
            .eq("mes", month)\
            .eq("anio", year)\
            .execute()
        return [row["id_alumno"] for row in result.data or []]

    # ==================== Payment Settings ====================

    def get_payment_config(self) -> Dict[str, Any]:
        result = self.client.table(SupabaseTables.PAYMENT_CONFIG)\
            .select("*")\
            .eq("id", 1)\
            .limit(1)\
            .execute()
        return _first(result) or {}

    def update_payment_config(self, updates: Dict[str, Any]) -> Dict[str, Any]:
        result = self.client.table(SupabaseTables.PAYMENT_CONFIG)\
            .upsert({"id": 1, **updates})\
            .execute()
        return _first(result) or {}

    # ==================== Class Schedules & Holidays ====================

    def list_schedules(self) -> List[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.SCHEDULES)\
            .select("*, categoria:id_categoria_edad(nombre)")\
            .execute()
        return result.data or []

    def get_schedule(self, schedule_id: int) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.SCHEDULES)\
            .select("*")\
            .eq("id", schedule_id)\
            .limit(1)\
            .execute()
        return _first(result)

    def insert_schedule(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.SCHEDULES).insert(record).execute()
        return _first(result)

    def update_schedule(self, schedule_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.SCHEDULES)\
            .update(updates)\
            .eq("id", schedule_id)\
            .execute()
        return _first(result)

    def delete_schedule(self, schedule_id: int) -> None:
        self.client.table(SupabaseTables.SCHEDULES).delete().eq("id", schedule_id).execute()

    def list_holidays(self) -> List[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.HOLIDAYS)\
            .select("*")\
            .order("fecha")\
            .execute()
        return result.data or []

    def get_holiday(self, holiday_id: int) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.HOLIDAYS)\
            .select("*")\
            .eq("id", holiday_id)\
            .limit(1)\
            .execute()
        return _first(result)

    def holiday_date_taken(self, holiday_date: str, exclude_id: Optional[int] = None) -> bool:
        query = self.client.table(SupabaseTables.HOLIDAYS)\
            .select("id")\
            .eq("fecha", holiday_date)
        if exclude_id is not None:
            query = query.neq("id", exclude_id)
        result = query.limit(1).execute()
        return bool(result.data)

    def insert_holiday(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.HOLIDAYS).insert(record).execute()
        return _first(result)

    def update_holiday(self, holiday_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.HOLIDAYS)\
            .update(updates)\
            .eq("id", holiday_id)\
            .execute()
        return _first(result)

    def delete_holiday(self, holiday_id: int) -> None:
        self.client.table(SupabaseTables.HOLIDAYS).delete().eq("id", holiday_id).execute()

    # ==================== Evaluations ====================

    def list_evaluations(self, ids: Optional[List[int]] = None) -> List[Dict[str, Any]]:
        """Evaluations, most recent date first"""
        query = self.client.table(SupabaseTables.EVALUATIONS)\
            .select("*")\
            .order("fecha", desc=True)
        if ids is not None:
            query = query.in_("id", ids)
        result = query.execute()
        return result.data or []

    def get_evaluation(self, evaluation_id: int) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.EVALUATIONS)\
            .select("*")\
            .eq("id", evaluation_id)\
            .limit(1)\
            .execute()
        return _first(result)

    def insert_evaluation(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.EVALUATIONS).insert(record).execute()
        return _first(result)

    def update_evaluation(self, evaluation_id: int, updates: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.EVALUATIONS)\
            .update(updates)\
            .eq("id", evaluation_id)\
            .execute()
        return _first(result)

    def delete_evaluation(self, evaluation_id: int) -> None:
        self.client.table(SupabaseTables.EVALUATIONS).delete().eq("id", evaluation_id).execute()

    def list_evaluation_results(self, evaluation_ids: List[int]) -> List[Dict[str, Any]]:
        """Enrolments of the given evaluations with the student's level embedded"""
        result = self.client.table(SupabaseTables.EVALUATION_RESULTS)\
            .select("id, id_alumno, id_evaluacion, notas, "
                    "alumno:id_alumno(id, cedula, nombre, estado, proximo_examen_fecha, "
                    "tiempo_preparacion_meses, categoria:id_categoria_edad(nombre), cinta:id_cinta(nombre))")\
            .in_("id_evaluacion", evaluation_ids)\
            .execute()
        return result.data or []

    def list_evaluation_ids_for_students(self, student_ids: List[int]) -> List[int]:
        result = self.client.table(SupabaseTables.EVALUATION_RESULTS)\
            .select("id_evaluacion")\
            .in_("id_alumno", student_ids)\
            .execute()
        return [row["id_evaluacion"] for row in result.data or []]

    def insert_evaluation_result(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.EVALUATION_RESULTS).insert(record).execute()
        return _first(result)

    def count_evaluation_results(self, evaluation_id: int) -> int:
        result = self.client.table(SupabaseTables.EVALUATION_RESULTS)\
            .select("id", count="exact")\
            .eq("id_evaluacion", evaluation_id)\
            .execute()
        if result.count is not None:
            return result.count
        return len(result.data or [])

    # ==================== System Settings ====================

    def list_settings(self) -> List[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.SYSTEM_SETTINGS)\
            .select("*")\
            .order("clave")\
            .execute()
        return result.data or []

    def get_setting(self, key: str) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.SYSTEM_SETTINGS)\
            .select("*")\
            .eq("clave", key)\
            .limit(1)\
            .execute()
        return _first(result)

    def upsert_settings(self, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Write key/value pairs, inserting keys that don't exist yet"""
        now = utc_now_iso()
        rows = [{"clave": key, "valor": value, "updated_at": now} for key, value in values.items()]
        result = self.client.table(SupabaseTables.SYSTEM_SETTINGS)\
            .upsert(rows, on_conflict="clave")\
            .execute()
        return result.data or []

    # ==================== Activity Log ====================

    def insert_activity(self, record: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        result = self.client.table(SupabaseTables.ACTIVITY_LOG).insert(record).execute()
        return _first(result)

    def list_activity(self, limit: int = 100) -> List[Dict[str, Any]]:
        """Most recent activity first, with the acting user's names"""
        result = self.client.table(SupabaseTables.ACTIVITY_LOG)\
            .select("*, usuario:usuario_id(username, nombre_completo)")\
            .order("created_at", desc=True)\
            .limit(limit)\
            .execute()
        return result.data or []

    def delete_activity_before(self, cutoff: datetime) -> int:
        """Delete activity older than cutoff. Returns the number of rows removed."""
        result = self.client.table(SupabaseTables.ACTIVITY_LOG)\
            .delete()\
            .lt("created_at", cutoff.isoformat())\
            .execute()
        return len(result.data or [])
