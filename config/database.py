"""
Database Table Names

Centralized Supabase table names. All table references should go through
this module so the Spanish schema names live in a single place.

Usage:
    from config.database import SupabaseTables

    client.table(SupabaseTables.PAYMENTS).select("*").execute()
"""


class SupabaseTables:
    """Supabase table name constants"""

    USERS = "usuario"
    ACCOUNT_LOCKS = "account_lock"
    PASSWORD_RESET_TOKENS = "password_reset_tokens"
    ACTIVITY_LOG = "log_actividades"

    STUDENTS = "alumno"
    AGE_CATEGORIES = "categorias_edad"
    BELTS = "cintas"
    REPRESENTATIVES = "representante"
    STUDENT_REPRESENTATIVES = "alumnorepresentante"

    PAYMENTS = "pagos"
    PAYMENT_CONFIG = "config_pagos"

    SCHEDULES = "horarios_clases"
    HOLIDAYS = "dias_festivos"
    EVALUATIONS = "evaluacion"
    EVALUATION_RESULTS = "alumnoevaluacion"

    SYSTEM_SETTINGS = "configuracion"


# Postgres error code raised by PostgREST on a unique constraint violation
UNIQUE_VIOLATION = "23505"
