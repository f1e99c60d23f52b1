"""
Shared FastAPI dependencies.

Routes receive their collaborators through Depends() so tests can swap them
with app.dependency_overrides.
"""

import logging
from fastapi import Depends, HTTPException

from config.loader import DojoConfig, get_config
from dojo.services.account_lock_service import AccountLockService
from dojo.services.auth_service import AuthService
from dojo.services.evaluation_service import EvaluationService
from dojo.services.level_service import LevelService
from dojo.services.payment_service import PaymentService
from dojo.services.preparation_service import PreparationEstimator
from dojo.services.representative_service import RepresentativeService
from dojo.services.schedule_service import ScheduleService
from dojo.services.settings_service import SystemSettingsService
from dojo.services.student_service import StudentService
from dojo.tools.supabase_tool import SupabaseTool
from dojo.utils.email_sender import EmailSender

logger = logging.getLogger(__name__)


def get_dojo_config() -> DojoConfig:
    """Get the dojo configuration"""
    try:
        return get_config()
    except Exception as e:
        logger.error(f"Error loading configuration: {e}")
        raise HTTPException(status_code=500, detail="Configuration error")


def get_supabase_tool(config: DojoConfig = Depends(get_dojo_config)) -> SupabaseTool:
    return SupabaseTool(config)


def get_email_sender(config: DojoConfig = Depends(get_dojo_config)) -> EmailSender:
    return EmailSender(config)


def get_account_lock_service(
    config: DojoConfig = Depends(get_dojo_config),
    db: SupabaseTool = Depends(get_supabase_tool),
    email_sender: EmailSender = Depends(get_email_sender)
) -> AccountLockService:
    return AccountLockService.from_config(config, db, email_sender)


def get_auth_service(
    config: DojoConfig = Depends(get_dojo_config),
    db: SupabaseTool = Depends(get_supabase_tool),
    lock_service: AccountLockService = Depends(get_account_lock_service),
    email_sender: EmailSender = Depends(get_email_sender)
) -> AuthService:
    return AuthService(config, db, lock_service, email_sender)


def get_payment_service(
    config: DojoConfig = Depends(get_dojo_config),
    db: SupabaseTool = Depends(get_supabase_tool)
) -> PaymentService:
    return PaymentService(db, config)


def get_preparation_estimator(config: DojoConfig = Depends(get_dojo_config)) -> PreparationEstimator:
    return PreparationEstimator.from_config(config)


def get_student_service(
    db: SupabaseTool = Depends(get_supabase_tool),
    estimator: PreparationEstimator = Depends(get_preparation_estimator)
) -> StudentService:
    return StudentService(db, estimator)


def get_representative_service(db: SupabaseTool = Depends(get_supabase_tool)) -> RepresentativeService:
    return RepresentativeService(db)


def get_schedule_service(db: SupabaseTool = Depends(get_supabase_tool)) -> ScheduleService:
    return ScheduleService(db)


def get_evaluation_service(db: SupabaseTool = Depends(get_supabase_tool)) -> EvaluationService:
    return EvaluationService(db)


def get_system_settings_service(db: SupabaseTool = Depends(get_supabase_tool)) -> SystemSettingsService:
    return SystemSettingsService(db)


def get_level_service(db: SupabaseTool = Depends(get_supabase_tool)) -> LevelService:
    return LevelService(db)
