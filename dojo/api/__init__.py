"""API Routes Module"""
from .routes import (
    include_routers,
    auth_router,
    users_router,
    students_router,
    representatives_router,
    payments_router,
    levels_router,
    schedules_router,
    evaluations_router,
    settings_router,
)

__all__ = [
    'include_routers',
    'auth_router',
    'users_router',
    'students_router',
    'representatives_router',
    'payments_router',
    'levels_router',
    'schedules_router',
    'evaluations_router',
    'settings_router',
]
