"""
Router registration for the dojo API.
"""

from dojo.api.auth_routes import auth_router
from dojo.api.evaluations_routes import evaluations_router
from dojo.api.levels_routes import levels_router
from dojo.api.payments_routes import payments_router
from dojo.api.representatives_routes import representatives_router
from dojo.api.schedules_routes import schedules_router
from dojo.api.settings_routes import settings_router
from dojo.api.students_routes import students_router
from dojo.api.users_routes import users_router


def include_routers(app):
    """Include all routers in the FastAPI app"""
    # Authentication
    app.include_router(auth_router)

    # User Management
    app.include_router(users_router)

    # Students & Guardians
    app.include_router(students_router)
    app.include_router(representatives_router)

    # Payments
    app.include_router(payments_router)

    # Levels
    app.include_router(levels_router)

    # Classes & Exams
    app.include_router(schedules_router)
    app.include_router(evaluations_router)

    # Dojo Settings
    app.include_router(settings_router)
