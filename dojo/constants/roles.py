"""
Role and status values shared across the API.

Values match the strings stored in the database.
"""

from enum import Enum


class Role(str, Enum):
    ADMIN = "admin"
    INSTRUCTOR = "instructor"
    RECEPTIONIST = "recepcionista"
    STUDENT = "usuario"


class PaymentStatus(str, Enum):
    PENDING = "pendiente"
    CONFIRMED = "confirmado"
    REJECTED = "rechazado"


# Roles allowed to confirm or reject submitted payments
PAYMENT_REVIEWER_ROLES = (Role.ADMIN, Role.RECEPTIONIST)

# Accounts created by an admin; students sign up themselves
STAFF_ROLES = (Role.ADMIN, Role.INSTRUCTOR, Role.RECEPTIONIST)

ROLE_DESCRIPTIONS = {
    Role.ADMIN: "Administrador",
    Role.INSTRUCTOR: "Instructor",
    Role.RECEPTIONIST: "Recepcionista",
    Role.STUDENT: "Alumno",
}
