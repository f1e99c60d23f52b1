"""
Activity audit log (table log_actividades).

Recording is best effort: a failed insert is logged and never affects the
operation being audited.
"""

import logging
from typing import Optional

logger = logging.getLogger(__name__)

# Action names stored in log_actividades.accion
LOGIN = "LOGIN"
REGISTER = "REGISTER"
PASSWORD_RESET = "PASSWORD_RESET"
UNLOCK = "UNLOCK"
CREATE = "CREATE"
UPDATE = "UPDATE"
DELETE = "DELETE"
PASSWORD_CHANGE = "PASSWORD_CHANGE"


def record_activity(
    db,
    user_id: Optional[int],
    action: str,
    module: str,
    description: Optional[str] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None
) -> bool:
    """
    Insert an audit row.

    Returns:
        True if the row was written, False otherwise
    """
    try:
        db.insert_activity({
            "usuario_id": user_id,
            "accion": action,
            "modulo": module,
            "descripcion": description,
            "ip_address": ip_address,
            "user_agent": (user_agent or "")[:255] or None,
        })
        return True
    except Exception as e:
        logger.error(f"Failed to record activity {action}/{module} for user {user_id}: {e}")
        return False
