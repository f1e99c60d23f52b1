"""
System Settings Service - Dojo branding and theme key/value pairs

Settings live in the configuracion table as clave/valor rows. They are read
by the login screen before anyone signs in, so reads return a flat dict.
"""

import logging
from typing import Any, Dict, Tuple

logger = logging.getLogger(__name__)

SETTING_NOT_FOUND = "SETTING_NOT_FOUND"

DEFAULT_SETTINGS = {
    "dojo_nombre": "Mi Dojo de Judo",
    "dojo_lema": "Excelencia en el arte marcial",
    "dojo_direccion": "",
    "dojo_telefono": "",
    "dojo_email": "",
    "dojo_facebook": "",
    "dojo_instagram": "",
    "dojo_twitter": "",
    "dojo_horarios": "",
    "dojo_logo_url": "",
    "dojo_fondo_url": "",
    "tema_color_primario": "#0ea5e9",
    "tema_modo": "light",
    "tema_sidebar": "current",
}


class SystemSettingsService:

    def __init__(self, db):
        self.db = db

    def get_all(self) -> Dict[str, Any]:
        return {row["clave"]: row.get("valor") for row in self.db.list_settings()}

    def get(self, key: str) -> Tuple[bool, Dict[str, Any]]:
        setting = self.db.get_setting(key)
        if not setting:
            return False, {"error": SETTING_NOT_FOUND, "message": "Configuración no encontrada"}
        return True, setting

    def update_many(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Write every pair, creating keys that don't exist yet"""
        if values:
            self.db.upsert_settings(values)
        return {"actualizadas": len(values)}

    def update_one(self, key: str, value: Any) -> Dict[str, Any]:
        self.db.upsert_settings({key: value})
        return {"clave": key, "valor": value}

    def reset(self) -> Dict[str, Any]:
        self.db.upsert_settings(DEFAULT_SETTINGS)
        logger.info("System settings restored to defaults")
        return dict(DEFAULT_SETTINGS)
