"""
Configuration Loader - Loads and validates the dojo configuration

Usage:
    from config.loader import get_config

    config = get_config()
    print(config.supabase_url)
    print(config.lockout_max_attempts)

The configuration lives in config/dojo.yaml (override with DOJO_CONFIG_PATH).
Values may reference environment variables as ${VAR} or ${VAR:-default}.
"""

import yaml
import json
import os
import re
import logging
from pathlib import Path
from typing import Dict, Any, List, Optional
from jsonschema import validate, ValidationError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).parent / "dojo.yaml"
SCHEMA_PATH = Path(__file__).parent / "schema.json"


class DojoConfig:
    """Load and validate dojo configuration from YAML"""

    def __init__(self, config_path: Optional[str] = None):
        """
        Initialize dojo configuration

        Args:
            config_path: Path to the YAML file (defaults to DOJO_CONFIG_PATH
                or config/dojo.yaml)
        """
        if config_path is None:
            config_path = os.getenv("DOJO_CONFIG_PATH") or DEFAULT_CONFIG_PATH

        self.config_path = Path(config_path)
        self.schema_path = SCHEMA_PATH

        if not self.config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

        self.config = self._load_config()
        self._validate_config()

    def _load_config(self) -> Dict[str, Any]:
        """Load YAML configuration file"""
        with open(self.config_path, 'r', encoding='utf-8') as f:
            config = yaml.safe_load(f) or {}

        return self._substitute_env_vars(config)

    def _substitute_env_vars(self, obj: Any) -> Any:
        """
        Recursively substitute environment variables in config

        Supports: ${VAR_NAME} or ${VAR_NAME:-default_value}
        """
        if isinstance(obj, dict):
            return {k: self._substitute_env_vars(v) for k, v in obj.items()}
        elif isinstance(obj, list):
            return [self._substitute_env_vars(item) for item in obj]
        elif isinstance(obj, str):
            pattern = r'\$\{([A-Z0-9_]+)(?::-([^}]*))?\}'

            def replacer(match):
                var_name = match.group(1)
                default = match.group(2)
                return os.getenv(var_name, default or '')

            return re.sub(pattern, replacer, obj)
        else:
            return obj

    def _validate_config(self):
        """Validate configuration against JSON schema"""
        if not self.schema_path.exists():
            logger.warning(f"Schema file not found: {self.schema_path}, skipping validation")
            return

        with open(self.schema_path, 'r', encoding='utf-8') as f:
            schema = json.load(f)

        try:
            validate(instance=self.config, schema=schema)
        except ValidationError as e:
            raise ValueError(f"Configuration validation failed: {e.message}")

    def _section(self, name: str) -> Dict[str, Any]:
        return self.config.get(name) or {}

    # ==================== Dojo ====================

    @property
    def name(self) -> str:
        """Dojo display name"""
        return self._section('dojo').get('name', 'Dojo')

    @property
    def timezone(self) -> str:
        return self._section('dojo').get('timezone', 'UTC')

    @property
    def frontend_url(self) -> str:
        """Base URL of the admin frontend, used in emailed links"""
        return self._section('dojo').get('frontend_url') or 'http://localhost:8080'

    # ==================== Supabase ====================

    @property
    def supabase_url(self) -> str:
        return self._section('supabase').get('url', '')

    @property
    def supabase_service_key(self) -> str:
        return self._section('supabase').get('service_key', '')

    # ==================== Auth ====================

    @property
    def jwt_secret(self) -> str:
        return self._section('auth').get('jwt_secret', '')

    @property
    def jwt_expiry_hours(self) -> int:
        return int(self._section('auth').get('jwt_expiry_hours', 24))

    @property
    def password_reset_ttl_minutes(self) -> int:
        return int(self._section('auth').get('password_reset_ttl_minutes', 15))

    # ==================== Lockout ====================

    @property
    def lockout_max_attempts(self) -> int:
        """Failed logins that lock an account"""
        return int(self._section('lockout').get('max_attempts', 3))

    @property
    def unlock_code_ttl_minutes(self) -> int:
        return int(self._section('lockout').get('unlock_code_ttl_minutes', 30))

    # ==================== Email ====================

    @property
    def from_email(self) -> str:
        return self._section('email').get('from_email') or 'noreply@example.com'

    @property
    def from_name(self) -> str:
        return self._section('email').get('from_name') or self.name

    @property
    def smtp_host(self) -> str:
        return self._section('email').get('smtp', {}).get('host', 'smtp.gmail.com')

    @property
    def smtp_port(self) -> int:
        return int(self._section('email').get('smtp', {}).get('port') or 465)

    @property
    def smtp_username(self) -> str:
        return self._section('email').get('smtp', {}).get('username', '')

    @property
    def smtp_password(self) -> str:
        return self._section('email').get('smtp', {}).get('password', '')

    @property
    def sendgrid_api_key(self) -> Optional[str]:
        return self._section('email').get('sendgrid', {}).get('api_key') or None

    # ==================== Billing ====================

    @property
    def enrollment_fee(self) -> float:
        """One-off fee charged with a student's first payment"""
        return float(self._section('billing').get('enrollment_fee', 15))

    @property
    def default_monthly_fee(self) -> float:
        """Monthly fee used when the student's category has no price"""
        return float(self._section('billing').get('default_monthly_fee', 50))

    @property
    def advance_payment_markers(self) -> List[str]:
        return self._section('billing').get(
            'advance_payment_markers', ['Pago adelantado', 'Advanced payment']
        )

    # ==================== Exam Preparation ====================

    @property
    def belt_base_months(self) -> Dict[str, float]:
        return self._section('preparation').get('belt_base_months', {})

    @property
    def category_multipliers(self) -> Dict[str, float]:
        return self._section('preparation').get('category_multipliers', {})

    @property
    def default_belt_months(self) -> int:
        return int(self._section('preparation').get('default_belt_months', 6))

    @property
    def default_belt(self) -> str:
        return self._section('preparation').get('default_belt', 'Blanco')

    @property
    def default_category(self) -> str:
        return self._section('preparation').get('default_category', 'Senior')

    @property
    def min_preparation_months(self) -> int:
        return int(self._section('preparation').get('min_months', 3))

    @property
    def max_preparation_months(self) -> int:
        return int(self._section('preparation').get('max_months', 24))

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary"""
        return self.config.copy()

    def __repr__(self) -> str:
        return f"DojoConfig(path='{self.config_path}', name='{self.name}')"


# Singleton pattern for easy access
_config_cache: Dict[str, DojoConfig] = {}


def clear_config_cache():
    """Clear the cached configuration so the next get_config() reloads it"""
    _config_cache.clear()


def get_config() -> DojoConfig:
    """
    Get the dojo configuration (cached)

    Returns:
        DojoConfig instance
    """
    path = str(os.getenv("DOJO_CONFIG_PATH") or DEFAULT_CONFIG_PATH)
    if path not in _config_cache:
        _config_cache[path] = DojoConfig(path)
    return _config_cache[path]
