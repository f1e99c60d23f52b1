"""
Admin Setup Script Tests
"""

import pytest
from unittest.mock import MagicMock, patch


class TestSetupAdmin:

    def test_creates_admin(self):
        from scripts.setup_admin_user import setup_admin

        db = MagicMock()
        db.get_active_user_by_email.return_value = None
        db.username_exists.return_value = False

        setup_admin(db, "admin@example.com", "admin", "secreto1", "Admin")

        created = db.create_user.call_args.args[0]
        assert created["rol"] == "admin"
        assert created["password_hash"] != "secreto1"

    def test_promotes_existing_account(self):
        from scripts.setup_admin_user import setup_admin

        db = MagicMock()
        db.get_active_user_by_email.return_value = {"id": 4, "rol": "usuario"}

        setup_admin(db, "ana@example.com", "ana", "secreto1", "Ana")

        user_id, updates = db.update_user.call_args.args
        assert user_id == 4
        assert updates["rol"] == "admin"
        db.create_user.assert_not_called()

    def test_username_taken(self):
        from scripts.setup_admin_user import setup_admin

        db = MagicMock()
        db.get_active_user_by_email.return_value = None
        db.username_exists.return_value = True

        with pytest.raises(ValueError):
            setup_admin(db, "admin@example.com", "admin", "secreto1", "Admin")


class TestMain:

    def test_short_password(self):
        from scripts.setup_admin_user import main

        assert main(["--email", "admin@example.com", "--password", "123"]) == 1

    def test_runs_setup(self):
        from scripts.setup_admin_user import main

        with patch('scripts.setup_admin_user.get_config'), \
                patch('scripts.setup_admin_user.SupabaseTool') as mock_tool, \
                patch('scripts.setup_admin_user.setup_admin') as mock_setup:
            assert main(["--email", "admin@example.com", "--password", "secreto1"]) == 0

        mock_setup.assert_called_once_with(
            mock_tool.return_value, "admin@example.com", "admin", "secreto1", "Administrador"
        )
