"""
Payments Routes Unit Tests

Tests for the payment endpoints:
- POST /api/v1/payments
- GET /api/v1/payments
- GET /api/v1/payments/pending
- GET /api/v1/payments/student/{id}
- GET /api/v1/payments/price/{id}
- GET /api/v1/payments/prices
- PATCH /api/v1/payments/{id}/status
- GET/PUT /api/v1/payments/config

PaymentService and SupabaseTool are replaced through app.dependency_overrides;
the auth middleware is bypassed with tests.utils.authenticated_as.
"""

import pytest
from unittest.mock import MagicMock

from tests.utils import AUTH_HEADERS, authenticated_as


PAYMENT = {
    "id_alumno": 5,
    "monto": 40,
    "metodo_pago": "Transferencia",
    "fecha_pago": "2025-03-10",
    "mes_correspondiente": "Abril 2025",
}


@pytest.fixture
def mock_payment_service():
    service = MagicMock()
    service.submit_payment.return_value = (True, {"id": 11, "month": 4, "year": 2025, "is_advance": True})
    service.caller_owns_student.return_value = True
    return service


@pytest.fixture
def mock_db():
    return MagicMock()


@pytest.fixture
def client(test_client, mock_payment_service, mock_db):
    from main import app
    from dojo.api.dependencies import get_payment_service, get_supabase_tool

    app.dependency_overrides[get_payment_service] = lambda: mock_payment_service
    app.dependency_overrides[get_supabase_tool] = lambda: mock_db
    return test_client


class TestPaymentsAuth:

    def test_create_requires_auth(self, client):
        response = client.post("/api/v1/payments", json=PAYMENT)

        assert response.status_code == 401

    def test_list_requires_auth(self, client):
        response = client.get("/api/v1/payments")

        assert response.status_code == 401

    def test_malformed_header(self, client):
        response = client.get("/api/v1/payments", headers={"Authorization": "Token abc"})

        assert response.status_code == 401


class TestCreatePayment:
    """Tests for POST /api/v1/payments"""

    def test_created(self, client, mock_payment_service, mock_db):
        with authenticated_as("recepcionista", user_id=7):
            response = client.post("/api/v1/payments", json=PAYMENT, headers=AUTH_HEADERS)

        assert response.status_code == 201
        data = response.json()["data"]
        assert (data["month"], data["year"], data["is_advance"]) == (4, 2025, True)

        submitted = mock_payment_service.submit_payment.call_args.args[0]
        assert submitted["fecha_pago"].isoformat() == "2025-03-10"
        assert mock_payment_service.submit_payment.call_args.kwargs["caller_id"] == 7
        mock_db.insert_activity.assert_called_once()

    def test_reviewer_may_set_status(self, client, mock_payment_service):
        with authenticated_as("admin"):
            client.post("/api/v1/payments", json={**PAYMENT, "estado": "confirmado"}, headers=AUTH_HEADERS)

        assert mock_payment_service.submit_payment.call_args.args[0]["estado"] == "confirmado"

    def test_student_status_ignored(self, client, mock_payment_service):
        with authenticated_as("usuario", user_id=20):
            client.post("/api/v1/payments", json={**PAYMENT, "estado": "confirmado"}, headers=AUTH_HEADERS)

        assert mock_payment_service.submit_payment.call_args.args[0]["estado"] is None

    def test_student_cannot_pay_for_other_students(self, client, mock_payment_service, mock_db):
        mock_payment_service.caller_owns_student.return_value = False

        with authenticated_as("usuario", user_id=20):
            response = client.post("/api/v1/payments", json=PAYMENT, headers=AUTH_HEADERS)

        assert response.status_code == 403
        mock_payment_service.caller_owns_student.assert_called_once_with(20, 5)
        mock_payment_service.submit_payment.assert_not_called()
        mock_db.insert_activity.assert_not_called()

    def test_staff_skip_ownership_check(self, client, mock_payment_service):
        with authenticated_as("recepcionista"):
            response = client.post("/api/v1/payments", json=PAYMENT, headers=AUTH_HEADERS)

        assert response.status_code == 201
        mock_payment_service.caller_owns_student.assert_not_called()

    def test_student_without_explicit_id(self, client, mock_payment_service):
        with authenticated_as("usuario", user_id=20):
            response = client.post(
                "/api/v1/payments", json={**PAYMENT, "id_alumno": None}, headers=AUTH_HEADERS
            )

        assert response.status_code == 201
        mock_payment_service.caller_owns_student.assert_not_called()

    def test_precondition_failure(self, client, mock_payment_service, mock_db):
        mock_payment_service.submit_payment.return_value = (False, {
            "error": "ADVANCE_PAYMENT_PRECONDITION_UNMET",
            "message": "No se puede realizar un pago adelantado.",
        })

        with authenticated_as("admin"):
            response = client.post("/api/v1/payments", json=PAYMENT, headers=AUTH_HEADERS)

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "ADVANCE_PAYMENT_PRECONDITION_UNMET"
        mock_db.insert_activity.assert_not_called()

    def test_invalid_body(self, client):
        with authenticated_as("admin"):
            response = client.post(
                "/api/v1/payments",
                json={**PAYMENT, "monto": -5},
                headers=AUTH_HEADERS,
            )

        assert response.status_code == 422

    def test_activity_failure_does_not_fail_request(self, client, mock_db):
        mock_db.insert_activity.side_effect = Exception("log table missing")

        with authenticated_as("admin"):
            response = client.post("/api/v1/payments", json=PAYMENT, headers=AUTH_HEADERS)

        assert response.status_code == 201


class TestPaymentQueries:

    def test_list(self, client, mock_payment_service):
        mock_payment_service.list_payments.return_value = [{"id": 1}]

        with authenticated_as("usuario", user_id=20):
            response = client.get("/api/v1/payments?month=3&year=2025", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["data"] == [{"id": 1}]
        kwargs = mock_payment_service.list_payments.call_args.kwargs
        assert kwargs["caller_role"] == "usuario"
        assert (kwargs["month"], kwargs["year"]) == (3, 2025)

    def test_list_rejects_bad_month(self, client):
        with authenticated_as("admin"):
            response = client.get("/api/v1/payments?month=13", headers=AUTH_HEADERS)

        assert response.status_code == 422

    def test_pending_for_instructor(self, client, mock_payment_service):
        mock_payment_service.students_without_payment.return_value = [{"id": 6, "nombre": "Ana"}]

        with authenticated_as("instructor"):
            response = client.get("/api/v1/payments/pending", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["data"][0]["id"] == 6

    def test_pending_forbidden_for_students(self, client):
        with authenticated_as("usuario"):
            response = client.get("/api/v1/payments/pending", headers=AUTH_HEADERS)

        assert response.status_code == 403

    def test_student_history_range(self, client, mock_payment_service):
        mock_payment_service.student_history.return_value = []

        with authenticated_as("admin"):
            response = client.get(
                "/api/v1/payments/student/5?from_year=2024&from_month=11&to_year=2025",
                headers=AUTH_HEADERS,
            )

        assert response.status_code == 200
        mock_payment_service.student_history.assert_called_once_with(
            5, from_period=(11, 2024), to_period=(12, 2025)
        )

    def test_student_cannot_read_other_students(self, client, mock_payment_service):
        mock_payment_service.caller_owns_student.return_value = False

        with authenticated_as("usuario", user_id=20):
            response = client.get("/api/v1/payments/student/6", headers=AUTH_HEADERS)

        assert response.status_code == 403
        mock_payment_service.student_history.assert_not_called()

    def test_price(self, client, mock_payment_service):
        mock_payment_service.price_for_student.return_value = {"alumno_id": 5, "precio_final": 50.0}

        with authenticated_as("recepcionista"):
            response = client.get("/api/v1/payments/price/5", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["data"]["precio_final"] == 50.0

    def test_price_list_for_staff(self, client, mock_payment_service):
        mock_payment_service.price_summary.return_value = [{"id": 5, "precio_final": 35.0}]

        with authenticated_as("instructor"):
            response = client.get("/api/v1/payments/prices", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["data"] == [{"id": 5, "precio_final": 35.0}]

    def test_price_list_forbidden_for_students(self, client, mock_payment_service):
        with authenticated_as("usuario"):
            response = client.get("/api/v1/payments/prices", headers=AUTH_HEADERS)

        assert response.status_code == 403
        mock_payment_service.price_summary.assert_not_called()

    def test_price_unknown_student(self, client, mock_payment_service):
        mock_payment_service.price_for_student.return_value = None

        with authenticated_as("admin"):
            response = client.get("/api/v1/payments/price/99", headers=AUTH_HEADERS)

        assert response.status_code == 404


class TestReview:
    """Tests for PATCH /api/v1/payments/{id}/status"""

    def test_confirm(self, client, mock_payment_service, mock_db):
        mock_payment_service.update_status.return_value = {"id": 11, "estado": "confirmado"}

        with authenticated_as("recepcionista"):
            response = client.patch(
                "/api/v1/payments/11/status", json={"estado": "confirmado"}, headers=AUTH_HEADERS
            )

        assert response.status_code == 200
        mock_payment_service.update_status.assert_called_once_with(11, "confirmado")
        mock_db.insert_activity.assert_called_once()

    def test_students_cannot_review(self, client, mock_payment_service):
        with authenticated_as("usuario"):
            response = client.patch(
                "/api/v1/payments/11/status", json={"estado": "confirmado"}, headers=AUTH_HEADERS
            )

        assert response.status_code == 403
        mock_payment_service.update_status.assert_not_called()

    def test_invalid_status(self, client):
        with authenticated_as("admin"):
            response = client.patch(
                "/api/v1/payments/11/status", json={"estado": "pagado"}, headers=AUTH_HEADERS
            )

        assert response.status_code == 422

    def test_missing_payment(self, client, mock_payment_service):
        mock_payment_service.update_status.return_value = None

        with authenticated_as("admin"):
            response = client.patch(
                "/api/v1/payments/99/status", json={"estado": "rechazado"}, headers=AUTH_HEADERS
            )

        assert response.status_code == 404


class TestPaymentConfig:

    def test_read(self, client, mock_payment_service):
        mock_payment_service.get_settings.return_value = {"id": 1, "moneda": "USD"}

        with authenticated_as("usuario"):
            response = client.get("/api/v1/payments/config", headers=AUTH_HEADERS)

        assert response.status_code == 200
        assert response.json()["data"]["moneda"] == "USD"

    def test_update_sends_only_given_fields(self, client, mock_payment_service):
        mock_payment_service.update_settings.return_value = {"id": 1, "dia_corte": 10}

        with authenticated_as("admin"):
            response = client.put("/api/v1/payments/config", json={"dia_corte": 10}, headers=AUTH_HEADERS)

        assert response.status_code == 200
        mock_payment_service.update_settings.assert_called_once_with({"dia_corte": 10})

    def test_update_requires_admin(self, client):
        with authenticated_as("recepcionista"):
            response = client.put("/api/v1/payments/config", json={"dia_corte": 10}, headers=AUTH_HEADERS)

        assert response.status_code == 403


class TestPaymentOwnershipFlow:
    """POST /api/v1/payments against the real PaymentService and in-memory data."""

    @pytest.fixture
    def ledger_client(self, test_client, memory_db, mock_config):
        from main import app
        from dojo.api.dependencies import get_payment_service, get_supabase_tool
        from dojo.services.payment_service import PaymentService

        memory_db.add_user(7)
        memory_db.add_user(99)
        memory_db.add_student(5, usuario_id=99, nombre="Carla")
        memory_db.add_student(8, usuario_id=7, nombre="Diego")

        app.dependency_overrides[get_payment_service] = lambda: PaymentService(memory_db, mock_config)
        app.dependency_overrides[get_supabase_tool] = lambda: memory_db
        return test_client

    def test_foreign_student_rejected(self, ledger_client, memory_db):
        with authenticated_as("usuario", user_id=7):
            response = ledger_client.post("/api/v1/payments", json=PAYMENT, headers=AUTH_HEADERS)

        assert response.status_code == 403
        assert memory_db.payments == []
        assert memory_db.activity == []

    def test_own_student_accepted(self, ledger_client, memory_db):
        with authenticated_as("usuario", user_id=7):
            response = ledger_client.post(
                "/api/v1/payments",
                json={**PAYMENT, "id_alumno": 8, "mes_correspondiente": "Febrero 2025"},
                headers=AUTH_HEADERS,
            )

        assert response.status_code == 201
        assert [p["id_alumno"] for p in memory_db.payments] == [8]
        assert memory_db.payments[0]["estado"] == "pendiente"
