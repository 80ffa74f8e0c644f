from urllib.parse import parse_qs, urlparse

import pytest

from healthpal.domain.payments.vnpay_service import vnpay_service
from healthpal.models import Appointment, Notification, Payment


def signed(appointment_id, response_code="00", amount="35000000", transaction_no="14012345"):
    params = {
        "vnp_Amount": amount,
        "vnp_BankCode": "NCB",
        "vnp_BankTranNo": "VNP14012345",
        "vnp_OrderInfo": "Thanh toan kham benh",
        "vnp_PayDate": "20300115093000",
        "vnp_ResponseCode": response_code,
        "vnp_TmnCode": "TESTTMN1",
        "vnp_TransactionNo": transaction_no,
        "vnp_TxnRef": appointment_id,
    }
    params["vnp_SecureHash"] = vnpay_service.sign(params)
    return params


def redirect_query(response):
    location = response.headers["location"]
    assert location.startswith("http://frontend.test/payment/result?")
    return {key: values[0] for key, values in parse_qs(urlparse(location).query).items()}


@pytest.fixture
def appointment_id(book):
    return book().json()["id"]


@pytest.fixture
def create_payment(client, auth):
    def _create(appointment_id, headers=None):
        return client.post(
            "/payments/vnpay/create", json={"appointmentId": appointment_id}, headers=headers or auth.patient
        )

    return _create


def get_payment(read_db, appointment_id):
    return read_db(lambda db: db.query(Payment).filter(Payment.appointment_id == appointment_id).one())


def get_appointment(read_db, appointment_id):
    return read_db(lambda db: db.query(Appointment).filter(Appointment.id == appointment_id).one())


class TestCreatePayment:
    def test_returns_signed_url_for_consultation_fee(self, create_payment, appointment_id, read_db):
        response = create_payment(appointment_id)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        data = body["data"]
        assert "vnp_Amount=35000000" in data["paymentUrl"]
        assert f"vnp_TxnRef={appointment_id}" in data["paymentUrl"]
        assert data["payment"]["status"] == "PENDING"
        assert data["payment"]["amount"] == 350000.0
        assert data["payment"]["method"] == "VNPAY"
        assert data["appointment"]["doctor"]["name"] == "An Nguyen"

        query = {k: v[0] for k, v in parse_qs(urlparse(data["paymentUrl"]).query).items()}
        assert vnpay_service.verify_callback(query)
        assert get_payment(read_db, appointment_id).status == "PENDING"

    def test_retry_reuses_the_payment_row(self, create_payment, appointment_id):
        first = create_payment(appointment_id).json()["data"]["payment"]["id"]
        second = create_payment(appointment_id).json()["data"]["payment"]["id"]
        assert first == second

    def test_other_patient_gets_not_found(self, create_payment, appointment_id, auth):
        response = create_payment(appointment_id, headers=auth.other_patient)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "APPOINTMENT_NOT_FOUND"

    def test_cancelled_appointment_is_not_payable(self, client, create_payment, appointment_id, auth):
        client.post(f"/appointments/{appointment_id}/cancel", headers=auth.patient)

        response = create_payment(appointment_id)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "INVALID_APPOINTMENT_STATUS"

    def test_paid_appointment_is_rejected(self, client, create_payment, appointment_id):
        create_payment(appointment_id)
        client.get("/payments/vnpay/callback", params=signed(appointment_id), follow_redirects=False)

        response = create_payment(appointment_id)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "ALREADY_PAID"

    def test_doctor_cannot_pay(self, create_payment, appointment_id, auth):
        assert create_payment(appointment_id, headers=auth.doctor).status_code == 403

    def test_missing_appointment_id(self, client, auth):
        response = client.post("/payments/vnpay/create", json={}, headers=auth.patient)
        assert response.status_code == 400
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestReturnCallback:
    def test_success_marks_paid_and_confirms(self, client, create_payment, appointment_id, read_db, seed):
        create_payment(appointment_id)

        response = client.get("/payments/vnpay/callback", params=signed(appointment_id), follow_redirects=False)

        assert response.status_code == 302
        assert redirect_query(response) == {
            "success": "true",
            "appointmentId": appointment_id,
            "message": "Payment successful",
        }
        payment = get_payment(read_db, appointment_id)
        assert payment.status == "PAID"
        assert payment.transaction_id == "14012345"
        assert payment.paid_at is not None
        assert get_appointment(read_db, appointment_id).status == "CONFIRMED"

        types = read_db(
            lambda db: sorted(
                n.type for n in db.query(Notification).filter(Notification.user_id == seed.patient_user_id)
            )
        )
        assert types == ["APPOINTMENT_CONFIRMED", "PAYMENT_SUCCESS"]

    def test_callback_without_prior_create_still_records_payment(self, client, appointment_id, read_db):
        client.get("/payments/vnpay/callback", params=signed(appointment_id), follow_redirects=False)
        assert get_payment(read_db, appointment_id).amount == 350000

    def test_failure_code_marks_failed(self, client, create_payment, appointment_id, read_db):
        create_payment(appointment_id)

        response = client.get(
            "/payments/vnpay/callback",
            params=signed(appointment_id, response_code="24", transaction_no="0"),
            follow_redirects=False,
        )

        assert redirect_query(response)["success"] == "false"
        payment = get_payment(read_db, appointment_id)
        assert payment.status == "FAILED"
        assert payment.transaction_id is None
        assert payment.paid_at is None
        assert get_appointment(read_db, appointment_id).status == "PENDING"

    def test_tampered_signature_changes_nothing(self, client, create_payment, appointment_id, read_db):
        create_payment(appointment_id)
        params = signed(appointment_id)
        params["vnp_Amount"] = "100"

        response = client.get("/payments/vnpay/callback", params=params, follow_redirects=False)

        assert redirect_query(response) == {"success": "false", "message": "Payment processing failed"}
        assert get_payment(read_db, appointment_id).status == "PENDING"
        assert get_appointment(read_db, appointment_id).status == "PENDING"

    def test_unparseable_amount_still_redirects(self, client, create_payment, appointment_id, read_db):
        create_payment(appointment_id)

        response = client.get(
            "/payments/vnpay/callback", params=signed(appointment_id, amount="abc"), follow_redirects=False
        )

        assert response.status_code in (302, 307)
        assert redirect_query(response) == {"success": "false", "message": "Payment processing failed"}
        assert get_payment(read_db, appointment_id).status == "PENDING"
        assert get_appointment(read_db, appointment_id).status == "PENDING"

    def test_late_failure_does_not_downgrade_paid(self, client, appointment_id, read_db):
        client.get("/payments/vnpay/callback", params=signed(appointment_id), follow_redirects=False)
        client.get(
            "/payments/vnpay/callback", params=signed(appointment_id, response_code="24"), follow_redirects=False
        )
        assert get_payment(read_db, appointment_id).status == "PAID"

    def test_paid_callback_leaves_confirmed_appointment_alone(self, client, appointment_id, auth, read_db):
        client.post(f"/appointments/{appointment_id}/confirm", headers=auth.doctor)
        client.get("/payments/vnpay/callback", params=signed(appointment_id), follow_redirects=False)
        assert get_appointment(read_db, appointment_id).status == "CONFIRMED"
        assert get_payment(read_db, appointment_id).status == "PAID"


class TestIPN:
    def test_success(self, client, create_payment, appointment_id, read_db):
        create_payment(appointment_id)
        response = client.post("/payments/vnpay/ipn", params=signed(appointment_id))
        assert response.json() == {"RspCode": "00", "Message": "success"}
        assert get_payment(read_db, appointment_id).status == "PAID"

    def test_json_body(self, client, appointment_id, read_db):
        response = client.post("/payments/vnpay/ipn", json=signed(appointment_id))
        assert response.json()["RspCode"] == "00"

    def test_invalid_signature(self, client, appointment_id):
        params = signed(appointment_id)
        params["vnp_SecureHash"] = "0" * 128
        assert client.post("/payments/vnpay/ipn", params=params).json() == {
            "RspCode": "97",
            "Message": "Invalid signature",
        }

    def test_unknown_order(self, client, seed):
        assert client.post("/payments/vnpay/ipn", params=signed("missing")).json()["RspCode"] == "01"

    def test_repeated_ipn_is_acknowledged_once(self, client, appointment_id, read_db, seed):
        client.post("/payments/vnpay/ipn", params=signed(appointment_id))
        response = client.post("/payments/vnpay/ipn", params=signed(appointment_id))

        assert response.json()["RspCode"] == "00"
        count = read_db(
            lambda db: db.query(Notification)
            .filter(Notification.user_id == seed.patient_user_id, Notification.type == "PAYMENT_SUCCESS")
            .count()
        )
        assert count == 1


class TestPaymentStatus:
    def test_owner_sees_status(self, client, create_payment, appointment_id, auth):
        payment_id = create_payment(appointment_id).json()["data"]["payment"]["id"]
        client.get("/payments/vnpay/callback", params=signed(appointment_id), follow_redirects=False)

        response = client.get(f"/payments/{payment_id}/status", headers=auth.patient)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["status"] == "PAID"
        assert data["transactionId"] == "14012345"
        assert data["appointment"]["status"] == "CONFIRMED"

    def test_other_patient_gets_not_found(self, client, create_payment, appointment_id, auth):
        payment_id = create_payment(appointment_id).json()["data"]["payment"]["id"]
        response = client.get(f"/payments/{payment_id}/status", headers=auth.other_patient)
        assert response.status_code == 404
        assert response.json()["error"]["code"] == "PAYMENT_NOT_FOUND"
