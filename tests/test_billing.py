from decimal import Decimal

import pytest

from multiclinic.models.billing import BillStatus
from multiclinic.services.billing_service import compute_bill_status

from .conftest import book

RECEPTION = "/api/v1/receptionist"


@pytest.fixture
def scheduled_appointment(client, clinic_world):
    appointment_id = book(client, clinic_world).json()["id"]
    client.patch(
        f"{RECEPTION}/appointments/{appointment_id}/accept",
        headers=clinic_world.receptionist_headers,
    )
    return appointment_id


def create_bill(client, world, appointment_id, total=1000.0, discount=0.0):
    return client.post(
        "/api/v1/bills",
        json={"appointment_id": appointment_id, "total_amount": total, "discount": discount},
        headers=world.receptionist_headers,
    )


class TestBillStatus:

    @pytest.mark.parametrize("total,discount,paid,expected", [
        (1000, 0, 0, BillStatus.UNPAID),
        (1000, 0, 400, BillStatus.PARTIAL),
        (1000, 0, 1000, BillStatus.PAID),
        (1000, 200, 800, BillStatus.PAID),
        (1000, 200, 1200, BillStatus.PAID),
        (1000, 1000, 0, BillStatus.PAID),
        (Decimal("1.00"), Decimal("0.70"), Decimal("0.30"), BillStatus.PAID),
        (1.0, 0.7, 0.3, BillStatus.PAID),
        (0.3, 0, 0.1 + 0.2, BillStatus.PAID),
        (Decimal("1.00"), Decimal("0.70"), Decimal("0.29"), BillStatus.PARTIAL),
    ])
    def test_compute_bill_status(self, total, discount, paid, expected):
        assert compute_bill_status(total, discount, paid) == expected


class TestBills:

    def test_create_bill(self, client, clinic_world, scheduled_appointment):
        response = create_bill(client, clinic_world, scheduled_appointment, discount=100)
        assert response.status_code == 201

        data = response.json()
        assert data["status"] == "UNPAID"
        assert data["net_amount"] == 900
        assert data["amount_paid"] == 0
        assert data["patient_id"] == clinic_world.patient_id

    def test_pending_appointment_not_billable(self, client, clinic_world):
        appointment_id = book(client, clinic_world).json()["id"]

        response = create_bill(client, clinic_world, appointment_id)
        assert response.status_code == 400

    def test_one_bill_per_appointment(self, client, clinic_world, scheduled_appointment):
        create_bill(client, clinic_world, scheduled_appointment)

        response = create_bill(client, clinic_world, scheduled_appointment)
        assert response.status_code == 409

    def test_discount_cannot_exceed_total(self, client, clinic_world, scheduled_appointment):
        response = create_bill(client, clinic_world, scheduled_appointment, total=100, discount=200)
        assert response.status_code == 422

    def test_other_clinic_cannot_bill(self, client, clinic_world, scheduled_appointment):
        response = client.post(
            "/api/v1/bills",
            json={"appointment_id": scheduled_appointment, "total_amount": 500},
            headers=clinic_world.other_receptionist_headers,
        )
        assert response.status_code == 403


class TestPayments:

    def test_full_payment_marks_paid(self, client, clinic_world, scheduled_appointment):
        bill_id = create_bill(client, clinic_world, scheduled_appointment, discount=200).json()["id"]

        response = client.post(
            f"/api/v1/bills/{bill_id}/pay",
            json={"amount": 800, "method": "CASH"},
            headers=clinic_world.receptionist_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "PAID"
        assert response.json()["amount_paid"] == 800

    def test_exact_cents_payment_marks_paid(self, client, clinic_world, scheduled_appointment):
        bill = create_bill(client, clinic_world, scheduled_appointment, total=1.00, discount=0.70).json()
        assert bill["net_amount"] == 0.3

        response = client.post(
            f"/api/v1/bills/{bill['id']}/pay",
            json={"amount": 0.30, "method": "CASH"},
            headers=clinic_world.receptionist_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "PAID"
        assert response.json()["net_amount"] == 0.3
        assert response.json()["amount_paid"] == 0.3

    def test_sub_cent_amount_rejected(self, client, clinic_world, scheduled_appointment):
        bill_id = create_bill(client, clinic_world, scheduled_appointment).json()["id"]

        response = client.post(
            f"/api/v1/bills/{bill_id}/pay",
            json={"amount": 10.005, "method": "CASH"},
            headers=clinic_world.receptionist_headers,
        )
        assert response.status_code == 422

    def test_partial_then_full(self, client, clinic_world, scheduled_appointment):
        bill_id = create_bill(client, clinic_world, scheduled_appointment).json()["id"]
        url = f"/api/v1/bills/{bill_id}/pay"
        headers = clinic_world.receptionist_headers

        first = client.post(url, json={"amount": 300, "method": "CARD"}, headers=headers)
        assert first.json()["status"] == "PARTIAL"

        second = client.post(url, json={"amount": 700, "method": "ONLINE"}, headers=headers)
        assert second.json()["status"] == "PAID"
        assert [p["amount"] for p in second.json()["payments"]] == [300, 700]

    def test_record_payment_endpoint(self, client, clinic_world, scheduled_appointment):
        bill_id = create_bill(client, clinic_world, scheduled_appointment).json()["id"]

        response = client.post(
            f"{RECEPTION}/payments",
            json={"bill_id": bill_id, "amount": 100, "method": "BANK_TRANSFER"},
            headers=clinic_world.receptionist_headers,
        )
        assert response.status_code == 200
        assert response.json()["status"] == "PARTIAL"

    def test_non_positive_amount_rejected(self, client, clinic_world, scheduled_appointment):
        bill_id = create_bill(client, clinic_world, scheduled_appointment).json()["id"]

        response = client.post(
            f"/api/v1/bills/{bill_id}/pay",
            json={"amount": 0, "method": "CASH"},
            headers=clinic_world.receptionist_headers,
        )
        assert response.status_code == 422

    def test_other_clinic_cannot_collect(self, client, clinic_world, scheduled_appointment):
        bill_id = create_bill(client, clinic_world, scheduled_appointment).json()["id"]

        response = client.post(
            f"/api/v1/bills/{bill_id}/pay",
            json={"amount": 100, "method": "CASH"},
            headers=clinic_world.other_receptionist_headers,
        )
        assert response.status_code == 403


class TestBillAccess:

    def test_patient_sees_own_bills(self, client, clinic_world, scheduled_appointment):
        create_bill(client, clinic_world, scheduled_appointment)

        response = client.get(
            f"/api/v1/bills/patient/{clinic_world.patient_id}",
            headers=clinic_world.patient_headers,
        )
        assert response.status_code == 200
        assert len(response.json()) == 1

    def test_patient_cannot_see_others_bills(self, client, clinic_world):
        response = client.get(
            f"/api/v1/bills/patient/{clinic_world.patient_id}",
            headers=clinic_world.other_patient_headers,
        )
        assert response.status_code == 403

    def test_get_bill(self, client, clinic_world, scheduled_appointment):
        bill_id = create_bill(client, clinic_world, scheduled_appointment).json()["id"]

        for headers in (clinic_world.receptionist_headers, clinic_world.system_admin_headers,
                        clinic_world.patient_headers):
            response = client.get(f"/api/v1/bills/{bill_id}", headers=headers)
            assert response.status_code == 200

        response = client.get(f"/api/v1/bills/{bill_id}", headers=clinic_world.other_patient_headers)
        assert response.status_code == 403

    def test_clinic_bill_list(self, client, clinic_world, scheduled_appointment):
        create_bill(client, clinic_world, scheduled_appointment)

        mine = client.get(f"{RECEPTION}/bills", headers=clinic_world.receptionist_headers)
        theirs = client.get(f"{RECEPTION}/bills", headers=clinic_world.other_receptionist_headers)
        assert len(mine.json()) == 1
        assert theirs.json() == []
