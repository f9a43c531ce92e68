"""Book, pay, confirm and settle one appointment through the API."""

from decimal import Decimal
from uuid import UUID

import pytest
from conftest import headers_for, local
from httpx import AsyncClient


@pytest.mark.asyncio
async def test_booking_to_weekly_payout(
    client: AsyncClient,
    clock,
    patient,
    admin,
    make_doctor,
    make_room,
    assign,
    record_payment,
    record_rental,
) -> None:
    doctor_id = await make_doctor(consultation_fee=Decimal("150000"))
    room_id = await make_room()
    await assign(doctor_id, patient.id)
    patient_headers = headers_for(patient)
    start = local(2025, 6, 2, 10)

    # Patient books the 10:00 in-person slot
    created = await client.post(
        "/api/v1/appointments/",
        json={
            "doctor_id": str(doctor_id),
            "patient_id": str(patient.id),
            "start_time": start.isoformat(),
            "is_virtual": False,
            "room_id": str(room_id),
        },
        headers=patient_headers,
    )
    assert created.status_code == 201
    assert created.json()["status"] == "pending"
    appointment_id = UUID(created.json()["id"])

    # The slot disappears from availability
    availability = await client.get(
        "/api/v1/appointments/availability",
        params={"doctor_id": str(doctor_id), "date": "2025-06-02"},
        headers=patient_headers,
    )
    assert "2025-06-02T15:00:00Z" not in availability.json()["slots"]

    # Payment lands and the patient confirms
    await record_payment(appointment_id, amount=Decimal("150000"))
    await record_rental(room_id, doctor_id, appointment_id, start, Decimal("30000"))

    confirmed = await client.post(
        "/api/v1/appointments/confirm",
        json={"appointment_id": str(appointment_id)},
        headers=patient_headers,
    )
    assert confirmed.status_code == 200
    assert confirmed.json()["success"] is True
    assert confirmed.json()["appointment"]["status"] == "confirmed"

    # Monday 2025-06-09: settle the previous week
    clock.set(local(2025, 6, 9, 6))
    settled = await client.post(
        "/api/v1/weekly_payout_processor",
        json={},
        headers=headers_for(admin),
    )

    assert settled.status_code == 200
    data = settled.json()
    assert data["week_start_date"] == "2025-06-02"
    assert data["summary"]["payouts_created"] == 1
    assert data["errors"] == []

    payout = data["payouts"][0]
    assert payout["appointment_id"] == str(appointment_id)
    assert payout["doctor_id"] == str(doctor_id)
    assert Decimal(payout["consultation_fee"]) == Decimal("150000")
    assert Decimal(payout["doctor_payout"]) == Decimal("112500")
    assert Decimal(payout["clinic_revenue"]) == Decimal("30000")
    assert Decimal(payout["platform_commission"]) == Decimal("7500")
    assert payout["status"] == "pending"
    assert payout["requires_review"] is False

    # Running the same week again creates nothing
    rerun = await client.post(
        "/api/v1/weekly_payout_processor",
        json={"week_start": "2025-06-02"},
        headers=headers_for(admin),
    )
    assert rerun.json()["summary"]["payouts_created"] == 0
