"""Database models."""

from clinic_scheduler.models.appointments import appointments
from clinic_scheduler.models.base import metadata
from clinic_scheduler.models.doctors import doctor_patients, doctors
from clinic_scheduler.models.payments import payments
from clinic_scheduler.models.payouts import payouts
from clinic_scheduler.models.rooms import room_rentals, rooms

__all__ = [
    "appointments",
    "doctor_patients",
    "doctors",
    "metadata",
    "payments",
    "payouts",
    "room_rentals",
    "rooms",
]
