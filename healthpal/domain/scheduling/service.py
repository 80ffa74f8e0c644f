"""Slot service - Open appointment slots for a doctor on a date"""

import logging
from datetime import date

from sqlalchemy.orm import Session

from ...config import SLOT_DURATION_MINUTES
from ...exceptions import NotFoundError
from ...shared.validators import normalize_time
from .repository import SchedulingRepository
from .slots import generate_time_slots, intervals_overlap

logger = logging.getLogger(__name__)

WEEKDAYS = ("MONDAY", "TUESDAY", "WEDNESDAY", "THURSDAY", "FRIDAY", "SATURDAY", "SUNDAY")


def works_on(working_days, on_date: date) -> bool:
    """An empty working_days list means the doctor works every day at that clinic"""
    if not working_days:
        return True
    return WEEKDAYS[on_date.weekday()] in {day.upper() for day in working_days}


class SlotService:
    def __init__(self, db: Session, slot_minutes: int = SLOT_DURATION_MINUTES):
        self.db = db
        self.repo = SchedulingRepository()
        self.slot_minutes = slot_minutes

    def get_available_slots(self, doctor_id: str, on_date: date) -> list[dict]:
        """
        Candidate slots from each clinic working window minus booked ranges.

        Returns [{startTime, endTime, clinicId, clinicName}] in window order.
        """
        if not self.repo.doctor_exists(self.db, doctor_id):
            raise NotFoundError("Doctor not found")

        windows = self.repo.get_working_windows(self.db, doctor_id)
        booked = self.repo.get_booked_ranges(self.db, doctor_id, on_date)

        available = []
        for window in windows:
            if not works_on(window.working_days, on_date):
                continue
            start = normalize_time(window.start_time)
            end = normalize_time(window.end_time)
            for slot in generate_time_slots(start, end, self.slot_minutes):
                if any(intervals_overlap(slot["startTime"], slot["endTime"], s, e) for s, e in booked):
                    continue
                available.append({**slot, "clinicId": window.clinic_id, "clinicName": window.clinic.name})

        logger.debug(f"🗓️ {len(available)} open slots for doctor {doctor_id} on {on_date}")
        return available
