"""
Demo database: gyms, practitioners, patients and the last 90 days of appointments.

    python -m vastis.demo_data

Every demo account logs in with DEMO_PASSWORD.
"""
from __future__ import annotations

import logging
import random
from datetime import date, datetime, time, timedelta

from sqlalchemy import delete, select

from .auth_models import User
from .auth_security import hash_password
from .config import LOG_FORMAT, LOG_LEVEL
from .db import db_session
from .models import (
    Appointment,
    AppointmentStatus,
    Doctor,
    DoctorAvailability,
    DoctorLocation,
    DoctorService,
    Gym,
    GymAmenity,
    GymAvailability,
    Invitation,
    Notification,
    Patient,
    PaymentDistribution,
    PaymentTransaction,
    PractitionerGymRequest,
    Role,
    ServiceType,
    Treatment,
    UserRole,
)
from .seed import seed_base
from .services import init_db, process_payment

logger = logging.getLogger(__name__)

RANDOM_SEED = 42
DEMO_PASSWORD = "demo1234"
DEMO_DOMAIN = "demo.vastis.local"

PATIENTS_COUNT = 60

GYMS = [
    ("Riverside Fitness", "12 River St", 51.5074, -0.1278, ["Pool", "Sauna"]),
    ("Northside Athletic Club", "48 North Rd", 51.5450, -0.1030, ["Treatment room", "Parking"]),
    ("Core Strength Studio", "7 Market Sq", 51.4975, -0.1357, ["Showers"]),
]

DOCTORS = [
    ("Emma", "Clarke", "Physiotherapy", ["Physiotherapy", "Sports Massage"]),
    ("James", "Patel", "Chiropractic", ["Chiropractic"]),
    ("Olivia", "Nguyen", "Sports Medicine", ["Physiotherapy", "Osteopathy"]),
    ("Daniel", "Reyes", "Nutrition", ["Nutrition Consultation"]),
]

FIRST_NAMES = ["Alex", "Sam", "Jordan", "Taylor", "Morgan", "Casey", "Riley", "Jamie", "Robin", "Avery"]
LAST_NAMES = ["Smith", "Brown", "Wilson", "Taylor", "Davies", "Evans", "Thomas", "Johnson", "Walker", "Wright"]

# Bookings per weekday (0=Sunday ... 6=Saturday)
DAY_FACTOR = {0: 0.0, 1: 1.15, 2: 1.05, 3: 1.00, 4: 1.05, 5: 1.10, 6: 0.55}


def _random_phone() -> str:
    return f"07{random.randint(100, 999)}{random.randint(100000, 999999)}"


def _dow(day: date) -> int:
    return (day.weekday() + 1) % 7


def reset_db() -> None:
    """Delete the demo accounts and everything hanging off them (schema and catalog stay)."""
    with db_session() as s:
        demo_users = select(User.id).where(User.email.like(f"%@{DEMO_DOMAIN}"))
        s.execute(delete(PaymentDistribution))
        s.execute(delete(PaymentTransaction))
        s.execute(delete(Notification))
        s.execute(delete(Appointment))
        s.execute(delete(PractitionerGymRequest))
        s.execute(delete(Invitation))
        s.execute(delete(Treatment))
        s.execute(delete(DoctorAvailability))
        s.execute(delete(DoctorLocation))
        s.execute(delete(DoctorService))
        s.execute(delete(GymAvailability))
        s.execute(delete(GymAmenity))
        s.execute(delete(Patient).where(Patient.user_id.in_(demo_users)))
        s.execute(delete(Doctor).where(Doctor.user_id.in_(demo_users)))
        s.execute(delete(Gym).where(Gym.user_id.in_(demo_users)))
        s.execute(delete(UserRole).where(UserRole.user_id.in_(demo_users)))
        s.execute(delete(User).where(User.email.like(f"%@{DEMO_DOMAIN}")))


def _account(s, email: str, role: Role, password_hash: str) -> str:
    u = User(email=email, password_hash=password_hash, is_active=True)
    s.add(u)
    s.flush()
    s.add(UserRole(user_id=u.id, role=role))
    return u.id


def seed_structure(password_hash: str) -> None:
    """Gyms with opening hours, practitioners with services, locations and availability."""
    with db_session() as s:
        services = {st.name: st for st in s.scalars(select(ServiceType))}

        gyms = []
        for name, address, lat, lon, amenities in GYMS:
            email = f"{name.split()[0].lower()}@{DEMO_DOMAIN}"
            uid = _account(s, email, Role.GYM, password_hash)
            g = Gym(user_id=uid, name=name, email=email, phone=_random_phone(), address=address, latitude=lat, longitude=lon)
            s.add(g)
            s.flush()
            for dow in range(1, 7):
                s.add(GymAvailability(gym_id=g.id, day_of_week=dow, start_time=time(7, 0), end_time=time(21, 0)))
            for amenity in amenities:
                s.add(GymAmenity(gym_id=g.id, name=amenity))
            gyms.append(g)

        for first, last, specialization, offered in DOCTORS:
            email = f"{first.lower()}.{last.lower()}@{DEMO_DOMAIN}"
            uid = _account(s, email, Role.DOCTOR, password_hash)
            d = Doctor(
                user_id=uid,
                name=f"{first} {last}",
                email=email,
                phone=_random_phone(),
                specialization=specialization,
                license_number=f"LIC-{random.randint(10000, 99999)}",
            )
            s.add(d)
            s.flush()

            for service_name in offered:
                s.add(DoctorService(doctor_id=d.id, service_type_id=services[service_name].id))
                s.add(Treatment(doctor_id=d.id, name=f"{service_name} session", duration_minutes=45, price=60.0))

            # weekdays at one or two gyms: mornings at the first, afternoons at the second
            at = random.sample(gyms, k=random.randint(1, 2))
            for g in at:
                s.add(DoctorLocation(doctor_id=d.id, gym_id=g.id))
            for dow in range(1, 6):
                s.add(DoctorAvailability(doctor_id=d.id, gym_id=at[0].id, day_of_week=dow, start_time=time(9, 0), end_time=time(13, 0)))
                s.add(DoctorAvailability(doctor_id=d.id, gym_id=at[-1].id, day_of_week=dow, start_time=time(14, 0), end_time=time(18, 0)))


def seed_patients(password_hash: str) -> None:
    with db_session() as s:
        for i in range(PATIENTS_COUNT):
            first, last = random.choice(FIRST_NAMES), random.choice(LAST_NAMES)
            email = f"{first.lower()}.{last.lower()}{i}@{DEMO_DOMAIN}"
            uid = _account(s, email, Role.PATIENT, password_hash)
            s.add(
                Patient(
                    user_id=uid,
                    name=f"{first} {last}",
                    email=email,
                    phone=_random_phone(),
                    date_of_birth=date.today() - timedelta(days=random.randint(18 * 365, 80 * 365)),
                    gender=random.choice(["female", "male", "other"]),
                    blood_type=random.choice(["A+", "A-", "B+", "O+", "O-", "AB+"]),
                )
            )


def _status_for(day: date) -> AppointmentStatus:
    """Status consistent with the date: old ones completed, future ones scheduled."""
    delta = (date.today() - day).days
    if delta >= 1:
        r = random.random()
        if r < 0.85:
            return AppointmentStatus.COMPLETED
        if r < 0.93:
            return AppointmentStatus.CANCELLED
        return AppointmentStatus.NO_SHOW
    return AppointmentStatus.SCHEDULED


def generate_appointments(days_back: int = 90, days_ahead: int = 14) -> list[tuple[int, float]]:
    """Returns (appointment id, price) of the completed appointments to be paid."""
    to_pay: list[tuple[int, float]] = []
    with db_session() as s:
        doctors = list(s.scalars(select(Doctor)))
        patients = list(s.scalars(select(Patient)))
        if not doctors or not patients:
            raise RuntimeError("No doctors or patients: run seed_structure and seed_patients first.")

        services_by_doctor = {
            d.id: [ds.service_type_id for ds in s.scalars(select(DoctorService).where(DoctorService.doctor_id == d.id))]
            for d in doctors
        }

        day = date.today() - timedelta(days=days_back)
        end_day = date.today() + timedelta(days=days_ahead)
        while day <= end_day:
            factor = DAY_FACTOR[_dow(day)]
            if factor <= 0:
                day += timedelta(days=1)
                continue

            for d in doctors:
                slots = s.scalars(
                    select(DoctorAvailability).where(
                        DoctorAvailability.doctor_id == d.id, DoctorAvailability.day_of_week == _dow(day)
                    )
                ).all()
                for slot in slots:
                    # hourly starts inside the slot
                    hour = slot.start_time.hour
                    while hour < slot.end_time.hour:
                        if random.random() < 0.45 * factor:
                            status = _status_for(day)
                            price = random.choice([45.0, 60.0, 75.0])
                            app = Appointment(
                                patient_id=random.choice(patients).id,
                                doctor_id=d.id,
                                gym_id=slot.gym_id,
                                service_type_id=random.choice(services_by_doctor[d.id]),
                                appointment_date=day,
                                appointment_time=time(hour, 0),
                                appointment_status=status,
                                price=price,
                            )
                            s.add(app)
                            s.flush()
                            if status == AppointmentStatus.COMPLETED:
                                to_pay.append((app.id, price))
                        hour += 1
            day += timedelta(days=1)
    return to_pay


def main(reset: bool = True) -> None:
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    random.seed(RANDOM_SEED)

    init_db()
    seed_base()
    if reset:
        reset_db()

    password_hash = hash_password(DEMO_PASSWORD)
    seed_structure(password_hash)
    seed_patients(password_hash)
    to_pay = generate_appointments()
    for appointment_id, price in to_pay:
        process_payment(appointment_id, price, random.choice(["card", "cash", "insurance"]))

    logger.info("Demo data ready: %d paid appointments (password %r)", len(to_pay), DEMO_PASSWORD)
    print(f"OK: demo database populated at {datetime.now():%Y-%m-%d %H:%M}.")


if __name__ == "__main__":
    main(reset=True)
