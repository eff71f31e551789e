from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select

from .auth_models import User
from .auth_security import hash_password, verify_password
from .db import db_session
from .models import Admin, Doctor, Gym, Invitation, InvitationStatus, Patient, Role, UserRole
from .services import expire_invitations, parse_date, parse_enum, to_dict

logger = logging.getLogger(__name__)

PROFILE_MODELS: dict[Role, type] = {
    Role.PATIENT: Patient,
    Role.DOCTOR: Doctor,
    Role.GYM: Gym,
    Role.ADMIN: Admin,
}

# Roles open to self sign-up; admins are created from the CLI
PUBLIC_ROLES = (Role.PATIENT, Role.DOCTOR, Role.GYM)
MIN_PASSWORD_LENGTH = 8


def dashboard_path(role: Role | str | None) -> str:
    """Landing page of a role (where the route guard sends a user)."""
    if role is None:
        return "/login"
    value = role.value if isinstance(role, Role) else str(role)
    if value in {r.value for r in Role}:
        return f"/{value}/dashboard"
    return "/"


def register_user(
    email: str,
    password: str,
    role: str | Role,
    first_name: str = "",
    last_name: str = "",
    phone: str = "",
    address: str = "",
    date_of_birth: str | date | None = None,
    gender: str = "",
    blood_type: str = "",
    specialization: str | None = None,
    license_number: str = "",
    gym_name: str = "",
    gym_address: str = "",
    invite_code: str | None = None,
    allow_admin: bool = False,
) -> str:
    """
    Use case: sign up.
    - creates the account, its user_roles row and the role profile
    - accepts the matching invitation when an invite code is given
    Returns the new user id.
    """
    email = (email or "").strip().lower()
    if not email or not password or not role:
        raise ValueError("Missing required fields")

    role = parse_enum(Role, role, "role")
    if role not in PUBLIC_ROLES and not allow_admin:
        raise ValueError("This role cannot be registered from the sign-up form.")

    name = f"{first_name.strip()} {last_name.strip()}".strip() or email
    if role == Role.GYM and not gym_name.strip():
        raise ValueError("Gym name is required.")

    if invite_code:
        # stale invitations stay expired even if this sign-up fails
        with db_session() as s:
            expire_invitations(s)

    with db_session() as s:
        exists = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if exists:
            raise ValueError("A user with this email already exists")

        invitation = None
        if invite_code:
            invitation = s.execute(
                select(Invitation).where(
                    Invitation.invite_code == invite_code.strip(),
                    Invitation.email == email,
                    Invitation.status == InvitationStatus.PENDING,
                )
            ).scalar_one_or_none()
            if invitation is None:
                raise ValueError("Invalid or expired invitation code.")

        u = User(email=email, password_hash=hash_password(password), is_active=True)
        s.add(u)
        s.flush()

        s.add(UserRole(user_id=u.id, role=role))

        if role == Role.PATIENT:
            s.add(
                Patient(
                    user_id=u.id,
                    name=name,
                    email=email,
                    phone=phone,
                    address=address,
                    date_of_birth=parse_date(date_of_birth) if date_of_birth else None,
                    gender=gender,
                    blood_type=blood_type,
                )
            )
        elif role == Role.DOCTOR:
            s.add(
                Doctor(
                    user_id=u.id,
                    name=name,
                    email=email,
                    phone=phone,
                    address=address,
                    specialization=specialization or (invitation.specialization if invitation else None),
                    license_number=license_number,
                )
            )
        elif role == Role.GYM:
            s.add(Gym(user_id=u.id, name=gym_name.strip(), email=email, phone=phone, address=gym_address or address))
        else:
            s.add(Admin(user_id=u.id, name=name, email=email, phone=phone, address=address))

        if invitation is not None:
            invitation.status = InvitationStatus.ACCEPTED

        logger.info("Registered %s user %s", role.value, u.id)
        return u.id


def authenticate(email: str, password: str) -> User | None:
    email = (email or "").strip().lower()
    with db_session() as s:
        u = s.execute(select(User).where(User.email == email)).scalar_one_or_none()
        if not u or not u.is_active:
            return None
        if not verify_password(password, u.password_hash):
            return None
        return u


def change_password(user_id: str, current_password: str, new_password: str) -> None:
    """
    Use case: the signed-in user replaces their password.
    The current password must be correct.
    """
    if not current_password:
        raise ValueError("Current password is required")
    if not new_password:
        raise ValueError("New password is required")
    if len(new_password) < MIN_PASSWORD_LENGTH:
        raise ValueError(f"New password must be at least {MIN_PASSWORD_LENGTH} characters.")
    with db_session() as s:
        u = s.get(User, user_id)
        if not u:
            raise ValueError("User not found.")
        if not verify_password(current_password, u.password_hash):
            raise ValueError("Current password is incorrect.")
        u.password_hash = hash_password(new_password)
    logger.info("Password changed for user %s", user_id)


def get_user_by_id(user_id: str) -> User | None:
    with db_session() as s:
        return s.get(User, user_id)


def get_user_role(user_id: str) -> Role | None:
    with db_session() as s:
        return s.execute(select(UserRole.role).where(UserRole.user_id == user_id)).scalar_one_or_none()


def get_profile_id(user_id: str, role: Role) -> int | None:
    model = PROFILE_MODELS[role]
    with db_session() as s:
        return s.execute(select(model.id).where(model.user_id == user_id)).scalar_one_or_none()


def get_profile(user_id: str) -> dict | None:
    """Role and role profile of an account (the auth context of the front end)."""
    role = get_user_role(user_id)
    if role is None:
        return None
    model = PROFILE_MODELS[role]
    with db_session() as s:
        profile = s.execute(select(model).where(model.user_id == user_id)).scalar_one_or_none()
        return {
            "role": role.value,
            "dashboard": dashboard_path(role),
            "profile": to_dict(profile) if profile else None,
        }
