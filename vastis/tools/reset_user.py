from __future__ import annotations

import sys

from sqlalchemy import delete, select

from vastis.auth_models import User
from vastis.auth_service import PROFILE_MODELS
from vastis.db import db_session
from vastis.models import UserRole


def main() -> None:
    if len(sys.argv) < 2:
        print("Usage: python -m vastis.tools.reset_user <email>")
        raise SystemExit(2)

    email = sys.argv[1].strip().lower()
    if not email:
        print("Invalid email.")
        raise SystemExit(2)

    with db_session() as s:
        user_id = s.execute(select(User.id).where(User.email == email)).scalar_one_or_none()
        if user_id is None:
            print(f"No user '{email}'.")
            return
        for model in PROFILE_MODELS.values():
            s.execute(delete(model).where(model.user_id == user_id))
        s.execute(delete(UserRole).where(UserRole.user_id == user_id))
        s.execute(delete(User).where(User.id == user_id))

    print(f"OK: user '{email}' deleted with role and profile.")


if __name__ == "__main__":
    main()
