from __future__ import annotations

import argparse
import getpass
import logging

from . import admin_service
from .auth_service import register_user
from .config import LOG_FORMAT, LOG_LEVEL
from .models import Role
from .seed import seed_base
from .services import init_db, mark_notification_sent, pending_notifications

logger = logging.getLogger(__name__)


def cmd_init(args: argparse.Namespace) -> None:
    init_db()
    seed_base()
    print("Database initialised and catalog seeded.")


def cmd_list(args: argparse.Namespace) -> None:
    if args.entity == "patients":
        for p in admin_service.get_all_patients():
            print(f"{p['id']} | {p['name']} | {p['email']}")
    elif args.entity == "doctors":
        for d in admin_service.get_all_doctors():
            print(f"{d['id']} | {d['name']} | {d['specialization'] or '-'}")
    elif args.entity == "gyms":
        for g in admin_service.get_gyms_overview():
            print(f"{g['id']} | {g['name']} | {g['address'] or '-'} | {g['doctor_count']} doctors")
    elif args.entity == "service_types":
        for st in admin_service.get_service_types():
            print(f"{st['id']} | {st['name']}")
    elif args.entity == "invitations":
        for inv in admin_service.get_invitations():
            print(f"{inv['id']} | {inv['email']} | {inv['status']} | expires {inv['expires_at'] or '-'}")


def cmd_create_admin(args: argparse.Namespace) -> None:
    password = args.password or getpass.getpass("Password: ")
    user_id = register_user(
        email=args.email,
        password=password,
        role=Role.ADMIN,
        first_name=args.first_name,
        last_name=args.last_name,
        allow_admin=True,
    )
    print(f"Admin created: {user_id}")


def cmd_invite(args: argparse.Namespace) -> None:
    inv = admin_service.invite_doctor(args.email)
    print(f"Invitation #{inv['id']} for {inv['email']}, code {inv['invite_code']}, expires {inv['expires_at']}")


def cmd_notifications(args: argparse.Namespace) -> None:
    """
    Stand-in for the external notification sender:
    - reads the pending notifications
    - prints them
    - optionally marks them as sent
    """
    pending = pending_notifications(limit=args.limit)
    if not pending:
        print("No pending notifications.")
        return

    for n in pending:
        print(f"[{n['id']}] {n['type']} | {n['created_at']} | {n['message']}")
        if args.mark_sent:
            mark_notification_sent(n["id"])

    if args.mark_sent:
        print("Notifications marked as sent.")


def cmd_stats(args: argparse.Namespace) -> None:
    stats = admin_service.get_dashboard_stats()
    print(f"Patients     : {stats['total_patients']}")
    print(f"Doctors      : {stats['total_doctors']}")
    print(f"Gyms         : {stats['total_gyms']}")
    print(f"Appointments : {stats['total_appointments']}")
    print(f"Revenue      : {stats['total_revenue']:.2f}")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="vastis", description="Vastis admin CLI")
    sub = p.add_subparsers(required=True)

    p_init = sub.add_parser("init", help="Create the tables and seed the catalog")
    p_init.set_defaults(func=cmd_init)

    p_list = sub.add_parser("list", help="List entities")
    p_list.add_argument("entity", choices=["patients", "doctors", "gyms", "service_types", "invitations"])
    p_list.set_defaults(func=cmd_list)

    p_admin = sub.add_parser("create-admin", help="Create an admin account")
    p_admin.add_argument("--email", required=True)
    p_admin.add_argument("--password", default=None, help="Prompted when omitted")
    p_admin.add_argument("--first-name", default="")
    p_admin.add_argument("--last-name", default="")
    p_admin.set_defaults(func=cmd_create_admin)

    p_inv = sub.add_parser("invite", help="Invite a practitioner by email")
    p_inv.add_argument("email")
    p_inv.set_defaults(func=cmd_invite)

    p_not = sub.add_parser("notifications", help="Print pending notifications (simulated delivery)")
    p_not.add_argument("--limit", type=int, default=50)
    p_not.add_argument("--mark-sent", action="store_true", help="Mark them as sent after printing")
    p_not.set_defaults(func=cmd_notifications)

    p_stats = sub.add_parser("stats", help="Platform totals")
    p_stats.set_defaults(func=cmd_stats)

    return p


def main(argv: list[str] | None = None) -> None:
    logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
    parser = build_parser()
    args = parser.parse_args(argv)
    init_db()  # tables exist before any command
    try:
        args.func(args)
    except ValueError as e:
        logger.error("%s", e)
        raise SystemExit(1)


if __name__ == "__main__":
    main()
