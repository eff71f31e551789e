from __future__ import annotations

import base64
import json
import os
from datetime import date, datetime, timezone

import requests
import streamlit as st

st.set_page_config(page_title="Vastis", layout="wide")

API_BASE = os.getenv("API_BASE", "http://127.0.0.1:8000")

DAYS = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]



# JWT helpers (UI only, signature not verified)

def _b64url_decode(data: str) -> bytes:
    padding = "=" * (-len(data) % 4)
    return base64.urlsafe_b64decode(data + padding)


def jwt_payload(token: str) -> dict:
    parts = token.split(".")
    if len(parts) != 3:
        return {}
    try:
        payload = json.loads(_b64url_decode(parts[1]).decode("utf-8"))
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def jwt_is_expired(token: str) -> bool:
    exp = jwt_payload(token).get("exp")
    if not isinstance(exp, int):
        return False
    now = int(datetime.now(tz=timezone.utc).timestamp())
    return now >= (exp - 5)


def jwt_role(token: str) -> str | None:
    return jwt_payload(token).get("role")



# HTTP client (with JWT)

def _headers(token: str | None) -> dict:
    return {"Authorization": f"Bearer {token}"} if token else {}


def _check(r: requests.Response) -> dict | list:
    if r.status_code == 401:
        raise PermissionError("401 Unauthorized (invalid or expired token).")
    if r.status_code >= 400:
        try:
            detail = r.json().get("detail")
        except ValueError:
            detail = r.text
        raise RuntimeError(f"{r.status_code}: {detail}")
    return r.json()


def api_get(path: str, token: str | None = None, params: dict | None = None) -> dict | list:
    return _check(requests.get(f"{API_BASE}{path}", headers=_headers(token), params=params, timeout=10))


def api_post(path: str, payload: dict | None = None, token: str | None = None) -> dict:
    return _check(requests.post(f"{API_BASE}{path}", headers=_headers(token), json=payload, timeout=10))


def api_patch(path: str, payload: dict, token: str) -> dict:
    return _check(requests.patch(f"{API_BASE}{path}", headers=_headers(token), json=payload, timeout=10))


def api_delete(path: str, token: str) -> dict:
    return _check(requests.delete(f"{API_BASE}{path}", headers=_headers(token), timeout=10))


def api_login(email: str, password: str) -> dict:
    # OAuth2PasswordRequestForm => x-www-form-urlencoded
    r = requests.post(
        f"{API_BASE}/api/auth/login",
        data={"username": email, "password": password},
        timeout=10,
    )
    r.raise_for_status()
    return r.json()


def is_logged_in() -> bool:
    token = st.session_state.get("token")
    return bool(token) and isinstance(token, str)


def do_logout() -> None:
    st.session_state.pop("token", None)
    st.session_state.pop("auth_error", None)
    st.rerun()


def show_error(e: Exception) -> None:
    if isinstance(e, PermissionError):
        st.session_state["auth_error"] = str(e)
        st.error("Session not valid. Log out and log in again.")
    else:
        st.error(str(e))


def fmt_appointment(a: dict) -> str:
    who = " | ".join(
        f"{label}: {a[key]['name']}" for key, label in (("patient", "Patient"), ("doctor", "Doctor"), ("gym", "Gym")) if a.get(key)
    )
    service = (a.get("service_type") or {}).get("name") or a.get("appointment_type")
    return f"**{a['appointment_date']} {a['appointment_time']}** | {service} | {who} | {a['appointment_status']}"



# Sidebar: login / register

with st.sidebar:
    st.header("Account")

    if not is_logged_in():
        mode = st.radio("Mode", ["Login", "Register"], horizontal=True, key="auth_mode")

        if mode == "Login":
            u = st.text_input("Email", key="login_user")
            p = st.text_input("Password", type="password", key="login_pass")
            if st.button("Login", key="login_btn"):
                try:
                    res = api_login(u.strip().lower(), p)
                    st.session_state["token"] = res["access_token"]
                    st.session_state.pop("auth_error", None)
                    st.rerun()
                except requests.HTTPError:
                    st.error("Invalid credentials.")
                except requests.RequestException as e:
                    st.error(str(e))
        else:
            role = st.selectbox("I am a", ["patient", "doctor", "gym"], key="reg_role")
            email = st.text_input("Email", key="reg_email")
            password = st.text_input("Password", type="password", key="reg_pass")
            payload: dict = {"email": email, "password": password, "role": role}
            if role == "gym":
                payload["gym_name"] = st.text_input("Gym name", key="reg_gym_name")
                payload["gym_address"] = st.text_input("Gym address", key="reg_gym_address")
            else:
                c1, c2 = st.columns(2)
                payload["first_name"] = c1.text_input("First name", key="reg_first")
                payload["last_name"] = c2.text_input("Last name", key="reg_last")
                payload["phone"] = st.text_input("Phone", key="reg_phone")
            if role == "doctor":
                payload["specialization"] = st.text_input("Specialization", key="reg_spec") or None
                payload["invite_code"] = st.text_input("Invitation code (optional)", key="reg_invite") or None

            if st.button("Create account", key="reg_btn"):
                try:
                    api_post("/api/auth/register", payload)
                    st.success("Account created. You can log in now.")
                except (RuntimeError, requests.RequestException) as e:
                    st.error(str(e))
    else:
        token = st.session_state["token"]
        st.write(f"Role: **{jwt_role(token) or '-'}**")
        if st.session_state.get("auth_error"):
            st.error(st.session_state["auth_error"])
        with st.expander("Change password"):
            current = st.text_input("Current password", type="password", key="pw_current")
            new = st.text_input("New password", type="password", key="pw_new")
            confirm = st.text_input("Confirm new password", type="password", key="pw_confirm")
            if st.button("Update password", key="pw_btn"):
                if new != confirm:
                    st.error("New passwords do not match.")
                else:
                    try:
                        api_post("/api/auth/change-password", {"current_password": current, "new_password": new}, token=token)
                        st.success("Password updated.")
                    except (PermissionError, RuntimeError) as e:
                        show_error(e)
        if st.button("Logout", key="logout_btn"):
            do_logout()

    st.divider()
    st.caption(f"API: {API_BASE}")



# Public data

@st.cache_data(ttl=30)
def load_service_types() -> list[dict]:
    return api_get("/api/public/service-types")


@st.cache_data(ttl=30)
def load_gyms() -> list[dict]:
    return api_get("/api/public/gyms")



# Role views

def patient_view(token: str) -> None:
    tab_book, tab_apps, tab_find, tab_ins = st.tabs(["Book", "My appointments", "Find a provider", "Insurance"])

    with tab_book:
        try:
            doctors = api_get("/api/patient/doctors", token=token)
        except (PermissionError, RuntimeError) as e:
            show_error(e)
            return
        if not doctors:
            st.info("No practitioners available yet.")
        else:
            doctor = st.selectbox(
                "Practitioner", doctors, format_func=lambda d: f"{d['name']} ({d['specialization'] or '-'})", key="bk_doc"
            )
            gym = st.selectbox("Gym", doctor["gyms"], format_func=lambda g: f"{g['name']} - {g['address']}", key="bk_gym")
            service = st.selectbox("Service", doctor["services"], format_func=lambda s: s["name"], key="bk_srv")

            slots = api_get(f"/api/patient/doctors/{doctor['id']}/availability", token=token, params={"gym_id": gym["id"]})
            for sl in slots:
                st.caption(f"{DAYS[sl['day_of_week']]} {sl['start_time']}-{sl['end_time']}")

            c1, c2 = st.columns(2)
            day = c1.date_input("Date", value=date.today(), key="bk_date")
            at = c2.time_input("Time", key="bk_time")
            if st.button("Book appointment", key="bk_btn"):
                try:
                    res = api_post(
                        "/api/patient/appointments",
                        {
                            "doctor_id": doctor["id"],
                            "gym_id": gym["id"],
                            "service_type_id": service["id"],
                            "appointment_date": day.isoformat(),
                            "appointment_time": at.strftime("%H:%M"),
                        },
                        token=token,
                    )
                    st.success(f"Appointment booked (#{res['id']}).")
                except (PermissionError, RuntimeError) as e:
                    show_error(e)

    with tab_apps:
        try:
            groups = api_get("/api/patient/appointments", token=token)
        except (PermissionError, RuntimeError) as e:
            show_error(e)
            return
        for label in ("upcoming", "past", "cancelled"):
            st.markdown(f"**{label.title()} ({len(groups[label])})**")
            for a in groups[label]:
                c1, c2 = st.columns([5, 1])
                c1.write(fmt_appointment(a))
                if label == "upcoming" and c2.button("Cancel", key=f"cancel_{a['id']}"):
                    try:
                        api_post(f"/api/patient/appointments/{a['id']}/cancel", token=token)
                        st.rerun()
                    except (PermissionError, RuntimeError) as e:
                        show_error(e)

    with tab_find:
        types = load_service_types()
        service = st.selectbox("Service type", [None] + types, format_func=lambda t: t["name"] if t else "Any", key="fp_srv")
        c1, c2 = st.columns(2)
        lat = c1.number_input("Latitude", value=51.5074, format="%.4f", key="fp_lat")
        lon = c2.number_input("Longitude", value=-0.1278, format="%.4f", key="fp_lon")
        if st.button("Search", key="fp_btn"):
            params = {"latitude": lat, "longitude": lon}
            if service:
                params["service_type_id"] = service["id"]
            for r in api_get("/api/patient/find-provider", token=token, params=params):
                dist = f"{r['distance']} km" if r["distance"] is not None else "distance unknown"
                st.write(f"- **{r['name']}** ({r['specialization'] or '-'}) at {r['gym_name']}, {r['gym_address']} | {dist}")

    with tab_ins:
        try:
            for pi in api_get("/api/patient/insurance", token=token):
                st.write(f"- {pi['insurance_provider']['name']} | policy {pi['policy_number']}")
        except (PermissionError, RuntimeError) as e:
            show_error(e)


def doctor_view(token: str) -> None:
    tab_dash, tab_apps, tab_patients = st.tabs(["Dashboard", "Schedule", "Patients"])

    with tab_dash:
        try:
            stats = api_get("/api/doctor/dashboard", token=token)
        except (PermissionError, RuntimeError) as e:
            show_error(e)
            return
        c = st.columns(4)
        c[0].metric("Appointments", stats["total"])
        c[1].metric("Upcoming", stats["upcoming"])
        c[2].metric("Completed", stats["completed"])
        c[3].metric("Completion rate", f"{stats['completion_rate']}%")
        st.markdown("**Today**")
        for a in stats["today"]:
            st.write(fmt_appointment(a))

    with tab_apps:
        for a in api_get("/api/doctor/appointments", token=token):
            c1, c2 = st.columns([5, 2])
            c1.write(fmt_appointment(a))
            if a["appointment_status"] == "scheduled" and c2.button("Mark completed", key=f"done_{a['id']}"):
                try:
                    api_patch(f"/api/doctor/appointments/{a['id']}/status", {"status": "completed"}, token)
                    st.rerun()
                except (PermissionError, RuntimeError) as e:
                    show_error(e)

    with tab_patients:
        for p in api_get("/api/doctor/patients", token=token):
            st.write(f"- {p['name']} | {p['email']} | {p['phone'] or '-'}")


def gym_view(token: str) -> None:
    tab_dash, tab_spaces, tab_requests = st.tabs(["Dashboard", "Spaces", "Practitioner requests"])

    with tab_dash:
        try:
            stats = api_get("/api/gym/dashboard", token=token)
        except (PermissionError, RuntimeError) as e:
            show_error(e)
            return
        c = st.columns(4)
        c[0].metric("Appointments", stats["total"])
        c[1].metric("Today", stats["today"])
        c[2].metric("Upcoming", stats["upcoming"])
        c[3].metric("Practitioners", stats["practitioners"])
        for a in stats["recent_appointments"]:
            st.write(fmt_appointment(a))

    with tab_spaces:
        for sp in api_get("/api/gym/spaces", token=token):
            c1, c2 = st.columns([5, 1])
            c1.write(f"**{sp['name']}** | {sp['capacity']} people | {sp['price_per_hour']:.2f}/h | {sp['equipment'] or '-'}")
            if c2.button("Remove", key=f"space_{sp['id']}"):
                try:
                    api_delete(f"/api/gym/spaces/{sp['id']}", token)
                    st.rerun()
                except (PermissionError, RuntimeError) as e:
                    show_error(e)
        with st.form("new_space"):
            name = st.text_input("Name")
            capacity = st.number_input("Capacity", min_value=1, value=10)
            price = st.number_input("Price per hour", min_value=0.0, value=30.0)
            equipment = st.text_input("Equipment")
            if st.form_submit_button("Add space"):
                try:
                    api_post(
                        "/api/gym/spaces",
                        {"name": name, "capacity": int(capacity), "price_per_hour": price, "equipment": equipment or None},
                        token=token,
                    )
                    st.rerun()
                except (PermissionError, RuntimeError) as e:
                    show_error(e)

    with tab_requests:
        pending = api_get("/api/gym/requests", token=token)
        if not pending:
            st.info("No pending requests.")
        for r in pending:
            c1, c2, c3 = st.columns([4, 1, 1])
            c1.write(f"**{r['doctor']['name']}** ({r['doctor']['specialization'] or '-'}) | {r['message'] or ''}")
            for col, action in ((c2, "approve"), (c3, "deny")):
                if col.button(action.title(), key=f"{action}_{r['id']}"):
                    try:
                        api_post(f"/api/gym/requests/{r['id']}/{action}", token=token)
                        st.rerun()
                    except (PermissionError, RuntimeError) as e:
                        show_error(e)


def admin_view(token: str) -> None:
    tab_dash, tab_gyms, tab_inv, tab_pay = st.tabs(["Dashboard", "Gyms", "Invitations", "Payments"])

    with tab_dash:
        try:
            stats = api_get("/api/admin/dashboard", token=token)
        except (PermissionError, RuntimeError) as e:
            show_error(e)
            return
        c = st.columns(5)
        c[0].metric("Patients", stats["total_patients"])
        c[1].metric("Doctors", stats["total_doctors"])
        c[2].metric("Gyms", stats["total_gyms"])
        c[3].metric("Appointments", stats["total_appointments"])
        c[4].metric("Revenue", f"{stats['total_revenue']:.2f}")
        st.markdown("**Recent appointments**")
        for a in stats["recent_appointments"]:
            st.write(fmt_appointment(a))

    with tab_gyms:
        search = st.text_input("Search by name or address", key="adm_gym_search")
        for g in api_get("/api/admin/gyms", token=token, params={"search": search or None}):
            st.write(f"- **{g['name']}** | {g['address'] or '-'} | {g['doctor_count']} doctors | {g['appointment_count']} appointments")

    with tab_inv:
        email = st.text_input("Practitioner email", key="adm_inv_email")
        if st.button("Send invitation", key="adm_inv_btn"):
            try:
                inv = api_post("/api/admin/invitations/doctor", {"email": email}, token=token)
                st.success(f"Invitation code: {inv['invite_code']}")
            except (PermissionError, RuntimeError) as e:
                show_error(e)
        for inv in api_get("/api/admin/invitations", token=token):
            st.write(f"- {inv['email']} | {inv['status']} | expires {inv['expires_at'] or '-'}")

    with tab_pay:
        summary = api_get("/api/admin/payments/summary", token=token)
        c = st.columns(3)
        c[0].metric("Total", f"{summary['total']:.2f}")
        c[1].metric("Completed", f"{summary['completed']:.2f}")
        c[2].metric("Pending", f"{summary['pending']:.2f}")
        for tx in api_get("/api/admin/payments", token=token)[:50]:
            st.write(f"- {tx['transaction_reference']} | {tx['amount']:.2f} | {tx['status']} | {tx['payment_method'] or '-'}")



# UI

st.title("Vastis")

if not is_logged_in():
    st.info("Log in or register from the sidebar.")
    st.markdown("**Gyms on the platform**")
    try:
        for g in load_gyms():
            st.write(f"- {g['name']} | {g['address'] or '-'}")
    except (RuntimeError, requests.RequestException) as e:
        st.error(f"API unreachable: {e}")
    st.stop()

token = st.session_state["token"]
if jwt_is_expired(token):
    st.error("Session expired. Log out and log in again.")
    st.stop()

VIEWS = {"patient": patient_view, "doctor": doctor_view, "gym": gym_view, "admin": admin_view}
view = VIEWS.get(jwt_role(token))
if view is None:
    st.warning("This account has no role.")
else:
    view(token)
