from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.security import OAuth2PasswordRequestForm
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import IntegrityError

from . import auth_service
from .auth_models import User
from .auth_security import create_access_token
from .auth_service import authenticate, dashboard_path, get_profile, get_user_role, register_user
from .config import LOG_FORMAT, LOG_LEVEL, STORAGE_DIR
from .deps import bad_request, get_current_user
from .routes import admin_router, doctor_router, gym_router, patient_router, public_router
from .schemas import ChangePasswordIn, MeOut, RegisterIn, TokenOut
from .seed import seed_base
from .services import init_db

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger(__name__)

app = FastAPI(title="Vastis API", version="1.0.0")


@app.on_event("startup")
def startup() -> None:
    # tables and catalog (idempotent)
    init_db()
    seed_base()
    logger.info("Vastis API ready")


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"detail": str(exc)})


@app.exception_handler(IntegrityError)
async def integrity_error_handler(request: Request, exc: IntegrityError) -> JSONResponse:
    # db_session() already rolled back
    logger.error("%s %s integrity error: %s", request.method, request.url.path, exc.orig)
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": "Conflicting or duplicate data"})


# AUTH endpoints

@app.post("/api/auth/register")
def register(payload: RegisterIn) -> dict[str, Any]:
    try:
        user_id = register_user(**payload.model_dump())
    except ValueError as e:
        raise bad_request(e)
    role = get_user_role(user_id)
    return {"ok": True, "user_id": user_id, "dashboard": dashboard_path(role)}


@app.post("/api/auth/login", response_model=TokenOut)
def login(form: OAuth2PasswordRequestForm = Depends()) -> TokenOut:
    u = authenticate(form.username, form.password)
    if not u:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid credentials")

    role = get_user_role(u.id)
    token = create_access_token(u.id, email=u.email, role=role)
    return TokenOut(access_token=token, role=role.value if role else None, dashboard=dashboard_path(role))


@app.post("/api/auth/change-password")
def change_password(payload: ChangePasswordIn, user: User = Depends(get_current_user)) -> dict[str, bool]:
    try:
        auth_service.change_password(user.id, payload.current_password, payload.new_password)
    except ValueError as e:
        raise bad_request(e)
    return {"ok": True}


@app.get("/api/me", response_model=MeOut)
def me(user: User = Depends(get_current_user)) -> MeOut:
    ctx = get_profile(user.id) or {"role": None, "dashboard": dashboard_path(None), "profile": None}
    return MeOut(id=user.id, email=user.email, is_active=user.is_active, **ctx)


app.include_router(public_router)
app.include_router(admin_router)
app.include_router(doctor_router)
app.include_router(gym_router)
app.include_router(patient_router)

STORAGE_DIR.mkdir(parents=True, exist_ok=True)
app.mount("/storage", StaticFiles(directory=str(STORAGE_DIR)), name="storage")
