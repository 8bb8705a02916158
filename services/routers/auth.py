# NG-HEADER: Nombre de archivo: auth.py
# NG-HEADER: Ubicación: services/routers/auth.py
# NG-HEADER: Descripción: Endpoints de login/logout, sesión actual y administración de usuarios.
# NG-HEADER: Lineamientos: Ver AGENTS.md
"""Endpoints de autenticación y gestión de usuarios."""

import logging
import secrets
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import User
from db.session import get_session
from services.auth import (
    SessionData,
    check_login_rate_limit,
    create_session,
    current_session,
    hash_pw,
    record_failed_login,
    require_csrf,
    require_roles,
    reset_login_attempts,
    set_session_cookies,
    verify_pw,
)

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger("gestio.auth")


class LoginIn(BaseModel):
    identifier: str
    password: str


class UserCreate(BaseModel):
    identifier: str = Field(min_length=1, max_length=64)
    email: str | None = None
    name: str | None = None
    company: str | None = None
    password: str = Field(min_length=8)
    role: Literal["user", "admin"] = "user"


def _user_dict(user: User) -> dict:
    return {
        "id": user.id,
        "identifier": user.identifier,
        "email": user.email,
        "name": user.name,
        "company": user.company,
        "role": user.role,
    }


@router.post("/login")
async def login(payload: LoginIn, request: Request, db: AsyncSession = Depends(get_session)):
    tag = secrets.token_hex(4)
    ip = request.client.host if request.client else "unknown"
    logger.debug("[login:start] tag=%s ip=%s identifier=%s", tag, ip, payload.identifier)
    check_login_rate_limit(ip)

    ident = (payload.identifier or "").strip().lower()
    user = (
        await db.execute(
            select(User).where(
                or_(func.lower(User.identifier) == ident, func.lower(User.email) == ident)
            )
        )
    ).scalar_one_or_none()
    if not user or not verify_pw(payload.password, user.password_hash):
        record_failed_login(ip)
        logger.debug("[login:fail] tag=%s identifier=%s", tag, ident)
        raise HTTPException(status_code=401, detail="Identifiants invalides")

    reset_login_attempts(ip)
    prev = await current_session(request, db)
    sess, csrf = await create_session(db, user.role, request, user, prev_session=prev.session)
    resp = JSONResponse(_user_dict(user))
    await set_session_cookies(resp, sess.id, csrf, request)
    logger.debug("[login:ok] tag=%s user_id=%s role=%s", tag, user.id, user.role)
    return resp


@router.post("/logout", dependencies=[Depends(require_csrf)])
async def logout(request: Request, db: AsyncSession = Depends(get_session)):
    prev = await current_session(request, db)
    new_sess, csrf = await create_session(db, "guest", request, prev_session=prev.session)
    resp = JSONResponse({"status": "ok"})
    await set_session_cookies(resp, new_sess.id, csrf, request)
    return resp


@router.get("/me")
async def me(sess: SessionData = Depends(current_session)):
    if not sess.user:
        return {"is_authenticated": False, "role": "guest"}
    return {"is_authenticated": True, "role": sess.role, "user": _user_dict(sess.user)}


@router.get("/users", dependencies=[Depends(require_roles("admin"))])
async def list_users(
    q: str = "",
    page: int = 1,
    page_size: int = 20,
    db: AsyncSession = Depends(get_session),
):
    stmt = select(User)
    if q:
        like = f"%{q}%"
        stmt = stmt.where(or_(User.identifier.ilike(like), User.email.ilike(like), User.name.ilike(like)))
    stmt = stmt.order_by(User.id).offset((page - 1) * page_size).limit(page_size)
    return [_user_dict(u) for u in (await db.execute(stmt)).scalars().all()]


@router.post(
    "/users",
    status_code=201,
    dependencies=[Depends(require_csrf), Depends(require_roles("admin"))],
)
async def create_user(payload: UserCreate, db: AsyncSession = Depends(get_session)):
    user = User(
        identifier=payload.identifier,
        email=payload.email,
        name=payload.name,
        company=payload.company,
        password_hash=hash_pw(payload.password),
        role=payload.role,
    )
    db.add(user)
    # IntegrityError (identificador duplicado) -> 409 por el handler global
    await db.commit()
    logger.info("Usuario creado id=%s identifier=%s role=%s", user.id, user.identifier, user.role)
    return _user_dict(user)
