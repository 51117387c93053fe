# DataSync_app/api/users.py
import logging

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.exc import IntegrityError

from DataSync_app.api.rest import db_errors
from DataSync_app.auth import create_token, current_user, hash_password, verify_password
from DataSync_app.db import storage
from DataSync_app.db.models import UserORM
from DataSync_app.db.schemas import AuthResp, LoginReq, RegisterReq, UserOut
from DataSync_app.db.session import async_session

users_router = APIRouter(prefix="/api")
log = logging.getLogger(__name__)


@users_router.post("/register", status_code=status.HTTP_201_CREATED)
async def register(req: RegisterReq, request: Request):
    client_ip = request.client.host if request.client else "unknown"
    log.info("[REST] ⇐ register username=%s from=%s", req.username, client_ip)

    with db_errors("register"):
        try:
            async with async_session() as s, s.begin():
                if await storage.get_user_by_username(s, req.username):
                    raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username already exists")
                user = await storage.create_user(
                    s,
                    username=req.username,
                    password=hash_password(req.password),
                    email=req.email,
                    first_name=req.first_name,
                    last_name=req.last_name,
                )
        except IntegrityError:
            # unique email (or a username race)
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Username or email already exists")

    return AuthResp(user=UserOut.model_validate(user), token=create_token(user))


@users_router.post("/login")
async def login(req: LoginReq):
    with db_errors("login"):
        async with async_session() as s:
            user = await storage.get_user_by_username(s, req.username)

    if not user or not verify_password(req.password, user.password):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid username or password")

    return AuthResp(user=UserOut.model_validate(user), token=create_token(user))


@users_router.post("/logout")
async def logout():
    # tokens are stateless; the client drops its copy
    return {"ok": True}


@users_router.get("/user")
async def me(user: UserORM = Depends(current_user)):
    return UserOut.model_validate(user)
