"""Auth routes: login, register, protected pages, user management."""
from __future__ import annotations

import logging

from fastapi import APIRouter, HTTPException, Request, Response
from pydantic import BaseModel

from httpauth import (
    AlreadyAuthenticated,
    AuthError,
    DeleteOfMissingUser,
    InvalidUserData,
    NotLoggedIn,
    UserRecord,
)
from web.auth import ADMIN_ROLE, authorizer, redirect_to

logger = logging.getLogger("httpauth.web")

router = APIRouter(tags=["auth"])


class LoginRequest(BaseModel):
    username: str
    password: str


class RegisterRequest(BaseModel):
    username: str
    password: str
    email: str


class AddUserRequest(BaseModel):
    username: str
    password: str
    email: str
    role: str = ""  # empty: default role


class ChangeRequest(BaseModel):
    new_email: str = ""
    new_password: str = ""


def _user_dict(user: UserRecord) -> dict:
    return {"username": user.username, "email": user.email, "role": user.role}


@router.get("/login")
async def get_login(request: Request, response: Response):
    """Pending messages for the login page (read once)."""
    return {"messages": authorizer.messages(request, response)}


@router.post("/login")
async def post_login(body: LoginRequest, request: Request, response: Response):
    """Log in; redirects to the page that asked for login, or /."""
    try:
        await authorizer.login(request, response, body.username, body.password, "/")
    except AlreadyAuthenticated:
        redirect_to(response, "/")
    except AuthError as e:
        logger.info("Login rejected: %s", e)
        redirect_to(response, "/login")


@router.post("/register")
async def post_register(body: RegisterRequest, request: Request, response: Response):
    """Register with the default role, then log in."""
    try:
        await authorizer.register(
            request, response, UserRecord(username=body.username, email=body.email), body.password
        )
    except InvalidUserData as e:
        raise HTTPException(400, str(e))
    except AuthError as e:
        logger.info("Registration rejected: %s", e)
        redirect_to(response, "/login")
        return
    await post_login(LoginRequest(username=body.username, password=body.password), request, response)


@router.get("/")
async def home(request: Request, response: Response):
    """Protected page: the logged in user."""
    try:
        await authorizer.authorize(request, response, capture_redirect=True)
        user = await authorizer.current_user(request, response)
    except AuthError as e:
        logger.info("Home denied: %s", e)
        redirect_to(response, "/login")
        return None
    return _user_dict(user)


@router.post("/change")
async def post_change(body: ChangeRequest, request: Request, response: Response):
    """Change the logged in user's email and/or password."""
    try:
        await authorizer.update(request, response, "", body.new_password, body.new_email)
    except NotLoggedIn:
        redirect_to(response, "/login")
        return
    except AuthError as e:
        logger.info("Change rejected: %s", e)
    redirect_to(response, "/")


@router.get("/logout")
async def logout(request: Request, response: Response):
    await authorizer.logout(request, response)
    redirect_to(response, "/")


@router.get("/admin")
async def admin(request: Request, response: Response):
    """Admin page: users, roles and pending messages."""
    try:
        user = await authorizer.authorize_role(request, response, ADMIN_ROLE, capture_redirect=True)
    except AuthError as e:
        logger.info("Admin denied: %s", e)
        redirect_to(response, "/login")
        return None
    return {
        "user": _user_dict(user),
        "roles": authorizer.roles.as_dict(),
        "users": [_user_dict(u) for u in await authorizer.users()],
        "messages": authorizer.messages(request, response),
    }


@router.post("/admin/users")
async def add_user(body: AddUserRequest, request: Request, response: Response):
    """Create a user with any configured role (admin only)."""
    try:
        await authorizer.authorize_role(request, response, ADMIN_ROLE)
    except AuthError:
        redirect_to(response, "/login")
        return
    try:
        await authorizer.register(
            request,
            response,
            UserRecord(username=body.username, email=body.email, role=body.role),
            body.password,
        )
    except InvalidUserData as e:
        raise HTTPException(400, str(e))
    except AuthError as e:
        logger.info("Add user rejected: %s", e)
    redirect_to(response, "/admin")


@router.delete("/admin/users/{username}")
async def delete_user(username: str, request: Request, response: Response):
    """Delete a user (admin only). Cannot delete self."""
    try:
        admin_user = await authorizer.authorize_role(request, response, ADMIN_ROLE)
    except AuthError as e:
        # Status set on the injected response so its cookies are still sent
        logger.info("Delete denied: %s", e)
        response.status_code = 403
        return {"detail": "Admin access required"}
    if username == admin_user.username:
        raise HTTPException(400, "Cannot delete your own account")
    try:
        await authorizer.delete_user(username)
    except DeleteOfMissingUser:
        raise HTTPException(404, "User not found")
    return {"ok": True}
