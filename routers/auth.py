from typing import Any, Dict

from fastapi import APIRouter, Depends, Request

from schemas import ForgotPasswordRequest, LoginRequest, LoginResponse, ResetPasswordRequest
from security import authenticate, forgot_password, require_admin, reset_password

router = APIRouter()


@router.post("/admin/login", response_model=LoginResponse)
def login(req: LoginRequest, request: Request):
    return authenticate(request.app.state.db, request.app.state.settings, req.username, req.password)


@router.get("/admin/me")
def me(admin: Dict[str, Any] = Depends(require_admin)):
    return {
        "message": "Admin details fetched successfully",
        "data": {"id": admin["id"], "username": admin["username"], "role": admin["role"]},
    }


@router.post("/forgot-password")
def request_password_reset(req: ForgotPasswordRequest, request: Request):
    state = request.app.state
    forgot_password(state.db, state.settings, req.email, state.send_reset_mail)
    return {
        "success": True,
        "message": "If a user with that email exists, a password reset link has been sent.",
    }


@router.put("/reset-password/{token}")
def apply_password_reset(token: str, req: ResetPasswordRequest, request: Request):
    jwt_token = reset_password(request.app.state.db, request.app.state.settings, token, req.password)
    return {"success": True, "message": "Admin password reset successfully", "token": jwt_token}
