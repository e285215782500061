from fastapi import APIRouter, Depends, Request, Response
from sqlmodel import Session, select

from core.config import AUTH_COOKIE_NAME, IS_PRODUCTION, JWT_EXPIRE_MINUTES
from core.database import get_session
from core.errors import AuthenticationError, ConflictError, ValidationError
from models.audit_log import AuditAction
from models.user import User, UserRole
from schemas.common import Envelope
from schemas.user import AuthResult, LoginRequest, RegisterRequest, UserRead
from services.audit import log_action, log_failed_action
from utils.security import create_access_token, get_current_user, hash_password, verify_password
from utils.timeutils import utcnow

router = APIRouter(tags=["Auth"])


def set_auth_cookie(response: Response, token: str):
    response.set_cookie(
        key=AUTH_COOKIE_NAME,
        value=token,
        max_age=JWT_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=IS_PRODUCTION,
        samesite="lax",
    )


@router.post("/register", status_code=201, response_model=Envelope[AuthResult])
def register(
    payload: RegisterRequest,
    request: Request,
    response: Response,
    session: Session = Depends(get_session),
):
    existing = session.exec(select(User).where(User.email == payload.email)).first()
    if existing:
        raise ConflictError("User already exists with this email")

    if payload.specializations and payload.role != UserRole.technician:
        raise ValidationError("Only technicians can have specializations")
    if payload.permissions and payload.role != UserRole.committee:
        raise ValidationError("Only committee members can have permissions")

    user = User(
        name=payload.name.strip(),
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        phone_number=payload.phone_number,
        apartment_number=payload.apartment_number,
        block_number=payload.block_number,
        specializations=[item.value for item in payload.specializations],
        permissions=[item.value for item in payload.permissions],
    )
    session.add(user)
    session.commit()
    session.refresh(user)

    log_action(
        session,
        user.id,
        AuditAction.USER_REGISTER,
        {"email": user.email, "role": user.role.value},
        request=request,
    )

    token = create_access_token(user.id)
    set_auth_cookie(response, token)
    return {
        "success": True,
        "message": "User registered successfully",
        "data": AuthResult(user=UserRead.model_validate(user), token=token),
    }


@router.post("/login", response_model=Envelope[AuthResult])
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    session: Session = Depends(get_session),
):
    user = session.exec(select(User).where(User.email == payload.email)).first()
    if not user or not verify_password(payload.password, user.password_hash):
        log_failed_action(
            session,
            user.id if user else None,
            AuditAction.LOGIN_FAILED,
            "Invalid credentials",
            {"email": payload.email},
            request=request,
        )
        raise AuthenticationError("Invalid credentials")

    user.last_login = utcnow()
    session.add(user)
    session.commit()
    session.refresh(user)

    log_action(session, user.id, AuditAction.USER_LOGIN, {"email": user.email}, request=request)

    token = create_access_token(user.id)
    set_auth_cookie(response, token)
    return {
        "success": True,
        "message": "Login successful",
        "data": AuthResult(user=UserRead.model_validate(user), token=token),
    }


@router.post("/logout")
def logout(
    request: Request,
    response: Response,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    response.delete_cookie(AUTH_COOKIE_NAME, httponly=True, secure=IS_PRODUCTION, samesite="lax")
    log_action(session, current_user.id, AuditAction.USER_LOGOUT, request=request)
    return {"success": True, "message": "Logged out successfully"}


@router.get("/me", response_model=Envelope[UserRead])
def me(current_user: User = Depends(get_current_user)):
    return {"success": True, "data": UserRead.model_validate(current_user)}
