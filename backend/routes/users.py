import json
import logging
import os
import uuid
from typing import Optional

import aiofiles
from fastapi import APIRouter, Depends, File, Form, Request, Response, UploadFile
from sqlmodel import Session

from core.config import AUTH_COOKIE_NAME, IS_PRODUCTION, MAX_UPLOAD_BYTES, UPLOAD_DIR
from core.database import get_session
from core.errors import AuthenticationError, ValidationError
from models.audit_log import AuditAction
from models.user import Specialization, User, UserRole
from schemas.common import Envelope
from schemas.user import LanguageUpdate, PasswordChange, UserRead
from services.audit import log_action
from utils.security import get_current_user, hash_password, verify_password
from utils.timeutils import utcnow

router = APIRouter(tags=["User"])
logger = logging.getLogger(__name__)

PROFILE_DIR = os.path.join(UPLOAD_DIR, "profiles")
ALLOWED_IMAGE_TYPES = {"image/jpeg", "image/png", "image/gif", "image/webp"}


async def save_profile_picture(file: UploadFile) -> str:
    if file.content_type not in ALLOWED_IMAGE_TYPES:
        raise ValidationError(f"Invalid file type: {file.content_type}. Only images are allowed.")

    content = await file.read()
    if len(content) > MAX_UPLOAD_BYTES:
        raise ValidationError("Profile picture cannot exceed 2MB")

    os.makedirs(PROFILE_DIR, exist_ok=True)
    file_name = f"{uuid.uuid4()}{os.path.splitext(file.filename or '')[1]}"
    file_path = os.path.join(PROFILE_DIR, file_name)
    async with aiofiles.open(file_path, "wb") as out_file:
        await out_file.write(content)
    return f"/uploads/profiles/{file_name}"


def _parse_specializations(raw: str):
    try:
        values = json.loads(raw)
    except ValueError:
        values = [item.strip() for item in raw.split(",") if item.strip()]
    if not isinstance(values, list):
        raise ValidationError("Specializations must be a list")
    try:
        return [Specialization(value).value for value in values]
    except ValueError:
        raise ValidationError("Invalid specialization")


@router.get("/me", response_model=Envelope[UserRead])
def get_profile(current_user: User = Depends(get_current_user)):
    return {"success": True, "data": UserRead.model_validate(current_user)}


@router.put("/me", response_model=Envelope[UserRead])
async def update_profile(
    name: Optional[str] = Form(None),
    phone_number: Optional[str] = Form(None, alias="phoneNumber"),
    apartment_number: Optional[str] = Form(None, alias="apartmentNumber"),
    block_number: Optional[str] = Form(None, alias="blockNumber"),
    specializations: Optional[str] = Form(None),
    profile_picture: Optional[UploadFile] = File(None, alias="profilePicture"),
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    changed = []

    if name is not None:
        name = name.strip()
        if not name or len(name) > 50:
            raise ValidationError("Name must be between 1 and 50 characters")
        current_user.name = name
        changed.append("name")

    if phone_number is not None:
        if not (len(phone_number) == 10 and phone_number.isdigit()):
            raise ValidationError("Please enter a valid 10-digit phone number")
        current_user.phone_number = phone_number
        changed.append("phoneNumber")

    if apartment_number is not None:
        if len(apartment_number) > 20:
            raise ValidationError("Apartment number cannot exceed 20 characters")
        current_user.apartment_number = apartment_number
        changed.append("apartmentNumber")

    if block_number is not None:
        if len(block_number) > 10:
            raise ValidationError("Block number cannot exceed 10 characters")
        current_user.block_number = block_number
        changed.append("blockNumber")

    if specializations is not None:
        if current_user.role != UserRole.technician:
            raise ValidationError("Only technicians can have specializations")
        current_user.specializations = _parse_specializations(specializations)
        changed.append("specializations")

    if profile_picture is not None and profile_picture.filename:
        current_user.profile_picture = await save_profile_picture(profile_picture)
        changed.append("profilePicture")

    current_user.updated_at = utcnow()
    session.add(current_user)
    session.commit()
    session.refresh(current_user)

    # profile edits are not a compliance event; application log only
    log_action(session, current_user.id, "PROFILE_UPDATE", {"fields": changed})
    return {"success": True, "message": "Profile updated successfully", "data": UserRead.model_validate(current_user)}


@router.put("/password")
def change_password(
    payload: PasswordChange,
    request: Request,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    if not verify_password(payload.current_password, current_user.password_hash):
        raise AuthenticationError("Current password is incorrect")

    current_user.password_hash = hash_password(payload.new_password)
    current_user.updated_at = utcnow()
    session.add(current_user)
    session.commit()

    log_action(session, current_user.id, AuditAction.PASSWORD_CHANGE, request=request)
    return {"success": True, "message": "Password updated successfully"}


@router.put("/language", response_model=Envelope[UserRead])
def update_language(
    payload: LanguageUpdate,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    current_user.language = payload.language
    current_user.updated_at = utcnow()
    session.add(current_user)
    session.commit()
    session.refresh(current_user)
    return {"success": True, "message": "Language preference updated", "data": UserRead.model_validate(current_user)}


@router.delete("/me")
def delete_account(
    request: Request,
    response: Response,
    current_user: User = Depends(get_current_user),
    session: Session = Depends(get_session),
):
    user_id = current_user.id
    session.delete(current_user)
    session.commit()

    log_action(session, user_id, AuditAction.ACCOUNT_DELETE, request=request)
    response.delete_cookie(AUTH_COOKIE_NAME, httponly=True, secure=IS_PRODUCTION, samesite="lax")
    logger.info("User %s deleted their account", user_id)
    return {"success": True, "message": "Account deleted successfully"}
