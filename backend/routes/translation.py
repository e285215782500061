from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import Field

from core.errors import ValidationError
from models.user import User
from schemas.common import APIModel
from services.translation import TRANSLATABLE_FIELDS, TranslationService, is_supported
from utils.security import committee_required, get_current_user

router = APIRouter(tags=["Translation"])


class TextTranslationRequest(APIModel):
    text: str = Field(min_length=1, max_length=5000)
    target_language: str
    source_language: str = "en"


class ObjectTranslationRequest(APIModel):
    data: Any
    target_language: str
    fields: Optional[List[str]] = None


class DetectRequest(APIModel):
    text: str = Field(min_length=1, max_length=5000)


def get_translator(request: Request) -> TranslationService:
    return request.app.state.translator


def _check_language(code: str):
    if not is_supported(code):
        raise ValidationError(f"Unsupported language: {code}")


@router.post("/text")
async def translate_text(
    payload: TextTranslationRequest,
    current_user: User = Depends(get_current_user),
    translator: TranslationService = Depends(get_translator),
):
    _check_language(payload.target_language)
    _check_language(payload.source_language)
    translated = await translator.translate_text(payload.text, payload.target_language, payload.source_language)
    return {
        "success": True,
        "data": {
            "originalText": payload.text,
            "translatedText": translated,
            "sourceLanguage": payload.source_language,
            "targetLanguage": payload.target_language,
        },
    }


@router.post("/object")
async def translate_object(
    payload: ObjectTranslationRequest,
    current_user: User = Depends(get_current_user),
    translator: TranslationService = Depends(get_translator),
):
    _check_language(payload.target_language)
    fields = payload.fields or TRANSLATABLE_FIELDS
    translated = await translator.translate_object(payload.data, payload.target_language, fields)
    return {"success": True, "data": translated}


@router.get("/languages")
def supported_languages(current_user: User = Depends(get_current_user)):
    return {"success": True, "data": TranslationService.supported_languages()}


@router.post("/detect")
async def detect_language(
    payload: DetectRequest,
    current_user: User = Depends(get_current_user),
    translator: TranslationService = Depends(get_translator),
):
    return {"success": True, "data": await translator.detect_language(payload.text)}


@router.get("/cache")
def cache_stats(
    committee: User = Depends(committee_required),
    translator: TranslationService = Depends(get_translator),
):
    return {"success": True, "data": translator.cache_stats()}


@router.delete("/cache")
def clear_cache(
    committee: User = Depends(committee_required),
    translator: TranslationService = Depends(get_translator),
):
    cleared = translator.clear_cache()
    return {"success": True, "message": f"Cleared {cleared} cached translations"}
