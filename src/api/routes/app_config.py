"""Feature flags and brand listing consumed by the UI."""

import logging

from fastapi import APIRouter, Depends

from src.api.deps import get_config, get_registry
from src.brands.registry import BrandRegistry
from src.config import AppConfig

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["config"])


@router.get("/config")
def app_config(config: AppConfig = Depends(get_config)) -> dict:
    """Pass-through flags the UI uses to enable optional features."""
    return {
        "sentry": {"dsn": config.features.sentry_dsn},
        "allowFaceUpload": config.features.allow_face_upload,
    }


@router.get("/brands")
def list_brands(registry: BrandRegistry = Depends(get_registry)) -> list[dict]:
    """Connectable brands, hidden brands omitted.

    Each entry carries what the UI needs to pick a sign-in surface.
    """
    return [
        {
            "brand_id": brand.brand_id,
            "brand_name": brand.brand_name,
            "logo_url": brand.logo_url,
            "is_mandatory": brand.is_mandatory,
            "is_dpage": brand.is_dpage,
            "signin_variant": brand.signin_variant,
            "schema": [field.model_dump() for field in brand.fields],
            "dataTransform": brand.data_transform.model_dump(by_alias=True),
        }
        for brand in registry.visible()
    ]
