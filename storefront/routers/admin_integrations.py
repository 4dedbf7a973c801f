from typing import Optional

from fastapi import APIRouter, Depends, Query

from storefront.models_sqlalchemy.models import User
from storefront.services.auth import admin_required
from storefront.utils.logger import PROVIDERS, integration_logger

PROVIDER_PATTERN = "^(" + "|".join(PROVIDERS) + ")$"

router = APIRouter(prefix="/api/admin/integrations", tags=["admin_integrations"])


@router.get("/logs")
async def get_integration_logs(
    provider: Optional[str] = Query(None, pattern=PROVIDER_PATTERN),
    limit: int = Query(100, ge=1, le=1000),
    current_user: User = Depends(admin_required),
):
    return {
        "logs": integration_logger.get_logs(limit=limit, provider=provider),
        "errors": integration_logger.error_counts(),
    }


@router.delete("/logs")
async def clear_integration_logs(current_user: User = Depends(admin_required)):
    integration_logger.clear_logs()
    return {"success": True}
