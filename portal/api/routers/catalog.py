"""Role catalog administration endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from portal.api.deps import get_catalog_holder
from portal.api.gates import RequireAuthorization
from portal.core.rbac.catalog import CatalogConfigError, CatalogHolder
from portal.core.rbac.permissions import Workspace

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/catalog", tags=["catalog"])


class CatalogSummary(BaseModel):
    roles: int
    workspaces: int


@router.post(
    "/reload",
    response_model=CatalogSummary,
    dependencies=[Depends(RequireAuthorization(workspace=Workspace.SYSTEM_ADMINISTRATION))],
)
async def reload_catalog(holder: CatalogHolder = Depends(get_catalog_holder)):
    """Re-read the catalog file and swap it in for new requests."""
    try:
        catalog = holder.reload()
    except CatalogConfigError as exc:
        logger.error("Catalog reload rejected: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(exc),
        )
    return CatalogSummary(
        roles=len(catalog.role_permissions),
        workspaces=len(catalog.workspace_roles),
    )
