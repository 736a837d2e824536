"""Issue import endpoints"""
import logging
from typing import List, Optional, Union

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.models import Provider
from app.models.base import get_db
from app.services.import_service import ImportService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/imports", tags=["imports"])


class ImportRequest(BaseModel):
    workspace_id: str
    user_id: str
    external_ids: List[Union[int, str]]
    container: Optional[str] = None
    tenant_id: Optional[str] = None


class ImportResponse(BaseModel):
    imported: List[int]
    skipped: List[str]


@router.post("/{provider}", response_model=ImportResponse)
def import_issues(provider: Provider, body: ImportRequest, db: Session = Depends(get_db)):
    """Import provider issues as linked tasks"""
    service = ImportService(db)
    try:
        result = service.import_issues(
            provider,
            body.workspace_id,
            body.user_id,
            body.external_ids,
            container=body.container,
            tenant_id=body.tenant_id,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except httpx.HTTPError as e:
        logger.error(f"{provider.value} import failed: {e}")
        raise HTTPException(status_code=502, detail=f"{provider.value} request failed: {e}")
    return {"imported": result.imported, "skipped": result.skipped}
