"""Provider integration management endpoints"""
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.models import Integration, Provider
from app.models.base import get_db

router = APIRouter(prefix="/api/integrations", tags=["integrations"])


class IntegrationCreate(BaseModel):
    provider: Provider
    name: str
    access_token: str
    tenant_id: Optional[str] = None
    site_url: Optional[str] = None


class IntegrationResponse(BaseModel):
    id: int
    provider: Provider
    name: str
    tenant_id: Optional[str] = None
    site_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


def _get_or_404(db: Session, integration_id: int) -> Integration:
    integration = db.query(Integration).filter(Integration.id == integration_id).first()
    if not integration:
        raise HTTPException(status_code=404, detail="Integration not found")
    return integration


def _validate(integration: IntegrationCreate):
    if integration.provider != Provider.GITHUB and not integration.tenant_id:
        raise HTTPException(
            status_code=400, detail=f"{integration.provider.value} integrations need a tenant_id"
        )


@router.get("/", response_model=List[IntegrationResponse])
def list_integrations(provider: Optional[Provider] = None, db: Session = Depends(get_db)):
    """List configured integrations"""
    query = db.query(Integration)
    if provider is not None:
        query = query.filter(Integration.provider == provider)
    return query.order_by(Integration.id).all()


@router.post("/", response_model=IntegrationResponse)
def create_integration(integration: IntegrationCreate, db: Session = Depends(get_db)):
    """Connect a provider installation"""
    _validate(integration)
    existing = db.query(Integration).filter(Integration.name == integration.name).first()
    if existing:
        raise HTTPException(status_code=400, detail="Integration name already exists")

    db_integration = Integration(**integration.model_dump())
    db.add(db_integration)
    db.commit()
    db.refresh(db_integration)
    return db_integration


@router.get("/{integration_id}", response_model=IntegrationResponse)
def get_integration(integration_id: int, db: Session = Depends(get_db)):
    return _get_or_404(db, integration_id)


@router.put("/{integration_id}", response_model=IntegrationResponse)
def update_integration(integration_id: int, integration: IntegrationCreate, db: Session = Depends(get_db)):
    """Replace an integration's settings (including its token)"""
    _validate(integration)
    db_integration = _get_or_404(db, integration_id)
    clash = (
        db.query(Integration)
        .filter(Integration.name == integration.name, Integration.id != integration_id)
        .first()
    )
    if clash:
        raise HTTPException(status_code=400, detail="Integration name already exists")

    for key, value in integration.model_dump().items():
        setattr(db_integration, key, value)
    db.commit()
    db.refresh(db_integration)
    return db_integration


@router.delete("/{integration_id}")
def delete_integration(integration_id: int, db: Session = Depends(get_db)):
    integration = _get_or_404(db, integration_id)
    db.delete(integration)
    db.commit()
    return {"message": "Integration deleted successfully"}
