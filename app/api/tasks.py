"""Task sync endpoints: outbound push, remote issue creation, links and activity"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.models import ActivityLog, Provider, Task
from app.models.base import get_db
from app.services.outbound_sync import OutboundSyncService

router = APIRouter(prefix="/api/tasks", tags=["tasks"])


class PushResultResponse(BaseModel):
    success: bool
    provider: Provider
    issue_key: Optional[str] = None
    error: Optional[str] = None


class CreateLinkRequest(BaseModel):
    container: str
    tenant_id: Optional[str] = None
    work_item_type: str = "Task"
    user_id: Optional[str] = None


class ActivityLogResponse(BaseModel):
    id: int
    task_id: Optional[int] = None
    user_id: Optional[str] = None
    action: str
    details: Dict[str, Any]
    created_at: datetime


def get_outbound_sync(db: Session = Depends(get_db)) -> OutboundSyncService:
    return OutboundSyncService(db)


def _get_task_or_404(db: Session, task_id: int) -> Task:
    task = db.query(Task).filter(Task.id == task_id).first()
    if not task:
        raise HTTPException(status_code=404, detail="Task not found")
    return task


def _raise_for(e: ValueError):
    message = str(e)
    if "not found" in message:
        raise HTTPException(status_code=404, detail=message)
    raise HTTPException(status_code=400, detail=message)


@router.post("/{task_id}/push", response_model=List[PushResultResponse])
def push_task(task_id: int, service: OutboundSyncService = Depends(get_outbound_sync)):
    """Push the task to every linked provider"""
    try:
        results = service.push_all(task_id)
    except ValueError as e:
        _raise_for(e)
    return [r.to_dict() for r in results]


@router.post("/{task_id}/push/{provider}", response_model=PushResultResponse)
def push_task_to_provider(
    task_id: int, provider: Provider, service: OutboundSyncService = Depends(get_outbound_sync)
):
    """Push the task to one linked provider"""
    try:
        result = service.push(task_id, provider)
    except ValueError as e:
        _raise_for(e)
    return result.to_dict()


@router.post("/{task_id}/links/{provider}", response_model=PushResultResponse)
def create_remote_issue(
    task_id: int,
    provider: Provider,
    body: CreateLinkRequest,
    service: OutboundSyncService = Depends(get_outbound_sync),
):
    """Create an issue at the provider and link it to the task"""
    try:
        result = service.create_remote_issue(
            task_id,
            provider,
            body.container,
            tenant_id=body.tenant_id,
            work_item_type=body.work_item_type,
            user_id=body.user_id,
        )
    except ValueError as e:
        _raise_for(e)
    return result.to_dict()


@router.get("/{task_id}/links")
def get_task_links(task_id: int, db: Session = Depends(get_db)):
    """Provider links stored on the task"""
    task = _get_task_or_404(db, task_id)
    return task.links.model_dump(by_alias=True, exclude_none=True)


@router.get("/{task_id}/activity", response_model=List[ActivityLogResponse])
def get_task_activity(task_id: int, limit: int = 100, db: Session = Depends(get_db)):
    """Activity entries for the task, newest first"""
    _get_task_or_404(db, task_id)
    entries = (
        db.query(ActivityLog)
        .filter(ActivityLog.task_id == task_id)
        .order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc())
        .limit(limit)
        .all()
    )
    return [
        {
            "id": entry.id,
            "task_id": entry.task_id,
            "user_id": entry.user_id,
            "action": entry.action,
            "details": entry.details_dict,
            "created_at": entry.created_at,
        }
        for entry in entries
    ]
