from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from leap.goal_service import GoalService
from web.backend.routers.goals import get_service

router = APIRouter()


class MicrohabitRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str = ""
    goal_id: Optional[str] = None
    focus_minutes: int = Field(default=5, ge=1)
    kind: str = "create"


class MicrohabitCompletionRequest(BaseModel):
    on_date: Optional[date] = None


@router.post("", status_code=201)
async def add_microhabit(req: MicrohabitRequest, service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    habit = await service.add_microhabit(
        req.title, req.description, req.goal_id, req.focus_minutes, req.kind
    )
    return service.microhabit_summary(habit)


@router.get("")
async def list_microhabits(service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    habits = await service.list_microhabits()
    return {"microhabits": [service.microhabit_summary(h) for h in habits]}


@router.post("/{habit_id}/complete")
async def complete_microhabit(
    habit_id: str,
    req: Optional[MicrohabitCompletionRequest] = None,
    service: GoalService = Depends(get_service),
) -> Dict[str, Any]:
    recorded = await service.complete_microhabit(habit_id, req.on_date if req else None)
    return {"success": True, "habit_id": habit_id, "newly_recorded": recorded}


@router.delete("/{habit_id}")
async def delete_microhabit(habit_id: str, service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    await service.delete_microhabit(habit_id)
    return {"success": True, "habit_id": habit_id}
