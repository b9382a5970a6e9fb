from datetime import date
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field

from leap.goal_service import GoalService
from leap.models import Challenge, Itinerary

router = APIRouter()


def get_service(request: Request) -> GoalService:
    return request.app.state.goal_service


class PlanRequest(BaseModel):
    category: str
    destination: str = Field(min_length=1)
    timeline: str = ""
    user_story: str = ""


class ChallengeModel(BaseModel):
    id: str
    title: str
    description: str
    estimated_time: str
    unlocked: bool = False
    completed: bool = False


class ItineraryModel(BaseModel):
    challenges: List[ChallengeModel]
    encouragement: str
    source: str = "remote"

    @classmethod
    def from_itinerary(cls, itinerary: Itinerary) -> "ItineraryModel":
        return cls(
            challenges=[ChallengeModel(**c.__dict__) for c in itinerary.challenges],
            encouragement=itinerary.encouragement,
            source=itinerary.source,
        )

    def to_itinerary(self) -> Itinerary:
        return Itinerary(
            challenges=[Challenge(**c.model_dump()) for c in self.challenges],
            encouragement=self.encouragement,
            source=self.source,
        )


class CreateGoalRequest(PlanRequest):
    # 预览过的行程；为空则重新生成
    itinerary: Optional[ItineraryModel] = None


class CompletionRequest(BaseModel):
    on_date: Optional[date] = None


class CompletionResponse(BaseModel):
    goal_id: str
    task_id: str
    progress: float
    is_goal_complete: bool
    newly_recorded: bool
    unlocked_task_id: Optional[str] = None
    goal_streak: int
    global_streak: int


@router.post("/preview", response_model=ItineraryModel)
async def preview_itinerary(req: PlanRequest, service: GoalService = Depends(get_service)):
    itinerary = await service.preview_itinerary(
        req.category, req.destination, req.timeline, req.user_story
    )
    return ItineraryModel.from_itinerary(itinerary)


@router.post("", status_code=201)
async def create_goal(req: CreateGoalRequest, service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    goal = await service.plan_goal(
        req.category,
        req.destination,
        req.timeline,
        req.user_story,
        itinerary=req.itinerary.to_itinerary() if req.itinerary else None,
    )
    return service.goal_summary(goal)


@router.get("")
async def list_goals(service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    return await service.dashboard()


@router.get("/archived")
async def list_archived_goals(service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    goals = await service.engine.list_archived_goals()
    return {"goals": [service.goal_summary(g) for g in goals]}


@router.get("/streak")
async def get_streak(service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    return await service.streak_summary()


@router.get("/{goal_id}")
async def get_goal(goal_id: str, service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    goal = await service.engine.get_goal(goal_id)
    return service.goal_summary(goal)


@router.post("/{goal_id}/tasks/{task_id}/complete", response_model=CompletionResponse)
async def complete_task(
    goal_id: str,
    task_id: str,
    req: Optional[CompletionRequest] = None,
    service: GoalService = Depends(get_service),
):
    result = await service.complete_challenge(goal_id, task_id, req.on_date if req else None)
    return CompletionResponse(**result.__dict__)


@router.delete("/{goal_id}/tasks/{task_id}/complete")
async def uncomplete_task(
    goal_id: str,
    task_id: str,
    on_date: Optional[date] = None,
    service: GoalService = Depends(get_service),
) -> Dict[str, Any]:
    await service.uncomplete_challenge(goal_id, task_id, on_date)
    goal = await service.engine.get_goal(goal_id)
    return service.goal_summary(goal)


@router.post("/{goal_id}/archive")
async def archive_goal(goal_id: str, service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    await service.engine.archive_goal(goal_id)
    return {"success": True, "goal_id": goal_id, "archived": True}


@router.post("/{goal_id}/unarchive")
async def unarchive_goal(goal_id: str, service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    await service.engine.unarchive_goal(goal_id)
    return {"success": True, "goal_id": goal_id, "archived": False}


@router.delete("/{goal_id}")
async def delete_goal(goal_id: str, service: GoalService = Depends(get_service)) -> Dict[str, Any]:
    await service.engine.delete_goal(goal_id)
    return {"success": True, "goal_id": goal_id}
