"""
Strict parser for the model's itinerary JSON.

Expected payload:
    {"challenges": [{"title": str, "description": str, "estimatedTime": str}, ...],
     "boardingPass": str}
"""
from typing import Annotated, List

from pydantic import BaseModel, Field, StrictStr, StringConstraints
from pydantic import ValidationError as PydanticValidationError

from leap.exceptions import RemoteParseError
from leap.models import Challenge, Itinerary

FENCE = "```"

# 标题和时长不能为空白，否则无法落成任务
NonBlankStr = Annotated[str, StringConstraints(strict=True, strip_whitespace=True, min_length=1)]


class ChallengePayload(BaseModel):
    title: NonBlankStr
    description: StrictStr
    estimatedTime: NonBlankStr


class ItineraryPayload(BaseModel):
    challenges: List[ChallengePayload] = Field(min_length=1)
    boardingPass: StrictStr


def strip_code_fence(text: str) -> str:
    """
    Remove Markdown fencing: if the trimmed text starts with ``` keep only the
    span from the first '{' to the last '}'.
    """
    cleaned = text.strip()
    if cleaned.startswith(FENCE):
        start = cleaned.find("{")
        end = cleaned.rfind("}")
        if start != -1 and end > start:
            cleaned = cleaned[start:end + 1]
    return cleaned


def to_challenges(items: List[tuple]) -> List[Challenge]:
    """(title, description, time) -> Challenge list; ids challenge_1.., only the first unlocked."""
    return [
        Challenge(
            id=f"challenge_{index + 1}",
            title=title,
            description=description,
            estimated_time=time,
            unlocked=index == 0,
            completed=False,
        )
        for index, (title, description, time) in enumerate(items)
    ]


def parse_itinerary(text: str) -> Itinerary:
    """解析模型返回的 JSON；结构不符即抛 RemoteParseError"""
    if not text or not text.strip():
        raise RemoteParseError("Empty response text", raw=text)

    cleaned = strip_code_fence(text)
    try:
        payload = ItineraryPayload.model_validate_json(cleaned)
    except PydanticValidationError as e:
        raise RemoteParseError(f"Itinerary JSON does not match schema: {e.error_count()} error(s)",
                               raw=text)

    challenges = to_challenges(
        [(c.title, c.description, c.estimatedTime) for c in payload.challenges]
    )
    return Itinerary(challenges=challenges, encouragement=payload.boardingPass, source="remote")
