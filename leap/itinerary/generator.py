"""
Itinerary Generator.

BUILD_PROMPT -> CALL_REMOTE -> PARSE -> DONE(remote)
                    |             |
                    +--- fail ----+--> DONE(fallback)

Every path ends with a non-empty itinerary. Remote failures (transport, status,
envelope, timeout, parse, cancellation) are logged and replaced by the
category's deterministic fallback; they never reach the caller.
"""
import asyncio
from typing import Dict, Optional, Union

from leap.config_manager import SystemConfig, config as default_config
from leap.exceptions import RemoteAuthError, RemoteGenerationError, RemoteTimeoutError
from leap.itinerary.parser import parse_itinerary, to_challenges
from leap.itinerary.templates import CategoryTemplate, load_templates
from leap.llm_adapter import BaseLLMAdapter
from leap.logger import get_logger
from leap.models import GoalCategory, Itinerary

logger = get_logger("itinerary")

CategoryLike = Union[GoalCategory, str]


class PendingItinerary:
    """
    Handle for a generation running in the background.

    ``cancel()`` abandons the remote call; ``result()`` still resolves, to the
    fallback itinerary, so a goal can be saved after the user backs out.
    """

    def __init__(self, task: "asyncio.Task[Itinerary]", fallback: Itinerary):
        self._task = task
        self._fallback = fallback

    def cancel(self) -> None:
        self._task.cancel()

    def done(self) -> bool:
        return self._task.done()

    async def result(self) -> Itinerary:
        if self._task.cancelled():
            return self._fallback
        try:
            return await asyncio.shield(self._task)
        except asyncio.CancelledError:
            if self._task.cancelled():
                logger.warning("Itinerary generation cancelled, using fallback")
                return self._fallback
            raise


class ItineraryGenerator:
    """行程生成器：远程模型优先，失败时使用本地模板"""

    def __init__(
        self,
        adapter: BaseLLMAdapter,
        cfg: SystemConfig = default_config,
        templates: Optional[Dict[GoalCategory, CategoryTemplate]] = None,
    ):
        self.adapter = adapter
        self.config = cfg
        self.templates = templates or load_templates()

    def _template(self, category: CategoryLike) -> CategoryTemplate:
        return self.templates[GoalCategory.parse(category)]

    def build_prompt(
        self,
        category: CategoryLike,
        destination: str,
        timeline: str,
        user_story: str,
    ) -> str:
        return self._template(category).build_prompt(
            destination, timeline, user_story, challenge_count=self.config.TARGET_CHALLENGE_COUNT
        )

    def fallback(self, category: CategoryLike, destination: str, timeline: str = "") -> Itinerary:
        """Deterministic, network-free itinerary for ``category``."""
        template = self._template(category)
        return Itinerary(
            challenges=to_challenges(template.fallback_steps(destination, timeline)),
            encouragement=template.fallback_encouragement(destination, timeline),
            source="fallback",
        )

    @staticmethod
    def parse_response(text: str) -> Itinerary:
        return parse_itinerary(text)

    async def _call_remote(self, prompt: str) -> str:
        attempts = self.config.MAX_REMOTE_ATTEMPTS
        timeout = self.config.REQUEST_TIMEOUT_SECONDS
        last_error: Optional[RemoteGenerationError] = None

        for attempt in range(1, attempts + 1):
            try:
                response = await asyncio.wait_for(
                    self.adapter.generate(prompt, max_tokens=self.config.MAX_TOKENS),
                    timeout=timeout,
                )
                return response.content
            except asyncio.TimeoutError:
                last_error = RemoteTimeoutError(
                    provider=self.adapter.provider,
                    model_name=self.adapter.get_model_name(),
                    timeout_seconds=timeout,
                )
            except RemoteAuthError:
                # 鉴权失败重试无意义
                raise
            except RemoteGenerationError as e:
                last_error = e

            if attempt < attempts:
                logger.info(f"Remote generation attempt {attempt} failed: {last_error.message}")

        raise last_error

    async def generate(
        self,
        category: CategoryLike,
        destination: str,
        timeline: str,
        user_story: str,
    ) -> Itinerary:
        """Return the remote itinerary, or the fallback if anything goes wrong."""
        category = GoalCategory.parse(category)
        prompt = self.build_prompt(category, destination, timeline, user_story)

        try:
            text = await self._call_remote(prompt)
            itinerary = parse_itinerary(text)
        except RemoteGenerationError as e:
            logger.warning(f"Itinerary generation failed, using {category.value} template: {e.message}")
            return self.fallback(category, destination, timeline)

        if len(itinerary.challenges) != self.config.TARGET_CHALLENGE_COUNT:
            logger.info(
                f"Model returned {len(itinerary.challenges)} challenges "
                f"(target {self.config.TARGET_CHALLENGE_COUNT})"
            )
        return itinerary

    def start(
        self,
        category: CategoryLike,
        destination: str,
        timeline: str,
        user_story: str,
    ) -> PendingItinerary:
        """Run ``generate`` as a background task (needs a running event loop)."""
        fallback = self.fallback(category, destination, timeline)
        task = asyncio.create_task(self.generate(category, destination, timeline, user_story))
        return PendingItinerary(task, fallback)
