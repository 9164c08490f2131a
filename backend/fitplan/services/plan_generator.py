import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Union

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import BaseMessage, HumanMessage, SystemMessage
from pydantic import ValidationError

from fitplan.config import (
    PLAN_ATTEMPT_TIMEOUT,
    PLAN_MAX_RETRIES,
    PLAN_RETRY_BASE_DELAY,
)
from fitplan.exceptions import (
    InvalidProfileError,
    PlanGenerationError,
    ResponseDecodeError,
    ResponseShapeError,
    ServiceUnavailableError,
    UnknownGenerationError,
)
from fitplan.schemas.daily_plan import (
    DailyPlanResult,
    Exercise,
    GeneratedMealPlan,
    GeneratedWorkoutPlan,
    MealDay,
    WorkoutDay,
)
from fitplan.schemas.health_profile import HealthProfile
from fitplan.services.llm_service import get_llm, log_token_usage, traced_generation
from fitplan.utils.json_cleaning import clean_json_response
from fitplan.utils.llm_prompts.daily_plan_prompts import (
    DAILY_PLAN_SYSTEM_PROMPT,
    build_daily_plan_prompt,
    build_missing_fields_message,
)

logger = logging.getLogger(__name__)

"""
Plan Generator
--------------
Turns a health profile into today's meal and workout plan.
1. Checks age, weight and height (guidance result when any is missing).
2. Renders the prompt for today's weekday.
3. Calls the text service, retrying with a linearly growing delay.
4. Repairs and parses the JSON reply.
5. Validates the shape (>= 3 meals, an exercise list).
6. Maps it into the meal and workout plan models.
Nothing is persisted here.
"""

MIN_MEALS = 3

ProfileInput = Union[HealthProfile, Mapping[str, Any]]


def today_name() -> str:
    """Weekday of the local wall clock, e.g. "Monday"."""
    return datetime.now().strftime("%A")


def coerce_profile(profile: ProfileInput) -> HealthProfile:
    if isinstance(profile, HealthProfile):
        return profile
    if isinstance(profile, Mapping):
        try:
            return HealthProfile.model_validate(dict(profile))
        except ValidationError as e:
            raise InvalidProfileError(f"Invalid user data provided: {e}") from e
    raise InvalidProfileError("Invalid user data provided")


def _response_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # Gemini may answer with a list of content parts
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("text"):
                parts.append(part["text"])
        return "".join(parts)
    return "" if content is None else str(content)


def validate_plan_shape(data: Any) -> None:
    """All-or-nothing structural check on the parsed reply."""
    if not isinstance(data, dict):
        raise ResponseShapeError("Response is not a JSON object")

    meal_plan = data.get("mealPlan")
    meals = meal_plan.get("meals") if isinstance(meal_plan, dict) else None
    if not isinstance(meals, list) or len(meals) < MIN_MEALS:
        raise ResponseShapeError(f"Invalid meal plan structure - must include at least {MIN_MEALS} meals")

    workout_plan = data.get("workoutPlan")
    exercises = workout_plan.get("exercises") if isinstance(workout_plan, dict) else None
    if not isinstance(exercises, list):
        raise ResponseShapeError("Invalid workout plan structure - missing exercises")


def parse_plan_response(raw_text: str) -> Dict[str, Any]:
    cleaned_text = clean_json_response(raw_text)
    try:
        data = json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        logger.error(
            f"Failed to parse AI response: {e} | "
            f"raw={raw_text[:500]!r} | cleaned={cleaned_text[:500]!r}"
        )
        raise ResponseDecodeError(
            f"Invalid response format from AI: {e}",
            raw_text=raw_text,
            cleaned_text=cleaned_text,
        ) from e

    validate_plan_shape(data)
    return data


def summarize_nutrition(summary: Any) -> Optional[str]:
    if summary is None or isinstance(summary, str):
        return summary
    return json.dumps(summary, separators=(",", ":"))


def collect_focus_areas(exercises: List[Exercise]) -> List[str]:
    focus_areas = []
    for exercise in exercises:
        if exercise.focus_area and exercise.focus_area not in focus_areas:
            focus_areas.append(exercise.focus_area)
    return focus_areas


def map_plan_response(data: Dict[str, Any], day_name: str) -> DailyPlanResult:
    """Wrap the single generated day of each plan. Always exactly one day."""
    meal_data = data["mealPlan"]
    workout_data = data["workoutPlan"]

    meal_day = MealDay(day=meal_data.get("day") or day_name, meals=meal_data["meals"])
    workout_day = WorkoutDay(day=workout_data.get("day") or day_name, exercises=workout_data["exercises"])

    meal_plan = GeneratedMealPlan(
        days=[meal_day],
        allergies_warning=data.get("allergiesWarning") or [],
        nutritional_summary=summarize_nutrition(data.get("nutritionalSummary")),
        shopping_list=data.get("shoppingList") or [],
    )
    workout_plan = GeneratedWorkoutPlan(
        days=[workout_day],
        focus_areas=collect_focus_areas(workout_day.exercises),
    )
    return DailyPlanResult(meal_plan=meal_plan, workout_plan=workout_plan)


class PlanGenerator:
    """
    Generates today's plan with an injected chat model.

    Each attempt is bounded by `attempt_timeout`. A failed attempt is retried
    up to `max_retries` times; retry N waits `N * retry_base_delay` seconds.
    Only the network call is retried, never the parsing.
    """

    def __init__(
        self,
        llm: BaseChatModel,
        *,
        max_retries: int = PLAN_MAX_RETRIES,
        retry_base_delay: float = PLAN_RETRY_BASE_DELAY,
        attempt_timeout: float = PLAN_ATTEMPT_TIMEOUT,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.llm = llm
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.attempt_timeout = attempt_timeout
        self._sleep = sleep
        self.model_name = getattr(llm, "model", None) or getattr(llm, "model_name", None)

    async def generate(self, profile: ProfileInput, *, day_name: Optional[str] = None) -> DailyPlanResult:
        profile = coerce_profile(profile)

        missing_fields = profile.missing_required_fields()
        if missing_fields:
            logger.info(f"Profile incomplete, skipping generation. Missing: {missing_fields}")
            return DailyPlanResult(
                user_message=build_missing_fields_message(missing_fields),
                missing_fields=missing_fields,
            )

        try:
            day_name = day_name or today_name()
            logger.info(f"Generating daily plan for {day_name}")
            prompt = build_daily_plan_prompt(profile, day_name)
            raw_text = await self._request_with_retry(prompt)
            data = parse_plan_response(raw_text)
            result = map_plan_response(data, day_name)
        except PlanGenerationError:
            raise
        except Exception as e:
            logger.exception(
                f"Error generating fitness plan: {e} | "
                f"profile={profile.model_dump(exclude_none=True)}"
            )
            raise UnknownGenerationError() from e

        logger.info(
            f"Daily plan ready: {len(result.meal_plan.days[0].meals)} meals, "
            f"{len(result.workout_plan.days[0].exercises)} exercises"
        )
        return result

    async def _request_with_retry(self, prompt: str) -> str:
        messages = [
            SystemMessage(content=DAILY_PLAN_SYSTEM_PROMPT),
            HumanMessage(content=prompt),
        ]
        total_attempts = self.max_retries + 1
        last_error: Optional[Exception] = None

        for attempt in range(1, total_attempts + 1):
            try:
                return await self._invoke_once(messages)
            except Exception as e:
                last_error = e
                logger.warning(f"Plan request failed (Attempt {attempt}/{total_attempts}): {e}")

            if attempt < total_attempts:
                delay = self.retry_base_delay * attempt
                logger.info(f"Retrying plan request in {delay:.1f}s")
                await self._sleep(delay)

        raise ServiceUnavailableError(
            f"Text service failed after {total_attempts} attempts: {last_error}",
            attempts=total_attempts,
            last_error=last_error,
        ) from last_error

    @traced_generation("daily_plan_generation")
    async def _invoke_once(self, messages: List[BaseMessage]) -> str:
        try:
            response = await asyncio.wait_for(self.llm.ainvoke(messages), timeout=self.attempt_timeout)
        except asyncio.TimeoutError as e:
            raise ServiceUnavailableError(f"No response within {self.attempt_timeout}s") from e

        text = _response_text(response)
        if not text.strip():
            raise ServiceUnavailableError("Empty content received from text service")

        log_token_usage(response, self.model_name)
        return text


async def generate_daily_plan(
    profile: ProfileInput,
    llm: Optional[BaseChatModel] = None,
    *,
    day_name: Optional[str] = None,
    **generator_options,
) -> DailyPlanResult:
    """
    Entry point for callers. Without an explicit chat model one is built from
    the environment, which raises ConfigurationError when no key is set.

    When every attempt fails the transport error is not re-raised as is:
    ServiceUnavailableError is raised instead, with the final failure kept in
    its `last_error` attribute and as `__cause__`. Catch ServiceUnavailableError
    for retryable outages, ResponseDecodeError and ResponseShapeError for bad
    replies, and UnknownGenerationError for everything else.
    """
    if llm is None:
        llm = get_llm(json_mode=True)
    generator = PlanGenerator(llm, **generator_options)
    return await generator.generate(profile, day_name=day_name)
