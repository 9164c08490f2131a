import re

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Literal, Optional
from datetime import datetime

_MEAL_TYPE_ALIASES = {"snacks": "snack", "pre-workout": "snack", "post-workout": "snack"}
_INTENSITY_ALIASES = {"low": "light", "medium": "moderate", "intense": "high"}
_LEADING_NUMBER = re.compile(r"^\s*(-?\d+(?:\.\d+)?)")


def _leading_number(value):
    """Leading number of unit-suffixed text ("30g" -> 30.0); None when there is none."""
    if isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        return float(match.group(1)) if match else None
    return value


class PlanModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class Macros(PlanModel):
    protein: float = 0.0
    carbs: float = 0.0
    fat: float = 0.0

    @field_validator("protein", "carbs", "fat", mode="before")
    @classmethod
    def _grams_as_number(cls, value):
        value = _leading_number(value)
        return 0.0 if value is None else value


class Meal(PlanModel):
    time: Optional[str] = None
    meal_type: Literal["breakfast", "lunch", "dinner", "snack"] = Field("snack", alias="mealType")
    name: str = ""
    description: str = ""
    calories: Optional[float] = None
    macros: Optional[Macros] = None

    @field_validator("calories", mode="before")
    @classmethod
    def _calories_as_number(cls, value):
        return _leading_number(value)

    @field_validator("meal_type", mode="before")
    @classmethod
    def _normalize_meal_type(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            return _MEAL_TYPE_ALIASES.get(value, value)
        return value


class Exercise(PlanModel):
    time: Optional[str] = None
    name: str = ""
    duration: Optional[str] = None
    intensity: Literal["light", "moderate", "high"] = "moderate"
    description: str = ""
    focus_area: Optional[str] = Field(None, alias="focusArea")

    @field_validator("intensity", mode="before")
    @classmethod
    def _normalize_intensity(cls, value):
        if isinstance(value, str):
            value = value.strip().lower()
            return _INTENSITY_ALIASES.get(value, value)
        return value

    @field_validator("duration", mode="before")
    @classmethod
    def _duration_as_text(cls, value):
        # "30 minutes" is the documented form but bare numbers show up too
        if isinstance(value, (int, float)):
            return f"{value} minutes"
        return value


class MealDay(PlanModel):
    day: str
    meals: List[Meal]


class WorkoutDay(PlanModel):
    day: str
    exercises: List[Exercise]


class GeneratedMealPlan(PlanModel):
    days: List[MealDay]
    allergies_warning: List[str] = Field(default_factory=list, alias="allergiesWarning")
    nutritional_summary: Optional[str] = Field(None, alias="nutritionalSummary")
    shopping_list: List[str] = Field(default_factory=list, alias="shoppingList")
    generated_at: datetime = Field(default_factory=datetime.now, alias="generatedAt")


class GeneratedWorkoutPlan(PlanModel):
    days: List[WorkoutDay]
    focus_areas: List[str] = Field(default_factory=list, alias="focusAreas")
    generated_at: datetime = Field(default_factory=datetime.now, alias="generatedAt")


class DailyPlanResult(PlanModel):
    """Either both plans, or neither plus a message telling the user what to fill in."""
    meal_plan: Optional[GeneratedMealPlan] = Field(None, alias="mealPlan")
    workout_plan: Optional[GeneratedWorkoutPlan] = Field(None, alias="workoutPlan")
    user_message: Optional[str] = Field(None, alias="userMessage")
    missing_fields: List[str] = Field(default_factory=list, alias="missingFields")

    @property
    def is_complete(self) -> bool:
        return self.meal_plan is not None and self.workout_plan is not None

    def to_payload(self) -> dict:
        """Shape handed back to the page: camelCase keys, no empty guidance fields."""
        if self.is_complete:
            return self.model_dump(mode="json", by_alias=True, include={"meal_plan", "workout_plan"})
        return self.model_dump(mode="json", by_alias=True)
