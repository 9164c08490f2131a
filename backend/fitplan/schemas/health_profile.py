# fitplan/schemas/health_profile.py
import math
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

REQUIRED_FIELDS = ("age", "weight", "height")


class HealthProfile(BaseModel):
    """
    Health and fitness attributes that drive plan generation.

    Accepts the stored profile document as-is (camelCase keys) as well as
    snake_case field names. The three body measurements are optional here on
    purpose: a missing or zero value is reported by `missing_required_fields`
    so the caller can ask the user to finish their profile.
    """
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "age": 32,
                "weight": 78.5,
                "height": 180,
                "gender": "male",
                "goal": "build muscle",
                "dietaryRestrictions": ["vegetarian"],
                "customAllergies": ["peanuts"],
                "fitnessLevel": "intermediate",
                "activityLevel": "moderately active",
            }
        },
    )

    age: Optional[float] = Field(None, description="Age in years")
    weight: Optional[float] = Field(None, description="Current weight in kg")
    height: Optional[float] = Field(None, description="Height in cm")

    gender: Optional[str] = Field(
        None,
        pattern="^(male|female|other|prefer not to say|unspecified)$",
    )
    goal: Optional[str] = Field(
        None,
        pattern="^(lose weight|lose fat|build muscle|gain weight|maintain|improve endurance)$",
    )
    fitness_level: Optional[str] = Field(
        None,
        alias="fitnessLevel",
        pattern="^(beginner|intermediate|advanced)$",
    )
    activity_level: Optional[str] = Field(
        None,
        alias="activityLevel",
        pattern="^(sedentary|lightly active|moderate|moderately active|very active|extremely active)$",
    )

    dietary_restrictions: List[str] = Field(default_factory=list, alias="dietaryRestrictions")
    custom_allergies: List[str] = Field(default_factory=list, alias="customAllergies")

    @field_validator("gender", "goal", "fitness_level", "activity_level", mode="before")
    @classmethod
    def _blank_as_unset(cls, value):
        # Unselected dropdowns are stored as ""
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("dietary_restrictions", "custom_allergies")
    @classmethod
    def _dedupe(cls, values: List[str]) -> List[str]:
        seen = []
        for value in values:
            value = value.strip()
            if value and value not in seen:
                seen.append(value)
        return seen

    @classmethod
    def blank(cls) -> "HealthProfile":
        """Profile a freshly registered account starts with."""
        return cls(
            age=0,
            weight=0,
            height=0,
            gender="other",
            goal="maintain",
            fitness_level="beginner",
            activity_level="moderately active",
        )

    def missing_required_fields(self) -> List[str]:
        missing = []
        for name in REQUIRED_FIELDS:
            value = getattr(self, name)
            if value is None or math.isnan(value) or value <= 0:
                missing.append(name)
        return missing

    def excluded_foods(self) -> List[str]:
        """Restrictions followed by allergies, without repeats."""
        combined = list(self.dietary_restrictions)
        for allergy in self.custom_allergies:
            if allergy not in combined:
                combined.append(allergy)
        return combined
