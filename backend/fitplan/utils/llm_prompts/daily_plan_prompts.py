from typing import List

from fitplan.schemas.health_profile import HealthProfile

DEFAULT_GENDER = "unspecified"
DEFAULT_GOAL = "maintain"
DEFAULT_FITNESS_LEVEL = "beginner"
DEFAULT_ACTIVITY_LEVEL = "moderate"

DAILY_PLAN_SYSTEM_PROMPT = (
    "You are a certified nutritionist and personal trainer. "
    "You answer with a single raw JSON object and nothing else."
)

FIELD_DESCRIPTIONS = {
    "age": "your age",
    "weight": "your current weight",
    "height": "your height",
}


def _number(value: float) -> str:
    # 30.0 -> "30", 72.5 -> "72.5"
    return str(int(value)) if float(value).is_integer() else str(value)


def build_missing_fields_message(missing_fields: List[str]) -> str:
    described = ", ".join(FIELD_DESCRIPTIONS.get(field, field) for field in missing_fields)
    return (
        f"Please complete your profile by providing {described} before we can generate "
        "your personalized plan. These details are essential for creating an accurate "
        "fitness and nutrition plan tailored to your needs."
    )


def build_daily_plan_prompt(profile: HealthProfile, day_name: str) -> str:
    """Render the instruction block for one day. Required numbers must already be checked."""
    gender = profile.gender or DEFAULT_GENDER
    goal = profile.goal or DEFAULT_GOAL
    fitness_level = profile.fitness_level or DEFAULT_FITNESS_LEVEL
    activity_level = profile.activity_level or DEFAULT_ACTIVITY_LEVEL
    restrictions = ", ".join(profile.excluded_foods()) or "none"

    return f"""
    Create a detailed, personalized daily fitness plan for TODAY ({day_name}) with these specifications:

    User Profile:
    - Age: {_number(profile.age)}
    - Gender: {gender}
    - Weight: {_number(profile.weight)} kg
    - Height: {_number(profile.height)} cm
    - Fitness Goal: {goal}
    - Dietary Restrictions: {restrictions}
    - Fitness Level: {fitness_level}
    - Activity Level: {activity_level}

    Requirements:
    1. Today's Meal Plan:
       - 3 main meals (breakfast, lunch, dinner) + 2 snacks, never fewer than 3 meals
       - Exact serving sizes and preparation instructions
       - Calorie count for each meal
       - Macronutrient breakdown (protein, carbs, fat)
       - Strictly exclude every dietary restriction and allergy listed above: {restrictions}

    2. Today's Workout Plan:
       - Varied exercises appropriate for a {fitness_level} fitness level
       - Include both cardio and strength training if appropriate
       - Specify duration and intensity (light, moderate or high)
       - Include proper warm-up and cool-down

    3. Additional Information:
       - Highlight potential allergy concerns
       - Provide daily nutritional summary (as an object with calories, protein, carbs, fat)
       - Include shopping list for today's meals

    IMPORTANT:
    - Respond with ONLY a single JSON object matching the example structure below
    - Do NOT include any prose, comments, or markdown code fences
    - Format meal times consistently (e.g., "7:00 AM" not "7am")
    - Focus only on today's plan ({day_name})

    Example structure:
    {{
      "mealPlan": {{
        "day": "{day_name}",
        "meals": [
          {{
            "time": "7:00 AM",
            "mealType": "breakfast",
            "name": "Meal Name",
            "description": "Detailed description with ingredients",
            "calories": 350,
            "macros": {{"protein": 20, "carbs": 40, "fat": 10}}
          }}
        ]
      }},
      "workoutPlan": {{
        "day": "{day_name}",
        "exercises": [
          {{
            "time": "6:30 AM",
            "name": "Exercise Name",
            "duration": "30 minutes",
            "intensity": "moderate",
            "description": "Detailed instructions",
            "focusArea": "cardio"
          }}
        ]
      }},
      "allergiesWarning": ["Contains nuts"],
      "nutritionalSummary": {{"calories": 2000, "protein": 100, "carbs": 250, "fat": 70}},
      "shoppingList": ["Item 1", "Item 2"]
    }}
    """
