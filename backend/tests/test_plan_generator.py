import asyncio
import copy
import json
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from langchain_core.messages import AIMessage

from fitplan.exceptions import (
    InvalidProfileError,
    ResponseDecodeError,
    ResponseShapeError,
    ServiceUnavailableError,
    UnknownGenerationError,
)
from fitplan.schemas.health_profile import HealthProfile
from fitplan.services import plan_generator
from fitplan.services.plan_generator import (
    PlanGenerator,
    generate_daily_plan,
    map_plan_response,
    parse_plan_response,
)

SAMPLE_PLAN = {
    "mealPlan": {
        "day": "Tuesday",
        "meals": [
            {"time": "7:00 AM", "mealType": "breakfast", "name": "Oats", "description": "Rolled oats with berries",
             "calories": 350, "macros": {"protein": 15, "carbs": 55, "fat": 8}},
            {"time": "12:30 PM", "mealType": "lunch", "name": "Lentil bowl", "description": "Lentils, rice, spinach",
             "calories": 600, "macros": {"protein": 30, "carbs": 80, "fat": 12}},
            {"time": "4:00 PM", "mealType": "snack", "name": "Greek yogurt", "description": "Plain yogurt",
             "calories": 150},
            {"time": "7:30 PM", "mealType": "dinner", "name": "Tofu stir fry", "description": "Tofu, broccoli",
             "calories": 550, "macros": {"protein": 35, "carbs": 45, "fat": 20}},
        ],
    },
    "workoutPlan": {
        "day": "Tuesday",
        "exercises": [
            {"time": "6:30 AM", "name": "Jog", "duration": "20 minutes", "intensity": "moderate",
             "description": "Easy pace", "focusArea": "cardio"},
            {"time": "6:55 AM", "name": "Squats", "duration": "10 minutes", "intensity": "high",
             "description": "3x12", "focusArea": "legs"},
            {"time": "7:05 AM", "name": "Intervals", "duration": "10 minutes", "intensity": "high",
             "description": "30s on 30s off", "focusArea": "cardio"},
            {"time": "7:15 AM", "name": "Stretching", "duration": "5 minutes", "intensity": "light",
             "description": "Cool-down", "focusArea": ""},
        ],
    },
    "allergiesWarning": ["Yogurt contains dairy"],
    "nutritionalSummary": {"calories": 1650, "protein": 95, "carbs": 190, "fat": 45},
    "shoppingList": ["oats", "lentils", "tofu"],
}

COMPLETE_PROFILE = HealthProfile(
    age=29, weight=68, height=172, gender="female", goal="lose fat",
    dietary_restrictions=["vegetarian"], fitness_level="intermediate", activity_level="lightly active",
)


def make_llm(*replies):
    """Fake chat model. Exceptions in `replies` are raised, strings are returned as AIMessages."""
    llm = MagicMock(spec=["ainvoke"])
    llm.ainvoke = AsyncMock(side_effect=[
        reply if isinstance(reply, Exception) else AIMessage(content=reply)
        for reply in replies
    ])
    return llm


def make_generator(llm, **options):
    options.setdefault("sleep", AsyncMock())
    return PlanGenerator(llm, **options)


class TestIncompleteProfile(unittest.IsolatedAsyncioTestCase):

    async def test_missing_fields_return_guidance_without_calls(self):
        for profile in (
            HealthProfile(weight=70, height=175),
            HealthProfile(age=30, weight=0, height=175),
            {"age": 30, "weight": 70},
            HealthProfile.blank(),
        ):
            llm = make_llm()
            result = await make_generator(llm).generate(profile)

            self.assertIsNone(result.meal_plan)
            self.assertIsNone(result.workout_plan)
            self.assertTrue(result.user_message.startswith("Please complete your profile"))
            self.assertFalse(result.is_complete)
            llm.ainvoke.assert_not_called()

    async def test_guidance_payload_shape(self):
        result = await make_generator(make_llm()).generate(HealthProfile(age=30))
        payload = result.to_payload()

        self.assertIsNone(payload["mealPlan"])
        self.assertIsNone(payload["workoutPlan"])
        self.assertIn("your current weight, your height", payload["userMessage"])
        self.assertEqual(payload["missingFields"], ["weight", "height"])

    async def test_zeroed_document_with_unselected_dropdowns_gets_guidance(self):
        llm = make_llm()
        document = {"age": 0, "weight": 0, "height": 0, "gender": "", "goal": ""}

        result = await make_generator(llm).generate(document)

        self.assertEqual(result.missing_fields, ["age", "weight", "height"])
        self.assertTrue(result.user_message.startswith("Please complete your profile"))
        llm.ainvoke.assert_not_called()

    async def test_non_profile_input_rejected(self):
        with self.assertRaises(InvalidProfileError):
            await make_generator(make_llm()).generate(["age", 30])
        with self.assertRaises(InvalidProfileError):
            await make_generator(make_llm()).generate({"age": 30, "weight": 70, "height": 170, "fitnessLevel": "pro"})


class TestGenerate(unittest.IsolatedAsyncioTestCase):

    async def test_successful_generation(self):
        llm = make_llm("```json\n" + json.dumps(SAMPLE_PLAN) + "\n```")

        result = await make_generator(llm).generate(COMPLETE_PROFILE, day_name="Tuesday")

        self.assertTrue(result.is_complete)
        self.assertEqual(len(result.meal_plan.days), 1)
        self.assertEqual(len(result.meal_plan.days[0].meals), 4)
        self.assertEqual(result.meal_plan.days[0].meals[0].macros.protein, 15)
        self.assertEqual(result.meal_plan.allergies_warning, ["Yogurt contains dairy"])
        self.assertEqual(result.meal_plan.shopping_list, ["oats", "lentils", "tofu"])
        self.assertEqual(len(result.workout_plan.days), 1)
        self.assertEqual(result.workout_plan.focus_areas, ["cardio", "legs"])
        llm.ainvoke.assert_awaited_once()

    async def test_prompt_uses_current_weekday(self):
        llm = make_llm(json.dumps(SAMPLE_PLAN))

        with patch.object(plan_generator, "today_name", return_value="Friday"):
            await make_generator(llm).generate(COMPLETE_PROFILE)

        messages = llm.ainvoke.await_args.args[0]
        prompt = messages[-1].content
        self.assertIn("TODAY (Friday)", prompt)
        self.assertIn("- Age: 29", prompt)
        self.assertIn("- Weight: 68 kg", prompt)
        self.assertIn("- Height: 172 cm", prompt)
        self.assertIn("- Fitness Goal: lose fat", prompt)
        self.assertIn("- Activity Level: lightly active", prompt)

    async def test_camel_case_profile_document(self):
        llm = make_llm(json.dumps(SAMPLE_PLAN))
        document = {"age": 40, "weight": 80, "height": 182, "fitnessLevel": "advanced"}

        result = await make_generator(llm).generate(document, day_name="Tuesday")

        self.assertTrue(result.is_complete)
        prompt = llm.ainvoke.await_args.args[0][-1].content
        self.assertIn("- Fitness Level: advanced", prompt)

    async def test_unselected_dropdowns_use_prompt_defaults(self):
        llm = make_llm(json.dumps(SAMPLE_PLAN))
        document = {"age": 30, "weight": 70, "height": 175, "gender": "", "goal": "", "fitnessLevel": ""}

        result = await make_generator(llm).generate(document, day_name="Tuesday")

        self.assertTrue(result.is_complete)
        prompt = llm.ainvoke.await_args.args[0][-1].content
        self.assertIn("- Gender: unspecified", prompt)
        self.assertIn("- Fitness Goal: maintain", prompt)
        self.assertIn("- Fitness Level: beginner", prompt)

    async def test_payload_uses_camel_case(self):
        llm = make_llm(json.dumps(SAMPLE_PLAN))
        result = await make_generator(llm).generate(COMPLETE_PROFILE, day_name="Tuesday")

        payload = result.to_payload()

        self.assertEqual(set(payload), {"mealPlan", "workoutPlan"})
        self.assertEqual(payload["workoutPlan"]["focusAreas"], ["cardio", "legs"])
        self.assertEqual(payload["mealPlan"]["days"][0]["meals"][0]["mealType"], "breakfast")

    async def test_module_entry_point_with_injected_llm(self):
        llm = make_llm(json.dumps(SAMPLE_PLAN))
        result = await generate_daily_plan(COMPLETE_PROFILE, llm, day_name="Tuesday", sleep=AsyncMock())
        self.assertTrue(result.is_complete)


class TestRetry(unittest.IsolatedAsyncioTestCase):

    async def test_two_failures_then_success(self):
        llm = make_llm(ConnectionError("reset"), RuntimeError("503"), json.dumps(SAMPLE_PLAN))
        sleep = AsyncMock()

        result = await make_generator(llm, sleep=sleep, retry_base_delay=1.0).generate(COMPLETE_PROFILE)

        self.assertTrue(result.is_complete)
        self.assertEqual(llm.ainvoke.await_count, 3)
        self.assertEqual([c.args[0] for c in sleep.await_args_list], [1.0, 2.0])

    async def test_all_attempts_fail(self):
        final = RuntimeError("still down")
        llm = make_llm(ConnectionError("a"), ConnectionError("b"), ConnectionError("c"), final)
        sleep = AsyncMock()

        with self.assertRaises(ServiceUnavailableError) as ctx:
            await make_generator(llm, sleep=sleep, retry_base_delay=0.5).generate(COMPLETE_PROFILE)

        self.assertEqual(llm.ainvoke.await_count, 4)
        self.assertEqual(ctx.exception.attempts, 4)
        self.assertIs(ctx.exception.last_error, final)
        self.assertIs(ctx.exception.__cause__, final)
        self.assertEqual([c.args[0] for c in sleep.await_args_list], [0.5, 1.0, 1.5])

    async def test_empty_reply_is_retried(self):
        llm = make_llm("", "   ", json.dumps(SAMPLE_PLAN))

        result = await make_generator(llm).generate(COMPLETE_PROFILE)

        self.assertTrue(result.is_complete)
        self.assertEqual(llm.ainvoke.await_count, 3)

    async def test_slow_attempt_times_out_and_is_retried(self):
        calls = []

        async def reply(messages):
            calls.append(messages)
            if len(calls) == 1:
                await asyncio.sleep(10)
            return AIMessage(content=json.dumps(SAMPLE_PLAN))

        llm = MagicMock(spec=["ainvoke"])
        llm.ainvoke = AsyncMock(side_effect=reply)

        result = await make_generator(llm, attempt_timeout=0.05).generate(COMPLETE_PROFILE)

        self.assertTrue(result.is_complete)
        self.assertEqual(llm.ainvoke.await_count, 2)

    async def test_decode_error_is_not_retried(self):
        llm = make_llm("Sure! Here is your plan.", json.dumps(SAMPLE_PLAN))

        with self.assertRaises(ResponseDecodeError) as ctx:
            await make_generator(llm).generate(COMPLETE_PROFILE)

        self.assertEqual(llm.ainvoke.await_count, 1)
        self.assertEqual(ctx.exception.raw_text, "Sure! Here is your plan.")
        self.assertEqual(ctx.exception.cleaned_text, "Sure! Here is your plan.")


class TestShapeValidation(unittest.IsolatedAsyncioTestCase):

    async def test_too_few_meals(self):
        plan = copy.deepcopy(SAMPLE_PLAN)
        plan["mealPlan"]["meals"] = plan["mealPlan"]["meals"][:2]
        llm = make_llm(json.dumps(plan))

        with self.assertRaises(ResponseShapeError):
            await make_generator(llm).generate(COMPLETE_PROFILE)

    async def test_missing_exercises(self):
        plan = copy.deepcopy(SAMPLE_PLAN)
        del plan["workoutPlan"]["exercises"]

        with self.assertRaises(ResponseShapeError):
            await make_generator(make_llm(json.dumps(plan))).generate(COMPLETE_PROFILE)

    async def test_top_level_array(self):
        with self.assertRaises(ResponseShapeError):
            await make_generator(make_llm("[1, 2, 3]")).generate(COMPLETE_PROFILE)

    async def test_workout_meals_and_unit_suffixed_numbers_are_accepted(self):
        plan = copy.deepcopy(SAMPLE_PLAN)
        meals = plan["mealPlan"]["meals"]
        meals[2]["mealType"] = "pre-workout"
        meals[3]["mealType"] = "Post-Workout"
        meals[3]["calories"] = "550 kcal"
        meals[3]["macros"] = {"protein": "30g", "carbs": "45 g", "fat": "n/a"}

        result = await make_generator(make_llm(json.dumps(plan))).generate(COMPLETE_PROFILE, day_name="Tuesday")

        mapped = result.meal_plan.days[0].meals
        self.assertEqual(mapped[2].meal_type, "snack")
        self.assertEqual(mapped[3].meal_type, "snack")
        self.assertEqual(mapped[3].calories, 550.0)
        self.assertEqual(mapped[3].macros.protein, 30.0)
        self.assertEqual(mapped[3].macros.carbs, 45.0)
        self.assertEqual(mapped[3].macros.fat, 0.0)

    async def test_unexpected_mapping_failure_is_wrapped(self):
        plan = copy.deepcopy(SAMPLE_PLAN)
        plan["workoutPlan"]["exercises"][0]["intensity"] = "extreme"

        with self.assertRaises(UnknownGenerationError) as ctx:
            await make_generator(make_llm(json.dumps(plan))).generate(COMPLETE_PROFILE)

        self.assertEqual(str(ctx.exception), UnknownGenerationError.USER_MESSAGE)
        self.assertIsNotNone(ctx.exception.__cause__)


class TestMapping(unittest.TestCase):

    def test_cleaning_then_parsing(self):
        raw = '```json\n{"mealPlan": {"day": "Tuesday", "meals": [{}, {}, {},]}, "workoutPlan": {"exercises": [],},}\n```'
        data = parse_plan_response(raw)
        self.assertEqual(len(data["mealPlan"]["meals"]), 3)

    def test_mapping_is_deterministic(self):
        first = map_plan_response(copy.deepcopy(SAMPLE_PLAN), "Tuesday")
        second = map_plan_response(copy.deepcopy(SAMPLE_PLAN), "Tuesday")

        self.assertEqual(first.workout_plan.focus_areas, ["cardio", "legs"])
        self.assertEqual(first.workout_plan.focus_areas, second.workout_plan.focus_areas)
        self.assertEqual(
            first.meal_plan.nutritional_summary,
            '{"calories":1650,"protein":95,"carbs":190,"fat":45}',
        )
        self.assertEqual(first.meal_plan.nutritional_summary, second.meal_plan.nutritional_summary)

    def test_optional_sections_default(self):
        plan = copy.deepcopy(SAMPLE_PLAN)
        for key in ("allergiesWarning", "shoppingList", "nutritionalSummary"):
            del plan[key]
        del plan["workoutPlan"]["day"]

        result = map_plan_response(plan, "Thursday")

        self.assertEqual(result.meal_plan.allergies_warning, [])
        self.assertEqual(result.meal_plan.shopping_list, [])
        self.assertIsNone(result.meal_plan.nutritional_summary)
        self.assertEqual(result.workout_plan.days[0].day, "Thursday")

    def test_text_summary_passes_through(self):
        plan = copy.deepcopy(SAMPLE_PLAN)
        plan["nutritionalSummary"] = "About 1650 kcal, high protein"

        result = map_plan_response(plan, "Tuesday")

        self.assertEqual(result.meal_plan.nutritional_summary, "About 1650 kcal, high protein")


if __name__ == '__main__':
    unittest.main()
