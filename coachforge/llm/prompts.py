"""Prompt messages for program generation.

Responses are expected as a single JSON object matching the content
schema in coachforge.programs.types.
"""

import json

from coachforge.templates.types import GenerationRequest

WORKOUT_SYSTEM_PROMPT = """You are an experienced strength and conditioning coach.
Design a periodized workout program for the client described by the user.

Respond with ONE JSON object and nothing else, shaped as:
{"workout_program": {"name": str, "description": str,
  "duration": {"weeks": int, "days_per_week": int},
  "workouts": [{"name": str, "day": int, "week": int, "focus": str,
    "target_muscles": [str], "exercises": [{"exercise_id": str, "name": str,
      "sets": int, "reps": int, "weight": number | null, "rest_seconds": int,
      "equipment": [str], "muscle_group": str, "notes": str}]}],
  "progression_engine": {"rpe_targets": {"enabled": bool, "weekly_targets": [{"week": int, "target_rpe": number}]},
    "progression_rules": {"strategy": str, "weight_increment": number},
    "deload_protocol": {"enabled": bool, "scheduled_deloads": [{"week": int, "type": str, "reduction": number}],
      "auto_deload_triggers": [{"condition": str, "threshold": number, "protocol": str, "reduction_percentage": number}]}},
  "rationale": str},
 "summary": str, "key_recommendations": [str], "warnings": [str]}

Only use equipment the client has available."""

NUTRITION_SYSTEM_PROMPT = """You are a registered sports nutritionist.
Design a daily nutrition plan for the client described by the user.

Respond with ONE JSON object and nothing else, shaped as:
{"nutrition_plan": {"name": str, "description": str, "diet_type": str,
  "daily_targets": {"calories": number, "protein": number, "carbs": number, "fat": number},
  "meals": [{"name": str, "time": str, "foods": [str], "calories": number}],
  "rationale": str}}"""


def _client_brief(request: GenerationRequest) -> str:
    brief = {
        "goals": request.goals,
        "experience_level": request.experience_level,
        "duration_weeks": request.duration_weeks,
        "sessions_per_week": request.sessions_per_week,
        "equipment": request.equipment,
        "has_gym_access": request.has_gym_access,
        "diet_type": request.diet_type,
        "profile": request.client_profile,
        "preferences": request.preferences,
        "constraints": request.constraints,
    }
    lines = [f"Client: {json.dumps(brief, sort_keys=True, default=str)}"]
    if request.additional_requirements:
        lines.append(f"Additional requirements: {request.additional_requirements}")
    return "\n".join(lines)


def workout_messages(request: GenerationRequest) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": WORKOUT_SYSTEM_PROMPT},
        {"role": "user", "content": _client_brief(request)},
    ]


def nutrition_messages(request: GenerationRequest) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": NUTRITION_SYSTEM_PROMPT},
        {"role": "user", "content": _client_brief(request)},
    ]
