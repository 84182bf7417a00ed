"""Goal Calculation - Pure functions for the daily fluid goal.

All functions are pure: same input always produces same output, no side effects.
"""

from typing import Optional

from .models import UserProfile, WeatherSnapshot, WorkoutSummary, GoalBreakdown


MINIMUM_GOAL_ML = 1200.0
WORKOUT_ML_PER_MINUTE = 12.0

# (lower inclusive, upper exclusive, adjustment ml), evaluated top-down, first match wins
TEMPERATURE_BANDS = (
    (30.0, None, 650.0),
    (26.0, 30.0, 450.0),
    (22.0, 26.0, 250.0),
    (None, 5.0, -200.0),
)
HUMIDITY_BANDS = (
    (80.0, None, 250.0),
    (70.0, 80.0, 150.0),
)


def _first_match(value: float, bands: tuple) -> float:
    for low, high, adjustment in bands:
        if (low is None or value >= low) and (high is None or value < high):
            return adjustment
    return 0.0


def weather_adjustment(temperature_c: float, humidity_percent: float) -> float:
    """Calculate the weather adjustment for a reading.

    Temperature and humidity bands are independent and additive.

    Args:
        temperature_c: Air temperature in degrees Celsius
        humidity_percent: Relative humidity, 0-100

    Returns:
        Adjustment in ml (negative in the cold band)
    """
    return _first_match(temperature_c, TEMPERATURE_BANDS) + _first_match(humidity_percent, HUMIDITY_BANDS)


def workout_adjustment(exercise_minutes: float) -> float:
    """Linear bonus for exercise minutes. Negative minutes count as none."""
    return max(0.0, exercise_minutes) * WORKOUT_ML_PER_MINUTE


def base_goal(profile: UserProfile) -> float:
    """Manual override if set, otherwise weight times the activity multiplier."""
    if profile.custom_goal_ml is not None:
        return profile.custom_goal_ml
    return profile.weight_kg * profile.activity_level.multiplier


def compute_goal(
    profile: UserProfile,
    weather: Optional[WeatherSnapshot] = None,
    workout: Optional[WorkoutSummary] = None,
) -> GoalBreakdown:
    """Calculate the daily goal breakdown.

    Weather and workout adjustments only apply when the profile opts in and
    the reading is supplied. The total never drops below MINIMUM_GOAL_ML.

    Args:
        profile: User profile
        weather: Optional weather reading
        workout: Optional workout summary

    Returns:
        GoalBreakdown with base, adjustments and floored total
    """
    base = base_goal(profile)

    weather_ml = 0.0
    if profile.prefers_weather_goal and weather is not None:
        weather_ml = weather_adjustment(weather.temperature_c, weather.humidity_percent)

    workout_ml = 0.0
    if profile.prefers_workout_goal and workout is not None:
        workout_ml = workout_adjustment(workout.exercise_minutes)

    return GoalBreakdown(
        base_ml=base,
        weather_adjustment_ml=weather_ml,
        workout_adjustment_ml=workout_ml,
        total_ml=max(MINIMUM_GOAL_ML, base + weather_ml + workout_ml),
    )
