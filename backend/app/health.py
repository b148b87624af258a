from __future__ import annotations

from .aqi_providers import AQI_UNAVAILABLE

_RECOMMENDATIONS: dict[int, str] = {
    1: "Safe to travel",
    2: "Safe to travel. You may want to limit outdoor exercise.",
    3: "Wear a mask if you are sensitive. Avoid prolonged outdoor exercise.",
    4: "Avoid outdoor exercise and stay indoors. Consider wearing a mask.",
    5: "It is not safe to travel. Avoid outdoor activities. Wear a mask if you must go outside.",
}


def health_recommendation(level: int | float | None) -> str:
    if level is None or level == AQI_UNAVAILABLE:
        return "AQI data not available"
    rounded = int(round(level))
    if rounded in _RECOMMENDATIONS:
        return _RECOMMENDATIONS[rounded]
    if rounded < 1:
        return "AQI data not available"
    return "Hazardous air quality. Stay indoors and take necessary precautions."


def assess_health_risk(avg_aqi: float, peak_aqi: float, travel_time_s: float) -> str:
    hours = travel_time_s / 3600.0
    if peak_aqi >= 5 or (avg_aqi >= 4 and hours > 1):
        return "very_high"
    if peak_aqi >= 4 or (avg_aqi >= 3 and hours > 2):
        return "high"
    if avg_aqi >= 3 or peak_aqi >= 3:
        return "moderate"
    if avg_aqi >= 2:
        return "low"
    return "very_low"
