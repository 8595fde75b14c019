"""
Weather advisor
Answers a farmer's weather question from the live report for their location
"""

import logging
from typing import Dict, List, Optional

from cropgenius.services.weather_service import WeatherService, DEFAULT_LAT, DEFAULT_LON

logger = logging.getLogger(__name__)

INTENT_KEYWORDS = [
    ("forecast", ["weather", "forecast", "prediction", "tomorrow", "week", "rain", "temperature"]),
    ("planting", ["plant", "planting", "sow", "seed", "when to plant"]),
    ("irrigation", ["water", "irrigation", "watering", "drought", "dry"]),
    ("risk", ["risk", "danger", "storm", "flood", "frost", "hail"]),
    ("season", ["season", "seasonal", "timing", "calendar"]),
]

SOIL_WATER_ADVICE = {
    "clay": "retains water well, avoid overwatering",
    "sandy": "drains quickly, needs frequent watering",
    "loamy": "good water retention and drainage balance",
}

SOIL_IRRIGATION_ADVICE = {
    "clay": [
        "Water deeply but less frequently",
        "Allow soil to dry slightly between waterings",
        "Improve drainage if waterlogging occurs",
    ],
    "sandy": [
        "Water more frequently with smaller amounts",
        "Add organic matter to improve water retention",
        "Monitor closely as it dries out quickly",
    ],
    "loamy": [
        "Standard irrigation practices work well",
        "Water when top 2-3cm of soil is dry",
        "Maintain consistent moisture levels",
    ],
}

CROP_RISK_ADVICE = {
    "maize": "Susceptible to heat stress and waterlogging",
    "tomato": "Vulnerable to fungal diseases in high humidity",
    "beans": "Sensitive to waterlogging and strong winds",
    "cassava": "Generally resilient but watch for pest pressure",
}

AGENT_CONFIDENCE = 0.88


def determine_intent(message: str) -> str:
    lowered = message.lower()
    for intent, words in INTENT_KEYWORDS:
        if any(word in lowered for word in words):
            return intent
    return "general"


def soil_water_advice(soil_type: Optional[str]) -> str:
    return SOIL_WATER_ADVICE.get((soil_type or "").lower(), "monitor moisture levels regularly")


def crop_risk_advice(crop: str) -> str:
    return CROP_RISK_ADVICE.get(crop.lower(), "Monitor for general weather stress")


def assess_risks(current: Dict, forecast: List[Dict]) -> Dict:
    heat_days = sum(1 for d in forecast if d["temp_max"] > 35)
    heavy_rain_days = sum(1 for d in forecast if d.get("rainfall", 0) > 15)

    risks = []
    if heat_days > 2:
        risks.append("Heat stress")
    if heavy_rain_days > 1:
        risks.append("Flooding/waterlogging")
    if current["wind_speed"] > 20:
        risks.append("Wind damage")
    if current["humidity"] > 85:
        risks.append("Fungal diseases")

    if len(risks) > 2:
        level = "HIGH"
    elif risks:
        level = "MODERATE"
    else:
        level = "LOW"

    return {"risks": risks, "level": level, "heat_days": heat_days, "heavy_rain_days": heavy_rain_days}


def _bullets(lines: List[str]) -> str:
    return "\n".join(f"• {line}" for line in lines)


def forecast_reply(report: Dict, region: str) -> str:
    current, forecast = report["current"], report["forecast"]
    days = []
    for day in forecast:
        line = f"**{day['date']}:** {day['temp_max']}°C, {day['condition']}"
        if day.get("rainfall", 0) > 2:
            line += f", {round(day['rainfall'])}mm rain"
        days.append(line)

    wet_days = sum(1 for d in forecast if d.get("rainfall", 0) > 5)
    implications = [
        "High temperatures - consider shade protection and increased watering"
        if current["temperature"] > 30 else "Moderate temperatures - good for most crops",
        "High humidity - monitor for fungal diseases" if current["humidity"] > 80 else "Normal humidity levels",
        "Wet period ahead - ensure good drainage" if wet_days > 3 else "Dry period - plan irrigation accordingly",
    ]

    return (
        f"🌤️ **Weather Forecast for {region}**\n\n"
        f"**Current Conditions:**\n"
        + _bullets([
            f"Temperature: {current['temperature']}°C",
            f"Humidity: {current['humidity']}%",
            f"Condition: {current['description']}",
            f"Wind: {current['wind_speed']} km/h {current['wind_direction']}",
            f"UV Index: {current['uv_index']}",
        ])
        + "\n\n**7-Day Forecast:**\n" + "\n".join(days)
        + "\n\n**Agricultural Implications:**\n" + _bullets(implications)
    )


def planting_reply(report: Dict, region: str, season: str) -> str:
    current, forecast = report["current"], report["forecast"]
    rainy_days = sum(1 for d in forecast if d.get("rainfall", 0) > 3 or d["rain_probability"] >= 60)
    avg_temp = round(sum(d["temp_max"] for d in forecast) / max(len(forecast), 1))

    return (
        f"🌱 **Planting Recommendations for {region}**\n\n"
        + _bullets([
            f"Average daytime temperature: {avg_temp}°C",
            f"Moisture outlook: {'Good rainfall expected' if rainy_days > 3 else 'Limited rainfall - irrigation needed'}",
            f"Planting window: {season}",
        ])
        + "\n\n**Crop-Specific Recommendations:**\n"
        + _bullets([
            f"**Maize:** {'Plant now before rains' if rainy_days > 3 else 'Wait for better rainfall or ensure irrigation'}",
            f"**Beans:** {'Good conditions' if avg_temp < 28 else 'Consider heat-tolerant varieties'}",
            f"**Tomatoes:** {'Favorable conditions' if current['humidity'] < 70 else 'Monitor for disease pressure'}",
            f"**Leafy Greens:** {'Excellent conditions' if avg_temp < 25 else 'Provide shade protection'}",
        ])
        + "\n\nPlant 2-3 days before expected rainfall for best germination results."
    )


def irrigation_reply(report: Dict, region: str, soil_type: Optional[str]) -> str:
    current, forecast = report["current"], report["forecast"]
    total_rain = round(sum(d.get("rainfall", 0) for d in forecast))
    dry_days = sum(1 for d in forecast if d.get("rainfall", 0) < 1)
    schedule = (
        ["**High Priority:** Daily irrigation needed", "Water deeply every 2-3 days rather than light daily watering"]
        if dry_days > 4 else
        ["**Moderate Priority:** Supplement natural rainfall", "Monitor soil moisture and irrigate as needed"]
    )
    soil_lines = SOIL_IRRIGATION_ADVICE.get((soil_type or "").lower(), [
        "Monitor soil moisture regularly",
        "Adjust based on crop needs and weather",
        "Maintain consistent watering schedule",
    ])

    return (
        f"💧 **Irrigation Management for {region}**\n\n"
        + _bullets([
            f"Expected rainfall ({len(forecast)} days): {total_rain}mm",
            f"Dry days ahead: {dry_days} out of {len(forecast)}",
            f"Soil type: {soil_type or 'General'} - {soil_water_advice(soil_type)}",
        ])
        + "\n\n**Irrigation Schedule:**\n" + _bullets(schedule)
        + "\n\n**Soil-Specific Advice:**\n" + _bullets(soil_lines)
        + "\n\n**Weather-Based Adjustments:**\n"
        + _bullets([
            "Increase frequency due to high temperatures" if current["temperature"] > 30 else "Standard schedule appropriate",
            "Extra attention needed due to low humidity" if current["humidity"] < 50 else "Humidity levels support water retention",
        ])
        + f"\n\nNext irrigation recommended: {'Within 24 hours' if dry_days > 2 else 'Monitor and irrigate as needed'}"
    )


def risk_reply(report: Dict, region: str, crops: List[str], assessment: Dict) -> str:
    risks = assessment["risks"]
    lines = [f"⚠️ **Weather Risk Assessment for {region}**\n", "**Identified Risks (Next 7 Days):**"]
    lines.append(_bullets(risks) if risks else "• Low risk period - favorable conditions")

    if assessment["heat_days"] > 2:
        lines.append(f"\n**Heat Stress:** {assessment['heat_days']} days above 35°C expected. "
                     "Provide shade for sensitive crops and increase watering frequency.")
    if assessment["heavy_rain_days"] > 1:
        lines.append(f"\n**Heavy Rainfall:** {assessment['heavy_rain_days']} days with >15mm rain. "
                     "Ensure proper drainage and avoid field operations during wet periods.")
    if report["current"]["humidity"] > 85:
        lines.append(f"\n**Disease Pressure:** High humidity ({report['current']['humidity']}%). "
                     "Increase air circulation and monitor for early disease signs.")

    if crops:
        lines.append("\n**Crop-Specific Vulnerabilities:**")
        lines.append(_bullets([f"**{crop}:** {crop_risk_advice(crop)}" for crop in crops]))

    lines.append(f"\nRisk level: {assessment['level']}")
    return "\n".join(lines)


def season_reply(region: str, season: str, crops: List[str]) -> str:
    crop_text = ", ".join(crops) if crops else "your crops"
    return (
        f"📅 **Seasonal Farming Calendar for {region}**\n\n"
        f"**Current Season: {season}**\n\n"
        + _bullets([
            f"**Planting:** Choose varieties of {crop_text} suited to the {season.lower()}",
            "**Maintenance:** Weed and scout for pests weekly",
            "**Harvesting:** Plan harvests for dry spells",
            "**Preparation:** Prepare seedbeds and inputs before the next rains",
        ])
    )


def general_reply(report: Dict, region: str) -> str:
    current, forecast = report["current"], report["forecast"]
    total_rain = sum(d.get("rainfall", 0) for d in forecast)
    avg_temp = round(sum(d["temp_max"] for d in forecast) / max(len(forecast), 1))
    sunny_days = sum(1 for d in forecast if d["condition"] == "Clear")
    return (
        f"🌍 **Agricultural Weather Summary for {region}**\n\n"
        + _bullets([
            f"Temperature: {current['temperature']}°C",
            f"Humidity: {current['humidity']}%",
            f"Conditions: {current['description']}",
            f"Average temperature this week: {avg_temp}°C",
            f"Rainfall expected: {round(total_rain)}mm",
            f"Generally {'sunny' if sunny_days > 4 else 'mixed'} conditions",
            f"{'Favorable' if 25 < current['temperature'] < 30 else 'Challenging'} conditions for most crops",
            f"{'Adequate' if total_rain > 20 else 'Limited'} rainfall expected",
        ])
        + "\n\nHow can I help you plan your farming activities based on this weather information?"
    )


def current_season(month: int) -> str:
    # Long rains March-May, short rains October-December
    if month in (3, 4, 5):
        return "Long rains season"
    if month in (10, 11, 12):
        return "Short rains season"
    return "Dry season"


class WeatherAdvisor:
    def __init__(self, weather: Optional[WeatherService] = None):
        self.weather = weather or WeatherService()

    async def reply(self, message: str, lat: Optional[float] = None, lon: Optional[float] = None,
                    crops: Optional[List[str]] = None, soil_type: Optional[str] = None,
                    month: Optional[int] = None) -> Dict:
        intent = determine_intent(message)
        lat = DEFAULT_LAT if lat is None else lat
        lon = DEFAULT_LON if lon is None else lon
        crops = crops or []

        report = await self.weather.by_coordinates(lat, lon)
        region = report["location"]
        season = current_season(month or int(report["last_updated"][5:7]))
        assessment = assess_risks(report["current"], report["forecast"])

        if intent == "forecast":
            content = forecast_reply(report, region)
        elif intent == "planting":
            content = planting_reply(report, region, season)
        elif intent == "irrigation":
            content = irrigation_reply(report, region, soil_type)
        elif intent == "risk":
            content = risk_reply(report, region, crops, assessment)
        elif intent == "season":
            content = season_reply(region, season, crops)
        else:
            content = general_reply(report, region)

        logger.info(f"🌦️ Weather advice generated (intent={intent}, risk={assessment['level']})")
        return {
            "content": content,
            "intent": intent,
            "risk_level": assessment["level"],
            "confidence": AGENT_CONFIDENCE,
            "agent_type": "weather",
        }
