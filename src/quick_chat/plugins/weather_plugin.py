import random

from ..tool_registry import tool

WEATHER_DESCRIPTIONS = ("sunny", "cloudy", "rainy", "snowy")

MIN_TEMPERATURE_F = 32
MAX_TEMPERATURE_F = 90


class WeatherPlugin:
    """Plugin that reports synthetic weather for any location.

    No real lookup happens: temperature and description are drawn at random.
    """

    def __init__(self, rng=None):
        self.rng = rng or random.Random()

    @tool(
        name="weather",
        description="Get the weather in a location (fahrenheit)",
        location="The location to get the weather for",
    )
    def get_weather(self, location: str) -> dict:
        return {
            "location": location,
            "temperature": self.rng.randint(MIN_TEMPERATURE_F, MAX_TEMPERATURE_F),
            "description": self.rng.choice(WEATHER_DESCRIPTIONS),
        }

    def hook_provide_tools(self):
        return [self.get_weather]
