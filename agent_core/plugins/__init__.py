"""
Built-in plugins
"""

from .math_plugin import MathPlugin, evaluate_expression, extract_expression
from .weather_plugin import WeatherPlugin, extract_location

__all__ = [
    "MathPlugin",
    "WeatherPlugin",
    "evaluate_expression",
    "extract_expression",
    "extract_location",
]
