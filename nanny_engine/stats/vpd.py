"""
Vapor pressure deficit.
"""
import math
from typing import Optional


def calculate_vpd(
    temperature: Optional[float],
    humidity: Optional[float],
) -> Optional[float]:
    """
    Compute VPD in kPa from air temperature (°C) and relative humidity (%).

    Uses the Tetens saturation vapor pressure. Humidity is clamped to
    [0, 100]; readings outside [0, 105] are treated as sensor faults.

    Args:
        temperature: Air temperature in °C.
        humidity: Relative humidity in %.

    Returns:
        VPD in kPa, or None if either input is missing or invalid.
    """
    if temperature is None or humidity is None:
        return None
    if not math.isfinite(temperature) or not math.isfinite(humidity):
        return None
    if humidity < 0 or humidity > 105:
        return None
    # Tetens diverges at -237.3 °C
    if temperature <= -237.3:
        return None

    clamped_humidity = max(0.0, min(100.0, humidity))
    svp = 0.6108 * math.exp((17.27 * temperature) / (temperature + 237.3))
    avp = (clamped_humidity / 100.0) * svp
    return max(0.0, svp - avp)
