"""
Decoder for the Aranet4 "current readings" characteristic.
"""

import struct
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Any, List

from ..exceptions.errors import InvalidInputError, TooShortError


# co2 (uint16), temperature (int16, /20), pressure (uint16, /10), humidity (uint8)
CURRENT_READINGS_FORMAT = '<hHB'
CURRENT_READINGS_MIN_LENGTH = 7


@dataclass(frozen=True)
class Reading:
    """One decoded Aranet4 measurement."""
    co2: int             # ppm
    temperature: float   # Celsius
    humidity: int        # %RH
    pressure: float      # hPa
    timestamp: str       # ISO-8601, time of read

    @property
    def temperature_f(self) -> float:
        return self.temperature * 9 / 5 + 32

    def to_payload(self) -> Dict[str, Any]:
        """Readings object as posted to the reporting endpoint."""
        return {
            'co2': self.co2,
            'temperature': self.temperature,
            'humidity': self.humidity,
            'pressure': self.pressure,
            'timestamp': self.timestamp,
        }


def decode(raw) -> Reading:
    """
    Decode a current readings payload.

    Args:
        raw: Characteristic value, at least 7 bytes

    Returns:
        Reading: Decoded values stamped with the current time

    Raises:
        InvalidInputError: If raw is not a byte sequence
        TooShortError: If raw is shorter than 7 bytes
    """
    if not isinstance(raw, (bytes, bytearray, memoryview)):
        raise InvalidInputError(f"Invalid data: not a byte sequence ({type(raw).__name__})")

    data = bytes(raw)
    if len(data) < CURRENT_READINGS_MIN_LENGTH:
        raise TooShortError(len(data), CURRENT_READINGS_MIN_LENGTH)

    co2 = struct.unpack('<H', data[0:2])[0]
    temperature_raw, pressure_raw, humidity = struct.unpack(CURRENT_READINGS_FORMAT, data[2:7])

    return Reading(
        co2=co2,
        temperature=temperature_raw / 20,
        humidity=humidity,
        pressure=pressure_raw / 10,
        timestamp=datetime.now(timezone.utc).isoformat(),
    )


def format_reading(reading: Reading) -> List[str]:
    """Human-readable lines for the per-cycle log."""
    local_time = datetime.fromisoformat(reading.timestamp).astimezone().strftime('%H:%M:%S')
    return [
        f"[{local_time}] Readings:",
        f"CO2: {reading.co2} ppm",
        f"Temperature: {reading.temperature:.1f}°C ({reading.temperature_f:.1f}°F)",
        f"Humidity: {reading.humidity}%",
        f"Pressure: {reading.pressure:.1f} hPa",
    ]
