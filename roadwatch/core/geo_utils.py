"""
RoadWatch - Geospatial Utilities
Geocoordinate type and validation.
"""

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class Geocoordinate:
    """Geographic point in decimal degrees."""
    latitude: float
    longitude: float

    def __post_init__(self):
        if not is_valid_coordinate(self.latitude, self.longitude):
            raise ValueError(
                f"Invalid coordinate: ({self.latitude}, {self.longitude})"
            )

    def to_tuple(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)

    def to_dict(self) -> Dict[str, float]:
        return {"latitude": self.latitude, "longitude": self.longitude}


def is_valid_coordinate(latitude: float, longitude: float) -> bool:
    """Check that latitude and longitude are finite and within range."""
    try:
        lat = float(latitude)
        lon = float(longitude)
    except (TypeError, ValueError):
        return False

    # NaN fails both comparisons
    return -90.0 <= lat <= 90.0 and -180.0 <= lon <= 180.0
