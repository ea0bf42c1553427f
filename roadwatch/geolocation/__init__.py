"""
RoadWatch - Geolocation Module
Acquires the reporter's position with a structured error taxonomy.
"""

from roadwatch.geolocation.location_capture import (
    LocationProvider,
    DevicePositionProvider,
    IpLocationProvider,
    acquire_location,
)

__all__ = [
    "LocationProvider",
    "DevicePositionProvider",
    "IpLocationProvider",
    "acquire_location",
]
