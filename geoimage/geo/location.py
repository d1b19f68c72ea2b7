"""Sources of the device position used to start a run."""

from __future__ import annotations

from geoimage.models import Coordinate


class GeolocationError(RuntimeError):
    """Raised when geolocation is unsupported or the user denied it."""


class LocationSource:
    """Base class for anything that can report the current device position."""

    async def current_position(self) -> Coordinate:
        raise GeolocationError("Geolocation is not supported by your browser.")


class BrowserLocationSource(LocationSource):
    """Position reported by the browser together with the generate request.

    The browser calls ``navigator.geolocation`` itself and forwards either the
    coordinates or the error message it received.
    """

    def __init__(self, coordinate: Coordinate | None = None, error: str | None = None) -> None:
        self._coordinate = coordinate
        self._error = error

    async def current_position(self) -> Coordinate:
        if self._error:
            raise GeolocationError(f"Geolocation error: {self._error}")
        if self._coordinate is None:
            raise GeolocationError("Geolocation is not supported by your browser.")
        return self._coordinate
