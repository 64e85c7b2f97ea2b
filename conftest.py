import math

import pytest

from placesearch import Coordinate, PlaceCandidate, PlaceOrigin
from placesearch.geo import EARTH_RADIUS_METERS

TOKYO = Coordinate(35.6762, 139.6503)


def north_of(origin: Coordinate, meters: float) -> Coordinate:
    """A coordinate exactly `meters` due north of origin on the haversine sphere."""
    return Coordinate(origin.latitude + math.degrees(meters / EARTH_RADIUS_METERS), origin.longitude)


def east_of(origin: Coordinate, meters: float) -> Coordinate:
    """A coordinate roughly `meters` due east of origin."""
    scale = math.cos(math.radians(origin.latitude))
    return Coordinate(origin.latitude, origin.longitude + math.degrees(meters / EARTH_RADIUS_METERS) / scale)


def make_place(name="Ichiran", origin=PlaceOrigin.DATABASE, coordinate=TOKYO, **kwargs) -> PlaceCandidate:
    return PlaceCandidate(origin=origin, name=name, coordinate=coordinate, **kwargs)


@pytest.fixture
def tokyo():
    return TOKYO


@pytest.fixture
def place_factory():
    return make_place
