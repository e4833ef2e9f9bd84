"""Great-circle distance helpers. Miles are the internal unit."""

from __future__ import annotations

import math

EARTH_RADIUS_MILES = 3959.0
KM_PER_MILE = 1.609344


def distance_miles(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
	"""Haversine distance between two points in miles."""
	phi1, phi2 = math.radians(lat1), math.radians(lat2)
	d_phi = phi2 - phi1
	d_lambda = math.radians(lng2 - lng1)
	a = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
	# rounding can push `a` a hair above 1 for antipodal points; NaN passes through
	if a > 1.0:
		a = 1.0
	return 2 * EARTH_RADIUS_MILES * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def miles_to_km(miles: float) -> float:
	return miles * KM_PER_MILE


def km_to_miles(km: float) -> float:
	return km / KM_PER_MILE


def to_miles(value: float, unit: str) -> float:
	return km_to_miles(value) if unit == "km" else value


def from_miles(value: float, unit: str) -> float:
	return miles_to_km(value) if unit == "km" else value
