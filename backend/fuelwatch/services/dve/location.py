from __future__ import annotations

from dataclasses import dataclass

from fuelwatch.services.dve.geo import haversine_km
from fuelwatch.services.dve.policy import DVEPolicy


@dataclass(frozen=True)
class LocationAssessment:
    factor: float
    distance_km: float
    is_valid: bool


class LocationTrustModel:
    """Proximity gate and discount between a submitter and the station.

    - beyond MAX_DISTANCE_KM: invalid, the report must be rejected
    - within OPTIMAL_DISTANCE_KM: full weight
    - in between: linear fall-off from 1.0 to 0.0
    """

    def __init__(self, policy: DVEPolicy):
        self.policy = policy

    def factor_for_distance(self, distance_km: float) -> LocationAssessment:
        max_km = self.policy.MAX_DISTANCE_KM
        optimal_km = self.policy.OPTIMAL_DISTANCE_KM

        if distance_km > max_km:
            return LocationAssessment(factor=0.0, distance_km=distance_km, is_valid=False)
        if distance_km <= optimal_km:
            return LocationAssessment(factor=1.0, distance_km=distance_km, is_valid=True)

        factor = 1 - (distance_km - optimal_km) / (max_km - optimal_km)
        return LocationAssessment(factor=max(0.0, factor), distance_km=distance_km, is_valid=True)

    def evaluate(
        self,
        user_lat: float,
        user_lon: float,
        station_lat: float,
        station_lon: float,
    ) -> LocationAssessment:
        distance_km = haversine_km(user_lat, user_lon, station_lat, station_lon)
        return self.factor_for_distance(distance_km)
