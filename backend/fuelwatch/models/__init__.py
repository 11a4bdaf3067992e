from fuelwatch.models.fuel_station import FuelStation
from fuelwatch.models.crowdsourced_report import CrowdsourcedReport, KNOWN_FUEL_TYPES
from fuelwatch.models.user_trust_score import UserTrustScore
from fuelwatch.models.verified_fuel_data import VerifiedFuelData

__all__ = [
    "FuelStation",
    "CrowdsourcedReport",
    "KNOWN_FUEL_TYPES",
    "UserTrustScore",
    "VerifiedFuelData",
]
