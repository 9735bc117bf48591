from bikebusters.models.user import User
from bikebusters.models.bike import Bike
from bikebusters.models.location import LocationSample
from bikebusters.models.pending_update import PendingUpdate
from bikebusters.models.attempt import Attempt
from bikebusters.models.recovery import Recovery, ReturnLocation
from bikebusters.models.report import Manufacturer, MissingReport, Note

__all__ = [
    "User",
    "Bike",
    "LocationSample",
    "PendingUpdate",
    "Attempt",
    "Recovery",
    "ReturnLocation",
    "MissingReport",
    "Manufacturer",
    "Note",
]
