from .drivers import Driver
from .bookings import Booking, BookingAssetLine
from .jobs import Job, JobAsset, JobEvidence
from .records import GradingRecord, SanitisationRecord
from .documents import LifecycleEvent, DocumentSequence

__all__ = [
    'Driver',
    'Booking', 'BookingAssetLine',
    'Job', 'JobAsset', 'JobEvidence',
    'GradingRecord', 'SanitisationRecord',
    'LifecycleEvent', 'DocumentSequence',
]
