from .campaign import CampaignCreate
from .queue import QueueProcessRequest, QueueEnqueueRequest
from .preferences import PreferencesUpdate
from .orders import OrderConfirmationRequest

__all__ = [
    "CampaignCreate",
    "QueueProcessRequest", "QueueEnqueueRequest",
    "PreferencesUpdate",
    "OrderConfirmationRequest",
]
