from .customer import Customer
from .email_campaign import EmailCampaign
from .email_queue_entry import EmailQueueEntry
from .sent_email import SentEmail
from .unsubscribe_token import UnsubscribeToken
from .order import Order

__all__ = [
    "Customer",
    "EmailCampaign",
    "EmailQueueEntry",
    "SentEmail",
    "UnsubscribeToken",
    "Order",
]
