"""
Service layer enums
Values reported by Amazon SES and SNS, so services can compare against
them without scattering string literals.
"""

from enum import Enum


class SnsMessageType(str, Enum):
    """SNS HTTP(S) delivery message types"""
    NOTIFICATION = 'Notification'
    SUBSCRIPTION_CONFIRMATION = 'SubscriptionConfirmation'
    UNSUBSCRIBE_CONFIRMATION = 'UnsubscribeConfirmation'


class NotificationType(str, Enum):
    """SES event types published to the events topic"""
    BOUNCE = 'Bounce'
    COMPLAINT = 'Complaint'
    DELIVERY = 'Delivery'
    SEND = 'Send'
    OPEN = 'Open'
    CLICK = 'Click'
    RENDERING_FAILURE = 'Rendering Failure'
    REJECT = 'Reject'
    DELIVERY_DELAY = 'DeliveryDelay'


class BounceType(str, Enum):
    PERMANENT = 'Permanent'
    TRANSIENT = 'Transient'
    UNDETERMINED = 'Undetermined'


# Event types routed from the configuration set to the events topic
CONFIGURATION_SET_EVENT_TYPES = ['send', 'reject', 'bounce', 'complaint', 'delivery', 'open', 'click', 'renderingFailure']
