# Tools module
from .geocoder import Geocoder
from .notifier import NoopNotifier, NotificationResult, WebhookNotifier

__all__ = [
    "Geocoder",
    "NoopNotifier",
    "NotificationResult",
    "WebhookNotifier",
]
