from enum import Enum

class Platform(str, Enum):
    ios = "ios"
    android = "android"

class PushPriority(str, Enum):
    default = "default"
    normal = "normal"
    high = "high"

class ReceiptStatus(str, Enum):
    pending = "pending"
    ok = "ok"
    error = "error"

class TicketOutcome(str, Enum):
    sent = "sent"
    device_removed = "device_removed"
    rate_limited = "rate_limited"
    failed = "failed"
