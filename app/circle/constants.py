"""
Central constants for the Accountability Circle application.
"""
from __future__ import annotations

# Application review lifecycle
APPLICATION_STATUSES = ("pending", "approved", "rejected", "removed")
STATUS_FILTER_ALL = "all"

# Intake form
AVAILABILITY_CHOICES = {
    "yes-consistently": "Yes, consistently",
    "yes-mostly": "Yes, most weeks",
    "no": "No",
}
COMMITMENT_MIN = 1
COMMITMENT_MAX = 10
WORD_LIMITS = {
    "growth_goal": 150,
    "digital_product": 200,
    "excitement": 100,
}

# Member notification preferences
NOTIFY_INSTANT = "instant"
NOTIFY_DIGEST = "digest"
NOTIFY_OFF = "off"
NOTIFICATION_PREFERENCES = (NOTIFY_INSTANT, NOTIFY_DIGEST, NOTIFY_OFF)

# Deletion requests
DELETION_PENDING = "pending"
DELETION_COMPLETED = "completed"
DELETION_CANCELLED = "cancelled"

# Q&A
REACTION_HEART = "heart"

# Email
EMAIL_STATUS_SENT = "sent"
EMAIL_STATUS_FAILED = "failed"
TEMPLATE_KEYS = ("approved", "rejected", "pending")

# Uploads
AVATAR_EXTENSIONS = {
    "image/png": ".png",
    "image/jpeg": ".jpg",
    "image/gif": ".gif",
    "image/webp": ".webp",
}
AVATAR_CONTENT_TYPES = frozenset(AVATAR_EXTENSIONS)
AVATAR_MAX_BYTES = 5 * 1024 * 1024
RESOURCE_MAX_BYTES = 20 * 1024 * 1024

MIN_PASSWORD_LENGTH = 6
