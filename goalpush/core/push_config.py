# --------------------------------------------------
# DEVICE TOKENS
# --------------------------------------------------

EXPO_TOKEN_PREFIX = "ExponentPushToken["
MAX_TOKEN_LENGTH = 200

# Oldest token is evicted when a user registers one more
MAX_TOKENS_PER_USER = 10

STALE_TOKEN_DAYS = 30

# --------------------------------------------------
# USER RATE LIMIT
# --------------------------------------------------

PUSH_RATE_LIMIT = 10
PUSH_RATE_WINDOW_SECONDS = 60

# --------------------------------------------------
# MESSAGES
# --------------------------------------------------

MAX_NOTIF_TITLE_LENGTH = 100
MAX_NOTIF_BODY_LENGTH = 500

DEFAULT_TTL_SECONDS = 28 * 24 * 60 * 60
TEST_NOTIFICATION_TTL_SECONDS = 3600

DEFAULT_SOUND = "default"
DEFAULT_CHANNEL_ID = "default"

# --------------------------------------------------
# GATEWAY TRANSPORT
# --------------------------------------------------

# Expo rejects requests with more than 100 messages
MAX_BATCH_SIZE = 100
MAX_RECEIPT_IDS_PER_REQUEST = 1000

MAX_ATTEMPTS = 3
INITIAL_RETRY_DELAY_MS = 1000
HTTP_TIMEOUT_SECONDS = 15

# --------------------------------------------------
# RATE-LIMITED MESSAGE REDELIVERY
# --------------------------------------------------

DEFAULT_RETRY_AFTER_SECONDS = 60

# --------------------------------------------------
# RECEIPTS
# --------------------------------------------------

RECEIPT_CHECK_DELAY_MINUTES = 15
RECEIPT_CHECK_LIMIT = 1000
RECEIPT_RETENTION_HOURS = 24
