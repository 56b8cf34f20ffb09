"""Internal constants shared across the library."""

API_BASE_URL = "https://api.eventix.io/3.0.0"
AUTH_URL = "https://auth.openticket.tech/tokens/authorize"
TOKEN_URL = "https://auth.openticket.tech/tokens"
USER_AGENT = "ticketgate/1"

EVENT_STATISTICS_ENDPOINT = "/statistics/event/{event_id}"
ORDER_ENDPOINT = "/order/{order_id}"

#: Page size for the event statistics search.
PAGE_SIZE = 100

#: Order status that entitles its tickets to an entrant slot.
PAID_ORDER_STATUS = "paid"

#: Ticket-level statuses treated as an explicit cancellation.
CANCELLED_TICKET_STATUSES: frozenset[str] = frozenset({"cancelled", "canceled", "refunded", "invalid"})

#: Seconds a token must remain valid for before it is handed out.
DEFAULT_REFRESH_MARGIN: float = 60.0

#: Total timeout for a single HTTP request, in seconds.
DEFAULT_HTTP_TIMEOUT: float = 30.0

#: Seconds between scheduled full syncs.
DEFAULT_SYNC_INTERVAL: float = 60 * 60

# ------------------------------------------------------------------
# ACSM championship document keys
# ------------------------------------------------------------------

KEY_CLASSES = "Classes"
KEY_AVAILABLE_CARS = "AvailableCars"
KEY_ENTRANTS = "Entrants"
KEY_NAME = "Name"
KEY_TEAM = "Team"
KEY_GUID = "GUID"
KEY_MODEL = "Model"
KEY_SOURCE_TICKET = "SourceTicketID"

#: Initial and maximum backoff between roster commit retries, in seconds.
COMMIT_RETRY_INITIAL_WAIT = 0.125
COMMIT_RETRY_MAX_WAIT = 16.0
COMMIT_RETRY_ATTEMPTS = 5
