"""Application constants."""

USER_AGENT = "store-geocoder/0.3 (+research; contact: configured-email)"
DEFAULT_GEOCODE_ENGINE = "geolonia/normalize-japanese-addresses"
DEFAULT_JAPANESE_ADDRESSES_API = "https://japanese-addresses.geolonia.com/api/ja"
DEFAULT_PROGRESS_EVERY = 100
COMMANDS = ("geocode", "upsert")
WAREHOUSE_BACKENDS = ("bq", "sqlite")
EXIT_SUCCESS = 0
EXIT_CONFIG_ERROR = 2
EXIT_HARD_FAIL = 20

KEY_COLUMNS = ("chain", "store_id")
OUTPUT_COLUMNS = (
    "chain",
    "store_id",
    "address_raw",
    "address_norm",
    "point_lat",
    "point_lng",
    "level",
    "point_level",
    "geocode_engine",
    "engine_version",
    "geocoded_at",
    "geocode_error",
    "pref",
    "city",
    "town",
    "addr",
    "other",
)

ERROR_ADDRESS_MISSING = "address_raw is missing"
ERROR_POINT_MISSING = "point is missing"
ERROR_GEOCODE_FAILED = "geocode failed"

JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "chain",
    "event",
    "status",
    "processed",
    "total",
    "cache_hits",
    "geocoded_new",
    "geocode_errors",
    "duration_ms",
    "error_code",
    "message",
)
