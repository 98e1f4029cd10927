"""Application constants."""

USER_AGENT = "storeroute/0.3 (+store coverage; contact: configured-email)"
REQUEST_KINDS = ("point", "postal", "area")
STAGES = (
    "request",
    "boundary",
    "tessellate",
    "probe",
    "enrich",
    "route",
    "export",
)
EARTH_RADIUS_KM = 6371.0
DEFAULT_PACING_SECONDS = 0.5
DEFAULT_CACHE_TTL_SECONDS = 24 * 60 * 60
DEFAULT_SAFETY_MARGIN = 0.9
EXIT_SUCCESS = 0
EXIT_EMPTY = 10
EXIT_HARD_FAIL = 20
JSON_LOG_FIELDS = (
    "timestamp",
    "run_id",
    "stage",
    "request",
    "event",
    "status",
    "probe",
    "probes_attempted",
    "probes_succeeded",
    "duration_ms",
    "rows_in",
    "rows_out",
    "error_code",
    "message",
)
