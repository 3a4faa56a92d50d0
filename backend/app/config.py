import os
from dotenv import load_dotenv

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL") or os.getenv("SUPABASE_DB_URL")
SUPABASE_JWT_SECRET = os.getenv("SUPABASE_JWT_SECRET")
JWT_AUDIENCE = os.getenv("JWT_AUDIENCE", "authenticated")
CRON_SECRET = os.getenv("CRON_SECRET")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Comma-separated adapter names; see app/services/sources
INCIDENT_SOURCES = os.getenv("INCIDENT_SOURCES", "nc_mecklenburg,tomtom,dot")

NC_TIMS_URL = os.getenv(
    "NC_TIMS_URL",
    "https://eapps.ncdot.gov/services/traffic-prod/v1/counties/60/incidents",
)
TOMTOM_API_KEY = os.getenv("TOMTOM_API_KEY")
# minLon,minLat,maxLon,maxLat (Charlotte metro)
TOMTOM_BBOX = os.getenv("TOMTOM_BBOX", "-81.1,35.0,-80.6,35.4")
DOT_FEED_URL = os.getenv("DOT_FEED_URL")

SOURCE_TIMEOUT_SECONDS = float(os.getenv("SOURCE_TIMEOUT_SECONDS", "20"))
CHANNEL_TIMEOUT_SECONDS = float(os.getenv("CHANNEL_TIMEOUT_SECONDS", "10"))

ALERT_LOOKBACK_MINUTES = int(os.getenv("ALERT_LOOKBACK_MINUTES", "60"))
MAX_ACTIVE_JOBS = int(os.getenv("MAX_ACTIVE_JOBS", "2"))

RESEND_API_KEY = os.getenv("RESEND_API_KEY")
ALERT_FROM_EMAIL = os.getenv("ALERT_FROM_EMAIL", "alerts@example.com")
ALERT_TO_FALLBACK = os.getenv("ALERT_TO_FALLBACK")

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_FROM_NUMBER = os.getenv("TWILIO_FROM_NUMBER")

PUSH_WEBHOOK_URL = os.getenv("PUSH_WEBHOOK_URL")

CORS_ORIGINS = [
    o.strip()
    for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
    if o.strip()
]

# Per-client sliding-window limits (requests per window)
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "3600"))
RATE_LIMIT_INCIDENTS = int(os.getenv("RATE_LIMIT_INCIDENTS", "60"))
RATE_LIMIT_INGEST = int(os.getenv("RATE_LIMIT_INGEST", "100"))
