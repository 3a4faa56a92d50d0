# app/services/classify.py

from typing import Optional

# Canonical, stored categories (closed set)
ACCIDENT = "accident"
DISABLED_VEHICLE = "disabled_vehicle"
HAZARD = "hazard"
INCIDENT_CATEGORIES = (ACCIDENT, DISABLED_VEHICLE, HAZARD)

# Display classes used for badges and alert toggles
CRASH = "crash"
DISABLED = "disabled"
CLOSURE = "closure"
OTHER = "other"
DISPLAY_CATEGORIES = (CRASH, DISABLED, HAZARD, CLOSURE, OTHER)

# Checked in order; first match wins
DISPLAY_KEYWORDS = [
    (CRASH, ["crash", "accident", "collision"]),
    (DISABLED, ["disabled", "stall", "broken down"]),
    (HAZARD, ["hazard", "debris"]),
    (CLOSURE, ["closure", "lane closed", "road closed"]),
]

CATEGORY_LABEL = {
    CRASH: "Crash",
    DISABLED: "Disabled vehicle",
    HAZARD: "Hazard",
    CLOSURE: "Closure / lanes",
    OTHER: "Other",
}


def classify_incident(category: Optional[str], description: Optional[str]) -> str:
    """
    Feed-independent display class from free text.

    Case-insensitive substring match against the stored category and the
    description, in the priority order of DISPLAY_KEYWORDS.
    """
    texts = [(category or "").lower(), (description or "").lower()]

    for display, keywords in DISPLAY_KEYWORDS:
        if any(k in t for k in keywords for t in texts):
            return display
    return OTHER
