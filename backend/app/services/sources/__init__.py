import logging
from typing import List, Optional

from ...config import INCIDENT_SOURCES
from .base import CanonicalIncident, IncidentSource, NormalizeResult
from .dot import DotFeedSource
from .nc_mecklenburg import NcMecklenburgSource
from .tomtom import TomTomSource

log = logging.getLogger(__name__)

# Adding a feed means adding an adapter here
SOURCE_CLASSES = [
    NcMecklenburgSource,
    TomTomSource,
    DotFeedSource,
]


def build_sources(names: Optional[str] = None) -> List[IncidentSource]:
    """Instantiate the enabled adapters, skipping ones missing credentials/URLs."""
    if names is None:
        names = INCIDENT_SOURCES
    wanted = {n.strip() for n in names.split(",") if n.strip()}

    unknown = wanted - {cls.name for cls in SOURCE_CLASSES}
    if unknown:
        log.warning("[sources] Ignoring unknown sources: %s", ", ".join(sorted(unknown)))

    sources = []
    for cls in SOURCE_CLASSES:
        if cls.name not in wanted:
            continue
        source = cls()
        if not source.is_configured():
            log.warning("[sources] %s is enabled but not configured, skipping", cls.name)
            continue
        sources.append(source)
    return sources


__all__ = [
    "CanonicalIncident",
    "IncidentSource",
    "NormalizeResult",
    "SOURCE_CLASSES",
    "build_sources",
]
