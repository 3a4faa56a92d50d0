import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
load_dotenv(Path(__file__).resolve().parents[1] / ".env")

BASE_DIR = Path(__file__).resolve().parents[1]
sys.path.append(str(BASE_DIR))

from app.config import LOG_LEVEL  # noqa: E402
from app.db import Base, SessionLocal, engine  # noqa: E402
from app import models  # noqa: E402,F401
from app.services.alerts import AlertEngine  # noqa: E402
from app.services.ingest import STATUS_FAILED, run_ingestion  # noqa: E402
from app.services.sources import build_sources  # noqa: E402

log = logging.getLogger("run_cycle")


async def run_cycle(do_ingest: bool, do_alerts: bool, sources: str = None) -> dict:
    summary = {}
    db = SessionLocal()
    try:
        if do_ingest:
            result = await run_ingestion(db, build_sources(sources))
            summary["ingest"] = result.to_dict()
        if do_alerts:
            results = await AlertEngine().run_all(db)
            summary["alerts"] = [r.to_dict() for r in results]
    finally:
        db.close()
    return summary


def main():
    parser = argparse.ArgumentParser(
        description="Run one ingestion and/or alert cycle without the HTTP layer."
    )
    parser.add_argument("--skip-ingest", action="store_true", help="Do not pull the feeds.")
    parser.add_argument("--skip-alerts", action="store_true", help="Do not run the alert pass.")
    parser.add_argument(
        "--sources",
        default=None,
        help="Comma-separated source names (defaults to INCIDENT_SOURCES).",
    )
    args = parser.parse_args()

    logging.basicConfig(level=LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    Base.metadata.create_all(bind=engine)

    summary = asyncio.run(
        run_cycle(
            do_ingest=not args.skip_ingest,
            do_alerts=not args.skip_alerts,
            sources=args.sources,
        )
    )
    print(json.dumps(summary, indent=2, default=str))

    if summary.get("ingest", {}).get("status") == STATUS_FAILED:
        sys.exit(1)


if __name__ == "__main__":
    main()
