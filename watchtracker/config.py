import json
import logging
import os
from pathlib import Path

SEED_PATH = Path(os.environ.get("CATALOG_SEED_PATH", "") or Path(__file__).parent.parent / "catalog_seed.json")

LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").strip().upper() or "INFO"
RATE_LIMIT_ENABLED = os.environ.get("RATE_LIMIT_ENABLED", "true").lower() == "true"
RATE_LIMIT_DEFAULT = os.environ.get("RATE_LIMIT_DEFAULT", "120/minute").strip() or "120/minute"

DEFAULT_GENRES = [
    "Action",
    "Adventure",
    "Animation",
    "Comedy",
    "Crime",
    "Documentary",
    "Drama",
    "Family",
    "Fantasy",
    "History",
    "Horror",
    "Music",
    "Mystery",
    "Romance",
    "Science Fiction",
    "Thriller",
    "War",
    "Western",
]

DEFAULT_SERVICES = [
    "Netflix",
    "Prime Video",
    "Disney Plus",
    "Max",
    "Hulu",
    "Apple TV Plus",
    "Paramount Plus",
    "Peacock",
]


def load_catalog_seed() -> dict:
    if SEED_PATH.exists():
        data = json.loads(SEED_PATH.read_text())
        return {
            "genres": [str(name).strip() for name in data.get("genres", DEFAULT_GENRES) if str(name).strip()],
            "services": [str(name).strip() for name in data.get("services", DEFAULT_SERVICES) if str(name).strip()],
        }
    return {"genres": list(DEFAULT_GENRES), "services": list(DEFAULT_SERVICES)}


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, LOG_LEVEL, logging.INFO),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
