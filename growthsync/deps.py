"""Store dependency for FastAPI routes."""

from functools import lru_cache
from pathlib import Path
import os

from .store import GrowthStore, JsonFileStorage, MemoryStorage

STORE_ENV_VAR = "GROWTHSYNC_STORE_PATH"


@lru_cache(maxsize=1)
def get_store() -> GrowthStore:
    """One store per process; JSON file when the env var is set, memory otherwise."""
    path = os.environ.get(STORE_ENV_VAR)
    if path:
        return GrowthStore(JsonFileStorage(Path(path).expanduser()))
    return GrowthStore(MemoryStorage())
