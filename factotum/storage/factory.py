from factotum.config.settings import Settings
from factotum.storage.json_store import JsonStore
from factotum.storage.memory_store import MemoryStore


def create_store(settings: Settings, data_dir: str | None = None):
    """Build the store named by ``settings.storage.backend``; ``data_dir`` overrides the JSON location."""
    if settings.storage.backend == "memory":
        return MemoryStore()
    return JsonStore(data_dir or settings.storage.data_dir)
