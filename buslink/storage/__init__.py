from .base import Store, DEFAULT_ROUTES
from .memory import MemoryStore


def build_store(app) -> Store:
    """Instantiate the backend named by ``STORAGE_BACKEND``."""
    backend = app.config.get('STORAGE_BACKEND', 'memory')
    history_limit = app.config.get('LOCATION_HISTORY_LIMIT', 100)
    if backend == 'memory':
        store = MemoryStore(history_limit=history_limit)
        if app.config.get('SEED_DEFAULT_ROUTES'):
            store.seed_default_routes()
        return store
    if backend == 'sqlalchemy':
        from .sql import SQLAlchemyStore
        return SQLAlchemyStore(history_limit=history_limit)
    raise ValueError(f'Unknown STORAGE_BACKEND {backend!r}')


__all__ = ['Store', 'MemoryStore', 'DEFAULT_ROUTES', 'build_store']
