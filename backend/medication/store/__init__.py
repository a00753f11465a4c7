from .base import BaseAdministrationStore
from .factory import get_administration_store
from .memory import InMemoryAdministrationStore

__all__ = [
    "BaseAdministrationStore",
    "InMemoryAdministrationStore",
    "get_administration_store",
]
