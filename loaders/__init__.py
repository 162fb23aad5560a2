"""Loaders resolving workflow, job and step hooks for a migration."""

from .base_loader import BaseLoader
from .registry_loader import HookRegistry, RegistryLoader
from .default_loader import ANTHILL_KIND_PREFIX, DefaultLoader, default_registry

__all__ = [
    'BaseLoader',
    'HookRegistry',
    'RegistryLoader',
    'DefaultLoader',
    'ANTHILL_KIND_PREFIX',
    'default_registry'
]
