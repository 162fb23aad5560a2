"""
Default loader for Anthill step kinds.

Accepts only native Anthill kinds (``com.urbancode.anthill3.*``) and looks
them up in the registry by their short name, e.g.
``domain.builder.ant.AntBuildStepConfig``. Runs no workflow or job hooks.

Subclass it to add a fallback for unsupported steps instead of failing.
"""

import logging
from typing import Optional

from exceptions import UnsupportedKindError
from loaders.registry_loader import HookRegistry, RegistryLoader

ANTHILL_KIND_PREFIX = 'com.urbancode.anthill3.'

default_registry = HookRegistry()


class DefaultLoader(RegistryLoader):
    """Registry loader keyed by Anthill kind names with the vendor prefix stripped."""

    def __init__(self, registry: Optional[HookRegistry] = None, logger: Optional[logging.Logger] = None):
        super().__init__(registry if registry is not None else default_registry, logger=logger)

    def resolve_kind(self, kind: str) -> str:
        if not kind.startswith(ANTHILL_KIND_PREFIX):
            raise UnsupportedKindError(kind, f"Cannot process Anthill step with kind: {kind}")
        return kind[len(ANTHILL_KIND_PREFIX):]


__all__ = ['ANTHILL_KIND_PREFIX', 'DefaultLoader', 'default_registry']
