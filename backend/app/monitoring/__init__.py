"""In-process metrics exposed at ``/metrics``."""

from . import metrics, registry

__all__ = ["metrics", "registry"]
