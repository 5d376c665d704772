"""Registry publisher."""

from shipline.publish.registry import RegistryPublisher

__all__ = ["RegistryPublisher"]
