"""State projection from domain events to derived tables."""

from .projector import StateProjector

__all__ = ["StateProjector"]
