from . import ai

__all__ = ["ai"]
