from . import bridge, health

__all__ = ["bridge", "health"]
