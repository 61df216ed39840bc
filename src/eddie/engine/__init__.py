"""Multi-instance runners."""
from .fleet import TraderFleet

__all__ = ["TraderFleet"]
