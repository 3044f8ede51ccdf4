from __future__ import annotations

from .models import CrossSection, Junction, RoadNetwork, Spline

__version__ = "0.1.0"

__all__ = ["CrossSection", "Junction", "RoadNetwork", "Spline", "__version__"]
