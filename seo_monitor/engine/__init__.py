"""Change detection and alerting"""

from .alert_engine import AlertEngine
from .change_detector import ChangeDetector, compute_deltas

__all__ = ["AlertEngine", "ChangeDetector", "compute_deltas"]
