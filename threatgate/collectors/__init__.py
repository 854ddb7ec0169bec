"""Signal collectors. Importing this package registers every collector in COLLECTORS."""

from threatgate.collectors import behavior, rollout, store_defense  # noqa: F401
from threatgate.collectors.base import COLLECTORS, CollectorSpec, Window, load_events

__all__ = ["COLLECTORS", "CollectorSpec", "Window", "load_events"]
