"""SQLAlchemy models."""

from threatgate.models.attack_pattern import AttackPattern
from threatgate.models.audit_record import AuditRecord
from threatgate.models.capacity_counter import CapacityCounter
from threatgate.models.event_record import EventRecord
from threatgate.models.incident import Incident
from threatgate.models.job_run import JobRun
from threatgate.models.threat_state import ThreatState
from threatgate.models.tracked_entity import TrackedEntity

__all__ = [
    "AttackPattern",
    "AuditRecord",
    "CapacityCounter",
    "EventRecord",
    "Incident",
    "JobRun",
    "ThreatState",
    "TrackedEntity",
]
