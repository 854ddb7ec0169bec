"""ThreatGate: signal scoring and gating engine."""

__version__ = "0.1.0"
