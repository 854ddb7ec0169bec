"""Scoring, classification, gating and re-evaluation engine."""
