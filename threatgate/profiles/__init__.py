"""Profiles: declarative per-entity-class engine configuration."""

from threatgate.profiles.loader import (
    OperationPolicy,
    Profile,
    build_profile,
    get_profile,
    list_profiles,
    load_profile,
)
from threatgate.profiles.schemas import ProfileValidationError, validate_profile_schema

__all__ = [
    "OperationPolicy",
    "Profile",
    "ProfileValidationError",
    "build_profile",
    "get_profile",
    "list_profiles",
    "load_profile",
    "validate_profile_schema",
]
