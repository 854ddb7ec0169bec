"""Shared API dependencies: internal token auth and profile resolution."""

from __future__ import annotations

import logging
import secrets

from fastapi import Header, HTTPException

from threatgate.config import get_settings
from threatgate.profiles import Profile, ProfileValidationError, get_profile

logger = logging.getLogger(__name__)


def require_internal_token(x_internal_token: str = Header(...)) -> None:
    """Validate the internal token from the request header.

    Uses constant-time comparison. Raises 403 if the token is empty or does
    not match the configured value.
    """
    expected = get_settings().internal_job_token
    if not expected or not secrets.compare_digest(x_internal_token, expected):
        logger.warning("Internal endpoint auth failed: invalid or missing token")
        raise HTTPException(status_code=403, detail="Invalid internal token")


def resolve_profile(name: str) -> Profile:
    """Load a profile for a request. Unknown → 404, invalid config → 500."""
    try:
        return get_profile(name)
    except ProfileValidationError as exc:
        logger.critical("Profile %s is invalid: %s", name, exc)
        raise HTTPException(status_code=500, detail=f"Profile {name} is invalid: {exc}") from None
    except (FileNotFoundError, ValueError):
        raise HTTPException(status_code=404, detail=f"Unknown profile: {name}") from None
