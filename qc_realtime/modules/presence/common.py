"""Shared helpers for the presence domain."""

from __future__ import annotations

import logging

logger = logging.getLogger("qc_realtime.presence")


def user_topic(user_id: int) -> str:
    return f"user:{user_id}"


def couple_topic(couple_id: int) -> str:
    return f"couple:{couple_id}"


__all__ = ["logger", "user_topic", "couple_topic"]
