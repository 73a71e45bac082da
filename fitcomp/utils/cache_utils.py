"""
Cache utilities for the fitcomp service
Leaderboard responses are cached per competition and dropped after every
recalculation of that competition.
"""

import functools
import logging

from flask import current_app, request

from fitcomp import cache

logger = logging.getLogger(__name__)

LEADERBOARD_KEY_PREFIX = "leaderboard"


def leaderboard_cache_key(competition_id, subject_type=None):
    return f"{LEADERBOARD_KEY_PREFIX}_{competition_id}_{subject_type or 'all'}"


def cached_leaderboard(f):
    """
    Decorator for caching a leaderboard route per competition and subject type

    The wrapped view must take `competition_id` and return a JSON-able dict.
    """

    @functools.wraps(f)
    def wrapped(competition_id, *args, **kwargs):
        cache_key = leaderboard_cache_key(
            competition_id, request.args.get("subject_type")
        )

        result = cache.get(cache_key)
        if result is not None:
            current_app.logger.debug(f"Cache hit for key: {cache_key}")
            return result

        result = f(competition_id, *args, **kwargs)
        # Error responses come back as (body, status) tuples; never cache them
        if isinstance(result, dict):
            timeout = current_app.config.get("LEADERBOARD_CACHE_TIMEOUT", 120)
            cache.set(cache_key, result, timeout=timeout)
            current_app.logger.debug(f"Cache set for key: {cache_key}")

        return result

    return wrapped


def invalidate_leaderboard_cache(competition_id):
    """
    Drop every cached leaderboard variant for a competition

    Args:
        competition_id: Competition whose standings changed
    """
    keys = [
        leaderboard_cache_key(competition_id, subject_type)
        for subject_type in (None, "participant", "team")
    ]
    try:
        cache.delete_many(*keys)
        logger.debug(f"Leaderboard cache cleared for {competition_id}")
    except Exception as e:
        # Cache outages are logged, never raised
        logger.error(f"Failed to clear leaderboard cache for {competition_id}: {e}")
