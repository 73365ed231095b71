"""
Cache utilities for the pick pool application
Stores computed pool snapshots keyed by pool and guarded by fingerprint
"""

from flask import current_app

from pickpool import cache


def snapshot_cache_key(pool_id):
    return f"pool:{pool_id}:snapshot"


def get_cached_snapshot(pool_id, fingerprint):
    """
    Return the cached snapshot only when it was built from `fingerprint`

    Args:
        pool_id: Pool whose snapshot to read
        fingerprint: Fingerprint of the current inputs

    Returns:
        PoolSnapshot or None on a miss or a stale entry
    """
    cache_key = snapshot_cache_key(pool_id)
    snapshot = cache.get(cache_key)

    if snapshot is None:
        current_app.logger.debug(f"Cache miss for key: {cache_key}")
        return None

    if snapshot.fingerprint != fingerprint:
        current_app.logger.debug(f"Stale snapshot for key: {cache_key}")
        return None

    current_app.logger.debug(f"Cache hit for key: {cache_key}")
    return snapshot


def store_snapshot(pool_id, snapshot, timeout=None):
    cache_key = snapshot_cache_key(pool_id)
    cache.set(cache_key, snapshot, timeout=timeout)
    current_app.logger.debug(f"Cache set for key: {cache_key}")



class CacheManager:
    """Cache management utilities"""

    @staticmethod
    def get_cache_stats():
        """Get cache statistics"""
        return {
            "type": current_app.config.get("CACHE_TYPE", "Unknown"),
            "timeout": current_app.config.get("CACHE_DEFAULT_TIMEOUT", 300),
        }
