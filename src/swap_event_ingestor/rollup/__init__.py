"""Daily volume rollups derived from swap events."""

from swap_event_ingestor.rollup.daily_volume import (
    AnchorPoolTokenResolver,
    DailyVolumeRollup,
    PoolTokenResolver,
    PoolTokens,
    PoolVolume,
    RollupResult,
    aggregate_pool_volumes,
    aggregate_token_volumes,
)

__all__ = [
    "AnchorPoolTokenResolver",
    "DailyVolumeRollup",
    "PoolTokenResolver",
    "PoolTokens",
    "PoolVolume",
    "RollupResult",
    "aggregate_pool_volumes",
    "aggregate_token_volumes",
]
