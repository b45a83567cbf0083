"""Search domain exports."""

from .config import DEFAULT_TIER_RULES, EngineConfig, TierRule, tier_field
from .exceptions import EngineError, InvalidRequest, UpstreamTotalFailure

__all__ = [
	"DEFAULT_TIER_RULES",
	"EngineConfig",
	"TierRule",
	"tier_field",
	"EngineError",
	"InvalidRequest",
	"UpstreamTotalFailure",
]
