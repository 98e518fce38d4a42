"""
Per-request user context.
"""

import uuid
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Dict, Optional

from shared.errors import ConfigurationError

from ..constants import SEED_URL


@lru_cache(maxsize=4096)
def get_uuid(user_id: str, account_id: str) -> str:
    """Stable UUIDv5 for (user id, account id), uppercase without dashes."""
    vwo_namespace = uuid.uuid5(uuid.NAMESPACE_URL, SEED_URL)
    account_namespace = uuid.uuid5(vwo_namespace, str(account_id))
    return uuid.uuid5(account_namespace, str(user_id)).hex.upper()


@dataclass
class ContextVWO:
    """Gateway-resolved enrichment: geo location and parsed user agent."""
    location: Dict[str, Any] = field(default_factory=dict)
    ua_info: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ContextVWO":
        data = data or {}
        return cls(
            location=data.get("location") or {},
            ua_info=data.get("userAgent") or {},
        )


@dataclass
class Context:
    """User context for one evaluation."""
    id: str
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    custom_variables: Dict[str, Any] = field(default_factory=dict)
    variation_targeting_variables: Dict[str, Any] = field(default_factory=dict)
    session_id: Optional[int] = None
    vwo: Optional[ContextVWO] = None

    def get_uuid(self, account_id: Any) -> str:
        return get_uuid(str(self.id), str(account_id))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Context":
        """Build a context from the camelCase dictionary callers pass in."""
        if not isinstance(data, dict):
            raise ConfigurationError("Invalid context, expected a dictionary")

        user_id = data.get("id")
        if user_id is None or (isinstance(user_id, str) and not user_id.strip()):
            raise ConfigurationError("Invalid context, id is required")
        if isinstance(user_id, bool) or not isinstance(user_id, (str, int)):
            raise ConfigurationError("Invalid context, id should be a string or integer")

        for key, expected in (
            ("customVariables", dict),
            ("variationTargetingVariables", dict),
            ("userAgent", str),
            ("ipAddress", str),
        ):
            if data.get(key) is not None and not isinstance(data[key], expected):
                raise ConfigurationError(
                    f"Invalid context, {key} should be a {expected.__name__}",
                    details={"field": key}
                )

        vwo = data.get("_vwo")
        return cls(
            id=str(user_id),
            user_agent=data.get("userAgent"),
            ip_address=data.get("ipAddress"),
            custom_variables=dict(data.get("customVariables") or {}),
            variation_targeting_variables=dict(data.get("variationTargetingVariables") or {}),
            session_id=data.get("sessionId"),
            vwo=ContextVWO.from_dict(vwo) if isinstance(vwo, dict) else None,
        )
