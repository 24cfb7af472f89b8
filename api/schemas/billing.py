from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List

ACTIVE_STATUSES = ("active", "trialing")


@dataclass(frozen=True)
class SubscriptionPlan:
    id: str
    name: str
    price: int
    price_id: str
    features: List[str] = field(default_factory=list)
    # -1 means unlimited
    limits: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
