from __future__ import annotations

from typing import Dict, Type

import config
from clients.crm.base import CRMProvider, OAuthClient, ProviderConfig
from clients.crm.follow_up_boss import FollowUpBossClient
from clients.crm.real_geeks import RealGeeksClient
from clients.crm.wise_agent import WiseAgentClient
from schemas.crm import FOLLOW_UP_BOSS, REAL_GEEKS, WISE_AGENT

PROVIDER_CLASSES: Dict[str, Type[CRMProvider]] = {
    WISE_AGENT: WiseAgentClient,
    FOLLOW_UP_BOSS: FollowUpBossClient,
    REAL_GEEKS: RealGeeksClient,
}


def build_provider_configs() -> Dict[str, ProviderConfig]:
    return {
        WISE_AGENT: ProviderConfig(
            id=WISE_AGENT,
            display_name="Wise Agent",
            authorize_url="https://api.wiseagent.com/oauth/authorize",
            token_url="https://api.wiseagent.com/oauth/token",
            api_base="https://api.wiseagent.com/v2",
            scope="contacts,tasks",
            client_id=config.WISEAGENT_CLIENT_ID,
            client_secret=config.WISEAGENT_CLIENT_SECRET,
        ),
        FOLLOW_UP_BOSS: ProviderConfig(
            id=FOLLOW_UP_BOSS,
            display_name="Follow Up Boss",
            authorize_url="https://api.followupboss.com/oauth/authorize",
            token_url="https://api.followupboss.com/oauth/token",
            api_base="https://api.followupboss.com/v1",
            scope="read write",
            client_id=config.FOLLOWUPBOSS_CLIENT_ID,
            client_secret=config.FOLLOWUPBOSS_CLIENT_SECRET,
        ),
        REAL_GEEKS: ProviderConfig(
            id=REAL_GEEKS,
            display_name="Real Geeks",
            authorize_url="https://app.realgeeks.com/oauth/authorize",
            token_url="https://app.realgeeks.com/oauth/token",
            api_base="https://api.realgeeks.com/v2",
            scope="leads:read leads:write properties:read activities:write",
            client_id=config.REALGEEKS_CLIENT_ID,
            client_secret=config.REALGEEKS_CLIENT_SECRET,
        ),
    }


__all__ = [
    "CRMProvider",
    "OAuthClient",
    "PROVIDER_CLASSES",
    "ProviderConfig",
    "build_provider_configs",
]
