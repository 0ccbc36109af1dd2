from coachapp.gateway.base import (
    DataGateway,
    Filter,
    GatewayError,
    Order,
    Row,
    eq,
    gte,
    is_null,
)
from coachapp.gateway.postgrest import SupabaseGateway
from coachapp.gateway.realtime import (
    ChangeEvent,
    ChangeFeed,
    LocalChangeFeed,
    RedisChangeFeed,
    Subscription,
    channel_name,
)

__all__ = [
    "DataGateway", "Filter", "GatewayError", "Order", "Row", "eq", "gte", "is_null",
    "SupabaseGateway",
    "ChangeEvent", "ChangeFeed", "LocalChangeFeed", "RedisChangeFeed", "Subscription", "channel_name",
]
