from .registry import (
    Connection, SubscriptionRegistry, location_channel, owner_channel, schedule_channel,
)

__all__ = ['Connection', 'SubscriptionRegistry', 'location_channel', 'owner_channel', 'schedule_channel']
