import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from buslink.errors import Forbidden, InvalidRequest
from buslink.realtime.registry import SubscriptionRegistry, location_channel
from buslink.storage.base import Store
from buslink.storage.entities import LocationUpdate, User

logger = logging.getLogger(__name__)

REPORT_FORBIDDEN = "You don't have permission to update this bus's location"


def _coordinate(value, bound: int, name: str) -> str:
    try:
        number = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidRequest(f'Invalid {name}', errors={name: ['Not a number']})
    if not number.is_finite() or not -bound <= number <= bound:
        raise InvalidRequest(f'Invalid {name}', errors={name: [f'Must be between -{bound} and {bound}']})
    return str(value).strip()


class LocationHub:
    """Stores position reports and republishes them on the bus channel."""

    def __init__(self, store: Store, registry: SubscriptionRegistry):
        self.store = store
        self.registry = registry

    def report_location(self, bus_id: int, latitude, longitude, speed: Optional[int],
                        reporter: User) -> LocationUpdate:
        # unknown and foreign buses get the same answer so bus ids don't leak
        bus = self.store.get_bus(bus_id) if reporter.is_bus_owner else None
        if bus is None or bus.owner_id != reporter.id:
            raise Forbidden(REPORT_FORBIDDEN)

        update = self.store.create_location_update(
            bus_id=bus_id,
            latitude=_coordinate(latitude, 90, 'latitude'),
            longitude=_coordinate(longitude, 180, 'longitude'),
            speed=speed,
        )
        delivered = self.registry.publish(location_channel(bus_id), {
            'type': 'location_update',
            'location': update.to_dict(),
        })
        logger.debug('Location %s for bus %s delivered to %s subscribers', update.id, bus_id, delivered)
        return update

    def get_latest_location(self, bus_id: int) -> Optional[LocationUpdate]:
        return self.store.get_latest_location_update(bus_id)
