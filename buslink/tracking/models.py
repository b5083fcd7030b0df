from buslink.extensions import db
from buslink.storage import entities


class LocationUpdate(db.Model):
    __tablename__ = "location_updates"

    id = db.Column(db.Integer, primary_key=True)
    bus_id = db.Column(db.Integer, db.ForeignKey("buses.id"), nullable=False)
    latitude = db.Column(db.String(32), nullable=False)
    longitude = db.Column(db.String(32), nullable=False)
    speed = db.Column(db.Integer)
    timestamp = db.Column(db.DateTime, nullable=False)

    __table_args__ = (
        db.Index("ix_location_updates_bus_ts", "bus_id", "timestamp"),
    )

    def to_entity(self):
        return entities.LocationUpdate(
            id=self.id,
            bus_id=self.bus_id,
            latitude=self.latitude,
            longitude=self.longitude,
            speed=self.speed,
            timestamp=self.timestamp,
        )
