from buslink.extensions import db
from buslink.storage import entities


class Bus(db.Model):
    __tablename__ = "buses"
    id = db.Column(db.Integer, primary_key=True)
    owner_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    bus_number = db.Column(db.String(30), nullable=False)
    capacity = db.Column(db.Integer, nullable=False)
    has_ac = db.Column(db.Boolean, default=False)
    has_wifi = db.Column(db.Boolean, default=False)
    has_usb = db.Column(db.Boolean, default=False)
    seat_layout = db.Column(db.JSON, nullable=False)  # {"1A": "available", ...}

    def to_entity(self):
        return entities.Bus(
            id=self.id,
            owner_id=self.owner_id,
            name=self.name,
            bus_number=self.bus_number,
            capacity=self.capacity,
            has_ac=bool(self.has_ac),
            has_wifi=bool(self.has_wifi),
            has_usb=bool(self.has_usb),
            seat_layout=self.seat_layout,
        )

    def __repr__(self):
        return f'<Bus {self.bus_number} ({self.name})>'


class Route(db.Model):
    __tablename__ = "routes"
    id = db.Column(db.Integer, primary_key=True)
    from_location = db.Column(db.String(120), nullable=False)
    to_location = db.Column(db.String(120), nullable=False)
    distance = db.Column(db.Integer)
    estimated_duration = db.Column(db.Integer, nullable=False)  # minutes

    def to_entity(self):
        return entities.Route(
            id=self.id,
            from_location=self.from_location,
            to_location=self.to_location,
            distance=self.distance,
            estimated_duration=self.estimated_duration,
        )

    def __repr__(self):
        return f'<Route {self.from_location} to {self.to_location}>'


class Schedule(db.Model):
    __tablename__ = "schedules"
    id = db.Column(db.Integer, primary_key=True)
    bus_id = db.Column(db.Integer, db.ForeignKey("buses.id"), nullable=False, index=True)
    route_id = db.Column(db.Integer, db.ForeignKey("routes.id"), nullable=False, index=True)
    departure_time = db.Column(db.DateTime, index=True, nullable=False)
    arrival_time = db.Column(db.DateTime, nullable=False)
    price = db.Column(db.Integer, nullable=False)
    available = db.Column(db.Boolean, default=True)

    def to_entity(self):
        return entities.Schedule(
            id=self.id,
            bus_id=self.bus_id,
            route_id=self.route_id,
            departure_time=self.departure_time,
            arrival_time=self.arrival_time,
            price=self.price,
            available=bool(self.available),
        )

    def __repr__(self):
        return f'<Schedule {self.id}: bus {self.bus_id} on {self.departure_time}>'


class Review(db.Model):
    __tablename__ = "reviews"
    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    bus_id = db.Column(db.Integer, db.ForeignKey("buses.id"), nullable=False, index=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey("schedules.id"), nullable=False)
    rating = db.Column(db.Integer, nullable=False)
    comment = db.Column(db.Text)
    timestamp = db.Column(db.DateTime)

    def to_entity(self):
        return entities.Review(
            id=self.id,
            user_id=self.user_id,
            bus_id=self.bus_id,
            schedule_id=self.schedule_id,
            rating=self.rating,
            comment=self.comment,
            timestamp=self.timestamp,
        )
