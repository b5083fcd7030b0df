from buslink.extensions import db
from buslink.storage import entities


class Booking(db.Model):
    __tablename__ = "bookings"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    schedule_id = db.Column(db.Integer, db.ForeignKey("schedules.id"), nullable=False, index=True)
    seats = db.Column(db.JSON, nullable=False)  # ["1A", "1B"]
    total_price = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(20), nullable=False, default=entities.BOOKING_CONFIRMED)
    booking_time = db.Column(db.DateTime)

    held_seats = db.relationship('HeldSeat', backref='booking', lazy=True,
                                 cascade='all, delete-orphan')

    def to_entity(self):
        return entities.Booking(
            id=self.id,
            user_id=self.user_id,
            schedule_id=self.schedule_id,
            seats=list(self.seats or []),
            total_price=self.total_price,
            status=self.status,
            booking_time=self.booking_time,
        )


class HeldSeat(db.Model):
    """One row per seat held by a non-cancelled booking.

    The unique constraint makes the database refuse a second holder of the
    same seat on the same schedule.
    """
    __tablename__ = "held_seats"

    id = db.Column(db.Integer, primary_key=True)
    booking_id = db.Column(db.Integer, db.ForeignKey("bookings.id"), nullable=False)
    schedule_id = db.Column(db.Integer, db.ForeignKey("schedules.id"), nullable=False)
    seat_number = db.Column(db.String(10), nullable=False)

    __table_args__ = (
        db.UniqueConstraint("schedule_id", "seat_number", name="uq_schedule_seat"),
    )
