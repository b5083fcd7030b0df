import logging
from threading import Thread

from flask import current_app
from flask_mail import Message

logger = logging.getLogger(__name__)

NEW_BOOKING_TEMPLATE = (
    "Dear {owner_name},\n\n"
    "A new booking {reference} was made on {bus_name} ({bus_number}).\n"
    "Departure: {departure}\n"
    "Seats: {seats}\n"
    "Total: LKR {total}\n\n"
    "BusLink"
)


def _send_email_sync(app, recipient: str, subject: str, body: str) -> bool:
    """Synchronous email send (runs in background thread)."""
    logger.info('Starting booking email to %s', recipient)
    try:
        with app.app_context():
            mail = app.extensions.get('mail')
            if mail is None:
                logger.error('Flask-Mail not configured - cannot send email')
                return False
            msg = Message(
                subject=subject,
                recipients=[recipient],
                body=body,
                sender=app.config.get('MAIL_DEFAULT_SENDER'),
            )
            mail.send(msg)
            logger.info('Booking email sent to %s', recipient)
            return True
    except Exception as exc:
        logger.error('Booking email to %s failed: %s', recipient, exc)
        return False


def notify_owner_of_booking(booking, schedule, bus) -> None:
    """Email the bus owner about a new booking without blocking the request."""
    app = current_app._get_current_object()
    owner = app.store.get_user(bus.owner_id)
    if owner is None or not owner.email:
        return
    body = NEW_BOOKING_TEMPLATE.format(
        owner_name=owner.name,
        reference=f'BK-{booking.id:06d}',
        bus_name=bus.name,
        bus_number=bus.bus_number,
        departure=schedule.departure_time.strftime('%Y-%m-%d %H:%M'),
        seats=', '.join(booking.seats),
        total=booking.total_price,
    )
    Thread(
        target=_send_email_sync,
        args=(app, owner.email, f'New booking on {bus.bus_number}', body),
        daemon=True,
    ).start()
