from datetime import datetime, timedelta

from buslink import create_app, db, bcrypt
from buslink.storage.entities import ROLE_ADMIN, ROLE_BUS_OWNER, generate_seat_layout


def init_db():
    app = create_app('config.ProductionConfig')
    with app.app_context():
        # Create all tables
        db.create_all()
        store = app.store

        if store.get_user_by_username('admin') is not None:
            print("Database already initialized.")
            return

        store.create_user(
            username='admin',
            email='admin@buslink.lk',
            name='Administrator',
            phone='+94700000000',
            password=bcrypt.generate_password_hash('admin123').decode('utf-8'),
            role=ROLE_ADMIN,
        )
        owner = store.create_user(
            username='owner',
            email='owner@buslink.lk',
            name='Sample Bus Owner',
            phone='+94700000001',
            password=bcrypt.generate_password_hash('owner123').decode('utf-8'),
            role=ROLE_BUS_OWNER,
        )

        store.seed_default_routes()
        route = store.get_route_by_locations('Colombo', 'Kandy')

        bus = store.create_bus(
            owner_id=owner.id,
            name='Hill Country Express',
            bus_number='NB-1234',
            capacity=40,
            has_ac=True,
            seat_layout=generate_seat_layout(40),
        )

        departure = datetime.utcnow().replace(minute=0, second=0, microsecond=0) + timedelta(days=1)
        store.create_schedule(
            bus_id=bus.id,
            route_id=route.id,
            departure_time=departure,
            arrival_time=departure + timedelta(minutes=route.estimated_duration),
            price=1200,
        )

        print("Database initialized successfully!")
        print("Admin credentials:")
        print("Username: admin")
        print("Password: admin123")


if __name__ == '__main__':
    init_db()
