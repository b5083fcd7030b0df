from datetime import datetime
from buslink.extensions import db
from buslink.storage import entities


class User(db.Model):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(64), unique=True, nullable=False)
    password = db.Column(db.String(256), nullable=False)
    name = db.Column(db.String(120), nullable=False)
    email = db.Column(db.String(120), unique=True, nullable=False)
    phone = db.Column(db.String(30))
    role = db.Column(db.String(20), nullable=False, default=entities.ROLE_PASSENGER)  # passenger, bus_owner, admin
    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def to_entity(self) -> entities.User:
        return entities.User(
            id=self.id,
            username=self.username,
            password=self.password,
            name=self.name,
            email=self.email,
            phone=self.phone,
            role=self.role,
            created_at=self.created_at,
        )

    def __repr__(self):
        return f'<User {self.username}>'
