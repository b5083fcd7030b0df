import os

from buslink import create_app, db, bcrypt
from buslink.storage.entities import ROLE_ADMIN
import click

app = create_app(os.environ.get("BUSLINK_CONFIG", "config.DevelopmentConfig"))


@app.cli.command("create-admin")
@click.option("--email", required=True, help="Admin email")
@click.option("--password", required=True, help="Admin password")
@click.option("--username", default="admin", help="Username")
@click.option("--name", default="Administrator", help="Display name")
def create_admin(email: str, password: str, username: str, name: str) -> None:
    """Create an admin user."""
    store = app.store
    if store.get_user_by_email(email) or store.get_user_by_username(username):
        click.echo(f"User already exists: {username} / {email}")
        return
    user = store.create_user(
        username=username,
        email=email,
        name=name,
        password=bcrypt.generate_password_hash(password).decode('utf-8'),
        role=ROLE_ADMIN,
    )
    click.echo(f"Admin ready: {user.email} username={user.username} role={user.role}")


@app.cli.command("seed-routes")
def seed_routes() -> None:
    """Load the default intercity routes."""
    created = app.store.seed_default_routes()
    click.echo(f"Created {created} routes")


@app.cli.command("create-tables")
def create_tables() -> None:
    """Create database tables for the sqlalchemy storage backend."""
    db.create_all()
    click.echo("Tables created")


if __name__ == '__main__':
    app.run(debug=True, threaded=True)
