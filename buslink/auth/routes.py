import re

from flask import Blueprint, current_app, jsonify
from flask_login import current_user, login_required, login_user, logout_user

from buslink.extensions import bcrypt, login_manager
from buslink.forms import load_form
from buslink.auth.forms import LoginForm, RegistrationForm

auth_bp = Blueprint('auth', __name__, url_prefix='/api')

EMAIL_RE = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


@login_manager.user_loader
def load_user(user_id):
    return current_app.store.get_user(int(user_id))


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'message': 'Unauthorized'}), 401


@auth_bp.route('/register', methods=['POST'])
def register():
    form = load_form(RegistrationForm)
    # the store refuses duplicate usernames and emails
    user = current_app.store.create_user(
        username=form.username.data,
        password=bcrypt.generate_password_hash(form.password.data).decode('utf-8'),
        name=form.name.data,
        email=form.email.data,
        phone=form.phone.data or None,
        role=form.role.data,
    )
    login_user(user)
    current_app.logger.info('Registered %s user %s', user.role, user.username)
    return jsonify(user.to_dict()), 201


@auth_bp.route('/login', methods=['POST'])
def login():
    form = load_form(LoginForm)
    store = current_app.store

    identifier = form.username.data.strip()
    if EMAIL_RE.match(identifier):
        user = store.get_user_by_email(identifier)
    else:
        user = store.get_user_by_username(identifier)

    if user is None or not bcrypt.check_password_hash(user.password, form.password.data):
        return jsonify({'message': 'Invalid username or password'}), 401

    login_user(user)
    return jsonify(user.to_dict()), 200


@auth_bp.route('/logout', methods=['POST'])
def logout():
    logout_user()
    return jsonify({'message': 'Logged out'}), 200


@auth_bp.route('/user')
@login_required
def me():
    return jsonify(current_user.to_dict())
