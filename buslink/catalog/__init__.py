from flask import Blueprint

bp = Blueprint('catalog', __name__, url_prefix='/api')

from buslink.catalog import routes  # noqa: E402,F401
