from flask import Blueprint

bp = Blueprint("novels", __name__, url_prefix="/novels")

from . import routes  # noqa: E402,F401
