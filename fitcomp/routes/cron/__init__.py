from flask import Blueprint

bp = Blueprint("cron", __name__)

from fitcomp.routes.cron import routes  # noqa: F401, E402
