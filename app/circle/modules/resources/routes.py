from flask import Blueprint, abort, current_app, render_template, send_file

from app.circle.db import db_session
from app.circle.modules.resources.models import Resource
from app.circle.modules.resources.service import list_resources
from app.circle.rbac import require_login
from app.circle.storage import StorageError, storage_from_config

bp = Blueprint("resources", __name__)


@bp.get("/resources")
@require_login
def resources_list():
    return render_template("member/resources.html", resources=list_resources(db_session()))


@bp.get("/resources/<int:resource_id>/download")
@require_login
def resource_download(resource_id: int):
    resource = db_session().get(Resource, resource_id)
    if not resource:
        abort(404)
    storage = storage_from_config(current_app.config)
    try:
        fobj = storage.open(resource.storage_key)
    except (FileNotFoundError, StorageError):
        abort(404)
    return send_file(
        fobj,
        mimetype=resource.content_type,
        as_attachment=True,
        download_name=resource.file_name,
        max_age=0,
    )
