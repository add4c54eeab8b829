import os, logging, sys
from urllib.parse import unquote
from flask import Flask, Blueprint, current_app, jsonify, request, abort, make_response
from werkzeug.exceptions import HTTPException
from identifiers import InvalidIdentifier
from kv_store import SqlKeyValueStore, StorageUnavailable
from scene_store import SceneStore


DATABASE_URL = os.environ.get("DATABASE_URL", "sqlite:///scene_vault.db")
MAX_SCENE_BYTES = int(os.environ.get("MAX_SCENE_BYTES", 50 * 1024 * 1024))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
LOG_HANDLER_NAME = "scene_vault.stdout"

logger = logging.getLogger(__name__)

workspace = Blueprint("workspace", __name__, url_prefix="/workspace")


def configure_logging(level=LOG_LEVEL):
    root = logging.getLogger()
    if not any(h.get_name() == LOG_HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s %(message)s"))
        handler.set_name(LOG_HANDLER_NAME)
        root.addHandler(handler)
    root.setLevel(level)


def scenes() -> SceneStore:
    return current_app.extensions["scene_store"]

def _optional_int_header(name):
    raw = request.headers.get(name)
    if raw is None or raw == "":
        return None
    try:
        return int(raw)
    except ValueError:
        abort(400, description=f"Header {name} must be an integer")


@workspace.put("/<owner_id>/<scene_id>")
def save_scene(owner_id, scene_id):
    encryption_key = request.headers.get("x-encryption-key")
    if not encryption_key:
        abort(400, description="Missing encryption key")

    name = unquote(request.headers.get("x-scene-name", "Untitled"))
    scenes().save_scene(
        owner_id, scene_id, name, request.get_data(), encryption_key,
        thumbnail=request.headers.get("x-scene-thumbnail") or None,
        element_count=_optional_int_header("x-element-count"),
        file_count=_optional_int_header("x-file-count"),
    )
    return jsonify(success=True, sceneId=scene_id, message="Scene saved successfully")


@workspace.get("/<owner_id>")
def list_scenes(owner_id):
    return jsonify([meta.to_json() for meta in scenes().list_scenes(owner_id)])


@workspace.get("/<owner_id>/<scene_id>")
def get_scene(owner_id, scene_id):
    data = scenes().get_scene(owner_id, scene_id)
    if data is None:
        abort(404, description="Scene not found")
    resp = make_response(data)
    resp.headers["Content-Type"] = "application/octet-stream"
    return resp


@workspace.delete("/<owner_id>/<scene_id>")
def delete_scene(owner_id, scene_id):
    if not scenes().delete_scene(owner_id, scene_id):
        abort(404, description="Scene not found")
    return jsonify(success=True, message="Scene deleted successfully")


def _error(status, message):
    return jsonify(success=False, error=message), status

@workspace.errorhandler(InvalidIdentifier)
def invalid_identifier(exc):
    logger.info("Rejected %s %s: %s", request.method, request.path, exc)
    return _error(400, str(exc))


def create_app(database_url=None, store=None):
    """Build the Flask app; pass ``store`` to run on something other than SQL."""
    configure_logging()
    app = Flask(__name__)
    app.config.update(MAX_CONTENT_LENGTH=MAX_SCENE_BYTES, DATABASE_URL=database_url or DATABASE_URL)

    if store is None:
        store = SqlKeyValueStore(app.config["DATABASE_URL"])
    app.extensions["scene_store"] = SceneStore(store)
    app.register_blueprint(workspace)

    @app.errorhandler(HTTPException)
    def http_error(exc):
        return _error(exc.code, exc.description)

    @app.errorhandler(StorageUnavailable)
    def storage_error(exc):
        logger.exception("Storage failure on %s %s", request.method, request.path)
        return _error(500, "Storage unavailable")

    @app.errorhandler(Exception)
    def unexpected_error(exc):
        logger.exception("Unhandled error on %s %s", request.method, request.path)
        return _error(500, "Internal server error")

    return app


if __name__ == "__main__":
    create_app().run(debug=True)
