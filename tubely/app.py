"""The HTTP application: configuration, routing, static files and handlers."""

from __future__ import annotations

import argparse
import logging
import os
import sqlite3
import uuid
from dataclasses import dataclass
from typing import Callable, Iterable, Mapping, Optional

from dotenv import load_dotenv
from werkzeug.exceptions import HTTPException, NotFound
from werkzeug.routing import Map, Rule
from werkzeug.serving import run_simple
from werkzeug.utils import redirect, send_from_directory
from werkzeug.wrappers import Request, Response

from tubely.database import Client as Database
from tubely.responses import respond_with_error, respond_with_json

logger = logging.getLogger(__name__)

WSGIApp = Callable[[dict, Callable], Iterable[bytes]]

_ENV_FIELDS = (
    ("db_path", "DB_PATH", "DB_URL must be set"),
    ("jwt_secret", "JWT_SECRET", "JWT_SECRET environment variable is not set"),
    ("platform", "PLATFORM", "PLATFORM environment variable is not set"),
    ("filepath_root", "FILEPATH_ROOT", "FILEPATH_ROOT environment variable is not set"),
    ("assets_root", "ASSETS_ROOT", "ASSETS_ROOT environment variable is not set"),
    ("s3_bucket", "S3_BUCKET", "S3_BUCKET environment variable is not set"),
    ("s3_region", "S3_REGION", "S3_REGION environment variable is not set"),
    ("s3_cf_distribution", "S3_CF_DISTRO", "S3_CF_DISTRO environment variable is not set"),
    ("port", "PORT", "PORT environment variable is not set"),
)


@dataclass(frozen=True)
class Config:
    """Settings the server needs, read from the environment."""

    db_path: str
    jwt_secret: str
    platform: str
    filepath_root: str
    assets_root: str
    s3_bucket: str
    s3_region: str
    s3_cf_distribution: str
    port: str

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Config":
        """Build a config from environment variables; raise ValueError if one is missing."""
        env = os.environ if environ is None else environ
        values = {}
        for field_name, variable, message in _ENV_FIELDS:
            value = env.get(variable, "")
            if not value:
                raise ValueError(message)
            values[field_name] = value
        return cls(**values)

    def ensure_assets_dir(self) -> None:
        """Create the assets directory if it does not exist."""
        if not os.path.exists(self.assets_root):
            os.mkdir(self.assets_root, 0o755)


@dataclass
class Thumbnail:
    """An image held in memory for a video."""

    data: bytes
    media_type: str


def no_cache_middleware(app: WSGIApp) -> WSGIApp:
    """Wrap a WSGI application so that its responses are never cached."""

    def wrapped(environ, start_response):
        def _start(status, headers, exc_info=None):
            kept = [(k, v) for k, v in headers if k.lower() != "cache-control"]
            kept.append(("Cache-Control", "no-store"))
            return start_response(status, kept, exc_info)

        return app(environ, _start)

    return wrapped


def _static_files(root: str, prefix: str) -> WSGIApp:
    """Serve files below root for request paths that start with prefix."""

    def serve(environ, start_response):
        request = Request(environ)
        relative = request.path[len(prefix):].lstrip("/")
        if relative == "" or relative.endswith("/"):
            relative += "index.html"
        try:
            response = send_from_directory(root, relative, environ)
        except HTTPException as exc:
            response = exc
        return response(environ, start_response)

    return serve


class App:
    """The WSGI application serving the API and static files."""

    def __init__(self, config: Config, db: Database):
        self.config = config
        self.db = db
        self.thumbnails: dict[uuid.UUID, Thumbnail] = {}
        self._app_files = _static_files(config.filepath_root, "/app")
        self._assets = no_cache_middleware(_static_files(config.assets_root, "/assets"))
        self._url_map = Map(
            [
                Rule("/api/thumbnails/<video_id>", methods=["GET"], endpoint="thumbnail_get"),
                Rule("/api/videos/<video_id>", methods=["GET"], endpoint="video_get"),
                Rule("/admin/reset", methods=["POST"], endpoint="reset"),
            ]
        )
        self._endpoints = {
            "thumbnail_get": self.handle_thumbnail_get,
            "video_get": self.handle_video_get,
            "reset": self.handle_reset,
        }

    def __call__(self, environ, start_response):
        path = environ.get("PATH_INFO", "") or "/"
        if path in ("/app", "/assets"):
            return redirect(path + "/", 301)(environ, start_response)
        if path.startswith("/assets/"):
            return self._assets(environ, start_response)
        if path.startswith("/app/"):
            return self._app_files(environ, start_response)

        request = Request(environ)
        adapter = self._url_map.bind_to_environ(environ)
        try:
            endpoint, args = adapter.match()
            response = self._endpoints[endpoint](request, **args)
        except HTTPException as exc:
            response = exc
        return response(environ, start_response)

    def handle_thumbnail_get(self, request: Request, video_id: str) -> Response:
        """Return the in-memory thumbnail of a video."""
        try:
            parsed = uuid.UUID(video_id)
        except ValueError as exc:
            return respond_with_error(400, "Invalid video ID", exc)
        thumbnail = self.thumbnails.get(parsed)
        if thumbnail is None:
            return respond_with_error(404, "Thumbnail not found", None)
        response = Response(thumbnail.data, status=200, content_type=thumbnail.media_type)
        response.headers["Content-Length"] = str(len(thumbnail.data))
        return response

    def handle_video_get(self, request: Request, video_id: str) -> Response:
        """Return a video's metadata."""
        try:
            parsed = uuid.UUID(video_id)
        except ValueError as exc:
            return respond_with_error(400, "Invalid video ID", exc)
        try:
            video = self.db.get_video(parsed)
        except sqlite3.Error as exc:
            return respond_with_error(404, "Couldn't get video", exc)
        if video is None:
            return respond_with_error(404, "Couldn't get video", None)
        return respond_with_json(200, video)

    def handle_reset(self, request: Request) -> Response:
        """Empty the database; only allowed on the dev platform."""
        if self.config.platform != "dev":
            return Response(
                "Reset is only allowed in dev environment.", status=403, mimetype="text/plain"
            )
        try:
            self.db.reset()
        except sqlite3.Error as exc:
            return respond_with_error(500, "Couldn't reset database", exc)
        return Response("Database reset to initial state", status=200, mimetype="text/plain")


def create_app(config: Config, db: Database) -> App:
    """Build the WSGI application."""
    return App(config, db)


def main(argv=None) -> int:
    """Load settings, open the database and serve until interrupted."""
    parser = argparse.ArgumentParser(prog="tubely", description="Serve the video API.")
    parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    load_dotenv(".env")
    try:
        config = Config.from_env()
    except ValueError as exc:
        logger.error("%s", exc)
        return 1

    try:
        db = Database(config.db_path)
    except sqlite3.Error as exc:
        logger.error("Couldn't connect to database: %s", exc)
        return 1

    with db:
        try:
            config.ensure_assets_dir()
        except OSError as exc:
            logger.error("Couldn't create assets directory: %s", exc)
            return 1
        try:
            port = int(config.port)
        except ValueError:
            logger.error("Invalid port: %s", config.port)
            return 1
        app = create_app(config, db)
        logger.info("Serving on: http://localhost:%s/app/", config.port)
        run_simple("0.0.0.0", port, app, threaded=True)
    return 0