import uuid

import pytest
from werkzeug.test import Client as TestClient

from tubely.app import App, Config, Thumbnail, create_app, no_cache_middleware
from tubely.database import Client as Database

FULL_ENV = {
    "DB_PATH": "tubely.db",
    "JWT_SECRET": "secret",
    "PLATFORM": "dev",
    "FILEPATH_ROOT": "./app",
    "ASSETS_ROOT": "./assets",
    "S3_BUCKET": "bucket",
    "S3_REGION": "us-east-2",
    "S3_CF_DISTRO": "cdn.example.com",
    "PORT": "8091",
}


def _config(tmp_path, platform="dev"):
    app_root = tmp_path / "app"
    app_root.mkdir()
    assets_root = tmp_path / "assets"
    assets_root.mkdir()
    return Config(
        db_path=str(tmp_path / "db.sqlite"),
        jwt_secret="secret",
        platform=platform,
        filepath_root=str(app_root),
        assets_root=str(assets_root),
        s3_bucket="bucket",
        s3_region="us-east-2",
        s3_cf_distribution="cdn.example.com",
        port="8091",
    )


@pytest.fixture
def db(tmp_path):
    with Database(str(tmp_path / "db.sqlite")) as database:
        yield database


@pytest.fixture
def config(tmp_path):
    return _config(tmp_path)


@pytest.fixture
def app(config, db):
    return create_app(config, db)


@pytest.fixture
def client(app):
    return TestClient(app)


def test_config_from_env_reads_all_fields():
    config = Config.from_env(FULL_ENV)
    assert config.db_path == "tubely.db"
    assert config.platform == "dev"
    assert config.s3_cf_distribution == "cdn.example.com"
    assert config.port == "8091"


@pytest.mark.parametrize(
    "variable, message",
    [
        ("DB_PATH", "DB_URL must be set"),
        ("JWT_SECRET", "JWT_SECRET environment variable is not set"),
        ("S3_CF_DISTRO", "S3_CF_DISTRO environment variable is not set"),
        ("PORT", "PORT environment variable is not set"),
    ],
)
def test_config_from_env_missing_variable(variable, message):
    env = dict(FULL_ENV)
    env[variable] = ""
    with pytest.raises(ValueError) as info:
        Config.from_env(env)
    assert str(info.value) == message


def test_ensure_assets_dir_creates_and_is_idempotent(tmp_path):
    target = tmp_path / "new_assets"
    config = Config.from_env({**FULL_ENV, "ASSETS_ROOT": str(target)})
    config.ensure_assets_dir()
    assert target.is_dir()
    config.ensure_assets_dir()
    assert target.is_dir()


def test_no_cache_middleware_replaces_cache_header():
    def inner(environ, start_response):
        start_response("200 OK", [("Cache-Control", "max-age=60"), ("Content-Type", "text/plain")])
        return [b"hello"]

    response = TestClient(no_cache_middleware(inner)).get("/")
    assert response.headers.get_all("Cache-Control") == ["no-store"]
    assert response.data == b"hello"


def test_thumbnail_get_invalid_id(client):
    response = client.get("/api/thumbnails/not-a-uuid")
    assert response.status_code == 400
    assert response.get_json() == {"error": "Invalid video ID"}


def test_thumbnail_get_missing(client):
    response = client.get(f"/api/thumbnails/{uuid.uuid4()}")
    assert response.status_code == 404
    assert response.get_json() == {"error": "Thumbnail not found"}


def test_thumbnail_get_returns_stored_image(app, client):
    video_id = uuid.uuid4()
    data = b"\x89PNG fake image bytes"
    app.thumbnails[video_id] = Thumbnail(data=data, media_type="image/png")
    response = client.get(f"/api/thumbnails/{video_id}")
    assert response.status_code == 200
    assert response.data == data
    assert response.headers["Content-Type"] == "image/png"
    assert response.headers["Content-Length"] == str(len(data))


def test_video_get_returns_metadata(db, client):
    user = db.create_user("user@example.com", "password")
    video = db.create_video("Boots", "A video about boots", user.id)
    response = client.get(f"/api/videos/{video.id}")
    assert response.status_code == 200
    body = response.get_json()
    assert body["id"] == str(video.id)
    assert body["title"] == "Boots"
    assert body["description"] == "A video about boots"
    assert body["user_id"] == str(user.id)
    assert body["thumbnail_url"] is None


def test_video_get_invalid_and_unknown(client):
    bad = client.get("/api/videos/nope")
    assert bad.status_code == 400
    assert bad.get_json() == {"error": "Invalid video ID"}
    missing = client.get(f"/api/videos/{uuid.uuid4()}")
    assert missing.status_code == 404
    assert missing.get_json() == {"error": "Couldn't get video"}


def test_video_route_rejects_wrong_method(client):
    response = client.post(f"/api/videos/{uuid.uuid4()}")
    assert response.status_code == 405


def test_reset_in_dev_empties_database(db, client):
    db.create_user("user@example.com", "password")
    response = client.post("/admin/reset")
    assert response.status_code == 200
    assert response.data == b"Database reset to initial state"
    assert db.get_user_by_email("user@example.com") is None


def test_reset_forbidden_outside_dev(tmp_path, db):
    app = App(_config(tmp_path, platform="prod"), db)
    db.create_user("user@example.com", "password")
    response = TestClient(app).post("/admin/reset")
    assert response.status_code == 403
    assert response.data == b"Reset is only allowed in dev environment."
    assert db.get_user_by_email("user@example.com").email == "user@example.com"


def test_assets_served_without_cache(config, client):
    with open(f"{config.assets_root}/pic.png", "wb") as handle:
        handle.write(b"image-bytes")
    response = client.get("/assets/pic.png")
    assert response.status_code == 200
    assert response.data == b"image-bytes"
    assert response.headers["Cache-Control"] == "no-store"


def test_app_files_serve_index(config, client):
    with open(f"{config.filepath_root}/index.html", "w") as handle:
        handle.write("<h1>Tubely</h1>")
    response = client.get("/app/")
    assert response.status_code == 200
    assert response.data == b"<h1>Tubely</h1>"
    assert "Cache-Control" not in response.headers or response.headers["Cache-Control"] != "no-store"


def test_app_files_missing_and_traversal(client):
    assert client.get("/app/missing.js").status_code == 404
    assert client.get("/app/../db.sqlite").status_code == 404


def test_bare_prefix_redirects(client):
    response = client.get("/app")
    assert response.status_code == 301
    assert response.headers["Location"].endswith("/app/")


def test_unknown_route_is_not_found(client):
    assert client.get("/api/unknown").status_code == 404