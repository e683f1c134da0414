# tubely

A small video API server. It keeps users, refresh tokens and video metadata
in a SQLite database, serves a static web app and an assets directory over
WSGI, and offers helpers that use `ffprobe` and `ffmpeg` to classify a
video's aspect ratio and rewrite it for fast start.

## Installing

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

The helpers in `tubely.media` call `ffprobe` and `ffmpeg`, which must be on
your `PATH` if you use them.

## Configuration

The server reads its settings from the environment. A `.env` file in the
working directory is loaded first, if present. `Config.from_env` requires
every one of these to be set and non-empty, and raises `ValueError` naming
the first one missing:

| Variable        | Meaning                                                   |
|-----------------|-----------------------------------------------------------|
| `DB_PATH`       | Path to the SQLite database file                          |
| `JWT_SECRET`    | Secret for access tokens (read and stored in the config)  |
| `PLATFORM`      | Deployment platform; `dev` enables the reset endpoint     |
| `FILEPATH_ROOT` | Directory served under `/app/`                            |
| `ASSETS_ROOT`   | Directory served under `/assets/` (created if missing)    |
| `S3_BUCKET`     | Bucket name (read and stored in the config)               |
| `S3_REGION`     | Bucket region (read and stored in the config)             |
| `S3_CF_DISTRO`  | Distribution host name (read and stored in the config)    |
| `PORT`          | Port to listen on                                         |

An example `.env`:

```
DB_PATH=tubely.db
JWT_SECRET=secret
PLATFORM=dev
FILEPATH_ROOT=./app
ASSETS_ROOT=./assets
S3_BUCKET=example-bucket
S3_REGION=us-east-1
S3_CF_DISTRO=cdn.example.com
PORT=8091
```

## Running

```
tubely
```

The command takes no options. It loads the settings, opens the database,
creates the assets directory if needed, logs the address of the web app
(for example `http://localhost:8091/app/`) and serves on all interfaces
until interrupted. If a setting is missing or invalid, it logs the problem
and exits with status 1.

### Routes

- `GET /app/...` – static files from `FILEPATH_ROOT`; a path ending in `/`
  serves its `index.html`, and `/app` redirects to `/app/`
- `GET /assets/...` – files from `ASSETS_ROOT`, always sent with
  `Cache-Control: no-store`
- `GET /api/videos/{videoID}` – a video's metadata as JSON; 400 for an
  invalid ID, 404 if there is no such video
- `GET /api/thumbnails/{videoID}` – a thumbnail held in memory in
  `App.thumbnails`; 404 if there is none
- `POST /admin/reset` – empties every table; answers 403 unless `PLATFORM`
  is `dev`

Errors from the API come back as JSON of the form `{"error": "message"}`.

## Using it as a library

The database layer can be used on its own:

```python
from tubely.database import Client

password = "password"
with Client("tubely.db") as db:
    user = db.create_user("someone@example.com", password)
    video = db.create_video("My clip", "A short clip", user.id)
    print(db.get_videos(user.id))
```

`Client` also manages refresh tokens (`create_refresh_token`,
`get_refresh_token`, `revoke_refresh_token`, `delete_refresh_token`,
`get_user_by_refresh_token`) and can update or delete users and videos.
Lookups return `None` when nothing matches.

The media helpers work on files on disk:

```python
from tubely.media import (
    get_video_aspect_ratio,
    key_prefix_for_ratio,
    process_video_for_fast_start,
)

ratio = get_video_aspect_ratio("clip.mp4")        # "16:9", "9:16" or "other"
prefix = key_prefix_for_ratio(ratio)              # "landscape/", "portrait/" or "other/"
fast = process_video_for_fast_start("clip.mp4")   # writes "clip.mp4.processing"
```

`classify_aspect_ratio(width, height)` and `parse_probe_output(output)` do
the same classification without running `ffprobe`.

`tubely.responses` has `respond_with_json` and `respond_with_error`, which
build Werkzeug responses, and `encode_payload`, which turns dataclasses,
UUIDs and datetimes into compact JSON.

To embed the server in another WSGI host, build the application with
`tubely.app.create_app(config, db)`, where `config` is a
`tubely.app.Config` (for instance from `Config.from_env(os.environ)`) and
`db` is a `tubely.database.Client`. `tubely.app.no_cache_middleware` wraps
any WSGI application so its responses carry `Cache-Control: no-store`.

## What it does not do

The HTTP server has no endpoints for creating users, logging in, refreshing
or revoking tokens, creating, listing or deleting videos, or uploading
thumbnails and videos. It does not issue or check access tokens, and it does
not upload anything to object storage: the `JWT_SECRET` and `S3_*` settings
are required but not used by any route. Those operations are available only
through `tubely.database.Client` and `tubely.media` when used as a library.
Thumbnails served by `/api/thumbnails/...` exist only if code puts them into
`App.thumbnails`, and they are lost when the process stops.