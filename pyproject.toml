[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tubely"
version = "0.1.0"
description = "A small video API server backed by SQLite, with static file serving and ffprobe/ffmpeg video helpers"
requires-python = ">=3.10"
keywords = ["video", "wsgi", "sqlite", "ffmpeg", "ffprobe", "api", "server"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Environment :: Web Environment",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
    "Topic :: Multimedia :: Video",
]
dependencies = [
    "werkzeug",
    "python-dotenv",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[project.scripts]
tubely = "tubely.app:main"

[tool.hatch.build.targets.wheel]
packages = ["tubely"]

[tool.pytest.ini_options]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
warn_redundant_casts = true
