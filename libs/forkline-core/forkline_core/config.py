"""Project configuration.

Settings live in ``forkline.yaml`` at the project root; environment variables
(optionally from a ``.env`` file) override the port and host so a watch server
can be moved without editing the file.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import dotenv
from pydantic import ValidationError as PydanticValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from forkline_core.errors import InvalidInputError
from forkline_core.models import ForklineConfig

yaml = YAML()
yaml.preserve_quotes = True
yaml.default_flow_style = False

CONFIG_FILENAME = "forkline.yaml"


def find_project_root(start: Path | None = None) -> Path:
    """Walk up from start (default: cwd) to the directory holding forkline.yaml."""
    current = (start or Path.cwd()).resolve()
    if (current / CONFIG_FILENAME).exists():
        return current
    for parent in current.parents:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def config_path(root: Path) -> Path:
    return root / CONFIG_FILENAME


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.load(f) or {}
    except YAMLError as e:
        raise InvalidInputError(f"{path.name} is not valid YAML: {e}") from e
    if not isinstance(data, dict):
        raise InvalidInputError(f"{path.name} must contain a mapping")
    return dict(data)


def _env_overrides() -> dict[str, Any]:
    out: dict[str, Any] = {}
    port = os.environ.get("FORKLINE_PORT") or os.environ.get("PORT")
    if port:
        try:
            out["port"] = int(port)
        except ValueError as e:
            raise InvalidInputError(f"Invalid port: {port}") from e
    host = os.environ.get("FORKLINE_HOST")
    if host:
        out["host"] = host
    return out


def load_config(root: Path, *, load_env: bool = True) -> ForklineConfig:
    """Load forkline.yaml (if any) and apply environment overrides."""
    if load_env:
        dotenv.load_dotenv(root / ".env")
    data: dict[str, Any] = {}
    path = config_path(root)
    if path.exists():
        data = _read_yaml(path)
    data.update(_env_overrides())
    try:
        return ForklineConfig.model_validate(data)
    except PydanticValidationError as e:
        raise InvalidInputError(f"Invalid {CONFIG_FILENAME}: {e}") from e


def write_default_config(root: Path) -> Path:
    """Create forkline.yaml with default values; existing files are left alone."""
    path = config_path(root)
    if path.exists():
        return path
    cfg = ForklineConfig()
    payload = {
        "port": cfg.port,
        "host": cfg.host,
        "poll-interval": cfg.poll_interval,
        "lazy": cfg.lazy,
        "runtime-package": cfg.runtime_package,
        "ignore-dirs": list(cfg.ignore_dirs),
    }
    tmp = path.with_name(f".{path.name}.forklinetmp")
    with open(tmp, "w", encoding="utf-8") as f:
        yaml.dump(payload, f)
    tmp.replace(path)
    return path
