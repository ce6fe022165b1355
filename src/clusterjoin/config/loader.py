# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/config/loader.py

import logging
import os
import stat
import tempfile
from pathlib import Path

import pydantic
import yaml

from clusterjoin.join.errors import PersistenceError, ValidationError
from .models import DeployConfig

log = logging.getLogger("clusterjoin")


def _load_yaml(path: Path) -> dict:
    data = yaml.safe_load(path.read_text())
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError(f"{path}: expected a mapping at the top level")
    return data


def load_deploy_config(path: str | Path) -> DeployConfig:
    """
    Load and validate the deploy config (cluster topology).

    Raises ValidationError when the file is missing, is not YAML, or
    does not match the DeployConfig schema.
    """
    path = Path(path).expanduser()
    if not path.is_file():
        raise ValidationError(f"deploy config {path} does not exist")

    try:
        data = _load_yaml(path)
    except yaml.YAMLError as exc:
        raise ValidationError(f"deploy config {path} is not valid YAML: {exc}") from exc

    try:
        cfg = DeployConfig.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(f"deploy config {path} is invalid:\n{exc}") from exc

    log.debug(
        "loaded deploy config %s: %d server(s), %d agent(s)",
        path, len(cfg.server_addresses), len(cfg.agent_regions.list_addresses()),
    )
    return cfg


def dump_deploy_config(cfg: DeployConfig) -> str:
    data = cfg.model_dump(by_alias=True, mode="json")
    return yaml.safe_dump(data, sort_keys=False, default_flow_style=False)


def write_deploy_config(cfg: DeployConfig, path: str | Path) -> None:
    """
    Serialize the whole config and replace *path* atomically.

    The content goes to a temp file in the same directory first so a
    crash mid-write never leaves a truncated topology behind.
    An existing file keeps its permissions; a new one is created owner-only.
    """
    path = Path(path).expanduser()
    try:
        content = dump_deploy_config(cfg)
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                if path.exists():
                    os.fchmod(f.fileno(), stat.S_IMODE(path.stat().st_mode))
                f.write(content)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
    except (OSError, yaml.YAMLError) as exc:
        raise PersistenceError(f"failed to write deploy config {path}: {exc}") from exc
    log.debug("wrote deploy config %s", path)
