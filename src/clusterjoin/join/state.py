# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/join/state.py

from __future__ import annotations

import logging
import threading
from pathlib import Path

from clusterjoin.config.loader import write_deploy_config
from clusterjoin.config.models import DeployConfig
from .errors import PersistenceError

log = logging.getLogger("clusterjoin")


class TopologyStateWriter:
    """
    Records joined agents in the deploy config and flushes it to disk
    after every single addition.
    """

    def __init__(self, cfg: DeployConfig, path: str | Path):
        self.cfg = cfg
        self.path = Path(path).expanduser()
        self._lock = threading.Lock()

    def record(self, region: str, address: str) -> None:
        with self._lock:
            try:
                self.cfg.agent_regions.add(region, address)
            except ValueError as exc:
                raise PersistenceError(str(exc)) from exc
            try:
                write_deploy_config(self.cfg, self.path)
            except PersistenceError as exc:
                log.critical(
                    "agent %s is running but could not be recorded in %s; "
                    "re-run diagnostics before retrying the join",
                    address, self.path,
                )
                raise PersistenceError(
                    f"agent {address} (region {region}) is running but unrecorded: {exc}"
                ) from exc
        log.info("recorded agent %s in region %s (%s)", address, region, self.path)
