# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/join/preflight.py

from __future__ import annotations

import logging
import shlex
from typing import Sequence

from clusterjoin.config import defaults
from clusterjoin.config.models import DeployConfig
from clusterjoin.utils.ssh_runner import TransportError
from .addresses import normalize_server_addresses
from .interface import Transport
from .models import PreflightReport

log = logging.getLogger("clusterjoin")


class PreflightChecker:
    """
    Read-only checks run before any node is touched.

    Membership is checked for every candidate first, without any remote
    call. Only when all candidates are new do the elevated probes run:
    sudo on every server and candidate, then one service probe per
    candidate (no agent service already installed).
    """

    def __init__(self, transport: Transport, service_name: str = defaults.AGENT_SERVICE_NAME):
        self.transport = transport
        self.service_name = service_name

    def _service_probe(self) -> str:
        return (
            "systemctl --all --type service --no-legend | "
            f"grep -F {shlex.quote(self.service_name + '.service')}"
        )

    def check_membership(self, candidates: Sequence[str], cfg: DeployConfig, report: PreflightReport) -> None:
        servers = set(normalize_server_addresses(cfg.server_addresses))
        for address in candidates:
            if cfg.agent_regions.exists(address):
                region = cfg.agent_regions.region_of(address)
                log.error("node %s is already deployed (region %s)", address, region)
                report.fail(address, f"already deployed in region {region!r}")
            elif address in servers:
                log.error("node %s is a server node", address)
                report.fail(address, "is a server node")

    def check_sudo(self, address: str, report: PreflightReport) -> bool:
        try:
            res = self.transport.run(address, "true", sudo=True)
        except TransportError as exc:
            log.error("check node %s failed: %s", address, exc)
            report.fail(address, f"node unreachable: {exc}")
            return False
        if not res.ok:
            log.error("check node %s failed: %s", address, res.describe())
            report.fail(address, f"sudo check failed: {res.describe()}")
            return False
        return True

    def check_service(self, address: str, report: PreflightReport) -> None:
        try:
            res = self.transport.run(address, self._service_probe(), sudo=True)
        except TransportError as exc:
            log.error("check node %s failed: %s", address, exc)
            report.fail(address, f"node unreachable: {exc}")
            return
        log.debug("[%s] service probe: %s", address, res.describe())
        if res.exit_code == 0 and res.stdout.strip():
            log.error("%s service exists on %s, please clean old environment", self.service_name, address)
            report.fail(address, f"{self.service_name} service already present")
        elif res.exit_code not in (0, 1):
            # grep exits 1 on no match; anything else means the probe itself broke
            log.error("check node %s failed: %s", address, res.describe())
            report.fail(address, f"service probe failed: {res.describe()}")

    def run(self, candidates: Sequence[str], cfg: DeployConfig) -> PreflightReport:
        report = PreflightReport()

        self.check_membership(candidates, cfg, report)
        if not report.passed:
            return report

        for server in normalize_server_addresses(cfg.server_addresses):
            self.check_sudo(server, report)
        for address in candidates:
            # sudo -n also exits 1, so a failed sudo would read as "no match" below
            if self.check_sudo(address, report):
                self.check_service(address, report)

        if report.passed:
            log.info("preflight passed for %d node(s)", len(candidates))
        return report
