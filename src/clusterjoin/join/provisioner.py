# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/join/provisioner.py

from __future__ import annotations

import logging
import posixpath
import shlex
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List

from clusterjoin.config import defaults
from clusterjoin.config.models import DeployConfig
from clusterjoin.utils.ssh_runner import TransportError
from .errors import RemoteExecutionError
from .interface import Transport
from .render import TemplateRenderer, build_agent_config, remote_trust_paths
from .steps import CommandStep, RemoteStep, UploadStep, WriteStep, run_steps

log = logging.getLogger("clusterjoin")


class CertificateCache:
    """
    Local copies of the MQ CA/cert/key, pulled from the first server.

    Files already on disk are reused; the fetch itself runs at most once
    per instance, however many nodes are joined.
    """

    def __init__(self, transport: Transport, cfg: DeployConfig):
        self.transport = transport
        self.cfg = cfg
        self.fetch_count = 0
        self._ready = False

    def files(self) -> List[str]:
        mq = self.cfg.mq
        return [mq.ca, mq.client_cert, mq.client_key]

    def ensure(self) -> None:
        if self._ready:
            return
        server = self.cfg.first_server
        missing = [f for f in self.files() if not Path(f).expanduser().exists()]
        if missing:
            self.fetch_count += 1
            for path in missing:
                log.info("downloading %s from %s", path, server)
                try:
                    self.transport.download(server, path, Path(path).expanduser(), sudo=True)
                except TransportError as exc:
                    raise RemoteExecutionError(server, "download trust material", str(exc)) from exc
        self._ready = True


@dataclass(frozen=True)
class RenderedFiles:
    service_unit: str
    agent_config: str


class RemoteProvisioner:
    """Installs the agent binary, trust material and config on one node."""

    def __init__(
        self,
        transport: Transport,
        cfg: DeployConfig,
        *,
        renderer: TemplateRenderer | None = None,
        certs: CertificateCache | None = None,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ):
        self.transport = transport
        self.cfg = cfg
        self.renderer = renderer or TemplateRenderer()
        self.certs = certs or CertificateCache(transport, cfg)
        self.id_factory = id_factory

    # ------------------ binary ------------------

    def install_steps(self) -> List[RemoteStep]:
        pkg_dir = defaults.REMOTE_PKG_DIR
        archive = posixpath.join(pkg_dir, posixpath.basename(self.cfg.pkg))
        unpacked = posixpath.join(pkg_dir, defaults.UNPACKED_DIR_NAME)
        binary = posixpath.join(pkg_dir, defaults.AGENT_BINARY_RELPATH)
        q = shlex.quote
        return [
            CommandStep("create package dir", f"mkdir -p {q(pkg_dir)}"),
            UploadStep("transfer package", Path(self.cfg.pkg).expanduser(), archive),
            # no valid binary on the node between these two steps
            CommandStep("remove previous install", f"rm -rf {q(unpacked)}"),
            CommandStep("extract package", f"tar -xvf {q(archive)} -C {q(pkg_dir)}"),
            CommandStep("install agent binary", f"cp -rf {q(binary)} {q(defaults.REMOTE_BIN_DIR)}"),
        ]

    def install_binary(self, address: str) -> None:
        log.info("[%s] installing agent binary from %s", address, self.cfg.pkg)
        run_steps(self.transport, address, self.install_steps())

    # ------------------ trust material ------------------

    def trust_steps(self) -> List[RemoteStep]:
        mq = self.cfg.mq
        targets = remote_trust_paths(mq)
        files = [
            (mq.ca, targets.ca, 0o644),
            (mq.client_cert, targets.client_cert, 0o644),
            (mq.client_key, targets.client_key, 0o600),
        ]
        dirs = sorted({posixpath.dirname(remote) for _, remote, _ in files})
        steps: List[RemoteStep] = [
            CommandStep("create trust dirs", "mkdir -p " + " ".join(shlex.quote(d) for d in dirs)),
        ]
        for local, remote, mode in files:
            steps.append(
                UploadStep(f"push {posixpath.basename(remote)}", Path(local).expanduser(), remote, mode=mode)
            )
        return steps

    def distribute_trust(self, address: str) -> None:
        if not self.cfg.mq.tls:
            return
        self.certs.ensure()
        log.info("[%s] pushing MQ trust material", address)
        run_steps(self.transport, address, self.trust_steps())

    # ------------------ config ------------------

    def render(self, region: str) -> RenderedFiles:
        agent_cfg = build_agent_config(self.cfg, region, id_factory=self.id_factory)
        log.debug("agent config fields: region=%s agent_id=%s", agent_cfg.region, agent_cfg.agent_id)
        return RenderedFiles(
            service_unit=self.renderer.render_service_unit(),
            agent_config=self.renderer.render_agent_config(agent_cfg),
        )

    def delivery_steps(self, files: RenderedFiles) -> List[RemoteStep]:
        return [
            WriteStep("write service unit", defaults.AGENT_SERVICE_UNIT_PATH, files.service_unit),
            CommandStep("create config dir", f"mkdir -pv {shlex.quote(defaults.AGENT_CONFIG_DIR)}"),
            WriteStep("write agent config", defaults.AGENT_CONFIG_PATH, files.agent_config),
        ]

    def deliver(self, address: str, files: RenderedFiles) -> None:
        log.info("[%s] writing %s and %s", address, defaults.AGENT_SERVICE_UNIT_PATH, defaults.AGENT_CONFIG_PATH)
        run_steps(self.transport, address, self.delivery_steps(files))
