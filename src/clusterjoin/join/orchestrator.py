# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/join/orchestrator.py

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional, Sequence

from clusterjoin.config.models import DeployConfig
from clusterjoin.observers.dispatcher import EventBus
from clusterjoin.observers.events import (
    JoinSummary,
    NodeJoinFailed,
    NodeJoinStarted,
    NodeJoined,
    NodeStageEntered,
    PreflightFailed,
    PreflightPassed,
    new_ctx,
)
from .activator import ServiceActivator
from .addresses import expand_agents
from .errors import JoinError, NodeJoinError, PreflightError, ValidationError
from .interface import Transport
from .models import AgentPlan, JoinStage, NodeJoinResult, PreflightReport
from .preflight import PreflightChecker
from .provisioner import RemoteProvisioner
from .state import TopologyStateWriter

log = logging.getLogger("clusterjoin")


class JoinOrchestrator:
    """
    Joins agent nodes one at a time: validate, preflight every candidate,
    then per node install -> certs -> render -> deliver -> activate ->
    record. Each joined node is persisted before the next one starts.

    A failure stops the run. Nodes joined earlier in the run stay joined
    and recorded; the failed node is left as it is.
    """

    def __init__(
        self,
        cfg: DeployConfig,
        config_path: str | Path,
        transport: Transport,
        *,
        provisioner: Optional[RemoteProvisioner] = None,
        activator: Optional[ServiceActivator] = None,
        preflight: Optional[PreflightChecker] = None,
        state: Optional[TopologyStateWriter] = None,
        bus: Optional[EventBus] = None,
        run_id: Optional[str] = None,
    ):
        self.cfg = cfg
        self.transport = transport
        self.provisioner = provisioner or RemoteProvisioner(transport, cfg)
        self.activator = activator or ServiceActivator(transport)
        self.preflight = preflight or PreflightChecker(transport)
        self.state = state or TopologyStateWriter(cfg, config_path)
        self.bus = bus or EventBus()
        self.run_id = run_id

    def _emit(self, event_cls, **fields) -> None:
        self.bus.emit(event_cls(**new_ctx(self.run_id), **fields))

    # ------------------ validation ------------------

    def validate(self, agent_tokens: Sequence[str]) -> AgentPlan:
        """Local checks only; nothing here touches the network."""
        if not agent_tokens:
            raise ValidationError("must specify at least one agent node")
        if not self.cfg.server_addresses:
            log.error("joining an agent node requires at least one server node in the deploy config")
            raise ValidationError("joining an agent node requires at least one server node")

        plan = AgentPlan(expand_agents(agent_tokens, self.cfg.default_region))

        if not self.cfg.pkg:
            raise ValidationError("deploy config has no pkg (agent package archive)")
        if not Path(self.cfg.pkg).expanduser().is_file():
            raise ValidationError(f"package archive {self.cfg.pkg} does not exist")
        if not self.cfg.mq.ips:
            raise ValidationError("deploy config has no mq.ips")
        if self.cfg.mq.tls:
            missing = [
                key
                for key, value in (
                    ("mq.ca", self.cfg.mq.ca),
                    ("mq.clientCert", self.cfg.mq.client_cert),
                    ("mq.clientKey", self.cfg.mq.client_key),
                )
                if not value
            ]
            if missing:
                raise ValidationError(f"mq.tls is enabled but {', '.join(missing)} not set")
        return plan

    # ------------------ preflight ------------------

    def check(self, plan: AgentPlan) -> PreflightReport:
        report = self.preflight.run(plan.addresses(), self.cfg)
        if not report.passed:
            self._emit(PreflightFailed, diagnostics=report.diagnostics)
            raise PreflightError(f"preflight failed:\n{report.summary()}", report)
        self._emit(PreflightPassed, candidates=plan.addresses())
        return report

    # ------------------ per node ------------------

    def _enter(self, result: NodeJoinResult, stage: JoinStage) -> None:
        result.stage = stage
        self._emit(NodeStageEntered, address=result.address, stage=stage.value)

    def join_node(self, result: NodeJoinResult) -> None:
        address, region = result.address, result.region
        log.info("[%s] joining agent node (region %s)", address, region)
        self._emit(NodeJoinStarted, address=address, region=region)

        self._enter(result, JoinStage.INSTALL)
        self.provisioner.install_binary(address)

        self._enter(result, JoinStage.CERTS)
        self.provisioner.distribute_trust(address)

        self._enter(result, JoinStage.RENDER)
        files = self.provisioner.render(region)

        self._enter(result, JoinStage.DELIVER)
        self.provisioner.deliver(address, files)

        self._enter(result, JoinStage.ACTIVATE)
        self.activator.activate(address)

        self._enter(result, JoinStage.RECORD)
        self.state.record(region, address)

        result.stage = JoinStage.JOINED
        result.success = True
        self._emit(NodeJoined, address=address, region=region)

    def run(self, agent_tokens: Sequence[str]) -> List[NodeJoinResult]:
        plan = self.validate(agent_tokens)
        self.check(plan)

        results = [NodeJoinResult(address=a, region=r) for r, a in plan.ordered()]
        try:
            for result in results:
                try:
                    self.join_node(result)
                except JoinError as exc:
                    result.error = str(exc)
                    log.error("[%s] join failed at stage %s: %s", result.address, result.stage.value, exc)
                    self._emit(
                        NodeJoinFailed,
                        address=result.address,
                        region=result.region,
                        stage=result.stage.value,
                        error=str(exc),
                    )
                    raise NodeJoinError(f"join agent node failed: {exc}", results) from exc
        finally:
            joined = sum(1 for r in results if r.success)
            failed = sum(1 for r in results if r.error is not None)
            self._emit(JoinSummary, joined=joined, failed=failed, skipped=len(results) - joined - failed)

        log.info("agent node join completed for %d node(s)", len(results))
        return results
