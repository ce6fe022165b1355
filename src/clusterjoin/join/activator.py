# src/clusterjoin/join/activator.py

from __future__ import annotations

import logging
import shlex
from typing import List

from clusterjoin.config import defaults
from .interface import Transport
from .steps import CommandStep, RemoteStep, run_steps

log = logging.getLogger("clusterjoin")


class ServiceActivator:
    """Reload systemd, then enable and start the agent. Exit status is the only signal."""

    def __init__(self, transport: Transport, service_name: str = defaults.AGENT_SERVICE_NAME):
        self.transport = transport
        self.service_name = service_name

    def steps(self) -> List[RemoteStep]:
        return [
            CommandStep("reload systemd", "systemctl daemon-reload"),
            CommandStep("enable agent service", f"systemctl enable {shlex.quote(self.service_name)} --now"),
        ]

    def activate(self, address: str) -> None:
        log.info("[%s] enabling %s", address, self.service_name)
        run_steps(self.transport, address, self.steps())
