# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/join/steps.py

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Union

from clusterjoin.utils.ssh_runner import TransportError
from .errors import RemoteExecutionError
from .interface import Transport

log = logging.getLogger("clusterjoin")


@dataclass(frozen=True)
class CommandStep:
    """Run one shell command; any non-zero exit is a failure."""
    name: str
    command: str
    sudo: bool = True

    def apply(self, transport: Transport, address: str) -> None:
        res = transport.run(address, self.command, sudo=self.sudo)
        if not res.ok:
            raise RemoteExecutionError(address, self.name, res.describe())


@dataclass(frozen=True)
class WriteStep:
    """Write exactly ``content`` to ``path`` on the node."""
    name: str
    path: str
    content: str
    sudo: bool = True

    def apply(self, transport: Transport, address: str) -> None:
        transport.write_text(address, self.content, self.path, sudo=self.sudo)


@dataclass(frozen=True)
class UploadStep:
    name: str
    local_path: Path
    remote_path: str
    sudo: bool = True
    mode: int = 0o644

    def apply(self, transport: Transport, address: str) -> None:
        transport.upload(address, self.local_path, self.remote_path, sudo=self.sudo, mode=self.mode)


RemoteStep = Union[CommandStep, WriteStep, UploadStep]


def run_steps(transport: Transport, address: str, steps: Iterable[RemoteStep]) -> None:
    """
    Apply steps in order, stopping at the first failure.

    Raises RemoteExecutionError naming the step; transport errors are
    wrapped the same way.
    """
    for step in steps:
        log.debug("[%s] step: %s", address, step.name)
        try:
            step.apply(transport, address)
        except TransportError as exc:
            raise RemoteExecutionError(address, step.name, str(exc)) from exc
