# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/join/errors.py

from __future__ import annotations

from typing import TYPE_CHECKING, List, Optional

if TYPE_CHECKING:
    from .models import NodeJoinResult, PreflightReport


class JoinError(RuntimeError):
    """Base class for join failures."""


class ValidationError(JoinError):
    """Bad or missing input. Raised before any network activity."""


class AddressParseError(ValidationError):
    """An --agent token could not be expanded."""


class PreflightError(JoinError):
    """A candidate node is already joined, unreachable, or runs a conflicting service."""

    def __init__(self, message: str, report: "PreflightReport"):
        super().__init__(message)
        self.report = report


class RemoteExecutionError(JoinError):
    """A remote step exited non-zero or the transport failed."""

    def __init__(self, address: str, step: str, detail: str):
        super().__init__(f"[{address}] {step}: {detail}")
        self.address = address
        self.step = step
        self.detail = detail


class TemplateRenderError(JoinError):
    """The agent config or unit template could not be rendered."""


class PersistenceError(JoinError):
    """The deploy config could not be written."""


class NodeJoinError(JoinError):
    """Wraps the failure that stopped a join run, with the per-node outcomes so far."""

    def __init__(self, message: str, results: Optional[List["NodeJoinResult"]] = None):
        super().__init__(message)
        self.results = list(results or [])
