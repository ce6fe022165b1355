# src/clusterjoin/join/models.py

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional


class JoinStage(str, Enum):
    PENDING = "pending"
    INSTALL = "install"
    CERTS = "certs"
    RENDER = "render"
    DELIVER = "deliver"
    ACTIVATE = "activate"
    RECORD = "record"
    JOINED = "joined"


@dataclass
class NodeJoinResult:
    """
    Outcome for one agent. ``stage`` is the last stage entered; on
    failure it names the step that broke.
    """
    address: str
    region: str
    stage: JoinStage = JoinStage.PENDING
    success: bool = False
    error: Optional[str] = None


@dataclass
class PreflightReport:
    passed: bool = True
    diagnostics: Dict[str, List[str]] = field(default_factory=dict)

    def fail(self, address: str, reason: str) -> None:
        self.passed = False
        self.diagnostics.setdefault(address, []).append(reason)

    def summary(self) -> str:
        lines = []
        for address, reasons in self.diagnostics.items():
            for reason in reasons:
                lines.append(f"  {address}: {reason}")
        return "\n".join(lines)


@dataclass
class AgentPlan:
    """Expanded --agent input: region -> addresses, in input order."""
    regions: Dict[str, List[str]]

    def ordered(self) -> List[tuple[str, str]]:
        return [(region, address) for region in sorted(self.regions) for address in self.regions[region]]

    def addresses(self) -> List[str]:
        return [address for _, address in self.ordered()]
