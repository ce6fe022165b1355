# src/clusterjoin/observers/events.py

from __future__ import annotations
from dataclasses import dataclass, asdict
from typing import List, Dict, Any, Optional
from datetime import datetime, timezone
import uuid


# ---------------------------------------------------------------------
# Base context and helper
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class BaseEvent:
    ts: str           # ISO timestamp
    run_id: str       # correlates all events in a single join invocation

    def dict(self) -> Dict[str, Any]:
        return asdict(self)


def new_ctx(run_id: Optional[str] = None) -> Dict[str, Any]:
    return {
        "ts": datetime.now(timezone.utc).isoformat(timespec="seconds").replace("+00:00", "Z"),
        "run_id": run_id or str(uuid.uuid4()),
    }


# ---------------------------------------------------------------------
# Preflight
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class PreflightPassed(BaseEvent):
    candidates: List[str]

@dataclass(frozen=True)
class PreflightFailed(BaseEvent):
    diagnostics: Dict[str, List[str]]


# ---------------------------------------------------------------------
# Per-node lifecycle
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class NodeJoinStarted(BaseEvent):
    address: str
    region: str

@dataclass(frozen=True)
class NodeStageEntered(BaseEvent):
    address: str
    stage: str

@dataclass(frozen=True)
class NodeJoined(BaseEvent):
    address: str
    region: str

@dataclass(frozen=True)
class NodeJoinFailed(BaseEvent):
    address: str
    region: str
    stage: str
    error: str


# ---------------------------------------------------------------------
# Summary
# ---------------------------------------------------------------------
@dataclass(frozen=True)
class JoinSummary(BaseEvent):
    joined: int
    failed: int
    skipped: int
