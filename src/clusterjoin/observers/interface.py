# src/clusterjoin/observers/interface.py
from __future__ import annotations
from typing import Protocol
from .events import BaseEvent


class Observer(Protocol):
    def notify(self, event: BaseEvent) -> None:
        ...
