# src/clusterjoin/join/interface.py

from __future__ import annotations

from pathlib import Path
from typing import Protocol

from clusterjoin.utils.ssh_runner import CommandResult


class Transport(Protocol):
    """
    Remote execution and file transfer against cluster machines, by address.
    Implementations raise on transport failure and report command exit
    status through CommandResult.
    """

    def run(self, address: str, command: str, *, sudo: bool = False) -> CommandResult:
        ...

    def upload(
        self,
        address: str,
        local_path: str | Path,
        remote_path: str,
        *,
        sudo: bool = False,
        mode: int = 0o644,
    ) -> None:
        ...

    def download(self, address: str, remote_path: str, local_path: str | Path, *, sudo: bool = False) -> None:
        ...

    def write_text(self, address: str, content: str, remote_path: str, *, sudo: bool = False) -> None:
        ...

    def close(self) -> None:
        ...
