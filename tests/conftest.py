from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from clusterjoin.config.loader import write_deploy_config
from clusterjoin.config.models import DeployConfig
from clusterjoin.utils.ssh_runner import CommandResult

# ----------------- Fake transport -----------------


class FakeTransport:
    """
    Records every remote operation. Commands succeed unless a response
    keyed by (address, substring) says otherwise; "*" matches any address.
    The service probe (grep -F) answers "no match" by default.
    """

    def __init__(self, responses: Dict[Tuple[str, str], object] = None):
        self.calls: List[tuple] = []
        self.responses = responses or {}
        self.files: Dict[Tuple[str, str], str] = {}
        self.modes: Dict[Tuple[str, str], int] = {}
        self.closed = False

    def _lookup(self, address, command):
        for (addr, needle), res in self.responses.items():
            if addr in (address, "*") and needle in command:
                if isinstance(res, Exception):
                    raise res
                return res
        return None

    def run(self, address, command, *, sudo=False):
        self.calls.append(("run", address, command))
        res = self._lookup(address, command)
        if res is not None:
            return res
        if "grep -F" in command:
            return CommandResult(exit_code=1)
        return CommandResult(exit_code=0)

    def upload(self, address, local_path, remote_path, *, sudo=False, mode=0o644):
        self.calls.append(("upload", address, str(remote_path)))
        self.modes[(address, str(remote_path))] = mode
        res = self._lookup(address, f"upload {remote_path}")
        if res is not None:
            raise RuntimeError("upload responses must be exceptions")

    def download(self, address, remote_path, local_path, *, sudo=False):
        self.calls.append(("download", address, str(remote_path)))
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        local_path.write_text(f"-----BEGIN {remote_path}-----\n")

    def write_text(self, address, content, remote_path, *, sudo=False):
        self.calls.append(("write", address, remote_path))
        self.files[(address, remote_path)] = content

    def close(self):
        self.closed = True

    def ops(self, op):
        return [c for c in self.calls if c[0] == op]

    def commands(self, address=None):
        return [c[2] for c in self.calls if c[0] == "run" and (address is None or c[1] == address)]


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def pkg_archive(tmp_path: Path) -> Path:
    p = tmp_path / "kc-v1.4.0.tar.gz"
    p.write_bytes(b"\x1f\x8b fake archive")
    return p


@pytest.fixture
def make_config(tmp_path: Path, pkg_archive: Path):
    """Build a DeployConfig and write it to tmp_path/deploy-config.yaml."""

    def _make(**overrides):
        data = {
            "serverAddresses": ["10.0.0.1"],
            "agentRegions": {},
            "mq": {
                "ips": ["10.0.0.1"],
                "port": 9889,
                "user": "admin",
                "secret": "s3cret",
            },
            "opLog": {"dir": "/var/log/kc-agent", "threshold": 1048576},
            "pkg": str(pkg_archive),
            "staticServerPort": 8081,
        }
        data.update(overrides)
        cfg = DeployConfig.model_validate(data)
        path = tmp_path / "deploy-config.yaml"
        write_deploy_config(cfg, path)
        return cfg, path

    return _make
