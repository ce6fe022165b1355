# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/clusterjoin/utils/ssh_runner.py

from __future__ import annotations

import io
import itertools
import logging
import os
import shlex
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, Optional

import paramiko

from clusterjoin.config.models import SSHSettings
from clusterjoin.utils.retry import RetryError, retry

log = logging.getLogger("clusterjoin")

_tmp_counter = itertools.count(1)


class TransportError(RuntimeError):
    """The SSH connection or a file transfer failed."""


class SSHCommandError(TransportError):
    """A helper command behind a file transfer exited non-zero."""


@dataclass(frozen=True)
class CommandResult:
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def describe(self) -> str:
        detail = (self.stderr or self.stdout).strip()
        return f"exit status {self.exit_code}" + (f": {detail}" if detail else "")


def _tmp_path(kind: str) -> str:
    return f"/tmp/.clusterjoin.{kind}.{os.getpid()}.{next(_tmp_counter)}"


class SSHRunner:
    """Command execution and SFTP transfers over one paramiko client."""

    def __init__(
        self,
        client: paramiko.SSHClient,
        *,
        sudo_password: Optional[str] = None,
        user: str = "root",
    ):
        self.client = client
        self.sudo_password = sudo_password
        self.user = user

    def _wrap(self, cmd: str, sudo: bool) -> str:
        if not sudo:
            return f"bash -c {shlex.quote(cmd)}"
        if self.sudo_password:
            return f"sudo -S -p '' bash -c {shlex.quote(cmd)}"
        return f"sudo -n bash -c {shlex.quote(cmd)}"

    def run(
        self,
        cmd: str,
        *,
        sudo: bool = False,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        stdin, stdout, stderr = self.client.exec_command(self._wrap(cmd, sudo), timeout=timeout)
        if sudo and self.sudo_password:
            stdin.write(self.sudo_password + "\n")
            stdin.flush()
        out = stdout.read().decode("utf-8", errors="replace")
        err = stderr.read().decode("utf-8", errors="replace")
        rc = stdout.channel.recv_exit_status()
        return CommandResult(exit_code=rc, stdout=out, stderr=err)

    def _check(self, cmd: str, *, sudo: bool) -> CommandResult:
        res = self.run(cmd, sudo=sudo)
        if not res.ok:
            raise SSHCommandError(f"{cmd!r} failed with {res.describe()}")
        return res

    def _stage(self, src: BinaryIO, kind: str) -> str:
        """Copy src into a new owner-only file under /tmp and return its path."""
        tmp = _tmp_path(kind)
        sftp = self.client.open_sftp()
        try:
            with sftp.open(tmp, "wx") as f:
                f.chmod(0o600)
                shutil.copyfileobj(src, f)
        finally:
            sftp.close()
        return tmp

    def _install(self, tmp: str, remote_path: str, mode: int) -> None:
        self._check(
            f"install -m {oct(mode)[2:]} -o root -g root {shlex.quote(tmp)} {shlex.quote(remote_path)}"
            f" ; rc=$? ; rm -f {shlex.quote(tmp)} ; exit $rc",
            sudo=True,
        )

    def put_text(self, content: str, remote_path: str, *, sudo: bool = False, mode: int = 0o644) -> None:
        if sudo:
            self._install(self._stage(io.BytesIO(content.encode("utf-8")), "tmp"), remote_path, mode)
            return

        sftp = self.client.open_sftp()
        try:
            with sftp.open(remote_path, "w") as f:
                f.write(content)
        finally:
            sftp.close()

    def put_file(self, local_path: str | Path, remote_path: str, *, sudo: bool = False, mode: int = 0o644) -> None:
        if sudo:
            with open(local_path, "rb") as src:
                tmp = self._stage(src, "upload")
            self._install(tmp, remote_path, mode)
            return

        sftp = self.client.open_sftp()
        try:
            sftp.put(str(local_path), str(remote_path))
        finally:
            sftp.close()

    def get_file(self, remote_path: str, local_path: str | Path, *, sudo: bool = False) -> None:
        local_path = Path(local_path)
        local_path.parent.mkdir(parents=True, exist_ok=True)
        if sudo:
            # readable only by the login user while it sits in /tmp
            tmp = self._check("mktemp /tmp/.clusterjoin.download.XXXXXXXX", sudo=False).stdout.strip()
            try:
                self._check(
                    f"install -m 600 -o {shlex.quote(self.user)} {shlex.quote(remote_path)} {shlex.quote(tmp)}",
                    sudo=True,
                )
                self.get_file(tmp, local_path)
            finally:
                self.run(f"rm -f {shlex.quote(tmp)}", sudo=True)
            os.chmod(local_path, 0o600)
            return

        sftp = self.client.open_sftp()
        try:
            sftp.get(str(remote_path), str(local_path))
        finally:
            sftp.close()

    def close(self) -> None:
        self.client.close()


def _load_pkey(path: str) -> paramiko.PKey:
    for key_cls in (
        paramiko.Ed25519Key,
        paramiko.RSAKey,
        paramiko.ECDSAKey,
    ):
        try:
            return key_cls.from_private_key_file(path)
        except paramiko.SSHException:
            continue
    raise TransportError(f"unsupported private key format: {path}")


def open_ssh(address: str, settings: SSHSettings) -> SSHRunner:
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    pkey = _load_pkey(os.path.expanduser(settings.pkey_file)) if settings.pkey_file else None

    client.connect(
        hostname=address,
        port=settings.port,
        username=settings.user,
        password=settings.password if not pkey else None,
        pkey=pkey,
        timeout=settings.connect_timeout,
        allow_agent=True,
        look_for_keys=pkey is None and settings.password is None,
    )

    return SSHRunner(client, sudo_password=settings.password, user=settings.user)


class SSHTransport:
    """
    Address-keyed transport over SSH. One connection per address, opened
    on first use and kept until close().
    """

    def __init__(self, settings: SSHSettings, *, retry_delay: float = 5.0):
        self.settings = settings
        self.retry_delay = retry_delay
        self._runners: Dict[str, SSHRunner] = {}

    def _runner(self, address: str) -> SSHRunner:
        runner = self._runners.get(address)
        if runner is not None:
            return runner

        def _on_retry(attempt: int, exc: Exception) -> None:
            log.info(
                "[%s] SSH not ready (attempt %d/%d, %s: %s)",
                address, attempt, self.settings.connect_retries, type(exc).__name__, exc,
            )

        connect = retry(
            retries=self.settings.connect_retries,
            delay=self.retry_delay,
            retry_on=(paramiko.SSHException, OSError),
            on_retry=_on_retry,
        )(open_ssh)
        try:
            runner = connect(address, self.settings)
        except RetryError as exc:
            raise TransportError(
                f"failed to SSH into {address} as {self.settings.user!r}: {exc.__cause__}"
            ) from exc
        self._runners[address] = runner
        return runner

    def run(self, address: str, command: str, *, sudo: bool = False) -> CommandResult:
        log.debug("[%s] $ %s%s", address, "(sudo) " if sudo else "", command)
        try:
            res = self._runner(address).run(command, sudo=sudo, timeout=self.settings.command_timeout)
        except (paramiko.SSHException, OSError) as exc:
            raise TransportError(f"[{address}] {exc}") from exc
        log.debug("[%s] exit=%d stdout=%r stderr=%r", address, res.exit_code, res.stdout, res.stderr)
        return res

    def upload(
        self,
        address: str,
        local_path: str | Path,
        remote_path: str,
        *,
        sudo: bool = False,
        mode: int = 0o644,
    ) -> None:
        log.debug("[%s] upload %s -> %s (mode %o)", address, local_path, remote_path, mode)
        try:
            self._runner(address).put_file(local_path, remote_path, sudo=sudo, mode=mode)
        except (paramiko.SSHException, OSError) as exc:
            raise TransportError(f"[{address}] upload {local_path} -> {remote_path}: {exc}") from exc

    def download(self, address: str, remote_path: str, local_path: str | Path, *, sudo: bool = False) -> None:
        log.debug("[%s] download %s -> %s", address, remote_path, local_path)
        try:
            self._runner(address).get_file(remote_path, local_path, sudo=sudo)
        except (paramiko.SSHException, OSError) as exc:
            raise TransportError(f"[{address}] download {remote_path} -> {local_path}: {exc}") from exc

    def write_text(self, address: str, content: str, remote_path: str, *, sudo: bool = False) -> None:
        log.debug("[%s] write %d bytes -> %s", address, len(content), remote_path)
        try:
            self._runner(address).put_text(content, remote_path, sudo=sudo)
        except (paramiko.SSHException, OSError) as exc:
            raise TransportError(f"[{address}] write {remote_path}: {exc}") from exc

    def close(self) -> None:
        runners, self._runners = self._runners, {}
        for runner in runners.values():
            runner.close()
