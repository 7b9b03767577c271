# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/execution/ssh.py

from __future__ import annotations

import logging
import shlex
import socket
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence

import paramiko

from .runner import CommandResult

log = logging.getLogger("vpsforge")


@dataclass
class RemoteHost:
    """
    The single machine a run targets when it is not local.
    """
    address: str
    username: str = "root"
    port: int = 22
    pkey_path: Optional[Path] = None
    password: Optional[str] = None


class SSHCommandError(RuntimeError):
    pass


def open_ssh(host: RemoteHost, *, connect_timeout: float = 20.0) -> "SSHCommandRunner":
    client = paramiko.SSHClient()
    client.set_missing_host_key_policy(paramiko.AutoAddPolicy())

    pkey = None
    if host.pkey_path:
        for key_cls in (
            paramiko.Ed25519Key,
            paramiko.RSAKey,
            paramiko.ECDSAKey,
        ):
            try:
                pkey = key_cls.from_private_key_file(str(host.pkey_path))
                break
            except paramiko.SSHException:
                continue
        if pkey is None:
            raise SSHCommandError(f"Unsupported private key format: {host.pkey_path}")

    try:
        client.connect(
            hostname=host.address,
            port=host.port,
            username=host.username,
            password=host.password if not pkey else None,
            pkey=pkey,
            timeout=connect_timeout,
            allow_agent=True,
            look_for_keys=pkey is None,
        )
    except (paramiko.SSHException, socket.error) as exc:
        raise SSHCommandError(f"SSH connection to {host.username}@{host.address}:{host.port} failed: {exc}") from exc

    return SSHCommandRunner(client, current_user=host.username, label=host.address)


class SSHCommandRunner:
    """
    Runs an argv on the remote host. Each argv element is quoted with
    shlex, so the remote shell sees exactly the words we were given.
    """

    def __init__(self, client: paramiko.SSHClient, *, current_user: str, label: str = "ssh", timeout: float = 1800.0):
        self.client = client
        self.current_user = current_user
        self.label = label
        self.timeout = timeout

    def run(
        self,
        argv: Sequence[str],
        *,
        stdin: Optional[bytes] = None,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        argv = [str(a) for a in argv]
        cmd = shlex.join(argv)
        log.debug("[%s] $ %s", self.label, cmd)

        timeout = timeout or self.timeout
        start = time.time()
        try:
            chan_in, chan_out, chan_err = self.client.exec_command(cmd, timeout=timeout)
            if stdin is not None:
                chan_in.write(stdin)
                chan_in.flush()
            chan_in.channel.shutdown_write()

            out = chan_out.read().decode("utf-8", "replace")
            err = chan_err.read().decode("utf-8", "replace")
            rc = chan_out.channel.recv_exit_status()
        except socket.timeout:
            log.debug("[%s] timed out after %ss", self.label, timeout)
            return CommandResult(
                argv=argv,
                returncode=124,
                stderr=f"timed out after {timeout}s",
                duration_s=time.time() - start,
            )
        except (paramiko.SSHException, socket.error) as exc:
            # same code ssh(1) uses for a transport failure
            log.debug("[%s][exit 255] %s", self.label, exc)
            return CommandResult(
                argv=argv,
                returncode=255,
                stderr=f"ssh transport error: {exc}",
                duration_s=time.time() - start,
            )
        duration = time.time() - start

        if out:
            log.debug("[%s][stdout]\n%s", self.label, out.rstrip())
        if err:
            log.debug("[%s][stderr]\n%s", self.label, err.rstrip())
        log.debug("[%s][exit %d] (%.2fs)", self.label, rc, duration)

        return CommandResult(argv=argv, returncode=rc, stdout=out, stderr=err, duration_s=duration)

    def close(self) -> None:
        self.client.close()
