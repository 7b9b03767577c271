# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/config/models.py

from __future__ import annotations

import logging
import re
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

log = logging.getLogger("vpsforge")

_SHA256_RE = re.compile(r"^[0-9a-f]{64}$")


class Identity(str, Enum):
    ROOT = "root"
    TARGET_USER = "target_user"


class Command(BaseModel):
    """
    A program plus its argument vector. Never a shell string.
    """
    model_config = ConfigDict(frozen=True)

    program: str
    args: List[str] = Field(default_factory=list)

    @classmethod
    def shell(cls, script: str) -> "Command":
        return cls(program="bash", args=["-o", "pipefail", "-c", script])

    def argv(self) -> List[str]:
        return [self.program, *self.args]

    def display(self) -> str:
        # bash -c snippets read better as the snippet itself
        if self.program == "bash" and self.args[:3] == ["-o", "pipefail", "-c"] and len(self.args) == 4:
            return self.args[3]
        return " ".join([self.program, *self.args])


def _coerce_command(value: Any) -> Any:
    """Accept `{shell: "..."}` or a bare string as shorthand for a bash snippet."""
    if isinstance(value, str):
        return Command.shell(value)
    if isinstance(value, dict) and "shell" in value:
        return Command.shell(value["shell"])
    return value


class VerifiedInstaller(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool: str                                   # key in checksums.yaml
    runner: Literal["bash", "sh"] = "bash"
    args: List[str] = Field(default_factory=list)
    fallback_url: Optional[str] = None          # accepted, never used


class InstallStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    command: Optional[Command] = None
    verified_installer: Optional[VerifiedInstaller] = None

    @model_validator(mode="before")
    @classmethod
    def _shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"command": Command.shell(data)}
        if isinstance(data, dict):
            data = dict(data)
            if "shell" in data:
                data["command"] = Command.shell(data.pop("shell"))
            elif "command" in data:
                data["command"] = _coerce_command(data["command"])
        return data

    @model_validator(mode="after")
    def _exactly_one(self) -> "InstallStep":
        if (self.command is None) == (self.verified_installer is None):
            raise ValueError("install step needs exactly one of 'command' or 'verified_installer'")
        return self

    def display(self) -> str:
        if self.verified_installer is not None:
            vi = self.verified_installer
            return f"verified installer {vi.tool} ({' '.join([vi.runner, *vi.args])})"
        return self.command.display()


class VerifyStep(BaseModel):
    model_config = ConfigDict(frozen=True)

    command: Command
    required: bool = True

    @model_validator(mode="before")
    @classmethod
    def _shorthand(cls, data: Any) -> Any:
        if isinstance(data, str):
            return {"command": Command.shell(data)}
        if isinstance(data, dict):
            data = dict(data)
            if "shell" in data:
                data["command"] = Command.shell(data.pop("shell"))
            elif "command" in data:
                data["command"] = _coerce_command(data["command"])
        return data


class Module(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str
    description: str = ""
    category: Optional[str] = None
    phase: Optional[int] = None
    identity: Identity = Identity.TARGET_USER
    required: bool = True
    enabled_by_default: bool = True
    run_detached: bool = False
    session_name: str = "vpsforge-services"
    install_steps: List[InstallStep] = Field(default_factory=list, alias="install")
    verify_steps: List[VerifyStep] = Field(default_factory=list, alias="verify")
    requires: List[str] = Field(default_factory=list)        # contract keys
    dependencies: List[str] = Field(default_factory=list)    # module ids
    provides: List[str] = Field(default_factory=list)        # extra contract keys
    installed_check: Optional[Command] = None
    tags: List[str] = Field(default_factory=list)

    @field_validator("installed_check", mode="before")
    @classmethod
    def _check_shorthand(cls, value: Any) -> Any:
        return _coerce_command(value)

    @model_validator(mode="after")
    def _detached_shape(self) -> "Module":
        if self.run_detached:
            # plain steps run first, then the one verified installer is detached
            verified = [s for s in self.install_steps if s.verified_installer is not None]
            if len(verified) != 1 or self.install_steps[-1].verified_installer is None:
                raise ValueError(
                    f"module {self.id}: run_detached needs exactly one verified_installer step, "
                    "and it must be the last install step"
                )
        for step in self.install_steps:
            vi = step.verified_installer
            if vi is not None and vi.fallback_url:
                log.warning(
                    "module %s: fallback_url for %s is ignored; unverified fallback installs are not supported",
                    self.id,
                    vi.tool,
                )
        return self

    @property
    def required_contracts(self) -> List[str]:
        keys = list(self.requires)
        for dep in self.dependencies:
            key = f"module:{dep}"
            if key not in keys:
                keys.append(key)
        return keys

    @property
    def contract_key(self) -> str:
        return f"module:{self.id}"

    def needs_verified_installs(self) -> bool:
        return any(s.verified_installer is not None for s in self.install_steps)


class Manifest(BaseModel):
    version: int = 1
    name: str = "vpsforge"
    bootstrap_contracts: List[str] = Field(default_factory=list)
    modules: List[Module]

    @model_validator(mode="after")
    def _unique_ids(self) -> "Manifest":
        seen: set[str] = set()
        for m in self.modules:
            if m.id in seen:
                raise ValueError(f"duplicate module id: {m.id}")
            seen.add(m.id)
        return self

    # Helper method
    def by_id(self) -> Dict[str, Module]:
        return {m.id: m for m in self.modules}

    def needs_verified_installs(self, modules: Optional[List[Module]] = None) -> bool:
        pool = self.modules if modules is None else modules
        return any(m.needs_verified_installs() for m in pool)


class ChecksumEntry(BaseModel):
    model_config = ConfigDict(frozen=True)

    tool: str
    url: str
    sha256: str

    @field_validator("url")
    @classmethod
    def _https_only(cls, value: str) -> str:
        if not value.startswith("https://"):
            raise ValueError(f"installer URL must use HTTPS: {value}")
        return value

    @field_validator("sha256")
    @classmethod
    def _hex_digest(cls, value: str) -> str:
        value = value.strip().lower()
        if not _SHA256_RE.match(value):
            raise ValueError("sha256 must be 64 hex characters")
        return value
