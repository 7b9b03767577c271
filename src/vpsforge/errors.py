# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/errors.py
from __future__ import annotations

from typing import Optional


class ForgeError(RuntimeError):
    """
    Base class for failures that belong to a single module.

    Carries enough context for the failure log line: which module,
    which step and which command.
    """

    def __init__(
        self,
        message: str,
        *,
        module_id: Optional[str] = None,
        step: Optional[str] = None,
        command: Optional[str] = None,
    ):
        super().__init__(message)
        self.module_id = module_id
        self.step = step
        self.command = command


class VerificationError(ForgeError):
    """Installer content could not be proven trustworthy."""


class ChecksumMismatch(VerificationError):
    def __init__(self, message: str, *, expected: str, actual: str, url: str, **kw):
        super().__init__(message, **kw)
        self.expected = expected
        self.actual = actual
        self.url = url


class MissingRegistryEntry(VerificationError):
    def __init__(self, message: str, *, tool: str, **kw):
        super().__init__(message, **kw)
        self.tool = tool


class InsecureURLError(VerificationError):
    """URL (or a redirect it followed) is not HTTPS."""


class FetchError(VerificationError):
    """Download failed before a digest could be computed."""


class ContractUnsatisfied(ForgeError):
    def __init__(self, message: str, *, contract: str, **kw):
        super().__init__(message, **kw)
        self.contract = contract


class InstallStepFailed(ForgeError):
    def __init__(self, message: str, *, exit_code: Optional[int] = None, **kw):
        super().__init__(message, **kw)
        self.exit_code = exit_code


class VerifyStepFailed(ForgeError):
    def __init__(self, message: str, *, exit_code: Optional[int] = None, **kw):
        super().__init__(message, **kw)
        self.exit_code = exit_code


class SessionLaunchFailed(ForgeError):
    pass


# ---- configuration / startup errors (not tied to a module) ----

class ManifestError(ValueError):
    pass


class RegistryLoadError(ValueError):
    pass
