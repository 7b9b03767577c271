# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/config/loader.py

import logging
import os
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..errors import ManifestError
from .models import Manifest

log = logging.getLogger("vpsforge")

CHECKSUMS_ENV = "VPSFORGE_CHECKSUMS_FILE"


def _load_yaml(path: Path) -> dict:
    """
    Load a YAML (or JSON) file as-is.

    ``$VAR`` references in command strings are left alone; they are
    expanded by the shell on the target, under the module identity.
    """
    return yaml.safe_load(path.read_text()) or {}


def find_checksums_file(manifest_path: Path, explicit: str | Path | None = None) -> Path | None:
    """
    Locate checksums.yaml using this priority:

    1. explicit path (``--checksums``)
    2. VPSFORGE_CHECKSUMS_FILE environment variable
    3. checksums.yaml in the same directory as the manifest

    Returns the first candidate even when it does not exist for 1 and 2,
    so the caller reports the path the user asked for.
    """
    if explicit:
        return Path(explicit)

    env = os.environ.get(CHECKSUMS_ENV)
    if env:
        return Path(env)

    p = Path(manifest_path).parent / "checksums.yaml"
    if p.is_file():
        return p

    return None


def load_manifest(path: str | Path) -> Manifest:
    """
    Load and shape-check a compiled module manifest.

    The manifest is produced by an external compiler and is treated as
    opaque input: it is validated for shape only. Module order is kept
    exactly as given.
    """
    path = Path(path)
    if not path.is_file():
        raise ManifestError(f"manifest not found: {path}")

    try:
        data = _load_yaml(path)
    except yaml.YAMLError as exc:
        raise ManifestError(f"manifest {path} is not valid YAML/JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ManifestError(f"manifest {path} must be a mapping with a 'modules' list")

    try:
        manifest = Manifest.model_validate(data)
    except ValidationError as exc:
        raise ManifestError(f"manifest {path} failed validation:\n{exc}") from exc

    log.debug("Loaded manifest %s with %d modules", path, len(manifest.modules))
    return manifest
