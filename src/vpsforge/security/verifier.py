# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/vpsforge/security/verifier.py
from __future__ import annotations

import hashlib
import hmac
import io
import logging
from dataclasses import dataclass, field
from typing import Optional

import requests

from ..errors import ChecksumMismatch, FetchError, InsecureURLError

log = logging.getLogger("vpsforge")


def sha256_hex(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def is_https(url: str) -> bool:
    return url.startswith("https://")


@dataclass(frozen=True)
class VerifiedPayload:
    """
    Installer bytes whose digest matched the pinned checksum.
    Only SecurityVerifier creates these.
    """
    name: str
    url: str
    sha256: str
    content: bytes = field(repr=False)

    def stream(self) -> io.BytesIO:
        return io.BytesIO(self.content)

    def __len__(self) -> int:
        return len(self.content)


class SecurityVerifier:
    """
    Fetches installer content over HTTPS and releases it only when its
    sha256 matches the expected digest. There is no unverified path.

    Built once per run and handed to the installer by reference.
    """

    def __init__(self, session: Optional[requests.Session] = None, *, timeout: float = 60.0):
        self.session = session or requests.Session()
        self.timeout = timeout

    # ------------------------- fetch -------------------------

    def _fetch(self, url: str, name: str) -> bytes:
        if not is_https(url):
            raise InsecureURLError(f"URL for '{name}' is not HTTPS: {url}")

        try:
            r = self.session.get(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as exc:
            raise FetchError(f"Failed to fetch {name} from {url}: {exc}") from exc

        # every hop must stay on https (curl --proto-redir =https)
        for hop in [*getattr(r, "history", []), r]:
            hop_url = getattr(hop, "url", url) or url
            if not is_https(hop_url):
                raise InsecureURLError(f"Fetch of '{name}' was redirected off HTTPS: {hop_url}")

        if r.status_code != 200:
            raise FetchError(f"Failed to fetch {name} from {url}: HTTP {r.status_code}")
        return r.content

    def compute_digest(self, url: str, name: str = "url") -> str:
        """sha256 of whatever *url* serves right now (no comparison)."""
        return sha256_hex(self._fetch(url, name))

    # ------------------------- verify -------------------------

    def fetch_and_verify(self, url: str, expected_digest: str, name: str = "installer") -> VerifiedPayload:
        content = self._fetch(url, name)
        actual = sha256_hex(content)
        expected = expected_digest.strip().lower()

        if not hmac.compare_digest(actual, expected):
            log.error("Checksum mismatch for %s: expected=%s actual=%s url=%s", name, expected, actual, url)
            raise ChecksumMismatch(
                f"Checksum mismatch for {name}",
                expected=expected,
                actual=actual,
                url=url,
            )

        log.info("Verified: %s (%s)", name, actual[:16])
        return VerifiedPayload(name=name, url=url, sha256=actual, content=content)
