#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
passhash_context.py — versioned stored formats + migration on top of passhash.py.

The bare 104-char passhash string carries no version and no parameters, so a
pepper/level change silently breaks every stored hash. PasswordContext adds:

  - "passhash"         $ph1$<digest>$<level>$<salt><key>   (same chain, tagged)
  - "passhash_legacy"  <salt><key>                          (bare, verify + migrate)
  - "pbkdf2_sha512"    $pbkdf2-sha512$<rounds>$<salt>$<chk> (passlib, peppered)

New hashes use `default` (pbkdf2_sha512 unless told otherwise). verify()
dispatches on the stored shape; needs_update()/verify_and_update() tell the
caller when to rewrite a stored hash after a successful login.

Peppering for the passlib scheme:
    secret = base64(HMAC-SHA512(key=pepper, msg=password))

Copyright:
  (c) 2010-2012 Brad Proctor, (c) 2025 passhash contributors.
  Licensed under the MIT License.
"""

from __future__ import annotations
import base64, dataclasses, hmac, logging, re
from typing import Optional, Tuple

from passlib.context import CryptContext

import passhash
from passhash import PasshashConfig, ConfigError, FormatError

log = logging.getLogger("passhash.context")

# =========================
# Constants
# =========================

TAG = "ph1"
SCHEME_TAGGED = "passhash"
SCHEME_LEGACY = "passhash_legacy"
SCHEME_PBKDF2 = "pbkdf2_sha512"
SCHEMES = (SCHEME_PBKDF2, SCHEME_TAGGED, SCHEME_LEGACY)

DEFAULT_PBKDF2_ROUNDS = 210_000

_B64_CHARS = frozenset("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789+/=")
_TAGGED_RE = re.compile(r"\$ph1\$([a-z0-9_\-]+)\$([1-9][0-9]{0,5})\$([A-Za-z0-9+/=]+)")

# =========================
# Tagged format pack/unpack
# =========================

def pack_tagged(body: str, *, digest: str, level: int) -> str:
    return f"${TAG}${digest}${level}${body}"

def unpack_tagged(stored: str, *, salt_len: int = passhash.SALT_LEN) -> Tuple[str, int, str]:
    """
    '$ph1$sha512$5$<salt><key>' -> ("sha512", 5, "<salt><key>").
    Raises FormatError on any shape problem, ConfigError on an unknown digest.
    """
    if not isinstance(stored, str):
        raise FormatError("stored hash must be a string")
    m = _TAGGED_RE.fullmatch(stored)
    if not m:
        raise FormatError("not a $ph1$ hash")
    digest, level_s, body = m.group(1), m.group(2), m.group(3)
    need = salt_len + passhash._b64_len(passhash._digest_size(digest))
    if len(body) != need:
        raise FormatError(f"tagged body must be {need} chars, got {len(body)}")
    return digest, int(level_s), body

# =========================
# Context
# =========================

class PasswordContext:
    """Scheme dispatch for hashing, verification and rehash-on-login."""

    def __init__(self, config: PasshashConfig, *, default: str = SCHEME_PBKDF2,
                 pbkdf2_rounds: int = DEFAULT_PBKDF2_ROUNDS):
        if not isinstance(config, PasshashConfig):
            raise ConfigError("config must be a PasshashConfig")
        if default not in SCHEMES:
            raise ConfigError(f"unknown scheme '{default}'. Supported: {SCHEMES}")
        if isinstance(pbkdf2_rounds, bool) or not isinstance(pbkdf2_rounds, int) or pbkdf2_rounds < 1:
            raise ConfigError("pbkdf2_rounds must be a positive integer")
        self.config = config
        self.default = default
        self.pbkdf2_rounds = pbkdf2_rounds
        # (digest, level) -> config; replace() re-runs validation and its warning
        self._tagged_configs = {(config.digest, config.level): config}
        self._crypt = CryptContext(
            schemes=[SCHEME_PBKDF2],
            deprecated="auto",
            pbkdf2_sha512__default_rounds=pbkdf2_rounds,
            # hashes below the current rounds are flagged by needs_update()
            pbkdf2_sha512__min_rounds=pbkdf2_rounds,
        )

    # ---- helpers ----

    def _config_for(self, digest: str, level: int) -> PasshashConfig:
        cfg = self._tagged_configs.get((digest, level))
        if cfg is None:
            cfg = dataclasses.replace(self.config, digest=digest, level=level)
            self._tagged_configs[(digest, level)] = cfg
        return cfg

    def _peppered(self, password: str) -> str:
        mac = hmac.digest(self.config.pepper.encode("utf-8"), passhash._to_bytes(password, "password"), "sha512")
        return base64.b64encode(mac).decode("ascii")

    def _is_legacy(self, stored: str) -> bool:
        return (len(stored) == self.config.encoded_len
                and not stored.startswith("$")
                and all(c in _B64_CHARS for c in stored))

    # ---- public API ----

    def identify(self, stored) -> Optional[str]:
        if not isinstance(stored, str) or not stored:
            return None
        if stored.startswith(f"${TAG}$"):
            return SCHEME_TAGGED
        if self._crypt.identify(stored):
            return SCHEME_PBKDF2
        if self._is_legacy(stored):
            return SCHEME_LEGACY
        return None

    def hash(self, password: str, scheme: Optional[str] = None) -> str:
        scheme = scheme or self.default
        if scheme == SCHEME_PBKDF2:
            return self._crypt.hash(self._peppered(password))
        if scheme == SCHEME_TAGGED:
            c = self.config
            return pack_tagged(passhash.hash_password(password, config=c), digest=c.digest, level=c.level)
        if scheme == SCHEME_LEGACY:
            return passhash.hash_password(password, config=self.config)
        raise ConfigError(f"unknown scheme '{scheme}'. Supported: {SCHEMES}")

    def verify(self, password: str, stored) -> bool:
        scheme = self.identify(stored)
        log.debug("verify: scheme=%s", scheme)
        if scheme is None:
            return False
        if scheme == SCHEME_PBKDF2:
            try:
                return self._crypt.verify(self._peppered(password), stored)
            except ValueError:
                # passlib: recognised prefix but malformed body
                return False
        if scheme == SCHEME_TAGGED:
            try:
                digest, level, body = unpack_tagged(stored, salt_len=self.config.salt_len)
                cfg = self._config_for(digest, level)
            except (FormatError, ConfigError) as e:
                log.debug("verify: rejected tagged hash (%s)", e)
                return False
            return passhash.compare(password, body, config=cfg)
        return passhash.compare(password, stored, config=self.config)

    def needs_update(self, stored) -> bool:
        scheme = self.identify(stored)
        if scheme != self.default:
            return True
        if scheme == SCHEME_PBKDF2:
            return self._crypt.needs_update(stored)
        if scheme == SCHEME_TAGGED:
            try:
                digest, level, _ = unpack_tagged(stored, salt_len=self.config.salt_len)
            except (FormatError, ConfigError):
                return True
            return digest != self.config.digest or level != self.config.level
        return False

    def verify_and_update(self, password: str, stored) -> Tuple[bool, Optional[str]]:
        """
        (ok, new_hash). new_hash is set only when ok and the stored hash is
        out of date; store it in place of the old one.
        """
        if not self.verify(password, stored):
            return False, None
        if self.needs_update(stored):
            log.info("rehash: %s -> %s", self.identify(stored), self.default)
            return True, self.hash(password)
        return True, None

    def info(self) -> dict:
        return {
            "default": self.default,
            "schemes": list(SCHEMES),
            "pbkdf2_rounds": self.pbkdf2_rounds,
            "passhash_level": self.config.level,
            "passhash_digest": self.config.digest,
        }
