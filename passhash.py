#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
passhash.py — salted, peppered password hashes (HMAC key-stretching chain), stdlib only.
========================================================================================

Produces a fixed-length, self-contained string:

    salt (16 chars) || base64(derived key) (88 chars for a 64-byte digest)  = 104 chars

and verifies a plaintext password against it.

------------------------------------------------------------------
INTEGRATION NOTES (READ ME FIRST)
------------------------------------------------------------------
1) pepper (REQUIRED)
   • One long secret string for the whole site (80+ chars recommended).
   • Never stored next to the hashes. Changing it invalidates every hash.

2) level (default 5)
   • iterations = level × 1000. Must stay the same between hash() and
     compare(); the bare format does not record it. Use PasswordContext
     (passhash_context.py) if you need a format that does.

3) digest (default "sha512")
   • Any hashlib name with a 64-byte digest keeps the 104-char layout.
   • "whirlpool" reproduces hashes from the original PHP class, if your
     OpenSSL still ships it.

4) Errors
   • compare() never raises on a malformed stored hash; it returns False.
   • ConfigError / EntropyError are fatal: fix the setup, do not retry.

------------------------------------------------------------------
Minimal Example
------------------------------------------------------------------
cfg = PasshashConfig(pepper=os.environ["PASSHASH_PEPPER"])
stored = hash_password("correct horse", config=cfg)     # store this
ok = compare("correct horse", stored, config=cfg)       # True

Copyright:
  (c) 2010-2012 Brad Proctor, (c) 2025 passhash contributors.
  Licensed under the MIT License.
"""

from __future__ import annotations
import os, base64, hashlib, hmac, logging, secrets, string
from dataclasses import dataclass
from typing import Dict, Mapping, Optional

log = logging.getLogger("passhash")

# =========================
# Public constants / version
# =========================

VERSION = "1.8"

SALT_LEN = 16                   # characters, not bytes
DEFAULT_LEVEL = 5
ITERATIONS_PER_LEVEL = 1000
DEFAULT_DIGEST = "sha512"
MIN_PEPPER_LEN = 80             # recommendation only (warning below this)
DEFAULT_PEPPER_LEN = 80

ENV_PEPPER = "PASSHASH_PEPPER"
ENV_LEVEL = "PASSHASH_LEVEL"
ENV_DIGEST = "PASSHASH_DIGEST"

# '$' is the field separator of the tagged formats; keep it out of peppers too.
PEPPER_ALPHABET = string.ascii_letters + string.digits + "!#%&()*+,-./:;<=>?@[]^_{|}~"

# =========================
# Exceptions
# =========================

class PasshashError(Exception):
    """Base class for all passhash errors."""

class ConfigError(PasshashError):
    """Raised when pepper/level/digest/salt length are missing or invalid."""

class FormatError(PasshashError):
    """Raised when a salt or stored hash does not have the expected shape."""

class EntropyError(PasshashError):
    """Raised when the OS randomness source is unavailable."""

# =========================
# Helpers
# =========================

def _to_bytes(x, name: str) -> bytes:
    if isinstance(x, str):
        return x.encode("utf-8")
    if isinstance(x, (bytes, bytearray, memoryview)):
        return bytes(x)
    raise TypeError(f"{name} must be str or bytes")

def _digest_size(digest: str) -> int:
    try:
        size = hashlib.new(digest).digest_size
    except (ValueError, TypeError) as e:
        raise ConfigError(f"unsupported digest '{digest}'") from e
    if size <= 0:
        # shake_* report 0: variable-length output has no fixed block
        raise ConfigError(f"digest '{digest}' has no fixed output size")
    return size

def _b64_len(nbytes: int) -> int:
    return 4 * ((nbytes + 2) // 3)

# =========================
# Configuration
# =========================

@dataclass(frozen=True)
class PasshashConfig:
    """
    Site-wide parameters shared by every hash/compare call.

    Nothing here is stored inside the bare 104-char hash, so all four values
    must stay fixed for the lifetime of the stored hashes.
    """
    pepper: str
    level: int = DEFAULT_LEVEL
    digest: str = DEFAULT_DIGEST
    salt_len: int = SALT_LEN

    def __post_init__(self):
        if not isinstance(self.pepper, str) or self.pepper == "":
            raise ConfigError("pepper is required (set PASSHASH_PEPPER)")
        if isinstance(self.level, bool) or not isinstance(self.level, int) or self.level <= 0:
            raise ConfigError("level must be a positive integer")
        if isinstance(self.salt_len, bool) or not isinstance(self.salt_len, int) or self.salt_len <= 0:
            raise ConfigError("salt_len must be a positive integer")
        _digest_size(self.digest)
        if len(self.pepper) < MIN_PEPPER_LEN:
            log.warning("pepper is %d chars; %d+ recommended", len(self.pepper), MIN_PEPPER_LEN)

    @property
    def iterations(self) -> int:
        return self.level * ITERATIONS_PER_LEVEL

    @property
    def digest_size(self) -> int:
        return _digest_size(self.digest)

    @property
    def key_len(self) -> int:
        """Length of the base64 derived key (88 for a 64-byte digest)."""
        return _b64_len(self.digest_size)

    @property
    def encoded_len(self) -> int:
        return self.salt_len + self.key_len

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "PasshashConfig":
        """
        Build a config from PASSHASH_PEPPER / PASSHASH_LEVEL / PASSHASH_DIGEST.
        Keyword overrides that are not None win over the environment.
        """
        env = os.environ if environ is None else environ
        kw: Dict[str, object] = {"pepper": env.get(ENV_PEPPER, "")}
        level_s = env.get(ENV_LEVEL, "").strip()
        if level_s:
            try:
                kw["level"] = int(level_s)
            except ValueError as e:
                raise ConfigError(f"{ENV_LEVEL} must be an integer, got {level_s!r}") from e
        digest_s = env.get(ENV_DIGEST, "").strip()
        if digest_s:
            kw["digest"] = digest_s
        kw.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**kw)

# =========================
# Salt / pepper generation
# =========================

def generate_salt(length: int = SALT_LEN) -> str:
    """
    Printable salt of exactly `length` chars (base64 alphabet, no padding).
    """
    if isinstance(length, bool) or not isinstance(length, int) or length <= 0:
        raise ValueError("salt length must be a positive integer")
    nbytes = (length * 3) // 4 + 3   # overshoot so the b64 text never runs short
    try:
        raw = secrets.token_bytes(nbytes)
    except (OSError, NotImplementedError) as e:
        raise EntropyError("randomness source unavailable") from e
    return base64.b64encode(raw).decode("ascii")[:length]

def generate_pepper(length: int = DEFAULT_PEPPER_LEN) -> str:
    """A fresh site pepper. Put it in configuration, never in the database."""
    if isinstance(length, bool) or not isinstance(length, int) or length < 32:
        raise ValueError("pepper length must be an integer >= 32")
    try:
        return "".join(secrets.choice(PEPPER_ALPHABET) for _ in range(length))
    except (OSError, NotImplementedError) as e:
        raise EntropyError("randomness source unavailable") from e

# =========================
# Key derivation (HMAC chain)
# =========================

def derive(password, salt, pepper, iterations: int, digest: str = DEFAULT_DIGEST) -> bytes:
    """
    Iterative keyed-hash chain (single-block, PBKDF2-flavoured):

        U1 = HMAC(key=password, msg=salt || pepper)
        Ui = HMAC(key=password, msg=U(i-1) || pepper)
        DK = U1 ^ U2 ^ ... ^ U(iterations)

    The password is the HMAC *key*. Output is one digest (64 B for sha512).
    """
    if isinstance(iterations, bool) or not isinstance(iterations, int) or iterations < 1:
        raise ValueError("iterations must be a positive integer")
    size = _digest_size(digest)
    key = _to_bytes(password, "password")
    pep = _to_bytes(pepper, "pepper")

    block = hmac.digest(key, _to_bytes(salt, "salt") + pep, digest)
    acc = int.from_bytes(block, "big")
    for _ in range(iterations - 1):
        block = hmac.digest(key, block + pep, digest)
        acc ^= int.from_bytes(block, "big")
    return acc.to_bytes(size, "big")

def encode_key(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")

# =========================
# Encode / verify
# =========================

def hash_password(password: str, salt: Optional[str] = None, *, config: PasshashConfig) -> str:
    """
    Return salt || base64(derive(...)), config.encoded_len chars (104 by default).

    A missing or empty salt is generated; an explicit one must be exactly
    config.salt_len chars because nothing delimits it from the key.
    """
    if not salt:
        salt = generate_salt(config.salt_len)
    elif not isinstance(salt, str) or len(salt) != config.salt_len:
        raise FormatError(f"salt must be exactly {config.salt_len} characters")
    dk = derive(password, salt, config.pepper, config.iterations, config.digest)
    return salt + encode_key(dk)

def compare(password: str, stored: str, *, config: PasshashConfig) -> bool:
    """
    True iff `stored` was produced from `password` under `config`.
    Malformed stored values give False; the final check is constant-time.
    """
    if not isinstance(stored, str) or len(stored) < config.salt_len:
        return False
    try:
        stored_b = stored.encode("utf-8")
    except UnicodeEncodeError:
        # lone surrogates; no hash we produce can contain them
        return False
    candidate = hash_password(password, stored[:config.salt_len], config=config)
    return hmac.compare_digest(candidate.encode("utf-8"), stored_b)

# =========================
# Public class
# =========================

class Passhash:
    """hash()/compare() bound to one PasshashConfig."""

    def __init__(self, config: PasshashConfig):
        if not isinstance(config, PasshashConfig):
            raise ConfigError("config must be a PasshashConfig")
        self.config = config

    def hash(self, password: str, salt: Optional[str] = None) -> str:
        return hash_password(password, salt, config=self.config)

    def compare(self, password: str, stored: str) -> bool:
        return compare(password, stored, config=self.config)

    def info(self) -> dict:
        c = self.config
        return {
            "name": "Passhash",
            "version": VERSION,
            "digest": c.digest,
            "level": c.level,
            "iterations": c.iterations,
            "salt_len": c.salt_len,
            "key_len": c.key_len,
            "encoded_len": c.encoded_len,
        }
