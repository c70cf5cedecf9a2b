#!/usr/bin/env python3
"""
passhash_selftest.py — black-box self-test for passhash (and PasswordContext).

Runs the properties every deployment should hold against the live config:
round trip, wrong password, salt uniqueness, fixed length, salt extraction,
malformed input, and a manual HMAC-chain cross-check.

Usage:
    import passhash_selftest as pst
    report = pst.run_self_test(PasshashConfig.from_env())

Copyright:
  (c) 2010-2012 Brad Proctor, (c) 2025 passhash contributors.
  Licensed under the MIT License.
"""

from __future__ import annotations
import base64, hmac
from typing import Any, Dict

import passhash
from passhash import PasshashConfig
from passhash_context import PasswordContext

def _ok(why: str = "") -> Dict[str, Any]:
    return {"ok": True, "why": why}

def _fail(why: str) -> Dict[str, Any]:
    return {"ok": False, "why": why}

def _manual_chain(password: bytes, salt: bytes, pepper: bytes, iterations: int, digest: str) -> bytes:
    """Byte-wise XOR version of the chain, independent of passhash.derive()."""
    block = hmac.new(password, salt + pepper, digest).digest()
    acc = bytearray(block)
    for _ in range(iterations - 1):
        block = hmac.new(password, block + pepper, digest).digest()
        for i, b in enumerate(block):
            acc[i] ^= b
    return bytes(acc)

def run_self_test(config: PasshashConfig, *, pbkdf2_rounds: int = 1000) -> Dict[str, Any]:
    tests: Dict[str, Dict[str, Any]] = {}
    ph = passhash.Passhash(config)
    password = "Hello passhash — unicode 🐱 + tail"

    # 1) Round trip
    try:
        stored = ph.hash(password)
        tests["round_trip"] = _ok() if ph.compare(password, stored) else _fail("compare() rejected its own hash")
    except Exception as e:
        tests["round_trip"] = _fail(f"exception: {e}")
        stored = ""

    # 2) Wrong password
    try:
        tests["wrong_password"] = _fail("wrong password accepted") if ph.compare(password + "x", stored) else _ok()
    except Exception as e:
        tests["wrong_password"] = _fail(f"exception: {e}")

    # 3) Salt uniqueness
    try:
        other = ph.hash(password)
        if other[:config.salt_len] == stored[:config.salt_len]:
            tests["salt_unique"] = _fail("two hashes share a salt")
        else:
            tests["salt_unique"] = _ok()
    except Exception as e:
        tests["salt_unique"] = _fail(f"exception: {e}")

    # 4) Fixed length
    tests["format_length"] = (_ok(f"{len(stored)} chars") if len(stored) == config.encoded_len
                              else _fail(f"expected {config.encoded_len} chars, got {len(stored)}"))

    # 5) Salt extraction reproduces the hash
    try:
        again = ph.hash(password, stored[:config.salt_len])
        tests["salt_extraction"] = _ok() if again == stored else _fail("explicit salt did not reproduce hash")
    except Exception as e:
        tests["salt_extraction"] = _fail(f"exception: {e}")

    # 6) Malformed stored values -> False, never raise
    try:
        bad = ["", "short", stored[:config.salt_len - 1], "é" * config.encoded_len]
        if any(ph.compare(password, b) for b in bad):
            tests["malformed_input"] = _fail("malformed stored hash accepted")
        else:
            tests["malformed_input"] = _ok()
    except Exception as e:
        tests["malformed_input"] = _fail(f"exception: {e}")

    # 7) Cross-check derive() against the byte-wise chain
    try:
        salt = stored[:config.salt_len]
        manual = _manual_chain(password.encode("utf-8"), salt.encode("utf-8"),
                               config.pepper.encode("utf-8"), config.iterations, config.digest)
        expect = salt + base64.b64encode(manual).decode("ascii")
        tests["chain_cross_check"] = _ok() if expect == stored else _fail("derive() disagrees with manual chain")
    except Exception as e:
        tests["chain_cross_check"] = _fail(f"exception: {e}")

    # 8) Context: legacy hash verifies and is flagged for update
    try:
        ctx = PasswordContext(config, pbkdf2_rounds=pbkdf2_rounds)
        ok, new_hash = ctx.verify_and_update(password, stored)
        if not ok:
            tests["context_migrate"] = _fail("context rejected legacy hash")
        elif not new_hash or not ctx.verify(password, new_hash):
            tests["context_migrate"] = _fail("rehash missing or unverifiable")
        else:
            tests["context_migrate"] = _ok(f"{ctx.identify(stored)} -> {ctx.identify(new_hash)}")
    except Exception as e:
        tests["context_migrate"] = _fail(f"exception: {e}")

    return {
        "engine": "Passhash",
        "version": passhash.VERSION,
        "all_passed": all(t["ok"] for t in tests.values()),
        "tests": tests,
        "info": ph.info(),
    }

def format_report(rep: Dict[str, Any]) -> str:
    lines = [f"Engine: {rep['engine']}  Version: {rep['version']}",
             f"All passed: {rep['all_passed']}"]
    for name, r in rep["tests"].items():
        status = "OK " if r["ok"] else "FAIL"
        why = f"  ({r['why']})" if r["why"] else ""
        lines.append(f" - {name:20s}: {status}{why}")
    return "\n".join(lines)

if __name__ == "__main__":  # pragma: no cover
    rep = run_self_test(PasshashConfig.from_env())
    print(format_report(rep))
    raise SystemExit(0 if rep["all_passed"] else 1)
