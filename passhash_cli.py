#!/usr/bin/env python3
"""
passhash_cli.py — command line front end for passhash / PasswordContext.

Usage:
  passhash hash    [--password P] [--salt S] [--scheme NAME]
  passhash verify  HASH [--password P]
  passhash salt    [--length N]
  passhash pepper  [--length N]
  passhash bench   [--target-ms MS] [--max-level N]
  passhash selftest

Global options:
  --pepper STR     Site pepper (else $PASSHASH_PEPPER, else prompted)
  --level N        Iteration factor (iterations = N × 1000; default 5 or $PASSHASH_LEVEL)
  --digest NAME    hashlib digest under HMAC (default sha512 or $PASSHASH_DIGEST)
  -v, --verbose    Debug logging on stderr

Passwords are prompted (no echo) unless --password is given.

Exit codes: 0=OK, 1=verification failed, 2=usage/error.

Copyright:
  (c) 2010-2012 Brad Proctor, (c) 2025 passhash contributors.
  Licensed under the MIT License.
"""

from __future__ import annotations
import argparse
import getpass
import logging
import os
import platform
import sys
import time
from typing import List, Optional

import passhash
import passhash_selftest
from passhash import PasshashConfig, PasshashError
from passhash_context import PasswordContext, SCHEMES, SCHEME_LEGACY

log = logging.getLogger("passhash.cli")

# ---------------- helpers ----------------

def _prompt_secret(label: str) -> str:
    v = getpass.getpass(f"{label}: ")
    if not v:
        print(f"{label} is required.", file=sys.stderr)
        raise SystemExit(2)
    return v

def _load_config(args: argparse.Namespace) -> PasshashConfig:
    pepper = args.pepper or os.environ.get(passhash.ENV_PEPPER) or _prompt_secret("Site pepper")
    return PasshashConfig.from_env(pepper=pepper, level=args.level, digest=args.digest)

def _password(args: argparse.Namespace) -> str:
    if args.password is not None:
        return args.password
    # empty passwords are legal, so no _prompt_secret() here
    return getpass.getpass("Password: ")

def time_level(config: PasshashConfig, level: int, *, trials: int = 3) -> float:
    """Best-of-`trials` seconds for one derive() at `level`."""
    salt = passhash.generate_salt(config.salt_len)
    best = float("inf")
    for _ in range(trials):
        t0 = time.perf_counter()
        passhash.derive("bench-password", salt, config.pepper, level * passhash.ITERATIONS_PER_LEVEL, config.digest)
        best = min(best, time.perf_counter() - t0)
    return best

def recommend_level(per_level_s: float, target_ms: float, max_level: int) -> int:
    """Largest level whose estimated cost stays within target_ms (at least 1)."""
    if per_level_s <= 0:
        return max_level
    return max(1, min(max_level, int((target_ms / 1000.0) / per_level_s)))

# ---------------- commands ----------------

def cmd_hash(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    pw = _password(args)
    if args.salt:
        if args.scheme and args.scheme != SCHEME_LEGACY:
            print("--salt only applies to the bare passhash format.", file=sys.stderr)
            return 2
        print(passhash.hash_password(pw, args.salt, config=cfg))
        return 0
    if args.scheme is None:
        print(passhash.hash_password(pw, config=cfg))
        return 0
    print(PasswordContext(cfg, default=args.scheme).hash(pw))
    return 0

def cmd_verify(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    pw = _password(args)
    ctx = PasswordContext(cfg)
    if not ctx.verify(pw, args.hash):
        print("mismatch")
        return 1
    print("match")
    if ctx.needs_update(args.hash):
        print("needs-update")
    return 0

def cmd_salt(args: argparse.Namespace) -> int:
    print(passhash.generate_salt(args.length))
    return 0

def cmd_pepper(args: argparse.Namespace) -> int:
    print(passhash.generate_pepper(args.length))
    return 0

def cmd_bench(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    per_level = time_level(cfg, 1, trials=args.trials)
    at_cfg = time_level(cfg, cfg.level, trials=args.trials)
    rec = recommend_level(per_level, args.target_ms, args.max_level)

    print("passhash benchmark")
    print("------------------")
    print("Python:", platform.python_version(), "| Impl:", platform.python_implementation())
    print("Machine:", platform.machine())
    print(f"Digest: {cfg.digest}  |  Level: {cfg.level} ({cfg.iterations} iterations)")
    print(f"level=1        : {per_level * 1000:8.2f} ms")
    print(f"level={cfg.level:<8d} : {at_cfg * 1000:8.2f} ms")
    print(f"Recommended level for {args.target_ms:g} ms: {rec}")
    return 0

def cmd_selftest(args: argparse.Namespace) -> int:
    cfg = _load_config(args)
    rep = passhash_selftest.run_self_test(cfg)
    print(passhash_selftest.format_report(rep))
    return 0 if rep["all_passed"] else 1

# ---------------- parser ----------------

def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="passhash", description="Salted + peppered password hashes")
    ap.add_argument("--pepper", default=None, help="Site pepper (else $PASSHASH_PEPPER or prompt)")
    ap.add_argument("--level", type=int, default=None, help="Iteration factor (×1000)")
    ap.add_argument("--digest", default=None, help="hashlib digest name (default sha512)")
    ap.add_argument("-v", "--verbose", action="store_true", help="Debug logging on stderr")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_hash = sub.add_parser("hash", help="Hash a password")
    p_hash.add_argument("--password", default=None, help="Password (else prompted)")
    p_hash.add_argument("--salt", default=None, help="Explicit salt (bare format only)")
    p_hash.add_argument("--scheme", choices=list(SCHEMES), default=None,
                        help="Stored format (default: bare 104-char passhash)")
    p_hash.set_defaults(func=cmd_hash)

    p_ver = sub.add_parser("verify", help="Verify a password against a stored hash")
    p_ver.add_argument("hash", help="Stored hash (any supported format)")
    p_ver.add_argument("--password", default=None, help="Password (else prompted)")
    p_ver.set_defaults(func=cmd_verify)

    p_salt = sub.add_parser("salt", help="Print a random salt")
    p_salt.add_argument("--length", type=int, default=passhash.SALT_LEN)
    p_salt.set_defaults(func=cmd_salt)

    p_pep = sub.add_parser("pepper", help="Print a new site pepper")
    p_pep.add_argument("--length", type=int, default=passhash.DEFAULT_PEPPER_LEN)
    p_pep.set_defaults(func=cmd_pepper)

    p_bench = sub.add_parser("bench", help="Time the chain and suggest a level")
    p_bench.add_argument("--target-ms", type=float, default=250.0)
    p_bench.add_argument("--max-level", type=int, default=100)
    p_bench.add_argument("--trials", type=int, default=3)
    p_bench.set_defaults(func=cmd_bench)

    p_st = sub.add_parser("selftest", help="Run the self-test against the current config")
    p_st.set_defaults(func=cmd_selftest)
    return ap

def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(levelname)s %(name)s: %(message)s")
    try:
        return args.func(args)
    except (PasshashError, ValueError) as e:
        log.debug("command failed", exc_info=True)
        print(f"error: {e}", file=sys.stderr)
        return 2

if __name__ == "__main__":
    raise SystemExit(main())
