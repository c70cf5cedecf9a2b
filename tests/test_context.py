import dataclasses
import logging

import pytest

import passhash
from passhash import ConfigError, FormatError, PasshashConfig
from passhash_context import (
    SCHEME_LEGACY,
    SCHEME_PBKDF2,
    SCHEME_TAGGED,
    PasswordContext,
    pack_tagged,
    unpack_tagged,
)


@pytest.fixture
def ctx(config):
    return PasswordContext(config, pbkdf2_rounds=1000)


def test_default_scheme_is_pbkdf2(ctx):
    h = ctx.hash("password")
    assert h.startswith("$pbkdf2-sha512$1000$")
    assert ctx.identify(h) == SCHEME_PBKDF2
    assert ctx.verify("password", h)
    assert not ctx.verify("Password", h)
    assert not ctx.needs_update(h)


def test_pbkdf2_is_peppered(config, ctx):
    h = ctx.hash("password")
    other = PasswordContext(dataclasses.replace(config, pepper=config.pepper[::-1]), pbkdf2_rounds=1000)
    assert not other.verify("password", h)


def test_pbkdf2_rounds_change_needs_update(config, ctx):
    h = ctx.hash("password")
    stronger = PasswordContext(config, pbkdf2_rounds=2000)
    assert stronger.verify("password", h)
    assert stronger.needs_update(h)


def test_tagged_round_trip(ctx, config):
    h = ctx.hash("password", scheme=SCHEME_TAGGED)
    assert h.startswith("$ph1$sha512$1$")
    assert len(h) == len("$ph1$sha512$1$") + config.encoded_len
    assert ctx.identify(h) == SCHEME_TAGGED
    assert ctx.verify("password", h)
    assert not ctx.verify("nope", h)


def test_tagged_keeps_verifying_after_level_change(config):
    old = PasswordContext(config, default=SCHEME_TAGGED)
    h = old.hash("password")
    new = PasswordContext(dataclasses.replace(config, level=2), default=SCHEME_TAGGED)
    assert new.verify("password", h)
    assert new.needs_update(h)
    assert not old.needs_update(h)


def test_tagged_body_is_the_bare_hash(config):
    h = PasswordContext(config).hash("password", scheme=SCHEME_TAGGED)
    digest, level, body = unpack_tagged(h)
    assert (digest, level) == ("sha512", 1)
    assert passhash.compare("password", body, config=config)


def test_pack_unpack():
    body = "A" * 104
    s = pack_tagged(body, digest="sha512", level=5)
    assert s == "$ph1$sha512$5$" + body
    assert unpack_tagged(s) == ("sha512", 5, body)


@pytest.mark.parametrize("bad", [
    "$ph1$sha512$5$" + "A" * 103,
    "$ph1$sha512$0$" + "A" * 104,
    "$ph1$sha512$x$" + "A" * 104,
    "$ph1$sha512$5",
    "$ph2$sha512$5$" + "A" * 104,
    "ph1$sha512$5$" + "A" * 104,
    "$ph1$sha512$5$" + "A" * 104 + "\n",
])
def test_unpack_rejects_bad_shapes(bad):
    with pytest.raises(FormatError):
        unpack_tagged(bad)


def test_unpack_unknown_digest():
    with pytest.raises(ConfigError):
        unpack_tagged("$ph1$nosuch$5$" + "A" * 104)


def test_legacy_hash_verifies_and_migrates(ctx, config):
    legacy = passhash.hash_password("password", config=config)
    assert ctx.identify(legacy) == SCHEME_LEGACY
    assert ctx.verify("password", legacy)
    assert ctx.needs_update(legacy)

    ok, new_hash = ctx.verify_and_update("password", legacy)
    assert ok
    assert ctx.identify(new_hash) == SCHEME_PBKDF2
    assert ctx.verify("password", new_hash)


def test_verify_and_update_wrong_password(ctx, config):
    legacy = passhash.hash_password("password", config=config)
    assert ctx.verify_and_update("nope", legacy) == (False, None)


def test_verify_and_update_current_hash(ctx):
    h = ctx.hash("password")
    assert ctx.verify_and_update("password", h) == (True, None)


def test_legacy_default_keeps_legacy(config):
    c = PasswordContext(config, default=SCHEME_LEGACY)
    h = c.hash("password")
    assert len(h) == 104
    assert not c.needs_update(h)


@pytest.mark.parametrize("stored", [
    None, "", "garbage", "$pbkdf2-sha512$1000$bad", "$ph1$sha512$1$short",
    "$ph1$nosuch$1$" + "A" * 104, "é" * 104, "$" + "A" * 103,
])
def test_verify_malformed_is_false(ctx, stored):
    assert ctx.verify("password", stored) is False


def test_identify_unknown(ctx):
    assert ctx.identify("A" * 50) is None
    assert ctx.identify(12) is None
    assert ctx.needs_update("A" * 50)


def test_bad_construction(config):
    with pytest.raises(ConfigError):
        PasswordContext(config, default="md5_crypt")
    with pytest.raises(ConfigError):
        PasswordContext(config, pbkdf2_rounds=0)
    with pytest.raises(ConfigError):
        PasswordContext({"pepper": "x"})
    with pytest.raises(ConfigError):
        PasswordContext(config).hash("pw", scheme="nope")


def test_info(ctx):
    info = ctx.info()
    assert info["default"] == SCHEME_PBKDF2
    assert info["pbkdf2_rounds"] == 1000
    assert info["passhash_level"] == 1


def test_context_honours_other_digest():
    cfg = PasshashConfig(pepper="p" * 80, level=1, digest="sha256")
    c = PasswordContext(cfg, default=SCHEME_TAGGED)
    h = c.hash("password")
    assert h.startswith("$ph1$sha256$1$")
    assert c.verify("password", h)
    # a sha512 context still verifies it via the embedded digest
    assert PasswordContext(dataclasses.replace(cfg, digest="sha512")).verify("password", h)


def test_tagged_hash_with_trailing_newline_is_rejected(ctx):
    h = ctx.hash("password", scheme=SCHEME_TAGGED)
    assert ctx.verify("password", h)
    assert not ctx.verify("password", h + "\n")


def test_tagged_verify_warns_once_per_parameter_set(caplog):
    cfg = PasshashConfig(pepper="short", level=1)
    older = PasswordContext(dataclasses.replace(cfg, level=2), default=SCHEME_TAGGED)
    h = older.hash("password")
    c = PasswordContext(cfg, pbkdf2_rounds=1000)
    caplog.clear()
    with caplog.at_level(logging.WARNING, logger="passhash"):
        for _ in range(3):
            assert c.verify("password", h)
    assert caplog.text.count("recommended") == 1
