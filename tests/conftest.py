import pytest

from passhash import PasshashConfig

PEPPER = "jS#W_;[;sjiNOUc9NG,S3T76NOTmK~%mu|#WI9-v.l^Bt]6H)1wz:kc=hPtS+JZv)haB!0dTo}klfWrr"


@pytest.fixture
def config():
    # level 1 keeps the chain at 1000 rounds
    return PasshashConfig(pepper=PEPPER, level=1)


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("PASSHASH_PEPPER", "PASSHASH_LEVEL", "PASSHASH_DIGEST"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch
