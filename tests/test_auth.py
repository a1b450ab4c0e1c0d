from types import SimpleNamespace

import auth
from auth import bearer_token, issue_owner_token, resolve_owner_token


def test_token_round_trip() -> None:
    token = issue_owner_token(17)
    assert resolve_owner_token(token) == 17


def test_tampered_or_missing_tokens_resolve_to_nobody() -> None:
    token = issue_owner_token(17)
    assert resolve_owner_token(token[:-2] + "xx") is None
    assert resolve_owner_token("") is None
    assert resolve_owner_token(None) is None


def test_expired_token_resolves_to_nobody(monkeypatch) -> None:
    token = issue_owner_token(17)
    expired = SimpleNamespace(
        token_secret=auth.get_settings().token_secret, token_max_age_days=-1
    )
    monkeypatch.setattr(auth, "get_settings", lambda: expired)
    assert resolve_owner_token(token) is None


def test_bearer_header_parsing() -> None:
    assert bearer_token("Bearer abc.def") == "abc.def"
    assert bearer_token("Basic abc") is None
    assert bearer_token("Bearer   ") is None
    assert bearer_token(None) is None
