"""Tests for challenge entities (credential, session, solve result)."""

from __future__ import annotations

from resolvarr.domain.entities.challenge import (
    ChallengeCredential,
    SolverSession,
    SolveResult,
    SolveStatus,
)


def _make_credential(**kwargs) -> ChallengeCredential:
    defaults = {
        "domain": "hubcloud.example",
        "cookie_header": "cf_clearance=abc",
        "user_agent": "Agent/1.0",
        "won_at": 1000.0,
    }
    defaults.update(kwargs)
    return ChallengeCredential(**defaults)


class TestChallengeCredential:
    def test_headers(self) -> None:
        cred = _make_credential()
        assert cred.headers() == {"User-Agent": "Agent/1.0", "Cookie": "cf_clearance=abc"}

    def test_zero_ttl_never_expires(self) -> None:
        cred = _make_credential(won_at=0.0)
        assert cred.is_expired(0, now=10**9) is False

    def test_positive_ttl_expires(self) -> None:
        cred = _make_credential(won_at=1000.0)
        assert cred.is_expired(60, now=1030.0) is False
        assert cred.is_expired(60, now=1061.0) is True

    def test_record_roundtrip(self) -> None:
        cred = _make_credential(requires_proxy=True)
        assert ChallengeCredential.from_record(cred.to_record()) == cred

    def test_incomplete_record_is_rejected(self) -> None:
        assert ChallengeCredential.from_record({"domain": "x.example"}) is None
        assert (
            ChallengeCredential.from_record(
                {"domain": "x.example", "cookie_header": "", "user_agent": "UA"}
            )
            is None
        )


class TestSolverSession:
    def test_freshness_window(self) -> None:
        session = SolverSession(domain="a.example", session_id="s", created_at=100.0)
        assert session.is_fresh(600, now=500.0) is True
        assert session.is_fresh(600, now=701.0) is False


class TestSolveResult:
    def test_cookie_header_joins_pairs(self) -> None:
        result = SolveResult(
            status=SolveStatus.SOLVED,
            cookies=(("cf_clearance", "abc"), ("__cf_bm", "xyz")),
        )
        assert result.cookie_header == "cf_clearance=abc; __cf_bm=xyz"

    def test_no_cookies(self) -> None:
        assert SolveResult(status=SolveStatus.BLOCKED).cookie_header == ""
