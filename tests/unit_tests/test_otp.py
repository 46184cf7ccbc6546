"""Tests for OTP issuance and verification."""

import asyncio
from datetime import timedelta

import pytest

from app.errors import DependencyFailure, ValidationError
from app.services import otp as otp_module
from app.services.otp import OtpService, display_name, generate_code, normalize_email
from app.services.stores import MemoryOtpStore, SqliteOtpStore
from tests.mocks.models import BrokenStore, FakeClock, RecordingSender

EMAIL = "staff@example.com"


@pytest.fixture(params=["memory", "sqlite"])
def otp_store(request, sqlite_db):
    return SqliteOtpStore() if request.param == "sqlite" else MemoryOtpStore()


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def mailer():
    return RecordingSender()


@pytest.fixture()
def service(otp_store, mailer, clock):
    return OtpService(otp_store, send_email=mailer, ttl=timedelta(minutes=15), clock=clock)


# ── Helpers ────────────────────────────────────────────────────────────────


class TestHelpers:
    def test_generate_code_shape(self):
        for _ in range(200):
            code = generate_code()
            assert len(code) == 6
            assert code.isdigit()
            assert 100_000 <= int(code) <= 999_999

    def test_normalize_email(self):
        assert normalize_email("  Foo@Bar.COM ") == "foo@bar.com"
        assert normalize_email(None) == ""

    def test_display_name(self):
        assert display_name("jane.doe@example.com") == "jane.doe"


# ── Issue ──────────────────────────────────────────────────────────────────


class TestIssue:
    async def test_issue_sends_generated_code(self, service, mailer):
        result = await service.issue(EMAIL)
        assert result.success
        assert result.message == "OTP sent successfully"
        assert mailer.sent == [(EMAIL, mailer.last_code, "staff")]

    @pytest.mark.parametrize("bad", ["", "   ", "no-at-sign", "a@b", "a b@c.com", None])
    async def test_invalid_email_rejected_before_storage(self, mailer, clock, bad):
        svc = OtpService(BrokenStore(), send_email=mailer, clock=clock)
        with pytest.raises(ValidationError):
            await svc.issue(bad)
        assert mailer.sent == []

    async def test_store_failure_is_dependency_failure(self, mailer, clock):
        svc = OtpService(BrokenStore(), send_email=mailer, clock=clock)
        with pytest.raises(DependencyFailure):
            await svc.issue(EMAIL)
        assert mailer.sent == []

    async def test_delivery_failure_reported(self, otp_store, clock):
        svc = OtpService(otp_store, send_email=RecordingSender(succeed=False), clock=clock)
        result = await svc.issue(EMAIL)
        assert not result.success
        assert result.message == "Failed to send OTP"

    async def test_slow_delivery_times_out(self, otp_store, clock):
        svc = OtpService(
            otp_store,
            send_email=RecordingSender(delay=1.0),
            send_timeout=0.05,
            clock=clock,
        )
        result = await svc.issue(EMAIL)
        assert not result.success
        assert result.message == "Failed to send OTP"

    async def test_reissue_replaces_previous_code(self, service, monkeypatch):
        codes = iter(["111111", "222222"])
        monkeypatch.setattr(otp_module, "generate_code", lambda: next(codes))

        await service.issue(EMAIL)
        await service.issue(EMAIL)

        assert not (await service.verify(EMAIL, "111111")).success
        assert (await service.verify(EMAIL, "222222")).success


# ── Verify ─────────────────────────────────────────────────────────────────


class TestVerify:
    async def test_code_is_single_use(self, service, mailer):
        await service.issue(EMAIL)
        first = await service.verify(EMAIL, mailer.last_code)
        second = await service.verify(EMAIL, mailer.last_code)
        assert first.success and first.message == "OTP verified successfully"
        assert not second.success
        assert second.message == "Invalid or expired OTP"

    async def test_expired_code_rejected(self, service, mailer, clock):
        await service.issue(EMAIL)
        clock.advance(15 * 60)
        assert not (await service.verify(EMAIL, mailer.last_code)).success

    async def test_code_valid_just_before_expiry(self, service, mailer, clock):
        await service.issue(EMAIL)
        clock.advance(15 * 60 - 1)
        assert (await service.verify(EMAIL, mailer.last_code)).success

    async def test_verify_normalizes_email(self, service, mailer):
        await service.issue(EMAIL)
        assert (await service.verify("  STAFF@example.com", mailer.last_code)).success

    async def test_code_bound_to_its_email(self, service, mailer):
        await service.issue(EMAIL)
        assert not (await service.verify("other@example.com", mailer.last_code)).success
        assert (await service.verify(EMAIL, mailer.last_code)).success

    @pytest.mark.parametrize("code", ["12345", "1234567", "12a456", "", None, "１２３４５６"])
    async def test_malformed_code_never_touches_store(self, mailer, clock, code):
        svc = OtpService(BrokenStore(), send_email=mailer, clock=clock)
        result = await svc.verify(EMAIL, code)
        assert not result.success
        assert result.message == "Invalid or expired OTP"

    async def test_store_failure_is_dependency_failure(self, mailer, clock):
        svc = OtpService(BrokenStore(), send_email=mailer, clock=clock)
        with pytest.raises(DependencyFailure):
            await svc.verify(EMAIL, "123456")

    async def test_concurrent_verification_succeeds_once(self, service, mailer):
        await service.issue(EMAIL)
        results = await asyncio.gather(
            *(service.verify(EMAIL, mailer.last_code) for _ in range(10))
        )
        assert sum(r.success for r in results) == 1

    async def test_undelivered_code_still_stored(self, otp_store, clock, monkeypatch):
        monkeypatch.setattr(otp_module, "generate_code", lambda: "424242")
        svc = OtpService(otp_store, send_email=RecordingSender(succeed=False), clock=clock)
        assert not (await svc.issue(EMAIL)).success
        assert (await svc.verify(EMAIL, "424242")).success


# ── Purge ──────────────────────────────────────────────────────────────────


class TestPurge:
    async def test_purge_respects_grace_period(self, service, clock):
        await service.issue(EMAIL)
        clock.advance(15 * 60 + 100)
        assert await service.purge(grace_seconds=3600) == 0
        clock.advance(3600)
        assert await service.purge(grace_seconds=3600) == 1
