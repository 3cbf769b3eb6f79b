"""
Tests for one-time code issuing and verification.
"""

from unittest.mock import AsyncMock

import pytest

from signal_gate.config.settings import OTPConfig
from signal_gate.exceptions import (
    ExternalServiceError,
    InvalidOtpError,
    OtpAttemptsExhaustedError,
    OtpExpiredError,
    OtpNotFoundError,
    ValidationError,
)
from signal_gate.repositories.code_store import InMemoryCodeStore
from signal_gate.services.otp_service import OTPService

EMAIL = "trader@example.com"


@pytest.fixture
def store(clock):
    return InMemoryCodeStore(clock=clock)


@pytest.fixture
def otp(store, email_sender, clock):
    service = OTPService(OTPConfig(), store, email_sender, clock=clock)
    service.generate_code = lambda: "123456"
    return service


class TestIssue:
    """Test code generation and dispatch ordering."""

    def test_generated_codes_are_six_digits(self, store, email_sender, clock):
        service = OTPService(OTPConfig(), store, email_sender, clock=clock)
        for _ in range(50):
            code = service.generate_code()
            assert len(code) == 6 and code.isdigit()

    @pytest.mark.asyncio
    async def test_issue_sends_and_stores(self, otp, store, email_sender, clock):
        expires_at = await otp.issue(EMAIL)

        stored = await store.get(EMAIL)
        assert stored.code == "123456"
        assert stored.attempts == 0
        assert (expires_at - clock()).total_seconds() == 600
        assert email_sender.last_code_for(EMAIL) == "123456"

    @pytest.mark.asyncio
    async def test_failed_dispatch_stores_nothing(self, otp, store, email_sender):
        email_sender.fail_all = True

        with pytest.raises(ExternalServiceError):
            await otp.issue(EMAIL)
        assert await store.get(EMAIL) is None

    @pytest.mark.asyncio
    async def test_failed_dispatch_keeps_previous_code(self, otp, store, email_sender):
        await otp.issue(EMAIL)
        email_sender.fail_all = True
        otp.generate_code = lambda: "999999"

        with pytest.raises(ExternalServiceError):
            await otp.issue(EMAIL)
        assert (await store.get(EMAIL)).code == "123456"

    @pytest.mark.asyncio
    async def test_reissue_replaces_code_and_resets_attempts(self, otp, store):
        await otp.issue(EMAIL)
        with pytest.raises(InvalidOtpError):
            await otp.verify(EMAIL, "000000")

        otp.generate_code = lambda: "654321"
        await otp.issue(EMAIL)

        stored = await store.get(EMAIL)
        assert stored.code == "654321"
        assert stored.attempts == 0

    @pytest.mark.asyncio
    async def test_email_is_case_insensitive(self, otp):
        await otp.issue("Trader@Example.COM")
        await otp.verify(EMAIL, "123456")


class TestVerify:
    """Test the verification state machine."""

    @pytest.mark.asyncio
    async def test_success_consumes_code(self, otp, store):
        await otp.issue(EMAIL)
        await otp.verify(EMAIL, "123456")

        assert await store.get(EMAIL) is None
        with pytest.raises(OtpNotFoundError):
            await otp.verify(EMAIL, "123456")

    @pytest.mark.asyncio
    async def test_no_code(self, otp):
        with pytest.raises(OtpNotFoundError) as exc_info:
            await otp.verify(EMAIL, "123456")
        assert exc_info.value.message == "No OTP found for this email"

    @pytest.mark.asyncio
    async def test_wrong_code_counts_down(self, otp):
        await otp.issue(EMAIL)

        with pytest.raises(InvalidOtpError) as first:
            await otp.verify(EMAIL, "000000")
        with pytest.raises(InvalidOtpError) as second:
            await otp.verify(EMAIL, "111111")

        assert first.value.message == "Invalid OTP. 2 attempts remaining."
        assert second.value.remaining_attempts == 1

    @pytest.mark.asyncio
    async def test_correct_code_after_three_misses_fails(self, otp, store):
        await otp.issue(EMAIL)
        for wrong in ("000000", "111111", "222222"):
            with pytest.raises(InvalidOtpError):
                await otp.verify(EMAIL, wrong)

        with pytest.raises(OtpAttemptsExhaustedError):
            await otp.verify(EMAIL, "123456")
        assert await store.get(EMAIL) is None

    @pytest.mark.asyncio
    async def test_expired_code(self, otp, store, clock):
        await otp.issue(EMAIL)
        clock.advance(seconds=601)

        with pytest.raises(OtpExpiredError):
            await otp.verify(EMAIL, "123456")
        assert await store.get(EMAIL) is None

    @pytest.mark.asyncio
    async def test_code_valid_at_exact_expiry(self, otp, clock):
        await otp.issue(EMAIL)
        clock.advance(seconds=600)
        await otp.verify(EMAIL, "123456")

    @pytest.mark.asyncio
    async def test_expiry_checked_before_attempts(self, otp, clock):
        await otp.issue(EMAIL)
        for wrong in ("000000", "111111", "222222"):
            with pytest.raises(InvalidOtpError):
                await otp.verify(EMAIL, wrong)
        clock.advance(minutes=11)

        with pytest.raises(OtpExpiredError):
            await otp.verify(EMAIL, "123456")

    @pytest.mark.asyncio
    async def test_failures_are_validation_errors_with_reason(self, otp):
        with pytest.raises(ValidationError) as exc_info:
            await otp.verify(EMAIL, "123456")

        payload = exc_info.value.to_dict()["error"]
        assert payload["status_code"] == 400
        assert payload["reason"] == "not_found"

    @pytest.mark.asyncio
    async def test_non_ascii_submission_is_just_wrong(self, otp):
        await otp.issue(EMAIL)
        with pytest.raises(InvalidOtpError):
            await otp.verify(EMAIL, "١٢٣٤٥٦")


class TestStoreFailures:
    """Test store errors surface as service errors."""

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, email_sender, clock):
        store = AsyncMock()
        store.put.side_effect = ExternalServiceError("One-time code store")
        service = OTPService(OTPConfig(), store, email_sender, clock=clock)

        with pytest.raises(ExternalServiceError):
            await service.issue(EMAIL)
