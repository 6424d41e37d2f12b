"""Unit tests for the debounced live duplicate check."""

import asyncio

import pytest

from admissions.client.live_check import DuplicateCheckSession
from admissions.models.enums import DuplicateCheckState, DuplicateSeverity
from admissions.services.duplicates import DuplicateValidationResult


class FakeCheck:
    """Async check recording its calls; names in `duplicates` match an existing student."""

    def __init__(self, duplicates=(), delay=0.0, error=None):
        self.duplicates = set(duplicates)
        self.delay = delay
        self.error = error
        self.calls = []

    async def __call__(self, candidate, *, exclude_id=None, strict=False):
        self.calls.append((candidate["name"], strict, exclude_id))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if candidate["name"] not in self.duplicates:
            return DuplicateValidationResult()
        severity = DuplicateSeverity.ERROR if strict else DuplicateSeverity.WARNING
        return DuplicateValidationResult(is_duplicate=True, severity=severity, message="duplicate")


@pytest.mark.asyncio
async def test_starts_idle_and_submittable():
    session = DuplicateCheckSession(FakeCheck(), debounce=0.01)

    assert session.state == DuplicateCheckState.IDLE
    assert session.can_submit


@pytest.mark.asyncio
async def test_clear_after_debounce():
    check = FakeCheck()
    session = DuplicateCheckSession(check, debounce=0.01, exclude_id="abc")

    session.update({"name": "Ann"})
    assert session.state == DuplicateCheckState.IDLE
    await session.wait()

    assert session.state == DuplicateCheckState.CLEAR
    assert check.calls == [("Ann", False, "abc")]


@pytest.mark.asyncio
async def test_live_duplicate_warns_but_allows_submit():
    session = DuplicateCheckSession(FakeCheck(duplicates={"John Okello"}), debounce=0.01)

    session.update({"name": "John Okello"})
    await session.wait()

    assert session.state == DuplicateCheckState.WARNED_DUPLICATE
    assert session.result.severity == DuplicateSeverity.WARNING
    assert session.can_submit


@pytest.mark.asyncio
async def test_rapid_updates_check_latest_input_only():
    check = FakeCheck()
    session = DuplicateCheckSession(check, debounce=0.05)

    for name in ("J", "Jo", "John"):
        session.update({"name": name})
        await asyncio.sleep(0.005)
    await session.wait()

    assert check.calls == [("John", False, None)]


@pytest.mark.asyncio
async def test_stale_result_is_not_applied():
    check = FakeCheck(duplicates={"John Okello"}, delay=0.05)
    session = DuplicateCheckSession(check, debounce=0)

    session.update({"name": "John Okello"})
    await asyncio.sleep(0.01)
    assert session.state == DuplicateCheckState.CHECKING

    session.update({"name": "John Okelo"})
    await session.wait()

    assert [c[0] for c in check.calls] == ["John Okello", "John Okelo"]
    assert session.state == DuplicateCheckState.CLEAR


@pytest.mark.asyncio
async def test_check_failure_fails_open():
    session = DuplicateCheckSession(FakeCheck(error=RuntimeError("backend down")), debounce=0.01)

    session.update({"name": "Ann"})
    await session.wait()

    assert session.state == DuplicateCheckState.CLEAR
    assert session.can_submit


@pytest.mark.asyncio
async def test_submission_check_blocks_exact_duplicate():
    check = FakeCheck(duplicates={"John Okello"})
    session = DuplicateCheckSession(check, debounce=0.01)

    result = await session.check_for_submission({"name": "John Okello"})

    assert result.blocks_submission
    assert session.state == DuplicateCheckState.BLOCKED_DUPLICATE
    assert not session.can_submit

    # stays blocked without re-checking until the input changes
    again = await session.check_for_submission({"name": "John Okello"})
    assert again is result
    assert len(check.calls) == 1

    session.update({"name": "John Okello Jr"})
    assert session.can_submit
    await session.wait()
    assert session.state == DuplicateCheckState.CLEAR


@pytest.mark.asyncio
async def test_submission_check_supersedes_pending_live_check():
    check = FakeCheck()
    session = DuplicateCheckSession(check, debounce=0.05)

    session.update({"name": "Ann"})
    await session.check_for_submission({"name": "Ann"})
    await session.wait()

    assert check.calls == [("Ann", True, None)]
    assert session.state == DuplicateCheckState.CLEAR


@pytest.mark.asyncio
async def test_close_cancels_pending_check():
    check = FakeCheck()
    session = DuplicateCheckSession(check, debounce=0.05)

    session.update({"name": "Ann"})
    await session.close()
    await asyncio.sleep(0.06)

    assert check.calls == []
    assert session.state == DuplicateCheckState.IDLE


@pytest.mark.asyncio
async def test_for_registry_uses_registry_validation():
    class Registry:
        validate_against_duplicates = FakeCheck(duplicates={"Ann"})

    session = DuplicateCheckSession.for_registry(Registry(), debounce=0)
    session.update({"name": "Ann"})
    await session.wait()

    assert session.state == DuplicateCheckState.WARNED_DUPLICATE
    assert session.result.message == "duplicate"
