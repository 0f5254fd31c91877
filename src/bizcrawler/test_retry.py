import pytest

from bizcrawler.errors import NavigationTimeout, RenderFailure
from bizcrawler.retry import RetryPolicy, call_with_retry


def test_timeout_grows_with_backoff():
    policy = RetryPolicy(max_attempts=3, base_timeout=15000, backoff=2.0)
    assert [policy.timeout_for(n) for n in (1, 2, 3)] == [15000, 30000, 60000]
    assert RetryPolicy.single(8).max_attempts == 1


@pytest.mark.asyncio
async def test_retries_listed_errors_with_longer_timeout():
    seen = []

    async def operation(timeout, attempt):
        seen.append((timeout, attempt))
        if attempt == 1:
            raise NavigationTimeout("https://example.com/", "slow")
        return "ok"

    result = await call_with_retry(operation, RetryPolicy(2, 100, 2.0), retry_on=(NavigationTimeout,))
    assert result == "ok"
    assert seen == [(100, 1), (200, 2)]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    calls = []

    async def operation(timeout, attempt):
        calls.append(attempt)
        raise NavigationTimeout("https://example.com/", "slow")

    with pytest.raises(NavigationTimeout):
        await call_with_retry(operation, RetryPolicy(2, 100, 2.0), retry_on=(NavigationTimeout,))
    assert calls == [1, 2]


@pytest.mark.asyncio
async def test_other_errors_are_not_retried():
    calls = []

    async def operation(timeout, attempt):
        calls.append(attempt)
        raise RenderFailure("https://example.com/", "status 500")

    with pytest.raises(RenderFailure):
        await call_with_retry(operation, RetryPolicy(3, 100, 2.0), retry_on=(NavigationTimeout,))
    assert calls == [1]


@pytest.mark.asyncio
async def test_retry_is_logged(caplog):
    async def operation(timeout, attempt):
        if attempt == 1:
            raise NavigationTimeout("https://example.com/", "slow")
        return timeout

    with caplog.at_level("WARNING", logger="bizcrawler.retry"):
        result = await call_with_retry(operation, RetryPolicy(2, 100, 2.0), retry_on=(NavigationTimeout,),
                                       label="render https://example.com/")
    assert result == 200
    assert "render https://example.com/ failed on attempt 1/2" in caplog.text
