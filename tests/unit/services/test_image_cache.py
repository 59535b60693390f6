"""
Unit tests for ImageCacheService.

Tests the composed loader: cache-first reads, queued loads on a miss,
failure memoization, batch preloading, resets and store initialization
failures. The network is a scripted FakeTransport and backoff waits are
recorded instead of slept.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from unittest.mock import patch

import pytest
import pytest_asyncio

from pixelcache.config.settings import Settings
from pixelcache.exceptions import StoreInitializationError
from pixelcache.models.enums import OutcomeStatus, Priority
from pixelcache.services.image_cache import ImageCacheConfig, ImageCacheService
from tests.factories.image_factory import (
    FakeTransport,
    ImageTestData,
    TransportResponseFactory,
    server_error,
)

URL_A, URL_B, URL_C, URL_D, URL_E = ImageTestData.VALID_URLS


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest_asyncio.fixture
async def service(image_cache_config, fake_transport, sleep_recorder):
    """Open an ImageCacheService over a temporary sqlite store."""
    svc = ImageCacheService(
        image_cache_config, transport=fake_transport, sleep=sleep_recorder
    )
    await svc.open()
    yield svc
    await svc.close()


def broken_config(tmp_path: Path) -> ImageCacheConfig:
    missing = tmp_path / "missing" / "dir" / "pixelcache.db"
    return ImageCacheConfig(database_url=f"sqlite+aiosqlite:///{missing}")


# ═══════════════════════════════════════════════════════════════════════════
# Configuration
# ═══════════════════════════════════════════════════════════════════════════


class TestImageCacheConfig:
    def test_defaults(self):
        config = ImageCacheConfig(database_url="sqlite+aiosqlite:///:memory:")
        assert config.max_retries == 3
        assert config.retry_base_delay_ms == 1000
        assert config.max_concurrent == 5
        assert config.cache_capacity == 100
        assert config.fallback_resource == ImageTestData.FALLBACK

    def test_from_settings(self, mock_settings: Settings):
        config = ImageCacheConfig.from_settings(mock_settings)
        assert config.database_url == mock_settings.effective_database_url
        assert config.cache_capacity == mock_settings.cache_capacity
        assert config.max_concurrent == mock_settings.max_concurrent

    @pytest.mark.parametrize(
        "field, value",
        [("max_retries", 0), ("max_concurrent", 0), ("cache_capacity", 0), ("request_timeout", 0)],
    )
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValueError):
            ImageCacheConfig(database_url="sqlite+aiosqlite:///:memory:", **{field: value})


# ═══════════════════════════════════════════════════════════════════════════
# get_image
# ═══════════════════════════════════════════════════════════════════════════


class TestGetImage:
    async def test_cache_hit_skips_network(self, service, fake_transport):
        await service.store.put(URL_A, "data:image/png;base64,AAAA")

        payload = await service.get_image(URL_A)

        assert payload == "data:image/png;base64,AAAA"
        assert fake_transport.calls == []

    async def test_cache_miss_fetches_and_stores(self, service, fake_transport):
        payload = await service.get_image(URL_A)

        assert payload.startswith("data:image/jpeg;base64,")
        assert await service.store.get(URL_A) == payload

        again = await service.get_image(URL_A)
        assert again == payload
        assert fake_transport.calls_for(URL_A) == 1

    async def test_passes_priority_to_queue(self, service):
        with patch.object(
            service.queue, "enqueue", wraps=service.queue.enqueue
        ) as enqueue:
            await service.get_image(URL_A, priority=Priority.HIGH)

        enqueue.assert_called_once_with(URL_A, Priority.HIGH)

    async def test_defaults_to_normal_priority(self, service):
        with patch.object(
            service.queue, "enqueue", wraps=service.queue.enqueue
        ) as enqueue:
            await service.get_image(URL_A)

        enqueue.assert_called_once_with(URL_A, Priority.NORMAL)

    async def test_opens_store_on_first_use(self, image_cache_config, fake_transport):
        svc = ImageCacheService(image_cache_config, transport=fake_transport)
        try:
            payload = await svc.get_image(URL_A)
            assert payload.startswith("data:")
            assert svc.store.is_open is True
        finally:
            await svc.close()

    async def test_capacity_eviction_through_service(self, tmp_path, fake_transport):
        config = ImageCacheConfig(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'small.db'}",
            cache_capacity=2,
        )
        async with ImageCacheService(config, transport=fake_transport) as svc:
            for url in (URL_A, URL_B, URL_C):
                await svc.get_image(url)

            assert svc.store.keys() == [URL_B, URL_C]
            assert await svc.store.get(URL_A) is None


# ═══════════════════════════════════════════════════════════════════════════
# Failure memoization
# ═══════════════════════════════════════════════════════════════════════════


class TestFailureMemoization:
    async def test_exhausted_url_returns_fallback(self, service, fake_transport, sleep_recorder):
        fake_transport.set_script(URL_A, [server_error(URL_A, 503)])

        payload = await service.get_image(URL_A)

        assert payload == ImageTestData.FALLBACK
        assert fake_transport.calls_for(URL_A) == 3
        assert sleep_recorder.delays == [1.0, 2.0]
        assert service.failures.is_failed(URL_A)

    async def test_failed_url_short_circuits_until_reset(self, service, fake_transport):
        fake_transport.set_script(URL_A, [server_error(URL_A, 500)])
        await service.get_image(URL_A)
        calls_after_failure = fake_transport.calls_for(URL_A)

        assert await service.get_image(URL_A) == ImageTestData.FALLBACK
        assert fake_transport.calls_for(URL_A) == calls_after_failure

        fake_transport.set_script(URL_A, [TransportResponseFactory(url=URL_A)])
        service.clear_failed_urls()

        payload = await service.get_image(URL_A)
        assert payload.startswith("data:image/jpeg;base64,")
        assert fake_transport.calls_for(URL_A) == calls_after_failure + 1

    async def test_failure_check_precedes_cache(self, service, fake_transport):
        await service.store.put(URL_A, "data:image/png;base64,AAAA")
        service.failures.mark_failed(URL_A)

        assert await service.get_image(URL_A) == ImageTestData.FALLBACK
        assert fake_transport.calls == []

    async def test_failures_are_per_instance(self, image_cache_config, tmp_path):
        other_config = image_cache_config.model_copy(
            update={"database_url": f"sqlite+aiosqlite:///{tmp_path / 'other.db'}"}
        )
        first = ImageCacheService(image_cache_config, transport=FakeTransport())
        second = ImageCacheService(other_config, transport=FakeTransport())
        try:
            await first.open()
            await second.open()
            first.failures.mark_failed(URL_A)

            assert await first.get_image(URL_A) == ImageTestData.FALLBACK
            assert (await second.get_image(URL_A)).startswith("data:")
            assert await first.store.get(URL_A) is None
        finally:
            await first.close()
            await second.close()


# ═══════════════════════════════════════════════════════════════════════════
# preload_images / cache_image
# ═══════════════════════════════════════════════════════════════════════════


class TestPreload:
    async def test_one_failure_does_not_affect_others(self, service, fake_transport):
        fake_transport.set_script(URL_B, [server_error(URL_B, 503)])

        outcomes = await service.preload_images([URL_A, URL_B, URL_C])

        assert [o.url for o in outcomes] == [URL_A, URL_B, URL_C]
        assert all(o.status == OutcomeStatus.FULFILLED for o in outcomes)
        assert outcomes[0].value.startswith("data:")
        assert outcomes[1].value == ImageTestData.FALLBACK
        assert outcomes[2].value.startswith("data:")
        assert await service.store.get(URL_A) is not None
        assert await service.store.get(URL_C) is not None

    async def test_preload_bypasses_cache(self, service, fake_transport):
        await service.store.put(URL_A, "data:image/png;base64,OLD")

        outcomes = await service.preload_images([URL_A])

        assert fake_transport.calls_for(URL_A) == 1
        assert outcomes[0].value.startswith("data:image/jpeg;base64,")
        assert await service.store.get(URL_A) == outcomes[0].value

    async def test_preload_uses_low_priority(self, service):
        with patch.object(
            service.queue, "enqueue", wraps=service.queue.enqueue
        ) as enqueue:
            await service.preload_images([URL_A, URL_B])

        priorities = {call.args[1] for call in enqueue.call_args_list}
        assert priorities == {Priority.LOW}

    async def test_empty_batch(self, service):
        assert await service.preload_images([]) == []

    async def test_store_unavailable_rejects_each_url(self, tmp_path):
        svc = ImageCacheService(broken_config(tmp_path), transport=FakeTransport())
        try:
            outcomes = await svc.preload_images([URL_A, URL_B])
        finally:
            await svc.close()

        assert [o.status for o in outcomes] == [OutcomeStatus.REJECTED] * 2
        assert all("initialize" in (o.reason or "") for o in outcomes)

    async def test_cache_image_returns_payload(self, service):
        payload = await service.cache_image(URL_D)
        assert payload.startswith("data:image/jpeg;base64,")
        assert URL_D in service.store


# ═══════════════════════════════════════════════════════════════════════════
# Concurrency
# ═══════════════════════════════════════════════════════════════════════════


class TestServiceConcurrency:
    async def test_in_flight_loads_are_bounded(self, tmp_path):
        gate = asyncio.Event()
        transport = FakeTransport(gate=gate)
        config = ImageCacheConfig(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'bounded.db'}",
            max_concurrent=2,
        )
        async with ImageCacheService(config, transport=transport) as svc:
            tasks = [
                asyncio.ensure_future(svc.get_image(f"https://img.example/{i}.jpg"))
                for i in range(6)
            ]
            for _ in range(200):
                if transport.in_flight == 2:
                    break
                await asyncio.sleep(0.01)
            assert transport.in_flight == 2
            await asyncio.sleep(0.05)
            assert transport.in_flight == 2

            gate.set()
            results = await asyncio.gather(*tasks)

        assert transport.peak_in_flight == 2
        assert all(r.startswith("data:") for r in results)


# ═══════════════════════════════════════════════════════════════════════════
# Resets, stats and lifecycle
# ═══════════════════════════════════════════════════════════════════════════


class TestResetsAndStats:
    async def test_clear_cache_forces_refetch(self, service, fake_transport):
        await service.get_image(URL_A)
        await service.clear_cache()

        assert service.store.keys() == []
        await service.get_image(URL_A)
        assert fake_transport.calls_for(URL_A) == 2

    async def test_clear_cache_keeps_failures(self, service):
        service.failures.mark_failed(URL_B)
        await service.clear_cache()
        assert service.failures.is_failed(URL_B)

    async def test_get_stats(self, service, fake_transport):
        fake_transport.set_script(URL_C, [server_error(URL_C)])
        await service.get_image(URL_A)
        await service.get_image(URL_B)
        await service.get_image(URL_C)

        stats = await service.get_stats()

        assert stats.entry_count == 2
        assert stats.capacity == 100
        assert stats.failed_url_count == 1
        assert stats.total_payload_chars > 0
        assert stats.active_loads == 0
        assert stats.pending_loads == 0


class TestStoreInitialization:
    async def test_get_image_raises_when_store_unavailable(self, tmp_path):
        transport = FakeTransport()
        svc = ImageCacheService(broken_config(tmp_path), transport=transport)
        try:
            with pytest.raises(StoreInitializationError):
                await svc.get_image(URL_A)
            with pytest.raises(StoreInitializationError):
                await svc.get_image(URL_A)
        finally:
            await svc.close()

        assert transport.calls == []

    async def test_open_raises_when_store_unavailable(self, tmp_path):
        svc = ImageCacheService(broken_config(tmp_path), transport=FakeTransport())
        with pytest.raises(StoreInitializationError):
            await svc.open()
        await svc.close()

    async def test_clear_failed_urls_works_without_store(self, tmp_path):
        svc = ImageCacheService(broken_config(tmp_path), transport=FakeTransport())
        svc.failures.mark_failed(URL_A)
        svc.clear_failed_urls()
        assert len(svc.failures) == 0


class TestLifecycle:
    async def test_context_manager_closes_queue(self, image_cache_config, fake_transport):
        async with ImageCacheService(image_cache_config, transport=fake_transport) as svc:
            await svc.get_image(URL_A)
            assert svc.queue.is_running

        assert svc.queue.is_running is False
        assert svc.store.is_open is False
        # Injected transports belong to the caller
        assert fake_transport.closed is False

    async def test_cache_survives_service_restart(self, image_cache_config):
        first_transport = FakeTransport()
        async with ImageCacheService(image_cache_config, transport=first_transport) as svc:
            payload = await svc.get_image(URL_E)

        second_transport = FakeTransport()
        async with ImageCacheService(image_cache_config, transport=second_transport) as svc:
            assert await svc.get_image(URL_E) == payload

        assert second_transport.calls == []

    async def test_reopen_after_close(self, image_cache_config, fake_transport):
        svc = ImageCacheService(image_cache_config, transport=fake_transport)

        async with svc:
            first = await svc.get_image(URL_A)

        async with svc:
            second = await svc.get_image(URL_B)
            assert await svc.get_image(URL_A) == first
            assert svc.queue.is_running

        assert second.startswith("data:image/jpeg;base64,")
        assert fake_transport.calls == [URL_A, URL_B]

    async def test_operation_after_close_reopens(self, image_cache_config, fake_transport):
        svc = ImageCacheService(image_cache_config, transport=fake_transport)
        await svc.open()
        await svc.get_image(URL_A)
        await svc.close()

        try:
            payload = await svc.get_image(URL_C)
            stats = await svc.get_stats()
        finally:
            await svc.close()

        assert payload.startswith("data:")
        assert stats.entry_count == 2

    async def test_owned_transport_reopens(self, image_cache_config):
        svc = ImageCacheService(image_cache_config)
        await svc.open()
        await svc.close()

        await svc.open()
        try:
            assert svc.store.is_open is True
            assert svc.queue.is_running is True
        finally:
            await svc.close()
