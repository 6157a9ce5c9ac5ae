import unittest
from unittest.mock import MagicMock, patch

from fastapi.testclient import TestClient
from redis import exceptions as redis_exceptions

from splan.app import create_app
from splan.cache import (
    CacheConnection,
    CacheState,
    MemoryCache,
    NullCache,
    RedisCache,
    build_cache,
    cached,
)
from splan.config import Settings


class CacheConnectionTests(unittest.TestCase):
    def test_connect_without_url_creates_no_client(self):
        factory = MagicMock()
        connection = CacheConnection(None, client_factory=factory)
        connection.connect()
        factory.assert_not_called()
        self.assertIsNone(connection.client)
        self.assertEqual(connection.state, CacheState.ABSENT)
        self.assertFalse(connection.is_connected)

    def test_unreachable_redis_does_not_raise(self):
        factory = MagicMock()
        factory.return_value.ping.side_effect = redis_exceptions.ConnectionError("refused")
        connection = CacheConnection("redis://10.255.255.1:6379", client_factory=factory)
        connection.connect()
        self.assertIsNone(connection.client)
        self.assertEqual(connection.state, CacheState.ABSENT)

    def test_factory_error_does_not_raise(self):
        factory = MagicMock(side_effect=ConnectionError("no route to host"))
        connection = CacheConnection("redis://cache:6379", client_factory=factory)
        connection.connect()
        self.assertIsNone(connection.client)

    def test_connect_passes_timeouts_and_connects(self):
        factory = MagicMock()
        connection = CacheConnection(
            "redis://cache:6379", socket_timeout=2.0, client_factory=factory
        )
        connection.connect()
        factory.assert_called_once_with(
            "redis://cache:6379", socket_connect_timeout=2.0, socket_timeout=2.0
        )
        self.assertTrue(connection.is_connected)
        self.assertEqual(connection.state, CacheState.CONNECTED)

        # Connecting again keeps the existing client.
        connection.connect()
        factory.assert_called_once()

    def test_disconnect_is_safe_to_repeat(self):
        never_connected = CacheConnection(None)
        never_connected.disconnect()
        never_connected.disconnect()

        factory = MagicMock()
        connection = CacheConnection("redis://cache:6379", client_factory=factory)
        connection.connect()
        connection.disconnect()
        connection.disconnect()
        factory.return_value.close.assert_called_once()
        self.assertIsNone(connection.client)
        self.assertEqual(connection.state, CacheState.DISCONNECTED)

    def test_close_error_is_logged_not_raised(self):
        factory = MagicMock()
        factory.return_value.close.side_effect = redis_exceptions.ConnectionError("gone")
        connection = CacheConnection("redis://cache:6379", client_factory=factory)
        connection.connect()
        connection.disconnect()
        self.assertIsNone(connection.client)

    def test_url_without_scheme_reverts_to_absent(self):
        connection = CacheConnection("localhost:6379", socket_timeout=0.5)
        connection.connect()
        self.assertIsNone(connection.client)
        self.assertEqual(connection.state, CacheState.ABSENT)

    def test_refused_port_reverts_to_absent(self):
        connection = CacheConnection("redis://127.0.0.1:1", socket_timeout=0.5)
        connection.connect()
        self.assertIsNone(connection.client)
        self.assertEqual(connection.state, CacheState.ABSENT)
        self.assertFalse(connection.is_connected)


class RedisCacheTests(unittest.TestCase):
    def setUp(self):
        self.factory = MagicMock()
        self.connection = CacheConnection("redis://cache:6379", client_factory=self.factory)
        self.connection.connect()
        self.redis = self.factory.return_value
        self.cache = RedisCache(self.connection, key_prefix="test", default_ttl=60)

    def test_set_and_get_use_prefix_and_json(self):
        self.cache.set("k", {"a": 1})
        self.redis.setex.assert_called_once_with("test:k", 60, '{"a": 1}')

        self.redis.get.return_value = '{"a": 1}'
        self.assertEqual(self.cache.get("k"), {"a": 1})
        self.redis.get.assert_called_with("test:k")

    def test_errors_become_misses(self):
        self.redis.get.side_effect = redis_exceptions.TimeoutError("slow")
        self.redis.setex.side_effect = redis_exceptions.ConnectionError("down")
        self.assertIsNone(self.cache.get("k"))
        self.cache.set("k", 1)
        self.cache.delete("k")

    def test_read_through_falls_back_to_loader(self):
        self.redis.get.side_effect = redis_exceptions.ConnectionError("down")
        self.redis.setex.side_effect = redis_exceptions.ConnectionError("down")
        loader = MagicMock(return_value={"total": 3})
        self.assertEqual(cached(self.cache, "dashboard:u1", loader), {"total": 3})
        loader.assert_called_once()

    def test_without_client_behaves_as_disabled(self):
        cache = RedisCache(CacheConnection(None), key_prefix="test")
        cache.set("k", 1)
        self.assertIsNone(cache.get("k"))
        self.assertEqual(
            cached(cache, "k", lambda: "from-store"),
            "from-store",
        )
        self.assertFalse(cache.stats()["redis_connected"])


class MemoryCacheTests(unittest.TestCase):
    def test_read_through_hits_after_first_load(self):
        cache = MemoryCache(default_ttl=60)
        loader = MagicMock(return_value=[1, 2])
        self.assertEqual(cached(cache, "k", loader), [1, 2])
        self.assertEqual(cached(cache, "k", loader), [1, 2])
        loader.assert_called_once()

    @patch("splan.cache.time.time")
    def test_entries_expire(self, mock_time):
        mock_time.return_value = 1000.0
        cache = MemoryCache(default_ttl=10)
        cache.set("k", "v")
        mock_time.return_value = 1005.0
        self.assertEqual(cache.get("k"), "v")
        mock_time.return_value = 1010.0
        self.assertIsNone(cache.get("k"))

    @patch("splan.cache.time.time")
    def test_full_cache_evicts_oldest(self, mock_time):
        cache = MemoryCache(default_ttl=100, max_entries=5)
        for i in range(5):
            mock_time.return_value = 1000.0 + i
            cache.set(f"k{i}", i)
        mock_time.return_value = 1010.0
        cache.set("new", "v")
        self.assertIsNone(cache.get("k0"))
        self.assertEqual(cache.get("k1"), 1)
        self.assertEqual(cache.get("new"), "v")

    def test_null_cache_never_hits(self):
        cache = NullCache()
        cache.set("k", 1)
        self.assertIsNone(cache.get("k"))
        self.assertEqual(cache.stats()["backend"], "disabled")


class BuildCacheTests(unittest.TestCase):
    def test_variant_follows_settings(self):
        connection = CacheConnection(None)
        self.assertIsInstance(
            build_cache(Settings(redis_url="redis://cache:6379"), connection), RedisCache
        )
        self.assertIsInstance(
            build_cache(Settings(redis_url=None, use_in_memory_backends=True), connection),
            MemoryCache,
        )
        self.assertIsInstance(
            build_cache(Settings(redis_url=None, use_in_memory_backends=False), connection),
            NullCache,
        )


class LifespanTests(unittest.TestCase):
    def test_app_starts_and_stops_with_unreachable_redis(self):
        factory = MagicMock()
        factory.return_value.ping.side_effect = redis_exceptions.ConnectionError("refused")
        connection = CacheConnection("redis://cache:6379", client_factory=factory)
        app = create_app(Settings(redis_url="redis://cache:6379"), cache_connection=connection)

        with TestClient(app) as client:
            response = client.get("/api/v1/health")
            self.assertEqual(response.status_code, 200)
            self.assertEqual(response.json()["cache"]["backend"], "redis")
            self.assertFalse(response.json()["cache"]["redis_connected"])

        factory.assert_called_once()
        self.assertEqual(connection.state, CacheState.ABSENT)

    def test_lifespan_closes_connected_client(self):
        factory = MagicMock()
        connection = CacheConnection("redis://cache:6379", client_factory=factory)
        app = create_app(Settings(redis_url="redis://cache:6379"), cache_connection=connection)

        with TestClient(app):
            self.assertTrue(connection.is_connected)

        factory.return_value.close.assert_called_once()
        self.assertEqual(connection.state, CacheState.DISCONNECTED)

    def test_app_starts_with_malformed_redis_url(self):
        app = create_app(Settings(redis_url="localhost:6379", redis_socket_timeout=0.5))

        with TestClient(app) as client:
            response = client.get("/api/v1/health")
            self.assertEqual(response.status_code, 200)
            self.assertFalse(response.json()["cache"]["redis_connected"])

        self.assertEqual(app.state.cache_connection.state, CacheState.ABSENT)


if __name__ == "__main__":
    unittest.main()
