import unittest
from unittest.mock import MagicMock, patch

import requests

from fairfence.config import (
    CACHE_TTL_SECONDS,
    AppConfiguration,
    ConfigCache,
    ConfigResolver,
    ConfigurationError,
    RemoteConfigError,
    derive_database_url,
    fetch_remote_config,
    generate_session_secret,
)

LOCAL_ENV = {
    "SUPABASE_URL": "https://local.supabase.co",
    "SUPABASE_ANON_KEY": "anon-local",
}

REMOTE_PAYLOAD = {
    "supabase_url": "https://remote.supabase.co",
    "supabase_anon_key": "anon-remote",
    "supabase_service_key": "service-remote",
    "stripe_public_key": "pk_test",
    "smtp_host": "smtp.example.com",
    "smtp_port": 587,
}


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_resolver(env: dict, fetch=None, clock=None) -> ConfigResolver:
    return ConfigResolver(
        getenv=env.get,
        fetch=fetch or MagicMock(side_effect=AssertionError("unexpected fetch")),
        clock=clock or FakeClock(),
    )


class LocalResolutionTests(unittest.TestCase):
    def test_resolves_from_environment(self):
        resolver = make_resolver(dict(LOCAL_ENV, SMTP_HOST="mail.local"))
        config = resolver.resolve()
        self.assertEqual(config.supabase_url, "https://local.supabase.co")
        self.assertEqual(config.supabase_anon_key, "anon-local")
        self.assertEqual(config.smtp_host, "mail.local")
        self.assertTrue(config.session_secret)
        self.assertEqual(resolver.status().source, "local")

    def test_keeps_supplied_session_secret(self):
        resolver = make_resolver(dict(LOCAL_ENV, SESSION_SECRET="s3cret"))
        self.assertEqual(resolver.resolve().session_secret, "s3cret")

    def test_missing_url_raises(self):
        resolver = make_resolver({"SUPABASE_ANON_KEY": "anon"})
        with self.assertRaises(ConfigurationError) as ctx:
            resolver.resolve()
        self.assertEqual(ctx.exception.missing, ["SUPABASE_URL"])
        self.assertFalse(resolver.status().initialized)

    def test_missing_anon_key_raises(self):
        resolver = make_resolver({"SUPABASE_URL": "https://x.supabase.co"})
        with self.assertRaises(ConfigurationError):
            resolver.resolve()

    def test_empty_values_count_as_missing(self):
        resolver = make_resolver({"SUPABASE_URL": "", "SUPABASE_ANON_KEY": ""})
        with self.assertRaises(ConfigurationError) as ctx:
            resolver.resolve()
        self.assertEqual(ctx.exception.missing, ["SUPABASE_URL", "SUPABASE_ANON_KEY"])


class CacheTests(unittest.TestCase):
    def test_second_resolve_returns_cached_record(self):
        clock = FakeClock()
        fetch = MagicMock(return_value=dict(REMOTE_PAYLOAD))
        env = dict(LOCAL_ENV, WORDPRESS_API_URL="https://cms.example.com")
        resolver = make_resolver(env, fetch=fetch, clock=clock)

        first = resolver.resolve()
        clock.advance(CACHE_TTL_SECONDS - 1)
        second = resolver.resolve()

        self.assertIs(first, second)
        self.assertIs(first.session_secret, second.session_secret)
        fetch.assert_called_once()

    def test_expired_cache_is_rebuilt(self):
        clock = FakeClock()
        resolver = make_resolver(dict(LOCAL_ENV), clock=clock)
        first = resolver.resolve()
        clock.advance(CACHE_TTL_SECONDS)
        second = resolver.resolve()
        self.assertIsNot(first, second)

    def test_invalidate_forces_rebuild(self):
        resolver = make_resolver(dict(LOCAL_ENV))
        first = resolver.resolve()
        resolver.invalidate()

        status = resolver.status()
        self.assertFalse(status.initialized)
        self.assertIsNone(status.source)
        self.assertIsNone(resolver.current())

        second = resolver.resolve()
        self.assertIsNot(first, second)
        self.assertNotEqual(first.session_secret, second.session_secret)

    def test_force_refresh_recalculates_source(self):
        env = dict(LOCAL_ENV)
        fetch = MagicMock(return_value=dict(REMOTE_PAYLOAD))
        resolver = make_resolver(env, fetch=fetch)
        resolver.resolve()
        self.assertEqual(resolver.status().source, "local")

        env["WORDPRESS_API_URL"] = "https://cms.example.com"
        config = resolver.force_refresh()
        self.assertEqual(resolver.status().source, "remote")
        self.assertEqual(config.supabase_url, "https://remote.supabase.co")

    def test_status_does_not_resolve(self):
        fetch = MagicMock()
        resolver = make_resolver(
            dict(LOCAL_ENV, WORDPRESS_API_URL="https://cms.example.com"), fetch=fetch
        )
        status = resolver.status()
        self.assertEqual(
            status.as_dict(),
            {"initialized": False, "source": None, "hasElevatedCredentials": False},
        )
        fetch.assert_not_called()

    def test_cache_entry_requires_timestamp(self):
        config = AppConfiguration(supabase_url="https://x", supabase_anon_key="k")
        with self.assertRaises(ValueError):
            ConfigCache(config=config)


class RemoteResolutionTests(unittest.TestCase):
    def test_remote_success(self):
        fetch = MagicMock(return_value=dict(REMOTE_PAYLOAD))
        env = dict(LOCAL_ENV, WORDPRESS_API_URL="https://cms.example.com")
        resolver = make_resolver(env, fetch=fetch)

        config = resolver.resolve()

        fetch.assert_called_once_with("https://cms.example.com", 10)
        self.assertEqual(config.supabase_url, "https://remote.supabase.co")
        self.assertEqual(config.supabase_service_role_key, "service-remote")
        self.assertEqual(
            config.database_url, "postgresql://postgres:@remote.supabase.co/postgres"
        )
        self.assertEqual(config.smtp_port, "587")
        self.assertEqual(config.remote_config_url, "https://cms.example.com")
        self.assertTrue(config.session_secret)
        self.assertEqual(
            resolver.status().as_dict(),
            {"initialized": True, "source": "remote", "hasElevatedCredentials": True},
        )

    def test_remote_failure_falls_back_to_environment(self):
        fetch = MagicMock(side_effect=RemoteConfigError("returned 500"))
        env = dict(LOCAL_ENV, WORDPRESS_API_URL="https://cms.example.com")
        resolver = make_resolver(env, fetch=fetch)

        with self.assertLogs("fairfence.config", level="WARNING"):
            config = resolver.resolve()

        self.assertEqual(config.supabase_url, "https://local.supabase.co")
        self.assertEqual(resolver.status().source, "local")

    def test_unexpected_fetch_error_falls_back(self):
        fetch = MagicMock(side_effect=ConnectionError("boom"))
        env = dict(LOCAL_ENV, REMOTE_CONFIG_URL="https://cms.example.com")
        resolver = make_resolver(env, fetch=fetch)
        self.assertEqual(resolver.resolve().supabase_anon_key, "anon-local")

    def test_remote_missing_required_fields_falls_back(self):
        fetch = MagicMock(return_value={"supabase_url": "https://remote.supabase.co"})
        env = dict(LOCAL_ENV, WORDPRESS_API_URL="https://cms.example.com")
        resolver = make_resolver(env, fetch=fetch)
        self.assertEqual(resolver.resolve().supabase_url, "https://local.supabase.co")

    def test_non_string_remote_fields_fall_back(self):
        fetch = MagicMock(return_value={"supabase_url": 123, "supabase_anon_key": "k"})
        env = dict(LOCAL_ENV, WORDPRESS_API_URL="https://cms.example.com")
        resolver = make_resolver(env, fetch=fetch)
        self.assertEqual(resolver.resolve().supabase_url, "https://local.supabase.co")
        self.assertEqual(resolver.status().source, "local")

    def test_error_building_remote_record_falls_back(self):
        fetch = MagicMock(return_value=dict(REMOTE_PAYLOAD))
        env = dict(LOCAL_ENV, WORDPRESS_API_URL="https://cms.example.com")
        resolver = make_resolver(env, fetch=fetch)
        with patch(
            "fairfence.config.derive_database_url", side_effect=AttributeError("bad")
        ):
            self.assertEqual(
                resolver.resolve().supabase_url, "https://local.supabase.co"
            )

    def test_remote_and_local_both_failing_raises(self):
        fetch = MagicMock(side_effect=RemoteConfigError("down"))
        resolver = make_resolver({"WORDPRESS_API_URL": "https://cms"}, fetch=fetch)
        with self.assertRaises(ConfigurationError):
            resolver.resolve()


class FetchRemoteConfigTests(unittest.TestCase):
    @patch("fairfence.config.requests.get")
    def test_requests_config_path(self, mock_get):
        mock_get.return_value.json.return_value = dict(REMOTE_PAYLOAD)
        payload = fetch_remote_config("https://cms.example.com/", timeout=5)

        self.assertEqual(payload["supabase_url"], "https://remote.supabase.co")
        mock_get.assert_called_once_with(
            "https://cms.example.com/config",
            headers={"Accept": "application/json"},
            timeout=5,
        )

    @patch("fairfence.config.requests.get")
    def test_http_error_is_remote_config_error(self, mock_get):
        mock_get.return_value.raise_for_status.side_effect = requests.HTTPError("503")
        with self.assertRaises(RemoteConfigError):
            fetch_remote_config("https://cms.example.com")

    @patch("fairfence.config.requests.get")
    def test_non_object_body_is_remote_config_error(self, mock_get):
        mock_get.return_value.json.return_value = ["not", "a", "dict"]
        with self.assertRaises(RemoteConfigError):
            fetch_remote_config("https://cms.example.com")


class HelperTests(unittest.TestCase):
    def test_session_secrets_differ(self):
        self.assertNotEqual(generate_session_secret(), generate_session_secret())

    def test_derive_database_url(self):
        self.assertEqual(
            derive_database_url("https://abc.supabase.co"),
            "postgresql://postgres:@abc.supabase.co/postgres",
        )


if __name__ == "__main__":
    unittest.main()
