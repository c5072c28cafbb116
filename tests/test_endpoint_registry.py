"""Tests for endpoint subscription matching and the endpoint write path."""
import pytest

from webhook_engine.exceptions import ConfigurationError, NotFoundError
from webhook_engine.services import endpoint_registry, url_safety
from webhook_engine.services.endpoint_registry import matches_event, resolve_subscribers


@pytest.mark.parametrize(
    "patterns, event_type, expected",
    [
        (["bio.created"], "bio.created", True),
        (["bio.updated"], "bio.created", False),
        (["bio.*"], "bio.created", True),
        (["bio.*"], "bio.page.viewed", True),
        (["bio.*"], "biography.created", False),
        (["bio.*"], "bio", False),
        (["*"], "any.event.type", True),
        ([], "bio.created", False),
        (["shop.*", "bio.created"], "bio.created", True),
    ],
)
def test_matches_event(patterns, event_type, expected):
    assert matches_event(patterns, event_type) is expected


def test_create_endpoint_generates_secret(db):
    endpoint = endpoint_registry.create_endpoint(
        db, "t1", "https://example.com/webhook", ["bio.created", "bio.created", " shop.* "]
    )

    assert endpoint.id is not None
    assert endpoint.active is True
    assert len(endpoint.secret) == 64
    assert endpoint.events == ["bio.created", "shop.*"]


def test_create_endpoint_rejects_bad_configuration(db):
    with pytest.raises(ConfigurationError):
        endpoint_registry.create_endpoint(db, "t1", "http://example.com/hook", ["bio.*"])
    with pytest.raises(ConfigurationError):
        endpoint_registry.create_endpoint(db, "t1", "https://example.com/hook", [])
    with pytest.raises(ConfigurationError):
        endpoint_registry.create_endpoint(db, "t1", "https://example.com/hook", ["*.created"])
    with pytest.raises(ConfigurationError):
        endpoint_registry.create_endpoint(db, "", "https://example.com/hook", ["bio.*"])


def test_resolve_subscribers_filters_inactive_and_unsubscribed(db, make_endpoint):
    exact = make_endpoint(events=["bio.created"])
    wildcard = make_endpoint(events=["bio.*"])
    make_endpoint(events=["bio.updated"])
    inactive = make_endpoint(events=["bio.created"])
    make_endpoint(tenant_id="t2", events=["*"])
    endpoint_registry.deactivate_endpoint(db, "t1", inactive.id)

    subscribers = resolve_subscribers(db, "t1", "bio.created")

    assert [e.id for e in subscribers] == [exact.id, wildcard.id]


def test_deactivate_and_enable(db, make_endpoint):
    endpoint = make_endpoint()

    endpoint = endpoint_registry.deactivate_endpoint(db, "t1", endpoint.id)
    assert endpoint.active is False
    assert endpoint.revoked_at is not None

    endpoint = endpoint_registry.enable_endpoint(db, "t1", endpoint.id)
    assert endpoint.active is True
    assert endpoint.revoked_at is None


def test_update_endpoint_keeps_secret(db, make_endpoint):
    endpoint = make_endpoint()
    secret = endpoint.secret

    updated = endpoint_registry.update_endpoint(
        db, "t1", endpoint.id, url="https://hooks.example.org/in", events=["shop.*"]
    )

    assert updated.url == "https://hooks.example.org/in"
    assert updated.events == ["shop.*"]
    assert updated.secret == secret


def test_endpoints_are_tenant_scoped(db, make_endpoint):
    endpoint = make_endpoint(tenant_id="t1")
    with pytest.raises(NotFoundError):
        endpoint_registry.get_endpoint(db, "t2", endpoint.id)


class TestUrlSafety:
    """Tests for destination URL validation."""

    @pytest.mark.parametrize(
        "url",
        [
            "",
            "ftp://example.com/hook",
            "http://example.com/hook",
            "https:///nohost",
            "https://localhost/hook",
            "https://api.internal/hook",
            "https://printer.local/hook",
            "https://127.0.0.1/hook",
            "https://10.1.2.3/hook",
            "https://192.168.0.10/hook",
            "https://169.254.169.254/latest",
            "https://[::1]/hook",
            "https://[::ffff:127.0.0.1]/hook",
            "https://2130706433/hook",
            "https://0.0.0.0/hook",
        ],
    )
    def test_rejects_unsafe_urls(self, url):
        with pytest.raises(ConfigurationError):
            url_safety.validate_webhook_url(url)

    def test_accepts_public_https_url(self):
        assert url_safety.validate_webhook_url(" https://example.com/hook ") == "https://example.com/hook"
        assert url_safety.validate_webhook_url("https://93.184.216.34/hook")

    def test_rejects_hostname_resolving_to_private_address(self, monkeypatch):
        monkeypatch.setattr(
            url_safety, "resolve_hostname", lambda host: ["93.184.216.34", "10.0.0.5"]
        )
        with pytest.raises(ConfigurationError):
            url_safety.validate_webhook_url("https://sneaky.example.com/hook")
