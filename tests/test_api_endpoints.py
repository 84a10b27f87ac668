"""
Tests for API endpoints
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock, patch

import pytest
from firebase_admin import auth, exceptions as firebase_exceptions
from fastapi.testclient import TestClient

from tierguard.core.exceptions import AuthResolutionError, InvalidPriceIdentifier, PortalCustomerNotFound
from tierguard.core.middleware import get_billing_service, get_identity_service, get_resolver
from tierguard.main import app
from tierguard.models.entitlement import OrgRole, SubscriptionRecord
from tierguard.services.identity_service import IdentityService
from tierguard.services.subscription_resolver import SubscriptionResolver
from factories import member


def _in_days(days: float) -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=days)


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def resolver(fetcher):
    return SubscriptionResolver(fetcher)


@pytest.fixture
def billing_service():
    return MagicMock()


@pytest.fixture
def client(resolver, identity_service, billing_service):
    """Test client with resolver, identity and billing dependencies replaced"""
    app.dependency_overrides[get_resolver] = lambda: resolver
    app.dependency_overrides[get_identity_service] = lambda: identity_service
    app.dependency_overrides[get_billing_service] = lambda: billing_service
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def accounts(identity_service, fetcher):
    """Tokens for a small cast of accounts"""
    identity_service.add("trial-token", member("trial", OrgRole.MEMBER))
    identity_service.add("expired-token", member("expired", OrgRole.OWNER))
    identity_service.add("admin-token", member("admin", OrgRole.ADMIN))
    identity_service.add("waiter-token", member("waiter", OrgRole.WAITER))
    identity_service.add("start-token", member("start", OrgRole.OWNER))
    identity_service.add("pro-token", member("pro", OrgRole.OWNER))
    identity_service.add("root-token", member("root", None, super_admin=True))

    fetcher.records["trial"] = SubscriptionRecord(subscribed=False, trial_end=_in_days(3))
    fetcher.records["expired"] = SubscriptionRecord(subscribed=False, trial_end=_in_days(-1))
    fetcher.records["admin"] = SubscriptionRecord(subscribed=True, plan_name="Start", trial_end=_in_days(-30))
    fetcher.records["waiter"] = SubscriptionRecord(subscribed=True, plan_name="Pro")
    fetcher.records["start"] = SubscriptionRecord(subscribed=True, plan_name="Start")
    fetcher.records["pro"] = SubscriptionRecord(subscribed=True, plan_name="Plano Pro Mensal")
    fetcher.records["root"] = SubscriptionRecord(subscribed=False, trial_end=_in_days(-10))


class TestHealthEndpoint:
    """Test health check endpoint"""

    def test_health_check(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "healthy"}


class TestSubscriptionEndpoints:
    """Subscription status, refresh and checkout return"""

    def test_current_requires_auth(self, client):
        response = client.get("/api/v1/subscriptions/current")
        assert response.status_code == 401

    def test_current_trial(self, client, accounts):
        response = client.get("/api/v1/subscriptions/current", headers=_auth("trial-token"))

        assert response.status_code == 200
        body = response.json()
        assert body['subscribed'] is False
        assert body['plan_tier'] == "trial"
        assert body['is_in_trial'] is True
        assert body['trial_days_remaining'] == 3
        assert body['error'] is None

    def test_current_pro(self, client, accounts):
        body = client.get("/api/v1/subscriptions/current", headers=_auth("pro-token")).json()
        assert body['plan_tier'] == "pro"
        assert body['plan_name'] == "Plano Pro Mensal"

    def test_fetch_error_reported_fail_closed(self, client, accounts, fetcher):
        fetcher.errors["trial"] = RuntimeError("stripe: invalid api key sk_live_123")

        response = client.get("/api/v1/subscriptions/current", headers=_auth("trial-token"))

        assert response.status_code == 200
        body = response.json()
        assert body['subscribed'] is False
        assert body['is_in_trial'] is False
        assert "sk_live" not in body['error']

    def test_checkout_return_activating_then_active(self, client, accounts, fetcher):
        first = client.post("/api/v1/subscriptions/checkout-return", headers=_auth("expired-token"))
        assert first.json()['status'] == "activating"

        fetcher.records["expired"] = SubscriptionRecord(subscribed=True, plan_name="Start")
        second = client.post("/api/v1/subscriptions/checkout-return", headers=_auth("expired-token"))

        assert second.json()['status'] == "active"
        assert second.json()['plan_tier'] == "start"
        assert fetcher.calls.count("expired") == 2

    def test_refresh_forces_fetch(self, client, accounts, fetcher):
        client.get("/api/v1/subscriptions/current", headers=_auth("start-token"))
        fetcher.records["start"] = SubscriptionRecord(subscribed=True, plan_name="Pro")

        response = client.post("/api/v1/subscriptions/refresh", headers=_auth("start-token"))

        assert response.json()['plan_tier'] == "pro"


class TestPageGuards:
    """Rendering of route decisions"""

    def test_unauthenticated_redirects_to_sign_in(self, client, accounts):
        response = client.get("/api/v1/pages/dashboard")

        assert response.status_code == 401
        assert response.json()['detail']['redirect_to'] == "/auth"
        assert response.headers['WWW-Authenticate'] == "Bearer"

    def test_identity_provider_down_is_unauthenticated(self, client, accounts, identity_service):
        identity_service.authenticate_error = AuthResolutionError()

        response = client.get("/api/v1/pages/dashboard", headers=_auth("trial-token"))

        assert response.status_code == 401

    def test_expired_trial_gets_upgrade_prompt(self, client, accounts):
        response = client.get("/api/v1/pages/dashboard", headers=_auth("expired-token"))

        assert response.status_code == 402
        assert response.json()['detail'] == {'state': "denied_subscription", 'upgrade_url': "/subscription"}

    def test_subscription_page_open_when_expired(self, client, accounts, fetcher):
        response = client.get("/api/v1/pages/subscription", headers=_auth("expired-token"))

        assert response.status_code == 200
        assert "expired" not in fetcher.calls

    def test_trial_granted(self, client, accounts):
        response = client.get("/api/v1/pages/dashboard", headers=_auth("trial-token"))
        assert response.status_code == 200
        assert response.json()['page'] == "dashboard"

    def test_role_denied(self, client, accounts):
        response = client.get("/api/v1/pages/members", headers=_auth("waiter-token"))
        assert response.status_code == 403

    def test_admin_bypasses_tier_route(self, client, accounts):
        response = client.get("/api/v1/pages/reports", headers=_auth("admin-token"))
        assert response.status_code == 200

    def test_start_denied_pro_route(self, client, accounts):
        response = client.get("/api/v1/pages/reports", headers=_auth("start-token"))
        assert response.status_code == 402

    def test_super_dashboard(self, client, accounts):
        assert client.get("/api/v1/pages/super-dashboard", headers=_auth("admin-token")).status_code == 403
        assert client.get("/api/v1/pages/super-dashboard", headers=_auth("root-token")).status_code == 200


class TestFirebaseIdentity:
    """Guards backed by the real Firebase identity adapter"""

    @pytest.fixture
    def firebase_client(self, resolver, session_factory, billing_service):
        app.dependency_overrides[get_resolver] = lambda: resolver
        app.dependency_overrides[get_identity_service] = lambda: IdentityService(session_factory)
        app.dependency_overrides[get_billing_service] = lambda: billing_service
        yield TestClient(app)
        app.dependency_overrides.clear()

    @patch("tierguard.core.firebase.auth.verify_id_token")
    def test_firebase_unavailable_is_unauthenticated(self, mock_verify, firebase_client, fetcher):
        mock_verify.side_effect = firebase_exceptions.UnavailableError("firebase unreachable")

        response = firebase_client.get("/api/v1/pages/dashboard", headers=_auth("some-token"))

        assert response.status_code == 401
        assert response.json()['detail']['redirect_to'] == "/auth"
        assert fetcher.calls == []

    @patch("tierguard.core.firebase.auth.verify_id_token")
    def test_deleted_user_is_unauthenticated(self, mock_verify, firebase_client):
        mock_verify.side_effect = auth.UserNotFoundError("user deleted")

        response = firebase_client.get("/api/v1/pages/dashboard", headers=_auth("some-token"))

        assert response.status_code == 401

    @patch("tierguard.core.firebase.auth.verify_id_token")
    def test_current_subscription_requires_reachable_provider(self, mock_verify, firebase_client):
        mock_verify.side_effect = firebase_exceptions.UnavailableError("firebase unreachable")

        response = firebase_client.get("/api/v1/subscriptions/current", headers=_auth("some-token"))

        assert response.status_code == 401


class TestFeatureGuards:
    """Rendering of feature decisions"""

    def test_admin_route_bypass_does_not_unlock_pro_feature(self, client, accounts):
        page = client.get("/api/v1/pages/reports", headers=_auth("admin-token"))
        feature = client.get("/api/v1/pages/reports/features/fiscal-report", headers=_auth("admin-token"))

        assert page.status_code == 200
        assert feature.status_code == 402
        assert feature.json()['detail']['state'] == "denied_tier"
        assert feature.json()['detail']['required_tier'] == "pro"

    def test_pro_feature_granted(self, client, accounts):
        response = client.get("/api/v1/pages/reports/features/fiscal-report", headers=_auth("pro-token"))
        assert response.status_code == 200
        assert response.json()['feature'] == "fiscal-report"

    def test_trial_gets_start_feature(self, client, accounts):
        response = client.get("/api/v1/pages/dashboard/features/basic-reports", headers=_auth("trial-token"))
        assert response.status_code == 200

    def test_trial_denied_vip_support(self, client, accounts):
        response = client.get("/api/v1/pages/dashboard/features/vip-support", headers=_auth("trial-token"))
        assert response.status_code == 402

    def test_feature_and_route_share_one_fetch(self, client, accounts, fetcher):
        client.get("/api/v1/pages/reports/features/fiscal-report", headers=_auth("pro-token"))
        assert fetcher.calls.count("pro") == 1


class TestAccessEvaluation:

    def test_evaluate_routes_and_features(self, client, accounts):
        response = client.get(
            "/api/v1/access/evaluate",
            params={"routes": "dashboard,reports,super-dashboard", "features": "fiscal-report,basic-reports"},
            headers=_auth("start-token"),
        )

        assert response.status_code == 200
        assert response.json() == {
            'routes': {'dashboard': "granted", 'reports': "denied_subscription", 'super-dashboard': "denied_role"},
            'features': {'fiscal-report': "denied_tier", 'basic-reports': "granted"},
        }

    def test_evaluate_anonymous(self, client, accounts):
        body = client.get("/api/v1/access/evaluate?routes=dashboard&features=vip-support").json()
        assert body['routes']['dashboard'] == "denied_unauthenticated"
        assert body['features']['vip-support'] == "denied_unauthenticated"

    def test_unknown_name(self, client, accounts):
        response = client.get("/api/v1/access/evaluate?routes=nowhere")
        assert response.status_code == 404

    def test_one_identity_and_subscription_snapshot_per_request(self, client, accounts, identity_service, fetcher):
        response = client.get(
            "/api/v1/access/evaluate",
            params={"routes": "dashboard,reports,members,subscription", "features": "fiscal-report,vip-support"},
            headers=_auth("pro-token"),
        )

        assert response.status_code == 200
        assert identity_service.authenticate_calls == 1
        assert fetcher.calls == ["pro"]

    def test_open_routes_skip_subscription_fetch(self, client, accounts, fetcher):
        response = client.get("/api/v1/access/evaluate?routes=subscription", headers=_auth("expired-token"))

        assert response.json()['routes']['subscription'] == "granted"
        assert fetcher.calls == []


class TestBillingEndpoints:
    """Billing boundary error mapping"""

    def test_checkout_requires_auth(self, client, billing_service):
        response = client.post("/api/v1/billing/checkout", json={"price_id": "price_pro_test"})

        assert response.status_code == 401
        billing_service.create_checkout_session.assert_not_called()

    def test_checkout_success(self, client, accounts, billing_service):
        billing_service.create_checkout_session.return_value = {
            'url': "https://checkout.stripe.test/cs_1", 'session_id': "cs_1"}

        response = client.post(
            "/api/v1/billing/checkout",
            json={"price_id": "price_pro_test"},
            headers={**_auth("trial-token"), "Origin": "http://localhost:5173"},
        )

        assert response.status_code == 200
        assert response.json()['url'] == "https://checkout.stripe.test/cs_1"
        billing_service.create_checkout_session.assert_called_once_with(
            "trial", "trial@example.com", "price_pro_test", "http://localhost:5173")

    def test_invalid_price(self, client, accounts, billing_service):
        billing_service.create_checkout_session.side_effect = InvalidPriceIdentifier()

        response = client.post("/api/v1/billing/checkout", json={"price_id": "price_x"},
                               headers=_auth("trial-token"))

        assert response.status_code == 400
        assert response.json()['code'] == "INVALID_PRICE"

    def test_portal_without_customer(self, client, accounts, billing_service):
        billing_service.create_portal_session.side_effect = PortalCustomerNotFound()

        response = client.post("/api/v1/billing/portal", headers=_auth("trial-token"))

        assert response.status_code == 404
        assert response.json() == {'code': "NO_SUBSCRIPTION_FOUND", 'message': "No subscription found", 'details': {}}


class TestSessionEndpoints:

    def test_logout_invalidates_cache(self, client, accounts, resolver):
        client.get("/api/v1/subscriptions/current", headers=_auth("pro-token"))
        assert resolver.peek("pro").record is not None

        response = client.post("/api/v1/session/logout", headers=_auth("pro-token"))

        assert response.status_code == 200
        assert resolver.peek("pro").record is None

    def test_switch_invalidates_previous(self, client, accounts, resolver):
        client.get("/api/v1/subscriptions/current", headers=_auth("pro-token"))

        response = client.post("/api/v1/session/switch", json={"user_id": "start"}, headers=_auth("pro-token"))

        assert response.status_code == 200
        assert resolver.peek("pro").record is None
