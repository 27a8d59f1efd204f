"""Tests for checkout, upgrade confirmation and the payment webhook."""

from types import SimpleNamespace
from unittest.mock import patch
from urllib.parse import parse_qs, urlparse

import pytest
import stripe

from muzgpt.services.billing import completed_checkout


def _paid_event(user_id, event_id="evt_1", payment_status="paid"):
    return {
        "id": event_id,
        "type": "checkout.session.completed",
        "data": {
            "object": {
                "id": "cs_test_1",
                "payment_status": payment_status,
                "metadata": {"userId": user_id},
            }
        },
    }


class TestDemoCheckout:
    def test_demo_url_points_back_to_app(self, client, settings):
        response = client.post("/create-checkout-session", json={"userId": "u-1"})
        assert response.status_code == 200
        url = urlparse(response.json()["url"])
        assert f"{url.scheme}://{url.netloc}" == settings.domain
        query = parse_qs(url.query)
        assert query == {"success": ["true"], "demo": ["true"], "userId": ["u-1"]}

    def test_demo_upgrade(self, client, signup, store):
        user = signup()
        response = client.post("/auth/upgrade-premium", json={"userId": user["id"]})
        assert response.status_code == 200
        assert response.json() == {"success": True, "tier": "premium"}
        assert store.get(user["id"]).tier == "premium"

    def test_upgrade_is_idempotent(self, client, signup, store):
        user = signup()
        client.post("/auth/upgrade-premium", json={"userId": user["id"]})
        again = client.post("/auth/upgrade-premium", json={"userId": user["id"]})
        assert again.status_code == 200
        assert again.json()["tier"] == "premium"
        assert store.get(user["id"]).xp == 50

    def test_upgrade_unknown_user(self, client):
        response = client.post("/auth/upgrade-premium", json={"userId": "ghost"})
        assert response.status_code == 404

    def test_upgrade_keeps_tier_visible_on_fetch(self, client, signup):
        user = signup()
        client.post("/auth/upgrade-premium", json={"userId": user["id"]})
        assert client.get(f"/auth/user/{user['id']}").json()["tier"] == "premium"


class TestLiveCheckout:
    @pytest.fixture(autouse=True)
    def live(self, settings):
        settings.stripe_secret_key = "sk_test_123"

    def test_creates_stripe_session(self, client):
        session = SimpleNamespace(id="cs_1", url="https://checkout.stripe.com/pay/cs_1")
        with patch("stripe.checkout.Session.create", return_value=session) as create:
            response = client.post("/create-checkout-session", json={"userId": "u-9"})
        assert response.status_code == 200
        assert response.json()["url"] == session.url
        kwargs = create.call_args.kwargs
        assert kwargs["metadata"] == {"userId": "u-9"}
        assert kwargs["mode"] == "payment"
        assert kwargs["line_items"][0]["price_data"]["unit_amount"] == 1000
        assert kwargs["success_url"].endswith("session_id={CHECKOUT_SESSION_ID}")

    def test_stripe_failure_is_500(self, client):
        with patch(
            "stripe.checkout.Session.create", side_effect=stripe.APIConnectionError("down")
        ):
            response = client.post("/create-checkout-session", json={"userId": "u-9"})
        assert response.status_code == 500

    def test_upgrade_requires_session_id(self, client, signup, store):
        user = signup()
        response = client.post("/auth/upgrade-premium", json={"userId": user["id"]})
        assert response.status_code == 400
        assert store.get(user["id"]).tier == "free"

    def test_unpaid_session_rejected(self, client, signup, store):
        user = signup()
        session = {"payment_status": "unpaid", "metadata": {"userId": user["id"]}}
        with patch("stripe.checkout.Session.retrieve", return_value=session):
            response = client.post(
                "/auth/upgrade-premium", json={"userId": user["id"], "sessionId": "cs_1"}
            )
        assert response.status_code == 400
        assert store.get(user["id"]).tier == "free"

    def test_foreign_session_rejected(self, client, signup, store):
        user = signup()
        session = {"payment_status": "paid", "metadata": {"userId": "someone-else"}}
        with patch("stripe.checkout.Session.retrieve", return_value=session):
            response = client.post(
                "/auth/upgrade-premium", json={"userId": user["id"], "sessionId": "cs_1"}
            )
        assert response.status_code == 400
        assert store.get(user["id"]).tier == "free"

    def test_paid_session_without_owner_rejected(self, client, signup, store):
        user = signup()
        session = {"payment_status": "paid", "metadata": {}}
        with patch("stripe.checkout.Session.retrieve", return_value=session):
            response = client.post(
                "/auth/upgrade-premium", json={"userId": user["id"], "sessionId": "cs_other"}
            )
        assert response.status_code == 400
        assert store.get(user["id"]).tier == "free"

    def test_paid_session_upgrades(self, client, signup, store):
        user = signup()
        session = {"payment_status": "paid", "metadata": {"userId": user["id"]}}
        with patch("stripe.checkout.Session.retrieve", return_value=session) as retrieve:
            response = client.post(
                "/auth/upgrade-premium", json={"userId": user["id"], "sessionId": "cs_1"}
            )
        assert response.status_code == 200
        assert retrieve.call_args.args[0] == "cs_1"
        assert store.get(user["id"]).tier == "premium"

    def test_unknown_session_rejected(self, client, signup):
        user = signup()
        with patch(
            "stripe.checkout.Session.retrieve",
            side_effect=stripe.InvalidRequestError("No such session", "id"),
        ):
            response = client.post(
                "/auth/upgrade-premium", json={"userId": user["id"], "sessionId": "cs_x"}
            )
        assert response.status_code == 400


class TestWebhook:
    @pytest.fixture
    def configured(self, settings):
        settings.stripe_webhook_secret = "whsec_test"

    def test_not_configured(self, client):
        response = client.post("/webhook", content=b"{}")
        assert response.status_code == 503

    def test_bad_signature(self, client, configured):
        with patch(
            "stripe.Webhook.construct_event",
            side_effect=stripe.SignatureVerificationError("bad signature", "t=1,v1=x"),
        ):
            response = client.post(
                "/webhook", content=b"{}", headers={"stripe-signature": "t=1,v1=x"}
            )
        assert response.status_code == 400

    def test_malformed_payload(self, client, configured):
        with patch("stripe.Webhook.construct_event", side_effect=ValueError("bad json")):
            response = client.post("/webhook", content=b"not json")
        assert response.status_code == 400

    def test_completed_checkout_upgrades(self, client, configured, signup, store):
        user = signup()
        with patch(
            "stripe.Webhook.construct_event", return_value=_paid_event(user["id"])
        ) as construct:
            response = client.post(
                "/webhook", content=b"payload", headers={"stripe-signature": "sig"}
            )
        assert response.status_code == 200
        assert response.json() == {"received": True}
        assert construct.call_args.args == (b"payload", "sig", "whsec_test")
        assert store.get(user["id"]).tier == "premium"

    def test_replay_is_noop(self, client, configured, signup, store):
        user = signup()
        with patch("stripe.Webhook.construct_event", return_value=_paid_event(user["id"])):
            client.post("/webhook", content=b"payload")
            response = client.post("/webhook", content=b"payload")
        assert response.status_code == 200
        assert store.get(user["id"]).tier == "premium"
        _, changed = store.elevate_tier(user["id"], event_id="evt_1")
        assert changed is False

    def test_other_events_ignored(self, client, configured, signup, store):
        user = signup()
        event = {"id": "evt_2", "type": "payment_intent.created", "data": {"object": {}}}
        with patch("stripe.Webhook.construct_event", return_value=event):
            response = client.post("/webhook", content=b"payload")
        assert response.json() == {"received": True}
        assert store.get(user["id"]).tier == "free"

    def test_unsaved_upgrade_requests_redelivery(self, client, configured, signup, store):
        user = signup()
        with patch("stripe.Webhook.construct_event", return_value=_paid_event(user["id"])):
            with patch(
                "muzgpt.storage.user_store.os.replace", side_effect=OSError("disk full")
            ):
                failed = client.post("/webhook", content=b"payload")
            assert failed.status_code == 500
            assert store.get(user["id"]).tier == "free"

            redelivered = client.post("/webhook", content=b"payload")
        assert redelivered.status_code == 200
        assert store.get(user["id"]).tier == "premium"

    def test_unknown_user_acknowledged(self, client, configured):
        with patch("stripe.Webhook.construct_event", return_value=_paid_event("ghost")):
            response = client.post("/webhook", content=b"payload")
        assert response.status_code == 200


class TestCompletedCheckout:
    def test_paid(self):
        assert completed_checkout(_paid_event("u-1")) == ("evt_1", "u-1")

    def test_unpaid_ignored(self):
        assert completed_checkout(_paid_event("u-1", payment_status="unpaid")) is None

    def test_missing_metadata(self):
        event = _paid_event("u-1")
        del event["data"]["object"]["metadata"]
        assert completed_checkout(event) == ("evt_1", None)
