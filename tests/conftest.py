"""Shared pytest fixtures for storefront tests."""

from decimal import Decimal
from unittest.mock import MagicMock

import fakeredis
import pytest
import requests

from storefront.domain.schemas import CustomItem, CustomerInfo, Fulfillment, StandardItem
from storefront.repos.cart_repo import CartRepo
from storefront.services.cart_service import CartService


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def cart_repo(redis_client):
    return CartRepo("session-1", client=redis_client)


@pytest.fixture
def cart(cart_repo):
    return CartService(cart_repo)


@pytest.fixture
def customer():
    return CustomerInfo(name="Asha Verma", email="Asha@Example.com ", phone="+91 98765 43210")


@pytest.fixture
def standard_item():
    return StandardItem(
        id="t1",
        title="Founders Agreement",
        category="Corporate",
        unit_price=Decimal("500"),
        quantity=2,
        file_name="founders-agreement.pdf",
    )


@pytest.fixture
def custom_item():
    return CustomItem(
        id="t2",
        title="Lease Deed",
        category="Real Estate",
        unit_price=Decimal("2500"),
        custom_option_name="Drafted for you",
        file_name="lease-deed.pdf",
        fulfillment=Fulfillment(schedule_link="https://calendly.com/fathom/lease"),
    )


@pytest.fixture
def make_response():
    """Factory for requests.Response stand-ins."""

    def _make(status=200, json_body=None, headers=None, content=b""):
        resp = MagicMock()
        resp.status_code = status
        resp.ok = status < 400
        resp.headers = headers if headers is not None else {"Content-Type": "application/json"}
        resp.content = content
        if json_body is None:
            resp.json.side_effect = ValueError("no JSON body")
        else:
            resp.json.return_value = json_body

        def _raise_for_status():
            if status >= 400:
                raise requests.HTTPError(f"{status} error", response=resp)

        resp.raise_for_status.side_effect = _raise_for_status
        return resp

    return _make


class FakeCheckout:
    """Hosted checkout double; `outcome` decides which gateway callback fires on open."""

    def __init__(self, ready=True, outcome=None):
        self.ready = ready
        self.outcome = outcome
        self.opened = []

    def is_ready(self):
        return self.ready

    def open(self, session, prefill, handlers):
        self.opened.append((session, prefill))
        if self.outcome is not None:
            self.outcome(handlers)


@pytest.fixture
def fake_checkout_cls():
    return FakeCheckout
