"""Tests for the outbound contact channel."""

from unittest.mock import patch

import pytest
from kombu.exceptions import OperationalError

from storefront.domain.errors import NotificationError
from storefront.services import notification_service
from storefront.services.notification_service import NotificationService, send_contact_email_task

TASK = "storefront.services.notification_service.send_contact_email_task"


def test_request_routed_to_firm_inbox():
    with patch(TASK) as task:
        NotificationService.send_contact_request({"from_email": "asha@example.com", "message": "Hi"})

    params = task.delay.call_args.args[0]
    assert params["to_email"] == notification_service.CONTACT_INBOX
    assert params["message"] == "Hi"


def test_broker_down_is_reported():
    with patch(TASK) as task:
        task.delay.side_effect = OperationalError("no broker")
        with pytest.raises(NotificationError):
            NotificationService.send_contact_request({"message": "Hi"})


def test_task_posts_to_emailjs(make_response):
    with patch("storefront.services.notification_service.requests.post", return_value=make_response(200, {})) as post:
        result = send_contact_email_task.run({"to_email": "assist@fathomlegal.com", "message": "Hi"})

    payload = post.call_args.kwargs["json"]
    assert post.call_args.args[0] == notification_service.EMAILJS_API_URL
    assert set(payload) == {"service_id", "template_id", "user_id", "template_params"}
    assert payload["template_params"]["message"] == "Hi"
    assert result == {"to_email": "assist@fathomlegal.com", "status": "sent"}
