"""Tests for Slack assignment notifications."""

import json

import httpx
import pytest

from taskdesk.delegation.notifier import (
    AssignmentNotifier, build_assignment_message, build_assignment_blocks, SLACK_POST_MESSAGE_URL
)

TASK = {
    "id": "t1",
    "title": "Reconcile October invoices",
    "due_date": "2026-10-30T00:00:00",
    "assignee": {"id": "u-alice", "name": "Alice"},
    "created_by": {"id": "u-carol", "name": "Carol"},
    "customer": {"id": "c-acme", "name": "Acme Corp"},
}


@pytest.fixture
def captured():
    return []


def transport(captured, body=None, status_code=200):
    def handler(request: httpx.Request) -> httpx.Response:
        captured.append(request)
        return httpx.Response(status_code, json=body if body is not None else {"ok": True})
    return httpx.MockTransport(handler)


async def test_sends_dm(captured):
    notifier = AssignmentNotifier("xoxb-test", transport=transport(captured))

    assert await notifier.notify_assignee(TASK, "UALICE") is True

    (request,) = captured
    assert str(request.url) == SLACK_POST_MESSAGE_URL
    assert request.headers["Authorization"] == "Bearer xoxb-test"
    payload = json.loads(request.content)
    assert payload["channel"] == "UALICE"
    assert "Reconcile October invoices" in payload["text"]


async def test_missing_slack_id_skips_request(captured):
    notifier = AssignmentNotifier("xoxb-test", transport=transport(captured))

    assert await notifier.notify_assignee(TASK, None) is False
    assert captured == []


async def test_slack_api_error(captured):
    notifier = AssignmentNotifier("xoxb-test", transport=transport(captured, {"ok": False, "error": "channel_not_found"}))

    assert await notifier.notify_assignee(TASK, "UALICE") is False


async def test_http_error_never_raises(captured):
    notifier = AssignmentNotifier("xoxb-test", transport=transport(captured, status_code=500))

    assert await notifier.notify_assignee(TASK, "UALICE") is False


def test_message_includes_customer_and_due_date():
    text = build_assignment_message(TASK)

    assert "*Customer:* Acme Corp" in text
    assert "*Due:* 2026-10-30T00:00:00" in text


def test_blocks():
    blocks = build_assignment_blocks(TASK)

    assert blocks[0]["type"] == "header"
    assert blocks[2]["fields"][1]["text"] == "*Requested by:*\nCarol"
    assert blocks[-1] == {"type": "divider"}

    no_due = build_assignment_blocks({**TASK, "due_date": None})
    assert len(no_due) == len(blocks) - 1
