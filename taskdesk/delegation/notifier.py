"""
Slack notification for new assignments.

Tells the selected assignee about a task created on their behalf.
"""

import logging
from typing import Any, Dict, Optional
import httpx

logger = logging.getLogger(__name__)

SLACK_POST_MESSAGE_URL = "https://slack.com/api/chat.postMessage"


class AssignmentNotifier:
    """Sends assignment DMs through the Slack Web API."""

    def __init__(self, token: str, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.token = token
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json"
        }

    async def notify_assignee(self, task: Dict[str, Any], slack_user_id: Optional[str]) -> bool:
        """
        Notify an assignee via Slack DM.

        Args:
            task: Serialized task (as broadcast to live clients)
            slack_user_id: Slack user ID of the assignee

        Returns:
            True if notification sent successfully
        """
        if not slack_user_id:
            assignee = (task.get("assignee") or {}).get("name", "unknown")
            logger.warning(f"No Slack user ID for {assignee}, cannot send DM")
            return False

        payload = {
            "channel": slack_user_id,
            "text": build_assignment_message(task),
            "blocks": build_assignment_blocks(task),
        }

        try:
            async with httpx.AsyncClient(timeout=30.0, transport=self.transport) as client:
                response = await client.post(
                    SLACK_POST_MESSAGE_URL,
                    headers=self._headers(),
                    json=payload
                )
                response.raise_for_status()
                result = response.json()

                if not result.get("ok"):
                    error = result.get("error", "unknown_error")
                    logger.error(f"Slack API error: {error}")
                    return False

                logger.info(f"Assignment notification sent for task {task.get('id')}")
                return True

        except Exception as e:
            logger.error(f"Failed to send assignment notification: {e}", exc_info=True)
            return False


def build_assignment_message(task: Dict[str, Any]) -> str:
    """Build plain text assignment message."""
    customer = (task.get("customer") or {}).get("name", "")
    lines = [
        "*New Task Assigned*",
        "",
        f"*Title:* {task.get('title', '')}",
        f"*Customer:* {customer}",
    ]
    if task.get("due_date"):
        lines.append(f"*Due:* {task['due_date']}")
    return "\n".join(lines)


def build_assignment_blocks(task: Dict[str, Any]) -> list[dict]:
    """Build Slack Block Kit blocks for rich formatting."""
    customer = (task.get("customer") or {}).get("name", "")
    created_by = (task.get("created_by") or {}).get("name", "")

    blocks = [
        {
            "type": "header",
            "text": {
                "type": "plain_text",
                "text": "New Task Assigned"
            }
        },
        {
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*{task.get('title', '')}*"
            }
        },
        {
            "type": "section",
            "fields": [
                {
                    "type": "mrkdwn",
                    "text": f"*Customer:*\n{customer}"
                },
                {
                    "type": "mrkdwn",
                    "text": f"*Requested by:*\n{created_by}"
                }
            ]
        }
    ]

    if task.get("due_date"):
        blocks.append({
            "type": "section",
            "text": {
                "type": "mrkdwn",
                "text": f"*Due:* {task['due_date']}"
            }
        })

    blocks.append({"type": "divider"})

    return blocks
