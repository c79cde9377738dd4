"""GitHub webhook handler.

Parses raw ``issues`` webhook payloads into GitHubIssueEvent objects and
verifies the ``X-Hub-Signature-256`` header when a secret is configured.

GitHub Webhook Payload Structure (issues event):
{
  "action": "opened",
  "issue": {
    "number": 123,
    "title": "Issue title",
    "body": "Issue body",
    "labels": [{"name": "bug"}],
    "user": {"login": "username"}
  },
  "repository": {
    "name": "repo-name",
    "owner": {"login": "owner-name"}
  }
}
"""

import hashlib
import hmac
import logging
from typing import Any, Dict, List, Optional

from src.issueflow.webhook.models import GitHubIssueEvent, IssueAction

logger = logging.getLogger(__name__)


SIGNATURE_PREFIX = "sha256="


class WebhookHandler:
    """Parser and signature check for GitHub issue webhooks.

    Attributes:
        secret: Webhook secret. When empty, signatures are not checked.
    """

    def __init__(self, secret: Optional[str] = None) -> None:
        self.secret = secret or None

    def verify_signature(self, body: bytes, signature_header: Optional[str]) -> bool:
        """Check a payload against its ``X-Hub-Signature-256`` header.

        Always True when no secret is configured.
        """
        if self.secret is None:
            return True
        if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
            logger.warning("Missing or malformed webhook signature header")
            return False

        expected = hmac.new(
            self.secret.encode("utf-8"), body, hashlib.sha256
        ).hexdigest()
        provided = signature_header[len(SIGNATURE_PREFIX):]
        return hmac.compare_digest(expected, provided)

    def parse_issue_event(self, payload: Dict[str, Any]) -> Optional[GitHubIssueEvent]:
        """Parse a GitHub issue event from a webhook payload.

        Args:
            payload: The raw webhook payload as a dictionary.

        Returns:
            GitHubIssueEvent if parsing succeeds, None for malformed
            payloads and unsupported actions.
        """
        if not isinstance(payload, dict):
            logger.warning("Invalid payload: expected dict, got %s", type(payload))
            return None

        action = self._parse_action(payload.get("action"))
        if action is None:
            logger.debug("Ignoring unsupported action type: %s", payload.get("action"))
            return None

        issue_data = payload.get("issue")
        repo_data = payload.get("repository")
        if not isinstance(issue_data, dict) or not isinstance(repo_data, dict):
            logger.warning("Missing or invalid 'issue' or 'repository' field in payload")
            return None

        issue_number = issue_data.get("number")
        if isinstance(issue_number, bool) or not isinstance(issue_number, int) or issue_number <= 0:
            logger.warning("Invalid issue number: %s", issue_number)
            return None

        title = issue_data.get("title")
        if not isinstance(title, str) or not title.strip():
            logger.warning("Invalid or empty issue title: %s", title)
            return None

        body = issue_data.get("body")
        if not isinstance(body, str):
            body = ""

        author = self._extract_login(issue_data.get("user"), "issue author")
        owner = self._extract_login(repo_data.get("owner"), "repository owner")
        repo_name = repo_data.get("name")
        if author is None or owner is None:
            return None
        if not isinstance(repo_name, str) or not repo_name.strip():
            logger.warning("Invalid or empty repository name: %s", repo_name)
            return None

        event = GitHubIssueEvent(
            action=action,
            issue_number=issue_number,
            title=title.strip(),
            body=body,
            labels=self._extract_labels(issue_data.get("labels", [])),
            repository=repo_name.strip(),
            owner=owner,
            author=author,
        )

        logger.info(
            "Parsed issue event: action=%s, issue=%s",
            action.value,
            event.issue_id,
        )
        return event

    @staticmethod
    def _parse_action(action_str: Any) -> Optional[IssueAction]:
        if not isinstance(action_str, str):
            return None
        try:
            return IssueAction(action_str)
        except ValueError:
            return None

    @staticmethod
    def _extract_labels(labels_data: Any) -> List[str]:
        """Label names from objects with a ``name`` field or plain strings."""
        if not isinstance(labels_data, list):
            return []

        labels = []
        for label in labels_data:
            name = label.get("name") if isinstance(label, dict) else label
            if isinstance(name, str) and name.strip():
                labels.append(name.strip())
        return labels

    @staticmethod
    def _extract_login(user_data: Any, context: str) -> Optional[str]:
        login = user_data.get("login") if isinstance(user_data, dict) else None
        if not isinstance(login, str) or not login.strip():
            logger.warning("Missing or invalid %s login", context)
            return None
        return login.strip()
