"""
Jira Cloud REST API v3 gateway.
"""

from dataclasses import dataclass
from typing import Dict, Any, List, Optional
import logging

import httpx

from ..config import JiraConfig
from ..exceptions import TicketGatewayError

logger = logging.getLogger(__name__)


@dataclass
class JiraCredentials:
    email: str
    api_token: str


def build_adf_document(text: str) -> Dict[str, Any]:
    """Atlassian Document Format body with one paragraph per line."""
    content = []
    for line in (text or "").split("\n"):
        if line.strip():
            content.append({"type": "paragraph", "content": [{"type": "text", "text": line}]})
        else:
            content.append({"type": "paragraph", "content": []})
    return {"version": 1, "type": "doc", "content": content}


def extract_text_from_adf(body: Any) -> str:
    """Plain text of a comment body that may be a string or an ADF document."""
    if body is None:
        return ""
    if isinstance(body, str):
        return body
    if isinstance(body, dict):
        if body.get("type") == "text":
            return body.get("text", "")
        children = [extract_text_from_adf(child) for child in body.get("content", [])]
        separator = "\n" if body.get("type") in ("doc", "bulletList", "orderedList") else ""
        return separator.join(children)
    if isinstance(body, list):
        return "".join(extract_text_from_adf(item) for item in body)
    return str(body)


def format_channel_comment(channel: str, author_name: Optional[str], text: str) -> str:
    """Comment text for a message relayed from a customer channel."""
    return f"[{channel}] {author_name or 'Customer'}: {text}"


class JiraService:
    """Async Jira client with per-source author identities."""

    def __init__(self, config: JiraConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    def _credentials(self, identity: str, credentials: Optional[JiraCredentials]) -> JiraCredentials:
        if credentials is not None:
            return credentials
        if identity == "widget" and self.config.widget_email and self.config.widget_api_token:
            return JiraCredentials(self.config.widget_email, self.config.widget_api_token)
        if not self.config.email or not self.config.api_token:
            raise TicketGatewayError("Jira credentials are not configured")
        return JiraCredentials(self.config.email, self.config.api_token)

    async def _request(
        self,
        method: str,
        path: str,
        identity: str = "ai",
        credentials: Optional[JiraCredentials] = None,
        json: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None
    ) -> Any:
        creds = self._credentials(identity, credentials)
        base_url = f"{self.config.base_url.rstrip('/')}/rest/api/3"

        try:
            async with httpx.AsyncClient(
                base_url=base_url,
                auth=(creds.email, creds.api_token),
                timeout=self.config.timeout,
                transport=self.transport,
                headers={"Accept": "application/json"}
            ) as client:
                response = await client.request(method, path, json=json, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Jira {method} {path} failed: {e}")
            raise TicketGatewayError(f"Jira request failed: {e}") from e

        if response.status_code >= 400:
            logger.error(f"Jira {method} {path} returned {response.status_code}: {response.text[:200]}")
            raise TicketGatewayError(
                f"Jira {method} {path} returned {response.status_code}",
                status_code=response.status_code
            )

        if not response.content:
            return None
        return response.json()

    async def get_issue(self, issue_key: str) -> Dict[str, Any]:
        return await self._request("GET", f"/issue/{issue_key}")

    async def add_comment(
        self,
        issue_key: str,
        text: str,
        identity: str = "ai",
        credentials: Optional[JiraCredentials] = None
    ) -> Dict[str, Any]:
        """Add a comment as the AI identity, the widget identity or explicit credentials."""
        result = await self._request(
            "POST",
            f"/issue/{issue_key}/comment",
            identity=identity,
            credentials=credentials,
            json={"body": build_adf_document(text)}
        )
        logger.info(f"Added {identity} comment to {issue_key}")
        return result

    async def list_comments(self, issue_key: str) -> List[Dict[str, Any]]:
        result = await self._request("GET", f"/issue/{issue_key}/comment")
        return (result or {}).get("comments", [])

    async def transition_issue(self, issue_key: str, status_name: str) -> bool:
        """Move an issue to the status with the given name. Returns False if no transition leads there."""
        result = await self._request("GET", f"/issue/{issue_key}/transitions")
        transitions = (result or {}).get("transitions", [])

        target = status_name.lower()
        for transition in transitions:
            if transition.get("to", {}).get("name", "").lower() == target:
                await self._request(
                    "POST",
                    f"/issue/{issue_key}/transitions",
                    json={"transition": {"id": transition["id"]}}
                )
                logger.info(f"Transitioned {issue_key} to {status_name}")
                return True

        available = [transition.get("to", {}).get("name") for transition in transitions]
        logger.warning(f"No transition to '{status_name}' for {issue_key}. Available: {available}")
        return False

    async def create_issue(
        self,
        project_key: str,
        summary: str,
        description: str,
        issue_type: Optional[str] = None,
        labels: Optional[List[str]] = None
    ) -> str:
        """Create an issue and return its key."""
        fields: Dict[str, Any] = {
            "project": {"key": project_key},
            "summary": summary,
            "description": build_adf_document(description),
            "issuetype": {"name": issue_type or self.config.issue_type},
        }
        if labels:
            fields["labels"] = labels

        result = await self._request("POST", "/issue", json={"fields": fields})
        issue_key = result["key"]
        logger.info(f"Created Jira issue {issue_key} in project {project_key}")
        return issue_key
