"""API client for the GitLab GraphQL endpoint."""

import requests

from models import CreationPayload

CREATE_ISSUE_MUTATION = """
mutation CreateIssue(
  $projectPath: ID!
  $title: String!
  $description: String
  $dueDate: ISO8601Date
  $labels: [String!]
  $assigneeIds: [UserID!]
) {
  createIssue(
    input: {
      projectPath: $projectPath
      title: $title
      description: $description
      dueDate: $dueDate
      labels: $labels
      assigneeIds: $assigneeIds
    }
  ) {
    issue {
      id
      iid
      webUrl
    }
    errors
  }
}
"""


class ApiError(Exception):
    """User-friendly API error."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


def _handle_api_error(response: requests.Response, service: str) -> str:
    """Convert HTTP errors to user-friendly messages."""
    status = response.status_code

    messages = {
        401: f"{service}: Authentication failed. Check your API token!",
        403: f"{service}: Access denied. Check your permissions or API token!",
        404: f"{service}: Resource not found. Check the GitLab URL!",
        429: f"{service}: Too many requests. Wait a moment and try again.",
        500: f"{service}: Server error. The service may be temporarily unavailable.",
        502: f"{service}: Bad gateway. The service may be temporarily unavailable.",
        503: f"{service}: Service unavailable. Try again later.",
    }

    return messages.get(status, f"{service}: HTTP {status} - {response.reason}")


def graphql_url(base_url: str) -> str:
    """The GraphQL endpoint for a GitLab instance URL."""
    base_url = base_url.rstrip("/")
    if base_url.endswith("/api/graphql"):
        return base_url
    return f"{base_url}/api/graphql"


def build_variables(payload: CreationPayload) -> dict:
    """GraphQL variables for the createIssue mutation."""
    return {
        "projectPath": payload.project_path,
        "title": payload.title,
        "description": payload.description,
        "dueDate": payload.due_date.isoformat() if payload.due_date else None,
        "labels": list(payload.labels),
        "assigneeIds": list(payload.assignees),
    }


class GitLabClient:
    """Client for the GitLab GraphQL API."""

    def __init__(self, url: str, token: str, timeout: float = 30):
        self.url = graphql_url(url)
        self.token = token
        self.timeout = timeout

    def create_issue(self, payload: CreationPayload) -> str:
        """Create an issue and return its global ID."""
        try:
            r = requests.post(
                self.url,
                headers={
                    "Authorization": f"Bearer {self.token}",
                    "Accept": "application/json",
                    "Content-Type": "application/json",
                },
                json={"query": CREATE_ISSUE_MUTATION, "variables": build_variables(payload)},
                timeout=self.timeout,
            )
        except requests.exceptions.ConnectionError:
            raise ApiError(f"GitLab: Cannot connect to {self.url}. Check your network!")
        except requests.exceptions.Timeout:
            raise ApiError("GitLab: Connection timed out. The server may be slow.")
        except requests.exceptions.RequestException as e:
            raise ApiError(f"GitLab: Request failed: {e}")

        if not r.ok:
            raise ApiError(_handle_api_error(r, "GitLab"), r.status_code)

        try:
            data = r.json()
        except ValueError:
            raise ApiError("GitLab: Response was not valid JSON.", r.status_code)

        try:
            return _extract_issue_id(data)
        except (AttributeError, KeyError, TypeError):
            raise ApiError("GitLab: Response had an unexpected shape.", r.status_code)
        except ApiError as e:
            e.status_code = r.status_code
            raise


def _extract_issue_id(data: dict) -> str:
    """Pull the new issue's ID out of a createIssue response body."""
    if data.get("errors"):
        messages = "; ".join(
            e.get("message", str(e)) if isinstance(e, dict) else str(e) for e in data["errors"]
        )
        raise ApiError(f"GitLab rejected the request: {messages}")

    result = (data.get("data") or {}).get("createIssue") or {}
    if result.get("errors"):
        raise ApiError(f"GitLab rejected the issue: {'; '.join(map(str, result['errors']))}")

    issue = result.get("issue") or {}
    if not issue.get("id"):
        raise ApiError("GitLab: Response did not contain an issue id.")
    return str(issue["id"])
