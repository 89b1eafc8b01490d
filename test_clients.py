"""Tests for the GitLab GraphQL client, without network access."""

from datetime import date

import pytest
import requests

from clients import ApiError, GitLabClient, build_variables, graphql_url
from models import CreationPayload


class FakeResponse:

    def __init__(self, status_code=200, payload=None, reason="OK"):
        self.status_code = status_code
        self._payload = payload
        self.reason = reason

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("no json")
        return self._payload


PAYLOAD = CreationPayload(
    project_path="team/ops",
    title="Weekly review",
    description="body",
    due_date=date(2023, 11, 12),
    labels=["recurring"],
    assignees=["gid://gitlab/User/7"],
)


@pytest.fixture
def post(monkeypatch):
    """Replace requests.post; set .response or .exception before calling."""

    class Recorder:
        response = FakeResponse(payload={
            "data": {"createIssue": {"issue": {"id": "gid://gitlab/Issue/42"}, "errors": []}}
        })
        exception = None
        calls = []

    def fake_post(url, **kwargs):
        Recorder.calls.append((url, kwargs))
        if Recorder.exception:
            raise Recorder.exception
        return Recorder.response

    Recorder.calls = []
    monkeypatch.setattr(requests, "post", fake_post)
    return Recorder


class TestGraphqlUrl:

    @pytest.mark.parametrize(
        "base, expected",
        [
            ("https://gitlab.com", "https://gitlab.com/api/graphql"),
            ("https://gitlab.com/", "https://gitlab.com/api/graphql"),
            ("https://gitlab.com/api/graphql", "https://gitlab.com/api/graphql"),
        ],
    )
    def test_url(self, base, expected):
        assert graphql_url(base) == expected


class TestBuildVariables:

    def test_all_fields(self):
        assert build_variables(PAYLOAD) == {
            "projectPath": "team/ops",
            "title": "Weekly review",
            "description": "body",
            "dueDate": "2023-11-12",
            "labels": ["recurring"],
            "assigneeIds": ["gid://gitlab/User/7"],
        }

    def test_no_due_date(self):
        payload = CreationPayload(project_path="p", title="t")
        assert build_variables(payload)["dueDate"] is None


class TestCreateIssue:

    def test_success(self, post):
        client = GitLabClient("https://gitlab.example.com", "secret", timeout=5)

        assert client.create_issue(PAYLOAD) == "gid://gitlab/Issue/42"

        url, kwargs = post.calls[0]
        assert url == "https://gitlab.example.com/api/graphql"
        assert kwargs["headers"]["Authorization"] == "Bearer secret"
        assert kwargs["json"]["variables"]["projectPath"] == "team/ops"
        assert "createIssue" in kwargs["json"]["query"]
        assert kwargs["timeout"] == 5

    @pytest.mark.parametrize(
        "status, fragment",
        [
            (401, "Authentication failed"),
            (403, "Access denied"),
            (503, "Service unavailable"),
            (418, "HTTP 418"),
        ],
    )
    def test_http_errors(self, post, status, fragment):
        post.response = FakeResponse(status_code=status, reason="Teapot")
        with pytest.raises(ApiError, match=fragment) as exc:
            GitLabClient("https://gitlab.example.com", "t").create_issue(PAYLOAD)
        assert exc.value.status_code == status

    @pytest.mark.parametrize(
        "exception, fragment",
        [
            (requests.exceptions.ConnectionError(), "Cannot connect"),
            (requests.exceptions.Timeout(), "timed out"),
            (requests.exceptions.ChunkedEncodingError("broken"), "Request failed"),
            (requests.exceptions.TooManyRedirects(), "Request failed"),
        ],
    )
    def test_transport_errors(self, post, exception, fragment):
        post.exception = exception
        with pytest.raises(ApiError, match=fragment):
            GitLabClient("https://gitlab.example.com", "t").create_issue(PAYLOAD)

    def test_graphql_errors(self, post):
        post.response = FakeResponse(payload={"errors": [{"message": "Field 'x' doesn't exist"}]})
        with pytest.raises(ApiError, match="doesn't exist"):
            GitLabClient("https://gitlab.example.com", "t").create_issue(PAYLOAD)

    def test_mutation_errors(self, post):
        post.response = FakeResponse(payload={
            "data": {"createIssue": {"issue": None, "errors": ["Project not found"]}}
        })
        with pytest.raises(ApiError, match="Project not found"):
            GitLabClient("https://gitlab.example.com", "t").create_issue(PAYLOAD)

    def test_missing_issue(self, post):
        post.response = FakeResponse(payload={"data": {"createIssue": None}})
        with pytest.raises(ApiError, match="issue id"):
            GitLabClient("https://gitlab.example.com", "t").create_issue(PAYLOAD)

    def test_invalid_json(self, post):
        post.response = FakeResponse(payload=None)
        with pytest.raises(ApiError, match="JSON"):
            GitLabClient("https://gitlab.example.com", "t").create_issue(PAYLOAD)

    @pytest.mark.parametrize(
        "body",
        [
            [],
            {"data": []},
            {"data": {"createIssue": {"issue": "gid://gitlab/Issue/1"}}},
            {"errors": "nope"},
        ],
    )
    def test_unexpected_body_shape(self, post, body):
        post.response = FakeResponse(payload=body)
        with pytest.raises(ApiError):
            GitLabClient("https://gitlab.example.com", "t").create_issue(PAYLOAD)
