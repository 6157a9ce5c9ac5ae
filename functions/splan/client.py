"""
HTTP client for the Splan API.

The client keeps the bearer token returned by login/register on its
session and drops it again on logout. Non-2xx responses raise
``ApiClientError`` carrying the server's error message.
"""

from __future__ import annotations

from typing import Any, Optional

import requests

from splan.endpoints import API_BASE_URL, API_ENDPOINTS

REQUEST_TIMEOUT = 10  # seconds


class ApiClientError(Exception):
    def __init__(self, status_code: int, message: str):
        super().__init__(f"{status_code}: {message}")
        self.status_code = status_code
        self.message = message


class SplanApiClient:
    def __init__(
        self,
        base_url: str = API_BASE_URL,
        session: Optional[requests.Session] = None,
        timeout: float = REQUEST_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = timeout
        self.token: Optional[str] = None

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        response = self.session.request(
            method,
            f"{self.base_url}{path}",
            headers=headers,
            timeout=self.timeout,
            **kwargs,
        )
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not response.ok:
            message = body.get("message") or response.reason or "Request failed"
            if response.status_code == 401:
                self.token = None
            raise ApiClientError(response.status_code, message)
        return body

    def _set_token(self, body: dict) -> dict:
        data = body.get("data") or {}
        self.token = data.get("token")
        return data

    # Auth

    def login(self, email: str, password: str) -> dict:
        body = self._request(
            "POST", API_ENDPOINTS["AUTH"]["LOGIN"], json={"email": email, "password": password}
        )
        return self._set_token(body)

    def register(self, username: str, email: str, password: str, **profile) -> dict:
        payload = {"username": username, "email": email, "password": password, **profile}
        body = self._request("POST", API_ENDPOINTS["AUTH"]["REGISTER"], json=payload)
        return self._set_token(body)

    def logout(self) -> None:
        try:
            self._request("POST", API_ENDPOINTS["AUTH"]["LOGOUT"])
        finally:
            self.token = None

    # Goals, sprints, tasks

    def _list(self, resource: str, **params) -> dict:
        params = {k: v for k, v in params.items() if v is not None}
        return self._request("GET", API_ENDPOINTS[resource]["LIST"], params=params)

    def list_goals(self, **params) -> dict:
        return self._list("GOALS", **params)

    def create_goal(self, goal: dict) -> dict:
        return self._request("POST", API_ENDPOINTS["GOALS"]["CREATE"], json=goal)["data"]

    def get_goal(self, goal_id: str) -> dict:
        return self._request("GET", API_ENDPOINTS["GOALS"]["GET"](goal_id))["data"]

    def update_goal(self, goal_id: str, changes: dict) -> dict:
        return self._request("PUT", API_ENDPOINTS["GOALS"]["UPDATE"](goal_id), json=changes)[
            "data"
        ]

    def delete_goal(self, goal_id: str) -> None:
        self._request("DELETE", API_ENDPOINTS["GOALS"]["DELETE"](goal_id))

    def list_sprints(self, **params) -> dict:
        return self._list("SPRINTS", **params)

    def create_sprint(self, sprint: dict) -> dict:
        return self._request("POST", API_ENDPOINTS["SPRINTS"]["CREATE"], json=sprint)["data"]

    def get_sprint(self, sprint_id: str) -> dict:
        return self._request("GET", API_ENDPOINTS["SPRINTS"]["GET"](sprint_id))["data"]

    def update_sprint(self, sprint_id: str, changes: dict) -> dict:
        return self._request(
            "PUT", API_ENDPOINTS["SPRINTS"]["UPDATE"](sprint_id), json=changes
        )["data"]

    def delete_sprint(self, sprint_id: str) -> None:
        self._request("DELETE", API_ENDPOINTS["SPRINTS"]["DELETE"](sprint_id))

    def list_tasks(self, **params) -> dict:
        return self._list("TASKS", **params)

    def create_task(self, task: dict) -> dict:
        return self._request("POST", API_ENDPOINTS["TASKS"]["CREATE"], json=task)["data"]

    def get_task(self, task_id: str) -> dict:
        return self._request("GET", API_ENDPOINTS["TASKS"]["GET"](task_id))["data"]

    def update_task(self, task_id: str, changes: dict) -> dict:
        return self._request("PUT", API_ENDPOINTS["TASKS"]["UPDATE"](task_id), json=changes)[
            "data"
        ]

    def delete_task(self, task_id: str) -> None:
        self._request("DELETE", API_ENDPOINTS["TASKS"]["DELETE"](task_id))

    # AI

    def chat(self, message: str, conversation_id: Optional[str] = None) -> dict:
        payload = {"message": message}
        if conversation_id:
            payload["conversationId"] = conversation_id
        return self._request("POST", API_ENDPOINTS["AI"]["CHAT"], json=payload)["data"]

    def suggest_goals(self, context: str) -> list[str]:
        body = self._request(
            "POST", API_ENDPOINTS["AI"]["SUGGEST_GOALS"], json={"context": context}
        )
        return body["data"]["suggestions"]

    def suggest_tasks(self, goal_id: str) -> list[str]:
        body = self._request(
            "POST", API_ENDPOINTS["AI"]["SUGGEST_TASKS"], json={"goalId": goal_id}
        )
        return body["data"]["suggestions"]

    def regenerate_goal_scope(self, goal_id: str) -> str:
        body = self._request("POST", API_ENDPOINTS["AI"]["REGENERATE_GOAL_SCOPE"](goal_id))
        return body["data"]["scope"]

    def conversations(self) -> list[dict]:
        body = self._request("GET", API_ENDPOINTS["AI"]["CONVERSATIONS"])
        return body["data"]["conversations"]

    def conversation_history(self, conversation_id: str) -> list[dict]:
        body = self._request(
            "GET", API_ENDPOINTS["AI"]["CONVERSATION_HISTORY"](conversation_id)
        )
        return body["data"]["messages"]
