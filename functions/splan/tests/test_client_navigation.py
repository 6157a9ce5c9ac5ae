import unittest
from unittest.mock import MagicMock

from splan.client import ApiClientError, SplanApiClient
from splan.endpoints import API_ENDPOINTS
from splan.navigation import (
    AUTH_NAVIGATOR,
    LOADING_NAVIGATOR,
    MAIN_NAVIGATOR,
    AuthStatus,
    SessionState,
    resolve_navigator,
)


def _response(status_code=200, body=None, reason="OK"):
    response = MagicMock()
    response.status_code = status_code
    response.ok = 200 <= status_code < 300
    response.reason = reason
    response.json.return_value = body if body is not None else {}
    return response


class EndpointTests(unittest.TestCase):
    def test_templates(self):
        self.assertEqual(API_ENDPOINTS["AUTH"]["LOGIN"], "/auth/login")
        self.assertEqual(API_ENDPOINTS["GOALS"]["LIST"], "/goals")
        self.assertEqual(API_ENDPOINTS["SPRINTS"]["UPDATE"]("s1"), "/sprints/s1")
        self.assertEqual(API_ENDPOINTS["TASKS"]["DELETE"]("t1"), "/tasks/t1")
        self.assertEqual(
            API_ENDPOINTS["AI"]["REGENERATE_GOAL_SCOPE"]("g1"), "/ai/regenerate-goal-scope/g1"
        )
        self.assertEqual(
            API_ENDPOINTS["AI"]["CONVERSATION_HISTORY"]("c1"), "/ai/conversations/c1"
        )


class ClientTests(unittest.TestCase):
    def setUp(self):
        self.session = MagicMock()
        self.client = SplanApiClient("http://api.test/api/v1/", session=self.session)

    def test_login_stores_token_and_sends_it(self):
        self.session.request.return_value = _response(
            body={"success": True, "data": {"user": {"id": "u1"}, "token": "tok"}}
        )
        data = self.client.login("alice@example.com", "secret123")
        self.assertEqual(data["user"]["id"], "u1")
        self.assertEqual(self.client.token, "tok")

        self.session.request.return_value = _response(
            body={"success": True, "data": {"id": "g1"}}
        )
        self.client.get_goal("g1")
        args, kwargs = self.session.request.call_args
        self.assertEqual(args, ("GET", "http://api.test/api/v1/goals/g1"))
        self.assertEqual(kwargs["headers"]["Authorization"], "Bearer tok")

    def test_logout_clears_token_even_on_error(self):
        self.client.token = "tok"
        self.session.request.return_value = _response(
            500, {"success": False, "message": "boom"}, reason="Server Error"
        )
        with self.assertRaises(ApiClientError):
            self.client.logout()
        self.assertIsNone(self.client.token)

    def test_error_carries_server_message(self):
        self.session.request.return_value = _response(
            404, {"success": False, "message": "Goal not found"}, reason="Not Found"
        )
        with self.assertRaises(ApiClientError) as ctx:
            self.client.get_goal("missing")
        self.assertEqual(ctx.exception.status_code, 404)
        self.assertEqual(ctx.exception.message, "Goal not found")

    def test_chat_payload(self):
        self.session.request.return_value = _response(
            body={"data": {"response": "hi", "conversationId": "c1"}}
        )
        self.assertEqual(self.client.chat("hello", "c1")["conversationId"], "c1")
        kwargs = self.session.request.call_args[1]
        self.assertEqual(kwargs["json"], {"message": "hello", "conversationId": "c1"})

    def test_list_drops_empty_filters(self):
        self.session.request.return_value = _response(body={"data": [], "pagination": {}})
        self.client.list_tasks(status="DONE", goalId=None)
        kwargs = self.session.request.call_args[1]
        self.assertEqual(kwargs["params"], {"status": "DONE"})


class NavigationTests(unittest.TestCase):
    def test_loading_session(self):
        session = SessionState(is_loading=True, token="tok")
        self.assertEqual(session.status, AuthStatus.AUTHENTICATING)
        self.assertIs(resolve_navigator(session), LOADING_NAVIGATOR)

    def test_authenticated_session_gets_main_tabs(self):
        navigator = resolve_navigator(SessionState(is_loading=False, token="tok"))
        self.assertIs(navigator, MAIN_NAVIGATOR)
        self.assertEqual(
            navigator.screens, ("Dashboard", "Goals", "Sprints", "Tasks", "AIChat", "Profile")
        )

    def test_signed_out_session_gets_auth_stack(self):
        navigator = resolve_navigator(SessionState(is_loading=False))
        self.assertIs(navigator, AUTH_NAVIGATOR)
        self.assertEqual(navigator.screens, ("Login", "Register"))
        self.assertFalse(set(AUTH_NAVIGATOR.screens) & set(MAIN_NAVIGATOR.screens))


if __name__ == "__main__":
    unittest.main()
