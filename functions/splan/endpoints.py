"""
Route templates used by API clients, relative to ``API_BASE_URL``.
"""

API_BASE_URL = "http://localhost:3000/api/v1"


def _resource(name: str) -> dict:
    return {
        "LIST": f"/{name}",
        "CREATE": f"/{name}",
        "GET": lambda id: f"/{name}/{id}",
        "UPDATE": lambda id: f"/{name}/{id}",
        "DELETE": lambda id: f"/{name}/{id}",
    }


API_ENDPOINTS = {
    "AUTH": {
        "LOGIN": "/auth/login",
        "REGISTER": "/auth/register",
        "LOGOUT": "/auth/logout",
    },
    "GOALS": _resource("goals"),
    "SPRINTS": _resource("sprints"),
    "TASKS": _resource("tasks"),
    "AI": {
        "CHAT": "/ai/chat",
        "SUGGEST_GOALS": "/ai/suggest-goals",
        "SUGGEST_TASKS": "/ai/suggest-tasks",
        "REGENERATE_GOAL_SCOPE": lambda goal_id: f"/ai/regenerate-goal-scope/{goal_id}",
        "CONVERSATIONS": "/ai/conversations",
        "CONVERSATION_HISTORY": lambda conversation_id: f"/ai/conversations/{conversation_id}",
    },
}
