"""
AI assistant: chat, goal/task suggestions and goal scope documents.

The model is optional. Without an API key, on a model error, or once a
user exhausts their per-minute allowance, every feature answers with
deterministic fallback text instead of failing the request.
"""

from __future__ import annotations

import logging
import re
import threading
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Optional, Protocol, Sequence, Tuple

from splan.db import ConversationRecord, DbClient, GoalRecord, MessageRecord
from splan.types import MessageRole

logger = logging.getLogger(__name__)

CHAT_CONTEXT = "Splan AI Assistant - Productivity and Goal Management"
SYSTEM_INSTRUCTION = (
    "You are the Splan assistant. Help the user plan goals, sprints and "
    "tasks. Keep answers short, concrete and actionable."
)
GOAL_SUGGESTION_COUNT = 4
TASK_SUGGESTION_COUNT = 5
MODEL_SCOPE_CONFIDENCE = 0.85
FALLBACK_SCOPE_CONFIDENCE = 0.6
RATE_LIMIT_WINDOW_SECONDS = 60.0

FALLBACK_GREETING = (
    "Hi! I'm your Splan assistant. I can see your goals and I'm here to help "
    "you plan how to reach them."
)
FALLBACK_GOAL_ADVICE = (
    "To reach your goals I suggest:\n"
    "1. Split the goal into smaller parts\n"
    "2. Create concrete tasks for each part\n"
    "3. Plan your days and weeks\n"
    "4. Track your progress\n"
    "5. Revise the goal when needed"
)
FALLBACK_PRODUCTIVITY = (
    "To boost your productivity:\n"
    "- Use the Pomodoro technique\n"
    "- Pick your daily priorities\n"
    "- Minimise distractions\n"
    "- Take regular breaks\n"
    "- Visualise your goals"
)
FALLBACK_DEFAULT = (
    "Thanks! How can I help? Ask me about your goals, tasks or productivity."
)
FALLBACK_GOALS = [
    "Learn a new technology - build a small project with it",
    "Fitness - exercise three times a week",
    "Reading - finish two books a month",
    "Language - reach the next level in a foreign language",
]
FALLBACK_TASKS = [
    "Research - collect resources related to the goal",
    "Plan - write a detailed action plan",
    "Resources - list the tools and resources you need",
    "Timeline - draft a realistic schedule for the goal",
    "Tracking - measure and record progress regularly",
]

GREETING_WORDS = {"hello", "hi", "hey", "merhaba", "selam"}

_LIST_MARKER = re.compile(r"^\s*(?:\d+[.)]|[-*•])\s*")


class LlmClient(Protocol):
    def call_predict(
        self,
        query: str,
        *,
        temperature: float = 0.7,
        system_instruction: str | None = None,
    ) -> str:
        ...

    def call_chat(
        self,
        history: Sequence[Tuple[str, str]],
        message: str,
        *,
        temperature: float = 0.7,
        system_instruction: str | None = None,
    ) -> str:
        ...


class RateLimitExceeded(Exception):
    pass


def parse_suggestions(text: str, limit: int) -> list[str]:
    """Turn a numbered or bulleted model reply into plain suggestion lines."""
    lines = []
    for line in text.splitlines():
        cleaned = _LIST_MARKER.sub("", line).strip()
        if cleaned:
            lines.append(cleaned)
    return lines[:limit]


def fallback_chat_reply(message: str) -> str:
    lower = message.lower()
    if set(re.findall(r"\w+", lower)) & GREETING_WORDS:
        return FALLBACK_GREETING
    if "goal" in lower or "hedef" in lower:
        return FALLBACK_GOAL_ADVICE
    if "productiv" in lower or "üretken" in lower:
        return FALLBACK_PRODUCTIVITY
    return FALLBACK_DEFAULT


def fallback_scope(goal: GoalRecord) -> str:
    description = goal.description or "No description provided"
    return (
        f"# Scope Document: {goal.title}\n\n"
        f"## Overview\n{description}\n\n"
        "## Objectives\n"
        "- Define clear project goals\n"
        "- Establish success criteria\n"
        "- Identify key deliverables\n\n"
        "## Deliverables\n"
        "1. Project plan\n"
        "2. Technical specifications\n"
        "3. Timeline and milestones\n\n"
        "## Success Criteria\n"
        "- All objectives met within timeline\n"
        "- Quality standards maintained\n\n"
        "## Constraints\n"
        "- Time constraints\n"
        "- Resource limitations"
    )


class Assistant:
    def __init__(
        self,
        db: DbClient,
        llm: Optional[LlmClient] = None,
        *,
        max_requests_per_minute: int = 10,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.db = db
        self.llm = llm
        self.max_requests_per_minute = max_requests_per_minute
        self._clock = clock
        self._calls: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def _check_rate_limit(self, user_id: str) -> None:
        now = self._clock()
        with self._lock:
            calls = self._calls[user_id]
            while calls and now - calls[0] >= RATE_LIMIT_WINDOW_SECONDS:
                calls.popleft()
            if len(calls) >= self.max_requests_per_minute:
                raise RateLimitExceeded(user_id)
            calls.append(now)

    def _ask(self, user_id: str, call: Callable[[LlmClient], str]) -> Optional[str]:
        """Run a model call, returning None whenever the fallback should answer."""
        if self.llm is None:
            return None
        try:
            self._check_rate_limit(user_id)
            return call(self.llm)
        except RateLimitExceeded:
            logger.warning("AI rate limit exceeded for user %s, using fallback", user_id)
        except Exception:
            logger.exception("AI model call failed, using fallback")
        return None

    def chat(
        self, user_id: str, message: str, conversation_id: str | None = None
    ) -> tuple[str, str]:
        """Answer ``message`` and return (response, conversation_id)."""
        conversation = None
        if conversation_id:
            conversation = self.db.get_conversation(user_id, conversation_id)
        if conversation is None:
            conversation = self.db.create_conversation(user_id, context=CHAT_CONTEXT)

        history = [(m.role, m.content) for m in self.db.list_messages(conversation.id)]
        reply = self._ask(
            user_id,
            lambda llm: llm.call_chat(
                history, message, system_instruction=SYSTEM_INSTRUCTION
            ),
        )
        if not reply:
            reply = fallback_chat_reply(message)

        self.db.add_messages(
            conversation.id,
            [(MessageRole.USER.value, message), (MessageRole.ASSISTANT.value, reply)],
        )
        return reply, conversation.id

    def suggest_goals(self, user_id: str, context: str) -> list[str]:
        prompt = (
            "Based on the following context, suggest "
            f"{GOAL_SUGGESTION_COUNT} relevant goals for a productivity app user.\n"
            f"Context: {context}\n\n"
            "Reply with one specific, actionable goal per line and nothing else."
        )
        reply = self._ask(user_id, lambda llm: llm.call_predict(prompt))
        suggestions = parse_suggestions(reply or "", GOAL_SUGGESTION_COUNT)
        return suggestions or list(FALLBACK_GOALS)

    def suggest_tasks(self, user_id: str, goal_id: str) -> list[str]:
        prompt = (
            f"Suggest {TASK_SUGGESTION_COUNT} actionable tasks for improving "
            "productivity and goal achievement."
        )
        goal = self.db.get_goal(user_id, goal_id)
        if goal:
            prompt = (
                f'Based on the goal "{goal.title}" '
                f"({goal.description or 'No description'}), suggest "
                f"{TASK_SUGGESTION_COUNT} specific tasks that would help achieve it."
            )
        prompt += "\nReply with one task per line and nothing else."
        reply = self._ask(user_id, lambda llm: llm.call_predict(prompt))
        suggestions = parse_suggestions(reply or "", TASK_SUGGESTION_COUNT)
        return suggestions or list(FALLBACK_TASKS)

    def regenerate_goal_scope(self, user_id: str, goal_id: str) -> Optional[str]:
        """Generate and store a scope document. Returns None for an unknown goal."""
        goal = self.db.get_goal(user_id, goal_id)
        if not goal:
            return None
        prompt = (
            "Generate a detailed scope document for the following goal:\n"
            f"Title: {goal.title}\n"
            f"Description: {goal.description or 'No description provided'}\n\n"
            "Provide clear objectives, deliverables and success criteria. "
            "Format the response as a markdown document."
        )
        scope = self._ask(
            user_id, lambda llm: llm.call_predict(prompt, temperature=0.5)
        )
        confidence = MODEL_SCOPE_CONFIDENCE
        if not scope:
            scope = fallback_scope(goal)
            confidence = FALLBACK_SCOPE_CONFIDENCE
        self.db.update_goal(
            user_id,
            goal_id,
            {"scope_document": scope, "ai_confidence_score": confidence},
        )
        return scope

    def conversation_history(
        self, user_id: str, conversation_id: str
    ) -> list[MessageRecord]:
        conversation = self.db.get_conversation(user_id, conversation_id)
        if conversation is None:
            return []
        return self.db.list_messages(conversation.id)

    def list_conversations(
        self, user_id: str
    ) -> list[tuple[ConversationRecord, list[MessageRecord]]]:
        """Each conversation with its latest message, most recent first."""
        return [
            (conversation, self.db.list_messages(conversation.id)[-1:])
            for conversation in self.db.list_conversations(user_id)
        ]
