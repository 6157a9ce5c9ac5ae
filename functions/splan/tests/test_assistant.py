import unittest
from unittest.mock import MagicMock

from splan.assistant import (
    FALLBACK_DEFAULT,
    FALLBACK_GOAL_ADVICE,
    FALLBACK_GOALS,
    FALLBACK_GREETING,
    FALLBACK_SCOPE_CONFIDENCE,
    FALLBACK_TASKS,
    MODEL_SCOPE_CONFIDENCE,
    Assistant,
    fallback_chat_reply,
    parse_suggestions,
)
from splan.db import InMemoryDbClient


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class ParsingTests(unittest.TestCase):
    def test_parse_suggestions_strips_markers(self):
        text = "1. Read more\n\n2) Sleep early\n- Walk daily\n* Drink water\n• Stretch\n"
        self.assertEqual(
            parse_suggestions(text, 4),
            ["Read more", "Sleep early", "Walk daily", "Drink water"],
        )

    def test_fallback_chat_reply_uses_keywords(self):
        self.assertEqual(fallback_chat_reply("Hi!"), FALLBACK_GREETING)
        self.assertEqual(fallback_chat_reply("How do I reach my goal?"), FALLBACK_GOAL_ADVICE)
        self.assertEqual(fallback_chat_reply("what's the weather"), FALLBACK_DEFAULT)


class AssistantTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()
        self.user = self.db.create_user("alice", "alice@example.com", "hash")
        self.goal = self.db.create_goal(
            self.user.id, {"title": "Run a marathon", "description": "Autumn race"}
        )

    def test_without_model_uses_fallbacks(self):
        assistant = Assistant(self.db)
        self.assertEqual(assistant.suggest_goals(self.user.id, "health"), FALLBACK_GOALS)
        self.assertEqual(assistant.suggest_tasks(self.user.id, self.goal.id), FALLBACK_TASKS)

        scope = assistant.regenerate_goal_scope(self.user.id, self.goal.id)
        self.assertIn("Run a marathon", scope)
        stored = self.db.get_goal(self.user.id, self.goal.id)
        self.assertEqual(stored.scope_document, scope)
        self.assertEqual(stored.ai_confidence_score, FALLBACK_SCOPE_CONFIDENCE)

    def test_unknown_goal_scope(self):
        assistant = Assistant(self.db)
        self.assertIsNone(assistant.regenerate_goal_scope(self.user.id, "missing"))

    def test_model_reply_is_used(self):
        llm = MagicMock()
        llm.call_predict.return_value = "1. Train three times a week\n2. Buy shoes"
        llm.call_chat.return_value = "Sure, let's plan."
        assistant = Assistant(self.db, llm)

        self.assertEqual(
            assistant.suggest_tasks(self.user.id, self.goal.id),
            ["Train three times a week", "Buy shoes"],
        )
        prompt = llm.call_predict.call_args[0][0]
        self.assertIn("Run a marathon", prompt)

        reply, conversation_id = assistant.chat(self.user.id, "Plan my week")
        self.assertEqual(reply, "Sure, let's plan.")
        assistant.chat(self.user.id, "And next week?", conversation_id)
        history = llm.call_chat.call_args[0][0]
        self.assertEqual(history, [("user", "Plan my week"), ("assistant", "Sure, let's plan.")])

        assistant.regenerate_goal_scope(self.user.id, self.goal.id)
        stored = self.db.get_goal(self.user.id, self.goal.id)
        self.assertEqual(stored.ai_confidence_score, MODEL_SCOPE_CONFIDENCE)

    def test_model_error_falls_back(self):
        llm = MagicMock()
        llm.call_chat.side_effect = RuntimeError("quota")
        llm.call_predict.return_value = ""
        assistant = Assistant(self.db, llm)

        reply, _ = assistant.chat(self.user.id, "hello")
        self.assertEqual(reply, FALLBACK_GREETING)
        self.assertEqual(assistant.suggest_goals(self.user.id, "work"), FALLBACK_GOALS)

    def test_rate_limit_per_user(self):
        clock = FakeClock()
        llm = MagicMock()
        llm.call_predict.return_value = "- Model idea"
        assistant = Assistant(self.db, llm, max_requests_per_minute=2, clock=clock)

        self.assertEqual(assistant.suggest_goals(self.user.id, "x"), ["Model idea"])
        self.assertEqual(assistant.suggest_goals(self.user.id, "x"), ["Model idea"])
        self.assertEqual(assistant.suggest_goals(self.user.id, "x"), FALLBACK_GOALS)
        self.assertEqual(llm.call_predict.call_count, 2)

        # Another user has their own allowance.
        self.assertEqual(assistant.suggest_goals("someone-else", "x"), ["Model idea"])

        clock.now = 61.0
        self.assertEqual(assistant.suggest_goals(self.user.id, "x"), ["Model idea"])

    def test_foreign_conversation_is_not_reused(self):
        assistant = Assistant(self.db)
        _, conversation_id = assistant.chat(self.user.id, "hi")
        other = self.db.create_user("bob", "bob@example.com", "hash")

        _, other_conversation = assistant.chat(other.id, "hi", conversation_id)
        self.assertNotEqual(other_conversation, conversation_id)
        self.assertEqual(assistant.conversation_history(other.id, conversation_id), [])
        self.assertEqual(len(assistant.conversation_history(self.user.id, conversation_id)), 2)

        listed = assistant.list_conversations(self.user.id)
        self.assertEqual(len(listed), 1)
        self.assertEqual(listed[0][1][0].role, "assistant")


if __name__ == "__main__":
    unittest.main()
