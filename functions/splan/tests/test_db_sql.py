import unittest
from datetime import datetime, timedelta, timezone

from splan.db import DuplicateUserError, InMemoryDbClient, SqlDbClient
from splan.types import TaskStatus

START = datetime(2030, 1, 1, tzinfo=timezone.utc)


class DbClientContract:
    """
    Shared behaviour for both store implementations.
    """

    def make_db(self):
        raise NotImplementedError

    def setUp(self):
        self.db = self.make_db()
        self.user = self.db.create_user("alice", "alice@example.com", "hash")
        self.other = self.db.create_user("bob", "bob@example.com", "hash")

    def test_duplicate_user(self):
        with self.assertRaises(DuplicateUserError):
            self.db.create_user("alice", "new@example.com", "hash")
        self.assertEqual(
            self.db.find_user(email="alice@example.com", username="nobody").id, self.user.id
        )
        self.assertEqual(self.db.get_user_by_email("bob@example.com").id, self.other.id)

    def test_update_user(self):
        updated = self.db.update_user(self.user.id, {"first_name": "Alice"})
        self.assertEqual(updated.first_name, "Alice")
        self.assertIsNone(self.db.update_user("missing", {"first_name": "X"}))

    def test_goal_ownership(self):
        goal = self.db.create_goal(self.user.id, {"title": "Goal"})
        self.assertEqual(goal.status, "ACTIVE")
        self.assertIsNotNone(goal.created_at.tzinfo)
        self.assertIsNone(self.db.get_goal(self.other.id, goal.id))
        self.assertIsNone(self.db.update_goal(self.other.id, goal.id, {"title": "X"}))
        self.assertFalse(self.db.delete_goal(self.other.id, goal.id))
        self.assertEqual(self.db.get_goal(self.user.id, goal.id).title, "Goal")

    def test_list_filters_and_pages(self):
        for i in range(3):
            self.db.create_goal(
                self.user.id, {"title": f"G{i}", "priority": "HIGH" if i else "LOW"}
            )
        self.db.create_goal(self.other.id, {"title": "Not mine"})

        items, total = self.db.list_goals(self.user.id, offset=0, limit=2)
        self.assertEqual(total, 3)
        self.assertEqual(len(items), 2)

        high, total = self.db.list_goals(self.user.id, {"priority": "HIGH", "status": None})
        self.assertEqual(total, 2)
        self.assertTrue(all(g.priority == "HIGH" for g in high))

    def test_delete_goal_detaches_sprints_and_tasks(self):
        goal = self.db.create_goal(self.user.id, {"title": "Goal"})
        sprint = self.db.create_sprint(
            self.user.id,
            {
                "title": "S",
                "goal_id": goal.id,
                "start_date": START,
                "end_date": START + timedelta(days=7),
            },
        )
        task = self.db.create_task(self.user.id, {"title": "T", "goal_id": goal.id})

        self.assertTrue(self.db.delete_goal(self.user.id, goal.id))
        self.assertIsNone(self.db.get_sprint(self.user.id, sprint.id).goal_id)
        self.assertIsNone(self.db.get_task(self.user.id, task.id).goal_id)

    def test_delete_sprint_detaches_tasks(self):
        sprint = self.db.create_sprint(
            self.user.id,
            {"title": "S", "start_date": START, "end_date": START + timedelta(days=7)},
        )
        task = self.db.create_task(self.user.id, {"title": "T", "sprint_id": sprint.id})
        self.assertTrue(self.db.delete_sprint(self.user.id, sprint.id))
        self.assertIsNone(self.db.get_task(self.user.id, task.id).sprint_id)

    def test_task_status_sets_completed_at(self):
        task = self.db.create_task(self.user.id, {"title": "T"})
        self.assertIsNone(task.completed_at)

        done = self.db.update_task(self.user.id, task.id, {"status": TaskStatus.DONE.value})
        self.assertIsNotNone(done.completed_at)
        completed_at = done.completed_at

        again = self.db.update_task(self.user.id, task.id, {"status": TaskStatus.DONE.value})
        self.assertEqual(again.completed_at, completed_at)

        reopened = self.db.update_task(self.user.id, task.id, {"status": TaskStatus.TODO.value})
        self.assertIsNone(reopened.completed_at)

    def test_time_entries_removed_with_task(self):
        task = self.db.create_task(self.user.id, {"title": "T"})
        self.db.create_time_entry(
            self.user.id,
            task.id,
            {"start_time": START, "end_time": START + timedelta(hours=1), "duration": 60.0},
        )
        self.assertEqual(len(self.db.list_time_entries(self.user.id, task.id)), 1)
        self.assertTrue(self.db.delete_task(self.user.id, task.id))
        self.assertEqual(self.db.list_time_entries(self.user.id), [])

    def test_conversation_messages_in_order(self):
        conversation = self.db.create_conversation(self.user.id, context="ctx")
        self.db.add_messages(conversation.id, [("user", "one"), ("assistant", "two")])
        self.db.add_messages(conversation.id, [("user", "three")])

        messages = self.db.list_messages(conversation.id)
        self.assertEqual([m.content for m in messages], ["one", "two", "three"])
        self.assertIsNone(self.db.get_conversation(self.other.id, conversation.id))
        self.assertEqual(
            [c.id for c in self.db.list_conversations(self.user.id)], [conversation.id]
        )
        self.assertEqual(self.db.list_conversations(self.other.id), [])


class InMemoryDbClientTests(DbClientContract, unittest.TestCase):
    def make_db(self):
        return InMemoryDbClient()

    def test_reset_clears_everything(self):
        self.db.create_goal(self.user.id, {"title": "Goal"})
        self.db.reset()
        self.assertIsNone(self.db.get_user(self.user.id))
        self.assertEqual(self.db.list_goals(self.user.id), ([], 0))


class SqlDbClientTests(DbClientContract, unittest.TestCase):
    """
    Uses SQLite via SQLAlchemy URL for fast/local testing of the SQL client logic.
    """

    def make_db(self):
        return SqlDbClient("sqlite+pysqlite:///:memory:")

    def test_requires_url(self):
        with self.assertRaises(ValueError):
            SqlDbClient("")


if __name__ == "__main__":
    unittest.main()
