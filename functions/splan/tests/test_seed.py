import unittest

from scripts.seed_demo_data import DEMO_TASKS, seed
from splan.db import InMemoryDbClient
from splan.security import verify_password


class SeedTests(unittest.TestCase):
    def setUp(self):
        self.db = InMemoryDbClient()

    def counts(self):
        return (
            len(self.db.users),
            len(self.db.goals),
            len(self.db.sprints),
            len(self.db.tasks),
        )

    def test_seed_creates_demo_data(self):
        self.assertTrue(seed(self.db, "test@example.com", "testuser", "password123"))
        self.assertEqual(self.counts(), (1, 1, 1, len(DEMO_TASKS)))

        user = self.db.get_user_by_email("test@example.com")
        self.assertTrue(verify_password(user.password_hash, "password123"))
        statuses = sorted(task.status for task in self.db.tasks.values())
        self.assertEqual(statuses, ["DONE", "DONE", "IN_PROGRESS", "TODO"])

    def test_seed_is_idempotent_by_email(self):
        self.assertTrue(seed(self.db, "test@example.com", "testuser", "password123"))
        before = self.counts()

        self.assertFalse(seed(self.db, "test@example.com", "testuser", "password123"))
        self.assertEqual(self.counts(), before)


if __name__ == "__main__":
    unittest.main()
