import json
import unittest
from datetime import datetime, timezone
from unittest.mock import MagicMock

from appwrite.exception import AppwriteException

from dctrainer.core.models import ChallengeDefinition
from dctrainer.services.appwrite_service import AppwriteService, AppwriteServiceError

RESULTS = [
    {
        "$id": "r-old",
        "challengeId": "wifi-1",
        "internUid": "u1",
        "score": 90,
        "timeSpent": 12,
        "completedAt": "2024-09-01T10:00:00.000+00:00",
        "answers": json.dumps({"q1": "a", "q2": "b"}),
        "correctAnswers": json.dumps({"q1": "a", "q2": "c"}),
    },
    {
        "$id": "r-legacy",
        "quizId": "lan-1",
        "studentUid": "u1",
        "score": "40",
        "completedAt": "2024-09-20T10:00:00Z",
    },
    {
        "$id": "r-other",
        "challengeId": "lan-1",
        "internUid": "u2",
        "studentUid": "u2",
        "score": 75,
        "timeSpent": 4,
        "category": "LAN",
        "completedAt": "2024-09-10T10:00:00Z",
    },
]
CHALLENGES = [
    {"$id": "wifi-1", "title": "Access points", "category": "WIFI", "difficulty": "Beginner"},
    {"$id": "lan-1", "title": "Switching", "category": "LAN", "difficulty": "Advanced"},
]
USERS = [
    {"$id": "u1", "uid": "u1", "name": "Amara", "role": "intern"},
    {"$id": "u2", "uid": "u2", "email": "ben@example.com", "role": "intern"},
]


class FakeDatabases:
    def __init__(self):
        self.collections = {"results": RESULTS, "quizzes": CHALLENGES, "users": USERS}
        self.calls = []
        self.created = []

    def list_documents(self, database_id, collection_id, queries=None):
        queries = queries or []
        self.calls.append((collection_id, queries))
        docs = self.collections[collection_id]
        joined = " ".join(queries)
        if collection_id == "results":
            if "internUid" in joined:
                docs = [d for d in docs if d.get("internUid") == "u1"]
            elif "studentUid" in joined:
                docs = [d for d in docs if d.get("studentUid") == "u1"]
        return {"total": len(docs), "documents": docs}

    def create_document(self, database_id, collection_id, document_id, data):
        self.created.append((collection_id, data))
        return {"$id": "r-new", **data}


def _service(db, **kwargs):
    return AppwriteService(
        endpoint="https://cloud.example.com/v1",
        project_id="project",
        api_key="key",
        database_id="db",
        results_collection_id="results",
        challenges_collection_id="quizzes",
        users_collection_id="users",
        categories=("WIFI", "LAN"),
        db=db,
        **kwargs,
    )


class ConfigurationTests(unittest.TestCase):
    def test_missing_settings_raise(self):
        with self.assertRaises(AppwriteServiceError) as ctx:
            AppwriteService("", "p", "k", "db", "results", "quizzes", "users", db=MagicMock())
        self.assertIn("APPWRITE_ENDPOINT", str(ctx.exception))
        with self.assertRaises(AppwriteServiceError):
            AppwriteService("https://x", "p", "k", "", "results", "quizzes", "users", db=MagicMock())

    def test_categories_accept_any_sequence(self):
        service = AppwriteService("https://x", "p", "k", "db", "results", "quizzes", "users", categories=["LAN", "CCTV"], db=MagicMock())
        self.assertEqual(service.categories, ("LAN", "CCTV"))

    def test_sdk_errors_are_wrapped(self):
        db = MagicMock()
        db.list_documents.side_effect = AppwriteException("boom")
        with self.assertRaises(AppwriteServiceError):
            _service(db).list_challenges()


class DocumentMappingTests(unittest.TestCase):
    def test_legacy_fields_are_shimmed(self):
        attempt = AppwriteService.attempt_from_document(RESULTS[1])
        self.assertEqual(attempt.subject_id, "u1")
        self.assertEqual(attempt.challenge_id, "lan-1")
        self.assertEqual(attempt.score_percent, 40)
        self.assertIsNone(attempt.time_spent_minutes)
        self.assertIsNone(attempt.category)
        self.assertEqual(attempt.completed_at, datetime(2024, 9, 20, 10, 0, tzinfo=timezone.utc))

    def test_answer_maps_are_decoded(self):
        attempt = AppwriteService.attempt_from_document(RESULTS[0])
        self.assertEqual(attempt.answers, {"q1": "a", "q2": "b"})
        self.assertEqual(attempt.correct_answers, {"q1": "a", "q2": "c"})

    def test_bad_values_degrade(self):
        attempt = AppwriteService.attempt_from_document(
            {"$id": "r", "score": "n/a", "timeSpent": "x", "completedAt": "yesterday", "answers": "{"}
        )
        self.assertEqual(attempt.score_percent, 0)
        self.assertIsNone(attempt.time_spent_minutes)
        self.assertIsNone(attempt.completed_at)
        self.assertIsNone(attempt.answers)

    def test_subject_name_falls_back_to_email(self):
        self.assertEqual(AppwriteService.subject_from_document(USERS[1]).display_name, "ben@example.com")


class QueryTests(unittest.TestCase):
    def test_attempts_for_merges_both_uid_fields_newest_first(self):
        attempts = _service(FakeDatabases()).list_attempts_for("u1")
        self.assertEqual([a.attempt_id for a in attempts], ["r-legacy", "r-old"])

    def test_pages_until_short_page(self):
        db = MagicMock()
        db.list_documents.side_effect = [
            {"documents": [{"$id": "a"}, {"$id": "b"}]},
            {"documents": [{"$id": "c"}]},
        ]
        challenges = _service(db, page_size=2).list_challenges()
        self.assertEqual(list(challenges), ["a", "b", "c"])
        self.assertEqual(db.list_documents.call_count, 2)
        second_queries = db.list_documents.call_args_list[1].kwargs["queries"]
        self.assertTrue(any("b" in query and "cursor" in query.lower() for query in second_queries))

    def test_intern_dashboard(self):
        dashboard = _service(FakeDatabases()).intern_dashboard("u1")
        self.assertEqual(dashboard.gpa, 2.0)
        self.assertEqual([stat.attempt_count for stat in dashboard.category_stats], [1, 1])
        self.assertEqual([a.attempt_id for a in dashboard.recent_attempts], ["r-legacy", "r-old"])

    def test_supervisor_summary(self):
        summary = _service(FakeDatabases()).supervisor_summary(category="LAN")
        self.assertEqual(summary.total_attempts, 2)
        self.assertEqual(summary.average_score_percent, 58)
        self.assertEqual([row.display_name for row in summary.top_performers], ["ben@example.com", "Amara"])

    def test_recent_submissions(self):
        rows = _service(FakeDatabases()).supervisor_recent_submissions(limit=2)
        self.assertEqual([row.attempt.attempt_id for row in rows], ["r-legacy", "r-other"])
        self.assertEqual(rows[0].subject_name, "Amara")


class RecordAttemptTests(unittest.TestCase):
    def test_records_scored_attempt_with_legacy_fields(self):
        db = FakeDatabases()
        challenge = ChallengeDefinition("wifi-1", "WIFI", "Beginner", "Access points")
        started = datetime(2024, 9, 1, 10, 0, tzinfo=timezone.utc)
        finished = datetime(2024, 9, 1, 10, 4, 30, tzinfo=timezone.utc)

        attempt = _service(db).record_attempt(
            "u1",
            challenge,
            correct_answers={"q1": "a", "q2": "b"},
            answers={"q1": "a", "q2": "c"},
            started_at=started,
            finished_at=finished,
        )

        self.assertEqual(attempt.attempt_id, "r-new")
        self.assertEqual(attempt.score_percent, 50)
        self.assertEqual(attempt.time_spent_minutes, 5)
        collection, data = db.created[0]
        self.assertEqual(collection, "results")
        self.assertEqual((data["internUid"], data["studentUid"]), ("u1", "u1"))
        self.assertEqual((data["challengeId"], data["quizId"]), ("wifi-1", "wifi-1"))
        self.assertEqual(json.loads(data["correctAnswers"]), {"q1": "a", "q2": "b"})
        self.assertEqual(data["completedAt"], "2024-09-01T10:04:30+00:00")

    def test_naive_start_time_without_finish(self):
        db = FakeDatabases()
        challenge = ChallengeDefinition("wifi-1", "WIFI")
        attempt = _service(db).record_attempt("u1", challenge, {"q1": "a"}, {"q1": "a"}, datetime(2024, 1, 1))
        self.assertEqual(attempt.score_percent, 100)
        self.assertGreater(attempt.time_spent_minutes, 0)
        self.assertTrue(db.created[0][1]["completedAt"].endswith("+00:00"))

    def test_challenge_without_questions_is_rejected(self):
        challenge = ChallengeDefinition("wifi-1", "WIFI")
        with self.assertRaises(AppwriteServiceError):
            _service(FakeDatabases()).record_attempt("u1", challenge, {}, {}, datetime.now(timezone.utc))


if __name__ == "__main__":
    unittest.main()
