from datetime import datetime, timezone
import json
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence

from appwrite.client import Client
from appwrite.exception import AppwriteException
from appwrite.id import ID
from appwrite.query import Query
from appwrite.services.databases import Databases

from dctrainer.config.settings import settings
from dctrainer.core.analytics import (
    filter_attempts,
    learner_dashboard,
    performance_summary,
    recent_submissions,
)
from dctrainer.core.grades import minutes_spent, score_submission
from dctrainer.core.models import (
    ChallengeDefinition,
    LearnerDashboard,
    PerformanceSummary,
    ScoredAttempt,
    Subject,
    SubmissionRow,
)

logger = logging.getLogger(__name__)

INTERN_ROLE = "intern"


class AppwriteServiceError(Exception):
    pass


class AppwriteService:
    """
    Boundary between the Appwrite document store and the grading core.
    Raw documents are converted to typed records here, including the legacy
    field names older documents still carry (studentUid, quizId).
    """

    def __init__(
        self,
        endpoint: str,
        project_id: str,
        api_key: str,
        database_id: str,
        results_collection_id: str,
        challenges_collection_id: str,
        users_collection_id: str,
        page_size: int = 100,
        categories: Sequence[str] = (),
        db: Optional[Databases] = None,
    ) -> None:
        if not endpoint:
            raise AppwriteServiceError("Missing APPWRITE_ENDPOINT in environment")
        if not project_id:
            raise AppwriteServiceError("Missing APPWRITE_PROJECT_ID in environment")
        if not api_key:
            raise AppwriteServiceError("Missing APPWRITE_API_KEY in environment")
        if not database_id:
            raise AppwriteServiceError("Missing APPWRITE_DATABASE_ID in environment")

        self.database_id = database_id
        self.results_collection_id = results_collection_id
        self.challenges_collection_id = challenges_collection_id
        self.users_collection_id = users_collection_id
        self.page_size = max(1, page_size)
        self.categories = tuple(categories) or settings.dashboard_categories

        if db is None:
            client = Client()
            client.set_endpoint(endpoint.rstrip("/"))
            client.set_project(project_id)
            client.set_key(api_key)
            db = Databases(client)

        self.db = db

    @classmethod
    def from_settings(cls) -> "AppwriteService":
        return cls(
            endpoint=settings.appwrite_endpoint,
            project_id=settings.appwrite_project_id,
            api_key=settings.appwrite_api_key,
            database_id=settings.appwrite_database_id,
            results_collection_id=settings.appwrite_results_collection_id,
            challenges_collection_id=settings.appwrite_challenges_collection_id,
            users_collection_id=settings.appwrite_users_collection_id,
            page_size=settings.appwrite_page_size,
            categories=settings.dashboard_categories,
        )

    @staticmethod
    def _to_iso(value: datetime) -> str:
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc).isoformat()

    @staticmethod
    def _from_iso(value: Optional[str]) -> Optional[datetime]:
        if not value or not isinstance(value, str):
            return None
        try:
            parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        except ValueError:
            return None
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed

    @staticmethod
    def _decode_map(value: Any) -> Optional[Dict[str, str]]:
        # Appwrite has no map attribute type; answer maps are stored as JSON strings.
        if isinstance(value, str) and value:
            try:
                value = json.loads(value)
            except ValueError:
                return None
        if isinstance(value, dict):
            return {str(key): str(option) for key, option in value.items()}
        return None

    @staticmethod
    def _optional_int(value: Any) -> Optional[int]:
        if value is None or value == "":
            return None
        try:
            return max(0, int(value))
        except (TypeError, ValueError):
            return None

    def _list_documents(self, collection_id: str, queries: List[str]) -> List[Dict]:
        documents: List[Dict] = []
        cursor: Optional[str] = None
        while True:
            page_queries = [*queries, Query.limit(self.page_size)]
            if cursor:
                page_queries.append(Query.cursor_after(cursor))
            try:
                result = self.db.list_documents(self.database_id, collection_id, queries=page_queries)
            except AppwriteException as exc:
                raise AppwriteServiceError(str(exc)) from exc

            page = list(result.get("documents", []))
            documents.extend(page)
            if len(page) < self.page_size:
                break
            cursor = page[-1]["$id"]

        logger.debug("Fetched %d documents from %s", len(documents), collection_id)
        return documents

    def _create_document(self, collection_id: str, data: Dict, document_id: Optional[str] = None) -> Dict:
        try:
            return self.db.create_document(
                self.database_id,
                collection_id,
                document_id or ID.unique(),
                data,
            )
        except AppwriteException as exc:
            raise AppwriteServiceError(str(exc)) from exc

    @classmethod
    def attempt_from_document(cls, doc: Mapping[str, Any]) -> ScoredAttempt:
        raw_score = doc.get("score")
        try:
            score = int(round(float(raw_score)))
        except (TypeError, ValueError):
            logger.warning("Result %s has unreadable score %r; using 0", doc.get("$id"), raw_score)
            score = 0

        completed_at = cls._from_iso(doc.get("completedAt")) or cls._from_iso(doc.get("$createdAt"))

        return ScoredAttempt(
            attempt_id=str(doc.get("$id") or ""),
            challenge_id=str(doc.get("challengeId") or doc.get("quizId") or ""),
            subject_id=str(doc.get("internUid") or doc.get("studentUid") or ""),
            score_percent=score,
            time_spent_minutes=cls._optional_int(doc.get("timeSpent")),
            completed_at=completed_at,
            category=doc.get("category") or None,
            answers=cls._decode_map(doc.get("answers")),
            correct_answers=cls._decode_map(doc.get("correctAnswers")),
        )

    @staticmethod
    def challenge_from_document(doc: Mapping[str, Any]) -> ChallengeDefinition:
        return ChallengeDefinition(
            challenge_id=str(doc.get("$id") or ""),
            category=doc.get("category") or None,
            difficulty=str(doc.get("difficulty") or ""),
            title=str(doc.get("title") or ""),
        )

    @staticmethod
    def subject_from_document(doc: Mapping[str, Any]) -> Subject:
        uid = str(doc.get("uid") or doc.get("$id") or "")
        return Subject(subject_id=uid, display_name=str(doc.get("name") or doc.get("email") or uid))

    @staticmethod
    def _newest_first(attempts: List[ScoredAttempt]) -> List[ScoredAttempt]:
        floor = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(attempts, key=lambda a: a.completed_at or floor, reverse=True)

    def list_challenges(self) -> Dict[str, ChallengeDefinition]:
        docs = self._list_documents(self.challenges_collection_id, [])
        challenges = [self.challenge_from_document(doc) for doc in docs]
        return {challenge.challenge_id: challenge for challenge in challenges}

    def list_interns(self) -> List[Subject]:
        docs = self._list_documents(
            self.users_collection_id,
            [
                Query.equal("role", [INTERN_ROLE]),
            ],
        )
        return [self.subject_from_document(doc) for doc in docs]

    def list_attempts(self) -> List[ScoredAttempt]:
        docs = self._list_documents(self.results_collection_id, [])
        return self._newest_first([self.attempt_from_document(doc) for doc in docs])

    def list_attempts_for(self, uid: str) -> List[ScoredAttempt]:
        seen: Dict[str, Dict] = {}
        for field_name in ("internUid", "studentUid"):
            for doc in self._list_documents(self.results_collection_id, [Query.equal(field_name, [uid])]):
                seen.setdefault(doc["$id"], doc)
        return self._newest_first([self.attempt_from_document(doc) for doc in seen.values()])

    def record_attempt(
        self,
        uid: str,
        challenge: ChallengeDefinition,
        correct_answers: Dict[str, str],
        answers: Dict[str, str],
        started_at: datetime,
        finished_at: Optional[datetime] = None,
    ) -> ScoredAttempt:
        if not correct_answers:
            raise AppwriteServiceError("Challenge has no questions to grade.")

        finished_at = finished_at or datetime.now(timezone.utc)
        score = score_submission(answers, correct_answers)
        time_spent = minutes_spent(started_at, finished_at)
        category = challenge.category or "General"

        doc = self._create_document(
            self.results_collection_id,
            {
                "challengeId": challenge.challenge_id,
                "quizId": challenge.challenge_id,
                "internUid": uid,
                "studentUid": uid,
                "score": score,
                "timeSpent": time_spent,
                "category": category,
                "answers": json.dumps(answers),
                "correctAnswers": json.dumps(correct_answers),
                "completedAt": self._to_iso(finished_at),
            },
        )
        logger.debug("Recorded result %s for %s on %s: %d%%", doc.get("$id"), uid, challenge.challenge_id, score)

        return ScoredAttempt(
            attempt_id=str(doc.get("$id") or ""),
            challenge_id=challenge.challenge_id,
            subject_id=uid,
            score_percent=score,
            time_spent_minutes=time_spent,
            completed_at=finished_at,
            category=category,
            answers=dict(answers),
            correct_answers=dict(correct_answers),
        )

    def intern_dashboard(self, uid: str) -> LearnerDashboard:
        attempts = self.list_attempts_for(uid)
        return learner_dashboard(attempts, self.list_challenges(), self.categories)

    def supervisor_summary(
        self,
        category: Optional[str] = None,
        within_days: Optional[int] = None,
    ) -> PerformanceSummary:
        challenges = self.list_challenges()
        attempts = filter_attempts(
            self.list_attempts(),
            challenges,
            category=category,
            within_days=within_days,
        )
        return performance_summary(attempts, challenges, self.list_interns(), self.categories)

    def supervisor_recent_submissions(self, limit: int = 10) -> List[SubmissionRow]:
        return recent_submissions(self.list_attempts(), self.list_challenges(), self.list_interns(), limit)
