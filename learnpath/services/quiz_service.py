import logging
import random
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..engine.attempts import can_attempt, present
from ..engine.grading import grade
from ..engine.types import AccessDecision, AttemptDecision, AttemptResult, Learner
from .locks import KeyedLocks, progress_locks
from .progress_service import Outcome, ProgressAggregator
from .store import SqlStore, attempt_record, write_scope

logger = logging.getLogger(__name__)


@dataclass
class Submission:
    access: AccessDecision
    decision: Optional[AttemptDecision] = None
    attempt_id: Optional[int] = None
    result: Optional[AttemptResult] = None
    progress: Optional[Outcome] = None
    show_feedback: bool = True
    time_exceeded: bool = False

    @property
    def accepted(self) -> bool:
        return self.result is not None

    def to_dict(self) -> dict:
        if not self.access.accessible:
            return {"access": self.access.to_dict()}
        if not self.accepted:
            # not an error: the caller should send the student to the results view
            return {"redirect": "results", "attempt": self.decision.to_dict()}
        data = {
            "attemptId": self.attempt_id,
            "result": self.result.to_dict(include_questions=self.show_feedback),
            "timeExceeded": self.time_exceeded,
        }
        if self.progress is not None:
            data.update(self.progress.to_dict())
        return data


class QuizService:

    def __init__(self, store: Optional[SqlStore] = None,
                 aggregator: Optional[ProgressAggregator] = None,
                 locks: Optional[KeyedLocks] = None, rng: Optional[random.Random] = None):
        self.store = store or SqlStore()
        self.aggregator = aggregator or ProgressAggregator(self.store)
        self.locks = locks or progress_locks
        self.rng = rng

    def view(self, learner: Learner, quiz_id, practice: bool = False) -> dict:
        quiz, questions = self.store.load_quiz_with_questions(quiz_id)
        access = self.aggregator.topic_access(learner, quiz.topic_id)
        if not access.accessible:
            return {"access": access.to_dict()}

        prior = self.store.load_prior_attempts(learner.id, quiz.id)
        decision = can_attempt(learner, quiz, prior, practice=practice)
        data = {
            "quiz": {
                "id": quiz.id,
                "title": quiz.title,
                "topicId": quiz.topic_id,
                "passingScore": quiz.passing_score,
                "maxAttempts": quiz.max_attempts,
                "timeLimit": quiz.time_limit,
                "showFeedback": quiz.show_feedback,
            },
            "access": access.to_dict(),
            "attempt": decision.to_dict(),
            "metadata": {
                "totalQuestions": len(questions),
                "totalPoints": sum(q.points for q in questions),
                "attemptNumber": decision.attempts_used + 1,
            },
        }
        if decision.allowed:
            data["quiz"]["questions"] = present(quiz, questions, self.rng)
        else:
            data["redirect"] = "results"
        return data

    def submit(self, learner: Learner, quiz_id, answers: Optional[Mapping[str, Any]],
               time_spent: Optional[int] = None, practice: bool = False) -> Submission:
        quiz, questions = self.store.load_quiz_with_questions(quiz_id)
        topic = self.store.load_topic(quiz.topic_id)
        course_id = str(topic.module.course_id)

        with self.locks.hold(("quiz", learner.id, quiz.id)):
            access = self.aggregator.topic_access(learner, quiz.topic_id)
            if not access.accessible:
                return Submission(access)

            prior = self.store.load_prior_attempts(learner.id, quiz.id)
            decision = can_attempt(learner, quiz, prior, practice=practice)
            if not decision.allowed:
                logger.info("attempt refused learner=%s quiz=%s reason=%s",
                            learner.id, quiz.id, decision.reason.value)
                return Submission(access, decision)

            result = grade(quiz, questions, answers)
            time_exceeded = bool(quiz.time_limit and time_spent is not None
                                 and time_spent > quiz.time_limit * 60)

            with self.locks.hold(("course", learner.id, course_id)):
                with write_scope():
                    row = self.store.save_attempt(learner.id, quiz, result, time_spent=time_spent,
                                                  is_practice=practice, time_exceeded=time_exceeded)
                    attempt_id = row.id
                    progress = self.aggregator.apply_quiz_graded(learner, quiz, attempt_record(row))

        logger.info("graded quiz=%s learner=%s score=%s passed=%s practice=%s",
                    quiz.id, learner.id, result.score, result.passed, practice)
        return Submission(access, decision, attempt_id=attempt_id, result=result,
                          progress=progress, show_feedback=quiz.show_feedback,
                          time_exceeded=time_exceeded)

    def results(self, learner: Learner, quiz_id) -> dict:
        quiz, _ = self.store.load_quiz_with_questions(quiz_id)
        prior = self.store.load_prior_attempts(learner.id, quiz.id)
        graded = [a for a in prior if not a.is_practice]
        decision = can_attempt(learner, quiz, prior)
        return {
            "quizId": quiz.id,
            "passingScore": quiz.passing_score,
            "bestScore": max((a.score for a in graded), default=None),
            "attempt": decision.to_dict(),
            "attempts": [
                {
                    "id": a.id,
                    "score": a.score,
                    "passed": a.passed,
                    "isPractice": a.is_practice,
                    "completedAt": a.completed_at.isoformat() if a.completed_at else None,
                }
                for a in prior
            ],
        }
