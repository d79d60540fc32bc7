# Import all models for Alembic to detect
from quizengine.models.quiz import Quiz, ContentEntityType
from quizengine.models.question import Question
from quizengine.models.option import Option
from quizengine.models.quiz_attempt import QuizAttempt
from quizengine.models.attempt_answer import AttemptAnswer
