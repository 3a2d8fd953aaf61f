"""Quiz core module - configuration, domain models and the generation pipeline.

The pipeline lives in ``src.quiz.pipeline``; it is not imported here so
that the retrieval and assignment packages can depend on the core
modules without a cycle.
"""

from src.quiz.config import MockConfig, QuizConfig
from src.quiz.errors import Err, Ok, QuizError, Result

__all__ = ["QuizConfig", "MockConfig", "QuizError", "Result", "Ok", "Err"]
