"""Tests for question storage and answer history."""

from src.quiz.models import Choice, GeneratedQuestion, QuestionType
from src.quiz.repository import InMemoryQuestionRepository


def make_question(
    topic: str = "bucles",
    language: str = "Python",
    model: str = "OpenAI_GPT_4o_Mini",
    subject: str = "PRG",
) -> GeneratedQuestion:
    return GeneratedQuestion(
        text=f"Pregunta sobre {topic}",
        question_type=QuestionType.MULTIPLE_CHOICE,
        choices=(Choice("a", False), Choice("b", True), Choice("c", False)),
        difficulty="Medio",
        topic=topic,
        subject=subject,
        language=language,
        source_model=model,
        generation_prompt="prompt",
    )


class TestSaveAll:
    def test_saves_batch(self) -> None:
        repo = InMemoryQuestionRepository()
        questions = [make_question(), make_question()]
        assert repo.save_all(questions).unwrap() == 2
        assert len(repo) == 2
        assert repo.get(questions[0].question_id) == questions[0]

    def test_batch_rejected_as_a_whole(self) -> None:
        repo = InMemoryQuestionRepository()
        stored = make_question()
        repo.save_all([stored])
        result = repo.save_all([make_question(), stored])
        assert result.is_err()
        assert len(repo) == 1

    def test_duplicate_ids_in_batch(self) -> None:
        repo = InMemoryQuestionRepository()
        question = make_question()
        assert repo.save_all([question, question]).is_err()
        assert len(repo) == 0


class TestAnswers:
    def test_record_answer(self) -> None:
        repo = InMemoryQuestionRepository()
        question = make_question()
        repo.save_all([question])
        answered = repo.record_answer(question.question_id, "ana@example.com", 1).unwrap()
        assert answered.correct
        assert answered.choices == ("a", "b", "c")
        assert answered.topic == "bucles"

    def test_unknown_question(self) -> None:
        assert InMemoryQuestionRepository().record_answer("nope", "ana@example.com", 0).is_err()

    def test_answer_out_of_range(self) -> None:
        repo = InMemoryQuestionRepository()
        question = make_question()
        repo.save_all([question])
        assert repo.record_answer(question.question_id, "ana@example.com", 3).is_err()

    def test_history_topic_first_and_recent_first(self) -> None:
        repo = InMemoryQuestionRepository()
        loops = [make_question("bucles") for _ in range(2)]
        variables = make_question("variables")
        other_language = make_question("bucles", language="Java")
        repo.save_all([*loops, variables, other_language])
        repo.record_answer(loops[0].question_id, "ana@example.com", 0)
        repo.record_answer(variables.question_id, "ana@example.com", 1)
        repo.record_answer(loops[1].question_id, "ana@example.com", 1)
        repo.record_answer(other_language.question_id, "ana@example.com", 1)
        repo.record_answer(loops[0].question_id, "otro@example.com", 1)

        history = repo.history("ana@example.com", "Python", topic="bucles")
        assert [a.question_id for a in history] == [
            loops[1].question_id,
            loops[0].question_id,
            variables.question_id,
        ]
        assert len(repo.history("ana@example.com", "Python", limit=1)) == 1

    def test_count_reports(self) -> None:
        repo = InMemoryQuestionRepository()
        mini = make_question()
        full = make_question(model="OpenAI_GPT_4o")
        repo.save_all([mini, full])
        repo.record_answer(mini.question_id, "a@example.com", 0, reported=True)
        repo.record_answer(mini.question_id, "b@example.com", 1, reported=True)
        repo.record_answer(full.question_id, "a@example.com", 1)
        assert repo.count_reports("PRG", "OpenAI_GPT_4o_Mini") == 2
        assert repo.count_reports("PRG", "OpenAI_GPT_4o") == 0
        assert repo.count_reports("MAT", "OpenAI_GPT_4o_Mini") == 0
