"""Unit tests for regeneration feedback text."""

from src.models.models import CheckFailure, RegenerationAttempt, RegenerationTarget, ValidationResult
from src.prompts.feedback import format_regeneration_feedback


FAILURE = CheckFailure(check_name="protein band", expected="130-160", actual="120")
RESULT = ValidationResult.build([FAILURE])


class TestRegenerationFeedback:
    def test_whole_meal_feedback_lists_failures(self):
        attempt = RegenerationAttempt(
            target=RegenerationTarget.WHOLE_MEAL,
            attempt_number=2,
            max_attempts=3,
            previous_result=RESULT,
            feedback=[FAILURE],
        )

        text = format_regeneration_feedback(attempt)

        assert "retry 2/3" in text
        assert "Regenerate the whole meal." in text
        assert "**protein band**: expected 130-160, got 120" in text

    def test_single_day_feedback_names_day(self):
        attempt = RegenerationAttempt(
            target=RegenerationTarget.SINGLE_DAY,
            attempt_number=1,
            max_attempts=2,
            previous_result=RESULT,
            day_index=3,
            feedback=[FAILURE],
        )

        assert "Regenerate ONLY day 4." in format_regeneration_feedback(attempt)

    def test_feedback_without_failures(self):
        attempt = RegenerationAttempt(
            target=RegenerationTarget.WHOLE_PLAN,
            attempt_number=2,
            max_attempts=3,
            previous_result=RESULT,
        )

        assert "did not pass validation" in format_regeneration_feedback(attempt)
