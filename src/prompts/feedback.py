"""Regeneration feedback handed back to the meal generator.

Renders the flaws a retry must fix as a Markdown section the generator can
append to its prompt. The generator owns the rest of the prompt text.
"""

from src.models.models import RegenerationAttempt, RegenerationTarget


_SCOPE = {
    RegenerationTarget.WHOLE_MEAL: "Regenerate the whole meal.",
    RegenerationTarget.SINGLE_DAY: "Regenerate ONLY day {day}. Keep the other six days unchanged and do not reuse their proteins or cuisines on the neighbouring days.",
    RegenerationTarget.WHOLE_PLAN: "Regenerate the whole 7-day plan. Every day must use a different protein and cuisine from the day before.",
}


def format_regeneration_feedback(attempt: RegenerationAttempt) -> str:
    """Build the retry instructions for one regeneration attempt.

    Args:
        attempt: Retry request produced by the regeneration controller.

    Returns:
        str: Markdown text listing each failed check with expected and actual values.
    """
    day = attempt.day_index + 1 if attempt.day_index is not None else None
    lines = [
        f"## Previous attempt rejected (retry {attempt.attempt_number}/{attempt.max_attempts})",
        "",
        _SCOPE[attempt.target].format(day=day),
        "",
        "Fix every issue below:",
    ]
    if attempt.feedback:
        lines.extend(
            f"- **{failure.check_name}**: expected {failure.expected}, got {failure.actual}"
            for failure in attempt.feedback
        )
    else:
        lines.append("- The previous candidate did not pass validation.")
    lines.append("")
    lines.append("Make sure the nutrition summary equals the sum of the listed ingredients.")
    return "\n".join(lines)
