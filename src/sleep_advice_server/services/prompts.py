"""Prompt construction for sleep advice."""

from sleep_advice_server.schemas.sleep import WeeklyStats

ADVICE_PROMPT_TEMPLATE = """\
Based on the sleep data below, give professional and practical advice about sleep health.

Sleep statistics:
- Daily average sleep: {daily_average:.2f} hours
- Sleep records for the last 7 days:
{series}

Consider the following in your advice:
1. Consistency of sleep duration
2. Comparison with the recommended sleep duration (7-9 hours for adults)
3. Trends and changes in the sleep pattern
4. Concrete, actionable ways to improve

Write the advice in a friendly yet professional tone.
"""


def build_advice_prompt(stats: WeeklyStats) -> str:
    """Render the advice prompt for a week of sleep data.

    Every (date, duration) pair is listed in series order.
    """
    series = "\n".join(
        f"  Day {index} ({entry.day.isoformat()}): {entry.duration_hours} hours"
        for index, entry in enumerate(stats.series, start=1)
    )
    return ADVICE_PROMPT_TEMPLATE.format(
        daily_average=stats.daily_average,
        series=series,
    )
