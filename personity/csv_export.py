"""CSV export of stored conversation analyses."""

from personity.models import ResponseAnalysis, SurveyMode


def escape_csv_field(value: str) -> str:
    if "," in value or '"' in value or "\n" in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def csv_headers(mode: SurveyMode) -> list[str]:
    sentiment_label = "Sentiment" if mode == SurveyMode.FEEDBACK_SATISFACTION else "Response Tone"
    return [
        "Timestamp",
        "Summary",
        "Key Themes",
        sentiment_label,
        "Quality Score",
        "Pain Points",
        "Opportunities",
        "Top Quotes",
    ]


def _row(analysis: ResponseAnalysis) -> str:
    timestamp = analysis.timestamp.isoformat() if analysis.timestamp else ""
    quotes = " | ".join(f'"{q.quote}" ({q.context})' for q in analysis.top_quotes)
    fields = [
        escape_csv_field(timestamp),
        escape_csv_field(analysis.summary),
        escape_csv_field("; ".join(analysis.key_themes)),
        escape_csv_field(analysis.sentiment),
        str(analysis.quality_score),
        escape_csv_field("; ".join(analysis.pain_points)),
        escape_csv_field("; ".join(analysis.opportunities)),
        escape_csv_field(quotes),
    ]
    return ",".join(fields)


def generate_responses_csv(
    analyses: list[ResponseAnalysis],
    mode: SurveyMode = SurveyMode.EXPLORATORY_GENERAL,
) -> str:
    """Header row plus one row per analysis, joined with newlines (no trailing newline)."""
    rows = [",".join(csv_headers(mode))]
    rows.extend(_row(a) for a in analyses)
    return "\n".join(rows)
