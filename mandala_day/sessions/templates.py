"""The six compiled-in session templates of the daily cycle.

Templates are immutable and never created or destroyed at runtime. Script
text and audio assets belong to the presentation layer and are not carried
here.
"""

from mandala_day.sessions.types import PracticeType, SessionTemplate

SESSION_DURATION_SEC = 600

DEFAULT_SESSIONS: tuple[SessionTemplate, ...] = (
    SessionTemplate(
        id="session1_waking_view",
        order=1,
        title="Waking the View",
        practice_type=PracticeType.SHAMATHA,
        default_time="07:00",
        duration_sec=SESSION_DURATION_SEC,
        short_prompt="Before the day forms, rest as awareness.",
        dedication="May clarity and kindness guide this day.",
        tags=("view", "shamatha", "morning"),
    ),
    SessionTemplate(
        id="session2_embodying_presence",
        order=2,
        title="Embodying Presence",
        practice_type=PracticeType.BODY_AWARENESS,
        default_time="10:00",
        duration_sec=SESSION_DURATION_SEC,
        short_prompt="Let breath and awareness descend into the body.",
        dedication="May this body be a vessel for awakening.",
        tags=("body", "breath", "grounding"),
    ),
    SessionTemplate(
        id="session3_compassion_activation",
        order=3,
        title="Compassion Activation",
        practice_type=PracticeType.COMPASSION,
        default_time="12:00",
        duration_sec=SESSION_DURATION_SEC,
        short_prompt="Open the heart without strain.",
        dedication="May all beings be free from suffering.",
        tags=("compassion", "chenrezig", "mantra", "heart"),
    ),
    SessionTemplate(
        id="session4_cutting_through",
        order=4,
        title="Cutting Through",
        practice_type=PracticeType.DIRECT_AWARENESS,
        default_time="15:00",
        duration_sec=SESSION_DURATION_SEC,
        short_prompt="Look directly at what knows.",
        dedication="May the nature of mind be recognized.",
        tags=("mahamudra", "awareness", "inquiry", "recognition"),
    ),
    SessionTemplate(
        id="session5_integration_motion",
        order=5,
        title="Integration in Motion",
        practice_type=PracticeType.MOVEMENT,
        default_time="18:00",
        duration_sec=SESSION_DURATION_SEC,
        short_prompt="Let awareness move the body.",
        dedication="May awareness infuse all activity.",
        tags=("walking", "movement", "integration", "embodiment"),
    ),
    SessionTemplate(
        id="session6_dissolution_rest",
        order=6,
        title="Dissolution & Rest",
        practice_type=PracticeType.DISSOLUTION,
        default_time="21:00",
        duration_sec=SESSION_DURATION_SEC,
        short_prompt="Let the day dissolve into space.",
        dedication="May rest carry awareness into dreams.",
        tags=("evening", "rest", "dissolution", "sleep"),
    ),
)

FULL_MANDALA_COUNT = len(DEFAULT_SESSIONS)

DEFAULT_SCHEDULE_TIMES: dict[str, str] = {template.id: template.default_time for template in DEFAULT_SESSIONS}

_BY_ID = {template.id: template for template in DEFAULT_SESSIONS}
_BY_ORDER = {template.order: template for template in DEFAULT_SESSIONS}


def get_template_by_id(template_id: str) -> SessionTemplate | None:
    return _BY_ID.get(template_id)


def get_template_by_order(order: int) -> SessionTemplate | None:
    return _BY_ORDER.get(order)
