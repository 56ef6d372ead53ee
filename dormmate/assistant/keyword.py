from __future__ import annotations

from dormmate.assistant.base import AssistantBackend, ChatMessage, last_user_message


# Checked in order; the first keyword found in the question wins.
TOPIC_RESPONSES: tuple[tuple[str, str], ...] = (
    (
        'room',
        'You can see your room number, floor and roommates on the My Room page of your dashboard. '
        'If you need to request a room change, you can submit a request through your dashboard.',
    ),
    (
        'mess',
        "Today's menu is listed on the Mess Menu page, grouped into breakfast, lunch, dinner and snacks. "
        'Meals must be booked before the cut-off time for each meal.',
    ),
    (
        'wifi',
        "The WiFi network name is 'DormNet' and the password is posted on the notice board in your block's "
        "common area. If you're having connection issues, you can raise a technical support ticket.",
    ),
    (
        'laundry',
        'Laundry services are available in the basement of each block. The operating hours are from 7 AM to '
        '10 PM. You can use your student ID card to operate the machines.',
    ),
    (
        'complaint',
        "You can submit a complaint through your dashboard by clicking on the 'Report an Issue' button. Your "
        'complaint will be reviewed by the admin and addressed accordingly.',
    ),
    (
        'visitors',
        'Visitors are allowed from 9 AM to 8 PM. They need to register at the security desk with a valid ID. '
        'Overnight guests need special permission from the dorm administration.',
    ),
)

DEFAULT_RESPONSE = (
    "I don't have specific information about that yet. "
    'Would you like me to connect you with someone who can help?'
)


def match_topic(question: str) -> str | None:
    lowered = (question or '').lower()
    for keyword, _ in TOPIC_RESPONSES:
        if keyword in lowered:
            return keyword
    return None


class KeywordAssistant(AssistantBackend):
    """Offline responder answering from a fixed topic table."""

    name = 'keyword'

    async def reply(self, messages: list[ChatMessage], context: str | None = None) -> str:
        topic = match_topic(last_user_message(messages))
        if topic is None:
            return DEFAULT_RESPONSE
        return dict(TOPIC_RESPONSES)[topic]
