from datetime import datetime
from typing import List, TypedDict


class ConversationDocument(TypedDict, total=False):
    _id: str
    # exactly two distinct user ids, stored sorted
    participants: List[str]
    # "<low>:<high>", unique
    participant_key: str
    last_message_preview: str
    last_message_at: datetime
    created_at: datetime
