from datetime import datetime
from typing import List, Literal, Optional, TypedDict

from bson import ObjectId


MessageType = Literal["text", "attachment"]


class MessageDocument(TypedDict, total=False):
    _id: str
    conversation_id: ObjectId
    sender_id: str
    content: str
    type: MessageType
    file_url: Optional[str]
    # grows by $addToSet only; always contains sender_id
    read_by: List[str]
    created_at: datetime
