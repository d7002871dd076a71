from datetime import datetime
from typing import Optional, TypedDict


class UserDocument(TypedDict, total=False):

    _id: str
    username: str
    hashed_password: str
    is_online: bool
    # id of the live connection bound by the most recent authentication
    socket_id: Optional[str]
    created_at: datetime
