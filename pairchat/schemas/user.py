from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Credentials(BaseModel):

    model_config = ConfigDict(extra="ignore")

    username: str = Field(default="", max_length=64)
    password: str = ""


class TokenPayload(BaseModel):

    model_config = ConfigDict(extra="ignore")

    token: Optional[str] = None
