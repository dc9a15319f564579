from pydantic import BaseModel


class CurrentUserOut(BaseModel):
    id: str
    email: str | None = None
    role: str
