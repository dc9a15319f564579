from dataclasses import dataclass


@dataclass(slots=True)
class Principal:
    subject: str
    email: str | None = None
    role: str = "user"
