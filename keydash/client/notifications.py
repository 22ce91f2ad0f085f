from dataclasses import dataclass
from typing import Literal

NotificationType = Literal["success", "error"]


@dataclass(frozen=True)
class Notification:
    message: str
    type: NotificationType

    @classmethod
    def success(cls, message: str) -> "Notification":
        return cls(message=message, type="success")

    @classmethod
    def error(cls, message: str) -> "Notification":
        return cls(message=message, type="error")
