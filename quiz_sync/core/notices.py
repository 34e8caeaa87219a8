"""User-facing notices returned alongside action outcomes.

Each variant carries exactly the fields it needs, so a caller can never
build, say, a confirmation without its button labels.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Union


@dataclass(frozen=True, slots=True)
class InfoNotice:
    title: str
    message: str

    kind = "info"


@dataclass(frozen=True, slots=True)
class ConfirmNotice:
    title: str
    message: str
    confirm_label: str = "Yes"
    cancel_label: str = "No"

    kind = "confirm"


@dataclass(frozen=True, slots=True)
class ErrorNotice:
    """Failure of a named action, e.g. ``ErrorNotice("start quiz", "store unavailable")``."""

    action: str
    cause: str

    kind = "error"

    @property
    def title(self) -> str:
        return f"Could not {self.action}"

    @property
    def message(self) -> str:
        return f"Could not {self.action}: {self.cause}"


Notice = Union[InfoNotice, ConfirmNotice, ErrorNotice]


def notice_to_dict(notice: Notice) -> dict[str, str]:
    payload = {"kind": notice.kind, **asdict(notice)}
    if isinstance(notice, ErrorNotice):
        payload["title"] = notice.title
        payload["message"] = notice.message
    return payload


def confirm_delete_quiz(quiz_name: str) -> ConfirmNotice:
    return ConfirmNotice(
        title="Confirm Delete",
        message=f"Are you sure you want to delete quiz '{quiz_name}'? This cannot be undone.",
    )
