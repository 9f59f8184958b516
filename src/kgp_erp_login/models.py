from __future__ import annotations

import os
from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, Field


class ErpCredentials(BaseModel):
    """
    ERP login credentials, typically stored in `erpcreds.json`.

    Every field is optional: anything missing is asked for interactively and can be written back.
    """

    roll_number: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    answer_map: Optional[dict[str, str]] = Field(default=None, repr=False)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ErpCredentials":
        p = Path(path)
        return cls.model_validate_json(p.read_text(encoding="utf-8"))

    def save_to_file(self, path: Union[str, Path]) -> None:
        p = Path(path)
        p.parent.mkdir(parents=True, exist_ok=True)
        p.write_text(self.model_dump_json(indent=2), encoding="utf-8")
        # Contains a password and security answers.
        os.chmod(p, 0o600)

    def answer_for(self, question: str) -> Optional[str]:
        if not self.answer_map:
            return None
        return self.answer_map.get(question)

    def remember_answer(self, question: str, answer: str) -> None:
        answers = dict(self.answer_map or {})
        answers[question] = answer
        self.answer_map = answers


class Otp(BaseModel):
    code: str
    # Epoch seconds of the message that carried the code.
    timestamp: int

    def is_fresh(self, after_timestamp: int) -> bool:
        return self.timestamp >= after_timestamp


def mask_secret(value: Optional[str]) -> str:
    """Mask a code/token for logs: keep the first and last two characters."""
    if not value:
        return "<empty>"
    if len(value) < 6:
        return "***"
    return f"{value[:2]}****{value[-2:]}"
