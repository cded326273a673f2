"""Single-shot text agents (fragment title, user-facing response)."""

from __future__ import annotations

from typing import Any

from app_builder.agents.prompts import FRAGMENT_TITLE_PROMPT, RESPONSE_PROMPT
from app_builder.llm import ChatModel, message_text


class TextAgent:
    def __init__(
        self,
        *,
        name: str,
        llm: ChatModel,
        model: str,
        system_prompt: str,
        default: str,
    ) -> None:
        self.name = name
        self.llm = llm
        self.model = model
        self.system_prompt = system_prompt
        self.default = default

    def infer(self, prompt: str) -> dict[str, Any]:
        return self.llm.complete(
            model=self.model,
            messages=[
                {"role": "system", "content": self.system_prompt},
                {"role": "user", "content": prompt},
            ],
        )

    def extract(self, message: dict[str, Any]) -> str:
        text = message_text(message)
        return self.default if text is None else text


def fragment_title_agent(llm: ChatModel, *, model: str) -> TextAgent:
    return TextAgent(
        name="fragment-title-generator",
        llm=llm,
        model=model,
        system_prompt=FRAGMENT_TITLE_PROMPT,
        default="Fragment",
    )


def response_agent(llm: ChatModel, *, model: str) -> TextAgent:
    return TextAgent(
        name="response-generator",
        llm=llm,
        model=model,
        system_prompt=RESPONSE_PROMPT,
        default="Here you go!",
    )
