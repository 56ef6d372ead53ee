from __future__ import annotations

from dormmate.assistant.base import AssistantBackend
from dormmate.assistant.completion import CompletionAssistant
from dormmate.assistant.keyword import KeywordAssistant
from dormmate.config import settings


class AssistantRegistry:
    def __init__(self) -> None:
        self._backends: dict[str, AssistantBackend] = {}

    def register(self, backend: AssistantBackend) -> None:
        self._backends[backend.name] = backend

    def get(self, name: str) -> AssistantBackend:
        if name not in self._backends:
            raise KeyError(f"Assistant backend '{name}' is not registered")
        return self._backends[name]

    def list(self) -> list[str]:
        return sorted(self._backends)


def build_registry() -> AssistantRegistry:
    registry = AssistantRegistry()
    registry.register(KeywordAssistant())
    registry.register(CompletionAssistant())
    return registry


def configured_backend(registry: AssistantRegistry | None = None) -> AssistantBackend:
    return (registry or build_registry()).get(settings.assistant_backend)
