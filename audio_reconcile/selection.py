from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence

from .models import CatalogCandidate


class PromptIO(Protocol):
    def print(self, text: str = "") -> None: ...

    def input(self, prompt: str = "") -> str: ...


class ConsolePromptIO:
    def print(self, text: str = "") -> None:
        print(text)

    def input(self, prompt: str = "") -> str:
        return input(prompt)


@dataclass(slots=True)
class BufferPromptIO:
    """Scripted prompt answers for tests."""

    inputs: List[str] = field(default_factory=list)
    outputs: List[str] = field(default_factory=list)
    prompts: List[str] = field(default_factory=list)

    def print(self, text: str = "") -> None:
        self.outputs.append(text)

    def input(self, prompt: str = "") -> str:
        self.prompts.append(prompt)
        if not self.inputs:
            raise AssertionError("BufferPromptIO has no more inputs")
        return self.inputs.pop(0)


class Selector(Protocol):
    interactive: bool

    def choose(self, subject: str, candidates: Sequence[CatalogCandidate]) -> Optional[CatalogCandidate]: ...

    def confirm(self, subject: str, candidate: CatalogCandidate, score: float) -> bool: ...


class InteractiveSelector:
    """Blocks on the prompt until the user picks a candidate or skips."""

    interactive = True

    def __init__(self, prompt_io: Optional[PromptIO] = None) -> None:
        self.prompt_io = prompt_io or ConsolePromptIO()

    def choose(self, subject: str, candidates: Sequence[CatalogCandidate]) -> Optional[CatalogCandidate]:
        if not candidates:
            self.prompt_io.print(f"No catalog candidates for {subject}.")
            return None
        self.prompt_io.print("")
        self.prompt_io.print(f"Select a match for {subject}:")
        for idx, candidate in enumerate(candidates, start=1):
            self.prompt_io.print(f"  {idx}. {describe_candidate(candidate)}")
        self.prompt_io.print("  0. Skip")
        while True:
            raw = self.prompt_io.input(f"Choice [0-{len(candidates)}]: ").strip()
            try:
                choice = int(raw)
            except ValueError:
                self.prompt_io.print("Invalid selection")
                continue
            if choice == 0:
                return None
            if not 1 <= choice <= len(candidates):
                self.prompt_io.print("Selection out of range.")
                continue
            return candidates[choice - 1]

    def confirm(self, subject: str, candidate: CatalogCandidate, score: float) -> bool:
        self.prompt_io.print("")
        self.prompt_io.print(f"{subject} looks like {describe_candidate(candidate)} (score {score:.2f})")
        answer = self.prompt_io.input("Accept? [y/N]: ").strip().lower()
        return answer in {"y", "yes"}


class AutoSelector:
    """Preview and batch runs: always take the top candidate."""

    interactive = False

    def choose(self, subject: str, candidates: Sequence[CatalogCandidate]) -> Optional[CatalogCandidate]:
        return candidates[0] if candidates else None

    def confirm(self, subject: str, candidate: CatalogCandidate, score: float) -> bool:
        return True


def describe_candidate(candidate: CatalogCandidate) -> str:
    parts = [candidate.name]
    if candidate.artist_string and candidate.artist_string != candidate.name:
        parts.append(f"by {candidate.artist_string}")
    if candidate.release_year:
        parts.append(f"({candidate.release_year})")
    if candidate.id:
        parts.append(f"[{candidate.id}]")
    return " ".join(parts)
