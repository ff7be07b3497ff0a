"""Generation capability protocol."""

from typing import Protocol, runtime_checkable

from pydantic import BaseModel


class Prompt(BaseModel):
    """A rendered prompt: system instructions plus the user turn."""

    model_config = {"frozen": True}

    system: str
    user: str
    kind: str = "initial"

    def as_text(self) -> str:
        """Flattened form stored in trace records."""
        return f"[system]\n{self.system}\n\n[user]\n{self.user}"


@runtime_checkable
class GenerationCapability(Protocol):
    """Black-box source generator.

    Returns raw text with no guaranteed structure. Implementations raise
    GenerationCapabilityError on failure or empty output.
    """

    model_name: str

    async def generate(self, prompt: Prompt) -> str:
        """Produce raw component source for a prompt."""
        ...
