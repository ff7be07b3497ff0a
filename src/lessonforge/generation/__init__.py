"""Generation capability boundary: prompts, protocol and the Anthropic client."""

from lessonforge.generation.pedagogy import infer_pedagogy
from lessonforge.generation.prompts import PromptBuilder
from lessonforge.generation.protocols import GenerationCapability, Prompt

__all__ = ["GenerationCapability", "Prompt", "PromptBuilder", "infer_pedagogy"]
