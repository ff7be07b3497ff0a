"""Prompt rendering for initial and fix-request generations."""

from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from lessonforge.compiler.host import BANNER_HOOKS
from lessonforge.generation.protocols import Prompt
from lessonforge.models import PedagogyConfig
from lessonforge.safety import MAX_SOURCE_BYTES

TEMPLATES_DIR = Path(__file__).parent / "templates"

# Longest previous source echoed back in a fix-request.
MAX_ECHOED_SOURCE = 60_000


def _get_environment() -> Environment:
    return Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        keep_trailing_newline=True,
        undefined=StrictUndefined,
    )


class PromptBuilder:
    """Render prompts from the package templates."""

    def __init__(self, env: Environment | None = None) -> None:
        self._env = env or _get_environment()

    def system(self) -> str:
        template = self._env.get_template("system.j2")
        return template.render(banner_names=BANNER_HOOKS, max_kib=MAX_SOURCE_BYTES // 1024)

    def initial(self, topic: str, pedagogy: PedagogyConfig) -> Prompt:
        """Prompt for the first attempt.

        Args:
            topic: Free-text lesson topic
            pedagogy: Audience configuration

        Returns:
            Prompt with kind "initial"
        """
        user = self._env.get_template("initial.j2").render(topic=topic, pedagogy=pedagogy)
        return Prompt(system=self.system(), user=user, kind="initial")

    def fix(self, topic: str, previous_source: str, errors: list[str]) -> Prompt:
        """Prompt asking the model to correct its previous source.

        Args:
            topic: Free-text lesson topic
            previous_source: Source from the failed attempt
            errors: Diagnostics that caused the failure

        Returns:
            Prompt with kind "fix"
        """
        if len(previous_source) > MAX_ECHOED_SOURCE:
            previous_source = previous_source[:MAX_ECHOED_SOURCE] + "\n/* ...truncated... */"
        user = self._env.get_template("fix.j2").render(
            topic=topic, previous_source=previous_source, errors=errors
        )
        return Prompt(system=self.system(), user=user, kind="fix")
