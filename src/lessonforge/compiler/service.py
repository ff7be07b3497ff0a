"""Two-stage compile service: syntax checks plus import elision, then lowering."""

import logging

from lessonforge.compiler.elision import elide_imports
from lessonforge.compiler.host import banner
from lessonforge.compiler.syntax import (
    NO_DEFAULT_EXPORT,
    has_default_export,
    parse,
    syntax_errors,
    top_level_names,
    unresolved_host_names,
)
from lessonforge.compiler.transpile import lower
from lessonforge.errors import CompileSyntaxError, TransformError
from lessonforge.models import CompiledArtifact, source_hash

logger = logging.getLogger(__name__)

METADATA_LABEL = "lessonforge-module"


class CompileService:
    """Compile untrusted TSX into a self-contained browser module.

    Stage 1 parses the source, reports syntax and resolution problems as
    CompileSyntaxError, and removes top-level imports and re-exports by
    syntax-node range. Stage 2 erases types, rewrites JSX into
    React.createElement calls and raises TransformError for constructs it
    cannot lower.

    The output is a pure function of the source text: the only header line,
    `// lessonforge-module sha256=...`, is itself derived from the source.
    """

    def check(self, source: str) -> bytes:
        """Run stage 1 and return the import-free source bytes.

        Raises:
            CompileSyntaxError: If the source does not parse, references an
                unbound UI library member, or has no default export
        """
        encoded = source.encode("utf-8")
        tree = parse(encoded)
        errors = syntax_errors(tree, encoded)
        if errors:
            raise CompileSyntaxError(errors)

        root = tree.root_node
        errors = unresolved_host_names(root)
        if not has_default_export(root):
            errors.append(NO_DEFAULT_EXPORT)
        if errors:
            raise CompileSyntaxError(errors)

        return elide_imports(root, encoded)

    def compile(self, source: str) -> CompiledArtifact:
        """Compile source into a CompiledArtifact.

        Args:
            source: TSX source that already passed the safety linter

        Returns:
            Artifact whose module text is byte-identical across calls

        Raises:
            CompileSyntaxError: Stage 1 failure
            TransformError: Stage 2 failure
        """
        elided = self.check(source)

        tree = parse(elided)
        if tree.root_node.has_error:
            raise TransformError(["Source does not parse after import elision"])

        body = lower(elided, tree.root_node)
        digest = source_hash(source)
        header = f"// {METADATA_LABEL} sha256={digest}"
        module_text = "\n".join([header, banner(top_level_names(tree.root_node)), body.strip("\n")])

        logger.debug("Compiled %d source bytes into %d module bytes", len(source), len(module_text))
        return CompiledArtifact(source_hash=digest, module_text=module_text + "\n")


def compile_source(source: str) -> CompiledArtifact:
    """Compile with a default CompileService."""
    return CompileService().compile(source)
