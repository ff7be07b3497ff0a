"""Parsing and stage-1 diagnostics on the TSX syntax tree.

Uses tree-sitter with the TypeScript TSX grammar. Diagnostics are plain
strings shaped like compiler messages ("Line 3:7: Cannot find name 'x'.")
so the repair engine can key its rules on them.
"""

from collections.abc import Iterator

import tree_sitter_typescript
from tree_sitter import Language, Node, Parser, Tree

from lessonforge.compiler.host import BANNER_NAMES, HOST_LIBRARY_MEMBERS

TSX_LANGUAGE = Language(tree_sitter_typescript.language_tsx())

MAX_SYNTAX_ERRORS = 10
NO_DEFAULT_EXPORT = "Module has no default export."

# Nodes whose `name` field introduces a binding.
_NAMED_DECLARATIONS = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "function_expression",
        "class_declaration",
        "class",
        "abstract_class_declaration",
    }
)

# Nodes whose pattern-like field introduces bindings.
_PATTERN_FIELDS = {
    "variable_declarator": "name",
    "required_parameter": "pattern",
    "optional_parameter": "pattern",
    "catch_clause": "parameter",
    "for_in_statement": "left",
}

_BINDING_LEAVES = frozenset({"identifier", "shorthand_property_identifier_pattern"})

_TOP_LEVEL_DECLARATIONS = frozenset(
    {
        "function_declaration",
        "generator_function_declaration",
        "class_declaration",
        "abstract_class_declaration",
        "lexical_declaration",
        "variable_declaration",
    }
)


def parse(source: bytes) -> Tree:
    """Parse TSX source bytes into a syntax tree."""
    return Parser(TSX_LANGUAGE).parse(source)


def position(node: Node) -> str:
    row, column = node.start_point
    return f"Line {row + 1}:{column + 1}"


def walk(node: Node) -> Iterator[Node]:
    """Pre-order traversal without recursion."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def syntax_errors(tree: Tree, source: bytes) -> list[str]:
    """Collect parse errors, pruning subtrees that carry none."""
    errors: list[str] = []
    stack = [tree.root_node]
    while stack and len(errors) < MAX_SYNTAX_ERRORS:
        node = stack.pop()
        if node.is_missing:
            errors.append(f"{position(node)}: Missing '{node.type}'")
            continue
        if node.type == "ERROR":
            text = source[node.start_byte : node.end_byte].decode("utf-8", "replace")
            token = text.strip().split("\n", 1)[0][:20]
            errors.append(f"{position(node)}: Unexpected token '{token}'")
            continue
        stack.extend(reversed([child for child in node.children if child.has_error]))
    return errors


def _pattern_names(pattern: Node) -> Iterator[str]:
    stack = [pattern]
    while stack:
        node = stack.pop()
        if node.type in _BINDING_LEAVES:
            yield node.text.decode("utf-8")
            continue
        for index, child in enumerate(node.children):
            field = node.field_name_for_child(index)
            # Defaults and property keys are not bindings.
            if field == "right" or (field == "key" and node.type == "pair_pattern"):
                continue
            stack.append(child)


def declared_names(root: Node) -> set[str]:
    """All names bound anywhere in the module, ignoring scope.

    Imports are not counted: import elision removes them, so their names are
    not bound in the compiled module.
    """
    names: set[str] = set()
    for node in walk(root):
        if node.type in _NAMED_DECLARATIONS:
            name = node.child_by_field_name("name")
            if name is not None:
                names.add(name.text.decode("utf-8"))
        elif node.type in _PATTERN_FIELDS:
            target = node.child_by_field_name(_PATTERN_FIELDS[node.type])
            if target is not None:
                names.update(_pattern_names(target))
        elif node.type == "arrow_function":
            param = node.child_by_field_name("parameter")
            if param is not None:
                names.add(param.text.decode("utf-8"))
    return names


def top_level_names(root: Node) -> set[str]:
    """Names declared directly at module scope."""
    names: set[str] = set()
    for child in root.named_children:
        node = child
        if node.type == "export_statement":
            node = node.child_by_field_name("declaration")
            if node is None:
                continue
        if node.type not in _TOP_LEVEL_DECLARATIONS:
            continue
        name = node.child_by_field_name("name")
        if name is not None:
            names.add(name.text.decode("utf-8"))
            continue
        for declarator in node.named_children:
            if declarator.type == "variable_declarator":
                target = declarator.child_by_field_name("name")
                if target is not None:
                    names.update(_pattern_names(target))
    return names


def _inside(node: Node, node_type: str) -> bool:
    parent = node.parent
    while parent is not None:
        if parent.type == node_type:
            return True
        parent = parent.parent
    return False


def unresolved_host_names(root: Node) -> list[str]:
    """Report references to UI library members that nothing binds.

    One message per name, at its first reference.
    """
    declared = declared_names(root)
    seen: set[str] = set()
    errors = []
    for node in walk(root):
        if node.type not in ("identifier", "shorthand_property_identifier"):
            continue
        name = node.text.decode("utf-8")
        if name not in HOST_LIBRARY_MEMBERS or name in BANNER_NAMES:
            continue
        if name in declared or name in seen or _inside(node, "import_statement"):
            continue
        seen.add(name)
        errors.append(f"{position(node)}: Cannot find name '{name}'.")
    return errors


def has_default_export(root: Node) -> bool:
    for child in root.named_children:
        if child.type != "export_statement":
            continue
        if any(token.type == "default" for token in child.children):
            return True
        for clause in child.named_children:
            if clause.type != "export_clause":
                continue
            for specifier in clause.named_children:
                alias = specifier.child_by_field_name("alias")
                if alias is not None and alias.text == b"default":
                    return True
    return False
