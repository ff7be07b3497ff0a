"""Import elision on the syntax tree.

The compiled module is fetched standalone, so it must not depend on a module
resolver. Ranges come from syntax nodes, which keeps string literals and
comments that merely look like imports untouched.
"""

from tree_sitter import Node


def _is_module_dependency(node: Node) -> bool:
    if node.type == "import_statement":
        return True
    return node.type == "export_statement" and node.child_by_field_name("source") is not None


def elision_ranges(root: Node, source: bytes) -> list[tuple[int, int]]:
    """Byte ranges of top-level imports and re-exports, including one trailing newline."""
    ranges = []
    for child in root.children:
        if not _is_module_dependency(child):
            continue
        end = child.end_byte
        if source[end : end + 2] == b"\r\n":
            end += 2
        elif source[end : end + 1] == b"\n":
            end += 1
        ranges.append((child.start_byte, end))
    return ranges


def elide_imports(root: Node, source: bytes) -> bytes:
    """Return source with every top-level import and re-export removed."""
    pieces = []
    cursor = 0
    for start, end in elision_ranges(root, source):
        pieces.append(source[cursor:start])
        cursor = end
    pieces.append(source[cursor:])
    return b"".join(pieces)
