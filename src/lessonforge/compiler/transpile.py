"""TSX to browser module lowering.

Source text between nodes is copied verbatim; only what a browser cannot run
is rewritten. Type syntax is erased and JSX becomes explicit factory calls.
ECMAScript syntax itself (optional chaining, nullish coalescing, class
fields) is left as written.
"""

import html
import json
import re

from tree_sitter import Node

from lessonforge.compiler.syntax import parse, position, syntax_errors
from lessonforge.errors import TransformError

JSX_FACTORY = "React.createElement"
JSX_FRAGMENT = "React.Fragment"

# Named nodes removed together with their subtree.
_ERASED = frozenset(
    {
        "type_annotation",
        "type_parameters",
        "type_arguments",
        "type_predicate_annotation",
        "asserts_annotation",
        "interface_declaration",
        "type_alias_declaration",
        "ambient_declaration",
        "function_signature",
        "method_signature",
        "abstract_method_signature",
        "index_signature",
        "implements_clause",
        "accessibility_modifier",
        "override_modifier",
    }
)

# Anonymous tokens removed only under specific parents.
_ERASED_TOKENS = {
    "?": frozenset({"optional_parameter", "public_field_definition", "method_definition"}),
    "!": frozenset({"variable_declarator", "public_field_definition"}),
    "readonly": frozenset({"public_field_definition"}),
    "declare": frozenset({"public_field_definition"}),
    "abstract": frozenset({"abstract_class_declaration", "public_field_definition"}),
}

_TYPE_ONLY_DECLARATIONS = frozenset(
    {"interface_declaration", "type_alias_declaration", "ambient_declaration", "function_signature"}
)

_UNSUPPORTED = {
    "enum_declaration": "enum declarations are not supported",
    "internal_module": "namespace declarations are not supported",
    "module": "module declarations are not supported",
    "decorator": "decorators are not supported",
}

_PARAMETER_MODIFIERS = frozenset({"accessibility_modifier", "override_modifier", "readonly"})

_JSX_NESTED = frozenset({"jsx_element", "jsx_self_closing_element", "jsx_fragment"})

_IDENTIFIER = re.compile(r"[A-Za-z_$][A-Za-z0-9_$]*")
_LINE_BREAK = re.compile(r"\r\n|\n|\r")
_VISIBLE = re.compile(r"[^ \t]")


def clean_jsx_text(raw: str) -> str | None:
    """Collapse JSX text the way Babel does.

    Lines are trimmed except at the outer edges of the text, blank lines are
    dropped, and surviving lines are joined by a single space.

    Returns:
        A JS string literal, or None when nothing visible remains
    """
    lines = _LINE_BREAK.split(html.unescape(raw))
    last_visible = -1
    for index, line in enumerate(lines):
        if _VISIBLE.search(line):
            last_visible = index

    text = ""
    for index, line in enumerate(lines):
        trimmed = line.replace("\t", " ")
        if index != 0:
            trimmed = trimmed.lstrip(" ")
        if index != len(lines) - 1:
            trimmed = trimmed.rstrip(" ")
        if trimmed:
            if index != last_visible:
                trimmed += " "
            text += trimmed
    return json.dumps(text) if text else None


class Transpiler:
    """Emit a module from one parsed source."""

    def __init__(self, source: bytes) -> None:
        self._source = source
        self._handlers = {
            "export_statement": self._export_statement,
            "required_parameter": self._parameter,
            "optional_parameter": self._parameter,
            "as_expression": self._unwrap,
            "satisfies_expression": self._unwrap,
            "non_null_expression": self._unwrap,
            "jsx_element": self._jsx_element,
            "jsx_self_closing_element": self._jsx_element,
            "jsx_fragment": self._jsx_element,
        }

    def emit_program(self, root: Node) -> str:
        try:
            body = self._emit(root)
        except RecursionError as e:
            raise TransformError(["Source is nested too deeply to transform"]) from e
        tail = self._slice(root.end_byte, len(self._source))
        return self._slice(0, root.start_byte) + body + tail

    def _slice(self, start: int, end: int) -> str:
        return self._source[start:end].decode("utf-8")

    def _text(self, node: Node) -> str:
        return self._slice(node.start_byte, node.end_byte)

    def _emit(self, node: Node) -> str:
        if node.type in _UNSUPPORTED:
            raise TransformError([f"{position(node)}: {_UNSUPPORTED[node.type]}"])
        handler = self._handlers.get(node.type)
        if handler is not None:
            return handler(node)
        if not node.children:
            return self._text(node)
        return self._emit_children(node)

    def _is_erased(self, child: Node, parent: Node) -> bool:
        if child.type in _ERASED:
            return True
        if child.is_named:
            return False
        parents = _ERASED_TOKENS.get(child.type)
        return parents is not None and parent.type in parents

    def _emit_children(self, node: Node) -> str:
        parts = []
        cursor = node.start_byte
        for child in node.children:
            parts.append(self._slice(cursor, child.start_byte))
            if not self._is_erased(child, node):
                parts.append(self._emit(child))
            cursor = child.end_byte
        parts.append(self._slice(cursor, node.end_byte))
        return "".join(parts)

    # TypeScript

    def _export_statement(self, node: Node) -> str:
        declaration = node.child_by_field_name("declaration")
        if declaration is not None and declaration.type in _TYPE_ONLY_DECLARATIONS:
            return ""
        # export type { A }
        if any(child.type == "type" and not child.is_named for child in node.children):
            return ""
        return self._emit_children(node)

    def _parameter(self, node: Node) -> str:
        for child in node.children:
            if child.type in _PARAMETER_MODIFIERS:
                raise TransformError(
                    [f"{position(node)}: constructor parameter properties are not supported"]
                )
        return self._emit_children(node)

    def _unwrap(self, node: Node) -> str:
        return self._emit(node.named_children[0])

    # JSX

    def _jsx_element(self, node: Node) -> str:
        if node.type == "jsx_self_closing_element":
            opening: Node | None = node
            children: list[str] = []
        elif node.type == "jsx_fragment":
            # < > ... < / >
            opening = None
            children = self._jsx_children(
                node.children[2:-3], node.children[1].end_byte, node.children[-3].start_byte
            )
        else:
            opening = node.children[0]
            closing = node.children[-1]
            children = self._jsx_children(node.children[1:-1], opening.end_byte, closing.start_byte)

        name = opening.child_by_field_name("name") if opening is not None else None
        element_type = self._jsx_type(name) if name is not None else JSX_FRAGMENT
        props = self._jsx_props(opening) if opening is not None else "null"
        return f"{JSX_FACTORY}({', '.join([element_type, props, *children])})"

    def _jsx_type(self, name: Node) -> str:
        text = self._text(name)
        if name.type == "jsx_namespace_name":
            return json.dumps(text)
        if name.type == "identifier" and (text[0].islower() or "-" in text):
            return json.dumps(text)
        return text

    def _jsx_props(self, opening: Node) -> str:
        entries = []
        for attribute in opening.named_children:
            if attribute.type == "jsx_attribute":
                entries.append(self._jsx_attribute(attribute))
            elif attribute.type == "jsx_expression":
                spread = self._jsx_expression(attribute)
                if spread is not None:
                    entries.append(spread)
        if not entries:
            return "null"
        return "{" + ", ".join(entries) + "}"

    def _jsx_attribute(self, attribute: Node) -> str:
        parts = [child for child in attribute.named_children if child.type != "comment"]
        key = self._text(parts[0])
        if not _IDENTIFIER.fullmatch(key):
            key = json.dumps(key)
        if len(parts) == 1:
            return f"{key}: true"

        value = parts[1]
        if value.type == "string":
            return f"{key}: {json.dumps(html.unescape(self._text(value)[1:-1]))}"
        if value.type == "jsx_expression":
            expression = self._jsx_expression(value)
            if expression is None:
                raise TransformError(
                    [f"{position(value)}: JSX attributes must be assigned a non-empty expression"]
                )
            return f"{key}: {expression}"
        return f"{key}: {self._emit(value)}"

    def _jsx_expression(self, node: Node) -> str | None:
        inner = [child for child in node.named_children if child.type != "comment"]
        if not inner:
            return None
        expression = inner[0]
        text = self._emit(expression)
        if expression.type == "sequence_expression":
            return f"({text})"
        return text

    def _jsx_children(self, items: list[Node], start: int, end: int) -> list[str]:
        """Lower element children; text is read from the gaps between nested nodes."""
        children = []
        cursor = start
        for child in items:
            if child.type not in _JSX_NESTED and child.type != "jsx_expression":
                continue
            text = clean_jsx_text(self._slice(cursor, child.start_byte))
            if text is not None:
                children.append(text)
            if child.type == "jsx_expression":
                expression = self._jsx_expression(child)
                if expression is not None:
                    children.append(expression)
            else:
                children.append(self._emit(child))
            cursor = child.end_byte
        text = clean_jsx_text(self._slice(cursor, end))
        if text is not None:
            children.append(text)
        return children


def lower(source: bytes, root: Node) -> str:
    """Lower a parsed, import-free TSX module to plain JavaScript.

    Raises:
        TransformError: On unsupported constructs, or when the output does not parse
    """
    output = Transpiler(source).emit_program(root)
    encoded = output.encode("utf-8")
    check = parse(encoded)
    if check.root_node.has_error:
        errors = syntax_errors(check, encoded)
        raise TransformError(["Lowered module does not parse"] + errors)
    return output
