"""Minimal element tree standing in for the host page's DOM.

The executor manipulates these nodes exactly as it would manipulate a real
document (append, detach, attach a shadow root); `render()` serializes the
tree so the final state can be inspected or shipped to a browser.
"""

from dataclasses import dataclass, field

from markupsafe import escape

# Elements whose text content is not HTML-escaped.
RAW_TEXT_ELEMENTS = frozenset({"script", "style"})


def raw_text(text: str) -> str:
    """Neutralize closing tags inside script/style content."""
    return text.replace("</", "<\\/")


@dataclass(eq=False)
class Element:
    """A DOM element with attributes, children, optional text and shadow root."""

    tag: str
    attributes: dict[str, str] = field(default_factory=dict)
    text: str = ""
    children: list["Element"] = field(default_factory=list)
    parent: "Element | None" = field(default=None, repr=False)
    shadow_root: "Element | None" = field(default=None, repr=False)

    def append(self, child: "Element") -> "Element":
        if child.parent is not None:
            child.detach()
        child.parent = self
        self.children.append(child)
        return child

    def detach(self) -> None:
        """Remove from parent; a no-op if already detached."""
        if self.parent is not None:
            self.parent.children.remove(self)
            self.parent = None

    def attach_shadow(self) -> "Element":
        """Return the shadow root, creating it on first use."""
        if self.shadow_root is None:
            self.shadow_root = Element("#shadow-root")
            self.shadow_root.parent = None
        return self.shadow_root

    @property
    def is_connected(self) -> bool:
        return self.parent is not None

    def iter(self):
        """Depth-first iteration over this element, its shadow tree and its children."""
        yield self
        if self.shadow_root is not None:
            yield from self.shadow_root.iter()
        for child in self.children:
            yield from child.iter()

    def find_all(self, tag: str) -> list["Element"]:
        return [element for element in self.iter() if element.tag == tag]

    def find(self, tag: str, **attributes: str) -> "Element | None":
        for element in self.iter():
            if element.tag != tag:
                continue
            if all(element.attributes.get(key) == value for key, value in attributes.items()):
                return element
        return None

    def render(self) -> str:
        """Serialize to HTML."""
        inner = []
        if self.shadow_root is not None:
            inner.append('<template shadowrootmode="open">')
            inner.extend(child.render() for child in self.shadow_root.children)
            inner.append("</template>")
        if self.tag in RAW_TEXT_ELEMENTS:
            inner.append(raw_text(self.text))
        elif self.text:
            inner.append(str(escape(self.text)))
        inner.extend(child.render() for child in self.children)

        attributes = "".join(
            f' {name}="{escape(value)}"' if value != "" else f" {name}"
            for name, value in self.attributes.items()
        )
        return f"<{self.tag}{attributes}>{''.join(inner)}</{self.tag}>"
