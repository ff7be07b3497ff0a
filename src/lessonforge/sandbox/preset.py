"""Fixed base stylesheet injected before any lesson styles."""

from lessonforge.models import Accessibility

PRESET_VERSION = "2"

PRESET_CSS = """\
:host, body {
  color: inherit;
  font: inherit;
  --lf-fg: currentColor;
  --lf-muted: rgba(0, 0, 0, 0.6);
  --lf-border: rgba(0, 0, 0, 0.12);
  --lf-primary: #0ea5e9;
  --lf-radius: 12px;
}
:host *, :host *::before, :host *::after,
body *, body *::before, body *::after {
  box-sizing: border-box;
}
@media (prefers-color-scheme: dark) {
  :host, body {
    --lf-muted: rgba(255, 255, 255, 0.7);
    --lf-border: rgba(255, 255, 255, 0.16);
  }
}
h1 { font-size: 1.875rem; line-height: 2.25rem; margin: 1rem 0; }
h2 { font-size: 1.5rem; line-height: 2rem; margin: 0.875rem 0; }
h3 { font-size: 1.25rem; line-height: 1.75rem; margin: 0.75rem 0; }
p { margin: 0.5rem 0; }
button { font: inherit; cursor: pointer; }
svg { max-width: 100%; height: auto; }
[data-lf-diagnostic] {
  border: 1px solid #dc2626;
  border-radius: var(--lf-radius);
  color: #991b1b;
  padding: 0.75rem;
}
"""


def accessibility_css(accessibility: Accessibility) -> str:
    """Lesson-level style text derived from accessibility preferences."""
    rules = [f"#lf-host {{ font-size: {accessibility.min_font_size_px}px; }}"]
    if accessibility.high_contrast:
        rules.append("#lf-host { --lf-muted: currentColor; --lf-border: currentColor; }")
    return "\n".join(rules) + "\n"
