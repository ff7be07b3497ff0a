"""Host globals the compiled module expects from its environment."""

# Bound by the module banner from globalThis, in emission order.
BANNER_GLOBALS = ("React", "ReactDOM")
BANNER_HOOKS = ("useState", "useEffect", "useMemo", "useCallback", "useRef", "Fragment")
BANNER_NAMES = frozenset(BANNER_GLOBALS + BANNER_HOOKS)

# Members of the UI library that generated code commonly uses without binding.
# Referencing one of these without a declaration is a resolution error that the
# repair engine knows how to fix.
HOST_LIBRARY_MEMBERS = frozenset(
    {
        "useReducer",
        "useContext",
        "useLayoutEffect",
        "useId",
        "useTransition",
        "useDeferredValue",
        "useImperativeHandle",
        "useSyncExternalStore",
        "useInsertionEffect",
        "memo",
        "forwardRef",
        "createContext",
        "createElement",
        "cloneElement",
        "Children",
        "isValidElement",
        "lazy",
        "Suspense",
        "StrictMode",
        "startTransition",
        "Component",
        "PureComponent",
        "createRef",
    }
)

HOST_OBJECT = "React"


def binding_statement(names: list[str] | tuple[str, ...]) -> str:
    """Destructuring statement that binds names from the UI library object."""
    return "const { " + ", ".join(names) + " } = " + HOST_OBJECT + ";"


def banner(declared: set[str] | frozenset[str] = frozenset()) -> str:
    """Banner lines binding host globals, skipping names the module declares itself."""
    lines = [
        f"const {name} = globalThis.{name};" for name in BANNER_GLOBALS if name not in declared
    ]
    hooks = [name for name in BANNER_HOOKS if name not in declared]
    if hooks:
        lines.append(binding_statement(hooks))
    return "\n".join(lines)
