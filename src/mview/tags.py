"""Tag registry, directive names and reserved attribute aliases."""

from __future__ import annotations

from dataclasses import dataclass

# Alias map: alternate reserved attribute name -> canonical name
ALIASES: dict[str, str] = {
    "node_ref": "ref",
    "_ref": "ref",
    "ref_": "ref",
}

# Attributes that may appear at most once per node.
RESERVED: frozenset[str] = frozenset({"key", "ref"})

DIRECTIVES: tuple[str, ...] = ("class", "style", "on", "prop", "attr", "clone", "use", "bind")

CONTROL_KEYWORDS: tuple[str, ...] = ("if", "for", "match")


def resolve_name(name: str) -> str:
    """Resolve a reserved attribute alias to its canonical name."""
    return ALIASES.get(name, name)


@dataclass(frozen=True, slots=True)
class TagDef:
    """Definition of a known element tag."""

    name: str
    namespace: str
    void: bool


def _make_tags() -> dict[str, TagDef]:
    defs: dict[str, TagDef] = {}

    def d(names: str, namespace: str = "html", *, void: bool = False) -> None:
        for name in names.split():
            defs.setdefault(name, TagDef(name, namespace, void))

    # Void elements
    d("area base br col embed hr img input link meta source track wbr", void=True)

    # Document and sections
    d("html head body title style script noscript template slot")
    d("main header footer nav section article aside address hgroup search")
    d("h1 h2 h3 h4 h5 h6 p div span pre blockquote figure figcaption")

    # Text-level
    d("a abbr b bdi bdo cite code data dfn em i kbd mark q rp rt ruby s samp")
    d("small strong sub sup time u var del ins")

    # Lists and tables
    d("ul ol li dl dt dd menu")
    d("table caption colgroup thead tbody tfoot tr th td")

    # Forms
    d("form fieldset legend label button select datalist optgroup option")
    d("textarea output progress meter")

    # Embedded and interactive
    d("picture iframe object video audio canvas map details summary dialog")

    # SVG (camelCase names are legal here only)
    d(
        "svg g defs symbol use circle ellipse line path polygon polyline rect"
        " text tspan textPath image foreignObject marker mask pattern clipPath"
        " linearGradient radialGradient stop filter feBlend feColorMatrix"
        " feComposite feFlood feGaussianBlur feMerge feMergeNode feOffset"
        " animate animateMotion animateTransform desc metadata view switch",
        "svg",
    )

    # MathML
    d("math mi mn mo ms mtext mrow msup msub msubsup mfrac msqrt mroot", "math")
    d("mtable mtr mtd mspace mstyle semantics annotation", "math")

    return defs


TAGS: dict[str, TagDef] = _make_tags()
