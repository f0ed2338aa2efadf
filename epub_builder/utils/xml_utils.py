"""Helper functions to parse, validate, and pretty-print XML documents."""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, Optional
from xml.etree import ElementTree as ET

XML_DECLARATION = '<?xml version="1.0" encoding="UTF-8"?>'
HTML_DOCTYPE = "<!DOCTYPE html>"
INDENT = "  "

_PROLOG_PATTERN = re.compile(
    r"\A\s*(?P<declaration><\?xml\s[^>]*\?>)?\s*(?P<doctype><!DOCTYPE\s[^>\[]*>)?",
    re.IGNORECASE,
)
# ElementTree writes empty elements as "<tag />"; attribute values never hold a raw ">".
_SELF_CLOSING_PATTERN = re.compile(r"(<[^<>!?/][^<>]*?) />")
# Comments and processing instructions are copied untouched.
_VERBATIM_PATTERN = re.compile(r"(<!--.*?-->|<\?.*?\?>)", re.DOTALL)


@dataclass(frozen=True)
class Namespaces:
    """Namespace URIs used by the documents inside an EPUB container."""

    XHTML: str = "http://www.w3.org/1999/xhtml"
    OPS: str = "http://www.idpf.org/2007/ops"
    OPF: str = "http://www.idpf.org/2007/opf"
    DC: str = "http://purl.org/dc/elements/1.1/"
    NCX: str = "http://www.daisy.org/z3986/2005/ncx/"
    CONTAINER: str = "urn:oasis:names:tc:opendocument:xmlns:container"
    SVG: str = "http://www.w3.org/2000/svg"
    MATHML: str = "http://www.w3.org/1998/Math/MathML"
    XLINK: str = "http://www.w3.org/1999/xlink"
    XML: str = "http://www.w3.org/XML/1998/namespace"


NS = Namespaces()

# Prefixes used when re-serializing parsed content documents.
SERIALIZATION_PREFIXES: Dict[str, str] = {
    NS.XHTML: "",
    NS.OPS: "epub",
    NS.SVG: "svg",
    NS.MATHML: "m",
    NS.XLINK: "xlink",
}

# XHTML phrasing content: whitespace next to these elements is rendered.
PHRASING_TAGS = frozenset(
    {
        "a", "abbr", "audio", "b", "bdi", "bdo", "br", "button", "canvas", "cite", "code", "data",
        "del", "dfn", "em", "embed", "i", "iframe", "img", "input", "ins", "kbd", "label", "mark",
        "math", "meter", "object", "output", "picture", "progress", "q", "ruby", "rp", "rt", "s",
        "samp", "select", "small", "span", "strong", "sub", "sup", "svg", "time", "u", "var",
        "video", "wbr",
    }
)
PRESERVE_SPACE_TAGS = frozenset({"pre", "textarea", "script", "style"})
XML_SPACE = f"{{{NS.XML}}}space"


class XmlValidationError(ValueError):
    """Raised when a markup string is not well-formed XML."""


def parse_xml(source: str) -> ET.Element:
    """Parse XML text, keeping comments and processing instructions."""
    builder = ET.TreeBuilder(insert_comments=True, insert_pis=True)
    parser = ET.XMLParser(target=builder)
    try:
        parser.feed(source)
        return parser.close()
    except ET.ParseError as exc:
        raise XmlValidationError(str(exc)) from exc


def check_well_formed(source: str) -> None:
    """Raise ``XmlValidationError`` if ``source`` does not parse."""
    parse_xml(source)


def _local_name(elem: ET.Element) -> Optional[str]:
    """Local name of an XHTML or un-namespaced element, ``None`` for anything else."""
    if not isinstance(elem.tag, str):
        return None
    if elem.tag.startswith("{"):
        uri, local = elem.tag[1:].split("}", 1)
        return local if uri == NS.XHTML else None
    return elem.tag


def _is_blank(text: Optional[str]) -> bool:
    return not text or not text.strip()


def _can_reflow(elem: ET.Element) -> bool:
    """True when re-indenting the children of ``elem`` cannot change rendered text."""
    if not _is_blank(elem.text):
        return False
    for child in elem:
        if not _is_blank(child.tail) or _local_name(child) in PHRASING_TAGS:
            return False
    return True


def indent_markup(elem: ET.Element, level: int = 0) -> None:
    """Indent ``elem`` in place, leaving mixed content and ``pre``-like subtrees untouched."""
    if len(elem) == 0 or _local_name(elem) in PRESERVE_SPACE_TAGS or elem.get(XML_SPACE) == "preserve":
        return
    children = list(elem)
    if _can_reflow(elem):
        child_indent = "\n" + INDENT * (level + 1)
        elem.text = child_indent
        for child in children:
            child.tail = child_indent
        children[-1].tail = "\n" + INDENT * level
    for child in children:
        indent_markup(child, level + 1)


def qualify_names(root: ET.Element) -> None:
    """Rewrite ``{uri}name`` tags and attributes as prefixed names declared on ``root``.

    ElementTree only knows prefixes from its process-wide registry; doing the
    mapping here keeps serialization independent of that global state.
    """
    element_prefixes: Dict[str, str] = {}
    attribute_prefixes: Dict[str, str] = {}

    def qualify(name, table: Dict[str, str], allow_default: bool):
        if not isinstance(name, str) or not name.startswith("{"):
            return name
        uri, local = name[1:].split("}", 1)
        if uri == NS.XML:
            return f"xml:{local}"
        if uri not in table:
            prefix = SERIALIZATION_PREFIXES.get(uri)
            if prefix is None or (prefix == "" and not allow_default):
                prefix = f"ns{len(element_prefixes) + len(attribute_prefixes)}"
            table[uri] = prefix
        prefix = table[uri]
        return f"{prefix}:{local}" if prefix else local

    for elem in root.iter():
        elem.tag = qualify(elem.tag, element_prefixes, True)
        if elem.attrib:
            items = [(qualify(key, attribute_prefixes, False), value) for key, value in elem.attrib.items()]
            elem.attrib.clear()
            elem.attrib.update(items)

    declarations = {}
    for uri, prefix in sorted(
        list(element_prefixes.items()) + list(attribute_prefixes.items()), key=lambda item: item[1]
    ):
        declarations[f"xmlns:{prefix}" if prefix else "xmlns"] = uri
    if declarations:
        existing = list(root.attrib.items())
        root.attrib.clear()
        root.attrib.update(declarations)
        root.attrib.update(existing)


def _compact_empty_tags(markup: str) -> str:
    parts = _VERBATIM_PATTERN.split(markup)
    return "".join(
        part if index % 2 else _SELF_CLOSING_PATTERN.sub(r"\1/>", part) for index, part in enumerate(parts)
    )


def serialize_document(
    root: ET.Element,
    *,
    declaration: str = XML_DECLARATION,
    doctype: Optional[str] = None,
    pretty: bool = True,
) -> str:
    """Render ``root`` as a complete XML document string.

    With ``pretty`` every element is indented; use it for element-only trees
    built in code. Parsed content should go through ``indent_markup`` instead.
    """
    if pretty:
        ET.indent(root, space=INDENT)
    qualify_names(root)
    markup = _compact_empty_tags(ET.tostring(root, encoding="unicode"))
    parts = [declaration]
    if doctype:
        parts.append(doctype)
    parts.append(markup)
    return "\n".join(parts)


def validate_and_prettify_xml(source: str) -> str:
    """Verify that ``source`` is well-formed and return a deterministically indented copy.

    The XML declaration and DOCTYPE found in ``source`` are carried over as
    written; documents without a declaration get the UTF-8 default. Text,
    including whitespace between inline elements and inside ``pre``, is kept.
    """
    root = parse_xml(source)
    prolog = _PROLOG_PATTERN.match(source)
    declaration = XML_DECLARATION
    doctype = None
    if prolog is not None:
        declaration = prolog.group("declaration") or XML_DECLARATION
        doctype = prolog.group("doctype")
    indent_markup(root)
    return serialize_document(root, declaration=declaration, doctype=doctype, pretty=False)
