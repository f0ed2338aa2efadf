"""Validate and reformat stylesheets with cssutils."""
from __future__ import annotations

import xml.dom

import cssutils

from epub_builder.utils.logger import get_logger

LOGGER = get_logger(__name__)

RULE_SEPARATOR = "\n\n"

cssutils.log.setLog(get_logger("epub_builder.cssutils"))
cssutils.ser.prefs.indent = "  "
cssutils.ser.prefs.lineSeparator = "\n"
cssutils.ser.prefs.omitLastSemicolon = False
cssutils.ser.prefs.indentClosingBrace = False
cssutils.ser.prefs.keepEmptyRules = False


class CssValidationError(ValueError):
    """Raised when a stylesheet cannot be parsed."""


def validate_and_prettify_css(source: str) -> str:
    """Parse ``source`` strictly and return it with canonical spacing.

    Rule blocks are separated by a blank line and the result carries no
    trailing newline.
    """
    parser = cssutils.CSSParser(raiseExceptions=True, validate=False)
    try:
        sheet = parser.parseString(source)
    except (xml.dom.DOMException, ValueError) as exc:
        raise CssValidationError(str(exc)) from exc

    blocks = [rule.cssText for rule in sheet.cssRules if rule.cssText]
    LOGGER.debug("Normalized stylesheet with %d rule blocks", len(blocks))
    return RULE_SEPARATOR.join(blocks)
