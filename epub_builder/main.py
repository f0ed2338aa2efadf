"""Entry-point for the EPUB builder pipeline."""
from __future__ import annotations

import json
import logging
import sys
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

from epub_builder.model.errors import EpubError
from epub_builder.model.publication import Publication
from epub_builder.utils.debug import DebugDumper
from epub_builder.utils.logger import get_logger
from epub_builder.writer.epub_writer import write_epub

LOGGER = get_logger(__name__)


def load_manifest(manifest_path: Path) -> Dict[str, Any]:
    """Read a JSON build manifest describing the publication."""
    with manifest_path.open(encoding="utf-8") as handle:
        manifest = json.load(handle)
    if not isinstance(manifest, dict):
        raise ValueError(f"Build manifest must be a JSON object: {manifest_path}")
    return manifest


def build_publication(manifest: Dict[str, Any], base_dir: Path) -> Publication:
    """Create a publication from a manifest; relative paths resolve against ``base_dir``."""
    publication = Publication(
        identifier=manifest.get("identifier") or f"urn:uuid:{uuid.uuid4()}",
        title=manifest.get("title", ""),
        language=manifest.get("language", ""),
        author=manifest.get("author"),
    )

    for entry in manifest.get("stylesheets", []):
        source = base_dir / entry["path"]
        publication.add_stylesheet(
            entry.get("filename") or source.name,
            source.read_text(encoding="utf-8"),
            validate=entry.get("validate", True),
        )

    for entry in manifest.get("assets", []):
        source = base_dir / entry["path"]
        publication.add_asset(entry.get("filename") or source.name, source.read_bytes(), entry.get("media_type"))

    for entry in manifest.get("sections", []):
        body = entry.get("body")
        if body is None:
            source = base_dir / entry["path"]
            body = source.read_text(encoding="utf-8")
            filename = entry.get("filename") or source.with_suffix(".xhtml").name
        else:
            filename = entry["filename"]
        publication.add_section(
            filename,
            entry.get("title") or Path(filename).stem,
            body,
            css_filename=entry.get("css_filename"),
            exclude_from_toc=entry.get("exclude_from_toc", False),
            validate=entry.get("validate", True),
        )

    return publication


def main(manifest_file: str, output: Optional[str] = None, debug_dir: Optional[str] = None) -> Path:
    """Run the manifest → publication → EPUB pipeline."""
    manifest_path = Path(manifest_file).resolve()
    if not manifest_path.exists():
        raise FileNotFoundError(f"Build manifest not found: {manifest_path}")

    LOGGER.info("Building publication from %s", manifest_path.name)
    publication = build_publication(load_manifest(manifest_path), manifest_path.parent)

    output_path = Path(output).resolve() if output else manifest_path.with_suffix(".epub")
    write_epub(publication, output_path)

    if debug_dir:
        DebugDumper(Path(debug_dir)).dump(publication.snapshot())
    return output_path


def run(argv: Optional[List[str]] = None) -> int:
    import argparse

    parser = argparse.ArgumentParser(description="Assemble an EPUB 3 file from a JSON build manifest")
    parser.add_argument("manifest", help="Path to the JSON build manifest")
    parser.add_argument("--output", help="Path of the .epub file to write")
    parser.add_argument("--debug-dir", help="Directory to dump the frozen publication as JSON")
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging")

    args = parser.parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)
    try:
        main(args.manifest, args.output, args.debug_dir)
    except (EpubError, OSError, ValueError, KeyError) as exc:
        LOGGER.error("Failed to build EPUB: %s", exc)
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(run())
