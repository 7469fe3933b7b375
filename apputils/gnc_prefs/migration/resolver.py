"""
External resource resolution for the migration transform.

Migration templates refer to companion files (staged legacy data, included
stylesheets) by base name only. The resolver first lets the normal lookup
happen; only when that would fail does it retry with
``<tmp_dir>/<basename-of-url>``, so templates never need to know where the
temp directory is.

The resolver is attached to a parser created for one migration run. Nothing
global is swapped, so separate runs cannot interfere with each other.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from lxml import etree

logger = logging.getLogger(__name__)


def _local_path(url: str) -> Optional[Path]:
    """Filesystem path named by a plain path or file: URL, else None."""
    parsed = urlparse(url)
    if parsed.scheme == "file":
        return Path(url2pathname(unquote(parsed.path)))
    if parsed.scheme == "" or (len(parsed.scheme) == 1 and url[1:2] == ":"):
        # Plain path (a one-letter scheme is a Windows drive)
        return Path(url)
    return None


def basename(url: str) -> str:
    """Last path segment of a URL or path."""
    return url.rsplit("/", 1)[-1]


class TempDirFallbackResolver(etree.Resolver):
    """lxml resolver falling back to the migration temp directory.

    Attributes:
        tmp_dir: Directory holding staged companion files
        failures: URLs (or public ids) that could not be resolved
    """

    def __init__(self, tmp_dir: str | Path) -> None:
        super().__init__()
        self.tmp_dir = Path(tmp_dir)
        self.failures: List[str] = []

    def locate(self, url: Optional[str], public_id: Optional[str] = None) -> Optional[Path]:
        """Find the file for a requested resource.

        Returns:
            The default location if it exists, otherwise the temp-dir copy
            if that exists, otherwise None (with a warning logged)
        """
        if url:
            default = _local_path(url)
            if default is not None and default.is_file():
                return default

            fallback = self.tmp_dir / basename(url)
            if fallback.is_file():
                logger.debug(f"Resolved {url} from migration temp dir as {fallback}")
                return fallback

        failed = url or public_id
        logger.warning(f'failed to load external entity "{failed}"')
        self.failures.append(str(failed))
        return None

    def resolve(self, system_url, public_id, context):
        path = self.locate(system_url, public_id)
        if path is None:
            # Let lxml's own loader report the failure
            return None
        return self.resolve_filename(str(path), context)


def make_parser(resolver: etree.Resolver) -> etree.XMLParser:
    """Parser for one migration run, with entity substitution and the resolver."""
    parser = etree.XMLParser(
        load_dtd=True,
        resolve_entities=True,
        no_network=True,
    )
    parser.resolvers.add(resolver)
    return parser
