"""
Legacy GConf preference tree.

GConf kept one ``%gconf.xml`` file per directory:

    ~/.gconf/apps/gnucash/general/%gconf.xml
        <gconf>
            <entry name="autosave_time_minutes" type="int" value="5"/>
            <entry name="currency_other" type="string">
                <stringvalue>EUR</stringvalue>
            </entry>
        </gconf>

Every file has the same base name, so before migration each one is staged
into the temp directory under a flattened name derived from its GConf path
(``/apps/gnucash/general`` -> ``apps-gnucash-general.xml``). The migration
transform asks for that flattened name and the resource resolver finds it
in the temp directory.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

from lxml import etree

logger = logging.getLogger(__name__)

GCONF_FILENAME = "%gconf.xml"


def staged_name(gconf_path: str) -> str:
    """Flattened file name for a GConf directory path.

    Example:
        >>> staged_name("/apps/gnucash/general/register")
        'apps-gnucash-general-register.xml'
    """
    return gconf_path.strip("/").replace("/", "-") + ".xml"


class GconfLegacySource:
    """A GConf preference tree rooted at a directory (normally ~/.gconf)."""

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root).expanduser()
        self._entries: Dict[str, Dict[str, Any]] = {}

    def exists(self) -> bool:
        return self.root.is_dir()

    def iter_files(self) -> Iterator[tuple[str, Path]]:
        """Yield (gconf_path, file) for every %gconf.xml under the root."""
        if not self.exists():
            return
        for file in sorted(self.root.rglob(GCONF_FILENAME)):
            rel = file.parent.relative_to(self.root).as_posix()
            yield "/" + ("" if rel == "." else rel), file

    def stage(self, tmp_dir: str | Path) -> List[Path]:
        """Copy every GConf file into tmp_dir under its flattened name.

        Returns:
            Paths of the staged copies
        """
        tmp_dir = Path(tmp_dir)
        staged = []
        for gconf_path, file in self.iter_files():
            if gconf_path == "/":
                continue
            dest = tmp_dir / staged_name(gconf_path)
            shutil.copyfile(file, dest)
            staged.append(dest)
            logger.debug(f"Staged {file} as {dest.name}")
        logger.info(f"Staged {len(staged)} legacy preference files from {self.root}")
        return staged

    def get(self, gconf_path: str, key: str) -> Optional[Any]:
        """Read one legacy value, or None if the file or entry is missing.

        Values are converted by their GConf type; an entry whose value does
        not convert (an int entry holding "ten", say) also reads as None.
        """
        return self._load(gconf_path).get(key)

    def clear(self) -> None:
        """Forget parsed files so the next get() reads them again."""
        self._entries.clear()

    def _load(self, gconf_path: str) -> Dict[str, Any]:
        gconf_path = "/" + gconf_path.strip("/")
        cached = self._entries.get(gconf_path)
        if cached is not None:
            return cached

        file = self.root / gconf_path.lstrip("/") / GCONF_FILENAME
        entries: Dict[str, Any] = {}
        try:
            tree = etree.parse(str(file))
        except (OSError, etree.XMLSyntaxError) as e:
            logger.debug(f"No legacy preferences at {gconf_path}: {e}")
        else:
            for entry in tree.getroot().iterfind("entry"):
                value = _entry_value(entry)
                if value is not None:
                    entries[entry.get("name")] = value

        self._entries[gconf_path] = entries
        return entries


def _entry_value(entry: etree._Element) -> Optional[Any]:
    kind = entry.get("type")
    if kind == "string":
        return entry.findtext("stringvalue")
    raw = entry.get("value")
    if raw is None:
        return None
    try:
        if kind == "bool":
            return raw == "true"
        if kind == "int":
            return int(raw)
        if kind == "float":
            return float(raw)
    except ValueError:
        logger.warning(f"Malformed legacy {kind} value {raw!r} for {entry.get('name')}")
        return None
    return None
