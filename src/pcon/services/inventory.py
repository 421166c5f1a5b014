"""Media inventory: a read-only projection of the project's media items."""

import hashlib
import logging
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path

from pcon.models.media import Inventory, InventoryItem
from pcon.models.project import MediaItem, ProjectGraph

logger = logging.getLogger(__name__)

HASH_CHUNK_SIZE = 1024 * 1024

_SIZE_UNITS = ["B", "KB", "MB", "GB", "TB"]


def format_file_size(size: int) -> str:
    """Format a byte count, e.g. ``1536`` -> ``"1.50 KB"``."""
    value = float(max(size, 0))
    unit = 0
    while value >= 1024 and unit < len(_SIZE_UNITS) - 1:
        value /= 1024
        unit += 1
    if unit == 0:
        return f"{int(value)} B"
    return f"{value:.2f} {_SIZE_UNITS[unit]}"


def find_sidecar_files(media_path: Path) -> list[Path]:
    """Companion files stored next to a media file.

    - ``<stem>.xmp`` for any media
    - ``.wav`` / ``.rmd`` files starting with the stem for RED ``.r3d`` clips
    - ``<stem>.sidecar`` for Blackmagic ``.braw`` clips
    """
    parent = media_path.parent
    stem = media_path.stem
    ext = media_path.suffix.lower()
    sidecars: list[Path] = []

    xmp = parent / f"{stem}.xmp"
    if xmp.is_file():
        sidecars.append(xmp)

    if ext == ".r3d" and parent.is_dir():
        for entry in sorted(parent.iterdir()):
            if (
                entry.is_file()
                and entry.stem.startswith(stem)
                and entry.suffix.lower() in (".wav", ".rmd")
            ):
                sidecars.append(entry)
    elif ext == ".braw":
        braw_sidecar = parent / f"{stem}.sidecar"
        if braw_sidecar.is_file():
            sidecars.append(braw_sidecar)

    return sidecars


def compute_partial_hash(path: Path) -> str:
    """Hash of the first and last MiB plus the file size."""
    size = path.stat().st_size
    hasher = hashlib.blake2b(digest_size=16)
    with open(path, "rb") as f:
        hasher.update(f.read(HASH_CHUNK_SIZE))
        if size > HASH_CHUNK_SIZE * 2:
            f.seek(-HASH_CHUNK_SIZE, 2)
            hasher.update(f.read(HASH_CHUNK_SIZE))
    hasher.update(size.to_bytes(8, "little"))
    return hasher.hexdigest()


def find_common_ancestor(paths: list[Path]) -> Path | None:
    """Deepest directory containing every path's parent."""
    if not paths:
        return None
    common = list(paths[0].parent.parts)
    for path in paths[1:]:
        parts = path.parent.parts
        length = 0
        while length < min(len(common), len(parts)) and common[length] == parts[length]:
            length += 1
        common = common[:length]
    if not common:
        return None
    return Path(*common)


class MediaInventory:
    """Builds the inventory of a project graph.

    Args:
        exists: Online check for a path (defaults to ``Path.is_file``)
        detect_duplicates: Hash same-sized online files to flag duplicates
    """

    def __init__(
        self,
        exists: Callable[[Path], bool] | None = None,
        detect_duplicates: bool = True,
    ) -> None:
        self._exists = exists or (lambda p: p.is_file())
        self._detect_duplicates = detect_duplicates

    def scan(self, graph: ProjectGraph) -> Inventory:
        """Project every main media item, in declaration order."""
        items = [self._scan_item(graph, media) for media in graph.main_media()]
        if self._detect_duplicates:
            self._mark_duplicates(items)

        inventory = Inventory(items=items)
        logger.info(
            "Inventory: %d items (%d online, %d offline), %d bytes",
            inventory.count,
            inventory.online_count,
            inventory.offline_count,
            inventory.total_size,
        )
        return inventory

    def _scan_item(self, graph: ProjectGraph, media: MediaItem) -> InventoryItem:
        is_online = self._exists(media.path)
        file_size = _file_size(media.path) if is_online else 0
        sidecars = find_sidecar_files(media.path) if is_online else []

        proxy = graph.get_media(media.proxy_id) if media.proxy_id else None
        proxy_online = proxy is not None and self._exists(proxy.path)

        project_item = graph.project_item_for_media(media.object_id)
        return InventoryItem(
            object_id=media.object_id,
            path=media.path,
            file_name=media.file_name,
            kind=media.kind,
            is_online=is_online,
            file_size=file_size,
            duration_ticks=media.duration_ticks,
            proxy_id=proxy.object_id if proxy is not None else None,
            proxy_path=proxy.path if proxy is not None else None,
            proxy_online=proxy_online,
            proxy_size=_file_size(proxy.path) if proxy_online else 0,
            sidecars=sidecars,
            sidecar_size=sum(_file_size(p) for p in sidecars),
            bin_path=graph.bin_path_for_media(media.object_id),
            project_item_name=project_item.name if project_item is not None else None,
        )

    def _mark_duplicates(self, items: list[InventoryItem]) -> None:
        by_size: dict[int, list[int]] = defaultdict(list)
        for index, item in enumerate(items):
            if item.is_online and item.file_size > 0:
                by_size[item.file_size].append(index)

        for indices in by_size.values():
            if len(indices) < 2:
                continue
            first_by_hash: dict[str, str] = {}
            for index in indices:
                item = items[index]
                try:
                    digest = compute_partial_hash(item.path)
                except OSError as e:
                    logger.warning("Could not hash %s: %s", item.path, e)
                    continue
                original = first_by_hash.setdefault(digest, item.object_id)
                if original != item.object_id:
                    items[index] = item.model_copy(update={"duplicate_of": original})
                    logger.info("%s duplicates media %s", item.file_name, original)


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size
    except OSError:
        return 0
