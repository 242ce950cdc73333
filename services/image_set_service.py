# services/image_set_service.py
import logging
from typing import Dict, List, Optional, Sequence

from models import ImageObject, ImageSet, content_type_for
from services.blob_service import BlobStore, get_blob_store
from services.entity_lock import entity_lock
from services.errors import (
    CorruptImageSet,
    InvalidInput,
    NotFound,
    PartialRenumber,
    StoreIOError,
    StoreUnavailable,
)
from services.key_scheme import KeyScheme, extension_for_upload, sanitize_entity_id
from services.probe_service import FallbackProber
from services.renumber import StagedRenumber
from utils.env import env_float, env_int

logger = logging.getLogger(__name__)

DEFAULT_MAX_UPLOAD_BYTES = 20 * 1024 * 1024
DEFAULT_LOCK_TIMEOUT = 30.0
DEFAULT_PROBE_MAX = 20


def positive_int(value, label: str) -> int:
    """Accept ints and digit strings (query params, JSON bodies); bools are rejected."""
    if isinstance(value, bool):
        raise InvalidInput(f"{label} must be a positive integer")
    if isinstance(value, int):
        number = value
    elif isinstance(value, str) and value.strip().isdigit():
        number = int(value.strip())
    else:
        raise InvalidInput(f"{label} must be a positive integer")
    if number < 1:
        raise InvalidInput(f"{label} must be a positive integer")
    return number


class ImageSetService:
    """
    Keeps one vehicle's blobs numbered 1..N under {prefix}{VIN}/.

    Every mutating call holds the per-VIN lock for its whole duration and
    re-lists the store instead of trusting earlier results.
    """

    def __init__(
        self,
        store: BlobStore,
        scheme: KeyScheme,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT,
        max_upload_bytes: int = DEFAULT_MAX_UPLOAD_BYTES,
    ):
        self.store = store
        self.scheme = scheme
        self.lock_timeout = lock_timeout
        self.max_upload_bytes = max_upload_bytes

    def _lock(self, entity_id: str):
        return entity_lock(entity_id, timeout=self.lock_timeout)

    def _renumber(self, entity_id: str) -> StagedRenumber:
        return StagedRenumber(self.store, self.scheme, entity_id)

    # ───────────── LISTING ─────────────────────────────────────────────────────
    def list_images(self, entity_id: str) -> ImageSet:
        entity_id = sanitize_entity_id(entity_id)
        pattern = self.scheme.match_pattern(entity_id)
        staging = self.scheme.staging_pattern(entity_id)

        images: List[ImageObject] = []
        staged: List[str] = []
        for entry in self.store.list_objects(self.scheme.entity_prefix(entity_id)):
            m = pattern.match(entry.key)
            if m:
                images.append(
                    ImageObject(
                        key=entry.key,
                        entity_id=entity_id,
                        sequence=int(m.group(1)),
                        extension=m.group(2).lower(),
                        size=entry.size,
                        etag=entry.etag,
                    )
                )
            elif staging.match(entry.key):
                staged.append(entry.key)
            # anything else (.keep, stray uploads) is not part of the set

        images.sort(key=lambda img: (img.sequence, img.key))
        return ImageSet(entity_id=entity_id, images=tuple(images), staged=tuple(sorted(staged)))

    def next_sequence(self, entity_id: str) -> int:
        return self.list_images(entity_id).max_sequence + 1

    # ───────────── UPLOAD ──────────────────────────────────────────────────────
    def upload(
        self,
        entity_id: str,
        data: bytes,
        filename: Optional[str] = None,
        content_type: Optional[str] = None,
    ) -> ImageObject:
        entity_id = sanitize_entity_id(entity_id)
        if not data:
            raise InvalidInput("Empty file")
        if len(data) > self.max_upload_bytes:
            raise InvalidInput(f"File too large (limit {self.max_upload_bytes} bytes)")
        ext = extension_for_upload(filename, content_type)
        if not content_type or not content_type.startswith("image/"):
            content_type = content_type_for(ext)

        with self._lock(entity_id):
            sequence = self.next_sequence(entity_id)
            key = self.scheme.build_key(entity_id, sequence, ext)
            self.store.put_object(key, data, content_type, overwrite=False)

        logger.info("Uploaded %s (%d bytes)", key, len(data))
        return ImageObject(key=key, entity_id=entity_id, sequence=sequence, extension=ext, size=len(data))

    # ───────────── DELETE + COMPACT ────────────────────────────────────────────
    def delete_and_compact(self, entity_id: str, target_sequence) -> ImageSet:
        entity_id = sanitize_entity_id(entity_id)
        target_sequence = positive_int(target_sequence, "imageNumber")

        with self._lock(entity_id):
            current = self.list_images(entity_id)
            if current.staged:
                raise CorruptImageSet(f"Unfinished renumber for {entity_id}; run repair first")
            matches = current.find(target_sequence)
            if not matches:
                raise NotFound("Image not found")
            if len(matches) > 1:
                raise CorruptImageSet(
                    f"Image number {target_sequence} is used {len(matches)} times for {entity_id}; run repair first"
                )

            self.store.delete_object(matches[0].key)

            remaining = self.list_images(entity_id)
            if remaining.is_contiguous:
                logger.info("Deleted %s, numbering already contiguous", matches[0].key)
                return remaining

            logger.warning(
                "Deleted %s, compacting %d image(s) for %s", matches[0].key, len(remaining), entity_id
            )
            renumber = self._renumber(entity_id)
            renumber.run(renumber.plan(remaining.images))
            return self.list_images(entity_id)

    # ───────────── REORDER ─────────────────────────────────────────────────────
    def reorder(self, entity_id: str, new_order: Sequence, prune: bool = False) -> ImageSet:
        """
        new_order[i] is the current number that should end up at i + 1.

        Images left out of new_order keep their relative order after the listed
        ones, unless prune=True, in which case they are deleted.
        """
        entity_id = sanitize_entity_id(entity_id)
        if not isinstance(new_order, (list, tuple)) or not new_order:
            raise InvalidInput("newOrder array required")
        order = [positive_int(n, "newOrder entry") for n in new_order]
        if len(set(order)) != len(order):
            raise InvalidInput("newOrder contains duplicate numbers")

        with self._lock(entity_id):
            current = self.list_images(entity_id)
            if current.needs_repair:
                raise CorruptImageSet(f"Image set for {entity_id} needs repair before reordering")

            by_number: Dict[int, ImageObject] = {img.sequence: img for img in current}
            missing = [n for n in order if n not in by_number]
            if missing:
                raise NotFound(f"Image number(s) not found: {', '.join(map(str, missing))}")

            ordered = [by_number[n] for n in order]
            listed = set(order)
            omitted = [img for img in current if img.sequence not in listed]
            if not prune:
                ordered.extend(omitted)
            elif omitted:
                logger.info("Pruning %d image(s) for %s", len(omitted), entity_id)

            renumber = self._renumber(entity_id)
            renumber.run(renumber.plan(ordered), originals_to_delete=[img.key for img in current])
            return self.list_images(entity_id)

    # ───────────── REPAIR ──────────────────────────────────────────────────────
    def repair(self, entity_id: str) -> ImageSet:
        """
        Bring a set left behind by a failed renumber back to 1..N.

        A tmp_{n} blob with the same bytes as a numbered image is a copy of it.
        If every staged blob is such a copy, the renumber never removed an
        original and the copies are dropped. Otherwise the staged blobs win:
        their numbered twins are deleted and each staged blob goes back to the
        position n it was staged for, ahead of unmoved images at the same
        number. Duplicated numbers end up on distinct positions, ordered by key.
        """
        entity_id = sanitize_entity_id(entity_id)
        with self._lock(entity_id):
            current = self.list_images(entity_id)
            if not current.staged and current.is_contiguous:
                return current

            positions: Dict[str, int] = {}
            if current.staged:
                positions = self._resolve_staged(current)
                current = self.list_images(entity_id)

            def rank(img: ImageObject):
                if img.key in positions:
                    return (positions[img.key], 0, img.key)
                return (img.sequence, 1, img.key)

            ordered = sorted(current.images, key=rank)
            if [img.key for img in ordered] != [
                self.scheme.build_key(entity_id, i, img.extension) for i, img in enumerate(ordered, start=1)
            ]:
                logger.warning("Repairing numbering for %s: %s", entity_id, current.sequences)
                renumber = self._renumber(entity_id)
                renumber.run(renumber.plan(ordered))
            return self.list_images(entity_id)

    def _resolve_staged(self, current: ImageSet) -> Dict[str, int]:
        """
        Settle orphaned tmp_* blobs. Survivors move to the number they were
        staged for, or above the current maximum when that number is taken;
        returns {new key: staged position}.
        """
        entity_id = current.entity_id
        staging = self.scheme.staging_pattern(entity_id)
        orphans = []
        for key in current.staged:
            m = staging.match(key)
            orphans.append((int(m.group(1)), key, m.group(2).lower()))
        orphans.sort()

        done = 0
        try:
            contents: Dict[str, bytes] = {}

            def content(key: str) -> bytes:
                if key not in contents:
                    contents[key] = self.store.get_object(key)
                return contents[key]

            twins: Dict[str, ImageObject] = {}
            claimed = set()
            for _, key, _ext in orphans:
                data = content(key)
                for img in current.images:
                    if img.key in claimed or img.size != len(data):
                        continue
                    if content(img.key) == data:
                        twins[key] = img
                        claimed.add(img.key)
                        break

            if len(twins) == len(orphans):
                # originals all still in place: the copies are redundant
                for _, key, _ext in orphans:
                    self.store.delete_object(key)
                    done += 1
                logger.warning("Dropped %d redundant staging blob(s) for %s", done, entity_id)
                return {}

            # each copy supersedes its twin
            for img in twins.values():
                self.store.delete_object(img.key)

            # tmp_{n} lands on n when that number is free, else above everything
            occupied = {img.sequence for img in current.images if img.key not in claimed}
            next_free = max(occupied | {n for n, _, _ in orphans}) + 1
            positions: Dict[str, int] = {}
            for position, key, ext in orphans:
                if position in occupied:
                    number = next_free
                    next_free += 1
                else:
                    number = position
                occupied.add(number)
                final_key = self.scheme.build_key(entity_id, number, ext)
                self.store.put_object(final_key, content(key), content_type_for(ext), overwrite=False)
                self.store.delete_object(key)
                positions[final_key] = position
                done += 1
        except StoreIOError as e:
            raise PartialRenumber(entity_id, "adopt", done, e) from e
        logger.warning("Adopted %d orphaned staging blob(s) for %s", done, entity_id)
        return positions

    # ───────────── FOLDER ──────────────────────────────────────────────────────
    def ensure_folder(self, entity_id: str) -> Dict:
        """Materialise {prefix}{VIN}/ with an empty .keep blob when nothing is there yet."""
        entity_id = sanitize_entity_id(entity_id)
        prefix = self.scheme.entity_prefix(entity_id)
        with self._lock(entity_id):
            entries = self.store.list_objects(prefix)
            try:
                exists = next(entries, None) is not None
            finally:
                entries.close()
            if not exists:
                self.store.put_object(self.scheme.placeholder_key(entity_id), b"", "text/plain")
        return {"created": not exists, "container": self.store.container_name, "path": prefix}


# ───────────── WIRING ──────────────────────────────────────────────────────────
def get_image_service(scheme: Optional[KeyScheme] = None) -> Optional[ImageSetService]:
    scheme = scheme or KeyScheme.from_env()
    store = get_blob_store(scheme)
    if store is None:
        return None
    return ImageSetService(
        store,
        scheme,
        lock_timeout=env_float("LOCK_TIMEOUT_SECONDS", DEFAULT_LOCK_TIMEOUT),
        max_upload_bytes=env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES),
    )


def require_image_service(scheme: Optional[KeyScheme] = None) -> ImageSetService:
    service = get_image_service(scheme)
    if service is None:
        raise StoreUnavailable("Storage not configured for writes")
    return service


def get_prober(scheme: KeyScheme) -> FallbackProber:
    return FallbackProber(scheme, timeout=env_float("STORE_TIMEOUT_SECONDS", 10.0))


def list_entries(raw_vin, single: bool = False) -> List[Dict]:
    """
    [{name, url, number}] for display, from the store when a connection string
    is configured, otherwise by HEAD-probing the public URLs.
    """
    scheme = KeyScheme.from_env()
    entity_id = sanitize_entity_id(raw_vin)
    service = get_image_service(scheme)
    if service is not None:
        images = service.list_images(entity_id).images
        if single:
            images = images[:1]
        return [
            {
                "name": img.key,
                "url": scheme.public_url(entity_id, img.sequence, img.extension),
                "number": img.sequence,
            }
            for img in images
        ]

    hits = get_prober(scheme).probe(
        entity_id, max_probe=env_int("PROBE_MAX", DEFAULT_PROBE_MAX), single=single
    )
    return [{"name": h.name, "url": h.url, "number": h.sequence} for h in hits]
