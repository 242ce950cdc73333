# services/renumber.py
"""
Two-phase staged rewrite of an entity's numbered blobs.

Blob storage has no rename and no multi-key transaction, so moving
``3.png`` to ``2.png`` while ``2.jpg`` still exists is unsafe. Every move
goes through the disjoint ``tmp_{n}.{ext}`` namespace instead:

    Phase A (stage):   {old}.{ext}   -> tmp_{new}.{ext}
    Phase B (promote): tmp_{new}.{ext} -> {new}.{ext}

Steps run strictly one at a time and the source bytes are fully read before
anything is deleted. The first store failure aborts the plan and raises
PartialRenumber; nothing is retried or rolled back.
"""
import logging
from typing import Iterable, Optional, Sequence

from models import ImageObject, RenumberPlan, RenumberStep
from services.blob_service import BlobStore
from services.errors import PartialRenumber, StoreIOError
from services.key_scheme import KeyScheme

logger = logging.getLogger(__name__)


class StagedRenumber:
    def __init__(self, store: BlobStore, scheme: KeyScheme, entity_id: str):
        self.store = store
        self.scheme = scheme
        self.entity_id = entity_id

    def plan(self, ordered: Sequence[ImageObject]) -> RenumberPlan:
        """Position i (0-based) in `ordered` becomes sequence i + 1."""
        steps = []
        for position, image in enumerate(ordered, start=1):
            steps.append(
                RenumberStep(
                    source=image,
                    new_sequence=position,
                    staging_key=self.scheme.staging_key(self.entity_id, position, image.extension),
                    final_key=self.scheme.build_key(self.entity_id, position, image.extension),
                )
            )
        return RenumberPlan(entity_id=self.entity_id, steps=steps)

    def run(self, plan: RenumberPlan, originals_to_delete: Optional[Iterable[str]] = None) -> None:
        """
        originals_to_delete=None: each source is deleted right after its staged
        copy is written (compaction). Otherwise every step is staged first and
        the given keys are deleted afterwards (reorder, where pruned images are
        among the keys to delete).
        """
        if originals_to_delete is None:
            self._stage(plan, delete_sources=True)
        else:
            self._stage(plan, delete_sources=False)
            self._delete_originals(list(originals_to_delete))
        self._promote(plan)
        logger.info("Renumbered %d image(s) for %s", len(plan), self.entity_id)

    # ────────────────────────────────────────────────────────────
    def _copy(self, src_key: str, dst_key: str, content_type: str) -> None:
        data = self.store.get_object(src_key)
        self.store.put_object(dst_key, data, content_type, overwrite=True)

    def _stage(self, plan: RenumberPlan, delete_sources: bool) -> None:
        done = 0
        try:
            for step in plan.steps:
                self._copy(step.source.key, step.staging_key, step.source.content_type)
                if delete_sources:
                    self.store.delete_object(step.source.key)
                done += 1
        except StoreIOError as e:
            raise PartialRenumber(self.entity_id, "stage", done, e) from e

    def _delete_originals(self, keys: Sequence[str]) -> None:
        done = 0
        try:
            for key in keys:
                self.store.delete_object(key)
                done += 1
        except StoreIOError as e:
            raise PartialRenumber(self.entity_id, "delete", done, e) from e

    def _promote(self, plan: RenumberPlan) -> None:
        done = 0
        try:
            for step in plan.steps:
                self._copy(step.staging_key, step.final_key, step.source.content_type)
                self.store.delete_object(step.staging_key)
                done += 1
        except StoreIOError as e:
            raise PartialRenumber(self.entity_id, "promote", done, e) from e
