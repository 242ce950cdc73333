# models/image.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

ALLOWED_EXTENSIONS = ("png", "jpg", "jpeg", "webp", "gif")


def content_type_for(ext: str) -> str:
    ext = ext.lower()
    return "image/jpeg" if ext in ("jpg", "jpeg") else f"image/{ext}"


@dataclass(frozen=True)
class ImageObject:
    """One numbered blob in a vehicle's image set."""
    key: str
    entity_id: str
    sequence: int
    extension: str
    size: int = 0
    etag: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self.sequence}.{self.extension}"

    @property
    def content_type(self) -> str:
        return content_type_for(self.extension)


@dataclass(frozen=True)
class ImageSet:
    """
    Current listing of an entity's images, ascending by sequence.

    `staged` holds any tmp_* keys found under the prefix; they only exist while
    a renumber is running or after one failed half way.
    """
    entity_id: str
    images: Tuple[ImageObject, ...] = ()
    staged: Tuple[str, ...] = ()

    def __len__(self) -> int:
        return len(self.images)

    def __iter__(self):
        return iter(self.images)

    @property
    def sequences(self) -> List[int]:
        return [img.sequence for img in self.images]

    @property
    def max_sequence(self) -> int:
        return self.images[-1].sequence if self.images else 0

    @property
    def is_contiguous(self) -> bool:
        return self.sequences == list(range(1, len(self.images) + 1))

    @property
    def duplicates(self) -> List[int]:
        seen: Dict[int, int] = {}
        for seq in self.sequences:
            seen[seq] = seen.get(seq, 0) + 1
        return sorted(seq for seq, count in seen.items() if count > 1)

    @property
    def needs_repair(self) -> bool:
        return bool(self.staged) or bool(self.duplicates)

    def find(self, sequence: int) -> List[ImageObject]:
        return [img for img in self.images if img.sequence == sequence]


@dataclass(frozen=True)
class RenumberStep:
    source: ImageObject
    new_sequence: int
    staging_key: str
    final_key: str


@dataclass
class RenumberPlan:
    """Ordered old -> new mapping for a single compaction, reorder or repair."""
    entity_id: str
    steps: List[RenumberStep] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.steps)


@dataclass(frozen=True)
class ProbeHit:
    sequence: int
    extension: str
    url: str
    name: str
