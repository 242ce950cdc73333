### models/__init__.py
from .base import Base
from .unit import Unit
from .image import (
    ALLOWED_EXTENSIONS,
    ImageObject,
    ImageSet,
    ProbeHit,
    RenumberPlan,
    RenumberStep,
    content_type_for,
)
