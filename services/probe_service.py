# services/probe_service.py
import logging
from typing import List, Optional, Sequence

import requests

from models import ProbeHit
from services.errors import StoreIOError
from services.key_scheme import KeyScheme, sanitize_entity_id

logger = logging.getLogger(__name__)

DEFAULT_PROBE_EXTENSIONS = ("png", "jpg", "jpeg")

# one pool per worker, reused across invocations
_SESSION = requests.Session()


class FallbackProber:
    """
    Read-only discovery for deployments without a storage connection string.

    Walks 1, 2, 3, ... against the public URLs and stops at the first number
    that exists in none of the extensions, so images past a numbering gap are
    invisible here.
    """

    def __init__(self, scheme: KeyScheme, session: Optional[requests.Session] = None, timeout: float = 10.0):
        self.scheme = scheme
        self.session = session or _SESSION
        self.timeout = timeout

    def head_exists(self, url: str) -> bool:
        try:
            r = self.session.head(url, timeout=self.timeout, allow_redirects=True)
        except requests.RequestException as e:
            raise StoreIOError("head", url, e) from e
        return r.ok

    def probe(
        self,
        entity_id: str,
        max_probe: int = 20,
        single: bool = False,
        extensions: Sequence[str] = DEFAULT_PROBE_EXTENSIONS,
    ) -> List[ProbeHit]:
        entity_id = sanitize_entity_id(entity_id)
        hits: List[ProbeHit] = []
        for sequence in range(1, max_probe + 1):
            hit = self._probe_one(entity_id, sequence, extensions)
            if hit is None:
                break
            hits.append(hit)
            if single:
                break
        logger.debug("Probed %s: %d image(s)", entity_id, len(hits))
        return hits

    def _probe_one(self, entity_id: str, sequence: int, extensions: Sequence[str]) -> Optional[ProbeHit]:
        for ext in extensions:
            url = self.scheme.public_url(entity_id, sequence, ext)
            if self.head_exists(url):
                return ProbeHit(
                    sequence=sequence,
                    extension=ext,
                    url=url,
                    name=self.scheme.build_key(entity_id, sequence, ext),
                )
        return None
