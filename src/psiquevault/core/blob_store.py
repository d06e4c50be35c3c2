"""
Per-account, per-entity encrypted collections in the shared medium

Slot Map for reference:
==============================
 - salt                                        (base64, not secret)
 - accounts                                    (JSON list)
 - <dataset>_patients_encrypted_<email>        (base64 envelope)
 - <dataset>_invoices_encrypted_<email>        (base64 envelope)
 - <dataset>_appointments_encrypted_<email>    (base64 envelope)
==============================

> A slot is a pure function of (dataset, kind, email); renaming an account means moving its slots
> Each kind is saved on its own, last write wins, no history
> load() distinguishes "nothing stored yet" (ABSENT) from "cannot open" (AuthenticationError)
"""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Iterable, List, Mapping

from .exceptions import AuthenticationError
from .models import ABSENT, EntityKind
from ..database.kvstore import KeyValueStore
from ..security.cipher import open_envelope, seal

logger = logging.getLogger(__name__)

DEFAULT_DATASET = "psiqueManager"


class NamespacedBlobStore:
    """Encrypted load/save of entity collections, one slot per (email, kind)"""

    def __init__(self, kv: KeyValueStore, dataset: str = DEFAULT_DATASET):
        self.kv = kv
        self.dataset = dataset

    def slot(self, email: str, kind: EntityKind | str) -> str:
        kind = EntityKind.parse(kind)
        return f"{self.dataset}_{kind.value}_encrypted_{email}"

    def slots_for(self, email: str) -> Dict[EntityKind, str]:
        return {kind: self.slot(email, kind) for kind in EntityKind}

    # ------------------------------------------------------------------
    # Payload codec
    # ------------------------------------------------------------------

    @staticmethod
    def _encode(payload: Any) -> bytes:
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8")

    @staticmethod
    def _decode(raw: bytes) -> Any:
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as e:
            # the tag verified, so this is a bad writer rather than bit rot; same outcome
            raise AuthenticationError("decrypted payload is not valid JSON") from e

    def seal_payload(self, payload: Any, key: bytes) -> str:
        return seal(self._encode(payload), key)

    # ------------------------------------------------------------------
    # Slot operations
    # ------------------------------------------------------------------

    def save(self, email: str, kind: EntityKind | str, payload: Any, key: bytes) -> None:
        """Seal ``payload`` and overwrite the slot for (email, kind)."""
        slot = self.slot(email, kind)
        self.kv.set(slot, self.seal_payload(payload, key))
        logger.debug("saved %s", slot)

    def load(self, email: str, kind: EntityKind | str, key: bytes) -> Any:
        """
        Return the decrypted payload, or ABSENT if nothing was ever saved.

        AuthenticationError propagates: a slot that exists but does not
        open is never reported as empty.
        """
        slot = self.slot(email, kind)
        envelope = self.kv.get(slot)
        if envelope is None:
            return ABSENT
        try:
            return self._decode(open_envelope(envelope, key))
        except AuthenticationError:
            logger.warning("envelope at %s failed authentication", slot)
            raise

    def exists(self, email: str, kind: EntityKind | str) -> bool:
        return self.kv.contains(self.slot(email, kind))

    def read_raw(self, email: str, kind: EntityKind | str):
        """Return the stored envelope string or None."""
        return self.kv.get(self.slot(email, kind))

    def delete(self, email: str, kind: EntityKind | str) -> bool:
        return self.kv.delete(self.slot(email, kind))

    def delete_all(self, email: str) -> None:
        self.kv.write_batch(deletes=self.slots_for(email).values())

    # ------------------------------------------------------------------
    # Staging helpers for atomic multi-slot changes
    # ------------------------------------------------------------------

    def staged_envelopes(
        self, email: str, payloads: Mapping[EntityKind, Any], key: bytes
    ) -> Dict[str, str]:
        """Seal every payload under ``key``; nothing is written."""
        return {
            self.slot(email, kind): self.seal_payload(payload, key)
            for kind, payload in payloads.items()
        }

    def staged_move(self, old_email: str, new_email: str) -> tuple[Dict[str, str], List[str]]:
        """
        Plan a copy of every existing slot from ``old_email`` to ``new_email``.

        Returns (puts, deletes) for KeyValueStore.write_batch. Envelopes are
        copied byte for byte; they do not depend on the slot name.
        """
        puts: Dict[str, str] = {}
        deletes: List[str] = []
        for kind in EntityKind:
            envelope = self.read_raw(old_email, kind)
            if envelope is None:
                continue
            puts[self.slot(new_email, kind)] = envelope
            deletes.append(self.slot(old_email, kind))
        return puts, deletes

    def kinds_present(self, email: str) -> Iterable[EntityKind]:
        return [kind for kind in EntityKind if self.exists(email, kind)]
