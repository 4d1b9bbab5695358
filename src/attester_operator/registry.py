"""In-memory registry of ready-to-use attesters."""

from __future__ import annotations

import base64
import json
import threading
from dataclasses import dataclass
from typing import Any

from . import metrics
from .services.policy import Policy
from .services.signer import Signer
from .utils.errors import PolicyViolationError


@dataclass(frozen=True)
class Attestation:
    """A signed statement that a payload satisfied an attester's policy."""

    attester: str
    payload: bytes
    signature: bytes
    key_id: str

    def to_dict(self) -> dict[str, str]:
        return {
            "attester": self.attester,
            "payload": base64.b64encode(self.payload).decode("utf-8"),
            "signature": base64.b64encode(self.signature).decode("utf-8"),
            "keyId": self.key_id,
        }


@dataclass(frozen=True)
class Attester:
    """A compiled policy paired with the signer that vouches for it."""

    name: str
    policy: Policy
    signer: Signer

    def attest(self, input_data: Any) -> Attestation:
        """Sign ``input_data`` if the policy reports no violations.

        Raises:
            PolicyViolationError: If the policy rejects the input
        """
        violations = self.policy.evaluate(input_data)
        if violations:
            raise PolicyViolationError(self.name, violations)

        payload = json.dumps(input_data, sort_keys=True, separators=(",", ":")).encode("utf-8")
        return Attestation(
            attester=self.name,
            payload=payload,
            signature=self.signer.sign(payload),
            key_id=self.signer.key_id,
        )


class AttesterRegistry:
    """Thread-safe map from Attester identity to the live attester.

    Entries are immutable and replaced whole, so readers only ever see a
    complete old or new entry.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[str, Attester] = {}

    def publish(self, identity: str, policy: Policy, signer: Signer) -> Attester:
        attester = Attester(name=identity, policy=policy, signer=signer)
        with self._lock:
            self._entries[identity] = attester
            metrics.active_attesters.set(len(self._entries))
        return attester

    def remove(self, identity: str) -> bool:
        with self._lock:
            removed = self._entries.pop(identity, None) is not None
            metrics.active_attesters.set(len(self._entries))
        return removed

    def get(self, identity: str) -> Attester | None:
        with self._lock:
            return self._entries.get(identity)

    def snapshot(self) -> dict[str, Attester]:
        """Return a point-in-time copy of all entries."""
        with self._lock:
            return dict(self._entries)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._entries
