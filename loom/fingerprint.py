"""
Fingerprint generator for reproducible resolutions.

Generates deterministic SHA-256 fingerprints from a resolved application's
redacted document. Two resolutions of the same manifest against the same
collaborator responses always share a fingerprint.
"""

import hashlib
import json
from typing import Any, Dict


class FingerprintGenerator:
    """
    Generates deterministic fingerprints for resolved applications.

    Fingerprint includes:
    - Application metadata and bound (non-secret) variable values
    - Triggers and their bindings
    - Every resolved component: source reference, effective configuration,
      pinned dependencies
    - The dependency graph and build order

    Excludes:
    - Secret values (only their presence is hashed)
    - The fingerprint field itself
    """

    def generate(self, document: Dict[str, Any]) -> str:
        """
        Generate fingerprint from a resolved application document.

        Args:
            document: Output of ResolvedApplication.to_dict(redact=True)

        Returns:
            SHA-256 hex digest string
        """
        canonical = self._canonicalize_dict(
            {k: v for k, v in document.items() if k != "fingerprint"}
        )
        json_str = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
        hash_obj = hashlib.sha256(json_str.encode("utf-8"))
        return hash_obj.hexdigest()

    def _canonicalize_dict(self, d: dict) -> Dict[str, Any]:
        """
        Canonicalize dict (sort keys, normalize nested containers).

        List order is kept: ordered fields (files, build order) are
        meaningful.
        """
        result: Dict[str, Any] = {}

        for key in sorted(d.keys()):
            value = d[key]

            if isinstance(value, dict):
                result[key] = self._canonicalize_dict(value)
            elif isinstance(value, (list, tuple)):
                result[key] = [
                    self._canonicalize_dict(v) if isinstance(v, dict) else v
                    for v in value
                ]
            else:
                result[key] = value

        return result

