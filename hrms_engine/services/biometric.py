import json
import logging
from collections import namedtuple
from typing import List, Optional, Sequence, Union

import numpy as np

from hrms_engine.common.errors import Conflict, NotFound, ValidationError
from hrms_engine.extensions import db
from hrms_engine.models.employee import Employee
from hrms_engine.models.face_profile import EmployeeBiometricProfile

log = logging.getLogger(__name__)

# Face data captured by the client-side recognition model for one punch.
Capture = namedtuple("Capture", "descriptor face_detected image_ref", defaults=(True, None))

MatchResult = namedtuple("MatchResult", "matched distance face_status")

FACE_MATCH = "MATCH"
FACE_MISMATCH = "MISMATCH"
FACE_NOT_DETECTED = "NO_FACE"
FACE_NO_PROFILE = "NO_PROFILE"
FACE_BAD_DESCRIPTOR = "BAD_DESCRIPTOR"


class BiometricVerifier:
    """
    Euclidean match between an enrolled and a freshly captured descriptor.
    Pure: holds no state and persists nothing.
    """

    MATCH_THRESHOLD = 0.6      # typical for 128-d face descriptors
    MIN_DESCRIPTOR_LENGTH = 32

    @staticmethod
    def parse_descriptor(raw: Union[str, Sequence[float], None], min_length: int = None) -> Optional[np.ndarray]:
        """
        Accepts a list of numbers, a JSON array string or a comma separated string.
        Returns None if malformed, non-finite or shorter than min_length.
        """
        if raw is None:
            return None
        min_length = BiometricVerifier.MIN_DESCRIPTOR_LENGTH if min_length is None else min_length

        values = raw
        if isinstance(raw, str):
            text = raw.strip()
            if not text:
                return None
            try:
                values = json.loads(text) if text.startswith("[") else [v for v in text.split(",") if v.strip()]
            except ValueError:
                return None

        try:
            arr = np.asarray([float(v) for v in values], dtype=np.float64)
        except (TypeError, ValueError):
            return None

        if arr.ndim != 1 or arr.size < min_length or not np.all(np.isfinite(arr)):
            return None
        return arr

    @staticmethod
    def compute_distance(emb1, emb2) -> float:
        """Euclidean distance; inf when dimensions differ."""
        a = np.asarray(emb1, dtype=np.float64)
        b = np.asarray(emb2, dtype=np.float64)
        if a.shape != b.shape:
            return float("inf")
        return float(np.linalg.norm(a - b))

    @staticmethod
    def verify(enrolled, captured, face_detected: bool = True, threshold: float = None,
               min_length: int = None) -> MatchResult:
        if not face_detected:
            return MatchResult(False, None, FACE_NOT_DETECTED)

        if enrolled is None:
            return MatchResult(False, None, FACE_NO_PROFILE)

        stored = BiometricVerifier.parse_descriptor(enrolled, min_length)
        incoming = BiometricVerifier.parse_descriptor(captured, min_length)
        if stored is None or incoming is None or stored.shape != incoming.shape:
            return MatchResult(False, None, FACE_BAD_DESCRIPTOR)

        threshold = BiometricVerifier.MATCH_THRESHOLD if threshold is None else float(threshold)
        dist = BiometricVerifier.compute_distance(stored, incoming)
        if dist <= threshold:
            return MatchResult(True, dist, FACE_MATCH)
        return MatchResult(False, dist, FACE_MISMATCH)


# ---------- enrolled profiles ----------

def get_enrolled_descriptor(employee_id: int) -> Optional[List[float]]:
    profile = EmployeeBiometricProfile.query.filter_by(employee_id=employee_id).first()
    return profile.descriptor if profile else None


def register_profile(employee_id: int, descriptor, image_ref: str = None, min_length: int = None):
    """Create the single biometric profile of an employee at registration."""
    if db.session.get(Employee, employee_id) is None:
        raise NotFound("Employee not found")

    arr = BiometricVerifier.parse_descriptor(descriptor, min_length)
    if arr is None:
        raise ValidationError("Invalid face descriptor")

    if EmployeeBiometricProfile.query.filter_by(employee_id=employee_id).first():
        raise Conflict("Biometric profile already registered")

    profile = EmployeeBiometricProfile(
        employee_id=employee_id,
        descriptor=[float(v) for v in arr],
        image_ref=image_ref,
    )
    db.session.add(profile)
    db.session.commit()
    log.info("biometric profile registered employee=%s dim=%s", employee_id, arr.size)
    return profile
