import pytest

from hrms_engine.common.errors import Conflict, NotFound, ValidationError
from hrms_engine.services.biometric import (
    FACE_BAD_DESCRIPTOR, FACE_MATCH, FACE_MISMATCH, FACE_NO_PROFILE, FACE_NOT_DETECTED,
    BiometricVerifier, register_profile,
)
from hrms_engine.models.face_profile import EmployeeBiometricProfile

from conftest import DESCRIPTOR, make_employee


def test_match_within_threshold():
    captured = [v + 0.01 for v in DESCRIPTOR]
    res = BiometricVerifier.verify(DESCRIPTOR, captured)
    assert res.matched is True
    assert res.face_status == FACE_MATCH
    assert res.distance == pytest.approx((128 * 0.0001) ** 0.5)


def test_mismatch_over_threshold():
    res = BiometricVerifier.verify(DESCRIPTOR, [0.2] * 128)
    assert res.matched is False
    assert res.face_status == FACE_MISMATCH
    assert res.distance > 0.6


def test_no_face_is_rejected_before_distance():
    res = BiometricVerifier.verify(DESCRIPTOR, DESCRIPTOR, face_detected=False)
    assert res == (False, None, FACE_NOT_DETECTED)


def test_missing_profile():
    assert BiometricVerifier.verify(None, DESCRIPTOR).face_status == FACE_NO_PROFILE


@pytest.mark.parametrize("captured", [
    [0.1] * 16,               # too short
    [0.1] * 64,               # dimension mismatch
    "not a descriptor",
    [0.1] * 127 + [float("inf")],
])
def test_malformed_descriptors_are_rejected(captured):
    assert BiometricVerifier.verify(DESCRIPTOR, captured).face_status == FACE_BAD_DESCRIPTOR


def test_parse_descriptor_accepts_json_and_csv():
    assert BiometricVerifier.parse_descriptor("[" + ",".join(["0.5"] * 32) + "]").size == 32
    assert BiometricVerifier.parse_descriptor(",".join(["0.5"] * 32)).size == 32


def test_register_profile_once(session, company):
    emp = make_employee(session, company, "E010", enroll=False)
    profile = register_profile(emp.id, DESCRIPTOR, image_ref="faces/e010.jpg")
    assert len(profile.descriptor) == 128
    assert EmployeeBiometricProfile.query.filter_by(employee_id=emp.id).count() == 1

    with pytest.raises(Conflict):
        register_profile(emp.id, DESCRIPTOR)


def test_register_profile_validation(session, company):
    emp = make_employee(session, company, "E011", enroll=False)
    with pytest.raises(ValidationError):
        register_profile(emp.id, [0.1] * 8)
    with pytest.raises(NotFound):
        register_profile(999, DESCRIPTOR)
