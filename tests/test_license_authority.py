import uuid
from datetime import timedelta

from app.core import errors, security
from app.core.license_keys import hash_key
from app.core.utils import utcnow
from app.crud import activation_crud, license_crud
from app.models.audit_log import LicenseAuditLog
from app.models.license import License

from conftest import make_actor


def _issue(db, actor, plan_code="basic", **kwargs):
    result, reason = license_crud.issue_license(db, actor, plan_code, **kwargs)
    assert reason is None
    return result


def test_issue_stores_only_hash(db, super_admin, org_a, basic_plan):
    plaintext, lic = _issue(db, super_admin, org_id=org_a.id)

    assert lic.license_key_hash == hash_key(plaintext)
    assert plaintext not in (lic.license_key_hash, str(lic.meta))
    assert lic.status == "active"
    assert lic.seats_total == basic_plan.max_devices
    assert lic.plan_code == "basic"
    assert lic.issued_to_org_id == org_a.id
    assert lic.issued_by == super_admin.user_id
    # default: durata del piano
    assert abs((lic.expires_at - lic.issued_at) - timedelta(days=365)) < timedelta(seconds=1)


def test_issue_seats_and_expiry_override(db, super_admin, org_a, basic_plan):
    expiry = utcnow() + timedelta(days=5)
    _, lic = _issue(db, super_admin, org_id=org_a.id, seats=4, expires_at=expiry, metadata={"order": "A-1"})
    assert lic.seats_total == 4
    assert lic.expires_at == expiry
    assert lic.meta == {"order": "A-1"}


def test_issue_unknown_plan_or_org(db, super_admin, org_a, basic_plan):
    result, reason = license_crud.issue_license(db, super_admin, "missing", org_id=org_a.id)
    assert result is None and reason == errors.PLAN_NOT_FOUND

    result, reason = license_crud.issue_license(db, super_admin, "basic", org_id=uuid.uuid4())
    assert result is None and reason == errors.ORG_NOT_FOUND


def test_issue_inactive_plan_is_rejected(db, super_admin, org_a, basic_plan):
    basic_plan.is_active = False
    db.commit()
    _, reason = license_crud.issue_license(db, super_admin, "basic", org_id=org_a.id)
    assert reason == errors.PLAN_NOT_FOUND


def test_issue_unbound_license(db, super_admin, basic_plan):
    _, lic = _issue(db, super_admin)
    assert lic.issued_to_org_id is None


def test_issue_writes_audit_row(db, super_admin, org_a, basic_plan):
    _, lic = _issue(db, super_admin, org_id=org_a.id)
    row = db.query(LicenseAuditLog).filter(LicenseAuditLog.action == "license_issued").one()
    assert row.license_id == lic.id
    assert row.actor_id == super_admin.user_id
    assert row.actor_role == security.ROLE_SUPER_ADMIN
    assert row.details["plan_code"] == "basic"


def test_renew_extends_from_future_expiry(db, super_admin, org_a, basic_plan):
    expiry = utcnow() + timedelta(days=10)
    _, lic = _issue(db, super_admin, org_id=org_a.id, expires_at=expiry)

    renewed, reason = license_crud.renew_license(db, super_admin, lic.id, extension_days=30)
    assert reason is None
    assert renewed.expires_at == expiry + timedelta(days=30)
    assert renewed.renewed_at is not None


def test_renew_expired_license_extends_from_now(db, super_admin, org_a, basic_plan):
    _, lic = _issue(db, super_admin, org_id=org_a.id, expires_at=utcnow() - timedelta(days=3))

    before = utcnow()
    renewed, reason = license_crud.renew_license(db, super_admin, lic.id, extension_days=30)
    assert reason is None
    assert renewed.status == "active"
    assert renewed.expires_at >= before + timedelta(days=30)
    assert renewed.effective_status() == "active"


def test_renew_defaults_to_plan_duration(db, super_admin, org_a, basic_plan):
    expiry = utcnow() + timedelta(days=1)
    _, lic = _issue(db, super_admin, org_id=org_a.id, expires_at=expiry)
    renewed, _ = license_crud.renew_license(db, super_admin, lic.id)
    assert renewed.expires_at == expiry + timedelta(days=365)


def test_revoke_is_terminal(db, super_admin, org_a, basic_plan):
    _, lic = _issue(db, super_admin, org_id=org_a.id)

    revoked, reason = license_crud.revoke_license(db, super_admin, lic.id, reason="chargeback")
    assert reason is None
    assert revoked.status == "revoked"
    assert revoked.revoked_reason == "chargeback"
    assert revoked.revoked_by == super_admin.user_id

    for _ in range(3):
        result, reason = license_crud.renew_license(db, super_admin, lic.id, extension_days=30)
        assert result is None
        assert reason == errors.REVOKED
    assert db.get(License, lic.id).status == "revoked"


def test_double_revoke_is_noop(db, super_admin, org_a, basic_plan):
    _, lic = _issue(db, super_admin, org_id=org_a.id)
    first, _ = license_crud.revoke_license(db, super_admin, lic.id, reason="first")
    revoked_at = first.revoked_at

    second, reason = license_crud.revoke_license(db, super_admin, lic.id, reason="second")
    assert reason is None
    assert second.revoked_at == revoked_at
    assert second.revoked_reason == "first"
    assert db.query(LicenseAuditLog).filter(LicenseAuditLog.action == "license_revoked").count() == 1


def test_revoke_deactivates_every_device(db, super_admin, org_a, pro_plan):
    plaintext, lic = _issue(db, super_admin, plan_code="pro", org_id=org_a.id)
    device_user = make_actor(org_a.id)
    for device in ("dev-1", "dev-2"):
        _, reason = activation_crud.activate_device(db, device_user, device, license_key=plaintext)
        assert reason is None
    assert license_crud.count_active_activations(db, lic.id) == 2

    license_crud.revoke_license(db, super_admin, lic.id)
    assert license_crud.count_active_activations(db, lic.id) == 0

    row = db.query(LicenseAuditLog).filter(LicenseAuditLog.action == "license_revoked").one()
    assert row.details["deactivated_devices"] == 2


def test_unknown_license_id(db, super_admin):
    assert license_crud.renew_license(db, super_admin, uuid.uuid4()) == (None, errors.LICENSE_NOT_FOUND)
    assert license_crud.revoke_license(db, super_admin, uuid.uuid4()) == (None, errors.LICENSE_NOT_FOUND)


def test_list_filters_on_effective_status(db, super_admin, org_a, org_b, basic_plan):
    _, active = _issue(db, super_admin, org_id=org_a.id)
    _, past_due = _issue(db, super_admin, org_id=org_a.id, expires_at=utcnow() - timedelta(seconds=1))
    _, other = _issue(db, super_admin, org_id=org_b.id)

    expired = license_crud.list_licenses(db, super_admin, status="expired")
    assert [item["id"] for item in expired["items"]] == [past_due.id]
    assert expired["items"][0]["status"] == "expired"

    current = license_crud.list_licenses(db, super_admin, org_id=org_a.id, status="active")
    assert [item["id"] for item in current["items"]] == [active.id]

    everything = license_crud.list_licenses(db, super_admin)
    assert everything["total"] == 3
    assert other.id in {item["id"] for item in everything["items"]}


def test_list_is_scoped_for_org_admin(db, super_admin, org_a, org_b, basic_plan):
    _, mine = _issue(db, super_admin, org_id=org_a.id)
    _issue(db, super_admin, org_id=org_b.id)

    admin = make_actor(org_a.id, role=security.ROLE_ADMIN)
    # org_id richiesto viene ignorato per un admin non super
    listing = license_crud.list_licenses(db, admin, org_id=org_b.id)
    assert listing["total"] == 1
    assert listing["items"][0]["id"] == mine.id


def test_list_reports_active_devices_and_last_heartbeat(db, super_admin, org_a, pro_plan):
    plaintext, lic = _issue(db, super_admin, plan_code="pro", org_id=org_a.id)
    user = make_actor(org_a.id)
    activation_crud.activate_device(db, user, "dev-1", license_key=plaintext)
    activation_crud.activate_device(db, user, "dev-2", license_key=plaintext)

    item = license_crud.list_licenses(db, super_admin)["items"][0]
    assert item["active_devices"] == 2
    assert item["last_heartbeat"] is not None


def test_detail_includes_deactivated_rows(db, super_admin, org_a, pro_plan):
    plaintext, lic = _issue(db, super_admin, plan_code="pro", org_id=org_a.id)
    user = make_actor(org_a.id)
    activation_crud.activate_device(db, user, "dev-1", license_key=plaintext)
    activation_crud.activate_device(db, user, "dev-2", license_key=plaintext)
    activation_crud.deactivate_device(db, user, "dev-1")

    detail, reason = license_crud.get_license_detail(db, super_admin, lic.id)
    assert reason is None
    assert detail["license"]["active_devices"] == 1
    assert sorted(a.device_id for a in detail["activations"]) == ["dev-1", "dev-2"]

    outsider = make_actor(uuid.uuid4(), role=security.ROLE_ADMIN)
    assert license_crud.get_license_detail(db, outsider, lic.id) == (None, errors.LICENSE_NOT_FOUND)
