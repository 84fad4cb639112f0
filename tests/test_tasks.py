from datetime import timedelta

from restrona.models import OtpVerification, utcnow
from restrona.tasks import health_check, purge_expired_otps


async def test_purge_expired_otps(tmp_path, db):
    now = utcnow()
    db.add_all([
        OtpVerification(phone="+15550000001", code_hash="a", expires_at=now - timedelta(minutes=5)),
        OtpVerification(phone="+15550000002", code_hash="b", expires_at=now + timedelta(minutes=5), is_used=True),
        OtpVerification(phone="+15550000003", code_hash="c", expires_at=now + timedelta(minutes=5)),
    ])
    await db.commit()

    removed = await purge_expired_otps(f"sqlite+aiosqlite:///{tmp_path / 'restrona-test.db'}")
    assert removed == 2


def test_health_check_task():
    result = health_check.apply().get()
    assert result["status"] == "healthy"
    assert result["worker"] == "celery"
