"""
Tests for the permission audit logger.
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from permguard.schemas.audit import AssignmentLogFilter
from permguard.services.audit import PermissionAuditLogger, RequestInfo


@pytest.fixture
def audit(db) -> PermissionAuditLogger:
    return PermissionAuditLogger(db)


@pytest.mark.asyncio
async def test_record_entry(audit: PermissionAuditLogger, admin):
    """Test recording a successful operation."""
    target = uuid4()

    entry = await audit.record(
        user_id=admin.id,
        target_users=target,
        operation_type="direct_permission",
        before_state={"permissions": []},
        after_state={"permissions": ["task:view"], "role_id": uuid4()},
        details="Set 1 direct permission(s)",
        request_info=RequestInfo(ip="10.0.0.1", user_agent="pytest"),
    )

    assert entry is not None
    assert entry.status == "success"
    assert entry.target_users == [target]
    assert entry.ip_address == "10.0.0.1"
    assert entry.user_agent == "pytest"
    assert isinstance(entry.after_state["role_id"], str)

    fetched = await audit.get_log(entry.id)
    assert fetched.details == "Set 1 direct permission(s)"


@pytest.mark.asyncio
async def test_error_implies_failed_status(audit: PermissionAuditLogger):
    entry = await audit.record(
        user_id=None,
        target_users=[uuid4(), uuid4()],
        operation_type="batch_assign",
        error="Permission not found",
    )

    assert entry.status == "failed"
    assert entry.error_message == "Permission not found"
    assert len(entry.target_users) == 2


@pytest.mark.asyncio
async def test_record_failure_is_swallowed(audit: PermissionAuditLogger, db, monkeypatch):
    """Test that a store failure while auditing never propagates."""

    async def broken_commit():
        raise ConnectionError("database went away")

    monkeypatch.setattr(db, "commit", broken_commit)

    entry = await audit.record(
        user_id=None,
        target_users=uuid4(),
        operation_type="role_assign",
    )

    assert entry is None


@pytest.mark.asyncio
async def test_list_logs_filters(audit: PermissionAuditLogger):
    operator = uuid4()
    target = uuid4()
    other = uuid4()
    await audit.record(user_id=None, target_users=target, operation_type="role_assign")
    await audit.record(user_id=None, target_users=[target, other], operation_type="batch_assign")
    await audit.record(user_id=None, target_users=other, operation_type="batch_assign", error="boom")

    everything = await audit.list_logs()
    assert everything.total == 3
    assert everything.items[0].operation_type == "batch_assign"

    for_target = await audit.list_logs(AssignmentLogFilter(target_user_id=target))
    assert for_target.total == 2

    batch = await audit.list_logs(AssignmentLogFilter(operation_type="batch_assign"))
    assert batch.total == 2

    failed = await audit.list_logs(AssignmentLogFilter(status="failed"))
    assert [e.error_message for e in failed.items] == ["boom"]

    by_operator = await audit.list_logs(AssignmentLogFilter(user_id=operator))
    assert by_operator.total == 0


@pytest.mark.asyncio
async def test_list_logs_date_range(audit: PermissionAuditLogger):
    await audit.record(user_id=None, target_users=uuid4(), operation_type="role_assign")
    hour_ago = datetime.now(timezone.utc) - timedelta(hours=1)

    assert (await audit.list_logs(AssignmentLogFilter(start_date=hour_ago))).total == 1
    assert (await audit.list_logs(AssignmentLogFilter(end_date=hour_ago))).total == 0


@pytest.mark.asyncio
async def test_list_logs_paginates(audit: PermissionAuditLogger):
    for _ in range(5):
        await audit.record(user_id=None, target_users=uuid4(), operation_type="role_assign")

    page = await audit.list_logs(page=2, per_page=2)

    assert page.total == 5
    assert len(page.items) == 2
