"""
Tests: per-tenant sequence numbers.

Categories:
    1. Formats per kind
    2. Monotonic continuation (incl. across years and archived projects)
    3. Per-tenant independence
    4. Collision retry, exhaustion and non-number conflicts
"""

from datetime import date

import pytest

from joinery.core.exceptions import DuplicateKeyError, ExhaustedRetriesError, ValidationError
from joinery.models.directory import Client
from joinery.services.sequence_allocator import SequenceAllocator


@pytest.fixture()
def allocator(store):
    return SequenceAllocator(store, max_attempts=3, today=lambda: date(2025, 3, 14))


# ── 1. Formats ───────────────────────────────────────────────────────────


@pytest.mark.parametrize("kind,expected", [
    ("project", "PR001/2025"),
    ("pipeline-project", "PL001/2025"),
    ("client", "CL0001"),
    ("employee", "EMP001"),
])
def test_first_number_per_kind(allocator, tenant_a, kind, expected):
    assert allocator.next(tenant_a, kind) == expected


def test_unknown_kind_rejected(allocator, tenant_a):
    with pytest.raises(ValidationError):
        allocator.next(tenant_a, "invoice")


# ── 2. Continuation ──────────────────────────────────────────────────────


def test_client_continues_from_latest(allocator, seed, tenant_a):
    seed("clients", tenant_a, {"client_number": "CL0006", "name": "A"})
    assert allocator.next(tenant_a, "client") == "CL0007"


def test_employee_continues_from_latest(allocator, seed, tenant_a):
    seed("team_members", tenant_a,
         {"employee_number": "EMP001", "full_name": "A"},
         {"employee_number": "EMP002", "full_name": "B"})
    assert allocator.next(tenant_a, "employee") == "EMP003"


def test_year_is_suffix_not_reset(allocator, seed, tenant_a):
    seed("projects", tenant_a, {"project_number": "PR041/2024"})
    assert allocator.next(tenant_a, "project") == "PR042/2025"


def test_archived_projects_count_as_issued(allocator, seed, tenant_a):
    seed("projects", tenant_a, {"project_number": "PR003/2025"})
    seed("archived_projects", tenant_a,
         {"project_number": "PR010/2025", "original_id": 99, "archive_type": "completed"})
    assert allocator.next(tenant_a, "project") == "PR011/2025"


def test_unparseable_latest_row_is_skipped(allocator, seed, tenant_a):
    seed("clients", tenant_a, {"client_number": "CL0003", "name": "A"})
    seed("clients", tenant_a, {"client_number": "LEGACY-9", "name": "B"})
    assert allocator.next(tenant_a, "client") == "CL0004"


def test_number_wider_than_padding_is_kept(allocator, seed, tenant_a):
    seed("team_members", tenant_a, {"employee_number": "EMP999", "full_name": "A"})
    assert allocator.next(tenant_a, "employee") == "EMP1000"


def test_floor_forces_higher_number(allocator, tenant_a):
    assert allocator.next(tenant_a, "client", floor=4) == "CL0005"


# ── 3. Per-tenant ────────────────────────────────────────────────────────


def test_tenants_have_independent_sequences(allocator, seed, tenant_a, tenant_b):
    seed("clients", tenant_b, {"client_number": "CL0041", "name": "B"})
    assert allocator.next(tenant_a, "client") == "CL0001"
    assert allocator.next(tenant_b, "client") == "CL0042"


# ── 4. Retry ─────────────────────────────────────────────────────────────


def test_concurrent_insert_is_retried_with_next_number(allocator, store, tenant_a):
    attempts = []

    def insert(number):
        attempts.append(number)
        if len(attempts) == 1:
            # Another writer takes the same number first.
            store.insert(Client, [{"tenant_id": tenant_a, "client_number": number, "name": "Racer"}])
        return store.insert(Client, [{"tenant_id": tenant_a, "client_number": number, "name": "Me"}])[0]

    row = allocator.insert_with_number(tenant_a, "client", insert)

    assert attempts == ["CL0001", "CL0002"]
    assert row["client_number"] == "CL0002"
    assert store.count(Client, [Client.tenant_id == tenant_a]) == 2


def test_exhausted_retries(allocator, tenant_a):
    calls = []

    def insert(number):
        calls.append(number)
        raise DuplicateKeyError("clients", field="tenant_id,client_number")

    with pytest.raises(ExhaustedRetriesError) as exc:
        allocator.insert_with_number(tenant_a, "client", insert)

    assert calls == ["CL0001", "CL0002", "CL0003"]
    assert exc.value.details == {"sequence_kind": "client", "attempts": 3}


def test_conflict_on_other_column_is_not_retried(allocator, tenant_a):
    calls = []

    def insert(number):
        calls.append(number)
        raise DuplicateKeyError("projects", field="tenant_id,pipeline_project_id")

    with pytest.raises(DuplicateKeyError):
        allocator.insert_with_number(tenant_a, "project", insert)
    assert calls == ["PR001/2025"]


def test_other_errors_propagate_immediately(allocator, tenant_a):
    def insert(number):
        raise ValidationError("name is required")

    with pytest.raises(ValidationError):
        allocator.insert_with_number(tenant_a, "client", insert)
