"""
Tests for the service layer

Every test runs the real services against in-memory storage.
"""

import asyncio
import logging
import pytest
from datetime import date, datetime, timezone
from decimal import Decimal
from uuid import uuid4

from budget_tracker.audit import AuditLogger
from budget_tracker.config import get_settings
from budget_tracker.models.audit import AuditEventType
from budget_tracker.models.transaction import (
    ExpenseCategory,
    Transaction,
    TransactionCreate,
    TransactionType,
    TransactionUpdate,
    UserProfile,
)
from budget_tracker.orchestrator import (
    TransactionNotFoundError,
    TransactionService,
    UserService,
    _build_storage,
    create_app_components,
)
from budget_tracker.queries import InvalidPeriodError
from budget_tracker.services.storage import (
    InMemoryAuditStorage,
    InMemoryTransactionStorage,
    InMemoryUserStorage,
)
from budget_tracker.validation import TransactionValidationError, TransactionValidator


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def transaction_storage():
    return InMemoryTransactionStorage()


@pytest.fixture
def service(transaction_storage, audit_storage):
    return TransactionService(
        storage=transaction_storage,
        validator=TransactionValidator(max_amount=Decimal("10000.00")),
        audit_logger=AuditLogger(audit_storage),
    )


def expense(amount="30.00", day="2024-01-10", category="food", description="Groceries"):
    return TransactionCreate(
        type="expense",
        amount=amount,
        description=description,
        date=day,
        category=category,
    )


def income(amount="100.00", day="2024-01-05", category=None):
    return TransactionCreate(
        type="income",
        amount=amount,
        description="Salary",
        date=day,
        category=category,
    )


class TestCreate:
    """Tests for TransactionService.create."""

    def test_create_expense(self, service):
        """Test that a valid expense is stored for the caller."""
        async def scenario():
            created = await service.create("user-1", expense())
            listed = await service.list_by_month("user-1", 2024, 1)
            return created, listed

        created, listed = asyncio.run(scenario())
        assert created.user_id == "user-1"
        assert created.category == ExpenseCategory.FOOD
        assert [t.id for t in listed] == [created.id]

    def test_income_category_is_discarded(self, service):
        created = asyncio.run(service.create("user-1", income(category="food")))
        assert created.type == TransactionType.INCOME
        assert created.category is None

    def test_expense_without_category_rejected(self, service):
        """Test the business rule reports the category field."""
        with pytest.raises(TransactionValidationError) as exc_info:
            asyncio.run(service.create("user-1", expense(category=None)))

        issues = exc_info.value.issues
        assert [i.field for i in issues] == ["category"]
        assert asyncio.run(service.list_by_month("user-1", 2024, 1)) == []

    def test_amount_over_ceiling_rejected(self, service):
        with pytest.raises(TransactionValidationError) as exc_info:
            asyncio.run(service.create("user-1", expense(amount="10000.01")))
        assert exc_info.value.issues[0].type == "out_of_range"

    def test_zero_amount_allowed(self, service):
        created = asyncio.run(service.create("user-1", expense(amount="0")))
        assert created.amount == Decimal("0.00")

    def test_create_is_audited(self, service, audit_storage):
        correlation_id = uuid4()
        created = asyncio.run(service.create("user-1", expense(), correlation_id))

        events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
        assert [e.event_type for e in events] == [AuditEventType.TRANSACTION_CREATED]
        assert events[0].entity_id == str(created.id)
        assert events[0].details["amount"] == "30.00"


class TestUpdate:
    """Tests for TransactionService.update."""

    def test_partial_update_keeps_other_fields(self, service, transaction_storage):
        recorded_at = datetime(2024, 1, 10, 9, 0, tzinfo=timezone.utc)
        original = Transaction.from_payload("user-1", expense()).model_copy(
            update={"created_at": recorded_at, "updated_at": recorded_at}
        )

        async def scenario():
            await transaction_storage.insert_transaction(original)
            return await service.update(
                "user-1", str(original.id), TransactionUpdate(amount="45.10")
            )

        updated = asyncio.run(scenario())
        assert updated.id == original.id
        assert updated.amount == Decimal("45.10")
        assert updated.description == "Groceries"
        assert updated.category == ExpenseCategory.FOOD
        assert updated.created_at == recorded_at
        assert updated.updated_at > recorded_at

    def test_switch_to_expense_needs_category(self, service):
        """Test the merged record is checked, not just the sent fields."""
        async def scenario():
            created = await service.create("user-1", income())
            await service.update(
                "user-1", created.id, TransactionUpdate(type=TransactionType.EXPENSE)
            )

        with pytest.raises(TransactionValidationError):
            asyncio.run(scenario())

    def test_switch_to_expense_with_category(self, service):
        async def scenario():
            created = await service.create("user-1", income())
            return await service.update(
                "user-1",
                created.id,
                TransactionUpdate(type=TransactionType.EXPENSE, category=ExpenseCategory.RENT),
            )

        updated = asyncio.run(scenario())
        assert updated.type == TransactionType.EXPENSE
        assert updated.category == ExpenseCategory.RENT

    def test_clearing_expense_category_rejected(self, service):
        async def scenario():
            created = await service.create("user-1", expense())
            await service.update(
                "user-1", created.id, TransactionUpdate.model_validate({"category": None})
            )

        with pytest.raises(TransactionValidationError):
            asyncio.run(scenario())

    def test_other_users_transaction_is_not_found(self, service, audit_storage):
        """Test that a foreign record looks exactly like a missing one."""
        async def scenario():
            created = await service.create("user-1", expense())
            with pytest.raises(TransactionNotFoundError):
                await service.update(
                    "user-2", str(created.id), TransactionUpdate(description="Mine")
                )
            return await service.list_by_month("user-1", 2024, 1)

        listed = asyncio.run(scenario())
        assert listed[0].description == "Groceries"

        events = asyncio.run(audit_storage.get_events_for_user("user-2"))
        assert events[0].event_type == AuditEventType.TRANSACTION_NOT_FOUND

    def test_not_found_wins_over_invalid_changes(self, service):
        """Test that a foreign id with bad changes reports not-found."""
        async def scenario():
            created = await service.create("user-1", expense())
            await service.update(
                "user-2", created.id, TransactionUpdate.model_validate({"category": None})
            )

        with pytest.raises(TransactionNotFoundError):
            asyncio.run(scenario())

    def test_malformed_id_is_not_found(self, service):
        with pytest.raises(TransactionNotFoundError):
            asyncio.run(service.update("user-1", "not-a-uuid", TransactionUpdate(amount="1")))

    def test_update_is_audited_with_changed_fields(self, service, audit_storage):
        correlation_id = uuid4()

        async def scenario():
            created = await service.create("user-1", expense())
            await service.update(
                "user-1",
                created.id,
                TransactionUpdate(description="Market", amount="12.00"),
                correlation_id,
            )

        asyncio.run(scenario())
        events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
        assert events[-1].event_type == AuditEventType.TRANSACTION_UPDATED
        assert events[-1].details["changed_fields"] == ["amount", "description"]


class TestDelete:
    """Tests for TransactionService.delete."""

    def test_delete_own_transaction(self, service):
        async def scenario():
            created = await service.create("user-1", expense())
            await service.delete("user-1", str(created.id))
            return await service.list_by_month("user-1", 2024, 1)

        assert asyncio.run(scenario()) == []

    def test_delete_other_users_transaction(self, service):
        async def scenario():
            created = await service.create("user-1", expense())
            with pytest.raises(TransactionNotFoundError):
                await service.delete("user-2", created.id)
            return await service.list_by_month("user-1", 2024, 1)

        assert len(asyncio.run(scenario())) == 1

    def test_delete_twice(self, service):
        async def scenario():
            created = await service.create("user-1", expense())
            await service.delete("user-1", created.id)
            await service.delete("user-1", created.id)

        with pytest.raises(TransactionNotFoundError):
            asyncio.run(scenario())

    def test_delete_malformed_id(self, service):
        with pytest.raises(TransactionNotFoundError):
            asyncio.run(service.delete("user-1", "42"))


class TestReads:
    """Tests for the range, month and summary reads."""

    def test_month_uses_real_last_day(self, service):
        """Test that February excludes March 1st and includes the 29th."""
        async def scenario():
            await service.create("user-1", expense(day="2024-02-29", description="Leap"))
            await service.create("user-1", expense(day="2024-03-01", description="March"))
            await service.create("user-1", expense(day="2024-01-31", description="January"))
            return await service.list_by_month("user-1", 2024, 2)

        assert [t.description for t in asyncio.run(scenario())] == ["Leap"]

    def test_thirty_day_month_includes_last_day(self, service):
        """Test that a 30-day month query works and includes the 30th."""
        async def scenario():
            await service.create("user-1", expense(day="2024-04-30"))
            return await service.list_by_month("user-1", 2024, 4)

        assert len(asyncio.run(scenario())) == 1

    def test_range_query_scoped_by_user(self, service):
        async def scenario():
            await service.create("user-1", expense(day="2024-01-10"))
            await service.create("user-2", expense(day="2024-01-10"))
            return await service.list_by_date_range(
                "user-1", date(2024, 1, 1), date(2024, 1, 31)
            )

        listed = asyncio.run(scenario())
        assert [t.user_id for t in listed] == ["user-1"]

    def test_inverted_range_rejected(self, service):
        with pytest.raises(InvalidPeriodError):
            asyncio.run(service.list_by_date_range("user-1", date(2024, 2, 1), date(2024, 1, 1)))

    def test_invalid_month_rejected(self, service):
        with pytest.raises(InvalidPeriodError):
            asyncio.run(service.monthly_summary("user-1", 2024, 13))

    def test_monthly_summary(self, service):
        """Test the January example end to end."""
        async def scenario():
            await service.create("user-1", income("100.00", "2024-01-05"))
            await service.create("user-1", expense("30.00", "2024-01-10", "food"))
            await service.create("user-1", expense("20.00", "2024-01-20", "food"))
            await service.create("user-1", expense("15.00", "2024-01-15", "rent"))
            await service.create("user-1", expense("99.00", "2024-02-01", "rent"))
            await service.create("user-2", income("500.00", "2024-01-05"))
            return await service.monthly_summary("user-1", 2024, 1)

        summary = asyncio.run(scenario())
        assert summary.total_income == Decimal("100.00")
        assert summary.total_expenses == Decimal("65.00")
        assert summary.balance == Decimal("35.00")
        assert [(c.category, c.amount) for c in summary.category_breakdown] == [
            (ExpenseCategory.FOOD, Decimal("50.00")),
            (ExpenseCategory.RENT, Decimal("15.00")),
        ]

    def test_summary_reflects_latest_writes(self, service):
        async def scenario():
            created = await service.create("user-1", expense("30.00", "2024-01-10"))
            before = await service.monthly_summary("user-1", 2024, 1)
            await service.delete("user-1", created.id)
            after = await service.monthly_summary("user-1", 2024, 1)
            return before, after

        before, after = asyncio.run(scenario())
        assert before.total_expenses == Decimal("30.00")
        assert after.total_expenses == Decimal("0.00")

    def test_summary_is_audited(self, service, audit_storage):
        correlation_id = uuid4()
        asyncio.run(service.monthly_summary("user-1", 2024, 1, correlation_id))

        events = asyncio.run(audit_storage.get_events_by_correlation_id(correlation_id))
        assert [e.event_type for e in events] == [
            AuditEventType.MONTH_QUERY_EXECUTED,
            AuditEventType.SUMMARY_COMPUTED,
        ]


class TestUserService:

    def test_sync_profile_upserts(self):
        audit_storage = InMemoryAuditStorage()
        user_storage = InMemoryUserStorage()
        users = UserService(user_storage, AuditLogger(audit_storage))

        async def scenario():
            await users.sync_profile(UserProfile(id="user-1", email="a@example.com"))
            returned = await users.sync_profile(UserProfile(id="user-1", email="b@example.com"))
            return returned, await user_storage.get_user("user-1")

        returned, stored = asyncio.run(scenario())
        assert returned.email == "b@example.com"
        assert stored.email == "b@example.com"

        events = asyncio.run(audit_storage.get_events_for_user("user-1"))
        assert [e.event_type for e in events] == [AuditEventType.USER_UPSERTED] * 2


class TestCreateAppComponents:

    def test_explicit_storages_are_used(self):
        transaction_storage = InMemoryTransactionStorage()
        transactions, users, audit_logger = create_app_components(
            transaction_storage=transaction_storage,
            user_storage=InMemoryUserStorage(),
            audit_storage=InMemoryAuditStorage(),
        )

        created = asyncio.run(transactions.create("user-1", expense()))
        stored = asyncio.run(transaction_storage.get_transaction(created.id, "user-1"))
        assert stored is not None
        assert isinstance(users, UserService)
        assert isinstance(audit_logger, AuditLogger)

    def test_defaults_to_memory_backend(self):
        transactions, _, _ = create_app_components()
        created = asyncio.run(transactions.create("user-1", income()))
        assert created.amount == Decimal("100.00")

    def test_unconfigured_sheets_backend_falls_back_to_memory(self, monkeypatch, caplog):
        """Test that a missing Google Sheets config logs a warning and uses memory."""
        monkeypatch.setenv("STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        with caplog.at_level(logging.WARNING):
            transaction_storage, user_storage, audit_storage = _build_storage(
                get_settings().app.storage_backend
            )

        assert isinstance(transaction_storage, InMemoryTransactionStorage)
        assert isinstance(user_storage, InMemoryUserStorage)
        assert isinstance(audit_storage, InMemoryAuditStorage)
        assert "storage_not_configured" in caplog.text

    def test_components_run_on_fallback_storage(self, monkeypatch):
        monkeypatch.setenv("STORAGE_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        transactions, _, _ = create_app_components()
        created = asyncio.run(transactions.create("user-1", expense()))
        listed = asyncio.run(transactions.list_by_month("user-1", 2024, 1))
        assert [t.id for t in listed] == [created.id]
