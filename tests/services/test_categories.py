import pytest
from datetime import date, datetime
from decimal import Decimal

from errors import NotFoundError, StorageError, ValidationError
from models.category import Category, CategoryStatus
from tests.helpers import OTHER_OWNER_ID, OWNER_ID


def _new(name, parent_id=None, owner_id=OWNER_ID, **kwargs):
    return Category(id=None, owner_id=owner_id, name=name, parent_id=parent_id, **kwargs)


class TestCategoryService:
    """Tests for CategoryService, the category persistence gateway."""

    def test_save_inserts_and_assigns_id(self, services):
        """Test saving a new category assigns an id and keeps its fields."""
        category = services.categories.save(_new("Groceries", description="Food shopping"))

        assert category.id is not None
        assert category.id > 0
        assert category.name == "Groceries"
        assert category.description == "Food shopping"
        assert category.parent_id is None
        assert category.status == CategoryStatus.ACTIVE

    def test_save_stamps_audit_fields_on_insert(self, services):
        """Test inserting stamps created/updated timestamps and the owner as actor."""
        category = services.categories.save(_new("Rent"))

        assert isinstance(category.created_at, datetime)
        assert category.updated_at == category.created_at
        assert category.created_by == OWNER_ID
        assert category.updated_by == OWNER_ID

    def test_save_update_keeps_created_fields(self, services):
        """Test updating only touches the updated_* audit fields."""
        category = services.categories.save(_new("Rent"))
        category.name = "Housing"

        updated = services.categories.save(category, actor_id=42)

        assert updated.name == "Housing"
        assert updated.created_by == OWNER_ID
        assert updated.updated_by == 42

        found = services.categories.find_by_id(category.id, OWNER_ID)
        assert found.name == "Housing"
        assert found.created_at == category.created_at

    def test_save_does_not_mutate_input(self, services):
        """Test save returns a stamped copy and leaves the argument alone."""
        draft = _new("Draft")

        services.categories.save(draft)

        assert draft.id is None
        assert draft.created_at is None

    def test_save_update_missing_category_raises(self, services):
        """Test updating a category that does not exist raises NotFoundError."""
        ghost = Category(id=9999, owner_id=OWNER_ID, name="Ghost")

        with pytest.raises(NotFoundError, match="Category with ID 9999 not found"):
            services.categories.save(ghost)

    def test_unique_index_rejects_duplicate_sibling(self, services):
        """Test the storage constraint rejects a duplicate name under the same parent."""
        parent = services.categories.save(_new("Food"))
        services.categories.save(_new("Groceries", parent_id=parent.id))

        with pytest.raises(ValidationError) as exc_info:
            services.categories.save(_new("Groceries", parent_id=parent.id))

        assert exc_info.value.fields == ["name"]

    def test_unique_index_covers_root_categories(self, services):
        """Test two roots with the same name collide even though parent_id is NULL."""
        services.categories.save(_new("Food"))

        with pytest.raises(ValidationError):
            services.categories.save(_new("Food"))

    def test_same_name_allowed_under_different_parents(self, services):
        """Test names only need to be unique among siblings."""
        home = services.categories.save(_new("Home"))
        office = services.categories.save(_new("Office"))

        services.categories.save(_new("Supplies", parent_id=home.id))
        services.categories.save(_new("Supplies", parent_id=office.id))

        assert len(services.categories.find_by_owner(OWNER_ID)) == 4

    def test_same_name_allowed_for_different_owners(self, services):
        """Test uniqueness is scoped to the owner."""
        services.categories.save(_new("Food"))
        other = services.categories.save(_new("Food", owner_id=OTHER_OWNER_ID))

        assert other.id is not None

    def test_name_uniqueness_is_case_sensitive(self, services):
        """Test names differing only in case are distinct."""
        services.categories.save(_new("Food"))
        services.categories.save(_new("food"))

        assert len(services.categories.find_by_owner(OWNER_ID)) == 2

    def test_find_by_id_scoped_to_owner(self, services):
        """Test a category is invisible to other owners."""
        category = services.categories.save(_new("Private"))

        assert services.categories.find_by_id(category.id, OWNER_ID) is not None
        assert services.categories.find_by_id(category.id, OTHER_OWNER_ID) is None

    def test_find_by_id_not_found(self, services):
        """Test finding a non-existent category returns None."""
        assert services.categories.find_by_id(9999, OWNER_ID) is None

    def test_find_by_owner_ordered_by_name(self, services):
        """Test find_by_owner lists an owner's categories alphabetically."""
        services.categories.save(_new("Zebra"))
        services.categories.save(_new("Alpha"))
        services.categories.save(_new("Beta"))
        services.categories.save(_new("Other owner", owner_id=OTHER_OWNER_ID))

        names = [c.name for c in services.categories.find_by_owner(OWNER_ID)]

        assert names == ["Alpha", "Beta", "Zebra"]

    def test_find_by_owner_active_only(self, services):
        """Test active_only leaves out inactive categories."""
        services.categories.save(_new("Active"))
        services.categories.save(_new("Hidden", status=CategoryStatus.INACTIVE))

        all_names = {c.name for c in services.categories.find_by_owner(OWNER_ID)}
        active_names = {
            c.name for c in services.categories.find_by_owner(OWNER_ID, active_only=True)
        }

        assert all_names == {"Active", "Hidden"}
        assert active_names == {"Active"}

    def test_find_children(self, services):
        """Test find_children returns direct children only, alphabetically."""
        food = services.categories.save(_new("Food"))
        groceries = services.categories.save(_new("Groceries", parent_id=food.id))
        services.categories.save(_new("Dining", parent_id=food.id))
        services.categories.save(_new("Vegetables", parent_id=groceries.id))

        names = [c.name for c in services.categories.find_children(food.id)]

        assert names == ["Dining", "Groceries"]

    def test_find_by_name_distinguishes_levels(self, services):
        """Test find_by_name matches on parent as well as name."""
        food = services.categories.save(_new("Food"))
        child = services.categories.save(_new("Other", parent_id=food.id))
        root = services.categories.save(_new("Other"))

        assert services.categories.find_by_name(OWNER_ID, "Other").id == root.id
        assert services.categories.find_by_name(OWNER_ID, "Other", food.id).id == child.id
        assert services.categories.find_by_name(OWNER_ID, "Missing") is None

    def test_delete_row(self, services):
        """Test deleting a row removes it."""
        category = services.categories.save(_new("ToDelete"))

        assert services.categories.delete_row(category.id) is True
        assert services.categories.find_by_id(category.id, OWNER_ID) is None

    def test_delete_row_not_found(self, services):
        """Test deleting a non-existent row returns False."""
        assert services.categories.delete_row(9999) is False

    def test_delete_row_with_children_is_refused(self, services):
        """Test the foreign key keeps a parent from being deleted under its children."""
        parent = services.categories.save(_new("Parent"))
        child = services.categories.save(_new("Child", parent_id=parent.id))

        with pytest.raises(StorageError):
            services.categories.delete_row(parent.id)

        # the refused commit is rolled back, not left pending
        assert not services.db_manager.conn.in_transaction
        assert services.categories.find_by_id(parent.id, OWNER_ID) is not None
        assert services.categories.find_by_id(child.id, OWNER_ID).parent_id == parent.id

    def test_save_under_missing_parent_is_refused(self, services):
        """Test the parent foreign key is still enforced when the write commits."""
        with pytest.raises(StorageError):
            services.categories.save(_new("Orphan", parent_id=9999))

        assert not services.db_manager.conn.in_transaction
        assert services.categories.find_by_name(OWNER_ID, "Orphan", 9999) is None

    def test_delete_parent_then_reparent_in_one_transaction(self, services):
        """Test the parent row can go before its children move up."""
        parent = services.categories.save(_new("Temp"))
        child = services.categories.save(_new("Temp", parent_id=parent.id))

        def work():
            services.categories.delete_row(parent.id)
            child.parent_id = None
            services.categories.save(child)

        services.categories.run_in_transaction(work)

        assert services.categories.find_by_id(parent.id, OWNER_ID) is None
        assert services.categories.find_by_id(child.id, OWNER_ID).parent_id is None

    def test_delete_row_with_expenses_is_refused(self, services):
        """Test the foreign key keeps a category with expenses from being deleted."""
        category = services.categories.save(_new("Rent"))
        services.expenses.create(OWNER_ID, category.id, "100.00", date(2025, 1, 1))

        with pytest.raises(StorageError):
            services.categories.delete_row(category.id)

    def test_count_and_sum_expenses(self, services):
        """Test expense aggregates for a single category."""
        category = services.categories.save(_new("Coffee"))
        services.expenses.create(OWNER_ID, category.id, "3.50", date(2025, 1, 10))
        services.expenses.create(OWNER_ID, category.id, "4.25", date(2025, 2, 10))

        assert services.categories.count_expenses_for_category(category.id) == 2
        assert services.categories.sum_expenses_for_category(category.id) == Decimal("7.75")

    def test_expense_aggregates_with_date_range(self, services):
        """Test date bounds are inclusive and each bound is optional."""
        category = services.categories.save(_new("Coffee"))
        services.expenses.create(OWNER_ID, category.id, "1.00", date(2025, 1, 1))
        services.expenses.create(OWNER_ID, category.id, "2.00", date(2025, 1, 31))
        services.expenses.create(OWNER_ID, category.id, "4.00", date(2025, 2, 1))

        january = (date(2025, 1, 1), date(2025, 1, 31))
        since_february = (date(2025, 2, 1), None)

        assert services.categories.sum_expenses_for_category(category.id, january) == Decimal("3.00")
        assert services.categories.count_expenses_for_category(category.id, january) == 2
        assert services.categories.sum_expenses_for_category(category.id, since_february) == Decimal("4.00")

    def test_sum_expenses_empty_is_zero(self, services):
        """Test a category without expenses sums to zero."""
        category = services.categories.save(_new("Empty"))

        assert services.categories.sum_expenses_for_category(category.id) == Decimal("0")

    def test_run_in_transaction_commits(self, services):
        """Test writes inside a transaction are kept when it succeeds."""
        result = services.categories.run_in_transaction(
            lambda: services.categories.save(_new("Inside"))
        )

        assert services.categories.find_by_id(result.id, OWNER_ID) is not None

    def test_run_in_transaction_rolls_back(self, services):
        """Test every write inside a failing transaction is undone."""
        keep = services.categories.save(_new("Keep"))

        def work():
            services.categories.save(_new("Temporary"))
            keep.name = "Renamed"
            services.categories.save(keep)
            raise RuntimeError("boom")

        with pytest.raises(RuntimeError, match="boom"):
            services.categories.run_in_transaction(work)

        names = {c.name for c in services.categories.find_by_owner(OWNER_ID)}
        assert names == {"Keep"}

    def test_run_in_transaction_wraps_storage_failures(self, services):
        """Test a failing delete inside a transaction surfaces as StorageError."""
        parent = services.categories.save(_new("Parent"))
        services.categories.save(_new("Child", parent_id=parent.id))

        with pytest.raises(StorageError):
            services.categories.run_in_transaction(
                lambda: services.categories.delete_row(parent.id)
            )

        assert services.categories.find_by_id(parent.id, OWNER_ID) is not None
