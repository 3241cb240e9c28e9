import pytest

from cafepos.categories import (
    create_category,
    delete_category,
    get_category,
    list_categories,
    update_category,
)
from cafepos.errors import BusinessRuleError, InvalidRequestError, NotFoundError
from cafepos.models import MenuItem, Tenant


def test_shared_ids_drop_owner_and_foreign_branches(db, make_branch, tenant, now) -> None:
    owner = make_branch(name="Owner")
    partner = make_branch(name="Partner")
    closed = make_branch(name="Closed", is_active=False)
    stranger = Tenant(name="Elsewhere", status="ACTIVE", created_at=now)
    db.add(stranger)
    db.commit()
    foreign = make_branch(name="Foreign", tenant_id=stranger.id)

    category = create_category(
        db,
        tenant.id,
        owner.id,
        "  Coffee ",
        shared_branch_ids=[owner.id, partner.id, closed.id, foreign.id, 4242],
        now=now,
    )
    assert category.name == "Coffee"
    assert category.shared_branch_ids == [partner.id]


def test_listing_by_branch_includes_shared_categories(db, make_branch, tenant, now) -> None:
    home = make_branch(name="Home")
    partner = make_branch(name="Partner")
    other = make_branch(name="Other")
    pastries = create_category(db, tenant.id, home.id, "Pastries", now=now)
    coffee = create_category(db, tenant.id, home.id, "Coffee", shared_branch_ids=[partner.id], now=now)
    juice = create_category(db, tenant.id, partner.id, "Juice", now=now)
    create_category(db, tenant.id, other.id, "Tea", now=now)

    assert [c.id for c in list_categories(db, tenant.id, home.id)] == [coffee.id, pastries.id]
    assert [c.id for c in list_categories(db, tenant.id, partner.id)] == [coffee.id, juice.id]
    assert len(list_categories(db, tenant.id)) == 4
    assert list_categories(db, tenant.id + 1) == []


def test_rename_cascades_to_owner_and_shared_branches(
    db, make_branch, make_menu_item, tenant, now
) -> None:
    home = make_branch(name="Home")
    partner = make_branch(name="Partner")
    bystander = make_branch(name="Bystander")
    category = create_category(db, tenant.id, home.id, "Coffee", shared_branch_ids=[partner.id], now=now)
    at_home = make_menu_item(home, category="Coffee")
    at_partner = make_menu_item(partner, category="Coffee")
    unrelated = make_menu_item(bystander, category="Coffee")
    tea = make_menu_item(home, name="Chai", category="Tea")

    renamed = update_category(db, category.id, tenant.id, name="Hot Drinks", now=now)

    assert renamed.name == "Hot Drinks"
    categories_by_item = {
        item.id: item.category for item in db.query(MenuItem).order_by(MenuItem.id)
    }
    assert categories_by_item == {
        at_home.id: "Hot Drinks",
        at_partner.id: "Hot Drinks",
        unrelated.id: "Coffee",
        tea.id: "Tea",
    }


def test_rename_with_new_shares_covers_old_and_new_branches(
    db, make_branch, make_menu_item, tenant, now
) -> None:
    home = make_branch(name="Home")
    old_partner = make_branch(name="Old")
    new_partner = make_branch(name="New")
    category = create_category(db, tenant.id, home.id, "Coffee", shared_branch_ids=[old_partner.id], now=now)
    at_old = make_menu_item(old_partner, category="Coffee")
    at_new = make_menu_item(new_partner, category="Coffee")

    updated = update_category(
        db, category.id, tenant.id, name="Brews", shared_branch_ids=[new_partner.id], now=now
    )

    assert updated.shared_branch_ids == [new_partner.id]
    db.refresh(at_old)
    db.refresh(at_new)
    assert (at_old.category, at_new.category) == ("Brews", "Brews")


def test_shares_can_be_replaced_without_renaming(db, make_branch, make_menu_item, tenant, now) -> None:
    home = make_branch(name="Home")
    first = make_branch(name="First")
    second = make_branch(name="Second")
    category = create_category(db, tenant.id, home.id, "Coffee", shared_branch_ids=[first.id], now=now)
    item = make_menu_item(first, category="Coffee")

    updated = update_category(db, category.id, tenant.id, shared_branch_ids=[second.id], now=now)

    assert updated.shared_branch_ids == [second.id]
    assert updated.name == "Coffee"
    db.refresh(item)
    assert item.category == "Coffee"


def test_names_are_unique_per_branch(db, make_branch, tenant, now) -> None:
    home = make_branch(name="Home")
    other = make_branch(name="Other")
    create_category(db, tenant.id, home.id, "Coffee", now=now)
    with pytest.raises(BusinessRuleError):
        create_category(db, tenant.id, home.id, "Coffee", now=now)
    create_category(db, tenant.id, other.id, "Coffee", now=now)

    tea = create_category(db, tenant.id, home.id, "Tea", now=now)
    with pytest.raises(BusinessRuleError):
        update_category(db, tea.id, tenant.id, name="Coffee", now=now)


def test_blank_names_and_bad_branches_are_rejected(db, make_branch, tenant, now) -> None:
    home = make_branch(name="Home")
    closed = make_branch(name="Closed", is_active=False)
    with pytest.raises(InvalidRequestError):
        create_category(db, tenant.id, home.id, "   ", now=now)
    with pytest.raises(NotFoundError):
        create_category(db, tenant.id, closed.id, "Coffee", now=now)
    with pytest.raises(NotFoundError):
        create_category(db, tenant.id + 1, home.id, "Coffee", now=now)


def test_delete_and_tenant_scoped_lookup(db, make_branch, tenant, now) -> None:
    home = make_branch(name="Home")
    partner = make_branch(name="Partner")
    category = create_category(db, tenant.id, home.id, "Coffee", shared_branch_ids=[partner.id], now=now)
    with pytest.raises(NotFoundError):
        get_category(db, category.id, tenant.id + 1)

    delete_category(db, category.id, tenant.id)

    with pytest.raises(NotFoundError):
        get_category(db, category.id, tenant.id)
    assert list_categories(db, tenant.id, partner.id) == []
