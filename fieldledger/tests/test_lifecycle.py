import pytest
from decimal import Decimal

from fieldledger.core.enums import OrderStatus, UserRole
from fieldledger.core.exceptions import (
    ValidationError, NotFoundError, ConflictError, AlreadyClaimedError, OrderLockedError,
    CrewMismatchError, AuthorizationError,
)
from fieldledger.core.security import Actor
from fieldledger.services import lifecycle, crews


@pytest.mark.lifecycle
@pytest.mark.integration
class TestCreateAndList:

    @pytest.mark.asyncio
    async def test_new_order_has_complete_financials(self, db):
        order = await lifecycle.create_order(db, Decimal("150000"), client_name="Ivanov", actor_id=1)
        assert order.status == OrderStatus.NEW
        assert order.crew_id is None
        assert order.final_price == Decimal("150000")
        assert order.total_expenses == Decimal("0")
        assert order.net_profit == Decimal("150000")

    @pytest.mark.asyncio
    async def test_non_positive_price_rejected(self, db):
        with pytest.raises(ValidationError):
            await lifecycle.create_order(db, Decimal("0"))

    @pytest.mark.asyncio
    async def test_new_order_notifies_active_crews(self, db, crew_factory, notifications):
        first = await crew_factory()
        second = await crew_factory()
        await crews.set_crew_active(db, second.id, False)

        order = await lifecycle.create_order(db, Decimal("500"))
        sent = notifications.for_event("order_available")
        assert [recipient for recipient, _ in sent] == [first.lead_actor_id]
        assert sent[0][1]["order_id"] == order.id

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        await order_factory()
        taken = await order_factory(crew=crew, status=OrderStatus.PROCESSING)

        processing = await lifecycle.list_orders(db, status=OrderStatus.PROCESSING)
        assert [o.id for o in processing] == [taken.id]
        assert len(await lifecycle.list_orders(db)) == 2
        assert [o.id for o in await lifecycle.list_orders(db, crew_id=crew.id)] == [taken.id]


@pytest.mark.lifecycle
@pytest.mark.integration
class TestClaim:

    @pytest.mark.asyncio
    async def test_claim_moves_new_to_processing(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory()
        claimed = await lifecycle.claim(db, order.id, crew.id)
        assert claimed.status == OrderStatus.PROCESSING
        assert claimed.crew_id == crew.id

    @pytest.mark.asyncio
    async def test_second_claim_conflicts(self, db, crew_factory, order_factory):
        crew_7 = await crew_factory(name="Crew 7")
        crew_9 = await crew_factory(name="Crew 9")
        order = await order_factory()

        await lifecycle.claim(db, order.id, crew_7.id)
        with pytest.raises(AlreadyClaimedError):
            await lifecycle.claim(db, order.id, crew_9.id)

        order = await lifecycle.get_order(db, order.id)
        assert order.crew_id == crew_7.id

    @pytest.mark.asyncio
    async def test_claim_race_through_stale_session(self, db, other_db, crew_factory, order_factory):
        crew_7 = await crew_factory(name="Crew 7")
        crew_9 = await crew_factory(name="Crew 9")
        order = await order_factory()

        # crew 9's request read the order while it was still NEW
        stale = await lifecycle.get_order(other_db, order.id)
        assert stale.status == OrderStatus.NEW

        await lifecycle.claim(db, order.id, crew_7.id)
        with pytest.raises(ConflictError):
            await lifecycle.claim(other_db, order.id, crew_9.id)

        await db.refresh(order)
        assert order.crew_id == crew_7.id
        assert order.status == OrderStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_unknown_crew_or_order(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory()
        with pytest.raises(NotFoundError):
            await lifecycle.claim(db, order.id, 9999)
        with pytest.raises(NotFoundError):
            await lifecycle.claim(db, 9999, crew.id)

    @pytest.mark.asyncio
    async def test_inactive_crew_cannot_claim(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        await crews.set_crew_active(db, crew.id, False)
        order = await order_factory()
        with pytest.raises(NotFoundError):
            await lifecycle.claim(db, order.id, crew.id)


@pytest.mark.lifecycle
@pytest.mark.integration
class TestTransition:

    @pytest.mark.asyncio
    async def test_crew_moves_own_order_to_work_and_back(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory(crew=crew, status=OrderStatus.PROCESSING)
        actor = Actor(id=crew.lead_actor_id, role=UserRole.CREW, crew_id=crew.id)

        order = await lifecycle.transition(db, order.id, actor, OrderStatus.WORK)
        assert order.status == OrderStatus.WORK
        order = await lifecycle.transition(db, order.id, actor, OrderStatus.PROCESSING)
        assert order.status == OrderStatus.PROCESSING

    @pytest.mark.asyncio
    async def test_crew_cannot_touch_foreign_order(self, db, crew_factory, order_factory):
        holder = await crew_factory()
        other = await crew_factory()
        order = await order_factory(crew=holder, status=OrderStatus.PROCESSING)
        actor = Actor(id=other.lead_actor_id, role=UserRole.CREW, crew_id=other.id)

        with pytest.raises(AuthorizationError):
            await lifecycle.transition(db, order.id, actor, OrderStatus.WORK)

    @pytest.mark.asyncio
    async def test_crew_cannot_cancel(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory(crew=crew, status=OrderStatus.WORK)
        actor = Actor(id=crew.lead_actor_id, role=UserRole.CREW, crew_id=crew.id)
        with pytest.raises(AuthorizationError):
            await lifecycle.transition(db, order.id, actor, OrderStatus.CANCELED)

    @pytest.mark.asyncio
    async def test_done_only_via_finalize(self, db, owner, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory(crew=crew, status=OrderStatus.WORK)
        with pytest.raises(AuthorizationError):
            await lifecycle.transition(db, order.id, owner, OrderStatus.DONE)
        assert (await lifecycle.get_order(db, order.id)).status == OrderStatus.WORK

    @pytest.mark.asyncio
    async def test_invalid_status_value(self, db, owner, order_factory):
        order = await order_factory()
        with pytest.raises(ValidationError):
            await lifecycle.transition(db, order.id, owner, "archived")

    @pytest.mark.asyncio
    async def test_manager_cancels_then_order_is_locked(self, db, manager, owner, order_factory):
        order = await order_factory()
        order = await lifecycle.transition(db, order.id, manager, OrderStatus.CANCELED)
        assert order.status == OrderStatus.CANCELED

        with pytest.raises(OrderLockedError):
            await lifecycle.transition(db, order.id, owner, OrderStatus.PROCESSING)

    @pytest.mark.asyncio
    async def test_settled_order_status_is_frozen(self, db, owner, manager, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory(crew=crew, status=OrderStatus.DONE)
        lead = Actor(id=crew.lead_actor_id, role=UserRole.CREW, crew_id=crew.id)

        for actor, target in ((owner, OrderStatus.WORK), (manager, OrderStatus.CANCELED), (lead, OrderStatus.PROCESSING)):
            with pytest.raises(OrderLockedError):
                await lifecycle.transition(db, order.id, actor, target)
        assert (await lifecycle.get_order(db, order.id)).status == OrderStatus.DONE


@pytest.mark.lifecycle
@pytest.mark.integration
class TestRefuseTransferAssign:

    @pytest.mark.asyncio
    async def test_refuse_returns_order_to_pool(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory(crew=crew, status=OrderStatus.WORK)

        order = await lifecycle.refuse(db, order.id, crew.id)
        assert order.status == OrderStatus.NEW
        assert order.crew_id is None

    @pytest.mark.asyncio
    async def test_refuse_by_non_holder(self, db, crew_factory, order_factory):
        holder = await crew_factory()
        other = await crew_factory()
        order = await order_factory(crew=holder, status=OrderStatus.PROCESSING)
        with pytest.raises(CrewMismatchError):
            await lifecycle.refuse(db, order.id, other.id)

    @pytest.mark.asyncio
    async def test_refuse_settled_order_is_locked(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory(crew=crew, status=OrderStatus.DONE)
        with pytest.raises(OrderLockedError):
            await lifecycle.refuse(db, order.id, crew.id)

    @pytest.mark.asyncio
    async def test_transfer_keeps_status(self, db, crew_factory, order_factory, notifications):
        source = await crew_factory()
        target = await crew_factory()
        order = await order_factory(crew=source, status=OrderStatus.WORK)

        order = await lifecycle.transfer(db, order.id, source.id, target.id)
        assert order.crew_id == target.id
        assert order.status == OrderStatus.WORK
        assert notifications.for_event("order_transferred") == [(target.lead_actor_id, {"order_id": order.id})]

    @pytest.mark.asyncio
    async def test_transfer_validations(self, db, crew_factory, order_factory):
        source = await crew_factory()
        target = await crew_factory()
        order = await order_factory(crew=source, status=OrderStatus.PROCESSING)

        with pytest.raises(ValidationError):
            await lifecycle.transfer(db, order.id, source.id, source.id)
        with pytest.raises(NotFoundError):
            await lifecycle.transfer(db, order.id, source.id, 9999)
        with pytest.raises(CrewMismatchError):
            await lifecycle.transfer(db, order.id, target.id, source.id)

    @pytest.mark.asyncio
    async def test_assign_new_order(self, db, crew_factory, order_factory, notifications):
        crew = await crew_factory()
        order = await order_factory()

        order = await lifecycle.assign(db, order.id, crew.id)
        assert order.status == OrderStatus.PROCESSING
        assert order.crew_id == crew.id
        assert notifications.for_event("order_assigned")[0][0] == crew.lead_actor_id

    @pytest.mark.asyncio
    async def test_assign_keeps_work_status(self, db, crew_factory, order_factory):
        first = await crew_factory()
        second = await crew_factory()
        order = await order_factory(crew=first, status=OrderStatus.WORK)

        order = await lifecycle.assign(db, order.id, second.id)
        assert order.status == OrderStatus.WORK
        assert order.crew_id == second.id

    @pytest.mark.asyncio
    async def test_assign_canceled_order_is_locked(self, db, crew_factory, order_factory):
        crew = await crew_factory()
        order = await order_factory(status=OrderStatus.CANCELED)
        with pytest.raises(OrderLockedError):
            await lifecycle.assign(db, order.id, crew.id)
