"""Unit tests for FilamentAggregate: derived remaining weights, archive cascade, restock."""

import pytest

from backend.app.core.exceptions import InUseError, NotFoundError
from backend.app.services.filament_aggregate import FilamentAggregate
from backend.app.services.filament_locks import FilamentLocks


@pytest.fixture
def aggregate(db_session):
    return FilamentAggregate(db_session, locks=FilamentLocks())


class TestRemaining:
    """Gross and net remaining are different quantities."""

    @pytest.mark.asyncio
    async def test_gross_vs_net(self, aggregate, filament_factory, spool_factory):
        filament = await filament_factory()
        await spool_factory(filament.id, starting_weight_g=1000, weight_g=800, empty_weight_g=250)
        await spool_factory(filament.id, starting_weight_g=500, weight_g=300)
        await spool_factory(filament.id, starting_weight_g=1000, empty_weight_g=250, archived=True)

        assert await aggregate.gross_remaining(filament.id) == pytest.approx(1100)
        assert await aggregate.net_remaining(filament.id) == pytest.approx(850)

    @pytest.mark.asyncio
    async def test_no_spools_is_zero(self, aggregate, filament_factory):
        filament = await filament_factory()
        assert await aggregate.gross_remaining(filament.id) == 0
        assert await aggregate.net_remaining(filament.id) == 0

    @pytest.mark.asyncio
    async def test_remaining_by_filament(self, aggregate, filament_factory, spool_factory):
        a = await filament_factory()
        b = await filament_factory()
        empty = await filament_factory()
        await spool_factory(a.id, weight_g=700, empty_weight_g=200)
        await spool_factory(b.id, weight_g=100)
        await spool_factory(b.id, weight_g=50)

        remaining = await aggregate.remaining_by_filament()

        assert remaining[a.id] == pytest.approx((700, 500))
        assert remaining[b.id] == pytest.approx((150, 150))
        assert empty.id not in remaining

    @pytest.mark.asyncio
    async def test_snapshot(self, aggregate, filament_factory, spool_factory):
        filament = await filament_factory(name="Matte Jade")
        active = await spool_factory(filament.id, weight_g=600, empty_weight_g=100)
        await spool_factory(filament.id, archived=True)

        snapshot = await aggregate.snapshot(filament)

        assert snapshot["name"] == "Matte Jade"
        assert snapshot["gross_remaining_g"] == pytest.approx(600)
        assert snapshot["net_remaining_g"] == pytest.approx(500)
        assert [s.id for s in snapshot["spools"]] == [active.id]


class TestArchive:
    @pytest.mark.asyncio
    async def test_cascades_to_every_spool(self, aggregate, filament_factory, spool_factory):
        """Archiving archives all spools, however full they are."""
        filament = await filament_factory()
        await spool_factory(filament.id)
        await spool_factory(filament.id, weight_g=10)

        result = await aggregate.archive(filament.id, True)

        assert result.archived
        assert await aggregate.ledger.list_active(filament.id) == []
        assert all(s.archived for s in await aggregate.ledger.list_all(filament.id))
        assert await aggregate.gross_remaining(filament.id) == 0

    @pytest.mark.asyncio
    async def test_unarchive_leaves_spools_archived(self, aggregate, filament_factory, spool_factory):
        filament = await filament_factory()
        await spool_factory(filament.id)
        await aggregate.archive(filament.id, True)

        result = await aggregate.archive(filament.id, False)

        assert not result.archived
        assert await aggregate.ledger.list_active(filament.id) == []

    @pytest.mark.asyncio
    async def test_update_with_archived_cascades(self, aggregate, filament_factory, spool_factory):
        filament = await filament_factory()
        await spool_factory(filament.id)

        await aggregate.update(filament.id, archived=True, notes="discontinued")

        assert await aggregate.ledger.list_active(filament.id) == []

    @pytest.mark.asyncio
    async def test_listing_hides_archived(self, aggregate, filament_factory):
        active = await filament_factory()
        archived = await filament_factory(archived=True)

        assert [f.id for f in await aggregate.list_filaments()] == [active.id]
        assert {f.id for f in await aggregate.list_filaments(include_archived=True)} == {active.id, archived.id}


class TestRestock:
    @pytest.mark.asyncio
    async def test_adds_full_spools(self, aggregate, filament_factory):
        """restock(f, 3, 1000, 250) adds three full, active spools."""
        filament = await filament_factory()

        spools = await aggregate.restock(filament.id, 3, 1000, 250)

        assert len(spools) == 3
        for spool in spools:
            assert spool.starting_weight_g == 1000
            assert spool.weight_g == 1000
            assert spool.empty_weight_g == 250
            assert not spool.archived
        assert len(await aggregate.ledger.list_active(filament.id)) == 3
        assert await aggregate.gross_remaining(filament.id) == pytest.approx(3000)
        assert await aggregate.net_remaining(filament.id) == pytest.approx(2250)

    @pytest.mark.asyncio
    async def test_rejects_bad_quantity(self, aggregate, filament_factory):
        filament = await filament_factory()
        with pytest.raises(ValueError):
            await aggregate.restock(filament.id, 0, 1000)
        with pytest.raises(ValueError):
            await aggregate.restock(filament.id, 1, 0)

    @pytest.mark.asyncio
    async def test_missing_filament(self, aggregate):
        with pytest.raises(NotFoundError):
            await aggregate.restock(404, 1, 1000)


class TestCreateUpdateDelete:
    @pytest.mark.asyncio
    async def test_create_with_initial_spool(self, aggregate):
        filament = await aggregate.create(
            "Silk Gold", "PLA", color_hex="#D4AF37", starting_weight_g=1250, empty_weight_g=250
        )

        [spool] = await aggregate.ledger.list_active(filament.id)
        assert spool.weight_g == 1250
        assert spool.remaining_percent == 100
        assert await aggregate.net_remaining(filament.id) == pytest.approx(1000)

    @pytest.mark.asyncio
    async def test_create_without_spool(self, aggregate):
        filament = await aggregate.create("PETG Clear", "PETG")
        assert await aggregate.ledger.list_all(filament.id) == []

    @pytest.mark.asyncio
    async def test_update_keeps_required_fields_on_none(self, aggregate, filament_factory):
        filament = await filament_factory(name="Old", material="PLA")

        updated = await aggregate.update(filament.id, name=None, material="PLA+", color_name=None)

        assert updated.name == "Old"
        assert updated.material == "PLA+"
        assert updated.color_name is None

    @pytest.mark.asyncio
    async def test_update_unknown_field(self, aggregate, filament_factory):
        filament = await filament_factory()
        with pytest.raises(ValueError):
            await aggregate.update(filament.id, cost_per_kg=20)

    @pytest.mark.asyncio
    async def test_delete_with_entries_requires_force(
        self, aggregate, db_session, filament_factory, spool_factory, entry_factory
    ):
        filament = await filament_factory()
        filament_id = filament.id
        await spool_factory(filament_id)
        await entry_factory(filament_id)

        with pytest.raises(InUseError):
            await aggregate.delete(filament_id)
        assert await aggregate.has_consumption_entries(filament_id)

        await aggregate.delete(filament_id, force=True)

        with pytest.raises(NotFoundError):
            await aggregate.get(filament_id)
        assert await aggregate.ledger.list_spools(include_archived=True) == []
        assert not await aggregate.has_consumption_entries(filament_id)

    @pytest.mark.asyncio
    async def test_delete_without_entries(self, aggregate, filament_factory, spool_factory):
        filament = await filament_factory()
        await spool_factory(filament.id)

        await aggregate.delete(filament.id)

        assert await aggregate.list_filaments(include_archived=True) == []


class TestSuggestFor:
    @pytest.mark.asyncio
    async def test_prefers_color_then_fullest(self, aggregate, filament_factory, spool_factory):
        orange = await filament_factory(material="PETG", color_hex="#FF8800")
        black_big = await filament_factory(material="PETG", color_hex="#000000")
        black_small = await filament_factory(material="petg", color_hex="#000000")
        empty = await filament_factory(material="PETG", color_hex="#FF8800")
        await spool_factory(orange.id, weight_g=200)
        await spool_factory(black_big.id, weight_g=900)
        await spool_factory(black_small.id, weight_g=300)
        await spool_factory(empty.id, weight_g=0, archived=True)

        by_color = await aggregate.suggest_for("PETG", "#ff8800")
        assert [f.id for f in by_color] == [orange.id]

        any_color = await aggregate.suggest_for("PETG", "#123456")
        assert [f.id for f in any_color] == [black_big.id, black_small.id, orange.id]

    @pytest.mark.asyncio
    async def test_no_material(self, aggregate):
        assert await aggregate.suggest_for("") == []


class TestNeedsRestock:
    """Low-stock filaments: 0 < gross remaining <= threshold."""

    @pytest.mark.asyncio
    async def test_threshold_bounds(self, aggregate, filament_factory, spool_factory):
        at_threshold = await filament_factory()
        low = await filament_factory()
        plenty = await filament_factory()
        empty = await filament_factory()
        await spool_factory(at_threshold.id, starting_weight_g=1000, weight_g=100)
        await spool_factory(low.id, starting_weight_g=1000, weight_g=20)
        await spool_factory(low.id, starting_weight_g=1000, weight_g=15)
        await spool_factory(plenty.id, starting_weight_g=1000, weight_g=100.5)
        await spool_factory(empty.id, starting_weight_g=1000, weight_g=0)

        result = await aggregate.needs_restock(100)

        assert [f.id for f in result] == [low.id, at_threshold.id]

    @pytest.mark.asyncio
    async def test_uses_gross_and_skips_archived(self, aggregate, filament_factory, spool_factory):
        """Tare counts toward remaining; archived spools and filaments do not."""
        tared = await filament_factory()
        shelved = await filament_factory(archived=True)
        await spool_factory(tared.id, starting_weight_g=1000, weight_g=150, empty_weight_g=100)
        await spool_factory(tared.id, starting_weight_g=1000, weight_g=40, archived=True)
        await spool_factory(shelved.id, starting_weight_g=1000, weight_g=30)

        assert await aggregate.needs_restock(100) == []
        assert [f.id for f in await aggregate.needs_restock(150)] == [tared.id]

    @pytest.mark.asyncio
    async def test_no_spools_not_reported(self, aggregate, filament_factory):
        await filament_factory()
        assert await aggregate.needs_restock(100) == []
