"""
test_sim_channel.py - Unit tests for the electron ledger

Tests:
- Adding deposits: folding by (tick, track), rejection of empty deposits
- Point queries: charge() and energy()
- Range aggregation and track energy fractions
- Merging with track id offsets
- Identity handling and the text dump
"""

import io

import pytest

from simtools import (
    SimChannel, ChannelMismatchError, TrackFraction,
    NO_PARTICLE_ID, INVALID_CHANNEL_ID,
)


class TestAddIonizationElectrons:

    def test_same_track_same_tick_folds(self, sim_channel):
        """Two deposits of track 7 at TDC 100 become one record."""
        sim_channel.add_ionization_electrons(7, 100, 50.0, (1.0, 2.0, 3.0), 0.01)
        sim_channel.add_ionization_electrons(7, 100, 50.0, (3.0, 2.0, 1.0), 0.01)

        assert sim_channel.charge(100) == 100.0
        assert sim_channel.energy(100) == pytest.approx(0.02, rel=1e-6)

        deposits = sim_channel.entries.find(100)
        assert len(deposits) == 1
        assert deposits[0].position == (2.0, 2.0, 2.0)

        (aggregated,) = sim_channel.track_ids_and_energies(100, 100)
        assert aggregated.position == (2.0, 2.0, 2.0)

    def test_different_tracks_kept_in_arrival_order(self, sim_channel):
        sim_channel.add_ionization_electrons(9, 100, 1.0, (0, 0, 0), 1.0)
        sim_channel.add_ionization_electrons(2, 100, 1.0, (0, 0, 0), 1.0)
        sim_channel.add_ionization_electrons(5, 100, 1.0, (0, 0, 0), 1.0)
        ids = [d.track_id for d in sim_channel.entries.find(100)]
        assert ids == [9, 2, 5]

    def test_zero_electrons_rejected(self, sim_channel, logger):
        accepted = sim_channel.add_ionization_electrons(1, 10, 0.0, (0, 0, 0), 1.0)
        assert not accepted
        assert sim_channel.charge(10) == 0.0
        assert len(sim_channel) == 0
        assert len(logger.errors) == 1
        assert "TDC #10" in logger.errors[0]

    def test_zero_energy_rejected(self, sim_channel, logger):
        sim_channel.add_ionization_electrons(1, 10, 5.0, (0, 0, 0), 0.0)
        assert len(sim_channel) == 0
        assert len(logger.errors) == 1

    def test_negative_values_rejected(self, sim_channel, logger):
        sim_channel.add_ionization_electrons(1, 10, -5.0, (0, 0, 0), 1.0)
        sim_channel.add_ionization_electrons(1, 10, 5.0, (0, 0, 0), -1.0)
        assert len(sim_channel) == 0
        assert len(logger.errors) == 2

    def test_nan_rejected(self, sim_channel, logger):
        sim_channel.add_ionization_electrons(1, 10, float('nan'), (0, 0, 0), 1.0)
        assert len(sim_channel) == 0
        assert len(logger.errors) == 1

    def test_single_precision_overflow_rejected(self, sim_channel, logger):
        """A quantity beyond float32 range would be stored as inf."""
        assert not sim_channel.add_ionization_electrons(1, 1, 1e39, (1, 1, 1), 1.0)
        assert len(sim_channel) == 0
        assert len(logger.errors) == 1
        assert "TDC #1" in logger.errors[0]

        assert sim_channel.add_ionization_electrons(1, 1, 1.0, (1, 1, 1), 1.0)
        (deposit,) = sim_channel.entries.find(1)
        assert deposit == (1, 1.0, 1.0, 1.0, 1.0, 1.0)

    def test_non_finite_position_rejected(self, sim_channel, logger):
        assert not sim_channel.add_ionization_electrons(
            1, 1, 1.0, (float("inf"), 0, 0), 1.0)
        assert not sim_channel.add_ionization_electrons(
            1, 1, 1.0, (0, float("nan"), 0), 1.0)
        assert len(sim_channel) == 0
        assert len(logger.errors) == 2

    def test_overflowing_fold_rejected(self, sim_channel, logger):
        sim_channel.add_ionization_electrons(1, 1, 3e38, (1, 1, 1), 1.0)
        before = sim_channel.dump()
        assert not sim_channel.add_ionization_electrons(1, 1, 3e38, (1, 1, 1), 1.0)
        assert sim_channel.dump() == before
        assert len(logger.errors) == 1

    def test_rejection_keeps_existing_state(self, filled_sim_channel):
        before = filled_sim_channel.dump()
        filled_sim_channel.add_ionization_electrons(1, 100, 0.0, (0, 0, 0), 1.0)
        assert filled_sim_channel.dump() == before

    def test_totals_non_decreasing(self, sim_channel):
        previous = 0.0
        for q in (1.0, 2.5, 0.5, 10.0):
            sim_channel.add_ionization_electrons(1, 3, q, (0, 0, 0), 1.0)
            assert sim_channel.charge(3) >= previous
            previous = sim_channel.charge(3)

    def test_sentinel_track_accepted(self, sim_channel):
        sim_channel.add_ionization_electrons(NO_PARTICLE_ID, 1, 1.0, (0, 0, 0), 1.0)
        sim_channel.add_ionization_electrons(None, 1, 1.0, (0, 0, 0), 1.0)
        (deposit,) = sim_channel.entries.find(1)
        assert deposit.track_id is None
        assert deposit.quantity == 2.0


class TestPointQueries:

    def test_charge_and_energy(self, filled_sim_channel):
        assert filled_sim_channel.charge(100) == 40.0
        assert filled_sim_channel.energy(100) == 4.0
        assert filled_sim_channel.charge(110) == 50.0

    def test_absent_tick_is_zero(self, filled_sim_channel):
        assert filled_sim_channel.charge(101) == 0.0
        assert filled_sim_channel.energy(0) == 0.0
        assert filled_sim_channel.charge(10_000) == 0.0

    def test_point_query_matches_single_tick_range(self, filled_sim_channel):
        for tdc in (100, 102, 110):
            records = filled_sim_channel.track_ids_and_energies(tdc, tdc)
            assert filled_sim_channel.charge(tdc) == pytest.approx(
                sum(r.quantity for r in records))
            assert filled_sim_channel.energy(tdc) == pytest.approx(
                sum(r.energy for r in records))


class TestTrackIdsAndEnergies:

    def test_merges_across_ticks(self, filled_sim_channel):
        records = filled_sim_channel.track_ids_and_energies(100, 102)
        assert [r.track_id for r in records] == [1, 2]
        track1 = records[0]
        assert track1.quantity == 20.0
        assert track1.energy == 2.0
        assert track1.position == (1.0, 0.0, 0.0)

    def test_sorted_by_track_id(self, sim_channel):
        for track_id in (30, 4, 17):
            sim_channel.add_ionization_electrons(track_id, 1, 1.0, (0, 0, 0), 1.0)
        sim_channel.add_ionization_electrons(NO_PARTICLE_ID, 2, 1.0, (0, 0, 0), 1.0)
        records = sim_channel.track_ids_and_energies(0, 5)
        assert [r.track_id for r in records] == [None, 4, 17, 30]

    def test_range_outside_data(self, filled_sim_channel):
        assert filled_sim_channel.track_ids_and_energies(0, 99) == []
        assert filled_sim_channel.track_ids_and_energies(111, 200) == []

    def test_inverted_range_warns(self, filled_sim_channel, logger):
        assert filled_sim_channel.track_ids_and_energies(110, 100) == []
        assert len(logger.warnings) == 1
        assert logger.errors == []

    def test_does_not_modify_ledger(self, filled_sim_channel):
        before = filled_sim_channel.dump()
        filled_sim_channel.track_ids_and_energies(0, 1000)
        assert filled_sim_channel.dump() == before


class TestTrackIDEs:

    def test_energy_fractions(self, filled_sim_channel):
        fractions = filled_sim_channel.track_ides(100, 110)
        assert [f.track_id for f in fractions] == [1, 2, 3]
        assert [f.fraction for f in fractions] == pytest.approx([0.2, 0.3, 0.5])
        assert [f.value for f in fractions] == pytest.approx([2.0, 3.0, 5.0])
        assert all(isinstance(f, TrackFraction) for f in fractions)

    def test_fractions_sum_to_one_without_sentinel(self, filled_sim_channel):
        fractions = filled_sim_channel.track_ides(100, 110)
        assert sum(f.fraction for f in fractions) == pytest.approx(1.0)

    def test_sentinel_counts_in_total_only(self, filled_sim_channel):
        filled_sim_channel.add_ionization_electrons(
            NO_PARTICLE_ID, 100, 5.0, (0, 0, 0), 10.0)
        fractions = filled_sim_channel.track_ides(100, 100)
        assert [f.track_id for f in fractions] == [1, 2]
        assert [f.fraction for f in fractions] == pytest.approx([1 / 14, 3 / 14])
        assert sum(f.fraction for f in fractions) < 1.0

    def test_tiny_total_replaced_by_one(self, sim_channel):
        sim_channel.add_ionization_electrons(1, 1, 1.0, (0, 0, 0), 1e-6)
        (fraction,) = sim_channel.track_ides(0, 10)
        assert fraction.fraction == pytest.approx(1e-6)
        assert fraction.value == pytest.approx(1e-6)

    def test_empty_range(self, filled_sim_channel):
        assert filled_sim_channel.track_ides(0, 50) == []

    def test_inverted_range_warns(self, filled_sim_channel, logger):
        assert filled_sim_channel.track_ides(5, 1) == []
        assert len(logger.warnings) == 1


class TestMergeSimChannel:

    def test_offset_copy_appended(self, logger):
        """Merged deposits sit next to existing ones, not folded into them."""
        a = SimChannel(5, logger=logger)
        b = SimChannel(5, logger=logger)
        a.add_ionization_electrons(3, 50, 10.0, (0, 0, 0), 1.0)
        b.add_ionization_electrons(3, 50, 20.0, (1, 1, 1), 2.0)

        assert a.merge_sim_channel(b, 1000) == (1003, 1003)

        ids = [d.track_id for d in a.entries.find(50)]
        assert ids == [3, 1003]
        assert a.charge(50) == 30.0

    def test_same_resulting_id_not_folded(self, logger):
        a = SimChannel(5, logger=logger)
        b = SimChannel(5, logger=logger)
        a.add_ionization_electrons(3, 50, 10.0, (0, 0, 0), 1.0)
        b.add_ionization_electrons(3, 50, 20.0, (1, 1, 1), 2.0)
        a.merge_sim_channel(b, 0)
        assert [d.track_id for d in a.entries.find(50)] == [3, 3]

    def test_new_ticks_inserted_in_order(self, filled_sim_channel, logger):
        other = SimChannel(5, logger=logger)
        other.add_ionization_electrons(1, 105, 1.0, (0, 0, 0), 1.0)
        other.add_ionization_electrons(2, 1, 1.0, (0, 0, 0), 1.0)
        other.add_ionization_electrons(4, 500, 1.0, (0, 0, 0), 1.0)
        assert filled_sim_channel.merge_sim_channel(other, 100) == (101, 104)
        assert filled_sim_channel.entries.ticks() == [1, 100, 102, 105, 110, 500]
        assert filled_sim_channel.charge(105) == 1.0

    def test_other_unchanged(self, filled_sim_channel, logger):
        other = SimChannel(5, logger=logger)
        other.add_ionization_electrons(1, 100, 1.0, (0, 0, 0), 1.0)
        before = other.dump()
        filled_sim_channel.merge_sim_channel(other, 10)
        assert other.dump() == before

    def test_reproduces_other_with_offset(self, filled_sim_channel, logger):
        other = SimChannel(5, logger=logger)
        other.add_ionization_electrons(1, 100, 4.0, (1, 2, 3), 0.5)
        other.add_ionization_electrons(2, 120, 6.0, (4, 5, 6), 0.7)
        offset = 1000
        filled_sim_channel.merge_sim_channel(other, offset)

        for entry in other.entries:
            merged = [d for d in filled_sim_channel.entries.find(entry.tick)
                      if d.track_id is not None and d.track_id >= offset]
            expected = [d._replace(track_id=d.track_id + offset) for d in entry.deposits]
            assert merged == expected

    def test_different_channels_fail_without_changes(self, logger):
        a = SimChannel(5, logger=logger)
        b = SimChannel(6, logger=logger)
        a.add_ionization_electrons(1, 10, 1.0, (0, 0, 0), 1.0)
        b.add_ionization_electrons(2, 20, 1.0, (0, 0, 0), 1.0)
        dump_a, dump_b = a.dump(), b.dump()

        with pytest.raises(ChannelMismatchError):
            a.merge_sim_channel(b, 100)

        assert a.dump() == dump_a
        assert b.dump() == dump_b

    def test_empty_other(self, filled_sim_channel, logger):
        assert filled_sim_channel.merge_sim_channel(SimChannel(5, logger=logger), 7) == (None, None)

    def test_sentinel_not_in_range(self, logger):
        a = SimChannel(5, logger=logger)
        b = SimChannel(5, logger=logger)
        b.add_ionization_electrons(NO_PARTICLE_ID, 1, 1.0, (0, 0, 0), 1.0)
        b.add_ionization_electrons(8, 1, 1.0, (0, 0, 0), 1.0)
        assert a.merge_sim_channel(b, 10) == (18, 18)
        assert [d.track_id for d in a.entries.find(1)] == [None, 18]

    def test_merge_into_itself(self, filled_sim_channel):
        filled_sim_channel.merge_sim_channel(filled_sim_channel, 1000)
        assert filled_sim_channel.charge(100) == 80.0


class TestIdentity:

    def test_default_is_invalid(self):
        channel = SimChannel()
        assert channel.channel == INVALID_CHANNEL_ID
        assert not channel.is_valid

    def test_set_once(self):
        channel = SimChannel()
        channel.set_channel_id(12)
        assert channel.channel == 12
        with pytest.raises(ValueError):
            channel.set_channel_id(13)

    def test_set_after_add_fails(self, logger):
        channel = SimChannel(logger=logger)
        channel.add_ionization_electrons(1, 1, 1.0, (0, 0, 0), 1.0)
        with pytest.raises(ValueError):
            channel.set_channel_id(3)

    def test_identity_stable_across_adds(self, sim_channel):
        for tdc in range(20):
            sim_channel.add_ionization_electrons(tdc % 3, tdc, 1.0, (0, 0, 0), 1.0)
        assert sim_channel.channel == 5

    def test_sortable_by_channel(self, logger):
        channels = [SimChannel(c, logger=logger) for c in (9, 2, 5)]
        assert [c.channel for c in sorted(channels)] == [2, 5, 9]

    def test_equality_is_object_identity(self, logger):
        a = SimChannel(4, logger=logger)
        b = SimChannel(4, logger=logger)
        assert a == a
        assert a != b
        assert not a < b and not b < a
        assert len({a, b}) == 2

        a.add_ionization_electrons(1, 1, 1.0, (0, 0, 0), 1.0)
        assert a in {a}

    def test_copy_is_independent(self, filled_sim_channel):
        clone = filled_sim_channel.copy()
        clone.add_ionization_electrons(1, 100, 5.0, (0, 0, 0), 1.0)
        assert clone.channel == 5
        assert filled_sim_channel.charge(100) == 40.0
        assert clone.charge(100) == 45.0


class TestDump:

    def test_report_content(self, filled_sim_channel):
        lines = filled_sim_channel.dump().splitlines()
        assert lines[0] == "channel #5 read 3 TDCs:"
        assert lines[1] == "  TDC #100 with 2 IDEs"
        assert lines[2] == "    (0, 0, 0) 10 electrons, 1 MeV (trkID=1)"
        assert lines[4] == "    => TDC #100 CH #5 collected 40 electrons and 4 MeV"
        assert lines[-1] == "  => channel #5 collected 100 electrons and 10 MeV"

    def test_indent_and_stream(self, filled_sim_channel):
        out = io.StringIO()
        text = filled_sim_channel.dump(out, indent="  ", first_indent="* ")
        assert out.getvalue() == text
        lines = text.splitlines()
        assert lines[0].startswith("* channel #5")
        assert all(line.startswith("  ") for line in lines[1:])

    def test_deterministic(self, filled_sim_channel):
        assert filled_sim_channel.dump() == filled_sim_channel.copy().dump()

    def test_sentinel_printed_as_integer(self, sim_channel):
        sim_channel.add_ionization_electrons(None, 1, 1.0, (0, 0, 0), 1.0)
        assert f"(trkID={NO_PARTICLE_ID})" in sim_channel.dump()

    def test_empty_channel(self, sim_channel):
        lines = sim_channel.dump().splitlines()
        assert lines == ["channel #5 read 0 TDCs:",
                         "  => channel #5 collected 0 electrons and 0 MeV"]
