"""
Per-channel deposit ledgers.

A channel ledger accumulates the deposits seen by one readout channel, keyed
by tick. It is used in two flavors sharing one implementation:

SimChannel:
    Drifted ionization electrons on a TPC readout channel, keyed by integer
    TDC ticks. Track fractions are computed from the deposited energy.

OpDetBacktrackerRecord:
    Scintillation photons on an optical detector, keyed by floating point
    clock ticks (ns). Track fractions are computed from the photon count.

Bad input never aborts a call: rejected deposits and inverted tick ranges are
reported to the channel's logger. Merging channels with different identities
raises ChannelMismatchError before anything is copied.
"""

import copy
from typing import NamedTuple, Optional, List, Tuple

import numpy as np

from simtools.config import (
    LedgerFlavor,
    LedgerConfig,
    ELECTRON_FLAVOR,
    PHOTON_FLAVOR,
    DEFAULT_CONFIG,
)
from simtools.deposits import (
    DepositRecord,
    decode_track_id,
    encode_track_id,
    is_finite_deposit,
    make_deposit,
    merge_deposits,
    offset_deposit,
    track_sort_key,
)
from simtools.messages import default_logger
from simtools.ticks import TickLedger


class ChannelMismatchError(RuntimeError):
    """Raised when merging ledgers of different channels."""


class TrackFraction(NamedTuple):
    """Share of a tick range attributed to one track."""
    track_id: int     # Track id (never the sentinel)
    fraction: float   # value / total over the range
    value: float      # Energy [MeV] or photons, depending on the flavor


def _fmt(value):
    if isinstance(value, float):
        return f"{value:g}"
    return str(value)


class Channel:
    """
    Deposit ledger of one channel.

    Parameters
    ----------
    channel_id : int, optional
        Channel identity. If None, the flavor's invalid identity is used and
        may be assigned once with ``set_channel_id()``.
    flavor : LedgerFlavor, optional
        Ledger flavor. Subclasses fix it; the generic class needs it.
    logger : object, optional
        Receives ``error()`` and ``warning()`` messages. Default prints them.
    config : LedgerConfig, optional
        Numeric settings, by default ``DEFAULT_CONFIG``.

    Notes
    -----
    Ledgers sort by channel identity (``<``), but ``==`` and ``hash()`` stay
    those of the object: two ledgers of the same channel with different
    content are different objects, and a ledger stays hashable while its
    content changes.
    """

    flavor: Optional[LedgerFlavor] = None

    def __init__(self, channel_id=None, flavor=None, logger=None, config=None):
        if flavor is not None:
            self.flavor = flavor
        if self.flavor is None:
            raise ValueError("A ledger flavor is required.")

        self.config: LedgerConfig = config if config is not None else DEFAULT_CONFIG
        self.logger = logger if logger is not None else default_logger(self.flavor.name)

        if channel_id is None:
            self._channel_id = self.flavor.invalid_id
        else:
            self._channel_id = int(channel_id)
        self._ledger = TickLedger(self.flavor.tick_type)

    # -------------------------------------------------------------------------
    # Identity
    # -------------------------------------------------------------------------

    @property
    def channel_id(self) -> int:
        return self._channel_id

    @property
    def is_valid(self) -> bool:
        """True once the channel carries a real identity."""
        return self._channel_id != self.flavor.invalid_id

    def set_channel_id(self, channel_id):
        """
        Assign the identity of a default-constructed, still empty channel.

        Raises
        ------
        ValueError
            If the identity is already set or deposits were already added.
        """
        if self.is_valid:
            raise ValueError(
                f"{self.flavor.name}: identity already set to {self._channel_id}")
        if len(self._ledger):
            raise ValueError(
                f"{self.flavor.name}: cannot set identity after deposits were added")
        self._channel_id = int(channel_id)

    def __lt__(self, other):
        return self._channel_id < other.channel_id

    def __len__(self):
        return len(self._ledger)

    def __repr__(self):
        return (f"{type(self).__name__}({self.flavor.channel_label}={self._channel_id}, "
                f"{len(self._ledger)} {self.flavor.tick_label}s)")

    @property
    def entries(self) -> TickLedger:
        """The tick ledger, ascending by tick. Read-only by convention."""
        return self._ledger

    def copy(self):
        """Independent copy with the same identity, logger and settings."""
        clone = copy.copy(self)
        clone._ledger = self._ledger.copy()
        return clone

    # -------------------------------------------------------------------------
    # Filling
    # -------------------------------------------------------------------------

    def add(self, track_id, tick, quantity, position, energy) -> bool:
        """
        Add a deposit to the channel.

        Deposits from the same track at the same tick are folded into one
        record: quantities and energies add up and the position becomes the
        quantity-weighted average.

        Parameters
        ----------
        track_id : int or None
            Track depositing this energy. None or the configured
            ``no_particle_id`` mean "no originating particle".
        tick : int or float
            Tick when the deposit was collected.
        quantity : float
            Electrons or photons collected (may be fractional).
        position : sequence of float, length 3
            (x, y, z) of the original deposit [cm].
        energy : float
            Deposited energy [MeV].

        Returns
        -------
        bool
            False if the deposit was rejected (no quantity or no energy, or
            a value overflowing single precision). The ledger is unchanged then.
        """
        eps = self.config.epsilon
        if not (quantity > eps and energy > eps):
            self.logger.error(
                f"add() trying to add to {self.flavor.tick_label} #{tick} "
                f"{quantity} {self.flavor.quantity_label} with {energy} MeV "
                f"of energy from track ID={track_id}")
            return False

        track_id = decode_track_id(track_id, self.config.no_particle_id)
        with np.errstate(over='ignore', invalid='ignore'):
            incoming = make_deposit(track_id, quantity, energy, position)
        if not is_finite_deposit(incoming):
            self._reject_overflow(tick, incoming)
            return False

        deposits = self._ledger.find_or_insert(tick)
        for idx, deposit in enumerate(deposits):
            if deposit.track_id == track_id:
                with np.errstate(over='ignore', invalid='ignore'):
                    merged = merge_deposits(deposit, incoming)
                if not is_finite_deposit(merged):
                    self._reject_overflow(tick, merged)
                    return False
                deposits[idx] = merged
                return True
        deposits.append(incoming)
        return True

    def _reject_overflow(self, tick, record):
        self.logger.error(
            f"add() deposit on {self.flavor.tick_label} #{tick} from track "
            f"ID={encode_track_id(record.track_id, self.config.no_particle_id)} "
            f"is not representable in single precision: {record.quantity} "
            f"{self.flavor.quantity_label}, {record.energy} MeV at "
            f"({record.x}, {record.y}, {record.z})")

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def quantity_at(self, tick) -> float:
        """Total quantity at exactly ``tick`` (0 if the tick is absent)."""
        deposits = self._ledger.find(tick)
        if deposits is None:
            return 0.
        return sum(deposit.quantity for deposit in deposits)

    def energy_at(self, tick) -> float:
        """Total energy [MeV] at exactly ``tick`` (0 if the tick is absent)."""
        deposits = self._ledger.find(tick)
        if deposits is None:
            return 0.
        return sum(deposit.energy for deposit in deposits)

    def total_quantity(self) -> float:
        return sum(d.quantity for entry in self._ledger for d in entry.deposits)

    def total_energy(self) -> float:
        return sum(d.energy for entry in self._ledger for d in entry.deposits)

    def _check_range(self, start, end) -> bool:
        if start > end:
            self.logger.warning(
                f"requested {self.flavor.tick_label} range is bogus: "
                f"{start} {end} return empty list")
            return False
        return True

    def aggregate_by_track(self, start, end) -> List[DepositRecord]:
        """
        Merge all deposits in an inclusive tick range by track.

        Each returned record covers one track: quantity and energy are the
        integrals over the range, the position is the quantity-weighted
        average. Records are sorted by track id, "no particle" first.

        Parameters
        ----------
        start : int or float
            First tick of the range.
        end : int or float
            Last tick of the range (included).

        Returns
        -------
        list of DepositRecord
            Empty if ``start > end`` (a warning is logged).
        """
        tick_type = self.flavor.tick_type
        start, end = tick_type(start), tick_type(end)
        if not self._check_range(start, end):
            return []

        by_track = {}
        for entry in self._ledger.range(start, end):
            for deposit in entry.deposits:
                if deposit.track_id in by_track:
                    by_track[deposit.track_id] = merge_deposits(
                        by_track[deposit.track_id], deposit)
                else:
                    by_track[deposit.track_id] = deposit

        return [by_track[track_id] for track_id in sorted(by_track, key=track_sort_key)]

    def fractions_by_track(self, start, end) -> List[TrackFraction]:
        """
        Share of each track in an inclusive tick range.

        The total includes the "no particle" deposits, which are then left out
        of the result; their share is the amount missing from 1.

        Returns
        -------
        list of TrackFraction
            Sorted by track id. Empty if ``start > end``.
        """
        tick_type = self.flavor.tick_type
        start, end = tick_type(start), tick_type(end)
        if not self._check_range(start, end):
            return []

        field = self.flavor.fraction_field
        records = self.aggregate_by_track(start, end)

        total = sum(getattr(record, field) for record in records)
        # divide-by-zero guard
        if total < self.config.min_fraction_total:
            total = 1.

        fractions = []
        for record in records:
            if record.track_id is None:
                continue
            value = getattr(record, field)
            fractions.append(TrackFraction(record.track_id, value / total, value))
        return fractions

    # -------------------------------------------------------------------------
    # Merging
    # -------------------------------------------------------------------------

    def check_mergeable(self, other):
        """Raise ChannelMismatchError unless ``other`` can be merged in."""
        if self.flavor != other.flavor:
            raise ChannelMismatchError(
                f"ERROR {self.flavor.name} Merge: Trying to merge a "
                f"{other.flavor.name} ledger!")
        if self.channel_id != other.channel_id:
            raise ChannelMismatchError(
                f"ERROR {self.flavor.name} Merge: Trying to merge different channels! "
                f"({self.channel_id} != {other.channel_id})")

    def merge(self, other, offset) -> Tuple[Optional[int], Optional[int]]:
        """
        Append the deposits of another ledger of the same channel.

        Every deposit of ``other`` is copied with ``offset`` added to its track
        id and appended to the deposits at the same tick; copies are not
        folded into existing records of the same track. No collision check is
        made: the caller picks an offset larger than the ids already present.
        ``other`` is left untouched.

        "No particle" deposits are copied too, but keep the sentinel: the
        offset only applies to real track ids, and the sentinel is not
        counted in the returned range.

        Parameters
        ----------
        other : Channel
            Ledger to copy from; must have the same identity and flavor.
        offset : int
            Added to every copied track id.

        Returns
        -------
        (int, int)
            Lowest and highest copied track ids after the offset, or
            ``(None, None)`` if no deposit with a track was copied.

        Raises
        ------
        ChannelMismatchError
            If the identities or flavors differ. Nothing is copied then.
        """
        self.check_mergeable(other)

        offset = int(offset)
        # snapshot so that merging a channel into itself terminates
        source = [(entry.tick, list(entry.deposits)) for entry in other.entries]

        low = high = None
        for tick, deposits in source:
            target = self._ledger.find_or_insert(tick)
            for deposit in deposits:
                moved = offset_deposit(deposit, offset)
                target.append(moved)
                if moved.track_id is None:
                    continue
                if low is None or moved.track_id < low:
                    low = moved.track_id
                if high is None or moved.track_id > high:
                    high = moved.track_id

        return low, high

    # -------------------------------------------------------------------------
    # Diagnostics
    # -------------------------------------------------------------------------

    def dump(self, out=None, indent="", first_indent=None) -> str:
        """
        Human-readable report of the full ledger content.

        Parameters
        ----------
        out : file-like, optional
            If given, the report is also written to it.
        indent : str, optional
            Prefix of every line but the first.
        first_indent : str, optional
            Prefix of the first line, by default ``indent``.

        Returns
        -------
        str
            The report.
        """
        if first_indent is None:
            first_indent = indent
        flavor = self.flavor
        no_particle_id = self.config.no_particle_id
        label = flavor.tick_label
        qlabel = flavor.quantity_label
        cid = self._channel_id

        lines = [f"{first_indent}{flavor.channel_label} #{cid} read "
                 f"{len(self._ledger)} {label}s:"]
        channel_energy = channel_quantity = 0.
        for entry in self._ledger:
            tick = _fmt(entry.tick)
            lines.append(f"{indent}  {label} #{tick} with "
                         f"{len(entry.deposits)} {flavor.record_label}")
            tick_energy = tick_quantity = 0.
            for d in entry.deposits:
                lines.append(
                    f"{indent}    ({_fmt(d.x)}, {_fmt(d.y)}, {_fmt(d.z)}) "
                    f"{_fmt(d.quantity)} {qlabel}, {_fmt(d.energy)} MeV "
                    f"(trkID={encode_track_id(d.track_id, no_particle_id)})")
                tick_energy += d.energy
                tick_quantity += d.quantity
            lines.append(f"{indent}    => {label} #{tick} CH #{cid} collected "
                         f"{_fmt(tick_quantity)} {qlabel} and {_fmt(tick_energy)} MeV")
            channel_energy += tick_energy
            channel_quantity += tick_quantity
        lines.append(f"{indent}  => {flavor.channel_label} #{cid} collected "
                     f"{_fmt(channel_quantity)} {qlabel} and {_fmt(channel_energy)} MeV")

        report = "\n".join(lines) + "\n"
        if out is not None:
            out.write(report)
        return report


class SimChannel(Channel):
    """
    Ionization electrons collected on a TPC readout channel.

    Ticks are integer TDC counts; track fractions use the deposited energy.
    """

    flavor = ELECTRON_FLAVOR

    def __init__(self, channel=None, logger=None, config=None):
        super().__init__(channel, logger=logger, config=config)

    @property
    def channel(self) -> int:
        return self.channel_id

    def add_ionization_electrons(self, track_id, tdc, num_electrons, xyz, energy):
        return self.add(track_id, tdc, num_electrons, xyz, energy)

    def charge(self, tdc) -> float:
        """Electrons collected at ``tdc``."""
        return self.quantity_at(tdc)

    def energy(self, tdc) -> float:
        """Energy [MeV] collected at ``tdc``."""
        return self.energy_at(tdc)

    def track_ids_and_energies(self, start_tdc, end_tdc):
        return self.aggregate_by_track(start_tdc, end_tdc)

    def track_ides(self, start_tdc, end_tdc):
        """Energy and energy fraction of each track in the TDC range."""
        return self.fractions_by_track(start_tdc, end_tdc)

    def tdc_ide_map(self):
        return self.entries

    def merge_sim_channel(self, channel, offset):
        return self.merge(channel, offset)


class OpDetBacktrackerRecord(Channel):
    """
    Scintillation photons detected by an optical detector.

    Ticks are floating point clock times in ns, compared exactly; track
    fractions use the photon count.
    """

    flavor = PHOTON_FLAVOR

    def __init__(self, op_det_num=None, logger=None, config=None):
        super().__init__(op_det_num, logger=logger, config=config)

    @property
    def op_det_num(self) -> int:
        return self.channel_id

    def add_scintillation_photons(self, track_id, time_pd_clock, num_photons, xyz, energy):
        return self.add(track_id, time_pd_clock, num_photons, xyz, energy)

    def photons(self, time_pd_clock) -> float:
        return self.quantity_at(time_pd_clock)

    def energy(self, time_pd_clock) -> float:
        return self.energy_at(time_pd_clock)

    def track_ids_and_energies(self, start, end):
        return self.aggregate_by_track(start, end)

    def track_sdps(self, start, end):
        """Photons and photon fraction of each track in the clock range."""
        return self.fractions_by_track(start, end)

    def time_pd_clock_sdps_map(self):
        return self.entries

    def merge_op_det_backtracker_record(self, record, offset):
        return self.merge(record, offset)


_FLAVOR_CLASSES = {
    ELECTRON_FLAVOR: SimChannel,
    PHOTON_FLAVOR: OpDetBacktrackerRecord,
}


def make_channel(channel_id, flavor=ELECTRON_FLAVOR, logger=None, config=None):
    """
    Create an empty ledger of the given flavor.

    The flavor's specialized class is used when there is one, the generic
    Channel otherwise.
    """
    cls = _FLAVOR_CLASSES.get(flavor)
    if cls is None:
        return Channel(channel_id, flavor=flavor, logger=logger, config=config)
    return cls(channel_id, logger=logger, config=config)
