"""
Deposit records and the weighted-average merge rule.

A deposit is one quantum of recorded quantity (drifted electrons or
scintillation photons), energy and position attributed to a track. Stored
values follow the 32-bit layout of the readout records: every float field is
rounded to float32 when a record is built, while the merge arithmetic runs in
double precision on the stored values.

The "no originating particle" track is held as ``None``; the integer encoding
only appears at array boundaries (see ``encode_track_id``).
"""

from typing import NamedTuple, Optional, Sequence

import numpy as np

from simtools.config import NO_PARTICLE_ID


def to_float32(value) -> float:
    """Round ``value`` to single precision, returned as a Python float."""
    return float(np.float32(value))


class DepositRecord(NamedTuple):
    """One deposit attributed to a track at a tick."""
    track_id: Optional[int]   # None for "no originating particle"
    quantity: float           # electrons or photons
    energy: float             # MeV
    x: float                  # cm
    y: float                  # cm
    z: float                  # cm

    @property
    def position(self):
        return (self.x, self.y, self.z)

    @property
    def has_particle(self) -> bool:
        return self.track_id is not None


def decode_track_id(track_id, no_particle_id=NO_PARTICLE_ID) -> Optional[int]:
    """Map a boundary track id to its internal form (sentinel -> None)."""
    if track_id is None:
        return None
    track_id = int(track_id)
    if track_id == no_particle_id:
        return None
    return track_id


def encode_track_id(track_id: Optional[int], no_particle_id=NO_PARTICLE_ID) -> int:
    """Map an internal track id to its integer boundary encoding."""
    return no_particle_id if track_id is None else int(track_id)


def make_deposit(track_id, quantity, energy, position: Sequence[float]) -> DepositRecord:
    """
    Build a DepositRecord from explicit fields, rounding floats to float32.

    No validation happens here; the ledgers reject bad deposits before
    building records.

    Parameters
    ----------
    track_id : int or None
        Internal track id (None for the sentinel).
    quantity : float
        Number of electrons or photons.
    energy : float
        Deposited energy [MeV].
    position : sequence of float, length 3
        (x, y, z) [cm].

    Returns
    -------
    DepositRecord
    """
    x, y, z = position
    return DepositRecord(
        track_id=track_id,
        quantity=to_float32(quantity),
        energy=to_float32(energy),
        x=to_float32(x),
        y=to_float32(y),
        z=to_float32(z),
    )


def is_finite_deposit(record: DepositRecord) -> bool:
    """True if quantity, energy and position are all finite in float32."""
    return bool(np.all(np.isfinite(record[1:])))


def offset_deposit(record: DepositRecord, offset: int) -> DepositRecord:
    """
    Copy ``record`` with ``offset`` added to its track id.

    The "no particle" sentinel is not a track and is copied unchanged.
    """
    if record.track_id is None:
        return record
    return record._replace(track_id=record.track_id + int(offset))


def merge_deposits(existing: DepositRecord, incoming: DepositRecord) -> DepositRecord:
    """
    Fold ``incoming`` into ``existing`` (same track).

    Quantities and energies add up; the position becomes the centroid of the
    two positions weighted by quantity. The fold is commutative and
    associative up to rounding.

    Parameters
    ----------
    existing : DepositRecord
        Running record; its track id is kept.
    incoming : DepositRecord
        Record being folded in.

    Returns
    -------
    DepositRecord
        The merged record.
    """
    q1 = existing.quantity
    q2 = incoming.quantity
    weight = q1 + q2
    return DepositRecord(
        track_id=existing.track_id,
        quantity=to_float32(weight),
        energy=to_float32(existing.energy + incoming.energy),
        x=to_float32((existing.x * q1 + incoming.x * q2) / weight),
        y=to_float32((existing.y * q1 + incoming.y * q2) / weight),
        z=to_float32((existing.z * q1 + incoming.z * q2) / weight),
    )


def track_sort_key(track_id: Optional[int]):
    """Sort key placing the sentinel first, then ascending track ids."""
    return (track_id is not None, track_id if track_id is not None else 0)
