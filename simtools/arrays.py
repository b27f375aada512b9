"""
Array bridge for channel ledgers.

Flat array format (one row per stored deposit):
    - ticks: (N,) int64 or float64 array, ascending per channel
    - track_ids: (N,) int32, "no particle" encoded as the configured sentinel
    - quantities, energies: (N,) float32
    - positions: (N, 3) float32 with [x, y, z] per row

Filling channels from per-step arrays goes through Channel.add(), so the
ledger rules (rejection, same-track folding) apply unchanged. Dense
projections use the same .at[].add accumulation as the wire signal tools.
"""

import jax.numpy as jnp
import numpy as np

from simtools.channel import make_channel
from simtools.config import ELECTRON_FLAVOR
from simtools.deposits import encode_track_id


DEPOSIT_DTYPE = np.dtype([
    ('track_id', np.int32),
    ('quantity', np.float32),
    ('energy', np.float32),
    ('x', np.float32),
    ('y', np.float32),
    ('z', np.float32),
])


def channel_to_arrays(channel):
    """
    Flatten a channel ledger into arrays.

    Args:
        channel: Channel to export.

    Returns:
        dict with 'channel_id', 'ticks', 'track_ids', 'quantities',
        'energies' and 'positions' (see module docstring).

    Raises:
        ValueError: if a track id (e.g. after a large merge offset) does not
            fit the int32 track id field.
    """
    no_particle_id = channel.config.no_particle_id
    tick_dtype = np.int64 if channel.flavor.tick_type is int else np.float64
    id_limits = np.iinfo(DEPOSIT_DTYPE['track_id'])

    ticks = []
    records = []
    for entry in channel.entries:
        for d in entry.deposits:
            track_id = encode_track_id(d.track_id, no_particle_id)
            if not id_limits.min <= track_id <= id_limits.max:
                raise ValueError(
                    f"Track ID {track_id} at tick {entry.tick} of channel "
                    f"{channel.channel_id} does not fit in int32")
            ticks.append(entry.tick)
            records.append((track_id, d.quantity, d.energy, d.x, d.y, d.z))

    table = np.array(records, dtype=DEPOSIT_DTYPE)
    return {
        'channel_id': channel.channel_id,
        'ticks': np.array(ticks, dtype=tick_dtype),
        'track_ids': table['track_id'],
        'quantities': table['quantity'],
        'energies': table['energy'],
        'positions': np.stack([table['x'], table['y'], table['z']], axis=1)
        if len(table) else np.empty((0, 3), dtype=np.float32),
    }


def fill_channels_from_arrays(channel_ids, track_ids, ticks, quantities,
                              positions, energies, flavor=ELECTRON_FLAVOR,
                              channels=None, logger=None, config=None):
    """
    Add per-step deposits to channel ledgers.

    Args:
        channel_ids: (N,) channel identity per deposit
        track_ids: (N,) track id per deposit (sentinel allowed)
        ticks: (N,) tick per deposit
        quantities: (N,) electrons or photons per deposit
        positions: (N, 3) [x, y, z] per deposit
        energies: (N,) energy per deposit
        flavor: LedgerFlavor of newly created channels
        channels: optional dict channel_id -> Channel to fill; new channels
            are added to it
        logger, config: passed to newly created channels

    Returns:
        channels: dict channel_id -> Channel
        num_rejected: number of deposits rejected by the ledgers
    """
    channel_ids = np.asarray(channel_ids)
    track_ids = np.asarray(track_ids)
    ticks = np.asarray(ticks)
    quantities = np.asarray(quantities, dtype=np.float64)
    positions = np.asarray(positions, dtype=np.float64).reshape(-1, 3)
    energies = np.asarray(energies, dtype=np.float64)

    n = len(channel_ids)
    for name, arr in (('track_ids', track_ids), ('ticks', ticks),
                      ('quantities', quantities), ('positions', positions),
                      ('energies', energies)):
        if len(arr) != n:
            raise ValueError(f"{name} has {len(arr)} rows, expected {n}")

    if channels is None:
        channels = {}

    num_rejected = 0
    for i in range(n):
        cid = int(channel_ids[i])
        channel = channels.get(cid)
        if channel is None:
            channel = make_channel(cid, flavor=flavor, logger=logger, config=config)
            channels[cid] = channel
        accepted = channel.add(int(track_ids[i]), ticks[i].item(),
                               float(quantities[i]), positions[i],
                               float(energies[i]))
        if not accepted:
            num_rejected += 1

    return channels, num_rejected


def channels_to_dense(channels, num_channels, num_ticks, field='quantity',
                      min_channel=0):
    """
    Project channel ledgers onto a dense (channel, tick) grid.

    Ticks are truncated to integer bins. Rows outside the grid are clipped to
    its border, like the other sparse-to-dense conversions.

    Args:
        channels: iterable of Channel
        num_channels, num_ticks: output array dimensions
        field: 'quantity' or 'energy'
        min_channel: channel id mapped to row 0

    Returns:
        dense: (num_channels, num_ticks) float32 array
    """
    if field not in ('quantity', 'energy'):
        raise ValueError(f"Unknown field: {field!r}")

    dense = jnp.zeros((num_channels, num_ticks), dtype=jnp.float32)

    rows, cols, values = [], [], []
    for channel in channels:
        for entry in channel.entries:
            for d in entry.deposits:
                rows.append(channel.channel_id - min_channel)
                cols.append(int(entry.tick))
                values.append(getattr(d, field))

    if not values:
        return dense

    row_idx = jnp.clip(jnp.array(rows, dtype=jnp.int32), 0, num_channels - 1)
    col_idx = jnp.clip(jnp.array(cols, dtype=jnp.int32), 0, num_ticks - 1)

    # Use .at.add to handle duplicate indices (sum contributions)
    dense = dense.at[row_idx, col_idx].add(jnp.array(values, dtype=jnp.float32))

    return dense
