"""
Simulation Truth Ledger Tools

This package keeps the per-channel record of which simulated tracks deposited
charge or light at which time, for back-tracking reconstructed signals to the
particles that produced them.

Main entry points:
- SimChannel: ionization electrons per TPC readout channel (integer TDC ticks)
- OpDetBacktrackerRecord: scintillation photons per optical detector (ns ticks)
- Channel: generic ledger parameterized by a LedgerFlavor

Configuration classes:
- LedgerFlavor: tick type and labels of one ledger flavor
- LedgerConfig: numeric settings (sentinel track id, thresholds)
"""

from simtools.config import (
    LedgerFlavor,
    LedgerConfig,
    ELECTRON_FLAVOR,
    PHOTON_FLAVOR,
    DEFAULT_CONFIG,
    NO_PARTICLE_ID,
    INVALID_CHANNEL_ID,
    INVALID_OPDET_ID,
    create_ledger_flavor,
    create_ledger_config,
    load_ledger_config,
)

from simtools.deposits import (
    DepositRecord,
    make_deposit,
    merge_deposits,
    offset_deposit,
    encode_track_id,
    decode_track_id,
)

from simtools.ticks import (
    TickEntry,
    TickLedger,
)

from simtools.channel import (
    Channel,
    SimChannel,
    OpDetBacktrackerRecord,
    TrackFraction,
    ChannelMismatchError,
    make_channel,
)

from simtools.messages import PrintLogger

from simtools.merge import (
    max_track_id,
    merge_channel_collections,
)

from simtools.arrays import (
    DEPOSIT_DTYPE,
    channel_to_arrays,
    fill_channels_from_arrays,
    channels_to_dense,
)

__all__ = [
    # Config
    'LedgerFlavor',
    'LedgerConfig',
    'ELECTRON_FLAVOR',
    'PHOTON_FLAVOR',
    'DEFAULT_CONFIG',
    'NO_PARTICLE_ID',
    'INVALID_CHANNEL_ID',
    'INVALID_OPDET_ID',
    'create_ledger_flavor',
    'create_ledger_config',
    'load_ledger_config',
    # Deposits
    'DepositRecord',
    'make_deposit',
    'merge_deposits',
    'offset_deposit',
    'encode_track_id',
    'decode_track_id',
    # Ledger
    'TickEntry',
    'TickLedger',
    'Channel',
    'SimChannel',
    'OpDetBacktrackerRecord',
    'TrackFraction',
    'ChannelMismatchError',
    'make_channel',
    'PrintLogger',
    # Collections
    'max_track_id',
    'merge_channel_collections',
    # Arrays
    'DEPOSIT_DTYPE',
    'channel_to_arrays',
    'fill_channels_from_arrays',
    'channels_to_dense',
]
