"""
Configuration classes for the deposit ledgers.

This module defines the NamedTuple parameter bundles used by the channel
ledgers: the flavor description (tick type, labels, invalid identity) and the
numeric settings shared by every ledger, plus the YAML loader for the latter.
"""

import os
from typing import NamedTuple, Optional, Any, Dict

import numpy as np
import yaml


# Reserved track id meaning "no originating particle" (integer encoding)
NO_PARTICLE_ID = -999999

# Identity of a default-constructed readout channel
INVALID_CHANNEL_ID = int(np.iinfo(np.uint32).max)

# Identity of a default-constructed optical detector
INVALID_OPDET_ID = -1

# Smallest accepted quantity/energy in add(); deposits at or below are rejected
DEPOSIT_EPSILON = float(np.finfo(np.float64).eps)

# Fraction totals below this are replaced by 1.0
MIN_FRACTION_TOTAL = 1e-5


class LedgerFlavor(NamedTuple):
    """Description of one ledger instantiation."""
    name: str                 # Category name used in log messages
    tick_type: type           # int (TDC ticks) or float (clock ticks, ns)
    tick_label: str           # 'TDC' or 'timePDclock'
    channel_label: str        # 'channel' or 'OpDet'
    quantity_label: str       # 'electrons' or 'photons'
    record_label: str         # 'IDEs' or 'SDPs'
    invalid_id: int           # Identity of a default-constructed channel
    fraction_field: str       # Record field used for track fractions


class LedgerConfig(NamedTuple):
    """Numeric settings shared by all ledgers."""
    no_particle_id: int       # Integer encoding of the sentinel track id
    min_fraction_total: float # Divide-by-zero guard for track fractions
    epsilon: float            # Rejection threshold for add()


def create_ledger_flavor(
    name: str,
    tick_type: type,
    tick_label: str,
    channel_label: str,
    quantity_label: str,
    record_label: str,
    invalid_id: int,
    fraction_field: str = 'energy'
) -> LedgerFlavor:
    """
    Create a LedgerFlavor.

    Parameters
    ----------
    name : str
        Category name for log messages.
    tick_type : type
        Callable normalizing tick keys, ``int`` or ``float``.
    tick_label : str
        Label of a tick in dumps and messages.
    channel_label : str
        Label of the channel identity in dumps.
    quantity_label : str
        Unit label of the deposited quantity.
    record_label : str
        Label of the per-tick deposit records in dumps.
    invalid_id : int
        Identity of a default-constructed channel.
    fraction_field : str, optional
        ``'energy'`` or ``'quantity'``, by default ``'energy'``.

    Returns
    -------
    LedgerFlavor
        Configured flavor.
    """
    if fraction_field not in ('energy', 'quantity'):
        raise ValueError(f"Unknown fraction field: {fraction_field!r}")
    return LedgerFlavor(
        name=name,
        tick_type=tick_type,
        tick_label=tick_label,
        channel_label=channel_label,
        quantity_label=quantity_label,
        record_label=record_label,
        invalid_id=invalid_id,
        fraction_field=fraction_field,
    )


def create_ledger_config(
    no_particle_id: int = NO_PARTICLE_ID,
    min_fraction_total: float = MIN_FRACTION_TOTAL,
    epsilon: float = DEPOSIT_EPSILON
) -> LedgerConfig:
    """
    Create LedgerConfig with specified parameters.

    Parameters
    ----------
    no_particle_id : int, optional
        Integer encoding of the "no particle" track id, by default -999999.
    min_fraction_total : float, optional
        Totals below this are replaced by 1.0 in fractions, by default 1e-5.
    epsilon : float, optional
        Quantities or energies at or below this are rejected, by default the
        double precision machine epsilon.

    Returns
    -------
    LedgerConfig
        Configured ledger settings.
    """
    if epsilon < 0:
        raise ValueError("Epsilon must be non-negative.")
    if min_fraction_total < 0:
        raise ValueError("Minimum fraction total must be non-negative.")
    return LedgerConfig(
        no_particle_id=int(no_particle_id),
        min_fraction_total=float(min_fraction_total),
        epsilon=float(epsilon),
    )


ELECTRON_FLAVOR = create_ledger_flavor(
    name='SimChannel',
    tick_type=int,
    tick_label='TDC',
    channel_label='channel',
    quantity_label='electrons',
    record_label='IDEs',
    invalid_id=INVALID_CHANNEL_ID,
    fraction_field='energy',
)

PHOTON_FLAVOR = create_ledger_flavor(
    name='OpDetBacktrackerRecord',
    tick_type=float,
    tick_label='timePDclock',
    channel_label='OpDet',
    quantity_label='photons',
    record_label='SDPs',
    invalid_id=INVALID_OPDET_ID,
    fraction_field='quantity',
)

DEFAULT_CONFIG = create_ledger_config()


def load_ledger_config(config_file_path: str) -> Optional[LedgerConfig]:
    """
    Read a ledger configuration YAML file.

    The file holds a ``ledger`` section with any of the keys
    ``no_particle_id``, ``min_fraction_total`` and ``epsilon``; missing keys
    take their defaults.

    Parameters:
        config_file_path (str): Path to the YAML configuration file.

    Returns:
        Optional[LedgerConfig]: The configuration, or None if loading fails.
    """
    if not os.path.exists(config_file_path):
        print(f"Error: Configuration file not found at {config_file_path}")
        return None

    try:
        with open(config_file_path, 'r') as file:
            raw_config = yaml.safe_load(file)
    except yaml.YAMLError as e:
        print(f"Error parsing YAML: {e}")
        return None

    if not isinstance(raw_config, dict) or 'ledger' not in raw_config:
        print("Error: Missing required section 'ledger' in configuration file")
        return None

    section: Dict[str, Any] = raw_config['ledger'] or {}
    if not isinstance(section, dict):
        print("Error: The 'ledger' section must be a mapping")
        return None
    unknown = set(section) - set(LedgerConfig._fields)
    if unknown:
        print(f"Error: Unknown ledger settings {sorted(unknown)}")
        return None

    try:
        return create_ledger_config(**section)
    except (TypeError, ValueError) as e:
        print(f"Error loading ledger configuration: {e}")
        return None
