"""
conftest.py - Shared pytest fixtures for the ledger tests

Provides:
- RecordingLogger: logger double collecting error/warning messages
- Empty and pre-filled electron and photon ledgers
"""

import pytest

from simtools import SimChannel, OpDetBacktrackerRecord


class RecordingLogger:
    """Collects messages instead of printing them."""

    def __init__(self):
        self.errors = []
        self.warnings = []

    def error(self, msg):
        self.errors.append(msg)

    def warning(self, msg):
        self.warnings.append(msg)


@pytest.fixture
def logger():
    return RecordingLogger()


@pytest.fixture
def sim_channel(logger):
    """Empty electron ledger on channel 5."""
    return SimChannel(5, logger=logger)


@pytest.fixture
def filled_sim_channel(logger):
    """
    Electron ledger on channel 5:
        TDC 100: track 1 (10 e-, 1 MeV), track 2 (30 e-, 3 MeV)
        TDC 102: track 1 (10 e-, 1 MeV)
        TDC 110: track 3 (50 e-, 5 MeV)
    """
    channel = SimChannel(5, logger=logger)
    channel.add_ionization_electrons(1, 100, 10.0, (0.0, 0.0, 0.0), 1.0)
    channel.add_ionization_electrons(2, 100, 30.0, (1.0, 1.0, 1.0), 3.0)
    channel.add_ionization_electrons(1, 102, 10.0, (2.0, 0.0, 0.0), 1.0)
    channel.add_ionization_electrons(3, 110, 50.0, (5.0, 5.0, 5.0), 5.0)
    return channel


@pytest.fixture
def op_det_record(logger):
    """Empty photon ledger on optical detector 3."""
    return OpDetBacktrackerRecord(3, logger=logger)
