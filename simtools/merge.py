"""
Merging collections of channel ledgers.

Independent simulation passes (or workers) reuse track ids, so their ledgers
are combined channel by channel with a track id offset chosen by the caller,
typically one more than the largest id already present in the target.
"""

from simtools.channel import make_channel


def max_track_id(channels):
    """
    Largest track id stored in a collection of channels.

    Parameters
    ----------
    channels : iterable of Channel or dict of Channel

    Returns
    -------
    int or None
        None if no deposit carries a track id.
    """
    if isinstance(channels, dict):
        channels = channels.values()
    highest = None
    for channel in channels:
        for entry in channel.entries:
            for deposit in entry.deposits:
                if deposit.track_id is None:
                    continue
                if highest is None or deposit.track_id > highest:
                    highest = deposit.track_id
    return highest


def merge_channel_collections(target, source, offset):
    """
    Merge every ledger of ``source`` into the matching ledger of ``target``.

    Parameters
    ----------
    target : dict
        Mapping channel_id -> Channel, updated in place. Channels missing from
        it are created empty with the flavor, logger and settings of the
        source channel before merging.
    source : iterable of Channel or dict of Channel
        Ledgers to copy from; left untouched.
    offset : int
        Track id offset applied to every copied deposit.

    Returns
    -------
    (int, int)
        Lowest and highest remapped track ids over all channels, or
        ``(None, None)`` if nothing with a track id was copied.

    Raises
    ------
    ChannelMismatchError
        If a source ledger does not match the target ledger of its channel
        (or an earlier source ledger of the same channel) in flavor or
        identity. The target is left unchanged then.
    """
    if isinstance(source, dict):
        source = source.values()
    source = list(source)

    # every channel is checked before the first one is merged
    reference = {}
    for channel in source:
        expected = reference.setdefault(
            channel.channel_id, target.get(channel.channel_id, channel))
        expected.check_mergeable(channel)

    low = high = None
    for channel in source:
        merged = target.get(channel.channel_id)
        if merged is None:
            merged = make_channel(channel.channel_id, flavor=channel.flavor,
                                  logger=channel.logger, config=channel.config)
            target[channel.channel_id] = merged
        lo, hi = merged.merge(channel, offset)
        if lo is None:
            continue
        low = lo if low is None else min(low, lo)
        high = hi if high is None else max(high, hi)
    return low, high
