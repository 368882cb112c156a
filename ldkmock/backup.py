# Copyright (C) 2018 inbitcoin s.r.l.
#
# This program is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# This program is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with this program.  If not, see <https://www.gnu.org/licenses/>.

"""
Backup and restore of the mock ledger.

A backup is the base64 encoding of a JSON document:
  {"nodeInfo": {...}, "channels": [[id, channel], ...],
   "payments": [[hash, payment], ...], "pendingCloses": [[id, deadline], ...],
   "timestamp": <unix ms>}
Restore validates the whole document before touching the ledger.
"""

from base64 import b64decode, b64encode
from binascii import Error as BinasciiError
from json import dumps, loads
from logging import getLogger

from . import settings as sett
from .errors import CorruptionError, Err
from .ledger import Channel, CHANNEL_STATES, Payment, PAYMENT_STATUSES, \
    STATE_CLOSING

LOGGER = getLogger(__name__)


def serialize_ledger(ledger):
    """ Returns a full snapshot of the ledger as base64 text """
    state = ledger.export_state()
    document = {
        'nodeInfo': state['node_info'].to_dict(),
        'channels': [[channel.channel_id, channel.to_dict()]
                     for channel in state['channels']],
        'payments': [[payment.payment_hash, payment.to_dict()]
                     for payment in state['payments']],
        'pendingCloses': [[channel_id, deadline]
                          for channel_id, deadline in state['pending_closes']],
        'timestamp': int(ledger.clock() * 1000),
    }
    return b64encode(dumps(document).encode('utf-8')).decode('ascii')


def restore_ledger(ledger, blob):
    """
    Replaces identity, channels, payments and pending closes of the ledger
    with the content of blob. On any error the ledger is left untouched.
    """
    try:
        document = _load(blob)
        node_id, alias = _parse_node_info(document.get('nodeInfo'))
        channels = [_parse_channel(entry)
                    for entry in _get_list(document, 'channels')]
        payments = [_parse_payment(entry)
                    for entry in _get_list(document, 'payments')]
        pending = _parse_pending_closes(
            _get_list(document, 'pendingCloses', required=False), channels,
            ledger.clock())
    except CorruptionError:
        raise
    except (KeyError, TypeError, ValueError) as err:
        Err().backup_corrupted(err)
    _check_unique([c.channel_id for c in channels], 'channel id')
    _check_unique([p.payment_hash for p in payments], 'payment hash')
    ledger.replace_state(node_id, alias, channels, payments, pending)
    return True


def _load(blob):
    if not isinstance(blob, str) or not blob:
        Err().backup_corrupted('backup data must be a non-empty string')
    try:
        document = loads(b64decode(blob, validate=True).decode('utf-8'))
    except (BinasciiError, RecursionError, UnicodeDecodeError,
            ValueError) as err:
        Err().backup_corrupted(err)
    if not isinstance(document, dict):
        Err().backup_corrupted('backup is not a JSON object')
    return document


def _get_list(document, key, required=True):
    value = document.get(key)
    if value is None and not required:
        return []
    if not isinstance(value, list):
        Err().backup_corrupted("'{}' must be a list".format(key))
    return value


def _parse_node_info(node_info):
    if not isinstance(node_info, dict):
        Err().backup_corrupted("'nodeInfo' must be an object")
    node_id = _get_str(node_info, 'nodeId')
    alias = _get_str(node_info, 'alias', required=False) or sett.ALIAS
    return node_id, alias


def _parse_channel(entry):
    """ Builds a channel from an [id, channel] entry, checking balances """
    channel_id, data = _split_entry(entry, 'channel')
    channel = Channel(
        channel_id=_get_str(data, 'channelId'),
        short_channel_id=_get_str(data, 'shortChannelId'),
        remote_pubkey=_get_str(data, 'remotePubkey'),
        funding_txid=_get_str(data, 'fundingTxid'),
        capacity_msat=_get_amount(data, 'capacityMsat'),
        local_balance_msat=_get_amount(data, 'localBalanceMsat'),
        remote_balance_msat=_get_amount(data, 'remoteBalanceMsat'),
        state=_get_choice(data, 'state', CHANNEL_STATES),
        is_usable=_get_bool(data, 'isUsable'))
    if channel.channel_id != channel_id:
        Err().backup_corrupted(
            "channel entry '{}' holds channel '{}'".format(
                channel_id, channel.channel_id))
    if channel.local_balance_msat + channel.remote_balance_msat != \
            channel.capacity_msat:
        Err().backup_corrupted(
            "balances of channel '{}' don't match its capacity".format(
                channel_id))
    return channel


def _parse_payment(entry):
    payment_hash, data = _split_entry(entry, 'payment')
    payment = Payment(
        payment_hash=_get_str(data, 'paymentHash'),
        amount_msat=_get_amount(data, 'amountMsat'),
        status=_get_choice(data, 'status', PAYMENT_STATUSES),
        timestamp=_get_amount(data, 'timestamp'),
        preimage=_get_str(data, 'paymentPreimage', required=False),
        description=_get_str(data, 'description', required=False),
        bolt11=_get_str(data, 'bolt11', required=False),
        fee_msat=_get_amount(data, 'feeMsat', required=False))
    if payment.payment_hash != payment_hash:
        Err().backup_corrupted(
            "payment entry '{}' holds payment '{}'".format(
                payment_hash, payment.payment_hash))
    return payment


def _parse_pending_closes(entries, channels, now):
    """
    Returns the close deadlines, giving a fresh one to closing channels
    saved without it
    """
    closing = {channel.channel_id for channel in channels
               if channel.state == STATE_CLOSING}
    pending = {}
    for entry in entries:
        if not isinstance(entry, list) or len(entry) != 2:
            Err().backup_corrupted('pending close must be an [id, deadline]')
        channel_id, deadline = entry
        if channel_id not in closing:
            Err().backup_corrupted(
                "pending close of unknown or not closing channel '{}'".format(
                    channel_id))
        if isinstance(deadline, bool) or \
                not isinstance(deadline, (int, float)):
            Err().backup_corrupted('close deadline must be a number')
        pending[channel_id] = deadline
    for channel_id in closing:
        if channel_id not in pending:
            pending[channel_id] = now + sett.CLOSE_DELAY
    return list(pending.items())


def _split_entry(entry, kind):
    if not isinstance(entry, list) or len(entry) != 2 or \
            not isinstance(entry[1], dict):
        Err().backup_corrupted('{} must be an [id, object] entry'.format(kind))
    return entry[0], entry[1]


def _get_str(data, key, required=True):
    value = data.get(key)
    if value is None and not required:
        return None
    if not isinstance(value, str):
        Err().backup_corrupted("'{}' must be a string".format(key))
    return value


def _get_amount(data, key, required=True):
    """ Reads a non-negative integer """
    value = data.get(key)
    if value is None and not required:
        return None
    if isinstance(value, bool) or not isinstance(value, int):
        Err().backup_corrupted("'{}' must be an integer".format(key))
    if value < 0:
        Err().backup_corrupted("'{}' must not be negative".format(key))
    return value


def _get_bool(data, key):
    value = data.get(key)
    if not isinstance(value, bool):
        Err().backup_corrupted("'{}' must be a boolean".format(key))
    return value


def _get_choice(data, key, choices):
    value = data.get(key)
    if value not in choices:
        Err().backup_corrupted("unknown {} '{}'".format(key, value))
    return value


def _check_unique(keys, kind):
    if len(set(keys)) != len(keys):
        Err().backup_corrupted('duplicated {}'.format(kind))
