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
Mock Lightning ledger module.

Keeps in memory the channels and payments of a simulated LDK node and
answers balance, fee and node information queries on them. Channel closes
complete CLOSE_DELAY seconds after being requested: every public operation
first completes the closes whose deadline has passed.
"""

from copy import copy
from decimal import Decimal, ROUND_FLOOR
from functools import wraps
from logging import getLogger
from os import urandom
from random import randrange
from threading import RLock
from time import time

from coincurve import PrivateKey

from . import settings as sett
from .errors import Err
from .invoice import decode_invoice, encode_invoice
from .utils.bitcoin import get_network

LOGGER = getLogger(__name__)

# pending and force_closing channels, pending and failed payments are never
# produced by the ledger, they are accepted from restored snapshots
STATE_PENDING = 'pending'
STATE_OPEN = 'open'
STATE_CLOSING = 'closing'
STATE_CLOSED = 'closed'
STATE_FORCE_CLOSING = 'force_closing'
CHANNEL_STATES = (STATE_PENDING, STATE_OPEN, STATE_CLOSING, STATE_CLOSED,
                  STATE_FORCE_CLOSING)

PAYMENT_PENDING = 'pending'
PAYMENT_SUCCEEDED = 'succeeded'
PAYMENT_FAILED = 'failed'
PAYMENT_STATUSES = (PAYMENT_PENDING, PAYMENT_SUCCEEDED, PAYMENT_FAILED)


class Channel():  # pylint: disable=too-many-instance-attributes
    """ A simulated channel, local + remote always equal to capacity """

    # pylint: disable=too-many-arguments
    def __init__(self, channel_id, short_channel_id, remote_pubkey,
                 funding_txid, capacity_msat, local_balance_msat,
                 remote_balance_msat, state=STATE_OPEN, is_usable=True):
        self.channel_id = channel_id
        self.short_channel_id = short_channel_id
        self.remote_pubkey = remote_pubkey
        self.funding_txid = funding_txid
        self.capacity_msat = capacity_msat
        self.local_balance_msat = local_balance_msat
        self.remote_balance_msat = remote_balance_msat
        self.state = state
        self.is_usable = is_usable
        # pylint: enable=too-many-arguments

    def to_dict(self):
        return {
            'channelId': self.channel_id,
            'shortChannelId': self.short_channel_id,
            'remotePubkey': self.remote_pubkey,
            'fundingTxid': self.funding_txid,
            'capacityMsat': self.capacity_msat,
            'localBalanceMsat': self.local_balance_msat,
            'remoteBalanceMsat': self.remote_balance_msat,
            'state': self.state,
            'isUsable': self.is_usable,
        }

    def __eq__(self, other):
        if not isinstance(other, Channel):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return ('<Channel(channel_id="{}", state="{}", capacity_msat="{}", '
                'local_balance_msat="{}", remote_balance_msat="{}")>').format(
                    self.channel_id, self.state, self.capacity_msat,
                    self.local_balance_msat, self.remote_balance_msat)


class Payment():  # pylint: disable=too-many-instance-attributes
    """ A simulated outgoing payment, keyed by its payment hash """

    # pylint: disable=too-many-arguments
    def __init__(self, payment_hash, amount_msat, status, timestamp,
                 preimage=None, description=None, bolt11=None,
                 fee_msat=None):
        self.payment_hash = payment_hash
        self.amount_msat = amount_msat
        self.status = status
        self.timestamp = timestamp
        self.preimage = preimage
        self.description = description
        self.bolt11 = bolt11
        self.fee_msat = fee_msat
        # pylint: enable=too-many-arguments

    def to_dict(self):
        return {
            'paymentHash': self.payment_hash,
            'paymentPreimage': self.preimage,
            'amountMsat': self.amount_msat,
            'status': self.status,
            'timestamp': self.timestamp,
            'description': self.description,
            'bolt11': self.bolt11,
            'feeMsat': self.fee_msat,
        }

    def __eq__(self, other):
        if not isinstance(other, Payment):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        return ('<Payment(payment_hash="{}", amount_msat="{}", '
                'status="{}")>').format(
                    self.payment_hash, self.amount_msat, self.status)


class NodeInfo():  # pylint: disable=too-many-instance-attributes
    """ Node status, recomputed from the ledger each time it's requested """

    # pylint: disable=too-many-arguments
    def __init__(self, node_id, alias, num_channels, num_usable_channels,
                 num_peers=sett.NUM_PEERS, block_height=sett.BLOCK_HEIGHT,
                 synced_to_chain=sett.SYNCED_TO_CHAIN,
                 version=sett.NODE_VERSION):
        self.node_id = node_id
        self.alias = alias
        self.num_channels = num_channels
        self.num_usable_channels = num_usable_channels
        self.num_peers = num_peers
        self.block_height = block_height
        self.synced_to_chain = synced_to_chain
        self.version = version
        # pylint: enable=too-many-arguments

    def to_dict(self):
        return {
            'nodeId': self.node_id,
            'alias': self.alias,
            'numChannels': self.num_channels,
            'numUsableChannels': self.num_usable_channels,
            'numPeers': self.num_peers,
            'blockHeight': self.block_height,
            'syncedToChain': self.synced_to_chain,
            'version': self.version,
        }


class FeeEstimate():  # pylint: disable=too-few-public-methods
    """ Routing fee estimation for an amount """

    def __init__(self, base_fee_msat, proportional_millionths,
                 estimated_fee_msat, estimated_duration_seconds):
        self.base_fee_msat = base_fee_msat
        self.proportional_millionths = proportional_millionths
        self.estimated_fee_msat = estimated_fee_msat
        self.estimated_duration_seconds = estimated_duration_seconds


def _ledger_operation(func):
    """ Runs func holding the ledger lock, after completing due closes """

    @wraps(func)
    def wrapper(self, *args, **kwargs):
        with self.lock:
            self._complete_closes(self.clock())
            return func(self, *args, **kwargs)

    return wrapper


def routing_fee(amount_msat):
    """ Simulated routing fee of a payment, rounded down to the msat """
    fee = Decimal(amount_msat) * Decimal(sett.ROUTING_FEE_RATE)
    return int(fee.to_integral_value(rounding=ROUND_FLOOR))


class MockLedger():
    """
    In-memory state of the simulated node.

    clock returns the current time in seconds and can be replaced to make
    close completion and invoice timestamps deterministic.
    """

    def __init__(self, network=None, alias=None, clock=time, node_id=None):
        self.network = network or sett.NETWORK
        get_network(self.network)
        self.alias = alias or sett.ALIAS
        self.node_id = node_id or PrivateKey().public_key.format().hex()
        self.clock = clock
        self.lock = RLock()
        self._channels = {}
        self._payments = {}
        self._pending_closes = {}

    def advance_time(self, now=None):
        """ Completes every pending close whose deadline is <= now """
        with self.lock:
            if now is None:
                now = self.clock()
            self._complete_closes(now)

    def _complete_closes(self, now):
        for channel_id, deadline in list(self._pending_closes.items()):
            if deadline > now:
                continue
            del self._pending_closes[channel_id]
            channel = self._channels.pop(channel_id, None)
            if channel:
                channel.state = STATE_CLOSED
                LOGGER.info('Channel %s closed', channel_id)

    @_ledger_operation
    def create_channel(self, remote_pubkey, capacity_msat, push_msat=0):
        """ Opens a channel, pushing push_msat to the remote side """
        if capacity_msat < 0:
            Err().value_too_low('capacity_msat')
        if push_msat < 0:
            Err().value_too_low('push_msat')
        if push_msat > capacity_msat:
            Err().push_exceeds_capacity()
        channel_id = urandom(32).hex()
        while channel_id in self._channels:
            channel_id = urandom(32).hex()
        channel = Channel(
            channel_id=channel_id,
            short_channel_id='{}x{}x{}'.format(
                sett.SHORT_CHANNEL_ID_BLOCK, randrange(1000), randrange(10)),
            remote_pubkey=remote_pubkey,
            funding_txid=urandom(32).hex(),
            capacity_msat=capacity_msat,
            local_balance_msat=capacity_msat - push_msat,
            remote_balance_msat=push_msat)
        self._channels[channel_id] = channel
        LOGGER.info('Channel %s opened with %s', channel_id, remote_pubkey)
        return copy(channel)

    @_ledger_operation
    def close_channel(self, channel_id):
        """ Starts closing a channel, removed CLOSE_DELAY seconds later """
        channel = self._channels.get(channel_id)
        if not channel:
            Err().channel_not_found(channel_id)
        if channel_id in self._pending_closes:
            return True
        channel.state = STATE_CLOSING
        channel.is_usable = False
        self._pending_closes[channel_id] = self.clock() + sett.CLOSE_DELAY
        LOGGER.info('Channel %s closing', channel_id)
        return True

    @_ledger_operation
    def list_channels(self):
        return [copy(channel) for channel in self._channels.values()]

    @_ledger_operation
    def pay_invoice(self, bolt11, max_fee_msat=None):
        """
        Pays an invoice, recording a succeeded payment under its hash.
        Channel balances are left untouched.
        """
        decoded = decode_invoice(bolt11)
        existing = self._payments.get(decoded.payment_hash)
        if existing and existing.status == PAYMENT_SUCCEEDED:
            Err().already_paid(decoded.payment_hash)
        amount_msat = decoded.amount_msat or 0
        fee_msat = routing_fee(amount_msat)
        if max_fee_msat is not None and fee_msat > max_fee_msat:
            Err().fee_too_high(fee_msat, max_fee_msat)
        payment = Payment(
            payment_hash=decoded.payment_hash,
            amount_msat=amount_msat,
            status=PAYMENT_SUCCEEDED,
            timestamp=int(self.clock() * 1000),
            preimage=urandom(32).hex(),
            description=decoded.description,
            bolt11=bolt11,
            fee_msat=fee_msat)
        self._payments[payment.payment_hash] = payment
        LOGGER.info('Paid %s msat to %s', amount_msat, decoded.payee)
        return copy(payment)

    @_ledger_operation
    def get_balance(self):
        """ Total and spendable local balance of open channels, in msat """
        total = 0
        spendable = 0
        ratio = Decimal(sett.SPENDABLE_RATIO)
        for channel in self._channels.values():
            if channel.state != STATE_OPEN:
                continue
            total += channel.local_balance_msat
            if channel.is_usable:
                spendable += int((channel.local_balance_msat * ratio)
                                 .to_integral_value(rounding=ROUND_FLOOR))
        return {'total_msat': total, 'spendable_msat': spendable}

    @_ledger_operation
    def list_payments(self):
        """ All payments, most recent first """
        return sorted((copy(payment) for payment in self._payments.values()),
                      key=lambda payment: payment.timestamp, reverse=True)

    @_ledger_operation
    def estimate_fee(self, amount_msat):
        if amount_msat < 0:
            Err().value_too_low('amount_msat')
        proportional = amount_msat * sett.FEE_PROPORTIONAL_MILLIONTHS \
            // 1000000
        return FeeEstimate(
            base_fee_msat=sett.BASE_FEE_MSAT,
            proportional_millionths=sett.FEE_PROPORTIONAL_MILLIONTHS,
            estimated_fee_msat=sett.BASE_FEE_MSAT + proportional,
            estimated_duration_seconds=sett.FEE_DURATION_SECONDS)

    @_ledger_operation
    def get_node_info(self):
        return NodeInfo(
            node_id=self.node_id,
            alias=self.alias,
            num_channels=len(self._channels),
            num_usable_channels=sum(
                1 for channel in self._channels.values()
                if channel.is_usable))

    @_ledger_operation
    def generate_invoice(self, amount_msat=None, description=None,
                         expiry=None):
        """ Encodes an invoice for the ledger's network """
        return encode_invoice(
            amount_msat=amount_msat, description=description, expiry=expiry,
            network=self.network, timestamp=int(self.clock()))

    @staticmethod
    def decode_invoice(bolt11):
        return decode_invoice(bolt11)

    @_ledger_operation
    def export_state(self):
        """
        Copies node identity, channels, payments and close deadlines
        at once
        """
        return {
            'node_info': self.get_node_info(),
            'channels': [copy(channel)
                         for channel in self._channels.values()],
            'payments': [copy(payment)
                         for payment in self._payments.values()],
            'pending_closes': list(self._pending_closes.items()),
        }

    def replace_state(self, node_id, alias, channels, payments,
                      pending_closes):
        """ Replaces the whole ledger content, used by restore """
        with self.lock:
            self.node_id = node_id
            self.alias = alias
            self._channels = {channel.channel_id: channel
                              for channel in channels}
            self._payments = {payment.payment_hash: payment
                              for payment in payments}
            self._pending_closes = dict(pending_closes)
            LOGGER.info('Ledger replaced: %s channels, %s payments',
                        len(self._channels), len(self._payments))

    def backup(self):
        """ Returns a base64 snapshot of the ledger """
        # pylint: disable=import-outside-toplevel
        from .backup import serialize_ledger
        return serialize_ledger(self)

    def restore(self, blob):
        """ Replaces the ledger with the content of a backup blob """
        # pylint: disable=import-outside-toplevel
        from .backup import restore_ledger
        return restore_ledger(self, blob)
