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
Implementation of the ldk-mock tools.

Every function is named after the tool it implements, receives the validated
arguments (defaults filled in) and the ledger, and returns the result fields
of the tool's envelope.
"""

from base64 import b64decode
from datetime import datetime, timezone
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_UP
from logging import getLogger

from .utils.bitcoin import convert, Enforcer as Enf
from .utils.misc import check_req_params
from .wallet import WalletService

LOGGER = getLogger(__name__)


def ldk_generate_invoice(request, ledger):
    """ Creates an invoice for amountSats """
    amount_msat = convert(
        Enf.MSATS, request['amountSats'], enforce=Enf.LN_PAYREQ,
        param='amountSats')
    Enf.check_value(
        'expirySeconds', request['expirySeconds'], enforce=Enf.EXPIRY_TIME)
    invoice = ledger.generate_invoice(
        amount_msat, request.get('description'), request['expirySeconds'])
    return {
        'invoice': invoice.bolt11,
        'paymentHash': invoice.payment_hash,
        'amountSats': request['amountSats'],
        'expiryTime': invoice.expiry,
        'description': invoice.description,
        'timestamp': invoice.timestamp,
    }


def ldk_pay_invoice(request, ledger):
    """
    Pays an invoice, refusing it when the simulated routing fee is higher
    than maxFeeSats
    """
    max_fee_msat = convert(
        Enf.MSATS, request['maxFeeSats'], enforce=Enf.LN_FEE,
        param='maxFeeSats')
    payment = ledger.pay_invoice(request['invoice'], max_fee_msat)
    return {'payment': _payment_to_result(payment)}


def ldk_decode_invoice(request, ledger):
    decoded = ledger.decode_invoice(request['invoice'])
    response = decoded.to_dict()
    response['amountSats'] = None
    if decoded.amount_msat is not None:
        response['amountSats'] = convert(Enf.MSATS, decoded.amount_msat)
    response['isExpired'] = decoded.is_expired(ledger.clock())
    return response


def ldk_create_channel(request, ledger):
    """ Opens a channel of capacitySats, pushing pushSats to the peer """
    capacity_msat = convert(
        Enf.MSATS, request['capacitySats'], enforce=Enf.FUNDING_SATOSHIS,
        param='capacitySats')
    push_msat = convert(
        Enf.MSATS, request['pushSats'], enforce=Enf.PUSH_SATOSHIS,
        param='pushSats')
    channel = ledger.create_channel(
        request['remotePubkey'], capacity_msat, push_msat)
    return {
        'channel': {
            'channelId': channel.channel_id,
            'shortChannelId': channel.short_channel_id,
            'fundingTxid': channel.funding_txid,
            'capacitySats': convert(Enf.MSATS, channel.capacity_msat),
            'localBalanceSats': convert(
                Enf.MSATS, channel.local_balance_msat),
            'remoteBalanceSats': convert(
                Enf.MSATS, channel.remote_balance_msat),
            'state': channel.state,
        }
    }


def ldk_close_channel(request, ledger):
    # force only changes the reported close type
    ledger.close_channel(request['channelId'])
    return {
        'channelId': request['channelId'],
        'closeType': 'force' if request['force'] else 'cooperative',
        'message': 'Channel closing initiated',
    }


def ldk_channel_status(request, ledger):
    """
    Returns totals over every channel and the list of channels, the
    unusable ones only if includeOffline is set
    """
    channels = ledger.list_channels()
    listed = channels
    if not request['includeOffline']:
        listed = [chan for chan in channels if chan.is_usable]
    return {
        'summary': {
            'totalChannels': len(channels),
            'usableChannels': len(
                [chan for chan in channels if chan.is_usable]),
            'totalCapacitySats': convert(
                Enf.MSATS, sum(chan.capacity_msat for chan in channels)),
            'totalLocalSats': convert(
                Enf.MSATS, sum(chan.local_balance_msat for chan in channels)),
            'totalRemoteSats': convert(
                Enf.MSATS,
                sum(chan.remote_balance_msat for chan in channels)),
        },
        'channels': [_channel_to_result(chan) for chan in listed],
    }


def ldk_get_balance(request, ledger):  # pylint: disable=unused-argument
    balance = ledger.get_balance()
    inbound_msat = sum(chan.remote_balance_msat
                       for chan in ledger.list_channels() if chan.is_usable)
    spendable = convert(Enf.MSATS, balance['spendable_msat'])
    inbound = convert(Enf.MSATS, inbound_msat)
    return {
        'balance': {
            'totalSats': convert(Enf.MSATS, balance['total_msat']),
            'spendableSats': spendable,
            'inboundSats': inbound,
        },
        'liquidity': {
            'canSendMaxSats': spendable,
            'canReceiveMaxSats': inbound,
        },
    }


def ldk_node_info(request, ledger):  # pylint: disable=unused-argument
    info = ledger.get_node_info()
    balance = ledger.get_balance()
    return {
        'node': {
            'nodeId': info.node_id,
            'alias': info.alias,
            'version': info.version,
            'blockHeight': info.block_height,
            'syncedToChain': info.synced_to_chain,
        },
        'channels': {
            'total': info.num_channels,
            'usable': info.num_usable_channels,
        },
        'balance': {
            'totalSats': convert(Enf.MSATS, balance['total_msat']),
            'spendableSats': convert(Enf.MSATS, balance['spendable_msat']),
        },
        'peers': info.num_peers,
    }


def ldk_list_payments(request, ledger):
    """ Returns the most recent payments, optionally filtered by status """
    payments = ledger.list_payments()
    if request['status'] != 'all':
        payments = [pay for pay in payments
                    if pay.status == request['status']]
    Enf.check_value('limit', request['limit'], enforce=Enf.LIST_LIMIT)
    payments = payments[:request['limit']]
    return {
        'count': len(payments),
        'payments': [dict(_payment_to_result(pay),
                          description=pay.description)
                     for pay in payments],
    }


def ldk_estimate_fee(request, ledger):
    amount_msat = convert(
        Enf.MSATS, request['amountSats'], enforce=Enf.LN_PAYREQ,
        param='amountSats')
    estimate = ledger.estimate_fee(amount_msat)
    percentage = Decimal(estimate.estimated_fee_msat) * 100 / amount_msat
    return {
        'amountSats': request['amountSats'],
        'feeEstimate': {
            'baseFee': estimate.base_fee_msat,
            'proportionalMillionths': estimate.proportional_millionths,
            'estimatedFeeSats': convert(
                Enf.MSATS, estimate.estimated_fee_msat,
                rounding=ROUND_CEILING),
            'estimatedDurationSeconds': estimate.estimated_duration_seconds,
            'feePercentage': str(percentage.quantize(
                Decimal('0.01'), rounding=ROUND_HALF_UP)),
        },
    }


def ldk_backup_state(request, ledger):
    """ Backs up the ledger or restores it from backupData """
    if request['action'] == 'backup':
        backup = ledger.backup()
        return {
            'action': 'backup',
            'backupData': backup,
            'backupSize': len(b64decode(backup)),
            'timestamp': datetime.fromtimestamp(
                ledger.clock(), timezone.utc).isoformat(),
        }
    check_req_params(request, 'backupData')
    ledger.restore(request['backupData'])
    return {'action': 'restore', 'message': 'State restored successfully'}


def ldk_generate_mnemonic(request, ledger):
    wallet = WalletService(ledger.network)
    mnemonic = wallet.generate_mnemonic(request['strength'])
    seed = wallet.mnemonic_to_seed(mnemonic)
    return {
        'mnemonic': mnemonic,
        'wordCount': len(mnemonic.split()),
        'seedHex': seed.hex(),
    }


def ldk_derive_address(request, ledger):
    """ Derives a BIP84 address, on the node network unless requested """
    network = request.get('network') or ledger.network
    wallet = WalletService(network)
    seed = wallet.mnemonic_to_seed(request['mnemonic'])
    derivation = wallet.derive_address(
        seed, request['accountIndex'], request['isChange'],
        request['addressIndex'])
    return {
        'address': derivation['address'],
        'publicKey': derivation['public_key'],
        'derivationPath': derivation['derivation_path'],
        'network': network,
    }


def _channel_to_result(channel):
    return {
        'channelId': channel.channel_id,
        'shortChannelId': channel.short_channel_id,
        'remotePubkey': channel.remote_pubkey,
        'state': channel.state,
        'isUsable': channel.is_usable,
        'capacitySats': convert(Enf.MSATS, channel.capacity_msat),
        'localBalanceSats': convert(Enf.MSATS, channel.local_balance_msat),
        'remoteBalanceSats': convert(Enf.MSATS, channel.remote_balance_msat),
    }


def _payment_to_result(payment):
    return {
        'paymentHash': payment.payment_hash,
        'paymentPreimage': payment.preimage,
        'amountSats': convert(Enf.MSATS, payment.amount_msat),
        'feeSats': convert(Enf.MSATS, payment.fee_msat or 0),
        'status': payment.status,
        'timestamp': payment.timestamp,
    }
