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
Implementation of a CLI (Command Line Interface) to use ldk-mock tools

Every command restores the ledger from the latest snapshot saved in the
database, runs a tool and, unless the tool only reads it, saves the resulting
ledger as a new snapshot (encrypted if a password is given).

- Exits with code 0 if everything is OK
- Exits with code 1 when the tool fails or a client-side error occurs
"""

import sys

from configparser import Error as ConfigError
from functools import wraps
from json import dumps

from click import argument, Choice, echo, group, option, version_option
from qrcode import QRCode
from qrcode.constants import ERROR_CORRECT_L

from . import __version__, settings as sett
from .db import get_latest_snapshot_from_db, init_db, save_snapshot_to_db, \
    session_scope
from .errors import LedgerError
from .ledger import MockLedger
from .tools import ToolDispatcher
from .utils.misc import init_common, set_datadir
from .utils.security import decrypt_blob, encrypt_blob


def _die(message=None, exit_code=1):
    """ Prints message to stderr with specified error code """
    if not message:
        message = 'Aborted'
    echo(message, err=True)
    sys.exit(exit_code)


def _load_ledger():
    """
    Builds the ledger, restoring the latest snapshot if any.
    Returns the ledger and whether a snapshot was restored
    """
    ledger = MockLedger(network=sett.NETWORK, alias=sett.ALIAS)
    with session_scope() as session:
        data, scrypt_params = get_latest_snapshot_from_db(session)
    if data is None:
        return ledger, False
    if scrypt_params:
        if not sett.CLI_PASSWORD:
            _die('Ledger snapshot is encrypted, a password is required')
        data = decrypt_blob(sett.CLI_PASSWORD, data, scrypt_params)
    ledger.restore(data.decode('ascii'))
    return ledger, True


def _changes_ledger(name, request):
    """ Tells whether a tool call may change the persisted ledger """
    if name == 'ldk_backup_state':
        return request.get('action') == 'restore'
    return name not in sett.CLI_READ_ONLY_TOOLS


def _save_ledger(ledger):
    """ Saves a snapshot of the ledger, encrypting it with a password """
    data = ledger.backup().encode('ascii')
    scrypt_params = None
    if sett.CLI_PASSWORD:
        data, scrypt_params = encrypt_blob(sett.CLI_PASSWORD, data)
    with session_scope() as session:
        save_snapshot_to_db(session, data, scrypt_params)


def _print_res(response):
    """ Prints response using JSON format """
    echo(dumps(response, indent=4, sort_keys=True))


def _show_qrcode(data):
    """ Creates and shows a QR code from data """
    qrcode = QRCode(version=1, error_correction=ERROR_CORRECT_L, box_size=7)
    qrcode.add_data(data)
    qrcode.make()
    qrcode.print_ascii(tty=True)


def _call_tool(name, request):
    """
    Runs a tool against the persisted ledger, prints its envelope and
    returns it. Exits with code 1 if the tool fails
    """
    try:
        init_common(console_level=sett.CLI_LOGS_LEVEL)
        if sett.CLI_NETWORK:
            sett.NETWORK = sett.CLI_NETWORK
        init_db(new_db=True)
        ledger, restored = _load_ledger()
        response = ToolDispatcher(ledger).call(name, request)
        if response['success'] and \
                (not restored or _changes_ledger(name, request)):
            _save_ledger(ledger)
    except ConfigError as err:
        _die('Configuration error: {}'.format(err))
    except LedgerError as err:
        _die('Error: {}'.format(err))
    except RuntimeError as err:
        _die(str(err))
    except Exception as err:  # pylint: disable=broad-except
        _die('Error, terminating cli: {}'.format(err))
    _print_res(response)
    if not response['success']:
        sys.exit(1)
    return response


def _args(**kwargs):
    """ Returns tool arguments, leaving out options not given """
    return {key: value for key, value in kwargs.items() if value is not None}


def handle_call(func):
    """ Decorator to run the tool call returned by a command """

    @wraps(func)
    def wrapper(*args, **kwargs):
        name, request = func(*args, **kwargs)
        _call_tool(name, request)

    return wrapper


@group()
@option('--datadir', nargs=1, help='Path containing config file and ledger '
        'database (default ~/.ldkmock)')
@option('--password', nargs=1, envvar=sett.PASSWORD_ENV, help='Password to '
        'encrypt ledger snapshots (also read from {})'.format(
            sett.PASSWORD_ENV))
@option('--network', type=Choice(sett.NETWORKS), help='Override the '
        'configured network')
@version_option(version=__version__, message='%(version)s')
def entrypoint(datadir, password, network):
    """
    ldkmock-cli, a CLI for the ldk-mock simulated Lightning node.

    Amounts are in satoshis.
    """
    if datadir is not None:
        try:
            set_datadir(datadir)
        except RuntimeError as err:
            _die(str(err))
    if password is not None:
        if not password:
            _die('Invalid password')
        sett.CLI_PASSWORD = password
    if network:
        sett.CLI_NETWORK = network


@entrypoint.command()
@argument('amount_sats', type=int)
@option('--description', nargs=1, help='Description of the invoice')
@option('--expiry_seconds', nargs=1, type=int, help='Invoice expiration '
        'time, in seconds (default: {})'.format(sett.EXPIRY_TIME))
@option('--qr', is_flag=True, help='Also show the invoice as a QR code')
def createinvoice(amount_sats, description, expiry_seconds, qr):
    """ CreateInvoice creates a LN invoice (BOLT 11). """
    response = _call_tool('ldk_generate_invoice', _args(
        amountSats=amount_sats, description=description,
        expirySeconds=expiry_seconds))
    if qr:
        _show_qrcode(response['invoice'])


@entrypoint.command()
@argument('invoice', nargs=1)
@option('--max_fee_sats', nargs=1, type=int, help='Maximum fee, in '
        'satoshis (default: {})'.format(sett.MAX_FEE_SAT))
@handle_call
def payinvoice(invoice, max_fee_sats):
    """ PayInvoice pays a LN invoice from its payment request. """
    return 'ldk_pay_invoice', _args(invoice=invoice, maxFeeSats=max_fee_sats)


@entrypoint.command()
@argument('invoice', nargs=1)
@handle_call
def decodeinvoice(invoice):
    """ DecodeInvoice returns information of a LN invoice. """
    return 'ldk_decode_invoice', _args(invoice=invoice)


@entrypoint.command()
@argument('remote_pubkey', nargs=1)
@argument('capacity_sats', type=int)
@option('--push_sats', nargs=1, type=int, help='Amount to push to the '
        'remote side, in satoshis')
@option('--public', is_flag=True, help='Whether to announce the channel')
@handle_call
def openchannel(remote_pubkey, capacity_sats, push_sats, public):
    """ OpenChannel opens a channel with a peer. """
    return 'ldk_create_channel', _args(
        remotePubkey=remote_pubkey, capacitySats=capacity_sats,
        pushSats=push_sats, isPublic=public)


@entrypoint.command()
@argument('channel_id', nargs=1)
@option('--force', is_flag=True, help='Whether to force a unilateral close')
@handle_call
def closechannel(channel_id, force):
    """
    CloseChannel closes a channel. The channel stays in closing state for a
    few seconds before disappearing.
    """
    return 'ldk_close_channel', _args(channelId=channel_id, force=force)


@entrypoint.command()
@option('--usable_only', is_flag=True, help='Whether to list usable '
        'channels only')
@handle_call
def listchannels(usable_only):
    """ ListChannels returns a summary and the list of channels. """
    return 'ldk_channel_status', _args(includeOffline=not usable_only)


@entrypoint.command()
@handle_call
def channelbalance():
    """ ChannelBalance returns the off-chain balance and liquidity. """
    return 'ldk_get_balance', {}


@entrypoint.command()
@handle_call
def getinfo():
    """ GetInfo returns info about the node. """
    return 'ldk_node_info', {}


@entrypoint.command()
@option('--limit', nargs=1, type=int, help='Maximum number of payments '
        '(default: {})'.format(sett.LIST_PAYMENTS_LIMIT))
@option('--status', type=Choice(['all', 'pending', 'succeeded', 'failed']),
        help='Filter by payment status')
@handle_call
def listpayments(limit, status):
    """ ListPayments returns the most recent payments. """
    return 'ldk_list_payments', _args(limit=limit, status=status)


@entrypoint.command()
@argument('amount_sats', type=int)
@option('--target_node', nargs=1, help='Target node public key')
@handle_call
def estimatefee(amount_sats, target_node):
    """ EstimateFee estimates the routing fee of a payment. """
    return 'ldk_estimate_fee', _args(
        amountSats=amount_sats, targetNode=target_node)


@entrypoint.command()
@handle_call
def backup():
    """ Backup returns a base64 snapshot of the ledger. """
    return 'ldk_backup_state', _args(action='backup')


@entrypoint.command()
@argument('backup_data', nargs=1)
@handle_call
def restore(backup_data):
    """ Restore replaces the ledger with the content of a backup. """
    return 'ldk_backup_state', _args(action='restore', backupData=backup_data)


@entrypoint.command()
@option('--strength', type=Choice(['128', '256']), help='Mnemonic strength '
        '(128 = 12 words, 256 = 24 words)')
@handle_call
def genmnemonic(strength):
    """ GenMnemonic generates a BIP39 mnemonic. """
    if strength is not None:
        strength = int(strength)
    return 'ldk_generate_mnemonic', _args(strength=strength)


@entrypoint.command()
@argument('mnemonic', nargs=1)
@option('--account_index', nargs=1, type=int, help='Account index')
@option('--address_index', nargs=1, type=int, help='Address index')
@option('--change', is_flag=True, help='Whether to derive a change address')
@option('--address_network', type=Choice(sett.NETWORKS), help='Network of '
        'the address (default: node network)')
@handle_call
def deriveaddress(mnemonic, account_index, address_index, change,
                  address_network):
    """ DeriveAddress derives a BIP84 address from a mnemonic. """
    return 'ldk_derive_address', _args(
        mnemonic=mnemonic, accountIndex=account_index,
        addressIndex=address_index, isChange=change,
        network=address_network)
