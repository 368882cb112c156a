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

""" Bitcoin and Lightning Network utils module """

from decimal import Context, Decimal, Inexact, InvalidOperation, ROUND_FLOOR
from logging import getLogger

from .. import settings as sett
from ..errors import Err

LOGGER = getLogger(__name__)

NETWORKS = {
    'mainnet': {'invoice_prefix': 'bc', 'segwit_hrp': 'bc', 'coin_type': 0},
    'testnet': {'invoice_prefix': 'tb', 'segwit_hrp': 'tb', 'coin_type': 1},
    'regtest': {
        'invoice_prefix': 'bcrt', 'segwit_hrp': 'bcrt', 'coin_type': 1},
}


def get_network(network):
    """ Returns the parameters of a network, failing on unknown names """
    if network not in NETWORKS:
        Err().unsupported_value('network', network)
    return NETWORKS[network]


def convert(unit, amount, enforce=None, param='amount',
            rounding=ROUND_FLOOR):
    """
    Handles the conversion of amounts to and from sats, the unit used by
    the tools interface.

    If enforce is set, the value in sats is checked against the given
    boundaries and then converted, exactly, to the unit required by the
    ledger (usually msats).
    If enforce is not set, the value coming from the ledger is converted to
    sats and rounded to an integer (floor by default).
    """
    if enforce:
        # input: converting from tools interface to ledger (checks value)
        source = Enforcer.SATS
        target = unit
    else:
        # output: converting from ledger to tools interface
        source = unit
        target = Enforcer.SATS
    return _convert_value(source, target, amount, enforce, param, rounding)


# pylint: disable=too-many-arguments
def _convert_value(source, target, amount, enforce=None, param='amount',
                   rounding=ROUND_FLOOR):
    """
    Converts amount from source to target unit, requiring an exact integer
    result on input and rounding it on output
    """
    try:
        amount = Decimal(str(amount))
    except InvalidOperation:
        Err().value_error()
    if not amount.is_finite():
        Err().value_error()
    if enforce:
        ratio = enforce['unit']['decimal'] - source['decimal']
        Enforcer.check_value(param, amount.scaleb(ratio), enforce)
    converted = amount.scaleb(target['decimal'] - source['decimal'])
    if not enforce:
        return int(converted.to_integral_value(rounding=rounding))
    try:
        # inexact conversions (e.g. fractions of msat) are refused
        result = converted.quantize(
            Decimal(1), context=Context(traps=[Inexact, InvalidOperation]))
    except (Inexact, InvalidOperation):
        Err().value_error()
    return int(result)
# pylint: enable=too-many-arguments


class Enforcer():  # pylint: disable=too-few-public-methods
    """
    Enforces BOLTs rules and value limits.
    """

    BTC = {'name': 'btc', 'decimal': 0}
    SATS = {'name': 'sats', 'decimal': 8}
    MSATS = {'name': 'msats', 'decimal': 11}

    DEFAULT = {'min_value': 0, 'unit': MSATS}

    # 21M BTC expressed in sats
    MAX_SUPPLY_SAT = 21 * 10**14

    FUNDING_SATOSHIS = {'min_value': sett.MIN_CHANNEL_SAT,
                        'max_value': MAX_SUPPLY_SAT, 'unit': SATS}
    PUSH_SATOSHIS = {'min_value': 0, 'max_value': MAX_SUPPLY_SAT,
                     'unit': SATS}
    LN_PAYREQ = {'min_value': 1, 'max_value': MAX_SUPPLY_SAT, 'unit': SATS}
    LN_FEE = {'min_value': 0, 'max_value': MAX_SUPPLY_SAT, 'unit': SATS}

    EXPIRY_TIME = {'min_value': 1, 'max_value': 2**32}
    BIP32_INDEX = {'min_value': 0, 'max_value': 2**31 - 1}
    LIST_LIMIT = {'min_value': 1}

    # pylint: disable=dangerous-default-value
    @staticmethod
    def check_value(param, value, enforce=DEFAULT):
        """ Checks that value is between min_value and max_value """
        if 'min_value' in enforce and value < enforce['min_value']:
            Err().value_too_low(param)
        if 'max_value' in enforce and value > enforce['max_value']:
            Err().value_too_high(param)
        return True
    # pylint: enable=dangerous-default-value
