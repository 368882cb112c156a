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
Invoice codec module for ldk-mock.

Encodes and decodes simulated BOLT11 payment requests: a bech32 string whose
human-readable part carries network and amount and whose data part carries
a timestamp, tagged fields (payment hash, description, expiry) and a
recoverable secp256k1 signature of the payee.
"""

from hashlib import sha256
from logging import getLogger
from os import urandom
from re import compile as re_compile
from time import time

from bip_utils.bech32.bech32 import Bech32Encodings, Bech32Utils
from bip_utils.bech32.bech32_base import Bech32BaseConst, Bech32BaseUtils
from coincurve import PrivateKey, PublicKey

from . import settings as sett
from .errors import DecodeError, Err, LedgerError
from .utils.bitcoin import get_network

LOGGER = getLogger(__name__)

CHARSET = Bech32BaseConst.CHARSET

TIMESTAMP_GROUPS = 7
SIGNATURE_GROUPS = 104

TAG_PAYMENT_HASH = 'p'
TAG_DESCRIPTION = 'd'
TAG_EXPIRY = 'x'
TAG_PAYEE = 'n'

# picobtc per unit of each BOLT11 multiplier, shortest first
MULTIPLIERS = (('', 10**12), ('m', 10**9), ('u', 10**6), ('n', 10**3),
               ('p', 1))
AMOUNT_RE = re_compile(r'^([0-9]+)([munp]?)$')


class LightningInvoice():  # pylint: disable=too-few-public-methods
    """ An encoded invoice together with the secrets used to create it """

    # pylint: disable=too-many-arguments
    def __init__(self, bolt11, payment_hash, preimage, amount_msat,
                 description, expiry, timestamp):
        self.bolt11 = bolt11
        self.payment_hash = payment_hash
        self.preimage = preimage
        self.amount_msat = amount_msat
        self.description = description
        self.expiry = expiry
        self.timestamp = timestamp
        # pylint: enable=too-many-arguments

    def __repr__(self):
        return ('<LightningInvoice(payment_hash="{}", ' +
                'amount_msat="{}")>').format(
                    self.payment_hash, self.amount_msat)


class DecodedInvoice():
    """ The content of a decoded invoice """

    # pylint: disable=too-many-arguments
    def __init__(self, payment_hash, amount_msat, description, expiry,
                 timestamp, payee, network):
        self.payment_hash = payment_hash
        self.amount_msat = amount_msat
        self.description = description
        self.expiry = expiry
        self.timestamp = timestamp
        self.payee = payee
        self.network = network
        # pylint: enable=too-many-arguments

    def is_expired(self, now=None):
        """ Whether the invoice expired at now (Unix seconds) """
        if now is None:
            now = time()
        return self.timestamp + self.expiry < now

    def to_dict(self):
        """ Returns the decoded fields keyed as in the tools results """
        return {
            'paymentHash': self.payment_hash,
            'amountMsat': self.amount_msat,
            'description': self.description,
            'expiry': self.expiry,
            'timestamp': self.timestamp,
            'payee': self.payee,
            'network': self.network,
        }

    def __repr__(self):
        return ('<DecodedInvoice(payment_hash="{}", amount_msat="{}", ' +
                'network="{}")>').format(
                    self.payment_hash, self.amount_msat, self.network)


# pylint: disable=too-many-arguments
def encode_invoice(amount_msat=None, description=None, expiry=None,
                   network=None, timestamp=None, private_key=None):
    """
    Creates a signed invoice for a fresh preimage.

    Unless private_key (32 bytes) is given, every invoice is signed with a
    newly generated key, so the payee recovered from it changes each time.
    """
    if description is None:
        description = sett.DEFAULT_DESCRIPTION
    if expiry is None:
        expiry = sett.EXPIRY_TIME
    if network is None:
        network = sett.NETWORK
    if timestamp is None:
        timestamp = int(time())
    if amount_msat is not None and amount_msat < 0:
        Err().value_too_low('amount_msat')
    prefix = get_network(network)['invoice_prefix']
    preimage = urandom(32)
    payment_hash = sha256(preimage).digest()
    hrp = 'ln' + prefix
    if amount_msat is not None:
        hrp += _encode_amount(amount_msat)
    data = _int_to_groups(timestamp, TIMESTAMP_GROUPS)
    data += _tagged_field(TAG_PAYMENT_HASH, _to_groups(payment_hash))
    data += _tagged_field(
        TAG_DESCRIPTION, _to_groups(description.encode('utf-8')),
        'description')
    data += _tagged_field(TAG_EXPIRY, _int_to_groups(expiry), 'expiry')
    key = PrivateKey(private_key) if private_key else PrivateKey()
    signature = key.sign_recoverable(_signing_digest(hrp, data), hasher=None)
    data += _to_groups(signature)
    return LightningInvoice(
        bech32_encode(hrp, data), payment_hash.hex(), preimage.hex(),
        amount_msat, description, expiry, timestamp)
# pylint: enable=too-many-arguments


def decode_invoice(bolt11):
    """ Decodes an invoice, raising DecodeError on any malformation """
    try:
        return _decode(bolt11)
    except DecodeError:
        raise
    except LedgerError as err:
        Err().invoice_decode_failed(err)
    except (ValueError, TypeError) as err:
        Err().invoice_decode_failed(err)
    return None


def _decode(bolt11):  # pylint: disable=too-many-locals
    """ Parses and verifies an invoice string """
    if not isinstance(bolt11, str):
        Err().invoice_decode_failed('invoice must be a string')
    hrp, data = bech32_decode(bolt11)
    network, amount_msat = _parse_hrp(hrp)
    if len(data) < TIMESTAMP_GROUPS + SIGNATURE_GROUPS:
        Err().invoice_decode_failed('data part too short')
    signature = _from_groups(data[-SIGNATURE_GROUPS:], strict=False)
    data = data[:-SIGNATURE_GROUPS]
    timestamp = _groups_to_int(data[:TIMESTAMP_GROUPS])
    fields = _parse_tagged_fields(data[TIMESTAMP_GROUPS:])
    if TAG_PAYMENT_HASH not in fields:
        Err().invoice_decode_failed('missing payment hash')
    digest = _signing_digest(hrp, data)
    try:
        payee = PublicKey.from_signature_and_message(
            signature, digest, hasher=None).format()
    except ValueError as err:
        LOGGER.debug('Signature recovery failed: %s', err)
        Err().invoice_decode_failed('invalid signature')
    if TAG_PAYEE in fields and fields[TAG_PAYEE] != payee:
        Err().invoice_decode_failed('signature does not match payee')
    return DecodedInvoice(
        payment_hash=fields[TAG_PAYMENT_HASH].hex(),
        amount_msat=amount_msat,
        description=fields.get(TAG_DESCRIPTION, ''),
        expiry=fields.get(TAG_EXPIRY, sett.EXPIRY_TIME),
        timestamp=timestamp,
        payee=payee.hex(),
        network=network)


def _parse_tagged_fields(data):
    """ Reads the known tagged fields, skipping unknown ones """
    fields = {}
    pos = 0
    while pos < len(data):
        if len(data) - pos < 3:
            Err().invoice_decode_failed('truncated tagged field')
        tag = CHARSET[data[pos]]
        length = data[pos + 1] * 32 + data[pos + 2]
        value = data[pos + 3:pos + 3 + length]
        if len(value) != length:
            Err().invoice_decode_failed('truncated tagged field')
        pos += 3 + length
        if tag == TAG_PAYMENT_HASH:
            if length != 52:
                Err().invoice_decode_failed('invalid payment hash length')
            fields[tag] = _from_groups(value)
        elif tag == TAG_PAYEE:
            if length != 53:
                Err().invoice_decode_failed('invalid payee length')
            fields[tag] = _from_groups(value)
        elif tag == TAG_DESCRIPTION:
            try:
                fields[tag] = _from_groups(value).decode('utf-8')
            except UnicodeDecodeError:
                Err().invoice_decode_failed('invalid description')
        elif tag == TAG_EXPIRY:
            fields[tag] = _groups_to_int(value)
    return fields


def _parse_hrp(hrp):
    """ Returns network and amount (msat or None) of a human-readable part """
    if not hrp.startswith('ln'):
        Err().invoice_decode_failed('invalid prefix')
    rest = hrp[2:]
    prefixes = sorted(
        ((name, params['invoice_prefix'])
         for name, params in _networks().items()),
        key=lambda item: len(item[1]), reverse=True)
    for network, prefix in prefixes:
        if rest.startswith(prefix):
            return network, _decode_amount(rest[len(prefix):])
    Err().invoice_decode_failed('unknown network prefix')
    return None, None


def _networks():
    """ Returns the known networks and their parameters """
    return {name: get_network(name) for name in sett.NETWORKS}


def _encode_amount(amount_msat):
    """ Shortest exact BOLT11 representation of an amount in msat """
    pico = amount_msat * 10
    for multiplier, unit in MULTIPLIERS:
        if pico % unit == 0:
            return '{}{}'.format(pico // unit, multiplier)
    return '{}p'.format(pico)


def _decode_amount(amount):
    """ Parses the amount of a human-readable part into msat """
    if not amount:
        return None
    match = AMOUNT_RE.match(amount)
    if not match:
        Err().invoice_decode_failed('invalid amount')
    pico = int(match.group(1)) * dict(MULTIPLIERS)[match.group(2)]
    if pico % 10:
        Err().invoice_decode_failed('amount is not a whole msat')
    return pico // 10


def _tagged_field(tag, groups, param=None):
    """ Serializes a tagged field: type, 10-bit length and data """
    if len(groups) >= 1024:
        Err().value_too_high(param or tag)
    return [CHARSET.index(tag), len(groups) // 32, len(groups) % 32] + groups


def _signing_digest(hrp, data):
    """ SHA-256 of the human-readable part and the data part as bytes """
    return sha256(hrp.encode('utf-8') + _from_groups(data, strict=False)) \
        .digest()


def _to_groups(data):
    """ Bytes to 5-bit groups, zero padded """
    return Bech32BaseUtils.ConvertToBase32(data)


def _from_groups(groups, strict=True):
    """ 5-bit groups to bytes, refusing bad padding if strict """
    if not strict:
        return bytes(Bech32BaseUtils.ConvertBits(groups, 5, 8, True))
    try:
        return bytes(Bech32BaseUtils.ConvertFromBase32(groups))
    except ValueError:
        Err().invoice_decode_failed('invalid padding')
    return None


def _int_to_groups(value, length=None):
    """ Big-endian 5-bit groups of an integer, minimal unless length given """
    if value < 0:
        Err().value_too_low('value')
    groups = []
    while value:
        groups.insert(0, value & 31)
        value >>= 5
    if length is None:
        return groups or [0]
    if len(groups) > length:
        Err().value_too_high('timestamp')
    return [0] * (length - len(groups)) + groups


def _groups_to_int(groups):
    value = 0
    for group in groups:
        value = value * 32 + group
    return value


def bech32_encode(hrp, data):
    """ Bech32 string of hrp and 5-bit data values, without length limit """
    checksum = Bech32Utils.ComputeChecksum(hrp, data, Bech32Encodings.BECH32)
    return hrp + '1' + ''.join(CHARSET[d] for d in data + checksum)


def bech32_decode(bech):
    """
    Validates a bech32 string (no length limit) and returns its hrp and
    5-bit data values, without the checksum
    """
    if any(ord(x) < 33 or ord(x) > 126 for x in bech):
        Err().invoice_decode_failed('invalid character')
    if bech.lower() != bech and bech.upper() != bech:
        Err().invoice_decode_failed('mixed case')
    bech = bech.lower()
    pos = bech.rfind('1')
    if pos < 1 or pos + 7 > len(bech):
        Err().invoice_decode_failed('invalid separator position')
    if not all(x in CHARSET for x in bech[pos + 1:]):
        Err().invoice_decode_failed('invalid character')
    hrp = bech[:pos]
    data = [CHARSET.find(x) for x in bech[pos + 1:]]
    if not Bech32Utils.VerifyChecksum(hrp, data, Bech32Encodings.BECH32):
        Err().invoice_decode_failed('invalid checksum')
    return hrp, data[:-6]
