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

""" The errors module for ldk-mock """

from logging import getLogger

LOGGER = getLogger(__name__)


class LedgerError(Exception):
    """ Base class of every error raised by ldk-mock """


class NotFoundError(LedgerError):
    """ Raised when a channel, payment or tool identifier is unknown """


class DecodeError(LedgerError):
    """ Raised when an invoice text is not well-formed """


class CorruptionError(LedgerError):
    """ Raised when a backup blob cannot be decoded or restored """


class ValidationError(LedgerError):
    """ Raised when caller-supplied values violate an invariant """


class StorageError(LedgerError):
    """ Raised when the snapshot database cannot be used """


ERRORS = {
    'already_paid': {
        'exc': ValidationError,
        'msg': "Invoice with payment hash '%PARAM%' has already been paid"
    },
    'backup_corrupted': {
        'exc': CorruptionError,
        'msg': 'Failed to restore state: %PARAM%'
    },
    'channel_not_found': {
        'exc': NotFoundError,
        'msg': "Channel '%PARAM%' not found"
    },
    'db_error': {
        'exc': StorageError,
        'msg': 'Error accessing database'
    },
    'fee_too_high': {
        'exc': ValidationError,
        'msg': 'Fee of %PARAM% msat exceeds the maximum of %PARAM% msat'
    },
    'invalid': {
        'exc': ValidationError,
        'msg': "Invalid parameter '%PARAM%'"
    },
    'invalid_mnemonic': {
        'exc': ValidationError,
        'msg': 'Invalid mnemonic'
    },
    'invoice_decode_failed': {
        'exc': DecodeError,
        'msg': 'Failed to decode invoice: %PARAM%'
    },
    'missing_parameter': {
        'exc': ValidationError,
        'msg': "Parameter '%PARAM%' is necessary"
    },
    'push_exceeds_capacity': {
        'exc': ValidationError,
        'msg': 'Push amount exceeds channel capacity'
    },
    'unimplemented_tool': {
        'exc': NotFoundError,
        'msg': "Tool '%PARAM%' not found"
    },
    'unknown_parameter': {
        'exc': ValidationError,
        'msg': "Parameter '%PARAM%' is not supported"
    },
    'unsupported_value': {
        'exc': ValidationError,
        'msg': "Parameter '%PARAM%' doesn't support value '%PARAM%'"
    },
    'value_error': {
        'exc': ValidationError,
        'msg': 'Value is not a number or exceeds maximum precision'
    },
    'value_too_low': {
        'exc': ValidationError,
        'msg': "Parameter '%PARAM%' is under minimum value"
    },
    'value_too_high': {
        'exc': ValidationError,
        'msg': "Parameter '%PARAM%' exceeds maximum treshold"
    },
    'wrong_password': {
        'exc': StorageError,
        'msg': 'Wrong password'
    },
    'wrong_type': {
        'exc': ValidationError,
        'msg': "Parameter '%PARAM%' must be of type %PARAM%"
    },
    # Fallback
    'unexpected_error': {
        'exc': LedgerError
    }
}


class Err():  # pylint: disable=too-few-public-methods
    """ Class necessary to implement the __getattr__ method """
    def __getattr__(self, name):
        """ Dispatches the called error dynamically """
        if name.startswith('__'):
            raise AttributeError(name)

        def error_dispatcher(*params):
            if name not in ERRORS:
                LOGGER.error('Unmapped error key')
                raise LedgerError('Unmapped error key {}'.format(name))
            msg = ''
            if 'msg' in ERRORS[name]:
                msg = ERRORS[name]['msg']
            for param in params:
                msg = msg.replace('%PARAM%', str(param), 1)
            if name == 'unexpected_error':
                msg = str(params[0]) if params else 'Unexpected error'
                LOGGER.error('Unexpected error: %s', msg)
            LOGGER.debug('> %s', msg)
            raise ERRORS[name]['exc'](msg)

        return error_dispatcher
