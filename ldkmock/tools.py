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

""" Tools catalogue and dispatcher module for ldk-mock """

from functools import wraps
from logging import getLogger

from . import handlers, settings as sett
from .errors import Err, LedgerError
from .utils.misc import check_known_params, check_req_params, handle_logs

LOGGER = getLogger(__name__)

TOOLS = {
    'ldk_generate_invoice': {
        'description': 'Generate a Lightning invoice for testing payment '
                       'flows',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'amountSats': {
                    'type': 'number',
                    'description': 'Amount in satoshis',
                    'minimum': 1
                },
                'description': {
                    'type': 'string',
                    'description': 'Invoice description'
                },
                'expirySeconds': {
                    'type': 'integer',
                    'description': 'Invoice expiry time in seconds',
                    'default': sett.EXPIRY_TIME
                }
            },
            'required': ['amountSats']
        }
    },
    'ldk_pay_invoice': {
        'description': 'Test payment flows by paying a Lightning invoice',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'invoice': {
                    'type': 'string',
                    'description': 'BOLT11 Lightning invoice to pay'
                },
                'maxFeeSats': {
                    'type': 'number',
                    'description': 'Maximum fee in satoshis willing to pay',
                    'default': sett.MAX_FEE_SAT
                }
            },
            'required': ['invoice']
        }
    },
    'ldk_decode_invoice': {
        'description': 'Decode and validate Lightning invoices',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'invoice': {
                    'type': 'string',
                    'description': 'BOLT11 Lightning invoice to decode'
                }
            },
            'required': ['invoice']
        }
    },
    'ldk_create_channel': {
        'description': 'Open a Lightning channel with a peer node',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'remotePubkey': {
                    'type': 'string',
                    'description': 'Remote node public key (hex encoded)'
                },
                'capacitySats': {
                    'type': 'number',
                    'description': 'Channel capacity in satoshis',
                    'minimum': sett.MIN_CHANNEL_SAT
                },
                'pushSats': {
                    'type': 'number',
                    'description': 'Amount to push to remote side',
                    'default': 0
                },
                'isPublic': {
                    'type': 'boolean',
                    'description': 'Whether to announce channel publicly',
                    'default': False
                }
            },
            'required': ['remotePubkey', 'capacitySats']
        }
    },
    'ldk_close_channel': {
        'description': 'Close a Lightning channel cooperatively or force '
                       'close',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'channelId': {
                    'type': 'string',
                    'description': 'Channel ID to close'
                },
                'force': {
                    'type': 'boolean',
                    'description': 'Force close the channel',
                    'default': False
                }
            },
            'required': ['channelId']
        }
    },
    'ldk_channel_status': {
        'description': 'Monitor channel states and balances',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'includeOffline': {
                    'type': 'boolean',
                    'description': 'Include offline/unusable channels',
                    'default': True
                }
            }
        }
    },
    'ldk_get_balance': {
        'description': 'Get Lightning wallet balance and channel liquidity',
        'inputSchema': {'type': 'object', 'properties': {}}
    },
    'ldk_node_info': {
        'description': 'Get current node status and connectivity information',
        'inputSchema': {'type': 'object', 'properties': {}}
    },
    'ldk_list_payments': {
        'description': 'List recent Lightning payments with status',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'limit': {
                    'type': 'integer',
                    'description': 'Maximum number of payments to return',
                    'minimum': 1,
                    'default': sett.LIST_PAYMENTS_LIMIT
                },
                'status': {
                    'type': 'string',
                    'enum': ['all', 'pending', 'succeeded', 'failed'],
                    'description': 'Filter by payment status',
                    'default': 'all'
                }
            }
        }
    },
    'ldk_estimate_fee': {
        'description': 'Estimate Lightning routing fees for a payment',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'amountSats': {
                    'type': 'number',
                    'description': 'Payment amount in satoshis',
                    'minimum': 1
                },
                'targetNode': {
                    'type': 'string',
                    'description': 'Target node public key'
                }
            },
            'required': ['amountSats']
        }
    },
    'ldk_backup_state': {
        'description': 'Test channel backup and restore flows',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'action': {
                    'type': 'string',
                    'enum': ['backup', 'restore'],
                    'description': 'Action to perform'
                },
                'backupData': {
                    'type': 'string',
                    'description': 'Base64 encoded backup data (required '
                                   'for restore)'
                }
            },
            'required': ['action']
        }
    },
    'ldk_generate_mnemonic': {
        'description': 'Generate BIP39 mnemonic for wallet initialization',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'strength': {
                    'type': 'integer',
                    'enum': [128, 256],
                    'description': 'Mnemonic strength (128 = 12 words, '
                                   '256 = 24 words)',
                    'default': sett.MNEMONIC_STRENGTH
                }
            }
        }
    },
    'ldk_derive_address': {
        'description': 'Derive Bitcoin addresses from seed using BIP84',
        'inputSchema': {
            'type': 'object',
            'properties': {
                'mnemonic': {
                    'type': 'string',
                    'description': 'BIP39 mnemonic phrase'
                },
                'accountIndex': {
                    'type': 'integer',
                    'description': 'Account index',
                    'minimum': 0,
                    'default': 0
                },
                'addressIndex': {
                    'type': 'integer',
                    'description': 'Address index',
                    'minimum': 0,
                    'default': 0
                },
                'isChange': {
                    'type': 'boolean',
                    'description': 'Is change address',
                    'default': False
                },
                'network': {
                    'type': 'string',
                    'enum': list(sett.NETWORKS),
                    'description': 'Bitcoin network (defaults to the node '
                                   'network)'
                }
            },
            'required': ['mnemonic']
        }
    },
}

TYPES = {
    'string': (str,),
    'number': (int, float),
    'integer': (int,),
    'boolean': (bool,),
}


def validate_arguments(name, request):
    """
    Checks the arguments of a tool call against its input schema and
    returns them with defaults filled in
    """
    if request is None:
        request = {}
    if not isinstance(request, dict):
        Err().wrong_type('arguments', 'object')
    schema = TOOLS[name]['inputSchema']
    properties = schema['properties']
    check_known_params(request, properties)
    check_req_params(request, *schema.get('required', []))
    arguments = {}
    for param, prop in properties.items():
        value = request.get(param)
        if value is None:
            if 'default' in prop:
                arguments[param] = prop['default']
            continue
        _check_type(param, value, prop['type'])
        if 'enum' in prop and value not in prop['enum']:
            Err().unsupported_value(param, value)
        if 'minimum' in prop and value < prop['minimum']:
            Err().value_too_low(param)
        arguments[param] = value
    return arguments


def _check_type(param, value, expected):
    """ Booleans are never accepted as numbers """
    if isinstance(value, bool) and expected != 'boolean':
        Err().wrong_type(param, expected)
    if not isinstance(value, TYPES[expected]):
        Err().wrong_type(param, expected)


def _handle_unexpected_errors(func):
    """ Turns any non ledger exception into an unexpected_error """

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except LedgerError:
            raise
        except Exception as err:  # pylint: disable=broad-except
            Err().unexpected_error(str(err) or err.__class__.__name__)

    return wrapper


class ToolDispatcher():
    """
    Routes named tool calls to the functions of the handlers module, wrapping
    their results in a JSON envelope carrying a success flag
    """

    def __init__(self, ledger):
        self.ledger = ledger

    @staticmethod
    def list_tools():
        """ Returns name, description and input schema of every tool """
        return [dict(TOOLS[name], name=name) for name in TOOLS]

    @handle_logs
    def call(self, name, request):
        """ Calls a tool, returning its result or error envelope """
        try:
            result = self._run(name, request)
        except LedgerError as err:
            return {'success': False, 'error': str(err)}
        response = {'success': True}
        response.update(result)
        return response

    @_handle_unexpected_errors
    def _run(self, name, request):
        if name not in TOOLS:
            Err().unimplemented_tool(name)
        arguments = validate_arguments(name, request)
        return getattr(handlers, name)(arguments, self.ledger)
