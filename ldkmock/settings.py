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

""" Configuration settings module for ldk-mock """

from os import path


# Empty variables are set at runtime
# Some variables contain default values, could be overwritten

PKG_NAME = 'ldkmock'
PIP_NAME = 'ldk-mock'

L_DATA = path.expanduser('~/.ldkmock')
L_CONFIG = path.join(L_DATA, 'config')

# Node settings
NETWORK = 'testnet'
NETWORKS = ('mainnet', 'testnet', 'regtest')
ALIAS = 'LDK MCP Node'
NODE_VERSION = '0.0.124'
BLOCK_HEIGHT = 800000
SYNCED_TO_CHAIN = True
NUM_PEERS = 0

# Ledger policy
CLOSE_DELAY = 5
ROUTING_FEE_RATE = '0.001'
SPENDABLE_RATIO = '0.99'
BASE_FEE_MSAT = 1000
FEE_PROPORTIONAL_MILLIONTHS = 1000
FEE_DURATION_SECONDS = 60
SHORT_CHANNEL_ID_BLOCK = 800000

# Invoice settings
EXPIRY_TIME = 3600
DEFAULT_DESCRIPTION = 'LDK MCP Invoice'

# Tool settings
MIN_CHANNEL_SAT = 20000
MAX_FEE_SAT = 10
LIST_PAYMENTS_LIMIT = 10
MNEMONIC_STRENGTH = 256

# Security settings
SALT_LEN = 32
SCRYPT_PARAMS = {
    'cost_factor': 2**15,
    'block_size_factor': 8,
    'parallelization_factor': 1,
    'key_len': 32
}
PASSWORD_ENV = 'LDKMOCK_PASSWORD'

# CLI settings
CLI_NETWORK = ''
CLI_PASSWORD = ''
CLI_LOGS_LEVEL = 'ERROR'
# tools which leave the persisted ledger as they find it
CLI_READ_ONLY_TOOLS = (
    'ldk_channel_status', 'ldk_decode_invoice', 'ldk_derive_address',
    'ldk_estimate_fee', 'ldk_generate_invoice', 'ldk_generate_mnemonic',
    'ldk_get_balance', 'ldk_list_payments', 'ldk_node_info')

# DB settings
# relative paths are resolved from the data directory
DB_DIR = 'db'
DB_NAME = 'ldkmock.db'
DB_PATH = ''
DB_SNAPSHOTS_KEPT = 10

# Server settings
SERVER_NAME = 'ldk-mcp'

# Logging settings
LOGS_DIR = 'logs'
LOGS_LDKMOCK = 'ldkmock.log'
LOG_TIMEFMT = '%Y-%m-%d %H:%M:%S %z'
LOG_TIMEFMT_SIMPLE = '%d %b %H:%M:%S'
LOGS_LEVEL = 'INFO'
LOG_LEVEL_FILE = 'DEBUG'
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format':
            "[%(asctime)s] %(levelname).3s [%(name)s:%(lineno)s] %(message)s",
            'datefmt': LOG_TIMEFMT
        },
        'simple': {
            'format': '%(asctime)s %(levelname).3s: %(message)s',
            'datefmt': LOG_TIMEFMT_SIMPLE
        },
    },
    'handlers': {
        'console': {
            'level': LOGS_LEVEL,
            'class': 'logging.StreamHandler',
            'formatter': 'simple',
            'stream': 'ext://sys.stderr'
        },
    },
    'loggers': {
        '': {
            'handlers': ['console'],
            'level': 'DEBUG'
        },
    }
}
LOGGING_FILE = {
    'file': {
        'level': LOG_LEVEL_FILE,
        'class': 'logging.handlers.RotatingFileHandler',
        'filename': path.join(LOGS_DIR, LOGS_LDKMOCK),
        'maxBytes': 1048576,
        'backupCount': 7,
        'formatter': 'verbose'
    }
}
