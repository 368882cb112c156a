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

""" Miscellaneous utils module """

import sys

from argparse import ArgumentParser
from configparser import ConfigParser
from functools import wraps
from logging import getLogger
from logging.config import dictConfig
from os import access, makedirs, path, R_OK
from pathlib import Path
from time import strftime, time

from .. import __version__, settings as sett
from ..errors import Err
from .exceptions import InterruptException

LOGGER = getLogger(__name__)

CONFIG_SECTION = 'ldkmock'


def init_common(help_msg=None, core=True, console_level=None):
    """
    Initializes common entrypoints calls.

    Command line arguments are parsed only when a help message is given
    (the CLI parses its own options with click).
    """
    update_logger(console_level=console_level)
    if help_msg:
        parse_args(help_msg)
    if core:
        init_tree()
    config = get_config_parser()
    get_start_options(config)
    update_logger(config, console_level)


def update_logger(config=None, console_level=None):
    """
    Activates console logs by default and, when configuration is available,
    activates file logs and sets configured log level
    """
    if config:
        logs_level = config.get(CONFIG_SECTION, 'LOGS_LEVEL').upper()
        sett.LOGGING['handlers']['console']['level'] = logs_level
        if 'file' not in sett.LOGGING['loggers']['']['handlers']:
            sett.LOGGING['loggers']['']['handlers'].append('file')
        sett.LOGGING['handlers'].update(sett.LOGGING_FILE)
        sett.LOGS_DIR = get_path(config.get(CONFIG_SECTION, 'LOGS_DIR'))
        _try_mkdir(sett.LOGS_DIR)
        log_path = path.join(sett.LOGS_DIR, sett.LOGS_LDKMOCK)
        sett.LOGGING['handlers']['file']['filename'] = log_path
    if console_level:
        sett.LOGGING['handlers']['console']['level'] = console_level
    dictConfig(sett.LOGGING)


def log_intro():
    """ Prints a booting boilerplate to ease run distinction """
    LOGGER.info(' '*72)
    LOGGER.info('*'*72)
    LOGGER.info(' '*72)
    LOGGER.info('ldk-mock')
    LOGGER.info('version %s', __version__)
    LOGGER.info('network %s', sett.NETWORK)
    LOGGER.info(' '*72)
    LOGGER.info('booting up at %s', strftime(sett.LOG_TIMEFMT))
    LOGGER.info(' '*72)
    LOGGER.info('*'*72)


def log_outro():
    """ Prints a quitting boilerplate to ease run distinction """
    LOGGER.info('stopping at %s', strftime(sett.LOG_TIMEFMT))
    LOGGER.info('*'*37)


def parse_args(help_msg):
    """ Parses command line arguments """
    parser = ArgumentParser(description=help_msg)
    parser.add_argument(
        '--datadir', metavar='PATH',
        help='Path containing config file and other data')
    args = vars(parser.parse_args())
    if args.get('datadir') is not None:
        set_datadir(args['datadir'])


def set_datadir(datadir):
    """ Checks and sets the data directory (and the config path with it) """
    if not datadir:
        raise RuntimeError('Invalid datadir: empty path')
    if path.exists(datadir) and not path.isdir(datadir):
        raise RuntimeError('Invalid datadir: path is not a directory')
    if path.exists(datadir) and not access(datadir, R_OK):
        raise RuntimeError('Invalid datadir: permission denied')
    sett.L_DATA = datadir
    sett.L_CONFIG = path.join(sett.L_DATA, 'config')


def get_config_parser():
    """
    Reads config file, setting default values, and returns its parser.
    A missing config file is not an error: defaults are used.
    """
    config = ConfigParser()
    if path.exists(sett.L_CONFIG):
        config.read(sett.L_CONFIG)
    else:
        LOGGER.info('Missing config file "%s", using defaults '
                    '(see examples/config.sample)', sett.L_CONFIG)
    if not config.has_section(CONFIG_SECTION):
        config.add_section(CONFIG_SECTION)
    values = ['NETWORK', 'ALIAS', 'LOGS_DIR', 'LOGS_LEVEL', 'DB_DIR']
    set_defaults(config, values)
    return config


def set_defaults(config, values):
    """ Sets configuration defaults """
    defaults = {}
    for var in values:
        defaults[var] = getattr(sett, var)
    config.read_dict({'DEFAULT': defaults})


def get_start_options(config):
    """ Sets ldk-mock start options """
    network = config.get(CONFIG_SECTION, 'NETWORK').lower()
    if network not in sett.NETWORKS:
        raise RuntimeError("Network '{}' is not supported".format(network))
    sett.NETWORK = network
    sett.ALIAS = config.get(CONFIG_SECTION, 'ALIAS')
    sett.DB_DIR = get_path(config.get(CONFIG_SECTION, 'DB_DIR'))
    sett.DB_PATH = path.join(sett.DB_DIR, sett.DB_NAME)


def init_tree():
    """ Creates data directory tree if missing """
    _try_mkdir(sett.L_DATA)
    _try_mkdir(path.join(sett.L_DATA, 'db'))
    _try_mkdir(path.join(sett.L_DATA, 'logs'))


def _try_mkdir(dir_path):
    """ Creates a directory if it doesn't exist """
    if not path.exists(dir_path):
        LOGGER.debug('Creating dir %s', dir_path)
        makedirs(dir_path)


def get_path(ipath, base_path=None):
    """
    Gets absolute posix path. By default relative paths are calculated from
    datadir
    """
    ipath = Path(ipath).expanduser()
    if ipath.is_absolute():
        return ipath.as_posix()
    if not base_path:
        base_path = sett.L_DATA
    return Path(base_path, ipath).as_posix()


def die(message=None):
    """ Prints message to stderr and exits with error code 1 """
    if message:
        sys.stderr.write(message + '\n')
    sys.exit(1)


def check_req_params(request, *parameters):
    """
    Raises a missing_parameter error if one of parameters is not given in the
    request
    """
    for param in parameters:
        if request.get(param) is None:
            Err().missing_parameter(param)


def check_known_params(request, known):
    """
    Raises an unknown_parameter error if the request carries a parameter
    which is not among the known ones
    """
    for param in sorted(request):
        if param not in known:
            Err().unknown_parameter(param)


def handle_sigterm(_signo, _stack_frame):
    """ Handles a SIGTERM, raising an InterruptException """
    raise InterruptException


def handle_keyboardinterrupt(func):
    """ Handles KeyboardInterrupt, raising an InterruptException """

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except KeyboardInterrupt:
            sys.stderr.write('\nKeyboard interrupt detected.\n')
            raise InterruptException

    return wrapper


def handle_logs(func):
    """ Logs name and outcome of a (self, name, request) tool call """

    @wraps(func)
    def wrapper(*args, **kwargs):
        start_time = time()
        name = args[1]
        LOGGER.info('< %-24s', name)
        response = func(*args, **kwargs)
        call_time = round(time() - start_time, 3)
        outcome = 'ok' if response.get('success') else 'failed'
        LOGGER.info('> %-24s %s %2.3fs', name, outcome, call_time)
        LOGGER.debug('Full response: %s', response)
        return response

    return wrapper
