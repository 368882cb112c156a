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

""" Tests for utils.misc module """

from argparse import Namespace
from configparser import ConfigParser
from copy import deepcopy
from importlib import import_module
from tempfile import NamedTemporaryFile, TemporaryDirectory
from unittest import TestCase
from unittest.mock import call, Mock, patch

from . import proj_root

settings = import_module(proj_root + '.settings')
errors = import_module(proj_root + '.errors')

MOD = import_module(proj_root + '.utils.misc')

SAVED = ('L_DATA', 'L_CONFIG', 'NETWORK', 'ALIAS', 'DB_DIR', 'DB_PATH',
         'LOGS_DIR')


class UtilsMiscTests(TestCase):
    """ Tests for utils.misc module """

    def setUp(self):
        self.saved = {name: getattr(settings, name) for name in SAVED}

    def tearDown(self):
        for name, value in self.saved.items():
            setattr(settings, name, value)

    def test_handle_keyboardinterrupt(self):
        # KeyboardInterrupt case
        func = Mock()
        func.side_effect = KeyboardInterrupt()
        wrapped = MOD.handle_keyboardinterrupt(func)
        with patch(MOD.__name__ + '.sys', autospec=True):
            with self.assertRaises(MOD.InterruptException):
                wrapped()
        self.assertEqual(func.call_count, 1)
        # return case
        func = Mock(return_value='result')
        wrapped = MOD.handle_keyboardinterrupt(func)
        self.assertEqual(wrapped('arg'), 'result')
        func.assert_called_once_with('arg')

    def test_handle_sigterm(self):
        with self.assertRaises(MOD.InterruptException):
            MOD.handle_sigterm(15, None)

    @patch(MOD.__name__ + '.sys', autospec=True)
    def test_die(self, mocked_sys):
        # with message
        msg = 'message'
        MOD.die(msg)
        mocked_sys.stderr.write.assert_called_once_with(msg + '\n')
        mocked_sys.exit.assert_called_once_with(1)
        # without message
        reset_mocks(vars())
        MOD.die()
        assert not mocked_sys.stderr.write.called
        mocked_sys.exit.assert_called_once_with(1)

    @patch(MOD.__name__ + '.get_start_options', autospec=True)
    @patch(MOD.__name__ + '.get_config_parser', autospec=True)
    @patch(MOD.__name__ + '.init_tree', autospec=True)
    @patch(MOD.__name__ + '.parse_args', autospec=True)
    @patch(MOD.__name__ + '.update_logger', autospec=True)
    def test_init_common(self, mocked_update_log, mocked_parse_args,
                         mocked_init_tree, mocked_get_config,
                         mocked_get_start_opt):
        # server case
        msg = 'help message'
        MOD.init_common(msg)
        mocked_parse_args.assert_called_once_with(msg)
        mocked_init_tree.assert_called_once_with()
        calls = [call(console_level=None),
                 call(mocked_get_config.return_value, None)]
        mocked_update_log.assert_has_calls(calls)
        mocked_get_start_opt.assert_called_once_with(
            mocked_get_config.return_value)
        # cli case
        reset_mocks(vars())
        MOD.init_common(core=False, console_level='ERROR')
        assert not mocked_parse_args.called
        assert not mocked_init_tree.called
        calls = [call(console_level='ERROR'),
                 call(mocked_get_config.return_value, 'ERROR')]
        mocked_update_log.assert_has_calls(calls)

    @patch.object(settings, 'LOGGING', deepcopy(settings.LOGGING))
    @patch(MOD.__name__ + '._try_mkdir', autospec=True)
    @patch(MOD.__name__ + '.dictConfig', autospec=True)
    def test_update_logger(self, mocked_dict_config, mocked_mkdir):
        # without config
        MOD.update_logger()
        mocked_dict_config.assert_called_once_with(settings.LOGGING)
        assert not mocked_mkdir.called
        # with config and console level
        reset_mocks(vars())
        config = ConfigParser()
        config.read_dict({MOD.CONFIG_SECTION: {
            'LOGS_LEVEL': 'debug', 'LOGS_DIR': '/tmp/ldkmock-logs'}})
        MOD.update_logger(config, console_level='ERROR')
        mocked_mkdir.assert_called_once_with('/tmp/ldkmock-logs')
        handlers = settings.LOGGING['handlers']
        self.assertEqual(handlers['console']['level'], 'ERROR')
        self.assertEqual(handlers['file']['filename'],
                         '/tmp/ldkmock-logs/' + settings.LOGS_LDKMOCK)
        # file handler added only once
        MOD.update_logger(config)
        self.assertEqual(
            settings.LOGGING['loggers']['']['handlers'].count('file'), 1)
        self.assertEqual(handlers['console']['level'], 'DEBUG')

    @patch(MOD.__name__ + '.LOGGER', autospec=True)
    def test_log_intro_outro(self, mocked_logger):
        MOD.log_intro()
        assert mocked_logger.info.called
        reset_mocks(vars())
        MOD.log_outro()
        self.assertEqual(mocked_logger.info.call_count, 2)

    @patch(MOD.__name__ + '.set_datadir', autospec=True)
    @patch(MOD.__name__ + '.ArgumentParser', autospec=True)
    def test_parse_args(self, mocked_parser, mocked_set_datadir):
        # datadir given
        mocked_parser.return_value.parse_args.return_value = Namespace(
            datadir='/data')
        MOD.parse_args('help')
        mocked_set_datadir.assert_called_once_with('/data')
        # datadir not given
        reset_mocks(vars())
        mocked_parser.return_value.parse_args.return_value = Namespace(
            datadir=None)
        MOD.parse_args('help')
        assert not mocked_set_datadir.called

    def test_set_datadir(self):
        # correct case
        with TemporaryDirectory() as tmpdir:
            MOD.set_datadir(tmpdir)
            self.assertEqual(settings.L_DATA, tmpdir)
            self.assertEqual(settings.L_CONFIG,
                             MOD.path.join(tmpdir, 'config'))
        # empty path
        with self.assertRaises(RuntimeError):
            MOD.set_datadir('')
        # not a directory
        with NamedTemporaryFile() as tmpfile:
            with self.assertRaises(RuntimeError):
                MOD.set_datadir(tmpfile.name)

    @patch(MOD.__name__ + '.set_defaults', autospec=True)
    @patch(MOD.__name__ + '.ConfigParser', autospec=True)
    @patch(MOD.__name__ + '.path', autospec=True)
    def test_get_config_parser(self, mocked_path, mocked_config,
                               mocked_set_def):
        values = ['NETWORK', 'ALIAS', 'LOGS_DIR', 'LOGS_LEVEL', 'DB_DIR']
        # config exists
        mocked_path.exists.return_value = True
        mocked_config.return_value.has_section.return_value = True
        res = MOD.get_config_parser()
        mocked_config.return_value.read.assert_called_once_with(
            settings.L_CONFIG)
        assert not mocked_config.return_value.add_section.called
        mocked_set_def.assert_called_once_with(
            mocked_config.return_value, values)
        self.assertEqual(res, mocked_config.return_value)
        # config doesn't exist
        reset_mocks(vars())
        mocked_path.exists.return_value = False
        mocked_config.return_value.has_section.return_value = False
        res = MOD.get_config_parser()
        assert not mocked_config.return_value.read.called
        mocked_config.return_value.add_section.assert_called_once_with(
            MOD.CONFIG_SECTION)
        self.assertEqual(res, mocked_config.return_value)

    def test_set_defaults(self):
        config = ConfigParser()
        config.add_section(MOD.CONFIG_SECTION)
        config.set(MOD.CONFIG_SECTION, 'ALIAS', 'custom')
        MOD.set_defaults(config, ['NETWORK', 'ALIAS'])
        self.assertEqual(
            config.get(MOD.CONFIG_SECTION, 'NETWORK'), settings.NETWORK)
        self.assertEqual(config.get(MOD.CONFIG_SECTION, 'ALIAS'), 'custom')

    def test_get_start_options(self):
        # correct case
        config = ConfigParser()
        config.read_dict({MOD.CONFIG_SECTION: {
            'NETWORK': 'Regtest', 'ALIAS': 'alice', 'DB_DIR': '/srv/db'}})
        MOD.get_start_options(config)
        self.assertEqual(settings.NETWORK, 'regtest')
        self.assertEqual(settings.ALIAS, 'alice')
        self.assertEqual(settings.DB_DIR, '/srv/db')
        self.assertEqual(settings.DB_PATH, '/srv/db/' + settings.DB_NAME)
        # unsupported network
        config.set(MOD.CONFIG_SECTION, 'NETWORK', 'signet')
        with self.assertRaises(RuntimeError):
            MOD.get_start_options(config)

    @patch(MOD.__name__ + '._try_mkdir', autospec=True)
    def test_init_tree(self, mocked_mkdir):
        settings.L_DATA = '/data'
        MOD.init_tree()
        calls = [call('/data'), call('/data/db'), call('/data/logs')]
        mocked_mkdir.assert_has_calls(calls)

    @patch(MOD.__name__ + '.makedirs', autospec=True)
    @patch(MOD.__name__ + '.path', autospec=True)
    def test_try_mkdir(self, mocked_path, mocked_makedirs):
        # missing directory
        mocked_path.exists.return_value = False
        MOD._try_mkdir('/dir')
        mocked_makedirs.assert_called_once_with('/dir')
        # existing directory
        reset_mocks(vars())
        mocked_path.exists.return_value = True
        MOD._try_mkdir('/dir')
        assert not mocked_makedirs.called

    def test_get_path(self):
        # with base_path and relative input
        ipath = 'input/path'
        bpath = '/base/path/'
        res = MOD.get_path(ipath, base_path=bpath)
        self.assertEqual(res, bpath + ipath)
        # with base_path and relative input with ~
        ipath = '~/input/path'
        res = MOD.get_path(ipath, base_path=bpath)
        self.assertEqual(res, MOD.Path(ipath).expanduser().as_posix())
        # without base_path
        settings.L_DATA = '/data'
        res = MOD.get_path('db')
        self.assertEqual(res, '/data/db')

    def test_check_req_params(self):
        # correct case
        MOD.check_req_params({'invoice': 'lntb1'}, 'invoice')
        # missing parameter
        with self.assertRaises(errors.ValidationError) as ctx:
            MOD.check_req_params({'invoice': None}, 'invoice')
        self.assertEqual(str(ctx.exception),
                         "Parameter 'invoice' is necessary")

    def test_check_known_params(self):
        # correct case
        MOD.check_known_params({'limit': 1}, ('limit', 'status'))
        # unknown parameter
        with self.assertRaises(errors.ValidationError) as ctx:
            MOD.check_known_params({'limit': 1, 'foo': 2}, ('limit',))
        self.assertEqual(str(ctx.exception),
                         "Parameter 'foo' is not supported")

    @patch(MOD.__name__ + '.LOGGER', autospec=True)
    def test_handle_logs(self, mocked_logger):
        class Dispatcher():

            @MOD.handle_logs
            def call(self, name, request):
                return {'success': request.get('ok', False)}

        # successful call
        res = Dispatcher().call('ldk_get_balance', {'ok': True})
        self.assertEqual(res, {'success': True})
        self.assertEqual(mocked_logger.info.call_count, 2)
        self.assertEqual(
            mocked_logger.info.call_args_list[0],
            call('< %-24s', 'ldk_get_balance'))
        self.assertEqual(mocked_logger.info.call_args[0][2], 'ok')
        # failed call
        reset_mocks(vars())
        res = Dispatcher().call('ldk_get_balance', {})
        self.assertEqual(res, {'success': False})
        self.assertEqual(mocked_logger.info.call_args[0][2], 'failed')
        mocked_logger.debug.assert_called_once_with(
            'Full response: %s', res)


def reset_mocks(params):
    for _key, value in params.items():
        try:
            if type(value.call_count) is int:
                value.reset_mock()
        except:
            pass
