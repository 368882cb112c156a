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

""" Tests for tools module """

from importlib import import_module
from unittest import TestCase
from unittest.mock import patch

from . import proj_root
from . import fixtures_ldk as fix

errors = import_module(proj_root + '.errors')
ledger_mod = import_module(proj_root + '.ledger')
settings = import_module(proj_root + '.settings')

MOD = import_module(proj_root + '.tools')


class ValidateArgumentsTests(TestCase):
    """ Tests for validate_arguments function """

    def test_validate_arguments(self):
        # defaults are filled in
        res = MOD.validate_arguments('ldk_list_payments', None)
        self.assertEqual(res, {'limit': settings.LIST_PAYMENTS_LIMIT,
                               'status': 'all'})
        res = MOD.validate_arguments(
            'ldk_create_channel',
            {'remotePubkey': fix.REMOTE_PUBKEY, 'capacitySats': 20000.5})
        self.assertEqual(res, {'remotePubkey': fix.REMOTE_PUBKEY,
                               'capacitySats': 20000.5, 'pushSats': 0,
                               'isPublic': False})
        # optional parameter without default
        res = MOD.validate_arguments('ldk_estimate_fee', {'amountSats': 10})
        self.assertEqual(res, {'amountSats': 10})
        # null values count as missing
        res = MOD.validate_arguments(
            'ldk_close_channel', {'channelId': 'aa', 'force': None})
        self.assertEqual(res, {'channelId': 'aa', 'force': False})

    def test_validate_arguments_errors(self):
        cases = [
            ('ldk_get_balance', ['list'], "Parameter 'arguments' must be of "
             "type object"),
            ('ldk_get_balance', {'foo': 1},
             "Parameter 'foo' is not supported"),
            ('ldk_pay_invoice', {}, "Parameter 'invoice' is necessary"),
            ('ldk_pay_invoice', {'invoice': 12},
             "Parameter 'invoice' must be of type string"),
            ('ldk_generate_invoice', {'amountSats': '10'},
             "Parameter 'amountSats' must be of type number"),
            ('ldk_generate_invoice', {'amountSats': True},
             "Parameter 'amountSats' must be of type number"),
            ('ldk_generate_invoice', {'amountSats': 10, 'expirySeconds': 1.5},
             "Parameter 'expirySeconds' must be of type integer"),
            ('ldk_close_channel', {'channelId': 'aa', 'force': 1},
             "Parameter 'force' must be of type boolean"),
            ('ldk_list_payments', {'status': 'lost'},
             "Parameter 'status' doesn't support value 'lost'"),
            ('ldk_generate_mnemonic', {'strength': 192},
             "Parameter 'strength' doesn't support value '192'"),
            ('ldk_list_payments', {'limit': 0},
             "Parameter 'limit' is under minimum value"),
            ('ldk_create_channel',
             {'remotePubkey': fix.REMOTE_PUBKEY, 'capacitySats': 19999},
             "Parameter 'capacitySats' is under minimum value"),
        ]
        for name, request, message in cases:
            with self.assertRaises(errors.ValidationError) as ctx:
                MOD.validate_arguments(name, request)
            self.assertEqual(str(ctx.exception), message)


class ToolDispatcherTests(TestCase):
    """ Tests for ToolDispatcher class """

    def setUp(self):
        self.clock = fix.FakeClock(fix.NOW)
        self.ledger = ledger_mod.MockLedger(
            network='testnet', clock=self.clock, node_id=fix.NODE_ID)
        self.dispatcher = MOD.ToolDispatcher(self.ledger)

    def _call(self, name, request=None):
        res = self.dispatcher.call(name, request or {})
        self.assertTrue(res['success'], res.get('error'))
        return res

    def _fail(self, name, request=None):
        res = self.dispatcher.call(name, request or {})
        self.assertEqual(sorted(res), ['error', 'success'])
        self.assertFalse(res['success'])
        return res['error']

    def _open_channel(self, capacity=1000000, push=100000):
        return self._call('ldk_create_channel', {
            'remotePubkey': fix.REMOTE_PUBKEY, 'capacitySats': capacity,
            'pushSats': push})['channel']

    def test_list_tools(self):
        res = self.dispatcher.list_tools()
        names = [tool['name'] for tool in res]
        self.assertEqual(len(names), 13)
        self.assertIn('ldk_generate_invoice', names)
        self.assertIn('ldk_derive_address', names)
        for tool in res:
            self.assertTrue(tool['description'])
            self.assertEqual(tool['inputSchema']['type'], 'object')
        # catalogue is not altered
        self.assertNotIn('name', MOD.TOOLS['ldk_node_info'])

    def test_unknown_tool(self):
        self.assertEqual(self._fail('ldk_unknown'),
                         "Tool 'ldk_unknown' not found")

    @patch(proj_root + '.handlers.ldk_get_balance', autospec=True)
    def test_unexpected_error(self, mocked_handler):
        # correct case
        mocked_handler.return_value = {'balance': {}}
        res = self._call('ldk_get_balance')
        self.assertEqual(res, {'success': True, 'balance': {}})
        mocked_handler.assert_called_once_with({}, self.ledger)
        # unexpected error case
        reset_mocks(vars())
        mocked_handler.side_effect = RuntimeError('boom')
        self.assertEqual(self._fail('ldk_get_balance'), 'boom')
        mocked_handler.side_effect = RuntimeError()
        self.assertEqual(self._fail('ldk_get_balance'), 'RuntimeError')

    def test_generate_invoice(self):
        res = self._call('ldk_generate_invoice', {
            'amountSats': 1000, 'description': 'coffee'})
        self.assertTrue(res['invoice'].startswith('lntb10u1'))
        self.assertEqual(res['amountSats'], 1000)
        self.assertEqual(res['description'], 'coffee')
        self.assertEqual(res['expiryTime'], settings.EXPIRY_TIME)
        self.assertEqual(res['timestamp'], fix.NOW)
        self.assertEqual(len(res['paymentHash']), 64)
        # default description
        res = self._call('ldk_generate_invoice', {'amountSats': 1})
        self.assertEqual(res['description'], settings.DEFAULT_DESCRIPTION)
        # fractional amounts down to the msat
        res = self._call('ldk_generate_invoice', {'amountSats': 1.001})
        decoded = self.ledger.decode_invoice(res['invoice'])
        self.assertEqual(decoded.amount_msat, 1001)
        # error cases
        self._fail('ldk_generate_invoice', {'amountSats': 0})
        self._fail('ldk_generate_invoice', {'amountSats': 1.0001})
        self.assertEqual(
            self._fail('ldk_generate_invoice',
                       {'amountSats': 10, 'expirySeconds': 0}),
            "Parameter 'expirySeconds' is under minimum value")

    def test_decode_invoice(self):
        bolt11 = self._call('ldk_generate_invoice', {
            'amountSats': 1500, 'expirySeconds': 60})['invoice']
        res = self._call('ldk_decode_invoice', {'invoice': bolt11})
        self.assertEqual(res['amountSats'], 1500)
        self.assertEqual(res['amountMsat'], 1500000)
        self.assertEqual(res['expiry'], 60)
        self.assertEqual(res['network'], 'testnet')
        self.assertFalse(res['isExpired'])
        self.clock.sleep(61)
        res = self._call('ldk_decode_invoice', {'invoice': bolt11})
        self.assertTrue(res['isExpired'])
        # error case
        self.assertTrue(self._fail(
            'ldk_decode_invoice', {'invoice': 'not-an-invoice'}).startswith(
                'Failed to decode invoice: '))

    def test_pay_invoice(self):
        bolt11 = self._call('ldk_generate_invoice', {
            'amountSats': 1000})['invoice']
        res = self._call('ldk_pay_invoice', {'invoice': bolt11})
        payment = res['payment']
        self.assertEqual(payment['amountSats'], 1000)
        self.assertEqual(payment['feeSats'], 1)
        self.assertEqual(payment['status'], 'succeeded')
        self.assertEqual(payment['timestamp'], fix.NOW * 1000)
        self.assertEqual(len(payment['paymentPreimage']), 64)
        # already paid
        self.assertTrue(self._fail(
            'ldk_pay_invoice', {'invoice': bolt11}).endswith(
                'has already been paid'))
        # fee over default maximum
        bolt11 = self._call('ldk_generate_invoice', {
            'amountSats': 20000})['invoice']
        self.assertEqual(
            self._fail('ldk_pay_invoice', {'invoice': bolt11}),
            'Fee of 20000 msat exceeds the maximum of 10000 msat')
        # fee under given maximum
        res = self._call('ldk_pay_invoice', {
            'invoice': bolt11, 'maxFeeSats': 20})
        self.assertEqual(res['payment']['feeSats'], 20)
        # not an invoice
        self._fail('ldk_pay_invoice', {'invoice': 'not-an-invoice'})

    def test_create_channel(self):
        res = self._open_channel()
        self.assertEqual(res['capacitySats'], 1000000)
        self.assertEqual(res['localBalanceSats'], 900000)
        self.assertEqual(res['remoteBalanceSats'], 100000)
        self.assertEqual(res['state'], 'open')
        self.assertEqual(len(res['channelId']), 64)
        # error cases
        self.assertEqual(
            self._fail('ldk_create_channel', {
                'remotePubkey': fix.REMOTE_PUBKEY, 'capacitySats': 20000,
                'pushSats': 20001}),
            'Push amount exceeds channel capacity')
        self._fail('ldk_create_channel', {
            'remotePubkey': fix.REMOTE_PUBKEY, 'capacitySats': 20000,
            'pushSats': -1})
        self._fail('ldk_create_channel', {'capacitySats': 20000})

    def test_close_channel(self):
        chan = self._open_channel()
        res = self._call('ldk_close_channel', {
            'channelId': chan['channelId']})
        self.assertEqual(res['closeType'], 'cooperative')
        self.assertEqual(res['channelId'], chan['channelId'])
        self.assertEqual(res['message'], 'Channel closing initiated')
        res = self._call('ldk_close_channel', {
            'channelId': chan['channelId'], 'force': True})
        self.assertEqual(res['closeType'], 'force')
        self.clock.sleep(settings.CLOSE_DELAY)
        self.assertEqual(
            self._fail('ldk_close_channel', {
                'channelId': chan['channelId']}),
            "Channel '{}' not found".format(chan['channelId']))

    def test_channel_status(self):
        first = self._open_channel()
        self._open_channel(50000, 0)
        self._call('ldk_close_channel', {'channelId': first['channelId']})
        res = self._call('ldk_channel_status')
        self.assertEqual(res['summary'], {
            'totalChannels': 2, 'usableChannels': 1,
            'totalCapacitySats': 1050000, 'totalLocalSats': 950000,
            'totalRemoteSats': 100000})
        self.assertEqual(len(res['channels']), 2)
        res = self._call('ldk_channel_status', {'includeOffline': False})
        self.assertEqual(len(res['channels']), 1)
        self.assertEqual(res['channels'][0]['capacitySats'], 50000)
        self.assertEqual(res['channels'][0]['remotePubkey'],
                         fix.REMOTE_PUBKEY)

    def test_get_balance(self):
        self._open_channel()
        res = self._call('ldk_get_balance')
        self.assertEqual(res['balance'], {
            'totalSats': 900000, 'spendableSats': 891000,
            'inboundSats': 100000})
        self.assertEqual(res['liquidity'], {
            'canSendMaxSats': 891000, 'canReceiveMaxSats': 100000})
        self.assertEqual(self._call('ldk_get_balance'), res)

    def test_node_info(self):
        self._open_channel()
        res = self._call('ldk_node_info')
        self.assertEqual(res['node']['nodeId'], fix.NODE_ID)
        self.assertEqual(res['node']['alias'], settings.ALIAS)
        self.assertEqual(res['channels'], {'total': 1, 'usable': 1})
        self.assertEqual(res['balance'], {
            'totalSats': 900000, 'spendableSats': 891000})
        self.assertEqual(res['peers'], settings.NUM_PEERS)

    def test_list_payments(self):
        for amount in (1000, 2000, 3000):
            bolt11 = self._call('ldk_generate_invoice', {
                'amountSats': amount, 'description': str(amount)})['invoice']
            self._call('ldk_pay_invoice', {'invoice': bolt11})
            self.clock.sleep(1)
        res = self._call('ldk_list_payments')
        self.assertEqual(res['count'], 3)
        self.assertEqual([pay['amountSats'] for pay in res['payments']],
                         [3000, 2000, 1000])
        self.assertEqual(res['payments'][0]['description'], '3000')
        res = self._call('ldk_list_payments', {'limit': 2})
        self.assertEqual(res['count'], 2)
        res = self._call('ldk_list_payments', {'status': 'failed'})
        self.assertEqual(res, {'success': True, 'count': 0,
                               'payments': []})

    def test_estimate_fee(self):
        res = self._call('ldk_estimate_fee', {'amountSats': 1000})
        self.assertEqual(res['amountSats'], 1000)
        self.assertEqual(res['feeEstimate'], {
            'baseFee': settings.BASE_FEE_MSAT,
            'proportionalMillionths': settings.FEE_PROPORTIONAL_MILLIONTHS,
            'estimatedFeeSats': 2,
            'estimatedDurationSeconds': settings.FEE_DURATION_SECONDS,
            'feePercentage': '0.20'})
        # fee rounded up to the sat
        res = self._call('ldk_estimate_fee', {'amountSats': 1})
        self.assertEqual(res['feeEstimate']['estimatedFeeSats'], 2)
        self.assertEqual(res['feeEstimate']['feePercentage'], '100.10')
        # target node is accepted and ignored
        res = self._call('ldk_estimate_fee', {
            'amountSats': 1000, 'targetNode': fix.REMOTE_PUBKEY})
        self.assertEqual(res['feeEstimate']['estimatedFeeSats'], 2)
        # error case
        self._fail('ldk_estimate_fee', {'amountSats': 0})

    def test_backup_state(self):
        self._open_channel()
        res = self._call('ldk_backup_state', {'action': 'backup'})
        self.assertEqual(res['action'], 'backup')
        self.assertEqual(res['timestamp'], '2023-11-14T22:13:20+00:00')
        self.assertGreater(res['backupSize'], 0)
        blob = res['backupData']
        self._open_channel()
        res = self._call('ldk_backup_state', {
            'action': 'restore', 'backupData': blob})
        self.assertEqual(res, {'success': True, 'action': 'restore',
                               'message': 'State restored successfully'})
        self.assertEqual(len(self.ledger.list_channels()), 1)
        # error cases
        self.assertEqual(
            self._fail('ldk_backup_state', {'action': 'restore'}),
            "Parameter 'backupData' is necessary")
        self.assertTrue(self._fail('ldk_backup_state', {
            'action': 'restore', 'backupData': 'garbage'}).startswith(
                'Failed to restore state: '))
        self.assertEqual(len(self.ledger.list_channels()), 1)

    def test_generate_mnemonic(self):
        res = self._call('ldk_generate_mnemonic')
        self.assertEqual(res['wordCount'], 24)
        self.assertEqual(len(res['seedHex']), 128)
        res = self._call('ldk_generate_mnemonic', {'strength': 128})
        self.assertEqual(len(res['mnemonic'].split()), 12)

    def test_derive_address(self):
        # node network by default
        res = self._call('ldk_derive_address', {'mnemonic': fix.MNEMONIC})
        self.assertEqual(res['network'], 'testnet')
        self.assertEqual(res['derivationPath'], "m/84'/1'/0'/0/0")
        self.assertTrue(res['address'].startswith('tb1q'))
        # requested network
        res = self._call('ldk_derive_address', {
            'mnemonic': fix.MNEMONIC, 'network': 'mainnet'})
        self.assertEqual(res['address'], fix.BIP84_MAINNET['address'])
        self.assertEqual(res['publicKey'], fix.REMOTE_PUBKEY)
        res = self._call('ldk_derive_address', {
            'mnemonic': fix.MNEMONIC, 'network': 'mainnet',
            'addressIndex': 1})
        self.assertEqual(res['address'], fix.BIP84_MAINNET_SECOND['address'])
        # error cases
        self.assertEqual(
            self._fail('ldk_derive_address', {'mnemonic': 'abandon'}),
            'Invalid mnemonic')
        self._fail('ldk_derive_address', {
            'mnemonic': fix.MNEMONIC, 'accountIndex': -1})


def reset_mocks(params):
    for _key, value in params.items():
        try:
            if type(value.call_count) is int:
                value.reset_mock()
        except:
            pass
