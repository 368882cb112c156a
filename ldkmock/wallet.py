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

""" Wallet service module: BIP39 mnemonics, BIP84 keys and addresses """

from hashlib import sha256
from logging import getLogger

from bip_utils import Base58ChecksumError, Base58Decoder, \
    Bech32ChecksumError, Bip39MnemonicGenerator, Bip39MnemonicValidator, \
    Bip39SeedGenerator, Bip39WordsNum, Bip44Changes, Bip84, Bip84Coins, \
    SegwitBech32Decoder, SegwitBech32Encoder
from coincurve import PublicKey

from . import settings as sett
from .errors import Err
from .utils.bitcoin import Enforcer, get_network, NETWORKS

LOGGER = getLogger(__name__)

BIP84_COINS = {
    'mainnet': Bip84Coins.BITCOIN,
    'testnet': Bip84Coins.BITCOIN_TESTNET,
    'regtest': Bip84Coins.BITCOIN_REGTEST,
}

WORDS_NUM = {
    128: Bip39WordsNum.WORDS_NUM_12,
    256: Bip39WordsNum.WORDS_NUM_24,
}

# base58check version bytes of P2PKH and P2SH addresses
LEGACY_VERSIONS = {
    0x00: 'mainnet', 0x05: 'mainnet',
    0x6f: 'testnet', 0xc4: 'testnet',
}

OP_CHECKMULTISIG = 0xae
MAX_MULTISIG_KEYS = 16


def _op_n(num):
    """ Small integer opcode OP_1..OP_16 """
    return 0x50 + num


class WalletService():
    """
    Deterministic key and address derivation for a network
    (coin type 0 on mainnet, 1 elsewhere).
    """

    def __init__(self, network=None):
        self.network = network or sett.NETWORK
        self.params = get_network(self.network)

    @staticmethod
    def generate_mnemonic(strength=sett.MNEMONIC_STRENGTH):
        """ Generates a mnemonic of 12 (strength 128) or 24 (256) words """
        if strength not in WORDS_NUM:
            Err().unsupported_value('strength', strength)
        return Bip39MnemonicGenerator().FromWordsNumber(
            WORDS_NUM[strength]).ToStr()

    @staticmethod
    def mnemonic_to_seed(mnemonic, passphrase=''):
        if not isinstance(mnemonic, str) or \
                not Bip39MnemonicValidator().IsValid(mnemonic):
            Err().invalid_mnemonic()
        return Bip39SeedGenerator(mnemonic).Generate(passphrase)

    def derive_address(self, seed, account=0, is_change=False, index=0):
        """
        Derives the P2WPKH address at m/84'/coin'/account'/change/index
        """
        Enforcer.check_value('account', account, Enforcer.BIP32_INDEX)
        Enforcer.check_value('index', index, Enforcer.BIP32_INDEX)
        change = Bip44Changes.CHAIN_INT if is_change else \
            Bip44Changes.CHAIN_EXT
        node = Bip84.FromSeed(seed, BIP84_COINS[self.network]).Purpose() \
            .Coin().Account(account).Change(change).AddressIndex(index)
        path = "m/84'/{}'/{}'/{}/{}".format(
            self.params['coin_type'], account, 1 if is_change else 0, index)
        return {
            'address': node.PublicKey().ToAddress(),
            'public_key': node.PublicKey().RawCompressed().ToHex(),
            'private_key': node.PrivateKey().Raw().ToHex(),
            'derivation_path': path,
        }

    def create_multisig_address(self, pubkeys, required):
        """ P2WSH address of a required-of-len(pubkeys) multisig script """
        if not pubkeys or len(pubkeys) > MAX_MULTISIG_KEYS:
            Err().invalid('pubkeys')
        if required < 1 or required > len(pubkeys):
            Err().invalid('required')
        script = bytes([_op_n(required)])
        for pubkey in pubkeys:
            try:
                key = bytes.fromhex(pubkey)
                PublicKey(key)
            except (TypeError, ValueError):
                Err().invalid('pubkeys')
            script += bytes([len(key)]) + key
        script += bytes([_op_n(len(pubkeys)), OP_CHECKMULTISIG])
        address = SegwitBech32Encoder.Encode(
            self.params['segwit_hrp'], 0, sha256(script).digest())
        return {
            'address': address,
            'redeem_script': script.hex(),
            'witness_script': script.hex(),
        }

    def validate_address(self, address):
        """ Whether address is a valid address of the wallet's network """
        return self.get_address_info(address)['network'] == self.network

    @staticmethod
    def get_address_info(address):
        """
        Classifies an address as p2wpkh, p2wsh, p2tr, legacy or invalid
        """
        info = {'type': 'invalid', 'network': 'unknown', 'is_valid': False}
        if not isinstance(address, str) or not address:
            return info
        for name, params in NETWORKS.items():
            try:
                version, program = SegwitBech32Decoder.Decode(
                    params['segwit_hrp'], address)
            except (Bech32ChecksumError, ValueError):
                continue
            if version == 0:
                info['type'] = 'p2wpkh' if len(program) == 20 else 'p2wsh'
            elif version == 1:
                info['type'] = 'p2tr'
            else:
                info['type'] = 'unknown'
            info.update({'network': name, 'is_valid': True})
            return info
        try:
            payload = Base58Decoder.CheckDecode(address)
        except (Base58ChecksumError, ValueError):
            return info
        if len(payload) != 21:
            return info
        info.update({
            'type': 'legacy',
            'network': LEGACY_VERSIONS.get(payload[0], 'unknown'),
            'is_valid': True})
        return info
