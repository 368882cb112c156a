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

""" Security utils module """

from marshal import dumps as mdumps, loads as mloads
from os import urandom

from .. import settings as sett
from ..errors import Err


def encrypt_blob(password, clear_data):
    """
    Encrypts data with a key derived from password and a fresh salt.
    Returns the encrypted data and the serialized scrypt parameters
    """
    params = ScryptParams(urandom(sett.SALT_LEN))
    derived_key = Crypter.gen_derived_key(password, params)
    return Crypter.crypt(clear_data, derived_key), params.serialize()


def decrypt_blob(password, encrypted_data, serialized_params):
    """ Decrypts data previously encrypted by encrypt_blob """
    params = ScryptParams(b'')
    params.deserialize(serialized_params)
    derived_key = Crypter.gen_derived_key(password, params)
    return Crypter.decrypt(encrypted_data, derived_key)


class Crypter():
    """
    Crypter provides methods to encrypt and decrypt data and to generate
    a derived key from a password.
    """

    @staticmethod
    def gen_derived_key(password, scrypt_params):
        """ Derives a key from a password using Scrypt """
        # pylint: disable=import-outside-toplevel
        from pylibscrypt import scrypt
        return scrypt(
            bytes(password, 'utf-8'),
            scrypt_params.salt,
            N=scrypt_params.cost_factor,
            r=scrypt_params.block_size_factor,
            p=scrypt_params.parallelization_factor,
            olen=scrypt_params.key_len)

    @staticmethod
    def crypt(clear_data, derived_key):
        """
        Crypts data using Secretbox and the derived key.
        It returns the encrypted data (nonce included)
        """
        # pylint: disable=import-outside-toplevel
        from nacl.secret import SecretBox
        return bytes(SecretBox(derived_key).encrypt(clear_data))

    @staticmethod
    def decrypt(encrypted_data, derived_key):
        """
        Decrypts data using Secretbox and the derived key.
        Throws an error when password is wrong
        """
        # pylint: disable=import-outside-toplevel
        from nacl.exceptions import CryptoError
        from nacl.secret import SecretBox
        try:
            return SecretBox(derived_key).decrypt(encrypted_data)
        except CryptoError:
            Err().wrong_password()


class ScryptParams():
    """ Convenient class to store scrypt parameters """

    # pylint: disable=too-many-arguments
    def __init__(self, salt,
                 cost_factor=sett.SCRYPT_PARAMS['cost_factor'],
                 block_size_factor=sett.SCRYPT_PARAMS['block_size_factor'],
                 parallelization_factor=sett.SCRYPT_PARAMS
                 ['parallelization_factor'],
                 key_len=sett.SCRYPT_PARAMS['key_len']):
        self.salt = salt
        self.cost_factor = cost_factor
        self.block_size_factor = block_size_factor
        self.parallelization_factor = parallelization_factor
        self.key_len = key_len
        # pylint: enable=too-many-arguments

    def serialize(self):
        """ Serializes ScryptParams """
        return mdumps(
            [self.salt, self.cost_factor, self.block_size_factor,
             self.parallelization_factor, self.key_len])

    def deserialize(self, serialized):
        """ Deserializes ScryptParams """
        (self.salt, self.cost_factor, self.block_size_factor,
         self.parallelization_factor, self.key_len) = mloads(serialized)
