# -*- coding: utf-8 -*-
from contextlib import contextmanager

import M2Crypto
import M2Crypto.BIO
import M2Crypto.DSA
import M2Crypto.Engine
import M2Crypto.Err
import M2Crypto.Rand

from dsa_types import CryptoProviderError, DomainParameters, KeyPair, FORMAT_DER, FORMAT_PEM
import utils

PARAMS_PEM_LABEL = 'DSA PARAMETERS'
PRIVATE_KEY_PEM_LABEL = 'DSA PRIVATE KEY'


class M2CryptoProvider(object):
    """
    DSA parameter generation, key derivation and DER/PEM codecs on top of M2Crypto (OpenSSL).
    """

    def generate_params(self, bits, callback):
        """
        :type bits: int
        :param bits: the length of the prime to be generated in bits
        :type callback: (int, int) -> object
        :param callback: progress callback, called as callback(stage, n) during generation
        :raise: CryptoProviderError
        :rtype: DomainParameters
        """
        try:
            dsa = M2Crypto.DSA.gen_params(bits, callback=callback)
        except M2Crypto.DSA.DSAError as e:
            raise CryptoProviderError(self._diagnostics(e))
        return self._wrap_params(dsa)

    def decode_params(self, data, fmt):
        """
        :type data: bytes
        :type fmt: str
        :param fmt: FORMAT_DER or FORMAT_PEM
        :raise: CryptoProviderError
        :rtype: DomainParameters
        """
        if fmt == FORMAT_DER:
            data = utils.pem_armor(data, PARAMS_PEM_LABEL)

        with self._open_memory_bio(data) as bio:
            try:
                dsa = M2Crypto.DSA.load_params_bio(bio)
            except (M2Crypto.DSA.DSAError, ValueError) as e:
                raise CryptoProviderError(self._diagnostics(e))

        if dsa is None:
            raise CryptoProviderError(self._diagnostics())
        return self._wrap_params(dsa)

    def encode_params(self, params, fmt):
        """
        :type params: DomainParameters
        :type fmt: str
        :raise: CryptoProviderError
        :rtype: bytes
        """
        with self._open_memory_bio() as bio:
            if not params.handle.save_params_bio(bio):
                raise CryptoProviderError(self._diagnostics())
            pem = bio.read()

        if fmt == FORMAT_PEM:
            return pem
        try:
            return utils.pem_dearmor(pem, PARAMS_PEM_LABEL)
        except ValueError as e:
            raise CryptoProviderError(str(e))

    def derive_keypair(self, params):
        """
        Generates a key in a fresh DSA context built from `params`; `params` is left untouched.

        :type params: DomainParameters
        :raise: CryptoProviderError
        :rtype: KeyPair
        """
        context = self.decode_params(self.encode_params(params, FORMAT_PEM), FORMAT_PEM).handle
        try:
            context.gen_key()
        except M2Crypto.DSA.DSAError as e:
            raise CryptoProviderError(self._diagnostics(e))

        return KeyPair(params,
                       private_exponent=self.get_component(context, 'priv'),
                       public_value=self.get_component(context, 'pub'),
                       handle=context)

    def encode_private_key(self, keypair, fmt):
        """
        :type keypair: KeyPair
        :type fmt: str
        :raise: CryptoProviderError
        :rtype: bytes
        """
        with self._open_memory_bio() as bio:
            if not keypair.handle.save_key_bio(bio, cipher=None):
                raise CryptoProviderError(self._diagnostics())
            pem = bio.read()

        if fmt == FORMAT_PEM:
            return pem
        try:
            return utils.pem_dearmor(pem, PRIVATE_KEY_PEM_LABEL)
        except ValueError as e:
            raise CryptoProviderError(str(e))

    @staticmethod
    def get_component(handle, name):
        """
        :type handle: M2Crypto.DSA.DSA
        :type name: str
        :param name: one of p, q, g, pub, priv
        :rtype: int
        """
        # DSA.__getattr__ refuses to read p/q/g until a key is present
        getter = getattr(M2Crypto.m2, 'dsa_get_{}'.format(name))
        return utils.mpint2int(getter(handle._ptr()))

    def use_engine(self, engine_id):
        """
        :type engine_id: str
        :raise: CryptoProviderError
        :rtype: M2Crypto.Engine.Engine
        """
        try:
            engine = M2Crypto.Engine.Engine(engine_id)
            if not engine.init() or not engine.set_default():
                raise CryptoProviderError(self._diagnostics())
        except (M2Crypto.Engine.EngineError, ValueError) as e:
            raise CryptoProviderError(self._diagnostics(e))
        return engine

    def load_rand(self, file_paths):
        """
        :type file_paths: list[str]
        :raise: CryptoProviderError
        :rtype: int
        :return: total number of bytes mixed into the random pool
        """
        total = 0
        for file_path in file_paths:
            loaded = M2Crypto.Rand.load_file(file_path, -1)
            if loaded <= 0:
                raise CryptoProviderError('cannot load random state from "{}"'.format(file_path))
            total += loaded
        return total

    def save_rand(self, file_path):
        """
        :type file_path: str
        :raise: CryptoProviderError
        """
        if M2Crypto.Rand.save_file(file_path) <= 0:
            raise CryptoProviderError('cannot write random state to "{}"'.format(file_path))

    def _wrap_params(self, dsa):
        return DomainParameters(self.get_component(dsa, 'p'),
                                self.get_component(dsa, 'q'),
                                self.get_component(dsa, 'g'),
                                handle=dsa)

    @staticmethod
    def _diagnostics(error=None):
        """
        :type error: Exception | None
        :rtype: str
        """
        message = str(error) if error is not None else ''
        return message or M2Crypto.Err.get_error() or 'unknown OpenSSL error'

    @staticmethod
    @contextmanager
    def _open_memory_bio(data=None):
        bio = M2Crypto.BIO.MemoryBuffer(data)
        try:
            yield bio
        finally:
            bio.close()
