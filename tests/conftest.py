# -*- coding: utf-8 -*-
import os
import re
import sys

import pytest

# Add the project root to the Python path to allow imports of the flat modules
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from dsa_types import CryptoProviderError, DomainParameters, KeyPair, FORMAT_DER, FORMAT_PEM
import utils

# 1024/160 sized sample values, only their sizes matter to the formatting code
SAMPLE_P = int(
    'e0a67598cd1b763bc98c8abb333e5dda0cd3aa0e5e1fb5ba8a7b4eabc10ba338'
    'fae06dd4b90fda70d7cf0cb0c638be3341bec0af8a7330a3307ded2299a0ee60'
    '6df035177a239c34a912c202aa5f83b9c4a7cf0235b5316bfc6efb9a24841125'
    '8b30b839af172440f32563056cb67a861158ddd90e6a894c72a5bbef9e286c6b', 16)
SAMPLE_Q = int('e950511eab424b9a19a2aeb4e159b7844c589c4f', 16)
SAMPLE_G = int(
    'd29d5121b0423c2769ab21843e5a3240ff19cacc792264e3bb6be4f78edd1b15'
    'c4dff7f1d905431f0ab16790e1f773b5ce01c804e509066a9919f5195f4abc58'
    '189fd9ff987389cb5bedf21b4dab4f8b76a055ffe2770988fe2ec2de11ad9221'
    '9f0b351869ac24da3d7ba87011a701ce8ee7bfe49486ed4527b7186ca4610a75', 16)

PARAMS_MARKER = b'FAKE-DSA-PARAMS:'
KEY_MARKER = b'FAKE-DSA-KEY:'
ARRAY_RE = re.compile(r'static unsigned char (dsa[pqg])_(\d+)\[(\d+)\] = \{([^}]*)\};')


class FakeProvider(object):
    """
    Stand-in for the M2Crypto provider: produces structurally valid parameters instantly and
    uses a readable "DER" so tests can inspect what was written.
    """

    def __init__(self, stages=(0, 0, 1, 2, 0, 1, 2, 3), fail=()):
        self.stages = stages
        self.fail = set(fail)
        self.calls = []

    def _check(self, operation):
        self.calls.append(operation)
        if operation in self.fail:
            raise CryptoProviderError('error:fake:{} failed'.format(operation))

    def generate_params(self, bits, callback):
        self._check('generate_params')
        for stage in self.stages:
            callback(stage, 0)
        p = (1 << (bits - 1)) | 1
        return DomainParameters(p, SAMPLE_Q, SAMPLE_G)

    def decode_params(self, data, fmt):
        self._check('decode_params')
        if fmt == FORMAT_PEM:
            try:
                data = utils.pem_dearmor(data, 'DSA PARAMETERS')
            except ValueError as e:
                raise CryptoProviderError(str(e))
        if not data.startswith(PARAMS_MARKER):
            raise CryptoProviderError('error:fake:bad parameters encoding')
        p, q, g = (int(v, 16) for v in data[len(PARAMS_MARKER):].split(b':'))
        return DomainParameters(p, q, g)

    def encode_params(self, params, fmt):
        self._check('encode_params')
        der = PARAMS_MARKER + b':'.join(b'%x' % v for v in (params.p, params.q, params.g))
        return der if fmt == FORMAT_DER else utils.pem_armor(der, 'DSA PARAMETERS')

    def derive_keypair(self, params):
        self._check('derive_keypair')
        return KeyPair(params, private_exponent=0x1234, public_value=pow(params.g, 0x1234, params.p))

    def encode_private_key(self, keypair, fmt):
        self._check('encode_private_key')
        der = KEY_MARKER + b'%x' % keypair.private_exponent
        return der if fmt == FORMAT_DER else utils.pem_armor(der, 'DSA PRIVATE KEY')

    def use_engine(self, engine_id):
        self._check('use_engine')

    def load_rand(self, file_paths):
        self._check('load_rand')
        return len(file_paths)

    def save_rand(self, file_path):
        self._check('save_rand')


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def sample_params():
    return DomainParameters(SAMPLE_P, SAMPLE_Q, SAMPLE_G)


@pytest.fixture
def params_pem(tmp_path, provider, sample_params):
    path = tmp_path / 'params.pem'
    path.write_bytes(provider.encode_params(sample_params, FORMAT_PEM))
    provider.calls.clear()
    return path


def make_config(**overrides):
    from dsaparam import Configuration

    values = dict(infile='-', outfile='-', input_format=FORMAT_PEM, output_format=FORMAT_PEM,
                  numbits=0, text=False, c_code=False, noout=False, genkey=False, verbose=False,
                  engine=None, rand_files=[], writerand=None)
    values.update(overrides)
    return Configuration(**values)


def parse_arrays(code):
    """
    Reads back the byte arrays of generated C code as {name: (bits, value)}.
    """
    arrays = {}
    for var, bits, length, body in ARRAY_RE.findall(code):
        data = bytes(int(h, 16) for h in re.findall(r'0x([0-9A-F]{2})', body))
        assert len(data) == int(length)
        arrays[var] = (int(bits), int.from_bytes(data, 'big'))
    return arrays
