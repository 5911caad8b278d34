# -*- coding: utf-8 -*-
import base64
from contextlib import contextmanager
import os
import struct
import sys
import textwrap

STD_IO_MARK = '-'

PEM_LINE_LENGTH = 64
PRIVATE_FILE_MODE = 0o600


@contextmanager
def smart_open(file_path, mode='rb', private=False, std_io=None):
    """
    :type file_path: str | None
    :type mode: str
    :param mode: 'rb' or 'wb', streams are always binary
    :type private: bool
    :param private: create the output file readable and writable by its owner only
    :type std_io: io.BufferedIOBase | None
    :rtype: collections.Iterable[io.BufferedIOBase]
    """
    if not file_path or file_path == STD_IO_MARK:
        if std_io is not None:
            yield std_io
        elif 'r' in mode:
            yield sys.stdin.buffer
        else:
            yield sys.stdout.buffer
        return

    if 'r' in mode or not private:
        with open(file_path, mode) as f:
            yield f
        return

    fd = os.open(file_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, PRIVATE_FILE_MODE)
    with os.fdopen(fd, mode) as f:
        yield f


def pem_armor(der_bytes, label):
    """
    :type der_bytes: bytes
    :type label: str
    :param label: PEM type, such as `DSA PARAMETERS`
    :rtype: bytes
    """
    body = base64.b64encode(der_bytes).decode('ascii')
    lines = ['-----BEGIN {}-----'.format(label)]
    lines.extend(textwrap.wrap(body, PEM_LINE_LENGTH))
    lines.append('-----END {}-----'.format(label))
    return ('\n'.join(lines) + '\n').encode('ascii')


def pem_dearmor(pem_bytes, label):
    """
    :type pem_bytes: bytes
    :type label: str
    :raise: ValueError
    :rtype: bytes
    :return: the DER payload of the first `label` block
    """
    begin = '-----BEGIN {}-----'.format(label).encode('ascii')
    end = '-----END {}-----'.format(label).encode('ascii')

    start = pem_bytes.find(begin)
    if start < 0:
        raise ValueError('no "{}" block found'.format(label))
    stop = pem_bytes.find(end, start)
    if stop < 0:
        raise ValueError('unterminated "{}" block'.format(label))

    body = pem_bytes[start + len(begin):stop]
    return base64.b64decode(b''.join(body.split()))


def mpint2int(mpint):
    """
    :type mpint: bytes
    :param mpint: OpenSSL MPI format, a 4-bytes big-endian length followed by the magnitude
    :rtype: int
    """
    # Length value is a 4-bytes big-endian unsigned integer
    length = struct.unpack('>L', mpint[:4])[0]
    return int.from_bytes(mpint[4:4 + length], 'big')


def int2bytes(number):
    """
    :type number: int
    :rtype: bytes
    :return: minimal big-endian representation, a single zero byte for zero
    """
    return number.to_bytes(max(1, (number.bit_length() + 7) // 8), 'big')
