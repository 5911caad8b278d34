# -*- coding: utf-8 -*-
BYTES_PER_LINE = 15
VALUE_INDENT = 4
# values that fit an unsigned long are printed inline in decimal and hex
INLINE_LIMIT = 1 << 64


def render_number(label, value, indent=0):
    """
    :type label: str
    :type value: int
    :type indent: int
    :rtype: str
    """
    prefix = ' ' * indent + label
    if value == 0:
        return '{} 0\n'.format(prefix)
    if value < INLINE_LIMIT:
        return '{} {} (0x{:x})\n'.format(prefix, value, value)

    data = value.to_bytes((value.bit_length() + 7) // 8, 'big')
    if data[0] & 0x80:
        data = b'\x00' + data

    lines = [prefix]
    for start in range(0, len(data), BYTES_PER_LINE):
        chunk = ':'.join('{:02x}'.format(b) for b in data[start:start + BYTES_PER_LINE])
        if start + BYTES_PER_LINE < len(data):
            chunk += ':'
        lines.append(' ' * (indent + VALUE_INDENT) + chunk)
    return '\n'.join(lines) + '\n'


def render_params(params):
    """
    :type params: dsa_types.DomainParameters
    :rtype: str
    :return: the parameters in the layout of `openssl dsaparam -text`
    """
    return ''.join([
        'DSA-Parameters: ({} bit)\n'.format(params.bits),
        render_number('P:   ', params.p),
        render_number('Q:   ', params.q),
        render_number('G:   ', params.g),
    ])
