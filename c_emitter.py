# -*- coding: utf-8 -*-
import utils

BYTES_PER_LINE = 10
ELEMENT_INDENT = ' ' * 8
BODY_INDENT = ' ' * 4


class SourceCodeEmitter(object):
    """
    Renders DSA domain parameters as a C function returning a freshly allocated `DSA *`.

    The layout is consumed by tooling that parses the generated code, so it must stay stable:
    one `static unsigned char` array per component named after the bit length of `p`, followed
    by a constructor that frees everything and returns NULL on any failure.
    """
    VARIABLES = (('p', 'dsap'), ('q', 'dsaq'), ('g', 'dsag'))

    def render(self, params):
        """
        :type params: dsa_types.DomainParameters
        :rtype: str
        """
        bits = params.bits
        parts = ['static DSA *get_dsa{}(void)\n{{\n'.format(bits)]
        for name, var in self.VARIABLES:
            parts.append(self.render_variable(getattr(params, name), name, var, bits))
        parts.append(self._render_constructor(bits))
        return ''.join(parts)

    def emit(self, out, params):
        """
        :type out: io.BufferedIOBase
        :type params: dsa_types.DomainParameters
        :raise: OSError
        """
        out.write(self.render(params).encode('ascii'))

    @staticmethod
    def render_variable(value, name, var, bits):
        """
        :type value: int
        :type name: str
        :param name: component name used in the comment line
        :type var: str
        :param var: array name prefix, the bit length is appended to it
        :type bits: int
        :rtype: str
        """
        data = utils.int2bytes(value)
        lines = ['{}/* {}: {} decimal digits */\n'.format(BODY_INDENT, name, len(str(value))),
                 '{}static unsigned char {}_{}[{}] = {{'.format(BODY_INDENT, var, bits, len(data))]
        for i, byte in enumerate(data):
            lines.append('\n' + ELEMENT_INDENT if i % BYTES_PER_LINE == 0 else ' ')
            lines.append('0x{:02X}'.format(byte))
            if i < len(data) - 1:
                lines.append(',')
        lines.append('\n{}}};\n'.format(BODY_INDENT))
        return ''.join(lines)

    @staticmethod
    def _render_constructor(bits):
        return (
            '    DSA *dsa = DSA_new();\n'
            '    BIGNUM *p, *q, *g;\n'
            '\n'
            '    if (dsa == NULL)\n'
            '        return NULL;\n'
            '    if (!DSA_set0_pqg(dsa, p = BN_bin2bn(dsap_{0}, sizeof(dsap_{0}), NULL),\n'
            '                           q = BN_bin2bn(dsaq_{0}, sizeof(dsaq_{0}), NULL),\n'
            '                           g = BN_bin2bn(dsag_{0}, sizeof(dsag_{0}), NULL))) {{\n'
            '        DSA_free(dsa);\n'
            '        BN_free(p);\n'
            '        BN_free(q);\n'
            '        BN_free(g);\n'
            '        return NULL;\n'
            '    }}\n'
            '    return dsa;\n'
            '}}\n'
        ).format(bits)


def emit(out, params):
    """
    :type out: io.BufferedIOBase
    :type params: dsa_types.DomainParameters
    """
    SourceCodeEmitter().emit(out, params)
