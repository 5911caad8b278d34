# -*- coding: utf-8 -*-
FORMAT_DER = 'DER'
FORMAT_PEM = 'PEM'
KNOWN_FORMATS = (FORMAT_DER, FORMAT_PEM)


class CryptoProviderError(Exception):
    """
    Raised by a crypto provider for any failure of the underlying library; the message holds its
    diagnostics verbatim.
    """
    pass


class DomainParameters(object):
    """
    A DSA group: prime modulus `p`, prime subgroup order `q` and generator `g`.

    `handle` is whatever object the crypto provider needs to encode the parameters or derive
    keys from them; it is opaque to everything else.
    """

    def __init__(self, p, q, g, handle=None):
        """
        :type p: int
        :type q: int
        :type g: int
        """
        self._p = p
        self._q = q
        self._g = g
        self.handle = handle

    @property
    def p(self):
        return self._p

    @property
    def q(self):
        return self._q

    @property
    def g(self):
        return self._g

    @property
    def bits(self):
        """
        :rtype: int
        :return: bit length of the modulus
        """
        return self._p.bit_length()

    def __eq__(self, other):
        if not isinstance(other, DomainParameters):
            return NotImplemented
        return (self._p, self._q, self._g) == (other.p, other.q, other.g)

    def __hash__(self):
        return hash((self._p, self._q, self._g))

    def __repr__(self):
        return '<DomainParameters {} bit>'.format(self.bits)


class KeyPair(object):
    def __init__(self, params, private_exponent, public_value, handle=None):
        """
        :type params: DomainParameters
        :type private_exponent: int
        :type public_value: int
        """
        self.params = params
        self.private_exponent = private_exponent
        self.public_value = public_value
        self.handle = handle

    def __repr__(self):
        return '<KeyPair {} bit>'.format(self.params.bits)
