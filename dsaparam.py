#!/usr/bin/env python
# -*- coding: utf-8 -*-
import argparse
import collections
import enum
import os
import sys

import yaml

import c_emitter
from dsa_types import CryptoProviderError, FORMAT_DER, FORMAT_PEM, KNOWN_FORMATS
import text_renderer
import utils

__version__ = '1.0'

PROG = 'dsaparam'

# OPENSSL_DSA_MAX_MODULUS_BITS
MAX_MODULUS_BITS = 10000


class DsaParamError(Exception):
    """
    Base of every error that ends a run. `diagnostics` holds the crypto library's own report,
    which is printed along with `message`.
    """
    diagnostics_first = False

    def __init__(self, message, diagnostics=None):
        super(DsaParamError, self).__init__(message, diagnostics)
        self.message = message
        self.diagnostics = diagnostics

    def report_lines(self):
        """
        :rtype: list[str]
        """
        if not self.diagnostics:
            return [self.message]
        if self.diagnostics_first:
            return [self.diagnostics, self.message]
        return [self.message, self.diagnostics]

    def __str__(self):
        return '\n'.join(self.report_lines())


class UsageError(DsaParamError):
    pass


class StreamError(DsaParamError):
    pass


class WriteError(StreamError):
    pass


class SetupError(DsaParamError):
    diagnostics_first = True


class GenerationError(DsaParamError):
    diagnostics_first = True


class LoadError(DsaParamError):
    pass


class KeygenError(DsaParamError):
    pass


class AllocationError(DsaParamError):
    pass


class Configuration(collections.namedtuple('Configuration', [
        'infile', 'outfile', 'input_format', 'output_format', 'numbits', 'text', 'c_code',
        'noout', 'genkey', 'verbose', 'engine', 'rand_files', 'writerand'])):
    __slots__ = ()

    @property
    def private(self):
        """
        :rtype: bool
        :return: whether private key material may be written to the output
        """
        return self.genkey

    @classmethod
    def from_args(cls, args):
        """
        :type args: argparse.Namespace
        :rtype: Configuration
        """
        rand_files = [f for f in (args.rand or '').split(os.pathsep) if f]
        return cls(infile=args.infile, outfile=args.outfile,
                   input_format=args.inform, output_format=args.outform,
                   numbits=args.numbits or 0, text=args.text, c_code=args.c_code,
                   noout=args.noout, genkey=args.genkey, verbose=args.verbose,
                   engine=args.engine, rand_files=rand_files, writerand=args.writerand)


class ProgressStage(enum.IntEnum):
    CANDIDATE = 0
    TEST_PASSED = 1
    PRIME_FOUND = 2
    STAGE_DONE = 3


class ProgressReporter(object):
    """
    Progress callback handed to the crypto provider during parameter generation.
    """
    SYMBOLS = {
        ProgressStage.CANDIDATE: '.',
        ProgressStage.TEST_PASSED: '+',
        ProgressStage.PRIME_FOUND: '*',
        ProgressStage.STAGE_DONE: '\n',
    }
    UNKNOWN_SYMBOL = '?'

    def __init__(self, verbose, stream=None):
        """
        :type verbose: bool
        :type stream: io.TextIOBase | None
        :param stream: where to print progress, stderr by default
        """
        self.verbose = verbose
        self._stream = stream

    @classmethod
    def symbol_for(cls, stage):
        """
        :type stage: int
        :rtype: str
        """
        try:
            return cls.SYMBOLS[ProgressStage(stage)]
        except ValueError:
            return cls.UNKNOWN_SYMBOL

    def on_progress(self, stage):
        """
        :type stage: int
        :rtype: bool
        :return: always True, generation is never interrupted
        """
        if not self.verbose:
            return True

        stream = self._stream or sys.stderr
        stream.write(self.symbol_for(stage))
        stream.flush()
        return True

    def __call__(self, stage, n=0):
        return self.on_progress(stage)


GeneratePlan = collections.namedtuple('GeneratePlan', ['bits'])
LoadPlan = collections.namedtuple('LoadPlan', ['stream', 'input_format'])


def plan_acquisition(config, input_stream):
    """
    :type config: Configuration
    :type input_stream: io.BufferedIOBase
    :rtype: GeneratePlan | LoadPlan
    """
    if config.numbits > 0:
        return GeneratePlan(config.numbits)
    return LoadPlan(input_stream, config.input_format)


class ParameterAcquirer(object):
    def __init__(self, provider, reporter, err=None):
        """
        :type reporter: ProgressReporter
        :type err: io.TextIOBase | None
        """
        self._provider = provider
        self._reporter = reporter
        self._err = err

    def acquire(self, plan):
        """
        :type plan: GeneratePlan | LoadPlan
        :raise: GenerationError | LoadError | StreamError
        :rtype: dsa_types.DomainParameters
        """
        if isinstance(plan, GeneratePlan):
            return self._generate(plan.bits)
        if isinstance(plan, LoadPlan):
            return self._load(plan.stream, plan.input_format)
        raise TypeError('unknown acquisition plan {!r}'.format(plan))

    def _generate(self, bits):
        err = self._err or sys.stderr
        if bits > MAX_MODULUS_BITS:
            print('Warning: It is not recommended to use more than {} bit for DSA keys.\n'
                  '         Your key size is {}! Larger key size may behave not as expected.'
                  .format(MAX_MODULUS_BITS, bits), file=err)

        if self._reporter.verbose:
            print('Generating DSA parameters, {} bit long prime'.format(bits), file=err)
            print('This could take some time', file=err)

        try:
            return self._provider.generate_params(bits, self._reporter)
        except CryptoProviderError as e:
            raise GenerationError('Error, DSA key generation failed', str(e))

    def _load(self, stream, input_format):
        try:
            data = stream.read()
        except OSError as e:
            raise StreamError('unable to read DSA parameters', str(e))

        try:
            params = self._provider.decode_params(data, input_format)
        except CryptoProviderError as e:
            raise LoadError('unable to load DSA parameters', str(e))

        if params is None:
            raise LoadError('unable to load DSA parameters')
        return params


def derive_key(provider, params):
    """
    :type params: dsa_types.DomainParameters
    :raise: KeygenError
    :rtype: dsa_types.KeyPair
    """
    try:
        return provider.derive_keypair(params)
    except CryptoProviderError as e:
        raise KeygenError('unable to generate key', str(e))


class OutputWriter(object):
    def __init__(self, provider, out, output_format):
        """
        :type out: io.BufferedIOBase
        :type output_format: str
        """
        self._provider = provider
        self._out = out
        self.output_format = output_format

    @staticmethod
    def suppress_params(config):
        """
        A DER stream cannot carry both parameters and a key, so only the key goes out.

        :type config: Configuration
        :rtype: bool
        """
        return config.noout or (config.output_format == FORMAT_DER and config.genkey)

    def write_params(self, params):
        try:
            data = self._provider.encode_params(params, self.output_format)
        except CryptoProviderError as e:
            raise WriteError('unable to write DSA parameters', str(e))
        self._write(data, 'unable to write DSA parameters')

    def write_private_key(self, keypair):
        try:
            data = self._provider.encode_private_key(keypair, self.output_format)
        except CryptoProviderError as e:
            raise WriteError('unable to write private key', str(e))
        self._write(data, 'unable to write private key')

    def write_text(self, text):
        self._write(text.encode('utf-8'), 'unable to write text')

    def write_c_code(self, params):
        self._write(c_emitter.SourceCodeEmitter().render(params).encode('ascii'), 'unable to write C code')

    def _write(self, data, message):
        try:
            written = self._out.write(data)
        except OSError as e:
            raise WriteError(message, str(e))
        if data and not written:
            raise WriteError(message)


class ArgumentParser(argparse.ArgumentParser):
    def error(self, message):
        raise UsageError(message)


def parse_format(text):
    value = text.upper()
    if value not in KNOWN_FORMATS:
        raise argparse.ArgumentTypeError('invalid format "{}", expected DER or PEM'.format(text))
    return value


def parse_numbits(text):
    try:
        value = int(text)
    except ValueError:
        raise argparse.ArgumentTypeError('non-integer number of bits "{}"'.format(text))
    if value < 0:
        raise argparse.ArgumentTypeError('number of bits cannot be negative')
    return value


def build_parser():
    parser = ArgumentParser(prog=PROG, description='Generates, loads and converts DSA parameters')
    parser.add_argument('--version', action='version', version='DSA Parameters Tool {}'.format(__version__))
    parser.add_argument('-c', '--config',
                        help='a YAML file providing defaults for any of the options below, keyed by '
                             'option name without dashes (e.g. in: params.pem, outform: DER)')
    parser.add_argument('-engine', '--engine',
                        help='use engine ENGINE, possibly a hardware device')

    group = parser.add_argument_group('input')
    group.add_argument('-in', '--in', dest='infile', default=utils.STD_IO_MARK,
                       help='input file, default "%(default)s" means stdin')
    group.add_argument('-inform', '--inform', type=parse_format, default=FORMAT_PEM,
                       help='input format - DER or PEM (default: %(default)s)')

    group = parser.add_argument_group('output')
    group.add_argument('-out', '--out', dest='outfile', default=utils.STD_IO_MARK,
                       help='output file, default "%(default)s" means stdout')
    group.add_argument('-outform', '--outform', type=parse_format, default=FORMAT_PEM,
                       help='output format - DER or PEM (default: %(default)s)')
    group.add_argument('-text', '--text', action='store_true', help='print as text')
    group.add_argument('-C', '--C', dest='c_code', action='store_true', help='output C code')
    group.add_argument('-noout', '--noout', action='store_true', help='no parameter output')
    group.add_argument('-verbose', '--verbose', action='store_true', help='verbose output')
    group.add_argument('-genkey', '--genkey', action='store_true', help='generate a DSA key')

    group = parser.add_argument_group('random state')
    group.add_argument('-rand', '--rand',
                       help='load the given file(s) into the random number generator, separated '
                            'by "{}"'.format(os.pathsep))
    group.add_argument('-writerand', '--writerand',
                       help='write random data to the specified file upon exit')

    parser.add_argument('numbits', nargs='?', type=parse_numbits, default=0,
                        help='number of bits if generating parameters (optional)')
    return parser


# option names accepted in config files that differ from their argparse destinations
CONFIG_OPTION_DESTS = {'in': 'infile', 'out': 'outfile', 'C': 'c_code'}
CONFIG_FLAGS = {'text', 'c_code', 'noout', 'genkey', 'verbose'}


def load_config_defaults(config_path, known_options):
    """
    Reads option defaults from a YAML mapping. Keys are option names without dashes
    (`in`, `outform`, `C`, ...) or their destinations (`infile`, `c_code`, ...). Flags take
    booleans; every other value is handed to argparse as a string so it goes through the
    same validation as a command-line argument.

    :type config_path: str
    :type known_options: collections.Iterable[str]
    :raise: UsageError
    :rtype: dict[str, object]
    """
    try:
        with open(config_path, 'r', encoding='utf-8') as f:
            loaded = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise UsageError('cannot read config file "{}"'.format(config_path), str(e))

    if not isinstance(loaded, dict):
        raise UsageError('config file "{}" must contain a mapping'.format(config_path))

    defaults = {}
    unknown = []
    for key, value in loaded.items():
        dest = CONFIG_OPTION_DESTS.get(key, key)
        if dest not in known_options or dest == 'config':
            unknown.append(str(key))
            continue

        if dest in CONFIG_FLAGS:
            if not isinstance(value, bool):
                raise UsageError('option "{}" in config file must be true or false'.format(key))
        elif value is None:
            continue
        elif isinstance(value, bool) or not isinstance(value, (str, int)):
            raise UsageError('option "{}" in config file must be a single value'.format(key))
        else:
            value = str(value)
        defaults[dest] = value

    if unknown:
        raise UsageError('unknown option(s) in config file: {}'.format(', '.join(sorted(unknown))))
    return defaults


def parse_configuration(parser, argv=None):
    """
    :type parser: argparse.ArgumentParser
    :type argv: list[str] | None
    :raise: UsageError
    :rtype: Configuration
    """
    args = parser.parse_args(argv)
    if args.config:
        parser.set_defaults(**load_config_defaults(args.config, vars(args)))
        args = parser.parse_args(argv)
    return Configuration.from_args(args)


def setup_provider(config, provider):
    """
    :type config: Configuration
    :raise: SetupError
    """
    try:
        if config.engine:
            provider.use_engine(config.engine)
        if config.rand_files:
            provider.load_rand(config.rand_files)
    except CryptoProviderError as e:
        raise SetupError('unable to set up the crypto library', str(e))


def run(config, provider, stdin=None, stdout=None, stderr=None):
    """
    :type config: Configuration
    :param provider: crypto provider, see dsa_provider.M2CryptoProvider
    :raise: DsaParamError
    """
    err = stderr or sys.stderr
    setup_provider(config, provider)

    reporter = ProgressReporter(config.verbose, err)
    acquirer = ParameterAcquirer(provider, reporter, err)

    try:
        with utils.smart_open(config.infile, mode='rb', std_io=stdin) as in_stream, \
                utils.smart_open(config.outfile, mode='wb', private=config.private,
                                 std_io=stdout) as out:
            params = acquirer.acquire(plan_acquisition(config, in_stream))
            writer = OutputWriter(provider, out, config.output_format)

            if config.text:
                writer.write_text(text_renderer.render_params(params))
            if config.c_code:
                writer.write_c_code(params)
            if not writer.suppress_params(config):
                writer.write_params(params)

            if config.genkey:
                keypair = derive_key(provider, params)
                if not config.private:
                    raise KeygenError('refusing to write a private key to an output not opened as private')
                writer.write_private_key(keypair)
    except OSError as e:
        raise StreamError(str(e))
    except MemoryError:
        raise AllocationError('out of memory')

    if config.writerand:
        try:
            provider.save_rand(config.writerand)
        except CryptoProviderError as e:
            raise SetupError('unable to write random state', str(e))


def main(argv=None, provider=None, stdin=None, stdout=None, stderr=None):
    """
    :type argv: list[str] | None
    :rtype: int
    :return: process exit code, 0 on success and 1 on any failure
    """
    err = stderr or sys.stderr
    parser = build_parser()
    try:
        config = parse_configuration(parser, argv)
    except UsageError as e:
        for line in e.report_lines():
            print('{}: {}'.format(PROG, line), file=err)
        print('{}: Use --help for summary.'.format(PROG), file=err)
        return 1
    except SystemExit as e:
        return e.code or 0

    if provider is None:
        from dsa_provider import M2CryptoProvider
        provider = M2CryptoProvider()

    try:
        run(config, provider, stdin=stdin, stdout=stdout, stderr=err)
    except DsaParamError as e:
        for line in e.report_lines():
            print(line, file=err)
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
