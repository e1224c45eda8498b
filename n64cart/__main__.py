#!/usr/bin/env python3

import argparse
import logging
import sys
from typing import Optional
import progressbar
from .debug import DebugPacketHandler
from .devices import list_flashcarts, open_flashcart
from .exceptions import CommunicationFailed, FlashcartException, TransportTimeout, UnsupportedOperation
from .flashcart import Flashcart
from .metadata import CicVariant, RomDatabase, SaveType
from .sixtyfourdrive import SixtyFourDrive


logger = logging.getLogger(__name__)


class EnumAction(argparse.Action):
    def __init__(self, **kwargs):
        type = kwargs.pop('type', None)
        if type is None:
            raise ValueError('No type was provided')
        if not hasattr(type, 'from_str'):
            raise TypeError('Provided type does not implement from_str')
        kwargs.setdefault('choices', tuple(type.choices()))
        kwargs['type'] = str.lower
        super(EnumAction, self).__init__(**kwargs)
        self.__enum = type

    def __call__(self, parser, namespace, values, option_string):
        setattr(namespace, self.dest, self.__enum.from_str(str(values)))


def download_rom_type(argument: str) -> tuple[int, str]:
    params = argument.split(',')
    if (len(params) < 1 or len(params) > 2):
        raise argparse.ArgumentTypeError('expected length[,file]')
    try:
        length = int(params[0], 0)
    except ValueError:
        raise argparse.ArgumentTypeError(f'invalid length: {params[0]}')
    file = params[1] if len(params) >= 2 else 'n64dump.z64'
    return (length, file)


def fix_rom_endianness(rom: bytes) -> bytes:
    data = bytearray(rom)
    pi_config = int.from_bytes(rom[0:4], byteorder='big')
    if (pi_config == 0x37804012):
        data[0::2], data[1::2] = data[1::2], data[0::2]
    elif (pi_config == 0x40123780):
        data[0::4], data[1::4], data[2::4], data[3::4] = data[3::4], data[2::4], data[1::4], data[0::4]
    return bytes(data)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog='n64cart', description='N64 flashcart control software')
    parser.add_argument('rom', nargs='?', help='upload ROM from specified file')
    parser.add_argument('-l', '--list', action='store_true', help='list available flashcarts')
    parser.add_argument('-d', '--device', metavar='serial', help='use the flashcart with specified serial number')
    parser.add_argument('--cic', type=CicVariant, action=EnumAction, help='set CIC variant (auto detects it from uploaded ROM)')
    parser.add_argument('--save-type', type=SaveType, action=EnumAction, help='set save type (auto detects it from uploaded ROM)')
    parser.add_argument('--romdb', metavar='file', help='use save type database from specified file instead of the bundled one')
    parser.add_argument('--save', metavar='file', help='upload save from specified file')
    parser.add_argument('--backup-save', metavar='file', help='download save and write it to specified file')
    parser.add_argument('--download-rom', metavar='length,[file]', type=download_rom_type, help='download ROM contents and write them to file')
    parser.add_argument('--version-info', action='store_true', help='print flashcart firmware version')
    parser.add_argument('--debug', action='store_true', help='run debug loop')
    parser.add_argument('--debug-dir', metavar='dir', default='.', help='directory for files received in debug loop')
    parser.add_argument('-v', '--verbose', action='store_true', help='print debug logs')
    return parser


def upload_rom(cart: Flashcart, rom_data: bytes) -> None:
    print(f'Uploading ROM ({len(rom_data) / (1 * 1024 * 1024):.2f} MiB)...')
    bar = progressbar.DataTransferBar(max_value=len(rom_data))
    cart.upload_rom(rom_data, progress=bar.update)
    bar.finish()


def download_rom(cart: Flashcart, length: int, file: str) -> None:
    print('Downloading ROM...')
    bar = progressbar.DataTransferBar(max_value=length)
    data = cart.download_rom(length, progress=lambda done: bar.update(min(done, length)))
    bar.finish()
    with open(file, 'wb') as f:
        f.write(data)
    print(f'Wrote {len(data)} bytes to {file}')


def resolve_cic(requested: Optional[CicVariant], rom_data: Optional[bytes]) -> tuple[CicVariant, bool]:
    if ((requested == None or requested == CicVariant.AUTO) and rom_data != None):
        return (CicVariant.from_rom(rom_data), True)
    return (requested if requested != None else CicVariant.AUTO, False)


def resolve_save_type(requested: Optional[SaveType], rom_data: Optional[bytes], database: Optional[RomDatabase]) -> tuple[SaveType, bool]:
    if ((requested == None or requested == SaveType.AUTO) and rom_data != None):
        return (SaveType.from_rom(rom_data, database), True)
    return (requested if requested != None else SaveType.AUTO, False)


def debug_loop(cart: Flashcart, output_dir: str) -> None:
    handler = DebugPacketHandler(output_dir=output_dir)
    print('\nDebug loop started, press Ctrl-C to exit\n')
    try:
        while (True):
            try:
                (datatype, data) = cart.read_debug_message()
            except TransportTimeout:
                continue
            except CommunicationFailed as e:
                logger.debug(f'Dropped debug packet: {e}')
                continue
            handler.handle(datatype, data)
    except KeyboardInterrupt:
        pass
    finally:
        print('\nDebug loop stopped\n')


def run(args: argparse.Namespace) -> None:
    if (args.list):
        carts = list_flashcarts()
        if (len(carts) == 0):
            print('No flashcarts found')
        for (info, model) in carts:
            print(f'{info.serial_number} | {model.label}')
        return

    database = RomDatabase.load(args.romdb) if args.romdb else None

    with open_flashcart(args.device) as cart:
        info = cart.info()
        print(f'\x1b[32mConnected to {cart.model.label} [{info.serial_number}]\x1b[0m')

        if (args.version_info):
            if (not isinstance(cart, SixtyFourDrive)):
                raise UnsupportedOperation(f'Version query is not supported by {cart.model.label}')
            (hardware, firmware, magic) = cart.version()
            print(f'Firmware version: [{firmware}], hardware: [0x{hardware:04X}], magic: [{magic}]')

        rom_data = None
        if (args.rom):
            with open(args.rom, 'rb') as f:
                rom_data = fix_rom_endianness(f.read())
            upload_rom(cart, rom_data)

        if (args.rom or args.cic != None):
            (cic, detected) = resolve_cic(args.cic, rom_data)
            word = cart.set_cic(cic)
            print(f'CIC set to [{cic}] (0x{word:08X}){" (autodetected)" if detected else ""}')

        save_type = None
        if (args.rom or args.save_type != None):
            (save_type, detected) = resolve_save_type(args.save_type, rom_data, database)
            word = cart.set_save_type(save_type)
            print(f'Save type set to [{save_type}] (0x{word:08X}){" (autodetected)" if detected else ""}')

        if (args.save or args.backup_save):
            if (not isinstance(cart, SixtyFourDrive)):
                raise UnsupportedOperation(f'Save transfer is not supported by {cart.model.label}')
            if (save_type == None):
                raise ValueError('Save type must be provided with --save-type or detected from ROM')

            if (args.save):
                with open(args.save, 'rb') as f:
                    print('Uploading save... ', end='', flush=True)
                    cart.upload_save(save_type, f.read())
                    print('done')

            if (args.backup_save):
                with open(args.backup_save, 'wb') as f:
                    print('Downloading save... ', end='', flush=True)
                    f.write(cart.download_save(save_type))
                    print('done')

        if (args.download_rom != None):
            (length, file) = args.download_rom
            download_rom(cart, length, file)

        if (args.debug):
            debug_loop(cart, args.debug_dir)


def main(argv: Optional[list[str]]=None) -> int:
    parser = build_parser()
    argv = sys.argv[1:] if argv == None else argv

    if (len(argv) == 0):
        parser.print_help()
        return 0

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s',
    )

    try:
        run(args)
    except ValueError as e:
        print(f'\n\x1b[31mValue error: {e}\x1b[0m\n')
        return 1
    except UnsupportedOperation as e:
        print(f'\n\x1b[31mUnsupported: {e}\x1b[0m\n')
        return 1
    except FlashcartException as e:
        print(f'\n\x1b[31mFlashcart error: {e}\x1b[0m\n')
        return 1
    except OSError as e:
        print(f'\n\x1b[31mFile error: {e}\x1b[0m\n')
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
