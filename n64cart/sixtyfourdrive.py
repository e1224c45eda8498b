import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Optional
from .debug import DebugDatatype
from .exceptions import CommunicationFailed, ModelDetectionFailed, TransportStatusError, UnsupportedOperation
from .flashcart import Flashcart, ProgressCallback
from .metadata import CicVariant, SaveType
from .models import CartridgeModel
from .transport import DeviceInfo, FtdiTransport


logger = logging.getLogger(__name__)


COMMAND_MAGIC = b'CMD'
COMPLETION_MAGIC = b'CMP'


def cic_word(cic: CicVariant) -> int:
    index = cic.index if (cic.index != None) else 1
    return 0x80000000 | (index & 0x7)


def save_type_word(save_type: SaveType) -> int:
    index = save_type.index if (save_type.index != None) else 0
    return index & 0x0000000F


def decode_header(packet: bytes) -> tuple[int, bytes]:
    if (len(packet) < 4):
        raise ValueError('Packet is shorter than its 4 byte header')
    return (packet[0], bytes(packet[1:4]))


class Command:
    ID: int = 0

    def header(self) -> bytes:
        return bytes([self.ID]) + COMMAND_MAGIC

    def payload(self) -> bytes:
        return b''

    def encode(self) -> bytes:
        return self.header() + self.payload()

    def response_length(self) -> int:
        return 0

    def completion(self) -> bytes:
        return COMPLETION_MAGIC + bytes([self.ID])

    def check_completion(self, data: bytes) -> None:
        expected = self.completion()
        if (bytes(data) != expected):
            raise CommunicationFailed(
                f'64drive: complete packet mismatch: {bytes(data).hex(" ").upper()} vs expected {expected.hex(" ").upper()}',
                actual=bytes(data),
                expected=expected,
            )


@dataclass(frozen=True)
class Load(Command):
    ID = 0x20

    address: int
    bank_length: int
    data: bytes

    def payload(self) -> bytes:
        return self.address.to_bytes(4, byteorder='big') + self.bank_length.to_bytes(4, byteorder='big') + self.data


@dataclass(frozen=True)
class Dump(Command):
    ID = 0x30

    address: int
    bank_length: int

    def payload(self) -> bytes:
        return self.address.to_bytes(4, byteorder='big') + self.bank_length.to_bytes(4, byteorder='big')

    def response_length(self) -> int:
        return self.bank_length & 0x00FFFFFF


@dataclass(frozen=True)
class TargetFifo(Command):
    ID = 0x40

    data: bytes

    def payload(self) -> bytes:
        return self.data


@dataclass(frozen=True)
class SetSaveType(Command):
    ID = 0x70

    save_type: SaveType

    def payload(self) -> bytes:
        return save_type_word(self.save_type).to_bytes(4, byteorder='big')


@dataclass(frozen=True)
class SetCic(Command):
    ID = 0x72

    cic: CicVariant

    def payload(self) -> bytes:
        return cic_word(self.cic).to_bytes(4, byteorder='big')


@dataclass(frozen=True)
class SetCiExtended(Command):
    ID = 0x74

    raw: int

    def payload(self) -> bytes:
        return (self.raw & 0xFFFFFFFF).to_bytes(4, byteorder='big')


@dataclass(frozen=True)
class VersionRequest(Command):
    ID = 0x80

    def response_length(self) -> int:
        return 8


class Segment(Enum):
    ROM = 'rom'
    SRAM_256K = 'sram256k'
    SRAM_768K = 'sram768k'
    FLASHRAM = 'flashram'
    EEPROM_4K = 'eeprom4k'
    EEPROM_16K = 'eeprom16k'

    def max_length(self, model: CartridgeModel) -> int:
        if (self == Segment.ROM):
            if (model == CartridgeModel.SIXTYFOURDRIVE_HW1):
                return (64 * 1024 * 1024)
            return (240 * 1024 * 1024)
        return {
            Segment.SRAM_256K: (32 * 1024),
            Segment.SRAM_768K: (96 * 1024),
            Segment.FLASHRAM: (128 * 1024),
            Segment.EEPROM_4K: 512,
            Segment.EEPROM_16K: (2 * 1024),
        }[self]

    @classmethod
    def from_save_type(cls, save_type: SaveType) -> 'Segment':
        mapping = {
            SaveType.EEPROM_4KBIT: cls.EEPROM_4K,
            SaveType.EEPROM_16KBIT: cls.EEPROM_16K,
            SaveType.SRAM_256KBIT: cls.SRAM_256K,
            SaveType.SRAM_768KBIT: cls.SRAM_768K,
            SaveType.FLASHRAM_1MBIT: cls.FLASHRAM,
            SaveType.FLASHRAM_1MBIT_STADIUM: cls.FLASHRAM,
        }
        if (save_type not in mapping):
            raise ValueError(f'Save type [{save_type}] has no save memory')
        return mapping[save_type]


def bank_index(segment: Segment, is_hw1: bool, is_stadium: bool) -> int:
    if (segment == Segment.FLASHRAM):
        bank = 5 if (is_hw1 and is_stadium) else 4
    else:
        bank = {
            Segment.ROM: 1,
            Segment.SRAM_256K: 2,
            Segment.SRAM_768K: 3,
            Segment.EEPROM_4K: 6,
            Segment.EEPROM_16K: 6,
        }[segment]
    return (bank << 24)


class SixtyFourDrive(Flashcart):
    __UPLOAD_CHUNK_SIZE = 0x800000
    __DOWNLOAD_CHUNK_SIZE = 0x20000

    __TIMEOUT = 10.0

    __DEBUG_HEADER = b'DMA@'
    __DEBUG_COMPLETE = b'CMPH'
    __DEBUG_RESYNC_DELAY = 0.005

    def __init__(self, transport: FtdiTransport, model: CartridgeModel) -> None:
        if (model not in (CartridgeModel.SIXTYFOURDRIVE_HW1, CartridgeModel.SIXTYFOURDRIVE_HW2)):
            raise ModelDetectionFailed(f'{model.label} is not a 64drive')
        self.__transport = transport
        self.__model = model
        self.__closed = False
        try:
            self.__transport.reset()
        except TransportStatusError as e:
            logger.debug(f'Device reset failed, continuing: {e}')
        self.__transport.set_timeouts(self.__TIMEOUT, self.__TIMEOUT)
        self.__transport.set_bit_mode(0xFF, FtdiTransport.BIT_MODE_RESET)
        self.__transport.set_bit_mode(0xFF, FtdiTransport.BIT_MODE_SYNC_FIFO)
        self.__transport.purge_all()

    @property
    def model(self) -> CartridgeModel:
        return self.__model

    def __is_hw1(self) -> bool:
        return self.__model == CartridgeModel.SIXTYFOURDRIVE_HW1

    def __send_packet(self, command: Command) -> bytes:
        self.__transport.write_exact(command.encode())
        length = command.response_length()
        response = self.__transport.read_exact(length) if (length > 0) else b''
        command.check_completion(self.__transport.read_exact(4))
        return response

    def upload(self, segment: Segment, offset: int, data: bytes, progress: Optional[ProgressCallback]=None) -> None:
        if (len(data) > segment.max_length(self.__model)):
            raise ValueError(f'Data size too big for {segment.name} segment')
        # TODO: pass Pokemon Stadium 2 detection once the ROM title is known here
        bank = bank_index(segment, self.__is_hw1(), False)
        for (index, position) in enumerate(range(0, len(data), self.__UPLOAD_CHUNK_SIZE)):
            chunk = data[position:position + self.__UPLOAD_CHUNK_SIZE]
            address = offset + (index * self.__UPLOAD_CHUNK_SIZE)
            bank_length = bank | (len(chunk) & 0x00FFFFFF)
            logger.debug(f'Uploading data, offset: 0x{address:08X}, banklen: 0x{bank_length:08X}')
            self.__send_packet(Load(address, bank_length, chunk))
            if (progress):
                progress(position + len(chunk))
        logger.debug(f'Upload complete, {len(data) / (1024 * 1024):.4f} MiB')

    def download(self, segment: Segment, offset: int, length: int, progress: Optional[ProgressCallback]=None) -> bytes:
        if (length <= 0):
            return b''
        if (length & 3):
            length += (4 - (length & 3))
        length = min(length, segment.max_length(self.__model))

        bank = bank_index(segment, self.__is_hw1(), False)
        data = bytearray()
        consumed = 0
        chunks = (length + self.__DOWNLOAD_CHUNK_SIZE - 1) // self.__DOWNLOAD_CHUNK_SIZE
        for index in range(chunks):
            chunk_length = min(length - consumed, self.__DOWNLOAD_CHUNK_SIZE)
            if ((chunk_length & 0x00FFFFFF) < 4):
                break
            consumed += chunk_length
            address = offset + (index * self.__DOWNLOAD_CHUNK_SIZE)
            bank_length = bank | (chunk_length & 0x00FFFFFF)
            logger.debug(f'Downloading data, offset: 0x{address:08X}, banklen: 0x{bank_length:08X}')
            data += self.__send_packet(Dump(address, bank_length))
            if (progress):
                progress(len(data))
        logger.debug(f'Download complete, {len(data) / (1024 * 1024):.4f} MiB')
        return bytes(data)

    def upload_rom(self, data: bytes, progress: Optional[ProgressCallback]=None) -> None:
        self.upload(Segment.ROM, 0, data, progress)

    def download_rom(self, length: int, progress: Optional[ProgressCallback]=None) -> bytes:
        return self.download(Segment.ROM, 0, length, progress)

    def upload_save(self, save_type: SaveType, data: bytes) -> None:
        self.upload(Segment.from_save_type(save_type), 0, data)

    def download_save(self, save_type: SaveType) -> bytes:
        segment = Segment.from_save_type(save_type)
        return self.download(segment, 0, segment.max_length(self.__model))

    def set_cic(self, cic: CicVariant) -> int:
        self.__send_packet(SetCic(cic))
        word = cic_word(cic)
        logger.debug(f'CIC [{cic}] is set 0x{word:08X}')
        return word

    def set_save_type(self, save_type: SaveType) -> int:
        self.__send_packet(SetSaveType(save_type))
        word = save_type_word(save_type)
        logger.debug(f'Save type [{save_type}] is set 0x{word:08X}')
        return word

    def set_ci_extended(self, enabled: bool) -> None:
        self.__send_packet(SetCiExtended(1 if enabled else 0))

    def version(self) -> tuple[int, int, str]:
        response = self.__send_packet(VersionRequest())
        hardware = int.from_bytes(response[0:2], byteorder='big')
        firmware = int.from_bytes(response[2:4], byteorder='big')
        magic = response[4:8].decode('ascii', errors='backslashreplace')
        return (hardware, firmware, magic)

    def read_debug_message(self) -> tuple[DebugDatatype, bytes]:
        header = self.__transport.read_exact(4)
        if (header != self.__DEBUG_HEADER):
            logger.debug(f'Debug header mismatch: {header.hex(" ").upper()}')
            time.sleep(self.__DEBUG_RESYNC_DELAY)
            self.__transport.purge_receive()
            raise CommunicationFailed(
                f'64drive: debug packet mismatch: {header.hex(" ").upper()} vs expected {self.__DEBUG_HEADER.hex(" ").upper()}',
                actual=header,
                expected=self.__DEBUG_HEADER,
            )

        info = self.__transport.read_exact(4)
        datatype = DebugDatatype.from_byte(info[0])
        length = int.from_bytes(info[1:4], byteorder='big')
        data = self.__transport.read_exact(length) if (length > 0) else b''

        complete = self.__transport.read_exact(4)
        if (complete != self.__DEBUG_COMPLETE):
            raise CommunicationFailed(
                f'64drive: complete packet mismatch: {complete.hex(" ").upper()} vs expected {self.__DEBUG_COMPLETE.hex(" ").upper()}',
                actual=complete,
                expected=self.__DEBUG_COMPLETE,
            )

        logger.debug(f'Received {datatype.name} data, {len(data)} bytes')
        return (datatype, data)

    def send_debug_message(self, datatype: DebugDatatype, data: bytes) -> None:
        raise UnsupportedOperation('Sending debug data is not supported by 64drive')

    def info(self) -> DeviceInfo:
        return self.__transport.device_info()

    def close(self) -> None:
        if (not self.__closed):
            self.__closed = True
            self.__transport.close()
