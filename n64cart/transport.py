import errno
import logging
import time
from typing import NamedTuple, Optional
import usb.core
from pyftdi.ftdi import Ftdi, FtdiError
from .exceptions import TransportStatusError, TransportTimeout


logger = logging.getLogger(__name__)


class DeviceInfo(NamedTuple):
    vendor_id: int
    product_id: int
    description: str
    serial_number: str
    port_open: bool


def _is_usb_timeout(error: Optional[BaseException]) -> bool:
    # pyftdi re-raises pyusb errors as FtdiError, the original stays in the cause or context chain
    while (error != None):
        if (isinstance(error, usb.core.USBTimeoutError) or getattr(error, 'errno', None) == errno.ETIMEDOUT):
            return True
        error = error.__cause__ or error.__context__
    return False


def _device_description(description: Optional[str], interfaces: int) -> str:
    # Multi-interface bridges report their first channel as "<product> A"
    description = description or ''
    if (interfaces > 1):
        return f'{description} A'
    return description


def list_devices() -> list[DeviceInfo]:
    try:
        devices = Ftdi.list_devices()
    except (FtdiError, usb.core.USBError, ValueError) as e:
        raise TransportStatusError(f'Could not enumerate FTDI devices: {e}') from e
    result = []
    for (descriptor, interfaces) in devices:
        info = DeviceInfo(
            vendor_id=descriptor.vid,
            product_id=descriptor.pid,
            description=_device_description(descriptor.description, interfaces),
            serial_number=descriptor.sn or '',
            port_open=False,
        )
        logger.debug(f'Device detected: {info}')
        result.append(info)
    return result


class FtdiTransport:
    BIT_MODE_RESET = Ftdi.BitMode.RESET
    BIT_MODE_SYNC_FIFO = Ftdi.BitMode.SYNCFF

    __READ_CHUNK_SIZE = (64 * 1024)

    def __init__(self, ftdi: Ftdi, info: DeviceInfo, read_timeout: float=10.0, write_timeout: float=10.0) -> None:
        self.__ftdi = ftdi
        self.__info = info
        self.__read_timeout = read_timeout
        self.__write_timeout = write_timeout

    @classmethod
    def open(cls, serial: Optional[str]=None, read_timeout: float=10.0, write_timeout: float=10.0) -> 'FtdiTransport':
        try:
            devices = Ftdi.list_devices()
        except (FtdiError, usb.core.USBError, ValueError) as e:
            raise TransportStatusError(f'Could not enumerate FTDI devices: {e}') from e
        for (descriptor, interfaces) in devices:
            if (serial != None and descriptor.sn != serial):
                continue
            ftdi = Ftdi()
            try:
                ftdi.open(descriptor.vid, descriptor.pid, bus=descriptor.bus, address=descriptor.address)
            except (FtdiError, usb.core.USBError, ValueError) as e:
                raise TransportStatusError(f'Could not open FTDI device [{descriptor.sn}]: {e}') from e
            info = DeviceInfo(
                vendor_id=descriptor.vid,
                product_id=descriptor.pid,
                description=_device_description(descriptor.description, interfaces),
                serial_number=descriptor.sn or '',
                port_open=True,
            )
            logger.debug(f'Opened device: {info}')
            transport = cls(ftdi, info, read_timeout, write_timeout)
            transport.set_timeouts(read_timeout, write_timeout)
            return transport
        if (serial != None):
            raise TransportStatusError(f'No FTDI device with serial number [{serial}] was found')
        raise TransportStatusError('No FTDI device was found')

    def device_info(self) -> DeviceInfo:
        return self.__info

    @property
    def is_open(self) -> bool:
        return self.__ftdi.is_connected

    def set_timeouts(self, read: float, write: float) -> None:
        self.__read_timeout = read
        self.__write_timeout = write
        try:
            self.__ftdi.timeouts = (int(read * 1000), int(write * 1000))
        except (FtdiError, usb.core.USBError) as e:
            raise TransportStatusError(f'Could not set timeouts: {e}') from e

    def set_bit_mode(self, mask: int, mode: Ftdi.BitMode) -> None:
        try:
            self.__ftdi.set_bitmode(mask, mode)
        except (FtdiError, usb.core.USBError) as e:
            raise TransportStatusError(f'Could not set bit mode {mode.name}: {e}') from e

    def reset(self) -> None:
        try:
            self.__ftdi.reset()
        except (FtdiError, usb.core.USBError) as e:
            raise TransportStatusError(f'Could not reset device: {e}') from e

    def purge_receive(self) -> None:
        try:
            self.__ftdi.purge_rx_buffer()
        except (FtdiError, usb.core.USBError) as e:
            raise TransportStatusError(f'Could not purge receive buffer: {e}') from e

    def purge_all(self) -> None:
        try:
            self.__ftdi.purge_buffers()
        except (FtdiError, usb.core.USBError) as e:
            raise TransportStatusError(f'Could not purge buffers: {e}') from e

    def read_exact(self, length: int) -> bytes:
        data = bytearray()
        deadline = time.monotonic() + self.__read_timeout
        try:
            while (len(data) < length):
                data += self.__ftdi.read_data_bytes(min(length - len(data), self.__READ_CHUNK_SIZE))
                if (len(data) < length and time.monotonic() > deadline):
                    raise TransportTimeout(f'Read timeout, received {len(data)} of {length} bytes')
        except (FtdiError, usb.core.USBError) as e:
            if (_is_usb_timeout(e)):
                raise TransportTimeout(f'Read timeout, received {len(data)} of {length} bytes') from e
            raise TransportStatusError(f'Read failed: {e}') from e
        return bytes(data)

    def write_exact(self, data: bytes) -> None:
        try:
            written = self.__ftdi.write_data(data)
        except (FtdiError, usb.core.USBError) as e:
            if (_is_usb_timeout(e)):
                raise TransportTimeout(f'Write timeout while sending {len(data)} bytes') from e
            raise TransportStatusError(f'Write failed: {e}') from e
        if (written != len(data)):
            raise TransportTimeout(f'Incomplete write, sent {written} of {len(data)} bytes')

    def close(self) -> None:
        if (self.__ftdi.is_connected):
            self.__ftdi.close()
            logger.debug(f'Closed device [{self.__info.serial_number}]')
