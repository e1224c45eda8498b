import logging
import os
from datetime import datetime
from enum import IntEnum
from typing import Callable, Optional
from PIL import Image


logger = logging.getLogger(__name__)


class DebugDatatype(IntEnum):
    UNKNOWN = 0
    TEXT = 1
    RAWBINARY = 2
    HEADER = 3
    SCREENSHOT = 4

    @classmethod
    def from_byte(cls, value: int) -> 'DebugDatatype':
        try:
            datatype = cls(value)
        except ValueError:
            return cls.UNKNOWN
        return datatype


class DebugPacketHandler:
    __HEADER_LENGTH = 16
    __SCREENSHOT_DATATYPE = 0x04
    __PIXEL_FORMAT_RGBA = 4

    __debug_header: Optional[bytes] = None

    def __init__(self, output_dir: str='.', echo: Callable[[str], None]=print) -> None:
        self.__output_dir = output_dir
        self.__echo = echo

    def __get_int(self, data: bytes) -> int:
        return int.from_bytes(data[:4], byteorder='big')

    def __generate_filename(self, prefix: str, extension: str) -> str:
        filename = f'{prefix}-{datetime.now().strftime("%y%m%d%H%M%S.%f")}.{extension}'
        return os.path.join(self.__output_dir, filename)

    def __handle_screenshot(self, data: bytes) -> Optional[str]:
        if (self.__debug_header == None):
            self.__echo('Got screenshot packet without header data')
            return None
        header_datatype = self.__get_int(self.__debug_header[0:4])
        pixel_format = self.__get_int(self.__debug_header[4:8])
        image_w = self.__get_int(self.__debug_header[8:12])
        image_h = self.__get_int(self.__debug_header[12:16])
        if (header_datatype != self.__SCREENSHOT_DATATYPE or pixel_format == 0 or image_w == 0 or image_h == 0):
            self.__echo('Screenshot header data is invalid')
            return None
        mode = 'RGBA' if (pixel_format == self.__PIXEL_FORMAT_RGBA) else 'I;16B'
        try:
            screenshot = Image.frombytes(mode, (image_w, image_h), data)
        except ValueError as e:
            self.__echo(f'Screenshot data does not match its header: {e}')
            return None
        filename = self.__generate_filename('screenshot', 'png')
        screenshot.save(filename)
        self.__echo(f'Wrote {image_w}x{image_h} pixels to {filename}')
        return filename

    def handle(self, datatype: DebugDatatype, data: bytes) -> Optional[str]:
        """Handles one debug packet, returns the path of a written file if any."""
        logger.debug(f'Handling {datatype.name} packet, {len(data)} bytes')
        if (datatype == DebugDatatype.TEXT):
            self.__echo(data.decode('UTF-8', errors='backslashreplace'))
        elif (datatype == DebugDatatype.RAWBINARY):
            filename = self.__generate_filename('binaryout', 'bin')
            with open(filename, 'wb') as f:
                f.write(data)
            self.__echo(f'Wrote {len(data)} bytes to {filename}')
            return filename
        elif (datatype == DebugDatatype.HEADER):
            if (len(data) == self.__HEADER_LENGTH):
                self.__debug_header = data
            else:
                self.__echo(f'Size of header packet is invalid: {len(data)}')
        elif (datatype == DebugDatatype.SCREENSHOT):
            return self.__handle_screenshot(data)
        else:
            self.__echo(f'Unknown debug packet ({len(data)} bytes)')
        return None
