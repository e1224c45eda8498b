import hashlib
import logging
from binascii import crc32
from enum import Enum
from functools import lru_cache
from importlib import resources
from types import MappingProxyType
from typing import Mapping, Optional


logger = logging.getLogger(__name__)


class CicVariant(Enum):
    AUTO = 'auto'
    CIC_6101 = '6101'
    CIC_6102 = '6102'
    CIC_7101 = '7101'
    CIC_7102 = '7102'
    CIC_X103 = 'x103'
    CIC_X105 = 'x105'
    CIC_X106 = 'x106'
    CIC_5101 = '5101'
    UNKNOWN = 'unknown'

    def __str__(self) -> str:
        return self.value

    @classmethod
    def choices(cls) -> list[str]:
        return [cic.value for cic in cls if cic != cls.UNKNOWN]

    @classmethod
    def from_str(cls, value: str) -> 'CicVariant':
        for cic in cls:
            if (cic != cls.UNKNOWN and cic.value == value.lower()):
                return cic
        raise ValueError(f'Accepted values: {", ".join(cls.choices())}')

    @property
    def index(self) -> Optional[int]:
        """Hardware index of the variant, None for AUTO and UNKNOWN."""
        return _CIC_INDEX.get(self)

    @classmethod
    def from_rom(cls, data: bytes) -> 'CicVariant':
        """
        Detects the CIC variant of a ROM from its IPL3 (offset 0x40 to 0x1000).
        ROMs shorter than 0x1000 bytes are reported as UNKNOWN.
        """
        if (len(data) < 0x1000):
            return cls.UNKNOWN
        return cls.from_ipl3(data[0x40:0x1000])

    @classmethod
    def from_ipl3(cls, data: bytes) -> 'CicVariant':
        checksum = crc32(data)
        logger.debug(f'Calculated IPL3 CRC: 0x{checksum:08X}')
        return _IPL3_CHECKSUMS.get(checksum, cls.UNKNOWN)


_CIC_INDEX = {
    CicVariant.CIC_6101: 0,
    CicVariant.CIC_6102: 1,
    CicVariant.CIC_7101: 2,
    CicVariant.CIC_7102: 3,
    CicVariant.CIC_X103: 4,
    CicVariant.CIC_X105: 5,
    CicVariant.CIC_X106: 6,
    CicVariant.CIC_5101: 7,
}

_IPL3_CHECKSUMS = {
    0x6170A4A1: CicVariant.CIC_6101,
    0x90BB6CB5: CicVariant.CIC_6102,
    0x009E9EA3: CicVariant.CIC_7102,
    0x0B050EE0: CicVariant.CIC_X103,
    0x98BC2C86: CicVariant.CIC_X105,
    0xACC8580A: CicVariant.CIC_X106,
}


class SaveType(Enum):
    AUTO = 'auto'
    NOTHING = 'none'
    EEPROM_4KBIT = 'eeprom4kbit'
    EEPROM_16KBIT = 'eeprom16kbit'
    SRAM_256KBIT = 'sram256kbit'
    FLASHRAM_1MBIT = 'flashram1mbit'
    SRAM_768KBIT = 'sram768kbit'
    FLASHRAM_1MBIT_STADIUM = 'pokestadium2'
    UNKNOWN = 'unknown'

    def __str__(self) -> str:
        return self.value

    @classmethod
    def choices(cls) -> list[str]:
        return [save_type.value for save_type in cls if save_type != cls.UNKNOWN] + ['nothing']

    @classmethod
    def from_str(cls, value: str) -> 'SaveType':
        value = value.lower()
        if (value == 'nothing'):
            return cls.NOTHING
        for save_type in cls:
            if (save_type != cls.UNKNOWN and save_type.value == value):
                return save_type
        raise ValueError(f'Accepted values: {", ".join(cls.choices())}')

    @property
    def index(self) -> Optional[int]:
        """Hardware index of the save type, None for AUTO and UNKNOWN."""
        return _SAVE_TYPE_INDEX.get(self)

    @classmethod
    def from_rom(cls, data: bytes, database: Optional['RomDatabase']=None) -> 'SaveType':
        digest = hashlib.md5(data).hexdigest().upper()
        logger.debug(f'Calculated ROM hash: {digest}')
        if (database == None):
            database = get_rom_database()
        return database.lookup(digest)


_SAVE_TYPE_INDEX = {
    SaveType.NOTHING: 0,
    SaveType.EEPROM_4KBIT: 1,
    SaveType.EEPROM_16KBIT: 2,
    SaveType.SRAM_256KBIT: 3,
    SaveType.FLASHRAM_1MBIT: 4,
    SaveType.SRAM_768KBIT: 5,
    SaveType.FLASHRAM_1MBIT_STADIUM: 6,
}


class RomDatabase:
    __SAVE_TYPE_LABELS = {
        'None': SaveType.NOTHING,
        'SRAM': SaveType.SRAM_256KBIT,
        'Eeprom 4KB': SaveType.EEPROM_4KBIT,
        'Eeprom 16KB': SaveType.EEPROM_16KBIT,
        'Flash RAM': SaveType.FLASHRAM_1MBIT,
    }

    __TITLE_OVERRIDES = [
        ('Dezaemon 3D', SaveType.SRAM_768KBIT),
        ('Pokemon Stadium 2', SaveType.FLASHRAM_1MBIT_STADIUM),
    ]

    def __init__(self, entries: Mapping[str, SaveType]) -> None:
        self.__entries = MappingProxyType(dict(entries))

    def __len__(self) -> int:
        return len(self.__entries)

    def __contains__(self, digest: str) -> bool:
        return digest.upper() in self.__entries

    @property
    def entries(self) -> Mapping[str, SaveType]:
        return self.__entries

    def lookup(self, digest: str) -> SaveType:
        return self.__entries.get(digest.upper(), SaveType.UNKNOWN)

    @classmethod
    def __finish_record(cls, entries: dict[str, SaveType], md5: str, save_type: SaveType, title: Optional[str]) -> None:
        if (title != None):
            for (text, override) in cls.__TITLE_OVERRIDES:
                if (text in title):
                    save_type = override
                    break
        entries[md5] = save_type

    @classmethod
    def parse(cls, text: str) -> 'RomDatabase':
        entries: dict[str, SaveType] = {}
        md5: Optional[str] = None
        save_type = SaveType.NOTHING
        title: Optional[str] = None

        for line in text.splitlines():
            line = line.strip()
            if (line.startswith(';') or line.startswith('#')):
                continue
            if (line.startswith('[')):
                md5 = line.strip('[]').upper()
                save_type = SaveType.NOTHING
                title = None
            elif (md5 == None):
                continue
            elif (line.startswith('SaveType=')):
                label = line.split('=', 1)[1]
                save_type = cls.__SAVE_TYPE_LABELS.get(label, SaveType.UNKNOWN)
            elif (line.startswith('GoodName=')):
                title = line.split('=', 1)[1]
            elif (len(line) == 0):
                cls.__finish_record(entries, md5, save_type, title)
                md5 = None

        if (md5 != None):
            cls.__finish_record(entries, md5, save_type, title)

        return cls(entries)

    @classmethod
    def load(cls, path: str) -> 'RomDatabase':
        with open(path, 'r', encoding='utf-8', errors='replace') as f:
            return cls.parse(f.read())


@lru_cache(maxsize=None)
def get_rom_database() -> RomDatabase:
    text = resources.files(__package__).joinpath('romdb.ini').read_text(encoding='utf-8')
    database = RomDatabase.parse(text)
    logger.debug(f'Loaded ROM database with {len(database)} entries')
    return database
