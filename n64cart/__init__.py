from .debug import DebugDatatype, DebugPacketHandler
from .devices import list_flashcarts, open_flashcart
from .exceptions import (
    CommunicationFailed,
    FlashcartException,
    ModelDetectionFailed,
    TransportStatusError,
    TransportTimeout,
    UnsupportedOperation,
)
from .flashcart import Flashcart
from .metadata import CicVariant, RomDatabase, SaveType, get_rom_database
from .models import CartridgeModel, detect_model
from .sixtyfourdrive import Segment, SixtyFourDrive
from .transport import DeviceInfo, FtdiTransport, list_devices

__version__ = '0.1.0'
