from abc import ABC, abstractmethod
from typing import Callable, Optional
from .debug import DebugDatatype
from .metadata import CicVariant, SaveType
from .models import CartridgeModel
from .transport import DeviceInfo


ProgressCallback = Callable[[int], None]


class Flashcart(ABC):
    """
    Capabilities shared by every supported flashcart family.

    An instance owns its transport for its whole lifetime, use `close()` or
    a `with` block to release it.
    """

    @property
    @abstractmethod
    def model(self) -> CartridgeModel:
        ...

    @abstractmethod
    def upload_rom(self, data: bytes, progress: Optional[ProgressCallback]=None) -> None:
        ...

    @abstractmethod
    def download_rom(self, length: int, progress: Optional[ProgressCallback]=None) -> bytes:
        ...

    @abstractmethod
    def set_cic(self, cic: CicVariant) -> int:
        ...

    @abstractmethod
    def set_save_type(self, save_type: SaveType) -> int:
        ...

    @abstractmethod
    def read_debug_message(self) -> tuple[DebugDatatype, bytes]:
        ...

    @abstractmethod
    def send_debug_message(self, datatype: DebugDatatype, data: bytes) -> None:
        ...

    @abstractmethod
    def info(self) -> DeviceInfo:
        ...

    @abstractmethod
    def close(self) -> None:
        ...

    def __enter__(self) -> 'Flashcart':
        return self

    def __exit__(self, *args) -> None:
        self.close()
