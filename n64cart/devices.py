import logging
from typing import Callable, Optional
from .exceptions import ModelDetectionFailed, UnsupportedOperation
from .flashcart import Flashcart
from .models import CartridgeModel, detect_model_from_info
from .sixtyfourdrive import SixtyFourDrive
from .transport import DeviceInfo, FtdiTransport, list_devices


logger = logging.getLogger(__name__)


def list_flashcarts(enumerate_devices: Callable[[], list[DeviceInfo]]=list_devices) -> list[tuple[DeviceInfo, CartridgeModel]]:
    carts = []
    for info in enumerate_devices():
        if (info.port_open):
            logger.debug(f'Skipping device [{info.serial_number}], port already open')
            continue
        try:
            model = detect_model_from_info(info)
        except ModelDetectionFailed as e:
            logger.debug(f'Skipping device [{info.serial_number}]: {e}')
            continue
        carts.append((info, model))
    return carts


def open_flashcart(serial: Optional[str]=None, transport_factory: Callable[..., FtdiTransport]=FtdiTransport.open) -> Flashcart:
    transport = transport_factory(serial=serial)
    try:
        model = detect_model_from_info(transport.device_info())
        logger.debug(f'Detected {model.label} [{transport.device_info().serial_number}]')
        if (model in (CartridgeModel.SIXTYFOURDRIVE_HW1, CartridgeModel.SIXTYFOURDRIVE_HW2)):
            return SixtyFourDrive(transport, model)
        raise UnsupportedOperation(f'{model.label} is not supported yet')
    except BaseException:
        transport.close()
        raise
