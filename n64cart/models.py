from enum import IntEnum
from .exceptions import ModelDetectionFailed
from .transport import DeviceInfo


class CartridgeModel(IntEnum):
    UNKNOWN = 0
    SIXTYFOURDRIVE_HW1 = 1
    SIXTYFOURDRIVE_HW2 = 2
    EVERDRIVE_X7 = 3
    SUMMERCART64 = 4

    @property
    def label(self) -> str:
        return {
            CartridgeModel.UNKNOWN: 'Unknown',
            CartridgeModel.SIXTYFOURDRIVE_HW1: '64drive HW1',
            CartridgeModel.SIXTYFOURDRIVE_HW2: '64drive HW2',
            CartridgeModel.EVERDRIVE_X7: 'EverDrive X7',
            CartridgeModel.SUMMERCART64: 'SummerCart64',
        }[self]


_MODEL_TABLE = {
    (0x0403, 0x6010, '64drive USB device A'): CartridgeModel.SIXTYFOURDRIVE_HW1,
    (0x0403, 0x6014, '64drive USB device'): CartridgeModel.SIXTYFOURDRIVE_HW2,
    (0x0403, 0x6001, 'FT245R USB FIFO'): CartridgeModel.EVERDRIVE_X7,
    (0x0403, 0x6014, 'SC64'): CartridgeModel.SUMMERCART64,
}


def detect_model(vendor_id: int, product_id: int, description: str) -> CartridgeModel:
    model = _MODEL_TABLE.get((vendor_id, product_id, description))
    if (model == None):
        raise ModelDetectionFailed(f'Unknown device [{vendor_id:04X}:{product_id:04X}, "{description}"]')
    return model


def detect_model_from_info(info: DeviceInfo) -> CartridgeModel:
    return detect_model(info.vendor_id, info.product_id, info.description)
