"""Tests for the pyftdi backed transport."""

import errno

import pytest
import usb.core
from pyftdi.ftdi import Ftdi

from conftest import HW2_INFO
from n64cart.exceptions import TransportStatusError, TransportTimeout
from n64cart.transport import FtdiTransport, _device_description


MODEM_STATUS = b'\x01\x60'


class FakeUsbDevice:
    """Bulk endpoint stand-in, replays `packets` or raises `error`."""

    def __init__(self, packets=(), error=None):
        self.packets = list(packets)
        self.error = error
        self.written = b''

    def write(self, endpoint, data, timeout):
        if (self.error != None):
            raise self.error
        self.written += bytes(data)
        return len(data)

    def read(self, endpoint, size, timeout):
        if (self.error != None):
            raise self.error
        if (len(self.packets) == 0):
            return MODEM_STATUS
        return self.packets.pop(0)


def make_transport(usb_dev, read_timeout=1.0):
    ftdi = Ftdi()
    ftdi._usb_dev = usb_dev
    ftdi._max_packet_size = 64
    return FtdiTransport(ftdi, HW2_INFO, read_timeout=read_timeout)


def usb_timeout():
    return usb.core.USBTimeoutError('Operation timed out', error_code=-7, errno=errno.ETIMEDOUT)


def test_read_exact_collects_packets():
    transport = make_transport(FakeUsbDevice([MODEM_STATUS + b'CM', MODEM_STATUS + b'P\x80']))
    data = transport.read_exact(4)
    assert data == b'CMP\x80'
    assert isinstance(data, bytes)


def test_write_exact_sends_data():
    usb_dev = FakeUsbDevice()
    make_transport(usb_dev).write_exact(b'\x80CMD')
    assert usb_dev.written == b'\x80CMD'


def test_usb_timeout_on_read_is_reported_as_timeout():
    transport = make_transport(FakeUsbDevice(error=usb_timeout()))
    with pytest.raises(TransportTimeout):
        transport.read_exact(4)


def test_usb_timeout_on_write_is_reported_as_timeout():
    transport = make_transport(FakeUsbDevice(error=usb_timeout()))
    with pytest.raises(TransportTimeout):
        transport.write_exact(b'\x80CMD')


def test_other_usb_errors_are_status_errors():
    error = usb.core.USBError('No such device', error_code=-4, errno=errno.ENODEV)
    transport = make_transport(FakeUsbDevice(error=error))
    with pytest.raises(TransportStatusError):
        transport.read_exact(4)
    with pytest.raises(TransportStatusError):
        transport.write_exact(b'\x80CMD')


def test_short_read_times_out_after_deadline():
    transport = make_transport(FakeUsbDevice([MODEM_STATUS + b'CM']), read_timeout=0.05)
    with pytest.raises(TransportTimeout) as e:
        transport.read_exact(4)
    assert 'received 2 of 4 bytes' in str(e.value)


def test_device_description_of_multi_interface_bridge():
    assert _device_description('64drive USB device', 2) == '64drive USB device A'
    assert _device_description('64drive USB device', 1) == '64drive USB device'
    assert _device_description(None, 1) == ''
