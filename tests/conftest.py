import pytest

from n64cart.exceptions import TransportTimeout
from n64cart.transport import DeviceInfo


HW1_INFO = DeviceInfo(0x0403, 0x6010, '64drive USB device A', 'HW1SERIAL', True)
HW2_INFO = DeviceInfo(0x0403, 0x6014, '64drive USB device', 'HW2SERIAL', True)


class FakeTransport:
    """
    In-memory stand-in for FtdiTransport.

    With `auto_respond` enabled it answers 64drive commands the way the
    device does: Dump returns `fill` bytes, VersionRequest returns `version`
    and every command is followed by its completion footer.
    """

    def __init__(self, info=HW2_INFO, auto_respond=True, fill=b'\xA5', version=b'\x00\x42\x02\x05UDEV'):
        self.info = info
        self.auto_respond = auto_respond
        self.fill = fill
        self.version = version
        self.rx = bytearray()
        self.writes = []
        self.calls = []
        self.closed = 0

    def queue(self, data):
        self.rx += data

    def commands(self, command_id=None):
        return [w for w in self.writes if command_id is None or w[0] == command_id]

    def device_info(self):
        return self.info

    def reset(self):
        self.calls.append('reset')

    def set_timeouts(self, read, write):
        self.calls.append(('timeouts', read, write))

    def set_bit_mode(self, mask, mode):
        self.calls.append(('bit_mode', mask, mode))

    def purge_all(self):
        self.calls.append('purge_all')

    def purge_receive(self):
        self.calls.append('purge_receive')
        self.rx.clear()

    def read_exact(self, length):
        if len(self.rx) < length:
            raise TransportTimeout(f'Read timeout, received {len(self.rx)} of {length} bytes')
        data = bytes(self.rx[:length])
        del self.rx[:length]
        return data

    def write_exact(self, data):
        data = bytes(data)
        self.writes.append(data)
        if not self.auto_respond:
            return
        command_id = data[0]
        if command_id == 0x30:
            length = int.from_bytes(data[8:12], 'big') & 0x00FFFFFF
            self.rx += self.fill * length
        elif command_id == 0x80:
            self.rx += self.version
        self.rx += b'CMP' + bytes([command_id])

    def close(self):
        self.closed += 1


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def hw1_transport():
    return FakeTransport(info=HW1_INFO)
