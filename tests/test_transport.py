import pytest
import serial

from grbl_laser.transport import MockTransport, SerialTransport


def test_mock_write_line_appends_newline():
    t = MockTransport()
    assert t.write_line("G0 X1") == 6
    assert t.writes == [b"G0 X1\n"]
    assert t.lines_written == ["G0 X1"]


def test_mock_auto_respond_banner_and_ok():
    t = MockTransport(auto_respond=True, banner="Grbl 1.1f ['$' for help]")
    t.write(b"\x18")
    assert t.read_line() == "Grbl 1.1f ['$' for help]"
    t.write_line("M5")
    assert t.read_line() == "ok"
    assert t.read_line() is None
    # raw control bytes are not command lines
    assert t.lines_written == ["M5"]


def test_mock_queued_exception_is_raised():
    t = MockTransport()
    t.queue_response(OSError("device reports readiness to read but returned no data"), "ok")
    with pytest.raises(OSError):
        t.read_line()
    assert t.read_line() == "ok"


def test_mock_closed_port_raises():
    t = MockTransport()
    t.close()
    assert t.is_open is False
    with pytest.raises(OSError):
        t.write_line("M5")
    with pytest.raises(OSError):
        t.read_line()


class FakeSerial:
    def __init__(self, port, baudrate, **kwargs):
        self.port = port
        self.baudrate = baudrate
        self.kwargs = kwargs
        self.timeout = kwargs.get("timeout")
        self.dtr = False
        self.rts = False
        self.is_open = True
        self.incoming = [b"ok\r\n", b""]
        self.written = []

    def write(self, data):
        self.written.append(data)
        return len(data)

    def readline(self):
        return self.incoming.pop(0)

    def close(self):
        self.is_open = False


def test_serial_transport_wraps_pyserial(monkeypatch):
    monkeypatch.setattr(serial, "Serial", FakeSerial)
    t = SerialTransport(port="/dev/ttyACM0", baudrate=115200, timeout=0.5)
    ser = t._ser

    assert ser.port == "/dev/ttyACM0"
    assert ser.kwargs["rtscts"] is False
    assert ser.dtr is True and ser.rts is True

    t.write_line("$H")
    assert ser.written == [b"$H\n"]
    assert t.read_line() == "ok"
    assert t.read_line() is None

    t.set_dtr(False)
    assert ser.dtr is False

    t.close()
    t.close()
    assert t.is_open is False


def test_list_ports_handles_permission_failure(monkeypatch):
    from serial.tools import list_ports

    def broken():
        raise TypeError("cannot read device properties")

    monkeypatch.setattr(list_ports, "comports", broken)
    assert SerialTransport.list_ports() == []
