"""In-memory stand-ins for a device server, shared by the unit tests."""

import threading

from scopesync.protocol.errors import NOT_IMPLEMENTED, ProtocolError, TransportError


class FakeClock:
    def __init__(self, start=1000.0):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


class FakeTransport:
    """Answers transport calls from a dict of property values.

    * names missing from ``values`` answer "not implemented"
    * ``failures[name]`` is raised on every read of ``name``
    * ``consolidated`` is ``None`` (endpoint not implemented), ``"all"`` or a
      list of names the ``devicestate`` answer includes
    * ``offline = True`` makes every call fail with a connection error
    """

    def __init__(self, values=None, consolidated=None, failures=None, put_failures=None):
        self.values = dict(values or {})
        self.consolidated = consolidated
        self.failures = dict(failures or {})
        self.put_failures = dict(put_failures or {})
        self.offline = False
        self.calls = []
        self.closed = False
        self._lock = threading.Lock()

    # -- transport interface ------------------------------------------

    def get(self, device, name, **params):
        self._record("GET", name, params)
        self._check_online()
        if name in self.failures:
            raise self.failures[name]
        if name == "devicestate":
            return self._devicestate()
        if name not in self.values:
            raise ProtocolError(NOT_IMPLEMENTED, f"{name} is not implemented")
        return self.values[name]

    def put(self, device, name, **params):
        self._record("PUT", name, params)
        self._check_online()
        if name in self.put_failures:
            raise self.put_failures[name]
        if name == "connected":
            self.values["connected"] = params["Connected"]
            return None
        if len(params) == 1 and name in self.values:
            self.values[name] = next(iter(params.values()))
        return None

    def close(self):
        self.closed = True

    # -- inspection helpers -------------------------------------------

    def reads(self, name):
        return sum(1 for method, called, _ in self.calls if method == "GET" and called == name)

    def writes(self, name):
        return [params for method, called, params in self.calls if method == "PUT" and called == name]

    def reset_calls(self):
        with self._lock:
            self.calls.clear()

    # -- internals ----------------------------------------------------

    def _record(self, method, name, params):
        with self._lock:
            self.calls.append((method, name, dict(params)))

    def _check_online(self):
        if self.offline:
            raise TransportError(TransportError.CONNECTION, "Connection refused")

    def _devicestate(self):
        if self.consolidated is None:
            raise ProtocolError(NOT_IMPLEMENTED, "devicestate is not implemented")
        names = list(self.values) if self.consolidated == "all" else self.consolidated
        items = [{"Name": name, "Value": self.values[name]} for name in names if name in self.values]
        if items:
            items.append({"Name": "TimeStamp", "Value": "2026-01-01T00:00:00Z"})
        return items


def camera_values(**overrides):
    """A camera with the required properties and list-mode gain."""
    values = {
        "connected": False,
        "name": "Test Camera",
        "interfaceversion": 3,
        "cameraxsize": 4144,
        "cameraysize": 2822,
        "maxbinx": 4,
        "maxbiny": 4,
        "pixelsizex": 4.63,
        "pixelsizey": 4.63,
        "gains": ["Low", "Med", "High"],
        "canabortexposure": True,
        "canstopexposure": False,
        "camerastate": 0,
        "imageready": False,
        "binx": 1,
        "biny": 1,
        "startx": 0,
        "starty": 0,
        "numx": 4144,
        "numy": 2822,
        "gain": 0,
    }
    values.update(overrides)
    return values


def filterwheel_values(**overrides):
    values = {
        "connected": False,
        "name": "Test Wheel",
        "interfaceversion": 2,
        "names": ["L", "R", "G", "B"],
        "position": 0,
    }
    values.update(overrides)
    return values


def telescope_values(**overrides):
    """A mount that reports tracking and pier side but cannot set either."""
    values = {
        "connected": False,
        "name": "Test Mount",
        "interfaceversion": 3,
        "canpark": False,
        "cansettracking": False,
        "cansetpierside": False,
        "rightascension": 5.5,
        "declination": 22.0,
        "slewing": False,
        "sideofpier": 0,
        "tracking": True,
    }
    values.update(overrides)
    return values


def safetymonitor_values(**overrides):
    values = {
        "connected": False,
        "name": "Test Safety Monitor",
        "interfaceversion": 2,
        "issafe": True,
    }
    values.update(overrides)
    return values
