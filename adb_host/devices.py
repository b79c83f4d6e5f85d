# Copyright (c) 2021 Jeff Irion and contributors
#
# This file is part of the adb-host package.

"""Parse device information out of the ADB server's responses.

.. rubric:: Contents

* :class:`Device`

    * :meth:`Device.as_dict`
    * :meth:`Device.update`

* :func:`parse_build_prop`
* :func:`parse_devices`
* :func:`parse_pid`

"""


from . import constants


def _to_text(data):
    if data is None:
        return ''

    if isinstance(data, (bytes, bytearray)):
        return data.decode('utf-8', 'replace')

    return data


class Device(object):
    """A device or emulator that is connected to the ADB server.

    Parameters
    ----------
    device_id : str
        The serial number of the device
    state : str
        The state reported by the ADB server (e.g., ``'device'``, ``'offline'``, ``'unauthorized'``)

    Attributes
    ----------
    abi : list[str]
        The ABIs supported by the device
    brand : str, None
        ``ro.product.brand``
    device : str, None
        ``ro.product.device``
    emulator : EmulatorInfo, bool
        Information about the emulator, or ``False`` if the device is not an emulator
    genymotion : str, None
        ``ro.genymotion.version``
    id : str
        The serial number of the device
    manufacturer : str, None
        ``ro.product.manufacturer``
    model : str, None
        ``ro.product.model``
    modelnumber : str, None
        ``ro.product.model.internal``
    name : str, None
        ``ro.product.name``
    release : str, None
        ``ro.build.version.release``
    sdk : str, None
        ``ro.build.version.sdk``
    state : str
        The state reported by the ADB server

    """
    def __init__(self, device_id, state):
        self.id = device_id
        self.state = state

        self.release = None
        self.sdk = None
        self.brand = None
        self.device = None
        self.manufacturer = None
        self.model = None
        self.name = None
        self.modelnumber = None
        self.genymotion = None
        self.abi = []
        self.emulator = False

    def __repr__(self):
        return 'Device({!r}, {!r})'.format(self.id, self.state)

    def as_dict(self):
        """Get the device's attributes.

        Returns
        -------
        dict
            The attributes of this device

        """
        return dict(vars(self))

    def update(self, info):
        """Set attributes from the output of :func:`parse_build_prop`.

        Parameters
        ----------
        info : dict
            Attribute names and values

        """
        for key, value in info.items():
            setattr(self, key, value)


def parse_devices(data):
    """Parse the response to ``host:devices``.

    Parameters
    ----------
    data : bytes, str, None
        Lines of the form ``<serial>\\t<state>``

    Returns
    -------
    list[Device]
        The devices, without any ``build.prop`` information

    """
    devices = []
    for line in _to_text(data).split('\n'):
        columns = line.split()
        if len(columns) > 1:
            devices.append(Device(columns[0], columns[1]))

    return devices


def parse_build_prop(data):
    """Extract the interesting properties from ``/system/build.prop``.

    Parameters
    ----------
    data : bytes, str, None
        The contents of ``/system/build.prop``

    Returns
    -------
    dict
        The :class:`Device` attributes that were found

    """
    info = {}
    for line in _to_text(data).split('\n'):
        key, sep, value = line.partition('=')
        if not sep:
            continue

        key = key.strip()
        value = value.strip()

        if key == constants.BUILD_PROP_MODEL_NUMBER:
            info['modelnumber'] = value
        elif key in constants.BUILD_PROP_KEYS:
            info[key.split('.')[-1]] = value
        elif key == constants.BUILD_PROP_GENYMOTION:
            info['genymotion'] = value
        elif key.startswith(constants.BUILD_PROP_ABI_PREFIX):
            abis = info.setdefault('abi', [])
            for abi in value.split(','):
                abi = abi.strip()
                if abi and abi not in abis:
                    abis.append(abi)

    return info


def parse_pid(data, app_id):
    """Find the pid of an app in the output of ``ps``.

    Parameters
    ----------
    data : bytes, str, None
        The output of ``ps``
    app_id : str
        The application's id, which is the last column of its ``ps`` line

    Returns
    -------
    int
        The pid, or 0 if the app is not running

    """
    for line in _to_text(data).split('\n'):
        columns = line.split()
        if len(columns) > 1 and columns[-1] == app_id:
            try:
                return int(columns[1])
            except ValueError:
                return 0

    return 0
